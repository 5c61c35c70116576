from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import asdict, dataclass
from typing import Optional

import requests

from suiviventes.config import RemoteSettings
from suiviventes.domain.errors import AuthenticationError
from suiviventes.repositories.remote_repo import describe_remote_error

log = logging.getLogger(__name__)

SESSION_KEY = "suiviventes-session"
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class AuthPolicy:
    min_password_length: int = 6


@dataclass(frozen=True)
class Session:
    access_token: str
    refresh_token: Optional[str]
    user_id: str
    email: Optional[str]
    expires_at: float

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at


def _validate_credentials(email: str, password: str, *, min_len: int) -> None:
    if not email:
        raise AuthenticationError("Email is required.")
    if not _EMAIL.match(email):
        raise AuthenticationError("Email address is not valid.")
    if len(password) < min_len:
        raise AuthenticationError(f"Password must have at least {min_len} characters.")


class AuthService:
    def __init__(self, settings: RemoteSettings, store=None, http=None, policy: AuthPolicy | None = None):
        self.settings = settings
        self.store = store
        self.http = http or requests.Session()
        self.policy = policy or AuthPolicy()
        self._session: Optional[Session] = self._restore_session()

    def _restore_session(self) -> Optional[Session]:
        if self.store is None:
            return None
        raw = self.store.get_raw(SESSION_KEY)
        if not raw:
            return None
        try:
            return Session(**json.loads(raw))
        except (TypeError, ValueError) as exc:
            log.warning("session_restore_failed error=%s", exc)
            return None

    def _persist_session(self) -> None:
        if self.store is None:
            return
        if self._session is None:
            self.store.remove(SESSION_KEY)
        else:
            self.store.set_raw(SESSION_KEY, json.dumps(asdict(self._session)))

    def _post(self, path: str, *, params: dict | None = None, payload: dict | None = None, token: str | None = None) -> dict:
        if not self.settings.enabled:
            raise AuthenticationError("Remote backend is not configured.")
        headers = {"apikey": str(self.settings.anon_key), "Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            r = self.http.request(
                "POST",
                self.settings.auth_url(path),
                params=params,
                json=payload,
                headers=headers,
                timeout=self.settings.timeout,
            )
        except requests.RequestException as exc:
            raise AuthenticationError(f"Authentication service unavailable: {exc}") from exc

        try:
            body = r.json() if r.content else {}
        except ValueError:
            body = {}
        if r.status_code >= 400:
            detail = None
            if isinstance(body, dict):
                detail = body.get("error_description") or body.get("msg") or body.get("message")
            raise AuthenticationError(describe_remote_error(detail, None))
        return body if isinstance(body, dict) else {}

    def _session_from(self, body: dict) -> Optional[Session]:
        token = body.get("access_token")
        user = body.get("user") or {}
        if not token or not user.get("id"):
            return None
        return Session(
            access_token=str(token),
            refresh_token=body.get("refresh_token"),
            user_id=str(user["id"]),
            email=user.get("email"),
            expires_at=time.time() + float(body.get("expires_in", 3600)),
        )

    def sign_in(self, email: str, password: str) -> Session:
        email_clean = (email or "").strip()
        _validate_credentials(email_clean, password or "", min_len=self.policy.min_password_length)

        body = self._post("token", params={"grant_type": "password"}, payload={"email": email_clean, "password": password})
        session = self._session_from(body)
        if session is None:
            raise AuthenticationError("Authentication response did not contain a session.")
        self._session = session
        self._persist_session()
        log.info("signed_in user_id=%s", session.user_id)
        return session

    def sign_up(self, email: str, password: str) -> Optional[Session]:
        """Create an account; returns the session when no email confirmation is required."""
        email_clean = (email or "").strip()
        _validate_credentials(email_clean, password or "", min_len=self.policy.min_password_length)

        body = self._post("signup", payload={"email": email_clean, "password": password})
        session = self._session_from(body)
        if session is not None:
            self._session = session
            self._persist_session()
        log.info("signed_up email=%s confirmed=%s", email_clean, session is not None)
        return session

    def sign_out(self) -> None:
        session = self._session
        self._session = None
        self._persist_session()
        if session is None or not self.settings.enabled:
            return
        try:
            self._post("logout", token=session.access_token)
        except AuthenticationError as exc:
            log.warning("sign_out_remote_failed error=%s", exc)

    def current_session(self) -> Optional[Session]:
        return self._session

    def is_authenticated(self) -> bool:
        return self.settings.enabled and self._session is not None and not self._session.is_expired()

    def access_token(self) -> str:
        if not self.is_authenticated():
            raise AuthenticationError("User not authenticated.")
        return self._session.access_token

    def require_user_id(self) -> str:
        if not self.is_authenticated():
            raise AuthenticationError("User not authenticated.")
        return self._session.user_id
