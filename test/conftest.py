import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


class FakeResponse:
    def __init__(self, status_code: int = 200, body=None, text: str = ""):
        self.status_code = status_code
        self._body = body
        self.text = text
        self.content = b"" if body is None and not text else b"x"

    def json(self):
        if self._body is None:
            raise ValueError("no json body")
        return self._body


class FakeHttp:
    """Records requests and replays queued responses (or raises queued exceptions)."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "params": params, "json": json, "headers": headers})
        nxt = self.responses.pop(0) if self.responses else FakeResponse(204)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


def session_body(user_id: str = "user-1", email: str = "ana@example.com", expires_in: int = 3600) -> dict:
    return {
        "access_token": "token-abc",
        "refresh_token": "refresh-abc",
        "expires_in": expires_in,
        "user": {"id": user_id, "email": email},
    }

