from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import sys


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path
    exports_dir: Path


@dataclass(frozen=True)
class RemoteSettings:
    url: str | None = None
    anon_key: str | None = None
    timeout: float = 10.0
    write_fallback: bool = False

    @property
    def enabled(self) -> bool:
        return bool(self.url and self.anon_key)

    def rest_url(self, table: str) -> str:
        return f"{self.url.rstrip('/')}/rest/v1/{table}"

    def auth_url(self, path: str) -> str:
        return f"{self.url.rstrip('/')}/auth/v1/{path.lstrip('/')}"


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def get_app_paths(app_name: str = "SuiviVentes") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    exports = base / "exports"
    db = base / "local_store.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)
    exports.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs, exports_dir=exports)


def get_remote_settings() -> RemoteSettings:
    url = os.environ.get("SUIVIVENTES_SUPABASE_URL", "").strip() or None
    key = os.environ.get("SUIVIVENTES_SUPABASE_ANON_KEY", "").strip() or None
    try:
        timeout = float(os.environ.get("SUIVIVENTES_HTTP_TIMEOUT", "10"))
    except ValueError:
        timeout = 10.0
    return RemoteSettings(
        url=url,
        anon_key=key,
        timeout=timeout,
        write_fallback=_env_flag("SUIVIVENTES_WRITE_FALLBACK"),
    )
