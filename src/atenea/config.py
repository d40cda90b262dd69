from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import logging
import os
import sys

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class BackendSettings:
    kind: str
    url: Optional[str] = None
    api_key: Optional[str] = None
    access_token: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def is_rest(self) -> bool:
        return self.kind == "rest"


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "AteneaFinanzas") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    db = base / "atenea.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)


def load_backend_settings(env: Mapping[str, str] | None = None) -> BackendSettings:
    env = os.environ if env is None else env
    requested = (env.get("ATENEA_BACKEND") or "").strip().lower()
    url = (env.get("ATENEA_SUPABASE_URL") or "").strip().rstrip("/") or None
    key = (env.get("ATENEA_SUPABASE_ANON_KEY") or "").strip() or None
    token = (env.get("ATENEA_ACCESS_TOKEN") or "").strip() or None
    user_id = (env.get("ATENEA_USER_ID") or "").strip() or None

    rest_ready = bool(url and key and url.startswith("https://"))
    if requested in ("", "rest") and rest_ready:
        return BackendSettings(kind="rest", url=url, api_key=key, access_token=token, user_id=user_id)
    if requested == "rest":
        log.warning("rest_backend_not_configured url=%s falling back to sqlite", url)
    return BackendSettings(kind="sqlite", user_id=user_id)
