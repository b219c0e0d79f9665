"""Configuration helpers for the back-office Flask application.

Every setting the service reads from the environment is gathered here so
installers and tests can prime values without touching application
internals.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping
import os

from dotenv import load_dotenv

_DEFAULT_ORIGINS = (
    "https://localhost",
    "https://127.0.0.1",
    "http://localhost",
    "http://127.0.0.1",
)


@dataclass(frozen=True)
class BackofficeConfig:
    """Strongly typed configuration for the back-office service."""

    base_dir: Path
    data_dir: Path
    secret_key: str
    admin_email: str
    force_tls: bool
    trust_proxy_headers: bool
    api_host: str
    api_port: int
    allowed_origins: tuple[str, ...]
    store_backups: int
    log_level: str
    tls_cert_file: str = ""
    tls_key_file: str = ""

    @property
    def segments_file(self) -> Path:
        return self.data_dir / "segments.json"

    @property
    def users_file(self) -> Path:
        return self.data_dir / "users.json"

    @property
    def ssl_context(self) -> tuple[str, str] | str | None:
        # Prefer an explicit certificate pair; adhoc certificates for local dev.
        if self.tls_cert_file and self.tls_key_file:
            return (self.tls_cert_file, self.tls_key_file)
        return "adhoc" if self.force_tls else None

    @property
    def uses_default_secret(self) -> bool:
        return self.secret_key == "dev-change-me"


def env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _coerce_origins(raw: str | Iterable[str]) -> tuple[str, ...]:
    if isinstance(raw, str):
        items = [piece.strip() for piece in raw.split(",")]
    else:
        items = [piece.strip() for piece in raw]
    return tuple(filter(None, items)) or _DEFAULT_ORIGINS


def load_backoffice_config(base_dir: Path, env: Mapping[str, str] | None = None) -> BackofficeConfig:
    """Load configuration from ``base_dir/.env`` and the given env mapping."""

    base_dir = Path(base_dir)
    load_dotenv(base_dir / ".env")
    env_map = dict(os.environ if env is None else env)

    data_dir = Path(env_map.get("DATA_DIR", "").strip() or base_dir)

    return BackofficeConfig(
        base_dir=base_dir,
        data_dir=data_dir,
        secret_key=env_map.get("SECRET_KEY", "dev-change-me"),
        admin_email=env_map.get("ADMIN_EMAIL", "admin@example.com").strip().lower(),
        force_tls=env_bool(env_map, "FORCE_TLS", True),
        trust_proxy_headers=env_bool(env_map, "TRUST_PROXY_HEADERS", True),
        api_host=env_map.get("API_HOST", "0.0.0.0"),
        api_port=int(env_map.get("API_PORT", "7890")),
        allowed_origins=_coerce_origins(env_map.get("ALLOWED_ORIGINS", "")),
        store_backups=max(0, int(env_map.get("STORE_BACKUPS", "3"))),
        log_level=env_map.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        tls_cert_file=env_map.get("TLS_CERT_FILE", "").strip(),
        tls_key_file=env_map.get("TLS_KEY_FILE", "").strip(),
    )
