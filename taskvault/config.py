"""taskvault configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


# Database
DEFAULT_DB_PATH = "data/tasks.db"
DB_PATH = os.getenv("TASKVAULT_DB_PATH", DEFAULT_DB_PATH)

# Observability
OTEL_ENABLED = _env_bool("TASKVAULT_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("TASKVAULT_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("TASKVAULT_OTEL_SERVICE_NAME", "taskvault")
PROM_PORT = _env_int("TASKVAULT_PROM_PORT", 9464)

# Server settings
HOST = os.getenv("TASKVAULT_HOST", "0.0.0.0")
PORT = int(os.getenv("TASKVAULT_PORT", "8000"))


def derive_vault_path(db_path: str | os.PathLike[str], override: str | None = None) -> Path:
    """Resolve the markdown vault directory.

    An explicit override wins. Otherwise the database filename is replaced by a
    sibling ``md/`` directory (``data/tasks.db`` -> ``data/md``).
    """
    if override and override.strip():
        return Path(override.strip())
    return Path(db_path).parent / "md"


@dataclass(frozen=True)
class MarkdownExportConfig:
    """Markdown mirror settings, built once at startup."""

    vault_path: Path
    enabled: bool = True
    rebuild_on_startup: bool = False
    drain_timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls, db_path: str | os.PathLike[str] | None = None) -> "MarkdownExportConfig":
        return cls(
            vault_path=derive_vault_path(
                db_path if db_path is not None else os.getenv("TASKVAULT_DB_PATH", DEFAULT_DB_PATH),
                os.getenv("TASKVAULT_MD_VAULT_PATH"),
            ),
            enabled=_env_bool("TASKVAULT_MD_AUTO_EXPORT", True),
            rebuild_on_startup=_env_bool("TASKVAULT_MD_REBUILD_ON_STARTUP", False),
            drain_timeout_seconds=max(0.0, _env_float("TASKVAULT_EXPORT_DRAIN_TIMEOUT_SECONDS", 10.0)),
        )
