"""
Centralized settings and path configuration for override pricing.

Values come from environment variables with sensible defaults:

    OVERRIDE_PRICING_DB_PATH              SQLite file for overrides
    OVERRIDE_PRICING_AUDIT_DB_PATH        SQLite file for the audit log
    OVERRIDE_PRICING_LOG_LEVEL            root log level (INFO)
    OVERRIDE_PRICING_JSON_LOGS            "true" for JSON log lines
    OVERRIDE_PRICING_BUSY_TIMEOUT         seconds to wait on a locked database
    OVERRIDE_PRICING_EXPIRY_WINDOW_DAYS   look-ahead for expiring overrides
"""
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


ENV_PREFIX = 'OVERRIDE_PRICING_'


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 4 levels up: src/override_pricing/config/settings.py
    return Path(__file__).resolve().parent.parent.parent.parent


def _env(name: str, default: str, environ: dict) -> str:
    return environ.get(ENV_PREFIX + name, default)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ('true', '1', 'yes', 'on')


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path
    db_path: Path
    audit_db_path: Path

    # Logging
    log_level: str = 'INFO'
    json_logs: bool = False

    # Storage
    busy_timeout: float = 5.0

    # Admin reporting
    expiry_window_days: int = 7

    @classmethod
    def load(cls, project_root: Optional[Path] = None, environ: Optional[dict] = None) -> 'Settings':
        """Load settings from the environment and the project structure."""
        root = project_root or get_project_root()
        env = os.environ if environ is None else environ

        db_path = _env('DB_PATH', '', env)
        audit_db_path = _env('AUDIT_DB_PATH', '', env)
        return cls(
            project_root=root,
            db_path=Path(db_path) if db_path else root / 'data' / 'overrides.db',
            # Separate file: the audit write happens while the override write lock is held
            audit_db_path=Path(audit_db_path) if audit_db_path else root / 'data' / 'audit.db',
            log_level=_env('LOG_LEVEL', 'INFO', env).upper(),
            json_logs=_parse_bool(_env('JSON_LOGS', 'false', env)),
            busy_timeout=float(_env('BUSY_TIMEOUT', '5.0', env)),
            expiry_window_days=int(_env('EXPIRY_WINDOW_DAYS', '7', env)),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reset_settings():
    """Drop the cached settings so the next get_settings() reloads them."""
    global _settings
    _settings = None
