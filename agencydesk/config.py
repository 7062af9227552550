"""
Configuration module for the AgencyDesk backend.

Loads settings from environment variables once at startup and hands them
around as an immutable object. Never logs or exposes the service role key.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Tuple


DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:8000",
    "http://127.0.0.1:8000",
)

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class AppConfig:
    """Immutable configuration for the API and the import scripts."""

    # Supabase project
    supabase_url: str
    supabase_service_role_key: str

    # Table holding client records
    clients_table: str = "clients"

    # CORS origins for the dashboard frontend
    allowed_origins: Tuple[str, ...] = field(default=DEFAULT_ALLOWED_ORIGINS)

    # Number of parsed rows echoed back by the import preview
    import_preview_rows: int = 20

    log_level: str = "INFO"

    def __post_init__(self):
        """Validate configuration on creation."""
        if not self.supabase_url:
            raise ValueError("SUPABASE_URL environment variable is required")
        if not self.supabase_service_role_key:
            raise ValueError("SUPABASE_SERVICE_ROLE_KEY environment variable is required")
        if not self.supabase_url.startswith(("http://", "https://")):
            raise ValueError(f"Invalid SUPABASE_URL: {self.supabase_url}. Must start with http:// or https://")
        if not self.clients_table:
            raise ValueError("CLIENTS_TABLE must not be empty")
        if self.import_preview_rows < 0:
            raise ValueError("IMPORT_PREVIEW_ROWS must be zero or greater")
        if self.log_level not in LOG_LEVELS:
            raise ValueError(
                f"Invalid LOG_LEVEL: {self.log_level}. Must be one of {', '.join(sorted(LOG_LEVELS))}."
            )


def _parse_origins(raw: str) -> Tuple[str, ...]:
    origins = tuple(o.strip() for o in raw.split(",") if o.strip())
    return origins or DEFAULT_ALLOWED_ORIGINS


def load_config() -> AppConfig:
    """
    Load configuration from environment variables.

    Required environment variables:
        SUPABASE_URL: Supabase project URL
        SUPABASE_SERVICE_ROLE_KEY: Service role key (backend only)

    Optional environment variables:
        CLIENTS_TABLE: Table holding client records (default: clients)
        ALLOWED_ORIGINS: Comma-separated CORS origins
        IMPORT_PREVIEW_ROWS: Rows returned by the import preview (default: 20)
        LOG_LEVEL: Root log level (default: INFO)

    Returns:
        AppConfig: Validated configuration object

    Raises:
        ValueError: If required variables are missing or values are invalid
    """
    preview_rows_raw = os.environ.get("IMPORT_PREVIEW_ROWS", "20")
    try:
        preview_rows = int(preview_rows_raw)
    except ValueError:
        raise ValueError(f"IMPORT_PREVIEW_ROWS must be an integer, got {preview_rows_raw!r}")

    return AppConfig(
        supabase_url=os.environ.get("SUPABASE_URL", "").strip(),
        supabase_service_role_key=os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "").strip(),
        clients_table=os.environ.get("CLIENTS_TABLE", "clients").strip(),
        allowed_origins=_parse_origins(os.environ.get("ALLOWED_ORIGINS", "")),
        import_preview_rows=preview_rows,
        log_level=os.environ.get("LOG_LEVEL", "INFO").strip().upper(),
    )


def load_config_from_dotenv(dotenv_path: Optional[Path] = None) -> AppConfig:
    """
    Load configuration after reading from .env file.

    Args:
        dotenv_path: Path to .env file. Defaults to project root/.env

    Returns:
        AppConfig: Validated configuration object
    """
    from dotenv import load_dotenv

    if dotenv_path is None:
        dotenv_path = Path(__file__).parent.parent / ".env"

    load_dotenv(dotenv_path)
    return load_config()
