"""
AgencyDesk backend core.

Client records for the agency dashboard, stored in Supabase, and the CSV
import pipeline that fills them.

Modules:
    config: Configuration management via environment variables
    supabase_client: Supabase access for clients and the activity log
    import_service: CSV parsing, validation, deduplication and bulk insert
    client_service: Single-client create/update with the same rules

Usage:
    from agencydesk.config import load_config
    from agencydesk.supabase_client import configure
    from agencydesk.import_service import ImportService

    configure(load_config())
    result = ImportService().import_csv(csv_text, owner_id)
"""

from agencydesk.config import AppConfig, load_config, load_config_from_dotenv
from agencydesk.import_service import (
    ImportService,
    ImportResult,
    ImportPreview,
    ClientImportError,
    MissingFieldError,
    CsvParseError,
    ImportConflictError,
    PersistenceError,
    validate_and_partition,
)

__all__ = [
    # Config
    "AppConfig",
    "load_config",
    "load_config_from_dotenv",
    # Import
    "ImportService",
    "ImportResult",
    "ImportPreview",
    "validate_and_partition",
    # Errors
    "ClientImportError",
    "MissingFieldError",
    "CsvParseError",
    "ImportConflictError",
    "PersistenceError",
]

__version__ = "0.1.0"
