"""
Client CSV Import Script.

Imports a CSV file of clients for one owner, applying the same mapping,
validation and deduplication as the dashboard upload.

Usage:
    python scripts/import_clients_csv.py FILE --user-id USER_ID [--dry-run]

Options:
    --dry-run    Report what would be imported without writing anything

Exit codes:
    0 - Import (or dry run) completed
    1 - Missing input or unreadable CSV
    2 - Database or connection error
"""

import os
import sys
import logging
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from agencydesk.config import load_config_from_dotenv
from agencydesk.supabase_client import configure
from agencydesk.import_service import (
    ImportService,
    MissingFieldError,
    CsvParseError,
    ClientImportError,
)


def run(path: Path, user_id: str, dry_run: bool = False) -> int:
    """Import one file. Returns the process exit code."""
    try:
        content = path.read_bytes()
    except OSError as e:
        print(f"Cannot read {path}: {e}", file=sys.stderr)
        return 1

    service = ImportService()

    try:
        if dry_run:
            preview = service.preview(content, user_id)
            print(f"Dry run for {path.name}")
            print(f"  Rows:       {preview.total_count}")
            print(f"  To insert:  {preview.valid_count}")
            print(f"  Duplicates: {preview.duplicate_count}")
            print(f"  Invalid:    {preview.invalid_count}")
            print("  Column mapping:")
            for target, source in preview.mapping.items():
                print(f"    {target:<13} <- {source or '-'}")
        else:
            result = service.import_csv(content, user_id)
            print(f"Imported {path.name}")
            print(f"  Rows:       {result.total_count}")
            print(f"  Inserted:   {result.inserted_count}")
            print(f"  Duplicates: {result.duplicate_count}")
            print(f"  Invalid:    {result.invalid_count}")
    except (MissingFieldError, CsvParseError) as e:
        print(f"Error: {e.message}", file=sys.stderr)
        if e.details:
            print(f"  {e.details}", file=sys.stderr)
        return 1
    except ClientImportError as e:
        print(f"Database error: {e.message}", file=sys.stderr)
        if e.details:
            print(f"  {e.details}", file=sys.stderr)
        return 2
    except Exception as e:
        # Transport failures never reach the APIError mapping
        print(f"Database error: {e}", file=sys.stderr)
        return 2

    return 0


def main(argv=None):
    import argparse
    parser = argparse.ArgumentParser(description="Import clients from a CSV file")
    parser.add_argument("file", type=Path, help="CSV file (comma or semicolon separated)")
    parser.add_argument("--user-id", required=True, help="Owner of the imported clients")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be imported without making changes")
    args = parser.parse_args(argv)

    config = load_config_from_dotenv()
    configure(config)
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    return run(args.file, args.user_id, dry_run=args.dry_run)


if __name__ == "__main__":
    sys.exit(main())
