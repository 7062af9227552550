"""
CSV Import Service for client records.

Handles:
- CSV parsing (comma or semicolon delimited)
- Column mapping (synonym lists per logical field)
- Row validation
- Deduplication against the owner's clients and within the batch
- Bulk insert of the surviving rows
"""

import io
import re
import logging
import threading
import warnings
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Iterable, Iterator, Union

import pandas as pd
from postgrest.exceptions import APIError

from agencydesk.supabase_client import get_config, get_client_keys, insert_clients, log_activity

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

# Logical field -> accepted source column names (compared trimmed, lower-cased)
COLUMN_SYNONYMS: Dict[str, List[str]] = {
    'company_name': ['company', 'entreprise', 'company_name', 'societe'],
    'email': ['email', 'mail'],
    'contact_name': ['contact_name', 'nom', 'fullname', 'contact'],
    'phone': ['phone', 'tel', 'telephone', 'mobile'],
    'notes': ['notes', 'commentaire', 'description'],
}

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

# Quoted header names may contain either delimiter
QUOTED_SPAN = re.compile(r'"[^"]*"')

IMPORT_STATUS = 'prospect'

DEFAULT_AVATAR = 'C'

# PostgreSQL unique_violation
UNIQUE_VIOLATION = '23505'

TEMPLATE_FILENAME = 'modele_clients.csv'
TEMPLATE_HEADER = 'company_name,contact_name,email,phone,notes'
TEMPLATE_SAMPLE = 'Ma Super Entreprise,Jean Dupont,jean@example.com,+33612345678,Premier contact via site web'
IMPORT_TEMPLATE = f"{TEMPLATE_HEADER}\n{TEMPLATE_SAMPLE}"


# =============================================================================
# ERRORS
# =============================================================================

class ClientImportError(Exception):
    """Base class for errors that abort a whole import request."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class MissingFieldError(ClientImportError):
    """A required request field (CSV content, owner) is missing."""
    status_code = 400


class CsvParseError(ClientImportError):
    """The uploaded content is not a readable CSV document."""
    status_code = 400


class ImportConflictError(ClientImportError):
    """The database rejected the batch because of a uniqueness violation."""
    status_code = 409


class PersistenceError(ClientImportError):
    """Reading existing clients or writing the batch failed."""
    status_code = 500


def _api_error_details(error: APIError) -> Dict[str, Any]:
    return {
        'code': error.code,
        'message': error.message,
        'details': error.details,
        'hint': error.hint,
    }


# =============================================================================
# NORMALIZATION FUNCTIONS
# =============================================================================

def normalize_key(value: Optional[str]) -> str:
    """Deduplication key: trimmed and lower-cased, '' for missing values."""
    if value is None:
        return ''
    return str(value).strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def compute_avatar(name: Optional[str]) -> str:
    """
    Build avatar initials from a display name.

    First character of each whitespace-separated word, upper-cased,
    at most two characters. Empty names get the generic 'C'.
    """
    if not name or not name.strip():
        return DEFAULT_AVATAR
    return ''.join(word[0] for word in name.split()).upper()[:2]


def _clean_cell(value: Any) -> Optional[str]:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    text = str(value).strip()
    return text or None


# =============================================================================
# PARSING AND COLUMN MAPPING
# =============================================================================

def decode_content(content: Union[str, bytes]) -> str:
    """Return CSV text, decoding bytes as UTF-8 and dropping a leading BOM."""
    if isinstance(content, bytes):
        try:
            return content.decode('utf-8-sig')
        except UnicodeDecodeError as e:
            raise CsvParseError("Fichier CSV invalide", details=f"Encodage non UTF-8: {e}")
    return content.lstrip('\ufeff')


def detect_delimiter(text: str) -> str:
    """Pick ';' or ',' by counting both in the header line, outside quoted names."""
    for line in text.splitlines():
        if line.strip():
            bare = QUOTED_SPAN.sub('', line)
            return ';' if bare.count(';') > bare.count(',') else ','
    return ','


def parse_csv(content: Union[str, bytes]) -> pd.DataFrame:
    """
    Parse CSV content into a DataFrame of trimmed strings.

    The first non-blank line is the header. Blank lines are skipped.
    Any parser failure aborts the whole import.
    """
    text = decode_content(content)
    if not text.strip():
        raise CsvParseError("Fichier CSV invalide", details="Le fichier est vide")

    delimiter = detect_delimiter(text)

    try:
        # Rows longer than the header would be truncated; treat them as malformed
        with warnings.catch_warnings():
            warnings.simplefilter('error', pd.errors.ParserWarning)
            df = pd.read_csv(
                io.StringIO(text),
                sep=delimiter,
                dtype=str,
                index_col=False,
                keep_default_na=False,
                skip_blank_lines=True,
            )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, pd.errors.ParserWarning) as e:
        raise CsvParseError("Fichier CSV invalide", details=str(e))

    # Clean column names
    df.columns = [str(col).strip() for col in df.columns]

    # Short rows leave NaN in the trailing columns
    df = df.fillna('')
    for col in df.columns:
        df[col] = df[col].astype(str).str.strip()

    return df


def map_columns(columns: Iterable[str]) -> Dict[str, Optional[str]]:
    """
    Resolve the source column of every logical field.

    The first column (in header order) whose trimmed, lower-cased name is a
    synonym wins. Fields without a matching column map to None.

    Returns: {logical_field: source_column or None}
    """
    columns = list(columns)
    mapping: Dict[str, Optional[str]] = {}

    for target_field, synonyms in COLUMN_SYNONYMS.items():
        mapping[target_field] = next(
            (col for col in columns if str(col).lower().strip() in synonyms),
            None,
        )

    return mapping


# =============================================================================
# VALIDATION AND DEDUPLICATION
# =============================================================================

@dataclass
class ClientCandidate:
    """One CSV row reduced to the logical client fields."""
    row_number: int  # spreadsheet-style ordinal: header is 1, first data row 2, blank lines not counted
    company_name: Optional[str] = None
    email: Optional[str] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class ExistingKeys:
    """Normalized emails and company names already stored for an owner."""
    emails: set = field(default_factory=set)
    company_names: set = field(default_factory=set)

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> "ExistingKeys":
        keys = cls()
        for record in records:
            email = normalize_key(record.get('email'))
            company = normalize_key(record.get('company_name'))
            if email:
                keys.emails.add(email)
            if company:
                keys.company_names.add(company)
        return keys

    def contains(self, email_key: str, company_key: str) -> bool:
        """Email decides when present, company name otherwise."""
        if email_key:
            return email_key in self.emails
        return bool(company_key) and company_key in self.company_names

    def add(self, email_key: str, company_key: str) -> None:
        if email_key:
            self.emails.add(email_key)
        if company_key:
            self.company_names.add(company_key)


@dataclass
class ImportPartition:
    """Outcome of validating and deduplicating one batch."""
    to_insert: List[Dict[str, Any]] = field(default_factory=list)
    invalid_rows: List[int] = field(default_factory=list)
    duplicate_rows: List[int] = field(default_factory=list)
    total_count: int = 0

    @property
    def invalid_count(self) -> int:
        return len(self.invalid_rows)

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicate_rows)


@dataclass
class ImportResult:
    """Summary returned to the caller after a committed import."""
    inserted_count: int
    duplicate_count: int
    invalid_count: int
    total_count: int


@dataclass
class ImportPreview:
    """Dry-run summary shown before an import is committed."""
    total_count: int
    valid_count: int
    invalid_count: int
    duplicate_count: int
    mapping: Dict[str, Optional[str]]
    rows: List[Dict[str, str]]


def extract_candidates(df: pd.DataFrame, mapping: Dict[str, Optional[str]]) -> List[ClientCandidate]:
    """Reduce parsed rows to candidates, in file order."""
    candidates = []

    for position, row_data in enumerate(df.to_dict(orient='records')):
        values = {
            target_field: _clean_cell(row_data.get(source_col)) if source_col else None
            for target_field, source_col in mapping.items()
        }
        candidates.append(ClientCandidate(row_number=position + 2, **values))

    return candidates


def validate_candidate(candidate: ClientCandidate) -> bool:
    """Company name is required; email, when given, must look like one."""
    if not candidate.company_name:
        return False
    if candidate.email and not is_valid_email(candidate.email):
        return False
    return True


def build_client_record(
    company_name: str,
    owner_id: str,
    now: datetime,
    contact_name: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    notes: Optional[str] = None,
    status: str = IMPORT_STATUS,
) -> Dict[str, Any]:
    """Build the row stored in the clients table, with derived fields filled in."""
    display_name = contact_name or company_name
    timestamp = now.isoformat()
    return {
        'company_name': company_name,
        'contact_name': display_name,
        'email': email or None,
        'phone': phone or None,
        'notes': notes or None,
        'status': status,
        'user_id': owner_id,
        'avatar': compute_avatar(display_name),
        'created_at': timestamp,
        'updated_at': timestamp,
    }


def validate_and_partition(
    candidates: List[ClientCandidate],
    existing_keys: ExistingKeys,
    owner_id: str,
    now: Optional[datetime] = None,
) -> ImportPartition:
    """
    Split a batch into records to insert, invalid rows and duplicate rows.

    Rows are processed in file order. Invalid rows never reach the
    duplicate checks and leave no trace in the batch keys, so the first
    valid occurrence of a key is the one kept.
    """
    now = now or datetime.now(timezone.utc)
    partition = ImportPartition(total_count=len(candidates))
    batch_keys = ExistingKeys()

    for candidate in candidates:
        if not validate_candidate(candidate):
            partition.invalid_rows.append(candidate.row_number)
            continue

        email_key = normalize_key(candidate.email)
        company_key = normalize_key(candidate.company_name)

        if existing_keys.contains(email_key, company_key) or batch_keys.contains(email_key, company_key):
            partition.duplicate_rows.append(candidate.row_number)
            continue

        # Company names of all accepted rows count, with or without email
        batch_keys.add(email_key, company_key)

        partition.to_insert.append(build_client_record(
            company_name=candidate.company_name,
            owner_id=owner_id,
            now=now,
            contact_name=candidate.contact_name,
            email=candidate.email,
            phone=candidate.phone,
            notes=candidate.notes,
        ))

    return partition


def build_import_template() -> str:
    """Return the CSV template offered to end-users."""
    return IMPORT_TEMPLATE


# =============================================================================
# IMPORT SERVICE CLASS
# =============================================================================

# owner_id -> [lock, number of imports holding or waiting on it]
_owner_locks: Dict[str, list] = {}
_owner_locks_guard = threading.Lock()


@contextmanager
def owner_import_lock(owner_id: str) -> Iterator[None]:
    """Serialize imports of one owner between snapshot and insert."""
    with _owner_locks_guard:
        entry = _owner_locks.setdefault(owner_id, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _owner_locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _owner_locks[owner_id]


class ImportService:
    """Service for handling client CSV imports."""

    def __init__(self):
        self.config = get_config()

    def prepare(self, csv_content: Union[str, bytes]):
        """Parse content and reduce it to candidates. Returns (df, mapping, candidates)."""
        df = self.parse_file(csv_content)
        mapping = map_columns(df.columns)
        return df, mapping, extract_candidates(df, mapping)

    def parse_file(self, csv_content: Union[str, bytes]) -> pd.DataFrame:
        return parse_csv(csv_content)

    def fetch_existing_keys(self, owner_id: str) -> ExistingKeys:
        """Load the owner's dedup keys in one read."""
        try:
            records = get_client_keys(owner_id)
        except APIError as e:
            logger.error(f"Could not load existing clients: {e.message}")
            raise PersistenceError("Erreur lors de la lecture des clients existants", details=_api_error_details(e))
        return ExistingKeys.from_records(records)

    def persist(self, records: List[Dict[str, Any]]) -> int:
        """Insert the batch as one request. Returns the number of records sent."""
        try:
            insert_clients(records)
        except APIError as e:
            logger.error(f"Bulk insert failed ({e.code}): {e.message}")
            if e.code == UNIQUE_VIOLATION:
                raise ImportConflictError(
                    "Conflit: un client identique a été créé pendant l'import",
                    details=_api_error_details(e),
                )
            raise PersistenceError("Erreur lors de l'insertion en base", details=_api_error_details(e))
        return len(records)

    def import_csv(self, csv_content: Optional[Union[str, bytes]], owner_id: Optional[str]) -> ImportResult:
        """
        Parse, validate, deduplicate and insert in ONE step.

        Raises:
            MissingFieldError: csv_content or owner_id missing
            CsvParseError: content is not a readable CSV
            PersistenceError / ImportConflictError: backend failure, nothing reported
        """
        if not csv_content:
            raise MissingFieldError("Contenu CSV manquant")
        if not owner_id:
            raise MissingFieldError("UserId manquant")

        _, _, candidates = self.prepare(csv_content)

        with owner_import_lock(owner_id):
            existing = self.fetch_existing_keys(owner_id)
            partition = validate_and_partition(candidates, existing, owner_id)

            inserted = 0
            if partition.to_insert:
                inserted = self.persist(partition.to_insert)

        result = ImportResult(
            inserted_count=inserted,
            duplicate_count=partition.duplicate_count,
            invalid_count=partition.invalid_count,
            total_count=partition.total_count,
        )
        logger.info(
            f"Client import for owner {owner_id}: {result.inserted_count} inserted, "
            f"{result.duplicate_count} duplicates, {result.invalid_count} invalid, {result.total_count} rows"
        )

        if inserted:
            self._record_activity(owner_id, result)

        return result

    def preview(self, csv_content: Optional[Union[str, bytes]], owner_id: Optional[str] = None) -> ImportPreview:
        """Run the whole pipeline except the insert."""
        if not csv_content:
            raise MissingFieldError("Contenu CSV manquant")

        df, mapping, candidates = self.prepare(csv_content)
        existing = self.fetch_existing_keys(owner_id) if owner_id else ExistingKeys()
        partition = validate_and_partition(candidates, existing, owner_id or '')

        return ImportPreview(
            total_count=partition.total_count,
            valid_count=len(partition.to_insert),
            invalid_count=partition.invalid_count,
            duplicate_count=partition.duplicate_count,
            mapping=mapping,
            rows=df.head(self.config.import_preview_rows).to_dict(orient='records'),
        )

    def _record_activity(self, owner_id: str, result: ImportResult) -> None:
        try:
            log_activity(
                action='clients_imported',
                entity_type='client',
                user_id=owner_id,
                details={
                    'inserted': result.inserted_count,
                    'duplicates': result.duplicate_count,
                    'invalid': result.invalid_count,
                    'total': result.total_count,
                },
            )
        except Exception as e:
            # The clients are already committed; the audit entry is best effort
            logger.warning(f"Could not write import activity for owner {owner_id}: {e}")
