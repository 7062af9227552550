"""
Manual client management.

Creates and edits single client records from the dashboard form, applying
the same derived fields and per-owner uniqueness rule as the CSV import.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from agencydesk import supabase_client
from agencydesk.import_service import (
    ExistingKeys,
    build_client_record,
    compute_avatar,
    normalize_key,
)

logger = logging.getLogger(__name__)


class DuplicateClientError(ValueError):
    """Another client of the same owner already uses this email or company name."""
    pass


def _check_unique(owner_id: str, email: Optional[str], company_name: str, exclude_id: Optional[str] = None) -> None:
    existing = ExistingKeys.from_records(supabase_client.get_client_keys(owner_id, exclude_id=exclude_id))
    email_key = normalize_key(email)
    if existing.contains(email_key, normalize_key(company_name)):
        if email_key:
            raise DuplicateClientError(f"Un client avec l'email {email} existe déjà")
        raise DuplicateClientError(f"Un client nommé {company_name} existe déjà")


def create_client(owner_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Create one client for an owner.

    Args:
        owner_id: Acting user
        data: Validated form fields (company_name required)

    Raises:
        DuplicateClientError: if the owner already has a matching client
    """
    _check_unique(owner_id, data.get('email'), data['company_name'])

    record = build_client_record(
        company_name=data['company_name'],
        owner_id=owner_id,
        now=datetime.now(timezone.utc),
        contact_name=data.get('contact_name'),
        email=data.get('email'),
        phone=data.get('phone'),
        notes=data.get('notes'),
        status=data.get('status') or 'active',
    )

    created = supabase_client.create_client_record(record)
    if created:
        logger.info(f"Client {created.get('id')} created for owner {owner_id}")
    return created


def update_client(current: Dict[str, Any], updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Apply a partial update to an existing client.

    The avatar follows the contact (or company) name, and the uniqueness
    rule is checked against the owner's other clients.
    """
    merged = {**current, **updates}

    if 'email' in updates or 'company_name' in updates:
        _check_unique(current['user_id'], merged.get('email'), merged['company_name'], exclude_id=current['id'])

    changes = dict(updates)
    if 'contact_name' in updates or 'company_name' in updates:
        changes['avatar'] = compute_avatar(merged.get('contact_name') or merged['company_name'])
    changes['updated_at'] = datetime.now(timezone.utc).isoformat()

    return supabase_client.update_client(current['id'], changes)
