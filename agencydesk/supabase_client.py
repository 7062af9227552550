"""
Supabase client for AgencyDesk.

Provides database access through the Supabase REST API.

IMPORTANT: This module uses the SERVICE ROLE key for backend operations.
This key bypasses Row Level Security and should NEVER be exposed to the frontend.
Every query on client records is therefore scoped to an owner explicitly.
"""

import logging
from typing import Optional, Any, Dict, List

from supabase import create_client, Client

from agencydesk.config import AppConfig, load_config

logger = logging.getLogger(__name__)

# Global instances (lazy initialization)
_config: Optional[AppConfig] = None
_service_client: Optional[Client] = None


def configure(config: AppConfig) -> None:
    """Install the configuration loaded at startup and drop any cached client."""
    global _config, _service_client
    _config = config
    _service_client = None


def get_config() -> AppConfig:
    """Get the active configuration, loading it from the environment if needed."""
    global _config

    if _config is None:
        _config = load_config()

    return _config


def get_supabase_client() -> Client:
    """
    Get the Supabase client with SERVICE ROLE privileges.

    This client bypasses RLS and should only be used in backend code.
    NEVER expose this client or its key to the frontend.
    """
    global _service_client

    if _service_client is None:
        config = get_config()
        logger.debug(f"Creating Supabase client for {config.supabase_url}")
        _service_client = create_client(config.supabase_url, config.supabase_service_role_key)

    return _service_client


def reset_clients() -> None:
    """Reset the cached client and configuration (useful for testing)."""
    global _service_client, _config
    _service_client = None
    _config = None


def _clients_table() -> str:
    return get_config().clients_table


# =============================================================================
# CLIENTS
# =============================================================================

def get_clients(owner_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
    """Get all clients of an owner, ordered by company name."""
    client = get_supabase_client()
    query = client.table(_clients_table()).select("*").eq("user_id", owner_id).order("company_name")

    if status:
        query = query.eq("status", status)

    response = query.execute()
    return response.data


def get_client(client_id: str) -> Optional[Dict[str, Any]]:
    """Get a single client by ID."""
    client = get_supabase_client()
    response = client.table(_clients_table()).select("*").eq("id", client_id).limit(1).execute()
    return response.data[0] if response.data else None


def get_client_keys(owner_id: str, exclude_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Get the deduplication keys (email, company_name) of an owner's clients.

    One round trip; callers normalize the values themselves.
    """
    client = get_supabase_client()
    query = client.table(_clients_table()).select("id, email, company_name").eq("user_id", owner_id)

    if exclude_id:
        query = query.neq("id", exclude_id)

    response = query.execute()
    return response.data or []


def create_client_record(client_data: dict) -> Optional[Dict[str, Any]]:
    """Create a new client."""
    client = get_supabase_client()
    response = client.table(_clients_table()).insert(client_data).execute()
    return response.data[0] if response.data else None


def insert_clients(records: List[dict]) -> List[Dict[str, Any]]:
    """Insert many clients in a single request."""
    client = get_supabase_client()
    response = client.table(_clients_table()).insert(records).execute()
    return response.data or []


def update_client(client_id: str, client_data: dict) -> Optional[Dict[str, Any]]:
    """Update an existing client."""
    client = get_supabase_client()
    response = client.table(_clients_table()).update(client_data).eq("id", client_id).execute()
    return response.data[0] if response.data else None


def delete_client(client_id: str) -> bool:
    """Permanently delete a client. Returns True if a row was removed."""
    client = get_supabase_client()
    response = client.table(_clients_table()).delete().eq("id", client_id).execute()
    return len(response.data) > 0 if response.data else False


# =============================================================================
# ACTIVITY LOG
# =============================================================================

def log_activity(
    action: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    user_id: Optional[str] = None
):
    """Log an activity to the activity log."""
    client = get_supabase_client()

    log_entry = {
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "details": details,
        "user_id": user_id,
    }

    # Remove None values
    log_entry = {k: v for k, v in log_entry.items() if v is not None}

    response = client.table("activity_log").insert(log_entry).execute()
    return response.data[0] if response.data else None
