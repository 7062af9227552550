"""
Clients API Router.

Manages the agency's client records (companies and their contacts).
"""

import logging
from typing import List, Optional
from fastapi import APIRouter, HTTPException, Query

from agencydesk.supabase_client import (
    get_clients,
    get_client,
    delete_client,
    log_activity,
)
from agencydesk.client_service import create_client, update_client, DuplicateClientError
from api.schemas import Client, ClientCreate, ClientUpdate, MessageResponse

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/", response_model=List[Client])
async def list_clients(
    user_id: str = Query(..., alias="userId", description="Owner of the clients"),
    status: Optional[str] = Query(None, pattern="^(prospect|active|paused|lost)$"),
):
    """Get all clients of an owner."""
    try:
        return get_clients(user_id, status=status)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{client_id}", response_model=Client)
async def get_client_by_id(client_id: str):
    """Get a single client by ID."""
    try:
        client = get_client(client_id)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")
        return client
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/", response_model=Client, status_code=201)
async def create_new_client(client_data: ClientCreate):
    """Create a new client from the dashboard form."""
    try:
        data = client_data.model_dump(exclude={"user_id"})
        client = create_client(client_data.user_id, data)
        if not client:
            raise HTTPException(status_code=400, detail="Failed to create client - no data returned")

        log_activity(
            action="client_created",
            entity_type="client",
            entity_id=client["id"],
            user_id=client_data.user_id,
            details={"company_name": client["company_name"]},
        )

        return client
    except HTTPException:
        raise
    except DuplicateClientError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.exception(f"Error creating client: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{client_id}", response_model=Client)
async def update_existing_client(client_id: str, client_data: ClientUpdate):
    """Update an existing client. Only the fields sent are changed."""
    try:
        updates = client_data.model_dump(exclude_unset=True)
        if not updates:
            raise HTTPException(status_code=400, detail="No fields to update")
        if updates.get("company_name") is None and "company_name" in updates:
            raise HTTPException(status_code=400, detail="company_name cannot be empty")

        current = get_client(client_id)
        if not current:
            raise HTTPException(status_code=404, detail="Client not found")

        client = update_client(current, updates)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")

        log_activity(
            action="client_updated",
            entity_type="client",
            entity_id=client_id,
            user_id=current["user_id"],
            details={"updated_fields": list(updates.keys())},
        )

        return client
    except HTTPException:
        raise
    except DuplicateClientError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{client_id}", response_model=MessageResponse)
async def permanently_delete_client(client_id: str):
    """Permanently delete a client."""
    try:
        client = get_client(client_id)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")

        if not delete_client(client_id):
            logger.error(f"Failed to delete client {client_id}: delete_client returned False")
            raise HTTPException(status_code=500, detail="Failed to delete client from database")

        log_activity(
            action="client_deleted",
            entity_type="client",
            entity_id=client_id,
            user_id=client["user_id"],
            details={"company_name": client["company_name"]},
        )

        return MessageResponse(message=f"Client '{client['company_name']}' deleted")
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Error deleting client {client_id}")
        raise HTTPException(status_code=500, detail=f"Deletion failed: {str(e)}")
