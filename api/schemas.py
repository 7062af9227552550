"""
Pydantic models for API request/response validation.

Client schemas match the Supabase `clients` table. The import contract uses
the camelCase field names the dashboard sends and expects.
"""

from datetime import datetime
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, ConfigDict, field_validator


EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
STATUS_PATTERN = "^(prospect|active|paused|lost)$"


# =============================================================================
# CLIENTS
# =============================================================================

class ClientBase(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=255)
    contact_name: Optional[str] = Field(None, max_length=255)
    email: Optional[str] = Field(None, max_length=255, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None
    status: str = Field(default="active", pattern=STATUS_PATTERN)

    @field_validator("contact_name", "email", "phone", "notes", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        # The form posts empty strings for untouched inputs
        return None if isinstance(v, str) and not v.strip() else v


class ClientCreate(ClientBase):
    model_config = ConfigDict(extra='ignore', str_strip_whitespace=True)

    user_id: str = Field(..., min_length=1)


class ClientUpdate(BaseModel):
    model_config = ConfigDict(extra='ignore', str_strip_whitespace=True)

    company_name: Optional[str] = Field(None, min_length=1, max_length=255)
    contact_name: Optional[str] = Field(None, max_length=255)
    email: Optional[str] = Field(None, max_length=255, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None
    status: Optional[str] = Field(None, pattern=STATUS_PATTERN)

    @field_validator("contact_name", "email", "phone", "notes", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        return None if isinstance(v, str) and not v.strip() else v


class Client(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    company_name: str
    contact_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    status: str
    avatar: Optional[str] = None
    user_id: str
    created_at: datetime
    updated_at: datetime


# =============================================================================
# CSV IMPORT
# =============================================================================

class ImportCsvRequest(BaseModel):
    """Both fields are optional here so the route can answer with its own 400 messages."""
    model_config = ConfigDict(populate_by_name=True)

    csv_content: Optional[str] = Field(None, alias="csvContent")
    user_id: Optional[str] = Field(None, alias="userId")


class ImportCsvResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    inserted_count: int = Field(..., alias="insertedCount")
    duplicate_count: int = Field(..., alias="duplicateCount")
    invalid_count: int = Field(..., alias="invalidCount")
    total_count: int = Field(..., alias="totalCount")


class ImportPreviewResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_count: int = Field(..., alias="totalCount")
    valid_count: int = Field(..., alias="validCount")
    invalid_count: int = Field(..., alias="invalidCount")
    duplicate_count: int = Field(..., alias="duplicateCount")
    mapping: Dict[str, Optional[str]]
    rows: List[Dict[str, str]]


# =============================================================================
# COMMON
# =============================================================================

class MessageResponse(BaseModel):
    message: str
    success: bool = True
