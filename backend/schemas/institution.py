"""Pydantic schemas for institutions."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class InstitutionResponse(BaseModel):
    """Read-only view of a linked institution (never includes the token)."""

    id: str
    workspace_id: str
    name: str
    plaid_item_id: str
    plaid_institution_id: Optional[str] = None
    connection_status: str
    last_error: Optional[dict[str, Any]] = None
    last_sync_at: Optional[datetime] = None
    logo_url: Optional[str] = None
    primary_color: Optional[str] = None
    website_url: Optional[str] = None

    model_config = {"from_attributes": True}


class RefreshInstitutionRequest(BaseModel):
    workspace_id: str = Field(min_length=1)


class RefreshInstitutionResponse(BaseModel):
    """Response schema for an institution balance refresh."""

    success: bool = True
    institution_id: str
    accounts_updated: int
    metadata_updated: bool
    message: str
