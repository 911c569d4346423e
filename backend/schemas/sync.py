"""Pydantic schemas for sync requests and summaries."""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class SyncRequest(BaseModel):
    """Request body for a workspace sync."""

    workspace_id: str = Field(min_length=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def check_window(self) -> "SyncRequest":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        return self


class LegacySyncRequest(BaseModel):
    """Request body for the older workspace + user sync call."""

    workspace_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)


class SyncSummaryResponse(BaseModel):
    """Response schema for a completed sync run."""

    success: bool
    workspace_id: str
    message: str
    institutions_processed: int
    new_transactions: int
    updated_transactions: int
    total_transactions: int
    skipped_transactions: int
    accounts_updated: int
    errors: int
    failed_institutions: list[str] = []
    start_date: date
    end_date: date


class ErrorResponse(BaseModel):
    """Body returned for rejected sync requests."""

    error: str
    details: Optional[str] = None
