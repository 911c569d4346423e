"""Pydantic request/response schemas."""

from schemas.institution import (
    InstitutionResponse,
    RefreshInstitutionRequest,
    RefreshInstitutionResponse,
)
from schemas.sync import ErrorResponse, LegacySyncRequest, SyncRequest, SyncSummaryResponse
from schemas.webhook import WebhookPayload, WebhookResponse

__all__ = [
    "ErrorResponse",
    "InstitutionResponse",
    "LegacySyncRequest",
    "RefreshInstitutionRequest",
    "RefreshInstitutionResponse",
    "SyncRequest",
    "SyncSummaryResponse",
    "WebhookPayload",
    "WebhookResponse",
]
