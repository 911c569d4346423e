"""Pydantic schemas for inbound Plaid webhooks."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class WebhookPayload(BaseModel):
    """A Plaid webhook body.

    Only the routing fields are required.  Anything else Plaid sends is kept
    so the audit log stores the full payload.
    """

    model_config = ConfigDict(extra="allow")

    webhook_type: str
    webhook_code: str
    item_id: Optional[str] = None
    account_ids: Optional[list[str]] = None
    new_transactions: Optional[int] = None
    removed_transactions: Optional[list[str]] = None
    error: Optional[dict[str, Any]] = None
    environment: Optional[str] = None


class WebhookResponse(BaseModel):
    success: bool = True
