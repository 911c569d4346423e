"""Plaid webhook endpoint."""

import logging

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database import get_db
from schemas import WebhookPayload, WebhookResponse
from services.webhook_service import WebhookService, WebhookVerificationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/plaid", tags=["webhooks"])


def get_webhook_service() -> WebhookService:
    """Dependency for injecting the webhook service (overridable in tests)."""
    return WebhookService()


@router.post("/webhook", response_model=WebhookResponse)
def receive_webhook(
    payload: WebhookPayload,
    plaid_verification: str | None = Header(default=None, alias="Plaid-Verification"),
    db: Session = Depends(get_db),
    webhook_service: WebhookService = Depends(get_webhook_service),
):
    """Receive a Plaid webhook.

    Returns 200 for handled, ignored and unresolvable webhooks so Plaid does
    not retry them; 500 only for unexpected failures.
    """
    try:
        webhook_service.verify(plaid_verification)
    except WebhookVerificationError as e:
        logger.warning("Rejected webhook %s/%s: %s", payload.webhook_type, payload.webhook_code, e)
        return JSONResponse(status_code=401, content={"error": str(e)})

    try:
        outcome = webhook_service.handle(db, payload)
    except Exception as e:
        db.rollback()
        logger.error(
            "Webhook processing error for %s/%s",
            payload.webhook_type, payload.webhook_code, exc_info=True,
        )
        return JSONResponse(status_code=500, content={"error": str(e)})

    logger.debug("Webhook %s/%s -> %s", outcome.webhook_type, outcome.webhook_code, outcome.action)
    return WebhookResponse(success=True)
