"""Webhook service - routes inbound Plaid webhooks to ledger actions.

Every delivery is written to ``webhook_events`` whether or not it changed
anything.  Handling is idempotent: a redelivered TRANSACTIONS webhook
re-runs an idempotent sync, removals of already-deleted rows are no-ops,
and ITEM webhooks set an absolute status.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.orm import Session

from config import settings
from models import Institution, WebhookEvent
from models.institution import (
    CONNECTION_DISCONNECTED,
    CONNECTION_ERROR,
    CONNECTION_PENDING_EXPIRATION,
)
from schemas.webhook import WebhookPayload
from services.reconciliation_service import ReconciliationService
from services.sync_service import SyncOptions, SyncService

logger = logging.getLogger(__name__)

WEBHOOK_TYPE_TRANSACTIONS = "TRANSACTIONS"
WEBHOOK_TYPE_ITEM = "ITEM"

TRANSACTION_UPDATE_CODES = frozenset(
    {
        "SYNC_UPDATES_AVAILABLE",
        "DEFAULT_UPDATE",
        "INITIAL_UPDATE",
        "HISTORICAL_UPDATE",
    }
)
TRANSACTIONS_REMOVED = "TRANSACTIONS_REMOVED"

# ITEM webhook code -> connection status it implies
ITEM_STATUS_CODES = {
    "ERROR": CONNECTION_ERROR,
    "PENDING_EXPIRATION": CONNECTION_PENDING_EXPIRATION,
    "USER_PERMISSION_REVOKED": CONNECTION_DISCONNECTED,
}
WEBHOOK_UPDATE_ACKNOWLEDGED = "WEBHOOK_UPDATE_ACKNOWLEDGED"

ACTION_SYNC = "sync"
ACTION_REMOVED = "removed"
ACTION_STATUS_CHANGED = "status_changed"
ACTION_ACKNOWLEDGED = "acknowledged"
ACTION_IGNORED = "ignored"
ACTION_INSTITUTION_NOT_FOUND = "institution_not_found"


class WebhookVerificationError(Exception):
    """The webhook's Plaid-Verification header is missing or malformed."""

    pass


@dataclass
class WebhookOutcome:
    """What handling a webhook did."""

    action: str
    webhook_type: str
    webhook_code: str
    item_id: str | None = None
    institution_id: str | None = None
    workspace_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


class WebhookService:
    """Dispatches Plaid webhooks on ``(webhook_type, webhook_code)``."""

    def __init__(self, sync_service: Optional[SyncService] = None):
        self._sync_service = sync_service

    @property
    def sync_service(self) -> SyncService:
        if self._sync_service is None:
            self._sync_service = SyncService()
        return self._sync_service

    @staticmethod
    def verify(verification_header: str | None) -> None:
        """Check the ``Plaid-Verification`` header when verification is on.

        Only the presence and JWT shape of the header are checked; with
        ``PLAID_WEBHOOK_VERIFICATION`` off the header is ignored.

        Raises:
            WebhookVerificationError: If verification is on and the header
                is missing or not a JWT.
        """
        if not settings.PLAID_WEBHOOK_VERIFICATION:
            return
        if not verification_header:
            raise WebhookVerificationError("Missing Plaid-Verification header")
        if verification_header.count(".") != 2:
            raise WebhookVerificationError("Plaid-Verification header is not a JWT")

    def handle(self, db: Session, payload: WebhookPayload) -> WebhookOutcome:
        """Apply one webhook and record it in the audit log.

        Unknown types/codes and item ids with no institution are logged,
        audited and otherwise ignored so Plaid still receives a 200.
        """
        logger.info(
            "Received Plaid webhook: %s - %s (item %s)",
            payload.webhook_type, payload.webhook_code, payload.item_id,
        )

        institution = self._find_institution(db, payload.item_id)
        if institution is None:
            logger.warning("Institution not found for item: %s", payload.item_id)
            self._record_event(db, payload, workspace_id=None)
            db.commit()
            return self._outcome(ACTION_INSTITUTION_NOT_FOUND, payload)

        if payload.webhook_type == WEBHOOK_TYPE_TRANSACTIONS:
            outcome = self._handle_transactions(db, institution, payload)
        elif payload.webhook_type == WEBHOOK_TYPE_ITEM:
            outcome = self._handle_item(db, institution, payload)
        else:
            logger.info("Unhandled webhook type: %s", payload.webhook_type)
            outcome = self._outcome(ACTION_IGNORED, payload, institution)

        self._record_event(db, payload, workspace_id=institution.workspace_id)
        db.commit()
        return outcome

    # ------------------------------------------------------------------
    # TRANSACTIONS
    # ------------------------------------------------------------------

    def _handle_transactions(
        self, db: Session, institution: Institution, payload: WebhookPayload
    ) -> WebhookOutcome:
        code = payload.webhook_code
        if code in TRANSACTION_UPDATE_CODES:
            logger.info(
                "Triggering transaction sync for workspace %s (%s new reported)",
                institution.workspace_id, payload.new_transactions,
            )
            details: dict[str, Any] = {}
            try:
                summary = self.sync_service.sync_workspace(
                    db, institution.workspace_id, options=SyncOptions(trigger_refresh=False)
                )
            except Exception as e:
                # Plaid gets a 200 regardless; the next webhook or manual
                # sync picks the transactions up.
                db.rollback()
                logger.error(
                    "Webhook-triggered sync failed for workspace %s: %s",
                    institution.workspace_id, e, exc_info=True,
                )
                details["sync_error"] = str(e)
            else:
                details["summary"] = summary.to_dict()
            return self._outcome(ACTION_SYNC, payload, institution, details)

        if code == TRANSACTIONS_REMOVED:
            removed_ids = payload.removed_transactions or []
            removed = ReconciliationService.remove_transactions(
                db, institution.workspace_id, removed_ids
            )
            return self._outcome(
                ACTION_REMOVED,
                payload,
                institution,
                {"requested": len(removed_ids), "removed": removed},
            )

        logger.info("Unhandled TRANSACTIONS webhook code: %s", code)
        return self._outcome(ACTION_IGNORED, payload, institution)

    # ------------------------------------------------------------------
    # ITEM
    # ------------------------------------------------------------------

    def _handle_item(
        self, db: Session, institution: Institution, payload: WebhookPayload
    ) -> WebhookOutcome:
        code = payload.webhook_code
        new_status = ITEM_STATUS_CODES.get(code)
        if new_status is not None:
            previous = institution.connection_status
            institution.connection_status = new_status
            if new_status == CONNECTION_ERROR:
                institution.last_error = payload.error
                logger.error("Item error for %s: %s", institution.name, payload.error)
            else:
                logger.warning(
                    "Institution %s connection status %s -> %s (%s)",
                    institution.name, previous, new_status, code,
                )
            return self._outcome(
                ACTION_STATUS_CHANGED,
                payload,
                institution,
                {"previous_status": previous, "connection_status": new_status},
            )

        if code == WEBHOOK_UPDATE_ACKNOWLEDGED:
            logger.info("Webhook URL update acknowledged for %s", institution.name)
            return self._outcome(ACTION_ACKNOWLEDGED, payload, institution)

        logger.info("Unhandled ITEM webhook code: %s", code)
        return self._outcome(ACTION_IGNORED, payload, institution)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _find_institution(db: Session, item_id: str | None) -> Institution | None:
        if not item_id:
            return None
        return db.query(Institution).filter(Institution.plaid_item_id == item_id).first()

    @staticmethod
    def _record_event(db: Session, payload: WebhookPayload, workspace_id: str | None) -> None:
        db.add(
            WebhookEvent(
                webhook_type=payload.webhook_type,
                webhook_code=payload.webhook_code,
                item_id=payload.item_id,
                workspace_id=workspace_id,
                payload=payload.model_dump(mode="json"),
            )
        )

    @staticmethod
    def _outcome(
        action: str,
        payload: WebhookPayload,
        institution: Institution | None = None,
        details: dict[str, Any] | None = None,
    ) -> WebhookOutcome:
        return WebhookOutcome(
            action=action,
            webhook_type=payload.webhook_type,
            webhook_code=payload.webhook_code,
            item_id=payload.item_id,
            institution_id=institution.id if institution else None,
            workspace_id=institution.workspace_id if institution else None,
            details=details or {},
        )
