"""Sync API endpoints."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database import get_db
from schemas import ErrorResponse, LegacySyncRequest, SyncRequest, SyncSummaryResponse
from services.sync_service import (
    InvalidSyncWindowError,
    SyncConfigurationError,
    SyncOptions,
    SyncService,
    SyncSummary,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])

ERROR_RESPONSES = {400: {"model": ErrorResponse, "description": "Invalid request or failed sync"}}


def get_sync_service() -> SyncService:
    """Dependency for injecting the sync service (overridable in tests)."""
    return SyncService()


def error_response(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    """Build the ``{"error", "details"}`` body used by sync endpoints."""
    body = ErrorResponse(error=error, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def _run_sync(
    db: Session,
    sync_service: SyncService,
    workspace_id: str,
    options: SyncOptions,
    start_date=None,
    end_date=None,
):
    try:
        summary: SyncSummary = sync_service.sync_workspace(
            db, workspace_id, start_date=start_date, end_date=end_date, options=options
        )
    except InvalidSyncWindowError as e:
        return error_response(400, "Invalid sync window", str(e))
    except SyncConfigurationError as e:
        logger.warning("Sync rejected for workspace %s: %s", workspace_id, e)
        return error_response(400, "Sync is not configured", str(e))
    except Exception as e:
        # Never expose str(e) for unexpected failures
        db.rollback()
        logger.error("Unexpected error during sync for workspace %s", workspace_id, exc_info=True)
        return error_response(
            400, "Sync failed", f"An unexpected error occurred during sync ({type(e).__name__})."
        )

    return SyncSummaryResponse(**summary.to_dict())


@router.post("", response_model=SyncSummaryResponse, responses=ERROR_RESPONSES)
def trigger_sync(
    request: SyncRequest,
    db: Session = Depends(get_db),
    sync_service: SyncService = Depends(get_sync_service),
):
    """Sync transactions and balances for every institution in a workspace.

    Returns 200 with a summary even when some institutions fail; those are
    counted in ``errors``.  ``success`` is false only when the workspace
    has no connected institutions.

    Raises (as ``{"error", "details"}`` bodies):
        - 400 Bad Request: Invalid input, inverted window, missing Plaid
          credentials or any other failure before a summary was produced
    """
    return _run_sync(
        db,
        sync_service,
        request.workspace_id,
        SyncOptions(),
        start_date=request.start_date,
        end_date=request.end_date,
    )


@router.post("/legacy", response_model=SyncSummaryResponse, responses=ERROR_RESPONSES)
def trigger_legacy_sync(
    request: LegacySyncRequest,
    db: Session = Depends(get_db),
    sync_service: SyncService = Depends(get_sync_service),
):
    """Sync the last 30 days without refresh or balance updates.

    New transactions are attributed to ``user_id``.
    """
    return _run_sync(db, sync_service, request.workspace_id, SyncOptions.legacy(request.user_id))
