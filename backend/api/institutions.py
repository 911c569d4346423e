"""Institution API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from database import get_db
from integrations.exceptions import AggregatorAuthError, AggregatorError
from schemas import InstitutionResponse, RefreshInstitutionRequest, RefreshInstitutionResponse
from services.institution_service import (
    InstitutionNotFoundError,
    InstitutionRefreshError,
    InstitutionService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/institutions", tags=["institutions"])


def get_institution_service() -> InstitutionService:
    """Dependency for injecting the institution service (overridable in tests)."""
    return InstitutionService()


@router.get("", response_model=list[InstitutionResponse])
def list_institutions(
    workspace_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    """List a workspace's institutions with connection status and last sync time."""
    return InstitutionService.list_institutions(db, workspace_id)


@router.post("/{institution_id}/refresh", response_model=RefreshInstitutionResponse)
def refresh_institution(
    institution_id: str,
    request: RefreshInstitutionRequest,
    db: Session = Depends(get_db),
    service: InstitutionService = Depends(get_institution_service),
):
    """Refresh metadata and balances for one institution.

    Raises:
        HTTPException:
            - 400 Bad Request: Institution has no stored access token
            - 404 Not Found: Institution not in this workspace
            - 502 Bad Gateway: Plaid rejected the request
    """
    try:
        result = service.refresh_institution(db, request.workspace_id, institution_id)
    except InstitutionNotFoundError:
        raise HTTPException(status_code=404, detail="Institution not found")
    except InstitutionRefreshError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AggregatorAuthError as e:
        logger.warning("Plaid auth error refreshing institution %s: %s", institution_id, e)
        raise HTTPException(
            status_code=502,
            detail="Plaid rejected the stored credentials. The institution may need to be re-linked.",
        )
    except AggregatorError as e:
        logger.warning("Plaid error refreshing institution %s: %s", institution_id, e)
        raise HTTPException(status_code=502, detail=f"Failed to fetch accounts: {e}")

    return RefreshInstitutionResponse(
        institution_id=result.institution_id,
        accounts_updated=result.accounts_updated,
        metadata_updated=result.metadata_updated,
        message=result.message,
    )
