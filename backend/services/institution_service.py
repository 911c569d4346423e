"""Institution service - listing and on-demand refresh of linked institutions."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from integrations.aggregator_protocol import AggregatorClient
from integrations.exceptions import AggregatorError
from models import Institution
from services.reconciliation_service import ReconciliationService
from services.token_service import TokenDecryptor

logger = logging.getLogger(__name__)

UNKNOWN_INSTITUTION_PREFIX = "unknown_"


class InstitutionNotFoundError(Exception):
    """No institution with that id exists in the workspace."""

    pass


class InstitutionRefreshError(Exception):
    """The institution has no usable credentials to refresh with."""

    pass


@dataclass
class RefreshResult:
    institution_id: str
    institution_name: str
    accounts_updated: int = 0
    metadata_updated: bool = False

    @property
    def message(self) -> str:
        return (
            f"Successfully refreshed {self.accounts_updated} accounts "
            f"for {self.institution_name}"
        )


class InstitutionService:
    """Service for institution reads and balance/metadata refresh."""

    def __init__(
        self,
        client: Optional[AggregatorClient] = None,
        decryptor: Optional[TokenDecryptor] = None,
    ):
        self._client = client
        self._decryptor = decryptor

    @property
    def client(self) -> AggregatorClient:
        if self._client is None:
            from integrations.plaid_client import PlaidClient

            self._client = PlaidClient()
        return self._client

    @property
    def decryptor(self) -> TokenDecryptor:
        if self._decryptor is None:
            self._decryptor = TokenDecryptor()
        return self._decryptor

    @staticmethod
    def list_institutions(db: Session, workspace_id: str) -> list[Institution]:
        return (
            db.query(Institution)
            .filter(Institution.workspace_id == workspace_id)
            .order_by(Institution.created_at, Institution.id)
            .all()
        )

    @staticmethod
    def get_institution(db: Session, workspace_id: str, institution_id: str) -> Institution:
        """Load an institution scoped to its workspace.

        Raises:
            InstitutionNotFoundError: If the id is unknown or belongs to a
                different workspace.
        """
        institution = (
            db.query(Institution)
            .filter(
                Institution.id == institution_id,
                Institution.workspace_id == workspace_id,
            )
            .first()
        )
        if institution is None:
            raise InstitutionNotFoundError(
                f"Institution {institution_id} not found in workspace {workspace_id}"
            )
        return institution

    def refresh_institution(
        self, db: Session, workspace_id: str, institution_id: str
    ) -> RefreshResult:
        """Refresh display metadata and account balances for one institution.

        Metadata refresh is best-effort and skipped for placeholder
        ``unknown_`` institution ids.  Balance updates never create
        accounts.

        Args:
            db: Database session.
            workspace_id: Workspace that must own the institution.
            institution_id: Internal institution id.

        Returns:
            RefreshResult with the number of accounts updated.

        Raises:
            InstitutionNotFoundError: Institution missing from the workspace.
            InstitutionRefreshError: No stored access token.
            AggregatorError: Plaid rejected the accounts request.
        """
        institution = self.get_institution(db, workspace_id, institution_id)
        if not institution.access_token_encrypted:
            raise InstitutionRefreshError(
                f"No Plaid access token found for {institution.name}"
            )
        access_token = self.decryptor.decrypt(institution.access_token_encrypted)

        logger.info("Refreshing accounts for institution %s", institution.name)
        metadata_updated = self._refresh_metadata(institution)
        result = RefreshResult(
            institution_id=institution.id,
            institution_name=institution.name,
            metadata_updated=metadata_updated,
        )

        accounts = self.client.get_accounts(access_token)
        for account in accounts:
            if ReconciliationService.update_account_balance(db, institution.id, account):
                result.accounts_updated += 1

        db.commit()
        logger.info(
            "Refreshed %d of %d accounts for %s",
            result.accounts_updated, len(accounts), institution.name,
        )
        return result

    def _refresh_metadata(self, institution: Institution) -> bool:
        plaid_institution_id = institution.plaid_institution_id
        if not plaid_institution_id or plaid_institution_id.startswith(UNKNOWN_INSTITUTION_PREFIX):
            return False

        try:
            metadata = self.client.get_institution_metadata(plaid_institution_id)
        except AggregatorError as e:
            logger.error("Error updating institution details for %s: %s", institution.name, e)
            return False

        if metadata.name:
            institution.name = metadata.name
        institution.logo_url = metadata.logo or institution.logo_url
        institution.primary_color = metadata.primary_color or institution.primary_color
        institution.website_url = metadata.url or institution.website_url
        logger.info("Updated institution metadata for %s", institution.name)
        return True
