"""Sync service - pulls transactions and balances for a workspace's institutions."""

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from config import settings
from integrations.aggregator_protocol import AggregatorClient
from integrations.exceptions import AggregatorAPIError, AggregatorAuthError, AggregatorError
from models import Institution
from models.institution import CONNECTION_DISCONNECTED
from services.reconciliation_service import ReconcileResult, ReconciliationService
from services.token_service import TokenDecryptor

logger = logging.getLogger(__name__)

NO_INSTITUTIONS_MESSAGE = "No connected institutions found. Please connect a bank account first."

LEGACY_LOOKBACK_DAYS = 30


class SyncConfigurationError(Exception):
    """Sync cannot start: aggregator credentials are missing."""

    pass


class InvalidSyncWindowError(ValueError):
    """The requested date window is empty or inverted."""

    pass


class InstitutionSyncError(Exception):
    """An institution could not be synced; the run moves on to the next one."""

    pass


@dataclass
class SyncOptions:
    """Knobs for a single sync run.

    ``None`` values fall back to settings.  ``end_offset_days`` is how far
    past today the default window ends; one day tolerates timezone skew
    between us and the bank.
    """

    trigger_refresh: bool = True
    update_balances: bool = True
    created_by: str | None = None
    lookback_days: int | None = None
    end_offset_days: int = 1
    refresh_wait_seconds: float | None = None

    @classmethod
    def legacy(cls, user_id: str) -> "SyncOptions":
        """Options for the older ``{workspace_id, user_id}`` sync request.

        Thirty days through today, no refresh trigger, no balance update,
        and new rows attributed to the requesting user.
        """
        return cls(
            trigger_refresh=False,
            update_balances=False,
            created_by=user_id,
            lookback_days=LEGACY_LOOKBACK_DAYS,
            end_offset_days=0,
        )


@dataclass
class InstitutionSyncResult:
    """What one institution contributed to a run."""

    institution_id: str
    new_transactions: int = 0
    updated_transactions: int = 0
    skipped_transactions: int = 0
    transaction_errors: int = 0
    accounts_updated: int = 0


@dataclass
class SyncSummary:
    """Aggregate result of a workspace sync, returned to the caller."""

    workspace_id: str
    start_date: date
    end_date: date
    success: bool = True
    institutions_processed: int = 0
    new_transactions: int = 0
    updated_transactions: int = 0
    skipped_transactions: int = 0
    accounts_updated: int = 0
    errors: int = 0
    message: str = ""
    failed_institutions: list[str] = field(default_factory=list)

    @property
    def total_transactions(self) -> int:
        return self.new_transactions + self.updated_transactions

    def add(self, result: InstitutionSyncResult) -> None:
        self.new_transactions += result.new_transactions
        self.updated_transactions += result.updated_transactions
        self.skipped_transactions += result.skipped_transactions
        self.accounts_updated += result.accounts_updated
        self.errors += result.transaction_errors

    def to_dict(self) -> dict:
        data = asdict(self)
        data["total_transactions"] = self.total_transactions
        return data


class SyncService:
    """Drives reconciliation for every institution in a workspace.

    Institutions are processed one at a time.  Each institution's work is
    committed before the next begins, and any failure inside one institution
    is logged, counted and rolled back without stopping the run.
    """

    def __init__(
        self,
        client: Optional[AggregatorClient] = None,
        decryptor: Optional[TokenDecryptor] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize with optional collaborators for dependency injection.

        Args:
            client: Aggregator client. If None, a PlaidClient is created on
                first use.
            decryptor: Token decryptor. Defaults to one using the configured key.
            sleep: Used for the post-refresh wait (stubbed in tests).
        """
        self._client = client
        self._decryptor = decryptor
        self._sleep = sleep

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

    # ------------------------------------------------------------------
    # Run setup
    # ------------------------------------------------------------------

    @staticmethod
    def resolve_window(
        start_date: date | None,
        end_date: date | None,
        options: SyncOptions,
        today: date | None = None,
    ) -> tuple[date, date]:
        """Fill in the default window and validate it.

        Default: ``lookback_days`` (SYNC_LOOKBACK_DAYS, 90) before today
        through ``today + end_offset_days``.

        Raises:
            InvalidSyncWindowError: If the start is after the end.
        """
        today = today or datetime.now(timezone.utc).date()
        lookback = options.lookback_days
        if lookback is None:
            lookback = settings.SYNC_LOOKBACK_DAYS
        start = start_date or today - timedelta(days=lookback)
        end = end_date or today + timedelta(days=options.end_offset_days)
        if start > end:
            raise InvalidSyncWindowError(
                f"start_date {start.isoformat()} is after end_date {end.isoformat()}"
            )
        return start, end

    @staticmethod
    def eligible_institutions(db: Session, workspace_id: str) -> list[Institution]:
        """Institutions in the workspace that have not been disconnected."""
        return (
            db.query(Institution)
            .filter(
                Institution.workspace_id == workspace_id,
                Institution.connection_status != CONNECTION_DISCONNECTED,
            )
            .order_by(Institution.created_at, Institution.id)
            .all()
        )

    # ------------------------------------------------------------------
    # Workspace sync
    # ------------------------------------------------------------------

    def sync_workspace(
        self,
        db: Session,
        workspace_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
        options: SyncOptions | None = None,
    ) -> SyncSummary:
        """Sync every eligible institution in a workspace.

        Returns a summary even when individual institutions fail; those are
        reflected in ``errors`` and ``failed_institutions``.  With no
        eligible institutions the summary has ``success=False``.

        Raises:
            InvalidSyncWindowError: If the date window is inverted.
            SyncConfigurationError: If Plaid credentials are missing.
        """
        options = options or SyncOptions()
        start, end = self.resolve_window(start_date, end_date, options)
        summary = SyncSummary(workspace_id=workspace_id, start_date=start, end_date=end)

        institutions = self.eligible_institutions(db, workspace_id)
        if not institutions:
            logger.info("No institutions to sync for workspace %s", workspace_id)
            summary.success = False
            summary.message = NO_INSTITUTIONS_MESSAGE
            return summary

        if not self.client.is_configured():
            raise SyncConfigurationError("Plaid credentials not configured")

        logger.info(
            "Syncing %d institution(s) for workspace %s from %s to %s",
            len(institutions), workspace_id, start, end,
        )

        for institution in institutions:
            institution_id = institution.id
            institution_name = institution.name
            summary.institutions_processed += 1
            try:
                result = self.sync_institution(db, institution, start, end, options)
                db.commit()
            except Exception as e:
                db.rollback()
                summary.errors += 1
                summary.failed_institutions.append(institution_id)
                if isinstance(e, (InstitutionSyncError, AggregatorError)):
                    logger.error(
                        "Sync failed for institution %s (%s): %s",
                        institution_name, institution_id, e,
                    )
                else:
                    logger.error(
                        "Unexpected error syncing institution %s (%s)",
                        institution_name, institution_id, exc_info=True,
                    )
                continue

            summary.add(result)
            logger.info(
                "Synced %d new and %d updated transactions for %s",
                result.new_transactions, result.updated_transactions, institution_name,
            )

        if summary.total_transactions > 0:
            summary.message = (
                f"Successfully synced {summary.new_transactions} new and "
                f"{summary.updated_transactions} updated transactions"
            )
        else:
            summary.message = "No new transactions found"

        logger.info(
            "Sync complete for workspace %s: institutions=%d new=%d updated=%d "
            "skipped=%d accounts=%d errors=%d",
            workspace_id,
            summary.institutions_processed,
            summary.new_transactions,
            summary.updated_transactions,
            summary.skipped_transactions,
            summary.accounts_updated,
            summary.errors,
        )
        return summary

    # ------------------------------------------------------------------
    # Single institution
    # ------------------------------------------------------------------

    def sync_institution(
        self,
        db: Session,
        institution: Institution,
        start_date: date,
        end_date: date,
        options: SyncOptions,
    ) -> InstitutionSyncResult:
        """Run the full pipeline for one institution (caller commits).

        Raises:
            InstitutionSyncError: Missing or undecryptable access token.
            AggregatorError: Plaid rejected the transactions request.
        """
        access_token = self._access_token(institution)

        if options.trigger_refresh:
            self._trigger_refresh(institution, access_token, options)

        try:
            transactions = self.client.get_transactions(access_token, start_date, end_date)
        except AggregatorAPIError as e:
            self._log_aggregator_error(institution, e)
            raise
        logger.info("Received %d transactions from Plaid for %s", len(transactions), institution.name)

        result = InstitutionSyncResult(institution_id=institution.id)
        if options.update_balances:
            result.accounts_updated = self._update_balances(db, institution, access_token)

        account_map = ReconciliationService.build_account_map(db, institution.id)
        created_by = options.created_by or institution.created_by
        reconciled: ReconcileResult = ReconciliationService.reconcile_transactions(
            db, institution.workspace_id, account_map, transactions, created_by=created_by
        )
        result.new_transactions = reconciled.new
        result.updated_transactions = reconciled.updated
        result.skipped_transactions = reconciled.skipped
        result.transaction_errors = reconciled.errors

        institution.last_sync_at = datetime.now(timezone.utc)
        db.flush()
        return result

    def _access_token(self, institution: Institution) -> str:
        if not institution.access_token_encrypted:
            raise InstitutionSyncError(f"No access token stored for {institution.name}")

        decrypted = self.decryptor.decrypt_with_strategy(institution.access_token_encrypted)
        if not decrypted.is_valid:
            raise InstitutionSyncError(
                f"Invalid token format for {institution.name} after {decrypted.strategy} "
                "(expected an 'access-' token)"
            )
        return decrypted.token

    def _trigger_refresh(
        self,
        institution: Institution,
        access_token: str,
        options: SyncOptions,
    ) -> None:
        """Best-effort /transactions/refresh followed by a fixed wait.

        Any failure, including Plaid saying refresh is unsupported for this
        Item, just means we fetch what Plaid already has.
        """
        try:
            self.client.refresh_transactions(access_token)
        except AggregatorAPIError as e:
            logger.info(
                "Transaction refresh unavailable for %s (%s); using standard sync",
                institution.name, e.error_code or e,
            )
            return
        except Exception as e:
            logger.warning(
                "Error calling transaction refresh for %s: %s; continuing",
                institution.name, e,
            )
            return

        wait = options.refresh_wait_seconds
        if wait is None:
            wait = settings.REFRESH_WAIT_SECONDS
        if wait > 0:
            logger.debug("Waiting %.1fs for refresh to complete", wait)
            self._sleep(wait)

    def _update_balances(self, db: Session, institution: Institution, access_token: str) -> int:
        """Store fresh balances; failures are logged, never fatal."""
        try:
            accounts = self.client.get_accounts(access_token)
        except AggregatorError as e:
            logger.error("Failed to fetch account balances for %s: %s", institution.name, e)
            return 0

        updated = 0
        for account in accounts:
            if ReconciliationService.update_account_balance(db, institution.id, account):
                updated += 1
        logger.info("Updated balances for %d of %d accounts at %s", updated, len(accounts), institution.name)
        return updated

    @staticmethod
    def _log_aggregator_error(institution: Institution, error: AggregatorAPIError) -> None:
        if isinstance(error, AggregatorAuthError):
            if error.error_code == "ITEM_LOGIN_REQUIRED":
                logger.error("%s needs the user to re-authenticate with their bank", institution.name)
            else:
                logger.error("Access token for %s is invalid or expired", institution.name)
        logger.error(
            "Plaid API error for %s: status=%s type=%s code=%s message=%s",
            institution.name,
            error.status_code,
            error.error_type,
            error.error_code,
            error.error_message,
        )
