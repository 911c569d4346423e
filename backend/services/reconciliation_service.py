"""Reconciliation service - maps aggregator records onto ledger rows.

Every mutation here is keyed on a unique key so repeated syncs, webhook
redeliveries and overlapping manual refreshes converge on the same state:

- transactions upsert on ``(workspace_id, plaid_transaction_id)``
- removals delete on the same key (a missing row is not an error)
- balance updates touch an existing ``(institution_id, plaid_account_id)``
  row and never insert
"""

import base64
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from integrations.aggregator_protocol import AggregatorAccount, AggregatorTransaction
from models import BankAccount, FeedTransaction
from models.feed_transaction import (
    DIRECTION_INFLOW,
    DIRECTION_OUTFLOW,
    STATUS_PENDING,
    STATUS_POSTED,
)

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "USD"

_CENTS = Decimal("1")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class UpsertResult:
    """Outcome of a single transaction upsert."""

    transaction_id: str
    is_new: bool


@dataclass
class ReconcileResult:
    """Counts for one batch of transactions."""

    new: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0

    @property
    def total(self) -> int:
        return self.new + self.updated


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount to integer cents, rounding half away from zero."""
    cents = (abs(amount) * _HUNDRED).quantize(_CENTS, rounding=ROUND_HALF_UP)
    return int(cents) if amount >= 0 else -int(cents)


def normalize_amount(amount: Decimal) -> tuple[int, str]:
    """Split a signed Plaid amount into ``(amount_cents, direction)``.

    Plaid reports money leaving the account as a positive amount, so a
    positive value maps to ``outflow`` and anything else to ``inflow``.
    ``amount_cents`` is always non-negative.
    """
    direction = DIRECTION_OUTFLOW if amount > 0 else DIRECTION_INFLOW
    return abs(to_minor_units(amount)), direction


def compute_content_hash(transaction_id: str, workspace_id: str, transaction_date: date) -> str:
    """Secondary change-detection key for a ledger row.

    base64 of ``"{transaction_id}_{workspace_id}_{YYYY-MM-DD}"``.
    """
    raw = f"{transaction_id}_{workspace_id}_{transaction_date.isoformat()}"
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def _mutable_fields(workspace_id: str, bank_account_id: str, txn: AggregatorTransaction) -> dict:
    """Column values refreshed from Plaid on every observation."""
    amount_cents, direction = normalize_amount(txn.amount)
    location = txn.location
    pfc = txn.personal_finance_category
    meta = txn.payment_meta
    return {
        "bank_account_id": bank_account_id,
        "content_hash": compute_content_hash(txn.transaction_id, workspace_id, txn.transaction_date),
        "amount_cents": amount_cents,
        "direction": direction,
        "currency_code": (txn.iso_currency_code or DEFAULT_CURRENCY).upper(),
        "transaction_date": txn.transaction_date,
        "authorized_date": txn.authorized_date,
        "description": txn.name,
        "status": STATUS_PENDING if txn.pending else STATUS_POSTED,
        "merchant_name": txn.merchant_name,
        "merchant_logo_url": txn.logo_url,
        "merchant_website": txn.website,
        "merchant_entity_id": txn.merchant_entity_id,
        "location_address": location.address,
        "location_city": location.city,
        "location_region": location.region,
        "location_postal_code": location.postal_code,
        "location_country": location.country,
        "location_lat": location.lat,
        "location_lon": location.lon,
        "location_store_number": location.store_number,
        "pfc_primary": pfc.primary,
        "pfc_detailed": pfc.detailed,
        "pfc_confidence": pfc.confidence_level,
        "category_primary": txn.category_primary,
        "category_detailed": txn.category_detailed,
        "payment_method": meta.payment_method or txn.payment_channel,
        "payment_processor": meta.payment_processor,
        "payment_reference_number": meta.reference_number,
        "transaction_code": txn.transaction_code,
    }


class ReconciliationService:
    """Applies aggregator transactions and balances to the ledger."""

    @staticmethod
    def _find_transaction(
        db: Session, workspace_id: str, plaid_transaction_id: str
    ) -> FeedTransaction | None:
        return (
            db.query(FeedTransaction)
            .filter(
                FeedTransaction.workspace_id == workspace_id,
                FeedTransaction.plaid_transaction_id == plaid_transaction_id,
            )
            .first()
        )

    @staticmethod
    def upsert_transaction(
        db: Session,
        workspace_id: str,
        bank_account_id: str,
        txn: AggregatorTransaction,
        created_by: str | None = None,
    ) -> UpsertResult:
        """Insert or update the ledger row for one Plaid transaction.

        The insert runs inside a SAVEPOINT.  If another sync committed the
        same ``(workspace_id, plaid_transaction_id)`` first, the unique
        constraint rejects the insert, the savepoint is rolled back and the
        existing row is updated instead.

        Returns:
            UpsertResult with ``is_new`` True only when this call inserted.

        Raises:
            SQLAlchemyError: For failures other than the dedup-key conflict.
        """
        values = _mutable_fields(workspace_id, bank_account_id, txn)

        existing = ReconciliationService._find_transaction(db, workspace_id, txn.transaction_id)
        if existing is None:
            row = FeedTransaction(
                workspace_id=workspace_id,
                plaid_transaction_id=txn.transaction_id,
                created_by=created_by,
                **values,
            )
            try:
                with db.begin_nested():
                    db.add(row)
            except IntegrityError:
                # Lost an insert race; fall through to update.  Any other
                # constraint violation shows up again as "not found" below.
                existing = ReconciliationService._find_transaction(
                    db, workspace_id, txn.transaction_id
                )
                if existing is None:
                    raise
                logger.debug(
                    "Concurrent insert for %s in workspace %s, updating instead",
                    txn.transaction_id, workspace_id,
                )
            else:
                return UpsertResult(transaction_id=row.id, is_new=True)

        with db.begin_nested():
            for column, value in values.items():
                setattr(existing, column, value)
        return UpsertResult(transaction_id=existing.id, is_new=False)

    @staticmethod
    def reconcile_transactions(
        db: Session,
        workspace_id: str,
        account_map: dict[str, str],
        transactions: list[AggregatorTransaction],
        created_by: str | None = None,
    ) -> ReconcileResult:
        """Upsert a batch of transactions for one institution.

        Args:
            db: Database session.
            workspace_id: Tenant that owns the ledger rows.
            account_map: Plaid account id -> internal bank account id for the
                institution being synced.
            transactions: Transactions from the aggregator.
            created_by: User recorded on newly inserted rows.

        Returns:
            Counts of new, updated, skipped (unknown account) and failed rows.
            A failure on one row never stops the rest of the batch.
        """
        result = ReconcileResult()
        for txn in transactions:
            bank_account_id = account_map.get(txn.account_id)
            if bank_account_id is None:
                logger.info(
                    "No bank account for Plaid account %s, skipping transaction %s",
                    txn.account_id, txn.transaction_id,
                )
                result.skipped += 1
                continue

            try:
                upsert = ReconciliationService.upsert_transaction(
                    db, workspace_id, bank_account_id, txn, created_by=created_by
                )
            except SQLAlchemyError:
                logger.error(
                    "Failed to upsert transaction %s (account %s, amount %s)",
                    txn.transaction_id, txn.account_id, txn.amount, exc_info=True,
                )
                result.errors += 1
                continue

            if upsert.is_new:
                result.new += 1
            else:
                result.updated += 1

        return result

    @staticmethod
    def remove_transactions(
        db: Session,
        workspace_id: str,
        plaid_transaction_ids: list[str],
    ) -> int:
        """Delete ledger rows Plaid reported as removed.

        Scoped to ``workspace_id``; ids with no matching row are ignored so
        a redelivered webhook is a no-op.

        Returns:
            Number of rows deleted.
        """
        if not plaid_transaction_ids:
            return 0

        result = db.execute(
            delete(FeedTransaction)
            .where(
                FeedTransaction.workspace_id == workspace_id,
                FeedTransaction.plaid_transaction_id.in_(plaid_transaction_ids),
            )
            .execution_options(synchronize_session="fetch")
        )
        deleted = result.rowcount or 0
        logger.info(
            "Removed %d of %d reported transactions in workspace %s",
            deleted, len(plaid_transaction_ids), workspace_id,
        )
        return deleted

    @staticmethod
    def update_account_balance(
        db: Session,
        institution_id: str,
        account: AggregatorAccount,
    ) -> bool:
        """Refresh stored balances for an existing bank account.

        Balances Plaid leaves null are stored as NULL, not zero.  Accounts
        are created at link time only, so an unknown account is reported
        and left alone.

        Returns:
            True if a row was updated.
        """
        bank_account = (
            db.query(BankAccount)
            .filter(
                BankAccount.institution_id == institution_id,
                BankAccount.plaid_account_id == account.account_id,
            )
            .first()
        )
        if bank_account is None:
            logger.info(
                "No bank account for Plaid account %s under institution %s; balance not stored",
                account.account_id, institution_id,
            )
            return False

        balances = account.balances
        bank_account.current_balance_cents = (
            to_minor_units(balances.current) if balances.current is not None else None
        )
        bank_account.available_balance_cents = (
            to_minor_units(balances.available) if balances.available is not None else None
        )
        if balances.iso_currency_code:
            bank_account.iso_currency_code = balances.iso_currency_code.upper()
        bank_account.last_synced_at = datetime.now(timezone.utc)
        db.flush()
        return True

    @staticmethod
    def build_account_map(db: Session, institution_id: str) -> dict[str, str]:
        """Map Plaid account ids to internal bank account ids for an institution."""
        rows = (
            db.query(BankAccount.plaid_account_id, BankAccount.id)
            .filter(BankAccount.institution_id == institution_id)
            .all()
        )
        return {plaid_account_id: bank_account_id for plaid_account_id, bank_account_id in rows}
