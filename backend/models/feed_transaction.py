"""FeedTransaction model - one reconciled ledger row per Plaid transaction."""

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid

DIRECTION_INFLOW = "inflow"
DIRECTION_OUTFLOW = "outflow"

STATUS_PENDING = "pending"
STATUS_POSTED = "posted"


class FeedTransaction(Base):
    """A single money movement imported from the aggregator.

    Deduplication relies on the ``(workspace_id, plaid_transaction_id)``
    unique constraint, not on application-level checks: two overlapping
    syncs racing on the same transaction end up with one row.
    ``amount_cents`` is always non-negative; the sign lives in ``direction``.
    """

    __tablename__ = "feed_transactions"
    __table_args__ = (
        UniqueConstraint(
            "workspace_id", "plaid_transaction_id", name="uix_feed_txn_workspace_plaid"
        ),
        CheckConstraint("amount_cents >= 0", name="ck_feed_txn_amount_non_negative"),
        CheckConstraint(
            "direction IN ('inflow', 'outflow')", name="ck_feed_txn_direction"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    workspace_id = Column(String(36), nullable=False, index=True)
    bank_account_id = Column(
        String(36), ForeignKey("bank_accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plaid_transaction_id = Column(String, nullable=False)
    content_hash = Column(String, nullable=False, index=True)

    amount_cents = Column(BigInteger, nullable=False)
    direction = Column(String(7), nullable=False)
    currency_code = Column(String(3), nullable=False, default="USD")
    transaction_date = Column(Date, nullable=False)
    authorized_date = Column(Date, nullable=True)
    description = Column(Text, nullable=True)
    status = Column(String(7), nullable=False, default=STATUS_POSTED)

    # Merchant enrichment
    merchant_name = Column(String, nullable=True)
    merchant_logo_url = Column(Text, nullable=True)
    merchant_website = Column(String, nullable=True)
    merchant_entity_id = Column(String, nullable=True)

    # Location enrichment
    location_address = Column(String, nullable=True)
    location_city = Column(String, nullable=True)
    location_region = Column(String, nullable=True)
    location_postal_code = Column(String, nullable=True)
    location_country = Column(String, nullable=True)
    location_lat = Column(Float, nullable=True)
    location_lon = Column(Float, nullable=True)
    location_store_number = Column(String, nullable=True)

    # Plaid personal finance category, plus the legacy category hierarchy
    pfc_primary = Column(String, nullable=True)
    pfc_detailed = Column(String, nullable=True)
    pfc_confidence = Column(String, nullable=True)  # VERY_HIGH, HIGH, MEDIUM, LOW, UNKNOWN
    category_primary = Column(String, nullable=True)
    category_detailed = Column(String, nullable=True)

    # Payment details
    payment_method = Column(String, nullable=True)
    payment_processor = Column(String, nullable=True)
    payment_reference_number = Column(String, nullable=True)
    transaction_code = Column(String, nullable=True)

    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    bank_account = relationship("BankAccount", back_populates="transactions")
