"""BankAccount model - a real-world account under an Institution."""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class BankAccount(Base):
    """A checking, savings, credit or loan account reported by Plaid.

    Accounts are created only at link time; syncs update balances in place.
    Balances are integer minor-currency units and stay NULL when Plaid does
    not report them.
    """

    __tablename__ = "bank_accounts"
    __table_args__ = (
        UniqueConstraint(
            "institution_id", "plaid_account_id", name="uix_bank_account_institution_plaid"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    institution_id = Column(
        String(36), ForeignKey("institutions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plaid_account_id = Column(String, nullable=False)
    name = Column(String, nullable=False)
    mask = Column(String, nullable=True)
    account_type = Column(String, nullable=True)  # depository, credit, loan, ...
    account_subtype = Column(String, nullable=True)  # checking, savings, credit card, ...
    current_balance_cents = Column(BigInteger, nullable=True)
    available_balance_cents = Column(BigInteger, nullable=True)
    iso_currency_code = Column(String(3), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    institution = relationship("Institution", back_populates="bank_accounts")
    transactions = relationship("FeedTransaction", back_populates="bank_account")
