"""Institution model - one linked Plaid Item per workspace bank connection."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid

CONNECTION_ACTIVE = "active"
CONNECTION_ERROR = "error"
CONNECTION_PENDING_EXPIRATION = "pending_expiration"
CONNECTION_DISCONNECTED = "disconnected"


class Institution(Base):
    """A bank connection owned by a workspace.

    Rows are created by the account-linking flow after a successful public
    token exchange.  ``access_token_encrypted`` only changes on re-link;
    ``connection_status`` is driven by ITEM webhooks.
    """

    __tablename__ = "institutions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    workspace_id = Column(String(36), nullable=False, index=True)
    plaid_item_id = Column(String, unique=True, index=True, nullable=False)
    plaid_institution_id = Column(String, nullable=True)
    name = Column(String, nullable=False)
    access_token_encrypted = Column(Text, nullable=True)
    connection_status = Column(String, nullable=False, default=CONNECTION_ACTIVE)
    last_error = Column(JSON, nullable=True)  # Raw Plaid error object from ITEM/ERROR
    last_sync_at = Column(DateTime, nullable=True)
    created_by = Column(String(36), nullable=True)  # User who linked the institution

    # Display metadata refreshed from /institutions/get_by_id
    logo_url = Column(Text, nullable=True)
    primary_color = Column(String, nullable=True)
    website_url = Column(String, nullable=True)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    bank_accounts = relationship("BankAccount", back_populates="institution")
