"""WebhookEvent model - append-only audit log of inbound Plaid webhooks."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, String

from database import Base
from models.utils import generate_uuid


class WebhookEvent(Base):
    """The raw payload of one webhook delivery.

    Rows are never updated.  ``workspace_id`` is NULL when the item id did
    not resolve to an institution.
    """

    __tablename__ = "webhook_events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    webhook_type = Column(String, nullable=False, index=True)
    webhook_code = Column(String, nullable=False)
    item_id = Column(String, nullable=True, index=True)
    workspace_id = Column(String(36), nullable=True)
    payload = Column(JSON, nullable=False)
    processed_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
