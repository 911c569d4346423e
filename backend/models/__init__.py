"""SQLAlchemy ORM models."""

from .bank_account import BankAccount
from .feed_transaction import FeedTransaction
from .institution import Institution
from .utils import generate_uuid
from .webhook_event import WebhookEvent

__all__ = ["BankAccount", "FeedTransaction", "Institution", "WebhookEvent", "generate_uuid"]
