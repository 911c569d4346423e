"""API route handlers."""
from . import institutions, sync, webhooks

__all__ = ["institutions", "sync", "webhooks"]
