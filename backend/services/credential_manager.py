"""Keychain-backed storage for Plaid secrets.

Settings look here before the environment (see ``config.KeychainSettingsSource``),
so an operator can keep the Plaid secret and the token encryption key out of
``.env`` files.  ``keyring`` is imported lazily; without it every lookup
simply misses and configuration falls through to environment variables.
"""

import logging
from types import ModuleType

logger = logging.getLogger(__name__)

SERVICE_NAME = "feedsync"

CREDENTIAL_KEYS: frozenset[str] = frozenset(
    {
        "PLAID_CLIENT_ID",
        "PLAID_SECRET",
        "PLAID_ENCRYPTION_KEY",
    }
)


def _keyring() -> ModuleType | None:
    try:
        import keyring
    except ImportError:
        return None
    return keyring


def get_credential(key: str) -> str | None:
    """Retrieve a credential from the keychain.

    Args:
        key: The credential name (e.g. ``"PLAID_SECRET"``).

    Returns:
        The stored value, or ``None`` if missing, unsupported, or keyring
        is not installed.
    """
    backend = _keyring()
    if backend is None:
        return None

    try:
        return backend.get_password(SERVICE_NAME, key)
    except Exception:
        logger.debug("keyring lookup failed for %s", key, exc_info=True)
        return None


def set_credential(key: str, value: str) -> bool:
    """Store a credential in the keychain.

    Only names in :data:`CREDENTIAL_KEYS` are accepted, and blank values
    are refused.

    Returns:
        ``True`` if the value was written.
    """
    if key not in CREDENTIAL_KEYS:
        logger.warning("Refusing to store non-credential key: %s", key)
        return False
    if not value or not value.strip():
        logger.warning("Refusing to store empty value for %s", key)
        return False

    backend = _keyring()
    if backend is None:
        logger.warning("keyring is not installed - cannot store %s", key)
        return False

    try:
        backend.set_password(SERVICE_NAME, key, value)
    except Exception:
        logger.warning("Failed to store %s in keychain", key, exc_info=True)
        return False
    logger.info("Stored %s in keychain", key)
    return True


def delete_credential(key: str) -> bool:
    """Remove a credential from the keychain. Returns ``True`` on success."""
    if key not in CREDENTIAL_KEYS:
        logger.warning("Refusing to delete non-credential key: %s", key)
        return False

    backend = _keyring()
    if backend is None:
        return False

    try:
        backend.delete_password(SERVICE_NAME, key)
    except Exception:
        logger.debug("Failed to delete %s from keychain", key, exc_info=True)
        return False
    logger.info("Deleted %s from keychain", key)
    return True
