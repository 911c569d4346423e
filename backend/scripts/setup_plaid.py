#!/usr/bin/env python3
"""Plaid credential setup script.

Validates Plaid API credentials with an institution lookup, optionally
generates a token encryption key, and offers to store everything in the
system keychain so ``.env`` files never hold the secrets.

Usage:
    1. Get your client_id and secret from https://dashboard.plaid.com/ (Developers > Keys)
    2. Run this script and follow the prompts
    3. Either accept keychain storage or add the printed env vars to .env
"""

import secrets
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from integrations.exceptions import AggregatorError
from integrations.plaid_client import PlaidClient
from services.credential_manager import set_credential

# Institutions that exist in each environment, used only for validation
PROBE_INSTITUTIONS = {
    "sandbox": "ins_109508",  # First Platypus Bank
    "development": "ins_3",
    "production": "ins_3",
}

ENCRYPTION_KEY_BYTES = 24


def validate_credentials(client_id: str, secret: str, env: str) -> str:
    """Validate Plaid credentials by fetching a known institution.

    Args:
        client_id: Plaid client_id.
        secret: Plaid secret.
        env: Environment name (sandbox, development or production).

    Returns:
        The probe institution's name.

    Raises:
        AggregatorError: If Plaid rejects the credentials or is unreachable.
    """
    client = PlaidClient(client_id=client_id, secret=secret, environment=env)
    institution = client.get_institution_metadata(PROBE_INSTITUTIONS.get(env, "ins_109508"))
    return institution.name or institution.institution_id


def generate_encryption_key() -> str:
    """A random secret for AES-GCM token encryption (padded to 32 bytes on use)."""
    return secrets.token_urlsafe(ENCRYPTION_KEY_BYTES)[:32]


def store_in_keychain(credentials: dict[str, str]) -> list[str]:
    """Store credentials in the keychain, returning the keys that failed."""
    failed = []
    for key, value in credentials.items():
        if set_credential(key, value):
            print(f"  Stored {key} in keychain")
        else:
            print(f"  Failed to store {key}")
            failed.append(key)
    return failed


def main():
    """Prompt for credentials, validate them and offer keychain storage."""
    print("Plaid Credential Setup")
    print("=" * 50)
    print()

    client_id = input("Enter your Plaid client_id: ").strip()
    if not client_id:
        print("Error: No client_id provided")
        sys.exit(1)

    secret = input("Enter your Plaid secret: ").strip()
    if not secret:
        print("Error: No secret provided")
        sys.exit(1)

    print()
    print("Choose environment:")
    print("  1. sandbox (for testing with fake data)")
    print("  2. development")
    print("  3. production (for live use)")
    env_choice = input("Enter choice (1, 2 or 3) [1]: ").strip() or "1"
    env = {"1": "sandbox", "2": "development", "3": "production"}.get(env_choice, "sandbox")

    print()
    print(f"Validating credentials against {env} environment...")
    try:
        name = validate_credentials(client_id, secret, env)
    except AggregatorError as e:
        print(f"Error: {e}")
        print()
        print("Common issues:")
        print("  - Incorrect client_id or secret")
        print("  - Secret belongs to a different environment")
        sys.exit(1)
    print(f"  OK (looked up {name})")

    credentials = {"PLAID_CLIENT_ID": client_id, "PLAID_SECRET": secret}
    answer = input("\nGenerate a new token encryption key? [y/N] ").strip().lower()
    if answer in ("y", "yes"):
        print("  Only do this before any institution is linked: existing tokens")
        print("  encrypted with an old key will no longer decrypt.")
        credentials["PLAID_ENCRYPTION_KEY"] = generate_encryption_key()

    answer = input("\nStore these credentials in the system keychain? [Y/n] ").strip().lower()
    if answer in ("", "y", "yes"):
        store_in_keychain(credentials)
    else:
        print()
        print("Add the following to your .env file:")
        print()
        for key, value in credentials.items():
            print(f"{key}={value}")

    print()
    print(f"Set PLAID_ENVIRONMENT={env} in your environment or .env file.")


if __name__ == "__main__":
    main()
