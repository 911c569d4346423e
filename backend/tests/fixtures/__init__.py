"""Test fixtures and sample data."""
import base64

import pytest
from sqlalchemy.orm import Session

from models import BankAccount, Institution

WORKSPACE_ID = "ws-00000000-0000-0000-0000-000000000001"
OTHER_WORKSPACE_ID = "ws-00000000-0000-0000-0000-000000000002"
USER_ID = "user-0000-0001"


def encode_token(token: str) -> str:
    """Store a token the way rows written before encryption keys look."""
    return base64.b64encode(token.encode("utf-8")).decode("ascii")


def create_institution(
    db: Session,
    name: str = "Test Bank",
    item_id: str = "item-test-1",
    access_token: str | None = "access-sandbox-test-1",
    workspace_id: str = WORKSPACE_ID,
    **kwargs,
) -> Institution:
    """Create an institution whose stored token is base64 encoded.

    Args:
        db: Database session
        name: Display name
        item_id: Plaid item id (must be unique across tests in one db)
        access_token: Plaintext token, or None to store no token
        workspace_id: Owning workspace
        **kwargs: Any other Institution column

    Returns:
        The committed Institution
    """
    institution = Institution(
        workspace_id=workspace_id,
        plaid_item_id=item_id,
        name=name,
        access_token_encrypted=encode_token(access_token) if access_token else None,
        **kwargs,
    )
    db.add(institution)
    db.commit()
    db.refresh(institution)
    return institution


def create_bank_account(
    db: Session,
    institution: Institution,
    plaid_account_id: str = "acc-checking",
    name: str = "Checking",
    **kwargs,
) -> BankAccount:
    """Create a bank account under an institution."""
    bank_account = BankAccount(
        institution_id=institution.id,
        plaid_account_id=plaid_account_id,
        name=name,
        **kwargs,
    )
    db.add(bank_account)
    db.commit()
    db.refresh(bank_account)
    return bank_account


@pytest.fixture
def institution(db: Session) -> Institution:
    """Create an active institution with a base64-stored token."""
    return create_institution(db, plaid_institution_id="ins_109508", created_by=USER_ID)


@pytest.fixture
def bank_account(db: Session, institution: Institution) -> BankAccount:
    """Create a checking account under the test institution."""
    return create_bank_account(
        db,
        institution,
        account_type="depository",
        account_subtype="checking",
        current_balance_cents=10000,
        iso_currency_code="USD",
    )
