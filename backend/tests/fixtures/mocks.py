"""Mock implementations for external services."""

from datetime import date
from typing import Any

from integrations.aggregator_protocol import (
    AggregatorAccount,
    AggregatorInstitution,
    AggregatorTransaction,
)
from integrations.exceptions import AggregatorAPIError, AggregatorAuthError


def plaid_transaction_payload(
    transaction_id: str,
    account_id: str = "acc-checking",
    amount: Any = 12.34,
    txn_date: str = "2024-03-15",
    **overrides,
) -> dict:
    """A /transactions/get entry shaped like Plaid's JSON."""
    payload = {
        "transaction_id": transaction_id,
        "account_id": account_id,
        "amount": amount,
        "date": txn_date,
        "authorized_date": txn_date,
        "name": "COFFEE SHOP 123",
        "merchant_name": "Coffee Shop",
        "iso_currency_code": "USD",
        "pending": False,
        "payment_channel": "in store",
        "category": ["Food and Drink", "Restaurants"],
        "location": {"city": "Austin", "region": "TX", "lat": 30.26, "lon": -97.74},
        "personal_finance_category": {
            "primary": "FOOD_AND_DRINK",
            "detailed": "FOOD_AND_DRINK_COFFEE",
            "confidence_level": "VERY_HIGH",
        },
        "payment_meta": {"payment_processor": None, "reference_number": None},
    }
    payload.update(overrides)
    return payload


def make_transaction(
    transaction_id: str,
    account_id: str = "acc-checking",
    amount: Any = 12.34,
    txn_date: str = "2024-03-15",
    **overrides,
) -> AggregatorTransaction:
    return AggregatorTransaction.from_payload(
        plaid_transaction_payload(transaction_id, account_id, amount, txn_date, **overrides)
    )


def make_account(
    account_id: str = "acc-checking",
    current: Any = 1500.25,
    available: Any = 1400.00,
    currency: str | None = "USD",
) -> AggregatorAccount:
    return AggregatorAccount.from_payload(
        {
            "account_id": account_id,
            "name": "Checking",
            "mask": "0000",
            "type": "depository",
            "subtype": "checking",
            "balances": {
                "current": current,
                "available": available,
                "iso_currency_code": currency,
            },
        }
    )


def plaid_api_error(code: str = "INTERNAL_SERVER_ERROR", status_code: int = 500) -> AggregatorAPIError:
    """Build the error PlaidClient raises for a Plaid error response."""
    error_cls = AggregatorAuthError if code == "ITEM_LOGIN_REQUIRED" else AggregatorAPIError
    return error_cls(
        f"Plaid error ({code}): mock failure",
        status_code=status_code,
        error_type="ITEM_ERROR" if error_cls is AggregatorAuthError else "API_ERROR",
        error_code=code,
        error_message="mock failure",
    )


class MockPlaidClient:
    """In-memory stand-in for PlaidClient.

    Responses are keyed by access token so one mock can serve several
    institutions.  Tokens listed in ``failing_tokens`` raise the given
    exception from ``get_transactions``.  Attributes are public so a test
    can adjust the shared fixture instance before exercising it.
    """

    def __init__(
        self,
        transactions: dict[str, list[AggregatorTransaction]] | None = None,
        accounts: dict[str, list[AggregatorAccount]] | None = None,
        institutions: dict[str, AggregatorInstitution] | None = None,
        configured: bool = True,
        failing_tokens: dict[str, Exception] | None = None,
        refresh_error: Exception | None = None,
        accounts_error: Exception | None = None,
        institution_error: Exception | None = None,
    ):
        self.transactions = transactions or {}
        self.accounts = accounts or {}
        self.institutions = institutions or {}
        self.configured = configured
        self.failing_tokens = failing_tokens or {}
        self.refresh_error = refresh_error
        self.accounts_error = accounts_error
        self.institution_error = institution_error

        self.refresh_calls: list[str] = []
        self.transaction_calls: list[tuple[str, date, date]] = []
        self.account_calls: list[str] = []
        self.institution_calls: list[str] = []

    def is_configured(self) -> bool:
        return self.configured

    def refresh_transactions(self, access_token: str) -> str | None:
        self.refresh_calls.append(access_token)
        if self.refresh_error is not None:
            raise self.refresh_error
        return "req-refresh-1"

    def get_transactions(
        self, access_token: str, start_date: date, end_date: date
    ) -> list[AggregatorTransaction]:
        self.transaction_calls.append((access_token, start_date, end_date))
        if access_token in self.failing_tokens:
            raise self.failing_tokens[access_token]
        return list(self.transactions.get(access_token, []))

    def get_accounts(self, access_token: str) -> list[AggregatorAccount]:
        self.account_calls.append(access_token)
        if self.accounts_error is not None:
            raise self.accounts_error
        return list(self.accounts.get(access_token, []))

    def get_institution_metadata(self, institution_id: str) -> AggregatorInstitution:
        self.institution_calls.append(institution_id)
        if self.institution_error is not None:
            raise self.institution_error
        if institution_id not in self.institutions:
            raise AggregatorAPIError(
                f"Plaid error (INSTITUTION_NOT_FOUND): {institution_id}",
                status_code=400,
                error_code="INSTITUTION_NOT_FOUND",
            )
        return self.institutions[institution_id]
