"""Tests for typed aggregator payload records."""

from datetime import date
from decimal import Decimal

import pytest

from integrations.aggregator_protocol import (
    AggregatorAccount,
    AggregatorInstitution,
    AggregatorTransaction,
    TransactionLocation,
)
from tests.fixtures.mocks import plaid_transaction_payload


class TestAggregatorTransaction:
    def test_full_payload(self):
        txn = AggregatorTransaction.from_payload(
            plaid_transaction_payload(
                "txn_1",
                amount=42.5,
                merchant_entity_id="ent_1",
                transaction_code="purchase",
                payment_meta={"payment_processor": "Stripe", "reference_number": "ref-1"},
            )
        )

        assert txn.transaction_id == "txn_1"
        assert txn.account_id == "acc-checking"
        assert txn.amount == Decimal("42.5")
        assert txn.transaction_date == date(2024, 3, 15)
        assert txn.authorized_date == date(2024, 3, 15)
        assert txn.category_primary == "Food and Drink"
        assert txn.category_detailed == "Restaurants"
        assert txn.location.city == "Austin"
        assert txn.location.lat == 30.26
        assert txn.personal_finance_category.confidence_level == "VERY_HIGH"
        assert txn.payment_meta.payment_processor == "Stripe"
        assert txn.merchant_entity_id == "ent_1"
        assert txn.transaction_code == "purchase"

    def test_minimal_payload_defaults(self):
        txn = AggregatorTransaction.from_payload(
            {"transaction_id": "t", "account_id": "a", "amount": 1, "date": "2024-01-02"}
        )

        assert txn.pending is False
        assert txn.name is None
        assert txn.category == ()
        assert txn.category_primary is None
        assert txn.category_detailed is None
        assert txn.location == TransactionLocation()
        assert txn.personal_finance_category.primary is None

    def test_null_nested_objects(self):
        txn = AggregatorTransaction.from_payload(
            plaid_transaction_payload(
                "txn_1", location=None, personal_finance_category=None, payment_meta=None, category=None
            )
        )

        assert txn.location.city is None
        assert txn.personal_finance_category.detailed is None
        assert txn.payment_meta.reference_number is None

    @pytest.mark.parametrize("missing", ["transaction_id", "account_id", "amount", "date"])
    def test_required_fields(self, missing):
        payload = plaid_transaction_payload("txn_1")
        payload[missing] = None
        with pytest.raises(ValueError):
            AggregatorTransaction.from_payload(payload)


class TestAggregatorAccount:
    def test_falls_back_to_official_name(self):
        account = AggregatorAccount.from_payload(
            {"account_id": "acc_1", "name": None, "official_name": "Gold Checking", "balances": {}}
        )
        assert account.name == "Gold Checking"

    def test_null_balances_stay_null(self):
        account = AggregatorAccount.from_payload(
            {"account_id": "acc_1", "balances": {"current": None, "available": None}}
        )
        assert account.balances.current is None
        assert account.balances.available is None

    def test_missing_id(self):
        with pytest.raises(ValueError):
            AggregatorAccount.from_payload({"name": "Checking"})


class TestAggregatorInstitution:
    def test_from_payload(self):
        institution = AggregatorInstitution.from_payload(
            {"institution_id": "ins_3", "name": "Chase", "url": "https://chase.com"}
        )
        assert institution.name == "Chase"
        assert institution.logo is None
        assert institution.url == "https://chase.com"

    def test_missing_id(self):
        with pytest.raises(ValueError):
            AggregatorInstitution.from_payload({"name": "Chase"})
