"""Unit tests for SyncService."""

import logging
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from integrations.exceptions import AggregatorAPIError
from models import BankAccount, FeedTransaction, Institution
from models.institution import CONNECTION_DISCONNECTED, CONNECTION_ERROR
from services.reconciliation_service import ReconciliationService
from services.sync_service import (
    NO_INSTITUTIONS_MESSAGE,
    InvalidSyncWindowError,
    SyncConfigurationError,
    SyncOptions,
    SyncService,
)
from services.token_service import TokenDecryptor
from tests.fixtures import USER_ID, WORKSPACE_ID, create_bank_account, create_institution
from tests.fixtures.mocks import MockPlaidClient, make_account, make_transaction, plaid_api_error

TOKEN_A = "access-sandbox-a"
TOKEN_B = "access-sandbox-b"
TOKEN_C = "access-sandbox-c"


def _service(client: MockPlaidClient, sleeps: list | None = None) -> SyncService:
    record = sleeps.append if sleeps is not None else (lambda seconds: None)
    return SyncService(client=client, decryptor=TokenDecryptor(encryption_key=""), sleep=record)


def _three_institutions(db):
    """Institutions A, B, C created in that order, one account each."""
    result = []
    for suffix, token in (("a", TOKEN_A), ("b", TOKEN_B), ("c", TOKEN_C)):
        inst = create_institution(
            db,
            name=f"Bank {suffix.upper()}",
            item_id=f"item-{suffix}",
            access_token=token,
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=len(result)),
        )
        create_bank_account(db, inst, plaid_account_id=f"acc-{suffix}")
        result.append(inst)
    return result


def _txn_ids(db) -> list[str]:
    return sorted(r.plaid_transaction_id for r in db.query(FeedTransaction).all())


# ---------------------------------------------------------------------------
# Window
# ---------------------------------------------------------------------------


class TestResolveWindow:
    def test_default_window(self):
        today = date(2024, 6, 15)
        start, end = SyncService.resolve_window(None, None, SyncOptions(), today=today)
        assert start == date(2024, 3, 17)
        assert end == date(2024, 6, 16)

    def test_legacy_window(self):
        today = date(2024, 6, 15)
        start, end = SyncService.resolve_window(None, None, SyncOptions.legacy(USER_ID), today=today)
        assert start == date(2024, 5, 16)
        assert end == today

    def test_explicit_dates_win(self):
        start, end = SyncService.resolve_window(
            date(2024, 1, 1), date(2024, 1, 31), SyncOptions(), today=date(2024, 6, 15)
        )
        assert (start, end) == (date(2024, 1, 1), date(2024, 1, 31))

    def test_lookback_override(self):
        start, _ = SyncService.resolve_window(
            None, None, SyncOptions(lookback_days=7), today=date(2024, 6, 15)
        )
        assert start == date(2024, 6, 8)

    def test_zero_lookback_starts_today(self):
        start, end = SyncService.resolve_window(
            None, None, SyncOptions(lookback_days=0, end_offset_days=0), today=date(2024, 6, 15)
        )
        assert (start, end) == (date(2024, 6, 15), date(2024, 6, 15))

    def test_inverted_window_rejected(self):
        with pytest.raises(InvalidSyncWindowError):
            SyncService.resolve_window(date(2024, 2, 1), date(2024, 1, 1), SyncOptions())


# ---------------------------------------------------------------------------
# Workspace sync
# ---------------------------------------------------------------------------


class TestSyncWorkspace:
    def test_no_institutions(self, db):
        client = MockPlaidClient()

        summary = _service(client).sync_workspace(db, WORKSPACE_ID)

        assert summary.success is False
        assert summary.message == NO_INSTITUTIONS_MESSAGE
        assert summary.institutions_processed == 0
        assert client.transaction_calls == []

    def test_missing_credentials_raise(self, db, institution):
        client = MockPlaidClient(configured=False)

        with pytest.raises(SyncConfigurationError):
            _service(client).sync_workspace(db, WORKSPACE_ID)

    def test_inverted_window_raises_before_any_work(self, db, institution):
        client = MockPlaidClient()

        with pytest.raises(InvalidSyncWindowError):
            _service(client).sync_workspace(
                db, WORKSPACE_ID, start_date=date(2024, 2, 1), end_date=date(2024, 1, 1)
            )
        assert client.transaction_calls == []

    def test_full_pipeline(self, db, institution, bank_account):
        token = "access-sandbox-test-1"
        client = MockPlaidClient(
            transactions={
                token: [
                    make_transaction("txn_1", amount="42.50"),
                    make_transaction("txn_2", amount="-10.00"),
                ]
            },
            accounts={token: [make_account(current=99.99, available=None)]},
        )
        sleeps: list[float] = []

        summary = _service(client, sleeps).sync_workspace(db, WORKSPACE_ID)

        assert summary.success is True
        assert summary.institutions_processed == 1
        assert summary.new_transactions == 2
        assert summary.updated_transactions == 0
        assert summary.accounts_updated == 1
        assert summary.errors == 0
        assert summary.message == "Successfully synced 2 new and 0 updated transactions"
        assert client.refresh_calls == [token]
        assert sleeps == [5.0]

        rows = {r.plaid_transaction_id: r for r in db.query(FeedTransaction).all()}
        assert (rows["txn_1"].amount_cents, rows["txn_1"].direction) == (4250, "outflow")
        assert (rows["txn_2"].amount_cents, rows["txn_2"].direction) == (1000, "inflow")
        assert rows["txn_1"].created_by == USER_ID

        db.refresh(bank_account)
        db.refresh(institution)
        assert bank_account.current_balance_cents == 9999
        assert bank_account.available_balance_cents is None
        assert institution.last_sync_at is not None

    def test_second_run_updates_instead_of_duplicating(self, db, institution, bank_account):
        token = "access-sandbox-test-1"
        client = MockPlaidClient(transactions={token: [make_transaction("txn_1")]})
        service = _service(client)

        service.sync_workspace(db, WORKSPACE_ID)
        summary = service.sync_workspace(db, WORKSPACE_ID)

        assert summary.new_transactions == 0
        assert summary.updated_transactions == 1
        assert db.query(FeedTransaction).count() == 1

    def test_partial_failure_isolated(self, db, caplog):
        """B fails at the aggregator; A and C are still committed."""
        _three_institutions(db)
        client = MockPlaidClient(
            transactions={
                TOKEN_A: [make_transaction("txn_a", account_id="acc-a")],
                TOKEN_C: [make_transaction("txn_c", account_id="acc-c")],
            },
            failing_tokens={TOKEN_B: plaid_api_error("INTERNAL_SERVER_ERROR")},
        )

        summary = _service(client).sync_workspace(db, WORKSPACE_ID)

        assert summary.institutions_processed == 3
        assert summary.new_transactions == 2
        assert summary.errors == 1
        assert summary.success is True
        assert _txn_ids(db) == ["txn_a", "txn_c"]
        assert [call[0] for call in client.transaction_calls] == [TOKEN_A, TOKEN_B, TOKEN_C]

        synced = {i.name: i.last_sync_at for i in db.query(Institution).all()}
        assert synced["Bank A"] is not None
        assert synced["Bank B"] is None
        assert synced["Bank C"] is not None
        assert "Bank B" in caplog.text

    def test_failed_institution_is_rolled_back(self, db):
        """Balances written before a mid-institution failure do not persist."""
        _, b, _ = _three_institutions(db)
        client = MockPlaidClient(
            transactions={TOKEN_B: [make_transaction("txn_b", account_id="acc-b")]},
            accounts={TOKEN_B: [make_account(account_id="acc-b", current=1)]},
        )
        real_reconcile = ReconciliationService.reconcile_transactions

        def reconcile_fails_for_b(session, workspace_id, account_map, transactions, created_by=None):
            if "acc-b" in account_map:
                raise RuntimeError("reconcile crashed")
            return real_reconcile(session, workspace_id, account_map, transactions, created_by=created_by)

        with patch.object(
            ReconciliationService, "reconcile_transactions", side_effect=reconcile_fails_for_b
        ):
            summary = _service(client).sync_workspace(db, WORKSPACE_ID)

        assert summary.errors == 1
        assert summary.failed_institutions == [b.id]
        account_b = db.query(BankAccount).filter(BankAccount.plaid_account_id == "acc-b").one()
        assert account_b.current_balance_cents is None

    def test_missing_token_counts_as_error(self, db, bank_account):
        create_institution(db, name="No Token Bank", item_id="item-none", access_token=None)

        summary = _service(MockPlaidClient()).sync_workspace(db, WORKSPACE_ID)

        assert summary.institutions_processed == 2
        assert summary.errors == 1

    def test_malformed_token_counts_as_error(self, db):
        create_institution(db, item_id="item-bad", access_token="public-sandbox-oops")
        client = MockPlaidClient()

        summary = _service(client).sync_workspace(db, WORKSPACE_ID)

        assert summary.errors == 1
        assert client.transaction_calls == []

    def test_unmapped_account_skipped(self, db, institution, bank_account):
        token = "access-sandbox-test-1"
        client = MockPlaidClient(
            transactions={
                token: [
                    make_transaction("txn_1"),
                    make_transaction("txn_2", account_id="acc-closed"),
                ]
            }
        )

        summary = _service(client).sync_workspace(db, WORKSPACE_ID)

        assert summary.new_transactions == 1
        assert summary.skipped_transactions == 1
        assert summary.errors == 0
        assert _txn_ids(db) == ["txn_1"]

    def test_disconnected_institutions_skipped(self, db, institution):
        create_institution(
            db, item_id="item-gone", access_token="access-sandbox-gone",
            connection_status=CONNECTION_DISCONNECTED,
        )
        create_institution(
            db, item_id="item-err", access_token="access-sandbox-err",
            connection_status=CONNECTION_ERROR,
        )
        client = MockPlaidClient()

        summary = _service(client).sync_workspace(db, WORKSPACE_ID)

        assert summary.institutions_processed == 2
        called = {call[0] for call in client.transaction_calls}
        assert called == {"access-sandbox-test-1", "access-sandbox-err"}

    def test_other_workspaces_untouched(self, db, institution):
        create_institution(
            db, item_id="item-other", access_token="access-sandbox-other", workspace_id="ws-other"
        )
        client = MockPlaidClient()

        _service(client).sync_workspace(db, WORKSPACE_ID)

        assert [call[0] for call in client.transaction_calls] == ["access-sandbox-test-1"]

    def test_refresh_failure_is_ignored(self, db, institution, bank_account):
        token = "access-sandbox-test-1"
        client = MockPlaidClient(
            transactions={token: [make_transaction("txn_1")]},
            refresh_error=plaid_api_error("PRODUCTS_NOT_SUPPORTED", status_code=400),
        )
        sleeps: list[float] = []

        summary = _service(client, sleeps).sync_workspace(db, WORKSPACE_ID)

        assert summary.errors == 0
        assert summary.new_transactions == 1
        assert sleeps == []

    def test_unexpected_refresh_exception_is_ignored(self, db, institution, bank_account):
        client = MockPlaidClient(refresh_error=RuntimeError("socket closed"))

        summary = _service(client).sync_workspace(db, WORKSPACE_ID)

        assert summary.errors == 0

    def test_balance_failure_is_not_an_error(self, db, institution, bank_account, caplog):
        token = "access-sandbox-test-1"
        client = MockPlaidClient(
            transactions={token: [make_transaction("txn_1")]},
            accounts_error=AggregatorAPIError("Plaid error (RATE_LIMIT_EXCEEDED): slow down", status_code=429),
        )

        summary = _service(client).sync_workspace(db, WORKSPACE_ID)

        assert summary.errors == 0
        assert summary.accounts_updated == 0
        assert summary.new_transactions == 1
        assert "Failed to fetch account balances" in caplog.text

    def test_refresh_wait_override(self, db, institution, bank_account):
        sleeps: list[float] = []

        _service(MockPlaidClient(), sleeps).sync_workspace(
            db, WORKSPACE_ID, options=SyncOptions(refresh_wait_seconds=0)
        )

        assert sleeps == []

    def test_no_new_transactions_message(self, db, institution, bank_account, caplog):
        caplog.set_level(logging.INFO, logger="services.sync_service")

        summary = _service(MockPlaidClient()).sync_workspace(db, WORKSPACE_ID)

        assert summary.success is True
        assert summary.message == "No new transactions found"
        assert "Sync complete for workspace" in caplog.text


class TestLegacySync:
    def test_legacy_options(self, db, institution, bank_account):
        token = "access-sandbox-test-1"
        client = MockPlaidClient(
            transactions={token: [make_transaction("txn_1")]},
            accounts={token: [make_account()]},
        )

        summary = _service(client).sync_workspace(
            db, WORKSPACE_ID, options=SyncOptions.legacy("legacy-user")
        )

        assert client.refresh_calls == []
        assert client.account_calls == []
        assert summary.accounts_updated == 0
        _, start, end = client.transaction_calls[0]
        assert (end - start).days == 30
        row = db.query(FeedTransaction).one()
        assert row.created_by == "legacy-user"

    def test_summary_to_dict(self, db, institution, bank_account):
        summary = _service(MockPlaidClient()).sync_workspace(db, WORKSPACE_ID)

        data = summary.to_dict()

        assert data["workspace_id"] == WORKSPACE_ID
        assert data["total_transactions"] == 0
        assert data["failed_institutions"] == []
