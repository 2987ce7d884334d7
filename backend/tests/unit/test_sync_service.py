"""Unit tests for SyncService."""

import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest

from integrations.exceptions import NotConfiguredError, UpstreamError
from integrations.provider_protocol import AccountBalance, AccountDetails, ImportResult
from models import Account, Connection, PaymentAccount, SyncReport
from models.connection import ConnectionStatus
from services.exceptions import NotFoundError
from services.import_service import PAYMENT_ACCOUNT
from services.sync_service import SyncService
from tests.fixtures import (
    create_account,
    create_connection,
    create_payment_account,
    create_user,
)
from tests.fixtures.mocks import MockGoCardlessClient, MockImporter, MockReconciliationService

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _service(session_factory, importer=None, client=None, reconciliation=None):
    return SyncService(
        importer=importer or MockImporter(),
        client=client or MockGoCardlessClient(),
        reconciliation_service=reconciliation or MockReconciliationService(),
        session_factory=session_factory,
    )


def _reports(db, user_id):
    db.expire_all()
    return db.query(SyncReport).filter(SyncReport.user_id == user_id).all()


@pytest.fixture
def two_users(db):
    """Two users with one linked bank account each."""
    first = create_user(db, "first@example.com")
    second = create_user(db, "second@example.com")
    create_account(db, first, gocardless_account_id="gc-acc-1")
    create_account(db, second, gocardless_account_id="gc-acc-2")
    db.commit()
    return first, second


class TestDailySync:
    def test_creates_report_per_user(self, db, session_factory, two_users):
        first, second = two_users
        importer = MockImporter(results={
            "gc-acc-1": ImportResult(imported=3, skipped=1),
            "gc-acc-2": ImportResult(imported=2),
        })
        summary = _service(session_factory, importer=importer).run_daily_sync()

        assert summary.users_processed == 2
        assert summary.users_failed == 0
        assert summary.reports_created == 2
        assert summary.completed_at is not None

        report = _reports(db, first.id)[0]
        assert report.status == "success"
        assert report.total_new_transactions == 3
        assert report.total_duplicates == 1
        assert report.sync_type == "automatic"

    def test_account_failure_is_recorded_not_raised(self, db, session_factory, two_users):
        first, second = two_users
        importer = MockImporter(failures={"gc-acc-2": RuntimeError("boom")})

        summary = _service(session_factory, importer=importer).run_daily_sync()

        assert summary.users_failed == 0
        assert _reports(db, first.id)[0].status == "success"
        failed = _reports(db, second.id)[0]
        assert failed.status == "failed"
        assert failed.error_message == "All accounts failed to sync"
        assert failed.account_results[0]["error"] == "boom"

        account = db.query(Account).filter(Account.gocardless_account_id == "gc-acc-2").one()
        assert account.last_sync_status == "failed"
        assert account.last_sync_error == "boom"

    def test_user_failure_does_not_stop_run(self, db, session_factory, two_users):
        first, second = two_users
        service = _service(session_factory)
        original = SyncService.linked_accounts

        def flaky(session, user_id):
            if user_id == second.id:
                raise RuntimeError("lookup failed")
            return original(session, user_id)

        with patch.object(service, "linked_accounts", side_effect=flaky):
            summary = service.run_daily_sync()

        assert summary.users_processed == 1
        assert summary.users_failed == 1
        assert summary.reports_created == 1
        assert any(second.id in e for e in summary.errors)
        assert len(_reports(db, first.id)) == 1
        assert _reports(db, second.id) == []

    def test_partial_status(self, db, session_factory, user):
        create_account(db, user, gocardless_account_id="gc-acc-1", name="Current")
        create_account(db, user, gocardless_account_id="gc-acc-2", name="Savings")
        db.commit()
        importer = MockImporter(failures={"gc-acc-2": UpstreamError("GoCardless API error (HTTP 500)", status_code=500)})

        _service(session_factory, importer=importer).run_daily_sync()

        report = _reports(db, user.id)[0]
        assert report.status == "partial"
        assert report.total_accounts == 2
        assert report.successful_accounts == 1
        assert report.failed_accounts == 1

    def test_reconciliation_failure_is_non_fatal(self, db, session_factory, bank_account):
        reconciliation = MockReconciliationService(should_fail=True)

        summary = _service(session_factory, reconciliation=reconciliation).run_daily_sync()

        assert reconciliation.calls == [bank_account.user_id]
        assert summary.users_failed == 0
        assert len(_reports(db, bank_account.user_id)) == 1

    def test_no_report_without_linked_accounts(self, db, session_factory, user):
        create_account(db, user, gocardless_account_id=None)
        db.commit()
        reconciliation = MockReconciliationService()

        summary = _service(session_factory, reconciliation=reconciliation).run_daily_sync()

        assert summary.users_processed == 1
        assert summary.reports_created == 0
        assert _reports(db, user.id) == []
        assert reconciliation.calls == []

    def test_demo_users_excluded(self, db, session_factory):
        demo = create_user(db, "demo@example.com", is_demo_user=True)
        create_account(db, demo)
        db.commit()
        importer = MockImporter()

        summary = _service(session_factory, importer=importer).run_daily_sync()

        assert summary.users_processed == 0
        assert importer.calls == []

    def test_lookback_window(self, db, session_factory, bank_account):
        importer = MockImporter()

        _service(session_factory, importer=importer).run_daily_sync(now=NOW)

        options = importer.calls[0][2]
        assert options.date_from == date(2025, 5, 30)
        assert options.date_to == date(2025, 6, 1)
        assert options.local_account_id == bank_account.id

    def test_session_failure_is_reported(self):
        def broken_factory():
            raise RuntimeError("database unavailable")

        summary = _service(broken_factory).run_daily_sync()

        assert summary.users_processed == 0
        assert summary.errors == ["database unavailable"]

    def test_updates_connection_statuses_first(self, db, session_factory, user):
        create_connection(db, user, connected_at=datetime.now(timezone.utc) - timedelta(days=85))
        db.commit()

        summary = _service(session_factory).run_daily_sync()

        assert summary.connections_updated == 1
        db.expire_all()
        assert db.query(Connection).one().status == ConnectionStatus.EXPIRING_SOON.value


class TestLinkedAccounts:
    def test_bank_accounts_then_payment_accounts(self, db, user):
        create_payment_account(db, user, gocardless_account_id="gc-paypal-1")
        create_account(db, user, gocardless_account_id="gc-acc-1")
        inactive = create_payment_account(db, user, gocardless_account_id="gc-paypal-2")
        inactive.is_active = False
        db.flush()

        linked = SyncService.linked_accounts(db, user.id)

        assert [a.gocardless_account_id for a in linked] == ["gc-acc-1", "gc-paypal-1"]
        assert linked[1].account_type == PAYMENT_ACCOUNT

    def test_disconnected_connection_accounts_skipped(self, db, user):
        create_account(db, user, gocardless_account_id="gc-acc-1")
        create_account(db, user, gocardless_account_id="gc-acc-2")
        create_connection(db, user, requisition_id="req-old", linked_account_ids=["gc-acc-1"],
                          status=ConnectionStatus.DISCONNECTED.value)
        active = create_connection(db, user, requisition_id="req-new", linked_account_ids=["gc-acc-2"])

        linked = SyncService.linked_accounts(db, user.id)

        assert [a.gocardless_account_id for a in linked] == ["gc-acc-2"]
        assert linked[0].connection_id == active.id

    def test_newest_connection_wins(self, db, user):
        create_account(db, user, gocardless_account_id="gc-acc-1")
        create_connection(db, user, requisition_id="req-old", linked_account_ids=["gc-acc-1"],
                          connected_at=datetime.now(timezone.utc) - timedelta(days=30),
                          status=ConnectionStatus.DISCONNECTED.value)
        relinked = create_connection(db, user, requisition_id="req-new", linked_account_ids=["gc-acc-1"])

        linked = SyncService.linked_accounts(db, user.id)

        assert linked[0].connection_id == relinked.id


class TestAccountSteps:
    def test_balance_refreshed_after_import(self, db, session_factory, bank_account):
        client = MockGoCardlessClient(balances={
            "gc-acc-1": [
                AccountBalance(amount=Decimal("900.00"), currency="EUR", balance_type="closingBooked"),
                AccountBalance(amount=Decimal("1234.56"), currency="EUR", balance_type="expected"),
            ]
        })

        _service(session_factory, client=client).run_daily_sync()

        db.expire_all()
        account = db.query(Account).filter(Account.id == bank_account.id).one()
        assert account.balance == Decimal("1234.56")
        assert account.last_sync_status == "success"

    def test_balance_failure_does_not_fail_account(self, db, session_factory, bank_account):
        client = MockGoCardlessClient(should_fail=True)

        _service(session_factory, client=client).run_daily_sync()

        assert _reports(db, bank_account.user_id)[0].status == "success"

    def test_payment_account_imported_without_balance(self, db, session_factory, payment_account):
        client = MockGoCardlessClient()
        importer = MockImporter()

        _service(session_factory, importer=importer, client=client).run_daily_sync()

        assert importer.calls[0][2].account_type == PAYMENT_ACCOUNT
        assert not any(call[0] == "get_account_balances" for call in client.calls)
        db.expire_all()
        assert db.query(PaymentAccount).one().last_sync_status == "success"

    def test_auth_failure_expires_connection(self, db, session_factory, bank_account, connection):
        importer = MockImporter(failures={
            "gc-acc-1": UpstreamError("GoCardless API error (HTTP 401): token invalid", status_code=401)
        })

        _service(session_factory, importer=importer).run_daily_sync()

        db.expire_all()
        conn = db.query(Connection).one()
        assert conn.status == ConnectionStatus.EXPIRED.value
        assert "401" in conn.last_sync_error
        assert conn.last_sync_at is not None

    def test_other_failure_marks_connection_error(self, db, session_factory, bank_account, connection):
        importer = MockImporter(failures={"gc-acc-1": RuntimeError("parse error")})

        _service(session_factory, importer=importer).run_daily_sync()

        db.expire_all()
        assert db.query(Connection).one().status == ConnectionStatus.ERROR.value

    def test_auth_failure_logged_as_consent_problem(self, db, session_factory, bank_account, caplog):
        importer = MockImporter(failures={
            "gc-acc-1": UpstreamError("GoCardless API error (HTTP 403): forbidden", status_code=403)
        })

        with caplog.at_level(logging.WARNING, logger="services.sync_service"):
            _service(session_factory, importer=importer).run_daily_sync()

        assert any("consent may have expired" in r.message for r in caplog.records)

    def test_rate_limit_logged_as_retriable(self, db, session_factory, bank_account, caplog):
        importer = MockImporter(failures={
            "gc-acc-1": UpstreamError("GoCardless API error (HTTP 429)", status_code=429)
        })

        with caplog.at_level(logging.WARNING, logger="services.sync_service"):
            _service(session_factory, importer=importer).run_daily_sync()

        assert any("retriable=True" in r.message for r in caplog.records)

    def test_success_clears_connection_error(self, db, session_factory, bank_account, connection):
        connection.last_sync_error = "old failure"
        db.commit()

        _service(session_factory).run_daily_sync()

        db.expire_all()
        conn = db.query(Connection).one()
        assert conn.last_sync_error is None
        assert conn.status == ConnectionStatus.ACTIVE.value


class TestManualSync:
    def test_uses_wide_window(self, db, session_factory, bank_account):
        importer = MockImporter(results={"gc-acc-1": ImportResult(imported=5)})
        service = _service(session_factory, importer=importer)

        report = service.trigger_manual_sync(db, bank_account.user_id, now=NOW)

        options = importer.calls[0][2]
        assert options.date_from == date(2025, 3, 3)
        assert options.date_to == date(2025, 6, 1)
        assert report.sync_type == "manual"
        assert report.total_new_transactions == 5

    def test_runs_reconciliation(self, db, session_factory, bank_account):
        reconciliation = MockReconciliationService()
        service = _service(session_factory, reconciliation=reconciliation)

        service.trigger_manual_sync(db, bank_account.user_id)

        assert reconciliation.calls == [bank_account.user_id]

    def test_no_linked_accounts(self, db, session_factory, user):
        assert _service(session_factory).trigger_manual_sync(db, user.id) is None

    def test_unknown_user(self, db, session_factory):
        with pytest.raises(NotFoundError):
            _service(session_factory).trigger_manual_sync(db, "missing")


def _balances(amount: str) -> list[AccountBalance]:
    return [AccountBalance(amount=Decimal(amount), currency="EUR", balance_type="expected")]


class TestConnectedAccounts:
    def test_lists_accounts_with_details_and_balances(self, db, user):
        create_account(db, user, gocardless_account_id="gc-acc-1")
        create_account(db, user, gocardless_account_id="gc-card-1", name="Card", account_type="credit_card")
        create_payment_account(db, user)
        db.commit()
        client = MockGoCardlessClient(
            details={"gc-acc-1": AccountDetails(account_id="gc-acc-1", iban="DE89370400440532013000")},
            balances={"gc-acc-1": _balances("250.00")},
        )

        accounts = SyncService(client=client, importer=MockImporter()).get_connected_accounts(db, user.id)

        assert [a.account_type for a in accounts] == ["bank_account", "credit_card", PAYMENT_ACCOUNT]
        assert accounts[0].details.iban == "DE89370400440532013000"
        assert accounts[0].balances[0].amount == Decimal("250.00")
        assert accounts[1].balances == []

    def test_account_with_failing_details_left_out(self, db, user):
        create_account(db, user, gocardless_account_id="gc-acc-1")
        create_account(db, user, gocardless_account_id="gc-acc-2", name="Savings")
        db.commit()
        client = MockGoCardlessClient(failing_accounts={"gc-acc-1"})

        accounts = SyncService(client=client, importer=MockImporter()).get_connected_accounts(db, user.id)

        assert [a.gocardless_account_id for a in accounts] == ["gc-acc-2"]

    def test_unconfigured_client_raises(self, db, bank_account):
        client = MockGoCardlessClient(configured=False)

        with pytest.raises(NotConfiguredError):
            SyncService(client=client, importer=MockImporter()).get_connected_accounts(
                db, bank_account.user_id
            )


class TestBalanceSync:
    def test_updates_balances_without_importing(self, db, user):
        create_account(db, user, gocardless_account_id="gc-acc-1")
        create_account(db, user, gocardless_account_id="gc-card-1", name="Card", account_type="credit_card")
        db.commit()
        client = MockGoCardlessClient(balances={
            "gc-acc-1": _balances("100.50"),
            "gc-card-1": _balances("-42.00"),
        })
        importer = MockImporter()

        result = SyncService(client=client, importer=importer).sync_account_balances(db, user.id)
        db.commit()

        assert result.total_accounts == 2
        assert result.successful == 2
        assert [r.new_balance for r in result.results] == [Decimal("100.50"), Decimal("-42.00")]
        assert importer.calls == []
        assert not any(call[0] == "get_account_transactions" for call in client.calls)
        db.expire_all()
        balances = {a.gocardless_account_id: a.balance for a in db.query(Account).all()}
        assert balances == {"gc-acc-1": Decimal("100.50"), "gc-card-1": Decimal("-42.00")}

    def test_failure_recorded_per_account(self, db, user):
        create_account(db, user, gocardless_account_id="gc-acc-1")
        create_account(db, user, gocardless_account_id="gc-acc-2", name="Savings")
        db.commit()
        client = MockGoCardlessClient(
            balances={"gc-acc-2": _balances("10.00")},
            failing_accounts={"gc-acc-1"},
        )

        result = SyncService(client=client, importer=MockImporter()).sync_account_balances(db, user.id)

        assert result.failed == 1
        assert result.successful == 1
        failed = result.results[0]
        assert failed.success is False
        assert "gc-acc-1" in failed.error
        assert result.results[1].new_balance == Decimal("10.00")

    def test_payment_accounts_skipped(self, db, payment_account):
        client = MockGoCardlessClient()

        result = SyncService(client=client, importer=MockImporter()).sync_account_balances(
            db, payment_account.user_id
        )

        assert result.total_accounts == 0
        assert client.calls == []

    def test_no_balances_leaves_local_value(self, db, bank_account):
        bank_account.balance = Decimal("77.00")
        db.commit()

        result = SyncService(client=MockGoCardlessClient(), importer=MockImporter()).sync_account_balances(
            db, bank_account.user_id
        )

        assert result.results[0].success is True
        assert result.results[0].new_balance is None
        db.expire_all()
        assert db.query(Account).one().balance == Decimal("77.00")
