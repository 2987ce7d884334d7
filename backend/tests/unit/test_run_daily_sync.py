"""Tests for scripts.run_daily_sync."""

from unittest.mock import MagicMock, patch

from integrations.provider_protocol import ImportResult
from scripts.run_daily_sync import main, run_all, run_user
from services.sync_service import SyncService
from tests.fixtures.mocks import MockGoCardlessClient, MockImporter, MockReconciliationService


def _service(session_factory, importer=None):
    return SyncService(
        importer=importer or MockImporter(),
        client=MockGoCardlessClient(),
        reconciliation_service=MockReconciliationService(),
        session_factory=session_factory,
    )


def test_run_all_prints_summary(session_factory, bank_account, capsys):
    code = run_all(_service(session_factory))

    assert code == 0
    assert "Users processed: 1" in capsys.readouterr().out


def test_run_all_reports_errors(capsys):
    service = MagicMock()
    service.run_daily_sync.return_value = MagicMock(
        users_processed=1, users_failed=1, reports_created=0, connections_updated=0,
        errors=["user u-2: boom"],
    )

    assert run_all(service) == 1
    assert "! user u-2: boom" in capsys.readouterr().out


def test_run_user_prints_report(session_factory, bank_account, capsys):
    importer = MockImporter(results={"gc-acc-1": ImportResult(imported=4)})

    with patch("scripts.run_daily_sync.get_session_local", return_value=session_factory):
        code = run_user(_service(session_factory, importer), bank_account.user_id)

    assert code == 0
    output = capsys.readouterr().out
    assert "success (1/1 accounts, 4 new transactions)" in output
    assert "+ Current Account: 4 new" in output


def test_run_user_failed_report(session_factory, bank_account, capsys):
    importer = MockImporter(failures={"gc-acc-1": RuntimeError("bank down")})

    with patch("scripts.run_daily_sync.get_session_local", return_value=session_factory):
        code = run_user(_service(session_factory, importer), bank_account.user_id)

    assert code == 1
    assert "! Current Account: bank down" in capsys.readouterr().out


def test_run_user_unknown(session_factory, capsys):
    with patch("scripts.run_daily_sync.get_session_local", return_value=session_factory):
        assert run_user(_service(session_factory), "missing") == 1
    assert "User not found" in capsys.readouterr().out


def test_main_dispatches_user_id():
    with (
        patch("scripts.run_daily_sync.setup_logging"),
        patch("scripts.run_daily_sync.SyncService"),
        patch("scripts.run_daily_sync.run_user", return_value=0) as mock_user,
        patch("scripts.run_daily_sync.run_all") as mock_all,
    ):
        assert main(["--user-id", "u-1"]) == 0

    mock_user.assert_called_once()
    assert mock_user.call_args.args[1] == "u-1"
    mock_all.assert_not_called()
