"""Tests for services.credential_manager."""

from unittest.mock import patch

import pytest
from keyring.errors import NoKeyringError, PasswordSetError

from services.credential_manager import (
    CREDENTIAL_KEYS,
    SERVICE_NAME,
    get_credential,
    set_credential,
)


@pytest.fixture
def mock_keyring():
    with patch("services.credential_manager.keyring") as mocked:
        yield mocked


def test_credential_keys_are_the_four_secrets():
    assert CREDENTIAL_KEYS == {
        "GOCARDLESS_SECRET_ID",
        "GOCARDLESS_SECRET_KEY",
        "ENCRYPTION_KEY",
        "CRON_SECRET",
    }


def test_get_reads_from_service(mock_keyring):
    mock_keyring.get_password.return_value = "secret-id"

    assert get_credential("GOCARDLESS_SECRET_ID") == "secret-id"
    mock_keyring.get_password.assert_called_once_with(SERVICE_NAME, "GOCARDLESS_SECRET_ID")


def test_get_without_backend_is_none(mock_keyring):
    mock_keyring.get_password.side_effect = NoKeyringError("no backend")

    assert get_credential("ENCRYPTION_KEY") is None


def test_set_stores_secret(mock_keyring):
    assert set_credential("CRON_SECRET", "s3cret") is True
    mock_keyring.set_password.assert_called_once_with(SERVICE_NAME, "CRON_SECRET", "s3cret")


def test_set_refused_by_keychain(mock_keyring):
    mock_keyring.set_password.side_effect = PasswordSetError("locked")

    assert set_credential("GOCARDLESS_SECRET_KEY", "s3cret") is False


@pytest.mark.parametrize("key", ["DATABASE_URL", "GOCARDLESS_BASE_URL", "LOG_LEVEL"])
def test_set_rejects_settings_that_are_not_secrets(mock_keyring, key):
    with pytest.raises(ValueError, match="Not a credential key"):
        set_credential(key, "value")
    mock_keyring.set_password.assert_not_called()


def test_set_rejects_blank_value(mock_keyring):
    with pytest.raises(ValueError, match="Empty value"):
        set_credential("ENCRYPTION_KEY", "  \n")
    mock_keyring.set_password.assert_not_called()
