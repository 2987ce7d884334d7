"""OS keychain storage for the service's four secrets.

The GoCardless secret id/key pair, the field encryption key and the cron
secret can live in the keychain instead of ``.env``.  ``config.Settings``
reads them through :func:`get_credential`; the migration script writes them
through :func:`set_credential`.
"""

import logging

import keyring
from keyring.errors import KeyringError

logger = logging.getLogger(__name__)

SERVICE_NAME = "bank-sync"

CREDENTIAL_KEYS: frozenset[str] = frozenset(
    {
        "GOCARDLESS_SECRET_ID",
        "GOCARDLESS_SECRET_KEY",
        "ENCRYPTION_KEY",
        "CRON_SECRET",
    }
)


def get_credential(key: str) -> str | None:
    """Keychain value for ``key``, or None when unset or no backend is usable."""
    try:
        return keyring.get_password(SERVICE_NAME, key)
    except KeyringError as e:
        logger.debug("Keychain lookup for %s failed: %s", key, e)
        return None


def set_credential(key: str, value: str) -> bool:
    """Store a secret; returns False when the keychain refuses it.

    Raises:
        ValueError: If ``key`` is not one of CREDENTIAL_KEYS or ``value`` is blank.
    """
    if key not in CREDENTIAL_KEYS:
        raise ValueError(f"Not a credential key: {key}")
    if not value or not value.strip():
        raise ValueError(f"Empty value for {key}")

    try:
        keyring.set_password(SERVICE_NAME, key, value)
    except KeyringError as e:
        logger.warning("Could not store %s in the keychain: %s", key, e)
        return False
    logger.info("Stored %s in keychain", key)
    return True
