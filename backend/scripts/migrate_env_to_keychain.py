#!/usr/bin/env python3
"""Move credentials from .env into the OS keychain.

Reads the backend ``.env`` file and stores each non-empty credential
(GoCardless secrets, field encryption key, cron secret) via ``keyring``.
``--generate-encryption-key`` stores a fresh 256-bit key when none exists
yet.  ``--clean`` removes the migrated lines from ``.env`` and keeps
everything else.

Usage:
    python -m scripts.migrate_env_to_keychain
    python -m scripts.migrate_env_to_keychain --clean
    python -m scripts.migrate_env_to_keychain --generate-encryption-key
"""

import argparse
import re
import secrets
import sys
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import dotenv_values

from services.credential_manager import CREDENTIAL_KEYS, get_credential, set_credential

ENCRYPTION_KEY = "ENCRYPTION_KEY"


@dataclass
class MigrationSummary:
    stored: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    generated: list[str] = field(default_factory=list)

    @property
    def in_keychain(self) -> list[str]:
        return self.stored + self.unchanged


def migrate(env_path: Path, *, generate_key: bool = False) -> MigrationSummary:
    """Store every credential found in ``env_path`` in the keychain.

    Raises:
        FileNotFoundError: If ``env_path`` does not exist.
    """
    if not env_path.exists():
        raise FileNotFoundError(f"No .env file found at {env_path}")

    values = dotenv_values(env_path)
    summary = MigrationSummary()

    for key in sorted(CREDENTIAL_KEYS):
        value = (values.get(key) or "").strip()
        if not value:
            summary.missing.append(key)
            continue
        if get_credential(key) == value:
            summary.unchanged.append(key)
            continue
        if set_credential(key, value):
            summary.stored.append(key)
        else:
            summary.failed.append(key)

    if generate_key and ENCRYPTION_KEY in summary.missing and not get_credential(ENCRYPTION_KEY):
        if set_credential(ENCRYPTION_KEY, secrets.token_hex(32)):
            summary.missing.remove(ENCRYPTION_KEY)
            summary.generated.append(ENCRYPTION_KEY)
        else:
            summary.failed.append(ENCRYPTION_KEY)

    return summary


def clean_env_file(env_path: Path, keys: list[str]) -> int:
    """Drop ``KEY=...`` lines for ``keys`` from the file; returns lines removed."""
    if not keys:
        return 0
    pattern = re.compile(r"^\s*(?:export\s+)?(" + "|".join(re.escape(k) for k in keys) + r")\s*=")
    lines = env_path.read_text().splitlines(keepends=True)
    kept = [line for line in lines if not pattern.match(line)]
    env_path.write_text("".join(kept))
    return len(lines) - len(kept)


def print_summary(summary: MigrationSummary) -> None:
    sections = [
        ("Stored in keychain", "+", summary.stored),
        ("Generated", "*", summary.generated),
        ("Already in keychain", "=", summary.unchanged),
        ("Missing in .env", "-", summary.missing),
        ("Failed", "!", summary.failed),
    ]
    print()
    for title, marker, keys in sections:
        if keys:
            print(f"  {title} ({len(keys)}):")
            for key in keys:
                print(f"    {marker} {key}")
    print()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Move credentials from .env into the keychain")
    parser.add_argument(
        "--clean",
        action="store_true",
        help="Remove migrated credentials from .env afterwards",
    )
    parser.add_argument(
        "--generate-encryption-key",
        action="store_true",
        help="Store a new random ENCRYPTION_KEY if none is configured",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=Path(__file__).parent.parent / ".env",
        help="Path to .env file (default: backend/.env)",
    )
    args = parser.parse_args(argv)

    try:
        summary = migrate(args.env_file, generate_key=args.generate_encryption_key)
    except FileNotFoundError as e:
        print(str(e))
        return 1

    print_summary(summary)
    if args.clean:
        removed = clean_env_file(args.env_file, summary.in_keychain)
        print(f"Removed {removed} credential line(s) from {args.env_file}")
    return 1 if summary.failed else 0


if __name__ == "__main__":
    sys.exit(main())
