#!/usr/bin/env python3
"""Manage provider credentials in the OS keychain.

Subcommands:
    migrate  Copy credentials from ``.env`` into the keychain
             (``--clean`` removes the migrated lines from ``.env``)
    list     Show which credentials are stored (values are masked)
    delete   Remove one credential from the keychain

Usage:
    python -m scripts.manage_credentials migrate --clean
    python -m scripts.manage_credentials list
    python -m scripts.manage_credentials delete PLAID_SECRET
"""

import argparse
import re
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import dotenv_values

from services.credential_manager import (
    CREDENTIAL_KEYS,
    delete_credential,
    get_credential,
    list_credentials,
    set_credential,
)


def migrate(env_path: Path, *, clean: bool = False) -> dict[str, list[str]]:
    """Store every non-empty credential from ``env_path`` in the keychain.

    Returns the keys grouped as ``stored``, ``unchanged``, ``missing`` and
    ``failed``.
    """
    values = dotenv_values(env_path)
    outcome: dict[str, list[str]] = {"stored": [], "unchanged": [], "missing": [], "failed": []}

    for key in sorted(CREDENTIAL_KEYS):
        value = values.get(key)
        if not value:
            outcome["missing"].append(key)
        elif get_credential(key) == value:
            outcome["unchanged"].append(key)
        elif set_credential(key, value):
            outcome["stored"].append(key)
        else:
            outcome["failed"].append(key)

    in_keychain = outcome["stored"] + outcome["unchanged"]
    if clean and in_keychain:
        _strip_env_lines(env_path, in_keychain)
    return outcome


def _strip_env_lines(env_path: Path, keys: list[str]) -> None:
    """Drop ``KEY=...`` lines for ``keys``, keeping comments and other settings."""
    pattern = re.compile(r"^(" + "|".join(re.escape(k) for k in keys) + r")\s*=")
    lines = env_path.read_text().splitlines(keepends=True)
    env_path.write_text("".join(line for line in lines if not pattern.match(line)))


def _mask(value: str) -> str:
    return "****" if len(value) <= 4 else f"****{value[-4:]}"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Manage provider credentials in the keychain")
    sub = parser.add_subparsers(dest="command", required=True)

    migrate_parser = sub.add_parser("migrate", help="Copy credentials from .env")
    migrate_parser.add_argument(
        "--env-file",
        type=Path,
        default=Path(__file__).parent.parent / ".env",
        help="Path to .env file (default: backend/.env)",
    )
    migrate_parser.add_argument(
        "--clean", action="store_true", help="Remove migrated credentials from .env"
    )

    sub.add_parser("list", help="Show stored credentials")

    delete_parser = sub.add_parser("delete", help="Remove a credential")
    delete_parser.add_argument("key", choices=sorted(CREDENTIAL_KEYS))

    args = parser.parse_args(argv)

    if args.command == "migrate":
        if not args.env_file.exists():
            print(f"No .env file found at {args.env_file}")
            return 1
        outcome = migrate(args.env_file, clean=args.clean)
        for group, keys in outcome.items():
            for key in keys:
                print(f"{group:>9}  {key}")
        return 1 if outcome["failed"] else 0

    if args.command == "list":
        stored = list_credentials()
        if not stored:
            print("No credentials stored")
        for key, value in stored.items():
            print(f"{key}: {_mask(value)}")
        return 0

    return 0 if delete_credential(args.key) else 1


if __name__ == "__main__":
    sys.exit(main())
