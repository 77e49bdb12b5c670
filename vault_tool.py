#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Credential vault maintenance tool.

The vault lives in a JSON file (``--store``). Secrets are never taken from
the command line: they are prompted with hidden input, or read one per line
from piped stdin with ``--pin-stdin`` in this order:

    import-key      private key, PIN
    store-mnemonic  recovery phrase, PIN
    change-pin      old PIN, new PIN
    verify-pin      PIN
"""

import argparse
import asyncio
import getpass
import logging
import sys

from credential_vault import CredentialVault
from wallet_config import WalletConfig
from wallet_errors import DecryptionFailed, WalletError
from wallet_storage import JsonFileStorage

DEFAULT_STORE = "~/.wallet/vault.json"


class SecretReader:
    """Hidden prompts, or successive lines of piped stdin."""

    def __init__(self, from_stdin: bool):
        self.from_stdin = from_stdin

    def read(self, prompt: str) -> str:
        if self.from_stdin:
            line = sys.stdin.readline()
            if not line:
                raise ValueError(f"stdin ended before: {prompt.rstrip(': ')}")
            return line.rstrip("\r\n")
        return getpass.getpass(prompt)

    def new_pin(self) -> str:
        pin = self.read("New PIN: ")
        if not self.from_stdin and getpass.getpass("Repeat new PIN: ") != pin:
            raise ValueError("PINs do not match")
        return pin


async def cmd_import_key(vault, args, secrets) -> int:
    key = secrets.read("Private key (hex): ")
    pin = secrets.read("PIN: ")
    entry = await vault.store_private_key(key, pin, args.chain, label=args.label)
    print(f"Stored {entry.chain} key for {entry.address}")
    return 0


async def cmd_list(vault, args, secrets) -> int:
    entries = vault.list_entries()
    if not entries:
        print("No stored keys.")
    for entry in entries:
        label = f"  |  {entry.label}" if entry.label else ""
        print(f"{entry.chain}  |  {entry.address}{label}")
    if vault.has_mnemonic():
        print("Recovery phrase: stored")
    return 0


async def cmd_remove(vault, args, secrets) -> int:
    if vault.remove_stored_key(args.address, args.chain):
        print(f"Removed {args.chain} key for {args.address}")
        return 0
    print(f"No {args.chain} key stored for {args.address}", file=sys.stderr)
    return 1


async def cmd_clear(vault, args, secrets) -> int:
    if not args.yes:
        answer = input("Delete ALL stored keys and the recovery phrase? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted.")
            return 1
    vault.clear_all()
    print("Vault cleared.")
    return 0


async def cmd_change_pin(vault, args, secrets) -> int:
    old_pin = secrets.read("Current PIN: ")
    new_pin = secrets.new_pin()
    count = await vault.change_pin(old_pin, new_pin)
    print(f"PIN changed; re-encrypted {count} secret(s).")
    return 0


async def cmd_store_mnemonic(vault, args, secrets) -> int:
    mnemonic = secrets.read("Recovery phrase: ")
    pin = secrets.read("PIN: ")
    await vault.store_mnemonic(mnemonic, pin)
    print("Recovery phrase stored.")
    return 0


async def cmd_verify_pin(vault, args, secrets) -> int:
    ok = await vault.verify_pin(secrets.read("PIN: "))
    print("PIN OK" if ok else "PIN rejected")
    return 0 if ok else 1


COMMANDS = {
    "import-key": cmd_import_key,
    "list": cmd_list,
    "remove": cmd_remove,
    "clear": cmd_clear,
    "change-pin": cmd_change_pin,
    "store-mnemonic": cmd_store_mnemonic,
    "verify-pin": cmd_verify_pin,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage the PIN-protected credential vault")
    parser.add_argument("--store", default=DEFAULT_STORE, help=f"vault JSON file (default: {DEFAULT_STORE})")
    parser.add_argument(
        "--pin-stdin",
        action="store_true",
        help="read secrets and PINs from piped stdin, one per line",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("import-key", help="encrypt and store a private key")
    p.add_argument("--chain", required=True, help="evm, tron, solana or a chain id such as ethereum")
    p.add_argument("--label", default=None)

    sub.add_parser("list", help="list stored keys (no secrets)")

    p = sub.add_parser("remove", help="remove one stored key")
    p.add_argument("--chain", required=True)
    p.add_argument("--address", required=True)

    p = sub.add_parser("clear", help="remove every stored key and the recovery phrase")
    p.add_argument("--yes", action="store_true", help="skip the confirmation prompt")

    sub.add_parser("change-pin", help="re-encrypt everything under a new PIN")
    sub.add_parser("store-mnemonic", help="encrypt and store the recovery phrase")
    sub.add_parser("verify-pin", help="check a PIN against the stored secrets")
    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if args.pin_stdin and sys.stdin.isatty():
        parser.error("--pin-stdin requires piped stdin input")

    try:
        config = WalletConfig.from_env()
        vault = CredentialVault(JsonFileStorage(args.store), config)
        secrets = SecretReader(args.pin_stdin)
        code = asyncio.run(COMMANDS[args.command](vault, args, secrets))
    except DecryptionFailed as exc:
        parser.exit(2, f"Error: {exc}\n")
    except (WalletError, ValueError, OSError) as exc:
        parser.exit(1, f"Error: {exc}\n")
    except (EOFError, KeyboardInterrupt):
        parser.exit(1, "\nAborted.\n")
    sys.exit(code)


if __name__ == "__main__":
    main()
