#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Offline watch-only derivation tool:
- Input: BIP39 mnemonic (+ optional passphrase)
- Output:
  * EVM (BIP44, m/44'/60'/account'/0/i) addresses
  * Tron (BIP44, m/44'/195'/account'/0/i) addresses
  * Solana addresses under one path style, or account --start under every style

This script delegates derivation logic to `wallet_core.py`.
"""

import argparse
import getpass
import logging
import sys

from wallet_core import (
    SOLANA_PATH_STYLES,
    derive_evm_addresses,
    derive_solana_addresses,
    derive_solana_addresses_all_styles,
    derive_tron_addresses,
    validate_mnemonic,
)
from wallet_errors import WalletError

UINT31_MAX = 0x7FFFFFFF


def uint31_arg(flag_name: str):
    def _parse(value: str) -> int:
        try:
            parsed = int(value)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(f"{flag_name} must be an integer") from exc
        if parsed < 0 or parsed > UINT31_MAX:
            raise argparse.ArgumentTypeError(
                f"{flag_name} must be between 0 and {UINT31_MAX}"
            )
        return parsed

    return _parse


def non_negative_arg(flag_name: str):
    def _parse(value: str) -> int:
        try:
            parsed = int(value)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(f"{flag_name} must be an integer") from exc
        if parsed < 0:
            raise argparse.ArgumentTypeError(f"{flag_name} must be >= 0")
        return parsed

    return _parse


def resolve_passphrase(args, parser: argparse.ArgumentParser) -> str:
    if args.passphrase_stdin:
        if sys.stdin.isatty():
            parser.error("--passphrase-stdin requires piped stdin input")
        return sys.stdin.readline().rstrip("\r\n")
    if args.passphrase_prompt:
        return getpass.getpass("Enter BIP39 passphrase (leave empty for none): ")
    if args.passphrase is not None:
        print(
            "WARNING: --passphrase is visible in process list and shell history. "
            "Prefer --passphrase-stdin or --passphrase-prompt.",
            file=sys.stderr,
        )
        return args.passphrase
    return ""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Derive watch-only EVM, Tron and Solana addresses")
    parser.add_argument("--mnemonic", required=True, help="BIP39 mnemonic words")
    passphrase_group = parser.add_mutually_exclusive_group()
    passphrase_group.add_argument(
        "--passphrase",
        default=None,
        help=(
            "BIP39 passphrase (HIGH RISK: visible in process list and shell history; "
            "prefer --passphrase-stdin or --passphrase-prompt)"
        ),
    )
    passphrase_group.add_argument(
        "--passphrase-stdin",
        action="store_true",
        help="Read BIP39 passphrase from stdin (recommended for scripts)",
    )
    passphrase_group.add_argument(
        "--passphrase-prompt",
        action="store_true",
        help="Prompt passphrase with hidden input (recommended for interactive use)",
    )
    parser.add_argument("--account", type=uint31_arg("--account"), default=0,
                        help="BIP44 account for EVM and Tron paths")
    parser.add_argument("--start", type=uint31_arg("--start"), default=0)
    parser.add_argument(
        "--evm-count",
        type=non_negative_arg("--evm-count"),
        default=0,
        help="how many EVM addresses to derive (0=skip)",
    )
    parser.add_argument(
        "--tron-count",
        type=non_negative_arg("--tron-count"),
        default=0,
        help="how many Tron addresses to derive (0=skip)",
    )
    parser.add_argument(
        "--solana-count",
        type=non_negative_arg("--solana-count"),
        default=0,
        help="how many Solana addresses to derive (0=skip)",
    )
    parser.add_argument(
        "--solana-style",
        default="primary",
        choices=[style.name for style in SOLANA_PATH_STYLES],
        help="Solana derivation path style",
    )
    parser.add_argument(
        "--all-solana-styles",
        action="store_true",
        help="print account --start under every Solana path style",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    passphrase = resolve_passphrase(args, parser)

    if not (args.evm_count or args.tron_count or args.solana_count or args.all_solana_styles):
        print("Nothing to do. Specify --evm-count, --tron-count, --solana-count > 0 "
              "or --all-solana-styles")
        return

    try:
        validate_mnemonic(args.mnemonic)

        if args.evm_count > 0:
            print("=== EVM (BIP44) ===")
            for acct in derive_evm_addresses(args.mnemonic, passphrase, start=args.start,
                                             count=args.evm_count, account=args.account):
                print(f"{acct.path}  |  {acct.address}")
            print()

        if args.tron_count > 0:
            print("=== TRON (BIP44) ===")
            for acct in derive_tron_addresses(args.mnemonic, passphrase, start=args.start,
                                              count=args.tron_count, account=args.account):
                print(f"{acct.path}  |  {acct.address}")
            print()

        if args.solana_count > 0:
            print(f"=== SOLANA ({args.solana_style}) ===")
            for acct in derive_solana_addresses(args.mnemonic, passphrase, start=args.start,
                                                count=args.solana_count, style=args.solana_style):
                print(f"{acct.path}  |  {acct.address}")
            print()

        if args.all_solana_styles:
            print("=== SOLANA (all path styles) ===")
            for style, acct in derive_solana_addresses_all_styles(args.mnemonic, passphrase, index=args.start):
                print(f"{acct.path}  |  {acct.address}  |  {style.name} ({style.label})")
    except (WalletError, ValueError) as exc:
        parser.exit(1, f"Error: {exc}\n")


if __name__ == "__main__":
    main()
