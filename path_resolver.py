"""
Solana path-style resolver.

Different wallets derive Solana accounts from the same phrase along different
paths. Given a phrase, derive the account under every known convention, ask
the balance collaborator which of them holds funds, and pick the first funded
one in priority order. The resolver never writes anything; callers persist
the chosen style with ``save_path_preference``.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from wallet_config import WalletConfig
from wallet_core import SOLANA_PATH_STYLES, get_path_style, derive_solana_addresses_all_styles
from wallet_storage import STORAGE_KEYS

logger = logging.getLogger("wallet.resolver")


@dataclass
class PathBalanceResult:
    style: str
    path: str
    address: str
    native_balance: str = "0"
    token_count: int = 0
    has_balance: bool = False
    error: str | None = None


@dataclass
class PathResolution:
    style: str
    address: str
    results: list = field(default_factory=list)


def _positive(value: Any) -> bool:
    try:
        return Decimal(str(value)) > 0
    except (InvalidOperation, ValueError, TypeError):
        return False


def _field(obj: Any, name: str, default=None):
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def summarize_balance(balance: Any) -> tuple[str, int, bool]:
    """Return (native balance, funded token count, has_balance) for a lookup payload."""
    native = _field(balance, "native") or {}
    native_balance = _field(native, "balance", "0")
    native_balance = "0" if native_balance is None else str(native_balance)
    tokens = _field(balance, "tokens") or []
    funded_tokens = [t for t in tokens if _positive(_field(t, "balance", "0"))]
    has_balance = _positive(native_balance) or bool(funded_tokens)
    return native_balance, len(funded_tokens), has_balance


async def _probe(balance_lookup, style, path: str, address: str) -> PathBalanceResult:
    try:
        balance = await balance_lookup.get_balance("solana", address)
    except Exception as err:
        logger.warning("Balance lookup failed for style=%s address=%s: %s", style.name, address, err)
        return PathBalanceResult(style.name, path, address, error=str(err) or type(err).__name__)

    native_balance, token_count, has_balance = summarize_balance(balance)
    logger.debug(
        "Path %s (%s): native=%s tokens=%d has_balance=%s",
        style.name, address, native_balance, token_count, has_balance,
    )
    return PathBalanceResult(style.name, path, address, native_balance, token_count, has_balance)


async def resolve_path_style(
    mnemonic,
    balance_lookup,
    *,
    default_style=None,
    config: WalletConfig | None = None,
    account_index: int = 0,
    passphrase: str = "",
) -> PathResolution:
    """Determine which Solana path convention a phrase was used with.

    Args:
        mnemonic: Recovery phrase (string or word list).
        balance_lookup: Collaborator exposing ``async get_balance(chain, address)``.
        default_style: Style chosen when no address holds funds.
        config: Supplies ``solana_default_path_style`` when ``default_style``
            is not given; read from the environment when omitted.
        account_index: Account index probed under every style.
        passphrase: Optional BIP39 passphrase.

    Returns:
        PathResolution with the selected style, its address and the
        per-style results in priority order.
    """
    fallback = get_path_style(default_style or configured_default_style(config))
    derived = derive_solana_addresses_all_styles(mnemonic, passphrase, index=account_index)

    results = await asyncio.gather(*(
        _probe(balance_lookup, style, account.path, account.address)
        for style, account in derived
    ))

    chosen = next((r for r in results if r.has_balance), None)
    if chosen is None:
        chosen = next(r for r in results if r.style == fallback.name)
        logger.info("No funded Solana path found; using default style=%s", fallback.name)
    else:
        logger.info("Detected Solana path style=%s address=%s", chosen.style, chosen.address)

    return PathResolution(style=chosen.style, address=chosen.address, results=list(results))


def configured_default_style(config: WalletConfig | None = None) -> str:
    return (config or WalletConfig.from_env()).solana_default_path_style


def save_path_preference(storage, style, account_index: int = 0) -> None:
    style = get_path_style(style)
    storage.set(STORAGE_KEYS["SOLANA_PATH_STYLE"], style.name)
    storage.set(STORAGE_KEYS["SOLANA_ACCOUNT_INDEX"], int(account_index))
    logger.info("Saved Solana path preference: style=%s index=%d", style.name, account_index)


def load_path_preference(storage, default_style=None, *, config: WalletConfig | None = None) -> tuple[str, int]:
    """Return (style name, account index); unknown stored values fall back to the default."""
    stored = storage.get(STORAGE_KEYS["SOLANA_PATH_STYLE"])
    names = [s.name for s in SOLANA_PATH_STYLES]
    if stored in names:
        style = stored
    else:
        style = get_path_style(default_style or configured_default_style(config)).name
    index = storage.get(STORAGE_KEYS["SOLANA_ACCOUNT_INDEX"])
    try:
        index = int(index) if index is not None else 0
    except (TypeError, ValueError):
        index = 0
    return style, max(index, 0)


__all__ = [
    "PathBalanceResult",
    "PathResolution",
    "configured_default_style",
    "load_path_preference",
    "resolve_path_style",
    "save_path_preference",
    "summarize_balance",
]
