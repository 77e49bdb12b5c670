"""Shared pieces of the per-chain transaction builders.

Validation helpers here run before any collaborator call or signing work, so
a rejected request never touches the network and never produces a partial
signature.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_DOWN, localcontext
from typing import Any, Awaitable, Protocol

from wallet_core import N, bytes_to_int, is_hex
from wallet_errors import InvalidAmount, InvalidKey, MissingParameter, UpstreamUnavailable, WalletError

logger = logging.getLogger("wallet.tx")

# Exclusive upper bounds of the on-chain amount fields.
UINT64_LIMIT = 1 << 64
INT64_LIMIT = 1 << 63
UINT256_LIMIT = 1 << 256


@dataclass
class TransferParams:
    to: str
    amount: str
    from_address: str
    is_token: bool = False
    token_identifier: str | None = None
    decimals: int | None = None
    # Solana compute-unit price in micro-lamports
    priority_fee: int | None = None
    # EVM overrides, all in wei / gas units
    gas_limit: int | None = None
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None

    @classmethod
    def from_mapping(cls, data: dict) -> "TransferParams":
        """Accept both snake_case and the camelCase keys used by JSON callers."""
        def pick(*names, default=None):
            for name in names:
                if name in data and data[name] is not None:
                    return data[name]
            return default

        to = pick("to")
        amount = pick("amount")
        from_address = pick("from_address", "from")
        for name, value in (("to", to), ("amount", amount), ("from", from_address)):
            if value is None or value == "":
                raise MissingParameter(f"Missing required parameter: {name}")
        return cls(
            to=to,
            amount=str(amount),
            from_address=from_address,
            is_token=bool(pick("is_token", "isToken", default=False)),
            token_identifier=pick("token_identifier", "tokenIdentifier", "tokenMint", "contractAddress"),
            decimals=pick("decimals"),
            priority_fee=pick("priority_fee", "priorityFee"),
            gas_limit=pick("gas_limit", "gasLimit"),
            max_fee_per_gas=pick("max_fee_per_gas", "maxFeePerGas"),
            max_priority_fee_per_gas=pick("max_priority_fee_per_gas", "maxPriorityFeePerGas"),
        )


@dataclass(frozen=True)
class SignedTransaction:
    chain: str
    serialized_tx: str
    tx_id: str


@dataclass(frozen=True)
class FeeData:
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None
    gas_price: int | None = None


# ---------------------------------------------------------------------------
# Collaborator protocols
# ---------------------------------------------------------------------------

class BalanceLookup(Protocol):
    async def get_balance(self, chain: str, address: str) -> dict: ...


class EvmNetwork(Protocol):
    async def get_transaction_count(self, address: str, block: str = "pending") -> int: ...

    async def get_fee_data(self) -> FeeData: ...


class SolanaNetwork(Protocol):
    async def get_latest_blockhash(self) -> str: ...

    async def account_exists(self, address: str) -> bool: ...


class TronNetwork(Protocol):
    async def create_transaction(self, owner_hex: str, to_hex: str, amount_sun: int) -> dict: ...

    async def trigger_smart_contract(
        self,
        owner_hex: str,
        contract_hex: str,
        function_selector: str,
        parameter: str,
        fee_limit: int,
        call_value: int = 0,
    ) -> dict: ...


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def to_base_units(amount, decimals: int, *, limit: int | None = None) -> int:
    """Convert a human amount to an integer count of minimum units.

    Extra precision beyond ``decimals`` is truncated. Zero, negative and
    non-numeric amounts raise InvalidAmount, as do amounts of ``limit``
    units or more (the exclusive bound of the chain's integer field).
    """
    if decimals is None or int(decimals) < 0:
        raise InvalidAmount(f"Invalid decimals: {decimals!r}")
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmount(f"Amount is not a number: {amount!r}") from None
    if not value.is_finite():
        raise InvalidAmount(f"Amount must be finite: {amount!r}")
    with localcontext() as ctx:
        ctx.prec = 100
        units = int((value * (Decimal(10) ** int(decimals))).to_integral_value(rounding=ROUND_DOWN))
    if units <= 0:
        raise InvalidAmount(f"Amount must be greater than 0, got {amount!r}")
    if limit is not None and units >= limit:
        raise InvalidAmount(f"Amount {amount!r} is too large for this transfer")
    return units


def parse_private_key(key, *, secp256k1: bool = True) -> bytes:
    """Return the 32 raw key bytes of a hex (optionally 0x-prefixed) or bytes key."""
    if isinstance(key, (bytes, bytearray)):
        raw = bytes(key)
    elif isinstance(key, str):
        text = key.strip().removeprefix("0x").removeprefix("0X")
        if not is_hex(text) or len(text) % 2:
            raise InvalidKey("Private key must be hex encoded")
        raw = bytes.fromhex(text)
    else:
        raise InvalidKey(f"Unsupported private key type: {type(key).__name__}")

    if len(raw) != 32:
        raise InvalidKey(f"Private key must be 32 bytes, got {len(raw)}")
    if secp256k1 and not 0 < bytes_to_int(raw) < N:
        raise InvalidKey("Private key out of range for secp256k1")
    return raw


def require_token_identifier(params: TransferParams, what: str = "token identifier") -> str:
    if not params.token_identifier:
        raise MissingParameter(f"A {what} is required for token transfers")
    return params.token_identifier.strip()


def encode_transfer_call(recipient: bytes, amount: int) -> str:
    """ABI arguments of ``transfer(address,uint256)`` as 128 hex characters."""
    if len(recipient) != 20:
        raise ValueError("recipient must be 20 bytes")
    if amount < 0 or amount >= UINT256_LIMIT:
        raise InvalidAmount("amount does not fit in uint256")
    return recipient.rjust(32, b"\x00").hex() + amount.to_bytes(32, "big").hex()


async def call_upstream(description: str, awaitable: Awaitable[Any]) -> Any:
    """Await a collaborator call, surfacing failures as UpstreamUnavailable.

    No retries: retry policy belongs to the collaborator or the caller.
    """
    try:
        return await awaitable
    except WalletError:
        raise
    except Exception as exc:
        logger.warning("Upstream call failed: %s: %s", description, exc)
        raise UpstreamUnavailable(f"{description} failed: {exc}") from exc


__all__ = [
    "INT64_LIMIT",
    "UINT256_LIMIT",
    "UINT64_LIMIT",
    "BalanceLookup",
    "EvmNetwork",
    "FeeData",
    "SignedTransaction",
    "SolanaNetwork",
    "TransferParams",
    "TronNetwork",
    "call_upstream",
    "encode_transfer_call",
    "parse_private_key",
    "require_token_identifier",
    "to_base_units",
]
