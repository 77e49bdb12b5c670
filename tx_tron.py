"""Tron transfer builder.

The node assembles the unsigned transaction (``createtransaction`` for TRX,
``triggersmartcontract`` for TRC-20); this module validates what comes back,
checks that ``txID`` really is SHA-256 of ``raw_data_hex`` and signs that
digest locally.
"""

import json
import logging

from eth_keys import keys

from address_codec import (
    evm_address_from_public_key,
    evm_to_tron_address,
    require_address,
    sha256,
    tron_address_to_hex,
)
from tx_common import (
    INT64_LIMIT,
    UINT256_LIMIT,
    SignedTransaction,
    TransferParams,
    call_upstream,
    encode_transfer_call,
    parse_private_key,
    require_token_identifier,
    to_base_units,
)
from wallet_core import Curve, is_hex, public_key_from_private
from wallet_errors import InvalidKey, UpstreamUnavailable

logger = logging.getLogger("wallet.tx.tron")

SUN_DECIMALS = 6
DEFAULT_TOKEN_DECIMALS = 6
DEFAULT_FEE_LIMIT = 100_000_000
TRC20_TRANSFER_SELECTOR = "transfer(address,uint256)"


def _node_error(response: dict) -> str | None:
    if response.get("Error"):
        return str(response["Error"])
    result = response.get("result")
    if isinstance(result, dict) and result.get("code"):
        message = result.get("message") or ""
        try:
            message = bytes.fromhex(message).decode("utf-8")
        except ValueError:
            pass
        return f"{result['code']}: {message or 'Unknown error'}"
    return None


def _unsigned_transaction(response) -> dict:
    """Pull the unsigned transaction out of a node response and check its id."""
    if not isinstance(response, dict):
        raise UpstreamUnavailable(f"Unexpected Tron node response: {type(response).__name__}")
    error = _node_error(response)
    if error:
        raise UpstreamUnavailable(f"Tron node error: {error}")

    tx = response.get("transaction", response)
    raw_hex = tx.get("raw_data_hex") if isinstance(tx, dict) else None
    tx_id = tx.get("txID") if isinstance(tx, dict) else None
    if not raw_hex or not tx_id or not is_hex(raw_hex) or len(raw_hex) % 2:
        raise UpstreamUnavailable("Tron node returned a transaction without raw_data_hex/txID")

    digest = sha256(bytes.fromhex(raw_hex))
    if digest.hex() != tx_id.lower():
        raise UpstreamUnavailable("Tron txID does not match SHA-256 of raw_data_hex")
    return tx


def sign_digest(private_key: bytes, digest: bytes) -> str:
    """65-byte recoverable signature as hex: r || s || v with v in {0x1b, 0x1c}."""
    sig = keys.PrivateKey(private_key).sign_msg_hash(digest)
    return (
        sig.r.to_bytes(32, "big")
        + sig.s.to_bytes(32, "big")
        + bytes([sig.v + 27])
    ).hex()


def sign_transaction(tx: dict, private_key: bytes) -> dict:
    digest = bytes.fromhex(tx["txID"])
    return {**tx, "signature": [sign_digest(private_key, digest)]}


async def build_and_sign(
    private_key,
    params: TransferParams,
    network,
    *,
    fee_limit: int = DEFAULT_FEE_LIMIT,
    token_decimals: int = DEFAULT_TOKEN_DECIMALS,
) -> SignedTransaction:
    """Build and sign a TRX or TRC-20 transfer.

    Returns:
        SignedTransaction whose ``serialized_tx`` is the JSON of the node's
        transaction with a ``signature`` list, and whose ``tx_id`` is ``txID``.
    """
    key = parse_private_key(private_key)
    to = require_address("tron", params.to, "recipient")
    sender = require_address("tron", params.from_address, "sender")

    if params.is_token:
        contract = require_address("tron", require_token_identifier(params, "token contract address"), "token contract")
        decimals = params.decimals if params.decimals is not None else token_decimals
    else:
        contract = None
        decimals = SUN_DECIMALS
    amount = to_base_units(params.amount, decimals, limit=UINT256_LIMIT if contract else INT64_LIMIT)

    key_address = evm_to_tron_address(evm_address_from_public_key(public_key_from_private(key, Curve.SECP256K1)))
    if key_address != sender:
        raise InvalidKey("Private key does not control the sender address")

    owner_hex = tron_address_to_hex(sender)
    to_hex = tron_address_to_hex(to)

    if contract is None:
        response = await call_upstream(
            "Tron createtransaction", network.create_transaction(owner_hex, to_hex, amount),
        )
    else:
        parameter = encode_transfer_call(bytes.fromhex(to_hex[2:]), amount)
        response = await call_upstream(
            "Tron triggersmartcontract",
            network.trigger_smart_contract(
                owner_hex,
                tron_address_to_hex(contract),
                TRC20_TRANSFER_SELECTOR,
                parameter,
                int(fee_limit),
                0,
            ),
        )

    tx = _unsigned_transaction(response)
    signed = sign_transaction(tx, key)

    logger.info(
        "Signed tron %s transfer: amount=%d tx=%s",
        "token" if contract else "native", amount, tx["txID"],
    )
    return SignedTransaction(chain="tron", serialized_tx=json.dumps(signed), tx_id=tx["txID"])


__all__ = ["TRC20_TRANSFER_SELECTOR", "build_and_sign", "sign_digest", "sign_transaction"]
