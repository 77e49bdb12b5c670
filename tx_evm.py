"""EVM transfer builder: native value transfers and ERC-20 ``transfer`` calls."""

import logging

from eth_account import Account

from address_codec import evm_address_bytes, evm_address_from_public_key, keccak_256, require_address, to_checksum_address
from tx_common import (
    UINT256_LIMIT,
    FeeData,
    SignedTransaction,
    TransferParams,
    call_upstream,
    encode_transfer_call,
    parse_private_key,
    require_token_identifier,
    to_base_units,
)
from wallet_core import Curve, public_key_from_private
from wallet_errors import InvalidKey, UpstreamUnavailable

logger = logging.getLogger("wallet.tx.evm")

NATIVE_DECIMALS = 18
NATIVE_GAS_LIMIT = 21_000
TOKEN_GAS_LIMIT = 100_000
# keccak256("transfer(address,uint256)")[:4]
ERC20_TRANSFER_SELECTOR = "a9059cbb"


def erc20_transfer_data(recipient: str, amount: int) -> str:
    return "0x" + ERC20_TRANSFER_SELECTOR + encode_transfer_call(evm_address_bytes(recipient), amount)


def _fee_fields(params: TransferParams, fee_data: FeeData | None) -> dict:
    if params.max_fee_per_gas and params.max_priority_fee_per_gas:
        return {
            "maxFeePerGas": int(params.max_fee_per_gas),
            "maxPriorityFeePerGas": int(params.max_priority_fee_per_gas),
            "type": 2,
        }
    if fee_data is not None and fee_data.max_fee_per_gas and fee_data.max_priority_fee_per_gas:
        return {
            "maxFeePerGas": int(fee_data.max_fee_per_gas),
            "maxPriorityFeePerGas": int(fee_data.max_priority_fee_per_gas),
            "type": 2,
        }
    if fee_data is not None and fee_data.gas_price:
        return {"gasPrice": int(fee_data.gas_price)}
    raise UpstreamUnavailable("Fee data lookup returned no usable fee fields")


async def build_and_sign(
    private_key,
    params: TransferParams,
    network,
    *,
    chain_id: int,
    chain: str = "ethereum",
    native_gas_limit: int = NATIVE_GAS_LIMIT,
    token_gas_limit: int = TOKEN_GAS_LIMIT,
    token_decimals: int = 18,
) -> SignedTransaction:
    """Build, sign and serialize an EVM transfer.

    Args:
        private_key: 32-byte key as bytes or hex.
        params: Transfer parameters; ``token_identifier`` is the ERC-20
            contract address for token transfers.
        network: EvmNetwork collaborator (nonce and fee data).
        chain_id: EIP-155 chain id.

    Returns:
        SignedTransaction with the 0x-hex raw transaction and its keccak hash.
    """
    key = parse_private_key(private_key)
    to = require_address("evm", params.to, "recipient")
    sender = require_address("evm", params.from_address, "sender")

    if params.is_token:
        contract = require_address("evm", require_token_identifier(params, "token contract address"), "token contract")
        decimals = params.decimals if params.decimals is not None else token_decimals
    else:
        contract = None
        decimals = NATIVE_DECIMALS
    amount = to_base_units(params.amount, decimals, limit=UINT256_LIMIT)

    key_address = evm_address_from_public_key(public_key_from_private(key, Curve.SECP256K1))
    if key_address.lower() != sender.lower():
        raise InvalidKey("Private key does not control the sender address")

    nonce = await call_upstream("nonce lookup", network.get_transaction_count(key_address, "pending"))
    explicit_fees = params.max_fee_per_gas and params.max_priority_fee_per_gas
    fee_data = None if explicit_fees else await call_upstream("fee data lookup", network.get_fee_data())

    tx = {
        "chainId": int(chain_id),
        "nonce": int(nonce),
        **_fee_fields(params, fee_data),
    }
    if contract is None:
        tx.update({
            "to": to_checksum_address(to),
            "value": amount,
            "gas": native_gas_limit,
            "data": "0x",
        })
    else:
        tx.update({
            "to": to_checksum_address(contract),
            "value": 0,
            "gas": int(params.gas_limit or token_gas_limit),
            "data": erc20_transfer_data(to, amount),
        })

    signed = Account.sign_transaction(tx, key)
    raw = bytes(signed.raw_transaction)
    tx_hash = "0x" + keccak_256(raw).hex()

    logger.info(
        "Signed %s %s transfer: chain_id=%d nonce=%d tx=%s",
        chain, "token" if contract else "native", chain_id, nonce, tx_hash,
    )
    return SignedTransaction(chain=chain, serialized_tx="0x" + raw.hex(), tx_id=tx_hash)


__all__ = ["ERC20_TRANSFER_SELECTOR", "build_and_sign", "erc20_transfer_data"]
