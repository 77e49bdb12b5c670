"""Solana transfer builder: system-program SOL transfers and SPL token transfers."""

import logging

from solders.compute_budget import set_compute_unit_price
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams as SystemTransferParams, transfer as system_transfer
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    TransferParams as SplTransferParams,
    create_associated_token_account,
    get_associated_token_address,
    transfer as spl_transfer,
)

from address_codec import b58decode, b58encode, require_address
from tx_common import (
    UINT64_LIMIT,
    SignedTransaction,
    TransferParams,
    call_upstream,
    require_token_identifier,
    to_base_units,
)
from wallet_core import is_hex
from wallet_errors import InvalidKey, UpstreamUnavailable

logger = logging.getLogger("wallet.tx.solana")

LAMPORTS_DECIMALS = 9
DEFAULT_TOKEN_DECIMALS = 6


def keypair_from_secret(secret) -> Keypair:
    """Build a Keypair from a 32-byte seed or a 64-byte seed||pubkey secret key."""
    if isinstance(secret, (bytes, bytearray)):
        raw = bytes(secret)
    elif isinstance(secret, str):
        text = secret.strip().removeprefix("0x")
        if not is_hex(text) or len(text) % 2:
            raise InvalidKey("Private key must be hex encoded")
        raw = bytes.fromhex(text)
    else:
        raise InvalidKey(f"Unsupported private key type: {type(secret).__name__}")

    if len(raw) == 32:
        return Keypair.from_seed(raw)
    if len(raw) == 64:
        keypair = Keypair.from_seed(raw[:32])
        if bytes(keypair.pubkey()) != raw[32:]:
            raise InvalidKey("Secret key public half does not match its seed")
        return keypair
    raise InvalidKey(f"Invalid private key length. Expected 32 or 64 bytes, got {len(raw)}")


def associated_token_address(owner: str, mint: str) -> str:
    return str(get_associated_token_address(Pubkey.from_string(owner), Pubkey.from_string(mint)))


async def build_and_sign(
    private_key,
    params: TransferParams,
    network,
    *,
    token_decimals: int = DEFAULT_TOKEN_DECIMALS,
) -> SignedTransaction:
    """Build, sign and serialize a Solana transfer.

    The transaction id is the Base58 encoding of the fee payer's signature.
    """
    keypair = keypair_from_secret(private_key)
    to = require_address("solana", params.to, "recipient")
    sender = require_address("solana", params.from_address, "sender")

    if params.is_token:
        mint = require_address("solana", require_token_identifier(params, "token mint address"), "token mint")
        decimals = params.decimals if params.decimals is not None else token_decimals
    else:
        mint = None
        decimals = LAMPORTS_DECIMALS
    amount = to_base_units(params.amount, decimals, limit=UINT64_LIMIT)

    from_pubkey = keypair.pubkey()
    if str(from_pubkey) != sender:
        raise InvalidKey("Private key does not control the sender address")
    to_pubkey = Pubkey.from_string(to)

    instructions = []
    if params.priority_fee:
        instructions.append(set_compute_unit_price(int(params.priority_fee)))

    if mint is None:
        instructions.append(system_transfer(SystemTransferParams(
            from_pubkey=from_pubkey, to_pubkey=to_pubkey, lamports=amount,
        )))
    else:
        mint_pubkey = Pubkey.from_string(mint)
        from_ata = get_associated_token_address(from_pubkey, mint_pubkey)
        to_ata = get_associated_token_address(to_pubkey, mint_pubkey)
        logger.debug("SPL source ATA=%s destination ATA=%s", from_ata, to_ata)

        exists = await call_upstream("token account lookup", network.account_exists(str(to_ata)))
        if not exists:
            logger.info("Destination token account %s does not exist; creating it", to_ata)
            instructions.append(create_associated_token_account(
                payer=from_pubkey, owner=to_pubkey, mint=mint_pubkey,
            ))
        instructions.append(spl_transfer(SplTransferParams(
            program_id=TOKEN_PROGRAM_ID,
            source=from_ata,
            dest=to_ata,
            owner=from_pubkey,
            amount=amount,
        )))

    blockhash = await call_upstream("latest blockhash lookup", network.get_latest_blockhash())
    try:
        decoded = b58decode(str(blockhash))
    except ValueError as exc:
        raise UpstreamUnavailable(f"Malformed blockhash from network: {blockhash!r}") from exc
    if len(decoded) != 32:
        raise UpstreamUnavailable(f"Malformed blockhash from network: {blockhash!r}")
    recent_blockhash = Hash(decoded)

    message = Message.new_with_blockhash(instructions, from_pubkey, recent_blockhash)
    tx = Transaction([keypair], message, recent_blockhash)
    signature = bytes(tx.signatures[0])
    tx_id = b58encode(signature)

    logger.info(
        "Signed solana %s transfer: amount=%d instructions=%d tx=%s",
        "token" if mint else "native", amount, len(instructions), tx_id,
    )
    return SignedTransaction(chain="solana", serialized_tx=bytes(tx).hex(), tx_id=tx_id)


__all__ = ["associated_token_address", "build_and_sign", "keypair_from_secret"]
