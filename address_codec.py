"""Base58 codec and per-chain address encoders.

- EVM:    keccak-256(pubkey)[-20:] as 0x-hex with EIP-55 checksum
- Tron:   Base58Check(0x41 || evm-address-bytes)
- Solana: Base58(raw ed25519 public key)
"""

import enum
import hashlib
import re

from Crypto.Hash import keccak as _keccak

from wallet_errors import InvalidAddress

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE58_INDEX = {c: i for i, c in enumerate(BASE58_ALPHABET)}

TRON_VERSION_BYTE = 0x41

_EVM_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_TRON_RE = re.compile(r"^T[1-9A-HJ-NP-Za-km-z]{33}$")
_TRON_HEX_RE = re.compile(r"^41[0-9a-f]{40}$")
_SOLANA_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def keccak_256(data: bytes) -> bytes:
    return _keccak.new(digest_bits=256, data=data).digest()


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def double_sha256(data: bytes) -> bytes:
    return sha256(sha256(data))


# ---------------------------------------------------------------------------
# Base58 / Base58Check
# ---------------------------------------------------------------------------

def b58encode(data: bytes) -> str:
    data = bytes(data)
    n_zeros = len(data) - len(data.lstrip(b"\x00"))
    num = int.from_bytes(data, "big")
    out = []
    while num > 0:
        num, rem = divmod(num, 58)
        out.append(BASE58_ALPHABET[rem])
    return "1" * n_zeros + "".join(reversed(out))


def b58decode(text: str) -> bytes:
    n_ones = len(text) - len(text.lstrip("1"))
    num = 0
    for ch in text:
        try:
            num = num * 58 + _BASE58_INDEX[ch]
        except KeyError:
            raise ValueError(f"Invalid Base58 character {ch!r}") from None
    body = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    return b"\x00" * n_ones + body


def b58check_encode(payload: bytes) -> str:
    return b58encode(payload + double_sha256(payload)[:4])


def b58check_decode(text: str) -> bytes:
    raw = b58decode(text)
    if len(raw) < 4:
        raise ValueError("Base58Check string too short")
    payload, checksum = raw[:-4], raw[-4:]
    if double_sha256(payload)[:4] != checksum:
        raise ValueError("Base58Check checksum mismatch")
    return payload


# ---------------------------------------------------------------------------
# EVM
# ---------------------------------------------------------------------------

def eip55_checksum(hex_addr: str) -> str:
    h = keccak_256(hex_addr.encode("ascii")).hex()
    out = ""
    for c, hv in zip(hex_addr, h):
        if c in "0123456789":
            out += c
        else:
            out += c.upper() if int(hv, 16) >= 8 else c.lower()
    return out


def is_evm_address(address) -> bool:
    if not address or not isinstance(address, str):
        return False
    return bool(_EVM_RE.match(address.strip()))


def to_checksum_address(address: str) -> str:
    if not is_evm_address(address):
        raise InvalidAddress(f"Invalid EVM address: {address!r}")
    return "0x" + eip55_checksum(address.strip()[2:].lower())


def normalize_evm_address(address: str) -> str:
    """Lowercased form used wherever EVM addresses are compared or keyed."""
    if not is_evm_address(address):
        raise InvalidAddress(f"Invalid EVM address: {address!r}")
    return address.strip().lower()


def evm_address_bytes(address: str) -> bytes:
    if not is_evm_address(address):
        raise InvalidAddress(f"Invalid EVM address: {address!r}")
    return bytes.fromhex(address.strip()[2:])


def evm_address_from_public_key(pubkey_uncompressed: bytes) -> str:
    if len(pubkey_uncompressed) != 65 or pubkey_uncompressed[0] != 0x04:
        raise ValueError("Must be uncompressed pubkey (0x04 prefix)")
    ke = keccak_256(pubkey_uncompressed[1:])
    return "0x" + eip55_checksum(ke[-20:].hex())


# ---------------------------------------------------------------------------
# Tron
# ---------------------------------------------------------------------------

def is_tron_address(address) -> bool:
    """Format check only: 'T' followed by 33 Base58 characters."""
    if not address or not isinstance(address, str):
        return False
    return bool(_TRON_RE.match(address.strip()))


def is_valid_tron_address(address) -> bool:
    """Format check plus Base58Check checksum and the 0x41 version byte."""
    if not is_tron_address(address):
        return False
    try:
        payload = b58check_decode(address.strip())
    except ValueError:
        return False
    return len(payload) == 21 and payload[0] == TRON_VERSION_BYTE


def evm_address_to_tron_hex(address: str) -> str:
    return "41" + evm_address_bytes(address).hex()


def tron_hex_to_base58(tron_hex) -> str | None:
    """Convert a 21-byte ``41``-prefixed hex payload to a T-address.

    Returns None when the input is not a Tron hex payload.
    """
    raw = (tron_hex or "").strip().lower()
    hex_part = raw.removeprefix("0x")
    if not _TRON_HEX_RE.match(hex_part):
        return None
    return b58check_encode(bytes.fromhex(hex_part))


def evm_to_tron_address(address: str) -> str:
    return tron_hex_to_base58(evm_address_to_tron_hex(address))


def tron_address_to_hex(address: str) -> str:
    if not is_tron_address(address):
        raise InvalidAddress(f"Invalid Tron address: {address!r}")
    try:
        payload = b58check_decode(address.strip())
    except ValueError as exc:
        raise InvalidAddress(f"Invalid Tron address {address!r}: {exc}") from exc
    if len(payload) != 21 or payload[0] != TRON_VERSION_BYTE:
        raise InvalidAddress(f"Invalid Tron address payload: {address!r}")
    return payload.hex()


def tron_address_from_public_key(pubkey_uncompressed: bytes) -> str:
    if len(pubkey_uncompressed) != 65 or pubkey_uncompressed[0] != 0x04:
        raise ValueError("Must be uncompressed pubkey (0x04 prefix)")
    body = keccak_256(pubkey_uncompressed[1:])[-20:]
    return b58check_encode(bytes([TRON_VERSION_BYTE]) + body)


# ---------------------------------------------------------------------------
# Solana
# ---------------------------------------------------------------------------

def solana_address_from_public_key(pubkey: bytes) -> str:
    if len(pubkey) != 32:
        raise ValueError(f"ed25519 public key must be 32 bytes, got {len(pubkey)}")
    return b58encode(pubkey)


def is_solana_address(address) -> bool:
    if not address or not isinstance(address, str):
        return False
    address = address.strip()
    if not _SOLANA_RE.match(address):
        return False
    return len(b58decode(address)) == 32


# ---------------------------------------------------------------------------
# Chain family detection
# ---------------------------------------------------------------------------

class AddressFamily(enum.Enum):
    EVM = "evm"
    TRON = "tron"
    SOLANA = "solana"
    UNKNOWN = "unknown"


# Evaluated in order; Tron must precede Solana since T-addresses are also
# Base58 strings of plausible length.
_FAMILY_RULES = (
    (is_evm_address, AddressFamily.EVM),
    (is_valid_tron_address, AddressFamily.TRON),
    (is_solana_address, AddressFamily.SOLANA),
)

_VALIDATORS = {
    AddressFamily.EVM: is_evm_address,
    AddressFamily.TRON: is_valid_tron_address,
    AddressFamily.SOLANA: is_solana_address,
}


def detect_address_family(address) -> AddressFamily:
    for predicate, family in _FAMILY_RULES:
        if predicate(address):
            return family
    return AddressFamily.UNKNOWN


def require_address(family, address, role: str = "address") -> str:
    """Return the trimmed address or raise InvalidAddress naming ``role``."""
    family = AddressFamily(family)
    validator = _VALIDATORS.get(family)
    if validator is None or not validator(address):
        raise InvalidAddress(f"Invalid {family.value} {role}: {address!r}")
    return address.strip()


__all__ = [
    "AddressFamily",
    "BASE58_ALPHABET",
    "b58check_decode",
    "b58check_encode",
    "b58decode",
    "b58encode",
    "detect_address_family",
    "evm_address_bytes",
    "evm_address_from_public_key",
    "evm_address_to_tron_hex",
    "evm_to_tron_address",
    "is_evm_address",
    "is_solana_address",
    "is_tron_address",
    "is_valid_tron_address",
    "keccak_256",
    "normalize_evm_address",
    "require_address",
    "sha256",
    "solana_address_from_public_key",
    "to_checksum_address",
    "tron_address_from_public_key",
    "tron_address_to_hex",
    "tron_hex_to_base58",
]
