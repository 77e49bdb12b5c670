#!/usr/bin/env python3
"""Shared seed and key-derivation core for the multichain wallet tools.

Two HD schemes live here:
- secp256k1 BIP32 (EVM chains and Tron), hardened and non-hardened children
- ed25519 SLIP-0010 (Solana), hardened children only

Everything in this module is a pure function of its inputs: no network I/O
and no randomness outside of ``generate_mnemonic``.
"""

import enum
import hashlib
import hmac
import logging
import struct
import unicodedata
from dataclasses import dataclass

from mnemonic import Mnemonic
from nacl.signing import SigningKey

from address_codec import (
    evm_address_from_public_key,
    solana_address_from_public_key,
    tron_address_from_public_key,
)
from wallet_errors import InvalidKey, InvalidMnemonic, InvalidPath

logger = logging.getLogger("wallet.core")

# secp256k1 curve parameters
P = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F
N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
Gx = 55066263022277343669578718895168534326250603453777594175500187360389116729240
Gy = 32670510020758816978083085130507043184471273380659243275938904335757337482424
G = (Gx, Gy)

HARDENED_OFFSET = 0x80000000
MAX_NON_HARDENED_INDEX = 0x7FFFFFFF
VALID_WORD_COUNTS = (12, 24)
WORD_COUNT_TO_STRENGTH = {12: 128, 24: 256}

BIP32_SEED_KEY = b"Bitcoin seed"
ED25519_SEED_KEY = b"ed25519 seed"

_english = Mnemonic("english")


class Curve(enum.Enum):
    SECP256K1 = "secp256k1"
    ED25519 = "ed25519"


def hmac_sha512(key: bytes, data: bytes) -> bytes:
    return hmac.new(key, data, hashlib.sha512).digest()


def pbkdf2_hmac_sha512(password: bytes, salt: bytes, iterations=2048) -> bytes:
    return hashlib.pbkdf2_hmac("sha512", password, salt, iterations, dklen=64)


def int_to_bytes(i: int, length: int) -> bytes:
    return i.to_bytes(length, byteorder="big")


def bytes_to_int(data: bytes) -> int:
    return int.from_bytes(data, "big")


def ser256(i: int) -> bytes:
    return int_to_bytes(i, 32)


def is_hex(s: str) -> bool:
    if not s:
        return False
    return all(c in "0123456789abcdefABCDEF" for c in s)


# ---------------------------------------------------------------------------
# secp256k1 point arithmetic
# ---------------------------------------------------------------------------

def point_add(pt, qt):
    if pt is None:
        return qt
    if qt is None:
        return pt

    x1, y1 = pt
    x2, y2 = qt

    if x1 == x2 and y1 != y2:
        return None
    if pt == qt:
        if y1 == 0:
            return None
        m = (3 * x1 * x1) * pow(2 * y1, P - 2, P) % P
    else:
        m = (y2 - y1) * pow(x2 - x1, P - 2, P) % P

    x3 = (m * m - x1 - x2) % P
    y3 = (m * (x1 - x3) - y1) % P
    return (x3, y3)


def scalar_mult(k: int, pt):
    if k % N == 0 or pt is None:
        return None
    result = None
    addend = pt
    while k:
        if k & 1:
            result = point_add(result, addend)
        addend = point_add(addend, addend)
        k >>= 1
    return result


def serP(pt, compressed=True) -> bytes:
    x, y = pt
    if not compressed:
        return b"\x04" + ser256(x) + ser256(y)
    return (b"\x02" if (y % 2 == 0) else b"\x03") + ser256(x)


# ---------------------------------------------------------------------------
# Mnemonic / seed
# ---------------------------------------------------------------------------

def normalize_mnemonic(phrase) -> str:
    """Lowercase, trim and single-space a phrase given as a string or word list."""
    if not isinstance(phrase, str):
        phrase = " ".join(phrase)
    return unicodedata.normalize("NFKD", " ".join(phrase.lower().split()))


def validate_mnemonic(mnemonic) -> None:
    """Validate a BIP39 mnemonic: word count, wordlist membership, and checksum."""
    words = normalize_mnemonic(mnemonic).split()
    if len(words) not in VALID_WORD_COUNTS:
        raise InvalidMnemonic(
            f"Mnemonic must be {list(VALID_WORD_COUNTS)} words, got {len(words)}"
        )

    word_map = {w: i for i, w in enumerate(_english.wordlist)}
    for i, w in enumerate(words):
        if w not in word_map:
            raise InvalidMnemonic(f"Word #{i + 1} '{w}' is not in the BIP39 wordlist")

    if not _english.check(" ".join(words)):
        raise InvalidMnemonic("Mnemonic checksum mismatch - possible typo")


def generate_mnemonic(word_count: int = 12) -> str:
    if word_count not in WORD_COUNT_TO_STRENGTH:
        raise InvalidMnemonic(
            f"word_count must be one of {list(VALID_WORD_COUNTS)}, got {word_count}"
        )
    return _english.generate(strength=WORD_COUNT_TO_STRENGTH[word_count])


def entropy_to_mnemonic(hex_entropy: str) -> str:
    hex_entropy = hex_entropy.strip().lower().removeprefix("0x")
    if not is_hex(hex_entropy):
        raise ValueError("Invalid hex string")
    if len(hex_entropy) not in (32, 64):
        raise ValueError(f"Hex entropy must be [32, 64] characters, got {len(hex_entropy)}")
    return _english.to_mnemonic(bytes.fromhex(hex_entropy))


def mnemonic_to_seed(mnemonic, passphrase: str = "") -> bytes:
    mnemonic_normalized = normalize_mnemonic(mnemonic)
    passphrase_normalized = unicodedata.normalize("NFKD", passphrase)
    salt = ("mnemonic" + passphrase_normalized).encode("utf-8")
    return pbkdf2_hmac_sha512(mnemonic_normalized.encode("utf-8"), salt, iterations=2048)


# ---------------------------------------------------------------------------
# Derivation paths
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DerivationPath:
    """Sequence of child indices with the hardened bit already applied."""

    indices: tuple = ()

    @classmethod
    def parse(cls, path) -> "DerivationPath":
        if isinstance(path, DerivationPath):
            return path
        if not isinstance(path, str):
            raise InvalidPath(f"Path must be a string, got {type(path).__name__}")
        text = path.strip()
        if text in ("m", "M"):
            return cls(())
        if not text.startswith(("m/", "M/")):
            raise InvalidPath(f"Path must start with m/, got {path!r}")

        indices = []
        for seg in text[2:].split("/"):
            hardened = seg.endswith(("'", "h", "H"))
            raw = seg[:-1] if hardened else seg
            if not (raw.isascii() and raw.isdigit()):
                raise InvalidPath(f"Invalid path segment {seg!r} in {path!r}")
            idx = int(raw)
            if idx > MAX_NON_HARDENED_INDEX:
                raise InvalidPath(
                    f"Path index must be between 0 and {MAX_NON_HARDENED_INDEX}, got {idx}"
                )
            indices.append(idx + HARDENED_OFFSET if hardened else idx)
        return cls(tuple(indices))

    @classmethod
    def from_segments(cls, *segments) -> "DerivationPath":
        """Build from ``(index, hardened)`` pairs."""
        indices = []
        for idx, hardened in segments:
            if idx < 0 or idx > MAX_NON_HARDENED_INDEX:
                raise InvalidPath(
                    f"Path index must be between 0 and {MAX_NON_HARDENED_INDEX}, got {idx}"
                )
            indices.append(idx + HARDENED_OFFSET if hardened else idx)
        return cls(tuple(indices))

    @property
    def is_fully_hardened(self) -> bool:
        return all(i >= HARDENED_OFFSET for i in self.indices)

    def __str__(self) -> str:
        parts = ["m"]
        for i in self.indices:
            if i >= HARDENED_OFFSET:
                parts.append(f"{i - HARDENED_OFFSET}'")
            else:
                parts.append(str(i))
        return "/".join(parts)


def evm_path(index: int = 0, account: int = 0) -> DerivationPath:
    return DerivationPath.from_segments((44, True), (60, True), (account, True), (0, False), (index, False))


def tron_path(index: int = 0, account: int = 0) -> DerivationPath:
    return DerivationPath.from_segments((44, True), (195, True), (account, True), (0, False), (index, False))


@dataclass(frozen=True)
class SolanaPathStyle:
    """One Solana derivation convention seen in third-party wallets."""

    name: str
    label: str
    template: str  # "{i}" marks the account index

    def path(self, index: int = 0) -> DerivationPath:
        if index < 0 or index > MAX_NON_HARDENED_INDEX:
            raise InvalidPath(
                f"account index must be between 0 and {MAX_NON_HARDENED_INDEX}, got {index}"
            )
        return DerivationPath.parse(self.template.format(i=index))


PRIMARY = SolanaPathStyle("primary", "Phantom / Solflare", "m/44'/501'/{i}'/0'")
ALTERNATE = SolanaPathStyle("alternate", "Solflare (alternate)", "m/44'/501'/0'/{i}'")
LEGACY = SolanaPathStyle("legacy", "Legacy / Trust Wallet", "m/44'/501'/{i}'")

# Priority order used when probing which convention holds funds.
SOLANA_PATH_STYLES = (PRIMARY, ALTERNATE, LEGACY)


def get_path_style(style) -> SolanaPathStyle:
    if isinstance(style, SolanaPathStyle):
        return style
    for candidate in SOLANA_PATH_STYLES:
        if candidate.name == style:
            return candidate
    raise InvalidPath(
        f"Unknown Solana path style {style!r}; expected one of "
        f"{[s.name for s in SOLANA_PATH_STYLES]}"
    )


# ---------------------------------------------------------------------------
# secp256k1 BIP32
# ---------------------------------------------------------------------------

def bip32_master_key(seed: bytes):
    i = hmac_sha512(BIP32_SEED_KEY, seed)
    il, ir = i[:32], i[32:]
    il_int = bytes_to_int(il)
    if il_int >= N:
        raise InvalidKey("Invalid master key: parse256(IL) >= n per BIP32")
    if il_int == 0:
        raise InvalidKey("Invalid master key (zero)")
    return il_int, ir


def ckd_priv(k_parent: int, c_parent: bytes, index: int):
    """BIP32 child key derivation (private).

    Deviation from BIP32, which says if parse256(IL) >= n or ki == 0, proceed
    with the next index.  We raise instead because the probability is
    ~1/2^128 and silently skipping to a different index would change the
    derived path without the caller's knowledge.
    """
    hardened = index >= HARDENED_OFFSET
    if hardened:
        data = b"\x00" + ser256(k_parent) + struct.pack(">L", index)
    else:
        p_parent = scalar_mult(k_parent, G)
        data = serP(p_parent, compressed=True) + struct.pack(">L", index)

    i = hmac_sha512(c_parent, data)
    il, ir = i[:32], i[32:]
    il_int = bytes_to_int(il)
    if il_int >= N:
        raise InvalidKey("Invalid child key: parse256(IL) >= n per BIP32")
    k_child = (il_int + k_parent) % N
    if k_child == 0:
        raise InvalidKey("Derived zero key")
    return k_child, ir


# ---------------------------------------------------------------------------
# ed25519 SLIP-0010
# ---------------------------------------------------------------------------

def ed25519_master_key(seed: bytes):
    i = hmac_sha512(ED25519_SEED_KEY, seed)
    return i[:32], i[32:]


def ed25519_ckd_priv(key: bytes, chain_code: bytes, index: int):
    if index < HARDENED_OFFSET:
        raise InvalidPath("ed25519 derivation supports hardened indices only")
    i = hmac_sha512(chain_code, b"\x00" + key + struct.pack(">L", index))
    return i[:32], i[32:]


# ---------------------------------------------------------------------------
# Public contract
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DerivedKey:
    private_key: bytes
    chain_code: bytes
    curve: Curve

    def __repr__(self) -> str:
        return f"DerivedKey(curve={self.curve.value}, private_key=<redacted>)"


@dataclass(frozen=True)
class Keypair:
    private_key: bytes
    public_key: bytes
    curve: Curve

    def __repr__(self) -> str:
        return f"Keypair(curve={self.curve.value}, public_key={self.public_key.hex()})"


def derive_key(seed: bytes, path, curve: Curve = Curve.SECP256K1) -> DerivedKey:
    """Walk ``path`` from the master key of ``seed`` on ``curve``."""
    path = DerivationPath.parse(path)
    curve = Curve(curve)

    if curve is Curve.ED25519:
        if not path.is_fully_hardened:
            raise InvalidPath(f"ed25519 derivation requires every segment hardened: {path}")
        key, chain_code = ed25519_master_key(seed)
        for idx in path.indices:
            key, chain_code = ed25519_ckd_priv(key, chain_code, idx)
        return DerivedKey(key, chain_code, curve)

    k, c = bip32_master_key(seed)
    for idx in path.indices:
        k, c = ckd_priv(k, c, idx)
    return DerivedKey(ser256(k), c, curve)


def public_key_from_private(private_key: bytes, curve: Curve = Curve.SECP256K1) -> bytes:
    """Uncompressed SEC1 point for secp256k1, raw 32-byte key for ed25519."""
    if len(private_key) != 32:
        raise InvalidKey(f"Private key must be 32 bytes, got {len(private_key)}")
    if Curve(curve) is Curve.ED25519:
        return SigningKey(private_key).verify_key.encode()
    k = bytes_to_int(private_key)
    if not 0 < k < N:
        raise InvalidKey("Private key out of range for secp256k1")
    return serP(scalar_mult(k, G), compressed=False)


def keypair_from_private_key(private_key: bytes, curve: Curve = Curve.SECP256K1) -> Keypair:
    curve = Curve(curve)
    return Keypair(private_key, public_key_from_private(private_key, curve), curve)


def derive_keypair(seed: bytes, path, curve: Curve = Curve.SECP256K1) -> Keypair:
    derived = derive_key(seed, path, curve)
    return keypair_from_private_key(derived.private_key, derived.curve)


# ---------------------------------------------------------------------------
# Multi-account address derivation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DerivedAccount:
    index: int
    path: str
    address: str
    chain: str


def _require_range(start: int, count: int) -> None:
    if start < 0 or start > MAX_NON_HARDENED_INDEX:
        raise InvalidPath(f"start must be between 0 and {MAX_NON_HARDENED_INDEX}, got {start}")
    if count < 0:
        raise ValueError(f"count must be >= 0, got {count}")
    if count > 0 and start + count - 1 > MAX_NON_HARDENED_INDEX:
        raise InvalidPath(f"last index must be <= {MAX_NON_HARDENED_INDEX}")


def derive_evm_addresses(mnemonic, passphrase: str = "", start: int = 0, count: int = 5, account: int = 0):
    _require_range(start, count)
    seed = mnemonic_to_seed(mnemonic, passphrase)
    results = []
    for i in range(start, start + count):
        path = evm_path(i, account)
        kp = derive_keypair(seed, path, Curve.SECP256K1)
        results.append(DerivedAccount(i, str(path), evm_address_from_public_key(kp.public_key), "evm"))
    return results


def derive_tron_addresses(mnemonic, passphrase: str = "", start: int = 0, count: int = 5, account: int = 0):
    _require_range(start, count)
    seed = mnemonic_to_seed(mnemonic, passphrase)
    results = []
    for i in range(start, start + count):
        path = tron_path(i, account)
        kp = derive_keypair(seed, path, Curve.SECP256K1)
        results.append(DerivedAccount(i, str(path), tron_address_from_public_key(kp.public_key), "tron"))
    return results


def derive_solana_addresses(mnemonic, passphrase: str = "", start: int = 0, count: int = 5, style="primary"):
    _require_range(start, count)
    style = get_path_style(style)
    seed = mnemonic_to_seed(mnemonic, passphrase)
    results = []
    for i in range(start, start + count):
        path = style.path(i)
        kp = derive_keypair(seed, path, Curve.ED25519)
        results.append(DerivedAccount(i, str(path), solana_address_from_public_key(kp.public_key), "solana"))
    return results


def derive_solana_addresses_all_styles(mnemonic, passphrase: str = "", index: int = 0):
    """Account ``index`` under every known Solana convention, in priority order."""
    seed = mnemonic_to_seed(mnemonic, passphrase)
    results = []
    for style in SOLANA_PATH_STYLES:
        path = style.path(index)
        kp = derive_keypair(seed, path, Curve.ED25519)
        results.append((style, DerivedAccount(index, str(path), solana_address_from_public_key(kp.public_key), "solana")))
    return results


def derive_multichain_accounts(mnemonic, count: int = 5, solana_style="primary", passphrase: str = ""):
    return {
        "evm": derive_evm_addresses(mnemonic, passphrase, count=count),
        "solana": derive_solana_addresses(mnemonic, passphrase, count=count, style=solana_style),
        "tron": derive_tron_addresses(mnemonic, passphrase, count=count),
    }


__all__ = [
    "ALTERNATE",
    "Curve",
    "DerivationPath",
    "DerivedAccount",
    "DerivedKey",
    "Keypair",
    "LEGACY",
    "PRIMARY",
    "SOLANA_PATH_STYLES",
    "SolanaPathStyle",
    "derive_evm_addresses",
    "derive_key",
    "derive_keypair",
    "derive_multichain_accounts",
    "derive_solana_addresses",
    "derive_solana_addresses_all_styles",
    "derive_tron_addresses",
    "entropy_to_mnemonic",
    "evm_path",
    "generate_mnemonic",
    "get_path_style",
    "is_hex",
    "keypair_from_private_key",
    "mnemonic_to_seed",
    "normalize_mnemonic",
    "public_key_from_private",
    "tron_path",
    "validate_mnemonic",
]
