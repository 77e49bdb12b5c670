"""
PIN-protected credential vault.

Secrets (imported private keys and the recovery phrase) are encrypted with
AES-256-GCM under a key stretched from the PIN with PBKDF2-HMAC-SHA256.
Every blob gets its own random salt and IV.

All vault state is kept in ONE storage record (``STORAGE_KEYS["VAULT"]``):

    {
      "version": 1,
      "mnemonic": <blob dict> | null,
      "keys": [{"address", "chain", "label", "added_at", "blob"}, ...]
    }

so an entry's metadata and its ciphertext are always written together and a
re-key replaces everything in a single ``set``.
"""
import asyncio
import base64
import binascii
import logging
import os
import time
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from address_codec import evm_address_from_public_key, evm_to_tron_address
from tx_common import parse_private_key
from tx_solana import keypair_from_secret
from wallet_config import DEFAULT_PBKDF2_ITERATIONS, WalletConfig, get_network
from wallet_core import Curve, normalize_mnemonic, public_key_from_private, validate_mnemonic
from wallet_errors import DecryptionFailed, MissingParameter
from wallet_storage import STORAGE_KEYS

logger = logging.getLogger("wallet.vault")

SALT_LENGTH = 16
IV_LENGTH = 12
KEY_LENGTH = 32
RECORD_VERSION = 1

VAULT_KEY = STORAGE_KEYS["VAULT"]
CHAIN_FAMILIES = ("evm", "solana", "tron")


# ---------------------------------------------------------------------------
# Blob format and primitives
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EncryptedBlob:
    ciphertext: bytes  # AES-GCM output, 16-byte tag appended
    salt: bytes
    iv: bytes
    iterations: int | None = None  # None means DEFAULT_PBKDF2_ITERATIONS

    def to_dict(self) -> dict:
        data = {
            "ciphertext": base64.b64encode(self.ciphertext).decode("ascii"),
            "salt": base64.b64encode(self.salt).decode("ascii"),
            "iv": base64.b64encode(self.iv).decode("ascii"),
        }
        if self.iterations is not None:
            data["iterations"] = self.iterations
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "EncryptedBlob":
        iterations = data.get("iterations")
        return cls(
            ciphertext=base64.b64decode(data["ciphertext"], validate=True),
            salt=base64.b64decode(data["salt"], validate=True),
            iv=base64.b64decode(data["iv"], validate=True),
            iterations=int(iterations) if iterations is not None else None,
        )


@dataclass(frozen=True)
class StoredKeyEntry:
    address: str
    chain: str
    label: str | None = None
    added_at: int = 0  # unix seconds

    def to_dict(self) -> dict:
        return {"address": self.address, "chain": self.chain, "label": self.label, "added_at": self.added_at}

    @classmethod
    def from_dict(cls, data: dict) -> "StoredKeyEntry":
        return cls(data["address"], data["chain"], data.get("label"), int(data.get("added_at") or 0))


def derive_pin_key(pin: str, salt: bytes, iterations: int = DEFAULT_PBKDF2_ITERATIONS) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(pin.encode("utf-8"))


def encrypt_secret(secret: str, pin: str, *, iterations: int = DEFAULT_PBKDF2_ITERATIONS) -> EncryptedBlob:
    """Encrypt ``secret`` under ``pin`` with a fresh salt and IV."""
    if not secret:
        raise ValueError("secret must be a non-empty string")
    if not pin:
        raise ValueError("PIN must be a non-empty string")
    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    key = derive_pin_key(pin, salt, iterations)
    ciphertext = AESGCM(key).encrypt(iv, secret.encode("utf-8"), None)
    return EncryptedBlob(
        ciphertext=ciphertext,
        salt=salt,
        iv=iv,
        iterations=None if iterations == DEFAULT_PBKDF2_ITERATIONS else iterations,
    )


def decrypt_secret(blob, pin: str) -> str:
    """Decrypt a blob (EncryptedBlob or its dict form).

    Every failure, whether a wrong PIN, a flipped bit or a malformed field,
    raises the same DecryptionFailed.
    """
    try:
        if isinstance(blob, dict):
            blob = EncryptedBlob.from_dict(blob)
        if not pin or len(blob.salt) != SALT_LENGTH or len(blob.iv) != IV_LENGTH:
            raise DecryptionFailed()
        key = derive_pin_key(pin, blob.salt, blob.iterations or DEFAULT_PBKDF2_ITERATIONS)
        return AESGCM(key).decrypt(blob.iv, blob.ciphertext, None).decode("utf-8")
    except DecryptionFailed:
        raise
    except (InvalidTag, KeyError, TypeError, ValueError, AttributeError, binascii.Error) as exc:
        raise DecryptionFailed() from exc


# ---------------------------------------------------------------------------
# Key -> address
# ---------------------------------------------------------------------------

def chain_family(chain: str) -> str:
    chain = (chain or "").strip().lower()
    if chain in CHAIN_FAMILIES:
        return chain
    return get_network(chain).family


def address_for_private_key(private_key, chain: str) -> str:
    """Address controlled by ``private_key`` on ``chain``; InvalidKey if malformed."""
    family = chain_family(chain)
    if family == "solana":
        return str(keypair_from_secret(private_key).pubkey())
    evm = evm_address_from_public_key(public_key_from_private(parse_private_key(private_key), Curve.SECP256K1))
    return evm_to_tron_address(evm) if family == "tron" else evm


def _same_address(a: str, b: str, family: str) -> bool:
    if family == "evm":
        return a.strip().lower() == b.strip().lower()
    return a.strip() == b.strip()


# ---------------------------------------------------------------------------
# Vault
# ---------------------------------------------------------------------------

class CredentialVault:
    """PIN-protected store for private keys and the recovery phrase."""

    def __init__(self, storage, config: WalletConfig | None = None, broadcaster=None):
        self.storage = storage
        self.config = config or WalletConfig()
        self.broadcaster = broadcaster
        self._entries: list[StoredKeyEntry] = []
        self._unsubscribe = None
        if broadcaster is not None:
            self._unsubscribe = broadcaster.subscribe(self._on_change)
        self.reload()

    # -- record plumbing ----------------------------------------------------

    def _read_record(self) -> dict:
        record = self.storage.get(VAULT_KEY)
        if not isinstance(record, dict):
            return {"version": RECORD_VERSION, "mnemonic": None, "keys": []}
        record.setdefault("mnemonic", None)
        record.setdefault("keys", [])
        return record

    def _write_record(self, record: dict) -> None:
        record["version"] = RECORD_VERSION
        self.storage.set(VAULT_KEY, record)
        self._entries = [StoredKeyEntry.from_dict(item) for item in record["keys"]]
        if self.broadcaster is not None:
            self.broadcaster.publish(VAULT_KEY, self)

    def _on_change(self, key, source) -> None:
        if key == VAULT_KEY and source is not self:
            self.reload()

    def reload(self) -> None:
        """Re-read entries from storage (after another instance wrote)."""
        self._entries = [StoredKeyEntry.from_dict(item) for item in self._read_record()["keys"]]
        logger.debug("Vault reloaded: %d key entr(ies)", len(self._entries))

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self) -> "CredentialVault":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _find(self, keys: list, address: str, chain: str) -> int | None:
        chain = chain.strip().lower()
        family = chain_family(chain)
        for i, item in enumerate(keys):
            if item["chain"] == chain and _same_address(item["address"], address, family):
                return i
        return None

    # -- generic encrypt / decrypt -------------------------------------------

    async def encrypt(self, secret: str, pin: str) -> EncryptedBlob:
        return await asyncio.to_thread(
            encrypt_secret, secret, pin, iterations=self.config.pbkdf2_iterations,
        )

    async def decrypt(self, blob, pin: str) -> str:
        return await asyncio.to_thread(decrypt_secret, blob, pin)

    # -- private keys ---------------------------------------------------------

    async def store_private_key(self, private_key: str, pin: str, chain: str, label: str | None = None) -> StoredKeyEntry:
        """Encrypt and store a private key, replacing any entry for the same address and chain."""
        if not pin:
            raise ValueError("PIN must be a non-empty string")
        chain = chain.strip().lower()
        address = address_for_private_key(private_key, chain)
        blob = await self.encrypt(private_key.strip(), pin)

        entry = StoredKeyEntry(address, chain, label, int(time.time()))
        record = self._read_record()
        item = {**entry.to_dict(), "blob": blob.to_dict()}
        index = self._find(record["keys"], address, chain)
        if index is None:
            record["keys"].append(item)
        else:
            record["keys"][index] = item
        self._write_record(record)
        logger.info("Stored %s key for %s (%s)", chain, address, "replaced" if index is not None else "new")
        return entry

    async def retrieve_private_key(self, address: str, chain: str, pin: str) -> str | None:
        """Decrypted key for (address, chain), or None when no such entry exists."""
        record = self._read_record()
        index = self._find(record["keys"], address, chain)
        if index is None:
            return None
        return await self.decrypt(record["keys"][index]["blob"], pin)

    def has_stored_key(self, address: str, chain: str) -> bool:
        return self._find(self._read_record()["keys"], address, chain) is not None

    def get_stored_key_info(self, address: str, chain: str) -> StoredKeyEntry | None:
        keys = self._read_record()["keys"]
        index = self._find(keys, address, chain)
        return None if index is None else StoredKeyEntry.from_dict(keys[index])

    def list_entries(self) -> list[StoredKeyEntry]:
        return list(self._entries)

    def remove_stored_key(self, address: str, chain: str) -> bool:
        record = self._read_record()
        index = self._find(record["keys"], address, chain)
        if index is None:
            return False
        removed = record["keys"].pop(index)
        self._write_record(record)
        logger.info("Removed %s key for %s", removed["chain"], removed["address"])
        return True

    def clear_all(self) -> None:
        """Drop every stored key and the recovery phrase."""
        self.storage.remove(VAULT_KEY)
        self._entries = []
        if self.broadcaster is not None:
            self.broadcaster.publish(VAULT_KEY, self)
        logger.info("Vault cleared")

    # -- recovery phrase ------------------------------------------------------

    async def store_mnemonic(self, mnemonic: str, pin: str) -> None:
        validate_mnemonic(mnemonic)
        blob = await self.encrypt(normalize_mnemonic(mnemonic), pin)
        record = self._read_record()
        record["mnemonic"] = blob.to_dict()
        self._write_record(record)
        logger.info("Stored recovery phrase")

    async def unlock_mnemonic(self, pin: str) -> str:
        blob = self._read_record()["mnemonic"]
        if blob is None:
            raise MissingParameter("No recovery phrase stored")
        return await self.decrypt(blob, pin)

    def has_mnemonic(self) -> bool:
        return self._read_record()["mnemonic"] is not None

    # -- PIN ------------------------------------------------------------------

    async def verify_pin(self, pin: str) -> bool:
        """True when ``pin`` opens a stored blob; False when wrong or nothing is stored."""
        record = self._read_record()
        blob = record["mnemonic"] or (record["keys"][0]["blob"] if record["keys"] else None)
        if blob is None:
            return False
        try:
            await self.decrypt(blob, pin)
        except DecryptionFailed:
            return False
        return True

    async def change_pin(self, old_pin: str, new_pin: str) -> int:
        """Re-encrypt every blob under ``new_pin``.

        All blobs are opened with ``old_pin`` before anything is written; if
        any of them fails, DecryptionFailed propagates and storage is left
        untouched. Returns the number of blobs re-keyed.
        """
        if not new_pin:
            raise ValueError("PIN must be a non-empty string")
        record = self._read_record()

        mnemonic = None
        if record["mnemonic"] is not None:
            mnemonic = await self.decrypt(record["mnemonic"], old_pin)
        secrets = [await self.decrypt(item["blob"], old_pin) for item in record["keys"]]

        if mnemonic is not None:
            record["mnemonic"] = (await self.encrypt(mnemonic, new_pin)).to_dict()
        for item, secret in zip(record["keys"], secrets):
            item["blob"] = (await self.encrypt(secret, new_pin)).to_dict()

        count = len(secrets) + (mnemonic is not None)
        if count:
            self._write_record(record)
        logger.info("PIN changed; re-keyed %d blob(s)", count)
        return count


__all__ = [
    "CredentialVault",
    "EncryptedBlob",
    "StoredKeyEntry",
    "address_for_private_key",
    "chain_family",
    "decrypt_secret",
    "derive_pin_key",
    "encrypt_secret",
]
