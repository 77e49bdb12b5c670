"""Error taxonomy shared by the derivation, signing and vault layers."""


class WalletError(Exception):
    """Base class for every error raised by the wallet core."""


class InvalidPath(WalletError, ValueError):
    """Derivation path is malformed or not derivable on the requested curve."""


class InvalidKey(WalletError, ValueError):
    """Private key has the wrong length, is not hex, or is out of range."""


class InvalidMnemonic(WalletError, ValueError):
    """Recovery phrase failed word-count, wordlist or checksum validation."""


class InvalidAddress(WalletError, ValueError):
    """Address does not match the chain's address format."""


class InvalidAmount(WalletError, ValueError):
    """Amount does not convert to a positive integer of minimum units."""


class MissingParameter(WalletError, ValueError):
    """A parameter required for the requested operation was not supplied."""


class DecryptionFailed(WalletError):
    """Ciphertext could not be opened: wrong PIN or corrupted blob.

    Raised with a single uniform message for every cause.
    """

    def __init__(self, message: str = "Failed to decrypt. Invalid PIN or corrupted data."):
        super().__init__(message)


class UpstreamUnavailable(WalletError):
    """An external collaborator (fee data, nonce, block hash, balance) failed."""


__all__ = [
    "WalletError",
    "InvalidPath",
    "InvalidKey",
    "InvalidMnemonic",
    "InvalidAddress",
    "InvalidAmount",
    "MissingParameter",
    "DecryptionFailed",
    "UpstreamUnavailable",
]
