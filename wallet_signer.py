"""
Chain dispatch for transfers.

``WalletSigner.sign_transfer`` accepts either a raw private key or a recovery
phrase. A phrase is derived down the chain's standard path; for Solana the
path style and account index come from the stored preference written by
``path_resolver.save_path_preference``.
"""
import logging

import tx_evm
import tx_solana
import tx_tron
from path_resolver import load_path_preference
from tx_common import TransferParams
from wallet_config import WalletConfig, get_network
from wallet_core import (
    Curve,
    derive_key,
    evm_path,
    get_path_style,
    mnemonic_to_seed,
    tron_path,
    validate_mnemonic,
)
from wallet_errors import UpstreamUnavailable

logger = logging.getLogger("wallet.signer")


def looks_like_mnemonic(secret) -> bool:
    """Private keys are a single hex token; phrases contain whitespace."""
    return isinstance(secret, str) and len(secret.strip().split()) > 1


class _UnconfiguredNetwork:
    """Placeholder collaborator: input validation still runs, the first network call fails."""

    def __init__(self, family: str, chain: str):
        self.family = family
        self.chain = chain

    def __getattr__(self, name):
        async def unavailable(*args, **kwargs):
            raise UpstreamUnavailable(f"No {self.family} network collaborator configured for {self.chain}")
        return unavailable


class WalletSigner:
    def __init__(self, config: WalletConfig | None = None, storage=None, *,
                 evm_network=None, solana_network=None, tron_network=None):
        self.config = config or WalletConfig.from_env()
        self.storage = storage
        self._networks = {
            "evm": evm_network,
            "solana": solana_network,
            "tron": tron_network,
        }

    def solana_preference(self) -> tuple[str, int]:
        default = self.config.solana_default_path_style
        if self.storage is None:
            return default, 0
        return load_path_preference(self.storage, config=self.config)

    def derivation_path(self, family: str, account_index: int | None = None):
        """Path a phrase is derived along for ``family`` ("evm", "tron", "solana")."""
        if family == "solana":
            style, stored_index = self.solana_preference()
            index = stored_index if account_index is None else account_index
            return get_path_style(style).path(index), Curve.ED25519
        index = account_index or 0
        if family == "tron":
            return tron_path(index), Curve.SECP256K1
        return evm_path(index), Curve.SECP256K1

    def private_key_from_mnemonic(self, mnemonic: str, family: str,
                                  account_index: int | None = None, passphrase: str = "") -> bytes:
        validate_mnemonic(mnemonic)
        path, curve = self.derivation_path(family, account_index)
        logger.debug("Deriving %s signing key at %s", family, path)
        return derive_key(mnemonic_to_seed(mnemonic, passphrase), path, curve).private_key

    async def sign_transfer(self, chain: str, secret, params, *, account_index: int | None = None):
        """Build and sign a transfer on ``chain``.

        Args:
            chain: Chain id from the network table (``ethereum``, ``polygon``,
                ``solana``, ``tron``, ...).
            secret: Hex/bytes private key, or a recovery phrase.
            params: TransferParams or a mapping accepted by
                ``TransferParams.from_mapping``.
            account_index: Account index for phrase derivation; Solana
                defaults to the stored preference.

        Returns:
            SignedTransaction
        """
        info = get_network(chain)
        if not isinstance(params, TransferParams):
            params = TransferParams.from_mapping(params)

        network = self._networks.get(info.family)
        if network is None:
            network = _UnconfiguredNetwork(info.family, info.chain)

        if looks_like_mnemonic(secret):
            key = self.private_key_from_mnemonic(secret, info.family, account_index)
        else:
            key = secret

        logger.info("Signing %s transfer (token=%s)", info.chain, params.is_token)
        if info.family == "evm":
            return await tx_evm.build_and_sign(
                key, params, network,
                chain_id=self.config.chain_id(info.chain),
                chain=info.chain,
                native_gas_limit=self.config.evm_native_gas_limit,
                token_gas_limit=self.config.evm_token_gas_limit,
                token_decimals=self.config.evm_token_decimals,
            )
        if info.family == "solana":
            return await tx_solana.build_and_sign(
                key, params, network, token_decimals=self.config.solana_token_decimals,
            )
        return await tx_tron.build_and_sign(
            key, params, network,
            fee_limit=self.config.tron_fee_limit,
            token_decimals=self.config.tron_token_decimals,
        )


__all__ = ["WalletSigner", "looks_like_mnemonic"]
