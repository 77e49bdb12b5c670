"""
Wallet configuration: validated settings and the supported network table.

Settings can be read from environment variables:
    WALLET_NETWORK                   mainnet | testnet
    WALLET_PBKDF2_ITERATIONS         PIN key-derivation rounds (>= 100000)
    WALLET_SOLANA_DEFAULT_PATH_STYLE primary | alternate | legacy
"""
import os
import logging
from dataclasses import dataclass

from pydantic import BaseModel, Field, field_validator

from wallet_core import SOLANA_PATH_STYLES
from wallet_errors import MissingParameter

logger = logging.getLogger("wallet.config")

# Blobs written before the iteration count became tunable used this value.
DEFAULT_PBKDF2_ITERATIONS = 100_000
MIN_PBKDF2_ITERATIONS = 100_000


@dataclass(frozen=True)
class NetworkInfo:
    chain: str
    family: str  # "evm" | "solana" | "tron"
    symbol: str
    decimals: int
    chain_id_mainnet: int | None = None
    chain_id_testnet: int | None = None


NETWORKS: dict[str, NetworkInfo] = {
    "ethereum": NetworkInfo("ethereum", "evm", "ETH", 18, 1, 11155111),
    "polygon": NetworkInfo("polygon", "evm", "POL", 18, 137, 80002),
    "arbitrum": NetworkInfo("arbitrum", "evm", "ETH", 18, 42161, 421614),
    "bsc": NetworkInfo("bsc", "evm", "BNB", 18, 56, 97),
    "solana": NetworkInfo("solana", "solana", "SOL", 9),
    "tron": NetworkInfo("tron", "tron", "TRX", 6),
}


def get_network(chain: str) -> NetworkInfo:
    """Look up a supported chain by id (case-insensitive)."""
    info = NETWORKS.get((chain or "").strip().lower())
    if info is None:
        raise MissingParameter(
            f"Unsupported chain {chain!r}; expected one of {sorted(NETWORKS)}"
        )
    return info


def evm_chain_id(chain: str, network: str = "mainnet") -> int:
    info = get_network(chain)
    if info.family != "evm":
        raise MissingParameter(f"{chain} is not an EVM chain")
    return info.chain_id_testnet if network == "testnet" else info.chain_id_mainnet


class WalletConfig(BaseModel):
    """Validated wallet settings."""

    network: str = Field(default="mainnet")
    pbkdf2_iterations: int = Field(default=DEFAULT_PBKDF2_ITERATIONS, ge=MIN_PBKDF2_ITERATIONS)
    solana_default_path_style: str = Field(default="legacy")
    evm_native_gas_limit: int = Field(default=21_000, ge=21_000)
    evm_token_gas_limit: int = Field(default=100_000, ge=21_000)
    tron_fee_limit: int = Field(default=100_000_000, gt=0)
    solana_token_decimals: int = Field(default=6, ge=0, le=18)
    tron_token_decimals: int = Field(default=6, ge=0, le=36)
    evm_token_decimals: int = Field(default=18, ge=0, le=36)

    @field_validator("network")
    @classmethod
    def validate_network(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("mainnet", "testnet"):
            raise ValueError(f"Unsupported network: {v}")
        return v

    @field_validator("solana_default_path_style")
    @classmethod
    def validate_path_style(cls, v: str) -> str:
        names = [style.name for style in SOLANA_PATH_STYLES]
        if v not in names:
            raise ValueError(f"Unknown Solana path style {v!r}; expected one of {names}")
        return v

    @property
    def is_testnet(self) -> bool:
        return self.network == "testnet"

    def chain_id(self, chain: str) -> int:
        return evm_chain_id(chain, self.network)

    @classmethod
    def from_env(cls) -> "WalletConfig":
        """Create a WalletConfig from WALLET_* environment variables."""
        values: dict = {}
        if "WALLET_NETWORK" in os.environ:
            values["network"] = os.environ["WALLET_NETWORK"]
        if "WALLET_PBKDF2_ITERATIONS" in os.environ:
            values["pbkdf2_iterations"] = int(os.environ["WALLET_PBKDF2_ITERATIONS"])
        if "WALLET_SOLANA_DEFAULT_PATH_STYLE" in os.environ:
            values["solana_default_path_style"] = os.environ["WALLET_SOLANA_DEFAULT_PATH_STYLE"]
        config = cls(**values)
        logger.debug(
            "Loaded wallet config: network=%s pbkdf2_iterations=%d solana_default=%s",
            config.network, config.pbkdf2_iterations, config.solana_default_path_style,
        )
        return config


__all__ = [
    "DEFAULT_PBKDF2_ITERATIONS",
    "MIN_PBKDF2_ITERATIONS",
    "NETWORKS",
    "NetworkInfo",
    "WalletConfig",
    "evm_chain_id",
    "get_network",
]
