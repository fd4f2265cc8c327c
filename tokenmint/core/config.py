# tokenmint/core/config.py
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Joltkin LLC.
"""
Centralized, immutable configuration for the token scripts.

A frozen `Settings` dataclass is populated from environment variables (loaded
via python-dotenv if a `.env` file is present). Scripts import the `settings`
singleton instead of calling `os.getenv` themselves; CLI flags override a few
of these values per run.

Security notes
--------------
- `PRIVATE_KEY` grants full control of the payer wallet. `.env` is a
  development convenience only; never commit it.
- `PINATA_JWT` is a bearer token for the pinning service. It is only sent to
  `PINATA_API_URL` and never logged.

Testing
-------
Construct `Settings(...)` directly with keyword overrides, or set environment
variables before importing this module and reload it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Pre-set environment variables take precedence over `.env` values.
load_dotenv()

#: Public RPC endpoints per cluster, mirroring `clusterApiUrl` in web3.js.
CLUSTER_URLS: dict[str, str] = {
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
    "localnet": "http://127.0.0.1:8899",
}


def cluster_api_url(cluster: str) -> str:
    """Return the default public RPC URL for `cluster`.

    Raises:
        ValueError: for an unknown cluster name.
    """
    try:
        return CLUSTER_URLS[cluster]
    except KeyError:
        known = ", ".join(sorted(CLUSTER_URLS))
        raise ValueError(f"Unknown cluster {cluster!r} (expected one of: {known})") from None


@dataclass(frozen=True)
class Settings:
    """
    Immutable script settings.

    Each attribute is populated from the environment variable of the same
    name; when unset, a documented default is used.
    """

    # --- Network -------------------------------------------------------------
    # Cluster name; drives the default RPC URL, explorer links and airdrops.
    SOLANA_CLUSTER: str = os.getenv("SOLANA_CLUSTER", "devnet")
    # Explicit RPC endpoint. Empty means "use the cluster's public endpoint".
    SOLANA_RPC_URL: str = os.getenv("SOLANA_RPC_URL", "")

    # --- Payer keypair -------------------------------------------------------
    # JSON array of 64 ints or a base58 secret. Empty → generate on first run.
    PRIVATE_KEY: str = os.getenv("PRIVATE_KEY", "")
    # Where a freshly generated keypair is persisted.
    ENV_FILE: str = os.getenv("ENV_FILE", ".env")
    # Request an airdrop when the payer holds less than this many SOL.
    AIRDROP_THRESHOLD_SOL: float = float(os.getenv("AIRDROP_THRESHOLD_SOL", "1"))

    # --- Storage -------------------------------------------------------------
    STORAGE_DRIVER: str = os.getenv("STORAGE_DRIVER", "pinata")
    PINATA_JWT: str = os.getenv("PINATA_JWT", "")
    PINATA_API_URL: str = os.getenv("PINATA_API_URL", "https://api.pinata.cloud")
    IPFS_GATEWAY_URL: str = os.getenv(
        "IPFS_GATEWAY_URL", "https://gateway.pinata.cloud/ipfs"
    )
    # Uploads of large images can be slow on public gateways.
    STORAGE_TIMEOUT: float = float(os.getenv("STORAGE_TIMEOUT", "60"))
    LOCAL_STORAGE_DIR: str = os.getenv("LOCAL_STORAGE_DIR", ".uploads")

    # --- Logging -------------------------------------------------------------
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def rpc_url(self) -> str:
        """Explicit `SOLANA_RPC_URL` or the cluster's public endpoint."""
        return self.SOLANA_RPC_URL or cluster_api_url(self.SOLANA_CLUSTER)

    @property
    def is_mainnet(self) -> bool:
        return self.SOLANA_CLUSTER == "mainnet-beta"


# Singleton settings object imported by consumers.
settings = Settings()
