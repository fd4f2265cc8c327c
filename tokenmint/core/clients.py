# tokenmint/core/clients.py
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Joltkin LLC.
"""
RPC client factory and Solana Explorer links.

- `get_client()` → `solana.rpc.api.Client` at `confirmed` commitment
- `explorer_tx_url()` / `explorer_address_url()` → human-readable links

Construction is cheap and does no I/O; network errors surface when the first
request is executed.
"""

from __future__ import annotations

from urllib.parse import quote

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed

from .config import settings

EXPLORER_BASE_URL = "https://explorer.solana.com"


def get_client(url: str | None = None) -> Client:
    """Return an RPC client for `url` (defaults to `settings.rpc_url`)."""
    return Client(url or settings.rpc_url, commitment=Confirmed)


def _cluster_query(cluster: str, rpc_url: str | None) -> str:
    if cluster == "mainnet-beta":
        return ""
    if cluster == "localnet":
        custom = quote(rpc_url or "http://127.0.0.1:8899", safe="")
        return f"?cluster=custom&customUrl={custom}"
    return f"?cluster={cluster}"


def explorer_tx_url(
    signature: str, cluster: str | None = None, rpc_url: str | None = None
) -> str:
    """Explorer link for a transaction signature."""
    cluster = cluster or settings.SOLANA_CLUSTER
    return f"{EXPLORER_BASE_URL}/tx/{signature}{_cluster_query(cluster, rpc_url)}"


def explorer_address_url(
    address: str, cluster: str | None = None, rpc_url: str | None = None
) -> str:
    """Explorer link for an account (mint, ATA, wallet)."""
    cluster = cluster or settings.SOLANA_CLUSTER
    return f"{EXPLORER_BASE_URL}/address/{address}{_cluster_query(cluster, rpc_url)}"
