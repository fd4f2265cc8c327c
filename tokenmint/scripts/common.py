# tokenmint/scripts/common.py
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Joltkin LLC.
#
# Purpose
# -------
# Shared helpers for the CLI scripts:
#   * resolve the payer keypair from PRIVATE_KEY (or generate + persist one),
#   * top the payer up with a devnet/testnet airdrop when it runs low,
#   * configure logging once per process,
#   * apply per-run CLI overrides to the environment settings.
#
# Conventions
# -----------
# * Balances are logged in SOL; RPC values are lamports.
# * Airdrops are never requested on mainnet-beta.
#
# Security
# --------
# * PRIVATE_KEY grants full control of funds; never commit `.env` to VCS.
# * A generated key is written to ENV_FILE so later runs reuse the same payer.
# * Secrets are never logged; only public keys are.

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import pathlib

import base58
from dotenv import set_key
from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ..core.config import Settings, settings
from ..core.constants import LAMPORTS_PER_SOL

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-8s: %(message)s"


class KeypairError(ValueError):
    """PRIVATE_KEY is present but cannot be decoded into a keypair."""


def setup_logging(level: str = "INFO") -> None:
    """
    Configure root logging for CLI use.

    Raises:
        ValueError: if `level` is not a logging level name.
    """
    name = (level or "").strip().upper()
    if not isinstance(logging.getLevelName(name), int):
        raise ValueError(f"Unknown LOG_LEVEL {level!r}")
    logging.basicConfig(level=name, format=LOG_FORMAT)


def resolve_settings(args: argparse.Namespace, base: Settings = settings) -> Settings:
    """Apply per-run CLI overrides (--cluster, --rpc-url, --storage) to `base`."""
    overrides = {}
    if args.cluster:
        overrides["SOLANA_CLUSTER"] = args.cluster
    if args.rpc_url:
        overrides["SOLANA_RPC_URL"] = args.rpc_url
    if args.storage:
        overrides["STORAGE_DRIVER"] = args.storage
    return dataclasses.replace(base, **overrides) if overrides else base


def parse_secret(raw: str) -> Keypair:
    """
    Decode a secret key from either encoding the Solana tooling produces:

    * JSON byte array, as written by `solana-keygen` (`[12,34,...]`, 64 ints)
    * base58 string, as exported by browser wallets

    Raises:
        KeypairError: on malformed input.
    """
    # Strip surrounding quotes a user might add in .env
    s = (raw or "").strip().strip('"').strip("'")
    if not s:
        raise KeypairError("PRIVATE_KEY is empty")
    if s.startswith("["):
        try:
            values = json.loads(s)
        except json.JSONDecodeError as e:
            raise KeypairError(f"PRIVATE_KEY is not a valid JSON array: {e}") from e
        if not isinstance(values, list) or not all(
            isinstance(v, int) and 0 <= v <= 255 for v in values
        ):
            raise KeypairError("PRIVATE_KEY must be a JSON array of byte values")
        secret = bytes(values)
    else:
        try:
            secret = base58.b58decode(s)
        except ValueError as e:
            raise KeypairError(f"PRIVATE_KEY is not valid base58: {e}") from e
    if len(secret) != 64:
        raise KeypairError(f"PRIVATE_KEY must decode to 64 bytes (got {len(secret)})")
    try:
        return Keypair.from_bytes(secret)
    except ValueError as e:
        raise KeypairError(f"PRIVATE_KEY is not a valid keypair: {e}") from e


def secret_to_json(kp: Keypair) -> str:
    """Serialize a keypair the way `solana-keygen` does (compact JSON array)."""
    return json.dumps(list(bytes(kp)), separators=(",", ":"))


def persist_keypair(kp: Keypair, env_file: str | pathlib.Path) -> None:
    """Write PRIVATE_KEY into `env_file`, keeping any other entries."""
    path = pathlib.Path(env_file)
    path.touch(exist_ok=True)
    set_key(str(path), "PRIVATE_KEY", secret_to_json(kp))
    log.info("Generated new keypair; saved PRIVATE_KEY to %s", path)


def airdrop_if_needed(
    client: Client, pubkey: Pubkey, cfg: Settings, *, lamports: int = LAMPORTS_PER_SOL
) -> int:
    """
    Request an airdrop when the balance is below `AIRDROP_THRESHOLD_SOL`.

    Returns:
        The balance (lamports) after any airdrop.
    """
    balance = client.get_balance(pubkey).value
    log.info("Current balance is %s SOL", balance / LAMPORTS_PER_SOL)
    if balance >= cfg.AIRDROP_THRESHOLD_SOL * LAMPORTS_PER_SOL:
        return balance
    if cfg.is_mainnet:
        log.warning("Balance is low, but airdrops are not available on mainnet-beta")
        return balance

    log.info("Airdropping %s SOL...", lamports / LAMPORTS_PER_SOL)
    sig = client.request_airdrop(pubkey, lamports).value
    client.confirm_transaction(sig, Confirmed)
    balance = client.get_balance(pubkey).value
    log.info("New balance is %s SOL", balance / LAMPORTS_PER_SOL)
    return balance


def initialize_keypair(client: Client, cfg: Settings) -> Keypair:
    """
    Resolve the payer keypair.

    * PRIVATE_KEY unset → generate one and persist it to ENV_FILE.
    * PRIVATE_KEY set   → decode it.

    Either way the payer is topped up via `airdrop_if_needed`.
    """
    if cfg.PRIVATE_KEY:
        kp = parse_secret(cfg.PRIVATE_KEY)
    else:
        kp = Keypair()
        persist_keypair(kp, cfg.ENV_FILE)
    airdrop_if_needed(client, kp.pubkey(), cfg)
    return kp
