# tokenmint/scripts/create_token.py
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Joltkin LLC.
#
# Purpose
# -------
# Create a fungible SPL token with Metaplex metadata and mint an initial
# amount to the payer's associated token account, in ONE transaction:
#   create mint account → initialize mint → create metadata account
#   → create ATA (if missing) → mint_to
#
# Design
# ------
# * Targets **devnet** by default (configurable via .env or --cluster).
# * The payer is mint authority, freeze authority and update authority.
#   For production you may want to hand these to a multisig afterwards.
# * The image and JSON metadata are uploaded first (IPFS via Pinata, or a
#   local directory with STORAGE_DRIVER=local); pass --uri to skip uploads.
#
# Example
# -------
#   python -m tokenmint.scripts.create_token \
#     --name "Token Name" --symbol SYMBOL --description "Description" \
#     --decimals 2 --amount 1 --image src/test.png
#
# Environment (.env)
# ------------------
# SOLANA_CLUSTER=devnet
# PRIVATE_KEY=[...64 ints...]      # generated on first run when unset
# STORAGE_DRIVER=pinata
# PINATA_JWT=...

from __future__ import annotations

import argparse
import json
import logging
from typing import Any

from solana.rpc.api import Client
from solders.keypair import Keypair

from ..core.clients import explorer_address_url, explorer_tx_url, get_client
from ..core.config import Settings
from ..services.metadata import DataV2, find_metadata_pda
from ..services.storage import StorageDriver, make_storage, upload_token_assets
from ..services.token import build_create_token_instructions, plan_token, send_and_confirm
from .common import initialize_keypair, resolve_settings, setup_logging

log = logging.getLogger(__name__)

DEFAULT_NAME = "Token Name"
DEFAULT_DESCRIPTION = "Description"
DEFAULT_SYMBOL = "SYMBOL"
DEFAULT_DECIMALS = 2
DEFAULT_AMOUNT = "1"
DEFAULT_IMAGE = "src/test.png"


def create_token(
    client: Client,
    payer: Keypair,
    *,
    storage: StorageDriver | None,
    cfg: Settings,
    name: str,
    symbol: str,
    description: str,
    decimals: int,
    amount: Any,
    image: str | None = None,
    uri: str | None = None,
    seller_fee_bps: int = 0,
    is_mutable: bool = True,
    mint: Keypair | None = None,
) -> dict[str, Any]:
    """
    Upload assets, then create + mint the token in a single transaction.

    Returns:
        Summary dict (mint, ATA, metadata PDA, URIs, signature, explorer link).
    """
    mint = mint or Keypair()
    metadata_pda, _ = find_metadata_pda(mint.pubkey())
    plan = plan_token(
        client,
        payer.pubkey(),
        mint.pubkey(),
        metadata_pda,
        decimals=decimals,
        amount=amount,
    )

    image_uri = None
    if uri is None:
        if storage is None or image is None:
            raise ValueError("An image and a storage driver are required unless --uri is given")
        image_uri, uri = upload_token_assets(
            storage, image, name=name, description=description, symbol=symbol
        )

    data = DataV2(
        name=name,
        symbol=symbol,
        uri=uri,
        seller_fee_basis_points=seller_fee_bps,
    )
    ixs = build_create_token_instructions(client, plan, data, is_mutable=is_mutable)
    signature = send_and_confirm(client, ixs, [payer, mint])

    return {
        "mint": str(plan.mint),
        "token_account": str(plan.ata),
        "metadata": str(plan.metadata),
        "decimals": plan.decimals,
        "amount": plan.amount,
        "image_uri": image_uri,
        "metadata_uri": uri,
        "signature": signature,
        "explorer": explorer_tx_url(signature, cfg.SOLANA_CLUSTER, cfg.rpc_url),
        "mint_explorer": explorer_address_url(str(plan.mint), cfg.SOLANA_CLUSTER, cfg.rpc_url),
    }


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """CLI parser for token creation options."""
    ap = argparse.ArgumentParser(
        description="Create an SPL token with Metaplex metadata and mint to your wallet.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    ap.add_argument("--name", default=DEFAULT_NAME, help="Token name (≤ 32 bytes)")
    ap.add_argument("--symbol", default=DEFAULT_SYMBOL, help="Token symbol (≤ 10 bytes)")
    ap.add_argument("--description", default=DEFAULT_DESCRIPTION, help="Off-chain description")
    ap.add_argument("--decimals", type=int, default=DEFAULT_DECIMALS, help="Decimal places")
    ap.add_argument(
        "--amount", default=DEFAULT_AMOUNT, help="Whole tokens to mint to your ATA"
    )
    ap.add_argument("--image", default=DEFAULT_IMAGE, help="Image file to upload")
    ap.add_argument(
        "--uri", default=None, help="Existing metadata URI; skips image/JSON uploads"
    )
    ap.add_argument(
        "--seller-fee-bps", type=int, default=0, help="Royalty in basis points"
    )
    ap.add_argument(
        "--immutable",
        action="store_true",
        help="Create metadata as immutable (cannot be updated later).",
    )
    ap.add_argument("--cluster", default=None, help="Override SOLANA_CLUSTER")
    ap.add_argument("--rpc-url", default=None, help="Override SOLANA_RPC_URL")
    ap.add_argument("--storage", default=None, help="Override STORAGE_DRIVER (pinata|local)")
    ap.add_argument("--json", action="store_true", help="Print a JSON summary")
    return ap.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Entrypoint: load payer, upload assets, create token, print explorer link."""
    args = _parse_args(argv)
    cfg = resolve_settings(args)

    try:
        setup_logging(cfg.LOG_LEVEL)
        client = get_client(cfg.rpc_url)
        payer = initialize_keypair(client, cfg)
        log.info("PublicKey: %s", payer.pubkey())

        storage = None if args.uri else make_storage(cfg)
        out = create_token(
            client,
            payer,
            storage=storage,
            cfg=cfg,
            name=args.name,
            symbol=args.symbol,
            description=args.description,
            decimals=args.decimals,
            amount=args.amount,
            image=args.image,
            uri=args.uri,
            seller_fee_bps=args.seller_fee_bps,
            is_mutable=not args.immutable,
        )
    except Exception as e:
        # Surface a clear, single-line error for scripting/CI environments.
        raise SystemExit(f"create-token failed: {e}") from e

    if args.json:
        print(json.dumps(out, indent=2))
        return
    print(f"Mint: {out['mint_explorer']}")
    print(f"Transaction: {out['explorer']}")
    print("Finished successfully")


if __name__ == "__main__":
    main()
