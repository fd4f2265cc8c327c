# tokenmint/scripts/update_metadata.py
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Joltkin LLC.
#
# Purpose
# -------
# Update the Metaplex metadata of an existing token mint: re-upload the JSON
# metadata (and a new image, if given), then send UpdateMetadataAccountV2
# signed by the payer (who must be the current update authority).
#
# Behaviour
# ---------
# * Fields not passed on the command line keep their current on-chain values.
# * The new JSON document keeps the current image, description and any extra
#   keys unless they are replaced on the command line.
# * Fails early if the metadata is immutable or the payer is not the update
#   authority, rather than letting the transaction fail on-chain.
#
# Example
# -------
#   python -m tokenmint.scripts.update_metadata \
#     --mint <MINT_ADDRESS> --name "New Name" --image src/new.png
#
#   # point at an already-uploaded JSON document instead
#   python -m tokenmint.scripts.update_metadata --mint <MINT_ADDRESS> --uri https://...

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
from typing import Any

from solana.rpc.api import Client
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ..core.clients import explorer_tx_url, get_client
from ..core.config import Settings
from ..services.metadata import (
    MetadataError,
    fetch_metadata,
    find_metadata_pda,
    update_metadata_account_v2_instruction,
)
from ..services.storage import (
    StorageDriver,
    build_offchain_metadata,
    fetch_offchain_metadata,
    make_storage,
    upload_token_assets,
)
from ..services.token import send_and_confirm
from .common import initialize_keypair, resolve_settings, setup_logging

log = logging.getLogger(__name__)


def _parse_pubkey(raw: str) -> Pubkey:
    try:
        return Pubkey.from_string(raw.strip())
    except ValueError as e:
        raise SystemExit(f"--mint is not a valid address: {raw!r}") from e


def _upload_offchain(
    storage: StorageDriver | None,
    current_uri: str,
    *,
    cfg: Settings,
    name: str,
    symbol: str,
    description: str | None,
    image: str | None,
) -> tuple[str | None, str]:
    """
    Upload a JSON document for the merged metadata; returns (image_uri, uri).

    Whatever the caller did not pass (image, description, extra keys) is
    taken from the document at `current_uri`.
    """
    if storage is None:
        raise ValueError("A storage driver is required to upload new metadata")
    previous: dict[str, Any] = {}
    if image is None or description is None:
        previous = fetch_offchain_metadata(current_uri, timeout=cfg.STORAGE_TIMEOUT)
    if description is None:
        description = str(previous.get("description", ""))

    if image is not None:
        return upload_token_assets(
            storage,
            image,
            name=name,
            description=description,
            symbol=symbol,
            base=previous,
        )

    image_uri = previous.get("image")
    if not image_uri:
        raise MetadataError(
            f"Current metadata at {current_uri} has no image; pass --image or --uri"
        )
    meta = dict(previous)
    meta.update(build_offchain_metadata(name, description, image_uri, symbol=symbol))
    uri = storage.upload_json(meta)
    log.info("metadata uri: %s", uri)
    return image_uri, uri


def update_metadata(
    client: Client,
    payer: Keypair,
    mint: Pubkey,
    *,
    storage: StorageDriver | None,
    cfg: Settings,
    name: str | None = None,
    symbol: str | None = None,
    description: str | None = None,
    image: str | None = None,
    uri: str | None = None,
    seller_fee_bps: int | None = None,
) -> dict[str, Any]:
    """
    Merge the requested changes into the current metadata and submit the update.

    A changed name, symbol, description or image triggers a new JSON upload
    (plus the image, when given); the resulting JSON URI replaces the on-chain
    `uri`. Fields not passed keep the values of the current JSON document. An
    explicit `uri` wins and skips uploads.

    Raises:
        MetadataError: if the account is immutable or `payer` is not its
            update authority, or the merged data violates field limits.
    """
    current = fetch_metadata(client, mint)
    if not current.is_mutable:
        raise MetadataError(f"Metadata for {mint} is immutable")
    if current.update_authority != payer.pubkey():
        raise MetadataError(
            f"{payer.pubkey()} is not the update authority ({current.update_authority})"
        )

    new_name = name if name is not None else current.data.name
    new_symbol = symbol if symbol is not None else current.data.symbol

    image_uri = None
    offchain_changed = (
        image is not None
        or description is not None
        or new_name != current.data.name
        or new_symbol != current.data.symbol
    )
    if uri is None and offchain_changed:
        image_uri, uri = _upload_offchain(
            storage,
            current.data.uri,
            cfg=cfg,
            name=new_name,
            symbol=new_symbol,
            description=description,
            image=image,
        )

    data = dataclasses.replace(
        current.data,
        name=new_name,
        symbol=new_symbol,
        uri=uri if uri is not None else current.data.uri,
        seller_fee_basis_points=seller_fee_bps
        if seller_fee_bps is not None
        else current.data.seller_fee_basis_points,
    )
    if data == current.data:
        raise MetadataError("Nothing to update: new metadata matches the current values")

    metadata_pda, _ = find_metadata_pda(mint)
    ix = update_metadata_account_v2_instruction(
        metadata=metadata_pda,
        update_authority=payer.pubkey(),
        data=data,
    )
    signature = send_and_confirm(client, [ix], [payer])
    return {
        "mint": str(mint),
        "metadata": str(metadata_pda),
        "name": data.name,
        "symbol": data.symbol,
        "image_uri": image_uri,
        "metadata_uri": data.uri,
        "signature": signature,
        "explorer": explorer_tx_url(signature, cfg.SOLANA_CLUSTER, cfg.rpc_url),
    }


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """CLI parser for metadata update options."""
    ap = argparse.ArgumentParser(
        description="Update the Metaplex metadata of an existing SPL token.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    ap.add_argument("--mint", required=True, help="Token mint address")
    ap.add_argument("--name", default=None, help="New token name (≤ 32 bytes)")
    ap.add_argument("--symbol", default=None, help="New token symbol (≤ 10 bytes)")
    ap.add_argument(
        "--description", default=None, help="Description for the new JSON metadata"
    )
    ap.add_argument("--image", default=None, help="New image file to upload")
    ap.add_argument("--uri", default=None, help="New metadata URI (skips uploads)")
    ap.add_argument(
        "--seller-fee-bps", type=int, default=None, help="New royalty in basis points"
    )
    ap.add_argument("--cluster", default=None, help="Override SOLANA_CLUSTER")
    ap.add_argument("--rpc-url", default=None, help="Override SOLANA_RPC_URL")
    ap.add_argument("--storage", default=None, help="Override STORAGE_DRIVER (pinata|local)")
    ap.add_argument("--json", action="store_true", help="Print a JSON summary")
    return ap.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Entrypoint: load payer, merge metadata changes, submit, print explorer link."""
    args = _parse_args(argv)
    mint = _parse_pubkey(args.mint)
    cfg = resolve_settings(args)

    try:
        setup_logging(cfg.LOG_LEVEL)
        client = get_client(cfg.rpc_url)
        payer = initialize_keypair(client, cfg)
        log.info("PublicKey: %s", payer.pubkey())

        uploads = args.uri is None and any(
            v is not None for v in (args.name, args.symbol, args.description, args.image)
        )
        storage = make_storage(cfg) if uploads else None
        out = update_metadata(
            client,
            payer,
            mint,
            storage=storage,
            cfg=cfg,
            name=args.name,
            symbol=args.symbol,
            description=args.description,
            image=args.image,
            uri=args.uri,
            seller_fee_bps=args.seller_fee_bps,
        )
    except Exception as e:
        raise SystemExit(f"update-metadata failed: {e}") from e

    if args.json:
        print(json.dumps(out, indent=2))
        return
    print(f"Transaction: {out['explorer']}")
    print("Finished successfully")


if __name__ == "__main__":
    main()
