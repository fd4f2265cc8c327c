# tokenmint/services/metadata.py
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Joltkin LLC.
"""
Metaplex Token Metadata helpers.

This module provides:
  • The on-chain metadata types (`DataV2`, `Creator`, `Collection`, `Uses`)
  • Metadata PDA derivation for a mint, and decoding of metadata accounts
  • Instruction builders for CreateMetadataAccountV3 and
    UpdateMetadataAccountV2, borsh-encoded with borsh-construct

Only the two instructions the scripts need are implemented. Account ordering
follows the Token Metadata program's instruction definitions.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from borsh_construct import U8, U16, U64, Bool, CStruct, Enum, Option, String, Vec
from construct import Bytes, ConstructError
from solana.rpc.api import Client
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYS_PROGRAM_ID
from solders.sysvar import RENT

from ..core.constants import (
    CREATE_METADATA_ACCOUNT_V3,
    MAX_CREATOR_LIMIT,
    MAX_NAME_LENGTH,
    MAX_SELLER_FEE_BASIS_POINTS,
    MAX_SYMBOL_LENGTH,
    MAX_URI_LENGTH,
    METADATA_SEED,
    TOKEN_METADATA_PROGRAM_ID,
    UPDATE_METADATA_ACCOUNT_V2,
)


class MetadataError(ValueError):
    """Metadata fields violate the Token Metadata program's limits."""


# =============================================================================
# Types
# =============================================================================


class UseMethod(enum.IntEnum):
    BURN = 0
    MULTIPLE = 1
    SINGLE = 2


@dataclass(frozen=True)
class Creator:
    address: Pubkey
    verified: bool
    share: int


@dataclass(frozen=True)
class Collection:
    verified: bool
    key: Pubkey


@dataclass(frozen=True)
class Uses:
    use_method: UseMethod
    remaining: int
    total: int


@dataclass(frozen=True)
class DataV2:
    """On-chain metadata: name/symbol/URI plus optional royalties and links."""

    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int = 0
    creators: list[Creator] | None = None
    collection: Collection | None = None
    uses: Uses | None = None

    def validate(self) -> None:
        """
        Check field limits enforced on-chain.

        Raises:
            MetadataError: if any field is out of range.
        """
        for label, value, limit in (
            ("name", self.name, MAX_NAME_LENGTH),
            ("symbol", self.symbol, MAX_SYMBOL_LENGTH),
            ("uri", self.uri, MAX_URI_LENGTH),
        ):
            size = len(value.encode("utf-8"))
            if size > limit:
                raise MetadataError(f"{label} must be ≤ {limit} bytes (got {size})")
        if not 0 <= self.seller_fee_basis_points <= MAX_SELLER_FEE_BASIS_POINTS:
            raise MetadataError(
                "seller_fee_basis_points must be in range "
                f"[0..{MAX_SELLER_FEE_BASIS_POINTS}] (got {self.seller_fee_basis_points})"
            )
        if self.creators is not None:
            if not self.creators or len(self.creators) > MAX_CREATOR_LIMIT:
                raise MetadataError(
                    f"creators must hold 1..{MAX_CREATOR_LIMIT} entries "
                    f"(got {len(self.creators)})"
                )
            total = sum(c.share for c in self.creators)
            if total != 100:
                raise MetadataError(f"creator shares must sum to 100 (got {total})")

    def to_container(self) -> dict[str, Any]:
        """Field dict in the shape expected by the `DATA_V2` layout."""
        return {
            "name": self.name,
            "symbol": self.symbol,
            "uri": self.uri,
            "seller_fee_basis_points": self.seller_fee_basis_points,
            "creators": None
            if self.creators is None
            else [
                {"address": bytes(c.address), "verified": c.verified, "share": c.share}
                for c in self.creators
            ],
            "collection": None
            if self.collection is None
            else {"verified": self.collection.verified, "key": bytes(self.collection.key)},
            "uses": None
            if self.uses is None
            else {
                "use_method": int(self.uses.use_method),
                "remaining": self.uses.remaining,
                "total": self.uses.total,
            },
        }


# =============================================================================
# Borsh layouts
# =============================================================================

PUBKEY = Bytes(32)

CREATOR = CStruct("address" / PUBKEY, "verified" / Bool, "share" / U8)
COLLECTION = CStruct("verified" / Bool, "key" / PUBKEY)
# UseMethod is a fieldless enum, which borsh encodes as a single u8.
USES = CStruct("use_method" / U8, "remaining" / U64, "total" / U64)

DATA_V2 = CStruct(
    "name" / String,
    "symbol" / String,
    "uri" / String,
    "seller_fee_basis_points" / U16,
    "creators" / Option(Vec(CREATOR)),
    "collection" / Option(COLLECTION),
    "uses" / Option(USES),
)

COLLECTION_DETAILS = Enum("V1" / CStruct("size" / U64), enum_name="CollectionDetails")

CREATE_METADATA_ACCOUNT_ARGS_V3 = CStruct(
    "data" / DATA_V2,
    "is_mutable" / Bool,
    "collection_details" / Option(COLLECTION_DETAILS),
)

UPDATE_METADATA_ACCOUNT_ARGS_V2 = CStruct(
    "data" / Option(DATA_V2),
    "update_authority" / Option(PUBKEY),
    "primary_sale_happened" / Option(Bool),
    "is_mutable" / Option(Bool),
)


# =============================================================================
# PDA + instructions
# =============================================================================


def find_metadata_pda(mint: Pubkey) -> tuple[Pubkey, int]:
    """Derive the metadata account address for `mint`.

    Seeds: ["metadata", token_metadata_program_id, mint].
    """
    return Pubkey.find_program_address(
        [METADATA_SEED, bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint)],
        TOKEN_METADATA_PROGRAM_ID,
    )


def create_metadata_account_v3_instruction(
    *,
    metadata: Pubkey,
    mint: Pubkey,
    mint_authority: Pubkey,
    payer: Pubkey,
    update_authority: Pubkey,
    data: DataV2,
    is_mutable: bool = True,
) -> Instruction:
    """Build CreateMetadataAccountV3 for a fungible mint (no collection details)."""
    data.validate()
    payload = CREATE_METADATA_ACCOUNT_ARGS_V3.build(
        {
            "data": data.to_container(),
            "is_mutable": is_mutable,
            "collection_details": None,
        }
    )
    accounts = [
        AccountMeta(pubkey=metadata, is_signer=False, is_writable=True),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=mint_authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(
            pubkey=update_authority,
            is_signer=update_authority == payer,
            is_writable=False,
        ),
        AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=RENT, is_signer=False, is_writable=False),
    ]
    return Instruction(
        TOKEN_METADATA_PROGRAM_ID,
        bytes([CREATE_METADATA_ACCOUNT_V3]) + payload,
        accounts,
    )


def update_metadata_account_v2_instruction(
    *,
    metadata: Pubkey,
    update_authority: Pubkey,
    data: DataV2 | None = None,
    new_update_authority: Pubkey | None = None,
    primary_sale_happened: bool | None = None,
    is_mutable: bool | None = None,
) -> Instruction:
    """Build UpdateMetadataAccountV2. `None` fields are left unchanged on-chain."""
    if data is not None:
        data.validate()
    payload = UPDATE_METADATA_ACCOUNT_ARGS_V2.build(
        {
            "data": None if data is None else data.to_container(),
            "update_authority": None
            if new_update_authority is None
            else bytes(new_update_authority),
            "primary_sale_happened": primary_sale_happened,
            "is_mutable": is_mutable,
        }
    )
    accounts = [
        AccountMeta(pubkey=metadata, is_signer=False, is_writable=True),
        AccountMeta(pubkey=update_authority, is_signer=True, is_writable=False),
    ]
    return Instruction(
        TOKEN_METADATA_PROGRAM_ID,
        bytes([UPDATE_METADATA_ACCOUNT_V2]) + payload,
        accounts,
    )


# =============================================================================
# Reading metadata accounts
# =============================================================================

# Account layout up to `is_mutable`; present on every metadata account.
METADATA_HEAD = CStruct(
    "key" / U8,
    "update_authority" / PUBKEY,
    "mint" / PUBKEY,
    "name" / String,
    "symbol" / String,
    "uri" / String,
    "seller_fee_basis_points" / U16,
    "creators" / Option(Vec(CREATOR)),
    "primary_sale_happened" / Bool,
    "is_mutable" / Bool,
)

# Trailing fields added by later program versions; absent on old accounts.
METADATA_TAIL = CStruct(
    "edition_nonce" / Option(U8),
    "token_standard" / Option(U8),
    "collection" / Option(COLLECTION),
    "uses" / Option(USES),
)


@dataclass(frozen=True)
class MetadataAccount:
    """Decoded metadata account (fields the scripts care about)."""

    update_authority: Pubkey
    mint: Pubkey
    data: DataV2
    primary_sale_happened: bool
    is_mutable: bool


def _unpad(s: str) -> str:
    # The program pads name/symbol/uri with NULs to their max length.
    return s.rstrip("\x00")


def decode_metadata_account(raw: bytes) -> MetadataAccount:
    """
    Decode the raw bytes of a metadata account.

    Raises:
        MetadataError: if the buffer is not a metadata account.
    """
    try:
        head = METADATA_HEAD.parse(raw)
    except ConstructError as e:
        raise MetadataError(f"Not a metadata account: {e}") from e
    try:
        tail = METADATA_TAIL.parse(raw[len(METADATA_HEAD.build(head)) :])
    except ConstructError:
        tail = None

    creators = None
    if head.creators is not None:
        creators = [
            Creator(Pubkey.from_bytes(c.address), c.verified, c.share)
            for c in head.creators
        ]
    collection = uses = None
    if tail is not None and tail.collection is not None:
        collection = Collection(tail.collection.verified, Pubkey.from_bytes(tail.collection.key))
    if tail is not None and tail.uses is not None:
        uses = Uses(UseMethod(tail.uses.use_method), tail.uses.remaining, tail.uses.total)

    return MetadataAccount(
        update_authority=Pubkey.from_bytes(head.update_authority),
        mint=Pubkey.from_bytes(head.mint),
        data=DataV2(
            name=_unpad(head.name),
            symbol=_unpad(head.symbol),
            uri=_unpad(head.uri),
            seller_fee_basis_points=head.seller_fee_basis_points,
            creators=creators,
            collection=collection,
            uses=uses,
        ),
        primary_sale_happened=head.primary_sale_happened,
        is_mutable=head.is_mutable,
    )


def fetch_metadata(client: Client, mint: Pubkey) -> MetadataAccount:
    """
    Load and decode the metadata account for `mint`.

    Raises:
        MetadataError: if no metadata account exists or it cannot be decoded.
    """
    pda, _ = find_metadata_pda(mint)
    info = client.get_account_info(pda).value
    if info is None:
        raise MetadataError(f"No metadata account for mint {mint} (expected at {pda})")
    if info.owner != TOKEN_METADATA_PROGRAM_ID:
        raise MetadataError(f"Account {pda} is not owned by the Token Metadata program")
    return decode_metadata_account(bytes(info.data))
