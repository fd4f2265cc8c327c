# tokenmint/core/constants.py
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Joltkin LLC.
"""
Solana program ids, account sizes and Metaplex limits.

Values here are fixed by the on-chain programs; keep them in one place so the
instruction builders and validators agree.
"""

from __future__ import annotations

from typing import Final

from solders.pubkey import Pubkey

# ---------------------------------------------------------------------------
# Economics
# ---------------------------------------------------------------------------

#: Lamports in one SOL.
LAMPORTS_PER_SOL: Final[int] = 1_000_000_000

#: Size in bytes of an SPL Token mint account.
MINT_SIZE: Final[int] = 82

# ---------------------------------------------------------------------------
# Metaplex Token Metadata program
# ---------------------------------------------------------------------------

TOKEN_METADATA_PROGRAM_ID: Final[Pubkey] = Pubkey.from_string(
    "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s"
)

#: PDA seed prefix for metadata accounts.
METADATA_SEED: Final[bytes] = b"metadata"

#: Instruction discriminators (first byte of instruction data).
CREATE_METADATA_ACCOUNT_V3: Final[int] = 33
UPDATE_METADATA_ACCOUNT_V2: Final[int] = 15

#: Field limits enforced by the program (in bytes, UTF-8 encoded).
MAX_NAME_LENGTH: Final[int] = 32
MAX_SYMBOL_LENGTH: Final[int] = 10
MAX_URI_LENGTH: Final[int] = 200
MAX_CREATOR_LIMIT: Final[int] = 5
MAX_SELLER_FEE_BASIS_POINTS: Final[int] = 10_000
