# tokenmint/services/token.py
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Joltkin LLC.
"""
SPL Token transaction assembly.

The create flow is one atomic transaction whose instruction order is fixed by
the token and metadata programs:

  1) system create_account for the mint (rent-exempt, owned by Token program)
  2) initialize_mint
  3) CreateMetadataAccountV3
  4) create_associated_token_account (only when the ATA does not exist yet)
  5) mint_to

Nothing here retries; RPC errors propagate to the calling script.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountParams, create_account
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    InitializeMintParams,
    MintToParams,
    create_associated_token_account,
    get_associated_token_address,
    initialize_mint,
    mint_to,
)

from ..core.constants import MINT_SIZE
from .metadata import DataV2, create_metadata_account_v3_instruction

log = logging.getLogger(__name__)

U64_MAX = 2**64 - 1


class TokenError(ValueError):
    """Invalid token parameters."""


class TokenAccountNotFoundError(TokenError):
    """No account exists at the token account address."""


class TokenInvalidAccountOwnerError(TokenError):
    """Account exists but is not owned by the SPL Token program."""


# =============================================================================
# Amounts & accounts
# =============================================================================


def to_base_units(amount: int | float | str | Decimal, decimals: int) -> int:
    """
    Convert a human amount to base units: `amount * 10**decimals`.

    Raises:
        TokenError: on negative amounts, out-of-range decimals, or amounts
            with more precision than `decimals` allows.
    """
    if not 0 <= decimals <= 9:
        raise TokenError(f"decimals must be in range [0..9] (got {decimals})")
    try:
        value = Decimal(str(amount))
    except InvalidOperation as e:
        raise TokenError(f"Invalid amount: {amount!r}") from e
    if not value.is_finite() or value < 0:
        raise TokenError(f"Amount must be a non-negative number (got {amount})")
    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise TokenError(f"Amount {amount} has more than {decimals} decimal places")
    if scaled > U64_MAX:
        raise TokenError(f"Amount {amount} exceeds the u64 token supply limit")
    return int(scaled)


def get_token_account(client: Client, address: Pubkey):
    """
    Fetch a token account, mirroring spl-token's `getAccount` checks.

    Raises:
        TokenAccountNotFoundError: no account at `address`.
        TokenInvalidAccountOwnerError: account is not owned by the Token program.
    """
    info = client.get_account_info(address).value
    if info is None:
        raise TokenAccountNotFoundError(f"Token account not found: {address}")
    if info.owner != TOKEN_PROGRAM_ID:
        raise TokenInvalidAccountOwnerError(
            f"Account {address} is owned by {info.owner}, not the Token program"
        )
    return info


def mint_rent_lamports(client: Client) -> int:
    """Minimum lamports for a rent-exempt mint account."""
    return client.get_minimum_balance_for_rent_exemption(MINT_SIZE).value


# =============================================================================
# Instruction assembly
# =============================================================================


@dataclass(frozen=True)
class TokenPlan:
    """Addresses and amounts resolved before the create transaction is built."""

    payer: Pubkey
    mint: Pubkey
    metadata: Pubkey
    ata: Pubkey
    decimals: int
    amount: int  # base units
    rent_lamports: int


def ata_instruction_if_missing(
    client: Client, payer: Pubkey, ata: Pubkey, owner: Pubkey, mint: Pubkey
) -> Instruction | None:
    """Return an ATA-create instruction when `ata` does not exist yet."""
    try:
        get_token_account(client, ata)
    except (TokenAccountNotFoundError, TokenInvalidAccountOwnerError):
        return create_associated_token_account(payer, owner, mint)
    log.info("associated token account %s already exists", ata)
    return None


def build_create_token_instructions(
    client: Client,
    plan: TokenPlan,
    data: DataV2,
    *,
    is_mutable: bool = True,
) -> list[Instruction]:
    """Ordered instructions that create the mint + metadata and mint `plan.amount`."""
    ixs: list[Instruction] = [
        create_account(
            CreateAccountParams(
                from_pubkey=plan.payer,
                to_pubkey=plan.mint,
                lamports=plan.rent_lamports,
                space=MINT_SIZE,
                owner=TOKEN_PROGRAM_ID,
            )
        ),
        initialize_mint(
            InitializeMintParams(
                decimals=plan.decimals,
                program_id=TOKEN_PROGRAM_ID,
                mint=plan.mint,
                mint_authority=plan.payer,
                freeze_authority=plan.payer,
            )
        ),
        create_metadata_account_v3_instruction(
            metadata=plan.metadata,
            mint=plan.mint,
            mint_authority=plan.payer,
            payer=plan.payer,
            update_authority=plan.payer,
            data=data,
            is_mutable=is_mutable,
        ),
    ]

    ata_ix = ata_instruction_if_missing(client, plan.payer, plan.ata, plan.payer, plan.mint)
    if ata_ix is not None:
        ixs.append(ata_ix)

    ixs.append(
        mint_to(
            MintToParams(
                program_id=TOKEN_PROGRAM_ID,
                mint=plan.mint,
                dest=plan.ata,
                mint_authority=plan.payer,
                amount=plan.amount,
            )
        )
    )
    return ixs


def plan_token(
    client: Client, payer: Pubkey, mint: Pubkey, metadata: Pubkey, *, decimals: int, amount
) -> TokenPlan:
    """Resolve rent, ATA address and base-unit amount for a new mint."""
    return TokenPlan(
        payer=payer,
        mint=mint,
        metadata=metadata,
        ata=get_associated_token_address(payer, mint),
        decimals=decimals,
        amount=to_base_units(amount, decimals),
        rent_lamports=mint_rent_lamports(client),
    )


# =============================================================================
# Submission
# =============================================================================


def send_and_confirm(
    client: Client, instructions: Sequence[Instruction], signers: Sequence[Keypair]
) -> str:
    """
    Sign `instructions` with `signers` (first signer pays fees), submit, and
    block until the transaction is confirmed.

    Returns:
        The transaction signature (base58).
    """
    if not signers:
        raise ValueError("At least one signer (the fee payer) is required")
    latest = client.get_latest_blockhash().value
    msg = Message.new_with_blockhash(
        list(instructions), signers[0].pubkey(), latest.blockhash
    )
    txn = Transaction(list(signers), msg, latest.blockhash)
    resp = client.send_transaction(
        txn,
        opts=TxOpts(
            skip_confirmation=False,
            preflight_commitment=Confirmed,
            last_valid_block_height=latest.last_valid_block_height,
        ),
    )
    return str(resp.value)
