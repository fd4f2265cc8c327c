# tokenmint/__init__.py
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Joltkin LLC.
"""Scripts for minting SPL tokens with Metaplex metadata on Solana."""

__version__ = "0.1.0"
