"""Sentence blocks and local formatting rules."""
from __future__ import annotations

from .blocks import (
    TextBlock,
    has_word_chars,
    leading_whitespace,
    normalize_block,
    split_into_blocks,
    trailing_whitespace,
)
from .miniscripts import run_mini_scripts, starts_sentence

__all__ = [
    "TextBlock",
    "has_word_chars",
    "leading_whitespace",
    "normalize_block",
    "run_mini_scripts",
    "split_into_blocks",
    "starts_sentence",
    "trailing_whitespace",
]
