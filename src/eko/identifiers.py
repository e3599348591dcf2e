"""Deterministic short identifiers for turns and code blocks."""

from __future__ import annotations

import string

ALPHABET = string.ascii_lowercase
TURN_ID_WIDTH = 2
MAX_BLOCKS_PER_TURN = len(ALPHABET)


def turn_id(ordinal: int) -> str:
    """Return the turn identifier for the ``ordinal``-th turn of a session.

    Identifiers are base-26 numerals over ``a``-``z`` left-padded with ``a`` to
    two characters: ``0 -> "aa"``, ``25 -> "az"``, ``26 -> "ba"``. Past
    ``675 -> "zz"`` the numeral simply grows a digit (``676 -> "baa"``), which
    keeps the mapping injective.
    """
    if ordinal < 0:
        raise ValueError("Turn ordinal must be non-negative.")
    digits: list[str] = []
    value = ordinal
    while value:
        value, remainder = divmod(value, len(ALPHABET))
        digits.append(ALPHABET[remainder])
    encoded = "".join(reversed(digits))
    return encoded.rjust(TURN_ID_WIDTH, ALPHABET[0])


def code_block_id(owner_turn_id: str, index: int) -> str:
    """Return the address of the ``index``-th code block inside a turn."""
    if not 0 <= index < MAX_BLOCKS_PER_TURN:
        raise ValueError(
            f"Code block index {index} is outside 0..{MAX_BLOCKS_PER_TURN - 1}."
        )
    return f"{owner_turn_id}{ALPHABET[index]}"


class TurnIdAllocator:
    """Hand out turn identifiers from a monotonically increasing counter."""

    def __init__(self) -> None:
        self._next = 0

    @property
    def allocated(self) -> int:
        return self._next

    def allocate(self) -> str:
        value = turn_id(self._next)
        self._next += 1
        return value
