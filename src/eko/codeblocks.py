"""Fenced code block extraction and the per-session address index."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
import logging
import re

from .identifiers import MAX_BLOCKS_PER_TURN, code_block_id

LOGGER = logging.getLogger(__name__)

_FENCE_RE = re.compile(
    r"```(?P<lang>[^\n`]*)\n(?P<code>.*?)```",
    re.DOTALL,
)


@dataclass(frozen=True)
class CodeBlock:
    """A fenced code region addressable by ``id``."""

    id: str
    language: str
    content: str
    owner_turn_id: str


def extract_code_blocks(owner_turn_id: str, content: str) -> list[CodeBlock]:
    """Return the complete fenced blocks of ``content`` in order of appearance.

    A fence without a closing marker never matches, so partial blocks of a
    response that is still streaming are not extracted.
    """
    blocks: list[CodeBlock] = []
    for index, match in enumerate(_FENCE_RE.finditer(content)):
        if index >= MAX_BLOCKS_PER_TURN:
            LOGGER.debug(
                "codeblocks.overflow",
                extra={
                    "event": "codeblocks.overflow",
                    "turn_id": owner_turn_id,
                    "limit": MAX_BLOCKS_PER_TURN,
                },
            )
            break
        tag = match.group("lang").strip()
        language = tag.split()[0] if tag else ""
        blocks.append(
            CodeBlock(
                id=code_block_id(owner_turn_id, index),
                language=language,
                content=match.group("code").strip("\r\n"),
                owner_turn_id=owner_turn_id,
            )
        )
    return blocks


def split_segments(content: str) -> list[tuple[str, str | None]]:
    """Split ``content`` into alternating prose and code segments.

    Returns ``(text, language)`` tuples where ``language`` is ``None`` for
    prose. Code segments line up one-to-one with :func:`extract_code_blocks`.
    """
    segments: list[tuple[str, str | None]] = []
    cursor = 0
    for match in _FENCE_RE.finditer(content):
        start, end = match.span()
        if start > cursor:
            prose = content[cursor:start]
            if prose.strip():
                segments.append((prose, None))
        tag = match.group("lang").strip()
        segments.append(
            (match.group("code").strip("\r\n"), tag.split()[0] if tag else "")
        )
        cursor = end
    tail = content[cursor:]
    if tail.strip():
        segments.append((tail, None))
    return segments


class CodeBlockIndex:
    """Map code block addresses to blocks, rebuilt per owning turn."""

    def __init__(self) -> None:
        self._blocks: dict[str, CodeBlock] = {}
        self._by_owner: dict[str, list[str]] = {}

    def __len__(self) -> int:
        return len(self._blocks)

    def __contains__(self, block_id: object) -> bool:
        return block_id in self._blocks

    def __iter__(self) -> Iterator[CodeBlock]:
        return iter(list(self._blocks.values()))

    def rebuild(self, owner_turn_id: str, content: str) -> list[CodeBlock]:
        """Replace every entry owned by ``owner_turn_id`` with a fresh scan."""
        for stale_id in self._by_owner.pop(owner_turn_id, []):
            self._blocks.pop(stale_id, None)
        blocks = extract_code_blocks(owner_turn_id, content)
        for block in blocks:
            self._blocks[block.id] = block
        if blocks:
            self._by_owner[owner_turn_id] = [block.id for block in blocks]
        LOGGER.debug(
            "codeblocks.rebuilt",
            extra={
                "event": "codeblocks.rebuilt",
                "turn_id": owner_turn_id,
                "count": len(blocks),
            },
        )
        return blocks

    def get(self, block_id: str) -> CodeBlock | None:
        return self._blocks.get(block_id.strip())

    def blocks_for(self, owner_turn_id: str) -> list[CodeBlock]:
        return [self._blocks[i] for i in self._by_owner.get(owner_turn_id, [])]

    def clear(self) -> None:
        self._blocks.clear()
        self._by_owner.clear()
