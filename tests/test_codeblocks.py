"""Tests for fenced code block extraction and the address index."""

from __future__ import annotations

import unittest

from eko.codeblocks import CodeBlockIndex, extract_code_blocks, split_segments


class ExtractCodeBlocksTests(unittest.TestCase):
    def test_single_block_with_language(self) -> None:
        blocks = extract_code_blocks("ab", "pre ```go\nfmt.Println()\n``` post")
        self.assertEqual(len(blocks), 1)
        block = blocks[0]
        self.assertEqual(block.id, "aba")
        self.assertEqual(block.language, "go")
        self.assertEqual(block.content, "fmt.Println()")
        self.assertEqual(block.owner_turn_id, "ab")

    def test_unterminated_fence_is_skipped(self) -> None:
        self.assertEqual(extract_code_blocks("ab", "```python\nprint(1)\n"), [])

    def test_blocks_numbered_in_order(self) -> None:
        content = "```sh\nls\n```\ntext\n```\nplain\n```"
        blocks = extract_code_blocks("ac", content)
        self.assertEqual([b.id for b in blocks], ["aca", "acb"])
        self.assertEqual(blocks[1].language, "")
        self.assertEqual(blocks[1].content, "plain")

    def test_language_tag_keeps_first_word(self) -> None:
        blocks = extract_code_blocks("aa", "```python title=x\npass\n```")
        self.assertEqual(blocks[0].language, "python")

    def test_blocks_beyond_alphabet_are_dropped(self) -> None:
        content = "".join(f"```\n{n}\n```\n" for n in range(30))
        blocks = extract_code_blocks("aa", content)
        self.assertEqual(len(blocks), 26)
        self.assertEqual(blocks[-1].id, "aaz")

    def test_segments_line_up_with_blocks(self) -> None:
        content = "intro\n```py\nx = 1\n```\noutro"
        segments = split_segments(content)
        self.assertEqual(
            segments, [("intro\n", None), ("x = 1", "py"), ("\noutro", None)]
        )


class CodeBlockIndexTests(unittest.TestCase):
    def test_lookup_trims_whitespace(self) -> None:
        index = CodeBlockIndex()
        index.rebuild("ab", "```go\nx\n```")
        block = index.get("  aba \n")
        self.assertIsNotNone(block)
        assert block is not None
        self.assertEqual(block.content, "x")
        self.assertIn("aba", index)

    def test_rebuild_replaces_owner_entries(self) -> None:
        index = CodeBlockIndex()
        index.rebuild("ab", "```\none\n```\n```\ntwo\n```")
        index.rebuild("ad", "```\nother\n```")
        index.rebuild("ab", "```\nreplaced\n```")
        self.assertEqual([b.content for b in index.blocks_for("ab")], ["replaced"])
        self.assertIsNone(index.get("abb"))
        self.assertEqual(index.get("ada").content, "other")  # type: ignore[union-attr]
        self.assertEqual(len(index), 2)

    def test_unknown_address(self) -> None:
        index = CodeBlockIndex()
        self.assertIsNone(index.get("zzz"))


if __name__ == "__main__":
    unittest.main()
