"""Tests for the conversation log."""

from __future__ import annotations

from datetime import UTC, datetime
import unittest

from eko.conversation import ConversationLog, Role


class ConversationLogTests(unittest.TestCase):
    """Validate ordering, identifiers, and in-place updates."""

    def test_append_assigns_sequential_ids(self) -> None:
        log = ConversationLog()
        first = log.append(Role.USER, "hi")
        second = log.append(Role.ASSISTANT)
        self.assertEqual((first.id, second.id), ("aa", "ab"))
        self.assertEqual([t.id for t in log], ["aa", "ab"])
        self.assertTrue(log.is_last("ab"))
        self.assertFalse(log.is_last("aa"))

    def test_append_content_keeps_identity(self) -> None:
        log = ConversationLog()
        turn = log.append(Role.ASSISTANT)
        log.append_content(turn.id, "a")
        updated = log.append_content(turn.id, "b")
        self.assertEqual(updated.id, turn.id)
        self.assertEqual(updated.content, "ab")
        self.assertEqual(updated.created_at, turn.created_at)
        self.assertEqual(turn.content, "")

    def test_update_unknown_turn_raises(self) -> None:
        log = ConversationLog()
        with self.assertRaises(KeyError):
            log.append_content("zz", "x")

    def test_last_content_by_role(self) -> None:
        log = ConversationLog()
        self.assertEqual(log.last_content(Role.USER), "")
        log.append(Role.USER, "one")
        log.append(Role.ASSISTANT, "reply")
        log.append(Role.USER, "two")
        self.assertEqual(log.last_content(Role.USER), "two")
        self.assertEqual(log.last_content(Role.ASSISTANT), "reply")

    def test_collapse_and_expand(self) -> None:
        log = ConversationLog()
        short = log.append(Role.USER, "x" * 100)
        long = log.append(Role.ASSISTANT, "y" * 101)
        self.assertEqual(log.collapse_longer_than(100), 1)
        self.assertFalse(log.get(short.id).collapsed)  # type: ignore[union-attr]
        self.assertTrue(log.get(long.id).collapsed)  # type: ignore[union-attr]
        self.assertEqual(log.expand_all(), 1)
        self.assertFalse(log.get(long.id).collapsed)  # type: ignore[union-attr]

    def test_history_excludes_target(self) -> None:
        log = ConversationLog()
        log.append(Role.USER, "question")
        placeholder = log.append(Role.ASSISTANT)
        self.assertEqual(
            log.history(exclude_turn_id=placeholder.id),
            [{"role": "user", "content": "question"}],
        )

    def test_export_record_shape(self) -> None:
        log = ConversationLog()
        stamp = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)
        turn = log.append(Role.USER, "hello", created_at=stamp)
        self.assertEqual(
            turn.to_record(),
            {
                "id": "aa",
                "role": "user",
                "content": "hello",
                "collapsed": False,
                "timestamp": "2024-01-02T03:04:05+00:00",
            },
        )


if __name__ == "__main__":
    unittest.main()
