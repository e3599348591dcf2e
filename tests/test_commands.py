"""Tests for ``:`` command parsing."""

from __future__ import annotations

from datetime import UTC, datetime
import unittest

from eko.commands import CommandName, ParsedCommand, export_filename, parse_command


class ParseCommandTests(unittest.TestCase):
    def test_known_commands(self) -> None:
        self.assertEqual(parse_command("config"), ParsedCommand(CommandName.CONFIG))
        self.assertEqual(parse_command("tldr"), ParsedCommand(CommandName.TLDR))
        self.assertEqual(parse_command("verbose"), ParsedCommand(CommandName.VERBOSE))
        self.assertEqual(parse_command("q"), ParsedCommand(CommandName.QUIT))
        self.assertEqual(parse_command("quit"), ParsedCommand(CommandName.QUIT))

    def test_arguments_are_split(self) -> None:
        self.assertEqual(
            parse_command("  save   my-chat "),
            ParsedCommand(CommandName.SAVE, ("my-chat",)),
        )

    def test_leading_colon_tolerated(self) -> None:
        self.assertEqual(parse_command(":q"), ParsedCommand(CommandName.QUIT))

    def test_empty_and_unknown(self) -> None:
        self.assertIsNone(parse_command(""))
        self.assertIsNone(parse_command("   "))
        self.assertIsNone(parse_command("wq"))


class ExportFilenameTests(unittest.TestCase):
    def test_suffix_appended_when_missing(self) -> None:
        self.assertEqual(export_filename("notes"), "notes.json")
        self.assertEqual(export_filename("notes.json"), "notes.json")

    def test_default_name_is_timestamped(self) -> None:
        now = datetime(2024, 5, 6, 7, 8, 9, tzinfo=UTC)
        self.assertEqual(export_filename(None, now=now), "eko-20240506-070809.json")
        self.assertEqual(export_filename("  ", now=now), "eko-20240506-070809.json")


if __name__ == "__main__":
    unittest.main()
