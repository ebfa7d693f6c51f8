from __future__ import annotations

import contextlib
import io
import json
import tempfile
import unittest
from pathlib import Path

from src.cmd import cli


class CLIArgumentTests(unittest.TestCase):
    def test_defaults_to_correct_command(self) -> None:
        args = cli.parse_args(["notes.txt"])

        self.assertEqual(args.command, "correct")
        self.assertEqual(args.inputs, ["notes.txt"])
        self.assertIsNone(args.backend)
        self.assertFalse(args.no_dictionary)
        self.assertEqual(args.timeout, 120.0)

    def test_check_command_options(self) -> None:
        args = cli.parse_args(["check", "a.txt", "b.txt", "--worker-mode", "process", "--language", "ru"])

        self.assertEqual(args.command, "check")
        self.assertEqual(args.inputs, ["a.txt", "b.txt"])
        self.assertEqual(args.worker_mode, "process")
        self.assertEqual(args.language, "ru")

    def test_non_positive_timeout_is_rejected(self) -> None:
        args = cli.parse_args(["correct", "a.txt", "--timeout", "0"])

        with self.assertRaises(ValueError):
            cli.run_cli(args)


class CLICorrectTests(unittest.TestCase):
    def test_correct_runs_session_until_settled(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            source = Path(tmpdir) / "note.txt"
            source.write_text("hello world.", encoding="utf-8")

            args = cli.parse_args(["correct", str(source), "--backend", "passthrough", "--no-dictionary"])
            results = cli.run_cli(args)

        self.assertEqual(len(results), 1)
        result = results[0]
        self.assertEqual(result.source, str(source))
        self.assertEqual(result.original, "hello world.")
        self.assertEqual(result.text, "Hello world.")
        self.assertEqual(result.failures, 0)
        self.assertIsNone(result.saved_to)

    def test_save_writes_numbered_snapshots(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            first = Path(tmpdir) / "a.txt"
            second = Path(tmpdir) / "b.txt"
            first.write_text("one.", encoding="utf-8")
            second.write_text("two.", encoding="utf-8")
            target = Path(tmpdir) / "out" / "session.json"

            args = cli.parse_args(
                [
                    "correct",
                    str(first),
                    str(second),
                    "--backend",
                    "passthrough",
                    "--no-dictionary",
                    "--save",
                    str(target),
                ]
            )
            results = cli.run_cli(args)

            self.assertEqual([result.saved_to.name for result in results], ["session_1.json", "session_2.json"])
            data = json.loads(results[1].saved_to.read_text(encoding="utf-8"))

        self.assertEqual(data["text"], "Two.")
        self.assertEqual(data["committed"], 4)

    def test_main_prints_plain_text(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            source = Path(tmpdir) / "note.txt"
            source.write_text("hello world.", encoding="utf-8")

            buffer = io.StringIO()
            with contextlib.redirect_stdout(buffer):
                cli.main([str(source), "--backend", "passthrough", "--no-dictionary", "--plain-text"])

        self.assertEqual(buffer.getvalue(), "Hello world.\n")

    def test_missing_input_exits_with_message(self) -> None:
        with self.assertRaises(SystemExit) as ctx:
            cli.main(["correct", "/nonexistent/input.txt", "--backend", "passthrough"])

        self.assertIn("補正に失敗しました", str(ctx.exception.code))


class CLICheckTests(unittest.TestCase):
    def test_check_reports_unknown_words(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            wordlists = Path(tmpdir) / "words"
            wordlists.mkdir()
            (wordlists / "en.txt").write_text("hello\n", encoding="utf-8")
            source = Path(tmpdir) / "note.txt"
            source.write_text("hello wrld", encoding="utf-8")

            args = cli.parse_args(["check", str(source), "--wordlist-dir", str(wordlists), "--language", "en"])
            results = cli.run_cli(args)

            buffer = io.StringIO()
            with contextlib.redirect_stdout(buffer):
                cli.main(
                    ["check", str(source), "--wordlist-dir", str(wordlists), "--language", "en", "--plain-text"]
                )

        self.assertEqual(results[0].unknown_words, ["wrld"])
        self.assertEqual(results[0].segments, ["wrld"])
        self.assertEqual(buffer.getvalue(), "wrld\n")


if __name__ == "__main__":
    unittest.main()
