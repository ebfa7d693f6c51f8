from __future__ import annotations

import threading
import unittest
from unittest import mock

from src.lib.editor.options import EditorSettings
from src.lib.editor.runtime import TickRunner, run_until_settled
from src.lib.editor.session import EditSession
from tests.fakes import FakeClock, InlineExecutor, RecordingBackend


class RunUntilSettledTests(unittest.TestCase):
    def test_runs_pipeline_to_completion(self) -> None:
        clock = FakeClock()
        backend = RecordingBackend()
        session = EditSession(settings=EditorSettings(), backend=backend, executor=InlineExecutor(), time_source=clock)
        self.addCleanup(session.close)
        session.apply_edit("hello world. ")

        outcome = run_until_settled(session, interval=0.5, sleep=clock.advance, time_source=clock)

        self.assertEqual(outcome, "idle")
        self.assertEqual(session.text, "Hello world. ")
        self.assertEqual(session.offsets.committed, len(session.text))
        self.assertIn("Hello world.", session.state.finalized)
        self.assertEqual(backend.operations(), ["fix_and_finalize"])

    def test_raises_when_pipeline_never_settles(self) -> None:
        clock = FakeClock()
        session = mock.Mock()
        session.settings.tick_seconds = 0.1
        session.tick.return_value = "debounced"
        session.has_pending.return_value = False

        with self.assertRaises(TimeoutError):
            run_until_settled(session, timeout=1.0, sleep=clock.advance, time_source=clock)


class TickRunnerTests(unittest.TestCase):
    def test_loop_survives_tick_errors(self) -> None:
        reached = threading.Event()
        calls = []

        def tick() -> str:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            if len(calls) >= 3:
                reached.set()
            return "idle"

        session = mock.Mock()
        session.id = "0123456789abcdef"
        session.settings.tick_seconds = 0.01
        session.tick.side_effect = tick

        runner = TickRunner(session)
        with self.assertLogs("src.lib.editor.runtime", level="ERROR"):
            runner.start()
            self.assertTrue(reached.wait(2.0))
            self.assertTrue(runner.running)
            runner.stop()

        self.assertFalse(runner.running)
        self.assertGreaterEqual(len(calls), 3)

    def test_interval_defaults_to_settings(self) -> None:
        session = mock.Mock()
        session.settings.tick_seconds = 0.25

        self.assertEqual(TickRunner(session).interval, 0.25)
        self.assertEqual(TickRunner(session, interval=0.1).interval, 0.1)


if __name__ == "__main__":
    unittest.main()
