from __future__ import annotations

import unittest

from src.lib.editor.options import EditorSettings
from src.lib.editor.session import EditSession
from src.lib.editor.types import ProgressOffsets
from tests.fakes import FakeClock, InlineExecutor, ManualExecutor, RecordingBackend


class SessionTestCase(unittest.TestCase):
    def make_session(self, *, backend=None, executor=None, **overrides) -> EditSession:
        self.clock = FakeClock()
        self.backend = backend or RecordingBackend()
        session = EditSession(
            settings=EditorSettings().update(**overrides),
            backend=self.backend,
            executor=executor or InlineExecutor(),
            time_source=self.clock,
        )
        self.addCleanup(session.close)
        return session


class EditTests(SessionTestCase):
    def test_large_edits_are_tagged_as_paste_or_cut(self) -> None:
        session = self.make_session()

        session.apply_edit("hello world")
        self.assertEqual(session.history.current.tags, ("paste",))

        session.apply_edit("hello")
        self.assertEqual(session.history.current.tags, ("cut",))
        self.assertEqual(session.status, "typing")

    def test_identical_text_is_ignored(self) -> None:
        session = self.make_session()
        session.apply_edit("hello")
        size = len(session.history)

        session.apply_edit("hello")

        self.assertEqual(len(session.history), size)

    def test_typing_checkpoint_after_pause(self) -> None:
        session = self.make_session(mini_scripts=False)

        session.apply_edit("a")
        self.assertEqual(len(session.history), 1)

        self.clock.advance(1.1)
        session.tick()

        self.assertEqual(len(session.history), 2)
        self.assertEqual(session.history.current.text, "a")
        self.assertEqual(session.history.current.tags, ("typing",))

    def test_typing_idle_returns_status_to_rest(self) -> None:
        session = self.make_session(mini_scripts=False)
        session.apply_edit("a")

        self.clock.advance(2.0)
        session.tick()

        self.assertEqual(session.status, "idle")


class TranscriptionTests(SessionTestCase):
    def test_dictation_is_appended_as_corrected(self) -> None:
        session = self.make_session()
        session.apply_edit("Typed")

        self.assertTrue(session.insert_transcription("hello world.", source="dictation"))

        self.assertEqual(session.text, "Typed hello world.")
        self.assertEqual(session.offsets.corrected, len(session.text))
        self.assertEqual(session.offsets.checked, len(session.text))
        self.assertEqual(session.offsets.committed, 0)
        self.assertEqual(session.history.current.tags, ("dictated",))
        self.assertEqual(session.status, "done")

    def test_blank_transcription_is_ignored(self) -> None:
        session = self.make_session()

        self.assertFalse(session.insert_transcription("   "))
        self.assertEqual(session.text, "")

    def test_unknown_source_raises(self) -> None:
        session = self.make_session()

        with self.assertRaises(ValueError):
            session.insert_transcription("text", source="keyboard")

    def test_recording_holds_status_and_blocks_ai(self) -> None:
        session = self.make_session()
        session.start_recording()

        session.apply_edit("i went there. ")
        self.assertEqual(session.status, "recording")

        self.clock.advance(1.0)
        self.assertEqual(session.tick(), "script_fix")
        self.assertEqual(session.tick(), "advanced")
        self.assertEqual(session.tick(), "idle")
        self.assertEqual(self.backend.calls, [])

        self.clock.advance(2.0)
        session.tick()
        self.assertEqual(session.status, "recording")

        session.stop_recording(pending=1)
        self.assertEqual(session.status, "transcribing")
        session.insert_transcription("It was fun.", source="ocr")
        self.assertEqual(session.state.transcribing, 0)
        self.assertEqual(session.history.current.tags, ("ocr",))


class HistoryTests(SessionTestCase):
    def test_undo_flushes_pending_typing_checkpoint(self) -> None:
        session = self.make_session(mini_scripts=False)
        session.apply_edit("a")
        session.apply_edit("ab")

        entry = session.undo()

        self.assertEqual(entry.tags, ("init",))
        self.assertEqual(session.text, "")
        self.assertEqual(session.redo().text, "ab")
        self.assertEqual(session.text, "ab")

    def test_undo_at_start_returns_none(self) -> None:
        session = self.make_session()

        self.assertIsNone(session.undo())
        self.assertIsNone(session.redo())
        self.assertTrue(session.state.enabled)

    def test_jump_to(self) -> None:
        session = self.make_session()
        session.apply_edit("hello world")
        session.apply_edit("hello")

        entry = session.jump_to(1)

        self.assertEqual(entry.text, "hello world")
        self.assertEqual(session.text, "hello world")
        self.assertEqual(session.status, "paused")
        with self.assertRaises(IndexError):
            session.jump_to(10)


class ControlTests(SessionTestCase):
    def test_set_enabled_toggles_paused_status(self) -> None:
        session = self.make_session()

        session.set_enabled(False)
        self.assertEqual(session.status, "paused")
        session.set_enabled(True)
        self.assertEqual(session.status, "idle")

    def test_reset_to_start_and_accept(self) -> None:
        session = self.make_session()
        session.load_state(text="helo wrld", offsets=ProgressOffsets(0, 4, 4, 4))
        session.state.unknown_words = ["helo"]

        session.reset(accept=True)
        self.assertEqual(session.offsets, ProgressOffsets(9, 9, 9, 9))
        self.assertEqual(session.state.unknown_words, [])

        session.reset()
        self.assertEqual(session.offsets, ProgressOffsets())
        self.assertEqual(session.text, "helo wrld")

    def test_clear_resets_everything(self) -> None:
        session = self.make_session()
        session.load_state(text="Done. ", offsets=ProgressOffsets(6, 6, 6, 6), finalized=["Done."])
        session.apply_edit("Done. More")

        session.clear()

        self.assertEqual(session.text, "")
        self.assertEqual(session.offsets, ProgressOffsets())
        self.assertEqual(len(session.state.finalized), 0)
        self.assertEqual(len(session.history), 1)

    def test_enhance_rewrites_whole_uncommitted_region(self) -> None:
        executor = ManualExecutor()
        backend = RecordingBackend({"enhance": "Some polished text."})
        session = self.make_session(backend=backend, executor=executor)
        session.load_state(text="some rough text", offsets=ProgressOffsets())

        self.assertTrue(session.enhance())
        self.assertFalse(session.enhance())
        self.assertEqual(session.status, "enhancing")

        executor.run_all()
        self.assertEqual(session.tick(), "applied")

        self.assertEqual(session.text, "Some polished text.")
        self.assertEqual(session.offsets, ProgressOffsets(19, 19, 19, 19))
        self.assertIn("Some polished text.", session.state.finalized)
        self.assertEqual(session.history.current.tags, ("enhanced",))

    def test_enhance_refuses_blank_buffer(self) -> None:
        session = self.make_session()

        self.assertFalse(session.enhance())

    def test_listener_can_be_removed(self) -> None:
        session = self.make_session()
        events = []
        remove = session.add_status_listener(lambda before, after: events.append(after))

        session.set_enabled(False)
        remove()
        session.set_enabled(True)

        self.assertEqual(events, ["paused"])

    def test_describe_reports_state(self) -> None:
        session = self.make_session()
        session.apply_edit("hello world")

        state = session.describe()

        self.assertEqual(state["id"], session.id)
        self.assertEqual(state["text"], "hello world")
        self.assertEqual(state["status"], "typing")
        self.assertEqual(state["offsets"], {"committed": 0, "corrected": 0, "checked": 0, "checking": 0})
        self.assertEqual(state["unknown_segments"], [])
        self.assertEqual(state["history_size"], 2)
        self.assertTrue(state["can_undo"])
        self.assertFalse(state["can_redo"])
        self.assertEqual(state["stats"], {"corrections": 0, "failures": 0})

    def test_closed_session_ticks_idle(self) -> None:
        session = EditSession(settings=EditorSettings(), time_source=FakeClock())
        session.apply_edit("hello")

        session.close()
        session.close()

        self.assertEqual(session.tick(), "idle")


if __name__ == "__main__":
    unittest.main()
