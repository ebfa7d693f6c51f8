from __future__ import annotations

import unittest

from src.lib.editor.finalized import FinalizedSet
from src.lib.editor.history import HistoryStore
from src.lib.editor.options import EditorSettings
from src.lib.editor.pipeline import edit_position, sentence_start, word_start
from src.lib.editor.timers import NamedTimers
from src.lib.editor.types import PendingCorrection, ProgressOffsets, RangeError, validate_range
from tests.fakes import FakeClock


class FinalizedSetTests(unittest.TestCase):
    def test_matches_normalized_content(self) -> None:
        finalized = FinalizedSet()

        self.assertTrue(finalized.add("  Hello world. "))
        self.assertFalse(finalized.add("Hello world."))
        self.assertFalse(finalized.add("   "))
        self.assertTrue(finalized.has("Hello world.\n"))
        self.assertIn("Hello world.", finalized)
        self.assertNotIn("Other.", finalized)

    def test_snapshot_and_restore(self) -> None:
        finalized = FinalizedSet(["B.", "A."])
        snapshot = finalized.snapshot()
        finalized.add("C.")

        finalized.restore(snapshot)

        self.assertEqual(list(finalized), ["A.", "B."])
        finalized.clear()
        self.assertEqual(len(finalized), 0)


class NamedTimersTests(unittest.TestCase):
    def test_pop_due_returns_expired_in_deadline_order(self) -> None:
        clock = FakeClock()
        timers = NamedTimers(clock)
        timers.arm("slow", 1.0)
        timers.arm("fast", 0.5)

        clock.advance(0.6)
        self.assertEqual(timers.pop_due(), ["fast"])
        clock.advance(1.0)
        self.assertEqual(timers.pop_due(), ["slow"])
        self.assertEqual(timers.pop_due(), [])

    def test_rearm_and_cancel(self) -> None:
        clock = FakeClock()
        timers = NamedTimers(clock)
        timers.arm("typing", 1.0)
        clock.advance(0.8)
        timers.arm("typing", 1.0)
        clock.advance(0.8)

        self.assertEqual(timers.pop_due(), [])
        self.assertTrue(timers.cancel("typing"))
        self.assertFalse(timers.cancel("typing"))
        self.assertFalse(timers.is_armed("typing"))


class ProgressOffsetsTests(unittest.TestCase):
    def test_clamp_restores_ordering(self) -> None:
        offsets = ProgressOffsets(committed=5, corrected=2, checked=9, checking=3).clamp(8)

        self.assertEqual(offsets.as_dict(), {"committed": 5, "corrected": 5, "checked": 8, "checking": 8})

    def test_validate_range(self) -> None:
        validate_range(0, 3, 3)
        with self.assertRaises(RangeError):
            validate_range(2, 5, 4)
        with self.assertRaises(RangeError):
            validate_range(3, 2, 4)

    def test_pending_shift_and_overlap(self) -> None:
        pending = PendingCorrection(
            id=1, kind="fix_typos", start=4, end=8, snapshot="abcd", submitted_at=0.0
        )
        pending.shift(3)

        self.assertEqual((pending.start, pending.end), (7, 11))
        self.assertTrue(pending.overlaps(10, 12))
        self.assertFalse(pending.overlaps(11, 12))


class HistoryStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.history = HistoryStore(capacity=3, clock=FakeClock())

    def _checkpoint(self, text: str, committed: int = 0, tags=("typing",)):
        return self.history.checkpoint(text, ProgressOffsets(committed=committed), [], tags)

    def test_duplicate_checkpoints_are_skipped(self) -> None:
        self.assertIsNotNone(self._checkpoint("a"))
        self.assertIsNone(self._checkpoint("a"))
        self.assertIsNotNone(self._checkpoint("a", tags=("pre_ai",)))
        self.assertEqual(len(self.history), 3)

    def test_capacity_evicts_oldest(self) -> None:
        for text in ("a", "ab", "abc"):
            self._checkpoint(text)

        self.assertEqual([entry.text for entry in self.history.entries], ["a", "ab", "abc"])
        self.assertEqual(self.history.cursor, 2)

    def test_undo_redo_and_truncation(self) -> None:
        for text in ("a", "ab"):
            self._checkpoint(text)

        self.assertEqual(self.history.undo().text, "a")
        self.assertEqual(self.history.undo().text, "")
        self.assertIsNone(self.history.undo())
        self.assertEqual(self.history.redo().text, "a")

        self._checkpoint("x")

        self.assertEqual([entry.text for entry in self.history.entries], ["", "a", "x"])
        self.assertFalse(self.history.can_redo())

    def test_jump_to_out_of_range(self) -> None:
        with self.assertRaises(IndexError):
            self.history.jump_to(5)

    def test_checkpoint_restores_offsets_with_checking_equal_to_checked(self) -> None:
        entry = self.history.checkpoint("hello", ProgressOffsets(1, 3, 4, 5), ["Hi."], ("pre_ai",))

        self.assertEqual(entry.offsets, ProgressOffsets(1, 3, 4, 4))
        self.assertEqual(entry.finalized, frozenset({"Hi."}))

    def test_clear_keeps_single_initial_entry(self) -> None:
        self._checkpoint("a")
        self.history.clear("seed", ProgressOffsets())

        self.assertEqual(len(self.history), 1)
        self.assertEqual(self.history.current.tags, ("init",))
        self.assertEqual(self.history.current.committed, 0)


class EditorSettingsTests(unittest.TestCase):
    def test_from_mapping_coerces_and_ignores_unknown(self) -> None:
        settings = EditorSettings.from_mapping({"fix_typos": "off", "debounce_seconds": "0.2", "unknown": 1})

        self.assertFalse(settings.fix_typos)
        self.assertEqual(settings.debounce_seconds, 0.2)

    def test_from_env(self) -> None:
        settings = EditorSettings.from_env({"LIVEFIX_LANGUAGE": "ru", "LIVEFIX_MINI_SCRIPTS": "0"})

        self.assertEqual(settings.language, "ru")
        self.assertFalse(settings.mini_scripts)

    def test_invalid_values_raise(self) -> None:
        with self.assertRaises(ValueError):
            EditorSettings().update(ai_timeout=-1)
        with self.assertRaises(ValueError):
            EditorSettings().update(enabled="maybe")

    def test_as_dict_round_trip(self) -> None:
        settings = EditorSettings(language="ru", min_check_words=5)

        self.assertEqual(EditorSettings.from_mapping(settings.as_dict()), settings)


class PositionHelperTests(unittest.TestCase):
    def test_edit_inside_word_starts_at_word(self) -> None:
        self.assertEqual(edit_position("hello world", "hello wXorld"), 6)
        self.assertEqual(edit_position("hello", "hello there"), 5)

    def test_sentence_and_word_start(self) -> None:
        text = "One two. Three four"

        self.assertEqual(sentence_start(text, 15), 9)
        self.assertEqual(sentence_start(text, 9), 9)
        self.assertEqual(word_start(text, 12), 9)
        self.assertEqual(word_start(text, 12, floor=11), 11)


if __name__ == "__main__":
    unittest.main()
