from __future__ import annotations

import unittest

from fastapi.testclient import TestClient

from src.cmd.http import create_app
from tests.fakes import FakeChecker, InlineExecutor, RecordingBackend

_FAST_SETTINGS = {"debounce_seconds": 0, "mini_scripts": False, "language": "en"}


class SessionEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self.backend = RecordingBackend()
        self.checker = FakeChecker(known=["hello", "world"])
        app = create_app(
            backend=self.backend,
            checker=self.checker,
            executor=InlineExecutor(),
            start_tickers=False,
        )
        self.client = TestClient(app)

    def _create(self, text: str = "helo world") -> dict:
        response = self.client.post("/sessions", json={"text": text, "settings": _FAST_SETTINGS})
        self.assertEqual(response.status_code, 201)
        return response.json()

    def _tick_until_idle(self, session_id: str, limit: int = 20) -> list[str]:
        outcomes = []
        for _ in range(limit):
            response = self.client.post(f"/sessions/{session_id}/tick")
            self.assertEqual(response.status_code, 200)
            outcome = response.json()["outcome"]
            outcomes.append(outcome)
            if outcome in {"idle", "paused"}:
                break
        return outcomes

    def test_health_check(self) -> None:
        response = self.client.get("/healthz")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_create_and_tick_to_idle(self) -> None:
        state = self._create()

        self.assertEqual(state["text"], "helo world")
        self.assertEqual(state["status"], "typing")
        self.assertEqual(state["history_size"], 2)

        outcomes = self._tick_until_idle(state["id"])

        self.assertEqual(outcomes, ["dictionary", "applied", "fix_typos", "applied", "idle"])
        final = self.client.get(f"/sessions/{state['id']}").json()
        self.assertEqual(final["offsets"]["corrected"], len(final["text"]))
        self.assertEqual(final["unknown_words"], [])
        self.assertEqual(final["pending"], 0)
        self.assertEqual(self.checker.calls, [("helo world", "en")])
        self.assertEqual(self.backend.operations(), ["fix_typos"])

    def test_unknown_session_returns_404(self) -> None:
        self.assertEqual(self.client.get("/sessions/missing").status_code, 404)
        self.assertEqual(self.client.post("/sessions/missing/tick").status_code, 404)

    def test_invalid_settings_are_rejected(self) -> None:
        response = self.client.post("/sessions", json={"settings": {"debounce_seconds": -1}})

        self.assertEqual(response.status_code, 422)

    def test_edit_history_and_undo_redo(self) -> None:
        session_id = self._create("hello")["id"]

        response = self.client.put(f"/sessions/{session_id}/text", json={"text": "hello world"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["text"], "hello world")

        history = self.client.get(f"/sessions/{session_id}/history").json()
        self.assertEqual([entry["tags"] for entry in history["entries"]], [["init"], ["paste"], ["paste"]])
        self.assertEqual(history["index"], 2)
        self.assertTrue(history["entries"][-1]["current"])

        undone = self.client.post(f"/sessions/{session_id}/undo").json()
        self.assertEqual(undone["text"], "hello")
        self.assertFalse(undone["enabled"])
        self.assertTrue(undone["can_redo"])

        redone = self.client.post(f"/sessions/{session_id}/redo").json()
        self.assertEqual(redone["text"], "hello world")
        self.assertEqual(self.client.post(f"/sessions/{session_id}/redo").status_code, 409)

        jumped = self.client.post(f"/sessions/{session_id}/history/0")
        self.assertEqual(jumped.status_code, 200)
        self.assertEqual(jumped.json()["text"], "")
        self.assertEqual(self.client.post(f"/sessions/{session_id}/undo").status_code, 409)
        self.assertEqual(self.client.post(f"/sessions/{session_id}/history/99").status_code, 409)

    def test_transcription_enabled_and_reset(self) -> None:
        session_id = self._create("Typed. ")["id"]

        response = self.client.post(
            f"/sessions/{session_id}/transcription", json={"text": "next part.", "source": "dictation"}
        )
        self.assertEqual(response.status_code, 200)
        state = response.json()
        self.assertEqual(state["text"], "Typed. next part.")
        self.assertEqual(state["offsets"]["corrected"], len(state["text"]))

        bad = self.client.post(f"/sessions/{session_id}/transcription", json={"text": "x", "source": "fax"})
        self.assertEqual(bad.status_code, 422)

        paused = self.client.put(f"/sessions/{session_id}/enabled", json={"enabled": False}).json()
        self.assertEqual(paused["status"], "paused")

        accepted = self.client.post(f"/sessions/{session_id}/reset", json={"accept": True}).json()
        self.assertEqual(accepted["offsets"]["committed"], len(accepted["text"]))

        restarted = self.client.post(f"/sessions/{session_id}/reset").json()
        self.assertEqual(restarted["offsets"], {"committed": 0, "corrected": 0, "checked": 0, "checking": 0})

    def test_enhance(self) -> None:
        session_id = self._create("some rough text")["id"]

        response = self.client.post(f"/sessions/{session_id}/enhance")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["pending"], 1)
        self.assertEqual(self.client.post(f"/sessions/{session_id}/enhance").status_code, 409)

        tick = self.client.post(f"/sessions/{session_id}/tick").json()
        self.assertEqual(tick["outcome"], "applied")
        self.assertEqual(tick["session"]["offsets"]["committed"], len("some rough text"))
        self.assertEqual(self.backend.operations(), ["enhance"])

    def test_delete_session(self) -> None:
        session_id = self._create()["id"]

        self.assertEqual(self.client.delete(f"/sessions/{session_id}").status_code, 204)
        self.assertEqual(self.client.get(f"/sessions/{session_id}").status_code, 404)
        self.assertEqual(self.client.delete(f"/sessions/{session_id}").status_code, 404)


class CheckEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(
            create_app(
                backend=RecordingBackend(),
                checker=FakeChecker(known=["hello", "world"]),
                executor=InlineExecutor(),
                start_tickers=False,
            )
        )

    def test_check_returns_unknown_words_and_segments(self) -> None:
        response = self.client.post("/check", json={"text": "helo world", "language": "EN"})

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["language"], "en")
        self.assertEqual(data["unknown_words"], ["helo"])
        self.assertEqual(data["unknown_segments"], [{"text": "helo", "start": 0, "end": 4}])

    def test_empty_text_is_rejected(self) -> None:
        response = self.client.post("/check", json={"text": ""})

        self.assertEqual(response.status_code, 422)


if __name__ == "__main__":
    unittest.main()
