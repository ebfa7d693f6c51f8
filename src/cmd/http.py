from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, HTTPException

from src.config.defaults import DEFAULT_LANGUAGE, WORDLIST_DIR
from src.config.logging import setup_logging
from src.lib.correction import BaseCorrector, build_backend
from src.lib.dictionary import (
    DictionaryWorker,
    DictionaryWorkerError,
    WordListStore,
    find_unknown_segments,
)
from src.lib.editor import EditorSettings, EditSession, TickRunner

from .schemas.editor import (
    CheckPayload,
    CheckpointPayload,
    CheckResponsePayload,
    EnabledPayload,
    HistoryResponsePayload,
    ResetPayload,
    SessionCreatePayload,
    SessionStatePayload,
    TextPayload,
    TickResponsePayload,
    TranscriptionPayload,
    build_settings,
)

logger = logging.getLogger(__name__)


class SessionRegistry:
    """HTTP から作成された編集セッションと、その tick スレッドを保持する。"""

    def __init__(self, *, start_tickers: bool = True) -> None:
        self.start_tickers = start_tickers
        self._lock = threading.Lock()
        self._sessions: Dict[str, EditSession] = {}
        self._runners: Dict[str, TickRunner] = {}

    def add(self, session: EditSession) -> EditSession:
        with self._lock:
            self._sessions[session.id] = session
            if self.start_tickers:
                runner = TickRunner(session)
                runner.start()
                self._runners[session.id] = runner
        logger.debug("セッションを作成しました: %s", session.id)
        return session

    def get(self, session_id: str) -> EditSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"セッションが見つかりません: {session_id}")
        return session

    def remove(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
            runner = self._runners.pop(session_id, None)
        if session is None:
            raise HTTPException(status_code=404, detail=f"セッションが見つかりません: {session_id}")
        if runner is not None:
            runner.stop()
        session.close()
        logger.debug("セッションを削除しました: %s", session_id)

    def close_all(self) -> None:
        with self._lock:
            ids = list(self._sessions)
        for session_id in ids:
            self.remove(session_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


def _state(session: EditSession) -> SessionStatePayload:
    return SessionStatePayload.model_validate(session.describe())


def create_app(
    *,
    backend: BaseCorrector | None = None,
    store: WordListStore | None = None,
    checker: Any | None = None,
    executor: Executor | None = None,
    start_tickers: bool = True,
) -> FastAPI:
    """FastAPIアプリケーションを構築して返す。"""

    setup_logging()

    if store is None:
        store = WordListStore()
        if WORDLIST_DIR:
            store.load_directory(WORDLIST_DIR)
    owned_checker = checker is None
    if checker is None:
        checker = DictionaryWorker(store, mode="thread")
    resolved_backend = backend or build_backend()
    registry = SessionRegistry(start_tickers=start_tickers)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        registry.close_all()
        if owned_checker:
            checker.close()
        resolved_backend.close()

    app = FastAPI(title="livefix editor", lifespan=lifespan)
    app.state.registry = registry
    app.state.store = store

    @app.get("/healthz")
    async def health_check() -> dict[str, str]:
        """死活監視用エンドポイント。"""

        return {"status": "ok"}

    @app.post("/sessions", response_model=SessionStatePayload, status_code=201)
    def create_session(payload: SessionCreatePayload) -> SessionStatePayload:
        try:
            settings = build_settings(payload.settings, EditorSettings.from_env())
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        session = EditSession(settings=settings, backend=resolved_backend, checker=checker, executor=executor)
        if payload.text:
            session.apply_edit(payload.text)
        registry.add(session)
        return _state(session)

    @app.get("/sessions/{session_id}", response_model=SessionStatePayload)
    def get_session(session_id: str) -> SessionStatePayload:
        return _state(registry.get(session_id))

    @app.delete("/sessions/{session_id}", status_code=204)
    def delete_session(session_id: str) -> None:
        registry.remove(session_id)

    @app.put("/sessions/{session_id}/text", response_model=SessionStatePayload)
    def update_text(session_id: str, payload: TextPayload) -> SessionStatePayload:
        session = registry.get(session_id)
        session.apply_edit(payload.text)
        return _state(session)

    @app.post("/sessions/{session_id}/tick", response_model=TickResponsePayload)
    def tick_session(session_id: str) -> TickResponsePayload:
        session = registry.get(session_id)
        try:
            outcome = session.tick()
        except Exception as exc:  # noqa: BLE001 - 予期せぬ障害は500で返す
            logger.exception("tick の実行に失敗しました: %s", session_id)
            raise HTTPException(status_code=500, detail="tick の実行に失敗しました") from exc
        return TickResponsePayload(outcome=outcome, session=_state(session))

    @app.post("/sessions/{session_id}/undo", response_model=SessionStatePayload)
    def undo(session_id: str) -> SessionStatePayload:
        session = registry.get(session_id)
        if session.undo() is None:
            raise HTTPException(status_code=409, detail="これ以上元に戻せません")
        return _state(session)

    @app.post("/sessions/{session_id}/redo", response_model=SessionStatePayload)
    def redo(session_id: str) -> SessionStatePayload:
        session = registry.get(session_id)
        if session.redo() is None:
            raise HTTPException(status_code=409, detail="これ以上やり直せません")
        return _state(session)

    @app.post("/sessions/{session_id}/reset", response_model=SessionStatePayload)
    def reset(session_id: str, payload: ResetPayload | None = None) -> SessionStatePayload:
        session = registry.get(session_id)
        session.reset(accept=bool(payload and payload.accept))
        return _state(session)

    @app.post("/sessions/{session_id}/enhance", response_model=SessionStatePayload)
    def enhance(session_id: str) -> SessionStatePayload:
        session = registry.get(session_id)
        if not session.enhance():
            raise HTTPException(status_code=409, detail="推敲を開始できません（処理中または対象なし）")
        return _state(session)

    @app.post("/sessions/{session_id}/transcription", response_model=SessionStatePayload)
    def insert_transcription(session_id: str, payload: TranscriptionPayload) -> SessionStatePayload:
        session = registry.get(session_id)
        session.insert_transcription(payload.text, payload.source)
        return _state(session)

    @app.put("/sessions/{session_id}/enabled", response_model=SessionStatePayload)
    def set_enabled(session_id: str, payload: EnabledPayload) -> SessionStatePayload:
        session = registry.get(session_id)
        session.set_enabled(payload.enabled)
        return _state(session)

    @app.get("/sessions/{session_id}/history", response_model=HistoryResponsePayload)
    def get_history(session_id: str) -> HistoryResponsePayload:
        session = registry.get(session_id)
        history = session.history
        cursor = history.cursor
        entries = [
            CheckpointPayload.from_checkpoint(index, entry, current=index == cursor)
            for index, entry in enumerate(history.entries)
        ]
        return HistoryResponsePayload(index=cursor, entries=entries)

    @app.post("/sessions/{session_id}/history/{index}", response_model=SessionStatePayload)
    def jump_to(session_id: str, index: int) -> SessionStatePayload:
        session = registry.get(session_id)
        try:
            session.jump_to(index)
        except IndexError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return _state(session)

    @app.post("/check", response_model=CheckResponsePayload)
    def check_text(payload: CheckPayload) -> CheckResponsePayload:
        language = (payload.language or DEFAULT_LANGUAGE).strip().lower() or DEFAULT_LANGUAGE
        try:
            words = checker.check(payload.text, language)
        except DictionaryWorkerError as exc:
            logger.exception("辞書チェックに失敗しました")
            raise HTTPException(status_code=500, detail="辞書チェックに失敗しました") from exc
        segments = find_unknown_segments(payload.text, words) or []
        return CheckResponsePayload(
            language=language,
            unknown_words=list(words),
            unknown_segments=[
                {"text": segment.text, "start": segment.start, "end": segment.end} for segment in segments
            ],
        )

    return app


app = create_app()
