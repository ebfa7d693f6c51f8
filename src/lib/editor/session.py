from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Sequence, Tuple

from src.config.defaults import HISTORY_CAPACITY
from src.lib.correction.base import BaseCorrector, PassthroughCorrector
from src.lib.correction.postprocess import ensure_proper_spacing
from src.lib.dictionary.words import find_unknown_segments

from .history import Checkpoint, HistoryStore
from .options import EditorSettings
from .pipeline import CorrectionPipeline, edit_position
from .timers import NamedTimers
from .types import TRANSIENT_STATUSES, EditorState, EditorStatus, ProgressOffsets, TickOutcome

logger = logging.getLogger(__name__)

StatusListener = Callable[[str, str], None]

_TRANSCRIPTION_TAGS = {"dictation": "dictated", "ocr": "ocr"}

_TIMER_TYPING = "typing_idle"
_TIMER_CHECKPOINT = "checkpoint"
_TIMER_STATUS = "status"


class EditSession:
    """ライブ編集バッファの所有者。

    ユーザー編集・パイプラインの結果適用・履歴操作はすべて ``_lock`` の下で行い、
    (バッファ, オフセット, FinalizedSet) を1つの単位として扱う。``tick`` は
    実行中の tick があればスキップされる（キューには積まない）。
    """

    def __init__(
        self,
        *,
        settings: EditorSettings | None = None,
        backend: BaseCorrector | None = None,
        checker: Any | None = None,
        executor: Executor | None = None,
        time_source: Callable[[], float] = time.monotonic,
        history_capacity: int = HISTORY_CAPACITY,
        session_id: str | None = None,
    ) -> None:
        self.id = session_id or uuid.uuid4().hex
        self.settings = settings or EditorSettings()
        self.state = EditorState(enabled=self.settings.enabled)
        self.state.status = self.state.resting_status()
        self.history = HistoryStore(capacity=history_capacity)
        self.timers = NamedTimers(time_source)
        self._time_source = time_source
        self._lock = threading.RLock()
        self._tick_lock = threading.Lock()
        self._listeners: List[StatusListener] = []
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="livefix-ai")
        self._closed = False
        self.pipeline = CorrectionPipeline(
            self.state,
            settings=self.settings,
            backend=backend or PassthroughCorrector(),
            executor=self._executor,
            checker=checker,
            time_source=time_source,
            checkpoint=self._checkpoint,
            set_status=self._set_status,
        )

    def __enter__(self) -> "EditSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def text(self) -> str:
        with self._lock:
            return self.state.text

    @property
    def offsets(self) -> ProgressOffsets:
        with self._lock:
            return self.state.offsets

    @property
    def status(self) -> str:
        with self._lock:
            return self.state.status

    @property
    def stats(self):
        return self.pipeline.stats

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        """ステータス遷移 ``(before, after)`` を受け取るリスナーを登録する。"""

        with self._lock:
            self._listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove

    # ------------------------------------------------------------------
    # 編集
    # ------------------------------------------------------------------
    def apply_edit(self, new_text: str) -> ProgressOffsets:
        """ユーザー編集を反映する。編集位置より後ろの進捗はすべて破棄される。"""

        with self._lock:
            state = self.state
            old_text = state.text
            if new_text == old_text:
                return state.offsets

            delta = len(new_text) - len(old_text)
            large = abs(delta) > self.settings.large_edit_threshold
            if large:
                self._flush_typing_checkpoint()

            state.text = new_text
            self.pipeline.invalidate(edit_position(old_text, new_text))
            state.last_edit_at = self._time_source()

            if large:
                self._checkpoint(("paste",) if delta > 0 else ("cut",))
            else:
                self.timers.arm(_TIMER_CHECKPOINT, self.settings.checkpoint_debounce_seconds)
            self.timers.arm(_TIMER_TYPING, self.settings.typing_idle_seconds)
            self._set_status("typing")
            return state.offsets

    def insert_transcription(self, text: str, source: str = "dictation") -> bool:
        """音声入力/OCR の結果を末尾に追加する。追加部分は誤字修正済みとして扱う。"""

        if source not in _TRANSCRIPTION_TAGS:
            raise ValueError(f"未知の入力元です: {source}")
        with self._lock:
            state = self.state
            if state.transcribing > 0:
                state.transcribing -= 1
            piece = ensure_proper_spacing(text.strip()) if text else ""
            if not piece:
                self._set_status(state.resting_status())
                return False

            self._flush_typing_checkpoint()
            buffer = state.text
            separator = " " if buffer and not buffer[-1].isspace() else ""
            state.text = buffer + separator + piece
            end = len(state.text)
            state.offsets = state.offsets.update(corrected=end, checked=end, checking=end).clamp(end)
            self._checkpoint((_TRANSCRIPTION_TAGS[source],))
            self._set_status("done")
            return True

    def start_recording(self) -> None:
        with self._lock:
            self.state.recording = True
            self._set_status("recording")

    def stop_recording(self, pending: int = 1) -> None:
        """録音を終了する。``pending`` は届く予定の書き起こし件数。"""

        with self._lock:
            state = self.state
            state.recording = False
            state.transcribing = max(0, pending)
            self._set_status(state.resting_status())

    # ------------------------------------------------------------------
    # tick
    # ------------------------------------------------------------------
    def tick(self) -> TickOutcome:
        if not self._tick_lock.acquire(blocking=False):
            return "skipped"
        try:
            with self._lock:
                if self._closed:
                    return "idle"
                self._fire_timers()
                expired = self.pipeline.watchdog()
                if self.pipeline.drain() or expired:
                    return "applied"
                last_edit = self.state.last_edit_at
                if last_edit is not None and self._time_source() - last_edit < self.settings.debounce_seconds:
                    return "debounced"
                return self.pipeline.step()
        finally:
            self._tick_lock.release()

    def has_pending(self) -> bool:
        with self._lock:
            return self.pipeline.has_pending()

    def _fire_timers(self) -> None:
        for name in self.timers.pop_due():
            if name == _TIMER_CHECKPOINT:
                self._checkpoint(("typing",))
            elif name == _TIMER_TYPING:
                if self.state.status == "typing":
                    self._set_status(self.state.resting_status())
            elif name == _TIMER_STATUS:
                if self.state.status in TRANSIENT_STATUSES:
                    self._set_status(self.state.resting_status())

    # ------------------------------------------------------------------
    # 履歴
    # ------------------------------------------------------------------
    def undo(self) -> Checkpoint | None:
        with self._lock:
            self._flush_typing_checkpoint()
            entry = self.history.undo()
            if entry is not None:
                self._restore(entry)
            return entry

    def redo(self) -> Checkpoint | None:
        with self._lock:
            entry = self.history.redo()
            if entry is not None:
                self._restore(entry)
            return entry

    def jump_to(self, index: int) -> Checkpoint:
        with self._lock:
            self._flush_typing_checkpoint()
            entry = self.history.jump_to(index)
            self._restore(entry)
            return entry

    def _restore(self, entry: Checkpoint) -> None:
        state = self.state
        self.pipeline.drop_pending()
        state.text = entry.text
        state.offsets = entry.offsets
        state.finalized.restore(entry.finalized)
        state.last_edit_at = None
        self.timers.cancel(_TIMER_CHECKPOINT)
        self.timers.cancel(_TIMER_TYPING)
        # 復元直後に再補正されないよう自動補正を止める
        state.enabled = False
        self._set_status(state.resting_status())

    # ------------------------------------------------------------------
    # 制御
    # ------------------------------------------------------------------
    def set_enabled(self, enabled: bool) -> None:
        with self._lock:
            self.state.enabled = bool(enabled)
            self._set_status(self.state.resting_status())

    def enhance(self) -> bool:
        with self._lock:
            return self.pipeline.request_enhance()

    def reset(self, *, accept: bool = False) -> None:
        """保留中の処理を破棄し、進捗を先頭（accept=True なら末尾）に戻す。"""

        with self._lock:
            state = self.state
            self.pipeline.drop_pending()
            state.unknown_words = []
            position = len(state.text) if accept else 0
            state.offsets = ProgressOffsets(
                committed=position, corrected=position, checked=position, checking=position
            )
            self.timers.cancel(_TIMER_STATUS)
            self._set_status(state.resting_status())

    def clear(self) -> None:
        """バッファ・進捗・FinalizedSet・履歴をすべて初期化する。"""

        with self._lock:
            state = self.state
            self.pipeline.drop_pending()
            state.text = ""
            state.offsets = ProgressOffsets()
            state.finalized.clear()
            state.unknown_words = []
            state.last_edit_at = None
            self.history.clear("")
            self.timers.cancel_all()
            self._set_status(state.resting_status())

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self.pipeline.drop_pending()
            self.timers.cancel_all()
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # 状態の書き出し
    # ------------------------------------------------------------------
    def describe(self) -> Dict[str, Any]:
        """表示用の状態一式を返す。"""

        with self._lock:
            state = self.state
            segments = find_unknown_segments(state.text, state.unknown_words) or []
            return {
                "id": self.id,
                "text": state.text,
                "status": state.status,
                "enabled": state.enabled,
                "language": self.settings.language,
                "offsets": state.offsets.as_dict(),
                "finalized": sorted(state.finalized.snapshot()),
                "unknown_words": list(state.unknown_words),
                "unknown_segments": [
                    {"text": segment.text, "start": segment.start, "end": segment.end} for segment in segments
                ],
                "pending": len(self.pipeline.pending),
                "history_index": self.history.cursor,
                "history_size": len(self.history),
                "can_undo": self.history.can_undo(),
                "can_redo": self.history.can_redo(),
                "stats": self.stats.as_dict(),
            }

    def load_state(
        self,
        *,
        text: str,
        offsets: ProgressOffsets,
        finalized: Sequence[str] = (),
        history: Sequence[Checkpoint] = (),
        history_index: int = 0,
        enabled: bool | None = None,
    ) -> None:
        """永続化された状態を読み込む。送信中の辞書チェックは持ち越さない。"""

        with self._lock:
            state = self.state
            self.pipeline.drop_pending()
            state.text = text
            state.offsets = offsets.update(checking=offsets.checked).clamp(len(text))
            state.finalized.restore(finalized)
            state.unknown_words = []
            state.last_edit_at = None
            if history:
                self.history.restore(history, history_index)
            else:
                self.history.clear(text, state.offsets)
            if enabled is not None:
                state.enabled = bool(enabled)
            self.timers.cancel_all()
            self._set_status(state.resting_status())

    # ------------------------------------------------------------------
    # 内部ヘルパー
    # ------------------------------------------------------------------
    def _checkpoint(self, tags: Tuple[str, ...]) -> Checkpoint | None:
        state = self.state
        if tags != ("typing",):
            self.timers.cancel(_TIMER_CHECKPOINT)
        return self.history.checkpoint(state.text, state.offsets, state.finalized.snapshot(), tags)

    def _flush_typing_checkpoint(self) -> None:
        if self.timers.cancel(_TIMER_CHECKPOINT):
            self.history.checkpoint(
                self.state.text, self.state.offsets, self.state.finalized.snapshot(), ("typing",)
            )

    def _set_status(self, status: EditorStatus) -> None:
        state = self.state
        if (state.recording or state.transcribing > 0) and status not in {"recording", "transcribing", "done"}:
            status = state.resting_status()
        if status in TRANSIENT_STATUSES:
            hold = self.settings.done_display_seconds if status == "done" else self.settings.error_display_seconds
            self.timers.arm(_TIMER_STATUS, hold)
        else:
            self.timers.cancel(_TIMER_STATUS)
        previous = state.status
        if previous == status:
            return
        state.status = status
        logger.debug("ステータス変更: %s -> %s (session=%s)", previous, status, self.id)
        for listener in list(self._listeners):
            listener(previous, status)


__all__ = ["EditSession", "StatusListener"]
