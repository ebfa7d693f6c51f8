from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from .session import EditSession

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], None]
TimeSourceFn = Callable[[], float]

_SETTLED_OUTCOMES = {"idle", "paused"}


class TickRunner:
    """一定周期で ``session.tick()`` を呼び出すデーモンスレッド。"""

    def __init__(self, session: EditSession, interval: float | None = None) -> None:
        self.session = session
        self.interval = interval if interval is not None else session.settings.tick_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run,
            name=f"livefix-tick-{self.session.id[:8]}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = 2.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.session.tick()
            except Exception:  # noqa: BLE001
                # tick の失敗でループ自体は止めない
                logger.exception("tick の実行に失敗しました (session=%s)", self.session.id)


def run_until_settled(
    session: EditSession,
    *,
    timeout: float = 60.0,
    interval: float | None = None,
    sleep: SleepFn = time.sleep,
    time_source: TimeSourceFn = time.monotonic,
) -> str:
    """パイプラインが落ち着く（処理対象も保留中の呼び出しも無くなる）まで tick を回す。

    CLI などの一括処理用。``timeout`` を過ぎた場合は TimeoutError。
    """

    step = session.settings.tick_seconds if interval is None else interval
    deadline = time_source() + timeout
    while True:
        outcome = session.tick()
        if outcome in _SETTLED_OUTCOMES and not session.has_pending():
            return outcome
        if time_source() >= deadline:
            raise TimeoutError(f"補正が {timeout:.1f}s 以内に完了しませんでした (last={outcome})")
        if outcome in {"debounced", "skipped"} or session.has_pending():
            sleep(step)


__all__ = ["TickRunner", "run_until_settled"]
