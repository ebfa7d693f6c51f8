from __future__ import annotations

import itertools
import logging
import multiprocessing as mp
import threading
import traceback
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Literal, Tuple

from src.config.defaults import DEFAULT_DICTIONARY_TIMEOUT
from src.lib.dictionary.store import WordListStore
from src.lib.dictionary.words import find_unknown_words

logger = logging.getLogger(__name__)

WorkerMode = Literal["thread", "process"]


class DictionaryWorkerError(RuntimeError):
    """辞書ワーカーとの通信に失敗した。"""


class DictionaryTimeoutError(DictionaryWorkerError, TimeoutError):
    """辞書ワーカーが時間内に応答しなかった。"""


@dataclass(frozen=True)
class CheckRequest:
    id: int
    text: str
    language: str

    def to_message(self) -> dict:
        return {"cmd": "check", "id": self.id, "text": self.text, "language": self.language}


@dataclass(frozen=True)
class CheckResponse:
    id: int
    unknown_words: Tuple[str, ...] = field(default_factory=tuple)
    error: str | None = None

    @classmethod
    def from_message(cls, message: dict) -> "CheckResponse":
        if message.get("ok"):
            return cls(id=int(message["id"]), unknown_words=tuple(message.get("unknown") or ()))
        return cls(id=int(message.get("id", -1)), error=message.get("error") or "dictionary worker error")


def _worker_entrypoint(conn: mp.connection.Connection) -> None:
    """ワーカー側ループ。言語ごとの単語集合は自身のコピーとして保持する。"""

    word_sets: Dict[str, frozenset] = {}
    while True:
        try:
            message = conn.recv()
        except (EOFError, OSError):
            break
        command = message.get("cmd")
        if command == "shutdown":
            break
        if command == "set_dictionary":
            word_sets[message["language"]] = frozenset(message.get("words") or ())
            continue
        if command != "check":
            conn.send({"ok": False, "id": message.get("id", -1), "error": f"unknown_command:{command}"})
            continue
        try:
            unknown = find_unknown_words(message.get("text") or "", message.get("language"), word_sets)
            conn.send({"ok": True, "id": message["id"], "unknown": unknown})
        except Exception as exc:  # pragma: no cover - 例外は親側で扱う
            conn.send({"ok": False, "id": message.get("id", -1), "error": str(exc), "traceback": traceback.format_exc()})
    conn.close()


class _WorkerHandle:
    def __init__(self, mode: WorkerMode) -> None:
        if mode == "process":
            ctx = mp.get_context("spawn")
            parent_conn, child_conn = ctx.Pipe()
            self._runner = ctx.Process(target=_worker_entrypoint, args=(child_conn,), daemon=True)
        else:
            parent_conn, child_conn = mp.Pipe()
            self._runner = threading.Thread(
                target=_worker_entrypoint, args=(child_conn,), name="dictionary-worker", daemon=True
            )
        self.conn = parent_conn
        self._runner.start()
        if mode == "process":
            child_conn.close()
        logger.debug("辞書ワーカーを起動: mode=%s", mode)

    def is_alive(self) -> bool:
        return self._runner.is_alive()

    def shutdown(self) -> None:
        try:
            self.conn.send({"cmd": "shutdown"})
        except (OSError, ValueError):
            pass
        self._runner.join(timeout=1.0)
        try:
            self.conn.close()
        except OSError:
            pass
        if isinstance(self._runner, mp.process.BaseProcess) and self._runner.is_alive():
            self._runner.kill()


class DictionaryWorker:
    """未知語チェックを別スレッド/別プロセスで行うワーカーのクライアント。

    要求は ``CheckRequest.id`` で応答と対応付けるため、複数のチェックを同時に
    投げてもよい。``check`` は ``timeout`` 秒で ``DictionaryTimeoutError`` を送出する。
    """

    def __init__(
        self,
        store: WordListStore | None = None,
        *,
        mode: WorkerMode = "thread",
        timeout: float = DEFAULT_DICTIONARY_TIMEOUT,
    ) -> None:
        self.store = store or WordListStore()
        self.mode: WorkerMode = mode
        self.timeout = timeout
        self._lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._ids = itertools.count(1)
        self._pending: Dict[int, Future] = {}
        self._handle: _WorkerHandle | None = None
        self._reader: threading.Thread | None = None
        self._closed = False
        self._unsubscribe = self.store.subscribe(self._on_store_change)

    def __enter__(self) -> "DictionaryWorker":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def submit(self, text: str, language: str) -> "Future[List[str]]":
        """チェック要求を送り、未知語リストで解決される Future を返す。"""

        future: Future = Future()
        request = CheckRequest(id=next(self._ids), text=text, language=language)
        try:
            handle = self._ensure_worker()
        except DictionaryWorkerError as exc:
            future.set_exception(exc)
            return future
        with self._lock:
            self._pending[request.id] = future
        try:
            with self._send_lock:
                handle.conn.send(request.to_message())
        except (OSError, ValueError) as exc:
            with self._lock:
                self._pending.pop(request.id, None)
            future.set_exception(DictionaryWorkerError(f"辞書ワーカーへの送信に失敗しました: {exc}"))
        return future

    def check(self, text: str, language: str, *, timeout: float | None = None) -> List[str]:
        future = self.submit(text, language)
        wait = self.timeout if timeout is None else timeout
        try:
            return future.result(timeout=wait)
        except FutureTimeoutError as exc:
            self._forget(future)
            raise DictionaryTimeoutError(f"辞書チェックが {wait:.1f}s 以内に完了しませんでした") from exc

    def set_dictionary(self, language: str, words: Iterable[str]) -> None:
        """ワーカー側の単語集合を置き換える（同じ内容で何度呼んでもよい）。"""

        handle = self._ensure_worker()
        self._send_dictionary(handle, language, words)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            handle = self._handle
            self._handle = None
        self._unsubscribe()
        if handle is not None:
            handle.shutdown()
        if self._reader is not None:
            self._reader.join(timeout=1.0)
        self._fail_pending(DictionaryWorkerError("辞書ワーカーは停止しました"))

    def _ensure_worker(self) -> _WorkerHandle:
        with self._lock:
            if self._closed:
                raise DictionaryWorkerError("辞書ワーカーは停止済みです")
            if self._handle is not None and self._handle.is_alive():
                return self._handle
            if self._handle is not None:
                logger.debug("辞書ワーカーを再起動します")
                self._handle.shutdown()
            handle = _WorkerHandle(self.mode)
            self._handle = handle
            self._reader = threading.Thread(
                target=self._read_loop, args=(handle,), name="dictionary-reader", daemon=True
            )
            self._reader.start()
        for language, words in self.store.as_mapping().items():
            self._send_dictionary(handle, language, words)
        return handle

    def _send_dictionary(self, handle: _WorkerHandle, language: str, words: Iterable[str]) -> None:
        message = {"cmd": "set_dictionary", "language": language, "words": sorted(words)}
        try:
            with self._send_lock:
                handle.conn.send(message)
        except (OSError, ValueError) as exc:
            raise DictionaryWorkerError(f"辞書の送信に失敗しました: {exc}") from exc

    def _on_store_change(self, language: str, words: frozenset) -> None:
        with self._lock:
            handle = self._handle
        if handle is None or not handle.is_alive():
            # 次回起動時にストア全体を送る
            return
        self._send_dictionary(handle, language, words)

    def _read_loop(self, handle: _WorkerHandle) -> None:
        while True:
            try:
                message = handle.conn.recv()
            except (EOFError, OSError):
                break
            response = CheckResponse.from_message(message)
            with self._lock:
                future = self._pending.pop(response.id, None)
            if future is None:
                continue
            if response.error is not None:
                future.set_exception(DictionaryWorkerError(response.error))
            else:
                future.set_result(list(response.unknown_words))
        with self._lock:
            replaced = self._handle is not None and self._handle is not handle
        if replaced:
            return
        self._fail_pending(DictionaryWorkerError("辞書ワーカーとの接続が切れました"))

    def _forget(self, future: Future) -> None:
        with self._lock:
            for key, value in list(self._pending.items()):
                if value is future:
                    del self._pending[key]

    def _fail_pending(self, exc: DictionaryWorkerError) -> None:
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(exc)


__all__ = [
    "CheckRequest",
    "CheckResponse",
    "DictionaryTimeoutError",
    "DictionaryWorker",
    "DictionaryWorkerError",
]
