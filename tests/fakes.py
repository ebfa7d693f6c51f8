from __future__ import annotations

from concurrent.futures import Executor, Future
from typing import Callable, Dict, Iterable, List, Tuple

from src.lib.correction.base import CORRECTION_OPERATIONS, PassthroughCorrector
from src.lib.dictionary.words import find_unknown_words


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class InlineExecutor(Executor):
    """submit 時点で処理を実行し、完了済みの Future を返す。"""

    def submit(self, fn, /, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:  # noqa: BLE001
            future.set_exception(exc)
        return future


class ManualExecutor(Executor):
    """``run_all`` が呼ばれるまで処理を保留する。"""

    def __init__(self) -> None:
        self.queue: List[Tuple[Future, Callable, tuple, dict]] = []

    def submit(self, fn, /, *args, **kwargs) -> Future:
        future: Future = Future()
        self.queue.append((future, fn, args, kwargs))
        return future

    def run_all(self) -> int:
        items, self.queue = self.queue, []
        for future, fn, args, kwargs in items:
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as exc:  # noqa: BLE001
                future.set_exception(exc)
        return len(items)


class RecordingBackend(PassthroughCorrector):
    """呼び出しを記録し、操作ごとに用意した応答を返す。"""

    name = "recording"

    def __init__(self, responses: Dict[str, object] | None = None) -> None:
        self.responses = dict(responses or {})
        self.calls: List[Tuple[str, str]] = []

    def run(self, operation: str, text: str, language: str) -> str:
        if operation not in CORRECTION_OPERATIONS:
            raise ValueError(operation)
        self.calls.append((operation, text))
        response = self.responses.get(operation)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(text)
        if isinstance(response, str):
            return response
        return text

    def operations(self) -> List[str]:
        return [operation for operation, _ in self.calls]


class FakeChecker:
    """辞書ワーカーの代わりに同期的に未知語を返す。"""

    def __init__(self, known: Iterable[str] = (), language: str = "en") -> None:
        self.word_sets = {language: frozenset(word.lower() for word in known)}
        self.calls: List[Tuple[str, str]] = []

    def submit(self, text: str, language: str) -> Future:
        self.calls.append((text, language))
        future: Future = Future()
        future.set_result(find_unknown_words(text, language, self.word_sets))
        return future

    def check(self, text: str, language: str) -> List[str]:
        return self.submit(text, language).result()
