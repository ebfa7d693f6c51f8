from __future__ import annotations

import threading
from typing import FrozenSet, Iterable, Iterator

from src.lib.text.blocks import normalize_block


class FinalizedSet:
    """確定済みブロックの内容キャッシュ（位置ではなく内容で照合する）。"""

    def __init__(self, entries: Iterable[str] | None = None) -> None:
        self._lock = threading.Lock()
        self._entries: set[str] = set()
        for entry in entries or ():
            self.add(entry)

    def has(self, text: str) -> bool:
        key = normalize_block(text)
        if not key:
            return False
        with self._lock:
            return key in self._entries

    def add(self, text: str) -> bool:
        key = normalize_block(text)
        if not key:
            return False
        with self._lock:
            if key in self._entries:
                return False
            self._entries.add(key)
            return True

    def snapshot(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._entries)

    def restore(self, snapshot: Iterable[str]) -> None:
        entries = {normalize_block(item) for item in snapshot}
        entries.discard("")
        with self._lock:
            self._entries = entries

    def clear(self) -> None:
        with self._lock:
            self._entries = set()

    def __contains__(self, text: object) -> bool:
        return isinstance(text, str) and self.has(text)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.snapshot()))


__all__ = ["FinalizedSet"]
