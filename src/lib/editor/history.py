from __future__ import annotations

import threading
import time
from typing import Callable, FrozenSet, Iterable, List, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from src.config.defaults import HISTORY_CAPACITY

from .types import ProgressOffsets


class Checkpoint(BaseModel):
    """履歴の1エントリ。生成後は変更しない。"""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: int
    text: str = ""
    committed: int = 0
    corrected: int = 0
    checked: int = 0
    finalized: FrozenSet[str] = Field(default_factory=frozenset)
    timestamp: float = 0.0
    tags: Tuple[str, ...] = ()

    @property
    def offsets(self) -> ProgressOffsets:
        """復元用のオフセット。送信中の辞書チェックは持ち越さない。"""

        return ProgressOffsets(
            committed=self.committed,
            corrected=self.corrected,
            checked=self.checked,
            checking=self.checked,
        ).clamp(len(self.text))


class HistoryStore:
    """上限付きの線形 undo/redo 履歴。

    カーソルより後ろのエントリは新しいチェックポイントで破棄される。現在のエントリと
    テキスト・committed・タグがすべて同じ場合は記録しない。
    """

    def __init__(
        self,
        *,
        capacity: int = HISTORY_CAPACITY,
        initial_text: str = "",
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: List[Checkpoint] = []
        self._cursor = -1
        self._next_id = 1
        self.clear(initial_text)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def entries(self) -> Tuple[Checkpoint, ...]:
        with self._lock:
            return tuple(self._entries)

    @property
    def current(self) -> Checkpoint:
        with self._lock:
            return self._entries[self._cursor]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def checkpoint(
        self,
        text: str,
        offsets: ProgressOffsets,
        finalized: Iterable[str],
        tags: Sequence[str] = (),
    ) -> Checkpoint | None:
        """チェックポイントを追加する。重複で記録しなかった場合は None。"""

        tag_tuple = tuple(tags)
        with self._lock:
            head = self._entries[self._cursor]
            if head.text == text and head.committed == offsets.committed and head.tags == tag_tuple:
                return None
            entry = Checkpoint(
                id=self._next_id,
                text=text,
                committed=offsets.committed,
                corrected=offsets.corrected,
                checked=offsets.checked,
                finalized=frozenset(finalized),
                timestamp=self._clock(),
                tags=tag_tuple,
            )
            self._next_id += 1
            del self._entries[self._cursor + 1 :]
            self._entries.append(entry)
            overflow = len(self._entries) - self.capacity
            if overflow > 0:
                del self._entries[:overflow]
            self._cursor = len(self._entries) - 1
            return entry

    def can_undo(self) -> bool:
        with self._lock:
            return self._cursor > 0

    def can_redo(self) -> bool:
        with self._lock:
            return self._cursor < len(self._entries) - 1

    def undo(self) -> Checkpoint | None:
        with self._lock:
            if self._cursor <= 0:
                return None
            self._cursor -= 1
            return self._entries[self._cursor]

    def redo(self) -> Checkpoint | None:
        with self._lock:
            if self._cursor >= len(self._entries) - 1:
                return None
            self._cursor += 1
            return self._entries[self._cursor]

    def jump_to(self, index: int) -> Checkpoint:
        with self._lock:
            if not 0 <= index < len(self._entries):
                raise IndexError(f"history index out of range: {index} (size={len(self._entries)})")
            self._cursor = index
            return self._entries[index]

    def clear(self, initial_text: str = "", offsets: ProgressOffsets | None = None) -> None:
        """履歴を初期エントリ1件だけの状態に戻す。``offsets`` 省略時は全体を処理済みとする。"""

        end = len(initial_text)
        start = (offsets or ProgressOffsets(end, end, end, end)).clamp(end)
        with self._lock:
            self._entries = [
                Checkpoint(
                    id=self._next_id,
                    text=initial_text,
                    committed=start.committed,
                    corrected=start.corrected,
                    checked=start.checked,
                    timestamp=self._clock(),
                    tags=("init",),
                )
            ]
            self._next_id += 1
            self._cursor = 0

    def restore(self, entries: Sequence[Checkpoint], cursor: int) -> None:
        """永続化済みの履歴を読み戻す。"""

        if not entries:
            raise ValueError("history must contain at least one entry")
        items = list(entries)[-self.capacity :]
        dropped = len(entries) - len(items)
        with self._lock:
            self._entries = items
            self._cursor = min(max(cursor - dropped, 0), len(items) - 1)
            self._next_id = max(entry.id for entry in items) + 1


__all__ = ["Checkpoint", "HistoryStore"]
