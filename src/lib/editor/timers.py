from __future__ import annotations

import time
from typing import Callable, Dict, List

TimeSourceFn = Callable[[], float]


class NamedTimers:
    """名前付きの期限タイマー。スレッドを持たず、tick ごとに ``pop_due`` で回収する。"""

    def __init__(self, time_source: TimeSourceFn = time.monotonic) -> None:
        self._time_source = time_source
        self._deadlines: Dict[str, float] = {}

    def arm(self, name: str, delay: float) -> float:
        """タイマーを（再）設定する。既存の期限は上書きされる。"""

        deadline = self._time_source() + max(0.0, delay)
        self._deadlines[name] = deadline
        return deadline

    def cancel(self, name: str) -> bool:
        return self._deadlines.pop(name, None) is not None

    def cancel_all(self) -> None:
        self._deadlines.clear()

    def is_armed(self, name: str) -> bool:
        return name in self._deadlines

    def deadline(self, name: str) -> float | None:
        return self._deadlines.get(name)

    def pop_due(self, now: float | None = None) -> List[str]:
        """期限切れのタイマー名を期限順に取り出す。"""

        current = self._time_source() if now is None else now
        due = sorted((deadline, name) for name, deadline in self._deadlines.items() if deadline <= current)
        for _, name in due:
            del self._deadlines[name]
        return [name for _, name in due]


__all__ = ["NamedTimers", "TimeSourceFn"]
