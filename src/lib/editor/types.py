from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import FrozenSet, List, Literal

from .finalized import FinalizedSet

EditorStatus = Literal[
    "idle",
    "typing",
    "dict_check",
    "ai_fixing",
    "ai_finalizing",
    "script_fix",
    "enhancing",
    "done",
    "error",
    "recording",
    "transcribing",
    "paused",
]

TRANSIENT_STATUSES: FrozenSet[str] = frozenset({"done", "error"})
"""表示時間の経過後に待機状態へ戻るステータス。"""

CorrectionKind = Literal["dictionary", "fix_typos", "finalize", "fix_and_finalize", "enhance"]

CONTENT_KINDS: FrozenSet[str] = frozenset({"fix_typos", "finalize", "fix_and_finalize", "enhance"})
"""バッファを書き換える（同時に1件しか走らせない）補正の種類。"""

KIND_STATUS = {
    "dictionary": "dict_check",
    "fix_typos": "ai_fixing",
    "finalize": "ai_finalizing",
    "fix_and_finalize": "ai_finalizing",
    "enhance": "enhancing",
}

TickOutcome = Literal[
    "skipped",
    "applied",
    "debounced",
    "fast_forward",
    "script_fix",
    "fix_and_finalize",
    "finalize",
    "fix_typos",
    "dictionary",
    "advanced",
    "idle",
    "paused",
]


class RangeError(ValueError):
    """バッファ範囲外のオフセットで書き換えようとした。"""


def validate_range(start: int, end: int, length: int) -> None:
    if not (0 <= start <= end <= length):
        raise RangeError(f"range out of bounds: start={start}, end={end}, length={length}")


@dataclass(frozen=True)
class ProgressOffsets:
    """パイプラインの進捗を表す4つのオフセット。

    ``committed``: 確定済み / ``corrected``: 誤字修正済み / ``checked``: 辞書チェック済み /
    ``checking``: 辞書チェック要求が送信済みの位置。
    """

    committed: int = 0
    corrected: int = 0
    checked: int = 0
    checking: int = 0

    def clamp(self, length: int) -> "ProgressOffsets":
        """``[0, length]`` に収め、committed <= corrected / checked <= checking を保証する。"""

        committed = min(max(self.committed, 0), length)
        corrected = min(max(self.corrected, committed), length)
        checked = min(max(self.checked, committed), length)
        checking = min(max(self.checking, checked), length)
        return ProgressOffsets(committed=committed, corrected=corrected, checked=checked, checking=checking)

    def update(self, **overrides: int) -> "ProgressOffsets":
        return replace(self, **overrides)

    def as_dict(self) -> dict[str, int]:
        return {
            "committed": self.committed,
            "corrected": self.corrected,
            "checked": self.checked,
            "checking": self.checking,
        }


@dataclass
class PendingCorrection:
    """送信済みで結果待ちの補正。``snapshot`` は送信時点の範囲の内容。"""

    id: int
    kind: CorrectionKind
    start: int
    end: int
    snapshot: str
    submitted_at: float
    language: str = "en"
    stale: bool = False

    def shift(self, delta: int) -> None:
        self.start += delta
        self.end += delta

    def overlaps(self, start: int, end: int) -> bool:
        return self.start < end and start < self.end


@dataclass
class EditorStats:
    corrections: int = 0
    failures: int = 0

    def as_dict(self) -> dict[str, int]:
        return {"corrections": self.corrections, "failures": self.failures}


@dataclass
class EditorState:
    """EditSession が単独で所有する可変状態。常にセッションのロック下で読み書きする。"""

    text: str = ""
    offsets: ProgressOffsets = field(default_factory=ProgressOffsets)
    finalized: FinalizedSet = field(default_factory=FinalizedSet)
    status: EditorStatus = "idle"
    enabled: bool = True
    recording: bool = False
    transcribing: int = 0
    flagged_end: int | None = None
    unknown_words: List[str] = field(default_factory=list)
    last_edit_at: float | None = None

    def resting_status(self) -> EditorStatus:
        if self.recording:
            return "recording"
        if self.transcribing > 0:
            return "transcribing"
        if not self.enabled:
            return "paused"
        return "idle"


__all__ = [
    "CONTENT_KINDS",
    "CorrectionKind",
    "EditorState",
    "EditorStats",
    "EditorStatus",
    "KIND_STATUS",
    "PendingCorrection",
    "ProgressOffsets",
    "RangeError",
    "TRANSIENT_STATUSES",
    "TickOutcome",
    "validate_range",
]
