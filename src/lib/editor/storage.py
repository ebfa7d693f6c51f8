from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field

from .history import Checkpoint
from .options import EditorSettings
from .session import EditSession
from .types import ProgressOffsets

SNAPSHOT_VERSION = 1


class SessionSnapshot(BaseModel):
    """セッションの永続化形式（JSON）。"""

    model_config = ConfigDict(extra="ignore")

    version: int = SNAPSHOT_VERSION
    text: str = ""
    committed: int = 0
    corrected: int = 0
    checked: int = 0
    finalized: List[str] = Field(default_factory=list)
    history: List[Checkpoint] = Field(default_factory=list)
    history_index: int = 0
    language: str | None = None
    enabled: bool = True

    @property
    def offsets(self) -> ProgressOffsets:
        return ProgressOffsets(
            committed=self.committed,
            corrected=self.corrected,
            checked=self.checked,
            checking=self.checked,
        ).clamp(len(self.text))


def export_snapshot(session: EditSession) -> SessionSnapshot:
    with session._lock:
        state = session.state
        offsets = state.offsets
        return SessionSnapshot(
            text=state.text,
            committed=offsets.committed,
            corrected=offsets.corrected,
            checked=offsets.checked,
            finalized=sorted(state.finalized.snapshot()),
            history=list(session.history.entries),
            history_index=session.history.cursor,
            language=session.settings.language,
            enabled=state.enabled,
        )


def apply_snapshot(session: EditSession, snapshot: SessionSnapshot) -> None:
    if snapshot.version != SNAPSHOT_VERSION:
        raise ValueError(f"未対応のスナップショット形式です: version={snapshot.version}")
    session.load_state(
        text=snapshot.text,
        offsets=snapshot.offsets,
        finalized=snapshot.finalized,
        history=snapshot.history,
        history_index=snapshot.history_index,
        enabled=snapshot.enabled,
    )


def save_session(path: str | Path, session: EditSession) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    snapshot = export_snapshot(session)
    with open(target, "w", encoding="utf-8") as f:
        json.dump(snapshot.model_dump(mode="json"), f, ensure_ascii=False, indent=2)
    return target


def read_snapshot(path: str | Path) -> SessionSnapshot:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return SessionSnapshot.model_validate(data)


def load_session(path: str | Path, **session_kwargs: Any) -> EditSession:
    """保存済みのスナップショットから新しいセッションを作る。"""

    snapshot = read_snapshot(path)
    if snapshot.language and "settings" not in session_kwargs:
        session_kwargs["settings"] = EditorSettings(language=snapshot.language)
    session = EditSession(**session_kwargs)
    apply_snapshot(session, snapshot)
    return session


__all__ = [
    "SNAPSHOT_VERSION",
    "SessionSnapshot",
    "apply_snapshot",
    "export_snapshot",
    "load_session",
    "read_snapshot",
    "save_session",
]
