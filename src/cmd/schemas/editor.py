from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.lib.editor import Checkpoint, EditorSettings


class SettingsPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: Optional[bool] = Field(None, description="自動補正を有効にするか")
    mini_scripts: Optional[bool] = Field(None, description="ローカル整形スクリプトを適用するか")
    dictionary_check: Optional[bool] = Field(None, description="辞書チェックを行うか")
    fix_typos: Optional[bool] = Field(None, description="AI による誤字修正を行うか")
    fix_punctuation: Optional[bool] = Field(None, description="AI による文の確定（句読点）を行うか")
    scripts_when_paused: Optional[bool] = Field(None, description="一時停止中もスクリプトを適用するか")
    language: Optional[str] = Field(None, min_length=1, description="言語コード（例: en, ru）")
    debounce_seconds: Optional[float] = Field(None, ge=0.0, description="入力後に補正を始めるまでの秒数")
    dictionary_timeout: Optional[float] = Field(None, gt=0.0, description="辞書チェックのタイムアウト秒")
    ai_timeout: Optional[float] = Field(None, gt=0.0, description="AI 補正のタイムアウト秒")
    min_check_words: Optional[int] = Field(None, ge=1, description="辞書チェック1回あたりの語数")


class SessionCreatePayload(BaseModel):
    text: str = Field("", description="初期テキスト")
    settings: Optional[SettingsPayload] = Field(None, description="セッション設定")


class TextPayload(BaseModel):
    text: str = Field(..., description="編集後のバッファ全体")


class EnabledPayload(BaseModel):
    enabled: bool = Field(..., description="自動補正の有効/一時停止")


class ResetPayload(BaseModel):
    accept: bool = Field(False, description="True なら現在のテキストを処理済みとして受け入れる")


class TranscriptionPayload(BaseModel):
    text: str = Field(..., description="書き起こし/OCR の結果")
    source: Literal["dictation", "ocr"] = Field("dictation", description="入力元")


class CheckPayload(BaseModel):
    text: str = Field(..., min_length=1, description="チェック対象のテキスト")
    language: Optional[str] = Field(None, description="言語コード。未指定時は既定言語")


class OffsetsPayload(BaseModel):
    committed: int = Field(..., ge=0)
    corrected: int = Field(..., ge=0)
    checked: int = Field(..., ge=0)
    checking: int = Field(..., ge=0)


class UnknownSegmentPayload(BaseModel):
    text: str
    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)


class SessionStatePayload(BaseModel):
    id: str
    text: str
    status: str
    enabled: bool
    language: str
    offsets: OffsetsPayload
    finalized: List[str] = Field(default_factory=list)
    unknown_words: List[str] = Field(default_factory=list)
    unknown_segments: List[UnknownSegmentPayload] = Field(default_factory=list)
    pending: int = Field(0, ge=0, description="結果待ちの補正件数")
    history_index: int = Field(0, ge=0)
    history_size: int = Field(1, ge=1)
    can_undo: bool = False
    can_redo: bool = False
    stats: Dict[str, int] = Field(default_factory=dict)


class TickResponsePayload(BaseModel):
    outcome: str = Field(..., description="この tick で行った処理")
    session: SessionStatePayload


class CheckpointPayload(BaseModel):
    index: int = Field(..., ge=0)
    id: int
    text: str
    committed: int
    corrected: int
    checked: int
    timestamp: float
    tags: List[str] = Field(default_factory=list)
    current: bool = False

    @classmethod
    def from_checkpoint(cls, index: int, entry: Checkpoint, *, current: bool) -> "CheckpointPayload":
        return cls(
            index=index,
            id=entry.id,
            text=entry.text,
            committed=entry.committed,
            corrected=entry.corrected,
            checked=entry.checked,
            timestamp=entry.timestamp,
            tags=list(entry.tags),
            current=current,
        )


class HistoryResponsePayload(BaseModel):
    index: int
    entries: List[CheckpointPayload]


class CheckResponsePayload(BaseModel):
    language: str
    unknown_words: List[str]
    unknown_segments: List[UnknownSegmentPayload] = Field(default_factory=list)


def build_settings(payload: SettingsPayload | None, base: EditorSettings | None = None) -> EditorSettings:
    settings = base or EditorSettings()
    if payload is None:
        return settings
    data: Dict[str, Any] = payload.model_dump(exclude_none=True)
    return settings.update(**data)


__all__ = [
    "CheckPayload",
    "CheckResponsePayload",
    "CheckpointPayload",
    "EnabledPayload",
    "HistoryResponsePayload",
    "ResetPayload",
    "SessionCreatePayload",
    "SessionStatePayload",
    "SettingsPayload",
    "TextPayload",
    "TickResponsePayload",
    "TranscriptionPayload",
    "UnknownSegmentPayload",
    "build_settings",
]
