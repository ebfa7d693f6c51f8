from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any, Mapping

from src.config.defaults import (
    DEFAULT_AI_TIMEOUT,
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_DICTIONARY_TIMEOUT,
    DEFAULT_LANGUAGE,
    DEFAULT_TICK_SECONDS,
)

_TRUE_VALUES = {"1", "true", "on", "yes"}
_FALSE_VALUES = {"0", "false", "off", "no"}


@dataclass(frozen=True)
class EditorSettings:
    """編集セッションの設定（すべて任意・安全なデフォルト）"""

    enabled: bool = True  # 自動補正の有効/一時停止
    mini_scripts: bool = True
    dictionary_check: bool = True
    fix_typos: bool = True
    fix_punctuation: bool = True  # 文の確定（句読点・大文字化）
    scripts_when_paused: bool = False
    language: str = DEFAULT_LANGUAGE
    tick_seconds: float = DEFAULT_TICK_SECONDS
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    dictionary_timeout: float = DEFAULT_DICTIONARY_TIMEOUT
    ai_timeout: float = DEFAULT_AI_TIMEOUT
    done_display_seconds: float = 1.5
    error_display_seconds: float = 3.0
    typing_idle_seconds: float = 1.5
    checkpoint_debounce_seconds: float = 1.0
    large_edit_threshold: int = 1  # これを超える長さの変化は貼り付け/切り取りとして扱う
    min_check_words: int = 3

    @classmethod
    def from_mapping(cls, data: Mapping[str, object] | None) -> "EditorSettings":
        if data is None:
            return cls()
        return cls().update(**{key: value for key, value in data.items() if value is not None})

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EditorSettings":
        """``LIVEFIX_<FIELD>`` 形式の環境変数から設定を読む。"""

        env = os.environ if environ is None else environ
        overrides = {}
        for item in fields(cls):
            raw = env.get(f"LIVEFIX_{item.name.upper()}")
            if raw is not None and raw.strip():
                overrides[item.name] = raw.strip()
        return cls().update(**overrides)

    def update(self, **overrides: object) -> "EditorSettings":
        values: dict[str, Any] = self.as_dict()
        known = {item.name: item for item in fields(self)}
        for key, value in overrides.items():
            if key not in known:
                continue
            values[key] = _coerce(key, value, type(values[key]))
        return EditorSettings(**values)

    def as_dict(self) -> dict[str, Any]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


def _coerce(name: str, value: object, target: type) -> Any:
    if target is bool:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_VALUES:
                return True
            if lowered in _FALSE_VALUES:
                return False
            raise ValueError(f"{name} は真偽値で指定してください: {value!r}")
        return bool(value)
    if target is int:
        number = int(value)  # type: ignore[arg-type]
        if number < 0:
            raise ValueError(f"{name} は 0 以上で指定してください: {value!r}")
        return number
    if target is float:
        number = float(value)  # type: ignore[arg-type]
        if number < 0:
            raise ValueError(f"{name} は 0 以上で指定してください: {value!r}")
        return number
    return str(value).strip()


__all__ = ["EditorSettings"]
