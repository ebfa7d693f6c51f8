from __future__ import annotations

import re
from typing import Dict, Tuple

_LETTERS = "a-zA-Zа-яА-ЯёЁ"

FILLER_WORDS: Dict[str, Tuple[str, ...]] = {
    "en": (
        "um", "umm", "uh", "er", "ah", "like", "you know", "sort of", "kind of", "basically",
        "literally", "actually", "so", "mean", "right", "okay", "well", "hmm", "huh",
    ),
    "ru": (
        "эм", "эмм", "э-э", "ну", "вот", "как бы", "типа", "короче", "в общем", "так сказать",
        "значит", "слушай", "понимаешь", "собственно", "вообще", "мда", "гм", "хм",
    ),
}
"""言い淀み（フィラー）語の一覧。"""

_BULLET_RE = re.compile(r"^[*\-]\s")
_PREAMBLE_LINE_RE = re.compile(
    r"^(here is|sure|вот|конечно|вариант|исправленный текст|option).*?[:\n]", re.IGNORECASE
)
_PREAMBLE_INLINE_RE = re.compile(
    r"^(here is|sure|okay|вот|конечно|вариант|исправленный текст)[^:\n]*:\s*", re.IGNORECASE
)
# 編集マーカーのみ除去する（通常の括弧書きは残す）
_EDIT_MARKER_RE = re.compile(
    r"\s*\((?:remove|removed|insert|inserted|delete|deleted|fix|fixed|\d+\s+(?:removals?|insertions?|changes?|fixes?))\)",
    re.IGNORECASE,
)
_EQUATION_DEBUG_RE = re.compile(r"(?<!\S)\w+=\w+(?!\S)")
_WAIT_REASONING_RE = re.compile(r"^Wait,.*?:\s*", re.IGNORECASE)
_INLINE_SPACE_RE = re.compile(r"[ \t]+")
_SPACE_BEFORE_PUNCT_RE = re.compile(r"[ \t]+([,.;:!?])")
_ORPHAN_LEADING_PUNCT_RE = re.compile(r"^[ \t]*[,;:][ \t]*")
_SPACE_AFTER_PUNCT_RE = re.compile(rf"([.,:;])([{_LETTERS}])")
_SPACE_AFTER_MARK_RE = re.compile(rf"([?!])([{_LETTERS}0-9])")


def clean_model_response(text: str) -> str:
    """モデル応答から前置き・箇条書き・推論の痕跡を取り除く。"""

    if not text:
        return ""

    lines = []
    for line in text.split("\n"):
        stripped = line.strip()
        if _BULLET_RE.match(stripped):
            continue
        if _PREAMBLE_LINE_RE.match(stripped):
            continue
        lines.append(line)
    if not any(line.strip() for line in lines):
        # すべて除去された場合は記号だけ落として元の行を使う
        lines = [re.sub(r"^\s*[*\-]\s", "", line) for line in text.split("\n")]

    cleaned = "\n".join(line.strip() for line in lines if line.strip())
    cleaned = _EDIT_MARKER_RE.sub("", cleaned)
    cleaned = _EQUATION_DEBUG_RE.sub("", cleaned)
    cleaned = _WAIT_REASONING_RE.sub("", cleaned)
    cleaned = _PREAMBLE_INLINE_RE.sub("", cleaned)
    cleaned = _INLINE_SPACE_RE.sub(" ", cleaned)
    return "\n".join(line.strip() for line in cleaned.split("\n")).strip()


def remove_fillers(text: str, language: str | None) -> str:
    if not text:
        return ""
    key = (language or "en").lower()
    fillers = FILLER_WORDS["ru"] if key.startswith("ru") else FILLER_WORDS["en"]

    cleaned = text
    for filler in fillers:
        pattern = rf"(?<![{_LETTERS}]){re.escape(filler)}(?![{_LETTERS}])"
        cleaned = re.sub(pattern, "", cleaned, flags=re.IGNORECASE)

    lines = []
    for line in cleaned.split("\n"):
        line = _INLINE_SPACE_RE.sub(" ", line)
        line = _SPACE_BEFORE_PUNCT_RE.sub(r"\1", line)
        line = _ORPHAN_LEADING_PUNCT_RE.sub("", line)
        lines.append(line.strip())
    return "\n".join(lines).strip()


def ensure_proper_spacing(text: str) -> str:
    """句読点の直後に文字が続く場合に空白を補う。小数や時刻 (3.14, 12:30) は変更しない。"""

    if not text:
        return ""
    processed = _SPACE_AFTER_PUNCT_RE.sub(r"\1 \2", text)
    return _SPACE_AFTER_MARK_RE.sub(r"\1 \2", processed)


def postprocess_response(operation: str, response: str, original: str, language: str | None) -> str:
    """バックエンド共通の後処理。空応答は元のテキストを返す。"""

    result = (response or "").strip()
    if not result:
        return original
    if operation in {"finalize", "fix_and_finalize", "enhance"}:
        result = remove_fillers(result, language)
    result = clean_model_response(result)
    return result or original


__all__ = [
    "FILLER_WORDS",
    "clean_model_response",
    "ensure_proper_spacing",
    "postprocess_response",
    "remove_fillers",
]
