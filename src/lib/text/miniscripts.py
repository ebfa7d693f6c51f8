"""ミニスクリプト: AI に渡す前にローカルで即時に行う正規表現ベースの整形。"""

from __future__ import annotations

import re

_LOWER = "a-zа-яё"
_LETTER = "a-zA-Zа-яА-ЯёЁ"

_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+([.,!?:;])")
# 数字 (1.2) や時刻 (12:30) を壊さないよう、直後が文字の場合のみ空白を補う
_MISSING_SPACE_AFTER_RE = re.compile(rf"([.,!?:;])([{_LETTER}])")
_LOWER_AFTER_TERMINATOR_RE = re.compile(rf"([.!?]\s+)([{_LOWER}])")
_LOWER_AT_START_RE = re.compile(rf"^(\s*)([{_LOWER}])")
_REPEATED_SPACE_RE = re.compile(r"[ \t]{2,}")


def _upper_second(match: re.Match[str]) -> str:
    return match.group(1) + match.group(2).upper()


def run_mini_scripts(text: str, *, capitalize_start: bool = True) -> str:
    """決定的な整形ルールを適用する。

    1. 句読点の前の空白を削除 (``word .`` → ``word.``)
    2. 句読点の後の空白を補完 (``word.Word`` → ``word. Word``)
    3. 文末記号の後の小文字を大文字化
    4. 先頭の小文字を大文字化（``capitalize_start`` が真の場合）
    5. 連続する空白/タブを1つに圧縮

    出力に再適用しても変化しない（冪等）。
    """

    if not text:
        return text

    result = _SPACE_BEFORE_PUNCT_RE.sub(r"\1", text)
    result = _MISSING_SPACE_AFTER_RE.sub(r"\1 \2", result)
    result = _LOWER_AFTER_TERMINATOR_RE.sub(_upper_second, result)
    if capitalize_start:
        result = _LOWER_AT_START_RE.sub(_upper_second, result)
    result = _REPEATED_SPACE_RE.sub(" ", result)
    return result


def starts_sentence(text: str, position: int) -> bool:
    """``position`` が文頭（先頭、または文末記号 + 空白の直後）に当たるか。"""

    before = text[:position].rstrip()
    if not before:
        return True
    return before[-1] in ".!?" and len(before) < position


__all__ = ["run_mini_scripts", "starts_sentence"]
