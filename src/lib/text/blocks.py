from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List

# 終端記号を含まない文字列 + 終端記号の連続 + 空白または文字列末尾
_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]+(?:\s+|\Z)")
_COMPLETE_TAIL_RE = re.compile(r"[^.!?\s][^.!?]*[.!?]+\s*\Z")
_WORD_CHAR_RE = re.compile(r"[^\W\d_]")


@dataclass(frozen=True)
class TextBlock:
    """文単位のブロック。start/end は分割元の文字列に対するオフセット。"""

    text: str
    start: int
    end: int
    is_separator: bool = False

    def shifted(self, base: int) -> "TextBlock":
        if not base:
            return self
        return TextBlock(text=self.text, start=self.start + base, end=self.end + base, is_separator=self.is_separator)

    @property
    def normalized(self) -> str:
        return normalize_block(self.text)

    @property
    def is_complete(self) -> bool:
        """終端記号 + 空白/末尾で閉じた文かどうか。"""

        return not self.is_separator and bool(_COMPLETE_TAIL_RE.search(self.text))


def split_into_blocks(text: str, *, base: int = 0) -> List[TextBlock]:
    """テキストを文と区切り断片に分割する。

    ブロックは ``[0, len(text))`` を隙間なく重なりなく覆う。どの文パターンにも
    一致しなかった先頭/途中の断片は ``is_separator=True``、終端記号のない末尾の
    断片は未完の文として ``is_separator=False`` で返す。
    """

    blocks: List[TextBlock] = []
    last = 0
    for match in _SENTENCE_RE.finditer(text):
        if match.start() > last:
            blocks.append(TextBlock(text=text[last : match.start()], start=last, end=match.start(), is_separator=True))
        blocks.append(TextBlock(text=match.group(0), start=match.start(), end=match.end()))
        last = match.end()

    if last < len(text):
        blocks.append(TextBlock(text=text[last:], start=last, end=len(text)))

    if base:
        return [block.shifted(base) for block in blocks]
    return blocks


def normalize_block(text: str) -> str:
    """確定済み集合に格納するための正規化（位置に依存しないよう前後空白を除去）。"""

    return text.strip()


def has_word_chars(text: str) -> bool:
    return bool(_WORD_CHAR_RE.search(text))


def leading_whitespace(text: str) -> str:
    return text[: len(text) - len(text.lstrip())]


def trailing_whitespace(text: str) -> str:
    return text[len(text.rstrip()) :]


__all__ = [
    "TextBlock",
    "has_word_chars",
    "leading_whitespace",
    "normalize_block",
    "split_into_blocks",
    "trailing_whitespace",
]
