from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Mapping, Optional

# 膠着語系（ウズベク語など）は語中のアポストロフィが綴りの一部になる
AGGLUTINATIVE_LANGUAGES = frozenset({"uz", "uz-latn", "uz_latn", "uz-cyrl", "uz_cyrl", "tr", "kk", "az"})

SHORT_WORD_LIMIT = 3
"""この長さ以下のトークンは常に既知として扱う（前置詞・接続詞などのノイズ抑制）。"""

_APOSTROPHES = "'ʻʼ’‘`"
_WORD_RE = re.compile(r"[^\s.,!?;:()\"«»—“”„]+")
_NON_WORD_RE = re.compile(r"[\W_]+")
_NON_WORD_KEEP_APOSTROPHE_RE = re.compile(rf"[^\w{_APOSTROPHES}]+|_+")
_APOSTROPHE_RE = re.compile(rf"[{_APOSTROPHES}]")
_NUMBER_RE = re.compile(r"^[+-]?\d+(?:[.,]\d+)*$")
_GAP_WORD_RE = re.compile(r"[^\W_]+")

WordSets = Mapping[str, "frozenset[str] | set[str]"]


@dataclass(frozen=True)
class WordToken:
    text: str
    start: int
    end: int


@dataclass(frozen=True)
class UnknownSegment:
    text: str
    start: int
    end: int


def normalize_word(word: str, language: str | None = None) -> str:
    """辞書照合用に単語を正規化する（小文字化・記号除去）。

    ダイアクリティクスは保持し、膠着語系では語中のアポストロフィを ``'`` に統一して残す。
    """

    lowered = word.lower()
    if language and language.lower() in AGGLUTINATIVE_LANGUAGES:
        cleaned = _NON_WORD_KEEP_APOSTROPHE_RE.sub("", lowered)
        cleaned = _APOSTROPHE_RE.sub("'", cleaned)
        return cleaned.strip("'")
    return _NON_WORD_RE.sub("", lowered)


def iter_word_tokens(text: str) -> Iterator[WordToken]:
    for match in _WORD_RE.finditer(text):
        yield WordToken(text=match.group(0), start=match.start(), end=match.end())


def is_number(token: str) -> bool:
    return bool(_NUMBER_RE.match(token))


def is_known_word(token: str, word_sets: WordSets, language: str | None = None) -> bool:
    """読み込み済みのいずれかの言語に含まれていれば既知とする（多言語混在を許容）。"""

    if len(token) <= SHORT_WORD_LIMIT:
        return True
    if is_number(token):
        return True

    cleaned = normalize_word(token, language)
    if not cleaned or cleaned.isdigit():
        return True

    for lang, words in word_sets.items():
        if words and normalize_word(token, lang) in words:
            return True
    return False


def find_unknown_words(text: str, language: str | None, word_sets: WordSets) -> List[str]:
    """テキスト中の未知語を出現順（重複なし）で返す。"""

    unknown: List[str] = []
    seen: set[str] = set()
    for token in iter_word_tokens(text):
        if is_known_word(token.text, word_sets, language):
            continue
        if token.text in seen:
            continue
        seen.add(token.text)
        unknown.append(token.text)
    return unknown


def find_unknown_segments(text: str, words: Iterable[str]) -> Optional[List[UnknownSegment]]:
    """未知語の位置を隣接するもの同士でまとめた区間として返す。未知語が無ければ None。"""

    targets = set(words)
    if not targets:
        return None

    ranges = [(tok.start, tok.end) for tok in iter_word_tokens(text) if tok.text in targets]
    if not ranges:
        return None

    segments: List[UnknownSegment] = []
    current_start, current_end = ranges[0]
    for next_start, next_end in ranges[1:]:
        gap = text[current_end:next_start]
        gap_words = _GAP_WORD_RE.findall(gap)
        bridgeable = all(len(word) <= SHORT_WORD_LIMIT for word in gap_words)
        if len(gap) < 5 or bridgeable:
            current_end = next_end
            continue
        segments.append(UnknownSegment(text=text[current_start:current_end], start=current_start, end=current_end))
        current_start, current_end = next_start, next_end
    segments.append(UnknownSegment(text=text[current_start:current_end], start=current_start, end=current_end))
    return segments


__all__ = [
    "AGGLUTINATIVE_LANGUAGES",
    "SHORT_WORD_LIMIT",
    "UnknownSegment",
    "WordSets",
    "WordToken",
    "find_unknown_segments",
    "find_unknown_words",
    "is_known_word",
    "is_number",
    "iter_word_tokens",
    "normalize_word",
]
