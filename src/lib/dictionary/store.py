from __future__ import annotations

import csv
import json
import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping

from src.lib.dictionary.words import normalize_word

logger = logging.getLogger(__name__)

StoreListener = Callable[[str, frozenset], None]

_SUPPORTED_SUFFIXES = (".txt", ".csv", ".tsv", ".json")
_HEADER_NAMES = {"word", "words", "lemma", "token", "слово", "so'z"}


class WordListStore:
    """言語ごとの単語集合を保持するストア。

    読み込み・置換のたびに購読者へ ``(language, words)`` を通知する。
    辞書ワーカーはこれを購読して自身のコピーを同期する。
    """

    def __init__(self, initial: Mapping[str, Iterable[str]] | None = None) -> None:
        self._lock = threading.Lock()
        self._words: Dict[str, frozenset] = {}
        self._listeners: List[StoreListener] = []
        for language, words in (initial or {}).items():
            self._words[_normalize_language(language)] = _normalize_words(words, language)

    def load(self, language: str, path: str | Path) -> int:
        """ファイルから単語リストを読み込み、その言語の集合を置き換える。読み込んだ語数を返す。"""

        source = Path(path)
        if not source.exists():
            raise FileNotFoundError(f"単語リストが見つかりません: {source}")
        words = _read_word_file(source)
        self.replace(language, words)
        logger.info("単語リストを読み込みました: language=%s words=%d path=%s", language, len(words), source)
        return len(self.get(language))

    def load_directory(self, directory: str | Path) -> Dict[str, int]:
        """``<言語>.<拡張子>`` 形式のファイルをまとめて読み込む。"""

        root = Path(directory)
        if not root.is_dir():
            raise NotADirectoryError(f"単語リストのディレクトリではありません: {root}")
        loaded: Dict[str, int] = {}
        for entry in sorted(root.iterdir()):
            if not entry.is_file() or entry.suffix.lower() not in _SUPPORTED_SUFFIXES:
                continue
            loaded[entry.stem] = self.load(entry.stem, entry)
        return loaded

    def replace(self, language: str, words: Iterable[str]) -> None:
        key = _normalize_language(language)
        normalized = _normalize_words(words, key)
        with self._lock:
            self._words[key] = normalized
            listeners = list(self._listeners)
        for listener in listeners:
            listener(key, normalized)

    def get(self, language: str) -> frozenset:
        with self._lock:
            return self._words.get(_normalize_language(language), frozenset())

    def languages(self) -> List[str]:
        with self._lock:
            return sorted(self._words)

    def as_mapping(self) -> Dict[str, frozenset]:
        with self._lock:
            return dict(self._words)

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """変更通知を購読する。戻り値を呼ぶと購読を解除する。"""

        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe


def _normalize_language(language: str) -> str:
    return (language or "").strip().lower()


def _normalize_words(words: Iterable[str], language: str | None) -> frozenset:
    normalized = set()
    for word in words:
        if not isinstance(word, str):
            continue
        cleaned = normalize_word(word.strip(), language)
        if cleaned:
            normalized.add(cleaned)
    return frozenset(normalized)


def _read_word_file(path: Path) -> List[str]:
    suffix = path.suffix.lower()
    if suffix == ".json":
        return _read_json_words(path)
    if suffix in {".csv", ".tsv"}:
        delimiter = "\t" if suffix == ".tsv" else ","
        with path.open("r", encoding="utf-8", newline="") as fh:
            return _first_column(row for row in csv.reader(fh, delimiter=delimiter))

    rows = []
    with path.open("r", encoding="utf-8") as fh:
        for line in fh:
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            for sep in ("\t", ",", ";"):
                if sep in stripped:
                    stripped = stripped.split(sep, 1)[0]
                    break
            rows.append([stripped])
    return _first_column(rows)


def _first_column(rows: Iterable[List[str]]) -> List[str]:
    words: List[str] = []
    for index, row in enumerate(rows):
        if not row:
            continue
        value = row[0].strip()
        if not value:
            continue
        if index == 0 and value.lower() in _HEADER_NAMES:
            continue
        words.append(value)
    return words


def _read_json_words(path: Path) -> List[str]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        return [str(key) for key in data.keys()]
    if not isinstance(data, list):
        raise ValueError(f"対応していない単語リスト形式です: {path}")
    words: List[str] = []
    for item in data:
        if isinstance(item, str):
            words.append(item)
        elif isinstance(item, dict) and isinstance(item.get("word"), str):
            words.append(item["word"])
    return words


__all__ = ["StoreListener", "WordListStore"]
