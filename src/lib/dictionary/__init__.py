from .store import WordListStore
from .words import UnknownSegment, find_unknown_segments, find_unknown_words, is_known_word, normalize_word
from .worker import (
    CheckRequest,
    CheckResponse,
    DictionaryTimeoutError,
    DictionaryWorker,
    DictionaryWorkerError,
)

__all__ = [
    "CheckRequest",
    "CheckResponse",
    "DictionaryTimeoutError",
    "DictionaryWorker",
    "DictionaryWorkerError",
    "UnknownSegment",
    "WordListStore",
    "find_unknown_segments",
    "find_unknown_words",
    "is_known_word",
    "normalize_word",
]
