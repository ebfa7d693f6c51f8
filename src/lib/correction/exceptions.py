from __future__ import annotations


class CorrectionBackendError(RuntimeError):
    """補正バックエンド呼び出しの失敗を表す例外。"""


class CorrectionTimeoutError(CorrectionBackendError):
    """補正バックエンドが時間内に応答しなかった。"""


__all__ = ["CorrectionBackendError", "CorrectionTimeoutError"]
