"""アプリ全体で共有する既定値。"""

from __future__ import annotations

import os


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


DEFAULT_LANGUAGE = os.getenv("LIVEFIX_LANGUAGE", "en").strip() or "en"
"""補正時に利用するデフォルト言語。"""

DEFAULT_TICK_SECONDS = _env_float("LIVEFIX_TICK_SECONDS", 0.5)
"""パイプラインのステージ選択を呼び出す周期（秒）。"""

DEFAULT_DEBOUNCE_SECONDS = _env_float("LIVEFIX_DEBOUNCE_SECONDS", 0.7)
"""最後のキー入力からパイプラインを動かすまでの待機時間（秒）。"""

DEFAULT_DICTIONARY_TIMEOUT = _env_float("LIVEFIX_DICTIONARY_TIMEOUT", 2.0)
"""辞書ワーカー往復のタイムアウト（秒）。超過時はチェック済みとして扱う。"""

DEFAULT_AI_TIMEOUT = _env_float("LIVEFIX_AI_TIMEOUT", 25.0)
"""AI 補正呼び出しのタイムアウト（秒）。"""

HISTORY_CAPACITY = 50
"""履歴チェックポイントの上限件数。"""

WORDLIST_DIR = os.getenv("LIVEFIX_WORDLIST_DIR") or None
"""`<言語>.txt` 形式の単語リストを置くディレクトリ。"""

BACKEND_ENV_VAR = "LIVEFIX_BACKEND"
"""補正バックエンド (gemini / mlx / passthrough) を明示する環境変数。"""
