"""root package for project modules."""

from __future__ import annotations

import os


# mlx-lm が読み込む Hugging Face tokenizers は、補正スレッドから使うと
# 並列モードの警告を出すためデフォルトで無効化しておく。
os.environ.setdefault("TOKENIZERS_PARALLELISM", "false")
