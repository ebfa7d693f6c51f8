from __future__ import annotations

import logging
import os

from src.config.defaults import BACKEND_ENV_VAR

from .base import BaseCorrector, PassthroughCorrector
from .gemini import GeminiCorrector

logger = logging.getLogger(__name__)

BACKEND_NAMES = ("gemini", "mlx", "passthrough")


def build_backend(name: str | None = None) -> BaseCorrector:
    """名前からバックエンドを構築する。未指定時は API キーの有無で自動選択する。"""

    resolved = (name or os.getenv(BACKEND_ENV_VAR) or "auto").strip().lower()
    if resolved == "auto":
        if GeminiCorrector._resolve_api_key():
            resolved = "gemini"
        else:
            logger.info("Gemini API キーが未設定のため passthrough バックエンドを利用します")
            resolved = "passthrough"

    if resolved == "gemini":
        return GeminiCorrector()
    if resolved == "mlx":
        from .llm_client import LocalLLMCorrector  # noqa: WPS433 - mlx は任意依存

        return LocalLLMCorrector()
    if resolved == "passthrough":
        return PassthroughCorrector()
    raise ValueError(f"未知の補正バックエンドです: {resolved} (利用可能: {', '.join(BACKEND_NAMES)})")


__all__ = ["BACKEND_NAMES", "build_backend"]
