from __future__ import annotations

import logging
import os
import time
from typing import Dict, Sequence

import httpx

from .base import BaseCorrector
from .exceptions import CorrectionBackendError, CorrectionTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta"
"""Gemini API (Generative Language API) のベース URL。"""

DEFAULT_MODEL = "gemini-2.5-flash"

TOKEN_ENV_VARS: Sequence[str] = (
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "API_KEY",
)
"""利用可能な API キー環境変数の優先順位。"""

OPERATION_TIMEOUTS: Dict[str, float] = {
    "fix_typos": 15.0,
    "finalize": 20.0,
    "fix_and_finalize": 25.0,
    "enhance": 25.0,
}
"""操作ごとの HTTP タイムアウト（秒）。"""

OPERATION_PARAMETERS: Dict[str, Dict[str, object]] = {
    "fix_typos": {"temperature": 0.2, "maxOutputTokens": 2048},
    "finalize": {"temperature": 0.1, "maxOutputTokens": 8192},
    "fix_and_finalize": {"temperature": 0.1, "maxOutputTokens": 8192},
    "enhance": {"temperature": 0.1, "maxOutputTokens": 8192},
}


class GeminiCorrector(BaseCorrector):
    """Gemini API を利用した補正クライアント。"""

    name = "gemini"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        endpoint: str | None = None,
        timeouts: Dict[str, float] | None = None,
        max_retries: int = 2,
        retry_interval: float = 0.5,
    ) -> None:
        self.api_key = api_key or self._resolve_api_key()
        if not self.api_key:
            raise ValueError("Gemini API キーが指定されていません。環境変数 GEMINI_API_KEY などを設定してください。")
        self.model = model or os.getenv("LIVEFIX_GEMINI_MODEL") or DEFAULT_MODEL
        self.endpoint = (endpoint or os.getenv("LIVEFIX_GEMINI_ENDPOINT") or DEFAULT_ENDPOINT).rstrip("/")
        self.timeouts = {**OPERATION_TIMEOUTS, **(timeouts or {})}
        self.max_retries = max_retries
        self.retry_interval = retry_interval

    @property
    def url(self) -> str:
        return f"{self.endpoint}/models/{self.model}:generateContent"

    def _generate(self, operation: str, prompt: str, text: str) -> str:
        payload = {
            "systemInstruction": {"parts": [{"text": prompt}]},
            "contents": [{"role": "user", "parts": [{"text": text}]}],
            "generationConfig": {
                **OPERATION_PARAMETERS[operation],
                "thinkingConfig": {"thinkingBudget": 0},
            },
        }
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }
        timeout = self.timeouts.get(operation, 25.0)

        for attempt in range(self.max_retries + 1):
            try:
                response = httpx.post(self.url, headers=headers, json=payload, timeout=timeout)
                response.raise_for_status()
            except httpx.TimeoutException as exc:
                raise CorrectionTimeoutError(f"Gemini API が {timeout:.0f}s 以内に応答しませんでした。") from exc
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status < 500 or attempt == self.max_retries:
                    raise CorrectionBackendError(f"Gemini API が HTTP {status} を返しました。") from exc
                logger.warning("Gemini API が一時的に失敗 (%s)。リトライします。", status)
            except httpx.RequestError as exc:  # ネットワークエラー
                if attempt == self.max_retries:
                    raise CorrectionBackendError("Gemini API への接続に失敗しました。") from exc
                logger.warning("Gemini API への接続が失敗しました。リトライします。")
            else:
                generated = self._extract_generated_text(response.json())
                if generated is None:
                    raise CorrectionBackendError("Gemini API の応答を解釈できませんでした。")
                return generated

            time.sleep(self.retry_interval * (attempt + 1))

        raise CorrectionBackendError("Gemini API の呼び出しに連続して失敗しました。")

    def _extract_generated_text(self, data: object) -> str | None:
        """generateContent 応答から生成テキストを抽出する。"""

        if not isinstance(data, dict):
            return None
        error = data.get("error")
        if error:
            raise CorrectionBackendError(f"Gemini API エラー: {error}")
        feedback = data.get("promptFeedback")
        if isinstance(feedback, dict) and feedback.get("blockReason"):
            raise CorrectionBackendError(f"Gemini API が入力を拒否しました: {feedback['blockReason']}")

        candidates = data.get("candidates")
        if not isinstance(candidates, list):
            return None
        for candidate in candidates:
            if not isinstance(candidate, dict):
                continue
            content = candidate.get("content")
            if not isinstance(content, dict):
                continue
            parts = content.get("parts") or []
            texts = [part.get("text") for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)]
            if texts:
                return "".join(texts)
        return None

    @staticmethod
    def _resolve_api_key() -> str | None:
        for key in TOKEN_ENV_VARS:
            value = os.getenv(key)
            if value:
                return value
        return None


__all__ = ["DEFAULT_ENDPOINT", "DEFAULT_MODEL", "GeminiCorrector", "OPERATION_TIMEOUTS"]
