from __future__ import annotations

from typing import Tuple

from .postprocess import postprocess_response
from .prompts import get_prompts

CORRECTION_OPERATIONS: Tuple[str, ...] = ("fix_typos", "finalize", "fix_and_finalize", "enhance")
"""AI 補正バックエンドが提供する操作。"""


class BaseCorrector:
    """AI 補正バックエンドの共通インターフェース。

    4 つの操作はいずれも ``(text, language) -> str``。空白のみの入力はそのまま返し、
    応答はバックエンド共通の後処理（前置き除去・フィラー除去）を通してから返す。
    失敗時は ``CorrectionBackendError`` を送出する。
    """

    name = "base"

    def fix_typos(self, text: str, language: str) -> str:
        return self.run("fix_typos", text, language)

    def finalize(self, text: str, language: str) -> str:
        return self.run("finalize", text, language)

    def fix_and_finalize(self, text: str, language: str) -> str:
        return self.run("fix_and_finalize", text, language)

    def enhance(self, text: str, language: str) -> str:
        return self.run("enhance", text, language)

    def run(self, operation: str, text: str, language: str) -> str:
        if operation not in CORRECTION_OPERATIONS:
            raise ValueError(f"未知の補正オペレーションです: {operation}")
        if not text or not text.strip():
            return text
        prompt = get_prompts(language).for_operation(operation)
        response = self._generate(operation, prompt, text)
        return postprocess_response(operation, response, text, language)

    def _generate(self, operation: str, prompt: str, text: str) -> str:
        raise NotImplementedError

    def close(self) -> None:
        """保持しているリソースを解放する（既定では何もしない）。"""


class PassthroughCorrector(BaseCorrector):
    """入力をそのまま返すバックエンド。API キー未設定時やテストで利用する。"""

    name = "passthrough"

    def run(self, operation: str, text: str, language: str) -> str:
        if operation not in CORRECTION_OPERATIONS:
            raise ValueError(f"未知の補正オペレーションです: {operation}")
        return text


__all__ = ["BaseCorrector", "CORRECTION_OPERATIONS", "PassthroughCorrector"]
