from __future__ import annotations

import gc
import logging
import os
import threading
from importlib import import_module
from typing import Any, Dict, Tuple

from .base import BaseCorrector
from .exceptions import CorrectionBackendError

logger = logging.getLogger(__name__)

mlx_load = None  # type: ignore[assignment]
mlx_generate = None  # type: ignore[assignment]
mlx_make_sampler = None  # type: ignore[assignment]

_MODEL_CACHE: Dict[str, Tuple[Any, Any]] = {}
_MODEL_LOCK = threading.Lock()
_USE_CACHE = os.getenv("LIVEFIX_LLM_CACHE", "1").lower() not in {"0", "false", "off", "no"}

_MAX_TOKENS = {"fix_typos": 512, "finalize": 1024, "fix_and_finalize": 1024, "enhance": 2048}


def _ensure_mlx_loaded() -> None:
    global mlx_load, mlx_generate, mlx_make_sampler
    if mlx_load is not None and mlx_generate is not None and mlx_make_sampler is not None:
        return
    try:
        module = import_module("mlx_lm")
        mlx_load = getattr(module, "load")
        mlx_generate = getattr(module, "generate")
        sampler_module = import_module("mlx_lm.sample_utils")
        mlx_make_sampler = getattr(sampler_module, "make_sampler")
    except Exception as exc:  # noqa: BLE001
        raise ValueError(
            "mlx-lm がロードできません。'pip install -U mlx mlx-lm' を実行してから再度試してください。"
        ) from exc


class LocalLLMCorrector(BaseCorrector):
    """mlx-lm を利用したローカル LLM 補正クライアント。"""

    name = "mlx"

    def __init__(
        self,
        *,
        model_id: str | None = None,
        temperature: float = 0.1,
        top_p: float = 0.9,
        load_fn: Any | None = None,
        generate_fn: Any | None = None,
        sampler_factory: Any | None = None,
    ) -> None:
        self.model_id = model_id or os.getenv("LIVEFIX_LLM_MODEL")
        if not self.model_id:
            raise ValueError("LIVEFIX_LLM_MODEL 環境変数でモデル ID を指定してください。")

        self.temperature = temperature
        self.top_p = top_p
        if load_fn is None or generate_fn is None or sampler_factory is None:
            _ensure_mlx_loaded()
        self._load_fn = load_fn or mlx_load
        self._generate_fn = generate_fn or mlx_generate
        self._sampler_factory = sampler_factory or mlx_make_sampler
        # 生成は逐次実行（mlx のモデルはスレッド間で共有しない）
        self._generate_lock = threading.Lock()

        if _USE_CACHE:
            with _MODEL_LOCK:
                if self.model_id not in _MODEL_CACHE:
                    _MODEL_CACHE[self.model_id] = self._load_fn(self.model_id)
                self._model, self._tokenizer = _MODEL_CACHE[self.model_id]
        else:
            self._model, self._tokenizer = self._load_fn(self.model_id)

    def _generate(self, operation: str, prompt: str, text: str) -> str:
        messages = [
            {"role": "system", "content": prompt},
            {"role": "user", "content": text},
        ]
        rendered = self._tokenizer.apply_chat_template(messages, tokenize=False, add_generation_prompt=True)
        temperature = 0.2 if operation == "fix_typos" else self.temperature
        sampler = self._sampler_factory(temp=temperature, top_p=self.top_p)

        try:
            with self._generate_lock:
                output = self._generate_fn(
                    self._model,
                    self._tokenizer,
                    prompt=rendered,
                    max_tokens=_MAX_TOKENS.get(operation, 1024),
                    sampler=sampler,
                )
        except Exception as exc:  # noqa: BLE001
            raise CorrectionBackendError("LLM 生成に失敗しました。") from exc

        if isinstance(output, list):
            return "".join(str(item) for item in output)
        return str(output)

    def close(self) -> None:
        self._model = None  # type: ignore[assignment]
        self._tokenizer = None  # type: ignore[assignment]
        gc.collect()


def unload_llm_models(model_id: str | None = None) -> int:
    """LLM モデルキャッシュを解放する。

    戻り値は解放できたエントリ数。
    """
    removed = 0
    with _MODEL_LOCK:
        global _MODEL_CACHE
        if model_id is None:
            removed = len(_MODEL_CACHE)
            _MODEL_CACHE = {}
        elif model_id in _MODEL_CACHE:
            _MODEL_CACHE.pop(model_id, None)
            removed = 1
    if removed:
        logger.debug("LLM モデルキャッシュを解放: %d 件", removed)
    gc.collect()
    return removed


__all__ = ["LocalLLMCorrector", "unload_llm_models"]
