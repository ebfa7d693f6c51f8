from .base import CORRECTION_OPERATIONS, BaseCorrector, PassthroughCorrector
from .exceptions import CorrectionBackendError, CorrectionTimeoutError
from .factory import BACKEND_NAMES, build_backend
from .gemini import GeminiCorrector
from .postprocess import clean_model_response, ensure_proper_spacing, remove_fillers

__all__ = [
    "BACKEND_NAMES",
    "BaseCorrector",
    "CORRECTION_OPERATIONS",
    "CorrectionBackendError",
    "CorrectionTimeoutError",
    "GeminiCorrector",
    "PassthroughCorrector",
    "build_backend",
    "clean_model_response",
    "ensure_proper_spacing",
    "remove_fillers",
]
