from .finalized import FinalizedSet
from .history import Checkpoint, HistoryStore
from .options import EditorSettings
from .pipeline import CorrectionPipeline, edit_position
from .runtime import TickRunner, run_until_settled
from .session import EditSession
from .storage import SessionSnapshot, export_snapshot, load_session, save_session
from .timers import NamedTimers
from .types import EditorState, EditorStats, PendingCorrection, ProgressOffsets, RangeError

__all__ = [
    "Checkpoint",
    "CorrectionPipeline",
    "EditSession",
    "EditorSettings",
    "EditorState",
    "EditorStats",
    "FinalizedSet",
    "HistoryStore",
    "NamedTimers",
    "PendingCorrection",
    "ProgressOffsets",
    "RangeError",
    "SessionSnapshot",
    "TickRunner",
    "edit_position",
    "export_snapshot",
    "load_session",
    "run_until_settled",
    "save_session",
]
