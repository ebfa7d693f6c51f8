from __future__ import annotations

import itertools
import logging
import os
import queue
import re
import time
from concurrent.futures import Executor, Future
from typing import Any, Callable, Dict, List, Sequence, Tuple

from src.lib.correction.base import BaseCorrector
from src.lib.correction.exceptions import CorrectionTimeoutError
from src.lib.correction.postprocess import ensure_proper_spacing
from src.lib.dictionary.worker import DictionaryTimeoutError
from src.lib.dictionary.words import iter_word_tokens
from src.lib.text.blocks import (
    has_word_chars,
    leading_whitespace,
    split_into_blocks,
    trailing_whitespace,
)
from src.lib.text.miniscripts import run_mini_scripts, starts_sentence

from .options import EditorSettings
from .types import (
    CONTENT_KINDS,
    KIND_STATUS,
    CorrectionKind,
    EditorState,
    EditorStats,
    EditorStatus,
    PendingCorrection,
    ProgressOffsets,
    RangeError,
    TickOutcome,
    validate_range,
)

logger = logging.getLogger(__name__)

CheckpointFn = Callable[[Tuple[str, ...]], Any]
StatusFn = Callable[[EditorStatus], None]
TimeSourceFn = Callable[[], float]

_FINALIZING_KINDS = frozenset({"finalize", "fix_and_finalize"})
_AFTER_TAGS = {
    "fix_typos": "ai_corrected",
    "finalize": "finalized",
    "fix_and_finalize": "finalized",
    "enhance": "enhanced",
}

_NON_LETTER_RUN_RE = re.compile(r"[\W\d_]*")
_TOKEN_RE = re.compile(r"\S+")
_TERMINATOR_RE = re.compile(r"[.!?]+\s*")
_CHUNK_TAIL_RE = re.compile(r"[\s.,!?;:]*")


def common_prefix_length(before: str, after: str) -> int:
    return len(os.path.commonprefix([before, after]))


def edit_position(before: str, after: str) -> int:
    """編集の影響が始まる位置。語の途中への追記・削除は語の先頭から無効にする。"""

    position = common_prefix_length(before, after)
    if position and after[position - 1 : position].isalnum() and after[position : position + 1].isalnum():
        return word_start(after, position)
    return position


def sentence_start(text: str, position: int) -> int:
    """``position`` を含む未完の文の開始位置。文の境界上ならそのまま返す。"""

    blocks = split_into_blocks(text[:position])
    if blocks and not blocks[-1].is_separator and not blocks[-1].is_complete:
        return blocks[-1].start
    return position


def word_start(text: str, position: int, floor: int = 0) -> int:
    while position > floor and not text[position - 1].isspace():
        position -= 1
    return position


class CorrectionPipeline:
    """4つの進捗オフセットを管理し、tick ごとに次の処理を1つだけ選んで実行する。

    呼び出し側（EditSession）はセッションのロックを保持した状態で ``step`` /
    ``drain`` / ``watchdog`` / ``invalidate`` を呼ぶ。非同期呼び出しの完了通知は
    受信箱に積まれるだけで、バッファの書き換えは常に ``drain`` の中で行われる。
    """

    def __init__(
        self,
        state: EditorState,
        *,
        settings: EditorSettings,
        backend: BaseCorrector,
        executor: Executor,
        checker: Any | None = None,
        time_source: TimeSourceFn = time.monotonic,
        checkpoint: CheckpointFn | None = None,
        set_status: StatusFn | None = None,
    ) -> None:
        self.state = state
        self.settings = settings
        self.backend = backend
        self.checker = checker
        self._executor = executor
        self._time_source = time_source
        self._checkpoint = checkpoint or (lambda tags: None)
        self._set_status = set_status or (lambda status: None)
        self._ids = itertools.count(1)
        self._pending: Dict[int, PendingCorrection] = {}
        self._inbox: "queue.SimpleQueue[Tuple[PendingCorrection, Future]]" = queue.SimpleQueue()
        self.stats = EditorStats()

    # ------------------------------------------------------------------
    # 状態問い合わせ
    # ------------------------------------------------------------------
    @property
    def pending(self) -> List[PendingCorrection]:
        return list(self._pending.values())

    def has_pending(self) -> bool:
        return bool(self._pending)

    def content_in_flight(self) -> bool:
        return any(item.kind in CONTENT_KINDS for item in self._pending.values())

    def dictionary_in_flight(self) -> bool:
        return any(item.kind == "dictionary" for item in self._pending.values())

    def ai_allowed(self) -> bool:
        state = self.state
        return state.enabled and not state.recording and state.transcribing == 0

    def safety_boundary(self) -> int:
        """committed 以降で最初に現れる確定済みブロックの開始位置（無ければ末尾）。"""

        state = self.state
        committed = state.offsets.committed
        for block in split_into_blocks(state.text[committed:], base=committed):
            if block.start > committed and state.finalized.has(block.text):
                return block.start
        return len(state.text)

    # ------------------------------------------------------------------
    # ステージ選択
    # ------------------------------------------------------------------
    def step(self) -> TickOutcome:
        """優先順位に従って1つだけ処理を行い、その結果を返す。"""

        if self._fast_forward():
            return "fast_forward"

        boundary = self.safety_boundary()
        busy = self.content_in_flight()

        if not busy and self._run_mini_scripts(boundary):
            return "script_fix"

        if self.ai_allowed() and not busy:
            outcome = self._finalize_stage(boundary) or self._typo_stage(boundary)
            if outcome:
                return outcome

        outcome = self._dictionary_stage(boundary)
        if outcome:
            return outcome

        if not self._pending and self.state.status in KIND_STATUS.values():
            self._set_status(self.state.resting_status())
        return "idle" if self.state.enabled else "paused"

    def _fast_forward(self) -> bool:
        """確定済みブロックの連続を読み飛ばす。

        語を含まない区切り（``...`` など）は確定済みブロックの手前にある場合に限り一緒に読み飛ばす。
        """

        state = self.state
        committed = state.offsets.committed
        position = committed
        for block in split_into_blocks(state.text[committed:], base=committed):
            if state.finalized.has(block.text):
                position = block.end
            elif has_word_chars(block.text):
                break
        if position == committed:
            return False

        for item in list(self._pending.values()):
            if item.start < position:
                self._mark_stale(item)
        state.offsets = state.offsets.update(committed=position).clamp(len(state.text))
        self._settle_flag()
        logger.debug("確定済みブロックを読み飛ばしました: committed=%d -> %d", committed, position)
        return True

    def _run_mini_scripts(self, boundary: int) -> bool:
        settings = self.settings
        state = self.state
        if not settings.mini_scripts:
            return False
        if not state.enabled and not settings.scripts_when_paused:
            return False

        start = state.offsets.committed
        if boundary <= start:
            return False
        text = state.text
        region = text[start:boundary]
        fixed = run_mini_scripts(region, capitalize_start=starts_sentence(text, start))
        if fixed == region:
            return False

        self._set_status("script_fix")
        self._checkpoint(("pre_script",))
        position = start + common_prefix_length(region, fixed)
        state.text = text[:start] + fixed + text[boundary:]
        self.invalidate(position)
        self._checkpoint(("script_fix",))
        self._set_status("done")
        return True

    def _finalize_stage(self, boundary: int) -> TickOutcome | None:
        settings = self.settings
        if not settings.fix_punctuation:
            return None
        state = self.state
        offsets = state.offsets
        prefix_end = self._complete_prefix_end(offsets.committed, boundary)
        if prefix_end is None:
            return None

        if self._verified_end(offsets.corrected, boundary) < prefix_end:
            # 未修正の語を含む複数文は一括で修正・確定する
            kind = "fix_and_finalize" if settings.fix_typos else "finalize"
            return self._submit(kind, offsets.committed, prefix_end)

        if len(state.text[offsets.committed : prefix_end].strip()) < 2:
            return None
        return self._submit("finalize", offsets.committed, prefix_end)

    def _typo_stage(self, boundary: int) -> TickOutcome | None:
        state = self.state
        offsets = state.offsets
        target_end = min(max(offsets.checked, state.flagged_end or 0), boundary)
        if target_end <= offsets.corrected:
            return None
        segment = state.text[offsets.corrected : target_end]
        if not self.settings.fix_typos or not has_word_chars(segment):
            self._advance(corrected=target_end, checked=target_end)
            return "advanced"
        return self._submit("fix_typos", offsets.corrected, target_end)

    def _dictionary_stage(self, boundary: int) -> TickOutcome | None:
        state = self.state
        if self.dictionary_in_flight():
            return None
        if state.flagged_end is not None:
            if self.ai_allowed() and self.settings.fix_typos:
                return None
            # 誤字修正が止まっている間はフラグを解除して先へ進む
            self._advance(checked=state.flagged_end)
            state.flagged_end = None
            return "advanced"

        start = state.offsets.checked
        if start >= boundary:
            return None
        if not self.settings.dictionary_check or self.checker is None:
            self._advance(checked=boundary)
            return "advanced"

        end = self._dictionary_chunk_end(start, boundary)
        if not has_word_chars(state.text[start:end]):
            self._advance(checked=end)
            return "advanced"
        return self._submit("dictionary", start, end)

    def _complete_prefix_end(self, start: int, limit: int) -> int | None:
        end = None
        for block in split_into_blocks(self.state.text[start:limit], base=start):
            if block.is_complete:
                end = block.end
        return end

    def _verified_end(self, corrected: int, limit: int) -> int:
        """corrected の直後に続く文字以外（記号・空白・数字）を修正済み扱いで読み進めた位置。"""

        if corrected >= limit:
            return corrected
        match = _NON_LETTER_RUN_RE.match(self.state.text, corrected, limit)
        return match.end() if match else corrected

    def _dictionary_chunk_end(self, start: int, limit: int) -> int:
        segment = self.state.text[start:limit]
        terminator = _TERMINATOR_RE.search(segment)
        stop = terminator.end() if terminator else len(segment)

        count = 0
        for token in _TOKEN_RE.finditer(segment, 0, stop):
            if has_word_chars(token.group(0)):
                count += 1
            if count >= self.settings.min_check_words:
                return start + _CHUNK_TAIL_RE.match(segment, token.end()).end()
        return start + stop

    # ------------------------------------------------------------------
    # 送信
    # ------------------------------------------------------------------
    def request_enhance(self) -> bool:
        """未確定部分全体の推敲を要求する。書き換え系の処理が実行中なら受け付けない。"""

        state = self.state
        if self.content_in_flight() or state.recording:
            return False
        start = state.offsets.committed
        end = len(state.text)
        if not state.text[start:end].strip():
            return False
        self._submit("enhance", start, end)
        return True

    def _submit(self, kind: CorrectionKind, start: int, end: int) -> CorrectionKind:
        state = self.state
        validate_range(start, end, len(state.text))
        pending = PendingCorrection(
            id=next(self._ids),
            kind=kind,
            start=start,
            end=end,
            snapshot=state.text[start:end],
            submitted_at=self._time_source(),
            language=self.settings.language,
        )
        self._pending[pending.id] = pending
        if kind == "dictionary":
            state.offsets = state.offsets.update(checking=end)
        self._set_status(KIND_STATUS[kind])

        try:
            if kind == "dictionary":
                future = self.checker.submit(pending.snapshot, pending.language)
            else:
                future = self._executor.submit(getattr(self.backend, kind), pending.snapshot, pending.language)
        except RuntimeError as exc:
            del self._pending[pending.id]
            self._fail(pending, exc)
            return kind

        future.add_done_callback(lambda done, item=pending: self._inbox.put((item, done)))
        logger.debug("補正を送信しました: kind=%s range=[%d,%d)", kind, start, end)
        return kind

    # ------------------------------------------------------------------
    # 結果の適用
    # ------------------------------------------------------------------
    def drain(self) -> bool:
        """受信箱の結果をすべて適用する。何かを適用（または失敗処理）したら True。"""

        handled = False
        while True:
            try:
                pending, future = self._inbox.get_nowait()
            except queue.Empty:
                return handled

            live = self._pending.pop(pending.id, None)
            if pending.stale or live is None or future.cancelled():
                logger.debug("古い補正結果を破棄しました: kind=%s id=%d", pending.kind, pending.id)
                continue

            error = future.exception()
            if error is not None:
                self._fail(pending, error)
                handled = True
                continue

            if pending.kind == "dictionary":
                handled = self._apply_dictionary(pending, future.result()) or handled
            else:
                handled = self._apply_content(pending, future.result()) or handled

    def watchdog(self) -> bool:
        """応答が期限を過ぎた呼び出しを失敗として扱う（結果は後で届いても破棄される）。"""

        now = self._time_source()
        expired = []
        for item in self._pending.values():
            limit = self.settings.dictionary_timeout if item.kind == "dictionary" else self.settings.ai_timeout
            if now - item.submitted_at > limit:
                expired.append((item, limit))
        for item, limit in expired:
            self._mark_stale(item)
            if item.kind == "dictionary":
                error: Exception = DictionaryTimeoutError(f"辞書チェックが {limit:.1f}s 以内に完了しませんでした")
            else:
                error = CorrectionTimeoutError(f"AI 補正が {limit:.1f}s 以内に完了しませんでした")
            self._fail(item, error)
        return bool(expired)

    def _apply_dictionary(self, pending: PendingCorrection, unknown: Sequence[str]) -> bool:
        state = self.state
        if not self._range_intact(pending):
            state.offsets = state.offsets.update(checking=state.offsets.checked)
            return False

        words = [word for word in unknown if word]
        for word in words:
            if word not in state.unknown_words:
                state.unknown_words.append(word)

        if words and self.ai_allowed() and self.settings.fix_typos:
            state.flagged_end = pending.end
            state.offsets = state.offsets.update(checking=state.offsets.checked)
        else:
            self._advance(checked=pending.end)
        if state.status == "dict_check":
            self._set_status(state.resting_status())
        return True

    def _apply_content(self, pending: PendingCorrection, result: str) -> bool:
        state = self.state
        if not self._range_intact(pending):
            return False
        fixed = self._fit_replacement(pending, result, state.text[pending.end :])
        self._checkpoint(("pre_ai",))
        new_end = self._replace(pending, fixed)

        offsets = state.offsets
        if pending.kind == "fix_typos":
            corrected = max(offsets.corrected, new_end)
            state.offsets = offsets.update(corrected=corrected, checked=max(offsets.checked, corrected))
        elif pending.kind in _FINALIZING_KINDS:
            state.offsets = offsets.update(committed=max(offsets.committed, new_end))
        else:
            # 推敲中に末尾へ追記された部分は未処理のまま残す
            state.offsets = offsets.update(
                committed=max(offsets.committed, new_end),
                corrected=max(offsets.corrected, new_end),
                checked=max(offsets.checked, new_end),
                checking=max(offsets.checking, new_end),
            )
        state.offsets = state.offsets.clamp(len(state.text))
        self._settle_flag()

        if pending.kind in _FINALIZING_KINDS or pending.kind == "enhance":
            for block in split_into_blocks(fixed):
                if not block.is_separator:
                    state.finalized.add(block.text)
        self._prune_unknown()
        if fixed != pending.snapshot:
            self.stats.corrections += 1

        self._checkpoint((_AFTER_TAGS[pending.kind],))
        self._set_status("done")
        return True

    def _fit_replacement(self, pending: PendingCorrection, result: str, suffix: str) -> str:
        fixed = result if isinstance(result, str) else str(result)
        lead = leading_whitespace(pending.snapshot)
        if lead and not fixed.startswith(lead):
            fixed = lead + fixed.lstrip()
        trail = trailing_whitespace(pending.snapshot)
        if trail and not fixed.endswith(trail):
            fixed = fixed.rstrip() + trail
        fixed = ensure_proper_spacing(fixed)
        if suffix[:1].isalnum() and fixed and not fixed[-1].isspace():
            fixed += " "
        return fixed

    def _replace(self, pending: PendingCorrection, fixed: str) -> int:
        """範囲を置き換え、他のオフセットと保留中の処理を新しい位置へ移す。置換後の終端を返す。"""

        state = self.state
        start, end = pending.start, pending.end
        validate_range(start, end, len(state.text))
        delta = len(fixed) - (end - start)
        new_end = start + len(fixed)
        state.text = state.text[:start] + fixed + state.text[end:]

        def remap(value: int) -> int:
            if value >= end:
                return value + delta
            if value > start:
                return new_end
            return value

        offsets = state.offsets
        state.offsets = ProgressOffsets(
            committed=remap(offsets.committed),
            corrected=remap(offsets.corrected),
            checked=remap(offsets.checked),
            checking=remap(offsets.checking),
        )
        if state.flagged_end is not None:
            state.flagged_end = remap(state.flagged_end)

        for item in list(self._pending.values()):
            if item is pending:
                continue
            if item.start >= end:
                item.shift(delta)
            elif item.overlaps(start, end):
                self._mark_stale(item)
        return new_end

    def _fail(self, pending: PendingCorrection, error: BaseException) -> None:
        """失敗・タイムアウト時は範囲を処理済みとして先へ進む。"""

        logger.warning(
            "補正に失敗したため処理済みとして進めます: kind=%s range=[%d,%d) error=%s",
            pending.kind,
            pending.start,
            pending.end,
            error,
        )
        self.stats.failures += 1
        if self._range_intact(pending, log=False):
            if pending.kind == "dictionary":
                self._advance(checked=pending.end)
            elif pending.kind == "fix_typos":
                self._advance(corrected=pending.end, checked=pending.end)
            elif pending.kind in _FINALIZING_KINDS:
                self._advance(committed=pending.end)
        elif pending.kind == "dictionary":
            self.state.offsets = self.state.offsets.update(checking=self.state.offsets.checked)
        self._settle_flag()
        self._set_status("error")

    # ------------------------------------------------------------------
    # 無効化
    # ------------------------------------------------------------------
    def invalidate(self, position: int) -> None:
        """``position`` 以降の進捗を破棄する（編集・ミニスクリプト適用後に呼ぶ）。

        committed は未完の文の先頭へ、corrected / checked は語の先頭へ戻す。
        """

        state = self.state
        text = state.text
        offsets = state.offsets

        committed = offsets.committed
        if committed > position:
            committed = sentence_start(text, position)
        corrected = offsets.corrected
        if corrected > position:
            corrected = word_start(text, position, committed)
        checked = offsets.checked
        if checked > position:
            checked = word_start(text, position, committed)
        state.offsets = ProgressOffsets(
            committed=committed,
            corrected=corrected,
            checked=checked,
            checking=checked if offsets.checking > position else offsets.checking,
        ).clamp(len(text))

        if state.flagged_end is not None and state.flagged_end > position:
            state.flagged_end = None
        for item in list(self._pending.values()):
            if item.end > position:
                self._mark_stale(item)

    def drop_pending(self) -> None:
        """保留中の処理をすべて破棄扱いにする（結果は届いても適用しない）。"""

        for item in list(self._pending.values()):
            self._mark_stale(item)
        self.state.flagged_end = None

    # ------------------------------------------------------------------
    # 内部ヘルパー
    # ------------------------------------------------------------------
    def _mark_stale(self, item: PendingCorrection) -> None:
        item.stale = True
        self._pending.pop(item.id, None)

    def _range_intact(self, pending: PendingCorrection, *, log: bool = True) -> bool:
        text = self.state.text
        try:
            validate_range(pending.start, pending.end, len(text))
        except RangeError as exc:
            if log:
                logger.warning("範囲外の補正結果を破棄しました: kind=%s %s", pending.kind, exc)
            return False
        if text[pending.start : pending.end] != pending.snapshot:
            if log:
                logger.debug("範囲の内容が変わったため結果を破棄しました: kind=%s id=%d", pending.kind, pending.id)
            return False
        return True

    def _advance(self, **targets: int) -> None:
        state = self.state
        offsets = state.offsets
        values = {key: max(getattr(offsets, key), value) for key, value in targets.items()}
        state.offsets = offsets.update(**values).clamp(len(state.text))
        self._settle_flag()

    def _settle_flag(self) -> None:
        state = self.state
        if state.flagged_end is not None and state.flagged_end <= state.offsets.corrected:
            state.flagged_end = None

    def _prune_unknown(self) -> None:
        state = self.state
        if not state.unknown_words:
            return
        remaining = {token.text for token in iter_word_tokens(state.text[state.offsets.corrected :])}
        state.unknown_words = [word for word in state.unknown_words if word in remaining]


__all__ = ["CorrectionPipeline", "common_prefix_length", "edit_position", "sentence_start", "word_start"]
