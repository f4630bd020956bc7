"""
Autosave Controller

Owns the write side of one quiz session: debounced progress saves, the
periodic remaining-time heartbeat, retries with exponential backoff, and
teardown. Preview sessions (admin/teacher) never write.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set
import asyncio

from examprep.config import settings
from examprep.models.database import AttemptProgress
from examprep.services.attempt_store import AttemptStore
from examprep.utils.error_handler import ConflictError
from examprep.utils.helpers import utc_now
from examprep.utils.logger import logger


class SaveStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


@dataclass
class AutosaveState:
    status: SaveStatus = SaveStatus.IDLE
    last_saved_at: Optional[datetime] = None
    error: Optional[str] = None
    has_unsaved_changes: bool = False


def _merge(pending: Optional[Dict[str, Any]], progress: AttemptProgress) -> Dict[str, Any]:
    return {**(pending or {}), **progress.changes()}


class AutosaveController:
    """Autosave for one (user, quiz) session"""

    def __init__(
        self,
        attempt_store: AttemptStore,
        user_id: str,
        quiz_id: str,
        is_preview: bool = False,
        debounce_ms: Optional[int] = None,
        timer_interval: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_base_delay: float = 0.5,
        on_status_change: Optional[Callable[[AutosaveState], None]] = None
    ):
        self.attempt_store = attempt_store
        self.user_id = user_id
        self.quiz_id = quiz_id
        self.is_preview = is_preview
        self.debounce_seconds = (debounce_ms if debounce_ms is not None else settings.AUTOSAVE_DEBOUNCE_MS) / 1000
        self.timer_interval = timer_interval if timer_interval is not None else settings.TIMER_SYNC_INTERVAL_SECONDS
        self.max_retries = max_retries if max_retries is not None else settings.AUTOSAVE_MAX_RETRIES
        self.retry_base_delay = retry_base_delay
        self.on_status_change = on_status_change

        self.state = AutosaveState()
        self._pending: Optional[Dict[str, Any]] = None
        self._failed: Optional[Dict[str, Any]] = None
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._closed = False
        self._submitted = False

    def _set_status(self, status: SaveStatus, error: Optional[str] = None) -> None:
        self.state.status = status
        self.state.error = error
        if status == SaveStatus.SAVED:
            self.state.last_saved_at = utc_now()
        self.state.has_unsaved_changes = self._pending is not None or self._failed is not None
        if self.on_status_change:
            self.on_status_change(self.state)

    def _cancel_debounce(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

    # ============================================
    # User-facing saves
    # ============================================

    def debounced_save(self, progress: AttemptProgress) -> None:
        """Queue progress; one write happens after the debounce window goes quiet"""
        if self._closed:
            return
        self._pending = _merge(self._pending, progress)
        self._cancel_debounce()
        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(self.debounce_seconds, self._fire_debounced)
        self._set_status(SaveStatus.PENDING)

    def _fire_debounced(self) -> None:
        self._debounce_handle = None
        task = asyncio.ensure_future(self._flush_pending())
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def save_immediately(self, progress: Optional[AttemptProgress] = None) -> bool:
        """Cancel the pending debounce and write everything queued now"""
        self._cancel_debounce()
        if progress is not None:
            self._pending = _merge(self._pending, progress)
        return await self._flush_pending()

    async def retry_save(self) -> bool:
        """Re-attempt the last save that exhausted its retries"""
        if self._failed is None:
            return True
        self._pending = {**self._failed, **(self._pending or {})}
        self._failed = None
        return await self.save_immediately()

    async def _flush_pending(self) -> bool:
        if self._pending is None:
            return True
        changes, self._pending = self._pending, None
        self._set_status(SaveStatus.SAVING)
        saved = await self._save_with_retry(changes, user_facing=True)
        if saved:
            self._set_status(SaveStatus.SAVED)
        return saved

    async def _save_with_retry(self, changes: Dict[str, Any], user_facing: bool) -> bool:
        if self.is_preview:
            return True

        progress = AttemptProgress.model_validate(changes)
        for attempt in range(self.max_retries + 1):
            try:
                await self.attempt_store.save_progress(self.user_id, self.quiz_id, progress)
                return True
            except ConflictError as e:
                # The attempt was submitted; further writes can never succeed
                self._submitted = True
                logger.warning(
                    f"Autosave rejected: {e.message}",
                    extra={"user_id": self.user_id, "quiz_id": self.quiz_id}
                )
                if user_facing:
                    self.stop_timer_sync()
                    self._set_status(SaveStatus.ERROR, e.message)
                return False
            except Exception as e:
                if attempt < self.max_retries:
                    delay = self.retry_base_delay * (2 ** attempt)
                    logger.debug(f"Autosave failed, retrying in {delay}s: {str(e)}")
                    await asyncio.sleep(delay)
                    continue
                logger.error(
                    f"Autosave failed after {self.max_retries} retries: {str(e)}",
                    extra={"user_id": self.user_id, "quiz_id": self.quiz_id}
                )
                if user_facing:
                    self._failed = {**(self._failed or {}), **changes}
                    self._set_status(SaveStatus.ERROR, str(e))
                return False
        return False

    # ============================================
    # Timer heartbeat
    # ============================================

    def start_timer_sync(self, get_remaining_time: Callable[[], Optional[int]]) -> None:
        """
        Persist only remaining time every interval; never touches the save status.

        Ticks where get_remaining_time returns None are skipped.
        """
        if self.is_preview or self._closed:
            return
        if self._timer_task is not None and not self._timer_task.done():
            self._timer_task.cancel()
        self._timer_task = asyncio.ensure_future(self._timer_loop(get_remaining_time))

    async def _timer_loop(self, get_remaining_time: Callable[[], Optional[int]]) -> None:
        while True:
            await asyncio.sleep(self.timer_interval)
            remaining = get_remaining_time()
            if remaining is None:
                continue
            await self._save_with_retry({"remainingTime": max(0, int(remaining))}, user_facing=False)
            if self._submitted:
                logger.info(
                    "Timer sync stopped: attempt already submitted",
                    extra={"user_id": self.user_id, "quiz_id": self.quiz_id}
                )
                self._timer_task = None
                return

    def stop_timer_sync(self) -> None:
        if self._timer_task is not None:
            self._timer_task.cancel()
            self._timer_task = None

    # ============================================
    # Teardown
    # ============================================

    async def close(self, flush: bool = False) -> None:
        """Cancel the debounce timer and heartbeat; optionally write what is queued"""
        self._cancel_debounce()
        self.stop_timer_sync()
        if flush:
            await self._flush_pending()
        self._closed = True
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
