"""
API routes for the quiz attempt lifecycle: open, autosave, submit
"""

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from typing import Any, Dict, Optional
import asyncio

from examprep.config import settings
from examprep.dependencies import (
    get_access_service,
    get_attempt_store,
    get_autosave_limiter,
    get_submission_service,
)
from examprep.models.database import AttemptProgress
from examprep.models.schemas import (
    AutosaveRequest,
    QuizSessionResponse,
    SubmitQuizRequest,
    SubmitQuizResponse,
    SuccessResponse,
    ValidateQuizRequest,
)
from examprep.services.access_service import AccessService, is_privileged
from examprep.services.attempt_store import AttemptStore
from examprep.services.autosave import AutosaveController, AutosaveState
from examprep.services.submission_service import SubmissionService
from examprep.utils.error_handler import InvalidRequestError
from examprep.utils.helpers import format_timestamp
from examprep.utils.logger import logger
from examprep.utils.rate_limit import RateLimiter

router = APIRouter(prefix=f"{settings.API_PREFIX}/quiz", tags=["Quiz"])


@router.post("/validate", response_model=QuizSessionResponse)
async def validate_quiz(
    payload: ValidateQuizRequest,
    access: AccessService = Depends(get_access_service)
):
    """
    Open a quiz: checks publication, time window, enrollment and attempt limit,
    then creates or resumes the attempt. Admins and teachers get a preview.
    """
    session = await access.validate_quiz_start(payload.quiz_id, payload.user_id, payload.user_role)
    return QuizSessionResponse(preview=session.preview, attempt=session.attempt.to_document())


@router.post("/autosave", response_model=SuccessResponse)
async def autosave(
    payload: AutosaveRequest,
    attempts: AttemptStore = Depends(get_attempt_store),
    limiter: RateLimiter = Depends(get_autosave_limiter)
):
    """Merge-write partial progress; limited per user"""
    limiter.enforce(f"autosave:{payload.user_id}", settings.AUTOSAVE_RATE_LIMIT_PER_MINUTE, 60)

    progress = payload.progress()
    if not progress.changes():
        raise InvalidRequestError("No progress fields provided")

    saved = await attempts.save_progress(payload.user_id, payload.quiz_id, progress)
    return SuccessResponse(message="Progress saved", data={"lastSaved": saved["lastSaved"]})


@router.post("/submit", response_model=SubmitQuizResponse, response_model_exclude_none=True)
async def submit_quiz(
    payload: SubmitQuizRequest,
    submissions: SubmissionService = Depends(get_submission_service)
):
    """
    Submit a quiz. The score is computed on the server; resubmitting with the
    same timestamp returns the stored result.
    """
    outcome = await submissions.submit(
        quiz_id=payload.quiz_id,
        user_id=payload.user_id,
        answers=payload.answers,
        flags=payload.flags,
        time_logs=payload.time_logs,
        attempt_number=payload.attempt_number,
        timestamp=payload.timestamp
    )
    return SubmitQuizResponse(
        score=outcome.score,
        total=outcome.total,
        message=outcome.message,
        cached=True if outcome.cached else None,
        result=outcome.result if outcome.cached else None
    )


def _state_message(state: AutosaveState) -> Dict[str, Any]:
    return {
        "type": "status",
        "status": state.status.value,
        "lastSavedAt": format_timestamp(state.last_saved_at) if state.last_saved_at else None,
        "error": state.error,
        "hasUnsavedChanges": state.has_unsaved_changes,
    }


@router.websocket("/{quiz_id}/session")
async def quiz_session(
    websocket: WebSocket,
    quiz_id: str,
    user_id: str = Query(..., alias="userId"),
    role: Optional[str] = Query(default=None),
    attempts: AttemptStore = Depends(get_attempt_store)
):
    """
    Live quiz session hosting one autosave controller.

    Client messages:
        {"type": "progress", "answers": ..., "flags": ..., "currentIndex": ..., "remainingTime": ...}
        {"type": "tick", "remainingTime": n}
        {"type": "flush"}
        {"type": "retry"}
    The server pushes {"type": "status", ...} whenever the save status changes.
    """
    await websocket.accept()
    remaining: Dict[str, Optional[int]] = {"seconds": None}

    async def send_state(state: Dict[str, Any]) -> None:
        try:
            await websocket.send_json(state)
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.debug(f"Status not delivered: {str(e)}", extra={"user_id": user_id, "quiz_id": quiz_id})

    controller = AutosaveController(
        attempts,
        user_id,
        quiz_id,
        is_preview=is_privileged(role),
        on_status_change=lambda state: asyncio.ensure_future(send_state(_state_message(state)))
    )
    controller.start_timer_sync(lambda: remaining["seconds"])

    try:
        while True:
            message = await websocket.receive_json()
            kind = message.pop("type", None)
            try:
                if kind == "progress":
                    progress = AttemptProgress.model_validate(message)
                    if progress.remaining_time is not None:
                        remaining["seconds"] = progress.remaining_time
                    controller.debounced_save(progress)
                elif kind == "tick":
                    remaining["seconds"] = AttemptProgress.model_validate(message).remaining_time
                elif kind == "flush":
                    await controller.save_immediately()
                elif kind == "retry":
                    await controller.retry_save()
                else:
                    await send_state({"type": "error", "message": f"Unknown message type: {kind}"})
            except ValidationError as e:
                await send_state({"type": "error", "message": "Invalid progress", "details": e.errors(include_url=False)})
    except WebSocketDisconnect:
        logger.debug("Quiz session closed", extra={"user_id": user_id, "quiz_id": quiz_id})
    finally:
        await controller.close(flush=True)
