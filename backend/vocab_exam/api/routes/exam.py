import json
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from vocab_exam.api.deps import get_clock_registry, get_exam_service
from vocab_exam.core.exceptions import VocabExamError
from vocab_exam.models.exam_session import ExamSession, ExamState
from vocab_exam.models.schemas import DraftRequest, StartSessionRequest, SubmitRequest
from vocab_exam.services.exam_clock import ClockRegistry
from vocab_exam.services.exam_service import ExamService

logger = logging.getLogger(__name__)

router = APIRouter()


def session_view(session: ExamSession) -> Dict:
    """Session as sent to the student's browser"""
    data = session.model_dump(mode="json")
    current = session.current_word
    data["total_words"] = session.total_words
    data["current_word"] = current.model_dump() if current else None
    return data


@router.get("/word-sets")
def list_word_sets(service: ExamService = Depends(get_exam_service)):
    """Word sets available to students"""
    return {"word_sets": service.list_word_sets()}


@router.post("/session/start")
def start_session(
    request: StartSessionRequest, service: ExamService = Depends(get_exam_service)
):
    """Start a new exam and return the session on its first word"""
    session = service.start_exam(request.word_set_id, request.student_name)
    return session_view(session)


@router.get("/session/{exam_id}")
def get_session(exam_id: str, service: ExamService = Depends(get_exam_service)):
    return session_view(service.get_session(exam_id))


@router.put("/session/{exam_id}/draft")
def update_draft(
    exam_id: str, request: DraftRequest, service: ExamService = Depends(get_exam_service)
):
    return session_view(service.update_draft(exam_id, request.text))


@router.post("/session/{exam_id}/tick")
def tick(exam_id: str, service: ExamService = Depends(get_exam_service)):
    """Advance the exam clock by one second (clients driving their own timer)"""
    session = service.tick(exam_id)
    return session_view(session) if session else {"status": "abandoned"}


@router.post("/session/{exam_id}/submit")
def submit(
    exam_id: str,
    request: Optional[SubmitRequest] = None,
    service: ExamService = Depends(get_exam_service),
):
    """Submit the current word's sentence; the draft is used if none is given"""
    session = service.submit(exam_id, request.sentence if request else None)
    return session_view(session) if session else {"status": "abandoned"}


@router.delete("/session/{exam_id}")
def abandon_session(exam_id: str, service: ExamService = Depends(get_exam_service)):
    service.abandon(exam_id)
    return {"status": "abandoned"}


@router.websocket("/ws/{exam_id}")
async def exam_websocket(
    websocket: WebSocket,
    exam_id: str,
    service: ExamService = Depends(get_exam_service),
    clocks: ClockRegistry = Depends(get_clock_registry),
):
    """
    Runs the server-side clock for an exam and streams the session.

    Every socket open on the same exam shares one clock. When the last one
    closes the clock stops and the unfinished session is discarded.
    """
    await websocket.accept()

    async def push(session: ExamSession):
        await websocket.send_json({"type": "session", "session": session_view(session)})

    async def report(error: VocabExamError):
        await websocket.send_json({"type": "error", "error": error.to_dict()})

    try:
        await push(service.get_session(exam_id))
    except VocabExamError as e:
        await report(e)
        await websocket.close()
        return

    clock = clocks.attach(exam_id, push, report)

    try:
        while True:
            try:
                message = json.loads(await websocket.receive_text())
            except json.JSONDecodeError:
                message = None
            if not isinstance(message, dict):
                await websocket.send_json({"type": "error", "error": "invalid message"})
                continue
            kind = message.get("type")
            try:
                if kind == "draft":
                    session = await run_in_threadpool(
                        service.update_draft, exam_id, message.get("text", "")
                    )
                    await push(session)
                elif kind == "submit":
                    session = await run_in_threadpool(
                        service.submit, exam_id, message.get("sentence")
                    )
                    if session is not None:
                        if session.state != ExamState.COMPLETED:
                            # New word, or a retry after the clock stopped on a failed save
                            clock.start()
                            clock.restart()
                        await push(session)
                elif kind == "ping":
                    await websocket.send_json({"type": "pong"})
            except VocabExamError as e:
                await report(e)

    except WebSocketDisconnect:
        logger.info("Exam %s: student disconnected", exam_id)
    finally:
        if clocks.detach(exam_id, push) == 0:
            service.abandon(exam_id)
