import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from starlette.concurrency import run_in_threadpool

from vocab_exam.api.deps import (
    get_auth_service,
    get_current_teacher,
    get_hub,
    get_store,
    get_store_scope,
)
from vocab_exam.core.exceptions import AuthenticationError
from vocab_exam.db.store import ExamStore
from vocab_exam.models.schemas import ExamAnswerOut, ExamAnswersOut, GradeRequest
from vocab_exam.services.auth_service import SIGNED_OUT, AuthService, AuthSession
from vocab_exam.services.exam_service import StoreScope
from vocab_exam.services.grading_service import GradingService
from vocab_exam.services.realtime import INSERT, UPDATE, ChangeEvent, RealtimeHub

logger = logging.getLogger(__name__)

router = APIRouter()


def get_grading_service(store: ExamStore = Depends(get_store)) -> GradingService:
    return GradingService(store)


@router.get("/exams")
def list_completed_exams(
    current: AuthSession = Depends(get_current_teacher),
    service: GradingService = Depends(get_grading_service),
):
    return {"exams": service.list_completed_exams(current.teacher_id)}


@router.get("/exams/{exam_id}/answers", response_model=ExamAnswersOut)
def list_answers(
    exam_id: str,
    current: AuthSession = Depends(get_current_teacher),
    service: GradingService = Depends(get_grading_service),
):
    return service.list_answers(current.teacher_id, exam_id)


@router.post("/answers/{answer_id}/grade", response_model=ExamAnswerOut)
def grade_answer(
    answer_id: str,
    request: GradeRequest,
    current: AuthSession = Depends(get_current_teacher),
    service: GradingService = Depends(get_grading_service),
):
    return service.grade_answer(
        current.teacher_id, answer_id, request.is_correct, request.feedback
    )


@router.websocket("/ws")
async def grading_websocket(
    websocket: WebSocket,
    token: Optional[str] = None,
    auth: AuthService = Depends(get_auth_service),
    hub: RealtimeHub = Depends(get_hub),
    open_store: StoreScope = Depends(get_store_scope),
):
    """
    Live list of completed exams for the grading view.

    Every change to the exams table triggers a fresh query; the notification
    itself carries nothing. The subscription lives exactly as long as the
    socket and the socket is closed when its session signs out.
    """
    await websocket.accept()
    try:
        current = auth.get_session(token)
    except AuthenticationError as e:
        await websocket.send_json({"type": "error", "error": e.to_dict()})
        await websocket.close(code=4401)
        return

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def on_change(change: ChangeEvent) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, ("changed", None))

    def on_auth_change(event: str, session: Optional[AuthSession]) -> None:
        if event == SIGNED_OUT and session and session.token_id == current.token_id:
            loop.call_soon_threadsafe(queue.put_nowait, ("signed_out", None))

    async def reader():
        try:
            while True:
                text = await websocket.receive_text()
                try:
                    message = json.loads(text)
                except json.JSONDecodeError:
                    logger.debug("Ignoring malformed message on grading socket")
                    continue
                if isinstance(message, dict):
                    await queue.put(("message", message))
        except WebSocketDisconnect:
            await queue.put(("disconnect", None))

    def load_exams():
        with open_store() as store:
            return GradingService(store).list_completed_exams(current.teacher_id)

    async def send_exams():
        exams = await run_in_threadpool(load_exams)
        await websocket.send_json({"type": "exams", "exams": jsonable_encoder(exams)})

    subscription = hub.subscribe("exams", [INSERT, UPDATE], on_change)
    listener = auth.on_auth_state_change(on_auth_change)
    reader_task = asyncio.create_task(reader())
    logger.info("Teacher %s subscribed to exam updates", current.teacher_id)

    try:
        await send_exams()
        while True:
            kind, payload = await queue.get()
            if kind == "changed":
                await send_exams()
            elif kind == "message":
                if payload.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})
                elif payload.get("type") == "refresh":
                    await send_exams()
            elif kind == "signed_out":
                await websocket.send_json({"type": "signed_out"})
                await websocket.close()
                break
            elif kind == "disconnect":
                break
    finally:
        hub.unsubscribe(subscription)
        auth.remove_listener(listener)
        reader_task.cancel()
        await asyncio.gather(reader_task, return_exceptions=True)
        logger.info("Teacher %s unsubscribed from exam updates", current.teacher_id)
