from typing import List

from fastapi import APIRouter, Depends

from vocab_exam.api.deps import get_current_teacher, get_store
from vocab_exam.db.store import ExamStore
from vocab_exam.models.schemas import (
    WordCreate,
    WordOut,
    WordSetCreate,
    WordSetOut,
    WordSetUpdate,
)
from vocab_exam.services.auth_service import AuthSession
from vocab_exam.services.word_set_service import WordSetService

router = APIRouter()


def get_word_set_service(store: ExamStore = Depends(get_store)) -> WordSetService:
    return WordSetService(store)


@router.get("", response_model=List[WordSetOut])
def list_word_sets(
    current: AuthSession = Depends(get_current_teacher),
    service: WordSetService = Depends(get_word_set_service),
):
    """The signed-in teacher's word sets, newest first"""
    return service.list_word_sets(current.teacher_id)


@router.post("", response_model=WordSetOut, status_code=201)
def create_word_set(
    request: WordSetCreate,
    current: AuthSession = Depends(get_current_teacher),
    service: WordSetService = Depends(get_word_set_service),
):
    return service.create_word_set(current.teacher_id, request.name, request.description)


@router.patch("/{word_set_id}", response_model=WordSetOut)
def update_word_set(
    word_set_id: str,
    request: WordSetUpdate,
    current: AuthSession = Depends(get_current_teacher),
    service: WordSetService = Depends(get_word_set_service),
):
    return service.update_word_set(
        current.teacher_id, word_set_id, request.name, request.description
    )


@router.delete("/{word_set_id}", status_code=204)
def delete_word_set(
    word_set_id: str,
    current: AuthSession = Depends(get_current_teacher),
    service: WordSetService = Depends(get_word_set_service),
):
    service.delete_word_set(current.teacher_id, word_set_id)


@router.get("/{word_set_id}/words", response_model=List[WordOut])
def list_words(
    word_set_id: str,
    current: AuthSession = Depends(get_current_teacher),
    service: WordSetService = Depends(get_word_set_service),
):
    return service.list_words(current.teacher_id, word_set_id)


@router.post("/{word_set_id}/words", response_model=WordOut, status_code=201)
def add_word(
    word_set_id: str,
    request: WordCreate,
    current: AuthSession = Depends(get_current_teacher),
    service: WordSetService = Depends(get_word_set_service),
):
    return service.add_word(
        current.teacher_id, word_set_id, request.word_text, request.time_limit_seconds
    )


@router.delete("/words/{word_id}", status_code=204)
def delete_word(
    word_id: str,
    current: AuthSession = Depends(get_current_teacher),
    service: WordSetService = Depends(get_word_set_service),
):
    service.delete_word(current.teacher_id, word_id)
