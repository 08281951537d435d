from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from vocab_exam.core.database import get_db
from vocab_exam.db.store import ExamStore, store_scope
from vocab_exam.services.auth_service import AuthService, AuthSession, auth_service
from vocab_exam.services.exam_clock import ClockRegistry
from vocab_exam.services.exam_service import ExamService, StoreScope
from vocab_exam.services.realtime import RealtimeHub, realtime_hub

bearer = HTTPBearer(auto_error=False)

_exam_service: Optional[ExamService] = None
_clock_registry: Optional[ClockRegistry] = None


def get_hub() -> RealtimeHub:
    return realtime_hub


def get_store_scope() -> StoreScope:
    """Opens an ExamStore outside the request, for long-lived connections"""
    return store_scope


def get_store(db: Session = Depends(get_db), hub: RealtimeHub = Depends(get_hub)) -> ExamStore:
    return ExamStore(db, hub)


def get_auth_service() -> AuthService:
    return auth_service


def get_exam_service() -> ExamService:
    global _exam_service
    if _exam_service is None:
        _exam_service = ExamService()
    return _exam_service


def get_clock_registry(service: ExamService = Depends(get_exam_service)) -> ClockRegistry:
    """One clock per exam across every exam socket"""
    global _clock_registry
    if _clock_registry is None:
        _clock_registry = ClockRegistry(service)
    return _clock_registry


def get_current_teacher(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    auth: AuthService = Depends(get_auth_service),
) -> AuthSession:
    """Current teacher session from the bearer token"""
    token = credentials.credentials if credentials else None
    return auth.get_session(token)
