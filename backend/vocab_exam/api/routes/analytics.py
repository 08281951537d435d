from fastapi import APIRouter, Depends

from vocab_exam.api.deps import get_current_teacher, get_store
from vocab_exam.db.store import ExamStore
from vocab_exam.models.schemas import StatsOut
from vocab_exam.services.analytics_service import AnalyticsService
from vocab_exam.services.auth_service import AuthSession

router = APIRouter()


@router.get("/stats", response_model=StatsOut)
def get_stats(
    current: AuthSession = Depends(get_current_teacher),
    store: ExamStore = Depends(get_store),
):
    """Word set count, completed exams, average score and completion rate"""
    return AnalyticsService(store).teacher_stats(current.teacher_id)
