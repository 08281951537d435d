from typing import Dict, Iterable, Union

from vocab_exam.db.models import Exam
from vocab_exam.db.store import ExamStore


def compute_stats(word_set_count: int, exams: Iterable[Exam]) -> Dict[str, Union[int, float]]:
    """Aggregate figures for the analytics overview"""
    exams = list(exams)
    completed = [e for e in exams if e.completed_at is not None]

    average_score = (
        sum(e.total_score or 0 for e in completed) / len(completed) if completed else 0
    )
    completion_rate = len(completed) / len(exams) * 100 if exams else 0

    return {
        "total_word_sets": word_set_count,
        "completed_exams": len(completed),
        "average_score": round(average_score, 1),
        # Half up like the dashboard shows it, not banker's rounding
        "completion_rate": int(completion_rate + 0.5),
    }


class AnalyticsService:
    def __init__(self, store: ExamStore):
        self.store = store

    def teacher_stats(self, teacher_id: str) -> Dict[str, Union[int, float]]:
        word_sets = self.store.list_word_sets(teacher_id)
        exams = self.store.list_exams([ws.id for ws in word_sets])
        return compute_stats(len(word_sets), exams)
