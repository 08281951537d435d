import logging
from typing import Dict, List, Optional

from vocab_exam.core.exceptions import NotFoundError, ValidationError
from vocab_exam.db.models import Exam, ExamAnswer, utcnow
from vocab_exam.db.store import ExamStore

logger = logging.getLogger(__name__)


class GradingService:
    def __init__(self, store: ExamStore):
        self.store = store

    def _owned_exam(self, teacher_id: str, exam_id: str) -> Exam:
        exam = self.store.get_exam(exam_id)
        if exam is None:
            raise NotFoundError("Exam", exam_id)
        word_set = self.store.get_word_set(exam.word_set_id)
        if word_set is None or word_set.teacher_id != teacher_id:
            raise NotFoundError("Exam", exam_id)
        return exam

    def list_completed_exams(self, teacher_id: str) -> List[Dict]:
        """Completed exams on the teacher's word sets, newest first"""
        word_sets = {ws.id: ws.name for ws in self.store.list_word_sets(teacher_id)}
        exams = self.store.list_exams(list(word_sets), completed_only=True)
        return [
            {
                "id": exam.id,
                "student_name": exam.student_name,
                "started_at": exam.started_at,
                "completed_at": exam.completed_at,
                "total_words": exam.total_words,
                "total_score": exam.total_score,
                "word_set": {"id": exam.word_set_id, "name": word_sets.get(exam.word_set_id, "Unknown")},
            }
            for exam in exams
        ]

    def list_answers(self, teacher_id: str, exam_id: str) -> Dict[str, List[ExamAnswer]]:
        """The exam's answers in submission order, split by grading status"""
        self._owned_exam(teacher_id, exam_id)
        answers = self.store.list_answers(exam_id)
        return {
            "ungraded": [a for a in answers if a.is_correct is None],
            "graded": [a for a in answers if a.is_correct is not None],
        }

    def grade_answer(
        self,
        teacher_id: str,
        answer_id: str,
        is_correct: bool,
        feedback: Optional[str] = None,
    ) -> ExamAnswer:
        answer = self.store.get_answer(answer_id)
        if answer is None:
            raise NotFoundError("Answer", answer_id)
        exam = self._owned_exam(teacher_id, answer.exam_id)
        if exam.completed_at is None:
            raise ValidationError(
                "Only completed exams can be graded", details={"exam_id": exam.id}
            )

        answer = self.store.update_answer(
            answer_id,
            is_correct=is_correct,
            teacher_feedback=(feedback or "").strip() or None,
            checked_at=utcnow(),
        )
        if answer is None:
            raise NotFoundError("Answer", answer_id)

        # Score is read back from the committed rows, never tallied in memory
        total_score = self.store.count_correct_answers(exam.id)
        self.store.update_exam(exam.id, total_score=total_score)
        logger.info(
            "Answer %s graded %s, exam %s score %d",
            answer_id,
            "correct" if is_correct else "incorrect",
            exam.id,
            total_score,
        )
        return answer
