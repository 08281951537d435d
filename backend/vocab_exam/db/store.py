"""
Row-level access to the VocabExams tables.

``ExamStore`` is the only place that talks to SQLAlchemy. Every method either
returns ORM rows or raises ``CollaboratorError``; a failed write is rolled
back before the error leaves the store. Writes to the ``exams`` table are
announced on the realtime hub after they commit.
"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vocab_exam.core.database import session_scope
from vocab_exam.core.exceptions import CollaboratorError
from vocab_exam.db.models import Exam, ExamAnswer, Teacher, Word, WordSet
from vocab_exam.services.realtime import INSERT, UPDATE, RealtimeHub, realtime_hub

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExamStore:
    def __init__(self, session: Session, hub: Optional[RealtimeHub] = None):
        self.session = session
        self.hub = hub

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------

    def _run(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Database operation '%s' failed: %s", operation, e)
            raise CollaboratorError(operation, str(e)) from e

    def _insert(self, operation: str, row: T) -> T:
        def do():
            self.session.add(row)
            self.session.commit()
            self.session.refresh(row)
            return row

        return self._run(operation, do)

    def _update(self, operation: str, model, row_id: str, fields: dict):
        def do():
            row = self.session.get(model, row_id)
            if row is None:
                return None
            for key, value in fields.items():
                setattr(row, key, value)
            self.session.commit()
            self.session.refresh(row)
            return row

        return self._run(operation, do)

    def _delete(self, operation: str, model, row_id: str) -> bool:
        def do():
            row = self.session.get(model, row_id)
            if row is None:
                return False
            self.session.delete(row)
            self.session.commit()
            return True

        return self._run(operation, do)

    def _get(self, operation: str, model, row_id: str):
        return self._run(operation, lambda: self.session.get(model, row_id))

    def _all(self, operation: str, stmt) -> List[Any]:
        return self._run(operation, lambda: list(self.session.scalars(stmt).all()))

    def _publish(self, table: str, event: str) -> None:
        if self.hub is not None:
            self.hub.publish(table, event)

    # ------------------------------------------------------------------
    # teachers
    # ------------------------------------------------------------------

    def create_teacher(self, email: str, full_name: str, password_hash: str) -> Teacher:
        return self._insert(
            "create teacher",
            Teacher(email=email, full_name=full_name, password_hash=password_hash),
        )

    def get_teacher(self, teacher_id: str) -> Optional[Teacher]:
        return self._get("load teacher", Teacher, teacher_id)

    def get_teacher_by_email(self, email: str) -> Optional[Teacher]:
        stmt = select(Teacher).where(Teacher.email == email)
        return self._run(
            "load teacher", lambda: self.session.scalars(stmt).first()
        )

    # ------------------------------------------------------------------
    # word sets
    # ------------------------------------------------------------------

    def list_word_sets(self, teacher_id: Optional[str] = None) -> List[WordSet]:
        stmt = select(WordSet).order_by(WordSet.created_at.desc())
        if teacher_id is not None:
            stmt = stmt.where(WordSet.teacher_id == teacher_id)
        return self._all("load word sets", stmt)

    def list_word_sets_with_teacher(self) -> List[Tuple[WordSet, str]]:
        stmt = (
            select(WordSet, Teacher.full_name)
            .join(Teacher, WordSet.teacher_id == Teacher.id)
            .order_by(Teacher.full_name, WordSet.name)
        )
        return self._run(
            "load word sets",
            lambda: [(row[0], row[1]) for row in self.session.execute(stmt).all()],
        )

    def get_word_set(self, word_set_id: str) -> Optional[WordSet]:
        return self._get("load word set", WordSet, word_set_id)

    def create_word_set(
        self, teacher_id: str, name: str, description: Optional[str] = None
    ) -> WordSet:
        return self._insert(
            "create word set",
            WordSet(teacher_id=teacher_id, name=name, description=description),
        )

    def update_word_set(self, word_set_id: str, **fields) -> Optional[WordSet]:
        return self._update("update word set", WordSet, word_set_id, fields)

    def delete_word_set(self, word_set_id: str) -> bool:
        return self._delete("delete word set", WordSet, word_set_id)

    # ------------------------------------------------------------------
    # words
    # ------------------------------------------------------------------

    def list_words(self, word_set_id: str) -> List[Word]:
        stmt = (
            select(Word)
            .where(Word.word_set_id == word_set_id)
            .order_by(Word.order_index)
        )
        return self._all("load words", stmt)

    def count_words(self, word_set_id: str) -> int:
        stmt = select(func.count()).select_from(Word).where(Word.word_set_id == word_set_id)
        return self._run("count words", lambda: self.session.scalar(stmt) or 0)

    def get_word(self, word_id: str) -> Optional[Word]:
        return self._get("load word", Word, word_id)

    def create_word(
        self, word_set_id: str, word_text: str, time_limit_seconds: int, order_index: int
    ) -> Word:
        return self._insert(
            "add word",
            Word(
                word_set_id=word_set_id,
                word_text=word_text,
                time_limit_seconds=time_limit_seconds,
                order_index=order_index,
            ),
        )

    def update_word(self, word_id: str, **fields) -> Optional[Word]:
        return self._update("update word", Word, word_id, fields)

    def delete_word(self, word_id: str) -> bool:
        return self._delete("delete word", Word, word_id)

    # ------------------------------------------------------------------
    # exams
    # ------------------------------------------------------------------

    def create_exam(self, word_set_id: str, student_name: str, total_words: int) -> Exam:
        exam = self._insert(
            "create exam",
            Exam(
                word_set_id=word_set_id,
                student_name=student_name,
                total_words=total_words,
            ),
        )
        self._publish("exams", INSERT)
        return exam

    def get_exam(self, exam_id: str) -> Optional[Exam]:
        return self._get("load exam", Exam, exam_id)

    def update_exam(self, exam_id: str, **fields) -> Optional[Exam]:
        exam = self._update("update exam", Exam, exam_id, fields)
        if exam is not None:
            self._publish("exams", UPDATE)
        return exam

    def list_exams(
        self, word_set_ids: Sequence[str], completed_only: bool = False
    ) -> List[Exam]:
        if not word_set_ids:
            return []
        stmt = select(Exam).where(Exam.word_set_id.in_(list(word_set_ids)))
        if completed_only:
            stmt = stmt.where(Exam.completed_at.is_not(None)).order_by(
                Exam.completed_at.desc()
            )
        else:
            stmt = stmt.order_by(Exam.started_at.desc())
        return self._all("load exams", stmt)

    # ------------------------------------------------------------------
    # exam answers
    # ------------------------------------------------------------------

    def create_answer(
        self,
        exam_id: str,
        word_id: str,
        word_text: str,
        student_sentence: str,
        time_taken_seconds: int,
    ) -> ExamAnswer:
        return self._insert(
            "save answer",
            ExamAnswer(
                exam_id=exam_id,
                word_id=word_id,
                word_text=word_text,
                student_sentence=student_sentence,
                time_taken_seconds=time_taken_seconds,
            ),
        )

    def find_answer(self, exam_id: str, word_id: str) -> Optional[ExamAnswer]:
        stmt = select(ExamAnswer).where(
            ExamAnswer.exam_id == exam_id, ExamAnswer.word_id == word_id
        )
        return self._run("load answer", lambda: self.session.scalars(stmt).first())

    def get_answer(self, answer_id: str) -> Optional[ExamAnswer]:
        return self._get("load answer", ExamAnswer, answer_id)

    def list_answers(self, exam_id: str) -> List[ExamAnswer]:
        stmt = (
            select(ExamAnswer)
            .where(ExamAnswer.exam_id == exam_id)
            .order_by(ExamAnswer.submitted_at)
        )
        return self._all("load answers", stmt)

    def update_answer(self, answer_id: str, **fields) -> Optional[ExamAnswer]:
        return self._update("grade answer", ExamAnswer, answer_id, fields)

    def count_correct_answers(self, exam_id: str) -> int:
        stmt = (
            select(func.count())
            .select_from(ExamAnswer)
            .where(ExamAnswer.exam_id == exam_id, ExamAnswer.is_correct.is_(True))
        )
        return self._run("count correct answers", lambda: self.session.scalar(stmt) or 0)


@contextmanager
def store_scope() -> Iterator[ExamStore]:
    """ExamStore bound to a fresh session and the process-wide realtime hub"""
    with session_scope() as session:
        yield ExamStore(session, realtime_hub)
