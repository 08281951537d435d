import logging
import threading
from typing import Callable, ContextManager, Dict, List, Optional

from vocab_exam.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from vocab_exam.db.models import ExamAnswer, utcnow
from vocab_exam.db.store import ExamStore, store_scope
from vocab_exam.models.exam_session import (
    AnswerDraft,
    ExamSession,
    ExamState,
    WordSnapshot,
)
from vocab_exam.utils import state_machine

logger = logging.getLogger(__name__)

StoreScope = Callable[[], ContextManager[ExamStore]]


class ExamService:
    def __init__(self, store_scope_factory: Optional[StoreScope] = None):
        """
        Owns the live exam sessions, keyed by exam id.

        ``store_scope_factory`` opens an ExamStore for one unit of work; the
        exam clock calls into this service outside of any request so the
        service cannot borrow a request-scoped session.

        Only unfinished exams are kept in memory. A session is dropped when
        its exam completes, is abandoned or its exam row disappears.
        """
        self._store_scope = store_scope_factory or store_scope
        self.sessions: Dict[str, ExamSession] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, exam_id: str) -> threading.RLock:
        with self._locks_guard:
            return self._locks.setdefault(exam_id, threading.RLock())

    def _discard(self, exam_id: str) -> Optional[ExamSession]:
        session = self.sessions.pop(exam_id, None)
        with self._locks_guard:
            self._locks.pop(exam_id, None)
        return session

    def _require_session(self, exam_id: str, operation: Optional[str] = None) -> ExamSession:
        session = self.sessions.get(exam_id)
        if session is not None:
            return session
        if operation is not None and self._is_completed(exam_id):
            raise InvalidTransitionError(ExamState.COMPLETED.value, operation)
        raise NotFoundError("Exam session", exam_id)

    def _is_completed(self, exam_id: str) -> bool:
        with self._store_scope() as store:
            exam = store.get_exam(exam_id)
            return exam is not None and exam.completed_at is not None

    def list_word_sets(self) -> List[Dict]:
        """Word sets a student can pick from, labelled with the teacher's name"""
        with self._store_scope() as store:
            rows = store.list_word_sets_with_teacher()
        return [
            {
                "id": word_set.id,
                "name": word_set.name,
                "teacher": {"full_name": full_name},
            }
            for word_set, full_name in rows
        ]

    def start_exam(self, word_set_id: str, student_name: str) -> ExamSession:
        """Create the exam row and a session positioned on the first word"""
        name = (student_name or "").strip()
        if not word_set_id or not name:
            raise ValidationError("Please select a teacher and enter your name")

        with self._store_scope() as store:
            if store.get_word_set(word_set_id) is None:
                raise NotFoundError("Word set", word_set_id)
            words = [WordSnapshot.model_validate(w) for w in store.list_words(word_set_id)]
            # Raises EmptyWordSetError before any exam row exists
            session = state_machine.begin("", word_set_id, name, words)
            exam = store.create_exam(word_set_id, name, total_words=len(words))

        session = session.model_copy(update={"exam_id": exam.id})
        self.sessions[exam.id] = session
        logger.info(
            "Exam %s started by %r on word set %s (%d words)",
            exam.id,
            name,
            word_set_id,
            session.total_words,
        )
        return session

    def get_session(self, exam_id: str) -> ExamSession:
        return self._require_session(exam_id)

    def update_draft(self, exam_id: str, text: str) -> ExamSession:
        with self._lock_for(exam_id):
            session = state_machine.update_draft(self._require_session(exam_id, "edit"), text)
            self.sessions[exam_id] = session
            return session

    def tick(self, exam_id: str) -> Optional[ExamSession]:
        """One second elapsed; an expired word is submitted with its draft"""
        with self._lock_for(exam_id):
            session = state_machine.tick(self._require_session(exam_id, "tick"))
            self.sessions[exam_id] = session
            if state_machine.is_expired(session):
                logger.info(
                    "Exam %s: time expired on word %d", exam_id, session.word_index
                )
                return self.submit(exam_id)
            return session

    def submit(self, exam_id: str, sentence: Optional[str] = None) -> Optional[ExamSession]:
        """
        Persist the answer for the current word and move on.

        ``sentence`` overrides the stored draft. If persisting fails the
        CollaboratorError propagates and the session stays on the same word,
        so the call can be retried. Returns None when the session was
        abandoned while the write was in flight.

        The completed session is returned once and then dropped from memory;
        later operations on the exam raise InvalidTransitionError.
        """
        with self._lock_for(exam_id):
            session = self._require_session(exam_id, "submit")
            answer = state_machine.prepare_answer(session, sentence)
            next_session = state_machine.advance(session)

            with self._store_scope() as store:
                if store.get_exam(exam_id) is None:
                    self._discard(exam_id)
                    logger.warning("Exam %s no longer exists, session dropped", exam_id)
                    raise NotFoundError("Exam", exam_id)
                self._save_answer(store, exam_id, answer)
                if next_session.state == ExamState.COMPLETED:
                    if store.update_exam(exam_id, completed_at=utcnow()) is None:
                        self._discard(exam_id)
                        raise NotFoundError("Exam", exam_id)

            if exam_id not in self.sessions:
                logger.info("Exam %s was abandoned during submission", exam_id)
                return None

            if next_session.state == ExamState.COMPLETED:
                self._discard(exam_id)
                logger.info("Exam %s completed", exam_id)
            else:
                self.sessions[exam_id] = next_session
            return next_session

    def _save_answer(self, store: ExamStore, exam_id: str, answer: AnswerDraft) -> ExamAnswer:
        existing = store.find_answer(exam_id, answer.word_id)
        if existing is not None:
            logger.warning(
                "Exam %s: answer for word %s already stored, reusing it",
                exam_id,
                answer.word_id,
            )
            return existing
        return store.create_answer(
            exam_id=exam_id,
            word_id=answer.word_id,
            word_text=answer.word_text,
            student_sentence=answer.student_sentence,
            time_taken_seconds=answer.time_taken_seconds,
        )

    def abandon(self, exam_id: str) -> Optional[ExamSession]:
        """Forget a live session; the exam row stays as it is"""
        session = self._discard(exam_id)
        if session is not None:
            logger.info("Exam %s session discarded", exam_id)
        return session
