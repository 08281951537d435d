from typing import Dict, Iterable, Optional, Set, Tuple

from vocab_exam.core.exceptions import EmptyWordSetError, InvalidTransitionError
from vocab_exam.models.exam_session import (
    AnswerDraft,
    ExamSession,
    ExamState,
    WordSnapshot,
)

NO_ANSWER = "[No answer]"


class ExamStateMachine:
    """Allowed state changes for an exam session"""

    _transitions: Dict[ExamState, Set[ExamState]] = {
        ExamState.NOT_STARTED: {ExamState.IN_PROGRESS},
        # IN_PROGRESS -> IN_PROGRESS covers the clock, drafts and the advance to the next word
        ExamState.IN_PROGRESS: {ExamState.IN_PROGRESS, ExamState.COMPLETED},
        ExamState.COMPLETED: set(),
    }

    # operation -> (state it applies to, state it leads to)
    _operations: Dict[str, Tuple[ExamState, ExamState]] = {
        "start": (ExamState.NOT_STARTED, ExamState.IN_PROGRESS),
        "tick": (ExamState.IN_PROGRESS, ExamState.IN_PROGRESS),
        "edit": (ExamState.IN_PROGRESS, ExamState.IN_PROGRESS),
        "submit": (ExamState.IN_PROGRESS, ExamState.IN_PROGRESS),
        "advance": (ExamState.IN_PROGRESS, ExamState.IN_PROGRESS),
        "complete": (ExamState.IN_PROGRESS, ExamState.COMPLETED),
    }

    @classmethod
    def can_transition(cls, current: ExamState, target: ExamState) -> bool:
        """Check if transition to target state is allowed"""
        return target in cls._transitions.get(current, set())

    @classmethod
    def require(cls, session: ExamSession, operation: str) -> ExamState:
        """Return the state ``operation`` leads to, or raise if it is not allowed now"""
        source, target = cls._operations[operation]
        if session.state != source or not cls.can_transition(source, target):
            raise InvalidTransitionError(session.state.value, operation)
        return target


def begin(
    exam_id: str,
    word_set_id: str,
    student_name: str,
    words: Iterable[WordSnapshot],
) -> ExamSession:
    """Build an in-progress session positioned on the first word"""
    ordered = sorted(words, key=lambda w: w.order_index)
    if not ordered:
        raise EmptyWordSetError(word_set_id)

    session = ExamSession(
        exam_id=exam_id,
        word_set_id=word_set_id,
        student_name=student_name,
    )
    ExamStateMachine.require(session, "start")
    return session.model_copy(
        update={
            "state": ExamState.IN_PROGRESS,
            "words": ordered,
            "word_index": 0,
            "time_left": ordered[0].time_limit_seconds,
            "draft": "",
        }
    )


def tick(session: ExamSession) -> ExamSession:
    """Advance the clock by one second"""
    ExamStateMachine.require(session, "tick")
    return session.model_copy(update={"time_left": max(session.time_left - 1, 0)})


def is_expired(session: ExamSession) -> bool:
    return session.state == ExamState.IN_PROGRESS and session.time_left == 0


def update_draft(session: ExamSession, text: str) -> ExamSession:
    ExamStateMachine.require(session, "edit")
    return session.model_copy(update={"draft": text})


def prepare_answer(session: ExamSession, sentence: Optional[str] = None) -> AnswerDraft:
    """Answer for the current word from ``sentence`` or, if None, the draft"""
    ExamStateMachine.require(session, "submit")
    word = session.current_word
    text = (session.draft if sentence is None else sentence).strip()
    time_taken = word.time_limit_seconds - session.time_left
    time_taken = min(max(time_taken, 0), word.time_limit_seconds)

    return AnswerDraft(
        word_id=word.id,
        word_text=word.word_text,
        student_sentence=text or NO_ANSWER,
        time_taken_seconds=time_taken,
    )


def advance(session: ExamSession) -> ExamSession:
    """Move past the current word; the last word completes the exam"""
    if session.is_last_word:
        state = ExamStateMachine.require(session, "complete")
        return session.model_copy(update={"state": state, "time_left": 0, "draft": ""})

    ExamStateMachine.require(session, "advance")
    next_index = session.word_index + 1
    return session.model_copy(
        update={
            "word_index": next_index,
            "time_left": session.words[next_index].time_limit_seconds,
            "draft": "",
        }
    )
