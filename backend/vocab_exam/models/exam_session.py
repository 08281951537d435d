from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ExamState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class WordSnapshot(BaseModel):
    """Copy of a Word row taken when the exam starts"""

    id: str
    word_text: str
    time_limit_seconds: int = Field(ge=1)
    order_index: int

    class Config:
        from_attributes = True


class ExamSession(BaseModel):
    """Progress of one student through one exam.

    Plain data: the transition functions in ``vocab_exam.utils.state_machine``
    take a session and return a new one, so a session can be stored, sent
    over the wire or rebuilt from JSON at any point.
    """

    exam_id: str
    word_set_id: str
    student_name: str
    state: ExamState = ExamState.NOT_STARTED
    words: List[WordSnapshot] = []
    word_index: int = 0
    time_left: int = 0
    draft: str = ""

    @property
    def current_word(self) -> Optional[WordSnapshot]:
        if self.state != ExamState.IN_PROGRESS:
            return None
        return self.words[self.word_index]

    @property
    def total_words(self) -> int:
        return len(self.words)

    @property
    def is_last_word(self) -> bool:
        return self.word_index == len(self.words) - 1


class AnswerDraft(BaseModel):
    """The answer for the current word, ready to be persisted"""

    word_id: str
    word_text: str
    student_sentence: str
    time_taken_seconds: int
