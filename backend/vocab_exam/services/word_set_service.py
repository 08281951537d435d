import logging
from typing import List, Optional

from vocab_exam.core.exceptions import NotFoundError, ValidationError
from vocab_exam.db.models import Word, WordSet
from vocab_exam.db.store import ExamStore

logger = logging.getLogger(__name__)

MIN_TIME_LIMIT = 10
MAX_TIME_LIMIT = 300
DEFAULT_TIME_LIMIT = 60


class WordSetService:
    """A teacher's word sets and the words inside them"""

    def __init__(self, store: ExamStore):
        self.store = store

    def _owned_word_set(self, teacher_id: str, word_set_id: str) -> WordSet:
        word_set = self.store.get_word_set(word_set_id)
        if word_set is None or word_set.teacher_id != teacher_id:
            raise NotFoundError("Word set", word_set_id)
        return word_set

    def list_word_sets(self, teacher_id: str) -> List[WordSet]:
        return self.store.list_word_sets(teacher_id)

    def create_word_set(
        self, teacher_id: str, name: str, description: Optional[str] = None
    ) -> WordSet:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Please enter a word set name")
        word_set = self.store.create_word_set(
            teacher_id, name, (description or "").strip() or None
        )
        logger.info("Teacher %s created word set %s", teacher_id, word_set.id)
        return word_set

    def update_word_set(
        self,
        teacher_id: str,
        word_set_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> WordSet:
        self._owned_word_set(teacher_id, word_set_id)
        fields = {}
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Please enter a word set name")
            fields["name"] = name
        if description is not None:
            fields["description"] = description.strip() or None
        if not fields:
            return self._owned_word_set(teacher_id, word_set_id)
        return self.store.update_word_set(word_set_id, **fields)

    def delete_word_set(self, teacher_id: str, word_set_id: str) -> None:
        self._owned_word_set(teacher_id, word_set_id)
        self.store.delete_word_set(word_set_id)
        logger.info("Teacher %s deleted word set %s", teacher_id, word_set_id)

    def list_words(self, teacher_id: str, word_set_id: str) -> List[Word]:
        self._owned_word_set(teacher_id, word_set_id)
        return self.store.list_words(word_set_id)

    def add_word(
        self,
        teacher_id: str,
        word_set_id: str,
        word_text: str,
        time_limit_seconds: int = DEFAULT_TIME_LIMIT,
    ) -> Word:
        """Append a word at the end of the set"""
        self._owned_word_set(teacher_id, word_set_id)
        word_text = (word_text or "").strip()
        if not word_text:
            raise ValidationError("Please enter a word")
        if not MIN_TIME_LIMIT <= time_limit_seconds <= MAX_TIME_LIMIT:
            raise ValidationError(
                f"Time limit must be between {MIN_TIME_LIMIT} and {MAX_TIME_LIMIT} seconds",
                details={"time_limit_seconds": time_limit_seconds},
            )

        order_index = self.store.count_words(word_set_id)
        return self.store.create_word(word_set_id, word_text, time_limit_seconds, order_index)

    def delete_word(self, teacher_id: str, word_id: str) -> None:
        """Remove a word and close the gap in order_index"""
        word = self.store.get_word(word_id)
        if word is None:
            raise NotFoundError("Word", word_id)
        word_set_id = word.word_set_id
        self._owned_word_set(teacher_id, word_set_id)

        self.store.delete_word(word_id)
        for index, remaining in enumerate(self.store.list_words(word_set_id)):
            if remaining.order_index != index:
                self.store.update_word(remaining.id, order_index=index)
