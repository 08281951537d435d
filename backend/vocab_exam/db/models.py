import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from vocab_exam.core.database import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Teacher(Base):
    __tablename__ = "teachers"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    word_sets = relationship(
        "WordSet", back_populates="teacher", cascade="all, delete-orphan"
    )


class WordSet(Base):
    __tablename__ = "word_sets"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    teacher_id = Column(
        String(36), ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    teacher = relationship("Teacher", back_populates="word_sets")
    words = relationship(
        "Word",
        back_populates="word_set",
        cascade="all, delete-orphan",
        order_by="Word.order_index",
    )
    exams = relationship(
        "Exam", back_populates="word_set", cascade="all, delete-orphan"
    )


class Word(Base):
    __tablename__ = "words"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    word_set_id = Column(
        String(36), ForeignKey("word_sets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    word_text = Column(String(255), nullable=False)
    time_limit_seconds = Column(Integer, nullable=False, default=60)
    order_index = Column(Integer, nullable=False, default=0)

    word_set = relationship("WordSet", back_populates="words")


class Exam(Base):
    __tablename__ = "exams"

    __table_args__ = (
        Index("ix_exams_word_set_completed", "word_set_id", "completed_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    word_set_id = Column(
        String(36), ForeignKey("word_sets.id", ondelete="CASCADE"), nullable=False
    )
    student_name = Column(String(255), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    total_words = Column(Integer, nullable=True)
    total_score = Column(Integer, nullable=True)

    word_set = relationship("WordSet", back_populates="exams")
    answers = relationship(
        "ExamAnswer", back_populates="exam", cascade="all, delete-orphan"
    )


class ExamAnswer(Base):
    __tablename__ = "exam_answers"

    # A retried submission must not produce a second answer for the same word
    __table_args__ = (
        UniqueConstraint("exam_id", "word_id", name="uq_exam_answers_exam_word"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    exam_id = Column(
        String(36), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # No FK to words: the answer keeps a text snapshot and outlives word edits
    word_id = Column(String(36), nullable=False)
    word_text = Column(String(255), nullable=False)
    student_sentence = Column(Text, nullable=False)
    time_taken_seconds = Column(Integer, nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    is_correct = Column(Boolean, nullable=True)
    teacher_feedback = Column(Text, nullable=True)
    checked_at = Column(DateTime(timezone=True), nullable=True)

    exam = relationship("Exam", back_populates="answers")
