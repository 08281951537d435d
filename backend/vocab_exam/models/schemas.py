from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class ORMModel(BaseModel):
    class Config:
        from_attributes = True


# Auth

class SignUpRequest(BaseModel):
    email: str
    password: str
    full_name: str


class SignInRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    teacher_id: str
    expires_at: datetime


class TeacherOut(ORMModel):
    id: str
    email: str
    full_name: str
    created_at: datetime


# Word sets

class WordSetCreate(BaseModel):
    name: str
    description: Optional[str] = None


class WordSetUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class WordSetOut(ORMModel):
    id: str
    teacher_id: str
    name: str
    description: Optional[str] = None
    created_at: datetime


class WordCreate(BaseModel):
    word_text: str
    time_limit_seconds: int = 60


class WordOut(ORMModel):
    id: str
    word_set_id: str
    word_text: str
    time_limit_seconds: int
    order_index: int


# Exams

class StartSessionRequest(BaseModel):
    word_set_id: str
    student_name: str


class DraftRequest(BaseModel):
    text: str


class SubmitRequest(BaseModel):
    sentence: Optional[str] = None


# Grading

class ExamAnswerOut(ORMModel):
    id: str
    exam_id: str
    word_id: str
    word_text: str
    student_sentence: str
    time_taken_seconds: Optional[int] = None
    submitted_at: datetime
    is_correct: Optional[bool] = None
    teacher_feedback: Optional[str] = None
    checked_at: Optional[datetime] = None


class ExamAnswersOut(BaseModel):
    ungraded: List[ExamAnswerOut]
    graded: List[ExamAnswerOut]


class GradeRequest(BaseModel):
    is_correct: bool
    feedback: Optional[str] = None


# Analytics

class StatsOut(BaseModel):
    total_word_sets: int
    completed_exams: int
    average_score: float
    completion_rate: int
