"""
Pydantic schemas for exam-related requests and responses
"""
from pydantic import BaseModel, Field
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from examprep.config import settings
from examprep.schemas.question import QuestionResponse


class CreateExamRequest(BaseModel):
    """Request schema for exam creation"""
    skill_ids: List[UUID] = Field(default_factory=list, description="Restrict to these skills (empty = all)")
    only_unsolved: bool = Field(False, description="Only questions attempted but never answered correctly")
    question_count: Optional[int] = Field(
        None,
        ge=1,
        le=settings.MAX_EXAM_QUESTION_COUNT,
        description="Number of questions (default from settings)"
    )


class ExamResponse(BaseModel):
    """Exam metadata with derived status"""
    id: UUID
    created_at: datetime
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    status: str  # not_started, in_progress, finished
    question_count: int


class ExamSummaryResponse(ExamResponse):
    """Exam metadata with best-ever counts"""
    attempted_count: int
    correct_count: int
    incorrect_count: int
    unanswered_count: int


class ExamQuestionsResponse(BaseModel):
    """Exam plus its questions for exam-taking"""
    exam: ExamResponse
    questions: List[QuestionResponse]


class ExamStateResponse(BaseModel):
    """Exam state after a lifecycle transition"""
    exam: ExamResponse


class ExamListResponse(BaseModel):
    exams: List[ExamSummaryResponse]


class QuestionResultResponse(QuestionResponse):
    status: str  # correct, incorrect, unanswered


class ExamResultsResponse(BaseModel):
    """Exam counts plus per-question status"""
    exam: ExamSummaryResponse
    questions: List[QuestionResultResponse]
