"""
Pydantic schemas for answer attempts
"""
from pydantic import BaseModel
from typing import List, Optional
from uuid import UUID
from datetime import datetime


class CreateAttemptRequest(BaseModel):
    """Answer submission, optionally inside an exam"""
    exam_id: Optional[UUID] = None
    question_id: UUID
    selected_option_id: UUID


class AttemptResponse(BaseModel):
    id: UUID
    exam_id: Optional[UUID] = None
    question_id: UUID
    selected_option_id: UUID
    is_correct: bool
    created_at: datetime


class AttemptFeedback(BaseModel):
    """Immediate feedback; explanation is the same whichever option was picked"""
    is_correct: bool
    correct_option_id: UUID
    explanation_text: Optional[str] = None


class CreateAttemptResponse(BaseModel):
    attempt: AttemptResponse
    feedback: AttemptFeedback


class ExamAttemptResponse(BaseModel):
    """Attempt inside an exam, with the answer key for review"""
    id: UUID
    question_id: UUID
    selected_option_id: UUID
    is_correct: bool
    correct_option_id: UUID
    created_at: datetime


class ExamAttemptListResponse(BaseModel):
    attempts: List[ExamAttemptResponse]
