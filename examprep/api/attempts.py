"""
Answer attempt API endpoints
"""
from fastapi import APIRouter, Depends, Query
from uuid import UUID

from examprep.api.deps import get_current_user_id, get_exam_service
from examprep.schemas.attempt import (
    CreateAttemptRequest,
    CreateAttemptResponse,
    ExamAttemptListResponse,
)
from examprep.services.exam_service import ExamService


router = APIRouter(prefix="/api/attempts", tags=["attempts"])


@router.post("", response_model=CreateAttemptResponse, status_code=201)
async def create_attempt(
    request: CreateAttemptRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: ExamService = Depends(get_exam_service),
):
    """
    Record an answer and return immediate feedback
    
    Works inside an exam (exam_id set) or as free practice.
    """
    return service.create_attempt(
        user_id,
        question_id=request.question_id,
        selected_option_id=request.selected_option_id,
        exam_id=request.exam_id,
    )


@router.get("", response_model=ExamAttemptListResponse)
async def list_exam_attempts(
    exam_id: UUID = Query(..., description="Exam to list attempts for"),
    user_id: UUID = Depends(get_current_user_id),
    service: ExamService = Depends(get_exam_service),
):
    return {"attempts": service.list_exam_attempts(user_id, exam_id)}
