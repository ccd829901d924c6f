"""
Exam lifecycle API endpoints
"""
from fastapi import APIRouter, Depends
from uuid import UUID

from examprep.api.deps import get_current_user_id, get_exam_service, require_access
from examprep.schemas.exam import (
    CreateExamRequest,
    ExamListResponse,
    ExamQuestionsResponse,
    ExamResultsResponse,
    ExamStateResponse,
)
from examprep.services.exam_service import ExamService


router = APIRouter(prefix="/api/exams", tags=["exams"])


@router.get("", response_model=ExamListResponse)
async def list_exams(
    user_id: UUID = Depends(get_current_user_id),
    service: ExamService = Depends(get_exam_service),
):
    """
    List the caller's exams, newest first
    
    Counts are best-ever per question: wrong then right counts as correct.
    """
    return service.list_exams(user_id)


@router.post("", response_model=ExamQuestionsResponse, status_code=201)
async def create_exam(
    request: CreateExamRequest,
    user_id: UUID = Depends(require_access),
    service: ExamService = Depends(get_exam_service),
):
    """
    Create an exam by sampling the filtered question pool uniformly
    
    - skill_ids: restrict to these skills (empty = all)
    - only_unsolved: questions attempted but never answered correctly
    - question_count: defaults to DEFAULT_EXAM_QUESTION_COUNT
    """
    return service.create_exam(
        user_id,
        skill_ids=request.skill_ids,
        only_unsolved=request.only_unsolved,
        question_count=request.question_count,
    )


@router.get("/{exam_id}", response_model=ExamQuestionsResponse)
async def get_exam(
    exam_id: UUID,
    user_id: UUID = Depends(require_access),
    service: ExamService = Depends(get_exam_service),
):
    """Exam with its questions; options never reveal correctness"""
    return service.get_exam_questions(user_id, exam_id)


@router.post("/{exam_id}/start", response_model=ExamStateResponse)
async def start_exam(
    exam_id: UUID,
    user_id: UUID = Depends(require_access),
    service: ExamService = Depends(get_exam_service),
):
    return service.start_exam(user_id, exam_id)


@router.post("/{exam_id}/finish", response_model=ExamStateResponse)
async def finish_exam(
    exam_id: UUID,
    user_id: UUID = Depends(require_access),
    service: ExamService = Depends(get_exam_service),
):
    return service.finish_exam(user_id, exam_id)


@router.get("/{exam_id}/results", response_model=ExamResultsResponse)
async def get_exam_results(
    exam_id: UUID,
    user_id: UUID = Depends(require_access),
    service: ExamService = Depends(get_exam_service),
):
    """Per-question status: correct, incorrect or unanswered"""
    return service.get_exam_results(user_id, exam_id)
