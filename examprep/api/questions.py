"""
Question bank API endpoints
"""
from fastapi import APIRouter, Depends, Query
from typing import List
from uuid import UUID

from examprep.api.deps import get_current_user_id, get_question_service
from examprep.schemas.question import QuestionListResponse, SkillListResponse
from examprep.services.question_service import QuestionService


router = APIRouter(prefix="/api", tags=["questions"])


@router.get("/skills", response_model=SkillListResponse)
async def list_skills(service: QuestionService = Depends(get_question_service)):
    """All skills ordered by name"""
    return service.list_skills()


@router.get("/questions", response_model=QuestionListResponse)
async def list_questions(
    skill_ids: List[UUID] = Query(default=[]),
    only_unsolved: bool = False,
    user_id: UUID = Depends(get_current_user_id),
    service: QuestionService = Depends(get_question_service),
):
    """Questions matching the same filter used for exam creation"""
    return service.list_questions(user_id, skill_ids=skill_ids, only_unsolved=only_unsolved)
