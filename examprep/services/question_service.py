"""
Question bank browsing
"""
from typing import Any, Dict, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from examprep.repositories import QuestionFilter, QuestionRepository


class QuestionService:
    """Read-only listing of skills and questions"""
    
    def __init__(self, db: Session):
        self.questions = QuestionRepository(db)
    
    def list_skills(self) -> Dict[str, Any]:
        return {
            "skills": [{"id": s.id, "name": s.name} for s in self.questions.list_skills()]
        }
    
    def list_questions(
        self,
        user_id: UUID,
        skill_ids: Optional[Sequence[UUID]] = None,
        only_unsolved: bool = False,
    ) -> Dict[str, Any]:
        """Questions matching the same filter exam creation samples from"""
        question_filter = QuestionFilter(
            user_id=user_id,
            skill_ids=list(skill_ids or []),
            only_unsolved=bool(only_unsolved),
        )
        questions = self.questions.list_matching(question_filter)
        
        return {
            "questions": [
                {
                    "id": q.id,
                    "statement": q.statement,
                    "skill_id": q.skill_id,
                    "options": [{"id": o.id, "text": o.text} for o in q.options],
                }
                for q in questions
            ]
        }
