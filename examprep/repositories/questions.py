"""
Question bank queries
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import exists, func
from sqlalchemy.orm import Session, selectinload

from examprep.models import Attempt, Option, Question, Skill


@dataclass
class QuestionFilter:
    """
    Question selection criteria shared by exam creation and the question list

    only_unsolved keeps questions the user attempted at least once and never
    answered correctly; questions never attempted are excluded.
    """
    user_id: UUID
    skill_ids: List[UUID] = field(default_factory=list)
    only_unsolved: bool = False

    def criteria(self) -> list:
        clauses = []
        if self.skill_ids:
            clauses.append(Question.skill_id.in_(self.skill_ids))
        if self.only_unsolved:
            attempted = exists().where(
                Attempt.question_id == Question.id,
                Attempt.user_id == self.user_id,
            )
            solved = exists().where(
                Attempt.question_id == Question.id,
                Attempt.user_id == self.user_id,
                Attempt.is_correct.is_(True),
            )
            clauses.extend([attempted, ~solved])
        return clauses


class QuestionRepository:
    """Read access to skills, questions and options"""

    def __init__(self, db: Session):
        self.db = db

    def count_matching(self, question_filter: QuestionFilter) -> int:
        return self.db.query(func.count(Question.id)).filter(*question_filter.criteria()).scalar() or 0

    def question_id_at_offset(self, question_filter: QuestionFilter, offset: int) -> Optional[UUID]:
        """Id of the question at `offset` in the filtered set ordered by id"""
        row = (
            self.db.query(Question.id)
            .filter(*question_filter.criteria())
            .order_by(Question.id.asc())
            .offset(offset)
            .limit(1)
            .first()
        )
        return row[0] if row else None

    def list_matching(self, question_filter: QuestionFilter) -> List[Question]:
        return (
            self.db.query(Question)
            .options(selectinload(Question.options))
            .filter(*question_filter.criteria())
            .order_by(Question.created_at.desc(), Question.id.asc())
            .all()
        )

    def get(self, question_id: UUID) -> Optional[Question]:
        return self.db.query(Question).filter(Question.id == question_id).first()

    def get_option(self, option_id: UUID) -> Optional[Option]:
        return self.db.query(Option).filter(Option.id == option_id).first()

    def get_correct_option(self, question_id: UUID) -> Optional[Option]:
        return (
            self.db.query(Option)
            .filter(Option.question_id == question_id, Option.is_correct.is_(True))
            .order_by(Option.created_at.asc(), Option.id.asc())
            .first()
        )

    def correct_option_ids(self, question_ids: Iterable[UUID]) -> Dict[UUID, UUID]:
        """Map question id -> id of its correct option"""
        ids = list(set(question_ids))
        if not ids:
            return {}
        rows = (
            self.db.query(Option.question_id, Option.id)
            .filter(Option.question_id.in_(ids), Option.is_correct.is_(True))
            .all()
        )
        return {question_id: option_id for question_id, option_id in rows}

    def list_skills(self) -> List[Skill]:
        return self.db.query(Skill).order_by(Skill.name.asc()).all()
