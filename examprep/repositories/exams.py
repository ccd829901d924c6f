"""
Exam queries and writes
"""
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from examprep.models import Exam, ExamQuestion, Question


class ExamRepository:
    """Persistence for exams and their ordered question sets"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, exam_id: UUID) -> Optional[Exam]:
        return self.db.query(Exam).filter(Exam.id == exam_id).first()

    def list_for_user(self, user_id: UUID) -> List[Exam]:
        return (
            self.db.query(Exam)
            .filter(Exam.user_id == user_id)
            .order_by(Exam.created_at.desc())
            .all()
        )

    def add_with_questions(self, exam: Exam, question_ids: Sequence[UUID]) -> Exam:
        """
        Stage an exam and its ExamQuestion rows (order 1..N)

        Nothing is committed here; the caller commits both in one transaction.
        """
        self.db.add(exam)
        self.db.flush()
        self.db.add_all(
            ExamQuestion(exam_id=exam.id, question_id=question_id, order=position)
            for position, question_id in enumerate(question_ids, start=1)
        )
        self.db.flush()
        return exam

    def list_questions(self, exam_id: UUID) -> List[Question]:
        """Questions of an exam in stored order, options loaded"""
        rows = (
            self.db.query(ExamQuestion)
            .options(selectinload(ExamQuestion.question).selectinload(Question.options))
            .filter(ExamQuestion.exam_id == exam_id)
            .order_by(ExamQuestion.order.asc())
            .all()
        )
        return [row.question for row in rows]

    def contains_question(self, exam_id: UUID, question_id: UUID) -> bool:
        row = (
            self.db.query(ExamQuestion.exam_id)
            .filter(ExamQuestion.exam_id == exam_id, ExamQuestion.question_id == question_id)
            .first()
        )
        return row is not None
