"""
Attempt queries and writes
"""
from typing import Iterable, List
from uuid import UUID

from sqlalchemy.orm import Session

from examprep.models import Attempt


class AttemptRepository:
    """Append-only access to the attempt history"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, attempt: Attempt) -> Attempt:
        self.db.add(attempt)
        self.db.flush()
        return attempt

    def list_for_exam(self, user_id: UUID, exam_id: UUID) -> List[Attempt]:
        return (
            self.db.query(Attempt)
            .filter(Attempt.user_id == user_id, Attempt.exam_id == exam_id)
            .order_by(Attempt.created_at.asc())
            .all()
        )

    def list_for_exams(self, user_id: UUID, exam_ids: Iterable[UUID]) -> List[Attempt]:
        ids = list(exam_ids)
        if not ids:
            return []
        return (
            self.db.query(Attempt)
            .filter(Attempt.user_id == user_id, Attempt.exam_id.in_(ids))
            .all()
        )
