"""
User queries
"""
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from examprep.models import User


class UserRepository:
    """Read access to users plus the gateway customer backfill"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: UUID) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def set_stripe_customer_id(self, user: User, customer_id: str) -> None:
        user.stripe_customer_id = customer_id
        self.db.flush()

    def set_phone(self, user: User, phone: str) -> None:
        user.phone = phone
        self.db.flush()
