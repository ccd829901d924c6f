"""
Shared request dependencies: caller identity, services, access guard
"""
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from examprep.database import get_db
from examprep.errors import ForbiddenError
from examprep.models import User
from examprep.repositories import UserRepository
from examprep.services.billing_service import BillingService
from examprep.services.exam_service import ExamService
from examprep.services.payment_gateway import PaymentGateway
from examprep.services.question_service import QuestionService
from examprep.services.stripe_gateway import stripe_gateway


def get_current_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> UUID:
    """
    Caller identity set by the authentication layer in front of the API
    
    Raises:
        HTTPException: 401 when the header is missing or not a UUID
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid X-User-Id header")


def get_payment_gateway() -> PaymentGateway:
    return stripe_gateway


def get_exam_service(db: Session = Depends(get_db)) -> ExamService:
    return ExamService(db)


def get_question_service(db: Session = Depends(get_db)) -> QuestionService:
    return QuestionService(db)


def get_billing_service(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> BillingService:
    return BillingService(db, gateway)


def require_access(
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    billing: BillingService = Depends(get_billing_service),
) -> UUID:
    """
    Guard for paid content
    
    Admins always pass; everyone else needs an active purchase.
    """
    user = UserRepository(db).get(user_id)
    if user is None:
        raise ForbiddenError("user not found")
    
    if user.role == User.ROLE_ADMIN:
        return user_id
    
    if not billing.has_active_access(user_id):
        raise ForbiddenError("active access required, visit /pricing to purchase")
    
    return user_id
