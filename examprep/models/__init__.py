"""
Database models package
"""
from examprep.models.user import User
from examprep.models.question import Skill, Question, Option
from examprep.models.exam import Exam, ExamQuestion
from examprep.models.attempt import Attempt
from examprep.models.billing import Purchase, RefundRequest, PaymentEvent

__all__ = [
    "User",
    "Skill",
    "Question",
    "Option",
    "Exam",
    "ExamQuestion",
    "Attempt",
    "Purchase",
    "RefundRequest",
    "PaymentEvent",
]
