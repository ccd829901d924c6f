"""
Repositories - typed query methods over the relational store
"""
from examprep.repositories.questions import QuestionFilter, QuestionRepository
from examprep.repositories.exams import ExamRepository
from examprep.repositories.attempts import AttemptRepository
from examprep.repositories.users import UserRepository
from examprep.repositories.billing import PurchaseRepository, PaymentEventRepository

__all__ = [
    "QuestionFilter",
    "QuestionRepository",
    "ExamRepository",
    "AttemptRepository",
    "UserRepository",
    "PurchaseRepository",
    "PaymentEventRepository",
]
