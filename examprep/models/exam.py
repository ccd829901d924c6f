"""
Exam models - a user's fixed, ordered snapshot of sampled questions
"""
from sqlalchemy import Column, Integer, Boolean, TIMESTAMP, ForeignKey, Uuid, func
from sqlalchemy.orm import relationship
from examprep.database import Base
from examprep.models.types import JSONType
from examprep.utils.clock import utcnow
import uuid


class Exam(Base):
    """
    Exams table - lifecycle is not_started -> in_progress -> finished
    """
    __tablename__ = "exams"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    question_count = Column(Integer, nullable=False)
    only_unsolved = Column(Boolean, nullable=False, default=False)
    filter_skill_ids = Column(JSONType, nullable=False, default=list)  # ["<skill uuid>", ...]
    created_at = Column(TIMESTAMP, default=utcnow, server_default=func.now())
    started_at = Column(TIMESTAMP, nullable=True)
    finished_at = Column(TIMESTAMP, nullable=True)
    
    questions = relationship(
        "ExamQuestion",
        back_populates="exam",
        order_by="ExamQuestion.order",
    )
    
    def __repr__(self):
        return f"<Exam(id={self.id}, user_id={self.user_id}, questions={self.question_count})>"


class ExamQuestion(Base):
    """
    Exam/question join rows - order is fixed at creation time
    """
    __tablename__ = "exam_questions"
    
    exam_id = Column(Uuid, ForeignKey("exams.id"), primary_key=True)
    question_id = Column(Uuid, ForeignKey("questions.id"), primary_key=True)
    order = Column(Integer, nullable=False)
    
    exam = relationship("Exam", back_populates="questions")
    question = relationship("Question")
    
    def __repr__(self):
        return f"<ExamQuestion(exam_id={self.exam_id}, question_id={self.question_id}, order={self.order})>"
