"""
Attempt model - append-only answer history
"""
from sqlalchemy import Column, Boolean, TIMESTAMP, ForeignKey, Uuid, func
from examprep.database import Base
from examprep.utils.clock import utcnow
import uuid


class Attempt(Base):
    """
    Attempts table - one submitted answer, optionally tagged to an exam
    """
    __tablename__ = "attempts"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    exam_id = Column(Uuid, ForeignKey("exams.id"), nullable=True, index=True)
    question_id = Column(Uuid, ForeignKey("questions.id"), nullable=False, index=True)
    selected_option_id = Column(Uuid, ForeignKey("options.id"), nullable=False)
    is_correct = Column(Boolean, nullable=False)  # copied from the option at write time
    created_at = Column(TIMESTAMP, default=utcnow, server_default=func.now())
    
    def __repr__(self):
        return f"<Attempt(user_id={self.user_id}, question_id={self.question_id}, correct={self.is_correct})>"
