"""
Question bank models - skills, questions and their options
"""
from sqlalchemy import Column, String, Text, Boolean, TIMESTAMP, ForeignKey, Uuid, func
from sqlalchemy.orm import relationship
from examprep.database import Base
from examprep.utils.clock import utcnow
import uuid


class Skill(Base):
    """
    Skills table - subject areas questions are grouped by
    """
    __tablename__ = "skills"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    created_at = Column(TIMESTAMP, default=utcnow, server_default=func.now())
    
    def __repr__(self):
        return f"<Skill(id={self.id}, name={self.name})>"


class Question(Base):
    """
    Questions table - authored content, read-only for the exam engine
    """
    __tablename__ = "questions"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    skill_id = Column(Uuid, ForeignKey("skills.id"), nullable=False, index=True)
    statement = Column(Text, nullable=False)
    explanation_text = Column(Text, nullable=False, default="")
    created_at = Column(TIMESTAMP, default=utcnow, server_default=func.now())
    
    skill = relationship("Skill")
    options = relationship(
        "Option",
        back_populates="question",
        order_by="[Option.created_at, Option.id]",
    )
    
    def __repr__(self):
        return f"<Question(id={self.id}, skill_id={self.skill_id})>"


class Option(Base):
    """
    Options table - exactly one option per question is flagged correct
    """
    __tablename__ = "options"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    question_id = Column(Uuid, ForeignKey("questions.id"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP, default=utcnow, server_default=func.now())
    
    question = relationship("Question", back_populates="options")
    
    def __repr__(self):
        return f"<Option(id={self.id}, question_id={self.question_id}, correct={self.is_correct})>"
