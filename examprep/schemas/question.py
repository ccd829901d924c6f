"""
Pydantic schemas for the question bank
"""
from pydantic import BaseModel
from typing import List
from uuid import UUID


class SkillResponse(BaseModel):
    """A skill (topic) questions are grouped under"""
    id: UUID
    name: str
    
    class Config:
        from_attributes = True


class SkillListResponse(BaseModel):
    skills: List[SkillResponse]


class OptionResponse(BaseModel):
    """Answer option as shown while taking an exam (no correctness flag)"""
    id: UUID
    text: str
    
    class Config:
        from_attributes = True


class QuestionResponse(BaseModel):
    """Question with its options in stored order"""
    id: UUID
    statement: str
    skill_id: UUID
    options: List[OptionResponse]
    
    class Config:
        from_attributes = True


class QuestionListResponse(BaseModel):
    questions: List[QuestionResponse]
