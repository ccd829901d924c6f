"""
User model - identity is owned by the auth provider
"""
from sqlalchemy import Column, String, TIMESTAMP, Uuid, func
from examprep.database import Base
from examprep.utils.clock import utcnow
import uuid


class User(Base):
    """
    Users table - stripe_customer_id is filled lazily on first checkout
    """
    __tablename__ = "users"
    
    ROLE_ADMIN = "admin"
    ROLE_STUDENT = "student"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(32), nullable=True)
    role = Column(String(20), nullable=False, default=ROLE_STUDENT)
    stripe_customer_id = Column(String(255), unique=True, nullable=True)
    created_at = Column(TIMESTAMP, default=utcnow, server_default=func.now())
    
    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
