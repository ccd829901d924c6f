"""
Billing models - purchases, refund requests and the webhook ledger
"""
from sqlalchemy import Column, String, TIMESTAMP, ForeignKey, UniqueConstraint, Uuid, func
from sqlalchemy.orm import relationship
from examprep.database import Base
from examprep.models.types import JSONType
from examprep.utils.clock import utcnow
import uuid


class Purchase(Base):
    """
    Purchases table - one row per completed one-time checkout
    """
    __tablename__ = "purchases"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    stripe_session_id = Column(String(255), unique=True, nullable=True)
    stripe_payment_intent_id = Column(String(255), nullable=True)
    stripe_charge_id = Column(String(255), nullable=True, index=True)
    purchased_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    access_expires_at = Column(TIMESTAMP, nullable=False)
    refunded_at = Column(TIMESTAMP, nullable=True)
    
    refund_requests = relationship("RefundRequest", back_populates="purchase")
    
    def __repr__(self):
        return f"<Purchase(id={self.id}, user_id={self.user_id}, refunded={self.refunded_at is not None})>"


class RefundRequest(Base):
    """
    Refund requests table - status is pending or completed
    """
    __tablename__ = "refund_requests"
    
    STATUS_PENDING = "pending"
    STATUS_COMPLETED = "completed"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    purchase_id = Column(Uuid, ForeignKey("purchases.id"), nullable=False, index=True)
    stripe_refund_id = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=STATUS_PENDING)
    created_at = Column(TIMESTAMP, default=utcnow, server_default=func.now())
    
    purchase = relationship("Purchase", back_populates="refund_requests")
    
    def __repr__(self):
        return f"<RefundRequest(purchase_id={self.purchase_id}, status={self.status})>"


class PaymentEvent(Base):
    """
    Payment events table - idempotency ledger for gateway webhooks
    """
    __tablename__ = "payment_events"
    __table_args__ = (
        UniqueConstraint("gateway", "external_event_id", name="uq_payment_event_gateway_external_id"),
    )
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    gateway = Column(String(50), nullable=False)
    external_event_id = Column(String(255), nullable=False)
    type = Column(String(100), nullable=False)
    payload = Column(JSONType)  # raw event snapshot
    created_at = Column(TIMESTAMP, default=utcnow, server_default=func.now())
    
    def __repr__(self):
        return f"<PaymentEvent(gateway={self.gateway}, external_event_id={self.external_event_id}, type={self.type})>"
