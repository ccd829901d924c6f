"""
Pydantic schemas for checkout, access and refunds
"""
from pydantic import BaseModel, Field
from typing import Optional
from uuid import UUID
from datetime import datetime


class ProductInfo(BaseModel):
    id: str
    name: str
    description: Optional[str] = None


class PriceInfo(BaseModel):
    id: str
    unit_amount: Optional[int] = None  # smallest currency unit
    currency: str


class ProductWithPriceResponse(BaseModel):
    product: ProductInfo
    price: PriceInfo


class CheckoutSessionRequest(BaseModel):
    """Checkout request; phone falls back to the one on file"""
    phone: Optional[str] = Field(None, description="Contact phone, required if none on file")
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class CheckoutSessionResponse(BaseModel):
    url: str


class AccessResponse(BaseModel):
    """Current entitlement, computed on every request"""
    has_access: bool
    status: str  # active, inactive
    days_left: Optional[int] = None
    access_expires_at: Optional[datetime] = None
    can_request_refund: bool
    last_purchase_id: Optional[UUID] = None


class RefundRequest(BaseModel):
    purchase_id: UUID


class RefundResponse(BaseModel):
    ok: bool = True


class WebhookResponse(BaseModel):
    received: bool = True
