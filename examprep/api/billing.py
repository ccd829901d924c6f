"""
Billing API endpoints: product, checkout, access, refunds and gateway webhook
"""
from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
import logging

from examprep.api.deps import get_billing_service, get_current_user_id
from examprep.config import settings
from examprep.database import get_db
from examprep.errors import BadRequestError, ServiceError
from examprep.repositories import UserRepository
from examprep.schemas.billing import (
    AccessResponse,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    ProductWithPriceResponse,
    RefundRequest,
    RefundResponse,
    WebhookResponse,
)
from examprep.services.billing_service import BillingService


router = APIRouter(prefix="/api/billing", tags=["billing"])
logger = logging.getLogger(__name__)


@router.get("/product", response_model=ProductWithPriceResponse)
async def get_product(billing: BillingService = Depends(get_billing_service)):
    """Configured product and its current price (cached)"""
    return billing.get_product_with_price()


@router.post("/checkout-session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    request: CheckoutSessionRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    billing: BillingService = Depends(get_billing_service),
):
    """
    Start a hosted checkout for the caller
    
    Access is granted by the webhook once payment completes, not here.
    """
    user = UserRepository(db).get(user_id)
    if user is None:
        raise BadRequestError("user not found")
    
    return billing.create_checkout_session(
        user_id,
        email=user.email,
        phone=request.phone or user.phone,
        success_url=request.success_url or f"{settings.FRONTEND_URL}/checkout-success",
        cancel_url=request.cancel_url or f"{settings.FRONTEND_URL}/pricing",
    )


@router.get("/access", response_model=AccessResponse)
async def get_access(
    user_id: UUID = Depends(get_current_user_id),
    billing: BillingService = Depends(get_billing_service),
):
    return billing.get_access(user_id)


@router.post("/refund", response_model=RefundResponse)
async def request_refund(
    request: RefundRequest,
    user_id: UUID = Depends(get_current_user_id),
    billing: BillingService = Depends(get_billing_service),
):
    """Refund a purchase within the 7-day window"""
    billing.request_refund(user_id, request.purchase_id)
    return {"ok": True}


@router.post("/webhook", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    billing: BillingService = Depends(get_billing_service),
):
    """
    Gateway webhook receiver
    
    Signature failures answer 400 and Stripe retries them. Failures while
    applying a verified event also answer 400, but that event is already in
    the ledger, so the retry is acknowledged without being reapplied.
    """
    if not stripe_signature:
        raise BadRequestError("Missing Stripe-Signature header")
    
    raw_body = await request.body()
    
    try:
        billing.process_webhook_event(raw_body, stripe_signature)
    except ServiceError:
        raise
    except Exception as e:
        logger.error(f"Webhook processing failed: {str(e)}", exc_info=True)
        raise BadRequestError(str(e) or "webhook processing failed")
    
    return {"received": True}
