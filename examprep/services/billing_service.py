"""
Billing reconciliation: checkout, webhook-driven purchases, access and refunds
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from examprep.config import settings
from examprep.errors import BadRequestError, InternalError, ServiceError
from examprep.models import Purchase, RefundRequest
from examprep.repositories import PaymentEventRepository, PurchaseRepository, UserRepository
from examprep.services.payment_gateway import PaymentGateway, PaymentGatewayError
from examprep.utils.cache import cache_service
from examprep.utils.clock import utcnow

logger = logging.getLogger(__name__)


def _reference_id(value: Any) -> Optional[str]:
    """Id of a webhook reference that may be a bare id or an expanded object"""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


class BillingService:
    """
    Service reconciling gateway payments with local access records
    
    Policy:
    - One purchase grants access for ACCESS_DURATION from purchase time
    - A purchase may be refunded within REFUND_WINDOW of purchase time,
      at most once
    - Webhook events are recorded in the ledger before they are acted on,
      so a redelivered event is never processed twice
    """
    
    GATEWAY_STRIPE = "stripe"
    ACCESS_DURATION = timedelta(days=365)
    REFUND_WINDOW = timedelta(days=7)
    
    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        cache=None,
        clock: Callable[[], datetime] = utcnow,
        product_id: Optional[str] = None,
        webhook_secret: Optional[str] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.cache = cache if cache is not None else cache_service
        self.clock = clock
        self.product_id = product_id or settings.STRIPE_PRODUCT_ID
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET
        self.users = UserRepository(db)
        self.purchases = PurchaseRepository(db)
        self.payment_events = PaymentEventRepository(db)
    
    # ------------------------------------------------------------------
    # Catalog and checkout
    # ------------------------------------------------------------------
    
    def get_product_with_price(self) -> Dict[str, Any]:
        """
        Configured product and its first active price
        
        Raises:
            BadRequestError: no active price, or the gateway rejected the lookup
        """
        cache_key = self.cache.product_key(self.product_id)
        cached = self.cache.get(cache_key)
        if cached:
            return cached
        
        try:
            product = self.gateway.retrieve_product(self.product_id)
            prices = self.gateway.list_active_prices(self.product_id)
        except PaymentGatewayError as e:
            raise BadRequestError(str(e))
        
        if not prices:
            raise BadRequestError("no active price configured for product")
        
        price = prices[0]
        result = {
            "product": {
                "id": product.id,
                "name": product.name,
                "description": product.description,
            },
            "price": {
                "id": price.id,
                "unit_amount": price.unit_amount,
                "currency": price.currency,
            },
        }
        
        self.cache.set(cache_key, result)
        
        return result
    
    def create_checkout_session(
        self,
        user_id: UUID,
        email: str,
        phone: Optional[str],
        success_url: str,
        cancel_url: str,
    ) -> Dict[str, str]:
        """
        Start a one-time payment checkout for the current price
        
        Flow: validate and store phone -> resolve or create gateway customer ->
        create checkout session stamped with the user id -> return its URL.
        The purchase itself is created later by the webhook.
        """
        if not phone or not phone.strip():
            raise BadRequestError("phone is required to purchase")
        
        try:
            user = self.users.get(user_id)
            if user is None:
                raise BadRequestError("user not found")
            
            phone = phone.strip()
            if user.phone != phone:
                # Kept on file for contact after a refund
                self.users.set_phone(user, phone)
                self.db.commit()
            
            customer_id = user.stripe_customer_id
            if not customer_id:
                customer_id = self.gateway.create_customer(
                    email=email,
                    phone=phone,
                    metadata={"userId": str(user_id)},
                )
                self.users.set_stripe_customer_id(user, customer_id)
                self.db.commit()
            
            price = self.get_product_with_price()["price"]
            
            session = self.gateway.create_checkout_session(
                customer_id=customer_id,
                price_id=price["id"],
                client_reference_id=str(user_id),
                success_url=success_url,
                cancel_url=cancel_url,
                metadata={"userId": str(user_id)},
            )
            if not session.url:
                raise BadRequestError("failed to create checkout session")
            
            logger.info(f"Checkout session created: {session.id} for user {user_id}")
            
            return {"url": session.url}
            
        except ServiceError:
            raise
        except PaymentGatewayError as e:
            raise BadRequestError(str(e) or "could not start checkout, please try again")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Checkout session failed for user {user_id}: {str(e)}", exc_info=True)
            raise InternalError("error creating checkout session, please try again shortly")
    
    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------
    
    def process_webhook_event(self, raw_body: bytes, signature: str) -> None:
        """
        Verify, record and apply a gateway webhook event
        
        Handled events:
        - checkout.session.completed (mode=payment) -> creates a Purchase
        - charge.refunded -> stamps refunded_at on the matching Purchase
        
        Every verified event is written to the ledger before it is applied.
        A crash or handler failure after that point drops the event: the
        redelivery hits the ledger and is acknowledged without being applied,
        so the failure is logged with the event id for manual reconciliation.
        
        Raises:
            BadRequestError: signature verification failed
        """
        try:
            event = self.gateway.construct_event(raw_body, signature, self.webhook_secret)
        except PaymentGatewayError as e:
            logger.warning(f"Webhook signature verification failed: {str(e)}")
            raise BadRequestError(f"Webhook signature verification failed: {str(e)}")
        
        event_id = event.get("id")
        event_type = event.get("type")
        if not event_id or not event_type:
            raise BadRequestError("malformed webhook event")
        
        if self.payment_events.exists(self.GATEWAY_STRIPE, event_id):
            logger.info(f"Webhook already processed: {event_id}")
            return
        
        try:
            self.payment_events.record(self.GATEWAY_STRIPE, event_id, event_type, event)
            self.db.commit()
        except IntegrityError:
            # A concurrent delivery of the same event recorded it first
            self.db.rollback()
            logger.info(f"Webhook recorded concurrently: {event_id}")
            return
        
        handlers = {
            "checkout.session.completed": self._handle_checkout_completed,
            "charge.refunded": self._handle_charge_refunded,
        }
        handler = handlers.get(event_type)
        if handler is None:
            logger.info(f"Webhook ignored: {event_type}")
            return
        
        payload = (event.get("data") or {}).get("object") or {}
        try:
            handler(payload)
        except Exception as e:
            self.db.rollback()
            logger.error(
                f"Webhook {event_id} ({event_type}) recorded but not applied, "
                f"needs manual reconciliation: {str(e)}"
            )
            raise
    
    def _handle_checkout_completed(self, session: Dict[str, Any]) -> None:
        if session.get("mode") != "payment":
            logger.info(f"Checkout session {session.get('id')} not in payment mode, skipped")
            return
        
        raw_user_id = session.get("client_reference_id") or (session.get("metadata") or {}).get("userId")
        if not raw_user_id:
            logger.warning("checkout.session.completed without userId")
            return
        
        try:
            user_id = UUID(str(raw_user_id))
        except ValueError:
            logger.warning(f"checkout.session.completed with invalid userId: {raw_user_id}")
            return
        
        user = self.users.get(user_id)
        if user is None:
            logger.warning(f"checkout.session.completed for unknown user: {user_id}")
            return
        
        session_id = session.get("id")
        if session_id and self.purchases.get_by_session_id(session_id):
            logger.info(f"Purchase already exists for session {session_id}")
            return
        
        customer_id = _reference_id(session.get("customer"))
        if customer_id and user.stripe_customer_id != customer_id:
            self.users.set_stripe_customer_id(user, customer_id)
        
        payment_intent_id = _reference_id(session.get("payment_intent"))
        charge_id = None
        if payment_intent_id:
            try:
                charge_id = self.gateway.retrieve_charge_id(payment_intent_id)
            except PaymentGatewayError as e:
                logger.warning(f"Failed to fetch charge for payment intent {payment_intent_id}: {str(e)}")
        
        now = self.clock()
        purchase = Purchase(
            user_id=user_id,
            stripe_session_id=session_id,
            stripe_payment_intent_id=payment_intent_id,
            stripe_charge_id=charge_id,
            purchased_at=now,
            access_expires_at=now + self.ACCESS_DURATION,
        )
        self.purchases.add(purchase)
        self.db.commit()
        
        logger.info(f"Purchase created: {purchase.id} for user {user_id} (session {session_id})")
    
    def _handle_charge_refunded(self, charge: Dict[str, Any]) -> None:
        charge_id = charge.get("id")
        if not charge_id:
            return
        
        updated = self.purchases.mark_refunded_by_charge(charge_id, self.clock())
        self.db.commit()
        
        if updated:
            logger.info(f"Marked {updated} purchase(s) refunded for charge {charge_id}")
        else:
            logger.info(f"charge.refunded for unknown or already refunded charge: {charge_id}")
    
    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------
    
    def get_access(self, user_id: UUID) -> Dict[str, Any]:
        """
        Current entitlement of a user, computed on every call
        
        Logic:
        - Most recent unrefunded, unexpired purchase -> active
        - Otherwise the most recent purchase of any kind -> inactive, but the
          refund option stays visible while its window is open
        - No purchases -> inactive
        """
        now = self.clock()
        
        active = self.purchases.find_active(user_id, now)
        if active is not None:
            return {
                "has_access": True,
                "status": "active",
                "days_left": self._days_left(active.access_expires_at, now),
                "access_expires_at": active.access_expires_at,
                "can_request_refund": self._can_request_refund(active, now),
                "last_purchase_id": active.id,
            }
        
        latest = self.purchases.find_latest(user_id)
        if latest is not None:
            return {
                "has_access": False,
                "status": "inactive",
                "days_left": None,
                "access_expires_at": latest.access_expires_at,
                "can_request_refund": self._can_request_refund(latest, now),
                "last_purchase_id": latest.id,
            }
        
        return {
            "has_access": False,
            "status": "inactive",
            "days_left": None,
            "access_expires_at": None,
            "can_request_refund": False,
            "last_purchase_id": None,
        }
    
    def has_active_access(self, user_id: UUID) -> bool:
        return self.purchases.find_active(user_id, self.clock()) is not None
    
    def _can_request_refund(self, purchase: Purchase, now: datetime) -> bool:
        if purchase.refunded_at is not None:
            return False
        if now > purchase.purchased_at + self.REFUND_WINDOW:
            return False
        return self.purchases.count_completed_refunds(purchase.id) == 0
    
    @staticmethod
    def _days_left(expires_at: datetime, now: datetime) -> int:
        return math.ceil((expires_at - now).total_seconds() / timedelta(days=1).total_seconds())
    
    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------
    
    def request_refund(self, user_id: UUID, purchase_id: UUID) -> None:
        """
        Refund a purchase inside the withdrawal window
        
        Raises:
            BadRequestError: purchase missing, already refunded, outside the
                window, already has a completed refund, or has no charge
        """
        purchase = self.purchases.get_for_user(purchase_id, user_id)
        if purchase is None:
            raise BadRequestError("purchase not found")
        if purchase.refunded_at is not None:
            raise BadRequestError("purchase already refunded")
        
        now = self.clock()
        if now > purchase.purchased_at + self.REFUND_WINDOW:
            raise BadRequestError(
                f"the refund window ({self.REFUND_WINDOW.days} days) has passed"
            )
        if self.purchases.count_completed_refunds(purchase.id) > 0:
            raise BadRequestError("a refund was already completed for this purchase")
        if not purchase.stripe_charge_id:
            raise BadRequestError("no charge found for this purchase")
        
        try:
            refund = self.gateway.create_refund(purchase.stripe_charge_id)
        except PaymentGatewayError as e:
            raise BadRequestError(str(e))
        
        status = (
            RefundRequest.STATUS_COMPLETED
            if refund.status == "succeeded"
            else RefundRequest.STATUS_PENDING
        )
        
        try:
            purchase.refunded_at = now
            self.purchases.add_refund_request(
                RefundRequest(
                    user_id=user_id,
                    purchase_id=purchase.id,
                    stripe_refund_id=refund.id,
                    status=status,
                    created_at=now,
                )
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Refund {refund.id} issued but not recorded for purchase {purchase.id}: {str(e)}"
            )
            raise InternalError("failed to record refund")
        
        logger.info(f"Refund {refund.id} ({status}) recorded for purchase {purchase.id}")
