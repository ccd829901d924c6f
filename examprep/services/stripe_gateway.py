"""
Stripe implementation of the payment gateway
"""
import stripe
from examprep.config import settings
from examprep.services.payment_gateway import (
    GatewayCheckoutSession,
    GatewayPrice,
    GatewayProduct,
    GatewayRefund,
    PaymentGateway,
    PaymentGatewayError,
    WebhookVerificationError,
)
from contextlib import contextmanager
import json
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Configure Stripe API
stripe.api_key = settings.STRIPE_SECRET_KEY


def _object_id(value: Any) -> Optional[str]:
    """Id of a Stripe reference that may be a bare id or an expanded object"""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return getattr(value, "id", None)


@contextmanager
def _gateway_call(action: str):
    """Translate Stripe errors into PaymentGatewayError"""
    try:
        yield
    except stripe.StripeError as e:
        message = e.user_message or str(e) or f"Stripe request failed: {action}"
        logger.error(f"Stripe {action} failed: {str(e)}")
        raise PaymentGatewayError(message) from e


class StripeGateway(PaymentGateway):
    """Thin adapter over the Stripe SDK"""
    
    def __init__(self, locale: str = "auto"):
        self.locale = locale
    
    def retrieve_product(self, product_id: str) -> GatewayProduct:
        with _gateway_call("product retrieve"):
            product = stripe.Product.retrieve(product_id)
        return GatewayProduct(
            id=product.id,
            name=product.name,
            description=getattr(product, "description", None),
        )
    
    def list_active_prices(self, product_id: str) -> List[GatewayPrice]:
        with _gateway_call("price list"):
            prices = stripe.Price.list(product=product_id, active=True, limit=10)
        return [
            GatewayPrice(id=p.id, unit_amount=p.unit_amount, currency=p.currency)
            for p in prices.data
        ]
    
    def create_customer(self, email: str, phone: str, metadata: Dict[str, str]) -> str:
        with _gateway_call("customer create"):
            customer = stripe.Customer.create(email=email, phone=phone, metadata=metadata)
        logger.info(f"Stripe customer created: {customer.id}")
        return customer.id
    
    def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        client_reference_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> GatewayCheckoutSession:
        with _gateway_call("checkout session create"):
            session = stripe.checkout.Session.create(
                mode="payment",
                customer=customer_id,
                client_reference_id=client_reference_id,
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=success_url,
                cancel_url=cancel_url,
                locale=self.locale,
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
            )
        return GatewayCheckoutSession(id=session.id, url=session.url)
    
    def construct_event(self, payload: bytes, signature: str, secret: str) -> Dict[str, Any]:
        """
        Verify the Stripe-Signature header and decode the event as a plain dict
        """
        if hasattr(payload, "decode"):
            payload = payload.decode("utf-8")
        
        try:
            stripe.WebhookSignature.verify_header(
                payload, signature, secret, tolerance=stripe.Webhook.DEFAULT_TOLERANCE
            )
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationError(str(e)) from e
        
        try:
            return json.loads(payload)
        except ValueError as e:
            raise WebhookVerificationError(f"Invalid payload: {str(e)}") from e
    
    def retrieve_charge_id(self, payment_intent_id: str) -> Optional[str]:
        with _gateway_call("payment intent retrieve"):
            payment_intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        return _object_id(payment_intent.latest_charge)
    
    def create_refund(self, charge_id: str) -> GatewayRefund:
        with _gateway_call("refund create"):
            refund = stripe.Refund.create(charge=charge_id, reason="requested_by_customer")
        logger.info(f"Stripe refund created: {refund.id} ({refund.status})")
        return GatewayRefund(id=refund.id, status=refund.status)


# Global instance
stripe_gateway = StripeGateway(locale=settings.CHECKOUT_LOCALE)
