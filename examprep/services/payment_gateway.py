"""
Payment gateway interface consumed by the billing service

The billing service only talks to this capability set, so tests can swap in
an in-process fake for the Stripe adapter.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class PaymentGatewayError(Exception):
    """Error reported by the payment gateway (message is user-presentable)"""


class WebhookVerificationError(PaymentGatewayError):
    """Webhook payload or signature could not be verified"""


@dataclass
class GatewayProduct:
    id: str
    name: str
    description: Optional[str] = None


@dataclass
class GatewayPrice:
    id: str
    unit_amount: Optional[int]
    currency: str


@dataclass
class GatewayCheckoutSession:
    id: str
    url: Optional[str]


@dataclass
class GatewayRefund:
    id: str
    status: Optional[str]


class PaymentGateway(ABC):
    """Products, prices, customers, checkout, payment intents, refunds, webhooks"""

    @abstractmethod
    def retrieve_product(self, product_id: str) -> GatewayProduct:
        pass

    @abstractmethod
    def list_active_prices(self, product_id: str) -> List[GatewayPrice]:
        pass

    @abstractmethod
    def create_customer(self, email: str, phone: str, metadata: Dict[str, str]) -> str:
        """Create a customer and return its gateway id"""

    @abstractmethod
    def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        client_reference_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> GatewayCheckoutSession:
        pass

    @abstractmethod
    def construct_event(self, payload: bytes, signature: str, secret: str) -> Dict[str, Any]:
        """Verify a webhook signature and decode the event"""

    @abstractmethod
    def retrieve_charge_id(self, payment_intent_id: str) -> Optional[str]:
        """Latest charge id of a payment intent"""

    @abstractmethod
    def create_refund(self, charge_id: str) -> GatewayRefund:
        pass
