"""
Purchase, refund request and payment event queries
"""
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from examprep.models import PaymentEvent, Purchase, RefundRequest


class PurchaseRepository:
    """Persistence for purchases and their refund requests"""

    def __init__(self, db: Session):
        self.db = db

    def get_for_user(self, purchase_id: UUID, user_id: UUID) -> Optional[Purchase]:
        return (
            self.db.query(Purchase)
            .filter(Purchase.id == purchase_id, Purchase.user_id == user_id)
            .first()
        )

    def get_by_session_id(self, session_id: str) -> Optional[Purchase]:
        return self.db.query(Purchase).filter(Purchase.stripe_session_id == session_id).first()

    def find_active(self, user_id: UUID, now: datetime) -> Optional[Purchase]:
        """Most recent purchase that is neither refunded nor expired"""
        return (
            self.db.query(Purchase)
            .filter(
                Purchase.user_id == user_id,
                Purchase.refunded_at.is_(None),
                Purchase.access_expires_at > now,
            )
            .order_by(Purchase.purchased_at.desc())
            .first()
        )

    def find_latest(self, user_id: UUID) -> Optional[Purchase]:
        """Most recent purchase regardless of refund or expiry"""
        return (
            self.db.query(Purchase)
            .filter(Purchase.user_id == user_id)
            .order_by(Purchase.purchased_at.desc())
            .first()
        )

    def add(self, purchase: Purchase) -> Purchase:
        self.db.add(purchase)
        self.db.flush()
        return purchase

    def mark_refunded_by_charge(self, charge_id: str, now: datetime) -> int:
        """Stamp refunded_at on unrefunded purchases for a charge; returns rows updated"""
        return (
            self.db.query(Purchase)
            .filter(Purchase.stripe_charge_id == charge_id, Purchase.refunded_at.is_(None))
            .update({Purchase.refunded_at: now}, synchronize_session="fetch")
        )

    def count_completed_refunds(self, purchase_id: UUID) -> int:
        return (
            self.db.query(RefundRequest)
            .filter(
                RefundRequest.purchase_id == purchase_id,
                RefundRequest.status == RefundRequest.STATUS_COMPLETED,
            )
            .count()
        )

    def add_refund_request(self, refund_request: RefundRequest) -> RefundRequest:
        self.db.add(refund_request)
        self.db.flush()
        return refund_request


class PaymentEventRepository:
    """Idempotency ledger for gateway webhooks"""

    def __init__(self, db: Session):
        self.db = db

    def exists(self, gateway: str, external_event_id: str) -> bool:
        row = (
            self.db.query(PaymentEvent.id)
            .filter(
                PaymentEvent.gateway == gateway,
                PaymentEvent.external_event_id == external_event_id,
            )
            .first()
        )
        return row is not None

    def record(
        self,
        gateway: str,
        external_event_id: str,
        event_type: str,
        payload: Dict[str, Any],
    ) -> PaymentEvent:
        """
        Stage a ledger row; the (gateway, external_event_id) unique constraint
        raises IntegrityError on flush when a concurrent delivery won the race
        """
        event = PaymentEvent(
            gateway=gateway,
            external_event_id=external_event_id,
            type=event_type,
            payload=payload,
        )
        self.db.add(event)
        self.db.flush()
        return event
