"""
Billing reconciliation: catalog, checkout, webhooks, access and refunds
"""
import json
import uuid
from datetime import timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from examprep.errors import BadRequestError, InternalError
from examprep.models import PaymentEvent, Purchase, RefundRequest, User
from tests.conftest import FakeGateway, checkout_completed_event


def _deliver(billing, event, signature=FakeGateway.VALID_SIGNATURE):
    billing.process_webhook_event(json.dumps(event).encode("utf-8"), signature)


# ============================================================================
# CATALOG
# ============================================================================

def test_product_with_first_active_price(billing):
    result = billing.get_product_with_price()

    assert result == {
        "product": {"id": "prod_test", "name": "Full Access", "description": "One year of practice exams"},
        "price": {"id": "price_test", "unit_amount": 19900, "currency": "brl"},
    }


def test_product_lookup_is_cached(billing, gateway, cache):
    billing.get_product_with_price()
    billing.get_product_with_price()

    assert gateway.product_calls == 1
    assert cache.product_key("prod_test") in cache.store


def test_product_without_active_price_fails(billing, gateway):
    gateway.prices = []

    with pytest.raises(BadRequestError):
        billing.get_product_with_price()


def test_product_gateway_error_is_bad_request(billing, gateway):
    gateway.error = "No such product: 'prod_test'"

    with pytest.raises(BadRequestError) as exc_info:
        billing.get_product_with_price()
    assert "No such product" in exc_info.value.message


# ============================================================================
# CHECKOUT
# ============================================================================

@pytest.mark.parametrize("phone", [None, "", "   "])
def test_checkout_requires_phone(billing, student, gateway, phone):
    with pytest.raises(BadRequestError):
        billing.create_checkout_session(student.id, student.email, phone, "https://s", "https://c")

    assert gateway.customers == []


def test_checkout_creates_customer_once(db, billing, student, gateway):
    first = billing.create_checkout_session(student.id, student.email, "+5511988887777", "https://s", "https://c")
    second = billing.create_checkout_session(student.id, student.email, "+5511988887777", "https://s", "https://c")

    assert first == {"url": gateway.session_url}
    assert second == first
    assert len(gateway.customers) == 1
    assert gateway.customers[0]["metadata"] == {"userId": str(student.id)}

    db.expire_all()
    assert db.query(User).filter(User.id == student.id).one().stripe_customer_id == "cus_1"
    assert [s["customer_id"] for s in gateway.sessions] == ["cus_1", "cus_1"]


def test_checkout_stores_phone_for_existing_customer(db, billing, student, gateway):
    student.phone = None
    student.stripe_customer_id = "cus_existing"
    db.commit()

    billing.create_checkout_session(student.id, student.email, " +5511988887777 ", "https://s", "https://c")

    db.expire_all()
    stored = db.query(User).filter(User.id == student.id).one()
    assert stored.phone == "+5511988887777"
    assert gateway.customers == []
    assert gateway.sessions[0]["customer_id"] == "cus_existing"


def test_checkout_session_is_stamped_with_user(billing, student, gateway):
    billing.create_checkout_session(student.id, student.email, "+5511988887777", "https://s", "https://c")

    session = gateway.sessions[0]
    assert session["client_reference_id"] == str(student.id)
    assert session["metadata"] == {"userId": str(student.id)}
    assert session["price_id"] == "price_test"
    assert session["success_url"] == "https://s"
    assert session["cancel_url"] == "https://c"


def test_checkout_for_unknown_user_fails(billing):
    with pytest.raises(BadRequestError):
        billing.create_checkout_session(uuid.uuid4(), "ghost@example.com", "+5511988887777", "https://s", "https://c")


def test_checkout_gateway_error_passes_message_through(billing, student, gateway):
    gateway.error = "não foi possível iniciar o checkout"

    with pytest.raises(BadRequestError) as exc_info:
        billing.create_checkout_session(student.id, student.email, "+5511988887777", "https://s", "https://c")
    assert exc_info.value.message == "não foi possível iniciar o checkout"


def test_checkout_without_url_fails(billing, student, gateway):
    gateway.session_url = None

    with pytest.raises(BadRequestError):
        billing.create_checkout_session(student.id, student.email, "+5511988887777", "https://s", "https://c")


def test_checkout_unexpected_failure_is_internal(billing, student, gateway, monkeypatch):
    def boom(**kwargs):
        raise RuntimeError("connection reset by peer")

    monkeypatch.setattr(gateway, "create_checkout_session", boom)

    with pytest.raises(InternalError) as exc_info:
        billing.create_checkout_session(student.id, student.email, "+5511988887777", "https://s", "https://c")
    assert "connection reset" not in exc_info.value.message


# ============================================================================
# WEBHOOKS
# ============================================================================

def test_bad_signature_is_rejected(db, billing, student):
    with pytest.raises(BadRequestError):
        _deliver(billing, checkout_completed_event("evt_1", student.id), signature="t=1,v1=forged")

    assert db.query(PaymentEvent).count() == 0
    assert db.query(Purchase).count() == 0


def test_checkout_completed_creates_purchase(db, billing, student, gateway, clock):
    gateway.charges["pi_1"] = "ch_1"

    _deliver(billing, checkout_completed_event("evt_1", student.id, customer="cus_from_webhook"))

    purchase = db.query(Purchase).one()
    assert purchase.user_id == student.id
    assert purchase.stripe_session_id == "cs_live_1"
    assert purchase.stripe_payment_intent_id == "pi_1"
    assert purchase.stripe_charge_id == "ch_1"
    assert purchase.purchased_at == clock.now
    assert purchase.access_expires_at == clock.now + timedelta(days=365)
    assert purchase.refunded_at is None

    db.expire_all()
    assert db.query(User).filter(User.id == student.id).one().stripe_customer_id == "cus_from_webhook"


def test_user_id_falls_back_to_metadata(db, billing, student, gateway):
    gateway.charges["pi_1"] = "ch_1"
    event = checkout_completed_event("evt_1", None)
    event["data"]["object"]["metadata"] = {"userId": str(student.id)}

    _deliver(billing, event)

    assert db.query(Purchase).one().user_id == student.id


def test_duplicate_event_creates_one_purchase(db, billing, student, gateway):
    gateway.charges["pi_1"] = "ch_1"
    event = checkout_completed_event("evt_1", student.id)

    _deliver(billing, event)
    _deliver(billing, event)

    assert db.query(Purchase).count() == 1
    assert db.query(PaymentEvent).count() == 1


def test_concurrently_recorded_event_is_dropped(db, billing, student, gateway, monkeypatch):
    gateway.charges["pi_1"] = "ch_1"
    event = checkout_completed_event("evt_1", student.id)
    _deliver(billing, event)

    # Second delivery passes the probe, as if both raced past it
    monkeypatch.setattr(billing.payment_events, "exists", lambda gateway_name, event_id: False)
    _deliver(billing, event)

    assert db.query(Purchase).count() == 1
    assert db.query(PaymentEvent).count() == 1


def test_new_event_for_known_session_does_not_duplicate(db, billing, student, gateway):
    gateway.charges["pi_1"] = "ch_1"

    _deliver(billing, checkout_completed_event("evt_1", student.id))
    _deliver(billing, checkout_completed_event("evt_2", student.id))

    assert db.query(Purchase).count() == 1
    assert db.query(PaymentEvent).count() == 2


def test_event_without_user_is_recorded_and_ignored(db, billing):
    _deliver(billing, checkout_completed_event("evt_1", None))

    assert db.query(PaymentEvent).count() == 1
    assert db.query(Purchase).count() == 0


def test_event_for_unknown_user_is_ignored(db, billing):
    _deliver(billing, checkout_completed_event("evt_1", uuid.uuid4()))

    assert db.query(Purchase).count() == 0


def test_non_payment_session_is_ignored(db, billing, student):
    event = checkout_completed_event("evt_1", student.id)
    event["data"]["object"]["mode"] = "subscription"

    _deliver(billing, event)

    assert db.query(Purchase).count() == 0


def test_unresolvable_charge_still_grants_access(db, billing, student):
    _deliver(billing, checkout_completed_event("evt_1", student.id, payment_intent="pi_missing"))

    purchase = db.query(Purchase).one()
    assert purchase.stripe_charge_id is None
    assert billing.get_access(student.id)["has_access"] is True


def test_unhandled_event_type_is_recorded(db, billing):
    _deliver(billing, {"id": "evt_1", "type": "customer.updated", "data": {"object": {"id": "cus_1"}}})

    event = db.query(PaymentEvent).one()
    assert event.gateway == "stripe"
    assert event.external_event_id == "evt_1"
    assert event.type == "customer.updated"
    assert event.payload["data"]["object"]["id"] == "cus_1"


def test_charge_refunded_marks_purchase(db, billing, student, make_purchase, clock):
    purchase = make_purchase(student, clock.now - timedelta(days=1), charge_id="ch_42")

    _deliver(billing, {"id": "evt_9", "type": "charge.refunded", "data": {"object": {"id": "ch_42"}}})

    db.expire_all()
    assert db.query(Purchase).filter(Purchase.id == purchase.id).one().refunded_at == clock.now
    assert billing.get_access(student.id)["has_access"] is False


# ============================================================================
# ACCESS
# ============================================================================

def test_access_without_purchases(billing, student):
    assert billing.get_access(student.id) == {
        "has_access": False,
        "status": "inactive",
        "days_left": None,
        "access_expires_at": None,
        "can_request_refund": False,
        "last_purchase_id": None,
    }


def test_fresh_purchase_grants_access(billing, student, make_purchase, clock):
    purchase = make_purchase(student, clock.now)

    access = billing.get_access(student.id)

    assert access["has_access"] is True
    assert access["status"] == "active"
    assert access["days_left"] == 365
    assert access["can_request_refund"] is True
    assert access["last_purchase_id"] == purchase.id
    assert billing.has_active_access(student.id) is True


def test_days_left_rounds_up(billing, student, make_purchase, clock):
    make_purchase(student, clock.now - timedelta(hours=12))

    assert billing.get_access(student.id)["days_left"] == 365


def test_refund_option_closes_after_window(billing, student, make_purchase, clock):
    make_purchase(student, clock.now - timedelta(days=8))

    access = billing.get_access(student.id)

    assert access["has_access"] is True
    assert access["days_left"] == 357
    assert access["can_request_refund"] is False


def test_expired_purchase_is_inactive_without_refund(billing, student, make_purchase, clock):
    purchase = make_purchase(student, clock.now - timedelta(days=400))

    access = billing.get_access(student.id)

    assert access["has_access"] is False
    assert access["status"] == "inactive"
    assert access["can_request_refund"] is False
    assert access["last_purchase_id"] == purchase.id
    assert billing.has_active_access(student.id) is False


def test_refunded_purchase_is_inactive(billing, student, make_purchase, clock):
    make_purchase(student, clock.now - timedelta(days=2), refunded_at=clock.now - timedelta(days=1))

    access = billing.get_access(student.id)

    assert access["has_access"] is False
    assert access["can_request_refund"] is False


def test_active_purchase_wins_over_refunded_one(billing, student, make_purchase, clock):
    make_purchase(student, clock.now - timedelta(days=1), refunded_at=clock.now, session_id="cs_old")
    active = make_purchase(student, clock.now - timedelta(days=3), charge_id="ch_2", session_id="cs_new")

    access = billing.get_access(student.id)

    assert access["has_access"] is True
    assert access["last_purchase_id"] == active.id


# ============================================================================
# REFUNDS
# ============================================================================

def test_refund_within_window_succeeds(db, billing, student, gateway, make_purchase, clock):
    purchase = make_purchase(student, clock.now - timedelta(days=6), charge_id="ch_9")

    billing.request_refund(student.id, purchase.id)

    assert gateway.refunds == [{"id": "re_1", "charge_id": "ch_9"}]
    db.expire_all()
    assert db.query(Purchase).filter(Purchase.id == purchase.id).one().refunded_at == clock.now
    refund = db.query(RefundRequest).one()
    assert refund.status == RefundRequest.STATUS_COMPLETED
    assert refund.stripe_refund_id == "re_1"
    assert refund.user_id == student.id


def test_refund_on_last_day_of_window_succeeds(billing, student, make_purchase, clock):
    purchase = make_purchase(student, clock.now - timedelta(days=7))

    billing.request_refund(student.id, purchase.id)


def test_refund_after_window_fails(db, billing, student, gateway, make_purchase, clock):
    purchase = make_purchase(student, clock.now - timedelta(days=8))

    with pytest.raises(BadRequestError):
        billing.request_refund(student.id, purchase.id)

    assert gateway.refunds == []
    assert db.query(RefundRequest).count() == 0


def test_refund_pending_when_gateway_not_settled(db, billing, student, gateway, make_purchase, clock):
    gateway.refund_status = "pending"
    purchase = make_purchase(student, clock.now - timedelta(days=1))

    billing.request_refund(student.id, purchase.id)

    assert db.query(RefundRequest).one().status == RefundRequest.STATUS_PENDING


def test_refund_twice_fails(billing, student, gateway, make_purchase, clock):
    purchase = make_purchase(student, clock.now - timedelta(days=1))
    billing.request_refund(student.id, purchase.id)

    with pytest.raises(BadRequestError):
        billing.request_refund(student.id, purchase.id)
    assert len(gateway.refunds) == 1


def test_refund_of_foreign_purchase_fails(billing, student, other_student, make_purchase, clock):
    purchase = make_purchase(student, clock.now - timedelta(days=1))

    with pytest.raises(BadRequestError):
        billing.request_refund(other_student.id, purchase.id)


def test_refund_without_charge_fails(billing, student, gateway, make_purchase, clock):
    purchase = make_purchase(student, clock.now - timedelta(days=1), charge_id=None)

    with pytest.raises(BadRequestError):
        billing.request_refund(student.id, purchase.id)
    assert gateway.refunds == []


def test_refund_gateway_error_leaves_purchase_untouched(db, billing, student, gateway, make_purchase, clock):
    gateway.error = "Charge ch_1 has already been refunded."
    purchase = make_purchase(student, clock.now - timedelta(days=1))

    with pytest.raises(BadRequestError) as exc_info:
        billing.request_refund(student.id, purchase.id)

    assert exc_info.value.message == "Charge ch_1 has already been refunded."
    db.expire_all()
    assert db.query(Purchase).filter(Purchase.id == purchase.id).one().refunded_at is None


def test_failed_refund_write_rolls_back_purchase(db, billing, student, gateway, make_purchase, clock, monkeypatch):
    purchase = make_purchase(student, clock.now - timedelta(days=1))

    def fail(refund_request):
        raise SQLAlchemyError("database is locked")

    monkeypatch.setattr(billing.purchases, "add_refund_request", fail)

    with pytest.raises(InternalError):
        billing.request_refund(student.id, purchase.id)

    db.expire_all()
    assert db.query(Purchase).filter(Purchase.id == purchase.id).one().refunded_at is None
    assert db.query(RefundRequest).count() == 0
