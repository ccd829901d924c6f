import json
import os
import random
from datetime import datetime, timedelta

import pytest

# Settings are read at import time, so the environment must be in place first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("STRIPE_PRODUCT_ID", "prod_test")
os.environ.setdefault("REDIS_URL", "redis://localhost:6399/0")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from examprep.api.deps import get_billing_service, get_exam_service
from examprep.database import Base, get_db
from examprep.main import app
from examprep.models import Option, Purchase, Question, Skill, User
from examprep.services.billing_service import BillingService
from examprep.services.exam_service import ExamService
from examprep.services.payment_gateway import (
    GatewayCheckoutSession,
    GatewayPrice,
    GatewayProduct,
    GatewayRefund,
    PaymentGateway,
    PaymentGatewayError,
    WebhookVerificationError,
)

# ============================================================================
# IN-MEMORY DATABASE FOR TESTING
# ============================================================================

# StaticPool keeps every connection on the same in-memory database
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(autouse=True)
def setup_test_db():
    """Fresh schema for every test."""
    Base.metadata.create_all(test_engine)
    yield
    Base.metadata.drop_all(test_engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


# ============================================================================
# FAKE COLLABORATORS
# ============================================================================

class FrozenClock:
    """Naive UTC clock that only moves when told to."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeCache:
    def __init__(self):
        self.store = {}

    def product_key(self, product_id):
        return f"catalog:product:{product_id}"

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ttl=None):
        self.store[key] = value
        return True


class FakeGateway(PaymentGateway):
    """In-process payment gateway recording every call."""

    VALID_SIGNATURE = "t=1,v1=valid"

    def __init__(self):
        self.product = GatewayProduct(id="prod_test", name="Full Access", description="One year of practice exams")
        self.prices = [GatewayPrice(id="price_test", unit_amount=19900, currency="brl")]
        self.customers = []
        self.sessions = []
        self.refunds = []
        self.charges = {}
        self.session_url = "https://checkout.example.com/c/pay/cs_test"
        self.refund_status = "succeeded"
        self.error = None
        self.product_calls = 0

    def _maybe_fail(self):
        if self.error:
            raise PaymentGatewayError(self.error)

    def retrieve_product(self, product_id):
        self._maybe_fail()
        self.product_calls += 1
        return self.product

    def list_active_prices(self, product_id):
        self._maybe_fail()
        return list(self.prices)

    def create_customer(self, email, phone, metadata):
        self._maybe_fail()
        customer_id = f"cus_{len(self.customers) + 1}"
        self.customers.append({"id": customer_id, "email": email, "phone": phone, "metadata": metadata})
        return customer_id

    def create_checkout_session(self, customer_id, price_id, client_reference_id, success_url, cancel_url, metadata):
        self._maybe_fail()
        session = {
            "id": f"cs_{len(self.sessions) + 1}",
            "customer_id": customer_id,
            "price_id": price_id,
            "client_reference_id": client_reference_id,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        }
        self.sessions.append(session)
        return GatewayCheckoutSession(id=session["id"], url=self.session_url)

    def construct_event(self, payload, signature, secret):
        if signature != self.VALID_SIGNATURE:
            raise WebhookVerificationError("No signatures found matching the expected signature for payload")
        return json.loads(payload)

    def retrieve_charge_id(self, payment_intent_id):
        if payment_intent_id not in self.charges:
            raise PaymentGatewayError(f"No such payment_intent: '{payment_intent_id}'")
        return self.charges[payment_intent_id]

    def create_refund(self, charge_id):
        self._maybe_fail()
        refund = GatewayRefund(id=f"re_{len(self.refunds) + 1}", status=self.refund_status)
        self.refunds.append({"id": refund.id, "charge_id": charge_id})
        return refund


def checkout_completed_event(event_id, user_id, session_id="cs_live_1", payment_intent="pi_1", customer="cus_1"):
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "mode": "payment",
                "client_reference_id": str(user_id) if user_id else None,
                "metadata": {},
                "customer": customer,
                "payment_intent": payment_intent,
            }
        },
    }


@pytest.fixture
def clock():
    return FrozenClock(datetime(2025, 3, 10, 12, 0, 0))


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def cache():
    return FakeCache()


@pytest.fixture
def billing(db, gateway, cache, clock):
    return BillingService(
        db,
        gateway,
        cache=cache,
        clock=clock,
        product_id="prod_test",
        webhook_secret="whsec_test",
    )


@pytest.fixture
def exam_service(db, clock):
    return ExamService(db, rng=random.Random(1234), clock=clock)


# ============================================================================
# ENTITY FIXTURES
# ============================================================================

def _add_user(db, email, phone="+5511999990000", role=User.ROLE_STUDENT):
    user = User(email=email, phone=phone, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def student(db):
    return _add_user(db, "alice@example.com")


@pytest.fixture
def other_student(db):
    return _add_user(db, "bob@example.com")


@pytest.fixture
def admin(db):
    return _add_user(db, "admin@example.com", role=User.ROLE_ADMIN)


@pytest.fixture
def make_question(db):
    """Factory: question with `option_count` options, the one at `correct_index` correct."""

    def _make(skill, statement="Which option is right?", option_count=4, correct_index=0):
        question = Question(
            skill_id=skill.id,
            statement=statement,
            explanation_text=f"Explanation for: {statement}",
        )
        db.add(question)
        db.flush()
        base = datetime(2025, 1, 1)
        for i in range(option_count):
            db.add(Option(
                question_id=question.id,
                text=f"Option {i + 1}",
                is_correct=(i == correct_index),
                created_at=base + timedelta(seconds=i),
            ))
        db.commit()
        db.refresh(question)
        return question

    return _make


@pytest.fixture
def skills(db):
    pharmacology = Skill(name="Pharmacology")
    anatomy = Skill(name="Anatomy")
    db.add_all([pharmacology, anatomy])
    db.commit()
    return {"anatomy": anatomy, "pharmacology": pharmacology}


@pytest.fixture
def question_bank(skills, make_question):
    """Three anatomy and two pharmacology questions."""
    anatomy = [make_question(skills["anatomy"], statement=f"Anatomy {i}") for i in range(3)]
    pharmacology = [make_question(skills["pharmacology"], statement=f"Pharmacology {i}") for i in range(2)]
    return {"anatomy": anatomy, "pharmacology": pharmacology}


@pytest.fixture
def make_purchase(db):
    def _make(user, purchased_at, charge_id="ch_1", refunded_at=None, session_id=None):
        purchase = Purchase(
            user_id=user.id,
            stripe_session_id=session_id,
            stripe_payment_intent_id="pi_1",
            stripe_charge_id=charge_id,
            purchased_at=purchased_at,
            access_expires_at=purchased_at + BillingService.ACCESS_DURATION,
            refunded_at=refunded_at,
        )
        db.add(purchase)
        db.commit()
        db.refresh(purchase)
        return purchase

    return _make


# ============================================================================
# FASTAPI APP & TEST CLIENT
# ============================================================================

@pytest.fixture
def client(gateway, cache, clock):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    def override_get_billing_service(db: Session = Depends(get_db)):
        return BillingService(
            db,
            gateway,
            cache=cache,
            clock=clock,
            product_id="prod_test",
            webhook_secret="whsec_test",
        )

    def override_get_exam_service(db: Session = Depends(get_db)):
        return ExamService(db, rng=random.Random(99), clock=clock)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_billing_service] = override_get_billing_service
    app.dependency_overrides[get_exam_service] = override_get_exam_service

    yield TestClient(app)

    app.dependency_overrides.clear()


def auth(user):
    return {"X-User-Id": str(user.id)}
