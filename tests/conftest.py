"""Shared test fixtures for the competitions payment test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: admin, participant, two open competitions with entry types
- create_pending_payment: builds an ACTIVE cart + PENDING card payment
- notify_payload: signed PayHere notify form data
"""

from datetime import datetime, timedelta, timezone

import pytest
from werkzeug.security import generate_password_hash

from archalley import create_app
from archalley.extensions import db as _db
from archalley.models.cart import RegistrationCart, RegistrationCartItem
from archalley.models.competition import Competition, CompetitionRegistrationType
from archalley.models.payment import CompetitionPayment
from archalley.models.user import User
from archalley.services.payhere_service import compute_notification_signature

MERCHANT_ID = "1211149"
MERCHANT_SECRET = "test-merchant-secret"


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def seed_data(app, db_session):
    """Seed users and two competitions open for registration.

    Returns plain IDs so tests can use them across app contexts.
    """
    now = datetime.now(timezone.utc)

    admin = User(
        email="admin@archalley.local",
        password_hash=generate_password_hash("admin123"),
        full_name="Admin User",
        is_admin=True,
    )
    participant = User(
        email="participant@example.com",
        password_hash=generate_password_hash("participant123"),
        full_name="Nimal Perera",
    )
    _db.session.add_all([admin, participant])
    _db.session.flush()

    design = Competition(
        slug="design-challenge",
        title="Design Challenge",
        description="Open design competition.",
        year=now.year,
        start_date=now,
        end_date=now + timedelta(days=90),
        registration_deadline=now + timedelta(days=30),
        status="REGISTRATION_OPEN",
        registration_fee=5000,
        max_team_size=4,
    )
    kids = Competition(
        slug="kids-drawing",
        title="Kids Drawing Contest",
        description="Drawing contest for children.",
        year=now.year,
        start_date=now,
        end_date=now + timedelta(days=90),
        registration_deadline=now + timedelta(days=30),
        status="REGISTRATION_OPEN",
        registration_fee=2000,
        max_team_size=1,
    )
    _db.session.add_all([design, kids])
    _db.session.flush()

    individual = CompetitionRegistrationType(
        competition_id=design.id, type="INDIVIDUAL", name="Individual Entry",
        fee=5000, max_members=1, display_order=0,
    )
    team = CompetitionRegistrationType(
        competition_id=design.id, type="TEAM", name="Team Entry",
        fee=8000, max_members=4, display_order=1,
    )
    kids_entry = CompetitionRegistrationType(
        competition_id=kids.id, type="KIDS", name="Kids Entry",
        fee=2000, max_members=1, display_order=0,
    )
    retired = CompetitionRegistrationType(
        competition_id=design.id, type="COMPANY", name="Company Entry",
        fee=20000, max_members=10, is_active=False, display_order=2,
    )
    _db.session.add_all([individual, team, kids_entry, retired])
    _db.session.commit()

    return {
        "admin_id": admin.id,
        "user_id": participant.id,
        "design_id": design.id,
        "kids_id": kids.id,
        "individual_type_id": individual.id,
        "team_type_id": team.id,
        "kids_type_id": kids_entry.id,
        "retired_type_id": retired.id,
    }


@pytest.fixture
def create_pending_payment(seed_data):
    """Factory: ACTIVE cart with line items plus a PENDING card payment.

    entries is a list of (competition key, type key) pairs from seed_data,
    e.g. [("design_id", "individual_type_id")].
    """

    def _create(order_id="ORDER123", entries=None, payment_method=None, metadata=None):
        entries = entries or [("design_id", "individual_type_id")]

        cart = RegistrationCart(
            user_id=seed_data["user_id"],
            status="ACTIVE",
            expires_at=datetime.now(timezone.utc) + timedelta(minutes=30),
        )
        _db.session.add(cart)
        _db.session.flush()

        items = []
        for index, (competition_key, type_key) in enumerate(entries):
            registration_type = _db.session.get(CompetitionRegistrationType, seed_data[type_key])
            item = RegistrationCartItem(
                cart_id=cart.id,
                competition_id=seed_data[competition_key],
                registration_type_id=registration_type.id,
                country="Sri Lanka",
                participant_type=registration_type.type,
                members=[{"name": f"Member {index + 1}", "email": f"member{index + 1}@example.com"}],
                unit_price=registration_type.fee,
                quantity=1,
                subtotal=registration_type.fee,
                agreed_to_terms=True,
                agreed_to_website_terms=True,
                agreed_to_privacy_policy=True,
                agreed_to_refund_policy=True,
            )
            _db.session.add(item)
            items.append(item)
        _db.session.flush()

        if metadata is None:
            metadata = {"cartId": cart.id, "itemIds": [item.id for item in items]}

        payment = CompetitionPayment(
            order_id=order_id,
            user_id=seed_data["user_id"],
            competition_id=seed_data[entries[0][0]],
            amount=sum(item.subtotal for item in items),
            currency="LKR",
            merchant_id=MERCHANT_ID,
            status="PENDING",
            payment_method=payment_method,
            items=[],
            customer_details={
                "firstName": "Nimal",
                "lastName": "Perera",
                "email": "nimal@example.com",
                "country": "Sri Lanka",
            },
            metadata_=metadata,
        )
        _db.session.add(payment)
        _db.session.commit()

        return {
            "payment_id": payment.id,
            "order_id": payment.order_id,
            "cart_id": cart.id,
            "item_ids": [item.id for item in items],
            "amount": payment.amount,
        }

    return _create


def build_notify_payload(order_id, amount, status_code="2", currency="LKR",
                         merchant_id=MERCHANT_ID, secret=MERCHANT_SECRET, **extra):
    """Form data for POST /api/competitions/payment/notify, signed with secret."""
    amount = f"{float(amount):.2f}"
    payload = {
        "merchant_id": merchant_id,
        "order_id": order_id,
        "payhere_amount": amount,
        "payhere_currency": currency,
        "status_code": status_code,
        "md5sig": compute_notification_signature(
            merchant_id, order_id, amount, currency, status_code, secret
        ),
        "method": "VISA",
        "status_message": "Successfully completed the payment.",
        "payment_id": "320025071812",
        "card_holder_name": "N PERERA",
        "card_no": "************1292",
    }
    payload.update(extra)
    return payload


@pytest.fixture
def notify_payload():
    return build_notify_payload


def login(client, email, password):
    return client.post(
        "/auth/login",
        data={"email": email, "password": password},
        follow_redirects=True,
    )


@pytest.fixture
def login_participant(client, seed_data):
    return login(client, "participant@example.com", "participant123")


@pytest.fixture
def login_admin(client, seed_data):
    return login(client, "admin@archalley.local", "admin123")
