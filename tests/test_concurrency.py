"""Webhook and return redirect materializing the same payment at once.

Runs against a file-backed SQLite database so each thread gets its own
connection, its own app context and its own session.

Covers:
- Both attempts pass the existing-registrations check before either claims
- The unique PaymentMaterialization row lets exactly one of them write
- One set of registrations and one email, whichever side wins
"""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from werkzeug.security import generate_password_hash

from archalley import create_app
from archalley.config import TestConfig, config_by_name
from archalley.extensions import db
from archalley.models.cart import RegistrationCart, RegistrationCartItem
from archalley.models.competition import Competition, CompetitionRegistrationType
from archalley.models.payment import CompetitionPayment, PaymentMaterialization
from archalley.models.registration import CompetitionRegistration
from archalley.models.user import User
from archalley.services import payment_service, registration_service
from archalley.services.payhere_service import parse_notification

WAIT_SECONDS = 10


@pytest.fixture
def file_app(tmp_path, monkeypatch):
    """A second app bound to an on-disk SQLite database."""

    class FileDatabaseConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'payments.db'}"

    monkeypatch.setitem(config_by_name, "file_database", FileDatabaseConfig)
    app = create_app("file_database")
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def _seed_pending_payment(app, order_id):
    """Two-entry ACTIVE cart and a PENDING card payment. Returns the payment id."""
    now = datetime.now(timezone.utc)
    with app.app_context():
        user = User(
            email="participant@example.com",
            password_hash=generate_password_hash("participant123"),
            full_name="Nimal Perera",
        )
        competition = Competition(
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
        db.session.add_all([user, competition])
        db.session.flush()

        individual = CompetitionRegistrationType(
            competition_id=competition.id, type="INDIVIDUAL", name="Individual Entry",
            fee=5000, max_members=1, display_order=0,
        )
        team = CompetitionRegistrationType(
            competition_id=competition.id, type="TEAM", name="Team Entry",
            fee=8000, max_members=4, display_order=1,
        )
        cart = RegistrationCart(
            user_id=user.id, status="ACTIVE", expires_at=now + timedelta(minutes=30),
        )
        db.session.add_all([individual, team, cart])
        db.session.flush()

        items = [
            RegistrationCartItem(
                cart_id=cart.id,
                competition_id=competition.id,
                registration_type_id=registration_type.id,
                country="Sri Lanka",
                participant_type=registration_type.type,
                members=[{"name": "Nimal Perera", "email": "nimal@example.com"}],
                unit_price=registration_type.fee,
                quantity=1,
                subtotal=registration_type.fee,
                agreed_to_terms=True,
                agreed_to_website_terms=True,
                agreed_to_privacy_policy=True,
                agreed_to_refund_policy=True,
            )
            for registration_type in (individual, team)
        ]
        db.session.add_all(items)
        db.session.flush()

        payment = CompetitionPayment(
            order_id=order_id,
            user_id=user.id,
            competition_id=competition.id,
            amount=13000,
            currency="LKR",
            merchant_id="1211149",
            status="PENDING",
            items=[],
            customer_details={"firstName": "Nimal", "lastName": "Perera",
                              "email": "nimal@example.com"},
            metadata_={"cartId": cart.id, "itemIds": [item.id for item in items]},
        )
        db.session.add(payment)
        db.session.commit()
        return payment.id


class TestConcurrentMaterialization:

    @patch("archalley.services.notification_service.send_email")
    def test_webhook_and_return_fallback_race(self, mock_send, file_app, notify_payload):
        payment_id = _seed_pending_payment(file_app, "ORDER123")
        notify_data = parse_notification(notify_payload("ORDER123", 13000))

        fallback_checked = threading.Event()
        webhook_done = threading.Event()
        errors = []
        real_lookup = registration_service.get_payment_registrations

        def lookup(payment_id):
            registrations = real_lookup(payment_id)
            if threading.current_thread().name == "return" and not fallback_checked.is_set():
                # Hold the fallback between its check and its claim
                fallback_checked.set()
                webhook_done.wait(WAIT_SECONDS)
            return registrations

        def run(target, *args):
            with file_app.app_context():
                try:
                    target(*args)
                except Exception as e:
                    errors.append(e)

        returning = threading.Thread(
            name="return", target=run, args=(payment_service.reconcile_return, "ORDER123"),
        )
        notifying = threading.Thread(
            name="notify", target=run, args=(payment_service.process_notification, notify_data),
        )

        with patch.object(registration_service, "get_payment_registrations", side_effect=lookup):
            returning.start()
            assert fallback_checked.wait(WAIT_SECONDS)
            notifying.start()
            notifying.join(WAIT_SECONDS)
            webhook_done.set()
            returning.join(WAIT_SECONDS)

        assert not notifying.is_alive() and not returning.is_alive()
        assert errors == []
        with file_app.app_context():
            assert CompetitionRegistration.query.filter_by(payment_id=payment_id).count() == 2
            markers = PaymentMaterialization.query.filter_by(payment_id=payment_id).all()
            assert [marker.source for marker in markers] == ["notify"]
            assert db.session.get(CompetitionPayment, payment_id).status == "COMPLETED"
        # Two registrations -> one consolidated email, sent once
        assert mock_send.call_count == 1
