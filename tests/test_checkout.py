"""Tests for the checkout API.

Covers:
- Order id format and sequencing
- Card checkout (PENDING payment with cart reference, PayHere form data)
- Bank transfer checkout (PENDING registrations, pending email)
- Empty / expired carts and incomplete customer info
- Full card flow: checkout -> notify -> registrations
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from archalley.extensions import db
from archalley.models.cart import RegistrationCart
from archalley.models.payment import CompetitionPayment
from archalley.models.registration import CompetitionRegistration
from archalley.services.checkout_service import generate_order_id

CHECKOUT_URL = "/api/competitions/checkout"

CUSTOMER = {
    "firstName": "Nimal",
    "lastName": "Perera",
    "email": "nimal@example.com",
    "phone": "0771234567",
    "country": "Sri Lanka",
}


def _add_entry(client, seed_data):
    return client.post("/api/competitions/cart/add", json={
        "competitionId": seed_data["design_id"],
        "registrationTypeId": seed_data["individual_type_id"],
        "country": "Sri Lanka",
        "members": [{"name": "Nimal Perera", "email": "nimal@example.com"}],
        "agreements": {
            "agreedToTerms": True,
            "agreedToWebsiteTerms": True,
            "agreedToPrivacyPolicy": True,
            "agreedToRefundPolicy": True,
        },
    })


class TestOrderIds:

    def test_format(self):
        assert generate_order_id(123, year=2025) == "ORDER-AC2025-00123"

    def test_sequence_increments(self, client, app, seed_data, login_participant):
        year = datetime.now(timezone.utc).year

        _add_entry(client, seed_data)
        first = client.post(CHECKOUT_URL, json={"customerInfo": CUSTOMER}).get_json()
        _add_entry(client, seed_data)
        second = client.post(CHECKOUT_URL, json={"customerInfo": CUSTOMER}).get_json()

        assert first["orderId"] == f"ORDER-AC{year}-00001"
        assert second["orderId"] == f"ORDER-AC{year}-00002"


class TestCardCheckout:

    def test_creates_pending_payment(self, client, app, seed_data, login_participant):
        _add_entry(client, seed_data)

        resp = client.post(CHECKOUT_URL, json={"customerInfo": CUSTOMER})

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["success"] is True
        assert data["paymentUrl"] == "https://sandbox.payhere.lk/pay/checkout"
        assert data["paymentData"]["amount"] == "5000.00"
        assert data["paymentData"]["order_id"] == data["orderId"]

        with app.app_context():
            payment = CompetitionPayment.query.filter_by(order_id=data["orderId"]).one()
            assert payment.status == "PENDING"
            assert payment.amount == 5000
            assert payment.payment_method is None
            cart = RegistrationCart.query.filter_by(user_id=seed_data["user_id"]).one()
            assert payment.metadata_["cartId"] == cart.id
            assert payment.metadata_["itemIds"] == [item.id for item in cart.items]
            # The cart stays open until the payment is confirmed
            assert cart.status == "ACTIVE"

    def test_empty_cart_rejected(self, client, seed_data, login_participant):
        resp = client.post(CHECKOUT_URL, json={"customerInfo": CUSTOMER})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Cart is empty"

    def test_incomplete_customer_rejected(self, client, seed_data, login_participant):
        _add_entry(client, seed_data)
        resp = client.post(CHECKOUT_URL, json={"customerInfo": {"firstName": "Nimal"}})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Complete customer information is required"

    def test_expired_cart_rejected(self, client, app, seed_data, login_participant):
        _add_entry(client, seed_data)
        cart = RegistrationCart.query.filter_by(user_id=seed_data["user_id"]).one()
        cart.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        db.session.commit()

        resp = client.post(CHECKOUT_URL, json={"customerInfo": CUSTOMER})

        assert resp.status_code == 400
        assert "expired" in resp.get_json()["error"]
        with app.app_context():
            assert CompetitionPayment.query.count() == 0

    def test_requires_login(self, client, seed_data):
        resp = client.post(CHECKOUT_URL, json={"customerInfo": CUSTOMER})
        assert resp.status_code == 401

    @patch("archalley.services.notification_service.send_email")
    def test_checkout_then_notify_confirms_registration(self, mock_send, client, app, seed_data,
                                                        login_participant, notify_payload):
        _add_entry(client, seed_data)
        order_id = client.post(CHECKOUT_URL, json={"customerInfo": CUSTOMER}).get_json()["orderId"]

        resp = client.post(
            "/api/competitions/payment/notify",
            data=notify_payload(order_id, 5000),
        )

        assert resp.status_code == 200
        with app.app_context():
            payment = CompetitionPayment.query.filter_by(order_id=order_id).one()
            assert payment.status == "COMPLETED"
            assert payment.registrations.count() == 1
            cart = RegistrationCart.query.filter_by(user_id=seed_data["user_id"]).one()
            assert cart.status == "COMPLETED"
        assert mock_send.call_count == 3


class TestBankTransferCheckout:

    @patch("archalley.services.notification_service.send_email")
    def test_creates_pending_registrations(self, mock_send, client, app,
                                           seed_data, login_participant):
        _add_entry(client, seed_data)

        resp = client.post(CHECKOUT_URL, json={
            "customerInfo": CUSTOMER,
            "paymentMethod": "bank",
            "bankSlipUrl": "https://files.example.com/slips/123.jpg",
        })

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["paymentData"] is None
        assert len(data["registrationNumber"]) == 6

        with app.app_context():
            payment = CompetitionPayment.query.filter_by(order_id=data["orderId"]).one()
            assert payment.payment_method == "BANK_TRANSFER"
            assert payment.status == "PENDING"
            assert payment.metadata_["bankSlipUrl"] == "https://files.example.com/slips/123.jpg"
            registration = CompetitionRegistration.query.filter_by(payment_id=payment.id).one()
            assert registration.status == "PENDING"
            assert registration.registration_number == data["registrationNumber"]
            cart = RegistrationCart.query.filter_by(user_id=seed_data["user_id"]).one()
            assert cart.status == "COMPLETED"

        assert mock_send.call_args.kwargs["template"] == "emails/bank_transfer_pending.html"

    def test_bank_transfer_needs_slip(self, client, seed_data, login_participant):
        _add_entry(client, seed_data)
        resp = client.post(CHECKOUT_URL, json={"customerInfo": CUSTOMER, "paymentMethod": "bank"})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Please upload your bank slip"
