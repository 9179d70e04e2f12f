"""Tests for the cart API and cart_service.

Covers:
- Auth guard (401 JSON for anonymous users)
- Adding entries (validation, pricing, sanitization)
- Removing entries (locked while a checkout awaits payment)
- Cart expiry and the expire-carts CLI command
"""

from datetime import datetime, timedelta, timezone

from archalley.extensions import db
from archalley.models.cart import RegistrationCart, RegistrationCartItem
from archalley.models.competition import Competition
from archalley.models.payment import CompetitionPayment
from archalley.services import cart_service

ADD_URL = "/api/competitions/cart/add"


def _entry(seed_data, **overrides):
    body = {
        "competitionId": seed_data["design_id"],
        "registrationTypeId": seed_data["team_type_id"],
        "country": "Sri Lanka",
        "teamName": "Studio <b>Nine</b>",
        "members": [
            {"name": "Nimal Perera", "email": "nimal@example.com"},
            {"name": "Kamala Silva", "email": "kamala@example.com", "role": "Designer"},
        ],
        "agreements": {
            "agreedToTerms": True,
            "agreedToWebsiteTerms": True,
            "agreedToPrivacyPolicy": True,
            "agreedToRefundPolicy": True,
        },
    }
    body.update(overrides)
    return body


class TestCartAuth:

    def test_anonymous_gets_401_json(self, client, seed_data):
        resp = client.get("/api/competitions/cart")
        assert resp.status_code == 401
        assert resp.get_json() == {"success": False, "error": "Unauthorized"}


class TestAddItem:

    def test_add_team_entry(self, client, seed_data, login_participant):
        resp = client.post(ADD_URL, json=_entry(seed_data))

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["success"] is True
        assert data["item"]["unitPrice"] == 8000
        assert data["item"]["participantType"] == "TEAM"
        assert data["cart"]["total"] == 8000

    def test_html_stripped_from_text_fields(self, client, app, seed_data, login_participant):
        client.post(ADD_URL, json=_entry(seed_data))

        with app.app_context():
            cart = cart_service.get_active_cart(seed_data["user_id"])
            assert cart.items[0].team_name == "Studio Nine"

    def test_two_entries_share_one_cart(self, client, seed_data, login_participant):
        client.post(ADD_URL, json=_entry(seed_data))
        resp = client.post(ADD_URL, json=_entry(
            seed_data,
            competitionId=seed_data["kids_id"],
            registrationTypeId=seed_data["kids_type_id"],
            members=[{"name": "Little One", "email": "parent@example.com"}],
        ))

        assert resp.get_json()["cart"]["total"] == 10000
        assert len(resp.get_json()["cart"]["items"]) == 2

    def test_too_many_members_rejected(self, client, seed_data, login_participant):
        resp = client.post(ADD_URL, json=_entry(
            seed_data, registrationTypeId=seed_data["individual_type_id"],
        ))
        assert resp.status_code == 400
        assert "Maximum 1 member" in resp.get_json()["error"]

    def test_missing_agreement_rejected(self, client, seed_data, login_participant):
        resp = client.post(ADD_URL, json=_entry(seed_data, agreements={"agreedToTerms": True}))
        assert resp.status_code == 400
        assert "terms" in resp.get_json()["error"]

    def test_invalid_member_email_rejected(self, client, seed_data, login_participant):
        resp = client.post(ADD_URL, json=_entry(
            seed_data, members=[{"name": "Nimal", "email": "not-an-email"}],
        ))
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Member 1: Valid email is required"

    def test_inactive_type_not_found(self, client, seed_data, login_participant):
        resp = client.post(ADD_URL, json=_entry(
            seed_data, registrationTypeId=seed_data["retired_type_id"],
        ))
        assert resp.status_code == 404

    def test_type_from_other_competition_not_found(self, client, seed_data, login_participant):
        resp = client.post(ADD_URL, json=_entry(
            seed_data, registrationTypeId=seed_data["kids_type_id"],
        ))
        assert resp.status_code == 404

    def test_deadline_passed_rejected(self, client, seed_data, login_participant):
        competition = db.session.get(Competition, seed_data["design_id"])
        competition.registration_deadline = datetime.now(timezone.utc) - timedelta(days=1)
        db.session.commit()

        resp = client.post(ADD_URL, json=_entry(seed_data))

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Registration deadline has passed"


class TestRemoveItem:

    def test_remove_item(self, client, seed_data, login_participant):
        item_id = client.post(ADD_URL, json=_entry(seed_data)).get_json()["item"]["id"]

        resp = client.delete(f"/api/competitions/cart/items/{item_id}")

        assert resp.status_code == 200
        assert resp.get_json()["items"] == []
        assert resp.get_json()["total"] == 0

    def test_remove_unknown_item(self, client, seed_data, login_participant):
        resp = client.delete("/api/competitions/cart/items/nope")
        assert resp.status_code == 404

    def test_item_awaiting_payment_is_locked(self, client, app, login_participant,
                                             create_pending_payment):
        ids = create_pending_payment("ORDER123", entries=[
            ("design_id", "individual_type_id"), ("kids_id", "kids_type_id"),
        ])

        resp = client.delete(f"/api/competitions/cart/items/{ids['item_ids'][1]}")

        assert resp.status_code == 409
        assert "ORDER123" in resp.get_json()["error"]
        with app.app_context():
            assert db.session.get(RegistrationCartItem, ids["item_ids"][1]) is not None

    def test_item_removable_once_payment_failed(self, client, login_participant,
                                                create_pending_payment):
        ids = create_pending_payment("ORDER123")
        db.session.get(CompetitionPayment, ids["payment_id"]).status = "FAILED"
        db.session.commit()

        resp = client.delete(f"/api/competitions/cart/items/{ids['item_ids'][0]}")

        assert resp.status_code == 200
        assert resp.get_json()["items"] == []


class TestExpiry:

    def _cart(self, seed_data, expires_at):
        cart = RegistrationCart(user_id=seed_data["user_id"], status="ACTIVE", expires_at=expires_at)
        db.session.add(cart)
        db.session.commit()
        return cart

    def test_expire_stale_carts(self, seed_data):
        now = datetime.now(timezone.utc)
        stale = self._cart(seed_data, now - timedelta(minutes=1))
        fresh = self._cart(seed_data, now + timedelta(minutes=10))

        assert cart_service.expire_stale_carts(now) == 1
        assert stale.status == "EXPIRED"
        assert fresh.status == "ACTIVE"

    def test_expiry_disabled(self, app, monkeypatch, seed_data):
        monkeypatch.setitem(app.config, "CART_EXPIRY_DISABLED", True)
        now = datetime.now(timezone.utc)
        stale = self._cart(seed_data, now - timedelta(minutes=1))

        assert cart_service.is_cart_expired(stale) is False
        assert cart_service.expire_stale_carts(now) == 0
        assert cart_service.calculate_cart_expiry(now) > now + timedelta(days=3000)

    def test_expired_cart_hidden_from_api(self, client, seed_data, login_participant):
        self._cart(seed_data, datetime.now(timezone.utc) - timedelta(minutes=1))

        resp = client.get("/api/competitions/cart")

        assert resp.status_code == 200
        assert resp.get_json()["cart"] is None

    def test_expire_carts_cli(self, app, seed_data):
        cart = self._cart(seed_data, datetime.now(timezone.utc) - timedelta(hours=1))
        cart_id = cart.id

        result = app.test_cli_runner().invoke(args=["expire-carts"])

        assert "Expired 1 cart(s)" in result.output
        with app.app_context():
            assert db.session.get(RegistrationCart, cart_id).status == "EXPIRED"
