"""Tests for the auth blueprint, security headers and CLI seeding.

Covers:
- Login with valid / invalid credentials
- Login with deactivated account
- Logout
- Open redirect protection
- Security headers on responses
- seed-admin and seed-competitions CLI commands
"""

from archalley.extensions import db
from archalley.models.competition import Competition
from archalley.models.user import User


class TestLogin:

    def test_login_page_loads(self, client, seed_data):
        resp = client.get("/auth/login")
        assert resp.status_code == 200
        assert b"Log in" in resp.data

    def test_login_success(self, client, seed_data):
        resp = client.post(
            "/auth/login",
            data={"email": "participant@example.com", "password": "participant123"},
        )
        assert resp.status_code == 302
        assert resp.headers["Location"].endswith("/")

    def test_login_email_case_insensitive(self, client, seed_data):
        resp = client.post(
            "/auth/login",
            data={"email": "Participant@Example.com", "password": "participant123"},
        )
        assert resp.status_code == 302

    def test_login_wrong_password(self, client, seed_data):
        resp = client.post(
            "/auth/login",
            data={"email": "participant@example.com", "password": "wrong"},
        )
        assert resp.status_code == 200
        assert b"Invalid email or password" in resp.data

    def test_login_deactivated(self, client, seed_data):
        user = db.session.get(User, seed_data["user_id"])
        user.is_active = False
        db.session.commit()

        resp = client.post(
            "/auth/login",
            data={"email": "participant@example.com", "password": "participant123"},
        )
        assert b"deactivated" in resp.data

    def test_open_redirect_blocked(self, client, seed_data):
        resp = client.post(
            "/auth/login?next=https://evil.example.com",
            data={"email": "participant@example.com", "password": "participant123"},
        )
        assert resp.status_code == 302
        assert "evil.example.com" not in resp.headers["Location"]

    def test_relative_next_followed(self, client, seed_data):
        resp = client.post(
            "/auth/login",
            data={
                "email": "participant@example.com",
                "password": "participant123",
                "next": "/competitions/payment/processing/ORDER123",
            },
        )
        assert resp.headers["Location"].endswith("/competitions/payment/processing/ORDER123")

    def test_logout(self, client, seed_data, login_participant):
        resp = client.get("/auth/logout")
        assert resp.status_code == 302
        assert "/auth/login" in resp.headers["Location"]
        assert client.get("/api/competitions/cart").status_code == 401


class TestSecurityHeaders:

    def test_headers_present(self, client, seed_data):
        resp = client.get("/auth/login")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert resp.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
        assert "payhere.lk" in resp.headers["Content-Security-Policy"]

    def test_html_404(self, client, seed_data):
        resp = client.get("/no-such-page")
        assert resp.status_code == 404
        assert b"Page not found" in resp.data

    def test_json_404_under_api(self, client, seed_data):
        resp = client.get("/api/no-such-endpoint")
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Not found"


class TestCli:

    def test_seed_admin(self, app):
        result = app.test_cli_runner().invoke(
            args=["seed-admin", "--email", "boss@example.com", "--password", "s3cret!"]
        )
        assert "Created admin user: boss@example.com" in result.output
        with app.app_context():
            assert User.query.filter_by(email="boss@example.com").one().is_admin is True

    def test_seed_competitions_is_idempotent(self, app):
        runner = app.test_cli_runner()
        runner.invoke(args=["seed-competitions", "--year", "2026"])
        result = runner.invoke(args=["seed-competitions", "--year", "2026"])

        assert "already exists" in result.output
        with app.app_context():
            competition = Competition.query.filter_by(
                slug="archalley-design-challenge-2026"
            ).one()
            assert len(competition.registration_types) == 3

    def test_index_lists_open_competitions(self, client, seed_data):
        resp = client.get("/")
        assert resp.status_code == 200
        assert b"Design Challenge" in resp.data
