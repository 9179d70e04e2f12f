import os
import logging

import click
from flask import Flask, jsonify, render_template, request
from werkzeug.security import generate_password_hash

from archalley.config import config_by_name
from archalley.extensions import db, migrate, login_manager, csrf, limiter


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from archalley import models  # noqa: F401

    # --- Register blueprints ---
    from archalley.blueprints.auth import auth_bp
    from archalley.blueprints.cart import cart_bp
    from archalley.blueprints.checkout import checkout_bp
    from archalley.blueprints.payments import payments_bp
    from archalley.blueprints.admin import admin_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(admin_bp)

    # PayHere posts the notify form server-to-server, so no CSRF token
    csrf.exempt(payments_bp)
    # JSON APIs authenticate with the session cookie and same-site policy
    csrf.exempt(cart_bp)
    csrf.exempt(checkout_bp)
    csrf.exempt(admin_bp)

    # --- Root route ---
    @app.route("/")
    def index():
        """Landing page — competitions currently open for registration."""
        from archalley.models.competition import Competition

        competitions = (
            Competition.query
            .filter_by(status="REGISTRATION_OPEN")
            .order_by(Competition.registration_deadline)
            .all()
        )
        return render_template("index.html", competitions=competitions)

    # --- Error handlers ---
    def _wants_json():
        return request.path.startswith("/api/")

    @app.errorhandler(403)
    def forbidden(e):
        if _wants_json():
            return jsonify({"success": False, "error": "Forbidden"}), 403
        return render_template("errors/403.html"), 403

    @app.errorhandler(404)
    def not_found(e):
        if _wants_json():
            return jsonify({"success": False, "error": "Not found"}), 404
        return render_template("errors/404.html"), 404

    @app.errorhandler(500)
    def server_error(e):
        if _wants_json():
            return jsonify({"success": False, "error": "Internal server error"}), 500
        return render_template("errors/500.html"), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = (
            "camera=(), microphone=(), geolocation=(), payment=(self)"
        )
        # The checkout page posts a form straight to PayHere
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' 'unsafe-inline' https://www.payhere.lk https://sandbox.payhere.lk; "
            "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com; "
            "img-src 'self' data:; "
            "font-src 'self' https://fonts.gstatic.com; "
            "base-uri 'self'; "
            "form-action 'self' https://www.payhere.lk https://sandbox.payhere.lk; "
            "frame-ancestors 'none';"
        )
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Jinja filters ---
    @app.template_filter("money")
    def money_filter(value, currency="LKR"):
        """Format an amount as 'LKR 5,000.00'."""
        return f"{currency} {float(value or 0):,.2f}"

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-admin")
    @click.option("--email", default="admin@archalley.local", help="Admin email")
    @click.option("--password", default="admin123", help="Admin password")
    def seed_admin(email, password):
        """Create (or promote) the admin user.

        Usage:
            flask seed-admin
            flask seed-admin --email admin@example.com --password s3cret
        """
        from archalley.models.user import User

        existing = User.query.filter_by(email=email).first()
        if existing:
            existing.is_admin = True
            db.session.commit()
            click.echo(f"Admin user already exists: {email} (is_admin ensured)")
            return

        admin = User(
            email=email,
            password_hash=generate_password_hash(password),
            full_name="Admin",
            is_admin=True,
        )
        db.session.add(admin)
        db.session.commit()
        click.echo(f"Created admin user: {email}")

    @app.cli.command("seed-competitions")
    @click.option("--year", default=None, type=int, help="Competition year (default: current)")
    def seed_competitions(year):
        """Create a demo competition with individual, team and student entries.

        Safe to run twice: an existing slug is left alone.
        """
        from datetime import datetime, timedelta, timezone

        from archalley.models.competition import Competition, CompetitionRegistrationType

        now = datetime.now(timezone.utc)
        year = year or now.year
        slug = f"archalley-design-challenge-{year}"

        if Competition.query.filter_by(slug=slug).first():
            click.echo(f"Competition already exists: {slug}")
            return

        competition = Competition(
            slug=slug,
            title=f"Archalley Design Challenge {year}",
            description="Annual open design competition.",
            year=year,
            start_date=now,
            end_date=now + timedelta(days=120),
            registration_deadline=now + timedelta(days=60),
            status="REGISTRATION_OPEN",
            registration_fee=5000,
            max_team_size=4,
            prizes={"first": 250000, "second": 150000, "third": 75000},
        )
        db.session.add(competition)
        db.session.flush()

        for order, (type_, name, fee, max_members) in enumerate([
            ("INDIVIDUAL", "Individual Entry", 5000, 1),
            ("TEAM", "Team Entry", 8000, 4),
            ("STUDENT", "Student Entry", 2500, 1),
        ]):
            db.session.add(CompetitionRegistrationType(
                competition_id=competition.id,
                type=type_,
                name=name,
                fee=fee,
                max_members=max_members,
                display_order=order,
            ))

        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo("Competition created!")
        click.echo("=" * 60)
        click.echo(f"  Slug:      {competition.slug} (id: {competition.id})")
        click.echo(f"  Deadline:  {competition.registration_deadline.isoformat()}")
        click.echo("=" * 60)

    @app.cli.command("expire-carts")
    def expire_carts():
        """Mark ACTIVE carts past their expiry time as EXPIRED.

        Usage:
            flask expire-carts
        """
        from archalley.services.cart_service import expire_stale_carts

        count = expire_stale_carts()
        db.session.commit()
        click.echo(f"Expired {count} cart(s)")
