"""Auth blueprint — /auth/*

Handles participant and admin login, logout.
"""

from flask import (
    Blueprint,
    flash,
    redirect,
    render_template,
    request,
    url_for,
)
from flask_login import current_user, login_user, logout_user
from werkzeug.security import check_password_hash

from archalley.extensions import limiter
from archalley.models.user import User

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


# ──────────────────────────────────────────────
# GET/POST /auth/login?next=/competitions/...
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["GET", "POST"])
@limiter.limit("15 per minute", methods=["POST"])
def login():
    """Standard email + password login.

    After login, redirects to the `next` query param (typically the
    registration page the user was sent away from).
    """
    if current_user.is_authenticated:
        next_url = request.args.get("next", "/")
        return redirect(next_url if next_url.startswith("/") else "/")

    if request.method == "POST":
        email = request.form.get("email", "").lower().strip()
        password = request.form.get("password", "")
        remember = bool(request.form.get("remember"))

        if not email or not password:
            flash("Email and password are required.", "error")
            return render_template(
                "auth/login.html",
                email=email,
                next_url=request.form.get("next", ""),
            )

        user = User.query.filter_by(email=email).first()

        if user is None or not check_password_hash(user.password_hash, password):
            flash("Invalid email or password.", "error")
            return render_template(
                "auth/login.html",
                email=email,
                next_url=request.form.get("next", ""),
            )

        if not user.is_active:
            flash("Your account has been deactivated.", "error")
            return render_template(
                "auth/login.html",
                email=email,
                next_url=request.form.get("next", ""),
            )

        login_user(user, remember=remember)

        next_url = request.form.get("next") or request.args.get("next", "/")

        # Only allow relative redirects (prevent open redirect)
        if not next_url.startswith("/") or next_url.startswith("//"):
            next_url = "/"

        flash("Logged in successfully.", "success")
        return redirect(next_url)

    return render_template(
        "auth/login.html",
        next_url=request.args.get("next", ""),
    )


# ──────────────────────────────────────────────
# GET /auth/logout
# ──────────────────────────────────────────────

@auth_bp.route("/logout")
def logout():
    """Log out and redirect to login page."""
    logout_user()
    flash("You have been logged out.", "info")
    return redirect(url_for("auth.login"))
