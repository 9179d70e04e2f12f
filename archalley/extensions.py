"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
"""

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limit, applied per-route
    storage_uri="memory://",
)

# Flask-Login config
login_manager.login_view = "auth.login"
login_manager.login_message = "Please log in to register for competitions."
login_manager.login_message_category = "info"


@login_manager.user_loader
def load_user(user_id):
    """Load user by ID from session. Imports lazily to avoid circular deps."""
    from archalley.models.user import User

    return db.session.get(User, user_id)


@login_manager.unauthorized_handler
def unauthorized():
    """JSON APIs answer 401; pages go to the login form."""
    from flask import jsonify, redirect, request, url_for

    if request.path.startswith("/api/"):
        return jsonify({"success": False, "error": "Unauthorized"}), 401
    return redirect(url_for("auth.login", next=request.path))
