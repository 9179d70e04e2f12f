import os


def _env_flag(name, default=""):
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers (Railway, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5000")

    # --- PayHere gateway ---
    PAYHERE_MERCHANT_ID = os.environ.get("PAYHERE_MERCHANT_ID")
    PAYHERE_MERCHANT_SECRET = os.environ.get("PAYHERE_MERCHANT_SECRET")
    PAYHERE_MODE = os.environ.get("PAYHERE_MODE", "sandbox")  # sandbox | live
    PAYHERE_CURRENCY = os.environ.get("PAYHERE_CURRENCY", "LKR")

    # When the notify webhook can't reach us (local / preview deployments),
    # the browser return redirect completes PENDING gateway payments itself.
    PAYMENT_RETURN_FALLBACK_ENABLED = _env_flag(
        "PAYMENT_RETURN_FALLBACK_ENABLED", "true"
    )

    # --- Carts ---
    CART_EXPIRY_MINUTES = int(os.environ.get("CART_EXPIRY_MINUTES", 30))
    CART_EXPIRY_DISABLED = _env_flag("CART_EXPIRY_DISABLED")

    # --- Email (SMTP) ---
    MAIL_SMTP_HOST = os.environ.get("MAIL_SMTP_HOST", "smtp.gmail.com")
    MAIL_SMTP_PORT = int(os.environ.get("MAIL_SMTP_PORT", 587))
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_FROM_NAME = os.environ.get("MAIL_FROM_NAME", "Archalley Forum")
    MAIL_FROM_ADDRESS = os.environ.get("MAIL_FROM_ADDRESS")  # defaults to MAIL_USERNAME
    SUPPORT_EMAIL = os.environ.get("SUPPORT_EMAIL", "support@archalleyforum.com")

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Session / cookies ---
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = "Lax"

    # --- WTF / CSRF ---
    WTF_CSRF_ENABLED = True

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "PAYHERE_MERCHANT_ID",
            "PAYHERE_MERCHANT_SECRET",
            "APP_BASE_URL",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False


class TestConfig(Config):
    """Testing — in-memory SQLite, CSRF disabled."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    APP_BASE_URL = "http://localhost:5000"
    PAYHERE_MERCHANT_ID = "1211149"
    PAYHERE_MERCHANT_SECRET = "test-merchant-secret"
    PAYHERE_MODE = "sandbox"
    PAYHERE_CURRENCY = "LKR"
    PAYMENT_RETURN_FALLBACK_ENABLED = True
    CART_EXPIRY_MINUTES = 30
    CART_EXPIRY_DISABLED = False
    WTF_CSRF_ENABLED = False  # disable CSRF for test forms
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
