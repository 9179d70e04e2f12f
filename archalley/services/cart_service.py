"""Cart service — registration carts and line items.

Participant details typed into the registration form are sanitized with
bleach.clean() to strip HTML before they are stored (and later copied onto
registrations and rendered into emails).

Functions flush but do NOT commit — the caller commits.
"""

import logging
import re
from datetime import datetime, timedelta, timezone

import bleach
from flask import current_app

from archalley.extensions import db
from archalley.models.cart import RegistrationCart, RegistrationCartItem
from archalley.models.competition import Competition, CompetitionRegistrationType
from archalley.models.payment import CompetitionPayment

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

AGREEMENT_FIELDS = (
    "agreedToTerms",
    "agreedToWebsiteTerms",
    "agreedToPrivacyPolicy",
    "agreedToRefundPolicy",
)

MEMBER_FIELDS = ("name", "email", "phone", "role", "studentId", "institution")


def _sanitize(text):
    """Strip all HTML tags from user input."""
    if text is None:
        return text
    return bleach.clean(str(text), tags=[], strip=True).strip()


def _as_utc(value):
    # SQLite returns naive datetimes; Postgres returns aware ones.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ──────────────────────────────────────────────
# Expiry
# ──────────────────────────────────────────────

def calculate_cart_expiry(now=None):
    """Expiry for a cart touched now; ten years out when expiry is disabled."""
    now = now or datetime.now(timezone.utc)
    if current_app.config.get("CART_EXPIRY_DISABLED"):
        return now + timedelta(days=3650)
    return now + timedelta(minutes=current_app.config.get("CART_EXPIRY_MINUTES", 30))


def is_cart_expired(cart, now=None):
    if current_app.config.get("CART_EXPIRY_DISABLED"):
        return False
    now = now or datetime.now(timezone.utc)
    return now > _as_utc(cart.expires_at)


def expire_stale_carts(now=None):
    """Mark ACTIVE carts past their expiry as EXPIRED. Returns the count."""
    if current_app.config.get("CART_EXPIRY_DISABLED"):
        return 0
    now = now or datetime.now(timezone.utc)
    expired = 0
    for cart in RegistrationCart.query.filter_by(status="ACTIVE").all():
        if now > _as_utc(cart.expires_at):
            cart.status = "EXPIRED"
            expired += 1
    db.session.flush()
    return expired


# ──────────────────────────────────────────────
# Lookup
# ──────────────────────────────────────────────

def get_active_cart(user_id):
    """Return the user's newest ACTIVE cart, or None.

    More than one ACTIVE cart can exist (nothing enforces uniqueness);
    the newest one is the one the user has been filling.
    """
    return (
        RegistrationCart.query
        .filter_by(user_id=user_id, status="ACTIVE")
        .order_by(RegistrationCart.created_at.desc())
        .first()
    )


def serialize_cart(cart):
    if cart is None:
        return {"cart": None, "items": [], "total": 0}
    return {
        "cart": {
            "id": cart.id,
            "status": cart.status,
            "expiresAt": _as_utc(cart.expires_at).isoformat(),
        },
        "items": [item.to_dict() for item in cart.items],
        "total": cart.total,
    }


# ──────────────────────────────────────────────
# Mutations
# ──────────────────────────────────────────────

def _validate_member(member, index):
    prefix = f"Member {index + 1}"
    if not isinstance(member, dict):
        raise ValueError(f"{prefix}: invalid member data")
    name = (member.get("name") or "").strip()
    if len(name) < 2:
        raise ValueError(f"{prefix}: Name must be at least 2 characters")
    email = (member.get("email") or "").strip()
    if not EMAIL_RE.match(email):
        raise ValueError(f"{prefix}: Valid email is required")


def add_item(user_id, data, now=None):
    """Add a competition entry to the user's active cart.

    Args:
        user_id: Owner's user UUID string.
        data: Parsed JSON body with competitionId, registrationTypeId,
              country, members, agreements and optional participant fields.

    Returns:
        The created RegistrationCartItem.

    Raises:
        LookupError: Competition or registration type not available.
        ValueError: Any validation failure.
    """
    now = now or datetime.now(timezone.utc)
    data = data or {}

    competition_id = data.get("competitionId")
    registration_type_id = data.get("registrationTypeId")
    if not competition_id or not registration_type_id:
        raise ValueError("Competition and registration type are required")

    country = _sanitize(data.get("country") or "")
    if not country:
        raise ValueError("Country is required")

    members = data.get("members") or []
    if not isinstance(members, list) or not members:
        raise ValueError("At least one member is required")

    agreements = data.get("agreements") or {}
    if not all(agreements.get(field) for field in AGREEMENT_FIELDS):
        raise ValueError("You must agree to all terms and conditions")

    for index, member in enumerate(members):
        _validate_member(member, index)

    competition = db.session.get(Competition, competition_id)
    if competition is None:
        raise LookupError("Competition not found")

    registration_type = db.session.get(CompetitionRegistrationType, registration_type_id)
    if (
        registration_type is None
        or not registration_type.is_active
        or registration_type.competition_id != competition.id
    ):
        raise LookupError("Registration type not available")

    if len(members) > registration_type.max_members:
        raise ValueError(
            f"Maximum {registration_type.max_members} member(s) allowed for this registration type"
        )

    if now > _as_utc(competition.registration_deadline):
        raise ValueError("Registration deadline has passed")

    cart = get_active_cart(user_id)
    if cart is not None and is_cart_expired(cart, now):
        cart.status = "EXPIRED"
        cart = None
    if cart is None:
        cart = RegistrationCart(
            user_id=user_id,
            status="ACTIVE",
            expires_at=calculate_cart_expiry(now),
        )
        db.session.add(cart)
        db.session.flush()

    clean_members = [
        {
            field: _sanitize(member[field])
            for field in MEMBER_FIELDS
            if member.get(field)
        }
        for member in members
    ]

    unit_price = registration_type.fee
    item = RegistrationCartItem(
        cart_id=cart.id,
        competition_id=competition.id,
        registration_type_id=registration_type.id,
        country=country,
        participant_type=registration_type.type,
        referral_source=_sanitize(data.get("referralSource")) or None,
        team_name=_sanitize(data.get("teamName")) or None,
        company_name=_sanitize(data.get("companyName")) or None,
        business_registration_no=_sanitize(data.get("businessRegistrationNo")) or None,
        members=clean_members,
        unit_price=unit_price,
        quantity=1,
        subtotal=unit_price,
        agreed_to_terms=True,
        agreed_to_website_terms=True,
        agreed_to_privacy_policy=True,
        agreed_to_refund_policy=True,
    )
    db.session.add(item)

    cart.expires_at = calculate_cart_expiry(now)
    db.session.flush()

    logger.info(f"Added {registration_type.type} entry for {competition.slug} to cart {cart.id}")
    return item


def _pending_payment_for_item(cart, item):
    """Return the PENDING payment whose checkout includes this line item, if any."""
    payments = CompetitionPayment.query.filter_by(user_id=cart.user_id, status="PENDING").all()
    for payment in payments:
        metadata = payment.metadata_ if isinstance(payment.metadata_, dict) else {}
        if metadata.get("cartId") == cart.id and item.id in (metadata.get("itemIds") or []):
            return payment
    return None


def remove_item(user_id, item_id):
    """Remove a line item from the user's active cart.

    Line items of a card checkout that is still awaiting the gateway stay
    put until the payment settles or the cart expires.

    Raises:
        LookupError: No such item in the user's active cart.
        ValueError: The item is part of a checkout awaiting payment.
    """
    cart = get_active_cart(user_id)
    item = db.session.get(RegistrationCartItem, item_id)
    if cart is None or item is None or item.cart_id != cart.id:
        raise LookupError("Cart item not found")

    pending = _pending_payment_for_item(cart, item)
    if pending is not None:
        raise ValueError(f"This entry is part of order {pending.order_id}, which is awaiting payment")

    cart.items.remove(item)
    db.session.flush()
