"""Registration service — turns paid carts into confirmed registrations.

Responsible for:
- Generating collision-checked registration numbers
- Recovering the cart reference stored on a payment at checkout
- Materializing a payment: one CONFIRMED registration per cart line item,
  payment -> COMPLETED, cart -> COMPLETED, in a single commit
- Logging payment audit events

Materialization is guarded twice: an existing-registrations pre-check, and
a PaymentMaterialization marker row whose unique payment_id makes a second,
concurrent attempt fail at the database instead of creating a duplicate
set of registrations.
"""

import logging
import secrets
from collections import namedtuple
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from archalley.exceptions import MaterializationError, RegistrationNumberError
from archalley.extensions import db
from archalley.models.audit import AuditEvent
from archalley.models.cart import RegistrationCart, RegistrationCartItem
from archalley.models.payment import PaymentMaterialization
from archalley.models.registration import CompetitionRegistration
from archalley.services.notification_service import dispatch_registration_notifications

logger = logging.getLogger(__name__)

# No 0/O or 1/I, registration numbers get read out over the phone
REGISTRATION_NUMBER_ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"
REGISTRATION_NUMBER_LENGTH = 6
MAX_NUMBER_ATTEMPTS = 10

MaterializationResult = namedtuple("MaterializationResult", ["registrations", "created"])

# notify payload field -> CompetitionPayment attribute
GATEWAY_FIELD_MAP = {
    "payment_id": "gateway_payment_id",
    "status_code": "status_code",
    "md5sig": "md5sig",
    "method": "payment_method",
    "card_holder_name": "card_holder_name",
    "card_no": "card_no",
}


# ──────────────────────────────────────────────
# Registration numbers
# ──────────────────────────────────────────────

def generate_registration_number():
    return "".join(
        secrets.choice(REGISTRATION_NUMBER_ALPHABET)
        for _ in range(REGISTRATION_NUMBER_LENGTH)
    )


def generate_unique_registration_number(reserved=None, max_attempts=MAX_NUMBER_ATTEMPTS):
    """Generate a registration number not yet used in the database.

    Args:
        reserved: Numbers already handed out in the current batch but not
                  yet flushed.
        max_attempts: Collision retry budget.

    Raises:
        RegistrationNumberError: If every attempt collided.
    """
    reserved = reserved or set()
    for _ in range(max_attempts):
        number = generate_registration_number()
        if number in reserved:
            continue
        taken = (
            db.session.query(CompetitionRegistration.id)
            .filter_by(registration_number=number)
            .first()
        )
        if taken is None:
            return number
        logger.warning(f"Registration number collision: {number}, retrying")

    raise RegistrationNumberError(
        f"Failed to generate a unique registration number after {max_attempts} attempts"
    )


# ──────────────────────────────────────────────
# Cart reference
# ──────────────────────────────────────────────

def get_cart_reference(payment):
    """Return (cart_id, item_ids) from payment metadata, or None if malformed.

    Checkout stores {"cartId": str, "itemIds": [str, ...]} on the payment.
    """
    metadata = payment.metadata_
    if not isinstance(metadata, dict):
        return None

    cart_id = metadata.get("cartId")
    item_ids = metadata.get("itemIds")
    if not isinstance(cart_id, str) or not cart_id:
        return None
    if not isinstance(item_ids, list) or not item_ids:
        return None
    if not all(isinstance(item_id, str) and item_id for item_id in item_ids):
        return None

    return cart_id, item_ids


def get_payment_registrations(payment_id):
    return (
        CompetitionRegistration.query
        .filter_by(payment_id=payment_id)
        .order_by(CompetitionRegistration.created_at)
        .all()
    )


# ──────────────────────────────────────────────
# Audit
# ──────────────────────────────────────────────

def log_payment_audit(payment, action, metadata=None, actor_user_id=None):
    """Log a payment audit event. Flushes; the caller commits."""
    event = AuditEvent(
        payment_id=payment.id,
        actor_user_id=actor_user_id,
        action=action,
        metadata_=dict(metadata or {}, order_id=payment.order_id),
    )
    db.session.add(event)
    db.session.flush()


# ──────────────────────────────────────────────
# Materialization
# ──────────────────────────────────────────────

def apply_completion(payment, gateway_data=None, now=None):
    """Mark a payment COMPLETED and copy gateway transaction fields onto it."""
    now = now or datetime.now(timezone.utc)
    payment.status = "COMPLETED"
    payment.completed_at = now
    payment.error_message = None

    if gateway_data:
        for field, attr in GATEWAY_FIELD_MAP.items():
            value = gateway_data.get(field)
            if value:
                setattr(payment, attr, value)
        payment.response_data = dict(gateway_data)


def _build_registration(payment, item, number, now):
    return CompetitionRegistration(
        registration_number=number,
        user_id=payment.user_id,
        competition_id=item.competition_id,
        registration_type_id=item.registration_type_id,
        payment_id=payment.id,
        country=item.country,
        participant_type=item.participant_type,
        referral_source=item.referral_source,
        team_name=item.team_name,
        company_name=item.company_name,
        business_registration_no=item.business_registration_no,
        members=list(item.members or []),
        status="CONFIRMED",
        amount_paid=item.subtotal,
        currency=payment.currency,
        confirmed_at=now,
    )


def materialize_payment(payment, gateway_data=None, source="notify"):
    """Create one CONFIRMED registration per cart line item of a paid payment.

    Registrations, the payment update, the cart update and the audit event
    are committed together. If the payment already has registrations (or
    another request claims the materialization first) nothing new is
    created and the existing registrations are returned.

    Returns:
        MaterializationResult(registrations, created): created is False
        when the payment had already been materialized.

    Raises:
        MaterializationError: Metadata or line items are missing.
        RegistrationNumberError: No unique registration number available.
    """
    payment_id = payment.id

    # --- Fast path: already materialized ---
    existing = get_payment_registrations(payment_id)
    if existing:
        if payment.status not in ("COMPLETED", "REFUNDED"):
            apply_completion(payment, gateway_data)
            db.session.commit()
        logger.info(f"Payment {payment.order_id} already has registrations, skipping materialization")
        return MaterializationResult(existing, False)

    reference = get_cart_reference(payment)
    if reference is None:
        raise MaterializationError(f"Payment {payment.order_id} has no cart reference in metadata")
    cart_id, item_ids = reference

    items = (
        RegistrationCartItem.query
        .options(
            joinedload(RegistrationCartItem.competition),
            joinedload(RegistrationCartItem.registration_type),
        )
        .filter(RegistrationCartItem.id.in_(item_ids))
        .all()
    )
    if not items:
        raise MaterializationError(f"No cart items found for payment {payment.order_id}")

    # Every paid line item must become a registration, or none do
    if len(items) != len(set(item_ids)):
        raise MaterializationError(
            f"Payment {payment.order_id}: {len(set(item_ids))} items in metadata, "
            f"{len(items)} found"
        )
    position = {item_id: index for index, item_id in enumerate(item_ids)}
    items.sort(key=lambda item: position[item.id])

    # --- Claim the payment (unique index on payment_id) ---
    try:
        db.session.add(PaymentMaterialization(payment_id=payment_id, source=source))
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        logger.info(f"Payment {payment_id} materialized concurrently, skipping")
        return MaterializationResult(get_payment_registrations(payment_id), False)

    try:
        now = datetime.now(timezone.utc)
        registrations = []
        reserved = set()
        for item in items:
            number = generate_unique_registration_number(reserved)
            reserved.add(number)
            registration = _build_registration(payment, item, number, now)
            db.session.add(registration)
            registrations.append(registration)
            logger.info(f"Generated registration number {number} for payment {payment.order_id}")

        apply_completion(payment, gateway_data, now)

        cart = db.session.get(RegistrationCart, cart_id)
        if cart:
            cart.status = "COMPLETED"
        else:
            logger.warning(f"Cart {cart_id} for payment {payment.order_id} not found")

        log_payment_audit(payment, "payment.completed", {
            "source": source,
            "cart_id": cart_id,
            "registration_numbers": [reg.registration_number for reg in registrations],
        })

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        f"Materialized payment {payment.order_id}: {len(registrations)} registration(s) via {source}"
    )

    try:
        dispatch_registration_notifications(payment, registrations)
    except Exception as e:
        logger.error(f"Notification dispatch failed for {payment.order_id}: {e}", exc_info=True)

    return MaterializationResult(registrations, True)
