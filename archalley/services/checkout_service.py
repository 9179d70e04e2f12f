"""Checkout service — turns the active cart into a PENDING payment.

Card checkouts return the PayHere form fields; the cart stays ACTIVE until
the payment is materialized. Bank transfers create PENDING registrations
straight away and wait for an admin to verify the slip.
"""

import logging
from datetime import datetime, timezone

import bleach
from flask import current_app
from sqlalchemy.exc import IntegrityError

from archalley.extensions import db
from archalley.models.payment import CompetitionPayment
from archalley.models.registration import CompetitionRegistration
from archalley.services import cart_service, notification_service
from archalley.services.payhere_service import build_checkout_form, get_checkout_url
from archalley.services.registration_service import (
    generate_unique_registration_number,
    log_payment_audit,
)

logger = logging.getLogger(__name__)

REQUIRED_CUSTOMER_FIELDS = ("firstName", "lastName", "email", "country")
CUSTOMER_FIELDS = REQUIRED_CUSTOMER_FIELDS + ("phone", "address", "city")

MAX_ORDER_ID_ATTEMPTS = 5


class CheckoutError(ValueError):
    """Checkout could not start; message is safe to show the user."""


def generate_order_id(sequence, year=None):
    year = year or datetime.now(timezone.utc).year
    return f"ORDER-AC{year}-{sequence:05d}"


def next_order_sequence(year=None):
    year = year or datetime.now(timezone.utc).year
    prefix = f"ORDER-AC{year}-"
    count = CompetitionPayment.query.filter(
        CompetitionPayment.order_id.startswith(prefix)
    ).count()
    return count + 1


def _clean_customer(customer):
    customer = customer or {}
    clean = {}
    for field in CUSTOMER_FIELDS:
        value = customer.get(field)
        if value:
            clean[field] = bleach.clean(str(value), tags=[], strip=True).strip()
    missing = [field for field in REQUIRED_CUSTOMER_FIELDS if not clean.get(field)]
    if missing:
        raise CheckoutError("Complete customer information is required")
    return clean


def _items_snapshot(items):
    return [
        {
            "id": item.id,
            "competitionTitle": item.competition.title,
            "registrationType": item.registration_type.name,
            "country": item.country,
            "memberCount": len(item.members or []),
            "unitPrice": item.unit_price,
            "subtotal": item.subtotal,
        }
        for item in items
    ]


def _create_payment(user_id, cart, customer, payment_method=None, extra_metadata=None):
    """Insert the PENDING payment, retrying the order id on a unique clash."""
    items = list(cart.items)
    competition_ids = list(dict.fromkeys(item.competition_id for item in items))
    metadata = {
        "cartId": cart.id,
        "itemIds": [item.id for item in items],
        "competitionIds": competition_ids,
    }
    metadata.update(extra_metadata or {})

    for attempt in range(MAX_ORDER_ID_ATTEMPTS):
        payment = CompetitionPayment(
            order_id=generate_order_id(next_order_sequence() + attempt),
            user_id=user_id,
            competition_id=competition_ids[0],
            amount=cart.total,
            currency=current_app.config.get("PAYHERE_CURRENCY", "LKR"),
            merchant_id=current_app.config.get("PAYHERE_MERCHANT_ID"),
            status="PENDING",
            payment_method=payment_method,
            items=_items_snapshot(items),
            customer_details=customer,
            metadata_=metadata,
        )
        order_id = payment.order_id
        try:
            db.session.add(payment)
            db.session.flush()
            return payment
        except IntegrityError:
            # Nothing else is pending at this point, so a full rollback is safe
            db.session.rollback()
            logger.warning(f"Order id {order_id} taken, retrying")

    raise CheckoutError("Could not allocate an order id, please try again")


def start_checkout(user_id, body):
    """Create a payment for the user's active cart.

    Commits. Returns a dict for the JSON response.

    Raises:
        CheckoutError: Empty/expired cart or incomplete customer info.
    """
    body = body or {}
    payment_method = body.get("paymentMethod") or "card"
    if payment_method not in ("card", "bank"):
        raise CheckoutError("Unsupported payment method")

    customer = _clean_customer(body.get("customerInfo"))

    cart = cart_service.get_active_cart(user_id)
    if cart is None or not cart.items:
        raise CheckoutError("Cart is empty")

    if cart_service.is_cart_expired(cart):
        cart.status = "EXPIRED"
        db.session.commit()
        raise CheckoutError("Cart has expired. Please add items again.")

    if payment_method == "bank":
        return _start_bank_transfer(user_id, cart, customer, body)

    payment = _create_payment(user_id, cart, customer)
    log_payment_audit(payment, "payment.initiated", {"method": "card", "amount": payment.amount})
    db.session.commit()

    logger.info(f"Card checkout {payment.order_id} for user {user_id}: {payment.currency} {payment.amount:.2f}")

    return {
        "orderId": payment.order_id,
        "paymentData": build_checkout_form(payment, cart.items, customer),
        "paymentUrl": get_checkout_url(),
    }


def _start_bank_transfer(user_id, cart, customer, body):
    slip_url = body.get("bankSlipUrl")
    if not slip_url and not body.get("willSendViaWhatsApp"):
        raise CheckoutError("Please upload your bank slip")

    payment = _create_payment(
        user_id,
        cart,
        customer,
        payment_method=CompetitionPayment.BANK_TRANSFER,
        extra_metadata={
            "paymentMethod": "bank",
            "bankSlipUrl": slip_url,
            "bankSlipFileName": body.get("bankSlipFileName"),
            "willSendViaWhatsApp": bool(body.get("willSendViaWhatsApp")),
        },
    )

    registrations = []
    reserved = set()
    for item in cart.items:
        number = generate_unique_registration_number(reserved)
        reserved.add(number)
        registration = CompetitionRegistration(
            registration_number=number,
            user_id=user_id,
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
            status="PENDING",
            amount_paid=item.subtotal,
            currency=payment.currency,
        )
        db.session.add(registration)
        registrations.append(registration)

    cart.status = "COMPLETED"
    log_payment_audit(payment, "payment.initiated", {"method": "bank", "amount": payment.amount})
    db.session.commit()

    logger.info(f"Bank transfer checkout {payment.order_id}: {len(registrations)} pending registration(s)")
    notification_service.send_bank_transfer_pending_email(payment, registrations)

    return {
        "orderId": payment.order_id,
        "registrationNumber": registrations[0].registration_number,
        "paymentData": None,
        "paymentUrl": "",
    }
