"""PayHere gateway helpers — hashing, signature checks, checkout form data.

PayHere signs with upper-cased MD5 hex digests:

    checkout hash = MD5(merchant_id + order_id + amount + currency + MD5(secret))
    notify md5sig = MD5(merchant_id + order_id + amount + currency
                        + status_code + MD5(secret))

The notify signature is the only authentication on the IPN endpoint.
"""

import hashlib
import hmac
import logging

from flask import current_app

logger = logging.getLogger(__name__)

CHECKOUT_URLS = {
    "sandbox": "https://sandbox.payhere.lk/pay/checkout",
    "live": "https://www.payhere.lk/pay/checkout",
}

# Gateway status_code -> outcome
STATUS_SUCCESS = "2"
STATUS_PENDING = "0"
STATUS_CANCELLED = "-1"
STATUS_FAILED = "-2"
STATUS_CHARGED_BACK = "-3"

STATUS_OUTCOMES = {
    STATUS_SUCCESS: "success",
    STATUS_CANCELLED: "cancelled",
    STATUS_FAILED: "failed",
    STATUS_CHARGED_BACK: "charged_back",
}

# Fields of the notify form that are persisted with the payment
NOTIFY_FIELDS = (
    "merchant_id",
    "order_id",
    "payhere_amount",
    "payhere_currency",
    "status_code",
    "md5sig",
    "method",
    "status_message",
    "payment_id",
    "card_holder_name",
    "card_no",
    "custom_1",
    "custom_2",
)


def _md5_upper(value):
    return hashlib.md5(value.encode("utf-8")).hexdigest().upper()


def format_amount(amount):
    """PayHere expects amounts with exactly two decimals, no separators."""
    return f"{float(amount):.2f}"


def generate_checkout_hash(merchant_id, order_id, amount, currency, merchant_secret):
    """Hash sent with the checkout form so PayHere can trust the amount."""
    hashed_secret = _md5_upper(merchant_secret)
    return _md5_upper(f"{merchant_id}{order_id}{amount}{currency}{hashed_secret}")


def compute_notification_signature(merchant_id, order_id, amount, currency,
                                   status_code, merchant_secret):
    hashed_secret = _md5_upper(merchant_secret)
    return _md5_upper(
        f"{merchant_id}{order_id}{amount}{currency}{status_code}{hashed_secret}"
    )


def verify_notification_signature(merchant_id, order_id, amount, currency,
                                  status_code, md5sig, merchant_secret):
    """Return True if md5sig matches the locally computed signature."""
    if not md5sig or not merchant_secret:
        return False
    expected = compute_notification_signature(
        merchant_id or "",
        order_id or "",
        amount or "",
        currency or "",
        status_code or "",
        merchant_secret,
    )
    return hmac.compare_digest(expected.encode("utf-8"), md5sig.upper().encode("utf-8"))


def status_outcome(status_code):
    """Map a gateway status_code to success | cancelled | failed | charged_back.

    Returns None for pending ("0") and unknown codes.
    """
    return STATUS_OUTCOMES.get((status_code or "").strip())


def parse_notification(form):
    """Pick the known notify fields out of a form mapping.

    Optional fields that are absent or blank come back as None.
    """
    data = {}
    for field in NOTIFY_FIELDS:
        value = form.get(field)
        data[field] = value if value not in ("", None) else None
    return data


def get_checkout_url(mode=None):
    mode = mode or current_app.config.get("PAYHERE_MODE", "sandbox")
    return CHECKOUT_URLS.get(mode, CHECKOUT_URLS["sandbox"])


def build_checkout_form(payment, cart_items, customer):
    """Build the fields the browser posts to PayHere's checkout page."""
    config = current_app.config
    base_url = config["APP_BASE_URL"]
    merchant_id = config["PAYHERE_MERCHANT_ID"]
    currency = payment.currency or config.get("PAYHERE_CURRENCY", "LKR")
    amount = format_amount(payment.amount)

    items_description = ", ".join(
        f"{item.competition.title} - {item.registration_type.name}"
        for item in cart_items
    )

    return {
        "merchant_id": merchant_id,
        # PayHere appends ?order_id=... to the return URL
        "return_url": f"{base_url}/api/competitions/payment/return",
        "cancel_url": f"{base_url}/competitions/payment/failed/{payment.order_id}",
        "notify_url": f"{base_url}/api/competitions/payment/notify",
        "order_id": payment.order_id,
        "items": items_description,
        "currency": currency,
        "amount": amount,
        "first_name": customer.get("firstName", ""),
        "last_name": customer.get("lastName", ""),
        "email": customer.get("email", ""),
        "phone": customer.get("phone") or "",
        "address": customer.get("address") or "",
        "city": customer.get("city") or "",
        "country": customer.get("country", ""),
        "hash": generate_checkout_hash(
            merchant_id,
            payment.order_id,
            amount,
            currency,
            config["PAYHERE_MERCHANT_SECRET"],
        ),
    }
