"""Payment service — gateway notifications, return-redirect reconciliation,
and admin payment actions.

Two entry points can move a payment out of PENDING:

- process_notification(): the PayHere IPN, authenticated by its md5sig.
- reconcile_return(): the browser redirect after checkout. It carries only
  the order id and is never trusted with amounts; it only completes a
  PENDING gateway payment when the webhook evidently never arrived.

Both converge on registration_service.materialize_payment(), which is
safe to call twice for the same payment.
"""

import logging
from datetime import datetime, timezone

from flask import current_app

from archalley.exceptions import InvalidSignatureError, PaymentNotFoundError
from archalley.extensions import db
from archalley.models.payment import CompetitionPayment
from archalley.models.registration import CompetitionRegistration
from archalley.services import notification_service
from archalley.services.payhere_service import (
    status_outcome,
    verify_notification_signature,
)
from archalley.services.registration_service import (
    apply_completion,
    get_cart_reference,
    get_payment_registrations,
    log_payment_audit,
    materialize_payment,
)

logger = logging.getLogger(__name__)

# A signed failure/cancel notification must not undo a confirmed payment
_PROTECTED_STATUSES = ("COMPLETED", "REFUNDED")


def get_payment_by_order_id(order_id):
    if not order_id:
        return None
    return CompetitionPayment.query.filter_by(order_id=order_id).first()


# ──────────────────────────────────────────────
# Gateway notification (IPN)
# ──────────────────────────────────────────────

def process_notification(data):
    """Apply a PayHere notify payload to its payment.

    Args:
        data: Dict from payhere_service.parse_notification().

    Returns:
        A short status string for logging / the response body.

    Raises:
        PaymentNotFoundError: No payment for data["order_id"].
        InvalidSignatureError: md5sig mismatch (payment marked FAILED first).
        MaterializationError: Success code but the cart could not be
            materialized (nothing was written).
    """
    order_id = data.get("order_id")
    payment = get_payment_by_order_id(order_id)
    if payment is None:
        raise PaymentNotFoundError(f"Payment not found: {order_id}")

    is_valid = verify_notification_signature(
        data.get("merchant_id"),
        data.get("order_id"),
        data.get("payhere_amount"),
        data.get("payhere_currency"),
        data.get("status_code"),
        data.get("md5sig"),
        current_app.config["PAYHERE_MERCHANT_SECRET"],
    )
    if not is_valid:
        _record_invalid_signature(payment, data)
        raise InvalidSignatureError(f"Invalid signature for order {order_id}")

    outcome = status_outcome(data.get("status_code"))
    logger.info(
        f"PayHere IPN for {order_id}: status_code={data.get('status_code')} "
        f"({outcome or 'unhandled'}), payment_id={data.get('payment_id')}"
    )

    if outcome == "success":
        _, created = materialize_payment(payment, data, source="notify")
        return "completed" if created else "already_processed"

    if outcome in ("cancelled", "failed"):
        return _record_unsuccessful(payment, data, outcome)

    if outcome == "charged_back":
        return _record_chargeback(payment, data)

    # Pending ("0") and unknown codes leave the payment as it is
    logger.warning(f"Unhandled PayHere status_code {data.get('status_code')!r} for {order_id}")
    return "ignored"


def _record_invalid_signature(payment, data):
    logger.error(f"Invalid PayHere signature for order {payment.order_id}")
    if payment.status in _PROTECTED_STATUSES:
        logger.warning(
            f"Not downgrading {payment.status} payment {payment.order_id} on invalid signature"
        )
        return
    payment.status = "FAILED"
    payment.error_message = "Invalid signature"
    payment.response_data = dict(data)
    log_payment_audit(payment, "payment.signature_invalid", {
        "status_code": data.get("status_code"),
    })
    db.session.commit()


def _record_unsuccessful(payment, data, outcome):
    if payment.status in _PROTECTED_STATUSES:
        logger.warning(
            f"Ignoring {outcome} notification for {payment.status} payment {payment.order_id}"
        )
        return "ignored"

    now = datetime.now(timezone.utc)
    payment.status = "CANCELLED" if outcome == "cancelled" else "FAILED"
    payment.status_code = data.get("status_code")
    payment.error_message = data.get("status_message")
    payment.response_data = dict(data)
    if outcome == "cancelled":
        payment.cancelled_at = now

    log_payment_audit(payment, f"payment.{outcome}", {
        "status_message": data.get("status_message"),
    })
    db.session.commit()
    return outcome


def _record_chargeback(payment, data):
    payment.status = "REFUNDED"
    payment.status_code = data.get("status_code")
    payment.refunded_at = datetime.now(timezone.utc)
    payment.response_data = dict(data)
    log_payment_audit(payment, "payment.charged_back", {
        "gateway_payment_id": data.get("payment_id"),
    })
    db.session.commit()
    return "refunded"


# ──────────────────────────────────────────────
# Browser return (fallback path)
# ──────────────────────────────────────────────

def reconcile_return(order_id):
    """Complete a PENDING gateway payment whose webhook never arrived.

    Only the order id comes from the request. Amounts and line items are
    re-read from the payment row written at checkout.

    Returns the (possibly updated) payment.

    Raises:
        PaymentNotFoundError: Unknown order id.
    """
    payment = get_payment_by_order_id(order_id)
    if payment is None:
        raise PaymentNotFoundError(f"Payment not found: {order_id}")

    if (
        payment.status != "PENDING"
        or not payment.is_gateway_payment
        or not current_app.config["PAYMENT_RETURN_FALLBACK_ENABLED"]
    ):
        return payment

    logger.warning(
        f"Payment {order_id} still PENDING on return redirect — notify webhook "
        f"not received, running fallback"
    )

    try:
        existing = get_payment_registrations(payment.id)
        if existing:
            apply_completion(payment)
            log_payment_audit(payment, "payment.completed", {
                "source": "return_fallback",
                "registrations_existing": len(existing),
            })
            db.session.commit()
            logger.info(f"Fallback: {order_id} already had registrations, marked COMPLETED")
            return payment

        if get_cart_reference(payment) is None:
            logger.debug(f"Fallback: {order_id} has no cart reference, nothing to do")
            return payment

        materialize_payment(
            payment,
            {"order_id": order_id, "source": "return_fallback"},
            source="return_fallback",
        )
    except Exception as e:
        db.session.rollback()
        logger.error(f"Return fallback failed for {order_id}: {e}", exc_info=True)

    return payment


# ──────────────────────────────────────────────
# Admin actions (bank transfers)
# ──────────────────────────────────────────────

def _load_payment_and_registration(payment_id, registration_id):
    payment = db.session.get(CompetitionPayment, payment_id)
    registration = db.session.get(CompetitionRegistration, registration_id)
    if payment is None or registration is None:
        raise PaymentNotFoundError("Payment or registration not found")
    if registration.payment_id != payment.id:
        raise ValueError("Registration does not belong to this payment")
    return payment, registration


def verify_bank_transfer(payment_id, registration_id, approve, admin_user, reject_reason=None):
    """Approve or reject a bank-transfer payment after checking the slip.

    Commits, then emails the participant (email failures are swallowed).
    Returns the updated payment.
    """
    payment, registration = _load_payment_and_registration(payment_id, registration_id)
    now = datetime.now(timezone.utc)
    audit_trail = {
        "verifiedBy": admin_user.email,
        "verifiedByName": admin_user.full_name or admin_user.email,
        "verifiedAt": now.isoformat(),
    }

    if approve:
        payment.status = "COMPLETED"
        payment.completed_at = now
        payment.metadata_ = dict(payment.metadata_ or {}, action="APPROVED", **audit_trail)
        registration.status = "CONFIRMED"
        registration.confirmed_at = now
        log_payment_audit(payment, "payment.verified", {
            "registration_number": registration.registration_number,
        }, actor_user_id=admin_user.id)
        db.session.commit()
        notification_service.send_payment_verified_email(payment, registration)
    else:
        reject_reason = reject_reason or "Payment could not be verified"
        payment.status = "FAILED"
        payment.metadata_ = dict(
            payment.metadata_ or {},
            action="REJECTED",
            rejectReason=reject_reason,
            **audit_trail,
        )
        registration.status = "CANCELLED"
        log_payment_audit(payment, "payment.rejected", {
            "registration_number": registration.registration_number,
            "reason": reject_reason,
        }, actor_user_id=admin_user.id)
        db.session.commit()
        notification_service.send_payment_rejected_email(payment, registration, reject_reason)

    return payment


def revert_payment(payment_id, registration_id, admin_user, revert_reason=None):
    """Send an approved or rejected payment back to PENDING.

    Raises:
        ValueError: Payment is neither COMPLETED nor FAILED.
    """
    payment, registration = _load_payment_and_registration(payment_id, registration_id)
    if payment.status not in ("COMPLETED", "FAILED"):
        raise ValueError("Payment cannot be reverted (must be COMPLETED or FAILED)")

    previous_status = payment.status
    payment.status = "PENDING"
    payment.completed_at = None
    payment.metadata_ = dict(
        payment.metadata_ or {},
        revertedBy=admin_user.email,
        revertedByName=admin_user.full_name or admin_user.email,
        revertedAt=datetime.now(timezone.utc).isoformat(),
        previousStatus=previous_status,
        revertReason=revert_reason or "Admin reverted payment status",
    )
    registration.status = "PENDING"
    registration.confirmed_at = None

    log_payment_audit(payment, "payment.reverted", {
        "previous_status": previous_status,
        "registration_number": registration.registration_number,
    }, actor_user_id=admin_user.id)
    db.session.commit()
    return payment
