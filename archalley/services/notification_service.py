"""Notification dispatcher — registration and payment emails.

After a payment is materialized:
- one registration   -> confirmation, receipt and guidelines emails
- several            -> a single consolidated email listing every entry

Registrations are authoritative once committed, so every failure here is
logged and swallowed. Nothing in this module touches payment or
registration state.
"""

import logging

from archalley.services.email_service import send_email

logger = logging.getLogger(__name__)


def get_recipient(payment):
    """Return (email, name) for the person who checked out.

    The checkout form's contact details win over the account profile.
    """
    details = payment.customer_details or {}
    user = payment.user

    email = details.get("email") or (user.email if user else None)

    first, last = details.get("firstName"), details.get("lastName")
    if first and last:
        name = f"{first} {last}"
    else:
        name = (user.full_name if user else None) or "Participant"

    return email, name


def _registration_context(registration):
    return {
        "registration": registration,
        "competition": registration.competition,
        "registration_type": registration.registration_type,
        "members": registration.members or [],
    }


def _safe_send(to, subject, template, context):
    """Send one email; return True on success, log and return False otherwise."""
    try:
        send_email(to=to, subject=subject, template=template, context=context)
        return True
    except Exception as e:
        logger.error(f"Failed to send '{subject}' to {to}: {e}", exc_info=True)
        return False


def dispatch_registration_notifications(payment, registrations):
    """Send confirmation emails for freshly confirmed registrations.

    Returns the number of emails handed to the transport.
    """
    if not registrations:
        return 0

    try:
        email, name = get_recipient(payment)
    except Exception as e:
        logger.error(f"Cannot resolve recipient for payment {payment.order_id}: {e}")
        return 0

    if not email:
        logger.warning(f"No recipient email for payment {payment.order_id}; skipping notifications")
        return 0

    base = {
        "user_name": name,
        "user_email": email,
        "payment": payment,
        "order_id": payment.order_id,
    }

    if len(registrations) > 1:
        total = sum(reg.amount_paid for reg in registrations)
        logger.info(
            f"Sending consolidated email for {len(registrations)} registrations "
            f"(order {payment.order_id}, total {payment.currency} {total:,.2f})"
        )
        context = dict(
            base,
            entries=[_registration_context(reg) for reg in registrations],
            total_amount=total,
        )
        sent = _safe_send(
            email,
            f"Registrations Confirmed — {len(registrations)} entries",
            "emails/registrations_consolidated.html",
            context,
        )
        return int(sent)

    registration = registrations[0]
    context = dict(base, **_registration_context(registration))
    title = registration.competition.title if registration.competition else "Competition"

    sent = 0
    for subject, template in (
        (f"Registration Confirmed — {title}", "emails/registration_confirmation.html"),
        (f"Payment Receipt — {payment.order_id}", "emails/payment_receipt.html"),
        (f"Competition Guidelines — {title}", "emails/competition_guidelines.html"),
    ):
        sent += _safe_send(email, subject, template, context)

    logger.info(f"Sent {sent} email(s) for registration {registration.registration_number}")
    return sent


# ──────────────────────────────────────────────
# Bank transfer emails
# ──────────────────────────────────────────────

def send_bank_transfer_pending_email(payment, registrations):
    """Tell the participant their transfer slip is waiting for verification."""
    try:
        email, name = get_recipient(payment)
        if not email or not registrations:
            return False
        return _safe_send(
            email,
            f"Registration Received — Awaiting Payment Verification ({payment.order_id})",
            "emails/bank_transfer_pending.html",
            {
                "user_name": name,
                "payment": payment,
                "order_id": payment.order_id,
                "entries": [_registration_context(reg) for reg in registrations],
            },
        )
    except Exception as e:
        logger.error(f"Bank transfer pending email failed for {payment.order_id}: {e}")
        return False


def send_payment_verified_email(payment, registration):
    try:
        email, name = get_recipient(payment)
        if not email:
            return False
        context = dict(
            _registration_context(registration),
            user_name=name,
            payment=payment,
            order_id=payment.order_id,
        )
        return _safe_send(
            email,
            f"Payment Verified — {registration.competition.title}",
            "emails/payment_verified.html",
            context,
        )
    except Exception as e:
        logger.error(f"Payment verified email failed for {payment.order_id}: {e}")
        return False


def send_payment_rejected_email(payment, registration, reason):
    try:
        email, name = get_recipient(payment)
        if not email:
            return False
        context = dict(
            _registration_context(registration),
            user_name=name,
            payment=payment,
            order_id=payment.order_id,
            reject_reason=reason,
        )
        return _safe_send(
            email,
            f"Payment Could Not Be Verified — {registration.competition.title}",
            "emails/payment_rejected.html",
            context,
        )
    except Exception as e:
        logger.error(f"Payment rejected email failed for {payment.order_id}: {e}")
        return False
