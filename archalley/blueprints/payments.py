"""Payments blueprint — PayHere notify webhook, return redirect, status pages.

Routes:
- POST /api/competitions/payment/notify           — gateway IPN (CSRF-exempt)
- GET  /api/competitions/payment/return           — browser lands here after checkout
- GET  /api/competitions/payment/status/<order_id> — JSON poll for the processing page
- GET  /competitions/payment/<outcome>/<order_id> — success / processing / failed pages
- GET  /competitions/payment/error                — generic error page

CSRF is exempted for this blueprint in create_app(). The notify endpoint
is authenticated by the md5sig field alone.
"""

import logging
from urllib.parse import urlencode

from flask import Blueprint, abort, jsonify, redirect, render_template, request

from archalley.exceptions import (
    InvalidSignatureError,
    MaterializationError,
    PaymentNotFoundError,
)
from archalley.extensions import db, limiter
from archalley.services import payment_service
from archalley.services.payhere_service import parse_notification

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__)

# Payment status -> outcome page
STATUS_PAGES = {
    "COMPLETED": "success",
    "PENDING": "processing",
    "PROCESSING": "processing",
    "FAILED": "failed",
    "CANCELLED": "failed",
}


def _error_redirect(message):
    return redirect(f"/competitions/payment/error?{urlencode({'message': message})}")


# ──────────────────────────────────────────────
# POST /api/competitions/payment/notify
# ──────────────────────────────────────────────

@payments_bp.route("/api/competitions/payment/notify", methods=["POST"])
@limiter.exempt
def payment_notify():
    """Receive a PayHere payment notification.

    1. Parse the form-encoded payload
    2. Look up the payment by order_id (404 if unknown)
    3. Verify md5sig (400 if it does not match)
    4. Apply the status code; success materializes registrations
    5. Return 200 so PayHere stops retrying

    A 5xx makes the gateway deliver the notification again, which is safe:
    materialization happens at most once per payment.
    """
    data = parse_notification(request.form)

    try:
        result = payment_service.process_notification(data)
    except PaymentNotFoundError:
        logger.warning(f"PayHere notify for unknown order {data.get('order_id')}")
        return jsonify({"error": "Payment not found"}), 404
    except InvalidSignatureError as e:
        logger.warning(f"PayHere notify rejected: {e}")
        return jsonify({"error": "Invalid signature"}), 400
    except MaterializationError as e:
        db.session.rollback()
        logger.error(f"PayHere notify could not materialize {data.get('order_id')}: {e}")
        return jsonify({"error": "Internal server error"}), 500
    except Exception as e:
        db.session.rollback()
        logger.error(f"PayHere notify failed for {data.get('order_id')}: {e}", exc_info=True)
        return jsonify({"error": "Internal server error"}), 500

    logger.info(f"PayHere notify for {data.get('order_id')} processed: {result}")
    return jsonify({"success": True}), 200


# ──────────────────────────────────────────────
# GET /api/competitions/payment/return?order_id=
# ──────────────────────────────────────────────

@payments_bp.route("/api/competitions/payment/return")
def payment_return():
    """Browser return from PayHere.

    Runs the fallback reconciliation when the notify webhook has not
    arrived, then redirects to the page matching the payment status.
    """
    order_id = request.args.get("order_id", "").strip()
    if not order_id:
        return _error_redirect("Missing order ID")

    try:
        payment = payment_service.reconcile_return(order_id)
    except PaymentNotFoundError:
        return _error_redirect("Payment not found")
    except Exception as e:
        db.session.rollback()
        logger.error(f"Payment return failed for {order_id}: {e}", exc_info=True)
        return _error_redirect("Failed to process payment return")

    page = STATUS_PAGES.get(payment.status)
    if page is None:
        return _error_redirect(f"Payment status: {payment.status}")
    return redirect(f"/competitions/payment/{page}/{order_id}")


# ──────────────────────────────────────────────
# GET /api/competitions/payment/status/<order_id>
# ──────────────────────────────────────────────

@payments_bp.route("/api/competitions/payment/status/<order_id>")
def payment_status(order_id):
    payment = payment_service.get_payment_by_order_id(order_id)
    if payment is None:
        return jsonify({"error": "Payment not found"}), 404

    registrations = payment.registrations.all()
    return jsonify({
        "orderId": payment.order_id,
        "status": payment.status,
        "registrationNumbers": [reg.registration_number for reg in registrations],
    })


# ──────────────────────────────────────────────
# Outcome pages
# ──────────────────────────────────────────────

@payments_bp.route("/competitions/payment/<outcome>/<order_id>")
def payment_outcome(outcome, order_id):
    if outcome not in ("success", "processing", "failed"):
        abort(404)

    payment = payment_service.get_payment_by_order_id(order_id)
    if payment is None:
        abort(404)

    return render_template(
        f"payments/{outcome}.html",
        payment=payment,
        registrations=payment.registrations.all(),
    )


@payments_bp.route("/competitions/payment/error")
def payment_error():
    message = request.args.get("message") or "Something went wrong with your payment."
    return render_template("payments/error.html", message=message)
