"""Checkout blueprint — POST /api/competitions/checkout

Turns the active cart into a PENDING payment. Card payments get the
PayHere form fields back; the browser posts them to the gateway.
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from archalley.extensions import db, limiter
from archalley.services.checkout_service import CheckoutError, start_checkout

logger = logging.getLogger(__name__)

checkout_bp = Blueprint("checkout", __name__)


@checkout_bp.route("/api/competitions/checkout", methods=["POST"])
@limiter.limit("10 per minute")
@login_required
def checkout():
    try:
        result = start_checkout(current_user.id, request.get_json(silent=True))
    except CheckoutError as e:
        db.session.rollback()
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception as e:
        db.session.rollback()
        logger.error(f"Checkout error for user {current_user.id}: {e}", exc_info=True)
        return jsonify({"success": False, "error": "Failed to create checkout"}), 500

    return jsonify(dict(result, success=True))
