"""Admin blueprint — /api/admin/competitions/*

Bank-transfer verification and registration reporting.
All routes protected by @admin_required decorator.

Route Map:
  POST /api/admin/competitions/verify-payment   — approve / reject a bank transfer
  POST /api/admin/competitions/revert-payment   — send a payment back to PENDING
  GET  /api/admin/competitions/registrations    — list (?status=&environment=)
  GET  /api/admin/competitions/payment-stats    — COMPLETED totals per environment
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user

from archalley.decorators import admin_required
from archalley.exceptions import PaymentNotFoundError
from archalley.extensions import db
from archalley.services import admin_service, payment_service

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin/competitions")


@admin_bp.route("/verify-payment", methods=["POST"])
@admin_required
def verify_payment():
    body = request.get_json(silent=True) or {}
    payment_id = body.get("paymentId")
    registration_id = body.get("registrationId")
    if not payment_id or not registration_id or not isinstance(body.get("approve"), bool):
        return jsonify({"success": False, "error": "paymentId, registrationId and approve are required"}), 400

    try:
        payment = payment_service.verify_bank_transfer(
            payment_id,
            registration_id,
            approve=body["approve"],
            admin_user=current_user,
            reject_reason=body.get("rejectReason"),
        )
    except PaymentNotFoundError as e:
        return jsonify({"success": False, "error": str(e)}), 404
    except ValueError as e:
        db.session.rollback()
        return jsonify({"success": False, "error": str(e)}), 400

    logger.info(
        f"Admin {current_user.email} {'approved' if body['approve'] else 'rejected'} "
        f"payment {payment.order_id}"
    )
    return jsonify({
        "success": True,
        "message": f"Payment {'approved' if body['approve'] else 'rejected'} successfully",
        "status": payment.status,
    })


@admin_bp.route("/revert-payment", methods=["POST"])
@admin_required
def revert_payment():
    body = request.get_json(silent=True) or {}
    payment_id = body.get("paymentId")
    registration_id = body.get("registrationId")
    if not payment_id or not registration_id:
        return jsonify({"success": False, "error": "paymentId and registrationId are required"}), 400

    try:
        payment = payment_service.revert_payment(
            payment_id,
            registration_id,
            admin_user=current_user,
            revert_reason=body.get("revertReason"),
        )
    except PaymentNotFoundError as e:
        return jsonify({"success": False, "error": str(e)}), 404
    except ValueError as e:
        db.session.rollback()
        return jsonify({"success": False, "error": str(e)}), 400

    logger.info(f"Admin {current_user.email} reverted payment {payment.order_id} to PENDING")
    return jsonify({"success": True, "status": payment.status})


@admin_bp.route("/registrations")
@admin_required
def registrations():
    try:
        results = admin_service.list_registrations(
            status=request.args.get("status") or None,
            environment=request.args.get("environment") or None,
        )
    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400

    return jsonify({"success": True, "count": len(results), "registrations": results})


@admin_bp.route("/payment-stats")
@admin_required
def payment_stats():
    return jsonify({"success": True, "stats": admin_service.payment_environment_stats()})
