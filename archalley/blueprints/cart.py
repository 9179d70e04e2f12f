"""Cart blueprint — /api/competitions/cart*

JSON API used by the registration form. All routes require login.
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from archalley.extensions import db
from archalley.services import cart_service

logger = logging.getLogger(__name__)

cart_bp = Blueprint("cart", __name__, url_prefix="/api/competitions/cart")


@cart_bp.route("", methods=["GET"])
@login_required
def get_cart():
    """Return the user's active cart (expired carts are closed and hidden)."""
    cart = cart_service.get_active_cart(current_user.id)
    if cart is not None and cart_service.is_cart_expired(cart):
        cart.status = "EXPIRED"
        db.session.commit()
        cart = None
    return jsonify(dict(cart_service.serialize_cart(cart), success=True))


@cart_bp.route("/add", methods=["POST"])
@login_required
def add_to_cart():
    try:
        item = cart_service.add_item(current_user.id, request.get_json(silent=True))
    except LookupError as e:
        db.session.rollback()
        return jsonify({"success": False, "error": str(e)}), 404
    except ValueError as e:
        db.session.rollback()
        return jsonify({"success": False, "error": str(e)}), 400

    db.session.commit()
    cart = cart_service.get_active_cart(current_user.id)
    return jsonify({
        "success": True,
        "item": item.to_dict(),
        "cart": cart_service.serialize_cart(cart),
    }), 201


@cart_bp.route("/items/<item_id>", methods=["DELETE"])
@login_required
def remove_from_cart(item_id):
    try:
        cart_service.remove_item(current_user.id, item_id)
    except LookupError as e:
        return jsonify({"success": False, "error": str(e)}), 404
    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 409

    db.session.commit()
    cart = cart_service.get_active_cart(current_user.id)
    return jsonify(dict(cart_service.serialize_cart(cart), success=True))
