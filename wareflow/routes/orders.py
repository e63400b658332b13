# Overview: Flask API routes for orders; parses input and returns JSON responses.

# wareflow/routes/orders.py
"""
Order API Routes

DESIGN:
- Orders are placed by any role; the actor's role decides which parties
  it may name (see order_service)
- Lines carry the item price at placement time
- PATCH /<id>/status moves transport status; payment_status may be
  overridden by owner/warehouse through the same endpoint, in the same
  transaction
- POST /bulk-status applies one status change to many orders independently

SECURITY:
- Every lookup is scoped: out-of-scope orders read as 404
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import json_body, require_actor
from ..errors import ServiceError
from ..services import order_service, payment_service, return_service
from ..validation import OrderInput, coerce_int


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _error(e: ServiceError):
    return jsonify(e.to_dict()), e.http_status


@orders_bp.get("")
@require_actor
def list_orders_route():
    """
    Query params: warehouse_id, dealer_id, salesman_id, order_type,
    transport_status, payment_status, search
    """
    try:
        filters = {
            key: request.args.get(key)
            for key in (
                "warehouse_id", "dealer_id", "salesman_id", "order_type",
                "transport_status", "payment_status", "search",
            )
        }
        orders = order_service.list_orders(g.actor, filters)
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("")
@require_actor
def create_order_route():
    """
    Request body:
    {
        "warehouse_id": 1,
        "dealer_id": 2,          (required unless the actor is the dealer)
        "salesman_id": 3,        (optional)
        "lines": [{"item_id": 4, "quantity": 3}, ...]
    }

    Returns:
        201: Order created with its lines
    """
    try:
        data = OrderInput.from_payload(json_body())
        order = order_service.create_order(g.actor, data)
        return jsonify({"order": order.to_dict(include_lines=True)}), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_actor
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(g.actor, order_id)
        balance = payment_service.get_order_balance(g.actor, order_id)
        returns = return_service.list_returns_for_order(g.actor, order_id)
        can_modify, reason = order_service.can_modify_order(g.actor, order_id)
        return jsonify({
            "order": order.to_dict(include_lines=True),
            "balance": balance,
            "returns": [r.to_dict() for r in returns],
            "can_modify": can_modify,
            "can_modify_reason": reason,
        }), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>")
@require_actor
def update_order_route(order_id: int):
    """Replace the lines of a pending order: {"lines": [...], "dealer_id"?, "salesman_id"?}."""
    try:
        data = json_body()
        order = order_service.update_order(
            g.actor,
            order_id,
            data.get("lines", data.get("items")),
            dealer_id=coerce_int(data.get("dealer_id"), "dealer_id", required=False),
            salesman_id=coerce_int(data.get("salesman_id"), "salesman_id", required=False),
        )
        return jsonify({"order": order.to_dict(include_lines=True)}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/status")
@require_actor
def update_order_status_route(order_id: int):
    """
    Request body (either or both, applied together or not at all):
    {
        "transport_status": "dispatched",
        "payment_status": "paid"
    }
    """
    try:
        data = json_body()
        order = order_service.update_order_status(
            g.actor,
            order_id,
            transport_status=data.get("transport_status") or None,
            payment_status=data.get("payment_status") or None,
        )
        return jsonify({"order": order.to_dict()}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/bulk-status")
@require_actor
def bulk_status_route():
    """Request body: {"order_ids": [1, 2], "transport_status"?: "dispatched", "payment_status"?: "paid"}"""
    try:
        data = json_body()
        result = order_service.bulk_update_order_status(
            g.actor,
            data.get("order_ids"),
            transport_status=data.get("transport_status") or None,
            payment_status=data.get("payment_status") or None,
        )
        return jsonify(result), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to bulk update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/returnable-items")
@require_actor
def returnable_items_route(order_id: int):
    try:
        items = return_service.returnable_items(g.actor, order_id)
        return jsonify({"items": items}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to get returnable items")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>")
@require_actor
def delete_order_route(order_id: int):
    try:
        order_service.delete_order(g.actor, order_id)
        return jsonify({"deleted": True}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to delete order")
        return jsonify({"error": "Internal server error"}), 500
