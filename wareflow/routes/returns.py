# Overview: Flask API routes for returns; parses input and returns JSON responses.

# wareflow/routes/returns.py
"""
Return API Routes

DESIGN:
- Returns are filed by any role against one item and quantity
- Approval adds the quantity back to the warehouse's stock; rejecting an
  approved return takes it out again
- POST /bulk-status applies one status to many returns independently

SECURITY:
- Only owner and warehouse actors approve or reject
- Dealers and salesmen see their own returns only
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import json_body, require_actor
from ..errors import ServiceError
from ..services import return_service
from ..validation import ReturnInput


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


def _error(e: ServiceError):
    return jsonify(e.to_dict()), e.http_status


@returns_bp.get("")
@require_actor
def list_returns_route():
    """Query params: warehouse_id, dealer_id, salesman_id, item_id, original_order_id, status, search."""
    try:
        filters = {
            key: request.args.get(key)
            for key in (
                "warehouse_id", "dealer_id", "salesman_id", "item_id",
                "original_order_id", "status", "search",
            )
        }
        returns = return_service.list_returns(g.actor, filters)
        return jsonify({"returns": [r.to_dict() for r in returns]}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list returns")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("")
@require_actor
def create_return_route():
    """
    Request body:
    {
        "warehouse_id": 1,
        "item_id": 2,
        "quantity": 3,
        "dealer_id": 4,            (or salesman_id)
        "original_order_id": 5,    (optional)
        "reason": "Damaged"        (optional)
    }

    Returns:
        201: Return created with pending status
    """
    try:
        data = ReturnInput.from_payload(json_body())
        return_order = return_service.create_return(g.actor, data)
        return jsonify({"return": return_order.to_dict()}), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/bulk-status")
@require_actor
def bulk_status_route():
    """Request body: {"return_ids": [1, 2, 3], "status": "approved"}"""
    try:
        data = json_body()
        result = return_service.bulk_update_return_status(g.actor, data.get("return_ids"), data.get("status"))
        return jsonify(result), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to bulk update return status")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/<int:return_id>")
@require_actor
def get_return_route(return_id: int):
    try:
        return_order = return_service.get_return(g.actor, return_id)
        return jsonify({"return": return_order.to_dict()}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to get return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.put("/<int:return_id>")
@require_actor
def update_return_route(return_id: int):
    try:
        data = ReturnInput.from_payload(json_body())
        return_order = return_service.update_return(g.actor, return_id, data)
        return jsonify({"return": return_order.to_dict()}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.patch("/<int:return_id>/status")
@require_actor
def update_return_status_route(return_id: int):
    """Request body: {"status": "approved" | "rejected"}"""
    try:
        data = json_body()
        return_order = return_service.update_return_status(g.actor, return_id, data.get("status"))
        return jsonify({"return": return_order.to_dict()}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update return status")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.delete("/<int:return_id>")
@require_actor
def delete_return_route(return_id: int):
    try:
        return_service.delete_return(g.actor, return_id)
        return jsonify({"deleted": True}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to delete return")
        return jsonify({"error": "Internal server error"}), 500
