# Overview: Flask API routes for the inventory ledger; parses input and returns JSON responses.

# wareflow/routes/inventory.py
"""
Inventory API Routes

DESIGN:
- Quantities are per (warehouse, item); an absent record reads as 0
- PUT applies one adjustment (set / add / subtract, clamped at 0)
- POST /bulk applies many adjustments all-or-nothing
- POST /transfer moves stock between warehouses (owner only, strict)

SECURITY:
- Warehouse actors only write (and read) their own warehouse
- Dealers and salesmen may read stock levels but never write them
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import json_body, require_actor
from ..errors import ServiceError, ValidationError
from ..services import inventory_service
from ..validation import InventoryUpdate, coerce_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _error(e: ServiceError):
    return jsonify(e.to_dict()), e.http_status


# =============================================================================
# READS
# =============================================================================

@inventory_bp.get("")
@require_actor
def list_inventory_route():
    """
    List inventory records visible to the actor.

    Query params: warehouse_id, search, low_stock (quantity <= value)
    """
    try:
        records = inventory_service.list_inventory(
            g.actor,
            warehouse_id=coerce_int(request.args.get("warehouse_id"), "warehouse_id", required=False),
            search=request.args.get("search"),
            low_stock=coerce_int(request.args.get("low_stock"), "low_stock", required=False),
        )
        return jsonify({"inventory": [r.to_dict() for r in records]}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/low-stock")
@require_actor
def low_stock_route():
    try:
        records = inventory_service.list_low_stock(
            g.actor,
            threshold=request.args.get("threshold"),
            warehouse_id=coerce_int(request.args.get("warehouse_id"), "warehouse_id", required=False),
        )
        return jsonify({"inventory": [r.to_dict() for r in records]}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list low stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:warehouse_id>/<int:item_id>")
@require_actor
def get_quantity_route(warehouse_id: int, item_id: int):
    try:
        quantity = inventory_service.get_quantity(g.actor, warehouse_id, item_id)
        return jsonify({"warehouse_id": warehouse_id, "item_id": item_id, "quantity": quantity}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to get inventory quantity")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:warehouse_id>/<int:item_id>/availability")
@require_actor
def availability_route(warehouse_id: int, item_id: int):
    """Query params: quantity (required quantity)."""
    try:
        result = inventory_service.check_availability(
            g.actor, warehouse_id, item_id, request.args.get("quantity")
        )
        return jsonify(result), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to check availability")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:warehouse_id>/<int:item_id>/history")
@require_actor
def history_route(warehouse_id: int, item_id: int):
    """Query params: days (default 30)."""
    try:
        movements = inventory_service.list_movements(
            g.actor, warehouse_id, item_id, days=request.args.get("days", 30)
        )
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load inventory history")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# WRITES
# =============================================================================

@inventory_bp.put("/<int:warehouse_id>/<int:item_id>")
@require_actor
def update_quantity_route(warehouse_id: int, item_id: int):
    """
    Apply one adjustment.

    Request body:
    {
        "quantity": 10,
        "type": "set" | "add" | "subtract"   (default: set)
    }
    """
    try:
        data = json_body()
        update = InventoryUpdate.from_payload({
            **data,
            "warehouse_id": warehouse_id,
            "item_id": item_id,
        })
        quantity = {
            "set": inventory_service.set_quantity,
            "add": inventory_service.add_quantity,
            "subtract": inventory_service.subtract_quantity,
        }[update.mode](g.actor, update.warehouse_id, update.item_id, update.quantity)
        return jsonify({"warehouse_id": warehouse_id, "item_id": item_id, "quantity": quantity}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/bulk")
@require_actor
def bulk_update_route():
    """
    Request body:
    {
        "updates": [{"warehouse_id": 1, "item_id": 2, "quantity": 5, "type": "add"}, ...]
    }
    """
    try:
        data = json_body()
        raw_updates = data.get("updates")
        if not isinstance(raw_updates, list) or not raw_updates:
            raise ValidationError("updates must be a non-empty list")
        updates = [InventoryUpdate.from_payload(raw) for raw in raw_updates]
        results = inventory_service.bulk_update(g.actor, updates)
        return jsonify({"results": results}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to bulk update inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/transfer")
@require_actor
def transfer_route():
    """
    Request body:
    {
        "from_warehouse_id": 1,
        "to_warehouse_id": 2,
        "item_id": 3,
        "quantity": 5
    }
    """
    try:
        data = json_body()
        result = inventory_service.transfer(
            g.actor,
            data.get("from_warehouse_id"),
            data.get("to_warehouse_id"),
            data.get("item_id"),
            data.get("quantity"),
        )
        return jsonify({"transfer": result}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to transfer inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.delete("/<int:warehouse_id>/<int:item_id>")
@require_actor
def delete_record_route(warehouse_id: int, item_id: int):
    try:
        inventory_service.delete_inventory_record(g.actor, warehouse_id, item_id)
        return jsonify({"deleted": True}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to delete inventory record")
        return jsonify({"error": "Internal server error"}), 500
