# Overview: Flask API routes for items, warehouses and trading parties.

# wareflow/routes/catalog.py
"""
Catalog API Routes

SECURITY:
- Item listing is visible to every role
- Item, warehouse, dealer and salesman administration is owner only
- Dealer and salesman listings are owner and warehouse only; a warehouse
  sees the parties homed with it
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import json_body, require_actor
from ..errors import ServiceError
from ..services import catalog_service
from ..validation import ItemInput


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


def _error(e: ServiceError):
    return jsonify(e.to_dict()), e.http_status


# =============================================================================
# ITEMS
# =============================================================================

@catalog_bp.get("/items")
@require_actor
def list_items_route():
    """Query params: status, search."""
    try:
        items = catalog_service.list_items(status=request.args.get("status"), search=request.args.get("search"))
        return jsonify({"items": [i.to_dict() for i in items]}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list items")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/items")
@require_actor
def create_item_route():
    """Request body: {"name": "Cement 50kg", "price_cents": 1000, "description": "..."}"""
    try:
        item = catalog_service.create_item(g.actor, ItemInput.from_payload(json_body()))
        return jsonify({"item": item.to_dict()}), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create item")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/items/<int:item_id>")
@require_actor
def get_item_route(item_id: int):
    try:
        item = catalog_service.get_item(item_id)
        return jsonify({"item": item.to_dict()}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to get item")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.put("/items/<int:item_id>")
@require_actor
def update_item_route(item_id: int):
    try:
        item = catalog_service.update_item(g.actor, item_id, ItemInput.from_payload(json_body()))
        return jsonify({"item": item.to_dict()}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update item")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/items/<int:item_id>/status")
@require_actor
def item_status_route(item_id: int):
    """Request body: {"status": "active" | "inactive"}"""
    try:
        item = catalog_service.set_item_status(g.actor, item_id, json_body().get("status"))
        return jsonify({"item": item.to_dict()}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to change item status")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/items/bulk-prices")
@require_actor
def bulk_prices_route():
    """Request body: {"updates": [{"item_id": 1, "price_cents": 1200}, ...]}"""
    try:
        items = catalog_service.bulk_update_prices(g.actor, json_body().get("updates"))
        return jsonify({"items": [i.to_dict() for i in items]}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to bulk update prices")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# WAREHOUSES
# =============================================================================

@catalog_bp.get("/warehouses")
@require_actor
def list_warehouses_route():
    try:
        warehouses = catalog_service.list_warehouses(status=request.args.get("status"))
        return jsonify({"warehouses": [w.to_dict() for w in warehouses]}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list warehouses")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/warehouses")
@require_actor
def create_warehouse_route():
    """Request body: {"name", "username", "address"?, "pincode"?, "password_hash"?}"""
    try:
        data = json_body()
        warehouse = catalog_service.create_warehouse(
            g.actor,
            name=data.get("name"),
            username=data.get("username"),
            address=data.get("address"),
            pincode=data.get("pincode"),
            password_hash=data.get("password_hash"),
        )
        return jsonify({"warehouse": warehouse.to_dict()}), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create warehouse")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.put("/warehouses/<int:warehouse_id>")
@require_actor
def update_warehouse_route(warehouse_id: int):
    """Request body: any of {"name", "address", "pincode"}"""
    try:
        warehouse = catalog_service.update_warehouse(g.actor, warehouse_id, json_body())
        return jsonify({"warehouse": warehouse.to_dict()}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update warehouse")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/warehouses/<int:warehouse_id>/status")
@require_actor
def warehouse_status_route(warehouse_id: int):
    try:
        warehouse = catalog_service.set_warehouse_status(g.actor, warehouse_id, json_body().get("status"))
        return jsonify({"warehouse": warehouse.to_dict()}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to change warehouse status")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/warehouses/<int:warehouse_id>")
@require_actor
def delete_warehouse_route(warehouse_id: int):
    try:
        catalog_service.delete_warehouse(g.actor, warehouse_id)
        return jsonify({"deleted": True}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to delete warehouse")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# DEALERS / SALESMEN
# =============================================================================

@catalog_bp.post("/dealers")
@require_actor
def create_dealer_route():
    try:
        data = json_body()
        dealer = catalog_service.create_dealer(
            g.actor,
            name=data.get("name"),
            mobile_number=data.get("mobile_number"),
            agency_name=data.get("agency_name"),
            address=data.get("address"),
            pincode=data.get("pincode"),
            warehouse_id=data.get("warehouse_id"),
            password_hash=data.get("password_hash"),
        )
        return jsonify({"dealer": dealer.to_dict()}), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create dealer")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/salesmen")
@require_actor
def create_salesman_route():
    try:
        data = json_body()
        salesman = catalog_service.create_salesman(
            g.actor,
            name=data.get("name"),
            mobile_number=data.get("mobile_number"),
            warehouse_id=data.get("warehouse_id"),
            password_hash=data.get("password_hash"),
        )
        return jsonify({"salesman": salesman.to_dict()}), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create salesman")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/dealers")
@require_actor
def list_dealers_route():
    """Query params: status, warehouse_id."""
    try:
        parties = catalog_service.list_dealers(
            g.actor,
            status=request.args.get("status"), warehouse_id=request.args.get("warehouse_id"),
        )
        return jsonify({"dealers": [p.to_dict() for p in parties]}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list dealers")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.put("/dealers/<int:dealer_id>")
@require_actor
def update_dealer_route(dealer_id: int):
    try:
        dealer = catalog_service.update_dealer(g.actor, dealer_id, json_body())
        return jsonify({"dealer": dealer.to_dict()}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update dealer")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/dealers/<int:dealer_id>/status")
@require_actor
def dealer_status_route(dealer_id: int):
    try:
        dealer = catalog_service.set_dealer_status(g.actor, dealer_id, json_body().get("status"))
        return jsonify({"dealer": dealer.to_dict()}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to change dealer status")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/dealers/<int:dealer_id>")
@require_actor
def delete_dealer_route(dealer_id: int):
    try:
        catalog_service.delete_dealer(g.actor, dealer_id)
        return jsonify({"deleted": True}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to delete dealer")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/salesmen")
@require_actor
def list_salesmen_route():
    """Query params: status, warehouse_id."""
    try:
        parties = catalog_service.list_salesmen(
            g.actor,
            status=request.args.get("status"), warehouse_id=request.args.get("warehouse_id"),
        )
        return jsonify({"salesmen": [p.to_dict() for p in parties]}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list salesmen")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.put("/salesmen/<int:salesman_id>")
@require_actor
def update_salesman_route(salesman_id: int):
    try:
        salesman = catalog_service.update_salesman(g.actor, salesman_id, json_body())
        return jsonify({"salesman": salesman.to_dict()}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update salesman")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/salesmen/<int:salesman_id>/status")
@require_actor
def salesman_status_route(salesman_id: int):
    try:
        salesman = catalog_service.set_salesman_status(g.actor, salesman_id, json_body().get("status"))
        return jsonify({"salesman": salesman.to_dict()}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to change salesman status")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/salesmen/<int:salesman_id>")
@require_actor
def delete_salesman_route(salesman_id: int):
    try:
        catalog_service.delete_salesman(g.actor, salesman_id)
        return jsonify({"deleted": True}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to delete salesman")
        return jsonify({"error": "Internal server error"}), 500
