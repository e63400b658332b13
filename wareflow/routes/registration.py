# Overview: Flask API routes for registration codes and self-registration.

# wareflow/routes/registration.py
"""
Registration API Routes

DESIGN:
- The owner issues single-use codes bound to a role (and optionally a
  home warehouse)
- New parties verify and redeem a code without actor headers; the
  identity service hashes credentials before they reach this API
"""

from flask import Blueprint, jsonify, g, current_app

from ..decorators import json_body, require_actor
from ..errors import ServiceError
from ..services import registration_service


registration_bp = Blueprint("registration", __name__, url_prefix="/api")


def _error(e: ServiceError):
    return jsonify(e.to_dict()), e.http_status


@registration_bp.get("/registration-codes")
@require_actor
def list_codes_route():
    try:
        codes = registration_service.list_registration_codes(g.actor)
        return jsonify({"codes": [c.to_dict() for c in codes]}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list registration codes")
        return jsonify({"error": "Internal server error"}), 500


@registration_bp.post("/registration-codes")
@require_actor
def generate_code_route():
    """Request body: {"role": "dealer", "warehouse_id": 1 (optional)}"""
    try:
        data = json_body()
        code = registration_service.generate_registration_code(
            g.actor, data.get("role"), data.get("warehouse_id")
        )
        return jsonify({"code": code.to_dict()}), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to generate registration code")
        return jsonify({"error": "Internal server error"}), 500


@registration_bp.post("/registration-codes/verify")
def verify_code_route():
    """Request body: {"code": "AB12CD34"}"""
    try:
        code = registration_service.verify_registration_code(json_body().get("code"))
        return jsonify({"valid": True, "role": code.role, "warehouse_id": code.warehouse_id}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to verify registration code")
        return jsonify({"error": "Internal server error"}), 500


@registration_bp.post("/register")
def register_route():
    """
    Request body:
    {
        "code": "AB12CD34",
        "role": "dealer",
        "profile": {"name": "...", "mobile_number": "...", "password_hash": "..."}
    }
    """
    try:
        data = json_body()
        party = registration_service.register_with_code(data.get("code"), data.get("role"), data.get("profile"))
        return jsonify({"role": data.get("role"), "party": party.to_dict()}), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to register")
        return jsonify({"error": "Internal server error"}), 500
