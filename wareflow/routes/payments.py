# Overview: Flask API routes for payments; parses input and returns JSON responses.

# wareflow/routes/payments.py
"""
Payment API Routes

DESIGN:
- Payments belong to exactly one order
- Every create/update/delete recomputes the order's payment_status in
  the same transaction

SECURITY:
- Owner and warehouse actors record and change payments
- Dealers and salesmen read payments on their own orders only
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import json_body, require_actor
from ..errors import ServiceError, ValidationError
from ..services import payment_service
from ..time_utils import parse_iso_date
from ..validation import PaymentInput


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _error(e: ServiceError):
    return jsonify(e.to_dict()), e.http_status


@payments_bp.get("")
@require_actor
def list_payments_route():
    """Query params: order_id, status, method."""
    try:
        payments = payment_service.list_payments(
            g.actor,
            order_id=request.args.get("order_id"),
            status=request.args.get("status"),
            method=request.args.get("method"),
        )
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list payments")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/overdue")
@require_actor
def overdue_payments_route():
    """Query params: as_of (YYYY-MM-DD, default today)."""
    try:
        try:
            as_of = parse_iso_date(request.args.get("as_of"))
        except ValueError:
            raise ValidationError("as_of must be an ISO-8601 date")
        payments = payment_service.list_overdue_payments(g.actor, today=as_of)
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list overdue payments")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("")
@require_actor
def record_payment_route():
    """
    Request body:
    {
        "order_id": 1,
        "amount_cents": 3000,
        "method": "cash",
        "status": "paid",              (optional, default: pending)
        "payment_date": "2024-05-01",  (optional, default: today)
        "due_date": "2024-05-15",      (optional)
        "transaction_id": "...",       (optional)
        "notes": "..."                 (optional)
    }
    """
    try:
        data = PaymentInput.from_payload(json_body())
        payment = payment_service.record_payment(g.actor, data)
        return jsonify({"payment": payment.to_dict(), "order_payment_status": payment.order.payment_status}), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/<int:payment_id>")
@require_actor
def get_payment_route(payment_id: int):
    try:
        payment = payment_service.get_payment(g.actor, payment_id)
        return jsonify({"payment": payment.to_dict()}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to get payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.put("/<int:payment_id>")
@require_actor
def update_payment_route(payment_id: int):
    try:
        data = PaymentInput.from_payload(json_body(), require_order=False)
        payment = payment_service.update_payment(g.actor, payment_id, data)
        return jsonify({"payment": payment.to_dict(), "order_payment_status": payment.order.payment_status}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.patch("/<int:payment_id>/status")
@require_actor
def update_payment_status_route(payment_id: int):
    """Request body: {"status": "pending" | "paid" | "failed"}"""
    try:
        data = json_body()
        payment = payment_service.update_payment_record_status(g.actor, payment_id, data.get("status"))
        return jsonify({"payment": payment.to_dict(), "order_payment_status": payment.order.payment_status}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update payment status")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.delete("/<int:payment_id>")
@require_actor
def delete_payment_route(payment_id: int):
    try:
        payment_service.delete_payment(g.actor, payment_id)
        return jsonify({"deleted": True}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to delete payment")
        return jsonify({"error": "Internal server error"}), 500
