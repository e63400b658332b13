from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any

from .errors import ValidationError
from .time_utils import parse_iso_date


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

INVENTORY_MODES = ("set", "add", "subtract")
PAYMENT_METHODS = ("cash", "cheque", "bank_transfer", "upi", "card", "other")
PAYMENT_RECORD_STATUSES = ("pending", "paid", "failed")


def coerce_int(value: Any, field_name: str, *, required: bool = True) -> int | None:
    """
    Strict integer coercion for request values.

    Accepts ints and plain digit strings; rejects bools, floats,
    decimals and scientific notation.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field_name} is required")
        return None

    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{field_name} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if 'e' in stripped.lower():
            raise ValidationError(f"{field_name} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field_name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field_name} must be an integer")
    raise ValidationError(f"{field_name} must be an integer")


def require_positive(value: int, field_name: str) -> int:
    if value <= 0:
        raise ValidationError(f"{field_name} must be a positive integer")
    return value


def require_non_negative(value: int, field_name: str) -> int:
    if value < 0:
        raise ValidationError(f"{field_name} must be a non-negative integer")
    return value


def require_choice(value: Any, field_name: str, choices) -> str:
    if value not in choices:
        raise ValidationError(f"Invalid {field_name}: {value!r}. Must be one of {', '.join(choices)}")
    return value


def optional_text(value: Any, max_length: int | None = None, field_name: str = "value") -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field_name} exceeds max length {max_length}")
    return text


def _payload(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def _parse_date(value: Any, field_name: str) -> date | None:
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an ISO-8601 date")


# =============================================================================
# OPERATION INPUTS
# =============================================================================

@dataclass(frozen=True)
class OrderLineInput:
    item_id: int
    quantity: int

    @classmethod
    def from_payload(cls, payload: Any) -> "OrderLineInput":
        data = _payload(payload)
        item_id = coerce_int(data.get("item_id"), "item_id")
        quantity = require_positive(coerce_int(data.get("quantity"), "quantity"), "quantity")
        return cls(item_id=item_id, quantity=quantity)


def parse_order_lines(raw_lines: Any) -> list[OrderLineInput]:
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("Order requires a non-empty list of lines")
    return [OrderLineInput.from_payload(raw) for raw in raw_lines]


@dataclass(frozen=True)
class OrderInput:
    lines: list[OrderLineInput]
    warehouse_id: int | None = None
    dealer_id: int | None = None
    salesman_id: int | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "OrderInput":
        data = _payload(payload)
        return cls(
            lines=parse_order_lines(data.get("lines", data.get("items"))),
            warehouse_id=coerce_int(data.get("warehouse_id"), "warehouse_id", required=False),
            dealer_id=coerce_int(data.get("dealer_id"), "dealer_id", required=False),
            salesman_id=coerce_int(data.get("salesman_id"), "salesman_id", required=False),
        )


@dataclass(frozen=True)
class InventoryUpdate:
    warehouse_id: int
    item_id: int
    quantity: int
    mode: str = "set"

    def __post_init__(self):
        require_choice(self.mode, "mode", INVENTORY_MODES)
        require_non_negative(self.quantity, "quantity")

    @classmethod
    def from_payload(cls, payload: Any) -> "InventoryUpdate":
        data = _payload(payload)
        return cls(
            warehouse_id=coerce_int(data.get("warehouse_id"), "warehouse_id"),
            item_id=coerce_int(data.get("item_id"), "item_id"),
            quantity=coerce_int(data.get("quantity"), "quantity"),
            mode=data.get("mode", data.get("type", "set")),
        )


@dataclass(frozen=True)
class PaymentInput:
    amount_cents: int
    method: str
    order_id: int | None = None
    status: str = "pending"
    transaction_id: str | None = None
    payment_date: date | None = None
    due_date: date | None = None
    notes: str | None = None

    def __post_init__(self):
        require_positive(self.amount_cents, "amount_cents")
        require_choice(self.method, "method", PAYMENT_METHODS)
        require_choice(self.status, "status", PAYMENT_RECORD_STATUSES)

    @classmethod
    def from_payload(cls, payload: Any, *, require_order: bool = True) -> "PaymentInput":
        data = _payload(payload)
        return cls(
            order_id=coerce_int(data.get("order_id"), "order_id", required=require_order),
            amount_cents=coerce_int(data.get("amount_cents"), "amount_cents"),
            method=data.get("method"),
            status=data.get("status") or "pending",
            transaction_id=optional_text(data.get("transaction_id"), 128, "transaction_id"),
            payment_date=_parse_date(data.get("payment_date"), "payment_date"),
            due_date=_parse_date(data.get("due_date"), "due_date"),
            notes=optional_text(data.get("notes")),
        )


@dataclass(frozen=True)
class ReturnInput:
    item_id: int
    quantity: int
    warehouse_id: int | None = None
    dealer_id: int | None = None
    salesman_id: int | None = None
    original_order_id: int | None = None
    reason: str | None = None

    def __post_init__(self):
        require_positive(self.quantity, "quantity")

    @classmethod
    def from_payload(cls, payload: Any) -> "ReturnInput":
        data = _payload(payload)
        return cls(
            item_id=coerce_int(data.get("item_id"), "item_id"),
            quantity=coerce_int(data.get("quantity"), "quantity"),
            warehouse_id=coerce_int(data.get("warehouse_id"), "warehouse_id", required=False),
            dealer_id=coerce_int(data.get("dealer_id"), "dealer_id", required=False),
            salesman_id=coerce_int(data.get("salesman_id"), "salesman_id", required=False),
            original_order_id=coerce_int(data.get("original_order_id"), "original_order_id", required=False),
            reason=optional_text(data.get("reason")),
        )


@dataclass(frozen=True)
class ItemInput:
    name: str
    price_cents: int
    description: str | None = None

    def __post_init__(self):
        if not self.name or not str(self.name).strip():
            raise ValidationError("name cannot be blank")
        require_non_negative(self.price_cents, "price_cents")
        if self.price_cents > MAX_PRICE_CENTS:
            raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS}")

    @classmethod
    def from_payload(cls, payload: Any) -> "ItemInput":
        data = _payload(payload)
        return cls(
            name=optional_text(data.get("name"), 255, "name") or "",
            price_cents=coerce_int(data.get("price_cents"), "price_cents"),
            description=optional_text(data.get("description")),
        )


@dataclass(frozen=True)
class PriceUpdate:
    item_id: int
    price_cents: int

    def __post_init__(self):
        require_non_negative(self.price_cents, "price_cents")
        if self.price_cents > MAX_PRICE_CENTS:
            raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS}")

    @classmethod
    def from_payload(cls, payload: Any) -> "PriceUpdate":
        data = _payload(payload)
        return cls(
            item_id=coerce_int(data.get("item_id", data.get("id")), "item_id"),
            price_cents=coerce_int(data.get("price_cents"), "price_cents"),
        )
