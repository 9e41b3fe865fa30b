from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from stockpos.models.inventory import MOVEMENT_TYPES
from stockpos.models.sales import PAYMENT_CASH, PAYMENT_METHODS
from stockpos.time_utils import parse_iso_datetime


# Largest amount accepted for any price/paid amount field
MAX_AMOUNT = 999_999_999_999

# Largest single quantity accepted in one request line
MAX_QUANTITY = 1_000_000


class ValidationError(ValueError):
    """400-level input problem. details lists every offending field."""

    def __init__(self, message: str, details: list[dict] | None = None):
        super().__init__(message)
        self.details = details or []


class ConflictError(ValueError):
    """Business rule conflict (duplicate SKU, delete blocked by sales, ...)."""


class NotFoundError(LookupError):
    """Referenced entity does not exist."""


class _Errors:
    """Collects field errors so a request is rejected once, with all of them."""

    def __init__(self):
        self.items: list[dict] = []

    def add(self, field_name: str, message: str) -> None:
        self.items.append({"field": field_name, "message": message})

    def raise_if_any(self) -> None:
        if self.items:
            message = "; ".join(e["message"] for e in self.items)
            raise ValidationError(message, details=self.items)


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: JSON keys clients are allowed to set (security boundary)
    - required_on_create: JSON keys required for POST/PUT
    - aliases: JSON key -> column key (clients speak camelCase)
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    aliases: dict[str, str] = field(default_factory=dict)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_int(value: Any, name: str) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def _coerce_value(col, value: Any, name: str):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(value, name)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{name} must be true or false")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{name} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{name} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{name} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict keyed by column name.

    All problems are reported together in ValidationError.details.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors = _Errors()

    if not partial:
        for name in sorted(policy.required_on_create):
            if payload.get(name) is None:
                errors.add(name, f"{name} is required")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            errors.add(k, f"Field not allowed: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        if k not in policy.writable_fields:
            continue
        col_key = policy.aliases.get(k, k)
        col = cols[col_key]

        if raw is None:
            if not col.nullable and (partial or k not in policy.required_on_create):
                errors.add(k, f"{k} cannot be null")
            elif col.nullable:
                patch[col_key] = None
            continue

        try:
            val = _coerce_value(col, raw, k)
        except ValidationError as e:
            errors.add(k, str(e))
            continue

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                errors.add(k, f"{k} cannot be blank")
                continue

        # Optional text fields: "" means "clear"
        if isinstance(col.type, (String, Text)) and col.nullable and val == "":
            val = None

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                errors.add(k, f"{k} exceeds max length {col.type.length}")
                continue

        patch[col_key] = val

    errors.raise_if_any()
    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    """
    errors = _Errors()
    for col_key, name in (("selling_price", "sellingPrice"), ("buy_price", "buyPrice")):
        value = patch.get(col_key)
        if value is None:
            continue
        if value < 0:
            errors.add(name, f"{name} must be >= 0")
        elif value > MAX_AMOUNT:
            errors.add(name, f"{name} cannot exceed {MAX_AMOUNT}")

    stock = patch.get("stock")
    if stock is not None and stock < 0:
        errors.add("stock", "stock must be >= 0")

    errors.raise_if_any()


# ---------------------------------------------------------------------------
# Core operation request parsing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CheckoutLine:
    product_id: int
    qty: int
    unit_price: int

    @property
    def subtotal(self) -> int:
        return self.qty * self.unit_price


@dataclass(frozen=True)
class CheckoutRequest:
    items: tuple[CheckoutLine, ...]
    payment_method: str
    paid_amount: int | None

    @property
    def total_amount(self) -> int:
        return sum(line.subtotal for line in self.items)


@dataclass(frozen=True)
class MovementRequest:
    product_id: int
    type: str
    qty: int
    note: str | None = None
    reference_type: str | None = None
    reference_id: str | None = None


@dataclass(frozen=True)
class OpnameLine:
    product_id: int
    counted_qty: int


@dataclass(frozen=True)
class OpnameRequest:
    items: tuple[OpnameLine, ...]
    confirm_adjustment: bool


def _require_object(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def _read_int(
    source: dict,
    key: str,
    label: str,
    errors: _Errors,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
    required: bool = True,
) -> int | None:
    raw = source.get(key)
    if raw is None:
        if required:
            errors.add(label, f"{label} is required")
        return None
    try:
        value = _coerce_int(raw, label)
    except ValidationError as e:
        errors.add(label, str(e))
        return None
    if minimum is not None and value < minimum:
        if minimum == 1:
            errors.add(label, f"{label} must be greater than 0")
        else:
            errors.add(label, f"{label} must be >= {minimum}")
        return None
    if maximum is not None and value > maximum:
        errors.add(label, f"{label} cannot exceed {maximum}")
        return None
    return value


def _read_text(source: dict, key: str, errors: _Errors, max_length: int) -> str | None:
    raw = source.get(key)
    if raw is None:
        return None
    if not isinstance(raw, (str, int)) or isinstance(raw, bool):
        errors.add(key, f"{key} must be a string")
        return None
    value = str(raw).strip()
    if len(value) > max_length:
        errors.add(key, f"{key} exceeds max length {max_length}")
        return None
    return value or None


def _read_items(payload: dict, errors: _Errors) -> list[tuple[int, dict]]:
    items = payload.get("items")
    if not isinstance(items, list) or not items:
        errors.add("items", "items is required and must not be empty")
        return []
    rows = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            errors.add(f"items[{index}]", f"items[{index}] must be an object")
            continue
        rows.append((index, item))
    return rows


def parse_checkout_request(payload: Any) -> CheckoutRequest:
    """Validate a POST /api/sales body. No database access."""
    payload = _require_object(payload)
    errors = _Errors()

    lines = []
    for index, item in _read_items(payload, errors):
        product_id = _read_int(item, "productId", f"items[{index}].productId", errors, minimum=1)
        qty = _read_int(item, "qty", f"items[{index}].qty", errors, minimum=1, maximum=MAX_QUANTITY)
        unit_price = _read_int(item, "unitPrice", f"items[{index}].unitPrice", errors, minimum=1, maximum=MAX_AMOUNT)
        if product_id is not None and qty is not None and unit_price is not None:
            lines.append(CheckoutLine(product_id=product_id, qty=qty, unit_price=unit_price))

    payment_method = payload.get("paymentMethod")
    if payment_method not in PAYMENT_METHODS:
        errors.add("paymentMethod", "paymentMethod must be CASH or TRANSFER")

    paid_amount = None
    if payment_method == PAYMENT_CASH:
        paid_amount = _read_int(payload, "paidAmount", "paidAmount", errors, minimum=1, maximum=MAX_AMOUNT)

    errors.raise_if_any()

    request_obj = CheckoutRequest(
        items=tuple(lines),
        payment_method=payment_method,
        paid_amount=paid_amount,
    )
    if paid_amount is not None and paid_amount < request_obj.total_amount:
        raise ValidationError(
            "paidAmount is less than the total amount",
            details=[{
                "field": "paidAmount",
                "message": f"paidAmount must be at least {request_obj.total_amount}",
            }],
        )
    return request_obj


def parse_movement_request(payload: Any) -> MovementRequest:
    """Validate a POST /api/stock-movements body. No database access."""
    payload = _require_object(payload)
    errors = _Errors()

    product_id = _read_int(payload, "productId", "productId", errors, minimum=1)

    movement_type = payload.get("type")
    if movement_type is None:
        errors.add("type", "type is required")
    elif movement_type not in MOVEMENT_TYPES:
        errors.add("type", "type must be IN, OUT, or ADJUST")

    qty = _read_int(payload, "qty", "qty", errors, minimum=1, maximum=MAX_QUANTITY)
    note = _read_text(payload, "note", errors, 255)
    reference_type = _read_text(payload, "referenceType", errors, 32)
    reference_id = _read_text(payload, "referenceId", errors, 64)

    errors.raise_if_any()
    return MovementRequest(
        product_id=product_id,
        type=movement_type,
        qty=qty,
        note=note,
        reference_type=reference_type,
        reference_id=reference_id,
    )


def parse_opname_request(payload: Any) -> OpnameRequest:
    """Validate a POST /api/stock-opname body. No database access."""
    payload = _require_object(payload)
    errors = _Errors()

    lines = []
    seen: set[int] = set()
    for index, item in _read_items(payload, errors):
        product_id = _read_int(item, "productId", f"items[{index}].productId", errors, minimum=1)
        counted = _read_int(item, "countedQty", f"items[{index}].countedQty", errors, minimum=0, maximum=MAX_QUANTITY)
        if product_id is not None and product_id in seen:
            errors.add(f"items[{index}].productId", f"product {product_id} is counted more than once")
            continue
        if product_id is not None:
            seen.add(product_id)
        if product_id is not None and counted is not None:
            lines.append(OpnameLine(product_id=product_id, counted_qty=counted))

    confirm = payload.get("confirmAdjustment", False)
    if confirm is None:
        confirm = False
    if not isinstance(confirm, bool):
        errors.add("confirmAdjustment", "confirmAdjustment must be true or false")

    errors.raise_if_any()
    return OpnameRequest(items=tuple(lines), confirm_adjustment=confirm)
