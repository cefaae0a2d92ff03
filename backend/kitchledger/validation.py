from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any

from .time_utils import parse_iso_datetime, to_utc_z
from .units import to_milli


# Upper bound for any cents value: $9,999,999.99
MAX_CENTS = 999_999_999

SEVERITIES = ("LOW", "MEDIUM", "HIGH")


class ValidationError(ValueError):
    """400-level input problem."""


class InvalidQuantity(ValidationError):
    """Non-positive quantity or portion size; rejected before any side effect."""


class NotFoundError(LookupError):
    """
    Referenced row does not exist OR belongs to another tenant.

    Both cases raise the same error with the same message so a caller can
    never learn that an id exists in someone else's tenant.
    """


def require_fields(payload: dict, names: set[str]) -> None:
    missing = sorted(n for n in names if payload.get(n) in (None, ""))
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def reject_unknown_fields(payload: dict, allowed: set[str]) -> None:
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise ValidationError(f"Fields not writable: {', '.join(unknown)}")


def parse_quantity_milli(value: Any, field: str = "quantity", *, allow_zero: bool = False) -> int:
    """
    Parse a user-facing decimal quantity into milli-units.

    Zero is only accepted where allow_zero is set (e.g. an edit that empties
    a batch); negatives never are.
    """
    try:
        milli = to_milli(value)
    except ValueError:
        raise ValidationError(f"{field} must be a number")
    if milli < 0 or (milli == 0 and not allow_zero):
        raise InvalidQuantity(f"{field} must be greater than zero")
    return milli


def parse_cents(value: Any, field: str) -> int:
    # Strict: cents are integers, not "12.50" and not floats
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer number of cents")
    if isinstance(value, int):
        cents = value
    elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
        cents = int(value.strip())
    else:
        raise ValidationError(f"{field} must be an integer number of cents")
    if cents < 0:
        raise ValidationError(f"{field} cannot be negative")
    if cents > MAX_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_CENTS}")
    return cents


def parse_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")


def parse_optional_int(value: Any, field: str) -> int | None:
    if value in (None, ""):
        return None
    return parse_int(value, field)


def parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ValidationError(f"{field} must be true or false")


def parse_datetime(value: Any, field: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def parse_choice(value: Any, field: str, choices) -> str:
    text = str(value or "").strip().upper()
    if text not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return text


def parse_tags(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(t, str) for t in value):
        raise ValidationError("tags must be a list of strings")
    return value


# ================================================================================
# UPDATE PAYLOADS
# ================================================================================
# One dataclass per updatable target type. Each carries ONLY the fields that
# may legally change on that entity, is validated when built from a request,
# and round-trips through JSON so an approval can store it and apply it later
# without re-parsing user input.
# ================================================================================

@dataclass(frozen=True)
class InventoryItemUpdate:
    quantity_milli: int | None = None
    unit_cost_cents: int | None = None
    expires_at: datetime | None = None

    WRITABLE = {"quantity", "unit_cost_cents", "expires_at"}

    @classmethod
    def from_payload(cls, payload: dict) -> "InventoryItemUpdate":
        reject_unknown_fields(payload, cls.WRITABLE)
        update = cls(
            quantity_milli=(
                parse_quantity_milli(payload["quantity"], "quantity", allow_zero=True)
                if payload.get("quantity") is not None else None
            ),
            unit_cost_cents=(
                parse_cents(payload["unit_cost_cents"], "unit_cost_cents")
                if payload.get("unit_cost_cents") is not None else None
            ),
            expires_at=parse_datetime(payload.get("expires_at"), "expires_at"),
        )
        if update.is_empty():
            raise ValidationError("update must change at least one field")
        return update

    @classmethod
    def from_dict(cls, data: dict) -> "InventoryItemUpdate":
        return cls(
            quantity_milli=data.get("quantity_milli"),
            unit_cost_cents=data.get("unit_cost_cents"),
            expires_at=parse_iso_datetime(data.get("expires_at")),
        )

    def to_dict(self) -> dict:
        data = {}
        if self.quantity_milli is not None:
            data["quantity_milli"] = self.quantity_milli
        if self.unit_cost_cents is not None:
            data["unit_cost_cents"] = self.unit_cost_cents
        if self.expires_at is not None:
            data["expires_at"] = to_utc_z(self.expires_at)
        return data

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


@dataclass(frozen=True)
class WasteLogUpdate:
    reason: str | None = None
    tags: tuple[str, ...] | None = None
    severity: str | None = None
    preventable: bool | None = None

    WRITABLE = {"reason", "tags", "severity", "preventable"}

    @classmethod
    def from_payload(cls, payload: dict) -> "WasteLogUpdate":
        reject_unknown_fields(payload, cls.WRITABLE)
        reason = payload.get("reason")
        if reason is not None and (not isinstance(reason, str) or not reason.strip()):
            raise ValidationError("reason must be a non-empty string")
        update = cls(
            reason=reason.strip() if reason is not None else None,
            tags=tuple(parse_tags(payload["tags"])) if payload.get("tags") is not None else None,
            severity=(
                parse_choice(payload["severity"], "severity", SEVERITIES)
                if payload.get("severity") is not None else None
            ),
            preventable=(
                parse_bool(payload["preventable"], "preventable")
                if payload.get("preventable") is not None else None
            ),
        )
        if update.is_empty():
            raise ValidationError("update must change at least one field")
        return update

    @classmethod
    def from_dict(cls, data: dict) -> "WasteLogUpdate":
        tags = data.get("tags")
        return cls(
            reason=data.get("reason"),
            tags=tuple(tags) if tags is not None else None,
            severity=data.get("severity"),
            preventable=data.get("preventable"),
        )

    def to_dict(self) -> dict:
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None:
                data[f.name] = list(value) if f.name == "tags" else value
        return data

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


UPDATE_PAYLOAD_TYPES = {
    "INVENTORY_ITEM": InventoryItemUpdate,
    "WASTE_LOG": WasteLogUpdate,
}


def parse_update_payload(target_type: str, payload: Any):
    """Validate a raw UPDATE body against the variant for target_type."""
    if not isinstance(payload, dict):
        raise ValidationError("payload must be an object")
    try:
        variant = UPDATE_PAYLOAD_TYPES[target_type]
    except KeyError:
        raise ValidationError(f"Unsupported target_type '{target_type}'")
    return variant.from_payload(payload)
