"""
Family Assistant — Action payloads.

The closed set of actions the assistant may propose, one typed payload per
action. This table is the single contract shared by the prompt composer
(which teaches the model the field names), the parser (which extracts the
raw payload) and the execution engine (which validates it before touching
any field).

Payloads use the camelCase field names the model is taught; Python code
reads the snake_case attributes.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, ValidationError


class PayloadError(ValueError):
    """Raised when a proposed payload does not match its action's schema."""


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------


def _to_decimal(value: Any) -> Any:
    """Coerce numbers and numeric strings to Decimal without float drift."""
    if value is None or isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("amount must be a number")
    if isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value).strip().replace(",", "."))
        except InvalidOperation as exc:
            raise ValueError(f"invalid amount: {value!r}") from exc
        if not amount.is_finite():
            raise ValueError(f"invalid amount: {value!r}")
        return amount
    return value


def _to_local_datetime(value: Any) -> Any:
    """Parse ISO strings; aware datetimes are converted to the family timezone."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip())
    if isinstance(value, datetime) and value.tzinfo is not None:
        from zoneinfo import ZoneInfo

        from family_assistant.config import settings

        value = value.astimezone(ZoneInfo(settings.TIMEZONE)).replace(tzinfo=None)
    return value


Amount = Annotated[Decimal, BeforeValidator(_to_decimal)]
LocalDateTime = Annotated[datetime, BeforeValidator(_to_local_datetime)]
OptionalDateTime = Annotated[datetime | None, BeforeValidator(_to_local_datetime)]


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)


# ---------------------------------------------------------------------------
# Payload variants
# ---------------------------------------------------------------------------


class CreateEventPayload(_Payload):
    title: str = Field(min_length=1)
    start_date: LocalDateTime = Field(alias="startDate")
    end_date: OptionalDateTime = Field(None, alias="endDate")
    description: str | None = None
    all_day: bool = Field(False, alias="allDay")
    color: str | None = None
    category: str = "family"
    assigned_to: str | None = Field(None, alias="assignedTo")


class UpdateEventPayload(_Payload):
    id: str
    title: str | None = None
    start_date: OptionalDateTime = Field(None, alias="startDate")
    end_date: OptionalDateTime = Field(None, alias="endDate")
    description: str | None = None
    all_day: bool | None = Field(None, alias="allDay")
    color: str | None = None
    category: str | None = None


class IdPayload(_Payload):
    id: str = Field(min_length=1)


class CreateTaskPayload(_Payload):
    title: str = Field(min_length=1)
    description: str | None = None
    due_date: OptionalDateTime = Field(None, alias="dueDate")
    priority: str = "medium"
    assigned_to: str | None = Field(None, alias="assignedTo")


class UpdateTaskPayload(_Payload):
    id: str
    title: str | None = None
    description: str | None = None
    due_date: OptionalDateTime = Field(None, alias="dueDate")
    priority: str | None = None
    assigned_to: str | None = Field(None, alias="assignedTo")
    completed: bool | None = None


class CompleteTaskPayload(_Payload):
    id: str = Field(min_length=1, validation_alias=AliasChoices("taskId", "id"))


class CreateExpensePayload(_Payload):
    amount: Amount
    description: str = Field(min_length=1)
    category: str = "other"
    paid_by: str | None = Field(None, alias="paidBy")
    date: OptionalDateTime = None


class UpdateExpensePayload(_Payload):
    id: str
    amount: Amount | None = None
    description: str | None = None
    category: str | None = None
    date: OptionalDateTime = None


class ShoppingItemPayload(_Payload):
    name: str = Field(min_length=1)
    quantity: int = Field(1, ge=1)
    unit: str | None = None
    category: str | None = None


class AddShoppingItemsPayload(_Payload):
    items: list[ShoppingItemPayload] = Field(default_factory=list)


class UpdateShoppingItemPayload(_Payload):
    id: str
    name: str | None = None
    quantity: int | None = Field(None, ge=1)
    unit: str | None = None
    category: str | None = None
    purchased: bool | None = None


class PurchaseLine(_Payload):
    item_id: str = Field(validation_alias=AliasChoices("itemId", "id"))
    actual_price: Amount | None = Field(None, validation_alias=AliasChoices("actualPrice", "price"))


class CompletePurchasePayload(_Payload):
    items: list[PurchaseLine] = Field(default_factory=list)
    total_amount: Amount | None = Field(None, validation_alias=AliasChoices("totalAmount", "total"))
    store: str | None = Field(None, validation_alias=AliasChoices("store", "storeName"))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

PAYLOAD_MODELS: dict[str, type[_Payload]] = {
    "create_event": CreateEventPayload,
    "update_event": UpdateEventPayload,
    "delete_event": IdPayload,
    "create_task": CreateTaskPayload,
    "update_task": UpdateTaskPayload,
    "complete_task": CompleteTaskPayload,
    "delete_task": IdPayload,
    "create_expense": CreateExpensePayload,
    "update_expense": UpdateExpensePayload,
    "delete_expense": IdPayload,
    "add_shopping_item": ShoppingItemPayload,
    "add_shopping_items": AddShoppingItemsPayload,
    "update_shopping_item": UpdateShoppingItemPayload,
    "delete_shopping_item": IdPayload,
    "complete_purchase": CompletePurchasePayload,
}

# Alternate names the model (or an older client) may use
ACTION_ALIASES: dict[str, str] = {
    "add_expense": "create_expense",
    "add_shopping": "add_shopping_item",
    "update_shopping": "update_shopping_item",
    "delete_shopping": "delete_shopping_item",
    "remove_shopping": "delete_shopping_item",
}

# Every supported action mutates family data, so the restricted role is
# denied the whole set, aliases included.
RESTRICTED_ACTIONS: frozenset[str] = frozenset(PAYLOAD_MODELS) | frozenset(ACTION_ALIASES)

# Example payloads taught to the model, one per canonical action
ACTION_SCHEMAS: dict[str, dict[str, Any]] = {
    "create_event": {
        "title": "title", "startDate": "2026-01-10T10:00:00",
        "endDate": "2026-01-10T11:00:00", "description": "desc", "category": "family",
    },
    "update_event": {"id": "event-id", "title": "title", "startDate": "2026-01-10T10:00:00"},
    "delete_event": {"id": "event-id"},
    "create_task": {"title": "title", "dueDate": "2026-01-15", "priority": "medium", "assignedTo": "member-id"},
    "update_task": {"id": "task-id", "title": "title", "dueDate": "2026-01-15", "priority": "high"},
    "complete_task": {"taskId": "task-id"},
    "delete_task": {"id": "task-id"},
    "create_expense": {"amount": "50.00", "description": "desc", "category": "food"},
    "update_expense": {"id": "expense-id", "amount": "45.00", "description": "desc"},
    "delete_expense": {"id": "expense-id"},
    "add_shopping_item": {"name": "product", "quantity": 1, "category": "category"},
    "add_shopping_items": {"items": [{"name": "product1", "quantity": 1}, {"name": "product2", "quantity": 2}]},
    "update_shopping_item": {"id": "item-id", "quantity": 2},
    "delete_shopping_item": {"id": "item-id"},
    "complete_purchase": {
        "items": [{"itemId": "item-id", "actualPrice": "3.50"}],
        "totalAmount": "3.50", "store": "store name",
    },
}


def canonical_action(action_type: str) -> str | None:
    """Map an action name (or alias) to its canonical name; None if unknown."""
    if action_type in PAYLOAD_MODELS:
        return action_type
    return ACTION_ALIASES.get(action_type)


def parse_payload(action_type: str, data: Any) -> _Payload:
    """Validate raw proposal data against the schema of a canonical action.

    Raises:
        KeyError: if action_type is not a canonical action.
        PayloadError: if data is not an object or does not match the schema.
    """
    model = PAYLOAD_MODELS[action_type]
    if not isinstance(data, dict):
        raise PayloadError(f"{action_type} expects an object, got {type(data).__name__}")
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise PayloadError(f"{action_type}: {exc.error_count()} invalid field(s)") from exc
