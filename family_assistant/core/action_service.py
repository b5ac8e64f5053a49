"""
Family Assistant — Action Confirmation & Execution Engine.

A proposed action only reaches the family data store through
ActionService.confirm_action, called after the user explicitly confirms.
The engine re-checks the caller's role, validates the payload against the
action's schema, runs the mutation scoped to the caller's family, then
records the outcome (audit log, usage telemetry, transcript note).

Returns structured ActionResult objects. The UI adapter decides how to show
them; nothing here talks to the user directly.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from family_assistant.config import settings
from family_assistant.core.actions import (
    RESTRICTED_ACTIONS,
    AddShoppingItemsPayload,
    CompletePurchasePayload,
    CompleteTaskPayload,
    CreateEventPayload,
    CreateExpensePayload,
    CreateTaskPayload,
    IdPayload,
    PayloadError,
    ShoppingItemPayload,
    UpdateEventPayload,
    UpdateExpensePayload,
    UpdateShoppingItemPayload,
    UpdateTaskPayload,
    canonical_action,
    parse_payload,
)
from family_assistant.core.locales import Locale, get_locale
from family_assistant.data.models import AiUsageLogEntry, AuditLogEntry, Identity, local_now

if TYPE_CHECKING:
    from family_assistant.ports.conversation_port import ConversationPort
    from family_assistant.ports.log_port import AuditLogPort, UsageLogPort
    from family_assistant.ports.store_port import FamilyStorePort

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


class ActionStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PERMISSION_DENIED = "permission_denied"
    NOT_SUPPORTED = "not_supported"
    NOT_FOUND = "not_found"
    INVALID = "invalid"


@dataclass
class ActionResult:
    status: ActionStatus
    message: str
    data: Any = None

    @property
    def success(self) -> bool:
        return self.status is ActionStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.data is not None:
            result["data"] = self.data
        return result


def _money(amount: Decimal) -> str:
    return str(amount)


Handler = Callable[[Identity, Any, Locale], Awaitable[ActionResult]]


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ActionService:
    """Executes confirmed actions against the family store."""

    def __init__(
        self,
        store: FamilyStorePort,
        audit: AuditLogPort,
        usage: UsageLogPort,
        conversations: ConversationPort | None = None,
    ) -> None:
        self._store = store
        self._audit = audit
        self._usage = usage
        self._conversations = conversations
        self._handlers: dict[str, Handler] = {
            "create_event": self._create_event,
            "update_event": self._update_event,
            "delete_event": self._delete_event,
            "create_task": self._create_task,
            "update_task": self._update_task,
            "complete_task": self._complete_task,
            "delete_task": self._delete_task,
            "create_expense": self._create_expense,
            "update_expense": self._update_expense,
            "delete_expense": self._delete_expense,
            "add_shopping_item": self._add_shopping_item,
            "add_shopping_items": self._add_shopping_items,
            "update_shopping_item": self._update_shopping_item,
            "delete_shopping_item": self._delete_shopping_item,
            "complete_purchase": self._complete_purchase,
        }

    # ------------------------------------------------------------------
    # Public: confirmation
    # ------------------------------------------------------------------

    async def confirm_action(
        self,
        identity: Identity,
        action_type: str,
        action_data: Any,
        conversation_id: str | None = None,
        language: str | None = None,
    ) -> ActionResult:
        """Execute an action the user has explicitly confirmed.

        Args:
            identity: the confirming user, resolved by the transport.
            action_type: the proposed action name (aliases accepted).
            action_data: the proposed payload, as parsed from the reply.
            conversation_id: transcript to append a confirmation note to.
            language: locale for the result message.

        Returns an ActionResult; never raises for store or payload errors.
        """
        locale = get_locale(language)

        if identity.is_child and action_type in RESTRICTED_ACTIONS:
            logger.warning(
                "Denied %s for child user %s (family %s)",
                action_type, identity.user_id, identity.family_id,
            )
            return ActionResult(ActionStatus.PERMISSION_DENIED, locale.message("permission_denied"))

        canonical = canonical_action(action_type)
        if canonical is None:
            logger.warning("Unsupported action type %r from user %s", action_type, identity.user_id)
            await self._write_audit(identity, action_type, action_data, False)
            return ActionResult(ActionStatus.NOT_SUPPORTED, locale.message("not_supported"))

        started = time.monotonic()
        result = await self._dispatch(identity, canonical, action_data, locale)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        logger.info(
            "Action %s by %s (family %s): %s",
            canonical, identity.user_id, identity.family_id, result.status.value,
        )

        await self._write_audit(identity, action_type, action_data, result.success)
        await self._write_usage(identity, f"action_confirmed:{canonical}", elapsed_ms)
        if result.success and conversation_id:
            await self._append_note(identity, conversation_id, f"✅ {result.message}")

        return result

    async def _dispatch(
        self, identity: Identity, action_type: str, action_data: Any, locale: Locale,
    ) -> ActionResult:
        try:
            payload = parse_payload(action_type, action_data)
        except PayloadError as exc:
            logger.warning("Invalid %s payload: %s", action_type, exc)
            return ActionResult(ActionStatus.INVALID, locale.message("invalid_data"))

        try:
            return await self._handlers[action_type](identity, payload, locale)
        except Exception:
            logger.exception("Failed to execute %s for family %s", action_type, identity.family_id)
            return ActionResult(ActionStatus.FAILED, locale.message("execution_failed"))

    # ------------------------------------------------------------------
    # Best-effort bookkeeping
    # ------------------------------------------------------------------

    async def _write_audit(
        self, identity: Identity, action_type: str, action_data: Any, success: bool,
    ) -> None:
        details = json.dumps(
            {"actionData": action_data, "success": success},
            ensure_ascii=False,
            default=str,
        )[: settings.AUDIT_DETAILS_MAX_CHARS]
        entry = AuditLogEntry(
            family_id=identity.family_id,
            user_id=identity.user_id,
            action=action_type,
            details=details,
        )
        try:
            await self._audit.create_audit_log(entry)
        except Exception as exc:
            logger.error("Audit log write failed for %s: %s", action_type, exc)

    async def _write_usage(self, identity: Identity, request_type: str, elapsed_ms: int) -> None:
        entry = AiUsageLogEntry(
            user_id=identity.user_id,
            family_id=identity.family_id,
            request_type=request_type,
            response_time_ms=elapsed_ms,
        )
        try:
            await self._usage.log_usage(entry)
        except Exception as exc:
            logger.error("Usage log write failed for %s: %s", request_type, exc)

    async def _append_note(self, identity: Identity, conversation_id: str, note: str) -> None:
        if self._conversations is None:
            return
        try:
            conversation = await self._conversations.get_conversation(
                conversation_id, identity.family_id,
            )
            if conversation is None:
                logger.warning("Conversation %s not in family %s", conversation_id, identity.family_id)
                return
            await self._conversations.add_message(conversation_id, "assistant", note)
        except Exception as exc:
            logger.error("Could not append confirmation to %s: %s", conversation_id, exc)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def _create_event(
        self, identity: Identity, payload: CreateEventPayload, locale: Locale,
    ) -> ActionResult:
        event = await self._store.create_event(
            identity.family_id,
            title=payload.title,
            start_date=payload.start_date,
            end_date=payload.end_date,
            all_day=payload.all_day,
            category=payload.category,
            description=payload.description,
            color=payload.color,
            assigned_to=payload.assigned_to,
            created_by=identity.user_id,
        )
        return ActionResult(ActionStatus.SUCCESS, locale.message("event_created"), event)

    async def _update_event(
        self, identity: Identity, payload: UpdateEventPayload, locale: Locale,
    ) -> ActionResult:
        changes = payload.model_dump(exclude={"id"}, exclude_none=True)
        event = await self._store.update_event(payload.id, identity.family_id, changes)
        if event is None:
            return ActionResult(ActionStatus.NOT_FOUND, locale.message("not_found"))
        return ActionResult(ActionStatus.SUCCESS, locale.message("event_updated"), event)

    async def _delete_event(
        self, identity: Identity, payload: IdPayload, locale: Locale,
    ) -> ActionResult:
        if not await self._store.delete_event(payload.id, identity.family_id):
            return ActionResult(ActionStatus.NOT_FOUND, locale.message("not_found"))
        return ActionResult(ActionStatus.SUCCESS, locale.message("event_deleted"))

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def _create_task(
        self, identity: Identity, payload: CreateTaskPayload, locale: Locale,
    ) -> ActionResult:
        task = await self._store.create_task(
            identity.family_id,
            title=payload.title,
            description=payload.description,
            due_date=payload.due_date,
            priority=payload.priority or "medium",
            assigned_to=payload.assigned_to,
            created_by=identity.user_id,
        )
        return ActionResult(ActionStatus.SUCCESS, locale.message("task_created"), task)

    async def _update_task(
        self, identity: Identity, payload: UpdateTaskPayload, locale: Locale,
    ) -> ActionResult:
        changes = payload.model_dump(exclude={"id"}, exclude_none=True)
        task = await self._store.update_task(payload.id, identity.family_id, changes)
        if task is None:
            return ActionResult(ActionStatus.NOT_FOUND, locale.message("not_found"))
        return ActionResult(ActionStatus.SUCCESS, locale.message("task_updated"), task)

    async def _complete_task(
        self, identity: Identity, payload: CompleteTaskPayload, locale: Locale,
    ) -> ActionResult:
        task = await self._store.update_task(payload.id, identity.family_id, {"completed": True})
        if task is None:
            return ActionResult(ActionStatus.NOT_FOUND, locale.message("not_found"))
        return ActionResult(ActionStatus.SUCCESS, locale.message("task_completed"), task)

    async def _delete_task(
        self, identity: Identity, payload: IdPayload, locale: Locale,
    ) -> ActionResult:
        if not await self._store.delete_task(payload.id, identity.family_id):
            return ActionResult(ActionStatus.NOT_FOUND, locale.message("not_found"))
        return ActionResult(ActionStatus.SUCCESS, locale.message("task_deleted"))

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    async def _create_expense(
        self, identity: Identity, payload: CreateExpensePayload, locale: Locale,
    ) -> ActionResult:
        expense = await self._store.create_expense(
            identity.family_id,
            amount=_money(payload.amount),
            description=payload.description,
            category=payload.category,
            paid_by=payload.paid_by or identity.user_id,
            date=payload.date or local_now(),
            created_by=identity.user_id,
        )
        return ActionResult(ActionStatus.SUCCESS, locale.message("expense_added"), expense)

    async def _update_expense(
        self, identity: Identity, payload: UpdateExpensePayload, locale: Locale,
    ) -> ActionResult:
        changes = payload.model_dump(exclude={"id"}, exclude_none=True)
        if "amount" in changes:
            changes["amount"] = _money(changes["amount"])
        expense = await self._store.update_expense(payload.id, identity.family_id, changes)
        if expense is None:
            return ActionResult(ActionStatus.NOT_FOUND, locale.message("not_found"))
        return ActionResult(ActionStatus.SUCCESS, locale.message("expense_updated"), expense)

    async def _delete_expense(
        self, identity: Identity, payload: IdPayload, locale: Locale,
    ) -> ActionResult:
        if not await self._store.delete_expense(payload.id, identity.family_id):
            return ActionResult(ActionStatus.NOT_FOUND, locale.message("not_found"))
        return ActionResult(ActionStatus.SUCCESS, locale.message("expense_deleted"))

    # ------------------------------------------------------------------
    # Shopping
    # ------------------------------------------------------------------

    async def _create_item(self, identity: Identity, item: ShoppingItemPayload) -> Any:
        return await self._store.create_shopping_item(
            identity.family_id,
            name=item.name,
            quantity=item.quantity,
            unit=item.unit,
            category=item.category,
            created_by=identity.user_id,
        )

    async def _add_shopping_item(
        self, identity: Identity, payload: ShoppingItemPayload, locale: Locale,
    ) -> ActionResult:
        item = await self._create_item(identity, payload)
        return ActionResult(ActionStatus.SUCCESS, locale.message("item_added"), item)

    async def _add_shopping_items(
        self, identity: Identity, payload: AddShoppingItemsPayload, locale: Locale,
    ) -> ActionResult:
        if not payload.items:
            return ActionResult(ActionStatus.FAILED, locale.message("no_items"))

        # One at a time: batch writes are not guarded by any lock
        created = []
        for entry in payload.items:
            created.append(await self._create_item(identity, entry))
        return ActionResult(
            ActionStatus.SUCCESS,
            locale.message("items_added", count=len(created)),
            created,
        )

    async def _update_shopping_item(
        self, identity: Identity, payload: UpdateShoppingItemPayload, locale: Locale,
    ) -> ActionResult:
        changes = payload.model_dump(exclude={"id"}, exclude_none=True)
        item = await self._store.update_shopping_item(payload.id, identity.family_id, changes)
        if item is None:
            return ActionResult(ActionStatus.NOT_FOUND, locale.message("not_found"))
        return ActionResult(ActionStatus.SUCCESS, locale.message("item_updated"), item)

    async def _delete_shopping_item(
        self, identity: Identity, payload: IdPayload, locale: Locale,
    ) -> ActionResult:
        if not await self._store.delete_shopping_item(payload.id, identity.family_id):
            return ActionResult(ActionStatus.NOT_FOUND, locale.message("not_found"))
        return ActionResult(ActionStatus.SUCCESS, locale.message("item_removed"))

    async def _complete_purchase(
        self, identity: Identity, payload: CompletePurchasePayload, locale: Locale,
    ) -> ActionResult:
        """Record one shopping trip: a single expense, then every item marked bought.

        Unknown and already-purchased items are skipped, so confirming the same
        purchase twice never creates a second expense.
        """
        if not payload.items:
            return ActionResult(ActionStatus.FAILED, locale.message("no_items"))

        purchasable = []
        seen: set[str] = set()
        for line in payload.items:
            if line.item_id in seen:
                continue
            seen.add(line.item_id)
            item = await self._store.get_shopping_item(line.item_id, identity.family_id)
            if item is None:
                logger.info("Purchase skips unknown item %s", line.item_id)
                continue
            if item.purchased:
                logger.info("Purchase skips already purchased item %s", item.id)
                continue
            purchasable.append((item, line.actual_price))

        if not purchasable:
            return ActionResult(ActionStatus.FAILED, locale.message("purchase_nothing"))

        if payload.total_amount is not None:
            amount = payload.total_amount
        else:
            amount = sum((price for _, price in purchasable if price is not None), Decimal("0"))

        names = ", ".join(item.name for item, _ in purchasable)
        description = f"{payload.store}: {names}" if payload.store else names
        now = local_now()

        # The expense must exist before any item references it
        expense = await self._store.create_expense(
            identity.family_id,
            amount=_money(amount),
            description=description[: settings.PURCHASE_DESCRIPTION_MAX_CHARS],
            category="shopping",
            paid_by=identity.user_id,
            date=now,
            created_by=identity.user_id,
        )

        updated = []
        for item, price in purchasable:
            changes: dict[str, Any] = {
                "purchased": True,
                "purchased_at": now,
                "purchased_by": identity.user_id,
                "purchase_expense_id": expense.id,
            }
            if price is not None:
                changes["actual_price"] = _money(price)
            record = await self._store.update_shopping_item(item.id, identity.family_id, changes)
            updated.append(record or item)

        return ActionResult(
            ActionStatus.SUCCESS,
            locale.message("purchase_completed", count=len(updated), amount=f"{amount:.2f}"),
            {"expense": expense, "items": updated},
        )
