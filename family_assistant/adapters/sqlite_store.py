"""SQLite adapters — implement the store, conversation, log and identity ports.

The sqlite3 module is synchronous; every call is wrapped with
asyncio.to_thread so the event loop never blocks on disk I/O. Each DB call
opens its own connection, which keeps the threads independent.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime
from typing import Any

from family_assistant.data.db import ConversationDB, FamilyDB, LogDB
from family_assistant.data.models import (
    AiUsageLogEntry,
    AuditLogEntry,
    Conversation,
    Event,
    Expense,
    Identity,
    Member,
    Message,
    ShoppingItem,
    Task,
)
from family_assistant.ports.store_port import StoreError

logger = logging.getLogger(__name__)


async def _run(fn: Any, *args: Any, **kwargs: Any) -> Any:
    """Run a blocking DB call in a worker thread, mapping sqlite errors to StoreError."""
    try:
        return await asyncio.to_thread(fn, *args, **kwargs)
    except sqlite3.Error as exc:
        logger.error("SQLite error in %s: %s", getattr(fn, "__name__", fn), exc)
        raise StoreError(str(exc)) from exc


class SQLiteFamilyStore:
    """SQLite implementation of FamilyStorePort and IdentityPort."""

    def __init__(self, db: FamilyDB | None = None) -> None:
        self._db = db or FamilyDB()

    # Events
    async def get_events(
        self, family_id: str, start: datetime | None = None, end: datetime | None = None,
    ) -> list[Event]:
        return await _run(self._db.get_events, family_id, start, end)

    async def get_event(self, event_id: str, family_id: str) -> Event | None:
        return await _run(self._db.get_event, event_id, family_id)

    async def create_event(self, family_id: str, **fields: Any) -> Event:
        return await _run(self._db.create_event, family_id, **fields)

    async def update_event(
        self, event_id: str, family_id: str, changes: dict[str, Any],
    ) -> Event | None:
        return await _run(self._db.update_event, event_id, family_id, changes)

    async def delete_event(self, event_id: str, family_id: str) -> bool:
        return await _run(self._db.delete_event, event_id, family_id)

    # Tasks
    async def get_tasks(self, family_id: str) -> list[Task]:
        return await _run(self._db.get_tasks, family_id)

    async def get_task(self, task_id: str, family_id: str) -> Task | None:
        return await _run(self._db.get_task, task_id, family_id)

    async def create_task(self, family_id: str, **fields: Any) -> Task:
        return await _run(self._db.create_task, family_id, **fields)

    async def update_task(
        self, task_id: str, family_id: str, changes: dict[str, Any],
    ) -> Task | None:
        return await _run(self._db.update_task, task_id, family_id, changes)

    async def delete_task(self, task_id: str, family_id: str) -> bool:
        return await _run(self._db.delete_task, task_id, family_id)

    # Shopping
    async def get_shopping_items(self, family_id: str) -> list[ShoppingItem]:
        return await _run(self._db.get_shopping_items, family_id)

    async def get_shopping_item(self, item_id: str, family_id: str) -> ShoppingItem | None:
        return await _run(self._db.get_shopping_item, item_id, family_id)

    async def create_shopping_item(self, family_id: str, **fields: Any) -> ShoppingItem:
        return await _run(self._db.create_shopping_item, family_id, **fields)

    async def update_shopping_item(
        self, item_id: str, family_id: str, changes: dict[str, Any],
    ) -> ShoppingItem | None:
        return await _run(self._db.update_shopping_item, item_id, family_id, changes)

    async def delete_shopping_item(self, item_id: str, family_id: str) -> bool:
        return await _run(self._db.delete_shopping_item, item_id, family_id)

    # Expenses
    async def get_expenses(
        self, family_id: str, start: datetime | None = None, end: datetime | None = None,
    ) -> list[Expense]:
        return await _run(self._db.get_expenses, family_id, start, end)

    async def get_expense(self, expense_id: str, family_id: str) -> Expense | None:
        return await _run(self._db.get_expense, expense_id, family_id)

    async def create_expense(self, family_id: str, **fields: Any) -> Expense:
        return await _run(self._db.create_expense, family_id, **fields)

    async def update_expense(
        self, expense_id: str, family_id: str, changes: dict[str, Any],
    ) -> Expense | None:
        return await _run(self._db.update_expense, expense_id, family_id, changes)

    async def delete_expense(self, expense_id: str, family_id: str) -> bool:
        return await _run(self._db.delete_expense, expense_id, family_id)

    # Members / identity
    async def get_family_members(self, family_id: str) -> list[Member]:
        return await _run(self._db.get_family_members, family_id)

    async def get_member(self, user_id: str) -> Member | None:
        return await _run(self._db.get_member, user_id)

    async def resolve_telegram_user(self, telegram_user_id: int) -> Identity | None:
        member = await _run(self._db.get_member_by_telegram_id, telegram_user_id)
        if member is None:
            return None
        return Identity(user_id=member.id, family_id=member.family_id, role=member.role)


class SQLiteConversationStore:
    """SQLite implementation of ConversationPort."""

    def __init__(self, db: ConversationDB | None = None) -> None:
        self._db = db or ConversationDB()

    async def create_conversation(
        self, family_id: str, user_id: str, title: str | None = None,
    ) -> Conversation:
        return await _run(self._db.create_conversation, family_id, user_id, title)

    async def get_conversation(
        self, conversation_id: str, family_id: str,
    ) -> Conversation | None:
        return await _run(self._db.get_conversation, conversation_id, family_id)

    async def set_conversation_title(self, conversation_id: str, title: str) -> None:
        await _run(self._db.set_conversation_title, conversation_id, title)

    async def add_message(self, conversation_id: str, role: str, content: str) -> Message:
        return await _run(self._db.add_message, conversation_id, role, content)

    async def get_messages(self, conversation_id: str, limit: int | None = None) -> list[Message]:
        return await _run(self._db.get_messages, conversation_id, limit)

    async def list_conversations(
        self, family_id: str, user_id: str, limit: int = 10,
    ) -> list[Conversation]:
        return await _run(self._db.list_conversations, family_id, user_id, limit)

    async def delete_conversation(self, conversation_id: str, family_id: str) -> bool:
        return await _run(self._db.delete_conversation, conversation_id, family_id)


class SQLiteLogSink:
    """SQLite implementation of AuditLogPort and UsageLogPort."""

    def __init__(self, db: LogDB | None = None) -> None:
        self._db = db or LogDB()

    async def create_audit_log(self, entry: AuditLogEntry) -> None:
        await _run(self._db.create_audit_log, entry)

    async def log_usage(self, entry: AiUsageLogEntry) -> None:
        await _run(self._db.log_usage, entry)
