"""
Family Assistant — SQLite storage.

Synchronous SQLite-backed tables for the family data store, conversation
history, audit log and AI usage telemetry. Every read or write of an existing
family record is filtered by family_id.

The async ports are implemented by wrapping these classes with
asyncio.to_thread (see family_assistant.adapters.sqlite_store).
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from family_assistant.data.models import (
    AiUsageLogEntry,
    AuditLogEntry,
    Conversation,
    Event,
    Expense,
    Member,
    Message,
    ShoppingItem,
    Task,
    local_now,
)

logger = logging.getLogger(__name__)


def new_id() -> str:
    return uuid.uuid4().hex


def _to_db(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    return value


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class _SQLiteDB:
    """Shared connection handling. One connection per call."""

    _SCHEMA: tuple[str, ...] = ()

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from family_assistant.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            for statement in self._SCHEMA:
                conn.execute(statement)
        logger.debug("%s tables initialized at %s", type(self).__name__, self._db_path)

    def _insert(self, table: str, values: dict[str, Any]) -> None:
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                [_to_db(v) for v in values.values()],
            )

    def _fetch_one(self, table: str, record_id: str, family_id: str) -> sqlite3.Row | None:
        with self._connect() as conn:
            return conn.execute(
                f"SELECT * FROM {table} WHERE id = ? AND family_id = ?",
                (record_id, family_id),
            ).fetchone()

    def _update(
        self,
        table: str,
        record_id: str,
        family_id: str,
        changes: dict[str, Any],
        allowed: frozenset[str],
    ) -> bool:
        """Apply whitelisted column changes. Returns False if no row matched."""
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Cannot update {table} columns: {sorted(unknown)}")

        with self._connect() as conn:
            if not changes:
                row = conn.execute(
                    f"SELECT 1 FROM {table} WHERE id = ? AND family_id = ?",
                    (record_id, family_id),
                ).fetchone()
                return row is not None
            assignments = ", ".join(f"{col} = ?" for col in changes)
            cursor = conn.execute(
                f"UPDATE {table} SET {assignments} WHERE id = ? AND family_id = ?",
                [_to_db(v) for v in changes.values()] + [record_id, family_id],
            )
        return cursor.rowcount > 0

    def _delete(self, table: str, record_id: str, family_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                f"DELETE FROM {table} WHERE id = ? AND family_id = ?",
                (record_id, family_id),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted %s %s (family %s)", table, record_id, family_id)
        return deleted


# ---------------------------------------------------------------------------
# Family data store
# ---------------------------------------------------------------------------


class FamilyDB(_SQLiteDB):
    """Members, events, tasks, shopping items and expenses."""

    _SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS members (
            id                TEXT PRIMARY KEY,
            family_id         TEXT NOT NULL,
            display_name      TEXT NOT NULL,
            role              TEXT NOT NULL DEFAULT 'member',
            username          TEXT NOT NULL DEFAULT '',
            telegram_user_id  INTEGER UNIQUE,
            language          TEXT NOT NULL DEFAULT 'it'
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS events (
            id           TEXT PRIMARY KEY,
            family_id    TEXT NOT NULL,
            title        TEXT NOT NULL,
            start_date   TEXT NOT NULL,
            end_date     TEXT,
            all_day      INTEGER NOT NULL DEFAULT 0,
            category     TEXT NOT NULL DEFAULT 'family',
            description  TEXT,
            color        TEXT,
            assigned_to  TEXT,
            created_by   TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS tasks (
            id           TEXT PRIMARY KEY,
            family_id    TEXT NOT NULL,
            title        TEXT NOT NULL,
            description  TEXT,
            completed    INTEGER NOT NULL DEFAULT 0,
            due_date     TEXT,
            priority     TEXT NOT NULL DEFAULT 'medium',
            assigned_to  TEXT,
            created_by   TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS shopping_items (
            id                   TEXT PRIMARY KEY,
            family_id            TEXT NOT NULL,
            name                 TEXT NOT NULL,
            quantity             INTEGER NOT NULL DEFAULT 1,
            unit                 TEXT,
            category             TEXT,
            purchased            INTEGER NOT NULL DEFAULT 0,
            purchased_at         TEXT,
            purchased_by         TEXT,
            actual_price         TEXT,
            purchase_expense_id  TEXT REFERENCES expenses(id),
            created_by           TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS expenses (
            id           TEXT PRIMARY KEY,
            family_id    TEXT NOT NULL,
            amount       TEXT NOT NULL,
            description  TEXT NOT NULL,
            category     TEXT,
            paid_by      TEXT,
            date         TEXT NOT NULL,
            created_by   TEXT
        )
        """,
    )

    _EVENT_COLUMNS = frozenset({
        "title", "start_date", "end_date", "all_day", "category",
        "description", "color", "assigned_to",
    })
    _TASK_COLUMNS = frozenset({
        "title", "description", "completed", "due_date", "priority", "assigned_to",
    })
    _SHOPPING_COLUMNS = frozenset({
        "name", "quantity", "unit", "category", "purchased", "purchased_at",
        "purchased_by", "actual_price", "purchase_expense_id",
    })
    _EXPENSE_COLUMNS = frozenset({
        "amount", "description", "category", "paid_by", "date",
    })

    # --- row mappers ---

    @staticmethod
    def _row_to_member(row: sqlite3.Row) -> Member:
        return Member(
            id=row["id"],
            family_id=row["family_id"],
            display_name=row["display_name"],
            role=row["role"],
            username=row["username"],
            telegram_user_id=row["telegram_user_id"],
            language=row["language"],
        )

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> Event:
        return Event(
            id=row["id"],
            family_id=row["family_id"],
            title=row["title"],
            start_date=datetime.fromisoformat(row["start_date"]),
            end_date=_dt(row["end_date"]),
            all_day=bool(row["all_day"]),
            category=row["category"],
            description=row["description"],
            color=row["color"],
            assigned_to=row["assigned_to"],
            created_by=row["created_by"],
        )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            family_id=row["family_id"],
            title=row["title"],
            description=row["description"],
            completed=bool(row["completed"]),
            due_date=_dt(row["due_date"]),
            priority=row["priority"],
            assigned_to=row["assigned_to"],
            created_by=row["created_by"],
        )

    @staticmethod
    def _row_to_shopping_item(row: sqlite3.Row) -> ShoppingItem:
        return ShoppingItem(
            id=row["id"],
            family_id=row["family_id"],
            name=row["name"],
            quantity=row["quantity"],
            unit=row["unit"],
            category=row["category"],
            purchased=bool(row["purchased"]),
            purchased_at=_dt(row["purchased_at"]),
            purchased_by=row["purchased_by"],
            actual_price=row["actual_price"],
            purchase_expense_id=row["purchase_expense_id"],
            created_by=row["created_by"],
        )

    @staticmethod
    def _row_to_expense(row: sqlite3.Row) -> Expense:
        return Expense(
            id=row["id"],
            family_id=row["family_id"],
            amount=row["amount"],
            description=row["description"],
            category=row["category"],
            paid_by=row["paid_by"],
            date=datetime.fromisoformat(row["date"]),
            created_by=row["created_by"],
        )

    # --- members ---

    def add_member(
        self,
        family_id: str,
        display_name: str,
        role: str = "member",
        username: str = "",
        telegram_user_id: int | None = None,
        language: str = "it",
    ) -> Member:
        """Register a family member."""
        member = Member(
            id=new_id(),
            family_id=family_id,
            display_name=display_name,
            role=role,
            username=username,
            telegram_user_id=telegram_user_id,
            language=language,
        )
        self._insert("members", {
            "id": member.id,
            "family_id": family_id,
            "display_name": display_name,
            "role": role,
            "username": username,
            "telegram_user_id": telegram_user_id,
            "language": language,
        })
        logger.info("Member added: %s '%s' (%s) to family %s", member.id, display_name, role, family_id)
        return member

    def get_member(self, user_id: str) -> Member | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM members WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_member(row) if row else None

    def get_member_by_telegram_id(self, telegram_user_id: int) -> Member | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM members WHERE telegram_user_id = ?", (telegram_user_id,),
            ).fetchone()
        return self._row_to_member(row) if row else None

    def get_family_members(self, family_id: str) -> list[Member]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM members WHERE family_id = ? ORDER BY display_name",
                (family_id,),
            ).fetchall()
        return [self._row_to_member(r) for r in rows]

    # --- events ---

    def get_events(
        self, family_id: str, start: datetime | None = None, end: datetime | None = None,
    ) -> list[Event]:
        """Events of a family, optionally restricted to start_date in [start, end)."""
        query = "SELECT * FROM events WHERE family_id = ?"
        params: list = [family_id]
        if start is not None:
            query += " AND start_date >= ?"
            params.append(start.isoformat())
        if end is not None:
            query += " AND start_date < ?"
            params.append(end.isoformat())
        query += " ORDER BY start_date"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_event(r) for r in rows]

    def get_event(self, event_id: str, family_id: str) -> Event | None:
        row = self._fetch_one("events", event_id, family_id)
        return self._row_to_event(row) if row else None

    def create_event(self, family_id: str, **fields: Any) -> Event:
        event = Event(id=new_id(), family_id=family_id, **fields)
        self._insert("events", vars(event))
        logger.info("Event created: %s '%s' on %s", event.id, event.title, event.start_date)
        return event

    def update_event(self, event_id: str, family_id: str, changes: dict[str, Any]) -> Event | None:
        if not self._update("events", event_id, family_id, changes, self._EVENT_COLUMNS):
            return None
        return self.get_event(event_id, family_id)

    def delete_event(self, event_id: str, family_id: str) -> bool:
        return self._delete("events", event_id, family_id)

    # --- tasks ---

    def get_tasks(self, family_id: str) -> list[Task]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE family_id = ? ORDER BY rowid", (family_id,),
            ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def get_task(self, task_id: str, family_id: str) -> Task | None:
        row = self._fetch_one("tasks", task_id, family_id)
        return self._row_to_task(row) if row else None

    def create_task(self, family_id: str, **fields: Any) -> Task:
        task = Task(id=new_id(), family_id=family_id, **fields)
        self._insert("tasks", vars(task))
        logger.info("Task created: %s '%s'", task.id, task.title)
        return task

    def update_task(self, task_id: str, family_id: str, changes: dict[str, Any]) -> Task | None:
        if not self._update("tasks", task_id, family_id, changes, self._TASK_COLUMNS):
            return None
        return self.get_task(task_id, family_id)

    def delete_task(self, task_id: str, family_id: str) -> bool:
        return self._delete("tasks", task_id, family_id)

    # --- shopping ---

    def get_shopping_items(self, family_id: str) -> list[ShoppingItem]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM shopping_items WHERE family_id = ? ORDER BY rowid",
                (family_id,),
            ).fetchall()
        return [self._row_to_shopping_item(r) for r in rows]

    def get_shopping_item(self, item_id: str, family_id: str) -> ShoppingItem | None:
        row = self._fetch_one("shopping_items", item_id, family_id)
        return self._row_to_shopping_item(row) if row else None

    def create_shopping_item(self, family_id: str, **fields: Any) -> ShoppingItem:
        item = ShoppingItem(id=new_id(), family_id=family_id, **fields)
        self._insert("shopping_items", vars(item))
        logger.info("Shopping item created: %s '%s' x%d", item.id, item.name, item.quantity)
        return item

    def update_shopping_item(
        self, item_id: str, family_id: str, changes: dict[str, Any],
    ) -> ShoppingItem | None:
        if not self._update("shopping_items", item_id, family_id, changes, self._SHOPPING_COLUMNS):
            return None
        return self.get_shopping_item(item_id, family_id)

    def delete_shopping_item(self, item_id: str, family_id: str) -> bool:
        return self._delete("shopping_items", item_id, family_id)

    # --- expenses ---

    def get_expenses(
        self, family_id: str, start: datetime | None = None, end: datetime | None = None,
    ) -> list[Expense]:
        """Expenses of a family, optionally restricted to date in [start, end]."""
        query = "SELECT * FROM expenses WHERE family_id = ?"
        params: list = [family_id]
        if start is not None:
            query += " AND date >= ?"
            params.append(start.isoformat())
        if end is not None:
            query += " AND date <= ?"
            params.append(end.isoformat())
        query += " ORDER BY date"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_expense(r) for r in rows]

    def get_expense(self, expense_id: str, family_id: str) -> Expense | None:
        row = self._fetch_one("expenses", expense_id, family_id)
        return self._row_to_expense(row) if row else None

    def create_expense(self, family_id: str, **fields: Any) -> Expense:
        expense = Expense(id=new_id(), family_id=family_id, **fields)
        self._insert("expenses", vars(expense))
        logger.info("Expense created: %s %s '%s'", expense.id, expense.amount, expense.description)
        return expense

    def update_expense(
        self, expense_id: str, family_id: str, changes: dict[str, Any],
    ) -> Expense | None:
        if not self._update("expenses", expense_id, family_id, changes, self._EXPENSE_COLUMNS):
            return None
        return self.get_expense(expense_id, family_id)

    def delete_expense(self, expense_id: str, family_id: str) -> bool:
        return self._delete("expenses", expense_id, family_id)


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------


class ConversationDB(_SQLiteDB):
    """Assistant conversations and their messages."""

    _SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS conversations (
            id          TEXT PRIMARY KEY,
            family_id   TEXT NOT NULL,
            user_id     TEXT NOT NULL,
            title       TEXT,
            created_at  TEXT NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS messages (
            id               TEXT PRIMARY KEY,
            conversation_id  TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
            role             TEXT NOT NULL,
            content          TEXT NOT NULL,
            created_at       TEXT NOT NULL
        )
        """,
    )

    def create_conversation(
        self, family_id: str, user_id: str, title: str | None = None,
    ) -> Conversation:
        conversation = Conversation(
            id=new_id(),
            family_id=family_id,
            user_id=user_id,
            title=title,
            created_at=local_now().isoformat(),
        )
        self._insert("conversations", vars(conversation))
        logger.info("Conversation %s started by %s", conversation.id, user_id)
        return conversation

    def get_conversation(self, conversation_id: str, family_id: str) -> Conversation | None:
        row = self._fetch_one("conversations", conversation_id, family_id)
        return self._row_to_conversation(row) if row else None

    def list_conversations(
        self, family_id: str, user_id: str, limit: int = 10,
    ) -> list[Conversation]:
        """A member's conversations, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM conversations WHERE family_id = ? AND user_id = ? "
                "ORDER BY rowid DESC LIMIT ?",
                (family_id, user_id, limit),
            ).fetchall()
        return [self._row_to_conversation(r) for r in rows]

    def delete_conversation(self, conversation_id: str, family_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM conversations WHERE id = ? AND family_id = ?",
                (conversation_id, family_id),
            ).fetchone()
            if row is None:
                return False
            conn.execute("DELETE FROM messages WHERE conversation_id = ?", (conversation_id,))
            conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
        logger.info("Deleted conversation %s (family %s)", conversation_id, family_id)
        return True

    @staticmethod
    def _row_to_conversation(row: sqlite3.Row) -> Conversation:
        return Conversation(
            id=row["id"],
            family_id=row["family_id"],
            user_id=row["user_id"],
            title=row["title"],
            created_at=row["created_at"],
        )

    def set_conversation_title(self, conversation_id: str, title: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE conversations SET title = ? WHERE id = ?", (title, conversation_id),
            )

    def add_message(self, conversation_id: str, role: str, content: str) -> Message:
        message = Message(
            id=new_id(),
            conversation_id=conversation_id,
            role=role,
            content=content,
            created_at=local_now().isoformat(),
        )
        self._insert("messages", vars(message))
        return message

    def get_messages(self, conversation_id: str, limit: int | None = None) -> list[Message]:
        """Messages in chronological order; with limit, only the most recent ones."""
        query = "SELECT * FROM messages WHERE conversation_id = ? ORDER BY rowid DESC"
        params: list = [conversation_id]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            Message(
                id=r["id"],
                conversation_id=r["conversation_id"],
                role=r["role"],
                content=r["content"],
                created_at=r["created_at"],
            )
            for r in reversed(rows)
        ]


# ---------------------------------------------------------------------------
# Audit & usage logs
# ---------------------------------------------------------------------------


class LogDB(_SQLiteDB):
    """Append-only audit log and AI usage telemetry."""

    _SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS audit_logs (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            family_id   TEXT NOT NULL,
            user_id     TEXT NOT NULL,
            action      TEXT NOT NULL,
            details     TEXT,
            source      TEXT NOT NULL,
            created_at  TEXT NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS ai_usage_logs (
            id                INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id           TEXT NOT NULL,
            family_id         TEXT NOT NULL,
            request_type      TEXT NOT NULL,
            tokens            INTEGER NOT NULL DEFAULT 0,
            response_time_ms  INTEGER NOT NULL DEFAULT 0,
            created_at        TEXT NOT NULL
        )
        """,
    )

    def create_audit_log(self, entry: AuditLogEntry) -> None:
        values = vars(entry).copy()
        values["created_at"] = entry.created_at or local_now().isoformat()
        self._insert("audit_logs", values)
        logger.debug("Audit: %s by %s in family %s", entry.action, entry.user_id, entry.family_id)

    def list_audit_logs(self, family_id: str, limit: int = 50) -> list[AuditLogEntry]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM audit_logs WHERE family_id = ? ORDER BY id DESC LIMIT ?",
                (family_id, limit),
            ).fetchall()
        return [
            AuditLogEntry(
                family_id=r["family_id"],
                user_id=r["user_id"],
                action=r["action"],
                details=r["details"],
                source=r["source"],
                created_at=r["created_at"],
            )
            for r in rows
        ]

    def log_usage(self, entry: AiUsageLogEntry) -> None:
        values = vars(entry).copy()
        values["created_at"] = entry.created_at or local_now().isoformat()
        self._insert("ai_usage_logs", values)
