"""
Family Assistant — Data Models.

Records persisted per family. The family is the multi-tenant boundary: every
record below (except Identity, which is a session projection) carries the
family_id that owns it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from zoneinfo import ZoneInfo

ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"
ROLE_CHILD = "child"

ROLES = (ROLE_ADMIN, ROLE_MEMBER, ROLE_CHILD)


def local_now() -> datetime:
    """Current wall-clock time in the family timezone, as a naive datetime."""
    from family_assistant.config import settings

    return datetime.now(ZoneInfo(settings.TIMEZONE)).replace(tzinfo=None)


@dataclass(frozen=True)
class Identity:
    """Who is asking: resolved from an inbound request, never from a payload."""

    user_id: str
    family_id: str
    role: str

    @property
    def is_child(self) -> bool:
        return self.role == ROLE_CHILD


@dataclass
class Member:
    """A family member and their link to the chat transport."""

    id: str
    family_id: str
    display_name: str
    role: str = ROLE_MEMBER
    username: str = ""
    telegram_user_id: int | None = None
    language: str = "it"

    @property
    def name(self) -> str:
        return self.display_name or self.username


@dataclass
class Event:
    id: str
    family_id: str
    title: str
    start_date: datetime
    end_date: datetime | None = None
    all_day: bool = False
    category: str = "family"
    description: str | None = None
    color: str | None = None
    assigned_to: str | None = None
    created_by: str | None = None


@dataclass
class Task:
    id: str
    family_id: str
    title: str
    description: str | None = None
    completed: bool = False
    due_date: datetime | None = None
    priority: str = "medium"
    assigned_to: str | None = None
    created_by: str | None = None


@dataclass
class ShoppingItem:
    id: str
    family_id: str
    name: str
    quantity: int = 1
    unit: str | None = None
    category: str | None = None
    purchased: bool = False
    purchased_at: datetime | None = None
    purchased_by: str | None = None
    actual_price: str | None = None          # decimal string
    purchase_expense_id: str | None = None
    created_by: str | None = None


@dataclass
class Expense:
    id: str
    family_id: str
    amount: str                              # decimal string, e.g. "5.5"
    description: str
    date: datetime
    category: str | None = None
    paid_by: str | None = None
    created_by: str | None = None


@dataclass
class Conversation:
    id: str
    family_id: str
    user_id: str
    title: str | None = None
    created_at: str = ""


@dataclass
class Message:
    id: str
    conversation_id: str
    role: str                                # "user" | "assistant"
    content: str
    created_at: str = ""


@dataclass
class AuditLogEntry:
    """One row per confirmed action, whatever its outcome."""

    family_id: str
    user_id: str
    action: str
    details: str
    source: str = "assistant"
    created_at: str = ""


@dataclass
class AiUsageLogEntry:
    """Append-only telemetry. Never read back by the assistant."""

    user_id: str
    family_id: str
    request_type: str
    tokens: int = 0
    response_time_ms: int = 0
    created_at: str = field(default="")
