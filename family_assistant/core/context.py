"""
Family Assistant — Context Snapshotter.

Builds a read-only digest of the family's current state for the system
prompt: today's and upcoming events, open and overdue tasks, the shopping
list, this month's spending and the member roster.

All reads run concurrently; if any of them fails the whole snapshot fails,
so a chat turn never works from partial data.
"""

from __future__ import annotations

import asyncio
import calendar
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from family_assistant.core.locales import get_locale
from family_assistant.data.models import ROLE_MEMBER, Event, Member, Task, local_now
from family_assistant.ports.store_port import FamilyStorePort

logger = logging.getLogger(__name__)

UPCOMING_EVENTS_LIMIT = 5
SHOPPING_LIST_LIMIT = 10


# ---------------------------------------------------------------------------
# Snapshot records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EventSummary:
    id: str
    title: str
    start: datetime
    end: datetime | None
    all_day: bool
    category: str


@dataclass(frozen=True)
class TaskSummary:
    id: str
    title: str
    due_date: datetime | None
    priority: str
    assignee: str | None        # display name, not id


@dataclass(frozen=True)
class ShoppingSummary:
    id: str
    name: str
    quantity: int
    unit: str | None = None


@dataclass(frozen=True)
class MemberSummary:
    id: str
    name: str
    role: str


@dataclass(frozen=True)
class MonthlyBudget:
    total: Decimal = Decimal("0")
    by_category: dict[str, Decimal] = field(default_factory=dict)

    @property
    def has_expenses(self) -> bool:
        return bool(self.by_category)


@dataclass(frozen=True)
class ContextSnapshot:
    """Everything the prompt may say about the family. Never written back."""

    today_events: tuple[EventSummary, ...]
    upcoming_events: tuple[EventSummary, ...]
    pending_tasks: tuple[TaskSummary, ...]
    overdue_tasks: tuple[TaskSummary, ...]
    shopping_list: tuple[ShoppingSummary, ...]
    monthly_budget: MonthlyBudget
    family_members: tuple[MemberSummary, ...]
    user_role: str
    user_name: str
    language: str


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def _month_bounds(now: datetime) -> tuple[datetime, datetime]:
    start = datetime(now.year, now.month, 1)
    last_day = calendar.monthrange(now.year, now.month)[1]
    return start, datetime(now.year, now.month, last_day, 23, 59, 59)


def _event_summary(event: Event) -> EventSummary:
    return EventSummary(
        id=event.id,
        title=event.title,
        start=event.start_date,
        end=event.end_date,
        all_day=event.all_day,
        category=event.category,
    )


def _task_summary(task: Task, names: dict[str, str]) -> TaskSummary:
    return TaskSummary(
        id=task.id,
        title=task.title,
        due_date=task.due_date,
        priority=task.priority,
        assignee=names.get(task.assigned_to) if task.assigned_to else None,
    )


def _budget(amounts: list[tuple[str | None, str]]) -> MonthlyBudget:
    total = Decimal("0")
    by_category: dict[str, Decimal] = {}
    for category, amount in amounts:
        value = Decimal(amount)
        total += value
        key = category or "other"
        by_category[key] = by_category.get(key, Decimal("0")) + value
    return MonthlyBudget(total=total, by_category=by_category)


async def build_context(
    store: FamilyStorePort,
    family_id: str,
    user_id: str,
    language: str | None = None,
    now: datetime | None = None,
) -> ContextSnapshot:
    """Read the family's state and reduce it to a ContextSnapshot.

    Args:
        store: family-scoped data store.
        family_id: the caller's family; nothing outside it is read.
        user_id: the requesting member (name and role for the prompt header).
        language: locale code; only used for the default user name.
        now: reference time, naive in the family timezone. Defaults to now.

    Raises:
        Whatever the store raises. No partial snapshot is ever returned.
    """
    locale = get_locale(language)
    now = now or local_now()
    today_start = datetime(now.year, now.month, now.day)
    today_end = today_start + timedelta(days=1)
    week_end = today_start + timedelta(days=7)
    month_start, month_end = _month_bounds(now)

    events, tasks, items, expenses, members, user = await asyncio.gather(
        store.get_events(family_id, today_start, week_end),
        store.get_tasks(family_id),
        store.get_shopping_items(family_id),
        store.get_expenses(family_id, month_start, month_end),
        store.get_family_members(family_id),
        store.get_member(user_id),
    )

    names = {m.id: m.name for m in members}

    today_events = tuple(
        _event_summary(e) for e in events if today_start <= e.start_date < today_end
    )
    upcoming_events = tuple(
        _event_summary(e) for e in events if e.start_date >= today_end
    )[:UPCOMING_EVENTS_LIMIT]

    open_tasks = [t for t in tasks if not t.completed]
    pending_tasks = tuple(_task_summary(t, names) for t in open_tasks)
    overdue_tasks = tuple(
        _task_summary(t, names)
        for t in open_tasks
        if t.due_date is not None and t.due_date < now
    )

    shopping_list = tuple(
        ShoppingSummary(id=i.id, name=i.name, quantity=i.quantity, unit=i.unit)
        for i in items
        if not i.purchased
    )[:SHOPPING_LIST_LIMIT]

    # A user record from another family is treated as missing
    member: Member | None = user if user is not None and user.family_id == family_id else None

    snapshot = ContextSnapshot(
        today_events=today_events,
        upcoming_events=upcoming_events,
        pending_tasks=pending_tasks,
        overdue_tasks=overdue_tasks,
        shopping_list=shopping_list,
        monthly_budget=_budget([(e.category, e.amount) for e in expenses]),
        family_members=tuple(MemberSummary(id=m.id, name=m.name, role=m.role) for m in members),
        user_role=member.role if member else ROLE_MEMBER,
        user_name=(member.name if member else "") or locale.default_user_name,
        language=locale.code,
    )
    logger.debug(
        "Context for family %s: %d today, %d upcoming, %d pending, %d overdue, %d to buy",
        family_id,
        len(today_events),
        len(upcoming_events),
        len(pending_tasks),
        len(overdue_tasks),
        len(shopping_list),
    )
    return snapshot
