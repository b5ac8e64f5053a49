"""Tests for family_assistant.core.context — the family context snapshot."""

from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from family_assistant.core.context import build_context
from family_assistant.data.models import Event, Expense, Member, ShoppingItem, Task
from family_assistant.ports.store_port import StoreError

FAMILY = "fam-rossi"
NOW = datetime(2026, 1, 10, 9, 0)


def _make_store(events=(), tasks=(), items=(), expenses=(), members=(), user=None):
    """Create a mock FamilyStorePort returning the given records."""
    store = MagicMock()
    store.get_events = AsyncMock(return_value=list(events))
    store.get_tasks = AsyncMock(return_value=list(tasks))
    store.get_shopping_items = AsyncMock(return_value=list(items))
    store.get_expenses = AsyncMock(return_value=list(expenses))
    store.get_family_members = AsyncMock(return_value=list(members))
    store.get_member = AsyncMock(return_value=user)
    return store


def _event(eid, start):
    return Event(id=eid, family_id=FAMILY, title=f"Event {eid}", start_date=start)


def _task(tid, due=None, completed=False, assigned_to=None):
    return Task(
        id=tid, family_id=FAMILY, title=f"Task {tid}", due_date=due,
        completed=completed, assigned_to=assigned_to,
    )


ANNA = Member(id="u-anna", family_id=FAMILY, display_name="Anna", role="admin")
LEO = Member(id="u-leo", family_id=FAMILY, display_name="Leo", role="child")


class TestEvents:
    @pytest.mark.asyncio
    async def test_one_today_one_tomorrow(self):
        store = _make_store(events=[
            _event("today", datetime(2026, 1, 10, 10, 0)),
            _event("tomorrow", datetime(2026, 1, 11, 10, 0)),
        ])
        snap = await build_context(store, FAMILY, "u-anna", "it", now=NOW)
        assert len(snap.today_events) == 1
        assert len(snap.upcoming_events) == 1
        assert snap.today_events[0].id == "today"
        assert snap.upcoming_events[0].id == "tomorrow"

    @pytest.mark.asyncio
    async def test_today_and_upcoming_are_disjoint(self):
        starts = [datetime(2026, 1, 10, h) for h in (0, 12, 23)] + [
            datetime(2026, 1, 11, 0), datetime(2026, 1, 12, 8),
        ]
        store = _make_store(events=[_event(str(i), s) for i, s in enumerate(starts)])
        snap = await build_context(store, FAMILY, "u-anna", now=NOW)
        today = {e.id for e in snap.today_events}
        upcoming = {e.id for e in snap.upcoming_events}
        assert today == {"0", "1", "2"}
        assert upcoming == {"3", "4"}
        assert not today & upcoming

    @pytest.mark.asyncio
    async def test_upcoming_capped_at_five(self):
        store = _make_store(events=[
            _event(str(d), datetime(2026, 1, 11 + (d % 6), 9)) for d in range(8)
        ])
        snap = await build_context(store, FAMILY, "u-anna", now=NOW)
        assert len(snap.upcoming_events) == 5

    @pytest.mark.asyncio
    async def test_reads_a_seven_day_window(self):
        store = _make_store()
        await build_context(store, FAMILY, "u-anna", now=NOW)
        store.get_events.assert_awaited_once_with(
            FAMILY, datetime(2026, 1, 10), datetime(2026, 1, 17),
        )


class TestTasks:
    @pytest.mark.asyncio
    async def test_pending_and_overdue(self):
        store = _make_store(tasks=[
            _task("done", due=datetime(2026, 1, 1), completed=True),
            _task("late", due=datetime(2026, 1, 9)),
            _task("later", due=datetime(2026, 1, 20)),
            _task("whenever"),
        ])
        snap = await build_context(store, FAMILY, "u-anna", now=NOW)
        assert {t.id for t in snap.pending_tasks} == {"late", "later", "whenever"}
        assert {t.id for t in snap.overdue_tasks} == {"late"}

    @pytest.mark.asyncio
    async def test_crossing_midnight_moves_task_to_overdue(self):
        due = datetime(2026, 1, 10, 23, 30)
        store = _make_store(tasks=[_task("t", due=due)])

        before = await build_context(store, FAMILY, "u-anna", now=datetime(2026, 1, 10, 23, 0))
        after = await build_context(store, FAMILY, "u-anna", now=datetime(2026, 1, 11, 0, 10))

        assert [t.id for t in before.overdue_tasks] == []
        assert [t.id for t in after.overdue_tasks] == ["t"]
        assert [t.id for t in after.pending_tasks] == ["t"]

    @pytest.mark.asyncio
    async def test_assignee_resolved_to_name(self):
        store = _make_store(tasks=[_task("t", assigned_to="u-leo")], members=[ANNA, LEO])
        snap = await build_context(store, FAMILY, "u-anna", now=NOW)
        assert snap.pending_tasks[0].assignee == "Leo"


class TestShoppingAndBudget:
    @pytest.mark.asyncio
    async def test_shopping_list_excludes_purchased_and_caps_at_ten(self):
        items = [ShoppingItem(id=f"i{n}", family_id=FAMILY, name=f"item {n}") for n in range(12)]
        items.insert(0, ShoppingItem(id="bought", family_id=FAMILY, name="pane", purchased=True))
        store = _make_store(items=items)
        snap = await build_context(store, FAMILY, "u-anna", now=NOW)
        assert len(snap.shopping_list) == 10
        assert "bought" not in {i.id for i in snap.shopping_list}

    @pytest.mark.asyncio
    async def test_budget_sums_decimals_and_buckets_other(self):
        store = _make_store(expenses=[
            Expense(id="e1", family_id=FAMILY, amount="0.1", description="a", date=NOW, category="food"),
            Expense(id="e2", family_id=FAMILY, amount="0.2", description="b", date=NOW, category="food"),
            Expense(id="e3", family_id=FAMILY, amount="10", description="c", date=NOW, category=None),
        ])
        snap = await build_context(store, FAMILY, "u-anna", now=NOW)
        assert snap.monthly_budget.total == Decimal("10.3")
        assert snap.monthly_budget.by_category == {"food": Decimal("0.3"), "other": Decimal("10")}
        assert snap.monthly_budget.has_expenses

    @pytest.mark.asyncio
    async def test_month_bounds(self):
        store = _make_store()
        await build_context(store, FAMILY, "u-anna", now=datetime(2026, 2, 14, 12))
        store.get_expenses.assert_awaited_once_with(
            FAMILY, datetime(2026, 2, 1), datetime(2026, 2, 28, 23, 59, 59),
        )


class TestUser:
    @pytest.mark.asyncio
    async def test_user_role_and_name(self):
        store = _make_store(members=[ANNA, LEO], user=LEO)
        snap = await build_context(store, FAMILY, "u-leo", "en", now=NOW)
        assert snap.user_role == "child"
        assert snap.user_name == "Leo"
        assert snap.language == "en"
        assert {m.name for m in snap.family_members} == {"Anna", "Leo"}

    @pytest.mark.asyncio
    async def test_missing_user_falls_back(self):
        snap = await build_context(_make_store(), FAMILY, "ghost", "it", now=NOW)
        assert snap.user_role == "member"
        assert snap.user_name == "Utente"

    @pytest.mark.asyncio
    async def test_user_from_other_family_ignored(self):
        stranger = Member(id="u-x", family_id="fam-other", display_name="X", role="admin")
        snap = await build_context(_make_store(user=stranger), FAMILY, "u-x", "en", now=NOW)
        assert snap.user_role == "member"
        assert snap.user_name == "User"


class TestFailure:
    @pytest.mark.asyncio
    async def test_any_read_failure_aborts(self):
        store = _make_store()
        store.get_tasks = AsyncMock(side_effect=StoreError("disk I/O error"))
        with pytest.raises(StoreError):
            await build_context(store, FAMILY, "u-anna", now=NOW)


class TestWithSQLite:
    @pytest.mark.asyncio
    async def test_snapshot_from_real_store(self, family_db, store):
        anna = family_db.add_member(FAMILY, "Anna", role="admin", telegram_user_id=1)
        family_db.create_event(FAMILY, title="Dentista", start_date=datetime(2026, 1, 10, 15))
        family_db.create_event("fam-other", title="Not ours", start_date=datetime(2026, 1, 10, 16))
        family_db.create_task(FAMILY, title="Bollette", due_date=datetime(2026, 1, 5))
        family_db.create_shopping_item(FAMILY, name="latte")
        family_db.create_expense(FAMILY, amount="12.50", description="spesa", date=datetime(2026, 1, 3))

        snap = await build_context(store, FAMILY, anna.id, "it", now=NOW)

        assert [e.title for e in snap.today_events] == ["Dentista"]
        assert [t.title for t in snap.overdue_tasks] == ["Bollette"]
        assert [i.name for i in snap.shopping_list] == ["latte"]
        assert snap.monthly_budget.total == Decimal("12.50")
        assert snap.user_name == "Anna"
        assert snap.user_role == "admin"
