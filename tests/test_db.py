"""Tests for family_assistant.data.db — SQLite tables (temp files)."""

from datetime import datetime
from unittest.mock import patch

import pytest

from family_assistant.data.models import AiUsageLogEntry, AuditLogEntry

FAMILY = "fam-rossi"
OTHER = "fam-bianchi"


class TestMembers:
    def test_add_and_lookup(self, family_db):
        anna = family_db.add_member(FAMILY, "Anna", role="admin", telegram_user_id=111, language="en")
        assert family_db.get_member(anna.id) == anna
        assert family_db.get_member_by_telegram_id(111) == anna
        assert family_db.get_member_by_telegram_id(999) is None

    def test_members_listed_per_family(self, family_db):
        family_db.add_member(FAMILY, "Leo", role="child")
        family_db.add_member(FAMILY, "Anna", role="admin")
        family_db.add_member(OTHER, "Marco")
        assert [m.display_name for m in family_db.get_family_members(FAMILY)] == ["Anna", "Leo"]


class TestEvents:
    def test_round_trip_types(self, family_db):
        event = family_db.create_event(
            FAMILY, title="Dentista", start_date=datetime(2026, 1, 10, 15), all_day=True,
        )
        stored = family_db.get_event(event.id, FAMILY)
        assert stored.start_date == datetime(2026, 1, 10, 15)
        assert stored.all_day is True
        assert stored.category == "family"

    def test_window_is_half_open(self, family_db):
        family_db.create_event(FAMILY, title="a", start_date=datetime(2026, 1, 10, 0))
        family_db.create_event(FAMILY, title="b", start_date=datetime(2026, 1, 17, 0))
        events = family_db.get_events(FAMILY, datetime(2026, 1, 10), datetime(2026, 1, 17))
        assert [e.title for e in events] == ["a"]

    def test_other_family_invisible(self, family_db):
        event = family_db.create_event(OTHER, title="x", start_date=datetime(2026, 1, 10))
        assert family_db.get_event(event.id, FAMILY) is None
        assert family_db.get_events(FAMILY) == []
        assert family_db.update_event(event.id, FAMILY, {"title": "mine"}) is None
        assert family_db.delete_event(event.id, FAMILY) is False
        assert family_db.get_event(event.id, OTHER).title == "x"

    def test_update_rejects_unknown_columns(self, family_db):
        event = family_db.create_event(FAMILY, title="x", start_date=datetime(2026, 1, 10))
        with pytest.raises(ValueError, match="family_id"):
            family_db.update_event(event.id, FAMILY, {"family_id": OTHER})

    def test_empty_update_returns_record(self, family_db):
        event = family_db.create_event(FAMILY, title="x", start_date=datetime(2026, 1, 10))
        assert family_db.update_event(event.id, FAMILY, {}).title == "x"


class TestTasksShoppingExpenses:
    def test_complete_task(self, family_db):
        task = family_db.create_task(FAMILY, title="Bollette")
        updated = family_db.update_task(task.id, FAMILY, {"completed": True})
        assert updated.completed is True

    def test_shopping_item_purchase_fields(self, family_db):
        item = family_db.create_shopping_item(FAMILY, name="latte", quantity=2, unit="l")
        when = datetime(2026, 1, 10, 18, 30)
        updated = family_db.update_shopping_item(item.id, FAMILY, {
            "purchased": True, "purchased_at": when, "actual_price": "1.20",
        })
        assert updated.purchased is True
        assert updated.purchased_at == when
        assert updated.actual_price == "1.20"

    def test_expense_amount_kept_as_decimal_string(self, family_db):
        expense = family_db.create_expense(
            FAMILY, amount="0.10", description="gomma", date=datetime(2026, 1, 3),
        )
        assert family_db.get_expense(expense.id, FAMILY).amount == "0.10"

    def test_expenses_window_is_inclusive(self, family_db):
        family_db.create_expense(FAMILY, amount="1", description="a", date=datetime(2026, 1, 1))
        family_db.create_expense(FAMILY, amount="2", description="b", date=datetime(2026, 1, 31, 23, 59, 59))
        family_db.create_expense(FAMILY, amount="3", description="c", date=datetime(2026, 2, 1))
        expenses = family_db.get_expenses(
            FAMILY, datetime(2026, 1, 1), datetime(2026, 1, 31, 23, 59, 59),
        )
        assert [e.description for e in expenses] == ["a", "b"]

    def test_delete_expense(self, family_db):
        expense = family_db.create_expense(FAMILY, amount="1", description="a", date=datetime(2026, 1, 1))
        assert family_db.delete_expense(expense.id, FAMILY) is True
        assert family_db.delete_expense(expense.id, FAMILY) is False


class TestConversations:
    def test_family_scoped_lookup(self, conversation_db):
        conversation = conversation_db.create_conversation(FAMILY, "u-anna")
        assert conversation_db.get_conversation(conversation.id, FAMILY).user_id == "u-anna"
        assert conversation_db.get_conversation(conversation.id, OTHER) is None

    def test_title(self, conversation_db):
        conversation = conversation_db.create_conversation(FAMILY, "u-anna")
        assert conversation.title is None
        conversation_db.set_conversation_title(conversation.id, "Spesa")
        assert conversation_db.get_conversation(conversation.id, FAMILY).title == "Spesa"

    def test_messages_most_recent_in_order(self, conversation_db):
        conversation = conversation_db.create_conversation(FAMILY, "u-anna")
        for n in range(5):
            conversation_db.add_message(conversation.id, "user", f"m{n}")
        all_messages = conversation_db.get_messages(conversation.id)
        recent = conversation_db.get_messages(conversation.id, limit=2)
        assert [m.content for m in all_messages] == ["m0", "m1", "m2", "m3", "m4"]
        assert [m.content for m in recent] == ["m3", "m4"]

    def test_timestamps_use_family_clock(self, conversation_db):
        fixed = datetime(2026, 3, 29, 2, 30)
        with patch("family_assistant.data.db.local_now", return_value=fixed):
            conversation = conversation_db.create_conversation(FAMILY, "u-anna")
            message = conversation_db.add_message(conversation.id, "user", "ciao")
        assert conversation.created_at == "2026-03-29T02:30:00"
        assert message.created_at == "2026-03-29T02:30:00"
        assert conversation_db.get_messages(conversation.id)[0].created_at == "2026-03-29T02:30:00"

    def test_list_own_conversations_newest_first(self, conversation_db):
        first = conversation_db.create_conversation(FAMILY, "u-anna", "Spesa")
        second = conversation_db.create_conversation(FAMILY, "u-anna", "Dentista")
        conversation_db.create_conversation(FAMILY, "u-marco")
        conversation_db.create_conversation(OTHER, "u-anna")

        listed = conversation_db.list_conversations(FAMILY, "u-anna")
        assert [c.id for c in listed] == [second.id, first.id]
        assert [c.id for c in conversation_db.list_conversations(FAMILY, "u-anna", limit=1)] == [second.id]

    def test_delete_is_family_scoped(self, conversation_db):
        conversation = conversation_db.create_conversation(FAMILY, "u-anna")
        conversation_db.add_message(conversation.id, "user", "ciao")

        assert conversation_db.delete_conversation(conversation.id, OTHER) is False
        assert conversation_db.get_messages(conversation.id) != []

        assert conversation_db.delete_conversation(conversation.id, FAMILY) is True
        assert conversation_db.get_conversation(conversation.id, FAMILY) is None
        assert conversation_db.get_messages(conversation.id) == []


class TestLogs:
    def test_audit_log_newest_first(self, log_db):
        log_db.create_audit_log(AuditLogEntry(FAMILY, "u-anna", "create_task", '{"success": true}'))
        log_db.create_audit_log(AuditLogEntry(FAMILY, "u-anna", "delete_task", '{"success": false}'))
        log_db.create_audit_log(AuditLogEntry(OTHER, "u-x", "create_task", "{}"))

        entries = log_db.list_audit_logs(FAMILY)
        assert [e.action for e in entries] == ["delete_task", "create_task"]
        assert entries[0].source == "assistant"
        assert entries[0].created_at

    def test_usage_log(self, log_db):
        log_db.log_usage(AiUsageLogEntry("u-anna", FAMILY, "chat", tokens=12, response_time_ms=300))
        with log_db._connect() as conn:
            row = conn.execute("SELECT * FROM ai_usage_logs").fetchone()
        assert row["request_type"] == "chat"
        assert row["tokens"] == 12
