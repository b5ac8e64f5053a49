"""Shared test fixtures and configuration.

Sets up fake environment variables so family_assistant.config doesn't
sys.exit(), and provides temp-file SQLite stores and common identities.
"""

import os

# Patch env vars BEFORE any family_assistant imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "Europe/Rome")
os.environ.setdefault("DEFAULT_LANGUAGE", "it")

import pytest
from unittest.mock import AsyncMock, MagicMock

from family_assistant.data.models import Identity

FAMILY = "fam-rossi"
OTHER_FAMILY = "fam-bianchi"


@pytest.fixture
def admin():
    return Identity(user_id="u-anna", family_id=FAMILY, role="admin")


@pytest.fixture
def child():
    return Identity(user_id="u-leo", family_id=FAMILY, role="child")


@pytest.fixture
def family_db(tmp_path):
    """Return a FamilyDB instance backed by a temp file."""
    from family_assistant.data.db import FamilyDB
    return FamilyDB(db_path=str(tmp_path / "test_family.db"))


@pytest.fixture
def conversation_db(tmp_path):
    """Return a ConversationDB instance backed by a temp file."""
    from family_assistant.data.db import ConversationDB
    return ConversationDB(db_path=str(tmp_path / "test_conversations.db"))


@pytest.fixture
def log_db(tmp_path):
    """Return a LogDB instance backed by a temp file."""
    from family_assistant.data.db import LogDB
    return LogDB(db_path=str(tmp_path / "test_logs.db"))


@pytest.fixture
def store(family_db):
    from family_assistant.adapters.sqlite_store import SQLiteFamilyStore
    return SQLiteFamilyStore(family_db)


@pytest.fixture
def conversations(conversation_db):
    from family_assistant.adapters.sqlite_store import SQLiteConversationStore
    return SQLiteConversationStore(conversation_db)


@pytest.fixture
def log_sink(log_db):
    from family_assistant.adapters.sqlite_store import SQLiteLogSink
    return SQLiteLogSink(log_db)


@pytest.fixture
def mock_logs():
    """Audit + usage sink that records calls."""
    logs = MagicMock()
    logs.create_audit_log = AsyncMock()
    logs.log_usage = AsyncMock()
    return logs
