"""Conversation port — persisted assistant transcripts, scoped by family."""

from __future__ import annotations

from typing import Protocol

from family_assistant.data.models import Conversation, Message


class ConversationPort(Protocol):
    """Abstract conversation history used by the chat turn."""

    async def create_conversation(
        self, family_id: str, user_id: str, title: str | None = None,
    ) -> Conversation: ...

    async def get_conversation(
        self, conversation_id: str, family_id: str,
    ) -> Conversation | None: ...

    async def set_conversation_title(self, conversation_id: str, title: str) -> None: ...

    async def add_message(self, conversation_id: str, role: str, content: str) -> Message: ...

    async def get_messages(self, conversation_id: str, limit: int | None = None) -> list[Message]: ...

    async def list_conversations(
        self, family_id: str, user_id: str, limit: int = 10,
    ) -> list[Conversation]: ...

    async def delete_conversation(self, conversation_id: str, family_id: str) -> bool:
        """Delete a conversation and its messages. False if not in this family."""
        ...
