"""
Family Assistant — Chat turn.

One user message in, one streamed reply out:

    events = await assistant.chat(identity, conversation_id, "compra il latte", "it")
    async for event in events:
        ...   # ChatEvent(content=...) per delta, then one terminal event

Validation, history and the context snapshot happen before the model is
called, and failures there raise ChatError. Once streaming has started the
iterator always finishes with exactly one terminal event: done (carrying
the proposed action, if any) or error.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, AsyncIterator

from family_assistant.config import settings
from family_assistant.core.context import build_context
from family_assistant.core.llm import stream
from family_assistant.core.locales import Locale, get_locale
from family_assistant.core.parser import ProposedAction, extract_proposed_action
from family_assistant.core.prompts import compose_system_prompt
from family_assistant.data.models import AiUsageLogEntry, Conversation, Identity, Message

if TYPE_CHECKING:
    from family_assistant.ports.conversation_port import ConversationPort
    from family_assistant.ports.log_port import UsageLogPort
    from family_assistant.ports.store_port import FamilyStorePort

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 50


class ChatError(Exception):
    """Raised before streaming starts; the message is user-facing and localized."""


@dataclass
class ChatEvent:
    content: str = ""
    done: bool = False
    proposed_action: ProposedAction | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.done or self.error is not None

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        if self.done:
            action = self.proposed_action.to_dict() if self.proposed_action else None
            return {"done": True, "proposedAction": action}
        return {"content": self.content}


def _title(text: str) -> str:
    if len(text) <= TITLE_MAX_CHARS:
        return text
    return text[:TITLE_MAX_CHARS] + "..."


class AssistantService:
    """Runs chat turns against the configured LLM provider."""

    def __init__(
        self,
        store: FamilyStorePort,
        conversations: ConversationPort,
        usage: UsageLogPort,
    ) -> None:
        self._store = store
        self._conversations = conversations
        self._usage = usage

    async def start_conversation(self, identity: Identity, title: str | None = None) -> Conversation:
        return await self._conversations.create_conversation(
            identity.family_id, identity.user_id, title,
        )

    async def list_conversations(self, identity: Identity, limit: int = 10) -> list[Conversation]:
        """The caller's own conversations in this family, most recent first."""
        return await self._conversations.list_conversations(
            identity.family_id, identity.user_id, limit,
        )

    async def open_conversation(
        self,
        identity: Identity,
        conversation_id: str,
        language: str | None = None,
        limit: int | None = None,
    ) -> tuple[Conversation, list[Message]]:
        """Return a family conversation with its messages.

        Raises:
            ChatError: the conversation does not belong to the caller's family.
        """
        conversation = await self._conversations.get_conversation(
            conversation_id, identity.family_id,
        )
        if conversation is None:
            raise ChatError(get_locale(language).message("conversation_not_found"))
        messages = await self._conversations.get_messages(conversation.id, limit)
        return conversation, messages

    async def delete_conversation(self, identity: Identity, conversation_id: str) -> bool:
        """Delete a family conversation and its messages. False if not found."""
        deleted = await self._conversations.delete_conversation(
            conversation_id, identity.family_id,
        )
        if deleted:
            logger.info("Conversation %s deleted by %s", conversation_id, identity.user_id)
        return deleted

    async def chat(
        self,
        identity: Identity,
        conversation_id: str,
        content: str,
        language: str | None = None,
    ) -> AsyncIterator[ChatEvent]:
        """Prepare a chat turn and return its event stream.

        Raises:
            ChatError: empty message, conversation outside the caller's family,
                or the family context or history could not be read or written.
                No model call is made.
        """
        locale = get_locale(language)
        text = (content or "").strip()
        if not text:
            raise ChatError(locale.message("empty_message"))

        try:
            conversation = await self._conversations.get_conversation(
                conversation_id, identity.family_id,
            )
        except Exception as exc:
            logger.exception("Conversation lookup failed for %s", conversation_id)
            raise ChatError(locale.message("chat_failed")) from exc
        if conversation is None:
            raise ChatError(locale.message("conversation_not_found"))

        try:
            snapshot = await build_context(
                self._store, identity.family_id, identity.user_id, locale.code,
            )
            system = compose_system_prompt(snapshot, locale.code)

            await self._conversations.add_message(conversation.id, "user", text)
            history = await self._conversations.get_messages(
                conversation.id, settings.CHAT_HISTORY_LIMIT,
            )
        except Exception as exc:
            logger.exception("Chat turn setup failed in conversation %s", conversation.id)
            raise ChatError(locale.message("chat_failed")) from exc

        messages = [
            {"role": m.role, "content": m.content}
            for m in history
            if m.role in ("user", "assistant")
        ]
        # Providers expect the conversation to open with a user turn
        while messages and messages[0]["role"] != "user":
            messages.pop(0)

        return self._turn(identity, conversation, text, system, messages, locale)

    async def _turn(
        self,
        identity: Identity,
        conversation: Conversation,
        text: str,
        system: str,
        messages: list[dict],
        locale: Locale,
    ) -> AsyncIterator[ChatEvent]:
        started = time.monotonic()
        parts: list[str] = []
        try:
            async for delta in stream(system, messages, settings.CHAT_MAX_TOKENS):
                parts.append(delta)
                yield ChatEvent(content=delta)

            reply = "".join(parts)
            await self._conversations.add_message(conversation.id, "assistant", reply)
            if not conversation.title:
                await self._conversations.set_conversation_title(conversation.id, _title(text))
            proposal = extract_proposed_action(reply)
        except Exception:
            logger.exception("Chat turn failed in conversation %s", conversation.id)
            await self._log_usage(identity, "chat_error", text, "".join(parts), started)
            yield ChatEvent(error=locale.message("stream_failed"))
            return

        request_type = f"chat_with_action:{proposal.type}" if proposal else "chat"
        await self._log_usage(identity, request_type, text, reply, started)
        yield ChatEvent(done=True, proposed_action=proposal)

    async def _log_usage(
        self, identity: Identity, request_type: str, prompt: str, reply: str, started: float,
    ) -> None:
        entry = AiUsageLogEntry(
            user_id=identity.user_id,
            family_id=identity.family_id,
            request_type=request_type,
            tokens=(len(prompt) + len(reply)) // 4,
            response_time_ms=int((time.monotonic() - started) * 1000),
        )
        try:
            await self._usage.log_usage(entry)
        except Exception as exc:
            logger.error("Usage log write failed for %s: %s", request_type, exc)
