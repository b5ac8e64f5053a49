"""Identity port — resolves a transport-level user into an Identity."""

from __future__ import annotations

from typing import Protocol

from family_assistant.data.models import Identity


class IdentityPort(Protocol):
    """Session/identity resolver used by the chat transport."""

    async def resolve_telegram_user(self, telegram_user_id: int) -> Identity | None: ...
