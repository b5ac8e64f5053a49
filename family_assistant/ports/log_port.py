"""Log ports — append-only sinks for audit records and AI usage telemetry."""

from __future__ import annotations

from typing import Protocol

from family_assistant.data.models import AiUsageLogEntry, AuditLogEntry


class AuditLogPort(Protocol):
    """Append-only audit sink for confirmed actions."""

    async def create_audit_log(self, entry: AuditLogEntry) -> None: ...


class UsageLogPort(Protocol):
    """Append-only sink for model usage telemetry."""

    async def log_usage(self, entry: AiUsageLogEntry) -> None: ...
