"""Family store port — abstract interface for family-scoped CRUD.

Core modules depend on this protocol, never on a specific database.
Every method that touches an existing record takes the caller's family_id:
a record owned by another family behaves exactly like a missing one.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from family_assistant.data.models import Event, Expense, Member, ShoppingItem, Task


class StoreError(Exception):
    """Raised when any family store operation fails."""


class FamilyStorePort(Protocol):
    """Abstract family data store used by core modules."""

    # Events
    async def get_events(
        self, family_id: str, start: datetime | None = None, end: datetime | None = None,
    ) -> list[Event]: ...

    async def get_event(self, event_id: str, family_id: str) -> Event | None: ...

    async def create_event(self, family_id: str, **fields: Any) -> Event: ...

    async def update_event(
        self, event_id: str, family_id: str, changes: dict[str, Any],
    ) -> Event | None: ...

    async def delete_event(self, event_id: str, family_id: str) -> bool: ...

    # Tasks
    async def get_tasks(self, family_id: str) -> list[Task]: ...

    async def get_task(self, task_id: str, family_id: str) -> Task | None: ...

    async def create_task(self, family_id: str, **fields: Any) -> Task: ...

    async def update_task(
        self, task_id: str, family_id: str, changes: dict[str, Any],
    ) -> Task | None: ...

    async def delete_task(self, task_id: str, family_id: str) -> bool: ...

    # Shopping
    async def get_shopping_items(self, family_id: str) -> list[ShoppingItem]: ...

    async def get_shopping_item(self, item_id: str, family_id: str) -> ShoppingItem | None: ...

    async def create_shopping_item(self, family_id: str, **fields: Any) -> ShoppingItem: ...

    async def update_shopping_item(
        self, item_id: str, family_id: str, changes: dict[str, Any],
    ) -> ShoppingItem | None: ...

    async def delete_shopping_item(self, item_id: str, family_id: str) -> bool: ...

    # Expenses
    async def get_expenses(
        self, family_id: str, start: datetime | None = None, end: datetime | None = None,
    ) -> list[Expense]: ...

    async def get_expense(self, expense_id: str, family_id: str) -> Expense | None: ...

    async def create_expense(self, family_id: str, **fields: Any) -> Expense: ...

    async def update_expense(
        self, expense_id: str, family_id: str, changes: dict[str, Any],
    ) -> Expense | None: ...

    async def delete_expense(self, expense_id: str, family_id: str) -> bool: ...

    # Members
    async def get_family_members(self, family_id: str) -> list[Member]: ...

    async def get_member(self, user_id: str) -> Member | None: ...
