"""
Family Assistant — Prompt Composer.

Turns a ContextSnapshot into the system prompt. Pure string assembly: no
model call, no I/O, same input gives the same output.

The prompt is the only place the model learns the action grammar, so the
action list is generated from core.actions.ACTION_SCHEMAS and the examples
are rendered with the parser's own render_marker. Nothing here is binding:
role enforcement happens in the execution engine.
"""

from __future__ import annotations

import json
from datetime import datetime

from family_assistant.core.actions import ACTION_SCHEMAS
from family_assistant.core.context import ContextSnapshot, EventSummary
from family_assistant.core.locales import Locale, get_locale
from family_assistant.core.parser import render_marker
from family_assistant.data.models import ROLE_CHILD, local_now

PROMPT_TASKS_LIMIT = 5


def _time(when: datetime) -> str:
    return f"{when.hour:02d}:{when.minute:02d}"


def _today_line(event: EventSummary) -> str:
    if event.all_day:
        return f"- {event.title} [id: {event.id}]"
    return f"- {event.title} ({_time(event.start)}) [id: {event.id}]"


def _section(locale: Locale, key: str, lines: list[str]) -> list[str]:
    if not lines:
        return []
    return ["", locale.sections[key], *lines]


def _digest(snapshot: ContextSnapshot, locale: Locale) -> list[str]:
    out: list[str] = []

    out += _section(locale, "today_events", [_today_line(e) for e in snapshot.today_events])
    out += _section(locale, "upcoming_events", [
        f"- {e.title} ({locale.format_short_date(e.start)}) [id: {e.id}]"
        for e in snapshot.upcoming_events
    ])

    task_lines = []
    for task in snapshot.pending_tasks[:PROMPT_TASKS_LIMIT]:
        suffix = f" ({locale.assigned_to.format(name=task.assignee)})" if task.assignee else ""
        task_lines.append(f"- {task.title}{suffix} [id: {task.id}]")
    out += _section(locale, "pending_tasks", task_lines)

    out += _section(locale, "overdue_tasks", [
        f"- {t.title} ({locale.format_short_date(t.due_date)}) [id: {t.id}]"
        for t in snapshot.overdue_tasks
        if t.due_date is not None
    ])

    out += _section(locale, "shopping_list", [
        f"- {i.name} ({i.quantity}{' ' + i.unit if i.unit else ''}) [id: {i.id}]"
        for i in snapshot.shopping_list
    ])

    budget = snapshot.monthly_budget
    if budget.has_expenses:
        out += _section(locale, "monthly_budget", [
            locale.budget_line.format(total=f"{budget.total:.2f}"),
            *(f"- {cat}: €{amount:.2f}" for cat, amount in sorted(budget.by_category.items())),
        ])

    out += _section(locale, "family_members", [
        f"- {m.name} ({m.role}) [id: {m.id}]" for m in snapshot.family_members
    ])
    return out


def compose_system_prompt(
    snapshot: ContextSnapshot,
    language: str | None = None,
    now: datetime | None = None,
) -> str:
    """Build the system prompt for one chat turn.

    Args:
        snapshot: the family context to describe.
        language: locale code; defaults to the snapshot's language.
        now: reference date for the header. Defaults to now.
    """
    locale = get_locale(language or snapshot.language)
    now = now or local_now()

    lines = [
        locale.intro.format(
            date=locale.format_date(now),
            user_name=snapshot.user_name,
            role=snapshot.user_role,
        ),
        "",
        locale.context_header,
    ]
    lines += _digest(snapshot, locale)

    grammar = f"[{locale.marker_keyword}: action_type | {{\"field\": \"value\"}}]"
    lines += ["", locale.rules.format(marker=grammar)]

    lines += ["", locale.actions_header]
    lines += [
        f"- {action}: {json.dumps(example, ensure_ascii=False)}"
        for action, example in ACTION_SCHEMAS.items()
    ]

    if locale.examples:
        lines += ["", locale.examples_header]
        for lead, action, payload, follow_up in locale.examples:
            marker = render_marker(action, payload, locale.code)
            lines.append(f'"{lead} {marker} {follow_up}"')

    if snapshot.user_role == ROLE_CHILD:
        lines += ["", locale.child_clause]

    return "\n".join(lines)
