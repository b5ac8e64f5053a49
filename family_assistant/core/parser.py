"""
Family Assistant — Reply Parser.

Extracts the single proposed action the model may embed in its reply:

    [AZIONE_PROPOSTA: add_shopping_item | {"name": "latte", "quantity": 1}]

The parser only ever sees the fully accumulated reply. The payload is found
with a bracket-depth scan rather than a regex because payloads such as
add_shopping_items contain nested arrays and objects.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from family_assistant.core.locales import LOCALES, get_locale

logger = logging.getLogger(__name__)

# One keyword per prompt locale, plus the older English spelling models
# sometimes echo back.
MARKER_KEYWORDS: tuple[str, ...] = tuple(
    sorted({loc.marker_keyword for loc in LOCALES.values()} | {"PROPOSED_ACTION"})
)

_MARKER_RE = re.compile(
    r"\[(?P<keyword>" + "|".join(MARKER_KEYWORDS) + r"):\s*(?P<type>[A-Za-z_][A-Za-z0-9_]*)\s*\|\s*"
)

_OPENERS = "{["
_CLOSERS = "}]"


@dataclass
class ProposedAction:
    """An action suggested by the model, awaiting explicit confirmation."""

    type: str
    data: Any

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data}


def _scan_payload(text: str, start: int) -> int | None:
    """Return the index of the bracket closing the marker, or None if truncated.

    Brackets inside JSON string literals are ignored.
    """
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            if depth == 0:
                return i
            depth -= 1
    return None


def _locate(text: str) -> tuple[re.Match[str], int | None] | None:
    match = _MARKER_RE.search(text)
    if match is None:
        return None
    return match, _scan_payload(text, match.end())


def extract_proposed_action(text: str) -> ProposedAction | None:
    """Return the first proposed action in a full reply, or None.

    A payload that is not valid JSON is kept as the raw string so the
    execution step can reject it explicitly.
    """
    if not text:
        return None
    located = _locate(text)
    if located is None:
        return None
    match, end = located
    action_type = match.group("type")
    if end is None:
        logger.warning("Proposed %s has an unterminated payload, ignoring", action_type)
        return None

    raw = text[match.end():end].strip()
    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Proposed %s payload is not valid JSON: %.200s", action_type, raw)
        data = raw
    return ProposedAction(type=action_type, data=data)


def render_marker(action_type: str, payload: Any, language: str | None = None) -> str:
    """Render a proposal exactly as the model is taught to write it."""
    keyword = get_locale(language).marker_keyword
    return f"[{keyword}: {action_type} | {json.dumps(payload, ensure_ascii=False)}]"


def strip_marker(text: str) -> str:
    """Return the reply without its (first) action marker, for display."""
    located = _locate(text)
    if located is None:
        return text.strip()
    match, end = located
    head = text[: match.start()]
    tail = "" if end is None else text[end + 1:]
    on_own_line = head.rstrip(" \t").endswith("\n") or tail.lstrip(" \t").startswith("\n")
    before, after = head.rstrip(), tail.lstrip()
    if before and after:
        sep = "\n" if on_own_line else " "
        return f"{before}{sep}{after}"
    return before or after
