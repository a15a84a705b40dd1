"""
Helpers for the expression strings stored on condition steps.

A `{{name}}` token anywhere in an expression is replaced by the named
datasource at run time. Set-membership operators take a JSON array of
strings on the right-hand side.
"""
import json
import re
from typing import List, Optional, Tuple

from ..graph.models import SET_OPERATORS, Operator

LIST_SEPARATORS = (",", ":")
_TOKEN = re.compile(r"\{\{\s*([^{}]*?)\s*\}\}")


def referenced_datasources(expression: str) -> List[str]:
    """Datasource names referenced by an expression, in order of first appearance."""
    seen: List[str] = []
    for match in _TOKEN.finditer(expression or ""):
        name = match.group(1)
        if name and name not in seen:
            seen.append(name)
    return seen


def is_set_operator(operator: str) -> bool:
    try:
        return Operator(operator) in SET_OPERATORS
    except ValueError:
        return False


def parse_list_expression(text: str) -> List[str]:
    """
    Read the right-hand side of a set-membership condition.

    Accepts a JSON array or a comma separated list; blank items are dropped.
    """
    text = (text or "").strip()
    if not text:
        return []
    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None
    if isinstance(parsed, list):
        return [str(item) for item in parsed]
    return [item.strip() for item in text.split(",") if item.strip()]


def normalize_list_expression(text: str) -> str:
    return json.dumps(parse_list_expression(text), separators=LIST_SEPARATORS, ensure_ascii=False)


def add_list_value(text: str, value: str) -> str:
    value = (value or "").strip()
    values = parse_list_expression(text)
    if value:
        values.append(value)
    return json.dumps(values, separators=LIST_SEPARATORS, ensure_ascii=False)


def remove_list_value(text: str, index: int) -> str:
    values = parse_list_expression(text)
    return json.dumps([v for i, v in enumerate(values) if i != index], separators=LIST_SEPARATORS, ensure_ascii=False)


# ============================================================================
# AUTOCOMPLETE
# ============================================================================

def autocomplete_query(text: str, cursor: int) -> Optional[str]:
    """
    The partial datasource name being typed at cursor, or None.

    Completion is active when the text before the cursor holds a `{{` that
    has not been closed yet.
    """
    before = text[:cursor]
    opened = before.rfind("{{")
    if opened == -1 or opened < before.rfind("}}"):
        return None
    return before[opened + 2:]


def insert_datasource(text: str, cursor: int, name: str) -> Tuple[str, int]:
    """Replace the partial token before cursor with `{{name}}`; returns the new text and cursor."""
    before, after = text[:cursor], text[cursor:]
    opened = before.rfind("{{")
    if opened == -1:
        return text, cursor
    token = "{{" + name + "}}"
    return before[:opened] + token + after, opened + len(token)
