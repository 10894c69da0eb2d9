"""Tree-walk URL replacement over decoded stored values.

Values are JSON-shaped trees (str, number, bool, None, list, dict). Only
string leaves are rewritten; structure and non-string leaves are kept.
Serialization happens at the boundary in :func:`rewrite_text`.
"""

from __future__ import annotations

import json
from typing import Any, Union

JsonValue = Union[str, int, float, bool, None, list["JsonValue"], dict[str, "JsonValue"]]


def replace_in_tree(value: JsonValue, old: str, new: str) -> tuple[JsonValue, int]:
    """Return a rewritten copy of ``value`` and the number of leaves changed."""
    if isinstance(value, str):
        if old in value:
            return value.replace(old, new), 1
        return value, 0
    if isinstance(value, list):
        items = []
        changed = 0
        for item in value:
            rewritten, count = replace_in_tree(item, old, new)
            items.append(rewritten)
            changed += count
        return items, changed
    if isinstance(value, dict):
        mapping: dict[str, Any] = {}
        changed = 0
        for key, item in value.items():
            rewritten, count = replace_in_tree(item, old, new)
            mapping[key] = rewritten
            changed += count
        return mapping, changed
    return value, 0


def _looks_like_json(text: str) -> bool:
    stripped = text.strip()
    return len(stripped) >= 2 and stripped[0] in "[{" and stripped[-1] in "]}"


def rewrite_text(text: str, old: str, new: str, *, structured: bool = False) -> tuple[str, bool]:
    """Replace ``old`` with ``new`` inside stored text.

    JSON documents are decoded, walked and re-encoded so escaped slashes and
    nested strings are handled. ``structured`` forces a JSON attempt even
    when the text does not look like a JSON container.
    """
    if not old or old == new:
        return text, False
    if structured or _looks_like_json(text):
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError:
            decoded = None
        else:
            if isinstance(decoded, (list, dict)):
                rewritten, changed = replace_in_tree(decoded, old, new)
                if not changed:
                    return text, False
                return json.dumps(rewritten, ensure_ascii=False, separators=(",", ":")), True
    if old not in text:
        return text, False
    return text.replace(old, new), True
