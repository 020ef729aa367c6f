from __future__ import annotations

import json
import logging
from typing import Any, Iterable, List, Optional

logger = logging.getLogger(__name__)


def parse_json(text: Optional[str]) -> Optional[Any]:
    """
    Parse a response body into a JSON tree.

    Returns None for empty bodies, malformed JSON and scalar documents. This is
    the only place remote payloads are decoded, so callers never see a
    decoding error.
    """
    if not text:
        return None
    try:
        node = json.loads(text)
    except (TypeError, ValueError) as e:
        logger.warning("json parse failed | len=%s | err=%r", len(text), e)
        return None
    if not isinstance(node, (dict, list)):
        return None
    return node


def has_field(node: Any, field: str) -> bool:
    return isinstance(node, dict) and node.get(field) is not None


def text_or_empty(node: Any, field: str) -> str:
    if not isinstance(node, dict):
        return ""
    val = node.get(field)
    if val is None:
        return ""
    # OpenLibrary typed text: {"type": "/type/text", "value": "..."}
    if isinstance(val, dict):
        inner = val.get("value")
        return "" if inner is None else str(inner)
    if isinstance(val, (list, tuple)):
        return ""
    return str(val)


def array_or_empty(node: Any, field: str) -> List[Any]:
    if not isinstance(node, dict):
        return []
    val = node.get(field)
    if isinstance(val, list):
        return val
    return []


def get_path(node: Any, *keys: str) -> Optional[Any]:
    cur = node
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
        if cur is None:
            return None
    return cur


def text_items(values: Iterable[Any]) -> List[str]:
    return [v for v in values if isinstance(v, str) and v.strip()]


# -----------------------------
# Reference extraction
# -----------------------------
def _from_text(node: Any) -> Optional[str]:
    if isinstance(node, str):
        return node.strip() or None
    return None


def _from_url(node: Any) -> Optional[str]:
    val = get_path(node, "url")
    return _from_text(val)


def _from_key(node: Any) -> Optional[str]:
    return _from_text(get_path(node, "key"))


def _from_role(node: Any) -> Optional[str]:
    # Author role entries on works: {"author": {"key": "/authors/OL1A"}, "type": ...}
    return _from_text(get_path(node, "author", "key"))


# Checked in order; the first variant that yields a value wins.
_REFERENCE_VARIANTS = (_from_text, _from_url, _from_role, _from_key)


def extract_reference(node: Any) -> Optional[str]:
    for variant in _REFERENCE_VARIANTS:
        ref = variant(node)
        if ref:
            return ref
    return None


def references(value: Any) -> List[str]:
    items = value if isinstance(value, list) else [value]
    out: List[str] = []
    for item in items:
        ref = extract_reference(item)
        if ref:
            out.append(ref)
    return out


def first_reference(value: Any) -> Optional[str]:
    if isinstance(value, list):
        return extract_reference(value[0]) if value else None
    return extract_reference(value)
