"""Normalization of polymorphic upstream response bodies.

Low-code webhook backends do not return a fixed contract. A probe body may be an
object carrying the list under ``files``, ``items`` or ``data``, a bare array of
items, or a one-element array wrapping such an object (n8n's default output).
Every shape resolves to a plain list of item dicts.
"""

import json
from typing import Any, Iterable, List, Optional, Sequence

from appconnect.schemas.connection import ProbeItem

DEFAULT_LIST_KEYS = ("files", "items", "data")


def parse_body(text: Optional[str]) -> Any:
    """Parse a response body leniently; empty or non-JSON text yields ``{}``."""
    if not text or not text.strip():
        return {}
    try:
        return json.loads(text)
    except ValueError:
        return {}


def _list_under(obj: dict, keys: Sequence[str]) -> Optional[list]:
    for key in keys:
        value = obj.get(key)
        if isinstance(value, list):
            return value
    return None


def extract_items(body: Any, keys: Sequence[str] = DEFAULT_LIST_KEYS) -> List[Any]:
    """Resolve ``body`` to its item list.

    Priority order:
        1. object with a list under the first matching key in ``keys``
        2. one-element array wrapping an object that matches rule 1
        3. bare array (taken as the item list itself)
        4. anything else: no items
    """
    if isinstance(body, dict):
        found = _list_under(body, keys)
        return found if found is not None else []

    if isinstance(body, list):
        if len(body) == 1 and isinstance(body[0], dict):
            wrapped = _list_under(body[0], keys)
            if wrapped is not None:
                return wrapped
        return body

    return []


def _as_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def to_probe_item(raw: Any, default_type: Optional[str] = None) -> ProbeItem:
    """Coerce one raw entry into a ProbeItem, keeping unknown keys in ``extra``."""
    if not isinstance(raw, dict):
        return ProbeItem(id=_as_str(raw), name=str(raw), type=default_type)

    known = {"id", "name", "type", "created", "modified", "createdAt", "updatedAt",
             "createdTime", "modifiedTime"}
    return ProbeItem(
        id=_as_str(raw.get("id")),
        name=str(raw.get("name") or raw.get("title") or "Unknown"),
        type=_as_str(raw.get("type")) or default_type,
        created=_as_str(raw.get("created") or raw.get("createdAt") or raw.get("createdTime")),
        modified=_as_str(raw.get("modified") or raw.get("updatedAt") or raw.get("modifiedTime")),
        extra={k: v for k, v in raw.items() if k not in known},
    )


def to_probe_items(raw_items: Iterable[Any], default_type: Optional[str] = None) -> List[ProbeItem]:
    return [to_probe_item(raw, default_type) for raw in raw_items]


def to_channel_items(raw_items: Iterable[Any]) -> List[ProbeItem]:
    """Channel entries accept ``channelId``/``channelName`` spellings; type defaults to text."""
    channels = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        channels.append(ProbeItem(
            id=str(raw.get("id") or raw.get("channelId") or ""),
            name=str(raw.get("name") or raw.get("channelName") or "Unknown"),
            type=_as_str(raw.get("type")) or "text",
        ))
    return channels
