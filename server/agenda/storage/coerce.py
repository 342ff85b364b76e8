"""Normalization of stored payloads into an ordered list of records.

The collection has been persisted in several shapes over time and by two
different backends. Each accepted shape is a ``WireShape`` variant with its own
normalizer; anything unrecognised or malformed normalizes to ``[]``.
``coerce_records`` never raises.
"""
from __future__ import annotations

import enum
import json
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

RECORD_HINT_KEYS = ("id", "cliente", "start_at")


class WireShape(str, enum.Enum):
    ARRAY = "array"
    JSON_TEXT = "json_text"
    NDJSON_TEXT = "ndjson_text"
    ITEMS_OBJECT = "items_object"
    RECORD_OBJECT = "record_object"
    EMPTY = "empty"


def _try_json(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except ValueError:
        return False, None


def classify(raw: Any) -> WireShape:
    if raw is None:
        return WireShape.EMPTY
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return WireShape.EMPTY
    if isinstance(raw, list):
        return WireShape.ARRAY
    if isinstance(raw, str):
        if not raw.strip():
            return WireShape.EMPTY
        ok, _ = _try_json(raw)
        return WireShape.JSON_TEXT if ok else WireShape.NDJSON_TEXT
    if isinstance(raw, dict):
        if isinstance(raw.get("items"), list):
            return WireShape.ITEMS_OBJECT
        if any(key in raw for key in RECORD_HINT_KEYS):
            return WireShape.RECORD_OBJECT
    return WireShape.EMPTY


def _as_text(raw: Any) -> str:
    if isinstance(raw, (bytes, bytearray)):
        return raw.decode("utf-8")
    return str(raw)


def _from_array(raw: list) -> list[dict]:
    return [item for item in raw if isinstance(item, dict)]


def _from_json_text(raw: Any) -> list[dict]:
    _, parsed = _try_json(_as_text(raw))
    return coerce_records(parsed)


def _from_ndjson_text(raw: Any) -> list[dict]:
    records: list[dict] = []
    for line in _as_text(raw).splitlines():
        line = line.strip()
        if not line:
            continue
        ok, parsed = _try_json(line)
        if ok and isinstance(parsed, dict):
            records.append(parsed)
    return records


def _from_items_object(raw: dict) -> list[dict]:
    return _from_array(raw["items"])


def _from_record_object(raw: dict) -> list[dict]:
    return [raw]


def _empty(raw: Any) -> list[dict]:
    return []


_NORMALIZERS: dict[WireShape, Callable[[Any], list[dict]]] = {
    WireShape.ARRAY: _from_array,
    WireShape.JSON_TEXT: _from_json_text,
    WireShape.NDJSON_TEXT: _from_ndjson_text,
    WireShape.ITEMS_OBJECT: _from_items_object,
    WireShape.RECORD_OBJECT: _from_record_object,
    WireShape.EMPTY: _empty,
}


def coerce_records(raw: Any) -> list[dict]:
    try:
        return _NORMALIZERS[classify(raw)](raw)
    except Exception:  # noqa: BLE001
        logger.warning("Payload storage non interpretabile, trattato come vuoto", exc_info=True)
        return []
