"""Helpers for reading the JSON that monitoring scripts print."""

from __future__ import annotations

import json
from typing import Any


class MonitorError(Exception):
    """Raised when monitor data cannot be collected or understood."""


def strip_bom(output: str) -> str:
    """Drop leading byte-order marks and surrounding whitespace."""
    return output.lstrip("\ufeff").strip()


def _load(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise MonitorError(f"Invalid JSON output: {exc}") from exc


def parse_json_array(output: str) -> list[dict[str, Any]]:
    """Read a list of JSON objects.

    A single object is treated as a list of one. Empty output, ``[]`` and
    output that does not look like JSON give an empty list.
    """
    text = strip_bom(output)
    if not text or text == "[]":
        return []
    if text[0] not in "[{":
        return []
    data = _load(text)
    if isinstance(data, dict):
        return [data]
    if not isinstance(data, list):
        raise MonitorError("Expected a JSON array or object")
    if not all(isinstance(item, dict) for item in data):
        raise MonitorError("Expected every array element to be a JSON object")
    return data


def parse_json_object(output: str) -> dict[str, Any]:
    """Read exactly one JSON object."""
    text = strip_bom(output)
    if not text:
        raise MonitorError("Empty output where a JSON object was expected")
    data = _load(text)
    if not isinstance(data, dict):
        raise MonitorError("Expected a JSON object")
    return data