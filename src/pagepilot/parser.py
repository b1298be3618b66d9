# src/pagepilot/parser.py
"""
Lenient decoding of decision-engine replies.

Models wrap JSON in prose or ```json fences, pick either "actions" or "action",
and signal completion in several ways. parse_response() accepts all of that,
drops what it can't use with a warning, and never raises.
"""
from __future__ import annotations

import json
import math
import re
from typing import Any, Dict, List, Optional, Tuple

from .models import Action, ClickAt, Complete, ModelResponse, Navigate, Scroll, Type, Wait

_FENCE_RE = re.compile(r"```[\w+-]*[ \t]*\n?(.*?)```", re.DOTALL)

NAVIGATE = ("navigate", "goto", "open")
CLICK = ("click_at", "clickat", "click")
SCROLL = ("scroll",)
TYPE = ("type", "input")
WAIT = ("wait", "sleep")
COMPLETE = ("complete", "done")


def extract_json(text: str) -> Optional[str]:
    m = _FENCE_RE.search(text)
    if m:
        return m.group(1).strip()
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return text[start:end + 1]
    return None


def _number(v: Any) -> Optional[float]:
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        f = float(v)
    elif isinstance(v, str):
        try:
            f = float(v.strip())
        except ValueError:
            return None
    else:
        return None
    return f if math.isfinite(f) else None


def _first(item: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if item.get(k) is not None:
            return item[k]
    return None


def _decode_item(item: Any) -> Tuple[Optional[Action], Optional[str]]:
    """Returns (action, None) or (None, warning)."""
    if not isinstance(item, dict):
        return None, f"action entry is not an object: {item!r}"
    kind = item.get("type")
    if not isinstance(kind, str):
        return None, "action entry missing type"
    t = kind.strip().lower()

    if t in NAVIGATE:
        url = item.get("url")
        if not isinstance(url, str) or not url.strip():
            return None, "navigate missing url"
        return Navigate(url.strip()), None

    if t in CLICK:
        x, y = _number(item.get("x")), _number(item.get("y"))
        if x is None or y is None:
            return None, "click_at missing x/y"
        return ClickAt(x, y), None

    if t in SCROLL:
        dy = _number(_first(item, "deltaY", "delta_y", "dy", "y"))
        if dy is None:
            return None, "scroll missing deltaY"
        return Scroll(dy), None

    if t in TYPE:
        text = item.get("text")
        if not isinstance(text, str):
            return None, "type missing text"
        return Type(text), None

    if t in WAIT:
        ms = _number(_first(item, "ms", "milliseconds"))
        if ms is None:
            return None, "wait missing ms"
        return Wait(int(ms)), None

    if t in COMPLETE:
        return Complete(), None

    return None, f"unknown action type {kind}"


def _completion_flag(envelope: Dict[str, Any]) -> bool:
    if envelope.get("complete") is True or envelope.get("done") is True:
        return True
    status = envelope.get("status")
    return isinstance(status, str) and "complete" in status.lower()


def parse_response(raw: str) -> ModelResponse:
    raw = raw if isinstance(raw, str) else ""
    candidate = extract_json(raw.strip())
    if candidate is None:
        return ModelResponse(raw_text=raw, warnings=("Model response was not JSON",))

    try:
        envelope = json.loads(candidate)
    except (ValueError, RecursionError) as e:
        # JSONDecodeError, oversized int literals, pathological nesting
        return ModelResponse(raw_text=raw, warnings=(f"Failed to decode JSON: {e}",))
    if not isinstance(envelope, dict):
        return ModelResponse(raw_text=raw, warnings=("Model response JSON is not an object",))

    items = envelope.get("actions")
    if items is None:
        items = envelope.get("action")
    if items is None:
        items = []
    elif isinstance(items, dict):
        items = [items]

    warnings: List[str] = []
    if not isinstance(items, list):
        warnings.append("actions is not a list")
        items = []

    actions: List[Action] = []
    for item in items:
        action, warning = _decode_item(item)
        if action is not None:
            actions.append(action)
        else:
            warnings.append(warning)

    is_complete = _completion_flag(envelope) or any(isinstance(a, Complete) for a in actions)
    return ModelResponse(raw_text=raw, actions=tuple(actions), is_complete=is_complete, warnings=tuple(warnings))
