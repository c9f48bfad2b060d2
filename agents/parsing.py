"""Boundary parsing of policy output into well-formed ``Order`` objects.

Malformed orders (unknown ticker, unknown action, non-positive or
non-integer quantity) are dropped here; they never reach the broker and are
not counted as portfolio violations.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from models.decision import Order

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?```$", re.DOTALL)


def parse_orders(raw: Any) -> list[Order]:
    """Validate a list of order mappings, keeping only the well-formed ones.

    Tickers and actions are accepted case-insensitively.
    """
    if not isinstance(raw, list):
        logger.warning("Orders payload is not a list: %r", raw)
        return []

    orders: list[Order] = []
    for item in raw:
        if isinstance(item, Order):
            orders.append(item)
            continue
        if not isinstance(item, dict):
            logger.debug("Dropping non-mapping order %r", item)
            continue
        normalised = dict(item)
        for key in ("ticker", "action"):
            if isinstance(normalised.get(key), str):
                normalised[key] = normalised[key].strip().upper()
        try:
            orders.append(Order.model_validate(normalised))
        except ValidationError as exc:
            logger.debug("Dropping malformed order %r: %s", item, exc.errors()[0]["msg"])
    return orders


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    match = _FENCE_RE.match(cleaned)
    return match.group(1).strip() if match else cleaned


def parse_agent_output(text: str) -> list[Order] | None:
    """Parse orders from free-form model text.

    Accepts a bare JSON array of orders or an object with an ``orders`` key,
    optionally wrapped in a markdown code fence. Returns ``None`` when the
    text is not parseable JSON of either shape.
    """
    try:
        parsed = json.loads(strip_code_fences(text))
    except (json.JSONDecodeError, TypeError):
        return None

    if isinstance(parsed, dict):
        parsed = parsed.get("orders")
    if not isinstance(parsed, list):
        return None
    return parse_orders(parsed)
