"""LangChain tool factory for the agent's order submission.

The ``submit_orders`` tool only *records* the orders an LLM agent wants for
the current tick; execution happens later in the runner, after every agent
has decided, so that all agents act on the same frozen market.
"""

from __future__ import annotations

import json
from typing import Any

from langchain_core.tools import StructuredTool

from agents.parsing import parse_orders
from models.decision import SubmitOrdersInput


# ------------------------------------------------------------------
# Tool factory
# ------------------------------------------------------------------

def make_submit_orders_tool() -> StructuredTool:
    """Create a fresh ``submit_orders`` tool for one tick.

    Each invocation should get a **fresh** tool so the recorded orders never
    leak from one tick into the next. The last accepted submission is stored
    on the tool function as ``_last_orders`` / ``_last_reasoning``.
    """

    def _submit_orders(orders: list[dict[str, Any]], reasoning: str = "") -> str:
        """Validate the submitted orders and record them for execution."""
        parsed = parse_orders(orders)
        dropped = len(orders) - len(parsed)

        # Later submissions replace earlier ones within the same tick.
        _submit_orders._last_orders = parsed  # type: ignore[attr-defined]
        _submit_orders._last_reasoning = reasoning  # type: ignore[attr-defined]

        return json.dumps(
            {
                "status": "recorded",
                "accepted_orders": [o.model_dump(mode="json") for o in parsed],
                "dropped_malformed": dropped,
                "message": (
                    f"Recorded {len(parsed)} order(s) for execution at this tick's prices."
                    + (f" Dropped {dropped} malformed order(s)." if dropped else "")
                ),
            }
        )

    # Initialise sentinel attributes.
    _submit_orders._last_orders = None  # type: ignore[attr-defined]
    _submit_orders._last_reasoning = ""  # type: ignore[attr-defined]

    return StructuredTool.from_function(
        func=_submit_orders,
        name="submit_orders",
        description=(
            "Submit this tick's trading orders. Each order specifies a ticker "
            "(SANTA, REIN, ELF, COAL, GIFT), an action ('BUY' or 'SELL'), and "
            "a quantity (positive integer). An empty orders list means hold. "
            "Orders execute in the order given after all traders have decided; "
            "buys need enough cash and sells need enough shares at that point. "
            "Calling the tool again replaces your previous submission."
        ),
        args_schema=SubmitOrdersInput,
    )
