"""Order and policy-output models: Order, ExecutedOrder, OrderBatchResult, PolicyDecision."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, Field

from models.market import Ticker


class OrderAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class Order(BaseModel):
    """Single market order: ticker, action, quantity (positive whole shares)."""

    ticker: Ticker
    action: OrderAction
    quantity: int = Field(gt=0, strict=True)


class ExecutedOrder(Order):
    """An order that actually filled, with its fill price and tick."""

    price: float
    tick: int = 0

    @property
    def notional(self) -> float:
        return self.price * self.quantity


class OrderBatchResult(BaseModel):
    """Outcome of applying one agent's order list for a tick."""

    applied_orders: list[ExecutedOrder] = []
    violations: list[str] = []
    turnover_delta: float = 0.0


class PolicyDecision(BaseModel):
    """Successful policy call: a reasoning narrative plus desired orders. Empty orders = hold."""

    status: Literal["ok"] = "ok"
    reasoning: str = ""
    orders: list[Order] = []


class PolicyFailure(BaseModel):
    """Failed or timed-out policy call. The agent holds for the tick."""

    status: Literal["failed"] = "failed"
    reason: str


PolicyOutcome = Union[PolicyDecision, PolicyFailure]


class SubmitOrdersInput(BaseModel):
    """Input schema for the ``submit_orders`` tool.

    Used by LangChain to describe the tool's arguments to the LLM.
    """

    orders: list[dict[str, Any]] = Field(
        description=(
            "List of orders. Each order is an object with keys: "
            "'ticker' (one of SANTA, REIN, ELF, COAL, GIFT), "
            "'action' ('BUY' or 'SELL'), 'quantity' (int, positive). "
            "Pass an empty list to hold (no trades)."
        ),
    )
    reasoning: str = Field(
        default="",
        description="Short explanation of why these orders were chosen.",
    )
