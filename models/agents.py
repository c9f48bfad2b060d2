"""Agent state and the agent/policy interface models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from models.config import AgentConfig, Constraints
from models.decision import ExecutedOrder, PolicyDecision
from models.market import EventDescriptor, MacroState, RegimeState, Ticker
from models.portfolio import Portfolio


class AgentState(BaseModel):
    """Mutable per-agent state for one run.

    Only the broker mutates ``portfolio``, ``total_trades`` and ``trade_log``;
    the run orchestrator appends to ``equity_history``, ``violations`` and adds
    to ``turnover``.
    """

    config: AgentConfig
    portfolio: Portfolio
    equity_history: list[float] = []
    violations: list[str] = []
    turnover: float = 0.0
    total_trades: int = 0
    trade_log: list[ExecutedOrder] = []
    reasoning_log: dict[int, str] = Field(
        default_factory=dict,
        description="Reasoning text per tick, used for the agent's trade memory.",
    )


class TradeHistoryEntry(BaseModel):
    """One past tick of the agent's own trading, fed back as memory."""

    tick: int
    orders: list[ExecutedOrder]
    reasoning: str = ""


class TurnState(BaseModel):
    """Read-only view handed to a policy for one tick.

    Contains only market data and the agent's *own* portfolio; other agents'
    holdings and reasoning are never included.
    """

    tick: int
    total_ticks: int
    portfolio: Portfolio
    prices: dict[Ticker, float]
    price_history: dict[Ticker, list[float]]
    macro: MacroState
    regime: RegimeState
    events: list[EventDescriptor]
    constraints: Constraints
    trade_history: list[TradeHistoryEntry] = []

    def for_agent(self) -> dict:
        """JSON-ready payload for prompts."""
        return self.model_dump(mode="json")


class AgentInvocation(BaseModel):
    """Input passed when the simulation invokes an agent system for a tick."""

    agent: AgentConfig
    turn_state: TurnState

    @property
    def ticks_remaining(self) -> int:
        return max(self.turn_state.total_ticks - self.turn_state.tick, 0)


class AgentInvocationResult(BaseModel):
    """Parsed output from the agent system."""

    decision: PolicyDecision
    raw_output: dict[str, Any] | str | None = None
