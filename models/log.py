"""Run outputs and experiment storage models.

- ``AgentTickLog`` — one agent's reasoning, fills and resulting state for a tick.
- ``TickSnapshot`` — committed state of one tick across all agents.
- ``AgentScore`` / ``SimulationResult`` — end-of-run ranking.
- ``TickProgress`` / ``CompleteProgress`` / ``ErrorProgress`` — streaming events.
- ``SimulationLog`` — run-level log with embedded config for reproducibility.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from models.config import SimulationConfig
from models.decision import ExecutedOrder
from models.market import EventDescriptor, Ticker
from models.portfolio import Portfolio


class AgentTickLog(BaseModel):
    """Per-agent audit for one tick.

    ``violations`` holds only the violations raised during this tick.
    """

    agent_id: str
    reasoning: str
    orders: list[ExecutedOrder] = []
    equity: float
    violations: list[str] = []
    portfolio: Portfolio


class TickSnapshot(BaseModel):
    tick: int
    prices: dict[Ticker, float]
    events: list[EventDescriptor] = []
    agent_logs: list[AgentTickLog] = []


class TradingStyle(str, Enum):
    AGGRESSIVE = "aggressive"
    CONSERVATIVE = "conservative"
    MOMENTUM = "momentum"
    CONTRARIAN = "contrarian"


class AgentScore(BaseModel):
    agent_id: str
    name: str
    rank: int = 0
    final_value: float
    total_return: float
    score: float
    max_drawdown: float
    total_trades: int
    turnover: float
    violations: list[str] = []
    trading_style: TradingStyle


class SimulationResult(BaseModel):
    scenario_id: str
    timeline: list[TickSnapshot] = []
    scores: list[AgentScore] = []
    cancelled: bool = False


class TickProgress(BaseModel):
    """Emitted once a tick's snapshot is committed."""

    type: Literal["tick"] = "tick"
    tick: int
    total_ticks: int
    snapshot: TickSnapshot


class CompleteProgress(BaseModel):
    """Final streaming event carrying the scored result."""

    type: Literal["complete"] = "complete"
    total_ticks: int
    result: SimulationResult


class ErrorProgress(BaseModel):
    """Emitted instead of ``CompleteProgress`` when a run terminates abnormally."""

    type: Literal["error"] = "error"
    message: str
    last_tick: int = 0


ProgressEvent = Annotated[
    Union[TickProgress, CompleteProgress, ErrorProgress],
    Field(discriminator="type"),
]


class SimulationLog(BaseModel):
    """Run-level log with embedded configuration for reproducibility.

    ``run_name`` is derived from the configuration file path by the CLI.
    """

    run_name: str
    config: SimulationConfig
    result: SimulationResult | None = None
    errors: list[str] = []
