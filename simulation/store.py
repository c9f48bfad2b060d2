"""Persistence collaborator interface and the live-storage row mapping.

The engine never reaches into a store on its own: the orchestrator hands the
store the committed market and agents after each tick. ``StoredMarketRow`` is
the flattened shape a live deployment keeps in its database; the two mapping
functions below convert it to and from ``MarketState`` field by field.
"""

from __future__ import annotations

import logging
from typing import Protocol

from pydantic import BaseModel

from models.agents import AgentState
from models.market import (
    TICKERS,
    EventCategory,
    EventDescriptor,
    EventDirection,
    EventMagnitude,
    MacroState,
    MarketState,
    RegimePhase,
    RegimeState,
    Ticker,
)

from simulation.errors import MarketNotInitializedError

logger = logging.getLogger(__name__)

# Defaults for turn-state fields the flattened row does not carry.
DEFAULT_LABOR_DISRUPTION_RISK = 0.1
DEFAULT_ROW_TICKS_IN_PHASE = 1
DEFAULT_ROW_VOLATILITY_MULTIPLIER = 1.0

_SEASON_TO_PHASE: dict[str, RegimePhase] = {
    "early_season": RegimePhase.PRE_SEASON,
    "peak_shopping": RegimePhase.PRE_SEASON,
    "crunch_time": RegimePhase.HOLIDAY_RUSH,
    "christmas_eve": RegimePhase.HOLIDAY_RUSH,
    "christmas_day": RegimePhase.HOLIDAY_RUSH,
    "post_christmas": RegimePhase.POST_PEAK,
    "off_season": RegimePhase.POST_PEAK,
}

_PHASE_TO_SEASON: dict[RegimePhase, str] = {
    RegimePhase.PRE_SEASON: "early_season",
    RegimePhase.HOLIDAY_RUSH: "crunch_time",
    RegimePhase.POST_PEAK: "post_christmas",
}


class StoredMarketRow(BaseModel):
    """Flattened market record as persisted by a live deployment."""

    tick_number: int
    prices: dict[Ticker, float]
    sentiment: float
    energy: float
    supply_chain: float
    season: str
    news: str | None = None


def market_state_from_row(row: StoredMarketRow, total_ticks: int) -> MarketState:
    """Rebuild a full ``MarketState`` from a stored row.

    Row fields map to ``tick``, ``prices``, ``macro.consumer_sentiment``,
    ``macro.energy_cost_index``, ``macro.supply_chain_pressure``,
    ``regime.phase`` and ``events``. Labor risk, ticks-in-phase and the
    volatility multiplier are not stored and take the module defaults;
    price history restarts at the stored prices. Unknown seasons raise
    ``ValueError``.
    """
    if row.season not in _SEASON_TO_PHASE:
        raise ValueError(
            f"Unknown season '{row.season}'. Known: {', '.join(sorted(_SEASON_TO_PHASE))}."
        )

    events = []
    if row.news:
        events.append(
            EventDescriptor(
                target="ALL",
                category=EventCategory.DEMAND,
                direction=EventDirection.POSITIVE,
                magnitude=EventMagnitude.MEDIUM,
                message=row.news,
            )
        )

    return MarketState(
        tick=row.tick_number,
        total_ticks=total_ticks,
        prices=row.prices,
        price_history={t: [row.prices[t]] * (row.tick_number + 1) for t in TICKERS},
        macro=MacroState(
            consumer_sentiment=row.sentiment,
            labor_disruption_risk=DEFAULT_LABOR_DISRUPTION_RISK,
            supply_chain_pressure=row.supply_chain,
            energy_cost_index=row.energy,
        ),
        regime=RegimeState(
            phase=_SEASON_TO_PHASE[row.season],
            ticks_in_phase=DEFAULT_ROW_TICKS_IN_PHASE,
            volatility_multiplier=DEFAULT_ROW_VOLATILITY_MULTIPLIER,
        ),
        events=events,
    )


def row_from_market_state(state: MarketState) -> StoredMarketRow:
    """Flatten *state* for storage. The first event's message becomes ``news``."""
    return StoredMarketRow(
        tick_number=state.tick,
        prices=dict(state.prices),
        sentiment=state.macro.consumer_sentiment,
        energy=state.macro.energy_cost_index,
        supply_chain=state.macro.supply_chain_pressure,
        season=_PHASE_TO_SEASON[state.regime.phase],
        news=state.events[0].message if state.events else None,
    )


class MarketStore(Protocol):
    """What the orchestrator needs from a persistence layer."""

    def load(self) -> MarketState:
        ...

    def save(self, market: MarketState, agents: list[AgentState]) -> None:
        ...


class InMemoryMarketStore:
    """Keeps the latest committed market and agent snapshots in memory."""

    def __init__(self) -> None:
        self._market: MarketState | None = None
        self._agents: dict[str, AgentState] = {}
        self.saves = 0

    def load(self) -> MarketState:
        if self._market is None:
            raise MarketNotInitializedError("Market state has not been saved yet.")
        return self._market.model_copy(deep=True)

    def load_agent(self, agent_id: str) -> AgentState:
        if agent_id not in self._agents:
            raise KeyError(f"No saved state for agent '{agent_id}'.")
        return self._agents[agent_id].model_copy(deep=True)

    def save(self, market: MarketState, agents: list[AgentState]) -> None:
        self._market = market.model_copy(deep=True)
        self._agents = {a.config.id: a.model_copy(deep=True) for a in agents}
        self.saves += 1
        logger.debug("Saved market snapshot at tick %d.", market.tick)
