"""Market engine: initial state and one-tick price, macro, regime and event evolution.

``advance_market`` is a pure function of the current state plus fresh draws
from the run's ``DeterministicRng``; it returns a new ``MarketState`` and never
mutates its input. Draw order per tick is fixed:

1. four macro jitters (sentiment, labor, supply chain, energy);
2. one event-chance draw, then target, category, magnitude, direction and
   message draws when an event fires;
3. one volatility draw per ticker in ``TICKERS`` order.
"""

from __future__ import annotations

import logging

from models.config import MarketConfig
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

from simulation.news import pick_message
from simulation.rng import DeterministicRng

logger = logging.getLogger(__name__)

DEFAULT_MARKET_CONFIG = MarketConfig()

_MACRO_BOUNDS: dict[str, tuple[float, float]] = {
    "consumer_sentiment": (0.0, 100.0),
    "labor_disruption_risk": (0.0, 1.0),
    "supply_chain_pressure": (0.0, 100.0),
    "energy_cost_index": (0.5, 2.0),
}

_CATEGORIES = list(EventCategory)
_MAGNITUDES = list(EventMagnitude)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ------------------------------------------------------------------
# Initialisation
# ------------------------------------------------------------------

def init_market_state(
    total_ticks: int,
    rng: DeterministicRng | None = None,
    config: MarketConfig | None = None,
) -> MarketState:
    """Build the tick-0 market from the configured defaults.

    The initial state draws nothing from *rng*; it is accepted so callers can
    thread the run's generator uniformly through every engine entry point.
    """
    config = config or DEFAULT_MARKET_CONFIG
    prices = {t: float(config.initial_prices[t]) for t in TICKERS}
    return MarketState(
        tick=0,
        total_ticks=total_ticks,
        prices=prices,
        price_history={t: [prices[t]] for t in TICKERS},
        macro=config.initial_macro.model_copy(),
        regime=RegimeState(
            phase=RegimePhase.PRE_SEASON,
            ticks_in_phase=0,
            volatility_multiplier=config.volatility_multipliers[RegimePhase.PRE_SEASON],
        ),
        events=[],
    )


# ------------------------------------------------------------------
# Per-tick components
# ------------------------------------------------------------------

def phase_for_tick(tick: int, total_ticks: int, config: MarketConfig | None = None) -> RegimePhase:
    """Select the regime phase from the elapsed fraction of the horizon."""
    config = config or DEFAULT_MARKET_CONFIG
    fraction = tick / total_ticks if total_ticks > 0 else 1.0
    first, second = config.regime_thresholds
    if fraction <= first:
        return RegimePhase.PRE_SEASON
    if fraction <= second:
        return RegimePhase.HOLIDAY_RUSH
    return RegimePhase.POST_PEAK


def next_regime(
    previous: RegimeState,
    tick: int,
    total_ticks: int,
    config: MarketConfig | None = None,
) -> RegimeState:
    config = config or DEFAULT_MARKET_CONFIG
    phase = phase_for_tick(tick, total_ticks, config)
    ticks_in_phase = previous.ticks_in_phase + 1 if phase == previous.phase else 1
    return RegimeState(
        phase=phase,
        ticks_in_phase=ticks_in_phase,
        volatility_multiplier=config.volatility_multipliers[phase],
    )


def advance_macro(
    macro: MacroState,
    rng: DeterministicRng,
    config: MarketConfig | None = None,
) -> MacroState:
    """Apply an independent symmetric jitter to each indicator, clamped to range."""
    config = config or DEFAULT_MARKET_CONFIG
    values = {}
    for field, (low, high) in _MACRO_BOUNDS.items():
        jitter = rng.symmetric(getattr(config.macro_jitter, field))
        values[field] = _clamp(getattr(macro, field) + jitter, low, high)
    return MacroState(**values)


def generate_events(
    macro: MacroState,
    rng: DeterministicRng,
    config: MarketConfig | None = None,
) -> list[EventDescriptor]:
    """Roll for at most one random news event this tick.

    Labor news leans negative while labor disruption risk is elevated.
    """
    config = config or DEFAULT_MARKET_CONFIG
    if not rng.chance(config.event_probability):
        return []

    ticker = rng.choice(TICKERS)
    category = rng.choice(_CATEGORIES)
    magnitude = rng.choice(_MAGNITUDES)

    negative_probability = 0.5
    if (
        category == EventCategory.LABOR
        and macro.labor_disruption_risk > config.labor_bias_threshold
    ):
        negative_probability = config.labor_negative_probability
    direction = (
        EventDirection.NEGATIVE if rng.chance(negative_probability) else EventDirection.POSITIVE
    )

    message = pick_message(category, direction, ticker.value, rng)
    return [
        EventDescriptor(
            target=ticker,
            category=category,
            direction=direction,
            magnitude=magnitude,
            message=message,
        )
    ]


def news_shock(
    ticker: Ticker,
    events: list[EventDescriptor],
    config: MarketConfig | None = None,
) -> float:
    """Signed sum of shock bands over every event that targets *ticker* or ALL."""
    config = config or DEFAULT_MARKET_CONFIG
    return sum(
        event.sign * config.magnitude_shocks[event.magnitude.value]
        for event in events
        if event.affects(ticker)
    )


def drift_for(ticker: Ticker, phase: RegimePhase, config: MarketConfig | None = None) -> float:
    config = config or DEFAULT_MARKET_CONFIG
    profile = config.profiles[ticker]
    if profile.seasonal and phase == RegimePhase.HOLIDAY_RUSH:
        return profile.drift * config.seasonal_drift_multiplier
    return profile.drift


# ------------------------------------------------------------------
# Tick advance
# ------------------------------------------------------------------

def advance_market(
    state: MarketState,
    rng: DeterministicRng,
    config: MarketConfig | None = None,
) -> MarketState:
    """Advance the market by exactly one tick and return the new state."""
    config = config or DEFAULT_MARKET_CONFIG
    tick = state.tick + 1

    regime = next_regime(state.regime, tick, state.total_ticks, config)
    macro = advance_macro(state.macro, rng, config)
    events = generate_events(macro, rng, config)

    prices: dict[Ticker, float] = {}
    history: dict[Ticker, list[float]] = {}
    for ticker in TICKERS:
        profile = config.profiles[ticker]
        shock = rng.symmetric(profile.volatility * regime.volatility_multiplier)
        factor = 1.0 + drift_for(ticker, regime.phase, config) + shock + news_shock(ticker, events, config)
        price = max(config.price_floor, state.prices[ticker] * factor)
        prices[ticker] = price
        history[ticker] = [*state.price_history[ticker], price]

    if events:
        logger.debug("Tick %d events: %s", tick, [e.message for e in events])

    return state.model_copy(
        update={
            "tick": tick,
            "prices": prices,
            "price_history": history,
            "macro": macro,
            "regime": regime,
            "events": events,
        }
    )
