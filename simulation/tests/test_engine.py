"""Tests for the market engine: initial state, tick advance, regimes and news."""

import pytest

from models.config import InstrumentProfile, MarketConfig
from models.market import (
    TICKERS,
    EventCategory,
    EventDescriptor,
    EventDirection,
    EventMagnitude,
    MacroState,
    RegimePhase,
    Ticker,
)
from simulation.engine import (
    advance_macro,
    advance_market,
    drift_for,
    generate_events,
    init_market_state,
    news_shock,
    phase_for_tick,
)
from simulation.rng import DeterministicRng


def _run(seed: int, ticks: int = 14, config: MarketConfig | None = None):
    rng = DeterministicRng(seed)
    state = init_market_state(ticks, rng, config)
    states = [state]
    for _ in range(ticks):
        state = advance_market(state, rng, config)
        states.append(state)
    return states


# =============================================================================
# INITIAL STATE
# =============================================================================


class TestInitMarketState:

    def test_initial_prices(self):
        state = init_market_state(14)
        assert state.tick == 0
        assert state.prices == {
            Ticker.SANTA: 100.0,
            Ticker.REIN: 40.0,
            Ticker.ELF: 20.0,
            Ticker.COAL: 5.0,
            Ticker.GIFT: 80.0,
        }

    def test_history_seeded_with_one_entry(self):
        state = init_market_state(14)
        for ticker in TICKERS:
            assert state.price_history[ticker] == [state.prices[ticker]]

    def test_initial_regime_and_macro(self):
        state = init_market_state(14)
        assert state.regime.phase == RegimePhase.PRE_SEASON
        assert state.regime.ticks_in_phase == 0
        assert state.macro == MacroState()
        assert state.events == []

    def test_init_draws_nothing(self):
        rng = DeterministicRng(1)
        init_market_state(14, rng)
        assert rng.draws == 0


# =============================================================================
# ADVANCE
# =============================================================================


class TestAdvanceMarket:

    def test_history_grows_by_one_per_tick(self):
        for idx, state in enumerate(_run(12345)):
            assert state.tick == idx
            for ticker in TICKERS:
                assert len(state.price_history[ticker]) == idx + 1
                assert state.price_history[ticker][-1] == state.prices[ticker]

    def test_prices_stay_positive(self):
        for seed in (1, 12345, 54321, 98765, 11111, 22222):
            for state in _run(seed):
                assert all(p > 0 for p in state.prices.values())

    def test_price_floor(self):
        config = MarketConfig(
            profiles={t: InstrumentProfile(drift=-0.9, volatility=0.0) for t in TICKERS},
            event_probability=0.0,
        )
        final = _run(5, config=config)[-1]
        assert all(p == pytest.approx(0.01) for p in final.prices.values())

    def test_same_seed_is_deterministic(self):
        a = _run(12345)[-1]
        b = _run(12345)[-1]
        assert a.model_dump() == b.model_dump()

    def test_different_seed_differs(self):
        assert _run(12345)[-1].prices != _run(54321)[-1].prices

    def test_does_not_mutate_input(self):
        rng = DeterministicRng(9)
        state = init_market_state(14, rng)
        before = state.model_dump()
        advance_market(state, rng)
        assert state.model_dump() == before

    def test_macro_stays_in_bounds(self):
        for state in _run(22222, ticks=200):
            macro = state.macro
            assert 0 <= macro.consumer_sentiment <= 100
            assert 0 <= macro.labor_disruption_risk <= 1
            assert 0 <= macro.supply_chain_pressure <= 100
            assert 0.5 <= macro.energy_cost_index <= 2.0

    def test_at_most_one_random_event_per_tick(self):
        for state in _run(11111, ticks=100):
            assert len(state.events) <= 1

    def test_zero_volatility_follows_drift(self):
        config = MarketConfig(
            profiles={t: InstrumentProfile(drift=0.01, volatility=0.0) for t in TICKERS},
            event_probability=0.0,
        )
        states = _run(3, ticks=2, config=config)
        assert states[1].prices[Ticker.SANTA] == pytest.approx(101.0)
        assert states[2].prices[Ticker.SANTA] == pytest.approx(102.01)


# =============================================================================
# REGIMES
# =============================================================================


class TestRegimes:

    def test_fourteen_tick_phase_schedule(self):
        states = _run(12345)
        phases = {s.tick: s.regime.phase for s in states[1:]}
        for tick in range(1, 5):
            assert phases[tick] == RegimePhase.PRE_SEASON
        for tick in range(5, 11):
            assert phases[tick] == RegimePhase.HOLIDAY_RUSH
        for tick in range(11, 15):
            assert phases[tick] == RegimePhase.POST_PEAK

    def test_ticks_in_phase_resets_on_change(self):
        states = _run(12345)
        assert states[4].regime.ticks_in_phase == 4
        assert states[5].regime.ticks_in_phase == 1
        assert states[10].regime.ticks_in_phase == 6
        assert states[11].regime.ticks_in_phase == 1

    def test_volatility_multipliers(self):
        states = _run(12345)
        assert states[1].regime.volatility_multiplier == pytest.approx(1.0)
        assert states[5].regime.volatility_multiplier == pytest.approx(1.3)
        assert states[12].regime.volatility_multiplier == pytest.approx(1.4)

    def test_zero_horizon_is_post_peak(self):
        assert phase_for_tick(1, 0) == RegimePhase.POST_PEAK

    def test_seasonal_drift_doubles_in_rush(self):
        assert drift_for(Ticker.SANTA, RegimePhase.HOLIDAY_RUSH) == pytest.approx(
            2 * drift_for(Ticker.SANTA, RegimePhase.PRE_SEASON)
        )
        assert drift_for(Ticker.COAL, RegimePhase.HOLIDAY_RUSH) == drift_for(
            Ticker.COAL, RegimePhase.PRE_SEASON
        )


# =============================================================================
# NEWS AND MACRO
# =============================================================================


class TestNews:

    def test_news_shock_sums_matching_events(self):
        events = [
            EventDescriptor(
                target=Ticker.SANTA,
                category=EventCategory.DEMAND,
                direction=EventDirection.POSITIVE,
                magnitude=EventMagnitude.MEDIUM,
            ),
            EventDescriptor(
                target="ALL",
                category=EventCategory.WEATHER,
                direction=EventDirection.NEGATIVE,
                magnitude=EventMagnitude.SMALL,
            ),
        ]
        assert news_shock(Ticker.SANTA, events) == pytest.approx(0.005)
        assert news_shock(Ticker.ELF, events) == pytest.approx(-0.005)

    def test_no_events_no_shock(self):
        assert news_shock(Ticker.GIFT, []) == 0

    def test_certain_event_has_message_naming_ticker(self):
        config = MarketConfig(event_probability=1.0)
        events = generate_events(MacroState(), DeterministicRng(4), config)
        assert len(events) == 1
        event = events[0]
        assert event.target in TICKERS
        assert event.message

    def test_labor_news_biased_negative_when_risk_high(self):
        config = MarketConfig(event_probability=1.0, labor_negative_probability=1.0)
        macro = MacroState(labor_disruption_risk=0.9)
        labor_events = []
        for seed in range(300):
            labor_events += [
                e
                for e in generate_events(macro, DeterministicRng(seed), config)
                if e.category == EventCategory.LABOR
            ]
        assert labor_events
        assert all(e.direction == EventDirection.NEGATIVE for e in labor_events)

    def test_advance_macro_draws_four_values(self):
        rng = DeterministicRng(8)
        advance_macro(MacroState(), rng)
        assert rng.draws == 4
