"""Tests for the async tick loop: batch runs, streaming, failures and cancellation.

All tests use offline policies (no API keys needed).
"""

import asyncio

import pytest

from models.config import (
    AgentConfig,
    Constraints,
    MarketConfig,
    SimulationConfig,
    TradePressureConfig,
)
from models.decision import Order, OrderAction, PolicyDecision
from models.log import CompleteProgress, ErrorProgress, TickProgress
from models.market import TICKERS, Ticker
from simulation.broker import MODEL_ERROR_VIOLATION
from simulation.errors import (
    MarketNotInitializedError,
    SimulationConfigError,
    UnknownScenarioError,
)
from simulation.runner import (
    SimulationRunner,
    build_turn_state,
    policy_caller_from_registry,
    run_simulation,
)
from simulation.scenarios import get_scenario
from simulation.store import InMemoryMarketStore


def _run(coro):
    return asyncio.run(coro)


async def _collect(agen):
    return [event async for event in agen]


def _agents(*specs: tuple[str, str]) -> list[AgentConfig]:
    return [AgentConfig(id=agent_id, name=agent_id.title(), policy=policy) for agent_id, policy in specs]


async def _hold(agent, turn_state):
    return PolicyDecision(reasoning=f"Tick {turn_state.tick}: hold")


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def agents() -> list[AgentConfig]:
    return _agents(("scripted", "scripted"), ("hold", "hold"))


@pytest.fixture
def runner(agents: list[AgentConfig]) -> SimulationRunner:
    return SimulationRunner(
        scenario=get_scenario("calm-q4"),
        agents=agents,
        policy_caller=policy_caller_from_registry(agents),
    )


# =============================================================================
# 1. BATCH RUNS
# =============================================================================


class TestBatchRun:

    def test_full_run(self, runner: SimulationRunner):
        result = _run(runner.run())
        assert result.scenario_id == "calm-q4"
        assert len(result.timeline) == 14
        assert [s.tick for s in result.timeline] == list(range(1, 15))
        assert len(result.scores) == 2
        assert [s.rank for s in result.scores] == [1, 2]

    def test_first_tick_reasoning_and_fill(self, runner: SimulationRunner):
        result = _run(runner.run())
        first = result.timeline[0]
        log = next(l for l in first.agent_logs if l.agent_id == "scripted")
        assert log.reasoning.startswith("Tick 1")
        assert len(log.orders) == 1
        assert log.orders[0].ticker == Ticker.SANTA
        assert log.orders[0].quantity == 200
        assert log.orders[0].price == first.prices[Ticker.SANTA]
        assert log.equity == pytest.approx(100_000)

    def test_agent_logs_follow_config_order(self, runner: SimulationRunner):
        result = _run(runner.run())
        for snapshot in result.timeline:
            assert [l.agent_id for l in snapshot.agent_logs] == ["scripted", "hold"]

    def test_equity_history_one_per_tick(self, runner: SimulationRunner):
        _run(runner.run())
        for agent in runner.agents:
            assert len(agent.equity_history) == 14
        assert runner.market.tick == 14

    def test_hold_agent_keeps_cash(self, runner: SimulationRunner):
        result = _run(runner.run())
        hold = next(s for s in result.scores if s.agent_id == "hold")
        assert hold.final_value == pytest.approx(100_000)
        assert hold.total_trades == 0

    def test_same_scenario_is_deterministic(self, agents: list[AgentConfig]):
        def once():
            runner = SimulationRunner(
                get_scenario("elf-strike"), agents, policy_caller_from_registry(agents)
            )
            return _run(runner.run()).model_dump()

        assert once() == once()

    def test_rerun_on_same_runner_resets(self, runner: SimulationRunner):
        first = _run(runner.run())
        second = _run(runner.run())
        assert first.model_dump() == second.model_dump()

    def test_scenario_changes_prices(self, agents: list[AgentConfig]):
        caller = policy_caller_from_registry(agents)
        calm = _run(SimulationRunner(get_scenario("calm-q4"), agents, caller).run())
        esg = _run(SimulationRunner(get_scenario("esg-meltdown"), agents, caller).run())
        assert calm.timeline[-1].prices != esg.timeline[-1].prices

    def test_scripted_event_in_snapshot(self, agents: list[AgentConfig]):
        runner = SimulationRunner(get_scenario("esg-meltdown"), agents, _hold)
        result = _run(runner.run())
        messages = [e.message for e in result.timeline[3].events]
        assert "Major pension funds announce complete COAL divestment" in messages

    def test_run_simulation_helper(self, agents: list[AgentConfig]):
        result = _run(run_simulation(get_scenario("calm-q4"), agents, _hold, total_ticks=3))
        assert len(result.timeline) == 3

    def test_short_horizon(self, agents: list[AgentConfig]):
        runner = SimulationRunner(get_scenario("calm-q4"), agents, _hold, total_ticks=1)
        result = _run(runner.run())
        assert len(result.timeline) == 1


# =============================================================================
# 2. POLICY FAILURES
# =============================================================================


class TestPolicyFailures:

    def test_failing_policy_holds_and_records_violation(self):
        agents = _agents(("good", "hold"), ("bad", "hold"))

        async def caller(agent, turn_state):
            if agent.id == "bad":
                raise RuntimeError("model exploded")
            return PolicyDecision(reasoning="ok")

        result = _run(SimulationRunner(get_scenario("calm-q4"), agents, caller).run())
        assert len(result.timeline) == 14
        for snapshot in result.timeline:
            bad = next(l for l in snapshot.agent_logs if l.agent_id == "bad")
            assert bad.violations == [MODEL_ERROR_VIOLATION]
            assert bad.reasoning.startswith("Model call failed")
            assert "model exploded" in bad.reasoning
            assert bad.orders == []

        bad_score = next(s for s in result.scores if s.agent_id == "bad")
        assert bad_score.violations == ["Model error: no orders"] * 14
        assert bad_score.final_value == pytest.approx(100_000)
        assert result.scores[0].agent_id == "good"

    def test_timeout_counts_as_failure(self):
        agents = _agents(("slow", "hold"))

        async def caller(agent, turn_state):
            return await asyncio.wait_for(asyncio.sleep(1), timeout=0.001)

        result = _run(
            SimulationRunner(get_scenario("calm-q4"), agents, caller, total_ticks=2).run()
        )
        assert result.timeline[0].agent_logs[0].violations == [MODEL_ERROR_VIOLATION]

    def test_mapping_decision_is_accepted(self):
        agents = _agents(("dict", "hold"))

        async def caller(agent, turn_state):
            return {
                "reasoning": "buy one",
                "orders": [{"ticker": "SANTA", "action": "BUY", "quantity": 1}],
            }

        result = _run(
            SimulationRunner(get_scenario("calm-q4"), agents, caller, total_ticks=2).run()
        )
        log = result.timeline[0].agent_logs[0]
        assert log.reasoning == "buy one"
        assert log.violations == []
        assert len(log.orders) == 1

    @pytest.mark.parametrize(
        "returned",
        [None, "BUY SANTA", {"orders": [{"ticker": "XMAS", "action": "BUY", "quantity": 1}]}],
    )
    def test_unusable_return_holds_with_violation(self, returned):
        agents = _agents(("odd", "hold"))

        async def caller(agent, turn_state):
            return returned

        result = _run(
            SimulationRunner(get_scenario("calm-q4"), agents, caller, total_ticks=2).run()
        )
        assert len(result.timeline) == 2
        log = result.timeline[0].agent_logs[0]
        assert log.violations == [MODEL_ERROR_VIOLATION]
        assert log.reasoning.startswith("Model call failed")
        assert log.orders == []

    def test_rejected_orders_become_violations(self):
        agents = _agents(("greedy", "hold"))

        async def caller(agent, turn_state):
            return PolicyDecision(
                orders=[Order(ticker=Ticker.SANTA, action=OrderAction.BUY, quantity=5000)]
            )

        result = _run(
            SimulationRunner(get_scenario("calm-q4"), agents, caller, total_ticks=2).run()
        )
        log = result.timeline[0].agent_logs[0]
        assert log.violations == ["Insufficient cash for BUY SANTA x5000"]
        assert len(result.scores[0].violations) == 2


# =============================================================================
# 3. TURN STATE
# =============================================================================


class TestTurnState:

    def test_policies_see_prices_of_the_tick(self):
        agents = _agents(("a", "hold"))
        seen = []

        async def caller(agent, turn_state):
            seen.append(turn_state)
            return PolicyDecision()

        result = _run(
            SimulationRunner(get_scenario("calm-q4"), agents, caller, total_ticks=4).run()
        )
        for state, snapshot in zip(seen, result.timeline):
            assert state.tick == snapshot.tick
            assert state.prices == snapshot.prices
            assert state.total_ticks == 4

    def test_turn_state_is_isolated(self):
        agents = _agents(("a", "hold"))

        async def caller(agent, turn_state):
            turn_state.portfolio.cash = 0.0
            turn_state.price_history[Ticker.SANTA].clear()
            return PolicyDecision()

        runner = SimulationRunner(get_scenario("calm-q4"), agents, caller, total_ticks=2)
        _run(runner.run())
        assert runner.agents[0].portfolio.cash == 100_000
        assert len(runner.market.price_history[Ticker.SANTA]) == 3

    def test_history_window(self):
        agents = _agents(("a", "hold"))
        lengths = []

        async def caller(agent, turn_state):
            lengths.append(len(turn_state.price_history[Ticker.GIFT]))
            return PolicyDecision()

        runner = SimulationRunner(
            get_scenario("calm-q4"),
            agents,
            caller,
            total_ticks=6,
            market_config=MarketConfig(history_window=3),
        )
        _run(runner.run())
        assert lengths == [2, 3, 3, 3, 3, 3]

    def test_trade_memory(self, agents: list[AgentConfig]):
        histories = {}
        registry_caller = policy_caller_from_registry(agents)

        async def caller(agent, turn_state):
            histories[(agent.id, turn_state.tick)] = turn_state.trade_history
            return await registry_caller(agent, turn_state)

        _run(SimulationRunner(get_scenario("calm-q4"), agents, caller, total_ticks=3).run())
        memory = histories[("scripted", 2)]
        assert len(memory) == 1
        assert memory[0].tick == 1
        assert memory[0].orders[0].ticker == Ticker.SANTA
        assert memory[0].reasoning.startswith("Tick 1")
        assert histories[("hold", 2)] == []

    def test_build_turn_state_only_own_portfolio(self, runner: SimulationRunner):
        _run(runner.run())
        scripted, hold = runner.agents
        state = build_turn_state(runner.market, hold, Constraints())
        assert state.portfolio == hold.portfolio
        assert state.portfolio is not hold.portfolio
        assert all(state.portfolio.holdings[t] == 0 for t in TICKERS)

    def test_policies_run_concurrently(self):
        agents = _agents(("a", "hold"), ("b", "hold"))
        released: dict[int, asyncio.Event] = {}

        async def caller(agent, turn_state):
            event = released.setdefault(turn_state.tick, asyncio.Event())
            if agent.id == "a":
                # Only returns if b is called while a is still waiting.
                await asyncio.wait_for(event.wait(), timeout=1)
            else:
                event.set()
            return PolicyDecision()

        result = _run(
            SimulationRunner(get_scenario("calm-q4"), agents, caller, total_ticks=2).run()
        )
        for snapshot in result.timeline:
            assert all(log.violations == [] for log in snapshot.agent_logs)


# =============================================================================
# 4. STREAMING
# =============================================================================


class TestStreaming:

    def test_stream_yields_ticks_then_complete(self, runner: SimulationRunner):
        events = _run(_collect(runner.stream()))
        assert len(events) == 15
        assert all(isinstance(e, TickProgress) for e in events[:-1])
        assert [e.tick for e in events[:-1]] == list(range(1, 15))
        assert all(e.total_ticks == 14 for e in events[:-1])
        final = events[-1]
        assert isinstance(final, CompleteProgress)
        assert len(final.result.timeline) == 14
        assert len(final.result.scores) == 2

    def test_stream_matches_batch(self, agents: list[AgentConfig]):
        caller = policy_caller_from_registry(agents)
        batch = _run(SimulationRunner(get_scenario("holiday-boom"), agents, caller).run())
        events = _run(
            _collect(SimulationRunner(get_scenario("holiday-boom"), agents, caller).stream())
        )
        assert events[-1].result.model_dump() == batch.model_dump()

    def test_stream_reports_error(self, agents: list[AgentConfig]):
        class FlakyStore(InMemoryMarketStore):
            def save(self, market, agent_states):
                if market.tick == 3:
                    raise OSError("disk full")
                super().save(market, agent_states)

        runner = SimulationRunner(get_scenario("calm-q4"), agents, _hold, store=FlakyStore())
        events = _run(_collect(runner.stream()))
        assert [type(e) for e in events] == [TickProgress, TickProgress, ErrorProgress]
        assert events[-1].last_tick == 2
        assert "disk full" in events[-1].message


# =============================================================================
# 5. CANCELLATION AND STORE
# =============================================================================


class TestCancellationAndStore:

    def test_cancel_discards_in_flight_tick(self, agents: list[AgentConfig]):
        holder = {}

        async def caller(agent, turn_state):
            if turn_state.tick == 3:
                holder["runner"].cancel()
            return PolicyDecision()

        runner = SimulationRunner(get_scenario("calm-q4"), agents, caller)
        holder["runner"] = runner
        result = _run(runner.run())
        assert result.cancelled
        assert not runner.cancelled
        assert len(result.timeline) == 2
        assert all(len(a.equity_history) == 2 for a in runner.agents)
        assert len(result.scores) == 2

    def test_cancelled_stream_completes_with_partial_result(self, agents: list[AgentConfig]):
        holder = {}

        async def caller(agent, turn_state):
            if turn_state.tick == 5:
                holder["runner"].cancel()
            return PolicyDecision()

        runner = SimulationRunner(get_scenario("calm-q4"), agents, caller)
        holder["runner"] = runner
        events = _run(_collect(runner.stream()))
        assert len(events) == 5
        assert isinstance(events[-1], CompleteProgress)
        assert len(events[-1].result.timeline) == 4

    def test_cancel_before_run_stops_before_first_tick(self, agents: list[AgentConfig]):
        calls = []

        async def caller(agent, turn_state):
            calls.append(turn_state.tick)
            return PolicyDecision()

        runner = SimulationRunner(get_scenario("calm-q4"), agents, caller, total_ticks=3)
        runner.cancel()
        result = _run(runner.run())
        assert result.cancelled
        assert len(result.timeline) == 0
        assert calls == []
        assert all(s.final_value == pytest.approx(100_000) for s in result.scores)

    def test_cancel_before_stream_completes_empty(self, agents: list[AgentConfig]):
        runner = SimulationRunner(get_scenario("calm-q4"), agents, _hold, total_ticks=3)
        runner.cancel()
        events = _run(_collect(runner.stream()))
        assert len(events) == 1
        assert isinstance(events[0], CompleteProgress)
        assert events[0].result.timeline == []

    def test_next_run_after_cancel_runs_fully(self, agents: list[AgentConfig]):
        runner = SimulationRunner(get_scenario("calm-q4"), agents, _hold, total_ticks=3)
        runner.cancel()
        _run(runner.run())
        result = _run(runner.run())
        assert not result.cancelled
        assert len(result.timeline) == 3

    def test_store_saved_every_tick(self, agents: list[AgentConfig]):
        store = InMemoryMarketStore()
        runner = SimulationRunner(get_scenario("calm-q4"), agents, _hold, store=store)
        _run(runner.run())
        assert store.saves == 14
        assert store.load().tick == 14
        assert store.load_agent("scripted").config.id == "scripted"


# =============================================================================
# 6. CONFIGURATION
# =============================================================================


class TestConfiguration:

    def test_requires_agents(self):
        with pytest.raises(SimulationConfigError):
            SimulationRunner(get_scenario("calm-q4"), [], _hold)

    def test_rejects_duplicate_ids(self):
        with pytest.raises(SimulationConfigError):
            SimulationRunner(get_scenario("calm-q4"), _agents(("a", "hold"), ("a", "hold")), _hold)

    def test_rejects_zero_ticks(self, agents: list[AgentConfig]):
        with pytest.raises(SimulationConfigError):
            SimulationRunner(get_scenario("calm-q4"), agents, _hold, total_ticks=0)

    def test_market_before_run(self, runner: SimulationRunner):
        with pytest.raises(MarketNotInitializedError):
            runner.market

    def test_from_config(self, agents: list[AgentConfig]):
        config = SimulationConfig(scenario_id="elf-strike", total_ticks=5, agents=agents)
        result = _run(SimulationRunner.from_config(config).run())
        assert result.scenario_id == "elf-strike"
        assert len(result.timeline) == 5

    def test_from_config_unknown_scenario(self, agents: list[AgentConfig]):
        config = SimulationConfig(scenario_id="nope", agents=agents)
        with pytest.raises(UnknownScenarioError):
            SimulationRunner.from_config(config)

    def test_from_config_unknown_policy(self):
        config = SimulationConfig(agents=_agents(("x", "astrology")))
        with pytest.raises(KeyError):
            SimulationRunner.from_config(config)

    def test_from_config_extra_scenarios(self, agents: list[AgentConfig], tmp_path):
        path = tmp_path / "extra.yaml"
        path.write_text("quiet:\n  name: Quiet\n  seed: 5\n")
        config = SimulationConfig(
            scenario_id="quiet", scenarios_path=str(path), total_ticks=2, agents=agents
        )
        result = _run(SimulationRunner.from_config(config, policy_caller=_hold).run())
        assert result.scenario_id == "quiet"


# =============================================================================
# 7. TRADE PRESSURE
# =============================================================================


async def _buy_elf(agent, turn_state):
    return PolicyDecision(
        reasoning="accumulate ELF",
        orders=[Order(ticker=Ticker.ELF, action=OrderAction.BUY, quantity=100)],
    )


class TestTradePressure:

    def _run_elf_buyer(self, enabled: bool):
        runner = SimulationRunner(
            get_scenario("calm-q4"),
            _agents(("buyer", "hold")),
            _buy_elf,
            total_ticks=3,
            trade_pressure=TradePressureConfig(enabled=enabled, depth=10_000),
        )
        return _run(runner.run())

    def test_impact_moves_next_tick_price(self):
        with_pressure = self._run_elf_buyer(True)
        without = self._run_elf_buyer(False)
        assert with_pressure.timeline[0].prices == without.timeline[0].prices
        assert with_pressure.timeline[1].prices[Ticker.ELF] > without.timeline[1].prices[Ticker.ELF]

    def test_final_value_matches_last_snapshot(self):
        result = self._run_elf_buyer(True)
        last_equity = result.timeline[-1].agent_logs[0].equity
        assert result.scores[0].final_value == pytest.approx(last_equity)

    def test_final_value_matches_last_snapshot_after_cancel(self):
        holder = {}

        async def caller(agent, turn_state):
            if turn_state.tick == 3:
                holder["runner"].cancel()
            return await _buy_elf(agent, turn_state)

        runner = SimulationRunner(
            get_scenario("calm-q4"),
            _agents(("buyer", "hold")),
            caller,
            total_ticks=5,
            trade_pressure=TradePressureConfig(enabled=True, depth=10_000),
        )
        holder["runner"] = runner
        result = _run(runner.run())
        assert len(result.timeline) == 2
        last_equity = result.timeline[-1].agent_logs[0].equity
        assert result.scores[0].final_value == pytest.approx(last_equity)
