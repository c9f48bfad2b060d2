"""Async simulation runner: the tick loop.

Lifecycle of one run::

    INIT -> (ADVANCE_TICK -> BUILD_TURN_STATES -> CALL_POLICIES
             -> APPLY_ORDERS -> SNAPSHOT) x N -> SCORE -> DONE

Ticks run strictly in sequence. Within a tick every agent's policy is called
concurrently against the same frozen market, then orders are applied one
agent at a time in the configured agent order. A failing or timed-out policy
call never aborts the run: the agent holds for that tick and a violation is
logged.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping

from pydantic import ValidationError

from agents.registry import create_agent_system
from models.agents import AgentInvocation, AgentState, TradeHistoryEntry, TurnState
from models.config import (
    DEFAULT_CONSTRAINTS,
    AgentConfig,
    Constraints,
    MarketConfig,
    SimulationConfig,
    TradePressureConfig,
)
from models.decision import PolicyDecision, PolicyFailure, PolicyOutcome
from models.log import (
    AgentTickLog,
    CompleteProgress,
    ErrorProgress,
    SimulationResult,
    TickProgress,
    TickSnapshot,
)
from models.market import MarketState
from models.scenario import ScenarioConfig

from simulation.broker import MODEL_ERROR_VIOLATION, Broker, compute_equity, init_agent_state
from simulation.engine import DEFAULT_MARKET_CONFIG, advance_market, init_market_state
from simulation.errors import MarketNotInitializedError, SimulationConfigError
from simulation.pressure import apply_trade_pressure
from simulation.rng import DeterministicRng
from simulation.scenarios import (
    apply_scenario_overrides,
    apply_scripted_events,
    get_scenario,
    load_scenarios,
)
from simulation.scoring import rank_agents, score_agent
from simulation.store import MarketStore

logger = logging.getLogger(__name__)

PolicyCaller = Callable[[AgentConfig, TurnState], Awaitable[PolicyOutcome]]

DEFAULT_TRADE_MEMORY = 5


# ------------------------------------------------------------------
# Turn state
# ------------------------------------------------------------------

def build_turn_state(
    market: MarketState,
    agent: AgentState,
    constraints: Constraints,
    history_window: int = 30,
    trade_memory: int = DEFAULT_TRADE_MEMORY,
) -> TurnState:
    """Assemble the read-only view one agent's policy receives for a tick.

    Only this agent's own portfolio and trades are included. Everything is
    copied so a policy cannot reach back into live state.
    """
    trade_ticks = sorted({trade.tick for trade in agent.trade_log})
    trade_ticks = trade_ticks[-trade_memory:] if trade_memory else []
    trade_history = [
        TradeHistoryEntry(
            tick=tick,
            orders=[t.model_copy() for t in agent.trade_log if t.tick == tick],
            reasoning=agent.reasoning_log.get(tick, ""),
        )
        for tick in trade_ticks
    ]

    return TurnState(
        tick=market.tick,
        total_ticks=market.total_ticks,
        portfolio=agent.portfolio.snapshot(),
        prices=dict(market.prices),
        price_history={
            t: list(series[-history_window:]) for t, series in market.price_history.items()
        },
        macro=market.macro.model_copy(),
        regime=market.regime.model_copy(),
        events=[e.model_copy() for e in market.events],
        constraints=constraints,
        trade_history=trade_history,
    )


# ------------------------------------------------------------------
# Policy callers
# ------------------------------------------------------------------

def policy_caller_from_registry(agent_configs: list[AgentConfig]) -> PolicyCaller:
    """Build a ``PolicyCaller`` that routes each agent to its registered system.

    Raises ``KeyError`` immediately if any agent names an unknown policy.
    """
    systems = {config.id: create_agent_system(config) for config in agent_configs}

    async def _call(agent: AgentConfig, turn_state: TurnState) -> PolicyOutcome:
        result = await systems[agent.id].invoke(
            AgentInvocation(agent=agent, turn_state=turn_state)
        )
        return result.decision

    return _call


# ------------------------------------------------------------------
# Runner
# ------------------------------------------------------------------

class SimulationRunner:
    """Drives one scenario for a set of agents across ``total_ticks`` ticks.

    ``run()`` returns the final ``SimulationResult``; ``stream()`` yields a
    ``TickProgress`` per committed tick followed by one ``CompleteProgress``
    (or an ``ErrorProgress`` if the run fails). Each call starts a fresh,
    fully reseeded run.
    """

    def __init__(
        self,
        scenario: ScenarioConfig,
        agents: list[AgentConfig],
        policy_caller: PolicyCaller,
        total_ticks: int = 14,
        constraints: Constraints = DEFAULT_CONSTRAINTS,
        market_config: MarketConfig | None = None,
        trade_pressure: TradePressureConfig | None = None,
        store: MarketStore | None = None,
    ) -> None:
        if not agents:
            raise SimulationConfigError("At least one agent is required.")
        ids = [a.id for a in agents]
        if len(set(ids)) != len(ids):
            raise SimulationConfigError(f"Agent ids must be unique, got {ids}.")
        if total_ticks < 1:
            raise SimulationConfigError(f"total_ticks must be >= 1, got {total_ticks}.")

        self._scenario = scenario
        self._agent_configs = list(agents)
        self._policy_caller = policy_caller
        self._total_ticks = total_ticks
        self._constraints = constraints
        self._market_config = market_config or DEFAULT_MARKET_CONFIG
        self._trade_pressure = trade_pressure or TradePressureConfig()
        self._store = store
        self._broker = Broker(constraints)
        self._cancelled = False

        self._rng: DeterministicRng | None = None
        self._market: MarketState | None = None
        self._agents: list[AgentState] = []
        self._timeline: list[TickSnapshot] = []

    @classmethod
    def from_config(
        cls,
        config: SimulationConfig,
        policy_caller: PolicyCaller | None = None,
        store: MarketStore | None = None,
    ) -> SimulationRunner:
        """Resolve the scenario and policies named in *config*.

        Unknown scenario ids raise ``UnknownScenarioError`` and unknown
        policies raise ``KeyError``, both before any tick runs.
        """
        catalog = load_scenarios(config.scenarios_path) if config.scenarios_path else None
        scenario = get_scenario(config.scenario_id, catalog)
        return cls(
            scenario=scenario,
            agents=config.agents,
            policy_caller=policy_caller or policy_caller_from_registry(config.agents),
            total_ticks=config.total_ticks,
            constraints=config.constraints,
            market_config=config.market,
            trade_pressure=config.trade_pressure,
            store=store,
        )

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Stop before the next tick's policy calls. Committed ticks are kept.

        A cancel issued before ``run()``/``stream()`` stops that run before
        tick 1. The request is consumed when the run finishes; the result's
        ``cancelled`` flag records it.
        """
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        """True while a cancel request is pending."""
        return self._cancelled

    @property
    def market(self) -> MarketState:
        if self._market is None:
            raise MarketNotInitializedError(
                "Market has not been initialised; call run() or stream()."
            )
        return self._market

    @property
    def agents(self) -> list[AgentState]:
        return list(self._agents)

    async def run(self) -> SimulationResult:
        """Run every tick and return the scored result."""
        self._start()
        async for _ in self._ticks():
            pass
        return self._finish()

    async def stream(self) -> AsyncIterator[TickProgress | CompleteProgress | ErrorProgress]:
        """Run every tick, yielding progress as each tick is committed."""
        self._start()
        try:
            async for snapshot in self._ticks():
                yield TickProgress(
                    tick=snapshot.tick,
                    total_ticks=self._total_ticks,
                    snapshot=snapshot,
                )
            result = self._finish()
        except Exception as exc:
            self._cancelled = False
            last_tick = self._timeline[-1].tick if self._timeline else 0
            logger.exception("Simulation '%s' failed after tick %d.", self._scenario.id, last_tick)
            yield ErrorProgress(message=f"Simulation failed: {exc}", last_tick=last_tick)
            return
        yield CompleteProgress(total_ticks=self._total_ticks, result=result)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _start(self) -> None:
        self._rng = DeterministicRng(self._scenario.seed)
        market = init_market_state(self._total_ticks, self._rng, self._market_config)
        self._market = apply_scenario_overrides(market, self._scenario)
        self._agents = [init_agent_state(c, self._constraints) for c in self._agent_configs]
        self._timeline = []
        logger.info(
            "Starting scenario '%s' (seed %d): %d agent(s), %d tick(s).",
            self._scenario.id,
            self._scenario.seed,
            len(self._agents),
            self._total_ticks,
        )

    async def _ticks(self) -> AsyncIterator[TickSnapshot]:
        for tick in range(1, self._total_ticks + 1):
            if self._cancelled:
                logger.warning("Run cancelled before tick %d.", tick)
                return

            snapshot = await self._run_tick(tick)
            if snapshot is None:
                logger.warning("Run cancelled during tick %d; tick discarded.", tick)
                return
            self._timeline.append(snapshot)
            yield snapshot

    async def _run_tick(self, tick: int) -> TickSnapshot | None:
        """Process one tick. Returns ``None`` if cancelled before commit."""
        t0 = time.monotonic()
        market = advance_market(self.market, self._rng, self._market_config)
        market = apply_scripted_events(
            market, self._scenario, tick, price_floor=self._market_config.price_floor
        )

        outcomes = await asyncio.gather(
            *(
                self._call_policy(
                    agent,
                    build_turn_state(
                        market,
                        agent,
                        self._constraints,
                        history_window=self._market_config.history_window,
                    ),
                )
                for agent in self._agents
            )
        )
        if self._cancelled:
            return None

        agent_logs = [
            self._apply_outcome(agent, outcome, market, tick)
            for agent, outcome in zip(self._agents, outcomes)
        ]

        snapshot = TickSnapshot(
            tick=tick,
            prices=dict(market.prices),
            events=list(market.events),
            agent_logs=agent_logs,
        )

        executed = [order for log in agent_logs for order in log.orders]
        # No next tick to carry the impact after the last one.
        if tick < self._total_ticks:
            market = apply_trade_pressure(
                market, executed, self._trade_pressure, price_floor=self._market_config.price_floor
            )

        self._market = market
        if self._store is not None:
            self._store.save(market, self._agents)

        logger.info(
            "Tick %d/%d committed: %d event(s), %d fill(s), %.1fs elapsed.",
            tick,
            self._total_ticks,
            len(snapshot.events),
            len(executed),
            time.monotonic() - t0,
        )
        return snapshot

    async def _call_policy(self, agent: AgentState, turn_state: TurnState) -> PolicyOutcome:
        """Call the external policy, converting any exception into ``PolicyFailure``."""
        try:
            outcome = await self._policy_caller(agent.config, turn_state)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(
                "Policy error for agent %s on tick %d: %s; holding.",
                agent.config.id,
                turn_state.tick,
                exc,
            )
            return PolicyFailure(reason=f"{type(exc).__name__}: {exc}")
        return _coerce_outcome(outcome, agent.config.id, turn_state.tick)

    def _apply_outcome(
        self,
        agent: AgentState,
        outcome: PolicyOutcome,
        market: MarketState,
        tick: int,
    ) -> AgentTickLog:
        violations: list[str] = []
        if isinstance(outcome, PolicyDecision):
            reasoning = outcome.reasoning
            orders = outcome.orders
        else:
            reasoning = f"Model call failed: {outcome.reason}"
            orders = []
            violations.append(MODEL_ERROR_VIOLATION)

        batch = self._broker.apply_orders(agent, orders, market.prices, tick=tick)
        violations.extend(batch.violations)

        agent.turnover += batch.turnover_delta
        agent.violations.extend(violations)
        agent.reasoning_log[tick] = reasoning
        equity = compute_equity(agent.portfolio, market.prices)
        agent.equity_history.append(equity)

        return AgentTickLog(
            agent_id=agent.config.id,
            reasoning=reasoning,
            orders=batch.applied_orders,
            equity=equity,
            violations=violations,
            portfolio=agent.portfolio.snapshot(),
        )

    def _finish(self) -> SimulationResult:
        market = self.market
        cancelled, self._cancelled = self._cancelled, False
        # Value at the last committed prices, i.e. what the final snapshot reports.
        final_prices = self._timeline[-1].prices if self._timeline else market.prices
        scores = [
            score_agent(
                agent,
                final_prices,
                self._constraints.initial_cash,
                price_history=market.price_history,
            )
            for agent in self._agents
        ]
        ranked = rank_agents(scores)
        for score in ranked:
            logger.info(
                "#%d %s: value $%.2f, score %.2f, %d trade(s), %d violation(s), style %s",
                score.rank,
                score.name,
                score.final_value,
                score.score,
                score.total_trades,
                len(score.violations),
                score.trading_style.value,
            )
        return SimulationResult(
            scenario_id=self._scenario.id,
            timeline=list(self._timeline),
            scores=ranked,
            cancelled=cancelled,
        )


def _coerce_outcome(outcome: Any, agent_id: str, tick: int) -> PolicyOutcome:
    """Accept a ``PolicyDecision``, a ``PolicyFailure`` or a ``{reasoning, orders}``
    mapping; anything else is a failed call."""
    if isinstance(outcome, (PolicyDecision, PolicyFailure)):
        return outcome
    if isinstance(outcome, Mapping):
        try:
            return PolicyDecision.model_validate(dict(outcome))
        except ValidationError as exc:
            reason = f"Invalid decision: {exc.error_count()} validation error(s)"
    else:
        reason = f"Unexpected policy result of type {type(outcome).__name__}"
    logger.warning("Policy for agent %s on tick %d: %s; holding.", agent_id, tick, reason)
    return PolicyFailure(reason=reason)


async def run_simulation(
    scenario: ScenarioConfig,
    agents: list[AgentConfig],
    policy_caller: PolicyCaller,
    total_ticks: int = 14,
    **kwargs,
) -> SimulationResult:
    """Batch convenience: build a ``SimulationRunner`` and run it to completion."""
    runner = SimulationRunner(scenario, agents, policy_caller, total_ticks=total_ticks, **kwargs)
    return await runner.run()
