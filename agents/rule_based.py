"""Deterministic, offline agent systems.

These need no API keys and are used for demos, tests and as baselines
against the LLM agents:

- ``scripted`` — buys SANTA on tick 1 and GIFT on tick 7 during the rush.
- ``hold`` — never trades.
- ``momentum`` / ``contrarian`` — rebalance toward the best (or worst)
  recent performer and exit the opposite side.
"""

from __future__ import annotations

import logging
import math

from agents.base import AgentSystem
from agents.registry import register
from models.agents import AgentInvocation, AgentInvocationResult, TurnState
from models.decision import Order, OrderAction, PolicyDecision
from models.market import TICKERS, RegimePhase, Ticker

logger = logging.getLogger(__name__)


def _equity(state: TurnState) -> float:
    return state.portfolio.cash + sum(
        state.portfolio.holdings[t] * state.prices[t] for t in TICKERS
    )


def _result(reasoning: str, orders: list[Order]) -> AgentInvocationResult:
    return AgentInvocationResult(
        decision=PolicyDecision(reasoning=reasoning, orders=orders),
        raw_output=reasoning,
    )


@register("scripted")
class ScriptedAgent(AgentSystem):
    """Fixed script: a SANTA position on tick 1, GIFT on tick 7 in the holiday rush."""

    async def invoke(self, invocation: AgentInvocation) -> AgentInvocationResult:
        state = invocation.turn_state
        orders: list[Order] = []

        if state.tick == 1:
            orders.append(Order(ticker=Ticker.SANTA, action=OrderAction.BUY, quantity=200))
        elif state.tick == 7 and state.regime.phase == RegimePhase.HOLIDAY_RUSH:
            orders.append(Order(ticker=Ticker.GIFT, action=OrderAction.BUY, quantity=100))

        reasoning = (
            f"Tick {state.tick}: Market in {state.regime.phase.value} phase. "
            f"Consumer sentiment at {state.macro.consumer_sentiment:.0f}. "
            + (f"Executing {len(orders)} trade(s)." if orders else "Holding current positions.")
        )
        return _result(reasoning, orders)


@register("hold")
class HoldAgent(AgentSystem):
    async def invoke(self, invocation: AgentInvocation) -> AgentInvocationResult:
        return _result(f"Tick {invocation.turn_state.tick}: holding.", [])


@register("momentum")
class MomentumAgent(AgentSystem):
    """Trend follower.

    Params (``AgentConfig.params``):
        lookback: ticks used to measure each ticker's return (default 3).
        target_weight: equity fraction to hold in the chosen ticker (default 0.25).
    """

    follow_trend = True

    async def invoke(self, invocation: AgentInvocation) -> AgentInvocationResult:
        state = invocation.turn_state
        lookback = int(self.config.params.get("lookback", 3))
        target_weight = float(self.config.params.get("target_weight", 0.25))

        returns = {
            t: _lookback_return(state.price_history[t], lookback) for t in TICKERS
        }
        if all(r == 0 for r in returns.values()):
            return _result(f"Tick {state.tick}: not enough history to rank tickers.", [])

        sign = 1 if self.follow_trend else -1
        ranked = sorted(TICKERS, key=lambda t: sign * returns[t], reverse=True)
        pick = ranked[0]

        orders: list[Order] = []
        cash = state.portfolio.cash
        for ticker in TICKERS:
            held = state.portfolio.holdings[ticker]
            if held > 0 and ticker != pick and sign * returns[ticker] < 0:
                orders.append(Order(ticker=ticker, action=OrderAction.SELL, quantity=held))
                cash += held * state.prices[ticker]

        if sign * returns[pick] > 0:
            weight = target_weight
            if pick == Ticker.COAL:
                weight = min(weight, state.constraints.max_coal_pct * 0.9)
            weight = min(weight, state.constraints.max_position_pct * 0.9)
            price = state.prices[pick]
            target_value = weight * _equity(state)
            current_value = state.portfolio.holdings[pick] * price
            quantity = math.floor(min(target_value - current_value, cash) / price)
            if quantity > 0:
                orders.append(Order(ticker=pick, action=OrderAction.BUY, quantity=quantity))

        reasoning = (
            f"Tick {state.tick}: {lookback}-tick returns "
            + ", ".join(f"{t.value} {returns[t]:+.2%}" for t in TICKERS)
            + f". Favouring {pick.value}; {len(orders)} order(s)."
        )
        logger.debug("Agent %s: %s", self.config.id, reasoning)
        return _result(reasoning, orders)


@register("contrarian")
class ContrarianAgent(MomentumAgent):
    """Buys the weakest recent performer and exits recent winners."""

    follow_trend = False


def _lookback_return(series: list[float], lookback: int) -> float:
    if len(series) < 2:
        return 0.0
    start = series[max(0, len(series) - 1 - lookback)]
    return series[-1] / start - 1.0 if start > 0 else 0.0
