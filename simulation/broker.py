"""In-process broker: portfolio management and order execution.

The broker validates and executes an agent's orders one at a time, in the
order given, against the agent's live portfolio. Later orders in a batch see
the effects of earlier ones (a SELL can fund a later BUY in the same tick).
Rejected orders are recorded as violations; post-trade limit breaches are
recorded too, but do not undo the trade.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from models.agents import AgentState
from models.config import AgentConfig, Constraints
from models.decision import ExecutedOrder, Order, OrderAction, OrderBatchResult
from models.market import TICKERS, Ticker
from models.portfolio import Portfolio

logger = logging.getLogger(__name__)

MODEL_ERROR_VIOLATION = "Model error: no orders"


def init_agent_state(config: AgentConfig, constraints: Constraints) -> AgentState:
    """Fresh agent: all cash, no holdings, empty histories."""
    return AgentState(
        config=config,
        portfolio=Portfolio(cash=constraints.initial_cash, holdings={}),
    )


def compute_equity(portfolio: Portfolio, prices: dict[Ticker, float]) -> float:
    """Cash plus the market value of every holding."""
    return portfolio.cash + sum(portfolio.holdings[t] * prices[t] for t in TICKERS)


class Broker:
    """Stateless executor bound to one run's ``Constraints``.

    The broker owns no portfolio itself; ``apply_orders`` mutates the
    ``AgentState`` it is given.
    """

    def __init__(self, constraints: Constraints) -> None:
        self._constraints = constraints

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def apply_orders(
        self,
        agent: AgentState,
        orders: Iterable[Any],
        prices: dict[Ticker, float],
        tick: int = 0,
    ) -> OrderBatchResult:
        """Execute *orders* sequentially against *agent*'s portfolio.

        Mutates ``agent.portfolio``, ``agent.total_trades`` and
        ``agent.trade_log``. Turnover and violations are returned, not
        applied; the caller folds them into the agent.
        """
        result = OrderBatchResult()

        for order in orders:
            if not _is_well_formed(order):
                logger.debug("Agent %s: dropping malformed order %r", agent.config.id, order)
                continue

            executed = self._execute(agent, order, prices, tick, result.violations)
            if executed is None:
                continue

            result.applied_orders.append(executed)
            result.turnover_delta += executed.notional
            agent.total_trades += 1
            agent.trade_log.append(executed)

            result.violations.extend(self._limit_violations(agent.portfolio, prices))

        if result.violations:
            logger.info(
                "Agent %s tick %d: %d violation(s): %s",
                agent.config.id,
                tick,
                len(result.violations),
                "; ".join(result.violations),
            )
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _execute(
        agent: AgentState,
        order: Order,
        prices: dict[Ticker, float],
        tick: int,
        violations: list[str],
    ) -> ExecutedOrder | None:
        portfolio = agent.portfolio
        price = prices[order.ticker]
        notional = price * order.quantity

        if order.action == OrderAction.BUY:
            if notional > portfolio.cash:
                violations.append(
                    f"Insufficient cash for BUY {order.ticker.value} x{order.quantity}"
                )
                return None
            portfolio.cash -= notional
            portfolio.holdings[order.ticker] += order.quantity
        else:
            if portfolio.holdings[order.ticker] < order.quantity:
                violations.append(f"No holdings to SELL {order.ticker.value}")
                return None
            portfolio.cash += notional
            portfolio.holdings[order.ticker] -= order.quantity

        return ExecutedOrder(
            ticker=order.ticker,
            action=order.action,
            quantity=order.quantity,
            price=price,
            tick=tick,
        )

    def _limit_violations(self, portfolio: Portfolio, prices: dict[Ticker, float]) -> list[str]:
        """Post-trade concentration checks. Informational only."""
        equity = compute_equity(portfolio, prices)
        if equity <= 0:
            return []

        violations = []
        max_pct = self._constraints.max_position_pct
        for ticker in TICKERS:
            weight = portfolio.holdings[ticker] * prices[ticker] / equity
            if weight > max_pct:
                violations.append(
                    f"Position limit exceeded: {ticker.value} at {weight:.1%} of equity "
                    f"(max {max_pct:.0%})"
                )

        coal_weight = portfolio.holdings[Ticker.COAL] * prices[Ticker.COAL] / equity
        if coal_weight > self._constraints.max_coal_pct:
            violations.append(
                f"COAL exposure {coal_weight:.1%} exceeds {self._constraints.max_coal_pct:.0%} limit"
            )
        return violations


def _is_well_formed(order: Any) -> bool:
    """Orders are validated by the producer; anything else is dropped here."""
    return (
        isinstance(order, Order)
        and isinstance(order.ticker, Ticker)
        and isinstance(order.quantity, int)
        and order.quantity > 0
    )


def apply_orders(
    agent: AgentState,
    orders: Iterable[Any],
    prices: dict[Ticker, float],
    constraints: Constraints,
    tick: int = 0,
) -> OrderBatchResult:
    """Convenience wrapper: ``Broker(constraints).apply_orders(...)``."""
    return Broker(constraints).apply_orders(agent, orders, prices, tick=tick)
