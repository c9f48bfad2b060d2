"""End-of-run scoring, trading-style classification and ranking."""

from __future__ import annotations

import logging

from models.agents import AgentState
from models.decision import OrderAction
from models.log import AgentScore, TradingStyle
from models.market import Ticker

from simulation.broker import compute_equity

logger = logging.getLogger(__name__)

VIOLATION_PENALTY = 1000.0
TURNOVER_PENALTY_RATE = 0.0002
DRAWDOWN_PENALTY_RATE = 0.05

AGGRESSIVE_TRADES_PER_TICK = 3.0
AGGRESSIVE_MAX_CASH_RATIO = 0.15
CONSERVATIVE_TRADES_PER_TICK = 1.0
CONSERVATIVE_MIN_CASH_RATIO = 0.30
TREND_LOOKBACK = 3


def compute_max_drawdown(series: list[float]) -> float:
    """Largest peak-to-trough decline as a fraction of the running peak."""
    if not series:
        return 0.0

    peak = series[0]
    max_drawdown = 0.0
    for value in series:
        if value > peak:
            peak = value
        drawdown = (peak - value) / peak if peak > 0 else 0.0
        if drawdown > max_drawdown:
            max_drawdown = drawdown
    return max_drawdown


def _trend(history: list[float], tick: int, lookback: int) -> float:
    """Price change over the *lookback* ticks ending at *tick*."""
    if tick <= 0 or tick >= len(history):
        return 0.0
    start = max(0, tick - lookback)
    return history[tick] - history[start]


def counter_trend_fraction(
    agent: AgentState,
    price_history: dict[Ticker, list[float]],
    lookback: int = TREND_LOOKBACK,
) -> float | None:
    """Share of trend-classifiable trades that went against the recent trend.

    Buying after a rise or selling after a fall follows the trend; the reverse
    is counter-trend. Trades on a flat trend are not counted. Returns ``None``
    when no trade can be classified.
    """
    with_trend = 0
    against_trend = 0
    for trade in agent.trade_log:
        trend = _trend(price_history.get(trade.ticker, []), trade.tick, lookback)
        if trend == 0:
            continue
        rising = trend > 0
        buying = trade.action == OrderAction.BUY
        if rising == buying:
            with_trend += 1
        else:
            against_trend += 1

    classified = with_trend + against_trend
    if classified == 0:
        return None
    return against_trend / classified


def detect_trading_style(
    agent: AgentState,
    initial_cash: float,
    price_history: dict[Ticker, list[float]] | None = None,
) -> TradingStyle:
    """Classify the agent from trade frequency, final cash ratio and trend timing."""
    ticks = len(agent.equity_history) or 1
    trades_per_tick = agent.total_trades / ticks

    equity = agent.equity_history[-1] if agent.equity_history else initial_cash
    cash_ratio = agent.portfolio.cash / equity if equity > 0 else 1.0

    if trades_per_tick >= AGGRESSIVE_TRADES_PER_TICK and cash_ratio < AGGRESSIVE_MAX_CASH_RATIO:
        return TradingStyle.AGGRESSIVE
    if trades_per_tick < CONSERVATIVE_TRADES_PER_TICK and cash_ratio > CONSERVATIVE_MIN_CASH_RATIO:
        return TradingStyle.CONSERVATIVE

    if price_history is not None:
        fraction = counter_trend_fraction(agent, price_history)
        if fraction is not None and fraction > 0.5:
            return TradingStyle.CONTRARIAN
    return TradingStyle.MOMENTUM


def score_agent(
    agent: AgentState,
    final_prices: dict[Ticker, float],
    initial_cash: float,
    price_history: dict[Ticker, list[float]] | None = None,
) -> AgentScore:
    """Final value minus violation, turnover and drawdown penalties."""
    final_value = compute_equity(agent.portfolio, final_prices)
    total_return = (final_value - initial_cash) / initial_cash
    max_drawdown = compute_max_drawdown(agent.equity_history)

    violation_penalty = len(agent.violations) * VIOLATION_PENALTY
    turnover_penalty = agent.turnover * TURNOVER_PENALTY_RATE
    drawdown_penalty = max_drawdown * final_value * DRAWDOWN_PENALTY_RATE
    score = final_value - violation_penalty - turnover_penalty - drawdown_penalty

    logger.debug(
        "Agent %s: value $%.2f, penalties violations=%.2f turnover=%.2f drawdown=%.2f",
        agent.config.id,
        final_value,
        violation_penalty,
        turnover_penalty,
        drawdown_penalty,
    )

    return AgentScore(
        agent_id=agent.config.id,
        name=agent.config.name,
        final_value=final_value,
        total_return=total_return,
        score=score,
        max_drawdown=max_drawdown,
        total_trades=agent.total_trades,
        turnover=agent.turnover,
        violations=list(agent.violations),
        trading_style=detect_trading_style(agent, initial_cash, price_history),
    )


def rank_agents(scores: list[AgentScore]) -> list[AgentScore]:
    """Sort by score, highest first, and assign 1-based ranks. Ties keep input order."""
    ordered = sorted(scores, key=lambda s: s.score, reverse=True)
    return [s.model_copy(update={"rank": idx + 1}) for idx, s in enumerate(ordered)]
