"""Post-tick price impact from the aggregate order flow of all agents.

Runs once per tick after every agent's orders have executed. The impact moves
the market's current prices, so it shows up in the next tick's starting
price; the committed price history of the current tick is left alone.
"""

from __future__ import annotations

import logging
from typing import Iterable

from models.config import TradePressureConfig
from models.decision import ExecutedOrder, OrderAction
from models.market import TICKERS, MarketState, Ticker

logger = logging.getLogger(__name__)


def net_notional(orders: Iterable[ExecutedOrder]) -> dict[Ticker, float]:
    """Buy notional minus sell notional per ticker."""
    net = {t: 0.0 for t in TICKERS}
    for order in orders:
        sign = 1.0 if order.action == OrderAction.BUY else -1.0
        net[order.ticker] += sign * order.notional
    return net


def apply_trade_pressure(
    state: MarketState,
    executed_orders: Iterable[ExecutedOrder],
    config: TradePressureConfig,
    price_floor: float = 0.01,
) -> MarketState:
    """Nudge each price by ``clamp(net_notional / depth, ±max_impact)``.

    Returns *state* unchanged when pressure is disabled or nothing moved.
    """
    if not config.enabled:
        return state

    net = net_notional(executed_orders)
    if not any(net.values()):
        return state

    prices = dict(state.prices)
    for ticker, flow in net.items():
        if not flow:
            continue
        impact = max(-config.max_impact, min(config.max_impact, flow / config.depth))
        prices[ticker] = max(price_floor, prices[ticker] * (1.0 + impact))
        logger.debug(
            "Tick %d trade pressure on %s: net $%.2f -> %+.3f%%",
            state.tick,
            ticker.value,
            flow,
            impact * 100,
        )
    return state.model_copy(update={"prices": prices})
