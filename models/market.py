"""Market data models: tickers, macro indicators, regime, events, market state."""

from __future__ import annotations

from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, Field, field_validator


class Ticker(str, Enum):
    """The five instruments traded on the exchange."""

    SANTA = "SANTA"
    REIN = "REIN"
    ELF = "ELF"
    COAL = "COAL"
    GIFT = "GIFT"


# Canonical ordering; every per-ticker loop in the engine follows it.
TICKERS: list[Ticker] = [Ticker.SANTA, Ticker.REIN, Ticker.ELF, Ticker.COAL, Ticker.GIFT]

ALL_TICKERS = "ALL"


def full_ticker_map(values: dict, *, fill=None, name: str = "map") -> dict[Ticker, object]:
    """Coerce *values* into a map keyed by every ``Ticker``.

    Unknown keys raise ``ValueError``. Missing keys take *fill*, or raise when
    *fill* is ``None``.
    """
    result: dict[Ticker, object] = {}
    for key, value in values.items():
        try:
            ticker = Ticker(key)
        except ValueError:
            raise ValueError(f"Unknown ticker '{key}' in {name}.") from None
        result[ticker] = value
    missing = [t.value for t in TICKERS if t not in result]
    if missing:
        if fill is None:
            raise ValueError(f"{name} is missing ticker(s): {', '.join(missing)}.")
        for ticker in TICKERS:
            result.setdefault(ticker, fill() if callable(fill) else fill)
    return {t: result[t] for t in TICKERS}


class MacroState(BaseModel):
    """Four bounded macro indicators that drift a little every tick."""

    consumer_sentiment: float = Field(default=60.0, ge=0.0, le=100.0)
    labor_disruption_risk: float = Field(default=0.4, ge=0.0, le=1.0)
    supply_chain_pressure: float = Field(default=40.0, ge=0.0, le=100.0)
    energy_cost_index: float = Field(default=1.0, ge=0.5, le=2.0)


class RegimePhase(str, Enum):
    """Market phase, in chronological order."""

    PRE_SEASON = "pre_season"
    HOLIDAY_RUSH = "holiday_rush"
    POST_PEAK = "post_peak"


class RegimeState(BaseModel):
    phase: RegimePhase = RegimePhase.PRE_SEASON
    ticks_in_phase: int = 0
    volatility_multiplier: float = 1.0


class EventCategory(str, Enum):
    LABOR = "labor"
    ESG = "esg"
    WEATHER = "weather"
    DEMAND = "demand"
    OPS = "ops"


class EventDirection(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"


class EventMagnitude(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class EventDescriptor(BaseModel):
    """A news item active for a single tick.

    ``target`` is either one ticker or ``"ALL"`` for market-wide news.
    """

    target: Union[Ticker, Literal["ALL"]]
    category: EventCategory
    direction: EventDirection
    magnitude: EventMagnitude
    message: str = ""

    def affects(self, ticker: Ticker) -> bool:
        return self.target == ALL_TICKERS or self.target == ticker

    @property
    def sign(self) -> int:
        return 1 if self.direction == EventDirection.POSITIVE else -1


class MarketState(BaseModel):
    """The single live market for a run.

    ``price_history[ticker]`` holds one entry per tick including the initial
    state, so its length is always ``tick + 1``.
    """

    tick: int = 0
    total_ticks: int
    prices: dict[Ticker, float]
    price_history: dict[Ticker, list[float]]
    macro: MacroState = Field(default_factory=MacroState)
    regime: RegimeState = Field(default_factory=RegimeState)
    events: list[EventDescriptor] = []

    @field_validator("prices", mode="before")
    @classmethod
    def _full_prices(cls, value: dict) -> dict:
        prices = full_ticker_map(value, name="prices")
        for ticker, price in prices.items():
            if float(price) <= 0:
                raise ValueError(f"Price for {ticker.value} must be positive, got {price}.")
        return prices

    @field_validator("price_history", mode="before")
    @classmethod
    def _full_history(cls, value: dict) -> dict:
        return full_ticker_map(value, name="price_history")
