"""Scenario models: named presets with a seed, overrides and scripted events."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from models.market import EventDescriptor, Ticker


class MacroOverrides(BaseModel):
    """Partial macro state; unset fields keep the engine defaults."""

    consumer_sentiment: float | None = Field(default=None, ge=0.0, le=100.0)
    labor_disruption_risk: float | None = Field(default=None, ge=0.0, le=1.0)
    supply_chain_pressure: float | None = Field(default=None, ge=0.0, le=100.0)
    energy_cost_index: float | None = Field(default=None, ge=0.5, le=2.0)


class ScriptedEvent(BaseModel):
    """An event injected at a fixed tick, optionally with a direct price shock.

    ``price_shock`` maps tickers to signed fractions, e.g. ``{"COAL": -0.2}``.
    """

    tick: int = Field(ge=1)
    event: EventDescriptor
    price_shock: dict[Ticker, float] | None = None

    @field_validator("price_shock")
    @classmethod
    def _shock_above_minus_one(cls, value: dict[Ticker, float] | None):
        if value:
            for ticker, shock in value.items():
                if shock <= -1.0:
                    raise ValueError(f"Price shock for {ticker.value} must be > -1, got {shock}.")
        return value


class ScenarioConfig(BaseModel):
    """Named preset: RNG seed, initial overrides, and scripted events in order."""

    id: str
    name: str
    description: str = ""
    seed: int
    initial_prices: dict[Ticker, float] | None = None
    macro_overrides: MacroOverrides | None = None
    scripted_events: list[ScriptedEvent] = []

    @field_validator("initial_prices")
    @classmethod
    def _positive_prices(cls, value: dict[Ticker, float] | None):
        if value:
            for ticker, price in value.items():
                if price <= 0:
                    raise ValueError(f"Initial price for {ticker.value} must be positive, got {price}.")
        return value
