"""Simulation configuration models, loaded from YAML.

These live in ``models/`` because they are shared data contracts used by the
market engine, the broker, the run orchestrator, and the agent systems.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models.market import MacroState, RegimePhase, Ticker, full_ticker_map


class Constraints(BaseModel):
    """Run-wide trading limits. Immutable for the life of a run."""

    model_config = ConfigDict(frozen=True)

    max_position_pct: float = Field(
        default=0.6,
        gt=0.0,
        le=1.0,
        description="Max fraction of equity any single ticker may represent post-trade.",
    )
    max_coal_pct: float = Field(
        default=0.2,
        gt=0.0,
        le=1.0,
        description="Stricter max fraction of equity held in COAL.",
    )
    initial_cash: float = Field(
        default=100_000.0,
        gt=0,
        description="Starting cash balance; also the scoring baseline.",
    )


DEFAULT_CONSTRAINTS = Constraints()


class AgentConfig(BaseModel):
    """Identity and policy reference for one competing agent.

    The engine never interprets ``policy``; it is the registered agent system
    name handed to the policy caller.
    """

    id: str
    name: str
    policy: str = Field(
        default="scripted",
        description="Registered agent system name, e.g. 'scripted', 'momentum', 'single_llm'.",
    )
    llm_provider: str | None = Field(
        default=None,
        description="LLM provider identifier for the 'single_llm' policy, e.g. 'openai', 'anthropic'.",
    )
    llm_model: str | None = Field(
        default=None,
        description="Model name, e.g. 'gpt-4o', 'claude-sonnet-4-20250514'.",
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Per-call timeout enforced by the policy itself.",
    )
    system_prompt: str | None = Field(
        default=None,
        description="Optional override for the agent's system prompt.",
    )
    params: dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form policy parameters (e.g. momentum lookback).",
    )


class InstrumentProfile(BaseModel):
    """Per-ticker drift and volatility used by the price model."""

    drift: float
    volatility: float = Field(ge=0.0)
    seasonal: bool = False


class MacroJitter(BaseModel):
    """Half-width of the symmetric per-tick jitter for each macro indicator."""

    consumer_sentiment: float = Field(default=2.0, ge=0.0)
    labor_disruption_risk: float = Field(default=0.05, ge=0.0)
    supply_chain_pressure: float = Field(default=3.0, ge=0.0)
    energy_cost_index: float = Field(default=0.05, ge=0.0)


def _default_profiles() -> dict[Ticker, InstrumentProfile]:
    return {
        Ticker.SANTA: InstrumentProfile(drift=0.002, volatility=0.02, seasonal=True),
        Ticker.REIN: InstrumentProfile(drift=0.001, volatility=0.025, seasonal=True),
        Ticker.ELF: InstrumentProfile(drift=0.0015, volatility=0.03),
        Ticker.COAL: InstrumentProfile(drift=-0.001, volatility=0.04),
        Ticker.GIFT: InstrumentProfile(drift=0.0025, volatility=0.025, seasonal=True),
    }


class MarketConfig(BaseModel):
    """Tunable constants of the market engine. Defaults are the documented model."""

    initial_prices: dict[Ticker, float] = Field(
        default_factory=lambda: {
            Ticker.SANTA: 100.0,
            Ticker.REIN: 40.0,
            Ticker.ELF: 20.0,
            Ticker.COAL: 5.0,
            Ticker.GIFT: 80.0,
        },
    )
    initial_macro: MacroState = Field(default_factory=MacroState)
    profiles: dict[Ticker, InstrumentProfile] = Field(default_factory=_default_profiles)
    regime_thresholds: tuple[float, float] = Field(
        default=(4 / 14, 10 / 14),
        description="Horizon fractions ending the pre-season and holiday-rush phases.",
    )
    volatility_multipliers: dict[RegimePhase, float] = Field(
        default_factory=lambda: {
            RegimePhase.PRE_SEASON: 1.0,
            RegimePhase.HOLIDAY_RUSH: 1.3,
            RegimePhase.POST_PEAK: 1.4,
        },
    )
    seasonal_drift_multiplier: float = Field(
        default=2.0,
        ge=0.0,
        description="Drift amplification for seasonal tickers during the holiday rush.",
    )
    macro_jitter: MacroJitter = Field(default_factory=MacroJitter)
    event_probability: float = Field(default=0.3, ge=0.0, le=1.0)
    labor_bias_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    labor_negative_probability: float = Field(default=0.75, ge=0.0, le=1.0)
    magnitude_shocks: dict[str, float] = Field(
        default_factory=lambda: {"small": 0.005, "medium": 0.01, "large": 0.015},
    )
    price_floor: float = Field(default=0.01, gt=0.0)
    history_window: int = Field(
        default=30,
        ge=1,
        description="Ticks of price history exposed to agents in their turn state.",
    )

    @field_validator("initial_prices", mode="before")
    @classmethod
    def _full_prices(cls, value: dict) -> dict:
        return full_ticker_map(value, name="initial_prices")

    @field_validator("regime_thresholds")
    @classmethod
    def _monotonic_thresholds(cls, value: tuple[float, float]) -> tuple[float, float]:
        first, second = value
        if not 0.0 < first < second < 1.0:
            raise ValueError(
                f"regime_thresholds must satisfy 0 < first < second < 1, got {value}."
            )
        return value

    @model_validator(mode="after")
    def _complete_tables(self) -> MarketConfig:
        missing = [t.value for t in Ticker if t not in self.profiles]
        if missing:
            raise ValueError(f"profiles missing ticker(s): {', '.join(missing)}.")
        missing = [p.value for p in RegimePhase if p not in self.volatility_multipliers]
        if missing:
            raise ValueError(f"volatility_multipliers missing phase(s): {', '.join(missing)}.")
        missing = [m for m in ("small", "medium", "large") if m not in self.magnitude_shocks]
        if missing:
            raise ValueError(f"magnitude_shocks missing band(s): {', '.join(missing)}.")
        return self


class TradePressureConfig(BaseModel):
    """Post-tick price impact from aggregate executed order flow."""

    enabled: bool = False
    depth: float = Field(
        default=1_000_000.0,
        gt=0,
        description="Net notional that moves a price by 100%.",
    )
    max_impact: float = Field(
        default=0.05,
        ge=0.0,
        lt=1.0,
        description="Absolute cap on the per-tick impact fraction.",
    )


class SimulationConfig(BaseModel):
    """Top-level configuration for a simulation run, loaded from YAML.

    The run name is derived from the config file path at load time rather
    than being specified inside the YAML itself.
    """

    scenario_id: str = Field(default="calm-q4", description="Scenario to run.")
    scenarios_path: str | None = Field(
        default=None,
        description="Optional YAML file with extra scenarios added to the built-in catalog.",
    )
    total_ticks: int = Field(default=14, ge=1, description="Run horizon in ticks.")
    agents: list[AgentConfig] = Field(min_length=1, description="Competing agents, in order.")
    constraints: Constraints = Field(default_factory=Constraints)
    market: MarketConfig = Field(default_factory=MarketConfig)
    trade_pressure: TradePressureConfig = Field(default_factory=TradePressureConfig)

    @model_validator(mode="after")
    def _unique_agent_ids(self) -> SimulationConfig:
        ids = [a.id for a in self.agents]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate agent id(s): {', '.join(duplicates)}.")
        return self

    @classmethod
    def from_yaml(cls, path: str | Path) -> SimulationConfig:
        """Load and validate a ``SimulationConfig`` from a YAML file.

        Raises ``FileNotFoundError`` if the file does not exist and
        ``ValueError`` if the content is not a valid YAML mapping.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open(encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)

        if not isinstance(raw, dict):
            raise ValueError(
                f"Expected a YAML mapping in {path}, got {type(raw).__name__}."
            )

        return cls(**raw)
