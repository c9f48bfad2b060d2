"""Scenario catalog and the hooks that apply a scenario to the market.

Scenarios seed the run's RNG, override the initial prices / macro state, and
inject scripted events at fixed ticks on top of the random event generator.

Extra scenarios can be loaded from YAML, either a list of scenario mappings
or a mapping of id -> scenario::

    - id: coal-rally
      name: Coal Rally
      seed: 777
      initial_prices: {COAL: 3}
      scripted_events:
        - tick: 2
          event: {target: COAL, category: demand, direction: positive,
                  magnitude: large, message: "Naughty list doubles"}
          price_shock: {COAL: 0.3}
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from models.market import MarketState
from models.scenario import ScenarioConfig

from simulation.errors import UnknownScenarioError

logger = logging.getLogger(__name__)

_BUILTIN_SCENARIOS: list[dict] = [
    {
        "id": "calm-q4",
        "name": "Calm Q4",
        "description": "Baseline scenario with default parameters and no scripted events",
        "seed": 12345,
    },
    {
        "id": "holiday-boom",
        "name": "Holiday Boom",
        "description": "Bull market with high consumer sentiment and record sales",
        "seed": 54321,
        "macro_overrides": {"consumer_sentiment": 85, "labor_disruption_risk": 0.2},
        "scripted_events": [
            {
                "tick": 5,
                "event": {
                    "target": "SANTA",
                    "category": "demand",
                    "direction": "positive",
                    "magnitude": "large",
                    "message": "Record toy sales reported across all major retailers",
                },
                "price_shock": {"SANTA": 0.10, "GIFT": 0.05},
            },
        ],
    },
    {
        "id": "esg-meltdown",
        "name": "ESG Meltdown",
        "description": "Environmental crisis triggers COAL sell-off",
        "seed": 98765,
        "initial_prices": {"COAL": 8},
        "macro_overrides": {"energy_cost_index": 1.5},
        "scripted_events": [
            {
                "tick": 4,
                "event": {
                    "target": "COAL",
                    "category": "esg",
                    "direction": "negative",
                    "magnitude": "large",
                    "message": "Major pension funds announce complete COAL divestment",
                },
                "price_shock": {"COAL": -0.20},
            },
        ],
    },
    {
        "id": "supply-chain-chaos",
        "name": "Supply Chain Chaos",
        "description": "Port strikes and logistics disruptions cause volatility",
        "seed": 11111,
        "macro_overrides": {"supply_chain_pressure": 80},
        "scripted_events": [
            {
                "tick": 6,
                "event": {
                    "target": "ALL",
                    "category": "ops",
                    "direction": "negative",
                    "magnitude": "large",
                    "message": "Major port strike delays holiday shipments worldwide",
                },
                "price_shock": {"GIFT": -0.08, "SANTA": -0.05, "REIN": -0.03},
            },
        ],
    },
    {
        "id": "elf-strike",
        "name": "Elf Strike",
        "description": "Labor crisis at the North Pole workshop",
        "seed": 22222,
        "initial_prices": {"ELF": 25},
        "macro_overrides": {"labor_disruption_risk": 0.8},
        "scripted_events": [
            {
                "tick": 3,
                "event": {
                    "target": "ELF",
                    "category": "labor",
                    "direction": "negative",
                    "magnitude": "large",
                    "message": "Elf union walks out! Production halted at North Pole",
                },
                "price_shock": {"ELF": -0.25},
            },
            {
                "tick": 10,
                "event": {
                    "target": "ELF",
                    "category": "labor",
                    "direction": "positive",
                    "magnitude": "medium",
                    "message": "Strike resolved! Elves return to work with new contract",
                },
                "price_shock": {"ELF": 0.15},
            },
        ],
    },
]

SCENARIOS: dict[str, ScenarioConfig] = {
    raw["id"]: ScenarioConfig.model_validate(raw) for raw in _BUILTIN_SCENARIOS
}


# ------------------------------------------------------------------
# Catalog lookup
# ------------------------------------------------------------------

def get_scenario(
    scenario_id: str,
    catalog: dict[str, ScenarioConfig] | None = None,
) -> ScenarioConfig:
    """Return the scenario named *scenario_id*.

    Raises ``UnknownScenarioError`` if it is not in *catalog* (default: the
    built-in catalog).
    """
    catalog = SCENARIOS if catalog is None else catalog
    scenario = catalog.get(scenario_id)
    if scenario is None:
        raise UnknownScenarioError(scenario_id, sorted(catalog))
    return scenario


def list_scenarios(catalog: dict[str, ScenarioConfig] | None = None) -> list[ScenarioConfig]:
    catalog = SCENARIOS if catalog is None else catalog
    return list(catalog.values())


def load_scenarios(
    path: str | Path,
    base: dict[str, ScenarioConfig] | None = None,
) -> dict[str, ScenarioConfig]:
    """Load scenarios from a YAML file and merge them over *base*.

    *base* defaults to the built-in catalog; a loaded scenario with an
    existing id replaces it. The built-in catalog itself is never modified.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Scenario file not found: {path}")

    with path.open(encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)

    if isinstance(raw, dict):
        entries = [{"id": key, **value} for key, value in raw.items()]
    elif isinstance(raw, list):
        entries = raw
    else:
        raise ValueError(
            f"Expected a YAML list or mapping of scenarios in {path}, got {type(raw).__name__}."
        )

    catalog = dict(SCENARIOS if base is None else base)
    for entry in entries:
        scenario = ScenarioConfig.model_validate(entry)
        if scenario.id in catalog:
            logger.info("Scenario '%s' from %s replaces an existing entry.", scenario.id, path)
        catalog[scenario.id] = scenario
    logger.info("Loaded %d scenario(s) from '%s'.", len(entries), path)
    return catalog


# ------------------------------------------------------------------
# Applying a scenario to the market
# ------------------------------------------------------------------

def apply_scenario_overrides(state: MarketState, scenario: ScenarioConfig) -> MarketState:
    """Merge the scenario's initial prices and macro overrides into *state*.

    Meant to run once, before the first advance. The seeded price-history
    entry follows any overridden initial price.
    """
    update: dict = {}

    if scenario.initial_prices:
        prices = {**state.prices, **scenario.initial_prices}
        history = {
            ticker: (
                [*series[:-1], prices[ticker]] if ticker in scenario.initial_prices else list(series)
            )
            for ticker, series in state.price_history.items()
        }
        update["prices"] = prices
        update["price_history"] = history

    if scenario.macro_overrides:
        overrides = scenario.macro_overrides.model_dump(exclude_none=True)
        update["macro"] = state.macro.model_copy(update=overrides)

    if not update:
        return state
    return state.model_copy(update=update)


def apply_scripted_events(
    state: MarketState,
    scenario: ScenarioConfig,
    tick: int,
    price_floor: float = 0.01,
) -> MarketState:
    """Inject the scenario's events bound to *tick*.

    Price shocks multiply the current price by ``(1 + shock)`` in list order
    and overwrite the tick's history entry. Returns *state* itself when no
    scripted event matches.
    """
    scripted = [s for s in scenario.scripted_events if s.tick == tick]
    if not scripted:
        return state

    events = list(state.events)
    prices = dict(state.prices)
    shocked = set()

    for item in scripted:
        events.append(item.event)
        for ticker, shock in (item.price_shock or {}).items():
            prices[ticker] = max(price_floor, prices[ticker] * (1.0 + shock))
            shocked.add(ticker)
        logger.info("Tick %d scripted event: %s", tick, item.event.message)

    history = {
        ticker: [*series[:-1], prices[ticker]] if ticker in shocked else list(series)
        for ticker, series in state.price_history.items()
    }
    return state.model_copy(
        update={"events": events, "prices": prices, "price_history": history}
    )
