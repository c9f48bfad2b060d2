"""Headline catalog for randomly generated market events.

The engine only needs *a* message for an event; the text is flavor. Messages
are keyed by (category, direction) and may reference ``{ticker}``.
"""

from __future__ import annotations

from models.market import EventCategory, EventDirection

from simulation.rng import DeterministicRng

_POS = EventDirection.POSITIVE
_NEG = EventDirection.NEGATIVE

MESSAGE_POOLS: dict[tuple[EventCategory, EventDirection], list[str]] = {
    (EventCategory.LABOR, _POS): [
        "Elf workforce expansion announced to meet demand at {ticker}",
        "{ticker} signs new contract with workshop union",
        "Overtime bonuses lift morale across {ticker} operations",
    ],
    (EventCategory.LABOR, _NEG): [
        "Elf overtime reaches record levels as deadline looms at {ticker}",
        "Walkout threat looms over {ticker} production lines",
        "{ticker} reports staffing shortages ahead of the rush",
    ],
    (EventCategory.ESG, _POS): [
        "{ticker} wins sustainability award for clean sleigh fleet",
        "Green fund adds {ticker} to its holiday portfolio",
    ],
    (EventCategory.ESG, _NEG): [
        "Pension funds review exposure to {ticker} after emissions report",
        "Activists target {ticker} over naughty-list carbon footprint",
    ],
    (EventCategory.WEATHER, _POS): [
        "Clear skies forecast along {ticker} delivery routes",
        "Fresh snowfall boosts sleigh throughput for {ticker}",
    ],
    (EventCategory.WEATHER, _NEG): [
        "Weather concerns threaten Christmas Eve operations for {ticker}",
        "Blizzard grounds {ticker} test flights",
    ],
    (EventCategory.DEMAND, _POS): [
        "Early bird shoppers drive unexpected surge in {ticker} pre-orders",
        "Retailers report robust demand for {ticker}",
        "Black Friday results for {ticker} exceed analyst expectations",
    ],
    (EventCategory.DEMAND, _NEG): [
        "Returns flood in as holiday hangover hits {ticker}",
        "Analysts downgrade {ticker} after soft holiday orders",
    ],
    (EventCategory.OPS, _POS): [
        "{ticker} sleigh tracking shows record-breaking efficiency",
        "Shipping carriers add capacity for {ticker}",
    ],
    (EventCategory.OPS, _NEG): [
        "Record online sales strain {ticker} fulfillment operations",
        "Minor delivery delays disappoint {ticker} customers",
    ],
}


def pick_message(
    category: EventCategory,
    direction: EventDirection,
    ticker: str,
    rng: DeterministicRng,
) -> str:
    """Draw one headline for the event. Consumes exactly one RNG value."""
    template = rng.choice(MESSAGE_POOLS[(category, direction)])
    return template.format(ticker=ticker)
