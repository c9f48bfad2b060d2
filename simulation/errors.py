"""Run-level configuration errors.

These abort a run before any tick executes. Per-agent problems (constraint
breaches, failed policy calls) are never raised; they are recorded as
violations on the agent instead.
"""


class SimulationConfigError(Exception):
    """Base class for fatal configuration problems."""


class UnknownScenarioError(SimulationConfigError, LookupError):
    def __init__(self, scenario_id: str, available: list[str]) -> None:
        self.scenario_id = scenario_id
        self.available = available
        super().__init__(
            f"Unknown scenario '{scenario_id}'. Available: {', '.join(available) or '(none)'}."
        )


class MarketNotInitializedError(SimulationConfigError):
    """Raised when market state is read before it has been initialised."""
