"""Data models for the North Pole market simulation.

The simulation engine, the agent systems and the CLI all import from models.
"""

from models.agents import (
    AgentInvocation,
    AgentInvocationResult,
    AgentState,
    TradeHistoryEntry,
    TurnState,
)
from models.config import (
    DEFAULT_CONSTRAINTS,
    AgentConfig,
    Constraints,
    InstrumentProfile,
    MacroJitter,
    MarketConfig,
    SimulationConfig,
    TradePressureConfig,
)
from models.decision import (
    ExecutedOrder,
    Order,
    OrderAction,
    OrderBatchResult,
    PolicyDecision,
    PolicyFailure,
    PolicyOutcome,
    SubmitOrdersInput,
)
from models.log import (
    AgentScore,
    AgentTickLog,
    CompleteProgress,
    ErrorProgress,
    ProgressEvent,
    SimulationLog,
    SimulationResult,
    TickProgress,
    TickSnapshot,
    TradingStyle,
)
from models.market import (
    ALL_TICKERS,
    TICKERS,
    EventCategory,
    EventDescriptor,
    EventDirection,
    EventMagnitude,
    MacroState,
    MarketState,
    RegimePhase,
    RegimeState,
    Ticker,
)
from models.portfolio import Portfolio
from models.scenario import MacroOverrides, ScenarioConfig, ScriptedEvent

__all__ = [
    # agents
    "AgentInvocation",
    "AgentInvocationResult",
    "AgentState",
    "TradeHistoryEntry",
    "TurnState",
    # config
    "DEFAULT_CONSTRAINTS",
    "AgentConfig",
    "Constraints",
    "InstrumentProfile",
    "MacroJitter",
    "MarketConfig",
    "SimulationConfig",
    "TradePressureConfig",
    # decision
    "ExecutedOrder",
    "Order",
    "OrderAction",
    "OrderBatchResult",
    "PolicyDecision",
    "PolicyFailure",
    "PolicyOutcome",
    "SubmitOrdersInput",
    # log
    "AgentScore",
    "AgentTickLog",
    "CompleteProgress",
    "ErrorProgress",
    "ProgressEvent",
    "SimulationLog",
    "SimulationResult",
    "TickProgress",
    "TickSnapshot",
    "TradingStyle",
    # market
    "ALL_TICKERS",
    "TICKERS",
    "EventCategory",
    "EventDescriptor",
    "EventDirection",
    "EventMagnitude",
    "MacroState",
    "MarketState",
    "RegimePhase",
    "RegimeState",
    "Ticker",
    # portfolio
    "Portfolio",
    # scenario
    "MacroOverrides",
    "ScenarioConfig",
    "ScriptedEvent",
]
