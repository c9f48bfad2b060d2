"""Abstract base class for agent systems (trading policies).

Every policy (scripted bot, rule-based bot, LLM agent) implements this
interface so the simulation runner can invoke them interchangeably.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from models.agents import AgentInvocation, AgentInvocationResult
from models.config import AgentConfig


class AgentSystem(ABC):
    """Common interface for pluggable trading policies.

    Lifecycle:
        1. ``__init__`` — receive the agent's config.
        2. ``invoke`` — called once per tick with that agent's turn state.

    ``invoke`` may raise; the runner records the failure as a held tick.
    """

    def __init__(self, config: AgentConfig) -> None:
        self.config = config

    @abstractmethod
    async def invoke(self, invocation: AgentInvocation) -> AgentInvocationResult:
        """Decide this tick's orders and explain them.

        Returns an ``AgentInvocationResult`` whose ``decision`` carries the
        reasoning text and the (possibly empty) order list.
        """
