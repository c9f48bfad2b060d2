"""Policy registry: the names used in ``AgentConfig.policy``.

Agent systems register themselves with ``@register("name")`` when their
module is imported; the built-in modules are imported lazily on first lookup::

    from agents.registry import create_agent_system

    system = create_agent_system(AgentConfig(id="m", name="Momo", policy="momentum"))
"""

from __future__ import annotations

from typing import Type

from agents.base import AgentSystem
from models.config import AgentConfig

_REGISTRY: dict[str, Type[AgentSystem]] = {}


def register(name: str):
    """Class decorator adding an ``AgentSystem`` subclass under *name*.

    Registering the same name twice raises ``ValueError``.
    """

    def _add(cls: Type[AgentSystem]) -> Type[AgentSystem]:
        if name in _REGISTRY:
            raise ValueError(
                f"Policy '{name}' is already registered to {_REGISTRY[name].__name__}."
            )
        _REGISTRY[name] = cls
        return cls

    return _add


def available_agent_systems() -> list[str]:
    _load_builtins()
    return sorted(_REGISTRY)


def create_agent_system(config: AgentConfig) -> AgentSystem:
    """Build the agent system for ``config.policy``; ``KeyError`` if unknown."""
    _load_builtins()
    try:
        system_cls = _REGISTRY[config.policy]
    except KeyError:
        raise KeyError(
            f"Agent '{config.id}' uses unknown policy '{config.policy}'. "
            f"Registered: {', '.join(sorted(_REGISTRY))}."
        ) from None
    return system_cls(config)


def _load_builtins() -> None:
    # Imported for their @register side effects.
    import agents.rule_based  # noqa: F401
    import agents.single_llm  # noqa: F401
