"""Single-LLM agent system: one chat model with the submit_orders tool.

A ReAct-style agent backed by a single chat model that receives the tick's
turn state in its prompt and calls ``submit_orders`` with its trades. If the
model answers with a JSON order list instead of calling the tool, that list
is parsed as a fallback.
"""

from __future__ import annotations

import asyncio
import json
import logging

from langchain_core.messages import HumanMessage, SystemMessage
from langgraph.prebuilt import create_react_agent

from agents.base import AgentSystem
from agents.parsing import parse_agent_output
from agents.registry import register
from agents.tools import make_submit_orders_tool
from models.agents import AgentInvocation, AgentInvocationResult, TurnState
from models.config import AgentConfig
from models.decision import Order, PolicyDecision
from models.market import TICKERS

logger = logging.getLogger(__name__)

PRICE_HISTORY_IN_PROMPT = 7

# Default system prompt; AgentConfig.system_prompt overrides it.
_DEFAULT_SYSTEM_PROMPT = """\
You are a portfolio manager on the North Pole Stock Exchange. Five tickers \
trade: SANTA, REIN, ELF, COAL and GIFT. You compete with other managers to \
grow your starting cash.

Use the submit_orders tool once per turn to record your trades. You may \
submit an empty orders list to hold.

Guidelines:
- Orders execute in the order given; a SELL can fund a later BUY.
- Buys need enough cash and sells need enough shares, otherwise they are \
rejected and count as violations.
- Keep every position under the max position limit and COAL under its \
stricter limit; breaches are penalised.
- Trading costs a little on every fill, so avoid needless churn.
- Reason step-by-step before submitting.
"""


def _create_llm(config: AgentConfig):
    """Instantiate the appropriate LangChain chat model from config."""
    provider = (config.llm_provider or "").lower()
    if not config.llm_model:
        raise ValueError(f"Agent '{config.id}' uses the LLM policy but sets no llm_model.")

    if provider == "openai":
        from langchain_openai import ChatOpenAI

        return ChatOpenAI(
            model=config.llm_model,
            temperature=config.temperature,
        )
    elif provider == "anthropic":
        from langchain_anthropic import ChatAnthropic

        return ChatAnthropic(
            model=config.llm_model,
            temperature=config.temperature,
        )
    else:
        raise ValueError(
            f"Unsupported LLM provider '{provider}'. "
            f"Supported: 'openai', 'anthropic'."
        )


def format_turn_state(state: TurnState) -> str:
    """Render the turn state as the human prompt."""
    portfolio_lines = [f"- Cash: ${state.portfolio.cash:,.2f}"]
    for ticker in TICKERS:
        qty = state.portfolio.holdings[ticker]
        if qty > 0:
            price = state.prices[ticker]
            portfolio_lines.append(
                f"- {ticker.value}: {qty} shares @ ${price:.2f} = ${qty * price:,.2f}"
            )

    history_lines = []
    for ticker in TICKERS:
        recent = state.price_history[ticker][-PRICE_HISTORY_IN_PROMPT:]
        history_lines.append(f"- {ticker.value}: " + ", ".join(f"${p:.2f}" for p in recent))

    event_lines = [f"- {e.message}" for e in state.events] or ["- No major events"]

    memory_lines = []
    for entry in state.trade_history:
        fills = ", ".join(
            f"{o.action.value} {o.ticker.value} x{o.quantity} @ ${o.price:.2f}" for o in entry.orders
        )
        memory_lines.append(f"- Tick {entry.tick}: {fills}")

    macro = state.macro
    sections = [
        f"Tick {state.tick} of {state.total_ticks}",
        "",
        "MARKET STATE:",
        f"- Phase: {state.regime.phase.value} (tick {state.regime.ticks_in_phase} in phase)",
        f"- Volatility Multiplier: {state.regime.volatility_multiplier:.2f}",
        "",
        "MACRO CONDITIONS:",
        f"- Consumer Sentiment: {macro.consumer_sentiment:.0f}/100",
        f"- Labor Disruption Risk: {macro.labor_disruption_risk * 100:.0f}%",
        f"- Supply Chain Pressure: {macro.supply_chain_pressure:.0f}/100",
        f"- Energy Cost Index: {macro.energy_cost_index:.2f}x",
        "",
        "CURRENT PRICES:",
        *[f"- {t.value}: ${state.prices[t]:.2f}" for t in TICKERS],
        "",
        f"PRICE HISTORY (last {PRICE_HISTORY_IN_PROMPT} ticks):",
        *history_lines,
        "",
        "YOUR PORTFOLIO:",
        *portfolio_lines,
        "",
        "EVENTS THIS TICK:",
        *event_lines,
        "",
        "CONSTRAINTS:",
        f"- Max position size: {state.constraints.max_position_pct:.0%} of portfolio value",
        f"- Max COAL position: {state.constraints.max_coal_pct:.0%} of portfolio value",
    ]
    if memory_lines:
        sections += ["", "YOUR RECENT TRADES:", *memory_lines]
    return "\n".join(sections)


@register("single_llm")
class SingleLLMAgent(AgentSystem):
    """ReAct agent using a single LLM with the ``submit_orders`` tool."""

    def __init__(self, config: AgentConfig) -> None:
        super().__init__(config)
        self._llm = _create_llm(config)
        self._system_prompt = config.system_prompt or _DEFAULT_SYSTEM_PROMPT

    async def invoke(self, invocation: AgentInvocation) -> AgentInvocationResult:
        """Run the ReAct agent for a single tick.

        Raises ``asyncio.TimeoutError`` if the model exceeds
        ``timeout_seconds``; the runner turns that into a held tick.
        """
        # Fresh tool per tick so submissions never carry over.
        tool = make_submit_orders_tool()
        agent_executor = create_react_agent(self._llm, tools=[tool])

        human_content = (
            f"{format_turn_state(invocation.turn_state)}\n\n"
            f"Ticks remaining after this one: {invocation.ticks_remaining}\n\n"
            "Analyse the market and submit your orders."
        )
        messages = [
            SystemMessage(content=self._system_prompt),
            HumanMessage(content=human_content),
        ]

        result = await asyncio.wait_for(
            agent_executor.ainvoke({"messages": messages}, config={"recursion_limit": 10}),
            timeout=self.config.timeout_seconds,
        )
        trace = result.get("messages", [])
        final_text = _final_ai_text(trace)

        orders = self._extract_orders(tool, final_text)
        reasoning = final_text or getattr(tool.func, "_last_reasoning", "")

        logger.info(
            "Agent %s decision for tick %d: %d order(s)",
            invocation.agent.id,
            invocation.turn_state.tick,
            len(orders),
        )
        return AgentInvocationResult(
            decision=PolicyDecision(reasoning=reasoning, orders=orders),
            raw_output=_serialize_messages(trace),
        )

    @staticmethod
    def _extract_orders(tool, final_text: str) -> list[Order]:
        """Prefer the tool submission; fall back to JSON in the final message; else hold."""
        submitted = getattr(tool.func, "_last_orders", None)
        if submitted is not None:
            return submitted

        parsed = parse_agent_output(final_text) if final_text else None
        if parsed is None:
            logger.warning("Agent did not call submit_orders; defaulting to hold.")
            return []
        return parsed


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _message_text(msg) -> str:
    content = getattr(msg, "content", "") or ""
    if isinstance(content, list):
        # Anthropic-style content blocks.
        return "\n".join(
            block.get("text", "") for block in content if isinstance(block, dict)
        ).strip()
    return str(content).strip()


def _final_ai_text(messages: list) -> str:
    for msg in reversed(messages):
        if getattr(msg, "type", "") == "ai":
            text = _message_text(msg)
            if text:
                return text
    return ""


def _serialize_messages(messages: list) -> str:
    """Convert LangChain message objects into a human-readable trace string."""
    parts: list[str] = []
    for msg in messages:
        role = msg.type.upper()  # "system", "human", "ai", "tool"
        content = _message_text(msg)

        # AI messages may also carry tool_calls.
        tool_calls = getattr(msg, "tool_calls", None)

        parts.append(f"--- {role} ---")
        if content:
            parts.append(content)

        if tool_calls:
            for tc in tool_calls:
                name = tc.get("name", "unknown")
                args = tc.get("args", {})
                parts.append(f"[tool_call: {name}({json.dumps(args, indent=2)})]")

    return "\n".join(parts)
