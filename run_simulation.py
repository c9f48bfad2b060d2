#!/usr/bin/env python3
"""CLI entrypoint for the North Pole market simulation.

Usage::

    python run_simulation.py --config config/example.yaml
    python run_simulation.py --config config/example.yaml --output-dir results/
    python run_simulation.py --config config/example.yaml --scenario esg-meltdown --stream

The simulation loads a YAML configuration file, resolves the scenario and
agent policies, then runs the async tick loop. The run name is derived
automatically from the config file name (e.g. ``example.yaml`` -> ``example``).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

from models.config import SimulationConfig
from models.log import CompleteProgress, ErrorProgress, SimulationResult
from simulation.runner import SimulationRunner
from simulation.sim_logging import SimulationLogger, run_name_from_config_path


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run a North Pole market simulation.",
    )
    parser.add_argument(
        "--config",
        required=True,
        type=str,
        help="Path to the YAML configuration file.",
    )
    parser.add_argument(
        "--output-dir",
        default="results",
        type=str,
        help="Directory where simulation results will be written (default: results/).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO).",
    )
    parser.add_argument(
        "--scenario",
        default=None,
        type=str,
        help="Override the scenario id from the config file.",
    )
    parser.add_argument(
        "--stream",
        action="store_true",
        help="Log progress as each tick is committed.",
    )
    return parser.parse_args()


def _setup_logging(level: str) -> None:
    """Configure root logger with a clean format."""
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


async def _stream(runner: SimulationRunner, sim_logger: SimulationLogger) -> SimulationResult | None:
    logger = logging.getLogger(__name__)
    async for event in runner.stream():
        if isinstance(event, CompleteProgress):
            return event.result
        if isinstance(event, ErrorProgress):
            sim_logger.record_error(event.message)
            return None
        leader = max(event.snapshot.agent_logs, key=lambda log: log.equity)
        logger.info(
            "[%d/%d] leader %s at $%.2f",
            event.tick,
            event.total_ticks,
            leader.agent_id,
            leader.equity,
        )
        sim_logger.write_tick(event.snapshot)
    return None


async def _main() -> int:
    load_dotenv()  # API keys for LLM agents, if any
    args = _parse_args()
    _setup_logging(args.log_level)

    logger = logging.getLogger(__name__)
    logger.info("Loading config from '%s'...", args.config)

    config = SimulationConfig.from_yaml(args.config)
    if args.scenario:
        config = config.model_copy(update={"scenario_id": args.scenario})
    logger.info(
        "Config loaded: scenario='%s', agents=%s",
        config.scenario_id,
        [a.id for a in config.agents],
    )

    runner = SimulationRunner.from_config(config)
    sim_logger = SimulationLogger(
        args.output_dir, config, run_name_from_config_path(args.config)
    )
    sim_logger.init_run(config_yaml_path=args.config)

    if args.stream:
        result = await _stream(runner, sim_logger)
    else:
        result = await runner.run()

    sim_logger.finalize(result)
    if result is None:
        return 1

    for score in result.scores:
        print(
            f"#{score.rank} {score.name:<20} ${score.final_value:>12,.2f} "
            f"{score.total_return:>+8.2%}  score {score.score:>12,.2f}  "
            f"{score.trading_style.value}"
        )
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(_main()))
