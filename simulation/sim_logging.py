"""Run output on disk: the run log, timeline, final scores and per-agent traces.

Layout of one run::

    {output_dir}/{run_name}/
    ├── config.yaml            (copy of the YAML the run was started from)
    ├── simulation_log.json    (config + result + errors)
    ├── timeline.json
    ├── scores.json
    └── reasoning/
        └── {agent_id}/
            ├── tick_001.txt
            └── ...
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any

from models.config import SimulationConfig
from models.log import AgentTickLog, SimulationLog, SimulationResult, TickSnapshot

logger = logging.getLogger(__name__)


def run_name_from_config_path(config_path: str | Path) -> str:
    """``config/example.yaml`` -> ``example``."""
    return Path(config_path).stem


class SimulationLogger:
    """Writes one run's artefacts under ``output_dir``.

    ``init_run`` creates the directory, ``write_tick`` may be called as ticks
    commit (streaming mode), and ``finalize`` writes everything else. A run
    that failed can still be finalized without a result so its errors land on
    disk.
    """

    def __init__(
        self,
        output_dir: str | Path,
        config: SimulationConfig,
        run_name: str,
    ) -> None:
        self._run_dir = _unique_run_dir(Path(output_dir), run_name)
        self._traces_dir = self._run_dir / "reasoning"
        self._written_ticks: set[int] = set()
        self._log = SimulationLog(run_name=self._run_dir.name, config=config)

    @property
    def run_dir(self) -> Path:
        return self._run_dir

    @property
    def simulation_log(self) -> SimulationLog:
        return self._log

    # ---- Lifecycle ----

    def init_run(self, config_yaml_path: str | None = None) -> None:
        self._traces_dir.mkdir(parents=True, exist_ok=True)
        if config_yaml_path is not None:
            shutil.copy2(config_yaml_path, self._run_dir / "config.yaml")
        logger.info("Writing run output to %s", self._run_dir)

    def write_tick(self, snapshot: TickSnapshot) -> None:
        """Write each agent's trace for a committed tick. Repeat calls are ignored."""
        if snapshot.tick in self._written_ticks:
            return
        for agent_log in snapshot.agent_logs:
            agent_dir = self._traces_dir / agent_log.agent_id
            agent_dir.mkdir(parents=True, exist_ok=True)
            (agent_dir / f"tick_{snapshot.tick:03d}.txt").write_text(
                _format_trace(agent_log), encoding="utf-8"
            )
        self._written_ticks.add(snapshot.tick)

    def record_error(self, message: str) -> None:
        self._log.errors.append(message)
        logger.error("Run %s: %s", self._run_dir.name, message)

    def finalize(self, result: SimulationResult | None = None) -> None:
        if result is not None:
            self._log.result = result
            for snapshot in result.timeline:
                self.write_tick(snapshot)
            _write_json(
                self._run_dir / "timeline.json",
                [snapshot.model_dump(mode="json") for snapshot in result.timeline],
            )
            _write_json(
                self._run_dir / "scores.json",
                [score.model_dump(mode="json") for score in result.scores],
            )
        _write_json(self._run_dir / "simulation_log.json", self._log.model_dump(mode="json"))
        logger.info(
            "Run %s finalized (%s).",
            self._run_dir.name,
            "complete" if result is not None else f"{len(self._log.errors)} error(s)",
        )


# ---- Helpers ----

def _format_trace(agent_log: AgentTickLog) -> str:
    """Reasoning first, then the fills and violations of the tick."""
    lines = [agent_log.reasoning, "", "---", f"equity: {agent_log.equity:.2f}"]
    for order in agent_log.orders:
        lines.append(
            f"filled: {order.action.value} {order.ticker.value} x{order.quantity} @ {order.price:.2f}"
        )
    for violation in agent_log.violations:
        lines.append(f"violation: {violation}")
    return "\n".join(lines) + "\n"


def _unique_run_dir(output_dir: Path, run_name: str) -> Path:
    """``run_name`` if free, else the first free ``run_name_NNN``."""
    candidate = output_dir / run_name
    suffix = 0
    while candidate.exists():
        suffix += 1
        candidate = output_dir / f"{run_name}_{suffix:03d}"
    return candidate


def _write_json(path: Path, data: Any) -> None:
    path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
