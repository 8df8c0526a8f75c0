"""
Genie Training Job

Runs ``genie train`` as a subprocess and reports its progress.
"""

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from almond_cloud.config import settings
from almond_cloud.errors import TrainingError

logger = logging.getLogger(__name__)

DEFAULT_TRAIN_ITERATIONS = 100000

_ITERATION_RE = re.compile(r"iteration_(\d+)")


class GenieTrainingJob:
    """
    A single ``genie train`` run.

    Options:
        backend: Training backend (e.g. ``decanlp``)
        locale: Locale of the dataset
        config: Trainer hyperparameters, written to ``<workdir>/config.json``
        thingpedia_url: Thingpedia the trainer resolves schemas against
        debug: Pass ``--debug`` to the trainer
        workdir, datadir, outputdir: Job directories
    """

    def __init__(self, options: Dict[str, Any]):
        self.options = options
        self.config: Dict[str, Any] = dict(options.get("config") or {})
        self.train_iterations = int(self.config.get("train_iterations", DEFAULT_TRAIN_ITERATIONS))
        self.progress = 0.0
        self.killed = False
        self._process: Optional[asyncio.subprocess.Process] = None
        self._callbacks: Dict[str, List[Callable[[Any], None]]] = {}

    def add_callback(self, event: str, callback: Callable[[Any], None]) -> None:
        self._callbacks.setdefault(event, []).append(callback)

    def _emit(self, event: str, value: Any) -> None:
        for callback in self._callbacks.get(event, []):
            callback(value)

    def _write_config(self) -> Path:
        workdir = Path(self.options["workdir"])
        workdir.mkdir(parents=True, exist_ok=True)
        config_path = workdir / "config.json"
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(self.config, f, indent=2)
        return config_path

    def command(self, config_path: Path) -> List[str]:
        cmd = [
            settings.GENIE_COMMAND, "train",
            "--backend", self.options.get("backend", "decanlp"),
            "--locale", self.options.get("locale", "en-US"),
            "--thingpedia-url", self.options["thingpedia_url"],
            "--datadir", str(self.options["datadir"]),
            "--workdir", str(self.options["workdir"]),
            "--outputdir", str(self.options["outputdir"]),
            "--config-file", str(config_path),
        ]
        if self.options.get("debug"):
            cmd.append("--debug")
        return cmd

    def _handle_line(self, line: str) -> None:
        logger.info(f"[Genie] {line}")
        match = _ITERATION_RE.search(line)
        if match is None or self.train_iterations <= 0:
            return
        progress = min(1.0, int(match.group(1)) / self.train_iterations)
        if progress > self.progress:
            self.progress = progress
            self._emit("progress", progress)

    async def train(self) -> None:
        """Run the trainer to completion.

        Raises:
            TrainingError: If the trainer exits with a non-zero status and
                was not killed
        """
        if self.killed:
            logger.warning("[Genie] Job killed before the trainer started")
            return

        config_path = self._write_config()
        cmd = self.command(config_path)
        logger.info(f"[Genie] Starting: {' '.join(cmd)}")

        self._process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        if self.killed:
            # kill() ran while the process was being spawned
            logger.warning(f"[Genie] Terminating trainer (pid {self._process.pid})")
            self._process.terminate()

        while True:
            line = await self._process.stdout.readline()
            if not line:
                break
            self._handle_line(line.decode("utf-8", errors="replace").rstrip())

        returncode = await self._process.wait()
        if self.killed:
            logger.warning(f"[Genie] Trainer killed (exit code {returncode})")
            return
        if returncode != 0:
            raise TrainingError(f"Genie training failed with exit code {returncode}", exit_code=returncode)
        logger.info("[Genie] Training completed")

    def kill(self) -> None:
        self.killed = True
        if self._process is not None and self._process.returncode is None:
            logger.warning(f"[Genie] Terminating trainer (pid {self._process.pid})")
            self._process.terminate()


def create_job(options: Dict[str, Any]) -> GenieTrainingJob:
    return GenieTrainingJob(options)
