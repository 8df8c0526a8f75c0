"""Training job state."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


@dataclass
class TrainingTask:
    """
    One training job, as seen by the training driver.

    Attributes:
        job_id: Job identifier
        job_dir: Remote (or local) job directory holding dataset/ and workdir/
        language: Language code of the model
        model_tag: Tag of the model being trained
        contextual: Whether the model is a contextual model
        config: Training hyperparameters; ``dataset_*`` keys are not passed to the trainer
    """

    job_id: str
    job_dir: str
    language: str
    model_tag: str
    contextual: bool = False
    config: Dict[str, Any] = field(default_factory=dict)

    progress: float = 0.0
    killed: bool = False
    _kill_listeners: List[Callable[[], None]] = field(default_factory=list, repr=False)

    def set_progress(self, value: float) -> None:
        self.progress = value
        logger.info(f"[Task {self.job_id}] Progress: {value * 100:.1f}%")

    def on_killed(self, listener: Callable[[], None]) -> None:
        """Call ``listener`` on kill, or right away if the job is already killed."""
        if self.killed:
            listener()
            return
        self._kill_listeners.append(listener)

    def kill(self) -> None:
        """Mark the job as killed and notify listeners (once)."""
        if self.killed:
            return
        logger.warning(f"[Task {self.job_id}] Kill requested")
        self.killed = True
        for listener in self._kill_listeners:
            listener()
