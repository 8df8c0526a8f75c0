"""
Training Driver

Stages a job directory, runs Genie on it, and publishes the trained model.

Sequence:
1. (kubernetes backend) wait for node credentials to become available
2. download the job directory (dataset/, workdir/, output/)
3. run the trainer, relaying progress and syncing tensorboard event files
4. unless the job was killed, upload output/ and remove the local copy

A kill before the trainer starts ends the job after the current step.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Set
from urllib.parse import urljoin

from almond_cloud.config import settings
from almond_cloud.storage import abstract_fs
from almond_cloud.training.genie import create_job
from almond_cloud.training.task import TrainingTask

logger = logging.getLogger(__name__)

# Keeps scheduled tensorboard syncs referenced until they finish
_background_syncs: Set[asyncio.Task] = set()


def build_genie_config(task: TrainingTask) -> Dict[str, Any]:
    config = {
        "task_name": "contextual_almond" if task.contextual else "almond",
        "locale": task.language,
    }
    for key, value in task.config.items():
        if key.startswith("dataset_"):
            continue
        config[key] = value
    return config


def _on_sync_done(job_id: str, sync_task: asyncio.Task) -> None:
    _background_syncs.discard(sync_task)
    if sync_task.cancelled():
        return
    error = sync_task.exception()
    if error is not None:
        logger.error(f"[Train {job_id}] Tensorboard sync failed: {error}")


def _schedule_tensorboard_sync(task: TrainingTask, workdir: str) -> None:
    destination = abstract_fs.resolve(
        settings.TENSORBOARD_DIR,
        str(task.job_id),
        f"./{task.model_tag}:{task.language}/",
    )
    sync_task = asyncio.create_task(
        abstract_fs.sync(workdir, destination, "--exclude=*", "--include=*tfevents*")
    )
    _background_syncs.add(sync_task)
    sync_task.add_done_callback(lambda t: _on_sync_done(task.job_id, t))


async def main(task: TrainingTask, argv: Optional[List[str]] = None) -> None:
    """Run one training job to completion (or until killed)."""
    if settings.TRAINING_TASK_BACKEND == "kubernetes":
        # freshly scheduled nodes may not have storage credentials yet
        logger.info(f"[Train {task.job_id}] Waiting {settings.TRAINING_STARTUP_DELAY}s before staging")
        await asyncio.sleep(settings.TRAINING_STARTUP_DELAY)

    if task.killed:
        logger.warning(f"[Train {task.job_id}] Job killed before staging")
        return

    jobdir = await abstract_fs.download(task.job_dir + "/")
    if task.killed:
        logger.warning(f"[Train {task.job_id}] Job killed while staging, skipping training")
        return
    datadir = os.path.join(jobdir, "dataset")
    workdir = os.path.join(jobdir, "workdir")
    outputdir = os.path.join(jobdir, "output")
    logger.info(f"[Train {task.job_id}] Job directory staged at {jobdir}")

    # the decanlp backend expects a test split to exist
    Path(datadir).mkdir(parents=True, exist_ok=True)
    Path(datadir, "test.tsv").write_text("")

    options = {
        "backend": "decanlp",
        "locale": task.language,
        "config": build_genie_config(task),
        "thingpedia_url": urljoin(settings.SERVER_ORIGIN, settings.THINGPEDIA_URL),
        "debug": True,
        "workdir": workdir,
        "datadir": datadir,
        "outputdir": outputdir,
    }

    genie_job = create_job(options)
    task.on_killed(genie_job.kill)

    def on_progress(value: float) -> None:
        task.set_progress(value)
        if settings.TENSORBOARD_DIR:
            _schedule_tensorboard_sync(task, workdir)

    genie_job.add_callback("progress", on_progress)

    await genie_job.train()

    if task.killed:
        logger.warning(f"[Train {task.job_id}] Job killed, skipping upload")
        return

    await abstract_fs.upload(outputdir, abstract_fs.resolve(task.job_dir, "output"))
    await abstract_fs.remove_temporary(jobdir)
    logger.info(f"[Train {task.job_id}] Output uploaded")
