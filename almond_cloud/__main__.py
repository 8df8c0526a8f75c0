"""
CLI Entry Point for Training Jobs

Runs one Genie training job, locally or as a Kubernetes Job.

Usage:
    python -m almond_cloud \\
        --job-id 42 \\
        --job-dir s3://bucket/jobs/42 \\
        --language en \\
        --model-tag org.thingpedia.models.default \\
        --config '{"train_iterations": 10000}'

    # Using config file
    python -m almond_cloud --job-id 42 --job-dir /srv/jobs/42 --config-file config.json

SIGTERM and SIGINT kill the job: the trainer is stopped and nothing is uploaded.

Exit Codes:
    0: Training completed successfully, or the job was killed
    1: Training failed
"""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any, Dict

from almond_cloud.config import settings
from almond_cloud.training.task import TrainingTask
from almond_cloud.training.train import main as train_main

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)


def load_config(config_str: str = None, config_file: str = None) -> Dict[str, Any]:
    """
    Load training configuration from a JSON string or file.

    Raises:
        ValueError: If the JSON is invalid or the file cannot be read
    """
    if config_file:
        config_path = Path(config_file)
        if not config_path.exists():
            raise ValueError(f"Config file not found: {config_file}")
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in config file {config_file}: {e}")
        logger.info(f"Loaded config from file: {config_file}")
        return config

    if config_str:
        try:
            config = json.loads(config_str)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in --config argument: {e}")
        logger.info("Loaded config from command-line argument")
        return config

    logger.info("No config provided, using defaults")
    return {}


def parse_args(argv=None) -> argparse.Namespace:
    """
    Parse command-line arguments with environment variable fallback.

    CLI arguments take precedence over environment variables.
    """
    parser = argparse.ArgumentParser(
        description="Thingpedia Training Job - CLI Entry Point",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument(
        "--job-id",
        default=os.getenv("JOB_ID"),
        required=not os.getenv("JOB_ID"),
        help="Training job ID (env: JOB_ID)"
    )
    parser.add_argument(
        "--job-dir",
        default=os.getenv("JOB_DIR"),
        required=not os.getenv("JOB_DIR"),
        help="Job directory, s3:// URL or local path (env: JOB_DIR)"
    )
    parser.add_argument(
        "--language",
        default=os.getenv("LANGUAGE", "en"),
        help="Model language (env: LANGUAGE, default: en)"
    )
    parser.add_argument(
        "--model-tag",
        default=os.getenv("MODEL_TAG", "org.thingpedia.models.default"),
        help="Model tag (env: MODEL_TAG)"
    )
    parser.add_argument(
        "--contextual",
        action="store_true",
        default=os.getenv("CONTEXTUAL", "").lower() in ("1", "true", "yes"),
        help="Train a contextual model (env: CONTEXTUAL)"
    )

    config_group = parser.add_mutually_exclusive_group()
    config_group.add_argument(
        "--config",
        default=os.getenv("TRAINING_CONFIG"),
        help="Training configuration as JSON string (env: TRAINING_CONFIG)"
    )
    config_group.add_argument(
        "--config-file",
        help="Path to training configuration JSON file"
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.LOG_LEVEL,
        help="Logging level (env: LOG_LEVEL, default: INFO)"
    )

    return parser.parse_args(argv)


async def run(task: TrainingTask) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, task.kill)
    try:
        await train_main(task)
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)


def main(argv=None) -> int:
    """Main CLI entry point. Returns the process exit code."""
    try:
        args = parse_args(argv)
        logging.getLogger().setLevel(getattr(logging, args.log_level))

        logger.info("=" * 80)
        logger.info(f"Thingpedia Training Job - Job {args.job_id}")
        logger.info("=" * 80)
        logger.info(f"Job directory: {args.job_dir}")
        logger.info(f"Model: {args.model_tag} ({args.language}, contextual={args.contextual})")

        config = load_config(config_str=args.config, config_file=args.config_file)
        logger.info(f"Training config: {json.dumps(config, indent=2)}")

        task = TrainingTask(
            job_id=args.job_id,
            job_dir=args.job_dir,
            language=args.language,
            model_tag=args.model_tag,
            contextual=args.contextual,
            config=config,
        )
        asyncio.run(run(task))

        if task.killed:
            logger.warning(f"Training job {args.job_id} was killed")
        else:
            logger.info(f"Training job {args.job_id} completed successfully")
        return 0

    except Exception as e:
        logger.error(f"Fatal error in training job: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
