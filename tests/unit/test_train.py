"""Unit tests for the training driver."""

import asyncio
import os

import pytest

from almond_cloud.config import settings
from almond_cloud.storage import abstract_fs
from almond_cloud.training import train
from almond_cloud.training.task import TrainingTask


class FakeJob:
    """Stands in for GenieTrainingJob; reports progress and can kill its task."""

    def __init__(self, options, progress=(0.5,), kill_task=None, sync_ticks=3):
        self.options = options
        self.progress = progress
        self.kill_task = kill_task
        self.sync_ticks = sync_ticks
        self.callbacks = {}
        self.killed = False

    def add_callback(self, event, callback):
        self.callbacks.setdefault(event, []).append(callback)

    async def train(self):
        for value in self.progress:
            for callback in self.callbacks.get("progress", []):
                callback(value)
        if self.kill_task is not None:
            self.kill_task.kill()
        # let scheduled syncs run
        for _ in range(self.sync_ticks):
            await asyncio.sleep(0)

    def kill(self):
        self.killed = True


@pytest.fixture
def fs_calls(tmp_path, monkeypatch):
    """Record abstract filesystem calls instead of touching storage."""
    calls = []
    staged = tmp_path / "staged"

    async def download(url):
        calls.append(("download", url))
        staged.mkdir(exist_ok=True)
        return str(staged)

    async def upload(local_dir, url):
        calls.append(("upload", local_dir, url))

    async def sync(local_dir, url, *flags):
        calls.append(("sync", local_dir, url, flags))

    async def remove_temporary(local_dir):
        calls.append(("remove_temporary", local_dir))

    monkeypatch.setattr(abstract_fs, "download", download)
    monkeypatch.setattr(abstract_fs, "upload", upload)
    monkeypatch.setattr(abstract_fs, "sync", sync)
    monkeypatch.setattr(abstract_fs, "remove_temporary", remove_temporary)
    monkeypatch.setattr(settings, "TRAINING_TASK_BACKEND", "local")
    monkeypatch.setattr(settings, "TENSORBOARD_DIR", None)
    return calls


def _task(**kwargs):
    defaults = {
        "job_id": "42",
        "job_dir": "s3://bucket/jobs/42",
        "language": "en",
        "model_tag": "org.thingpedia.models.default",
        "config": {"train_iterations": 1000, "dataset_quoted_probability": 0.1},
    }
    defaults.update(kwargs)
    return TrainingTask(**defaults)


class TestBuildGenieConfig:
    """Test the trainer configuration derived from a task."""

    def test_dataset_keys_are_dropped(self):
        config = train.build_genie_config(_task())

        assert config == {"task_name": "almond", "locale": "en", "train_iterations": 1000}

    def test_contextual_task_name(self):
        config = train.build_genie_config(_task(contextual=True))

        assert config["task_name"] == "contextual_almond"


class TestTrainMain:
    """Test the staging, training and publishing sequence."""

    @pytest.mark.asyncio
    async def test_successful_job_uploads_then_cleans_up(self, fs_calls, tmp_path, monkeypatch):
        jobs = []

        def create_job(options):
            jobs.append(FakeJob(options))
            return jobs[-1]

        monkeypatch.setattr(train, "create_job", create_job)
        task = _task()

        await train.main(task)

        staged = str(tmp_path / "staged")
        assert fs_calls == [
            ("download", "s3://bucket/jobs/42/"),
            ("upload", os.path.join(staged, "output"), "s3://bucket/jobs/42/output"),
            ("remove_temporary", staged),
        ]
        assert task.progress == 0.5
        assert (tmp_path / "staged" / "dataset" / "test.tsv").read_text() == ""

        options = jobs[0].options
        assert options["backend"] == "decanlp"
        assert options["locale"] == "en"
        assert options["debug"] is True
        assert options["thingpedia_url"] == "http://127.0.0.1:8080/thingpedia"
        assert options["datadir"] == os.path.join(staged, "dataset")
        assert options["workdir"] == os.path.join(staged, "workdir")
        assert "dataset_quoted_probability" not in options["config"]

    @pytest.mark.asyncio
    async def test_killed_job_skips_upload(self, fs_calls, monkeypatch):
        task = _task()
        jobs = []

        def create_job(options):
            jobs.append(FakeJob(options, kill_task=task))
            return jobs[-1]

        monkeypatch.setattr(train, "create_job", create_job)

        await train.main(task)

        assert [call[0] for call in fs_calls] == ["download"]
        assert jobs[0].killed

    @pytest.mark.asyncio
    async def test_progress_schedules_tensorboard_sync(self, fs_calls, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "TENSORBOARD_DIR", "s3://bucket/tensorboard")
        monkeypatch.setattr(train, "create_job", lambda options: FakeJob(options))

        await train.main(_task())

        syncs = [call for call in fs_calls if call[0] == "sync"]
        assert syncs == [(
            "sync",
            os.path.join(str(tmp_path / "staged"), "workdir"),
            "s3://bucket/tensorboard/42/org.thingpedia.models.default:en",
            ("--exclude=*", "--include=*tfevents*"),
        )]

    @pytest.mark.asyncio
    async def test_sync_failure_does_not_fail_job(self, fs_calls, monkeypatch):
        async def failing_sync(local_dir, url, *flags):
            fs_calls.append(("sync",))
            raise OSError("storage unavailable")

        monkeypatch.setattr(abstract_fs, "sync", failing_sync)
        monkeypatch.setattr(settings, "TENSORBOARD_DIR", "s3://bucket/tensorboard")
        monkeypatch.setattr(train, "create_job", lambda options: FakeJob(options))

        await train.main(_task())

        assert [call[0] for call in fs_calls] == ["download", "sync", "upload", "remove_temporary"]
        assert not train._background_syncs

    @pytest.mark.asyncio
    async def test_kubernetes_backend_waits_before_staging(self, fs_calls, monkeypatch):
        delays = []
        real_sleep = asyncio.sleep

        async def fake_sleep(delay):
            delays.append(delay)
            await real_sleep(0)

        monkeypatch.setattr(settings, "TRAINING_TASK_BACKEND", "kubernetes")
        monkeypatch.setattr(settings, "TRAINING_STARTUP_DELAY", 60)
        monkeypatch.setattr(train.asyncio, "sleep", fake_sleep)
        monkeypatch.setattr(train, "create_job", lambda options: FakeJob(options, sync_ticks=0))

        await train.main(_task())

        assert delays == [60]
        assert fs_calls[0][0] == "download"

    @pytest.mark.asyncio
    async def test_kill_during_startup_delay_stops_before_staging(self, fs_calls, monkeypatch):
        task = _task()
        jobs = []
        real_sleep = asyncio.sleep

        async def fake_sleep(delay):
            task.kill()
            await real_sleep(0)

        monkeypatch.setattr(settings, "TRAINING_TASK_BACKEND", "kubernetes")
        monkeypatch.setattr(train.asyncio, "sleep", fake_sleep)
        monkeypatch.setattr(train, "create_job", lambda options: jobs.append(options) or FakeJob(options))

        await train.main(task)

        assert fs_calls == []
        assert jobs == []

    @pytest.mark.asyncio
    async def test_kill_during_staging_skips_training(self, fs_calls, tmp_path, monkeypatch):
        task = _task()
        jobs = []
        staged = tmp_path / "staged"

        async def download(url):
            fs_calls.append(("download", url))
            task.kill()
            staged.mkdir(exist_ok=True)
            return str(staged)

        monkeypatch.setattr(abstract_fs, "download", download)
        monkeypatch.setattr(train, "create_job", lambda options: jobs.append(options) or FakeJob(options))

        await train.main(task)

        assert [call[0] for call in fs_calls] == ["download"]
        assert jobs == []
        assert not (staged / "dataset" / "test.tsv").exists()

    @pytest.mark.asyncio
    async def test_kill_before_listener_registration_reaches_job(self, fs_calls, monkeypatch):
        task = _task()
        jobs = []

        def create_job(options):
            jobs.append(FakeJob(options))
            task.kill()
            return jobs[-1]

        monkeypatch.setattr(train, "create_job", create_job)

        await train.main(task)

        assert [call[0] for call in fs_calls] == ["download"]
        assert jobs[0].killed
