"""Unit tests for the abstract filesystem (local paths and s3:// URLs)."""

import os

import pytest

from almond_cloud.config import settings
from almond_cloud.storage import abstract_fs


class TestResolve:
    """Test path resolution."""

    def test_resolve_s3(self):
        url = abstract_fs.resolve("s3://bucket/jobs/42", "output")

        assert url == "s3://bucket/jobs/42/output"

    def test_resolve_s3_dot_segments(self):
        url = abstract_fs.resolve("s3://bucket/tensorboard", "42", "./org.thingpedia.models.default:en/")

        assert url == "s3://bucket/tensorboard/42/org.thingpedia.models.default:en"

    def test_resolve_s3_parent(self):
        assert abstract_fs.resolve("s3://bucket/a/b", "../c") == "s3://bucket/a/c"

    def test_resolve_local(self, tmp_path):
        path = abstract_fs.resolve(str(tmp_path), "jobs", "42")

        assert path == os.path.join(str(tmp_path), "jobs", "42")


class TestFilters:
    """Test aws-cli style include/exclude filters."""

    def test_parse_filters(self):
        filters = abstract_fs.parse_filters(["--exclude=*", "--include=*tfevents*"])

        assert filters == [(False, "*"), (True, "*tfevents*")]

    def test_unknown_flag(self):
        with pytest.raises(ValueError):
            abstract_fs.parse_filters(["--delete"])

    def test_last_matching_filter_wins(self):
        filters = abstract_fs.parse_filters(["--exclude=*", "--include=*tfevents*"])

        assert abstract_fs.matches_filters("train/events.out.tfevents.123", filters)
        assert not abstract_fs.matches_filters("best.pth", filters)

    def test_included_by_default(self):
        assert abstract_fs.matches_filters("anything.txt", [])


class TestLocalOperations:
    """Test download, upload and sync against local directories."""

    @pytest.mark.asyncio
    async def test_download_local_is_passthrough(self, tmp_path):
        local = await abstract_fs.download(str(tmp_path) + "/")

        assert local == str(tmp_path)

    @pytest.mark.asyncio
    async def test_upload_copies_tree(self, tmp_path):
        source = tmp_path / "output"
        (source / "nested").mkdir(parents=True)
        (source / "best.pth").write_text("model")
        (source / "nested" / "config.json").write_text("{}")
        destination = tmp_path / "remote" / "output"

        await abstract_fs.upload(str(source), str(destination))

        assert (destination / "best.pth").read_text() == "model"
        assert (destination / "nested" / "config.json").read_text() == "{}"

    @pytest.mark.asyncio
    async def test_sync_applies_filters(self, tmp_path):
        workdir = tmp_path / "workdir"
        workdir.mkdir()
        (workdir / "events.out.tfevents.1").write_text("event")
        (workdir / "checkpoint.pth").write_text("weights")
        destination = tmp_path / "tensorboard"

        await abstract_fs.sync(str(workdir), str(destination), "--exclude=*", "--include=*tfevents*")

        assert (destination / "events.out.tfevents.1").exists()
        assert not (destination / "checkpoint.pth").exists()

    @pytest.mark.asyncio
    async def test_sync_is_incremental(self, tmp_path):
        workdir = tmp_path / "workdir"
        workdir.mkdir()
        (workdir / "events.out.tfevents.1").write_text("event")
        destination = tmp_path / "tensorboard"
        destination.mkdir()
        (destination / "events.out.tfevents.1").write_text("EVENT")

        await abstract_fs.sync(str(workdir), str(destination))

        # same size, not copied again
        assert (destination / "events.out.tfevents.1").read_text() == "EVENT"


class TestRemoveTemporary:
    """Test that only directories created by download() are removed."""

    @pytest.mark.asyncio
    async def test_removes_temporary_dirs(self, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "WORKSPACE_DIR", str(tmp_path / "workspace"))
        local_dir = abstract_fs._make_temporary()

        assert os.path.isdir(local_dir)
        await abstract_fs.remove_temporary(local_dir)

        assert not os.path.exists(local_dir)

    @pytest.mark.asyncio
    async def test_keeps_other_dirs(self, tmp_path):
        job_dir = tmp_path / "job"
        job_dir.mkdir()

        await abstract_fs.remove_temporary(str(job_dir))

        assert job_dir.is_dir()
