"""
Abstract Filesystem

One interface over ``s3://bucket/key`` URLs and local paths, used by the
training driver to stage job directories.

- download(url): make ``url`` available locally and return the local path
- upload(local, url): copy a local directory to ``url``
- sync(local, url, *filters): incremental upload with aws-cli style
  ``--exclude=PATTERN`` / ``--include=PATTERN`` filters
- remove_temporary(local): delete a directory created by download()
- resolve(base, *segments): join path segments onto a URL or a path
"""

import asyncio
import fnmatch
import logging
import os
import posixpath
import shutil
import tempfile
from pathlib import Path
from typing import List, Set, Tuple
from urllib.parse import urlparse

from almond_cloud.config import settings
from almond_cloud.storage.s3 import S3Client

logger = logging.getLogger(__name__)

# Local directories created by download(); only these are removed by remove_temporary()
_temporary_dirs: Set[str] = set()


def _is_s3(url: str) -> bool:
    return url.startswith("s3://")


def _split_s3(url: str) -> Tuple[str, str]:
    parsed = urlparse(url)
    return parsed.netloc, parsed.path.lstrip("/")


def parse_filters(flags) -> List[Tuple[bool, str]]:
    """``["--exclude=*", "--include=*tfevents*"]`` -> ``[(False, "*"), (True, "*tfevents*")]``"""
    filters = []
    for flag in flags:
        for name, included in (("--include=", True), ("--exclude=", False)):
            if flag.startswith(name):
                filters.append((included, flag[len(name):]))
                break
        else:
            raise ValueError(f"Unsupported sync flag {flag}")
    return filters


def matches_filters(relative_path: str, filters: List[Tuple[bool, str]]) -> bool:
    """Every file is included by default; the last matching filter wins."""
    included = True
    for include, pattern in filters:
        if fnmatch.fnmatchcase(relative_path, pattern):
            included = include
    return included


def resolve(base: str, *segments: str) -> str:
    """Resolve ``segments`` against ``base``; S3 URLs keep their bucket."""
    if _is_s3(base):
        bucket, key = _split_s3(base)
        path = posixpath.normpath(posixpath.join("/" + key, *segments))
        return f"s3://{bucket}{path}"
    return os.path.abspath(os.path.join(base, *segments))


def _make_temporary() -> str:
    Path(settings.WORKSPACE_DIR).mkdir(parents=True, exist_ok=True)
    local_dir = tempfile.mkdtemp(prefix="job-", dir=settings.WORKSPACE_DIR)
    _temporary_dirs.add(local_dir)
    return local_dir


async def download(url: str) -> str:
    """
    Make ``url`` available on the local filesystem.

    A URL ending in ``/`` is a directory. S3 content is copied into a new
    temporary directory; local paths are returned as they are.
    """
    if not _is_s3(url):
        return os.path.abspath(url)

    bucket, key = _split_s3(url)
    client = S3Client.from_settings(bucket)
    local_dir = _make_temporary()
    if url.endswith("/"):
        await client.download_directory(key, Path(local_dir))
        logger.info(f"[AbstractFS] Downloaded {url} to {local_dir}")
        return local_dir

    local_file = Path(local_dir) / posixpath.basename(key)
    await client.download_file(key, local_file)
    logger.info(f"[AbstractFS] Downloaded {url} to {local_file}")
    return str(local_file)


def _copy_tree(source: Path, destination: Path, filters: List[Tuple[bool, str]], incremental: bool) -> int:
    count = 0
    for local_file in sorted(source.rglob("*")):
        if not local_file.is_file():
            continue
        relative_path = local_file.relative_to(source).as_posix()
        if not matches_filters(relative_path, filters):
            continue
        target = destination / relative_path
        if incremental and target.exists() and target.stat().st_size == local_file.stat().st_size:
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(local_file, target)
        count += 1
    return count


async def upload(local_dir: str, url: str) -> None:
    """Copy the content of ``local_dir`` to ``url``."""
    if _is_s3(url):
        bucket, key = _split_s3(url)
        await S3Client.from_settings(bucket).upload_directory(Path(local_dir), key)
    elif os.path.abspath(local_dir) != os.path.abspath(url):
        await asyncio.to_thread(_copy_tree, Path(local_dir), Path(url), [], False)
    logger.info(f"[AbstractFS] Uploaded {local_dir} to {url}")


async def sync(local_dir: str, url: str, *flags: str) -> None:
    """Upload the files of ``local_dir`` that changed, subject to ``flags``."""
    filters = parse_filters(flags)
    if _is_s3(url):
        bucket, key = _split_s3(url)
        client = S3Client.from_settings(bucket)
        existing = await client.list_sizes(key.rstrip("/") + "/")
        count = await client.upload_directory(
            Path(local_dir),
            key,
            include=lambda path: matches_filters(path, filters),
            existing=existing,
        )
    else:
        count = await asyncio.to_thread(_copy_tree, Path(local_dir), Path(url), filters, True)
    logger.debug(f"[AbstractFS] Synced {count} files from {local_dir} to {url}")


async def remove_temporary(local_dir: str) -> None:
    """Delete ``local_dir`` if it was created by download()."""
    if local_dir not in _temporary_dirs:
        logger.debug(f"[AbstractFS] {local_dir} is not temporary, keeping it")
        return
    await asyncio.to_thread(shutil.rmtree, local_dir, True)
    _temporary_dirs.discard(local_dir)
    logger.info(f"[AbstractFS] Removed {local_dir}")
