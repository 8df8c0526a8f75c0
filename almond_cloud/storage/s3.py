"""
S3 Storage Client

Async transfers between the local filesystem and S3-compatible storage.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, Optional

import aioboto3

from almond_cloud.config import settings

logger = logging.getLogger(__name__)


class S3Client:
    """Async S3 client for one bucket."""

    def __init__(
        self,
        bucket: str,
        endpoint: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        region: Optional[str] = None,
    ):
        self.endpoint = endpoint
        self.bucket = bucket
        self.session = aioboto3.Session(
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )

    @classmethod
    def from_settings(cls, bucket: str) -> "S3Client":
        return cls(
            bucket,
            endpoint=settings.S3_ENDPOINT,
            access_key=settings.AWS_ACCESS_KEY_ID,
            secret_key=settings.AWS_SECRET_ACCESS_KEY,
            region=settings.S3_REGION,
        )

    def _client(self):
        return self.session.client("s3", endpoint_url=self.endpoint)

    async def download_file(self, s3_key: str, local_path: Path) -> None:
        """Download a file from S3."""
        local_path.parent.mkdir(parents=True, exist_ok=True)

        async with self._client() as s3:
            await s3.download_file(self.bucket, s3_key, str(local_path))

    async def download_directory(self, s3_prefix: str, local_dir: Path) -> int:
        """Download all files under an S3 prefix to a local directory."""
        local_dir.mkdir(parents=True, exist_ok=True)
        count = 0

        async with self._client() as s3:
            paginator = s3.get_paginator("list_objects_v2")
            async for page in paginator.paginate(Bucket=self.bucket, Prefix=s3_prefix):
                for obj in page.get("Contents", []):
                    s3_key = obj["Key"]
                    relative_path = s3_key[len(s3_prefix):].lstrip("/")

                    if not relative_path or relative_path.endswith("/"):
                        continue

                    local_file = local_dir / relative_path
                    local_file.parent.mkdir(parents=True, exist_ok=True)

                    await s3.download_file(self.bucket, s3_key, str(local_file))
                    count += 1

        logger.info(f"[S3] Downloaded {count} files from s3://{self.bucket}/{s3_prefix}")
        return count

    async def list_sizes(self, s3_prefix: str) -> Dict[str, int]:
        """Size of every object under a prefix, keyed by path relative to it."""
        sizes = {}
        async with self._client() as s3:
            paginator = s3.get_paginator("list_objects_v2")
            async for page in paginator.paginate(Bucket=self.bucket, Prefix=s3_prefix):
                for obj in page.get("Contents", []):
                    sizes[obj["Key"][len(s3_prefix):].lstrip("/")] = obj["Size"]
        return sizes

    async def upload_directory(
        self,
        local_dir: Path,
        s3_prefix: str,
        include: Optional[Callable[[str], bool]] = None,
        existing: Optional[Dict[str, int]] = None,
    ) -> int:
        """
        Upload the files of a local directory under an S3 prefix.

        Args:
            local_dir: Directory to upload
            s3_prefix: Destination prefix
            include: Predicate on the relative path; files it rejects are skipped
            existing: Sizes of objects already present; files of the same size
                are not uploaded again

        Returns:
            Number of files uploaded
        """
        prefix = s3_prefix.rstrip("/")
        count = 0

        async with self._client() as s3:
            for local_file in sorted(local_dir.rglob("*")):
                if not local_file.is_file():
                    continue
                relative_path = local_file.relative_to(local_dir).as_posix()
                if include is not None and not include(relative_path):
                    continue
                if existing is not None and existing.get(relative_path) == local_file.stat().st_size:
                    continue

                s3_key = f"{prefix}/{relative_path}" if prefix else relative_path
                await s3.upload_file(str(local_file), self.bucket, s3_key)
                count += 1

        logger.info(f"[S3] Uploaded {count} files to s3://{self.bucket}/{prefix}")
        return count
