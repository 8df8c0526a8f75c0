"""
Device Package Storage

Download locations of device code packages (``devices/<kind>-v<version>.zip``).
Approved packages are public and served from the CDN; developer packages are
served with a short-lived presigned URL when a bucket is configured.
"""

import logging
from functools import lru_cache

import boto3
from botocore.config import Config

from almond_cloud.config import settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _get_client():
    return boto3.client(
        "s3",
        endpoint_url=settings.S3_ENDPOINT,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        region_name=settings.S3_REGION,
        config=Config(signature_version="s3v4"),
    )


def package_key(kind: str, version: int) -> str:
    return f"devices/{kind}-v{version}.zip"


def get_download_location(kind: str, version: int, developer: bool) -> str:
    """
    URL where the code package of ``kind`` at ``version`` can be fetched.

    Args:
        kind: Primary kind of the device
        version: Package version
        developer: Whether the version is unapproved
    """
    key = package_key(kind, version)
    if developer and settings.CODE_STORAGE_BUCKET:
        url = _get_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": settings.CODE_STORAGE_BUCKET, "Key": key},
            ExpiresIn=settings.DOWNLOAD_URL_EXPIRES,
        )
        logger.info(f"[CodeStorage] Generated presigned URL for {key}")
        return url
    return f"{settings.CDN_HOST}/{key}"
