"""
S3 archive for generated inspection reports.

This module provides functionality for:
- Uploading a rendered report PDF to S3
- Generating presigned URLs for secure, time-limited downloads

The bucket is configured via ``report_archive.bucket`` (or the
S3_BUCKET_NAME environment variable). When no bucket is configured the
archive is disabled and callers get a "not configured" answer instead of
an exception.
"""

from __future__ import annotations

import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from omegaconf import DictConfig

from .models import Inspection
from .utils import report_filename

logger = logging.getLogger(__name__)

# S3 client (lazy initialization)
_s3_client = None


def _get_s3_client():
    """
    Get or create the S3 client.

    Returns:
        boto3 S3 client or None if it could not be created

    Note:
        Credentials are not probed here; credential errors surface during
        the actual upload.
    """
    global _s3_client
    if _s3_client is None:
        try:
            _s3_client = boto3.client("s3")
        except BotoCoreError as e:
            logger.warning(f"Failed to create S3 client: {e}")
            _s3_client = None
    return _s3_client


def is_s3_configured(config: DictConfig) -> bool:
    """
    Check if S3 is configured and a client is available.

    Returns:
        True if a bucket is configured and a client could be created
    """
    return bool(config.report_archive.bucket) and _get_s3_client() is not None


def archive_key(inspection: Inspection, prefix: str) -> str:
    """S3 object key for an inspection's report."""
    filename = report_filename(inspection.factory_name, inspection.gregorian_date)
    return f"{prefix.strip('/')}/{inspection.id}/{filename}"


def upload_report(content: bytes, s3_key: str, bucket: str) -> bool:
    """
    Upload a report PDF to S3.

    Args:
        content: PDF bytes
        s3_key: S3 object key (path within the bucket)
        bucket: Target bucket

    Returns:
        True if upload was successful, False otherwise
    """
    if not bucket:
        logger.warning("S3 bucket not configured, skipping upload")
        return False

    client = _get_s3_client()
    if client is None:
        logger.warning("S3 client not available, skipping upload")
        return False

    try:
        logger.info(f"Uploading report to s3://{bucket}/{s3_key}")
        client.put_object(Bucket=bucket, Key=s3_key, Body=content, ContentType="application/pdf")
        logger.info(f"Upload successful: s3://{bucket}/{s3_key}")
        return True
    except (BotoCoreError, ClientError) as e:
        logger.error(f"S3 upload failed: {e}")
        return False


def generate_presigned_url(s3_key: str, bucket: str, expiration: int = 3600) -> Optional[str]:
    """
    Generate a presigned URL for downloading an archived report.

    Args:
        s3_key: S3 object key (path within the bucket)
        bucket: Bucket holding the object
        expiration: URL expiration time in seconds (default: 3600 = 1 hour)

    Returns:
        Presigned URL string, or None if generation fails
    """
    client = _get_s3_client()
    if not bucket or client is None:
        logger.warning("S3 not configured, no presigned URL")
        return None

    try:
        url = client.generate_presigned_url(
            "get_object",
            Params={"Bucket": bucket, "Key": s3_key},
            ExpiresIn=expiration,
        )
        logger.info(f"Generated presigned URL for {s3_key} (expires in {expiration}s)")
        return url
    except (BotoCoreError, ClientError) as e:
        logger.error(f"Failed to generate presigned URL: {e}")
        return None
