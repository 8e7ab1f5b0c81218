import logging
import os
from typing import Optional

import boto3
from botocore.config import Config

logger = logging.getLogger(__name__)

AWS_REGION = os.environ.get("AWS_REGION")
S3_BUCKET_NAME = os.environ.get("S3_BUCKET_NAME")
S3_ACCESS_KEY = os.environ.get("S3_ACCESS_KEY") or os.environ.get("AWS_ACCESS_KEY_ID")
S3_SECRET_KEY = os.environ.get("S3_SECRET_KEY") or os.environ.get("AWS_SECRET_ACCESS_KEY")
BACKUP_S3_PREFIX = os.environ.get("BACKUP_S3_PREFIX", "backups")
BACKUP_LINK_TTL_SECONDS = int(os.environ.get("BACKUP_LINK_TTL_SECONDS", 7 * 24 * 3600))

_S3_CLIENT = None


class StorageError(RuntimeError):
    pass


def get_s3_client():
    global _S3_CLIENT
    if _S3_CLIENT is None:
        if not (AWS_REGION and S3_BUCKET_NAME and S3_ACCESS_KEY and S3_SECRET_KEY):
            raise StorageError("S3 not configured")
        s3_config = Config(signature_version="s3v4", s3={"addressing_style": "virtual"})
        _S3_CLIENT = boto3.client(
            "s3",
            region_name=AWS_REGION,
            aws_access_key_id=S3_ACCESS_KEY,
            aws_secret_access_key=S3_SECRET_KEY,
            endpoint_url=f"https://s3.{AWS_REGION}.amazonaws.com",
            config=s3_config,
        )
    return _S3_CLIENT


def generate_presigned_get_url(key: str, expires_in: int = BACKUP_LINK_TTL_SECONDS) -> str:
    try:
        return get_s3_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": S3_BUCKET_NAME, "Key": key},
            ExpiresIn=expires_in,
        )
    except StorageError:
        raise
    except Exception as exc:
        raise StorageError("Failed to create download URL") from exc


def upload_backup_file(data: bytes, filename: str, content_type: str = "text/csv", prefix: Optional[str] = None) -> str:
    """Store a backup under ``<prefix>/<filename>`` and return a shareable link.

    The bucket is private, so the returned link is a presigned GET URL that
    stays valid for ``BACKUP_LINK_TTL_SECONDS``.
    """
    if not filename:
        raise StorageError("Missing filename")
    key = f"{(prefix or BACKUP_S3_PREFIX).rstrip('/')}/{filename}"
    try:
        get_s3_client().put_object(
            Bucket=S3_BUCKET_NAME,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
    except StorageError:
        raise
    except Exception as exc:
        raise StorageError(f"Upload failed: {exc}") from exc
    logger.info("Uploaded %s (%s bytes) to s3://%s/%s", filename, len(data), S3_BUCKET_NAME, key)
    return generate_presigned_get_url(key)
