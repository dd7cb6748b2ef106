from __future__ import annotations

import logging

import boto3
from botocore.client import Config

from app.core.config import settings


log = logging.getLogger(__name__)


def get_s3_client(*, endpoint_url: str | None = None):
    ep = (endpoint_url or "").strip() or None
    # For AWS S3, endpoint_url must be None.
    # For S3-compatible providers (MinIO/R2), endpoint_url is required.
    return boto3.client(
        "s3",
        endpoint_url=ep or (str(settings.s3_endpoint_url or "").strip() or None),
        aws_access_key_id=settings.s3_access_key_id,
        aws_secret_access_key=settings.s3_secret_access_key,
        region_name=settings.s3_region_name,
        config=Config(
            signature_version="s3v4",
            connect_timeout=float(settings.s3_connect_timeout_seconds),
            read_timeout=float(settings.s3_read_timeout_seconds),
            retries={
                "max_attempts": int(settings.s3_max_attempts),
                "mode": "standard",
            },
            max_pool_connections=int(settings.s3_max_pool_connections),
            s3={
                "addressing_style": str(settings.s3_addressing_style),
            },
        ),
    )


_bucket_ready = False


def ensure_bucket_exists() -> None:
    global _bucket_ready
    if _bucket_ready:
        return
    s3 = get_s3_client()
    try:
        s3.head_bucket(Bucket=settings.s3_bucket)
    except Exception:
        # In production buckets are provisioned out of band.
        if settings.is_prod:
            raise

        region = str(settings.s3_region_name or "").strip() or "us-east-1"
        is_aws = not str(settings.s3_endpoint_url or "").strip()
        if is_aws and region != "us-east-1":
            s3.create_bucket(
                Bucket=settings.s3_bucket,
                CreateBucketConfiguration={"LocationConstraint": region},
            )
        else:
            s3.create_bucket(Bucket=settings.s3_bucket)
        log.info("created bucket %s", settings.s3_bucket)
    _bucket_ready = True


def presign_put(*, object_key: str, content_type: str | None, expires_seconds: int | None = None) -> str:
    ensure_bucket_exists()
    s3 = get_s3_client()
    params: dict[str, object] = {"Bucket": settings.s3_bucket, "Key": object_key}
    if content_type:
        params["ContentType"] = content_type

    return s3.generate_presigned_url(
        "put_object",
        Params=params,
        ExpiresIn=int(expires_seconds or settings.s3_presign_upload_expires_seconds),
    )


def presign_get(*, object_key: str, expires_seconds: int | None = None) -> str:
    s3 = get_s3_client()
    return s3.generate_presigned_url(
        "get_object",
        Params={"Bucket": settings.s3_bucket, "Key": object_key},
        ExpiresIn=int(expires_seconds or settings.s3_presign_download_expires_seconds),
    )


def public_url(object_key: str) -> str:
    base = str(settings.s3_public_url or "").strip().rstrip("/")
    if base:
        return f"{base}/{object_key}"
    ep = str(settings.s3_endpoint_url or "").strip().rstrip("/")
    return f"{ep}/{settings.s3_bucket}/{object_key}"


def delete_object(*, object_key: str) -> None:
    s3 = get_s3_client()
    s3.delete_object(Bucket=settings.s3_bucket, Key=object_key)
