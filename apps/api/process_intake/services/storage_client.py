"""Helpers for creating the S3 client used by attachment storage."""

from __future__ import annotations

from urllib.parse import urlparse

import boto3
from botocore.client import BaseClient
from botocore.config import Config

from process_intake.core.config import settings


def _normalize_endpoint(endpoint_url: str | None) -> str | None:
    if endpoint_url:
        return endpoint_url.rstrip("/")
    return None


def _is_gcs_compat_endpoint(endpoint_url: str | None) -> bool:
    if not endpoint_url:
        return False
    hostname = (urlparse(endpoint_url).hostname or "").lower()
    return hostname == "storage.googleapis.com" or hostname.endswith(".storage.googleapis.com")


def _resolve_region(endpoint_url: str | None) -> str | None:
    selected = settings.S3_REGION or None
    if _is_gcs_compat_endpoint(endpoint_url) and (selected is None or selected == "us-east-1"):
        # GCS XML API expects region "auto" for SigV4 signing.
        return "auto"
    return selected


def _build_s3_config() -> Config:
    style = (settings.S3_URL_STYLE or "").strip().lower()
    timeout = settings.STORAGE_TIMEOUT_SECONDS
    if style in {"path", "virtual"}:
        return Config(
            s3={"addressing_style": style},
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"max_attempts": 1},
        )
    # Retries stay with the caller
    return Config(connect_timeout=timeout, read_timeout=timeout, retries={"max_attempts": 1})


def get_s3_client() -> BaseClient:
    """Return a configured S3 client (supports S3-compatible endpoints)."""
    endpoint = _normalize_endpoint(settings.S3_ENDPOINT_URL)
    return boto3.client(
        "s3",
        region_name=_resolve_region(endpoint),
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
        endpoint_url=endpoint,
        config=_build_s3_config(),
    )
