"""Binary storage for intake attachments.

store(owner_scope, name, data) returns an opaque locator; fetch(locator)
returns the bytes. The locator scheme belongs to the backend.
"""

from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod

from botocore.exceptions import BotoCoreError, ClientError

from process_intake.core.config import settings
from process_intake.services.storage_client import get_s3_client

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class AttachmentStorageError(Exception):
    """Storage backend failed to store or fetch a file."""

    pass


def safe_object_name(name: str) -> str:
    """Collapse a file name into a single safe path segment."""
    cleaned = _UNSAFE_CHARS.sub("_", name.replace("\\", "/").split("/")[-1]).strip("._")
    return cleaned or "file"


class AttachmentStorage(ABC):
    @abstractmethod
    def store(self, owner_scope: str, name: str, data: bytes) -> str:
        """Persist data and return its locator."""

    @abstractmethod
    def fetch(self, locator: str) -> bytes:
        """Return the bytes stored under locator."""


class LocalAttachmentStorage(AttachmentStorage):
    """Filesystem storage for development and tests."""

    def __init__(self, base_path: str):
        self.base_path = base_path

    def _path_for(self, locator: str) -> str:
        path = os.path.realpath(os.path.join(self.base_path, locator))
        root = os.path.realpath(self.base_path)
        if os.path.commonpath([path, root]) != root:
            raise AttachmentStorageError("Locator escapes the storage root")
        return path

    def store(self, owner_scope: str, name: str, data: bytes) -> str:
        locator = f"{owner_scope.strip('/')}/{safe_object_name(name)}"
        path = self._path_for(locator)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise AttachmentStorageError(f"Local write failed: {e.strerror}") from e
        logger.info(f"Stored attachment locally at {locator}")
        return locator

    def fetch(self, locator: str) -> bytes:
        path = self._path_for(locator)
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as e:
            raise AttachmentStorageError(f"Local read failed: {e.strerror}") from e


class S3AttachmentStorage(AttachmentStorage):
    """S3 (or S3-compatible) object storage."""

    def __init__(self, bucket: str):
        self.bucket = bucket

    def store(self, owner_scope: str, name: str, data: bytes) -> str:
        key = f"{owner_scope.strip('/')}/{safe_object_name(name)}"
        try:
            get_s3_client().put_object(Bucket=self.bucket, Key=key, Body=data)
        except (BotoCoreError, ClientError) as e:
            raise AttachmentStorageError(f"S3 upload failed: {type(e).__name__}") from e
        return key

    def fetch(self, locator: str) -> bytes:
        try:
            response = get_s3_client().get_object(Bucket=self.bucket, Key=locator)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise AttachmentStorageError(f"S3 download failed: {type(e).__name__}") from e


def get_attachment_storage() -> AttachmentStorage:
    """Get the storage backend selected by STORAGE_BACKEND."""
    if settings.STORAGE_BACKEND == "s3":
        return S3AttachmentStorage(settings.S3_BUCKET)
    return LocalAttachmentStorage(settings.LOCAL_STORAGE_PATH)
