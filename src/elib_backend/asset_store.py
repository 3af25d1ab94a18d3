"""
Object-store adapter for book assets.

This module uploads staged book files to an S3-compatible bucket and removes
them again. Assets are laid out by kind:

- covers (images) under ``book-covers/<name>.<image subtype>``, addressed by
  the format-less identifier ``book-covers/<name>``
- documents (raw) under ``book-pdfs/<name>.pdf``, addressed by the full key

The store is constructed explicitly from settings and injected wherever it is
needed. It keeps no per-request state; boto3 clients are safe to share across
threads.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError
from omegaconf import DictConfig

from .errors import UpstreamStoreError
from .models import AssetKind, AssetReference
from .utils import split_extension

logger = logging.getLogger(__name__)

# Error codes S3 returns when the object is already gone
_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class AssetStore:
    """
    Upload and destroy book assets in one bucket.

    Args:
        client: boto3 S3 client
        bucket: Bucket holding all book assets
        public_base_url: Base of the URLs handed back to callers; defaults to
            the virtual-hosted bucket URL, or ``<endpoint_url>/<bucket>`` when
            a custom endpoint is used
        folders: Logical folder per asset kind
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        public_base_url: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        folders: Optional[Dict[AssetKind, str]] = None,
    ):
        if not bucket:
            raise ValueError("An asset bucket name is required")
        self._client = client
        self.bucket = bucket
        self.folders = folders or {
            AssetKind.IMAGE: "book-covers",
            AssetKind.DOCUMENT: "book-pdfs",
        }
        if public_base_url:
            self.public_base_url = public_base_url.rstrip("/")
        elif endpoint_url:
            self.public_base_url = f"{endpoint_url.rstrip('/')}/{bucket}"
        else:
            self.public_base_url = f"https://{bucket}.s3.amazonaws.com"

    @classmethod
    def from_settings(cls, storage: DictConfig) -> "AssetStore":
        client = boto3.client(
            "s3",
            region_name=storage.region,
            endpoint_url=storage.endpoint_url,
        )
        return cls(
            client,
            bucket=storage.bucket,
            public_base_url=storage.public_base_url,
            endpoint_url=storage.endpoint_url,
            folders={
                AssetKind.IMAGE: storage.cover_folder,
                AssetKind.DOCUMENT: storage.document_folder,
            },
        )

    def object_key(self, kind: AssetKind, override_name: str, fmt: str) -> str:
        stem, _ = split_extension(override_name)
        return f"{self.folders[kind]}/{stem}.{fmt.lstrip('.')}"

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{quote(key)}"

    def upload(
        self,
        local_path: Path,
        kind: AssetKind,
        override_name: str,
        fmt: str,
        content_type: Optional[str] = None,
    ) -> AssetReference:
        """
        Upload a local file as a book asset.

        Args:
            local_path: Staged file to upload
            kind: Asset kind, selects the folder
            override_name: Stored base name (its extension, if any, is dropped)
            fmt: Forced stored format, e.g. ``png`` for covers, ``pdf`` for documents
            content_type: Optional Content-Type recorded on the object

        Returns:
            Reference carrying the public URL of the uploaded asset

        Raises:
            UpstreamStoreError: If the upload fails for any reason. No retries.
        """
        key = self.object_key(kind, override_name, fmt)
        extra_args = {"ContentType": content_type} if content_type else None

        try:
            logger.info(f"Uploading {local_path} to s3://{self.bucket}/{key}")
            self._client.upload_file(str(local_path), self.bucket, key, ExtraArgs=extra_args)
        except (BotoCoreError, ClientError, S3UploadFailedError, OSError) as e:
            logger.error(f"Asset upload failed for s3://{self.bucket}/{key}: {e}")
            raise UpstreamStoreError(f"Upload of {key} failed: {e}") from e

        logger.info(f"Upload successful: s3://{self.bucket}/{key}")
        return AssetReference(url=self.url_for(key), kind=kind)

    def destroy(self, public_id: str, kind: AssetKind) -> None:
        """
        Remove a previously uploaded asset.

        Image identifiers carry no format, so every ``<public_id>.<ext>`` object
        is removed. Document identifiers are the object key itself. An asset
        that is already gone counts as removed.

        Raises:
            UpstreamStoreError: If the remote call errors.
        """
        try:
            if kind is AssetKind.IMAGE:
                keys = self._image_keys(public_id)
            else:
                keys = [public_id]

            if not keys:
                logger.info(f"No stored asset for {public_id}, nothing to delete")
                return

            for key in keys:
                logger.info(f"Deleting s3://{self.bucket}/{key}")
                self._delete_key(key)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Asset delete failed for {public_id}: {e}")
            raise UpstreamStoreError(f"Delete of {public_id} failed: {e}") from e

    def _image_keys(self, public_id: str) -> list[str]:
        prefix = f"{public_id}."
        response = self._client.list_objects_v2(Bucket=self.bucket, Prefix=prefix)
        return [
            item["Key"]
            for item in response.get("Contents", [])
            if "/" not in item["Key"][len(prefix):]
        ]

    def _delete_key(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                logger.info(f"Asset {key} already removed")
                return
            raise
