"""Blob store adapters. Objects are write-once; nothing here overwrites or deletes."""
from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from tabletasks.core.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    def get(self, key: str) -> Any: ...

    def put(self, key: str, data: bytes, content_type: str, metadata: Dict[str, str]) -> None: ...


def read_body_bytes(body: Any) -> bytes:
    """Normalize whatever a blob store hands back into ``bytes``.

    Accepts byte strings and buffer-like objects, file-like objects exposing
    ``read()`` (botocore ``StreamingBody`` included) and iterables of byte chunks.
    """
    if body is None:
        raise StoreUnavailable("Blob store returned no body.", title="File payload missing")
    if isinstance(body, bytes):
        return body
    if isinstance(body, (bytearray, memoryview)):
        return bytes(body)
    if hasattr(body, "read"):
        try:
            data = body.read()
        finally:
            if hasattr(body, "close"):
                body.close()
        if isinstance(data, str):
            data = data.encode("utf-8")
        return bytes(data)
    if isinstance(body, str):
        raise StoreUnavailable("Blob body is text, expected bytes.", title="Unsupported file stream type")
    try:
        chunks = iter(body)
    except TypeError:
        raise StoreUnavailable(
            f"Unable to convert blob body of type {type(body).__name__} into bytes.",
            title="Unsupported file stream type",
        ) from None
    return b"".join(bytes(chunk) for chunk in chunks)


class LocalBlobStore:
    """Filesystem-backed store; keys map to paths under ``base_dir``."""

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir or "./.uploads")
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.base_dir / key).resolve()
        if self.base_dir.resolve() not in path.parents:
            raise StoreUnavailable(f"Storage key escapes base dir: {key}")
        return path

    def get(self, key: str):
        path = self._path(key)
        try:
            return path.open("rb")
        except OSError as e:
            raise StoreUnavailable(f"Unable to read object '{key}': {e}") from e

    def put(self, key: str, data: bytes, content_type: str, metadata: Dict[str, str]) -> None:
        dest = self._path(key)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with open(dest, "xb") as f:
                f.write(data)
            sidecar = {"content_type": content_type, "metadata": metadata}
            dest.with_name(dest.name + ".meta.json").write_text(json.dumps(sidecar), encoding="utf-8")
        except OSError as e:
            raise StoreUnavailable(f"Unable to write object '{key}': {e}") from e
        logger.debug(f"stored {len(data)} bytes at {key}")


class S3BlobStore:
    """S3-compatible store (AWS, R2, MinIO)."""

    def __init__(self, bucket: str, client=None, *, endpoint_url: str | None = None,
                 region: str | None = None, access_key_id: str | None = None,
                 secret_access_key: str | None = None):
        self.bucket = bucket
        self.client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

    def get(self, key: str):
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StoreUnavailable(f"Unable to read object '{key}': {e}") from e
        return response.get("Body")

    def put(self, key: str, data: bytes, content_type: str, metadata: Dict[str, str]) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                ContentLength=len(data),
                Metadata=metadata,
            )
        except (BotoCoreError, ClientError) as e:
            raise StoreUnavailable(f"Unable to write object '{key}': {e}") from e
