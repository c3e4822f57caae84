from __future__ import annotations

import re
import tempfile
import time
from functools import lru_cache
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

import boto3
from botocore.client import Config

from leadflow.core.config import get_settings

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.\-]")


def sanitize_filename(filename: str) -> str:
    return _UNSAFE_CHARS.sub("_", filename or "file.bin")


def build_object_key(category: str, vendor_id: int, lead_id: int, filename: str, *, now_ms: int | None = None) -> str:
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{category}/{vendor_id}/{lead_id}/{timestamp}-{sanitize_filename(filename)}"


class ObjectStore(Protocol):
    def put(self, key: str, body: bytes, content_type: str) -> None:
        ...

    def sign(self, key: str, ttl_seconds: int, disposition: str = "inline") -> str:
        ...


class S3ObjectStore:
    """S3-compatible store (Wasabi in production)."""

    def __init__(self, bucket: str, client) -> None:  # type: ignore[no-untyped-def]
        self.bucket = bucket
        self._client = client

    @classmethod
    def from_settings(cls) -> S3ObjectStore:
        settings = get_settings()
        client = boto3.client(
            "s3",
            endpoint_url=settings.object_store_endpoint or None,
            region_name=settings.object_store_region,
            aws_access_key_id=settings.object_store_access_key_id or None,
            aws_secret_access_key=settings.object_store_secret_access_key or None,
            config=Config(signature_version="s3v4"),
        )
        return cls(settings.object_store_bucket, client)

    def put(self, key: str, body: bytes, content_type: str) -> None:
        self._client.put_object(Bucket=self.bucket, Key=key, Body=body, ContentType=content_type)

    def sign(self, key: str, ttl_seconds: int, disposition: str = "inline") -> str:
        filename = key.rsplit("/", 1)[-1]
        return self._client.generate_presigned_url(
            "get_object",
            Params={
                "Bucket": self.bucket,
                "Key": key,
                "ResponseContentDisposition": f'{disposition}; filename="{filename}"',
            },
            ExpiresIn=ttl_seconds,
        )


class LocalObjectStore:
    """Filesystem-backed store for local runs and tests."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = root or Path(tempfile.gettempdir()) / "leadflow_objects"
        self.root.mkdir(parents=True, exist_ok=True)
        self.content_types: dict[str, str] = {}

    def _path(self, key: str) -> Path:
        return self.root / key.replace("..", "_")

    def put(self, key: str, body: bytes, content_type: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(body)
        self.content_types[key] = content_type

    def get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.exists():
            raise FileNotFoundError(f"object not found: {key}")
        return path.read_bytes()

    def sign(self, key: str, ttl_seconds: int, disposition: str = "inline") -> str:
        expires = int(time.time()) + ttl_seconds
        return f"{self._path(key).resolve().as_uri()}?expires={expires}&disposition={quote(disposition)}"


@lru_cache
def get_object_store() -> ObjectStore:
    settings = get_settings()
    if settings.object_store_backend == "local":
        return LocalObjectStore()
    return S3ObjectStore.from_settings()
