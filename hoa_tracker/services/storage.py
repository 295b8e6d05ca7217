from __future__ import annotations

import mimetypes
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from ..config import settings
from ..models.models import utcnow

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9._-]+")


class StorageBackend(str, Enum):
    LOCAL = "local"
    S3 = "s3"


class StoredFileNotFound(Exception):
    pass


@dataclass
class StoredFile:
    relative_path: str
    public_url: str
    local_path: Optional[str] = None


@dataclass
class RetrievedFile:
    content: bytes
    content_type: str


def photo_path(hoa_slug: str, filename: str, timestamp_ms: Optional[int] = None) -> str:
    """Blob key for a violation photo: ``violations/<slug>/<millis>_<name>``."""
    if timestamp_ms is None:
        timestamp_ms = int(utcnow().timestamp() * 1000)
    safe_name = _UNSAFE_FILENAME.sub("_", Path(filename or "photo").name).strip("._") or "photo"
    return f"violations/{hoa_slug}/{timestamp_ms}_{safe_name}"


class StorageService:
    def __init__(self, backend: Optional[str] = None, upload_root: Optional[Path] = None) -> None:
        backend_name = (backend or settings.file_storage_backend or "local").lower()
        if backend_name.upper() not in StorageBackend.__members__:
            backend_name = "local"
        self.backend = StorageBackend[backend_name.upper()]
        self.upload_root = upload_root or settings.uploads_root_path
        self.public_prefix = settings.uploads_public_prefix.strip("/")
        self.api_base = settings.api_base_url.rstrip("/")
        self._s3_client = None
        if self.backend == StorageBackend.LOCAL:
            self.upload_root.mkdir(parents=True, exist_ok=True)
        else:
            self._configure_s3_client()

    def _configure_s3_client(self) -> None:
        import boto3

        if not settings.s3_bucket:
            raise RuntimeError("S3_BUCKET must be set when using the S3 storage backend.")

        client_kwargs = {
            "region_name": settings.s3_region,
            "aws_access_key_id": settings.s3_access_key,
            "aws_secret_access_key": settings.s3_secret_key,
            "endpoint_url": settings.s3_endpoint_url,
        }
        self._s3_client = boto3.client("s3", **{k: v for k, v in client_kwargs.items() if v})

    def _normalize_relative(self, path: str) -> str:
        relative = path.strip()
        if relative.startswith(self.api_base):
            relative = relative[len(self.api_base):]
        relative = relative.lstrip("/")
        if relative.startswith(self.public_prefix + "/"):
            relative = relative[len(self.public_prefix) + 1:]
        return relative

    def public_url(self, relative_path: str) -> str:
        relative = self._normalize_relative(relative_path)
        return f"{self.api_base}/{self.public_prefix}/{relative}"

    def save_file(self, relative_path: str, content: bytes, content_type: Optional[str] = None) -> StoredFile:
        relative = self._normalize_relative(relative_path)
        guessed_type = content_type or mimetypes.guess_type(relative)[0] or "application/octet-stream"

        if self.backend == StorageBackend.LOCAL:
            target = self.upload_root / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
            return StoredFile(relative_path=relative, public_url=self.public_url(relative), local_path=str(target))

        assert self._s3_client is not None
        self._s3_client.put_object(Bucket=settings.s3_bucket, Key=relative, Body=content, ContentType=guessed_type)
        return StoredFile(relative_path=relative, public_url=self.public_url(relative))

    def save_violation_photo(
        self, hoa_slug: str, filename: str, content: bytes, content_type: Optional[str] = None
    ) -> StoredFile:
        return self.save_file(photo_path(hoa_slug, filename), content, content_type)

    def delete_file(self, path: str) -> None:
        relative = self._normalize_relative(path)
        if not relative:
            return
        if self.backend == StorageBackend.LOCAL:
            target = self.upload_root / relative
            if target.exists():
                target.unlink()
            return

        assert self._s3_client is not None
        self._s3_client.delete_object(Bucket=settings.s3_bucket, Key=relative)

    def retrieve_file(self, path: str) -> RetrievedFile:
        relative = self._normalize_relative(path)
        if self.backend == StorageBackend.LOCAL:
            target = self.upload_root / relative
            if not target.is_file():
                raise StoredFileNotFound(relative)
            content_type = mimetypes.guess_type(target.name)[0] or "application/octet-stream"
            return RetrievedFile(content=target.read_bytes(), content_type=content_type)

        assert self._s3_client is not None
        try:
            obj = self._s3_client.get_object(Bucket=settings.s3_bucket, Key=relative)
        except self._s3_client.exceptions.NoSuchKey:  # type: ignore[attr-defined]
            raise StoredFileNotFound(relative) from None
        content_type = obj.get("ContentType") or mimetypes.guess_type(relative)[0] or "application/octet-stream"
        return RetrievedFile(content=obj["Body"].read(), content_type=content_type)
