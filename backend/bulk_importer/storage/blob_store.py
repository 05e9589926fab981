"""Blob storage for uploaded CSVs: local filesystem writes, file:// and http(s) reads."""

from __future__ import annotations

import logging
import re
import shutil
import time
import uuid
from pathlib import Path
from typing import BinaryIO
from urllib.parse import unquote, urlparse

import httpx

from bulk_importer.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class BlobStoreError(OSError):
    """Raised when an upload cannot be persisted."""


class BlobFetchError(RuntimeError):
    """Raised when a stored blob cannot be downloaded; fatal for the import job."""


def _safe_name(name: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", Path(name).name).strip("._")
    return cleaned or "upload.csv"


def build_blob_key(prefix: str, tenant_id: str, file_name: str) -> str:
    """Namespace blobs per import type and tenant with a timestamp plus random suffix."""
    timestamp = int(time.time() * 1000)
    suffix = uuid.uuid4().hex[:8]
    return f"{prefix}/{_safe_name(tenant_id)}/{timestamp}-{suffix}-{_safe_name(file_name)}"


def store(file_obj: BinaryIO, key: str, root: str | Path | None = None) -> str:
    """Persist the uploaded file under ``key`` and return a retrievable URL."""
    base_dir = Path(root or settings.uploads_dir).resolve()
    target_path = (base_dir / key).resolve()
    if base_dir not in target_path.parents:
        raise BlobStoreError(f"Refusing to store blob outside {base_dir}: {key}")
    try:
        target_path.parent.mkdir(parents=True, exist_ok=True)
        file_obj.seek(0)
        with target_path.open("wb") as destination:
            shutil.copyfileobj(file_obj, destination)
    except OSError as exc:
        raise BlobStoreError(f"Failed to store upload: {exc}") from exc
    logger.info(f"Stored upload at {target_path}")
    return target_path.as_uri()


def _local_path(url: str) -> Path:
    return Path(unquote(urlparse(url).path))


def fetch(url: str, timeout: float | None = None) -> str:
    """Download blob content as text.

    Raises:
        BlobFetchError: on missing files, non-2xx responses, timeouts, transport errors
            or content that is not valid UTF-8.
    """
    timeout = timeout if timeout is not None else settings.blob_fetch_timeout_seconds
    scheme = urlparse(url).scheme

    if scheme == "file":
        path = _local_path(url)
        try:
            return path.read_bytes().decode("utf-8-sig")
        except FileNotFoundError as exc:
            raise BlobFetchError(f"Failed to download file: {path} not found") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise BlobFetchError(f"Failed to download file: {exc}") from exc

    if scheme not in ("http", "https"):
        raise BlobFetchError(f"Unsupported blob URL scheme: {scheme or url}")

    try:
        with httpx.Client(timeout=timeout, follow_redirects=True) as client:
            response = client.get(url)
    except httpx.TimeoutException as exc:
        raise BlobFetchError(f"Failed to download file: timeout after {timeout}s") from exc
    except httpx.RequestError as exc:
        raise BlobFetchError(f"Failed to download file: {exc}") from exc

    if not response.is_success:
        raise BlobFetchError(
            f"Failed to download file: HTTP {response.status_code} {response.reason_phrase}"
        )
    try:
        return response.content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise BlobFetchError(f"Failed to download file: {exc}") from exc


def delete(url: str) -> None:
    """Remove a locally stored blob; remote URLs are left alone."""
    if urlparse(url).scheme != "file":
        return
    try:
        _local_path(url).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning(f"Failed to delete blob {url}: {exc}")
