"""Abstraction over object storage for uploads (local fs implementation)."""

from __future__ import annotations

import logging
import re
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO, Protocol
from urllib.parse import unquote, urlparse

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class BlobStore(Protocol):
    def save(self, file_obj: BinaryIO, key: str) -> str: ...

    def delete(self, url: str) -> None: ...


class LocalBlobStore:
    """Persist uploads under a directory and hand back a retrievable URL.

    When ``base_url`` is set the directory is assumed to be served at that
    address and an http(s) URL is returned; otherwise a ``file://`` URI.
    """

    def __init__(self, root: str | Path, base_url: str | None = None):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip("/") if base_url else None

    def save(self, file_obj: BinaryIO, key: str) -> str:
        """Copy ``file_obj`` to the store with a random suffix and return its URL."""
        key_path = Path(key)
        stem = _UNSAFE_CHARS.sub("-", key_path.stem).strip("-") or "upload"
        suffix = key_path.suffix or ".csv"
        target_name = f"{stem}-{uuid.uuid4().hex[:12]}{suffix}"
        target_path = self.root / target_name
        file_obj.seek(0)
        with target_path.open("wb") as destination:
            shutil.copyfileobj(file_obj, destination)
        logger.info(f"Stored upload {key} as {target_path}")
        if self.base_url:
            return f"{self.base_url}/{target_name}"
        return target_path.as_uri()

    def delete(self, url: str) -> None:
        """Cleanup a staged file; a missing file is not an error."""
        parsed = urlparse(url)
        if parsed.scheme == "file":
            path = Path(unquote(parsed.path))
        else:
            path = self.root / Path(unquote(parsed.path)).name
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to delete stored upload {path}: {e}")
