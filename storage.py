"""Attachment storage on the local filesystem, served back under ``/files``."""
import logging
import secrets
import time
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from schemas import AttachmentIn
from settings import settings

logger = logging.getLogger(__name__)


class AttachmentRejected(ValueError):
    pass


class LocalFileStorage:
    def __init__(
        self,
        root,
        base_url: str = "/files",
        allowed_types: Optional[Iterable[str]] = None,
        max_bytes: Optional[int] = None,
    ):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.allowed_types = tuple(allowed_types or settings.ALLOWED_UPLOAD_TYPES)
        self.max_bytes = max_bytes or settings.MAX_UPLOAD_BYTES

    def validate(self, filename: str, content_type: str, size: int) -> None:
        if content_type not in self.allowed_types:
            raise AttachmentRejected(f"{filename}: only JPEG images and PDF files are accepted.")
        if size > self.max_bytes:
            limit_mb = self.max_bytes / (1024 * 1024)
            raise AttachmentRejected(f"{filename}: file is larger than {limit_mb:g} MB.")

    def path_for(self, storage_key: str) -> Path:
        # keys are flat file names; anything with a directory part is foreign
        if not storage_key or Path(storage_key).name != storage_key:
            raise ValueError(f"Invalid storage key {storage_key!r}")
        return self.root / storage_key

    def _new_key(self, filename: str) -> str:
        suffix = Path(filename).suffix.lower()
        return f"{secrets.token_hex(8)}_{int(time.time() * 1000)}{suffix}"

    def upload(self, filename: str, content_type: str, data: bytes) -> AttachmentIn:
        filename = Path(filename).name
        self.validate(filename, content_type, len(data))
        self.root.mkdir(parents=True, exist_ok=True)

        storage_key = self._new_key(filename)
        self.path_for(storage_key).write_bytes(data)
        logger.info("Stored attachment %s as %s (%d bytes)", filename, storage_key, len(data))
        return AttachmentIn(
            name=filename,
            url=f"{self.base_url}/{storage_key}",
            size=len(data),
            mime_type=content_type,
            storage_key=storage_key,
        )

    def upload_many(self, files: Iterable[Tuple[str, str, bytes]]) -> List[AttachmentIn]:
        """Validate every file first so a rejected one leaves nothing behind."""

        files = list(files)
        for filename, content_type, data in files:
            self.validate(Path(filename).name, content_type, len(data))
        return [self.upload(filename, content_type, data) for filename, content_type, data in files]

    def delete(self, storage_key: str) -> None:
        self.path_for(storage_key).unlink(missing_ok=True)
        logger.info("Deleted attachment %s", storage_key)

    def delete_many(self, storage_keys: Iterable[str]) -> None:
        for storage_key in storage_keys:
            self.delete(storage_key)
