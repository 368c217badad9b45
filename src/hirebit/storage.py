from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path

from hirebit.config import Settings, get_settings
from hirebit.db.base import utcnow

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: str, default: str = "resume") -> str:
    base = Path(name.replace("\\", "/")).name
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned[:120] or default


def _timestamp(moment: datetime | None = None) -> str:
    return (moment or utcnow()).strftime("%Y%m%dT%H%M%S%f")


class BlobStore:
    """Path-addressable file storage for resumes and rendered reports."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.root = Path(self.settings.storage_dir).resolve()

    def resume_key(self, job_id: str, filename: str) -> str:
        return f"resumes/{job_id}/{_timestamp()}_{safe_filename(filename)}"

    def report_key(self, job_id: str) -> str:
        return f"reports/{job_id}/{_timestamp()}.pdf"

    def put(self, key: str, data: bytes) -> str:
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug("Stored blob %s (%d bytes)", key, len(data))
        return self.url_for(key)

    def url_for(self, key: str) -> str:
        if self.settings.storage_public_url:
            return f"{self.settings.storage_public_url.rstrip('/')}/{key}"
        return str(self._path_for(key))

    def read(self, key_or_url: str) -> bytes:
        return self._path_for(self.key_from(key_or_url)).read_bytes()

    def delete(self, key_or_url: str) -> None:
        path = self._path_for(self.key_from(key_or_url))
        path.unlink(missing_ok=True)

    def key_from(self, key_or_url: str) -> str:
        public = self.settings.storage_public_url.rstrip("/")
        if public and key_or_url.startswith(public + "/"):
            return key_or_url[len(public) + 1 :]
        candidate = Path(key_or_url)
        if candidate.is_absolute():
            return candidate.resolve().relative_to(self.root).as_posix()
        return key_or_url

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root):
            raise ValueError(f"blob key escapes storage root: {key}")
        return path
