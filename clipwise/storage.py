"""Clip storage collaborator.

WHY: Rendered clips leave the scratch area and become addressable
files with a URL the host can hand out. Cloud backends differ, but the
pipeline only needs "put this file, give me its URL".

HOW: StorageBackend is an ABC with async upload_clip() and
upload_thumbnail(). LocalStorage copies into a directory tree and builds
URLs from an optional public base URL. Copies run in a worker thread so
the event loop is not blocked.

RULES:
- Clip key: videos/{video_id}/clips/{clip_id}.mp4
- Thumbnail key: videos/{video_id}/thumbnails/{clip_id}.jpg
- Any failure raises StorageUploadFailed
- Without a public base URL, url is the absolute file path
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from clipwise.config import PUBLIC_BASE_URL, STORAGE_DIR
from clipwise.errors import StorageUploadFailed

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    """Where an uploaded file ended up."""

    url: str
    path: str
    size: int


class StorageBackend(ABC):
    """Abstract destination for rendered clips and thumbnails."""

    @abstractmethod
    async def upload_clip(self, file_path: Path, video_id: str, clip_id: str) -> UploadResult:
        """Store a rendered clip."""

    @abstractmethod
    async def upload_thumbnail(self, file_path: Path, video_id: str, clip_id: str) -> UploadResult:
        """Store a clip thumbnail."""

    async def delete_video(self, video_id: str) -> None:
        """Remove everything stored for ``video_id``. Optional."""


class LocalStorage(StorageBackend):
    """Stores files under a root directory."""

    def __init__(self, root: str | Path = STORAGE_DIR, public_base_url: str = PUBLIC_BASE_URL) -> None:
        self.root = Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/")

    def _url(self, key: str) -> str:
        if self.public_base_url:
            return "{}/{}".format(self.public_base_url, key)
        return str(self.root / key)

    async def _put(self, file_path: Path, key: str) -> UploadResult:
        dest = self.root / key
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.copyfile, file_path, dest)
            size = dest.stat().st_size
        except OSError as exc:
            raise StorageUploadFailed(
                "Failed to upload {}: {}".format(Path(file_path).name, exc)
            ) from exc
        logger.info("Stored %s (%d bytes)", key, size)
        return UploadResult(url=self._url(key), path=key, size=size)

    def clip_path(self, video_id: str, clip_id: str) -> Path:
        """Local path of a stored clip (it may not exist)."""
        return self.root / "videos" / video_id / "clips" / "{}.mp4".format(clip_id)

    async def upload_clip(self, file_path: Path, video_id: str, clip_id: str) -> UploadResult:
        return await self._put(file_path, "videos/{}/clips/{}.mp4".format(video_id, clip_id))

    async def upload_thumbnail(self, file_path: Path, video_id: str, clip_id: str) -> UploadResult:
        return await self._put(
            file_path, "videos/{}/thumbnails/{}.jpg".format(video_id, clip_id)
        )

    async def delete_video(self, video_id: str) -> None:
        target = self.root / "videos" / video_id
        if target.exists():
            await asyncio.to_thread(shutil.rmtree, target, True)
            logger.info("Deleted stored files for video %s", video_id)
