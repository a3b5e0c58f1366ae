"""Make a source video available as a local file.

WHY: The video record may point at a local upload or at a remote URL
(object storage, public link). ffmpeg and the transcription upload both
need a local file, and downloading once per run instead of once per
clip keeps large sources from being fetched repeatedly.

HOW: fetch_source() passes local paths through after checking them, and
streams http(s) URLs into dest_dir with httpx. The returned SourceFile
says whether the file was downloaded, so the caller knows to delete it.

RULES:
- Any failure raises SourceUnavailable with a readable message
- A partially downloaded file is deleted before any error propagates,
  including cancellation; write errors become SourceUnavailable
- transport= is for tests (httpx.MockTransport)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import httpx

from clipwise.errors import SourceUnavailable

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


@dataclass
class SourceFile:
    """A local copy (or the original path) of a source video."""

    path: Path
    downloaded: bool = False

    def discard(self) -> None:
        """Delete the file if this run downloaded it."""
        if self.downloaded:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass


def is_remote(location: str) -> bool:
    return urlparse(str(location)).scheme in ("http", "https")


async def fetch_source(
    location: str | Path,
    dest_dir: str | Path,
    bearer_token: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SourceFile:
    """Return a local file for ``location``.

    Args:
        location: Local path or http(s) URL.
        dest_dir: Directory for downloads.
        bearer_token: Optional token sent as ``Authorization: Bearer``.
        transport: Optional httpx transport (tests).
    """
    location = str(location)
    if not is_remote(location):
        path = Path(location)
        if not path.is_file():
            raise SourceUnavailable("Source video not found: {}".format(location))
        return SourceFile(path=path, downloaded=False)

    suffix = Path(urlparse(location).path).suffix or ".mp4"
    dest = Path(dest_dir) / "source{}".format(suffix)
    dest.parent.mkdir(parents=True, exist_ok=True)
    headers = {"Authorization": "Bearer {}".format(bearer_token)} if bearer_token else {}

    logger.info("Downloading source video from %s", location)
    try:
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(300.0, connect=30.0),
                follow_redirects=True,
                transport=transport,
            ) as client:
                async with client.stream("GET", location, headers=headers) as resp:
                    if resp.status_code != 200:
                        raise SourceUnavailable(
                            "Source download failed with HTTP {}".format(resp.status_code)
                        )
                    with open(dest, "wb") as f:
                        async for chunk in resp.aiter_bytes(_CHUNK_SIZE):
                            f.write(chunk)
        except httpx.HTTPError as exc:
            raise SourceUnavailable("Source download failed: {}".format(exc)) from exc
        except OSError as exc:
            raise SourceUnavailable("Could not write source video: {}".format(exc)) from exc
    except BaseException:
        dest.unlink(missing_ok=True)
        raise

    logger.info("Downloaded source video to %s (%d bytes)", dest, dest.stat().st_size)
    return SourceFile(path=dest, downloaded=True)
