"""Async wrapper around the ffmpeg and ffprobe binaries.

WHY: The media engine is a black box invoked with documented arguments.
Keeping every command line in one class makes the arguments testable
without running ffmpeg, and gives one place that turns process failures
into MediaProbeFailed / MediaEncodeFailed.

HOW: FFmpegEngine runs each command with asyncio.create_subprocess_exec
(no shell) and collects stderr. A failed run raises MediaEncodeFailed
naming its stage. When the awaiting task is cancelled or the optional
per-command timeout expires, the process is killed and reaped before
the error propagates.

RULES:
- Stages are "extract", "crop", "burn", "thumbnail"
- Output paths are always overwritten (-y)
- ffmpeg never reads the terminal: stdin is /dev/null and -nostdin
  is passed
- compute_crop_window() is pure and integer-exact:
    wider than 9:16 → crop width floor(h * 9 / 16), x centered
    otherwise       → crop height floor(w * 16 / 9), y by position
- escape_filter_path() must wrap any path placed inside a filter graph
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path

from clipwise.config import FFMPEG_BINARY, FFPROBE_BINARY, TARGET_HEIGHT, TARGET_WIDTH
from clipwise.errors import MediaEncodeFailed, MediaProbeFailed

logger = logging.getLogger(__name__)

CROP_POSITIONS = ("center", "top", "bottom")

# Keep only the end of ffmpeg's stderr on errors; the banner is noise.
_STDERR_TAIL_CHARS = 2000


@dataclass
class MediaInfo:
    """What ffprobe reports about a media file."""

    duration_s: float
    width: int
    height: int
    format_name: str = "unknown"
    bit_rate: int = 0

    @classmethod
    def from_probe(cls, data: dict) -> MediaInfo:
        """Build from ``ffprobe -print_format json -show_format -show_streams``.

        Raises ValueError when there is no video stream with dimensions.
        """
        streams = data.get("streams") or []
        video = next((s for s in streams if s.get("codec_type") == "video"), None)
        if video is None:
            raise ValueError("No video stream found")
        width = int(video.get("width") or 0)
        height = int(video.get("height") or 0)
        if width <= 0 or height <= 0:
            raise ValueError("Could not determine video dimensions")
        fmt = data.get("format") or {}
        return cls(
            duration_s=float(fmt.get("duration") or 0.0),
            width=width,
            height=height,
            format_name=fmt.get("format_name") or "unknown",
            bit_rate=int(fmt.get("bit_rate") or 0),
        )


@dataclass(frozen=True)
class CropWindow:
    """A crop rectangle in source pixels."""

    width: int
    height: int
    x: int
    y: int

    def filter(self) -> str:
        return "crop={}:{}:{}:{}".format(self.width, self.height, self.x, self.y)


def compute_crop_window(
    source_width: int,
    source_height: int,
    position: str = "center",
    target_width: int = TARGET_WIDTH,
    target_height: int = TARGET_HEIGHT,
) -> CropWindow:
    """The largest target-aspect window inside the source frame.

    ``position`` only matters for sources taller than the target aspect.
    """
    if position not in CROP_POSITIONS:
        raise ValueError("position must be one of {}, got {!r}".format(CROP_POSITIONS, position))
    if source_width <= 0 or source_height <= 0:
        raise ValueError("source dimensions must be positive")

    # Cross-multiplied to compare aspect ratios without float error.
    if source_width * target_height > source_height * target_width:
        crop_w = source_height * target_width // target_height
        return CropWindow(crop_w, source_height, (source_width - crop_w) // 2, 0)

    crop_h = min(source_width * target_height // target_width, source_height)
    if position == "top":
        y = 0
    elif position == "bottom":
        y = source_height - crop_h
    else:
        y = (source_height - crop_h) // 2
    return CropWindow(source_width, crop_h, 0, y)


def escape_filter_path(path: str | Path) -> str:
    """Escape a file path for use as a filter option value.

    Backslashes become forward slashes; filter-graph separators and quotes
    are backslash-escaped.
    """
    text = str(path).replace("\\", "/")
    for ch in ("'", ":", ",", ";", "[", "]"):
        text = text.replace(ch, "\\" + ch)
    return text


class FFmpegEngine:
    """Runs ffmpeg/ffprobe commands for the render stages.

    RULES:
    - timeout_s applies per command; None means no per-command limit
    - Binaries default to FFMPEG_BINARY / FFPROBE_BINARY from config
    """

    def __init__(
        self,
        ffmpeg_binary: str = FFMPEG_BINARY,
        ffprobe_binary: str = FFPROBE_BINARY,
        timeout_s: float | None = None,
    ) -> None:
        self.ffmpeg_binary = ffmpeg_binary
        self.ffprobe_binary = ffprobe_binary
        self.timeout_s = timeout_s

    async def _run(self, stage: str, binary: str, args: list[str]) -> str:
        """Run one command and return its stdout.

        Raises MediaEncodeFailed(stage) on a missing binary, nonzero exit,
        or timeout.
        """
        logger.debug("Running %s stage: %s %s", stage, binary, " ".join(args))
        try:
            proc = await asyncio.create_subprocess_exec(
                binary,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise MediaEncodeFailed(stage, "{} not found".format(binary)) from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            await self._kill(proc)
            raise MediaEncodeFailed(stage, "timed out after {:g}s".format(self.timeout_s))
        except BaseException:
            await self._kill(proc)
            raise

        err_text = stderr.decode("utf-8", errors="replace")[-_STDERR_TAIL_CHARS:]
        if proc.returncode != 0:
            logger.warning("%s stage exited with %s: %s", stage, proc.returncode, err_text)
            raise MediaEncodeFailed(
                stage,
                "exit code {}".format(proc.returncode),
                returncode=proc.returncode,
                stderr=err_text,
            )
        return stdout.decode("utf-8", errors="replace")

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()

    async def probe(self, path: str | Path) -> MediaInfo:
        """Read duration and dimensions of ``path``."""
        try:
            out = await self._run(
                "probe",
                self.ffprobe_binary,
                ["-v", "error", "-print_format", "json", "-show_format", "-show_streams", str(path)],
            )
            return MediaInfo.from_probe(json.loads(out))
        except (MediaEncodeFailed, ValueError) as exc:
            raise MediaProbeFailed("Could not probe {}: {}".format(Path(path).name, exc)) from exc

    async def extract(
        self,
        source: str | Path,
        start_s: float,
        end_s: float,
        dest: str | Path,
    ) -> None:
        """Cut [start_s, end_s) out of ``source``, re-encoded to H.264/AAC."""
        await self._run(
            "extract",
            self.ffmpeg_binary,
            [
                "-nostdin",
                "-y",
                "-ss", "{:.3f}".format(start_s),
                "-i", str(source),
                "-t", "{:.3f}".format(end_s - start_s),
                "-c:v", "libx264",
                "-c:a", "aac",
                str(dest),
            ],
        )

    async def crop_and_scale(
        self,
        source: str | Path,
        dest: str | Path,
        position: str = "center",
        width: int = TARGET_WIDTH,
        height: int = TARGET_HEIGHT,
    ) -> CropWindow:
        """Crop ``source`` to the target aspect and scale to width x height."""
        info = await self.probe(source)
        window = compute_crop_window(info.width, info.height, position, width, height)
        logger.debug(
            "Cropping %dx%d source to %s", info.width, info.height, window.filter()
        )
        await self._run(
            "crop",
            self.ffmpeg_binary,
            [
                "-nostdin",
                "-y",
                "-i", str(source),
                "-vf", "{},scale={}:{}".format(window.filter(), width, height),
                "-c:v", "libx264",
                "-c:a", "copy",
                str(dest),
            ],
        )
        return window

    async def burn_subtitles(
        self,
        source: str | Path,
        subtitle_path: str | Path,
        dest: str | Path,
    ) -> None:
        """Composite an ASS track into the video pixels."""
        await self._run(
            "burn",
            self.ffmpeg_binary,
            [
                "-nostdin",
                "-y",
                "-i", str(source),
                "-vf", "ass={}".format(escape_filter_path(subtitle_path)),
                "-c:v", "libx264",
                "-c:a", "copy",
                str(dest),
            ],
        )

    async def thumbnail(
        self,
        source: str | Path,
        dest: str | Path,
        at_s: float = 1.0,
        width: int = TARGET_WIDTH,
        height: int = TARGET_HEIGHT,
    ) -> None:
        """Grab one frame at ``at_s`` scaled to width x height."""
        await self._run(
            "thumbnail",
            self.ffmpeg_binary,
            [
                "-nostdin",
                "-y",
                "-ss", "{:.3f}".format(at_s),
                "-i", str(source),
                "-frames:v", "1",
                "-vf", "scale={}:{}".format(width, height),
                str(dest),
            ],
        )
