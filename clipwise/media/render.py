"""Clip render orchestration: extract → crop → burn-in for one clip.

WHY: A clip is produced by three media-engine runs whose outputs feed
each other. The host is long-running, so intermediate files must never
outlive the call, whatever happens: success, engine failure, timeout or
cancellation.

HOW: render_clip() walks a small state machine,

    extracted → (cropped | skip) → (captioned | skip) → moved to output

where every stage writes a fresh temp path and deletes its predecessor.
Each temp path is recorded before the stage runs; a ``finally`` block
deletes whatever is still on disk.

RULES:
- Stages run strictly in order; nothing is retried
- Temp names are clip-{clip_id}-{timestamp_ms}-{stage}.{ext} inside
  temp_dir, so concurrent renders never collide
- The subtitle file is deleted on success and failure alike
- Burn-in is skipped when captions are None or have no segments
- output_path is only written by the final move, never partially
"""

from __future__ import annotations

import logging
import os
import shutil
import time
from dataclasses import dataclass
from pathlib import Path

from clipwise.config import TARGET_HEIGHT, TARGET_WIDTH, TEMP_DIR
from clipwise.core.ir import CaptionsResult
from clipwise.formatters.ass_karaoke import encode
from clipwise.media.ffmpeg import CROP_POSITIONS, FFmpegEngine

logger = logging.getLogger(__name__)


@dataclass
class RenderOptions:
    """Per-clip render switches.

    RULES:
    - position is one of "center", "top", "bottom"
    - height is also the subtitle reference height
    """

    crop_to_vertical: bool = True
    burn_captions: bool = True
    position: str = "center"
    width: int = TARGET_WIDTH
    height: int = TARGET_HEIGHT

    def __post_init__(self) -> None:
        if self.position not in CROP_POSITIONS:
            raise ValueError(
                "position must be one of {}, got {!r}".format(CROP_POSITIONS, self.position)
            )


def temp_path(temp_dir: str | Path, clip_id: str, timestamp_ms: int, stage: str, ext: str) -> Path:
    """Scratch path for one stage of one clip render."""
    return Path(temp_dir) / "clip-{}-{}-{}.{}".format(clip_id, timestamp_ms, stage, ext)


def _remove(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Failed to remove temp file %s: %s", path, exc)


async def render_clip(
    engine: FFmpegEngine,
    source_path: str | Path,
    start_s: float,
    end_s: float,
    captions: CaptionsResult | None,
    output_path: str | Path,
    options: RenderOptions | None = None,
    clip_id: str = "clip",
    temp_dir: str | Path | None = None,
) -> Path:
    """Render one clip of ``source_path`` to ``output_path``.

    Args:
        engine: The media engine.
        source_path: Local path of the source video.
        start_s: Clip start in source seconds.
        end_s: Clip end in source seconds.
        captions: Clip-relative captions, or None.
        output_path: Final clip path.
        options: Render switches; defaults apply when None.
        clip_id: Used in temp file names.
        temp_dir: Scratch directory; TEMP_DIR from config when None.

    Returns:
        ``output_path`` as a Path.

    Raises:
        MediaProbeFailed: source dimensions could not be read.
        MediaEncodeFailed: an engine stage failed (``stage`` names it).
        ValueError: invalid window.
    """
    options = options or RenderOptions()
    if start_s < 0 or end_s <= start_s:
        raise ValueError("Invalid clip window {}-{}".format(start_s, end_s))

    scratch = Path(temp_dir or TEMP_DIR)
    scratch.mkdir(parents=True, exist_ok=True)
    output_path = Path(output_path)
    stamp = int(time.time() * 1000)
    created: list[Path] = []

    def scratch_path(stage: str, ext: str = "mp4") -> Path:
        path = temp_path(scratch, clip_id, stamp, stage, ext)
        created.append(path)
        return path

    try:
        current = scratch_path("extracted")
        await engine.extract(source_path, start_s, end_s, current)
        logger.info("Clip %s: extracted %.2f-%.2f", clip_id, start_s, end_s)

        if options.crop_to_vertical:
            cropped = scratch_path("cropped")
            await engine.crop_and_scale(
                current, cropped, options.position, options.width, options.height
            )
            _remove(current)
            current = cropped
            logger.info("Clip %s: cropped to %dx%d", clip_id, options.width, options.height)

        if options.burn_captions and captions is not None and captions.segments:
            subtitle = scratch_path("captions", "ass")
            subtitle.write_text(encode(captions, options.height), encoding="utf-8")
            captioned = scratch_path("captioned")
            try:
                await engine.burn_subtitles(current, subtitle, captioned)
            finally:
                _remove(subtitle)
            _remove(current)
            current = captioned
            logger.info(
                "Clip %s: burned %d caption segments", clip_id, len(captions.segments)
            )

        output_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(os.fspath(current), os.fspath(output_path))
        logger.info("Clip %s: written to %s", clip_id, output_path)
        return output_path
    finally:
        for path in created:
            _remove(path)
