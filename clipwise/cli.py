"""Command-line interface for Clipwise.

WHY: Users need a simple way to turn one long video into captioned
vertical clips from the terminal. The CLI wires together the full
pipeline (input validation, transcription, highlight selection,
caption grouping, rendering, saving) behind a single command.

HOW: Uses argparse for the input, highlight policy, caption and render
switches, and output directory. Builds an in-memory VideoStore, a
LocalStorage rooted at the output directory and a ClipPipeline, then
runs it via asyncio.run(). Each finished clip also gets its subtitle
track and caption payload written next to it through the FORMATTERS
registry. Status messages go to stderr.

RULES:
- Positional argument: input video path or http(s) URL
- Local inputs are validated (exists, SUPPORTED_VIDEO_FORMATS) before
  any API call
- --transcript loads a saved transcript and skips transcription
- Output naming for side files: {clip stem}{suffix}, numeric suffix for
  conflicts (-captions-2.ass)
- Exit status: 0 (even with failed clips), 1 on whole-run failure,
  130 on Ctrl-C
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from urllib.parse import urlparse

from clipwise.api.client import OpenAIClient
from clipwise.config import SUPPORTED_VIDEO_FORMATS
from clipwise.core.captions import CaptionOptions
from clipwise.core.highlights import HighlightConstraints
from clipwise.core.ir import Transcript
from clipwise.errors import ClipwiseError
from clipwise.formatters import FORMATTERS
from clipwise.formatters.base import FormatterOutput
from clipwise.media.ffmpeg import CROP_POSITIONS, FFmpegEngine
from clipwise.media.render import RenderOptions
from clipwise.media.source import is_remote
from clipwise.pipeline import ClipPipeline, PipelineResult, PipelineSettings
from clipwise.storage import LocalStorage
from clipwise.store import VideoStore


def _status(msg: str) -> None:
    """Print a status message to stderr (stdout stays pipeable)."""
    print(msg, file=sys.stderr, flush=True)


def _fail(msg: str) -> None:
    print("Error: {}".format(msg), file=sys.stderr)
    sys.exit(1)


def _resolve_output_path(stem: str, suffix: str, output_dir: Path) -> Path:
    """{stem}{suffix} in output_dir, or {stem}{name}-N{ext} if taken (N from 2)."""
    base_path = output_dir / "{}{}".format(stem, suffix)
    if not base_path.exists():
        return base_path

    dot_idx = suffix.rfind(".")
    if dot_idx > 0:
        suffix_name, suffix_ext = suffix[:dot_idx], suffix[dot_idx:]
    else:
        suffix_name, suffix_ext = suffix, ""

    counter = 2
    while True:
        candidate = output_dir / "{}{}-{}{}".format(stem, suffix_name, counter, suffix_ext)
        if not candidate.exists():
            return candidate
        counter += 1


def _save_output(output: FormatterOutput, stem: str, output_dir: Path) -> Path:
    path = _resolve_output_path(stem, output.suffix, output_dir)
    if isinstance(output.content, bytes):
        path.write_bytes(output.content)
    else:
        path.write_text(output.content, encoding="utf-8")
    return path


def _settings_from_args(args: argparse.Namespace) -> PipelineSettings:
    """Translate CLI flags into PipelineSettings (ValueError on bad values)."""
    return PipelineSettings(
        highlights=HighlightConstraints(
            max_highlights=args.max_highlights,
            min_duration_s=args.min_duration,
            max_duration_s=args.max_duration,
            audience_hint=args.audience,
            content_type_hint=args.content_type,
            require_sentence_alignment=args.require_sentence_alignment,
        ),
        captions=CaptionOptions(
            max_words_per_segment=args.words_per_caption,
            emphasize_keywords=args.emphasis,
            include_hook=args.hook,
            language=args.language or "en",
        ),
        render=RenderOptions(
            crop_to_vertical=args.crop,
            burn_captions=args.captions,
            position=args.position,
        ),
        concurrency=args.concurrency,
        generate_thumbnails=args.thumbnails,
    )


def _write_side_files(result: PipelineResult) -> list[Path]:
    """Write each successful clip's subtitle track and caption payload next to it."""
    saved: list[Path] = []
    for outcome in result.succeeded:
        if outcome.captions is None or not outcome.captions.segments:
            continue
        clip_path = Path(outcome.storage_url)
        for key in FORMATTERS:
            for output in FORMATTERS[key]().format(outcome.captions):
                saved.append(_save_output(output, clip_path.stem, clip_path.parent))
    return saved


async def _run_pipeline(args: argparse.Namespace) -> None:
    """Validate inputs, run the pipeline, save side files, print a summary."""
    source = args.input
    if is_remote(source):
        title = Path(urlparse(source).path).stem or "video"
    else:
        input_path = Path(source).resolve()
        if not input_path.is_file():
            _fail("File not found: {}".format(input_path))
        ext = input_path.suffix.lower()
        if ext not in SUPPORTED_VIDEO_FORMATS:
            _fail(
                "Unsupported file type '{}'. Supported formats: {}".format(
                    ext, ", ".join(sorted(SUPPORTED_VIDEO_FORMATS))
                )
            )
        source = str(input_path)
        title = input_path.stem

    default_dir = Path.cwd() if is_remote(args.input) else Path(source).parent
    output_dir = Path(args.output_dir).resolve() if args.output_dir else default_dir
    if not output_dir.is_dir():
        _fail("Output directory does not exist: {}".format(output_dir))

    transcript = None
    if args.transcript:
        try:
            with open(args.transcript, encoding="utf-8") as f:
                transcript = Transcript.from_dict(json.load(f))
        except (OSError, ValueError) as e:
            _fail("Could not load transcript {}: {}".format(args.transcript, e))
        _status("Loaded transcript: {} segments, {} words".format(
            len(transcript.segments), len(transcript.words)
        ))

    try:
        settings = _settings_from_args(args)
    except ValueError as e:
        _fail(str(e))

    store = VideoStore()
    video = store.create_video(title=title, source=source, language=args.language)
    if transcript is not None:
        store.set_transcript(video.id, transcript)

    try:
        async with OpenAIClient() as client:
            pipeline = ClipPipeline(
                client=client,
                storage=LocalStorage(root=output_dir, public_base_url=""),
                store=store,
                engine=FFmpegEngine(),
                settings=settings,
            )
            result = await pipeline.process(video.id, on_status=_status)
    except (ClipwiseError, ValueError) as e:
        # ValueError covers config errors such as a missing API key
        _fail(str(e))
    finally:
        stored = store.get_video(video.id)
        if args.save_transcript and stored is not None and stored.transcript is not None:
            path = _resolve_output_path(title, "-transcript.json", output_dir)
            path.write_text(
                json.dumps(stored.transcript.to_dict(), indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            _status("Saved transcript: {}".format(path))
        store.delete_video(video.id)

    side_files = _write_side_files(result)

    _status("")
    if result.summary:
        _status("Summary: {}".format(result.summary))
    if result.main_topics:
        _status("Topics: {}".format(", ".join(result.main_topics)))
    _status("Done! {} clip(s) ready, {} failed.".format(len(result.succeeded), len(result.failed)))
    for outcome in result.succeeded:
        _status("  [ok]     {}: {}".format(outcome.title, outcome.storage_url))
    for outcome in result.failed:
        _status("  [failed] {}: {}".format(outcome.title, outcome.error))
    for path in side_files:
        _status("  Saved: {}".format(path.name))


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser (separate from main() for testability)."""
    parser = argparse.ArgumentParser(
        prog="clipwise",
        description="Turn a long video into short vertical clips with "
                    "word-highlighted captions.",
    )
    parser.add_argument("input", help="Path or http(s) URL of the source video.")
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory to save clips (default: next to the input file).",
    )
    parser.add_argument(
        "--language",
        default=None,
        help="ISO 639-1 language of the video (default: detected).",
    )

    highlights = parser.add_argument_group("highlights")
    highlights.add_argument("--max-highlights", type=int, default=5,
                            help="Maximum number of clips (default: %(default)s).")
    highlights.add_argument("--min-duration", type=float, default=15.0,
                            help="Minimum clip length in seconds (default: %(default)s).")
    highlights.add_argument("--max-duration", type=float, default=60.0,
                            help="Maximum clip length in seconds (default: %(default)s).")
    highlights.add_argument("--audience", default="",
                            help="Target audience hint for highlight scoring.")
    highlights.add_argument("--content-type", default="",
                            help="Content type hint, e.g. 'podcast' or 'tutorial'.")
    highlights.add_argument("--require-sentence-alignment", action="store_true",
                            help="Drop highlights whose edges miss transcript segment edges.")

    captions = parser.add_argument_group("captions")
    captions.add_argument("--words-per-caption", type=int, default=3,
                          help="Maximum words per caption line, 2-4 (default: %(default)s).")
    captions.add_argument("--captions", action=argparse.BooleanOptionalAction, default=True,
                          help="Generate and burn in captions (default: %(default)s).")
    captions.add_argument("--emphasis", action=argparse.BooleanOptionalAction, default=True,
                          help="Let the model mark keywords for emphasis (default: %(default)s).")
    captions.add_argument("--hook", action=argparse.BooleanOptionalAction, default=True,
                          help="Derive an opening hook text (default: %(default)s).")

    render = parser.add_argument_group("render")
    render.add_argument("--crop", action=argparse.BooleanOptionalAction, default=True,
                        help="Crop to 9:16 and scale to 1080x1920 (default: %(default)s).")
    render.add_argument("--position", choices=CROP_POSITIONS, default="center",
                        help="Crop anchor for sources taller than 9:16 (default: %(default)s).")
    render.add_argument("--thumbnails", action=argparse.BooleanOptionalAction, default=True,
                        help="Save a thumbnail per clip (default: %(default)s).")
    render.add_argument("--concurrency", type=int, default=1,
                        help="Clips rendered at the same time (default: %(default)s).")

    parser.add_argument("--transcript", default=None,
                        help="Saved transcript JSON to use instead of transcribing.")
    parser.add_argument("--save-transcript", action="store_true",
                        help="Save the transcript as {stem}-transcript.json.")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log debug output to stderr.")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for ``clipwise`` and ``python -m clipwise``.

    argv=None means use sys.argv; explicit argv is for testing.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        asyncio.run(_run_pipeline(args))
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)


if __name__ == "__main__":
    main()
