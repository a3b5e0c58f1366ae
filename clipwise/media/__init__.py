"""Media engine wrapper, clip renderer, and source fetching.

WHY: Decoding, cropping and subtitle burn-in are delegated to ffmpeg.
This package owns how it is invoked and how the intermediate files of
one clip are created and reaped.

HOW: ffmpeg.py runs ffmpeg/ffprobe as async subprocesses, render.py
sequences extract → crop → burn for one clip, source.py makes a source
video available as a local file.

RULES:
- No module outside this package starts an ffmpeg process
- Every temp file a render creates is deleted on every exit path
"""
