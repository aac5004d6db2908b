"""Audio transcoding helpers using FFmpeg."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

import ffmpeg

from ..utils.ffmpeg import run_with_candidates

logger = logging.getLogger(__name__)

TARGET_CODEC = "libmp3lame"
TARGET_BITRATE = "128k"
OUTPUT_CONTENT_TYPE = "audio/mpeg"


def build_mp3_stream(input_path: Path, output_path: Path):
    """ffmpeg graph that drops metadata and video and encodes constant-bitrate MP3."""
    return ffmpeg.input(str(input_path)).output(
        str(output_path),
        vn=None,
        map_metadata="-1",
        acodec=TARGET_CODEC,
        audio_bitrate=TARGET_BITRATE,
    )


def transcode_to_mp3(input_path: Path, output_path: Path, candidates: Sequence[str]) -> Path:
    """
    Transcodes ``input_path`` to MP3 at ``output_path``.

    Args:
        input_path: The merged source file.
        output_path: Where the MP3 should be written (overwritten if present).
        candidates: ffmpeg executables to try, most preferred first.

    Returns:
        ``output_path`` once ffmpeg has finished.

    Raises:
        FileNotFoundError: If ``input_path`` does not exist.
        TranscodeFailure: If no candidate could be run or ffmpeg failed.
    """
    if not input_path.exists():
        logger.error("Transcode input not found: %s", input_path)
        raise FileNotFoundError(f"Input file not found: {input_path}")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    stream = build_mp3_stream(input_path, output_path)
    used = run_with_candidates(stream, candidates)
    logger.info("Transcoded %s -> %s using %s", input_path.name, output_path.name, used)
    return output_path
