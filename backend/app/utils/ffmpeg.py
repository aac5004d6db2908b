"""Run an ``ffmpeg-python`` stream against a prioritised list of executables."""

from __future__ import annotations

import logging
from typing import Iterable

import ffmpeg

from ..exceptions import TranscodeFailure

logger = logging.getLogger(__name__)

GLOBAL_ARGS = ("-hide_banner", "-loglevel", "error")
MAX_ERROR_CHARS = 2000


def run_with_candidates(stream, candidates: Iterable[str]) -> str:
    """Execute ``stream`` with the first executable that can be spawned.

    Parameters
    ----------
    stream:
        An output node built with ``ffmpeg.input(...).output(...)``.
    candidates:
        Executable paths or bare command names, most preferred first.

    Returns
    -------
    str
        The candidate that ran the command successfully.

    Raises
    ------
    TranscodeFailure
        When ffmpeg exits non-zero (no further candidates are tried) or when
        none of the candidates could be started at all.
    """

    tried: list[str] = []
    for candidate in candidates:
        try:
            ffmpeg.run(
                stream.global_args(*GLOBAL_ARGS),
                cmd=candidate,
                capture_stdout=True,
                capture_stderr=True,
                overwrite_output=True,
            )
        except (FileNotFoundError, PermissionError) as exc:
            logger.warning("ffmpeg candidate %s is not usable: %s", candidate, exc)
            tried.append(candidate)
            continue
        except ffmpeg.Error as exc:
            details = exc.stderr.decode("utf8", errors="replace").strip() if exc.stderr else ""
            raise TranscodeFailure(
                (details or f"ffmpeg ({candidate}) exited with an error")[:MAX_ERROR_CHARS]
            ) from exc
        logger.debug("ffmpeg run succeeded with %s", candidate)
        return candidate

    raise TranscodeFailure(
        f"ffmpeg executable not available. tried: {', '.join(tried)}. "
        "Set FFMPEG_PATH or install ffmpeg in PATH."
    )
