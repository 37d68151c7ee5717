"""
Audio and video processing utilities using ffmpeg, plus scratch storage.
"""

import contextlib
import logging
import re
import shutil
import subprocess
import tempfile
from collections.abc import Iterator
from pathlib import Path

from .exceptions import CommandError, ConfigurationError, ResourceError

logger = logging.getLogger("vttdub")

SCRATCH_PREFIX = "vttdub_"

# Background, subtitle style and timecode overlay of the rendered video
VIDEO_BACKGROUND = "color=c=black:s=1280x720:r=30"
SUBTITLE_STYLE = "Alignment=6,FontSize=24"
TIMECODE_TEXT = r"%{pts\:hms}.%{eif\:mod(floor(t*10),10)\:d}"

_STATS_TIME_RE = re.compile(r"time=(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
_OPTION_SPECIAL_RE = re.compile(r"([\\':])")
_GRAPH_SPECIAL_RE = re.compile(r"([\\'\[\],;])")


def run(cmd: list[str], *, check: bool = True, timeout: float | None = None) -> str:
    """Run a command and return stdout (stderr merged)."""
    logger.debug("Running: %s", " ".join(map(str, cmd)))
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        output = e.output.decode(errors="replace") if isinstance(e.output, bytes) else (e.output or "")
        logger.error("Command timed out after %ss: %s", timeout, cmd[0])
        raise CommandError(f"{cmd[0]} timed out after {timeout}s", output=output) from e
    except FileNotFoundError as e:
        raise CommandError(f"{cmd[0]} not found on PATH") from e
    if proc.returncode != 0 and check:
        logger.error("Command failed with code %d: %s", proc.returncode, proc.stdout)
        msg = f"Command failed with code {proc.returncode}"
        raise CommandError(msg, returncode=proc.returncode, output=proc.stdout)
    return proc.stdout


def ensure_dir(path: str) -> None:
    """Ensure directory exists."""
    if path:
        Path(path).mkdir(parents=True, exist_ok=True)


def check_ffmpeg() -> None:
    """Fail fast when ffmpeg is missing from PATH."""
    if shutil.which("ffmpeg") is None:
        raise ConfigurationError("Required tool not found on PATH: ffmpeg")


@contextlib.contextmanager
def scratch_dir(prefix: str = SCRATCH_PREFIX, parent: str | None = None) -> Iterator[Path]:
    """Create a unique scratch directory for one run and always remove it."""
    try:
        if parent:
            ensure_dir(parent)
        path = Path(tempfile.mkdtemp(prefix=prefix, dir=parent))
    except OSError as e:
        raise ResourceError(f"Failed to create scratch directory: {e}") from e
    logger.debug("Scratch directory: %s", path)
    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.warning("Failed to remove scratch directory %s: %s", path, e)


def escape_filter_path(path: str) -> str:
    """Escape a file path for use as a filter option inside -vf/-filter_complex."""
    value = _OPTION_SPECIAL_RE.sub(r"\\\1", str(path))
    return _GRAPH_SPECIAL_RE.sub(r"\\\1", value)


def probe_duration_ms(path: str, timeout: float | None = None) -> int:
    """
    Measure the decoded duration of an audio file in milliseconds.
    The file is decoded to the null muxer and the last reported
    `time=` position is used, so container metadata is not trusted.
    """
    out = run(
        ["ffmpeg", "-hide_banner", "-nostdin", "-i", str(path), "-vn", "-f", "null", "-"],
        timeout=timeout,
    )
    matches = _STATS_TIME_RE.findall(out)
    if not matches:
        raise CommandError(f"Could not read decoded duration of {path}", output=out)
    h, m, s = matches[-1]
    return round((int(h) * 3600 + int(m) * 60 + float(s)) * 1000)


def render_video(
    audio_path: str,
    subs_path: str,
    output_video: str,
    timeout: float | None = None,
) -> None:
    """
    Render a video from a solid background, the narration track, burned-in
    subtitles (top center) and a centered elapsed-time readout (0.1 s steps).
    Output length follows the shortest input.
    """
    video_filter = (
        f"subtitles={escape_filter_path(subs_path)}:force_style='{SUBTITLE_STYLE}',"
        "drawtext=fontsize=48:fontcolor=white:x=(w-text_w)/2:y=(h-text_h)/2:"
        f"text='{TIMECODE_TEXT}':box=1:boxcolor=black@0.5:boxborderw=5:rate=10"
    )
    cmd = [
        "ffmpeg",
        "-y",
        "-f",
        "lavfi",
        "-i",
        VIDEO_BACKGROUND,
        "-i",
        str(audio_path),
        "-vf",
        video_filter,
        "-c:a",
        "aac",
        "-c:v",
        "libx264",
        "-shortest",
        str(output_video),
    ]
    run(cmd, timeout=timeout)
