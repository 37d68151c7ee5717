"""
WebVTT parsing, timestamp handling and writing.
"""

import logging
import re
from collections.abc import Iterable
from datetime import timedelta

from .exceptions import (
    InvalidCueTimingError,
    InvalidHeaderError,
    InvalidSecondsFormatError,
    InvalidTimestampError,
    ParseError,
)
from .models import Cue, CueSet, timedelta_to_ms

logger = logging.getLogger("vttdub")

VTT_HEADER = "WEBVTT"
TIMING_SEPARATOR = "-->"

_INT_RE = re.compile(r"[0-9]+")
# A timestamp-like token before the separator; other lines with "-->" are cue text
_TIMING_LINE_RE = re.compile(r"^\s*\S*\d+:\d+\S*?\s*-->")
# Two time-like tokens at the start of a line: a timing line that lost its separator
_LOOSE_TIMING_RE = re.compile(r"^\s*\d+:\d+(?::\d+)?(?:[.,]\d*)?\s+\d+:\d+")


def parse_timestamp(ts: str) -> timedelta:
    """Parse HH:MM:SS.mmm into a timedelta with millisecond precision."""
    parts = ts.split(":")
    if len(parts) != 3:
        raise InvalidTimestampError(f"invalid timestamp format: {ts!r}")
    hours, minutes = parts[0], parts[1]
    if not _INT_RE.fullmatch(hours) or not _INT_RE.fullmatch(minutes):
        raise InvalidTimestampError(f"invalid timestamp format: {ts!r}")

    sec_parts = parts[2].split(".")
    if len(sec_parts) != 2:
        raise InvalidSecondsFormatError(f"invalid seconds format: {ts!r}")
    seconds, millis = sec_parts
    if not _INT_RE.fullmatch(seconds) or not _INT_RE.fullmatch(millis) or len(millis) != 3:
        raise InvalidSecondsFormatError(f"invalid seconds format: {ts!r}")

    return timedelta(
        hours=int(hours),
        minutes=int(minutes),
        seconds=int(seconds),
        milliseconds=int(millis),
    )


def format_timestamp(t: timedelta) -> str:
    """Render a timedelta as HH:MM:SS.mmm."""
    ms = timedelta_to_ms(t)
    h, rem = divmod(ms, 3_600_000)
    m, rem = divmod(rem, 60_000)
    s, ms = divmod(rem, 1000)
    return f"{h:02}:{m:02}:{s:02}.{ms:03}"


def _parse_timing_line(line: str) -> tuple[timedelta, timedelta]:
    left, right = line.split(TIMING_SEPARATOR, 1)
    # cue settings (e.g. "align:start") may follow the end timestamp
    right_tokens = right.split()
    if not right_tokens:
        raise InvalidTimestampError(f"missing end timestamp: {line!r}")
    return parse_timestamp(left.strip()), parse_timestamp(right_tokens[0])


def parse_vtt_text(raw: str) -> CueSet:
    """Parse WebVTT content into cues.

    Blocks are separated by blank lines. Inside a block an optional label
    line precedes the timing line and one or more text lines follow it.
    Blocks without a timing line (NOTE, STYLE, header metadata) are skipped,
    and a timing block without text is dropped. Any malformed timestamp
    aborts the whole parse.
    """
    lines = raw.splitlines()
    if not lines or not lines[0].startswith(VTT_HEADER):
        raise InvalidHeaderError(f"invalid VTT file: missing {VTT_HEADER} header")

    cues: list[Cue] = []
    label: str | None = None
    current: tuple[str | None, timedelta, timedelta] | None = None
    text_lines: list[str] = []

    def flush() -> None:
        if current is not None and text_lines:
            cue_id, start, end = current
            cues.append(Cue(id=cue_id, start=start, end=end, text="\n".join(text_lines)))

    for lineno, line in enumerate(lines[1:], start=2):
        if not line.strip():
            flush()
            current, text_lines, label = None, [], None
            continue

        if _TIMING_LINE_RE.match(line):
            flush()
            start, end = _parse_timing_line(line)
            if start > end:
                raise InvalidCueTimingError(
                    f"line {lineno}: cue starts after it ends ({line.strip()!r})"
                )
            current, text_lines, label = (label, start, end), [], None
            continue

        if current is not None:
            text_lines.append(line)
            continue

        if _LOOSE_TIMING_RE.match(line):
            raise InvalidTimestampError(
                f"line {lineno}: timing line without {TIMING_SEPARATOR!r}: {line.strip()!r}"
            )
        label = line.strip()

    flush()
    logger.debug("Parsed %d cue(s)", len(cues))
    return CueSet(cues=tuple(cues))


def parse_vtt(path: str) -> CueSet:
    """Parse a WebVTT file into cues."""
    try:
        with open(path, encoding="utf-8-sig") as f:
            raw = f.read()
    except UnicodeDecodeError as e:
        raise ParseError(f"{path} is not valid UTF-8: {e}") from e
    return parse_vtt_text(raw)


def write_vtt(cues: Iterable[Cue], path: str) -> None:
    """Write cues to a WebVTT file, labelling each with its id or 1-based index."""
    with open(path, "w", encoding="utf-8") as f:
        f.write(f"{VTT_HEADER}\n\n")
        for i, cue in enumerate(cues, 1):
            label = cue.id or str(i)
            f.write(
                f"{label}\n{format_timestamp(cue.start)} {TIMING_SEPARATOR} "
                f"{format_timestamp(cue.end)}\n{cue.text}\n\n"
            )
