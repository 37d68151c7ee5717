"""
Media backends: the probe/delay/mix/normalize/encode/render operations the
compositor and emitter are written against.

`FfmpegBackend` builds one ffmpeg filter graph and runs it at encode time.
`PydubBackend` performs the same steps in-process on pydub AudioSegments.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError, CouldntEncodeError

from .exceptions import CommandError, CompositionError, DurationProbeError, RenderError
from .io_ffmpeg import probe_duration_ms, render_video, run

logger = logging.getLogger("vttdub")

_CHANNEL_LAYOUTS = {1: "mono", 2: "stereo"}
_DECODE_ERRORS = (CouldntDecodeError, OSError, EOFError, ValueError, KeyError, IndexError)


class MediaBackend(ABC):
    """Operations the timed compositor needs from an audio toolkit.

    Stream handles returned by `load`, `delay`, `mix` and `normalize` are
    opaque to callers and only valid for the backend that produced them.
    """

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout

    @abstractmethod
    def probe_duration(self, path: Path) -> timedelta:
        """Decoded duration of an audio file. Raises DurationProbeError."""

    @abstractmethod
    def load(self, paths: list[Path]) -> list[Any]:
        """Open audio files as streams, in the given order."""

    @abstractmethod
    def delay(self, stream: Any, delay_ms: int) -> Any:
        """Shift a stream's onset by `delay_ms` of silence on every channel."""

    @abstractmethod
    def mix(self, first: Any, second: Any) -> Any:
        """Additive two-input mix, no gain normalization."""

    @abstractmethod
    def normalize(self, stream: Any, sample_rate: int, channels: int) -> Any:
        """Resample and set the channel layout."""

    @abstractmethod
    def encode(self, stream: Any, output_path: Path) -> None:
        """Encode a stream to `output_path`. Raises CompositionError."""

    def render_composite(self, audio_path: Path, subtitle_path: Path, output_path: Path) -> None:
        """Render background + audio + burned subtitles + timecode into a video."""
        try:
            render_video(str(audio_path), str(subtitle_path), str(output_path), timeout=self.timeout)
        except CommandError as e:
            raise RenderError(f"Video rendering failed: {e}\n{e.output}") from e


@dataclass
class _FilterGraph:
    inputs: list[str]
    filters: list[str] = field(default_factory=list)
    counter: int = 0

    def add(self, sources: list[str], expr: str, prefix: str) -> str:
        label = f"{prefix}{self.counter}"
        self.counter += 1
        pads = "".join(f"[{s}]" for s in sources)
        self.filters.append(f"{pads}{expr}[{label}]")
        return label


@dataclass(frozen=True)
class FfmpegStream:
    """A labelled pad inside an ffmpeg filter graph."""

    graph: _FilterGraph
    label: str


class FfmpegBackend(MediaBackend):
    """Shell out to ffmpeg; the whole composition runs as one filter_complex."""

    def __init__(self, timeout: float | None = None, quality: int = 0):
        super().__init__(timeout)
        self.quality = quality

    def probe_duration(self, path: Path) -> timedelta:
        try:
            return timedelta(milliseconds=probe_duration_ms(str(path), timeout=self.timeout))
        except CommandError as e:
            raise DurationProbeError(f"Failed to probe duration of {path}: {e}") from e

    def load(self, paths: list[Path]) -> list[FfmpegStream]:
        graph = _FilterGraph(inputs=[str(p) for p in paths])
        return [FfmpegStream(graph, str(i)) for i in range(len(paths))]

    def delay(self, stream: FfmpegStream, delay_ms: int) -> FfmpegStream:
        label = stream.graph.add([stream.label], f"adelay={delay_ms}:all=1", "d")
        return FfmpegStream(stream.graph, label)

    def mix(self, first: FfmpegStream, second: FfmpegStream) -> FfmpegStream:
        if first.graph is not second.graph:
            raise CompositionError("Cannot mix streams from different filter graphs")
        label = first.graph.add(
            [first.label, second.label],
            "amix=inputs=2:dropout_transition=0:normalize=0",
            "m",
        )
        return FfmpegStream(first.graph, label)

    def normalize(self, stream: FfmpegStream, sample_rate: int, channels: int) -> FfmpegStream:
        layout = _CHANNEL_LAYOUTS.get(channels, f"{channels}c")
        label = stream.graph.add(
            [stream.label],
            f"aformat=sample_fmts=fltp:sample_rates={sample_rate}:channel_layouts={layout}",
            "n",
        )
        return FfmpegStream(stream.graph, label)

    def build_command(self, stream: FfmpegStream, output_path: Path) -> list[str]:
        cmd = ["ffmpeg", "-y"]
        for path in stream.graph.inputs:
            cmd += ["-i", path]
        cmd += [
            "-filter_complex",
            "; ".join(stream.graph.filters),
            "-map",
            f"[{stream.label}]",
            "-c:a",
            "libmp3lame",
            "-q:a",
            str(self.quality),
            "-f",
            "mp3",
            str(output_path),
        ]
        return cmd

    def encode(self, stream: FfmpegStream, output_path: Path) -> None:
        try:
            run(self.build_command(stream, output_path), timeout=self.timeout)
        except CommandError as e:
            raise CompositionError(f"Failed to mix timed audio: {e}\n{e.output}") from e


class PydubBackend(MediaBackend):
    """In-process backend on pydub AudioSegments (WAV needs no ffmpeg).

    `timeout` only bounds `render_composite`. pydub runs its own ffmpeg
    processes for compressed formats and offers no time limit for them.
    """

    def __init__(self, timeout: float | None = None, export_format: str = "mp3"):
        super().__init__(timeout)
        self.export_format = export_format

    @staticmethod
    def _read(path: Path) -> AudioSegment:
        fmt = Path(path).suffix.lstrip(".").lower() or None
        return AudioSegment.from_file(str(path), format=fmt)

    def probe_duration(self, path: Path) -> timedelta:
        try:
            clip = self._read(path)
        except _DECODE_ERRORS as e:
            raise DurationProbeError(f"Failed to probe duration of {path}: {e}") from e
        return timedelta(milliseconds=len(clip))

    def load(self, paths: list[Path]) -> list[AudioSegment]:
        try:
            return [self._read(p) for p in paths]
        except _DECODE_ERRORS as e:
            raise CompositionError(f"Failed to load audio clips: {e}") from e

    def delay(self, stream: AudioSegment, delay_ms: int) -> AudioSegment:
        if delay_ms <= 0:
            return stream
        lead = AudioSegment.silent(duration=delay_ms, frame_rate=stream.frame_rate)
        return lead.set_channels(stream.channels).set_sample_width(stream.sample_width) + stream

    def mix(self, first: AudioSegment, second: AudioSegment) -> AudioSegment:
        dur = max(len(first), len(second))

        def pad(seg: AudioSegment) -> AudioSegment:
            if len(seg) >= dur:
                return seg
            return seg + AudioSegment.silent(duration=dur - len(seg), frame_rate=seg.frame_rate)

        return pad(first).overlay(pad(second))

    def normalize(self, stream: AudioSegment, sample_rate: int, channels: int) -> AudioSegment:
        return stream.set_frame_rate(sample_rate).set_channels(channels)

    def encode(self, stream: AudioSegment, output_path: Path) -> None:
        params = ["-q:a", "0"] if self.export_format == "mp3" else None
        try:
            stream.export(str(output_path), format=self.export_format, parameters=params).close()
        except (CouldntEncodeError, OSError) as e:
            raise CompositionError(f"Failed to encode timed audio: {e}") from e
