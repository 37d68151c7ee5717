"""
Data models for the WebVTT narration pipeline.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from pathlib import Path


class VoiceGender(Enum):
    """Voice gender requested from the speech provider."""

    MALE = "male"
    FEMALE = "female"
    NEUTRAL = "neutral"


class AudioFormat(Enum):
    """Encoding requested for each synthesized clip (value is the file extension)."""

    MP3 = "mp3"
    WAV = "wav"


@dataclass(frozen=True)
class Cue:
    """A single subtitle cue with timing and text."""

    id: str | None
    start: timedelta
    end: timedelta
    text: str  # lines joined with "\n"


@dataclass(frozen=True)
class CueSet:
    """Cues of one parsed file, in file order."""

    cues: tuple[Cue, ...] = ()

    def __iter__(self) -> Iterator[Cue]:
        return iter(self.cues)

    def __len__(self) -> int:
        return len(self.cues)

    def __getitem__(self, index: int) -> Cue:
        return self.cues[index]


@dataclass
class SynthesisRequest:
    """Text and voice parameters for one cue."""

    text: str
    language_code: str
    gender: VoiceGender
    audio_format: AudioFormat
    start_offset: timedelta  # composition only, never sent to the provider


@dataclass
class AudioClip:
    """A synthesized clip on scratch storage, anchored at its cue start."""

    index: int
    path: Path
    start_offset: timedelta


@dataclass
class CompositeAudio:
    """The encoded, time-aligned mix of all clips."""

    path: Path
    duration: timedelta  # max(offset + measured clip duration)


@dataclass
class ConvertOptions:
    """Options for one conversion run."""

    input_file: str
    output_file: str
    language_code: str = "ja"
    gender: VoiceGender = VoiceGender.NEUTRAL
    audio_format: AudioFormat = AudioFormat.MP3
    scratch_root: str | None = None  # parent for per-run scratch dirs (system temp if None)

    @property
    def is_video_output(self) -> bool:
        return Path(self.output_file).suffix.lower() == ".mp4"


def timedelta_to_ms(value: timedelta) -> int:
    """Convert a timedelta to whole milliseconds without float rounding."""
    return value // timedelta(milliseconds=1)
