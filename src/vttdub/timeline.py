"""
Per-cue synthesis and timed composition of the narration track.
"""

import logging
from collections.abc import Sequence
from datetime import timedelta
from pathlib import Path

from tqdm import tqdm

from .backend import MediaBackend
from .exceptions import CountMismatchError, NoClipsError, SynthesisError
from .models import (
    AudioClip,
    AudioFormat,
    CompositeAudio,
    CueSet,
    SynthesisRequest,
    VoiceGender,
    timedelta_to_ms,
)
from .tts import SpeechGateway

logger = logging.getLogger("vttdub")

OUTPUT_SAMPLE_RATE = 44100
OUTPUT_CHANNELS = 2


def build_requests(
    cues: CueSet,
    language_code: str,
    gender: VoiceGender = VoiceGender.NEUTRAL,
    audio_format: AudioFormat = AudioFormat.MP3,
) -> list[SynthesisRequest]:
    """One synthesis request per cue, carrying the cue start as offset."""
    return [
        SynthesisRequest(
            text=cue.text,
            language_code=language_code,
            gender=gender,
            audio_format=audio_format,
            start_offset=cue.start,
        )
        for cue in cues
    ]


def materialize_clips(
    cues: CueSet,
    gateway: SpeechGateway,
    scratch_dir: Path,
    language_code: str,
    gender: VoiceGender = VoiceGender.NEUTRAL,
    audio_format: AudioFormat = AudioFormat.MP3,
) -> list[AudioClip]:
    """Synthesize every cue, in order, into `scratch_dir`.

    The first failure aborts the run; no clip is skipped or replaced by
    silence.
    """
    requests = build_requests(cues, language_code, gender, audio_format)
    clips: list[AudioClip] = []
    for i, req in enumerate(tqdm(requests, desc=f"TTS {gateway.name}")):
        try:
            audio = gateway.synthesize(req.text, req.language_code, req.gender, req.audio_format)
        except SynthesisError as e:
            e.cue_index = i
            logger.error("TTS failed for cue %d: %s", i, e)
            raise
        except Exception as e:
            logger.error("TTS failed for cue %d: %s", i, e)
            raise SynthesisError(f"TTS failed for cue {i}: {e}", cue_index=i) from e
        if not audio:
            raise SynthesisError(f"Empty audio payload for cue {i}", cue_index=i)

        clip_path = Path(scratch_dir) / f"clip_{i:04d}.{req.audio_format.value}"
        clip_path.write_bytes(audio)
        clips.append(AudioClip(index=i, path=clip_path, start_offset=req.start_offset))
    logger.info("Synthesized %d clip(s)", len(clips))
    return clips


def compose_timeline(
    clip_paths: Sequence[Path],
    offsets: Sequence[timedelta],
    backend: MediaBackend,
    output_path: Path,
) -> CompositeAudio:
    """
    Mix clips into one track where clip i starts at offsets[i].

    Durations are measured from the decoded clips, never taken from the cue
    end times. Each clip is delayed by its offset, then the delayed streams
    are folded with a binary additive mix (no gain reduction) and the result
    is normalized to 44.1 kHz stereo.
    """
    if not clip_paths:
        raise NoClipsError("No audio clips to compose")
    if len(clip_paths) != len(offsets):
        raise CountMismatchError(
            f"Clip count ({len(clip_paths)}) does not match offset count ({len(offsets)})"
        )

    max_end = timedelta(0)
    for path, offset in zip(clip_paths, offsets):
        duration = backend.probe_duration(path)
        logger.debug("clip %s: offset=%s duration=%s", Path(path).name, offset, duration)
        max_end = max(max_end, offset + duration)

    streams = backend.load(list(clip_paths))
    delayed = [backend.delay(s, timedelta_to_ms(o)) for s, o in zip(streams, offsets)]

    if len(delayed) == 1:
        mixed = delayed[0]
    else:
        mixed = backend.mix(delayed[0], delayed[1])
        for stream in delayed[2:]:
            mixed = backend.mix(mixed, stream)

    out = backend.normalize(mixed, OUTPUT_SAMPLE_RATE, OUTPUT_CHANNELS)
    backend.encode(out, Path(output_path))
    logger.info("[dur] composite = %.3fs (%d clip(s))", max_end.total_seconds(), len(delayed))
    return CompositeAudio(path=Path(output_path), duration=max_end)


def compose_clips(clips: Sequence[AudioClip], backend: MediaBackend, output_path: Path) -> CompositeAudio:
    """Compose materialized clips, keeping each clip paired with its own offset."""
    return compose_timeline(
        [c.path for c in clips], [c.start_offset for c in clips], backend, output_path
    )
