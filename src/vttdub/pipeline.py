"""
End-to-end conversion: WebVTT -> narrated MP3, or MP4 with burned-in subtitles.
"""

import logging
import shutil
from dataclasses import replace
from pathlib import Path

from .backend import MediaBackend
from .exceptions import RenderError
from .io_ffmpeg import ensure_dir, scratch_dir
from .models import CompositeAudio, ConvertOptions, CueSet
from .timeline import compose_clips, materialize_clips
from .tts import SpeechGateway
from .vtt_utils import parse_vtt, write_vtt

logger = logging.getLogger("vttdub")


def convert_to_audio(
    cues: CueSet,
    gateway: SpeechGateway,
    backend: MediaBackend,
    options: ConvertOptions,
) -> CompositeAudio:
    """Synthesize and compose into a scratch file, then move it onto the output path."""
    output = Path(options.output_file)
    with scratch_dir(parent=options.scratch_root) as scratch:
        clips = materialize_clips(
            cues,
            gateway,
            scratch,
            options.language_code,
            gender=options.gender,
            audio_format=options.audio_format,
        )
        composite = compose_clips(clips, backend, scratch / f"composite{output.suffix}")
        ensure_dir(str(output.parent))
        shutil.move(str(composite.path), str(output))
    logger.info("Exported narration -> %s", output)
    return CompositeAudio(path=output, duration=composite.duration)


def convert_to_video(
    cues: CueSet,
    gateway: SpeechGateway,
    backend: MediaBackend,
    options: ConvertOptions,
) -> CompositeAudio:
    """Narrate, re-serialize the cues and render them over a plain background."""
    output = Path(options.output_file)
    with scratch_dir(prefix="vttdub_video_", parent=options.scratch_root) as tmp:
        audio_path = tmp / "audio.mp3"
        subs_path = tmp / "subtitles.vtt"

        composite = convert_to_audio(
            cues, gateway, backend, replace(options, output_file=str(audio_path))
        )
        write_vtt(cues, str(subs_path))
        logger.info("Rendering video (%.3fs of audio)", composite.duration.total_seconds())

        ensure_dir(str(output.parent))
        try:
            backend.render_composite(audio_path, subs_path, output)
        except RenderError:
            output.unlink(missing_ok=True)
            raise
    logger.info("Done (video) -> %s", output)
    return CompositeAudio(path=output, duration=composite.duration)


def convert(
    options: ConvertOptions,
    gateway: SpeechGateway,
    backend: MediaBackend,
    cues: CueSet | None = None,
) -> CompositeAudio:
    """Produce audio or video depending on the output extension.

    The input file is parsed unless already-parsed `cues` are given.
    """
    if cues is None:
        cues = parse_vtt(options.input_file)
    logger.info("Loaded VTT -> %s (%d cues)", options.input_file, len(cues))
    if options.is_video_output:
        return convert_to_video(cues, gateway, backend, options)
    return convert_to_audio(cues, gateway, backend, options)
