"""
Command-line interface for the WebVTT narration pipeline.
"""

import argparse
import logging
import os
import pathlib
import sys

from dotenv import load_dotenv

from .backend import FfmpegBackend, MediaBackend, PydubBackend
from .cost import DEFAULT_RATES, count_characters, estimate_costs
from .exceptions import VttDubError
from .io_ffmpeg import check_ffmpeg
from .models import AudioFormat, ConvertOptions, VoiceGender
from .pipeline import convert
from .tts import make_gateway
from .vtt_utils import parse_vtt

logger = logging.getLogger("vttdub")

API_KEY_ENV = {
    "google": "GOOGLE_API_KEY",
    "openai": "OPENAI_API_KEY",
    "elevenlabs": "ELEVENLABS_API_KEY",
}


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    ap = argparse.ArgumentParser(
        prog="vttdub", description="Narrate a WebVTT file as MP3 (or MP4 with burned-in subtitles)"
    )

    # IO
    ap.add_argument("-i", "--input", default="input.vtt", help="Input VTT file")
    ap.add_argument(
        "-o", "--output", default="out.mp3", help="Output file (.mp4 renders a video)"
    )
    ap.add_argument("-l", "--language", default="ja", help="Language code for synthesis")

    # TTS provider & voice
    ap.add_argument(
        "--tts-provider",
        choices=sorted(API_KEY_ENV),
        default=os.getenv("VTTDUB_TTS_PROVIDER", "google"),
    )
    ap.add_argument(
        "--gender", choices=[g.value for g in VoiceGender], default=VoiceGender.NEUTRAL.value
    )
    ap.add_argument(
        "--clip-format",
        choices=[f.value for f in AudioFormat],
        default=AudioFormat.MP3.value,
        help="Encoding requested for each synthesized clip",
    )
    ap.add_argument("--tts-model", default=None, help="Model for openai/elevenlabs providers")
    ap.add_argument(
        "--voice",
        default=None,
        help="OpenAI voice name or ElevenLabs voice_id (defaults to $ELEVENLABS_VOICE_ID)",
    )

    # Media backend
    ap.add_argument(
        "--backend",
        choices=["ffmpeg", "pydub"],
        default="ffmpeg",
        help="ffmpeg: one filter graph per run; pydub: mix in-process",
    )
    ap.add_argument(
        "--timeout",
        type=float,
        default=float(os.getenv("VTTDUB_TIMEOUT", "600")),
        help="Timeout (sec) for each external command or API call",
    )
    ap.add_argument("--scratch-dir", default=None, help="Parent directory for scratch files")

    # Cost estimation
    ap.add_argument("--estimate-only", action="store_true", help="Print cost estimate and exit")

    # Logging
    ap.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return ap.parse_args(argv)


def make_backend(name: str, timeout: float | None) -> MediaBackend:
    """Create the media backend (ffmpeg availability is checked up front)."""
    if name == "ffmpeg":
        check_ffmpeg()
        return FfmpegBackend(timeout=timeout)
    return PydubBackend(timeout=timeout)


def _run(args: argparse.Namespace) -> None:
    options = ConvertOptions(
        input_file=args.input,
        output_file=args.output,
        language_code=args.language,
        gender=VoiceGender(args.gender),
        audio_format=AudioFormat(args.clip_format),
        scratch_root=args.scratch_dir,
    )
    logger.info("Converting %s -> %s (language %s)", args.input, args.output, args.language)
    if options.is_video_output:
        logger.info(".mp4 extension detected, rendering video output")

    cues = parse_vtt(args.input)

    chars = count_characters(cues)
    est = estimate_costs(chars, args.tts_provider, rates=DEFAULT_RATES)
    tts_str = "n/a" if est["tts_cost"] is None else f"${est['tts_cost']:.4f}"
    logger.info("=== Estimated TTS cost (%s, %d chars): %s ===", args.tts_provider, chars, tts_str)
    if args.estimate_only:
        return

    backend = make_backend(args.backend, args.timeout)
    voice = args.voice
    if args.tts_provider == "elevenlabs" and not voice:
        voice = os.getenv("ELEVENLABS_VOICE_ID")
    gateway = make_gateway(
        args.tts_provider,
        api_key=os.getenv(API_KEY_ENV[args.tts_provider]),
        model=args.tts_model,
        voice=voice,
        timeout=args.timeout,
    )

    convert(options, gateway, backend, cues=cues)
    logger.info("Converted %s -> %s", args.input, args.output)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point. Returns the process exit code."""
    # Look for .env in the project root (parent of src directory)
    project_root = pathlib.Path(__file__).parent.parent.parent
    env_path = project_root / ".env"
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()

    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        _run(args)
    except (VttDubError, OSError) as e:
        logger.error("Conversion failed: %s", e)
        message = str(e).splitlines()[0] if str(e) else type(e).__name__
        print(f"Error: {message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
