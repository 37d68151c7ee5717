"""
Text-to-speech gateways: Google Cloud, OpenAI and ElevenLabs.
"""

import base64
import io
import logging
from abc import ABC, abstractmethod

import httpx
from pydub import AudioSegment

from .exceptions import ConfigurationError, SynthesisError
from .models import AudioFormat, VoiceGender

logger = logging.getLogger("vttdub")

# Optional OpenAI SDK
try:
    from openai import OpenAI
except ImportError:
    OpenAI = None

USER_AGENT = "vttdub/0.1"
HTTP_OK = 200

GOOGLE_TTS_URL = "https://texttospeech.googleapis.com/v1/text:synthesize"
ELEVENLABS_TTS_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"

# OpenAI has no gender parameter; pick a voice per gender instead
OPENAI_VOICES = {
    VoiceGender.MALE: "onyx",
    VoiceGender.FEMALE: "nova",
    VoiceGender.NEUTRAL: "alloy",
}


class SpeechGateway(ABC):
    """Turns one piece of text into encoded audio bytes."""

    name = "base"

    @abstractmethod
    def synthesize(
        self,
        text: str,
        language_code: str,
        gender: VoiceGender,
        audio_format: AudioFormat,
    ) -> bytes:
        """Return encoded audio for `text`. Raises SynthesisError."""


class GoogleTTSGateway(SpeechGateway):
    """Google Cloud Text-to-Speech over its REST API (API key auth)."""

    name = "google"

    _GENDERS = {
        VoiceGender.MALE: "MALE",
        VoiceGender.FEMALE: "FEMALE",
        VoiceGender.NEUTRAL: "NEUTRAL",
    }
    _ENCODINGS = {AudioFormat.MP3: "MP3", AudioFormat.WAV: "LINEAR16"}

    def __init__(self, api_key: str, timeout: float = 60.0, client: httpx.Client | None = None):
        if not api_key:
            raise ConfigurationError("GOOGLE_API_KEY is not set. Put it in .env or environment.")
        self.api_key = api_key
        self.client = client or httpx.Client(follow_redirects=True, timeout=timeout)

    def synthesize(self, text, language_code, gender, audio_format) -> bytes:
        payload = {
            "input": {"text": text},
            "voice": {"languageCode": language_code, "ssmlGender": self._GENDERS[gender]},
            "audioConfig": {"audioEncoding": self._ENCODINGS[audio_format]},
        }
        try:
            r = self.client.post(
                GOOGLE_TTS_URL,
                params={"key": self.api_key},
                json=payload,
                headers={"User-Agent": USER_AGENT},
            )
        except httpx.HTTPError as e:
            raise SynthesisError(f"Google TTS request failed: {e}") from e
        if r.status_code != HTTP_OK:
            raise SynthesisError(f"Google TTS failed: {r.status_code} {r.text[:300]}")
        content = r.json().get("audioContent")
        if not content:
            raise SynthesisError("Google TTS returned no audioContent")
        return base64.b64decode(content)


class OpenAITTSGateway(SpeechGateway):
    """OpenAI speech endpoint; language is inferred from the text by the model."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini-tts",
        voice: str | None = None,
        timeout: float = 60.0,
    ):
        if not OpenAI:
            raise ConfigurationError("openai package not installed. Install with: pip install openai")
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY is not set. Put it in .env or environment.")
        self.client = OpenAI(api_key=api_key, timeout=timeout)
        self.model = model
        self.voice = voice

    def synthesize(self, text, language_code, gender, audio_format) -> bytes:
        voice = self.voice or OPENAI_VOICES[gender]
        logger.debug("OpenAI TTS voice=%s (language hint %s not sent)", voice, language_code)
        try:
            resp = self.client.audio.speech.create(
                model=self.model,
                voice=voice,
                input=text,
                response_format=audio_format.value,
            )
        except Exception as e:
            raise SynthesisError(f"OpenAI TTS failed: {e}") from e
        return resp.content


class ElevenLabsGateway(SpeechGateway):
    """ElevenLabs TTS; always fetches MP3 and converts when WAV is requested."""

    name = "elevenlabs"

    def __init__(
        self,
        api_key: str,
        voice_id: str,
        model_id: str = "eleven_multilingual_v2",
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ):
        if not api_key:
            raise ConfigurationError("ELEVENLABS_API_KEY is not set.")
        if not voice_id:
            raise ConfigurationError(
                "ElevenLabs voice_id is required (use --voice or ELEVENLABS_VOICE_ID)."
            )
        self.api_key = api_key
        self.voice_id = voice_id
        self.model_id = model_id
        self.client = client or httpx.Client(follow_redirects=True, timeout=timeout)

    def synthesize(self, text, language_code, gender, audio_format) -> bytes:
        headers = {
            "xi-api-key": self.api_key,
            "accept": "audio/mpeg",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        payload = {
            "text": text,
            "model_id": self.model_id,
            "language_code": language_code.split("-")[0],
            "voice_settings": {"stability": 0.5, "similarity_boost": 0.75},
        }
        try:
            r = self.client.post(
                ELEVENLABS_TTS_URL.format(voice_id=self.voice_id), json=payload, headers=headers
            )
        except httpx.HTTPError as e:
            raise SynthesisError(f"ElevenLabs TTS request failed: {e}") from e
        ctype = r.headers.get("content-type", "")
        if r.status_code != HTTP_OK or not ctype.startswith(("audio/", "application/octet-stream")):
            raise SynthesisError(f"ElevenLabs TTS failed: {r.status_code} {r.text[:300]}")
        if audio_format is AudioFormat.MP3:
            return r.content
        clip = AudioSegment.from_file(io.BytesIO(r.content), format="mp3")
        buf = io.BytesIO()
        clip.export(buf, format="wav")
        return buf.getvalue()


def make_gateway(
    provider: str,
    *,
    api_key: str | None,
    model: str | None = None,
    voice: str | None = None,
    timeout: float = 60.0,
) -> SpeechGateway:
    """Create the speech gateway for a provider name."""
    if provider == "google":
        return GoogleTTSGateway(api_key or "", timeout=timeout)
    if provider == "openai":
        return OpenAITTSGateway(
            api_key or "", model=model or "gpt-4o-mini-tts", voice=voice, timeout=timeout
        )
    if provider == "elevenlabs":
        return ElevenLabsGateway(
            api_key or "",
            voice or "",
            model_id=model or "eleven_multilingual_v2",
            timeout=timeout,
        )
    raise ConfigurationError(f"Unknown TTS provider: {provider}")
