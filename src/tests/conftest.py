"""
Shared fixtures.
"""

import pytest

from src.tests.audio_helpers import StubGateway
from src.vttdub.backend import PydubBackend


@pytest.fixture
def stub_gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def wav_backend() -> PydubBackend:
    """Pydub backend writing WAV, so tests need no ffmpeg."""
    return PydubBackend(export_format="wav")
