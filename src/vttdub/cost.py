"""
Cost estimation for the speech providers.
"""

from .models import CueSet

DEFAULT_RATES = {
    "tts_google_per_mchar": 16.0,
    "tts_openai_per_mchar": 15.0,
    "tts_elevenlabs_per_mchar": 300.0,
}


def count_characters(cues: CueSet) -> int:
    """Billable characters: the text of every cue, line breaks excluded."""
    return sum(len(cue.text.replace("\n", "")) for cue in cues)


def estimate_costs(
    characters: int,
    tts_provider: str,
    *,
    rates: dict[str, float | None],
) -> dict[str, float | None]:
    """Estimate synthesis cost from the character count."""
    tts_cost: float | None = None
    rate = rates.get(f"tts_{tts_provider}_per_mchar")
    if rate is not None:
        tts_cost = (characters / 1_000_000.0) * float(rate)
    return {
        "characters": float(characters),
        "tts_cost": tts_cost,
        "total": tts_cost or 0.0,
    }
