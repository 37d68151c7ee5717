"""
WebVTT narration pipeline - subtitle-timed speech as audio or video.

A small pipeline for:
- Parsing WebVTT subtitles into timed cues
- Synthesizing speech per cue with Google, OpenAI or ElevenLabs TTS
- Compositing the clips into one audio track aligned to cue start times
- Rendering an MP4 with burned-in subtitles and an elapsed-time readout
"""

__version__ = "0.1.0"
