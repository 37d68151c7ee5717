"""Custom exceptions for the vttdub pipeline."""


class VttDubError(Exception):
    """Base class for exceptions in this package."""


class ConfigurationError(VttDubError):
    """Missing credentials, tools or invalid option combinations."""


class ParseError(VttDubError):
    """Malformed WebVTT input. No partial cue list is ever returned."""


class InvalidHeaderError(ParseError):
    """The first line does not start with the WEBVTT header."""


class InvalidTimestampError(ParseError):
    """A timing line or timestamp does not have the HH:MM:SS.mmm shape."""


class InvalidSecondsFormatError(ParseError):
    """The seconds field is not SS.mmm with exactly three fractional digits."""


class InvalidCueTimingError(ParseError):
    """A cue starts after it ends."""


class SynthesisError(VttDubError):
    """The speech provider failed for one cue."""

    def __init__(self, message: str, cue_index: int | None = None):
        super().__init__(message)
        self.cue_index = cue_index


class CompositionError(VttDubError):
    """Clips could not be combined into a timed stream."""


class NoClipsError(CompositionError):
    """There is nothing to compose."""


class CountMismatchError(CompositionError):
    """Offsets and clips are not paired one to one."""


class DurationProbeError(CompositionError):
    """The decoded duration of a clip could not be measured."""


class RenderError(VttDubError):
    """The video rendering backend failed."""


class ResourceError(VttDubError):
    """A scratch directory or file could not be created."""


class CommandError(VttDubError):
    """An external command exited with a non-zero code or timed out."""

    def __init__(self, message: str, returncode: int | None = None, output: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output = output
