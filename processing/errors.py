"""Fatal error kinds raised by the compression engine.

Size-insufficiency on the image path is recovered locally by returning the
original asset and therefore has no exception here.
"""


class CompressionError(RuntimeError):
    """Base class for every fatal compression failure."""


class EncoderUnavailableError(CompressionError):
    """The encoder collaborator is missing or failed to initialize."""


class DecodeError(CompressionError):
    """The input asset could not be decoded."""


class EmptyOutputError(CompressionError):
    """The encoder finished but produced no bytes."""


class TranscodeError(CompressionError):
    """The encoder ran and reported a failure."""
