"""Error taxonomy shared by the core and the MCP layer.

Every error raised on purpose by the core derives from ``PythiaError``. Its
message is safe to hand back to a caller: no paths, no stderr, no traceback.
"""

from __future__ import annotations


class PythiaError(Exception):
    """Base class for caller-facing errors."""


class ValidationError(PythiaError, ValueError):
    """Malformed, out-of-range, or unknown-enum input.

    Always raised before the engine is invoked or any file is written.
    """


class RangeError(ValidationError):
    """A numeric value is not finite or lies outside its allowed range."""


class SerializationError(PythiaError):
    """A generated input document failed its well-formedness check."""


class EngineError(PythiaError):
    """The Lilith engine failed, timed out, or returned unusable output."""


class AggregateFailure(PythiaError):
    """Every point of a scan failed."""


class DatasetNotFoundError(PythiaError):
    """A requested experimental dataset file does not exist."""
