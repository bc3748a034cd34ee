# tracelab/errors.py
from __future__ import annotations


class TracerError(Exception):
    """Base class for every error raised by the tracer family."""


class ConfigurationError(TracerError, ValueError):
    """Invalid construction parameters; the tracer is never usable."""


class SamplingUnavailable(TracerError):
    """A platform resource read failed for one callback."""


class DataIntegrityFault(TracerError):
    """Aligned series disagree in length when a result is requested."""


class SerializationFault(TracerError):
    """The tabular writer failed on in-memory rows."""
