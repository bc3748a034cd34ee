# tracelab/gate.py
from __future__ import annotations

from .errors import ConfigurationError


class ResolutionGate:
    """Frequency divider over the instruction counter.

    Sampling happens when ``counter % resolution == 0``; ``resolution=1``
    samples every instruction. The gate keeps no state besides the
    resolution, so it can be rebuilt from the counter value alone.
    """

    def __init__(self, resolution: int):
        if isinstance(resolution, bool) or not isinstance(resolution, int):
            raise ConfigurationError(f"resolution must be an integer, got {resolution!r}")
        if resolution <= 0:
            raise ConfigurationError(f"resolution must be positive, got {resolution}")
        self.resolution = resolution

    def should_sample(self, counter: int) -> bool:
        return counter % self.resolution == 0

    @staticmethod
    def advance(counter: int) -> int:
        return counter + 1

    def __repr__(self) -> str:
        return f"ResolutionGate(resolution={self.resolution})"
