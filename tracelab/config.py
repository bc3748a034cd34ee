# tracelab/config.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Set, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError

Dimension = Literal["memory", "cycles", "time", "io", "io_rate"]

DIMENSIONS = ("memory", "cycles", "time", "io", "io_rate")


class TracerConfig(BaseModel):
    resolution: int = 100
    dimensions: Set[Dimension] = Field(default_factory=lambda: {"cycles"})
    store: Literal["memory", "file"] = "memory"
    csv_path: Optional[Path] = None
    cost_mode: Literal["metered", "scheduled"] = "metered"
    cycles_mode: Literal["interval", "cumulative"] = "interval"
    cpu_mhz: Optional[float] = None
    io_source: Literal["psutil", "proc"] = "psutil"

    model_config = {"extra": "forbid"}

    @field_validator("resolution")
    @classmethod
    def _positive_resolution(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("resolution must be a positive integer")
        return v

    @field_validator("dimensions")
    @classmethod
    def _non_empty(cls, v: Set[str]) -> Set[str]:
        if not v:
            raise ValueError("at least one dimension is required")
        return v

    @field_validator("cpu_mhz")
    @classmethod
    def _positive_mhz(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("cpu_mhz must be positive")
        return v

    def ordered_dimensions(self) -> list[str]:
        # set iteration order is not stable across runs
        return [d for d in DIMENSIONS if d in self.dimensions]

    @classmethod
    def parse(cls, data: Optional[Dict[str, Any]] = None, **defaults: Any) -> "TracerConfig":
        merged = dict(defaults)
        merged.update(data or {})
        try:
            return cls(**merged)
        except ValidationError as e:
            raise ConfigurationError(f"invalid tracer config: {e}") from e
        except TypeError as e:
            raise ConfigurationError(f"invalid tracer config: {e}") from e

    @classmethod
    def from_json(cls, raw: Union[str, bytes, None] = None, **defaults: Any) -> "TracerConfig":
        """Build a config from the raw JSON blob handed to a tracer constructor."""
        if raw is None or (isinstance(raw, (str, bytes)) and not raw.strip()):
            return cls.parse(None, **defaults)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"tracer config is not valid JSON: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError("tracer config must be a JSON object")
        return cls.parse(data, **defaults)
