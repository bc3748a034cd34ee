# tracelab/variants.py
"""Named tracer variants, registered into DEFAULT_DIRECTORY on import."""
from __future__ import annotations

from functools import partial
from typing import Optional, Union

from .config import TracerConfig
from .errors import ConfigurationError
from .registry import DEFAULT_DIRECTORY, TracerDirectory
from .store import CsvFileStore, SeriesStore
from .telemetry import (
    CyclesSampler,
    IORateSampler,
    IOSampler,
    MemorySampler,
    WallClockSampler,
    sampler_for,
)
from .tracer import Tracer

RawConfig = Union[str, bytes, None]


def _store_factory(cfg: TracerConfig):
    if cfg.store == "file":
        return partial(CsvFileStore, path=cfg.csv_path)
    return SeriesStore


def _fixed_config(raw: RawConfig, dimension: str, **defaults) -> TracerConfig:
    cfg = TracerConfig.from_json(raw, dimensions={dimension}, **defaults)
    if cfg.dimensions != {dimension}:
        raise ConfigurationError(
            f"this tracer only samples {dimension!r}, got dimensions {sorted(cfg.dimensions)}"
        )
    return cfg


def new_memory_tracer(raw: RawConfig = None) -> Tracer:
    cfg = _fixed_config(raw, "memory", store="file")
    return Tracer(
        [MemorySampler()],
        cfg.resolution,
        record_instructions=False,
        baseline_row=True,
        final_row=True,
        store_factory=_store_factory(cfg),
    )


def new_memory_transaction_tracer(raw: RawConfig = None) -> Tracer:
    cfg = _fixed_config(raw, "memory")
    return Tracer(
        [MemorySampler()],
        cfg.resolution,
        record_instructions=False,
        sample_instructions=False,
        baseline_row=True,
        final_row=True,
        store_factory=_store_factory(cfg),
    )


def new_cycle_tracer(raw: RawConfig = None) -> Tracer:
    cfg = _fixed_config(raw, "cycles", resolution=1)
    return Tracer(
        [CyclesSampler(mode=cfg.cycles_mode, cpu_mhz=cfg.cpu_mhz)],
        cfg.resolution,
        cost_mode=cfg.cost_mode,
        store_factory=_store_factory(cfg),
    )


def new_timing_tracer(raw: RawConfig = None) -> Tracer:
    cfg = _fixed_config(raw, "time", resolution=1)
    return Tracer(
        [WallClockSampler()],
        cfg.resolution,
        cost_mode=cfg.cost_mode,
        store_factory=_store_factory(cfg),
    )


def new_storage_tracer(raw: RawConfig = None) -> Tracer:
    cfg = _fixed_config(raw, "io")
    return Tracer(
        [IOSampler(source=cfg.io_source)],
        cfg.resolution,
        record_instructions=False,
        baseline_row=True,
        final_row=True,
        store_factory=_store_factory(cfg),
    )


def new_io_rate_tracer(raw: RawConfig = None) -> Tracer:
    cfg = _fixed_config(raw, "io_rate")
    return Tracer(
        [IORateSampler(source=cfg.io_source)],
        cfg.resolution,
        record_instructions=False,
        baseline_row=True,
        final_row=True,
        store_factory=_store_factory(cfg),
    )


def new_resource_tracer(raw: RawConfig = None) -> Tracer:
    """Instruction rows over any combination of dimensions."""
    cfg = TracerConfig.from_json(raw)
    samplers = [
        sampler_for(d, cycles_mode=cfg.cycles_mode, cpu_mhz=cfg.cpu_mhz, io_source=cfg.io_source)
        for d in cfg.ordered_dimensions()
    ]
    return Tracer(samplers, cfg.resolution, cost_mode=cfg.cost_mode, store_factory=_store_factory(cfg))


VARIANTS = {
    "memoryTracer": new_memory_tracer,
    "memoryTransactionTracer": new_memory_transaction_tracer,
    "cycleTracer": new_cycle_tracer,
    "timingTracer": new_timing_tracer,
    "storageTracer": new_storage_tracer,
    "ioRateTracer": new_io_rate_tracer,
    "resourceTracer": new_resource_tracer,
}


def register_all(directory: TracerDirectory) -> None:
    for name, ctor in VARIANTS.items():
        directory.register(name, ctor)


def new_tracer(name: str, raw: RawConfig = None, directory: Optional[TracerDirectory] = None) -> Tracer:
    return (directory or DEFAULT_DIRECTORY).lookup(name)(raw)


register_all(DEFAULT_DIRECTORY)
