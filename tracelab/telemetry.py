# tracelab/telemetry.py
"""
Resource samplers: one snapshot of one resource dimension per call.

Every sampler exposes ``columns`` (names in output order), ``prime()`` at
transaction start, ``mark()`` after every instruction boundary and
``sample()`` returning one value per column. Platform reads go through
psutil; any failure there is reported as SamplingUnavailable so the tracer
can skip the row and keep going.
"""
from __future__ import annotations

import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

import psutil

from .errors import ConfigurationError, SamplingUnavailable

_PLATFORM_ERRORS = (psutil.Error, OSError, AttributeError, NotImplementedError)

# anonymous mappings count towards the heap, python's allocator lives there
_HEAP_PATHS = {"[heap]", "", "[anon]"}


def _b_to_mb(b: int) -> int:
    return int(b) // 1024 // 1024


@dataclass(frozen=True)
class MemorySnapshot:
    heap_alloc: int
    heap_sys: int
    heap_idle: int
    heap_inuse: int
    stack_inuse: int
    stack_sys: int

    def as_row(self) -> Tuple[int, ...]:
        return (
            _b_to_mb(self.heap_alloc),
            _b_to_mb(self.heap_sys),
            _b_to_mb(self.heap_idle),
            _b_to_mb(self.heap_inuse),
            _b_to_mb(self.stack_inuse),
            _b_to_mb(self.stack_sys),
        )


@dataclass(frozen=True)
class IOSnapshot:
    rchar: int
    wchar: int
    syscr: int
    syscw: int
    read_bytes: int
    write_bytes: int
    cancelled_write_bytes: int = 0


def read_memory(proc: Optional[psutil.Process] = None) -> MemorySnapshot:
    """Heap and stack occupancy of the process, in bytes."""
    proc = proc or psutil.Process()
    heap_size = heap_rss = heap_dirty = 0
    stack_size = stack_rss = 0
    try:
        maps = proc.memory_maps(grouped=True)
    except _PLATFORM_ERRORS as e:
        raise SamplingUnavailable(f"memory maps unavailable: {e}") from e
    for m in maps:
        rss = int(m.rss)
        size = int(getattr(m, "size", rss))
        if m.path == "[stack]":
            stack_rss += rss
            stack_size += size
        elif m.path in _HEAP_PATHS or m.path.startswith("[anon"):
            heap_rss += rss
            heap_size += size
            heap_dirty += int(getattr(m, "private_dirty", rss))
    return MemorySnapshot(
        heap_alloc=heap_dirty,
        heap_sys=heap_size,
        heap_idle=max(heap_size - heap_rss, 0),
        heap_inuse=heap_rss,
        stack_inuse=stack_rss,
        stack_sys=stack_size,
    )


def read_io(proc: Optional[psutil.Process] = None) -> IOSnapshot:
    """Cumulative process I/O counters."""
    proc = proc or psutil.Process()
    try:
        c = proc.io_counters()
    except _PLATFORM_ERRORS as e:
        raise SamplingUnavailable(f"io counters unavailable: {e}") from e
    return IOSnapshot(
        rchar=int(getattr(c, "read_chars", 0)),
        wchar=int(getattr(c, "write_chars", 0)),
        syscr=int(c.read_count),
        syscw=int(c.write_count),
        read_bytes=int(c.read_bytes),
        write_bytes=int(c.write_bytes),
    )


_PROC_IO_FIELDS = (
    "rchar", "wchar", "syscr", "syscw", "read_bytes", "write_bytes", "cancelled_write_bytes",
)


def read_proc_io(pid: Optional[int] = None, path: Union[str, Path, None] = None) -> IOSnapshot:
    """Parse ``/proc/<pid>/io``; unlike psutil this also reports cancelled writes."""
    path = Path(path) if path is not None else Path(f"/proc/{pid or os.getpid()}/io")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SamplingUnavailable(f"cannot read {path}: {e}") from e
    values = {}
    for line in text.splitlines():
        key, sep, raw = line.partition(": ")
        if not sep or key not in _PROC_IO_FIELDS:
            continue
        try:
            values[key] = int(raw.strip())
        except ValueError:
            continue
    return IOSnapshot(**{f: values.get(f, 0) for f in _PROC_IO_FIELDS})


def read_cpu_mhz() -> float:
    try:
        freq = psutil.cpu_freq()
    except _PLATFORM_ERRORS as e:
        raise SamplingUnavailable(f"cpu frequency unavailable: {e}") from e
    if freq is None or not freq.current or freq.current <= 0:
        raise SamplingUnavailable("cpu frequency unavailable on this platform")
    return float(freq.current)


class ResourceSampler:
    columns: Tuple[str, ...] = ()

    def prime(self) -> None:
        pass

    def mark(self) -> None:
        pass

    def sample(self) -> Tuple:
        raise NotImplementedError


class MemorySampler(ResourceSampler):
    columns = ("heapAlloc", "heapSys", "heapIdle", "heapInuse", "stackInUse", "stackSys")

    def __init__(self, reader: Optional[Callable[[], MemorySnapshot]] = None):
        self._reader = reader or read_memory

    def sample(self) -> Tuple[int, ...]:
        return self._reader().as_row()


class CyclesSampler(ResourceSampler):
    """Estimated CPU cycles: thread CPU time scaled by the clock frequency.

    ``interval`` restarts the count at every mark, so each sample covers one
    instruction; ``cumulative`` counts from ``prime()``.
    """

    columns = ("cycles",)

    def __init__(
        self,
        mode: str = "interval",
        cpu_mhz: Optional[float] = None,
        clock: Callable[[], int] = time.thread_time_ns,
        freq_reader: Callable[[], float] = read_cpu_mhz,
    ):
        if mode not in ("interval", "cumulative"):
            raise ConfigurationError(f"unknown cycles mode: {mode!r}")
        self.mode = mode
        self._mhz = cpu_mhz
        self._clock = clock
        self._freq_reader = freq_reader
        self._origin: Optional[int] = None
        self._last: Optional[int] = None

    def _frequency(self) -> float:
        if self._mhz is None:
            self._mhz = self._freq_reader()
        return self._mhz

    def prime(self) -> None:
        self._origin = self._last = self._clock()

    def mark(self) -> None:
        if self.mode == "interval":
            self._last = self._clock()

    def sample(self) -> Tuple[int]:
        mhz = self._frequency()
        now = self._clock()
        if self._origin is None:
            self._origin = self._last = now
        base = self._last if self.mode == "interval" else self._origin
        return (int((now - base) * mhz / 1000),)


class WallClockSampler(ResourceSampler):
    columns = ("time",)

    def __init__(self, clock: Callable[[], int] = time.perf_counter_ns):
        self._clock = clock
        self._last: Optional[int] = None

    def prime(self) -> None:
        self._last = self._clock()

    mark = prime

    def sample(self) -> Tuple[int]:
        now = self._clock()
        if self._last is None:
            self._last = now
        return (now - self._last,)


IO_SOURCES = ("psutil", "proc")


def io_reader(source: str = "psutil") -> Callable[[], IOSnapshot]:
    """``proc`` parses /proc/<pid>/io directly and is the only source of cancelled writes."""
    if source == "psutil":
        return read_io
    if source == "proc":
        return read_proc_io
    raise ConfigurationError(f"unknown io source: {source!r}")


class IOSampler(ResourceSampler):
    columns = ("Rchar", "Wchar", "Syscr", "Syscw", "ReadBytes", "WriteBytes")

    def __init__(self, reader: Optional[Callable[[], IOSnapshot]] = None, source: str = "psutil"):
        default = io_reader(source)
        self._reader = reader or default
        self.source = source
        if source == "proc":
            self.columns = IOSampler.columns + ("CancelledWriteBytes",)

    def sample(self) -> Tuple[int, ...]:
        s = self._reader()
        row = (s.rchar, s.wchar, s.syscr, s.syscw, s.read_bytes, s.write_bytes)
        if self.source == "proc":
            row += (s.cancelled_write_bytes,)
        return row


class IORateSampler(ResourceSampler):
    """Block I/O since the previous sample and its rate in bytes/sec."""

    columns = ("IOReadBytes", "IOWriteBytes", "IOUsage")

    def __init__(
        self,
        reader: Optional[Callable[[], IOSnapshot]] = None,
        clock: Callable[[], int] = time.perf_counter_ns,
        source: str = "psutil",
    ):
        default = io_reader(source)
        self._reader = reader or default
        self._clock = clock
        self._prev: Optional[IOSnapshot] = None
        self._t: Optional[int] = None

    def prime(self) -> None:
        self._prev, self._t = self._reader(), self._clock()

    def sample(self) -> Tuple[int, int, float]:
        cur, now = self._reader(), self._clock()
        prev, t = self._prev, self._t
        self._prev, self._t = cur, now
        if prev is None:
            return (0, 0, 0.0)
        d_read = cur.read_bytes - prev.read_bytes
        d_write = cur.write_bytes - prev.write_bytes
        elapsed_s = (now - t) / 1e9
        usage = (d_read + d_write) / elapsed_s if elapsed_s > 0 else 0.0
        return (d_read, d_write, usage)


def sampler_for(
    dimension: str,
    cycles_mode: str = "interval",
    cpu_mhz: Optional[float] = None,
    io_source: str = "psutil",
) -> ResourceSampler:
    if dimension == "memory":
        return MemorySampler()
    if dimension == "cycles":
        return CyclesSampler(mode=cycles_mode, cpu_mhz=cpu_mhz)
    if dimension == "time":
        return WallClockSampler()
    if dimension == "io":
        return IOSampler(source=io_source)
    if dimension == "io_rate":
        return IORateSampler(source=io_source)
    raise ConfigurationError(f"unknown dimension: {dimension!r}")
