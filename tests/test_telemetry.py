from types import SimpleNamespace

import psutil
import pytest

from conftest import FakeClock
from tracelab import telemetry
from tracelab.errors import ConfigurationError, SamplingUnavailable
from tracelab.telemetry import (
    CyclesSampler,
    IORateSampler,
    IOSampler,
    IOSnapshot,
    MemorySampler,
    MemorySnapshot,
    WallClockSampler,
)

MB = 1024 * 1024


def _map(path, rss, size, private_dirty=0):
    return SimpleNamespace(path=path, rss=rss, size=size, private_dirty=private_dirty)


class FakeProc:
    def __init__(self, maps=None, io=None, error=None):
        self._maps = maps or []
        self._io = io
        self._error = error

    def memory_maps(self, grouped=True):
        if self._error:
            raise self._error
        return self._maps

    def io_counters(self):
        if self._error:
            raise self._error
        return self._io


def test_read_memory_splits_heap_and_stack():
    proc = FakeProc(maps=[
        _map("[heap]", 10 * MB, 16 * MB, 8 * MB),
        _map("", 4 * MB, 8 * MB, 2 * MB),
        _map("[stack]", 1 * MB, 8 * MB),
        _map("/usr/lib/libc.so.6", 2 * MB, 2 * MB, 1 * MB),
    ])
    snap = telemetry.read_memory(proc)
    assert snap == MemorySnapshot(
        heap_alloc=10 * MB, heap_sys=24 * MB, heap_idle=10 * MB,
        heap_inuse=14 * MB, stack_inuse=1 * MB, stack_sys=8 * MB,
    )
    assert snap.as_row() == (10, 24, 10, 14, 1, 8)


def test_read_memory_translates_platform_errors():
    with pytest.raises(SamplingUnavailable):
        telemetry.read_memory(FakeProc(error=psutil.AccessDenied(pid=1)))


def test_memory_sampler_reports_megabytes():
    snap = MemorySnapshot(3 * MB + 5, 4 * MB, MB, 3 * MB, MB // 2, 2 * MB)
    s = MemorySampler(reader=lambda: snap)
    assert s.columns == ("heapAlloc", "heapSys", "heapIdle", "heapInuse", "stackInUse", "stackSys")
    assert s.sample() == (3, 4, 1, 3, 0, 2)


def test_read_io_uses_psutil_counters():
    counters = SimpleNamespace(read_count=3, write_count=4, read_bytes=4096, write_bytes=8192,
                               read_chars=100, write_chars=200)
    snap = telemetry.read_io(FakeProc(io=counters))
    assert snap == IOSnapshot(rchar=100, wchar=200, syscr=3, syscw=4, read_bytes=4096, write_bytes=8192)


def test_read_io_translates_platform_errors():
    with pytest.raises(SamplingUnavailable):
        telemetry.read_io(FakeProc(error=psutil.NoSuchProcess(pid=1)))


def test_read_proc_io(tmp_path):
    f = tmp_path / "io"
    f.write_text(
        "rchar: 1948\nwchar: 323\nsyscr: 7\nsyscw: 5\n"
        "read_bytes: 4096\nwrite_bytes: 0\ncancelled_write_bytes: 12\nbogus line\n"
    )
    snap = telemetry.read_proc_io(path=f)
    assert snap.rchar == 1948 and snap.syscw == 5
    assert snap.read_bytes == 4096
    assert snap.cancelled_write_bytes == 12


def test_read_proc_io_missing_file(tmp_path):
    with pytest.raises(SamplingUnavailable):
        telemetry.read_proc_io(path=tmp_path / "nope")


def test_io_sampler_columns_and_values():
    snap = IOSnapshot(1, 2, 3, 4, 5, 6, 7)
    s = IOSampler(reader=lambda: snap)
    assert s.columns == ("Rchar", "Wchar", "Syscr", "Syscw", "ReadBytes", "WriteBytes")
    assert s.sample() == (1, 2, 3, 4, 5, 6)


def test_io_rate_sampler_diffs_consecutive_samples():
    snaps = iter([
        IOSnapshot(0, 0, 0, 0, read_bytes=1000, write_bytes=0),
        IOSnapshot(0, 0, 0, 0, read_bytes=3000, write_bytes=1000),
        IOSnapshot(0, 0, 0, 0, read_bytes=3000, write_bytes=1000),
    ])
    clock = FakeClock(start=0, step=500_000_000)  # half a second per read
    s = IORateSampler(reader=lambda: next(snaps), clock=clock)
    s.prime()
    assert s.sample() == (2000, 1000, 6000.0)
    assert s.sample() == (0, 0, 0.0)


def test_io_rate_sampler_without_prime_starts_at_zero():
    s = IORateSampler(reader=lambda: IOSnapshot(0, 0, 0, 0, 10, 10), clock=FakeClock())
    assert s.sample() == (0, 0, 0.0)


def test_cycles_interval_mode_restarts_at_mark():
    s = CyclesSampler(cpu_mhz=2000, clock=FakeClock(step=100))
    s.prime()                       # t=0
    assert s.sample() == (200,)     # t=100, 100ns at 2GHz
    s.mark()                        # t=200
    assert s.sample() == (200,)     # t=300


def test_cycles_cumulative_mode_counts_from_prime():
    s = CyclesSampler(mode="cumulative", cpu_mhz=1000, clock=FakeClock(step=100))
    s.prime()                       # t=0
    s.mark()                        # no clock read in cumulative mode
    assert s.sample() == (100,)
    assert s.sample() == (200,)


def test_cycles_frequency_is_read_lazily_once():
    calls = []

    def freq():
        calls.append(1)
        return 1000.0

    s = CyclesSampler(clock=FakeClock(), freq_reader=freq)
    s.prime()
    s.sample()
    s.sample()
    assert len(calls) == 1


def test_cycles_unknown_frequency_is_unavailable():
    def freq():
        raise SamplingUnavailable("no cpufreq")

    s = CyclesSampler(clock=FakeClock(), freq_reader=freq)
    s.prime()
    with pytest.raises(SamplingUnavailable):
        s.sample()


def test_read_cpu_mhz_without_frequency(monkeypatch):
    monkeypatch.setattr(psutil, "cpu_freq", lambda: None)
    with pytest.raises(SamplingUnavailable):
        telemetry.read_cpu_mhz()


def test_cycles_mode_is_validated():
    with pytest.raises(ConfigurationError):
        CyclesSampler(mode="sometimes")


def test_wall_clock_measures_since_last_mark():
    s = WallClockSampler(clock=FakeClock(step=50))
    s.prime()                       # t=0
    assert s.sample() == (50,)      # t=50
    s.mark()                        # t=100
    assert s.sample() == (50,)      # t=150


@pytest.mark.parametrize("dimension,cls", [
    ("memory", MemorySampler),
    ("cycles", CyclesSampler),
    ("time", WallClockSampler),
    ("io", IOSampler),
    ("io_rate", IORateSampler),
])
def test_sampler_for(dimension, cls):
    assert isinstance(telemetry.sampler_for(dimension), cls)


def test_sampler_for_unknown_dimension():
    with pytest.raises(ConfigurationError):
        telemetry.sampler_for("gpu")


def test_io_sampler_proc_source_reports_cancelled_writes():
    snap = IOSnapshot(1, 2, 3, 4, 5, 6, 7)
    s = IOSampler(reader=lambda: snap, source="proc")
    assert s.columns[-1] == "CancelledWriteBytes"
    assert s.sample() == (1, 2, 3, 4, 5, 6, 7)
    assert IOSampler.columns == ("Rchar", "Wchar", "Syscr", "Syscw", "ReadBytes", "WriteBytes")


def test_io_reader_selects_source():
    assert telemetry.io_reader("psutil") is telemetry.read_io
    assert telemetry.io_reader("proc") is telemetry.read_proc_io
    with pytest.raises(ConfigurationError):
        telemetry.io_reader("sysfs")
    with pytest.raises(ConfigurationError):
        IOSampler(reader=lambda: None, source="sysfs")


def test_sampler_for_io_source():
    s = telemetry.sampler_for("io", io_source="proc")
    assert s.source == "proc" and len(s.columns) == 7
