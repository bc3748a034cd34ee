# tracelab/tracer.py
"""
Lifecycle controller for instruction-level resource tracing.

The execution engine drives a Tracer through one transaction:

    on_start(budget) -> on_instruction(...)* -> on_end(rest_budget) -> result()

Rows describe the instruction named in the boundary callback, which fires
after that instruction ran: its measurements cover the interval since the
previous boundary and its cost is the budget it consumed. Budget charged
after the last boundary is folded into the last row when that row came from
the last boundary, so at resolution 1 the cost column adds up to
``initial budget - rest budget``.

Sampling failures are logged and the row is skipped; nothing raised here
may abort the traced transaction. A Tracer serves exactly one transaction.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple

from .cost import CostWindow, OpcodeCostTable
from .errors import ConfigurationError, DataIntegrityFault, SamplingUnavailable
from .gate import ResolutionGate
from .serializer import encode, envelope, to_frame
from .store import SeriesStore
from .telemetry import ResourceSampler

LOGGER = logging.getLogger("tracelab.tracer")

COST_MODES = ("metered", "scheduled")


class TracerState(str, Enum):
    CREATED = "created"
    STARTED = "started"
    RUNNING = "running"
    ENDED = "ended"
    FINALIZED = "finalized"


def opcode_name(op: Any) -> str:
    if isinstance(op, str):
        return op
    name = getattr(op, "name", None)
    return name if isinstance(name, str) else str(op)


class Tracer:
    def __init__(
        self,
        samplers: Sequence[ResourceSampler],
        resolution: int = 100,
        *,
        record_instructions: bool = True,
        sample_instructions: bool = True,
        baseline_row: bool = False,
        final_row: bool = False,
        cost_mode: str = "metered",
        store_factory: Callable[[Sequence[str]], Any] = SeriesStore,
    ):
        if not samplers:
            raise ConfigurationError("at least one resource sampler is required")
        if cost_mode not in COST_MODES:
            raise ConfigurationError(f"unknown cost mode: {cost_mode!r}")
        if record_instructions and (baseline_row or final_row):
            # start/end rows have no opcode and no cost
            raise ConfigurationError("baseline/final rows cannot be combined with instruction rows")
        self.gate = ResolutionGate(resolution)
        self.samplers: Tuple[ResourceSampler, ...] = tuple(samplers)
        self.record_instructions = record_instructions
        self.sample_instructions = sample_instructions
        self.baseline_row = baseline_row
        self.final_row = final_row
        self.cost_mode = cost_mode

        columns: List[str] = ["opcode"] if record_instructions else []
        for s in self.samplers:
            columns.extend(s.columns)
        if record_instructions:
            columns.append("cost")
        if len(set(columns)) != len(columns):
            raise ConfigurationError(f"samplers produce duplicate columns: {columns}")
        self.columns: Tuple[str, ...] = tuple(columns)
        self.store = store_factory(self.columns)

        self.state = TracerState.CREATED
        self.op_counter = 0
        self.window = CostWindow()
        self.cost_table = OpcodeCostTable()
        self.stop_reason: Optional[str] = None
        self._stopped = False
        self._pending: Optional[Tuple[Any, ...]] = None
        self._payload: Optional[str] = None

    @property
    def resolution(self) -> int:
        return self.gate.resolution

    @property
    def stopped(self) -> bool:
        return self._stopped

    # callbacks from the execution engine

    def on_start(self, budget: int) -> None:
        if self.state is not TracerState.CREATED:
            LOGGER.warning("on_start ignored in state %s; a tracer serves one transaction", self.state.value)
            return
        self.state = TracerState.STARTED
        self.window.reset()
        self.window.observe(budget)
        for s in self.samplers:
            try:
                s.prime()
            except SamplingUnavailable as e:
                LOGGER.warning("sampling unavailable during start: %s", e)
        if self.baseline_row and not self._stopped:
            self._pending = self._sample("start")
        self.state = TracerState.RUNNING

    def on_instruction(self, opcode: Any, budget_before: int, budget_after: int) -> None:
        if self.state is not TracerState.RUNNING or self._stopped:
            LOGGER.debug("instruction %s ignored (state=%s, stopped=%s)", opcode, self.state.value, self._stopped)
            return
        self._commit()
        delta = self.window.observe(budget_after)
        counter = self.op_counter
        self.op_counter = self.gate.advance(counter)
        try:
            if self.sample_instructions and self.gate.should_sample(counter):
                self._record(opcode, budget_before, budget_after, delta)
        finally:
            for s in self.samplers:
                s.mark()

    def on_fault(self, opcode: Any = None, *args: Any, **kwargs: Any) -> None:
        """Faulted instructions are not traced."""

    def on_end(self, rest_budget: int) -> None:
        if self.state is TracerState.RUNNING and not self._stopped:
            delta = self.window.flush(rest_budget)
            if self._pending is not None and self.record_instructions and self.cost_mode == "metered":
                row = self._pending
                self._pending = row[:-1] + (row[-1] + delta,)
            self._commit()
            if self.final_row:
                row = self._sample("end")
                if row is not None:
                    self.store.append(row)
        elif self.state is not TracerState.RUNNING:
            LOGGER.debug("on_end ignored in state %s", self.state.value)
            return
        self.state = TracerState.ENDED

    def stop(self, reason: Any = None) -> None:
        if self._stopped:
            return
        self._commit()
        self._stopped = True
        self.stop_reason = None if reason is None else str(reason)
        LOGGER.info("tracing stopped after %d instructions: %s", self.op_counter, self.stop_reason)

    def close(self) -> None:
        """Stop tracing and release the store; uncollected rows are discarded."""
        self._pending = None
        self._stopped = True
        close = getattr(self.store, "close", None)
        if close is not None:
            close()

    # results

    def result(self) -> str:
        """JSON string holding the CSV table of everything recorded so far."""
        if self._payload is not None:
            return self._payload
        if not self.store.lengths_consistent():
            raise DataIntegrityFault("aligned series lengths differ")
        if self.state is TracerState.ENDED:
            self._payload = envelope(encode(self.store.finalize(), self.columns))
            self.state = TracerState.FINALIZED
            return self._payload
        return envelope(encode(self.store.snapshot(), self.columns))

    def frame(self):
        return to_frame(self.result())

    # internals

    def _record(self, opcode: Any, budget_before: int, budget_after: int, delta: Optional[int]) -> None:
        measurements = self._sample("instruction", opcode)
        if measurements is None:
            return
        if not self.record_instructions:
            self._pending = measurements
            return
        name = opcode_name(opcode)
        if self.cost_mode == "scheduled":
            cost, _ = self.cost_table.add_and_get(name, int(budget_before) - int(budget_after))
        else:
            cost = delta if delta is not None else int(budget_before) - int(budget_after)
        self._pending = (name,) + measurements + (cost,)

    def _sample(self, phase: str, opcode: Any = None) -> Optional[Tuple[Any, ...]]:
        values: List[Any] = []
        for s in self.samplers:
            try:
                sample = tuple(s.sample())
            except SamplingUnavailable as e:
                LOGGER.warning("sampling unavailable during %s (opcode=%s): %s", phase, opcode, e)
                return None
            if len(sample) != len(s.columns):
                LOGGER.error("%s returned %d values for %d columns; row skipped",
                             type(s).__name__, len(sample), len(s.columns))
                return None
            values.extend(sample)
        return tuple(values)

    def _commit(self) -> None:
        if self._pending is not None:
            row, self._pending = self._pending, None
            self.store.append(row)

    def __repr__(self) -> str:
        return f"Tracer(columns={list(self.columns)}, resolution={self.resolution}, state={self.state.value})"
