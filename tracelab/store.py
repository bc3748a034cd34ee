# tracelab/store.py
from __future__ import annotations

import csv
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .errors import DataIntegrityFault
from .serializer import format_field

LOGGER = logging.getLogger("tracelab.store")


class SeriesStore:
    """Append-only aligned series held in memory, one list per column."""

    def __init__(self, columns: Sequence[str]):
        if len(set(columns)) != len(columns):
            raise ValueError(f"duplicate column names: {list(columns)}")
        self.columns: Tuple[str, ...] = tuple(columns)
        self._series: Dict[str, List[Any]] = {c: [] for c in self.columns}

    def append(self, row: Sequence[Any]) -> None:
        if len(row) != len(self.columns):
            raise DataIntegrityFault(f"row has {len(row)} fields, expected {len(self.columns)}")
        for c, v in zip(self.columns, row):
            self._series[c].append(v)

    def series(self, column: str) -> Tuple[Any, ...]:
        return tuple(self._series[column])

    def lengths(self) -> Dict[str, int]:
        return {c: len(s) for c, s in self._series.items()}

    def lengths_consistent(self) -> bool:
        return len(set(self.lengths().values())) <= 1

    def __len__(self) -> int:
        return min(self.lengths().values(), default=0)

    def snapshot(self) -> List[Tuple[Any, ...]]:
        return list(zip(*(self._series[c] for c in self.columns)))

    def finalize(self) -> List[Tuple[Any, ...]]:
        return self.snapshot()

    def close(self) -> None:
        pass


class CsvFileStore:
    """Aligned series buffered to a CSV file on disk.

    The header is written on creation and every append adds one record.
    ``finalize()`` reads the file once, deletes it and keeps the rows, so
    repeated finalization returns the same data. Values come back as strings.
    """

    def __init__(self, columns: Sequence[str], path: Union[str, Path, None] = None):
        self.columns: Tuple[str, ...] = tuple(columns)
        if path is None:
            fd, name = tempfile.mkstemp(prefix="tracelab_", suffix=".csv")
            os.close(fd)
            path = name
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._final: Optional[List[Tuple[str, ...]]] = None
        self._closed = False
        with self.path.open("w", newline="") as f:
            csv.writer(f, lineterminator="\n").writerow(self.columns)

    def append(self, row: Sequence[Any]) -> None:
        if self._final is not None or self._closed:
            raise DataIntegrityFault("store already finalized or closed")
        if len(row) != len(self.columns):
            raise DataIntegrityFault(f"row has {len(row)} fields, expected {len(self.columns)}")
        with self.path.open("a", newline="") as f:
            csv.writer(f, lineterminator="\n").writerow([format_field(v) for v in row])

    def _read(self) -> List[List[str]]:
        if self._final is not None:
            return [list(r) for r in self._final]
        if self._closed:
            raise DataIntegrityFault(f"store closed, {self.path} was discarded")
        with self.path.open("r", newline="") as f:
            records = list(csv.reader(f))
        return records[1:]

    def lengths_consistent(self) -> bool:
        width = len(self.columns)
        return all(len(r) == width for r in self._read())

    def __len__(self) -> int:
        return len(self._read())

    def snapshot(self) -> List[Tuple[str, ...]]:
        return [tuple(r) for r in self._read()]

    def finalize(self) -> List[Tuple[str, ...]]:
        if self._final is None:
            rows = self.snapshot()
            self._final = rows
            try:
                self.path.unlink()
            except FileNotFoundError:
                LOGGER.debug("store file %s already gone", self.path)
        return list(self._final)

    def close(self) -> None:
        """Discard the backing file without reading it. Finalized rows are kept."""
        if self._closed or self._final is not None:
            return
        self._closed = True
        try:
            self.path.unlink()
        except FileNotFoundError:
            LOGGER.debug("store file %s already gone", self.path)
