# tracelab/serializer.py
from __future__ import annotations

import csv
import io
import json
from typing import Any, Iterable, List, Sequence

import pandas as pd

from .errors import SerializationFault


def format_field(value: Any) -> str:
    if isinstance(value, float):
        return repr(value)
    return str(value)


def encode(rows: Iterable[Sequence[Any]], columns: Sequence[str]) -> str:
    """CSV text: header row, then one record per row, ``\\n`` terminated."""
    buf = io.StringIO()
    w = csv.writer(buf, lineterminator="\n")
    width = len(columns)
    try:
        w.writerow(list(columns))
        for i, row in enumerate(rows):
            if len(row) != width:
                raise SerializationFault(f"row {i} has {len(row)} fields, expected {width}")
            w.writerow([format_field(v) for v in row])
    except csv.Error as e:
        raise SerializationFault(f"csv encoding failed: {e}") from e
    return buf.getvalue()


def envelope(text: str) -> str:
    """Wrap tabular text as a single JSON string scalar."""
    return json.dumps(text)


def unwrap(payload: str) -> str:
    text = json.loads(payload)
    if not isinstance(text, str):
        raise ValueError("result payload is not a JSON string")
    return text


def decode(text: str) -> List[List[str]]:
    """Data records of a CSV result, header excluded."""
    records = list(csv.reader(io.StringIO(text)))
    return records[1:]


def header(text: str) -> List[str]:
    for record in csv.reader(io.StringIO(text)):
        return record
    return []


def to_frame(payload: str) -> pd.DataFrame:
    """Load a JSON-wrapped result into a DataFrame."""
    return pd.read_csv(io.StringIO(unwrap(payload)))
