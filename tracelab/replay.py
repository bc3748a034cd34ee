# tracelab/replay.py
"""
Replay a recorded execution log through a tracer.

The log is JSONL, one callback per line:

    {"event": "start", "budget": 1000}
    {"event": "step", "opcode": "ADD", "budget_before": 1000, "budget_after": 997}
    {"event": "fault", "opcode": "SSTORE"}
    {"event": "end", "rest_budget": 800}
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional

from .errors import TracerError
from .serializer import unwrap
from .tracer import Tracer
from .variants import DEFAULT_DIRECTORY, new_tracer

LOGGER = logging.getLogger("tracelab.replay")

EVENTS = ("start", "step", "fault", "stop", "end")


def read_events(path: str) -> Iterator[Dict[str, Any]]:
    if not os.path.exists(path):
        raise FileNotFoundError(f"event log not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            yield json.loads(line)


def write_events(path: str, events: Iterable[Mapping[str, Any]]) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        for e in events:
            f.write(json.dumps(dict(e)) + "\n")


def _budget(event: Mapping[str, Any], key: str) -> int:
    value = event[key]
    if isinstance(value, bool):
        raise TypeError(f"{key} must be an integer, got {value!r}")
    return int(value)


def _arguments(kind: str, event: Mapping[str, Any]) -> tuple:
    if kind == "start":
        return (_budget(event, "budget"),)
    if kind == "step":
        return (event["opcode"], _budget(event, "budget_before"), _budget(event, "budget_after"))
    if kind == "fault":
        return (event.get("opcode"), event.get("error"))
    if kind == "stop":
        return (event.get("reason"),)
    return (_budget(event, "rest_budget"),)


def dispatch(tracer: Tracer, event: Mapping[str, Any]) -> None:
    if not isinstance(event, Mapping):
        raise ValueError(f"event must be a JSON object, got {type(event).__name__}")
    kind = event.get("event")
    if kind not in EVENTS:
        raise ValueError(f"unknown event kind: {kind!r}")
    try:
        args = _arguments(kind, event)
    except KeyError as e:
        raise ValueError(f"bad {kind} event: missing field {e}") from e
    except (TypeError, ValueError) as e:
        raise ValueError(f"bad {kind} event: {e}") from e
    callback = {
        "start": tracer.on_start,
        "step": tracer.on_instruction,
        "fault": tracer.on_fault,
        "stop": tracer.stop,
        "end": tracer.on_end,
    }[kind]
    callback(*args)


def replay(tracer: Tracer, events: Iterable[Mapping[str, Any]]) -> str:
    """Feed every event to the tracer and return its JSON result."""
    n = 0
    try:
        for event in events:
            dispatch(tracer, event)
            n += 1
        LOGGER.debug("replayed %d events into %r", n, tracer)
        return tracer.result()
    except Exception:
        LOGGER.debug("replay aborted after %d events; discarding tracer storage", n)
        tracer.close()
        raise


def main(argv: Optional[list] = None) -> int:
    ap = argparse.ArgumentParser(description="Replay an execution log through a tracer.")
    ap.add_argument("log", help="JSONL event log")
    ap.add_argument("--tracer", default="cycleTracer", choices=DEFAULT_DIRECTORY.names())
    ap.add_argument("--resolution", type=int, default=None)
    ap.add_argument("--config", default=None, help="raw JSON tracer config")
    ap.add_argument("--out", default=None, help="write the CSV here instead of stdout")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    try:
        cfg = json.loads(args.config) if args.config else {}
        if not isinstance(cfg, dict):
            raise ValueError("--config must be a JSON object")
        if args.resolution is not None:
            cfg["resolution"] = args.resolution
        tracer = new_tracer(args.tracer, json.dumps(cfg) if cfg else None)
        text = unwrap(replay(tracer, read_events(args.log)))
    except (TracerError, ValueError, FileNotFoundError) as e:
        print(f"replay failed: {e}", file=sys.stderr)
        return 1

    if args.out:
        out = Path(args.out)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text, encoding="utf-8")
    else:
        sys.stdout.write(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
