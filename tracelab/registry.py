# tracelab/registry.py
from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List

from .errors import ConfigurationError

TracerCtor = Callable[..., Any]


class TracerDirectory:
    """Name -> tracer constructor, each name registered at most once."""

    def __init__(self):
        self._ctors: Dict[str, TracerCtor] = {}
        self._lock = threading.Lock()

    def register(self, name: str, ctor: TracerCtor) -> None:
        with self._lock:
            if name in self._ctors:
                raise ConfigurationError(f"tracer {name!r} is already registered")
            self._ctors[name] = ctor

    def lookup(self, name: str) -> TracerCtor:
        try:
            return self._ctors[name]
        except KeyError:
            raise KeyError(f"unknown tracer: {name!r}") from None

    def names(self) -> List[str]:
        return sorted(self._ctors)

    def __contains__(self, name: object) -> bool:
        return name in self._ctors


DEFAULT_DIRECTORY = TracerDirectory()
