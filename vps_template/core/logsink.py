"""VPS Template - Log Fan-out Sink

One LogRecord in, N destinations out.
- Each destination applies its own level threshold
- A failing destination never silences the ones after it
- Derived sinks (extra attributes, named groups) are new objects

Destinations shipped here:
  JSONFileDestination  - one JSON object per line, groups nest as objects
  ConsoleDestination   - human-readable line, groups flatten to dotted keys
"""
import copy
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import IO, Any, Mapping, Protocol, Sequence, runtime_checkable

import structlog


@dataclass(frozen=True)
class LogRecord:
    time: datetime
    level: int
    message: str
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @property
    def level_name(self) -> str:
        return logging.getLevelName(self.level)


@runtime_checkable
class Destination(Protocol):
    """A single sink target with its own severity filter and write logic."""

    def enabled(self, level: int) -> bool:
        ...

    def handle(self, record: LogRecord) -> None:
        """Write the record. Raises on failure."""
        ...

    def with_attributes(self, attrs: Mapping[str, Any]) -> "Destination":
        ...

    def with_group(self, name: str) -> "Destination":
        ...


def _node_at(tree: dict, groups: Sequence[str]) -> dict:
    node = tree
    for name in groups:
        child = node.get(name)
        if not isinstance(child, dict):
            child = node[name] = {}
        node = child
    return node


class StreamDestination:
    """Writes rendered records, one per line, to a text stream.

    Subclasses choose the rendering. Clones made by with_attributes/with_group
    share the stream and its lock; only the destination that opened the
    stream closes it.
    """

    def __init__(self, stream: IO[str], level: int = logging.INFO, *, owns_stream: bool = False):
        self._stream = stream
        self._level = level
        self._owns_stream = owns_stream
        self._lock = threading.Lock()
        self._bound: dict = {}
        self._groups: tuple = ()

    def enabled(self, level: int) -> bool:
        return level >= self._level

    def _clone(self) -> "StreamDestination":
        twin = copy.copy(self)
        twin._bound = copy.deepcopy(self._bound)
        twin._owns_stream = False
        return twin

    def with_attributes(self, attrs: Mapping[str, Any]) -> "StreamDestination":
        if not attrs:
            return self
        twin = self._clone()
        _node_at(twin._bound, twin._groups).update(attrs)
        return twin

    def with_group(self, name: str) -> "StreamDestination":
        if not name:
            return self
        twin = self._clone()
        twin._groups = self._groups + (name,)
        return twin

    def _payload(self, record: LogRecord) -> dict:
        tree = copy.deepcopy(self._bound)
        if record.attributes:
            _node_at(tree, self._groups).update(record.attributes)
        return tree

    def render(self, record: LogRecord) -> str:
        raise NotImplementedError

    def handle(self, record: LogRecord) -> None:
        line = self.render(record)
        with self._lock:
            self._stream.write(line + "\n")
            self._stream.flush()

    def close(self):
        if self._owns_stream:
            self._stream.close()


class JSONFileDestination(StreamDestination):
    """JSON lines, the layout a log shipper expects."""

    def __init__(self, stream: IO[str], level: int = logging.INFO, *, owns_stream: bool = False):
        super().__init__(stream, level, owns_stream=owns_stream)
        self._renderer = structlog.processors.JSONRenderer(default=str)

    @classmethod
    def open(cls, path: str, level: int = logging.INFO) -> "JSONFileDestination":
        stream = open(path, "a", encoding="utf-8")
        return cls(stream, level, owns_stream=True)

    def render(self, record: LogRecord) -> str:
        event = {
            "time": record.time.isoformat(timespec="milliseconds"),
            "level": record.level_name,
            "msg": record.message,
        }
        event.update(self._payload(record))
        return self._renderer(None, record.level_name.lower(), event)


def _flatten(tree: Mapping[str, Any], prefix: str = "") -> dict:
    flat = {}
    for key, value in tree.items():
        name = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(_flatten(value, name + "."))
        else:
            flat[name] = value
    return flat


class ConsoleDestination(StreamDestination):
    """Human-readable lines for a terminal or `docker logs`."""

    def __init__(self, stream: IO[str], level: int = logging.INFO, *, colors: bool | None = None):
        super().__init__(stream, level)
        if colors is None:
            colors = bool(getattr(stream, "isatty", lambda: False)())
        self._renderer = structlog.dev.ConsoleRenderer(colors=colors)

    def render(self, record: LogRecord) -> str:
        event = {
            "timestamp": record.time.isoformat(timespec="milliseconds"),
            "level": record.level_name.lower(),
            "event": record.message,
        }
        event.update(_flatten(self._payload(record)))
        return self._renderer(None, record.level_name.lower(), event)


class FanoutSink:
    """Delivers every record to every destination that accepts its level.

    The destination list is fixed at construction. with_attributes() and
    with_group() return new sinks over derived destinations and leave this
    one untouched.
    """

    def __init__(self, destinations: Sequence[Destination]):
        self._destinations = tuple(destinations)

    @property
    def destinations(self) -> tuple:
        return self._destinations

    def is_enabled(self, level: int) -> bool:
        return any(d.enabled(level) for d in self._destinations)

    def handle(self, record: LogRecord) -> None:
        """Forward the record to each accepting destination.

        Every accepting destination is tried even if an earlier one fails;
        the first failure is re-raised once all of them have been tried.
        """
        first_error = None
        for destination in self._destinations:
            if not destination.enabled(record.level):
                continue
            try:
                destination.handle(record)
            except Exception as e:
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    def with_attributes(self, attrs: Mapping[str, Any]) -> "FanoutSink":
        if not attrs:
            return self
        return FanoutSink([d.with_attributes(attrs) for d in self._destinations])

    def with_group(self, name: str) -> "FanoutSink":
        if not name:
            return self
        return FanoutSink([d.with_group(name) for d in self._destinations])

    def close(self):
        for destination in self._destinations:
            close = getattr(destination, "close", None)
            if close is not None:
                close()
