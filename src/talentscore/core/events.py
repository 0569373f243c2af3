from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger("talentscore.scoring")


@dataclass(slots=True)
class ScoringEvent:
    name: str
    level: int
    fields: dict[str, Any] = field(default_factory=dict)


class ScoringObserver:
    """Sink for pipeline events. Subclasses decide where events go."""

    def emit(self, name: str, *, level: int = logging.INFO, **fields: Any) -> None:
        raise NotImplementedError

    def error(self, name: str, **fields: Any) -> None:
        self.emit(name, level=logging.ERROR, **fields)


class LoggingObserver(ScoringObserver):
    def __init__(self, target: logging.Logger | None = None) -> None:
        self._logger = target or logger

    def emit(self, name: str, *, level: int = logging.INFO, **fields: Any) -> None:
        rendered = " ".join(f"{key}={value}" for key, value in fields.items())
        self._logger.log(level, "%s %s", name, rendered)


class MemoryObserver(ScoringObserver):
    """Keeps every event in order. Used by tests and the CLI's --verbose output."""

    def __init__(self) -> None:
        self.events: list[ScoringEvent] = []

    def emit(self, name: str, *, level: int = logging.INFO, **fields: Any) -> None:
        self.events.append(ScoringEvent(name=name, level=level, fields=dict(fields)))

    def names(self) -> list[str]:
        return [event.name for event in self.events]

    def find(self, name: str) -> list[ScoringEvent]:
        return [event for event in self.events if event.name == name]
