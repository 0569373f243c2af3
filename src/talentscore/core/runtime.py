from __future__ import annotations

from talentscore.core.events import LoggingObserver, ScoringObserver

_OBSERVER: ScoringObserver | None = None


def get_observer() -> ScoringObserver:
    global _OBSERVER
    if _OBSERVER is None:
        _OBSERVER = LoggingObserver()
    return _OBSERVER
