from __future__ import annotations

import threading
from functools import lru_cache

from symptomcore.config import get_settings
from symptomcore.extraction.library import SymptomLibrary, load_library
from symptomcore.extraction.matcher import MatcherConfig, MatcherEngine

_ENGINE_CACHE_SIZE = 8


@lru_cache
def get_library() -> SymptomLibrary:
    """
    Reference library for the process, loaded on first use.

    Raises LibraryUnavailable (503) when the configured source cannot be
    read; the failure is not cached, so the next request retries.
    """
    settings = get_settings()
    return load_library(settings.LIBRARY_SOURCE, table=settings.LIBRARY_TABLE)


class EngineCache:
    """Phrase indexes keyed by (library fingerprint, matcher config)."""

    def __init__(self, maxsize: int = _ENGINE_CACHE_SIZE) -> None:
        self._maxsize = maxsize
        self._engines: dict[tuple[str, MatcherConfig], MatcherEngine] = {}
        self._lock = threading.Lock()

    def get(self, library: SymptomLibrary, config: MatcherConfig) -> MatcherEngine:
        key = (library.fingerprint, config)
        with self._lock:
            engine = self._engines.get(key)
            if engine is None:
                if len(self._engines) >= self._maxsize:
                    self._engines.pop(next(iter(self._engines)))
                engine = MatcherEngine(library, config)
                self._engines[key] = engine
            return engine

    def clear(self) -> None:
        with self._lock:
            self._engines.clear()


_engines = EngineCache()


def get_engine_cache() -> EngineCache:
    return _engines
