"""Name -> source adapter lookup."""

import logging
import threading
from typing import Callable, Dict, List

from services.errors import RegistryMiss
from .base_crawler import CatalogSource
from .mangaraw_crawler import MangaRawSource

LOGGER = logging.getLogger(__name__)

BUILTIN_SOURCES: Dict[str, Callable[[], CatalogSource]] = {
    "mangaraw": MangaRawSource,
}


class SourceRegistry:
    """Adapters are registered under a lower-cased name.

    Built-in adapters are registered once, on the first ``get`` or
    ``list_names`` call; ``register`` can add or replace adapters at any time
    without touching callers.
    """

    def __init__(self, builtins=None):
        self._builtins = dict(BUILTIN_SOURCES if builtins is None else builtins)
        self._sources: Dict[str, CatalogSource] = {}
        self._initialized = False
        self._lock = threading.Lock()

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            for name, factory in self._builtins.items():
                self._sources.setdefault(name.lower(), factory())
            self._initialized = True
            LOGGER.debug("Registered built-in sources: %s", ", ".join(self._sources))

    def register(self, name: str, adapter: CatalogSource) -> None:
        self._sources[name.lower()] = adapter

    def get(self, name: str) -> CatalogSource:
        self._ensure_initialized()
        adapter = self._sources.get((name or "").lower())
        if adapter is None:
            raise RegistryMiss(name, self.list_names())
        return adapter

    def list_names(self) -> List[str]:
        self._ensure_initialized()
        return list(self._sources.keys())


default_registry = SourceRegistry()


def get_source(name: str) -> CatalogSource:
    return default_registry.get(name)


def list_sources() -> List[str]:
    return default_registry.list_names()
