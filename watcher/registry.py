"""Template registry: one watched cache per template file."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, BinaryIO

from .cache import WatchedArtifactCache
from .errors import (
    ResourceUnavailableError,
    TemplateNotFoundError,
    TemplateWatchError,
)
from .resource import DigestFileResource, FileResource, Resource
from .template import compile_template

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIX = ".json"

MARKER_STRATEGIES: dict[str, Callable[[Path], Resource]] = {
    "mtime": FileResource,
    "digest": DigestFileResource,
}


class TemplateRegistry:
    """Maps template names under a base directory to watched caches."""

    def __init__(
        self,
        base_path: Path | str,
        marker: str = "mtime",
        compiler: Callable[[BinaryIO], Any] = compile_template,
    ):
        if marker not in MARKER_STRATEGIES:
            raise ValueError(
                f"unknown marker strategy {marker!r} "
                f"(expected one of {sorted(MARKER_STRATEGIES)})"
            )
        self.base_path = Path(base_path)
        self.marker = marker
        self.compiler = compiler
        self._caches: dict[Path, WatchedArtifactCache[Any]] = {}
        self._lock = threading.Lock()

    def resolve(self, name: str) -> Path:
        """
        Return the template file path for ``name``.

        Raises:
            TemplateNotFoundError: if the name cannot denote a template
                directly under the base directory
        """
        if (
            not name
            or name in (".", "..")
            or any(ch in name for ch in ("/", "\\", "\x00"))
        ):
            raise TemplateNotFoundError(name)
        return self.base_path / f"{name}{TEMPLATE_SUFFIX}"

    def cache_for(self, name: str) -> WatchedArtifactCache[Any]:
        """Return the cache for ``name``, creating it on first use."""
        path = self.resolve(name)
        with self._lock:
            cache = self._caches.get(path)
            if cache is None:
                resource = MARKER_STRATEGIES[self.marker](path)
                cache = WatchedArtifactCache(resource, self.compiler)
                self._caches[path] = cache
                logger.info("Watching template %s (%s marker)", path, self.marker)
            return cache

    def find(self, name: str) -> WatchedArtifactCache[Any] | None:
        """Return the cache for ``name`` if it is watched or its file exists."""
        path = self.resolve(name)
        with self._lock:
            cache = self._caches.get(path)
        if cache is None and path.is_file():
            cache = self.cache_for(name)
        return cache

    def get(self, name: str) -> Any:
        """Return the up-to-date compiled template ``name``."""
        path = self.resolve(name)
        cache = self.cache_for(name)
        try:
            return cache.get()
        except ResourceUnavailableError as e:
            logger.warning("Failed to load template %r: %s", name, e)
            self._forget(path, cache)
            raise
        except TemplateWatchError as e:
            logger.warning("Failed to load template %r: %s", name, e)
            raise

    def _forget(self, path: Path, cache: WatchedArtifactCache[Any]) -> None:
        # Only caches that never compiled are dropped; a template that once
        # loaded keeps its last good artifact
        with self._lock:
            if self._caches.get(path) is cache and cache.last_good() is None:
                del self._caches[path]

    def names(self) -> list[str]:
        """List template names available under the base directory."""
        if not self.base_path.is_dir():
            return []
        return sorted(
            p.stem for p in self.base_path.glob(f"*{TEMPLATE_SUFFIX}") if p.is_file()
        )

    def __len__(self) -> int:
        return len(self._caches)
