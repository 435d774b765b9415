"""Template watching: change-driven recompilation of template resources."""

from .cache import WatchedArtifactCache
from .errors import (
    CompileError,
    ResourceUnavailableError,
    TemplateNotFoundError,
    TemplateWatchError,
)
from .registry import TemplateRegistry
from .resource import DigestFileResource, FileResource, MemoryResource, Resource
from .template import RootNode, compile_template

__all__ = [
    "CompileError",
    "DigestFileResource",
    "FileResource",
    "MemoryResource",
    "Resource",
    "ResourceUnavailableError",
    "RootNode",
    "TemplateNotFoundError",
    "TemplateRegistry",
    "TemplateWatchError",
    "WatchedArtifactCache",
    "compile_template",
]
