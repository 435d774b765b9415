"""Error kinds raised while watching and compiling templates."""

from __future__ import annotations


class TemplateWatchError(Exception):
    """Base class for template watch errors."""


class ResourceUnavailableError(TemplateWatchError):
    """The backing resource cannot currently be read."""

    def __init__(self, identity: str, reason: str = "resource unavailable"):
        super().__init__(f"{identity}: {reason}")
        self.identity = identity
        self.reason = reason


class CompileError(TemplateWatchError):
    """The resource was read but its contents are not a valid template."""

    def __init__(self, message: str, identity: str | None = None):
        text = f"{identity}: {message}" if identity else message
        super().__init__(text)
        self.identity = identity
        self.message = message


class TemplateNotFoundError(TemplateWatchError, KeyError):
    """No template is registered under the requested name."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"template not found: {self.name!r}"
