"""
Template compiler.

Parses a JSON template document (comments allowed) into an immutable
node tree ready for evaluation.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, BinaryIO, Union

from .errors import CompileError

SOURCE_KEY = "$source"
CONTEXT_KEY = "@context"
PROPERTY_PREFIX = "${"
FILTER_PREFIX = "$${"


@dataclass(frozen=True)
class StaticValueNode:
    key: str | None
    value: Any

    def to_dict(self) -> dict[str, Any]:
        return {"type": "static", "key": self.key, "value": self.value}


@dataclass(frozen=True)
class DynamicValueNode:
    """Value resolved against data at evaluation time."""

    key: str | None
    expression: str
    is_filter: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "filter" if self.is_filter else "property",
            "key": self.key,
            "expression": self.expression,
        }


@dataclass(frozen=True)
class CompositeNode:
    key: str | None
    source: str | None
    children: tuple[TemplateNode, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "composite",
            "key": self.key,
            "source": self.source,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass(frozen=True)
class IteratingNode:
    key: str | None
    children: tuple[TemplateNode, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "iterating",
            "key": self.key,
            "children": [child.to_dict() for child in self.children],
        }


TemplateNode = Union[StaticValueNode, DynamicValueNode, CompositeNode, IteratingNode]


@dataclass(frozen=True)
class RootNode:
    """Compiled template: the artifact served by the watcher cache."""

    context: Any
    source: str | None
    children: tuple[TemplateNode, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "root",
            "context": _thaw(self.context),
            "source": self.source,
            "children": [child.to_dict() for child in self.children],
        }


def strip_comments(text: str) -> str:
    """
    Remove // line comments and /* */ block comments from JSON text.

    String literals are left untouched. Newlines inside comments are kept
    so parser error positions still match the original document.

    Raises:
        CompileError: if a block comment is not terminated
    """
    out: list[str] = []
    i = 0
    n = len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end == -1:
                line = text.count("\n", 0, i) + 1
                raise CompileError(f"unterminated block comment at line {line}")
            # a comment separates tokens like whitespace does
            out.append(" " + "\n" * text.count("\n", i, end))
            i = end + 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def compile_template(stream: BinaryIO) -> RootNode:
    """
    Compile a JSON template read from ``stream``.

    Args:
        stream: binary stream with UTF-8 encoded template text

    Returns:
        Immutable root of the template tree

    Raises:
        CompileError: if the document is not a valid template
    """
    raw = stream.read()
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise CompileError(f"template is not valid UTF-8: {e}") from e

    try:
        document = json.loads(strip_comments(text), parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise CompileError(
            f"invalid JSON at line {e.lineno} column {e.colno}: {e.msg}"
        ) from e

    if not isinstance(document, dict):
        raise CompileError("template root must be a JSON object")

    members = dict(document)
    context = _freeze(members.pop(CONTEXT_KEY, None))
    source = _pop_source(members)
    children = tuple(_compile_value(key, value) for key, value in members.items())
    return RootNode(context=context, source=source, children=children)


def _reject_constant(name: str) -> Any:
    raise CompileError(f"invalid JSON constant {name}")


def _pop_source(members: dict[str, Any]) -> str | None:
    if SOURCE_KEY not in members:
        return None
    source = members.pop(SOURCE_KEY)
    if not isinstance(source, str) or not source.strip():
        raise CompileError(f"{SOURCE_KEY} must be a non-empty string")
    return source


def _compile_value(key: str | None, value: Any) -> TemplateNode:
    if isinstance(value, dict):
        members = dict(value)
        source = _pop_source(members)
        children = tuple(_compile_value(k, v) for k, v in members.items())
        return CompositeNode(key=key, source=source, children=children)
    if isinstance(value, list):
        return IteratingNode(
            key=key, children=tuple(_compile_value(None, v) for v in value)
        )
    if isinstance(value, str):
        return _compile_string(key, value)
    return StaticValueNode(key=key, value=value)


def _compile_string(key: str | None, value: str) -> TemplateNode:
    if value.startswith(FILTER_PREFIX):
        prefix, is_filter = FILTER_PREFIX, True
    elif value.startswith(PROPERTY_PREFIX):
        prefix, is_filter = PROPERTY_PREFIX, False
    else:
        return StaticValueNode(key=key, value=value)

    if not value.endswith("}"):
        raise CompileError(f"unterminated expression {value!r} for key {key!r}")
    expression = value[len(prefix) : -1].strip()
    if not expression:
        raise CompileError(f"empty expression for key {key!r}")
    if "}" in expression:
        raise CompileError(f"unexpected '}}' in expression {value!r} for key {key!r}")
    return DynamicValueNode(key=key, expression=expression, is_filter=is_filter)


def _freeze(value: Any) -> Any:
    # @context is kept verbatim but must not be mutable once issued
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, MappingProxyType):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value
