from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True, slots=True)
class DiagnosticsReply:
    """Reply carrying raw diagnostic records.

    Example:
        ```python
        reply = DiagnosticsReply(diagnostics=[{"message": "x", "severity": 1}])
        ```
    """

    diagnostics: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CompletionReply:
    """Reply carrying completion items.

    Example:
        ```python
        reply = CompletionReply(items=[{"label": "queue_free"}])
        ```
    """

    items: list[Any] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class HoverReply:
    """Reply carrying hover text.

    Example:
        ```python
        reply = HoverReply(text="func queue_free() -> void")
        ```
    """

    text: str


@dataclass(frozen=True, slots=True)
class DefinitionReply:
    """Reply carrying definition locations.

    Example:
        ```python
        reply = DefinitionReply(locations=[{"uri": "file:///work/game/player.gd"}])
        ```
    """

    locations: list[Any] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class UnrecognizedReply:
    """Reply whose shape is not understood; consumers treat it as empty.

    Example:
        ```python
        reply = UnrecognizedReply(raw=42)
        ```
    """

    raw: Any = None


Reply = Union[DiagnosticsReply, CompletionReply, HoverReply, DefinitionReply, UnrecognizedReply]


def parse_diagnostics_reply(payload: Any) -> DiagnosticsReply | UnrecognizedReply:
    """Interpret a payload as `{"diagnostics": [...]}` or a bare list.

    Example:
        ```python
        reply = parse_diagnostics_reply({"diagnostics": []})
        ```
    """
    if isinstance(payload, dict):
        payload = payload.get("diagnostics")
    if isinstance(payload, list):
        return DiagnosticsReply([item for item in payload if isinstance(item, dict)])
    return UnrecognizedReply(payload)


def parse_completion_reply(payload: Any) -> CompletionReply | UnrecognizedReply:
    """Interpret a payload as a completion list or a `{"items": [...]}` object.

    Example:
        ```python
        reply = parse_completion_reply({"isIncomplete": False, "items": [{"label": "x"}]})
        ```
    """
    if isinstance(payload, list):
        return CompletionReply(list(payload))
    if isinstance(payload, dict) and isinstance(payload.get("items"), list):
        return CompletionReply(list(payload["items"]))
    return UnrecognizedReply(payload)


def _markup_text(contents: Any) -> str | None:
    """Flatten hover contents (string, MarkupContent, or a list of them) to text.

    Example:
        ```python
        text = _markup_text({"kind": "markdown", "value": "**int**"})
        ```
    """
    if isinstance(contents, str):
        return contents
    if isinstance(contents, dict) and isinstance(contents.get("value"), str):
        return contents["value"]
    if isinstance(contents, list):
        parts = [text for text in (_markup_text(item) for item in contents) if text]
        return "\n".join(parts) if parts else None
    return None


def parse_hover_reply(payload: Any) -> HoverReply | UnrecognizedReply:
    """Interpret a payload as a hover object with `contents`.

    Example:
        ```python
        reply = parse_hover_reply({"contents": "int"})
        ```
    """
    if isinstance(payload, dict):
        text = _markup_text(payload.get("contents"))
        if text:
            return HoverReply(text)
    return UnrecognizedReply(payload)


def parse_definition_reply(payload: Any) -> DefinitionReply | UnrecognizedReply:
    """Interpret a payload as one location or a list of locations.

    Example:
        ```python
        reply = parse_definition_reply({"uri": "file:///a.gd", "range": {}})
        ```
    """
    if isinstance(payload, list):
        return DefinitionReply(list(payload))
    if isinstance(payload, dict):
        return DefinitionReply([payload])
    return UnrecognizedReply(payload)
