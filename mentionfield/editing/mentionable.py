"""Mentionable contract consumed by the mention editing engine."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class Mentionable(Protocol):
    """Anything that can be picked from the suggestion list.

    ``label`` is what queries are compared against, ``full_label`` is what
    the editor shows in place of the sentinel and ``export_value()`` is the
    serialized form written by ``MentionEditingEngine.export()``.
    """

    @property
    def label(self) -> str: ...

    @property
    def full_label(self) -> str: ...

    def matches(self, query: str) -> bool: ...

    def export_value(self) -> str: ...


@dataclass(frozen=True)
class SimpleMentionable:
    """Plain value implementation of :class:`Mentionable`.

    Matching is a case-insensitive prefix test against the label and every
    alias, e.g. ``SimpleMentionable("John", aliases=("jdoe",))`` matches
    ``"jo"`` and ``"JD"``.
    """

    label: str
    display: Optional[str] = None
    aliases: tuple[str, ...] = ()
    export_template: str = "@{label}"

    @property
    def full_label(self) -> str:
        return self.display or self.label

    def matches(self, query: str) -> bool:
        needle = (query or "").lower()
        if not needle:
            return True
        return any(name.lower().startswith(needle) for name in (self.label, *self.aliases))

    def export_value(self) -> str:
        return self.export_template.format(label=self.label, full_label=self.full_label)
