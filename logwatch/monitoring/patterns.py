"""
Pattern Registry - priority-ordered (name, matcher, handler) entries.

Entries are held in a list sorted by ``(priority, registration sequence)``
with a name -> index lookup rebuilt on every mutation, so ``match()`` walks
patterns in a deterministic order: lower priority numbers first, ties in
registration order.
"""

import re
from dataclasses import dataclass, field, replace
from itertools import count
from typing import Any, Callable

from logwatch.monitoring.errors import ParseError, PatternError

Matcher = str | re.Pattern | Callable[[str], Any]
Handler = Callable[[Any], dict[str, Any]]


@dataclass
class PatternDefinition:
    """A named matcher plus the handler that extracts event data."""

    name: str
    matcher: re.Pattern | Callable[[str], Any]
    handler: Handler
    priority: int
    enabled: bool = True
    sequence: int = 0

    def search(self, line: str) -> Any:
        """Return a match object (or truthy matcher result), else None."""
        if isinstance(self.matcher, re.Pattern):
            return self.matcher.search(line)
        return self.matcher(line) or None

    @property
    def source(self) -> str:
        """Printable form of the matcher."""
        if isinstance(self.matcher, re.Pattern):
            return self.matcher.pattern
        return getattr(self.matcher, "__name__", repr(self.matcher))


@dataclass
class PatternMatch:
    """Result of a successful registry match."""

    name: str
    data: dict[str, Any]
    raw: str
    match: Any = field(default=None, repr=False)


class PatternRegistry:
    """Ordered set of pattern definitions."""

    def __init__(self, case_insensitive: bool = False):
        self.case_insensitive = case_insensitive
        self._entries: list[PatternDefinition] = []
        self._index: dict[str, int] = {}
        self._sequence = count()

    # =========================================================================
    # Registration
    # =========================================================================

    def _compile(self, matcher: Matcher) -> re.Pattern | Callable[[str], Any]:
        if isinstance(matcher, re.Pattern):
            return matcher
        if isinstance(matcher, str):
            try:
                return re.compile(matcher, re.IGNORECASE if self.case_insensitive else 0)
            except re.error as e:
                raise PatternError(f"Invalid regular expression: {matcher!r}", {"matcher": matcher}, e) from e
        if callable(matcher):
            return matcher
        raise PatternError("Matcher must be a regex string, compiled pattern or callable", {"matcher": repr(matcher)})

    def _reindex(self) -> None:
        self._entries.sort(key=lambda d: (d.priority, d.sequence))
        self._index = {d.name: i for i, d in enumerate(self._entries)}

    def add_pattern(
        self,
        name: str,
        matcher: Matcher,
        handler: Handler,
        priority: int | None = None,
        enabled: bool = True,
    ) -> PatternDefinition:
        """Register a pattern, replacing any existing entry with the same name.

        Args:
            name: Unique pattern name (also the produced event type)
            matcher: Regex string, compiled pattern, or ``line -> match`` callable
            handler: Turns the match into the event data mapping
            priority: Lower is tested first (defaults to the current entry count)
            enabled: Disabled patterns are skipped by ``match()``

        Returns:
            The stored definition
        """
        if not isinstance(name, str) or not name.strip():
            raise PatternError("Pattern name must be a non-empty string", {"name": name})
        if not callable(handler):
            raise PatternError("Handler must be callable", {"name": name})

        compiled = self._compile(matcher)
        if name in self._index:
            self.remove_pattern(name)

        definition = PatternDefinition(
            name=name,
            matcher=compiled,
            handler=handler,
            priority=len(self._entries) if priority is None else priority,
            enabled=enabled,
            sequence=next(self._sequence),
        )
        self._entries.append(definition)
        self._reindex()
        return definition

    def remove_pattern(self, name: str) -> bool:
        """Remove a pattern by name. Returns False if it was not registered."""
        position = self._index.get(name)
        if position is None:
            return False
        del self._entries[position]
        self._reindex()
        return True

    def enable(self, name: str) -> bool:
        return self._set_enabled(name, True)

    def disable(self, name: str) -> bool:
        return self._set_enabled(name, False)

    def _set_enabled(self, name: str, enabled: bool) -> bool:
        definition = self.get_pattern(name)
        if definition is None:
            return False
        definition.enabled = enabled
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._index.clear()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_pattern(self, name: str) -> PatternDefinition | None:
        position = self._index.get(name)
        return None if position is None else self._entries[position]

    def names(self) -> list[str]:
        """Pattern names in match order."""
        return [d.name for d in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    # =========================================================================
    # Matching
    # =========================================================================

    def _apply(self, definition: PatternDefinition, line: str, match: Any) -> PatternMatch:
        try:
            data = definition.handler(match)
        except Exception as e:
            raise ParseError(definition.name, line, e) from e
        return PatternMatch(name=definition.name, data=dict(data or {}), raw=line, match=match)

    def match(self, line: str) -> PatternMatch | None:
        """Match a line against all enabled patterns in priority order.

        Returns:
            The first successful match, or None when no pattern matches

        Raises:
            ParseError: The handler of the first matching pattern failed
        """
        if not isinstance(line, str):
            return None

        for definition in self._entries:
            if not definition.enabled:
                continue
            match = definition.search(line)
            if match is not None:
                return self._apply(definition, line, match)
        return None

    def match_pattern(self, line: str, name: str) -> PatternMatch | None:
        """Match a line against a single named pattern."""
        definition = self.get_pattern(name)
        if definition is None:
            return None
        match = definition.search(line)
        if match is None:
            return None
        return self._apply(definition, line, match)

    def test(self, line: str, name: str) -> bool:
        """Check whether a named pattern matches, without running its handler."""
        definition = self.get_pattern(name)
        return definition is not None and definition.search(line) is not None

    # =========================================================================
    # Copies / Serialization
    # =========================================================================

    def clone(self) -> "PatternRegistry":
        """Independent copy: mutating either registry leaves the other intact."""
        cloned = PatternRegistry(case_insensitive=self.case_insensitive)
        cloned._entries = [replace(d) for d in self._entries]
        cloned._sequence = count(max((d.sequence for d in self._entries), default=-1) + 1)
        cloned._reindex()
        return cloned

    def to_dict(self) -> dict[str, Any]:
        return {
            "case_insensitive": self.case_insensitive,
            "pattern_count": len(self._entries),
            "patterns": {
                d.name: {"pattern": d.source, "priority": d.priority, "enabled": d.enabled}
                for d in self._entries
            },
        }
