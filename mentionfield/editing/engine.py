"""Mention editing engine.

The engine keeps three views of one text field in step:

* the raw text held by the edit surface, where every resolved mention is a
  single sentinel character,
* the ordered list of mentions, the i-th one belonging to the i-th
  sentinel from the left,
* the rendered segments, where each sentinel is replaced by its label.

Everything here is synchronous and free of any UI toolkit; the Qt binding
in ``mentionfield.app.ui.mention_edit`` drives it from ``textChanged``.
"""
from __future__ import annotations

import logging
import os
import re
from collections import deque
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Iterable, Optional, Sequence

from mentionfield.app.config import DEFAULT_TRIGGER, QUERY_CHARACTERS, MentionConfig
from .mentionable import Mentionable

logger = logging.getLogger(__name__)

_DETAILED_LOGGING = os.getenv("MENTIONFIELD_DETAILED_LOGGING", "0") not in ("0", "false", "False", "", None)

SuggestionListener = Callable[[list], None]


class MentionSyncError(RuntimeError):
    """Raised when the sentinel count and the mention list length disagree."""

    def __init__(self, sentinels: int, mentions: int) -> None:
        super().__init__(
            f"text holds {sentinels} mention sentinel(s) but {mentions} mention(s) are stored"
        )
        self.sentinels = sentinels
        self.mentions = mentions


class MatchAction(Enum):
    SHOW = "show"
    CLEAR = "clear"
    COMMIT = "commit"


class EngineState(Enum):
    IDLE = "idle"
    CANDIDATE_OPEN = "candidate_open"
    SHOWING = "showing"
    COMMITTED = "committed"


class SegmentKind(Enum):
    PLAIN = "plain"
    MENTION = "mention"


@dataclass(frozen=True)
class Resolution:
    """Outcome of matching a candidate against the pool.

    ``payload`` is a list of mentionables for SHOW and CLEAR, and the single
    picked mentionable for COMMIT.
    """

    action: MatchAction
    payload: Any

    @property
    def suggestions(self) -> list:
        if self.action is MatchAction.COMMIT:
            return []
        return list(self.payload)


@dataclass(frozen=True)
class Segment:
    kind: SegmentKind
    text: str
    style: Any = None
    mentionable: Optional[Mentionable] = None

    @property
    def is_mention(self) -> bool:
        return self.kind is SegmentKind.MENTION


def count_char(text: str, char: str, end: Optional[int] = None) -> int:
    """Count ``char`` in ``text[:end]``."""
    if end is None:
        return text.count(char)
    return text.count(char, 0, max(0, end))


def mention_queue(mentions: Iterable[Mentionable]) -> deque:
    """Fresh FIFO over ``mentions``; draining it never touches the source."""
    return deque(mentions)


@lru_cache(maxsize=8)
def _candidate_pattern(trigger: str) -> re.Pattern[str]:
    return re.compile(rf"{re.escape(trigger)}[{QUERY_CHARACTERS}]+")


def _find_candidate(text: str, cursor: int, trigger: str) -> Optional[tuple[int, str]]:
    if not text:
        return None
    cursor = max(0, min(cursor, len(text)))
    start = text.rfind(trigger, 0, cursor)
    if start == -1:
        return None
    return start, text[start:cursor]


def detect_candidate(text: str, cursor: int, trigger: str = DEFAULT_TRIGGER) -> Optional[str]:
    """Return the fragment from the nearest trigger left of ``cursor`` up to it.

    The trigger itself is included, so a field holding just ``"@"`` with the
    cursor after it yields ``"@"``.
    """
    found = _find_candidate(text, cursor, trigger)
    return found[1] if found else None


def resolve_matches(
    candidate: Optional[str],
    pool: Iterable[Mentionable],
    trigger: str = DEFAULT_TRIGGER,
) -> Resolution:
    """Decide what the suggestion list should do for ``candidate``."""
    if candidate is None:
        return Resolution(MatchAction.SHOW, [])
    if not _candidate_pattern(trigger).fullmatch(candidate):
        return Resolution(MatchAction.CLEAR, [])

    query = candidate[len(trigger):]
    matches = [entry for entry in pool if entry.matches(query)]
    if len(matches) > 1:
        return Resolution(MatchAction.SHOW, matches)

    lowered = query.lower()
    perfect = [entry for entry in matches if entry.label.lower() == lowered and entry.matches(query)]
    if len(perfect) == 1:
        return Resolution(MatchAction.COMMIT, perfect[0])
    return Resolution(MatchAction.SHOW, matches)


def _check_alignment(text: str, mentions: Sequence[Mentionable], sentinel: str) -> None:
    sentinels = text.count(sentinel)
    if sentinels != len(mentions):
        raise MentionSyncError(sentinels, len(mentions))


def render_segments(
    text: str,
    mentions: Sequence[Mentionable],
    sentinel: str,
    style: Any = None,
    mention_style: Any = None,
) -> list[Segment]:
    """Split ``text`` on the sentinel and zip the sentinel runs with ``mentions``.

    Plain runs keep ``style``; each sentinel becomes a mention segment showing
    the mention's full label in ``mention_style``. Empty plain runs between
    adjacent sentinels are dropped.
    """
    _check_alignment(text, mentions, sentinel)
    queue = mention_queue(mentions)
    segments: list[Segment] = []
    for run in re.split(f"({re.escape(sentinel)})", text):
        if run == sentinel:
            mention = queue.popleft()
            segments.append(Segment(SegmentKind.MENTION, mention.full_label, mention_style, mention))
        elif run:
            segments.append(Segment(SegmentKind.PLAIN, run, style))
    return segments


def export_text(text: str, mentions: Sequence[Mentionable], sentinel: str) -> str:
    """Replace each sentinel, left to right, with the next mention's export value."""
    _check_alignment(text, mentions, sentinel)
    queue = mention_queue(mentions)
    return re.sub(re.escape(sentinel), lambda _match: queue.popleft().export_value(), text)


def _diff_bounds(old: str, new: str) -> tuple[int, int]:
    """Lengths of the longest common prefix and (non-overlapping) suffix."""
    prefix = len(os.path.commonprefix([old, new]))
    limit = min(len(old), len(new)) - prefix
    suffix = 0
    while suffix < limit and old[len(old) - 1 - suffix] == new[len(new) - 1 - suffix]:
        suffix += 1
    return prefix, suffix


def _replace_all_occurrences(
    text: str,
    candidate: str,
    mentions: Sequence[Mentionable],
    mentionable: Mentionable,
    sentinel: str,
) -> tuple[str, list[Mentionable], int]:
    # Same left-to-right, non-overlapping walk as str.replace, keeping the
    # mention list aligned with every sentinel created along the way.
    queue = mention_queue(mentions)
    pieces: list[str] = []
    aligned: list[Mentionable] = []
    created = 0
    pos = 0
    for match in re.finditer(re.escape(candidate), text):
        chunk = text[pos:match.start()]
        aligned.extend(queue.popleft() for _ in range(chunk.count(sentinel)))
        pieces.append(chunk)
        pieces.append(sentinel)
        aligned.append(mentionable)
        created += 1
        pos = match.end()
    pieces.append(text[pos:])
    aligned.extend(queue)
    return "".join(pieces) + " ", aligned, created


class MentionEditingEngine:
    """Owns the raw text, the cursor and the ordered mention list of one field.

    Call :meth:`on_text_changed` after every edit with the current candidate
    pool; listeners registered with :meth:`subscribe` receive the list of
    suggestions to show (empty when the popup should close).
    """

    def __init__(
        self,
        config: Optional[MentionConfig] = None,
        listener: Optional[SuggestionListener] = None,
    ) -> None:
        self._config = config or MentionConfig()
        self._text = ""
        self._cursor = 0
        self._mentions: list[Mentionable] = []
        self._listeners: list[SuggestionListener] = []
        self._state = EngineState.IDLE
        if listener is not None:
            self.subscribe(listener)

    @property
    def config(self) -> MentionConfig:
        return self._config

    @property
    def text(self) -> str:
        return self._text

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def mentions(self) -> tuple[Mentionable, ...]:
        return tuple(self._mentions)

    @property
    def state(self) -> EngineState:
        return self._state

    def subscribe(self, listener: SuggestionListener) -> Callable[[], None]:
        """Register ``listener``; the returned callable removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, suggestions: Sequence[Mentionable]) -> None:
        for listener in list(self._listeners):
            listener(list(suggestions))

    def clear(self) -> None:
        self._text = ""
        self._cursor = 0
        self._mentions = []
        self._state = EngineState.IDLE

    def set_text(self, text: str, cursor: Optional[int] = None) -> None:
        """Adopt an edit made outside the engine and realign the mention list."""
        if cursor is None:
            cursor = len(text)
        cursor = max(0, min(cursor, len(text)))
        self._text, self._cursor = self._reconcile(text, cursor)

    def _reconcile(self, new: str, cursor: int) -> tuple[str, int]:
        old = self._text
        if new == old:
            return new, cursor
        sentinel = self._config.sentinel

        prefix, suffix = _diff_bounds(old, new)
        tail = new[cursor:]
        if len(tail) <= len(old) and old.endswith(tail):
            # An edit of the same size that ends at the cursor is preferred;
            # it picks the right one of two identical neighbouring sentinels.
            anchored = len(os.path.commonprefix([old[:len(old) - len(tail)], new[:cursor]]))
            if anchored + len(tail) == prefix + suffix:
                prefix, suffix = anchored, len(tail)
        removed = old[prefix:len(old) - suffix]
        inserted_end = len(new) - suffix
        inserted = new[prefix:inserted_end]

        dropped = removed.count(sentinel)
        if dropped:
            first = count_char(old, sentinel, prefix)
            del self._mentions[first:first + dropped]
            logger.debug("Dropped %d mention(s) starting at index %d", dropped, first)

        orphans = inserted.count(sentinel)
        if orphans:
            logger.warning("Stripping %d mention sentinel(s) inserted without a mention", orphans)
            before_cursor = new[prefix:max(prefix, min(cursor, inserted_end))].count(sentinel)
            new = new[:prefix] + inserted.replace(sentinel, "") + new[inserted_end:]
            cursor -= before_cursor
        return new, cursor

    def on_text_changed(self, text: str, cursor: int, pool: Iterable[Mentionable]) -> Resolution:
        """Change hook: realign, detect the candidate and resolve it against ``pool``.

        An unambiguous exact match is committed right away. The pool is only
        read during this call.
        """
        self.set_text(text, cursor)
        trigger = self._config.trigger
        candidate = detect_candidate(self._text, self._cursor, trigger)
        resolution = resolve_matches(candidate, pool, trigger)
        if _DETAILED_LOGGING:
            logger.debug(
                "candidate=%r action=%s cursor=%d mentions=%d",
                candidate,
                resolution.action.value,
                self._cursor,
                len(self._mentions),
            )

        if resolution.action is MatchAction.COMMIT:
            self.commit(resolution.payload)
            return resolution

        self._settle(candidate, resolution.action, resolution.payload)
        return resolution

    def move_cursor(self, cursor: int, pool: Iterable[Mentionable]) -> Resolution:
        """Re-resolve after the cursor moved without an edit.

        Never commits; an exact match is offered as a single suggestion.
        """
        self._cursor = max(0, min(cursor, len(self._text)))
        trigger = self._config.trigger
        candidate = detect_candidate(self._text, self._cursor, trigger)
        resolution = resolve_matches(candidate, pool, trigger)
        if resolution.action is MatchAction.COMMIT:
            suggestions = [resolution.payload]
        else:
            suggestions = resolution.payload
        self._settle(candidate, resolution.action, suggestions)
        return resolution

    def _settle(self, candidate: Optional[str], action: MatchAction, suggestions: Sequence[Mentionable]) -> None:
        if candidate is None or action is MatchAction.CLEAR:
            self._state = EngineState.IDLE
        elif suggestions:
            self._state = EngineState.SHOWING
        else:
            self._state = EngineState.CANDIDATE_OPEN
        self._notify(suggestions)

    def commit(self, mentionable: Mentionable) -> bool:
        """Replace the candidate at the cursor with a mention of ``mentionable``.

        Returns False and changes nothing unless a valid candidate sits at the
        cursor.
        """
        sentinel = self._config.sentinel
        found = _find_candidate(self._text, self._cursor, self._config.trigger)
        if found is None:
            return False
        start, candidate = found
        # The sentinel, newlines and punctuation are all outside the query grammar.
        if not _candidate_pattern(self._config.trigger).fullmatch(candidate):
            logger.debug("Refusing to commit invalid candidate %r", candidate)
            return False

        cursor = self._cursor
        if self._config.replace_all_occurrences:
            text, mentions, created = _replace_all_occurrences(
                self._text, candidate, self._mentions, mentionable, sentinel
            )
            if created > 1:
                logger.warning("Candidate %r replaced at %d places", candidate, created)
            self._text, self._mentions = text, mentions
        else:
            index = count_char(self._text, sentinel, start)
            self._mentions.insert(index, mentionable)
            self._text = f"{self._text[:start]}{sentinel} {self._text[cursor:]}"

        self._cursor = min(cursor - len(candidate) + 2, len(self._text))
        self._state = EngineState.COMMITTED
        logger.debug("Committed mention %r from candidate %r", mentionable.label, candidate)
        self._notify([])
        return True

    def render(self, style: Any = None) -> list[Segment]:
        return render_segments(
            self._text, self._mentions, self._config.sentinel, style, self._config.mention_style
        )

    def export(self) -> str:
        return export_text(self._text, self._mentions, self._config.sentinel)
