"""Alignment of sentinel runs with the mention queue in render and export."""
from __future__ import annotations

import pytest

from mentionfield.app.config import DEFAULT_SENTINEL as S
from mentionfield.app.config import MentionConfig, MentionStyle
from mentionfield.editing.engine import (
    MentionEditingEngine,
    MentionSyncError,
    Segment,
    SegmentKind,
    export_text,
    render_segments,
)
from mentionfield.editing.mentionable import SimpleMentionable

A = SimpleMentionable("ann", display="Ann Lee")
B = SimpleMentionable("bo", display="Bo Kim")
BOLD = MentionStyle()


def test_adjacent_sentinels_render_two_mentions():
    segments = render_segments(f"{S}{S}", [A, B], S, None, BOLD)
    assert segments == [
        Segment(SegmentKind.MENTION, "Ann Lee", BOLD, A),
        Segment(SegmentKind.MENTION, "Bo Kim", BOLD, B),
    ]


def test_plain_runs_keep_base_style():
    segments = render_segments(f"Hello {S} where is {S}?", [A, B], S, "base", BOLD)
    assert [(s.kind, s.text, s.style) for s in segments] == [
        (SegmentKind.PLAIN, "Hello ", "base"),
        (SegmentKind.MENTION, "Ann Lee", BOLD),
        (SegmentKind.PLAIN, " where is ", "base"),
        (SegmentKind.MENTION, "Bo Kim", BOLD),
        (SegmentKind.PLAIN, "?", "base"),
    ]


def test_text_without_mentions():
    assert render_segments("just text", [], S) == [Segment(SegmentKind.PLAIN, "just text")]
    assert render_segments("", [], S) == []


def test_render_is_idempotent_and_leaves_mentions_untouched():
    mentions = [A, B]
    first = render_segments(f"{S} and {S}", mentions, S)
    second = render_segments(f"{S} and {S}", mentions, S)
    assert first == second
    assert mentions == [A, B]


def test_segment_mentionable_links_back():
    segments = render_segments(f"x{S}", [B], S)
    assert segments[1].is_mention
    assert segments[1].mentionable is B
    assert not segments[0].is_mention


def test_export_replaces_in_order():
    john = SimpleMentionable("john")
    assert export_text(f"Hi {S}!", [john], S) == "Hi @john!"
    assert export_text(f"{S}{S}", [A, B], S) == "@ann@bo"


def test_export_without_mentions():
    assert export_text("plain", [], S) == "plain"


@pytest.mark.parametrize(
    ("text", "mentions", "sentinels", "stored"),
    [
        (f"{S}{S}", [A], 2, 1),
        (f"{S}", [A, B], 1, 2),
        ("none", [A], 0, 1),
    ],
)
def test_count_mismatch_raises(text, mentions, sentinels, stored):
    with pytest.raises(MentionSyncError) as excinfo:
        render_segments(text, mentions, S)
    assert excinfo.value.sentinels == sentinels
    assert excinfo.value.mentions == stored
    with pytest.raises(MentionSyncError):
        export_text(text, mentions, S)


def test_engine_render_uses_configured_style():
    style = MentionStyle(bold=False, color="#ff8800")
    engine = MentionEditingEngine(MentionConfig(mention_style=style))
    engine.on_text_changed("hey @ann", 8, [A, B])
    segments = engine.render("body")
    assert segments == [
        Segment(SegmentKind.PLAIN, "hey ", "body"),
        Segment(SegmentKind.MENTION, "Ann Lee", style, A),
        Segment(SegmentKind.PLAIN, " ", "body"),
    ]
    assert engine.render("body") == segments
    assert engine.export() == "hey @ann "
