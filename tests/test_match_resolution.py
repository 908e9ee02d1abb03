"""Test cases for resolving a candidate against the mention pool."""
from __future__ import annotations

from dataclasses import dataclass

import pytest

from mentionfield.editing.engine import MatchAction, resolve_matches
from mentionfield.editing.mentionable import Mentionable, SimpleMentionable


@dataclass(frozen=True)
class QueryMentionable:
    """Mentionable that only accepts an explicit set of queries (case-insensitive)."""

    label: str
    accepted: frozenset = frozenset()

    @property
    def full_label(self) -> str:
        return self.label

    def matches(self, query: str) -> bool:
        return query.lower() in self.accepted

    def export_value(self) -> str:
        return f"@{self.label.lower()}"


JOHN = SimpleMentionable("John")
JORDAN = SimpleMentionable("Jordan")
MINSU = SimpleMentionable("민수")


def test_query_mentionable_satisfies_protocol():
    assert isinstance(QueryMentionable("x"), Mentionable)
    assert isinstance(JOHN, Mentionable)


def test_no_candidate_clears_suggestions():
    resolution = resolve_matches(None, [JOHN, JORDAN])
    assert resolution.action is MatchAction.SHOW
    assert resolution.payload == []


@pytest.mark.parametrize("candidate", ["@", "@jo!", "@jo-", "@jo\n", "jo"])
def test_invalid_grammar_clears(candidate):
    resolution = resolve_matches(candidate, [JOHN, JORDAN])
    assert resolution.action is MatchAction.CLEAR
    assert resolution.suggestions == []


def test_ambiguous_candidate_shows_all_matches_in_pool_order():
    """Scenario: 'Hello @jo' against John and Jordan."""
    resolution = resolve_matches("@jo", [JOHN, JORDAN])
    assert resolution.action is MatchAction.SHOW
    assert resolution.payload == [JOHN, JORDAN]


def test_show_keeps_pool_order_not_label_order():
    resolution = resolve_matches("@jo", [JORDAN, SimpleMentionable("Bob"), JOHN])
    assert resolution.payload == [JORDAN, JOHN]


def test_exact_label_commits():
    pool = [QueryMentionable("John", frozenset({"jo", "john"}))]
    resolution = resolve_matches("@John", pool)
    assert resolution.action is MatchAction.COMMIT
    assert resolution.payload is pool[0]
    assert resolution.suggestions == []


def test_exact_label_case_insensitive():
    resolution = resolve_matches("@JOHN", [JOHN])
    assert resolution.action is MatchAction.COMMIT
    assert resolution.payload == JOHN


def test_exact_label_but_ambiguous_still_shows():
    johnny = SimpleMentionable("Johnny")
    resolution = resolve_matches("@john", [JOHN, johnny])
    assert resolution.action is MatchAction.SHOW
    assert resolution.payload == [JOHN, johnny]


def test_single_partial_match_is_shown():
    resolution = resolve_matches("@joh", [JOHN, JORDAN])
    assert resolution.action is MatchAction.SHOW
    assert resolution.payload == [JOHN]


def test_no_match_shows_empty_list():
    resolution = resolve_matches("@zed", [JOHN, JORDAN])
    assert resolution.action is MatchAction.SHOW
    assert resolution.payload == []


def test_label_equal_but_predicate_rejects():
    pool = [QueryMentionable("John", frozenset({"jo"}))]
    resolution = resolve_matches("@John", pool)
    assert resolution.action is MatchAction.SHOW
    assert resolution.payload == []


def test_hangul_query():
    resolution = resolve_matches("@민수", [MINSU, JOHN])
    assert resolution.action is MatchAction.COMMIT
    assert resolution.payload == MINSU


def test_custom_trigger():
    resolution = resolve_matches("#jo", [JOHN, JORDAN], trigger="#")
    assert resolution.payload == [JOHN, JORDAN]
    assert resolve_matches("@jo", [JOHN], trigger="#").action is MatchAction.CLEAR


def test_pool_iterable_consumed_once():
    resolution = resolve_matches("@jo", iter([JOHN, JORDAN]))
    assert resolution.payload == [JOHN, JORDAN]


class TestSimpleMentionable:
    def test_prefix_match_case_insensitive(self):
        assert JOHN.matches("jO")
        assert not JOHN.matches("oh")

    def test_aliases(self):
        person = SimpleMentionable("John", aliases=("jdoe",))
        assert person.matches("JD")

    def test_empty_query_matches(self):
        assert JOHN.matches("")

    def test_full_label_defaults_to_label(self):
        assert JOHN.full_label == "John"
        assert SimpleMentionable("jdoe", display="John Doe").full_label == "John Doe"

    def test_export_template(self):
        assert JOHN.export_value() == "@John"
        person = SimpleMentionable("jdoe", display="John Doe", export_template="<@{label}|{full_label}>")
        assert person.export_value() == "<@jdoe|John Doe>"
