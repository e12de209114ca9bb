import pytest

from panelbus.errors import MalformedPattern
from panelbus.pattern import MatchMode, compile_pattern, matches


def test_literal_pattern_matches_anywhere_in_topic():
    assert matches("Stop", "Sequencer|Transport|Stop")
    assert matches("Transport", "Sequencer|Transport|Stop")
    assert not matches("Stop", "Sequencer|Transport|Play")


def test_prefix_subscription_matches_whole_category():
    assert matches("Sequencer|Transport|", "Sequencer|Transport|Play")
    assert not matches("Sequencer|Transport|", "Sequencer|PlayHead|CurrentBeat")


@pytest.mark.parametrize("topic", [
    "Sequencer|Transport|Play",
    "Sequencer|Transport|Stop",
    "Sequencer|Transport|Pause",
])
def test_alphanumeric_wildcard_matches_transport_events(topic):
    assert matches("Sequencer|Transport|%w", topic)


def test_alphanumeric_wildcard_rejects_other_category():
    assert not matches("Sequencer|Transport|%w", "Sequencer|PlayHead|CurrentBeat")
    assert not matches("Sequencer|Transport|%w", "Sequencer|Transport|")


def test_empty_pattern_matches_every_topic():
    assert matches("", "anything")
    assert matches("", "")


def test_anchors():
    assert matches("^Seq", "Sequencer|Transport|Play")
    assert not matches("^Transport", "Sequencer|Transport|Play")
    assert matches("Play$", "Sequencer|Transport|Play")
    assert not matches("Play$", "Sequencer|Transport|Playing")
    # $ is the end of the topic, not the position before a trailing newline
    assert not matches("Play$", "Play\n")


def test_anchor_characters_elsewhere_are_literal():
    assert matches("a^b", "xa^b")
    assert matches("a$b", "a$b")
    assert not matches("a$b", "ab")


def test_classes_and_complements():
    assert matches("%d+", "Track12")
    assert not matches("^%d+$", "12a")
    assert matches("^%u%l+$", "Transport")
    assert not matches("^%u%l+$", "transport")
    assert matches("%s", "a b")
    assert matches("%p", "a|b")
    assert matches("%x%x", "ff")
    assert not matches("%a", "é")
    assert matches("%A", "é")
    assert matches("^%W+$", "|-|")


def test_escaped_magic_characters():
    assert matches("%.", "a.b")
    assert not matches("%.", "ab")
    assert matches("100%%", "volume 100%")
    assert matches("%[x%]", "[x]")


def test_dot_matches_any_character_including_newline():
    assert matches("a.b", "a\nb")
    assert not matches(".", "")


def test_quantifiers():
    assert matches("^ab*c$", "ac")
    assert matches("^ab+c$", "abbbc")
    assert not matches("^ab+c$", "ac")
    assert matches("^ab?c$", "abc")
    assert not matches("^ab?c$", "abbc")
    assert matches("^a.-b$", "axxb")


def test_dash_after_single_item_is_lazy_repeat():
    # "x-y" means zero or more x then y, so it is found in any topic containing y
    assert matches("x-y", "y")
    assert matches("^x-y$", "xxy")


def test_quantifier_without_item_is_literal():
    assert matches("*", "a*b")
    assert not matches("*", "ab")
    assert matches("(+)", "1+1")


def test_sets():
    assert matches("^[%a_]+%d$", "abc_1")
    assert matches("[^|]+$", "A|B")
    assert matches("^[a-c]+$", "abcab")
    assert not matches("^[a-c]+$", "abd")
    assert matches("[]]", "]")
    assert matches("[a-]", "-")
    assert matches("[^]]", "a")


def test_inverted_range_is_empty_set():
    assert not matches("[z-a]", "m")
    assert matches("[^z-a]", "m")


def test_frontier():
    assert matches("%f[%w]Play", "Transport|Play")
    assert not matches("%f[%w]Play", "RePlay")
    assert matches("Stop%f[%W]", "Stop")
    assert matches("Stop%f[%W]", "Stop|Now")
    assert not matches("Stop%f[%W]", "Stopped")


def test_captures_and_back_references():
    assert matches("(%a)%1", "book")
    assert not matches("(%a)%1", "abc")
    assert matches("()Play", "Play")


@pytest.mark.parametrize("pattern", [
    "%",
    "abc%",
    "[abc",
    "[%",
    "(abc",
    "abc)",
    "%1",
    "(a)%2",
    "%0",
    "%bxy",
    "%f%w",
])
def test_malformed_patterns_raise(pattern):
    with pytest.raises(MalformedPattern) as info:
        matches(pattern, "topic")
    assert info.value.pattern == pattern


def test_non_string_pattern_is_malformed():
    with pytest.raises(MalformedPattern):
        matches(None, "topic")


def test_full_mode_requires_whole_topic():
    assert not matches("Transport", "Sequencer|Transport|Play", MatchMode.FULL)
    assert matches("Sequencer|Transport|%w+", "Sequencer|Transport|Play", MatchMode.FULL)
    assert not matches("[^|]+", "A|B", MatchMode.FULL)
    assert matches("[^|]+", "AB", MatchMode.FULL)


def test_compiled_patterns_are_cached():
    assert compile_pattern("Sequencer|%w+") is compile_pattern("Sequencer|%w+")


def test_match_mode_parse():
    assert MatchMode.parse("FULL") is MatchMode.FULL
    assert MatchMode.parse(" search ") is MatchMode.SEARCH
    assert MatchMode.parse(MatchMode.FULL) is MatchMode.FULL
    with pytest.raises(ValueError):
        MatchMode.parse("anchored")
