"""Unit tests for core/social.py"""

from adfmd.core.models import EmojiData, SocialToken
from adfmd.core.social import (
    date_to_timestamp,
    scan_social_tokens,
    timestamp_to_date,
    token_spans,
)


def _kinds(segments):
    return [s.kind if isinstance(s, SocialToken) else "text" for s in segments]


# --- scanning ---

def test_scan_mention_and_date():
    """A mention and a date split the surrounding text into plain segments."""
    segments = scan_social_tokens("Hey {user:alice}, due {date:2023-12-25}")
    assert _kinds(segments) == ["text", "mention", "text", "date"]
    assert segments[1].attrs == {"id": "alice", "text": "@alice", "accessLevel": ""}
    assert segments[3].attrs == {"timestamp": "1703462400000"}


def test_scan_leftmost_match_wins():
    """The earliest token in the text is taken first, whatever the pattern order."""
    segments = scan_social_tokens("2023-01-01 then {user:a}")
    assert _kinds(segments) == ["date", "text", "mention"]


def test_scan_preserves_every_character():
    """Plain segments and token raws concatenate back to the input."""
    text = "x :smile: {status:Done|color:green} [t](card:https://a.b) y"
    segments = scan_social_tokens(text)
    assert "".join(s.raw if isinstance(s, SocialToken) else s for s in segments) == text


def test_scan_invalid_date_stays_text():
    """A date that does not exist is not a token."""
    assert scan_social_tokens("{date:2023-13-45}") == ["{date:2023-13-45}"]


def test_scan_bare_date_inside_word_ignored():
    """Bare dates glued to other word characters are not tokens."""
    assert scan_social_tokens("v2023-01-01") == ["v2023-01-01"]


def test_scan_clock_time_not_emoji():
    """Colon-separated numbers inside words are not emoji shortcodes."""
    assert scan_social_tokens("at 10:30:45") == ["at 10:30:45"]


# --- token attributes ---

def test_emoji_known():
    """Known shortnames resolve to an id and unicode text."""
    (token,) = scan_social_tokens(":smile:")
    assert token.attrs == {"shortName": ":smile:", "id": "1f604", "text": "\U0001F604"}


def test_emoji_unknown_keeps_shortname():
    """Unknown shortnames keep the shortcode as their text."""
    (token,) = scan_social_tokens(":nope:")
    assert token.attrs == {"shortName": ":nope:", "text": ":nope:"}


def test_emoji_custom_resolver():
    """A caller-supplied resolver replaces the bundled table."""
    (token,) = scan_social_tokens(":party:", lambda name: EmojiData("p1", "P") if name == "party" else None)
    assert token.attrs == {"shortName": ":party:", "id": "p1", "text": "P"}


def test_status_color():
    """Status colour is taken from the token when valid."""
    (token,) = scan_social_tokens("{status:Done|color:green}")
    assert token.attrs == {"text": "Done", "color": "green"}


def test_status_invalid_color_is_neutral():
    """Unknown colours fall back to neutral."""
    (token,) = scan_social_tokens("{status:WIP|color:pink}")
    assert token.attrs == {"text": "WIP", "color": "neutral"}


def test_inline_card_and_media_reference():
    """Card links and media references carry their url and id."""
    card, space, media = scan_social_tokens("[x](card:https://a.b) ![pic](media:abc)")
    assert card.to_node() == {"type": "inlineCard", "attrs": {"url": "https://a.b"}}
    assert space == " "
    assert media.to_node() == {
        "type": "media",
        "attrs": {"id": "abc", "type": "file", "collection": "", "alt": "pic"},
    }


# --- dates ---

def test_date_to_timestamp_utc_midnight():
    """Dates map to UTC-midnight epoch milliseconds as a string."""
    assert date_to_timestamp("2023-12-25") == "1703462400000"
    assert date_to_timestamp("1970-01-01") == "0"


def test_date_to_timestamp_invalid():
    assert date_to_timestamp("2023-02-30") is None


def test_timestamp_to_date_accepts_int_and_str():
    assert timestamp_to_date("1703462400000") == "2023-12-25"
    assert timestamp_to_date(1703462400000) == "2023-12-25"


# --- spans ---

def test_token_spans_offsets():
    """token_spans reports kind and offsets of every token."""
    assert token_spans("x {user:a} :y:") == [("mention", 2, 10), ("emoji", 11, 14)]


def test_token_spans_none():
    assert token_spans("nothing here") == []
