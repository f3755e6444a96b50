"""Social token scanner: mentions, emoji, dates, status chips, cards and media references in text runs"""

import re
from datetime import datetime, timezone
from typing import Optional, Union

from adfmd.core.emoji import resolve_emoji
from adfmd.core.models import EmojiResolver, SocialToken


STATUS_COLORS = ("neutral", "purple", "blue", "red", "yellow", "green")

# Evaluated together each round; list order only breaks ties on equal start offsets.
TOKEN_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    ("mention",        re.compile(r"\{user:([^}\s]+)\}")),
    ("emoji",          re.compile(r"(?<!\w):([a-zA-Z0-9_+-]+):(?!\w)")),
    ("date",           re.compile(r"\{date:(\d{4}-\d{2}-\d{2})\}")),
    ("bareDate",       re.compile(r"(?<![\w-])(\d{4}-\d{2}-\d{2})(?![\w-])")),
    ("status",         re.compile(r"\{status:([^|}]+)(?:\|color:([^}]*))?\}")),
    ("inlineCard",     re.compile(r"\[([^\]]*)\]\(card:([^)\s]+)\)")),
    ("mediaReference", re.compile(r"!\[([^\]]*)\]\(media:([^)\s]+)\)")),
)

Segment = Union[str, SocialToken]


def date_to_timestamp(value: str) -> Optional[str]:
    """Return UTC-midnight epoch milliseconds for YYYY-MM-DD as a digit string, or None if invalid."""
    try:
        day = datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        return None
    return str(int(day.timestamp()) * 1000)


def timestamp_to_date(timestamp: Union[str, int]) -> str:
    """Inverse of date_to_timestamp; accepts digit strings or ints."""
    seconds = int(timestamp) // 1000
    return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%d")


def _token(kind: str, m: re.Match, emoji_resolver: EmojiResolver) -> Optional[SocialToken]:
    """Build a token from a match, or None when the match is not a valid token."""
    raw = m.group(0)
    if kind == "mention":
        user_id = m.group(1)
        return SocialToken("mention", {"id": user_id, "text": f"@{user_id}", "accessLevel": ""}, raw)
    if kind == "emoji":
        name = m.group(1)
        attrs = {"shortName": f":{name}:"}
        found = emoji_resolver(name)
        if found is not None:
            if found.id:
                attrs["id"] = found.id
            attrs["text"] = found.text
        else:
            attrs["text"] = f":{name}:"
        return SocialToken("emoji", attrs, raw)
    if kind in ("date", "bareDate"):
        timestamp = date_to_timestamp(m.group(1))
        if timestamp is None:
            return None
        return SocialToken("date", {"timestamp": timestamp}, raw)
    if kind == "status":
        color = (m.group(2) or "neutral").strip()
        if color not in STATUS_COLORS:
            color = "neutral"
        return SocialToken("status", {"text": m.group(1), "color": color}, raw)
    if kind == "inlineCard":
        return SocialToken("inlineCard", {"url": m.group(2)}, raw)
    return SocialToken("mediaReference", {"id": m.group(2), "alt": m.group(1)}, raw)


def _first_match(
    text: str,
    pos: int,
    emoji_resolver: EmojiResolver,
    ) -> tuple[Optional[re.Match], Optional[SocialToken]]:
    """Return the leftmost valid match across all patterns from pos."""
    best: tuple[Optional[re.Match], Optional[SocialToken]] = (None, None)
    for kind, pattern in TOKEN_PATTERNS:
        start = pos
        while (m := pattern.search(text, start)) is not None:
            if best[0] is not None and m.start() >= best[0].start():
                break
            token = _token(kind, m, emoji_resolver)
            if token is not None:
                best = (m, token)
                break
            start = m.start() + 1
    return best


def scan_social_tokens(text: str, emoji_resolver: EmojiResolver = None) -> list[Segment]:
    """Split text into plain segments and SocialTokens, in source order.

    The leftmost match across every pattern wins each round, so
    `"{user:a} 2023-01-01"` yields a mention before the date regardless of
    pattern order. Every input character lands in exactly one segment.
    """
    resolver = emoji_resolver or resolve_emoji
    segments: list[Segment] = []
    pos = 0
    while pos < len(text):
        m, token = _first_match(text, pos, resolver)
        if m is None:
            break
        if m.start() > pos:
            segments.append(text[pos:m.start()])
        segments.append(token)
        pos = m.end()
    if pos < len(text):
        segments.append(text[pos:])
    return segments


def token_spans(text: str) -> list[tuple[str, int, int]]:
    """Return (kind, start, end) for every token scan_social_tokens would produce."""
    spans = []
    pos = 0
    for seg in scan_social_tokens(text, emoji_resolver=lambda name: None):
        if isinstance(seg, SocialToken):
            spans.append((seg.kind, pos, pos + len(seg.raw)))
            pos += len(seg.raw)
        else:
            pos += len(seg)
    return spans
