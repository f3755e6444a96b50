"""Bundled emoji shortname table and the default name resolver"""

from typing import Optional

from adfmd.core.models import EmojiData


# shortname -> codepoint id (hyphen-joined hex, as used in emoji node ids)
EMOJI_CODEPOINTS: dict[str, str] = {
    "smile":            "1f604",
    "smiley":           "1f603",
    "grin":             "1f601",
    "laughing":         "1f606",
    "joy":              "1f602",
    "wink":             "1f609",
    "blush":            "1f60a",
    "heart_eyes":       "1f60d",
    "thinking":         "1f914",
    "neutral_face":     "1f610",
    "confused":         "1f615",
    "cry":              "1f622",
    "sob":              "1f62d",
    "angry":            "1f620",
    "scream":           "1f631",
    "sunglasses":       "1f60e",
    "slight_smile":     "1f642",
    "upside_down":      "1f643",
    "thumbsup":         "1f44d",
    "+1":               "1f44d",
    "thumbsdown":       "1f44e",
    "-1":               "1f44e",
    "clap":             "1f44f",
    "wave":             "1f44b",
    "pray":             "1f64f",
    "raised_hands":     "1f64c",
    "muscle":           "1f4aa",
    "eyes":             "1f440",
    "heart":            "2764",
    "broken_heart":     "1f494",
    "star":             "2b50",
    "sparkles":         "2728",
    "fire":             "1f525",
    "tada":             "1f389",
    "rocket":           "1f680",
    "bulb":             "1f4a1",
    "warning":          "26a0",
    "white_check_mark": "2705",
    "heavy_check_mark": "2714",
    "x":                "274c",
    "question":         "2753",
    "exclamation":      "2757",
    "no_entry":         "26d4",
    "lock":             "1f512",
    "key":              "1f511",
    "bug":              "1f41b",
    "memo":             "1f4dd",
    "calendar":         "1f4c5",
    "hourglass":        "231b",
    "coffee":           "2615",
    "100":              "1f4af",
}


def resolve_emoji(name: str) -> Optional[EmojiData]:
    """Return EmojiData for a bare shortname (no colons), or None if unknown."""
    codepoint = EMOJI_CODEPOINTS.get(name)
    if codepoint is None:
        return None
    text = "".join(chr(int(part, 16)) for part in codepoint.split("-"))
    return EmojiData(id=codepoint, text=text)
