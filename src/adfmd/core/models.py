"""Intermediate data models shared by the conversion stages"""

from dataclasses import dataclass, field
from typing import Any, Callable, NamedTuple, Optional, Union

from loguru import logger
from pydantic import BaseModel

# Library output stays silent until an application calls configure_logging.
logger.disable("adfmd")


AttrValue = Union[str, int, float, bool, dict]

CONTAINER_KINDS = ("panel", "expand", "nestedExpand", "mediaSingle", "mediaGroup")


class EmojiData(NamedTuple):
    """Result of an emoji name lookup."""
    id: Optional[str]
    text: str


EmojiResolver = Callable[[str], Optional[EmojiData]]


@dataclass
class Annotation:
    """A parsed `<!-- adf:kind ... -->` comment."""
    target_kind: str
    attributes: dict[str, AttrValue] = field(default_factory=dict)
    raw: str = ""
    closing: bool = False       # `<!-- /adf:kind -->`


@dataclass
class GenericNode:
    """Markup-level tree node produced by the parser adapter and consumed by the builders."""
    kind: str
    attributes: dict[str, Any] = field(default_factory=dict)
    children: list["GenericNode"] = field(default_factory=list)
    text: Optional[str] = None
    position: Optional[tuple[int, int]] = None     # source line span
    annotations: list[Annotation] = field(default_factory=list)

    def plain_text(self) -> str:
        """Concatenated text of this node and its descendants."""
        if self.text is not None:
            return self.text
        return "".join(c.plain_text() for c in self.children)


@dataclass
class FenceBlock:
    """A `~~~kind header` block detected before its inner text is parsed."""
    node_type: str
    attributes: dict[str, AttrValue]
    inner_text: str


@dataclass
class SocialToken:
    """Inline micro-syntax token found inside a text run."""
    kind: str                   # mention, emoji, date, status, inlineCard, mediaReference
    attrs: dict[str, Any]
    raw: str                    # matched source text

    def to_node(self) -> dict[str, Any]:
        """Return the target-schema node for this token."""
        if self.kind == "mediaReference":
            attrs = {"id": self.attrs["id"], "type": "file", "collection": ""}
            if self.attrs.get("alt"):
                attrs["alt"] = self.attrs["alt"]
            return {"type": "media", "attrs": attrs}
        return {"type": self.kind, "attrs": dict(self.attrs)}


class ConversionResult(BaseModel):
    """Forward conversion output with the side data a bare document drops."""
    document: dict[str, Any]
    warnings: list[str] = []
    frontmatter: dict[str, Any] = {}


@dataclass
class ConversionContext:
    """Per-call options and collected warnings; never shared between calls."""
    strict: bool = False
    preserve_unknown_nodes: bool = True
    nesting_lookahead: int = 3
    emoji_resolver: Optional[EmojiResolver] = None
    warnings: list[str] = field(default_factory=list)

    def warn(self, stage: str, message: str) -> None:
        """Record a non-fatal problem and log it."""
        self.warnings.append(f"{stage}: {message}")
        logger.bind(stage=stage).warning(message)

    def report(self, error: Exception) -> None:
        """Record a recoverable ConversionError as a warning."""
        self.warn(getattr(error, "stage", "convert"), str(error))


def empty_document() -> dict[str, Any]:
    return {"version": 1, "type": "doc", "content": []}
