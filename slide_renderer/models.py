"""
Data models for the slide renderer.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .errors import DiagramConversionError, DiagramStateError


@dataclass(frozen=True)
class SlideContent:
    """
    Raw authored content of one slide: an optional title and a Markdown body.
    """
    markdown: str
    title: Optional[str] = None

    def is_empty(self):
        """Check if the slide has neither a title nor any body text."""
        return not (self.title or self.markdown.strip())


# ----------------------------------------------------------------------
# Parsed blocks
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Heading:
    level: int
    text: str


@dataclass(frozen=True)
class Paragraph:
    text: str


@dataclass(frozen=True)
class ListItem:
    text: str
    depth: int = 0
    ordered: bool = False
    checked: Optional[bool] = None  # None unless the item is a task list entry


@dataclass(frozen=True)
class Table:
    header: Tuple[str, ...]
    rows: Tuple[Tuple[str, ...], ...]


@dataclass(frozen=True)
class FencedCode:
    language: Optional[str]
    source: str

    @property
    def is_tagged(self):
        return bool(self.language)


@dataclass(frozen=True)
class InlineCode:
    source: str


@dataclass(frozen=True)
class HtmlBlock:
    html: str


@dataclass(frozen=True)
class ThematicBreak:
    pass


PARSED_BLOCK_TYPES = (
    Heading, Paragraph, ListItem, Table, FencedCode, InlineCode, HtmlBlock, ThematicBreak,
)


@dataclass
class ParsedDocument:
    """
    Output of one parse: the markdown-it token stream plus the typed blocks.

    ``literal`` is set when tokenizing failed and the document degraded to a
    single literal-text block.
    """
    source: str
    tokens: list = field(default_factory=list)
    blocks: List[object] = field(default_factory=list)
    literal: bool = False

    @property
    def fenced_blocks(self) -> List[FencedCode]:
        return [b for b in self.blocks if isinstance(b, FencedCode)]

    @property
    def inline_code(self) -> List[InlineCode]:
        return [b for b in self.blocks if isinstance(b, InlineCode)]


# ----------------------------------------------------------------------
# Dispatch
# ----------------------------------------------------------------------

class RouteKind(Enum):
    INLINE = "inline"
    HIGHLIGHTED = "highlighted"
    DIAGRAM = "diagram"
    PLAIN = "plain"


@dataclass(frozen=True)
class Route:
    kind: RouteKind
    source: str
    language: Optional[str] = None


@dataclass(frozen=True)
class HighlightedCode:
    """Styled, line-numbered HTML for one code block."""
    html: str
    language: str
    lexer_name: str
    line_count: int
    styled: bool = True


# ----------------------------------------------------------------------
# Diagrams
# ----------------------------------------------------------------------

class DiagramStatus(Enum):
    PENDING = "pending"
    RENDERED = "rendered"
    FAILED = "failed"


@dataclass(frozen=True)
class RenderedGraphic:
    """SVG markup produced by a successful diagram conversion."""
    svg: str

    @classmethod
    def from_svg(cls, payload, identity: str = None):
        """
        Validate engine output and wrap it.

        Raises:
            DiagramConversionError: If the payload is not SVG markup
        """
        if not isinstance(payload, str) or not payload.strip():
            raise DiagramConversionError("Diagram engine returned an empty graphic", identity)
        if "<svg" not in payload:
            raise DiagramConversionError("Diagram engine returned non-SVG output", identity)
        return cls(svg=payload.strip())


@dataclass
class DiagramInstance:
    """
    One conversion attempt for one mounted diagram block.

    PENDING is the only non-terminal state. New content needs a new instance.
    """
    identity: str
    source: str
    status: DiagramStatus = DiagramStatus.PENDING
    graphic: Optional[RenderedGraphic] = None
    error: Optional[str] = None

    @property
    def is_terminal(self):
        return self.status is not DiagramStatus.PENDING

    def resolve(self, graphic: RenderedGraphic) -> None:
        self._check_pending(DiagramStatus.RENDERED)
        self.graphic = graphic
        self.status = DiagramStatus.RENDERED

    def fail(self, reason: str) -> None:
        self._check_pending(DiagramStatus.FAILED)
        self.error = reason
        self.status = DiagramStatus.FAILED

    def _check_pending(self, target: DiagramStatus) -> None:
        if self.is_terminal:
            raise DiagramStateError(
                f"Diagram {self.identity} is already {self.status.value}, cannot become {target.value}"
            )
