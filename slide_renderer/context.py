"""
Rendering context shared by every slide of one deck.

The context owns the diagram engine and the diagram id counter. It is built
once by whoever drives the deck and handed to each SlideComponent, so two
contexts never share ids or engine configuration.
"""
import itertools
import logging
from typing import Optional

from .engines import DiagramEngine, PyppeteerMermaidEngine
from .highlighter import DEFAULT_STYLE, SyntaxHighlighter
from .markdown_parser import MarkdownParser

logger = logging.getLogger(__name__)


class RenderContext:
    """
    Engine, id counter, parser and highlighter for one deck.
    """

    def __init__(
        self,
        engine: Optional[DiagramEngine] = None,
        *,
        diagram_tag: str = "mermaid",
        code_style: str = DEFAULT_STYLE,
        line_numbers: bool = True,
        id_prefix: str = "mermaid",
        diagram_timeout: Optional[float] = 30.0,
        debug: bool = False,
    ):
        """Create a new :class:`RenderContext`.

        Parameters
        ----------
        engine
            Diagram engine. Defaults to a :class:`PyppeteerMermaidEngine`,
            which only launches Chromium when the first diagram is mounted.
        diagram_tag
            Fence language tag that marks diagram source (case-insensitive).
        code_style
            Pygments style for highlighted code.
        line_numbers
            Emit line numbers next to highlighted code.
        id_prefix
            Prefix of diagram identities; must be a valid DOM id start.
        diagram_timeout
            Seconds a single diagram conversion may take before it fails.
            ``None`` disables the limit.
        debug
            Enable verbose logging.
        """
        self.debug = debug
        self.diagram_tag = diagram_tag.lower()
        self.id_prefix = id_prefix
        self.diagram_timeout = diagram_timeout

        self.engine = engine if engine is not None else PyppeteerMermaidEngine(debug=debug)
        self.parser = MarkdownParser(debug=debug)
        self.highlighter = SyntaxHighlighter(style=code_style, line_numbers=line_numbers, debug=debug)

        self._ids = itertools.count(1)
        self._engine_ready = False

    def next_diagram_id(self) -> str:
        """Return a diagram identity never handed out before by this context."""
        return f"{self.id_prefix}-{next(self._ids)}"

    def is_diagram_tag(self, language: Optional[str]) -> bool:
        return bool(language) and language.strip().lower() == self.diagram_tag

    async def ensure_engine(self) -> DiagramEngine:
        """Initialise the engine once; later calls return immediately."""
        if not self._engine_ready:
            await self.engine.initialize()
            self._engine_ready = True
            if self.debug:
                logger.info("Diagram engine %s initialised", type(self.engine).__name__)
        return self.engine

    async def aclose(self) -> None:
        """Close the engine. The context can still be used; the engine restarts lazily."""
        self._engine_ready = False
        await self.engine.close()
