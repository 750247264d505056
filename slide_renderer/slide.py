"""
SlideComponent: parse → dispatch → render for one slide, plus the mount
lifetime its diagrams run in.
"""
import logging
from html import escape
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from .diagram import DiagramBlock, Lifetime, collect_raw_diagrams
from .dispatcher import BlockDispatcher
from .models import SlideContent

logger = logging.getLogger(__name__)


class SlideComponent:
    """
    One mounted slide.

    Usage::

        async with SlideComponent(content, context) as slide:
            await slide.settle()
            html = slide.html
    """

    def __init__(self, content: SlideContent, context, debug: bool = False):
        self.content = content
        self.context = context
        self.debug = debug or context.debug
        self.dispatcher = BlockDispatcher(context, debug=self.debug)

        self._lifetime: Optional[Lifetime] = None
        self._soup = None
        self._blocks: Dict[str, DiagramBlock] = {}

    @property
    def mounted(self) -> bool:
        return self._lifetime is not None and not self._lifetime.closed

    @property
    def html(self) -> str:
        """Current render tree serialised to HTML."""
        return str(self._soup) if self._soup is not None else ""

    @property
    def tree(self):
        return self._soup

    @property
    def diagrams(self) -> List[DiagramBlock]:
        return list(self._blocks.values())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def mount(self) -> "SlideComponent":
        """Render the slide and start its diagram conversions. Needs a running event loop."""
        if self.mounted:
            raise RuntimeError("Slide is already mounted")
        self._lifetime = Lifetime(name=self.content.title or "slide")
        self._blocks = {}
        try:
            self._render()
        except Exception:
            self._lifetime.close()
            self._lifetime = None
            self._soup = None
            raise
        return self

    def update(self, content: SlideContent) -> bool:
        """
        Swap in new content. Returns False (and does nothing) if it is unchanged.
        """
        if content == self.content:
            return False
        self.content = content
        if self.mounted:
            self._render()
        return True

    def rerender(self) -> None:
        """Run the pipeline again over the current content."""
        if not self.mounted:
            raise RuntimeError("Slide is not mounted")
        self._render()

    async def settle(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for pending diagram conversions.

        Returns:
            True if no conversion is left pending
        """
        if self._lifetime is None:
            return True
        return await self._lifetime.wait(timeout)

    def unmount(self) -> None:
        """Tear down: cancel pending conversions and detach every diagram."""
        if self._lifetime is None:
            return
        for block in self._blocks.values():
            block.unmount()
        self._lifetime.close()

    async def aclose(self) -> None:
        """Unmount and wait for cancelled conversions to wind down."""
        if self._lifetime is None:
            return
        self.unmount()
        await self._lifetime.aclose()

    async def __aenter__(self) -> "SlideComponent":
        return self.mount()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _render(self) -> None:
        document = self.context.parser.parse(self.content.markdown)
        result = self.dispatcher.render(document)
        soup = BeautifulSoup(self._wrap(result.html), 'html.parser')

        # Collect raw-HTML diagrams before any SVG is painted into the tree
        raw_diagrams = collect_raw_diagrams(soup, self.context.diagram_tag)

        previous = self._blocks
        current: Dict[str, DiagramBlock] = {}

        for slot, route in enumerate(result.diagrams):
            placeholder = soup.find(attrs={'data-diagram-slot': str(slot)})
            if placeholder is None:
                logger.warning("No placeholder for diagram slot %d", slot)
                continue
            key = f"fence-{slot}"
            current[key] = self._reconcile(previous.pop(key, None), route.source, placeholder)

        for index, (placeholder, source) in enumerate(raw_diagrams):
            key = f"html-{index}"
            current[key] = self._reconcile(previous.pop(key, None), source, placeholder)

        for stale in previous.values():
            stale.unmount()

        self._blocks = current
        self._soup = soup

        if self.debug:
            logger.info(
                "Rendered slide '%s' with %d diagram(s)", self.content.title or "", len(current)
            )

    def _reconcile(self, block: Optional[DiagramBlock], source: str, placeholder) -> DiagramBlock:
        if block is None:
            return DiagramBlock(self.context, source, self._lifetime).mount(placeholder)
        block.attach(placeholder)
        block.update(source)
        return block

    def _wrap(self, body_html: str) -> str:
        title = f'<h1>{escape(self.content.title)}</h1>\n' if self.content.title else ''
        return f'<div class="slide markdown-slide">\n{title}{body_html}</div>'
