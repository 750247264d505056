"""
Routes code found in a slide to the renderer that owns it.

Every fenced block and inline span is classified into one ``RouteKind`` and
rendered by that kind's handler:

- ``PLAIN``        fence without a language tag → unstyled ``<pre>``
- ``DIAGRAM``      fence tagged with the diagram tag → placeholder + recorded route
- ``HIGHLIGHTED``  any other tag → SyntaxHighlighter
- ``INLINE``       single-backtick span → plain ``<code>``
"""
import logging
from dataclasses import dataclass, field
from html import escape
from typing import List, Optional

from .markdown_parser import CODE_RENDERER_ENV_KEY
from .models import ParsedDocument, Route, RouteKind

logger = logging.getLogger(__name__)

_HANDLERS = {
    RouteKind.INLINE: '_render_inline',
    RouteKind.HIGHLIGHTED: '_render_highlighted',
    RouteKind.DIAGRAM: '_render_diagram',
    RouteKind.PLAIN: '_render_plain',
}

_unhandled = set(RouteKind) - set(_HANDLERS)
if _unhandled:
    raise TypeError(f"No dispatch handler for route kinds: {sorted(k.name for k in _unhandled)}")


def _strip_final_newline(source: str) -> str:
    return source[:-1] if source.endswith('\n') else source


@dataclass
class DispatchResult:
    """HTML of one render pass plus the diagram routes, indexed by slot."""
    html: str
    routes: List[Route] = field(default_factory=list)
    diagrams: List[Route] = field(default_factory=list)


class _RenderPass:
    """Per-pass code renderer handed to markdown-it through the render env."""

    def __init__(self, dispatcher: "BlockDispatcher"):
        self.dispatcher = dispatcher
        self.routes: List[Route] = []
        self.diagrams: List[Route] = []

    def render_fence(self, language: Optional[str], source: str) -> str:
        route = self.dispatcher.route(language, source)
        self.routes.append(route)
        return self.dispatcher.render_route(route, self)

    def render_inline(self, source: str) -> str:
        route = Route(kind=RouteKind.INLINE, source=source)
        self.routes.append(route)
        return self.dispatcher.render_route(route, self)


class BlockDispatcher:
    """
    Classifies code blocks and renders each one independently.
    """

    def __init__(self, context, debug: bool = False):
        self.context = context
        self.debug = debug
        self.highlight_calls = 0
        self.diagram_routes = 0

    def route(self, language: Optional[str], source: str) -> Route:
        """Classify one fenced block by its language tag."""
        if not language:
            return Route(kind=RouteKind.PLAIN, source=source)
        if self.context.is_diagram_tag(language):
            return Route(kind=RouteKind.DIAGRAM, source=_strip_final_newline(source), language=language)
        return Route(kind=RouteKind.HIGHLIGHTED, source=_strip_final_newline(source), language=language)

    def render(self, document: ParsedDocument) -> DispatchResult:
        """Render a parsed document, dispatching every code block and span."""
        render_pass = _RenderPass(self)
        html = self.context.parser.render(document, {CODE_RENDERER_ENV_KEY: render_pass})

        if self.debug:
            logger.info(
                "Dispatched %d code routes (%d diagrams)", len(render_pass.routes), len(render_pass.diagrams)
            )

        return DispatchResult(html=html, routes=render_pass.routes, diagrams=render_pass.diagrams)

    def render_route(self, route: Route, render_pass: _RenderPass) -> str:
        handler = getattr(self, _HANDLERS[route.kind])
        try:
            return handler(route, render_pass)
        except Exception as exc:
            if route.kind in (RouteKind.PLAIN, RouteKind.INLINE):
                raise
            logger.warning("Rendering %s block failed, showing it as plain text: %s", route.kind.value, exc)
            return self._render_plain(route, render_pass)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _render_inline(self, route: Route, render_pass: _RenderPass) -> str:
        return f'<code>{escape(route.source, quote=False)}</code>'

    def _render_plain(self, route: Route, render_pass: _RenderPass) -> str:
        return f'<pre class="plain-code"><code>{escape(route.source, quote=False)}</code></pre>\n'

    def _render_highlighted(self, route: Route, render_pass: _RenderPass) -> str:
        self.highlight_calls += 1
        return self.context.highlighter.highlight(route.source, route.language).html + '\n'

    def _render_diagram(self, route: Route, render_pass: _RenderPass) -> str:
        self.diagram_routes += 1
        slot = len(render_pass.diagrams)
        render_pass.diagrams.append(route)
        return f'<div class="diagram diagram-placeholder" data-diagram-slot="{slot}"></div>\n'
