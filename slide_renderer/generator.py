#!/usr/bin/env python3
"""
Deck driver that mounts slides one at a time and writes a standalone HTML page.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

from jinja2 import DictLoader, Environment, select_autoescape

from .context import RenderContext
from .models import DiagramStatus
from .slide import SlideComponent

logger = logging.getLogger(__name__)

PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{{ title }}</title>
<style>
body { margin: 0; font-family: system-ui, sans-serif; background: #f4f4f4; }
.slide { box-sizing: border-box; width: 960px; min-height: 540px; margin: 24px auto; padding: 32px 48px; background: #fff; }
.highlighttable { border-collapse: collapse; width: 100%; }
.highlighttable td { vertical-align: top; padding: 0; }
.highlighttable .linenos pre { color: #888; text-align: right; padding-right: 12px; user-select: none; }
.diagram-failed { min-height: 1em; opacity: 0.4; border: 1px dashed #c00; }
</style>
</head>
<body>
{% for slide in slides %}
<section class="deck-slide" data-index="{{ loop.index }}">
{{ slide | safe }}
</section>
{% endfor %}
</body>
</html>
"""


class DeckRenderer:
    """
    Renders a whole Markdown deck, one mounted slide at a time.
    """

    def __init__(
        self,
        *,
        context: Optional[RenderContext] = None,
        title: str = "Slides",
        debug: bool = False,
    ):
        """Create a new :class:`DeckRenderer`.

        Parameters
        ----------
        context
            Rendering context shared by every slide. When omitted a default
            context is created and its engine is closed after ``generate``.
        title
            Page title of the generated HTML document.
        debug
            Enable verbose logging.
        """
        self.debug = debug
        self.title = title
        self._owns_context = context is None
        self.context = context if context is not None else RenderContext(debug=debug)
        self.jinja_env = Environment(
            loader=DictLoader({"deck.html": PAGE_TEMPLATE}),
            autoescape=select_autoescape(default_for_string=True, default=True),
        )

    async def render(self, markdown_text: str) -> List[str]:
        """
        Render every slide of a deck.

        Args:
            markdown_text: The whole deck, slides separated by page breaks

        Returns:
            List of slide HTML fragments
        """
        slides = self.context.parser.split_slides(markdown_text)
        rendered = []

        for index, content in enumerate(slides, 1):
            async with SlideComponent(content, self.context, debug=self.debug) as slide:
                if not await slide.settle():
                    logger.warning("Slide %d still has pending diagrams", index)
                failed = [d.identity for d in slide.diagrams if d.status is DiagramStatus.FAILED]
                if failed:
                    logger.warning("Slide %d: %d diagram(s) failed (%s)", index, len(failed), ", ".join(failed))
                rendered.append(slide.html)

        if self.debug:
            logger.info("Rendered %d slides", len(rendered))

        return rendered

    async def generate(self, markdown_text: str, output_path: str = "output/slides.html") -> str:
        """
        Render a deck and write it as one HTML page.

        Args:
            markdown_text: The markdown content to convert
            output_path: Path where the HTML file should be saved

        Returns:
            str: Path to the generated HTML file
        """
        output_path = str(output_path)
        if not output_path.endswith('.html'):
            output_path = f"{output_path}.html"
        os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)

        try:
            slides = await self.render(markdown_text)
        finally:
            if self._owns_context:
                await self.context.aclose()

        page = self.jinja_env.get_template("deck.html").render(title=self.title, slides=slides)
        Path(output_path).write_text(page, encoding="utf-8")

        if self.debug:
            logger.info(f"Deck saved to: {output_path}")

        return output_path


def main():
    """Command-line entry point for the deck renderer."""
    import argparse
    import asyncio
    import sys

    from .engines import DEFAULT_MERMAID_URL, PyppeteerMermaidEngine
    from .highlighter import DEFAULT_STYLE

    def _build_parser() -> argparse.ArgumentParser:
        p = argparse.ArgumentParser(prog="slidedeck", description="Render a Markdown deck with code and Mermaid diagrams to HTML.")
        p.add_argument("markdown", type=Path, help="Markdown file to render")
        p.add_argument("--output", "-o", type=Path, default=Path("output/slides.html"), help="Destination HTML path")
        p.add_argument("--title", help="Page title (default: markdown file name)")
        p.add_argument("--code-style", default=DEFAULT_STYLE, help="Pygments style for code blocks")
        p.add_argument("--no-line-numbers", action="store_true", help="Hide line numbers in code blocks")
        p.add_argument("--mermaid-theme", default="default", help="Mermaid theme")
        p.add_argument("--mermaid-url", default=DEFAULT_MERMAID_URL, help="URL or file:// path of mermaid.js")
        p.add_argument("--diagram-timeout", type=float, default=30.0, help="Seconds allowed per diagram")
        p.add_argument("--debug", action="store_true", help="Enable verbose logging")
        return p

    async def _generate_async(args):
        md_path: Path = args.markdown
        if not md_path.exists():
            logger.error(f"Markdown file '{md_path}' not found")
            sys.exit(1)

        engine = PyppeteerMermaidEngine(
            mermaid_url=args.mermaid_url,
            theme=args.mermaid_theme,
            debug=args.debug,
        )
        context = RenderContext(
            engine,
            code_style=args.code_style,
            line_numbers=not args.no_line_numbers,
            diagram_timeout=args.diagram_timeout,
            debug=args.debug,
        )
        renderer = DeckRenderer(context=context, title=args.title or md_path.stem, debug=args.debug)

        try:
            output_path = await renderer.generate(md_path.read_text(encoding="utf-8"), args.output)
        finally:
            await context.aclose()
        logger.info("Deck written to %s", output_path)

    parser = _build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(levelname)s  %(message)s",
    )

    asyncio.run(_generate_async(args))


if __name__ == "__main__":
    main()
