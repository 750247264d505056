"""
Syntax highlighting for fenced code blocks, built on Pygments.

Styles are emitted inline so a highlighted block is self-contained and needs
no page-level stylesheet.
"""
import logging
from html import escape

import pygments
from pygments.formatters import HtmlFormatter
from pygments.lexers import TextLexer, get_lexer_by_name
from pygments.styles import get_style_by_name
from pygments.util import ClassNotFound

from .errors import HighlightError
from .models import HighlightedCode

logger = logging.getLogger(__name__)

DEFAULT_STYLE = "monokai"
FALLBACK_STYLE = "default"


class SyntaxHighlighter:
    """
    Maps ``(source, language)`` to line-numbered, styled HTML.

    The text inside the generated ``<code>`` element is always the source,
    character for character; only ``<span style=...>`` wrappers are added.
    """

    def __init__(self, style: str = DEFAULT_STYLE, line_numbers: bool = True, debug: bool = False):
        """
        Args:
            style: Pygments style name; unknown names fall back to ``default``
            line_numbers: Emit a line number gutter
            debug: Enable verbose logging
        """
        self.debug = debug
        self.line_numbers = line_numbers
        try:
            self.style = get_style_by_name(style)
        except ClassNotFound:
            logger.warning("Unknown code style '%s', using '%s'", style, FALLBACK_STYLE)
            self.style = get_style_by_name(FALLBACK_STYLE)

    def lexer_for(self, language: str):
        """
        Look up the lexer for a language hint.

        Raises:
            HighlightError: If Pygments has no lexer for the hint
        """
        if not language:
            raise HighlightError(language or "", "Empty language hint")
        try:
            # Keep leading/trailing newlines exactly as authored
            return get_lexer_by_name(language.strip().lower(), stripnl=False, ensurenl=False)
        except ClassNotFound as exc:
            raise HighlightError(language) from exc

    def highlight(self, source: str, language: str) -> HighlightedCode:
        """
        Highlight a code block.

        Never raises for an unknown language: the block renders unstyled.

        Args:
            source: Code text
            language: Language hint from the fence info string

        Returns:
            HighlightedCode with the HTML fragment
        """
        try:
            lexer = self.lexer_for(language)
        except HighlightError as exc:
            logger.debug("%s; rendering as plain text", exc)
            return self._render(source, TextLexer(stripnl=False, ensurenl=False), "text", styled=False)

        if self.debug:
            logger.info("Highlighting %d chars with %s", len(source), lexer.name)
        return self._render(source, lexer, language.strip().lower(), styled=True)

    def _render(self, source, lexer, language, styled) -> HighlightedCode:
        line_count = max(1, source.count('\n') + (0 if source.endswith('\n') else 1))
        formatter = SourceHtmlFormatter(
            keep_final_newline=source.endswith('\n'),
            linenos="table" if self.line_numbers else False,
            noclasses=styled,
            style=self.style,
            wrapcode=True,
        )
        code_html = pygments.highlight(source, lexer, formatter)

        css_class = "code-block highlighted" if styled else "code-block plain-style"
        html = f'<div class="{css_class}" data-language="{escape(language)}">{code_html}</div>'

        return HighlightedCode(
            html=html,
            language=language,
            lexer_name=lexer.name,
            line_count=line_count,
            styled=styled,
        )


class SourceHtmlFormatter(HtmlFormatter):
    """
    HtmlFormatter that keeps the code text identical to the source.

    HtmlFormatter terminates every line, including an unterminated last one;
    that extra newline is dropped here unless the source had it.
    """

    def __init__(self, keep_final_newline: bool = True, **options):
        super().__init__(**options)
        self.keep_final_newline = keep_final_newline

    def wrap(self, source):
        return super().wrap(self._trim_final_newline(source))

    def _trim_final_newline(self, source):
        last = None
        for item in source:
            if last is not None:
                yield last
            last = item
        if last is None:
            return
        kind, line = last
        if kind == 1 and not self.keep_final_newline and line.endswith(self.lineseparator):
            line = line[:-len(self.lineseparator)]
        yield kind, line
