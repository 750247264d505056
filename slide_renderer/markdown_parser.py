"""
Markdown parser for slide bodies, built on markdown-it-py.
"""
import logging
import re
from html import escape
from typing import List, Optional

from markdown_it import MarkdownIt
from markdown_it.tree import SyntaxTreeNode

from .errors import ParseError
from .models import (
    FencedCode,
    Heading,
    HtmlBlock,
    InlineCode,
    ListItem,
    Paragraph,
    ParsedDocument,
    SlideContent,
    Table,
    ThematicBreak,
)

logger = logging.getLogger(__name__)

# Key under which render-time callers pass the object that renders code
# (see BlockDispatcher.render_fence / render_inline).
CODE_RENDERER_ENV_KEY = "code_renderer"

_TITLE_RE = re.compile(r'^#\s+(.+?)\s*#*\s*$')
_FENCE_RE = re.compile(r'^\s{0,3}(`{3,}|~{3,})')


def language_from_info(info: Optional[str]) -> Optional[str]:
    """Return the language tag of a fence info string (its first word), if any."""
    if not info or not info.strip():
        return None
    return info.strip().split()[0]


# ----------------------------------------------------------------------
# Render rules. markdown-it binds these to its renderer, so ``self`` is the
# RendererHTML instance and the default implementations stay reachable.
# ----------------------------------------------------------------------

def _render_fence(self, tokens, idx, options, env):
    code_renderer = env.get(CODE_RENDERER_ENV_KEY)
    if code_renderer is None:
        return self.fence(tokens, idx, options, env)
    token = tokens[idx]
    return code_renderer.render_fence(language_from_info(token.info), token.content)


def _render_code_block(self, tokens, idx, options, env):
    code_renderer = env.get(CODE_RENDERER_ENV_KEY)
    if code_renderer is None:
        return self.code_block(tokens, idx, options, env)
    return code_renderer.render_fence(None, tokens[idx].content)


def _render_code_inline(self, tokens, idx, options, env):
    code_renderer = env.get(CODE_RENDERER_ENV_KEY)
    if code_renderer is None:
        return self.code_inline(tokens, idx, options, env)
    return code_renderer.render_inline(tokens[idx].content)


class MarkdownParser:
    """
    GFM-flavoured markdown parser using markdown-it-py.

    The MarkdownIt instance is configured once; ``parse`` and ``render`` never
    mutate parser state, so one parser can serve every slide of a deck.
    """

    def __init__(self, debug: bool = False):
        """
        Initialize the markdown parser.

        Args:
            debug: Enable verbose logging
        """
        self.debug = debug

        self.markdown_processor = MarkdownIt('commonmark', {
            'html': True,          # Raw HTML passes through (diagram fallback relies on it)
            'linkify': True,       # GFM autolinks, needs linkify-it-py
            'typographer': False,  # Keep authored text literal
        })

        # GFM extensions
        self.markdown_processor.enable(['table', 'strikethrough', 'linkify'])

        from mdit_py_plugins.front_matter import front_matter_plugin
        from mdit_py_plugins.tasklists import tasklists_plugin

        self.markdown_processor = (
            self.markdown_processor
                .use(front_matter_plugin)  # swallow YAML front matter
                .use(tasklists_plugin)     # GFM `- [x] done` items
        )

        self.markdown_processor.add_render_rule('fence', _render_fence)
        self.markdown_processor.add_render_rule('code_block', _render_code_block)
        self.markdown_processor.add_render_rule('code_inline', _render_code_inline)

    def parse(self, markdown_text: str) -> ParsedDocument:
        """
        Parse markdown text into tokens and typed blocks.

        Malformed input never raises: the document degrades to literal text.

        Args:
            markdown_text: Raw markdown content

        Returns:
            ParsedDocument for a single render pass
        """
        markdown_text = markdown_text or ""
        try:
            tokens = self.markdown_processor.parse(markdown_text, {})
            blocks = self.blocks(tokens)
        except Exception as exc:
            error = ParseError(f"Could not parse markdown: {exc}")
            logger.warning("%s; rendering slide as literal text", error)
            return ParsedDocument(
                source=markdown_text,
                blocks=[Paragraph(text=markdown_text)] if markdown_text.strip() else [],
                literal=True,
            )

        if self.debug:
            logger.info("Parsed %d tokens into %d blocks", len(tokens), len(blocks))

        return ParsedDocument(source=markdown_text, tokens=tokens, blocks=blocks)

    def render(self, document: ParsedDocument, env: Optional[dict] = None) -> str:
        """
        Render a parsed document to HTML.

        Args:
            document: Output of :meth:`parse`
            env: Render environment; ``env["code_renderer"]`` takes over code
                 blocks and inline code spans

        Returns:
            HTML string
        """
        if document.literal:
            if not document.source.strip():
                return ""
            return f'<p class="literal-text">{escape(document.source)}</p>\n'
        return self.markdown_processor.renderer.render(
            document.tokens, self.markdown_processor.options, env if env is not None else {}
        )

    # ------------------------------------------------------------------
    # Typed block extraction
    # ------------------------------------------------------------------

    def blocks(self, tokens) -> List[object]:
        """Walk the syntax tree and return ParsedBlocks in document order."""
        blocks: List[object] = []
        self._collect(SyntaxTreeNode(tokens), blocks, depth=0, ordered=False, in_list=False)
        return blocks

    def _collect(self, node, blocks, depth, ordered, in_list):
        for child in node.children:
            kind = child.type

            if kind == 'heading':
                blocks.append(Heading(level=int(child.tag[1]), text=self._inline_text(child)))
                self._collect_inline_code(child, blocks)
            elif kind == 'paragraph':
                if not in_list:
                    blocks.append(Paragraph(text=self._inline_text(child)))
                self._collect_inline_code(child, blocks)
            elif kind in ('bullet_list', 'ordered_list'):
                nested_depth = depth + 1 if in_list else depth
                self._collect(child, blocks, nested_depth, kind == 'ordered_list', in_list=True)
            elif kind == 'list_item':
                first_paragraph = next((c for c in child.children if c.type == 'paragraph'), None)
                text = self._inline_text(first_paragraph) if first_paragraph is not None else ""
                blocks.append(ListItem(
                    text=text,
                    depth=depth,
                    ordered=ordered,
                    checked=self._task_state(first_paragraph),
                ))
                self._collect(child, blocks, depth, ordered, in_list=True)
            elif kind == 'table':
                blocks.append(self._table(child))
                self._collect_inline_code(child, blocks)
            elif kind in ('fence', 'code_block'):
                language = language_from_info(child.info) if kind == 'fence' else None
                blocks.append(FencedCode(language=language, source=child.content))
            elif kind == 'html_block':
                blocks.append(HtmlBlock(html=child.content))
            elif kind == 'hr':
                blocks.append(ThematicBreak())
            elif kind == 'blockquote':
                self._collect(child, blocks, depth, ordered, in_list=False)

    def _collect_inline_code(self, node, blocks):
        for descendant in node.walk(include_self=False):
            if descendant.type == 'code_inline':
                blocks.append(InlineCode(source=descendant.content))

    def _table(self, node) -> Table:
        header = ()
        rows = []
        for section in node.children:
            for row in section.children:
                cells = tuple(self._inline_text(cell) for cell in row.children)
                if section.type == 'thead':
                    header = cells
                else:
                    rows.append(cells)
        return Table(header=header, rows=tuple(rows))

    @staticmethod
    def _inline_text(node) -> str:
        if node is None:
            return ""
        parts = []
        for descendant in node.walk():
            if descendant.type in ('text', 'code_inline'):
                parts.append(descendant.content)
            elif descendant.type in ('softbreak', 'hardbreak'):
                parts.append(" ")
        return "".join(parts).strip()

    @staticmethod
    def _task_state(paragraph) -> Optional[bool]:
        if paragraph is None:
            return None
        for descendant in paragraph.walk():
            if descendant.type == 'html_inline' and 'task-list-item-checkbox' in descendant.content:
                return 'checked' in descendant.content
        return None

    # ------------------------------------------------------------------
    # Deck splitting
    # ------------------------------------------------------------------

    def split_slides(self, markdown_text: str) -> List[SlideContent]:
        """
        Split a deck into slides on page breaks.

        Supported page break formats:
        - Horizontal rule: ---, *** or ___
        - HTML comment: <!-- slide -->
        - Explicit directive: [slide]

        Separators inside fenced code are content, not breaks. A leading
        ``# Title`` line becomes the slide title.

        Args:
            markdown_text: Raw markdown content of the whole deck

        Returns:
            List of SlideContent, empty slides skipped
        """
        if not markdown_text or not markdown_text.strip():
            return []

        chunks = []
        current = []
        fence = None

        for line in markdown_text.strip().split('\n'):
            fence_match = _FENCE_RE.match(line)
            if fence_match:
                marker = fence_match.group(1)
                if fence is None:
                    fence = marker
                elif marker[0] == fence[0] and len(marker) >= len(fence) and not line.strip()[len(marker):].strip():
                    fence = None

            if fence is None and self.is_page_break(line):
                chunks.append(current)
                current = []
            else:
                current.append(line)
        chunks.append(current)

        slides = []
        for lines in chunks:
            slide = self._slide_from_lines(lines)
            if slide.is_empty():
                continue
            slides.append(slide)

        if self.debug:
            logger.info("Split deck into %d slides", len(slides))

        return slides

    @staticmethod
    def is_page_break(line: str) -> bool:
        """Check if a single line is a slide separator."""
        stripped = line.strip()
        if stripped == '[slide]':
            return True
        if re.fullmatch(r'<!--\s*slide\s*-->', stripped, re.IGNORECASE):
            return True
        if len(stripped) >= 3 and set(stripped) in ({'-'}, {'*'}, {'_'}):
            return True
        return False

    @staticmethod
    def _slide_from_lines(lines: List[str]) -> SlideContent:
        body = list(lines)
        while body and not body[0].strip():
            body.pop(0)

        title = None
        if body:
            match = _TITLE_RE.match(body[0].strip())
            if match:
                title = match.group(1)
                body.pop(0)

        return SlideContent(markdown='\n'.join(body).strip('\n'), title=title)
