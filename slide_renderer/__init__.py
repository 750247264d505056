"""Slide Renderer – top-level package

Renders Markdown slides with highlighted code and Mermaid diagrams to HTML.

Exposes the public API (`SlideComponent`, `RenderContext`, etc.) **and** sets
up a minimal logging configuration so that every sub-module can call

```python
import logging
logger = logging.getLogger(__name__)
```

and honour a single environment variable `SLIDE_RENDERER_LOG_LEVEL`.
"""

from __future__ import annotations

import logging
import os

# ------------------------------------------------------------------
# Default logging – honour env var, otherwise WARNING.
# ------------------------------------------------------------------
LOG_LEVEL = os.getenv("SLIDE_RENDERER_LOG_LEVEL", "WARNING").upper()
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

# Public API re-exports ------------------------------------------------
from .context import RenderContext  # noqa: E402  (import after logger)
from .diagram import DiagramBlock, Lifetime  # noqa: E402
from .dispatcher import BlockDispatcher  # noqa: E402
from .engines import DiagramEngine, PyppeteerMermaidEngine  # noqa: E402
from .errors import (  # noqa: E402
    DiagramConversionError,
    DiagramStateError,
    HighlightError,
    ParseError,
    SlideRenderError,
)
from .generator import DeckRenderer  # noqa: E402
from .highlighter import SyntaxHighlighter  # noqa: E402
from .markdown_parser import MarkdownParser  # noqa: E402
from .models import DiagramStatus, RouteKind, SlideContent  # noqa: E402
from .slide import SlideComponent  # noqa: E402

__all__ = [
    "BlockDispatcher",
    "DeckRenderer",
    "DiagramBlock",
    "DiagramConversionError",
    "DiagramEngine",
    "DiagramStateError",
    "DiagramStatus",
    "HighlightError",
    "Lifetime",
    "MarkdownParser",
    "ParseError",
    "PyppeteerMermaidEngine",
    "RenderContext",
    "RouteKind",
    "SlideComponent",
    "SlideContent",
    "SlideRenderError",
    "SyntaxHighlighter",
]
