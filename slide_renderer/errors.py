"""
Exceptions raised inside the slide rendering pipeline.

Only ``DiagramStateError`` is meant to escape to callers; the others are
raised and recovered inside the component that owns the failing block.
"""


class SlideRenderError(Exception):
    """Base class for every error raised by slide_renderer."""


class ParseError(SlideRenderError):
    """Markdown could not be tokenized; the slide falls back to literal text."""


class HighlightError(SlideRenderError):
    """No lexer exists for a language hint; the block falls back to plain text."""

    def __init__(self, language: str, message: str = ""):
        self.language = language
        super().__init__(message or f"No lexer found for language '{language}'")


class DiagramConversionError(SlideRenderError):
    """Diagram source was rejected by the engine or produced no usable graphic."""

    def __init__(self, message: str, identity: str = None):
        self.identity = identity
        super().__init__(message)


class DiagramStateError(SlideRenderError):
    """A terminal diagram instance was asked to transition again."""
