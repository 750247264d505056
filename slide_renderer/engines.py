"""
Diagram conversion engines.

An engine turns diagram source into SVG markup. The production engine drives
mermaid.js inside headless Chromium through pyppeteer; tests plug in their own
``DiagramEngine`` subclasses.
"""
import abc
import asyncio
import logging
from typing import List, Optional

from pyppeteer import launch
from pyppeteer.errors import PyppeteerError

from .errors import DiagramConversionError

logger = logging.getLogger(__name__)

DEFAULT_MERMAID_URL = "https://cdn.jsdelivr.net/npm/mermaid@10/dist/mermaid.min.js"

HOST_PAGE = """<!DOCTYPE html>
<html><head><meta charset="utf-8"></head>
<body><div id="diagram-root"></div></body></html>
"""

INIT_SCRIPT = """
(config) => {
    if (!window.mermaid) {
        throw new Error('mermaid.js did not load');
    }
    window.mermaid.initialize(config);
    return true;
}
"""

RENDER_SCRIPT = """
async (id, source) => {
    try {
        const result = await window.mermaid.render(id, source);
        return typeof result === 'string' ? result : result.svg;
    } finally {
        // mermaid leaves a temporary container behind on syntax errors
        const leftover = document.getElementById('d' + id);
        if (leftover) {
            leftover.remove();
        }
    }
}
"""


class DiagramEngine(abc.ABC):
    """Converts diagram source text into SVG markup."""

    async def initialize(self) -> None:
        """Prepare engine-wide configuration. Must be idempotent and cheap on repeat calls."""

    @abc.abstractmethod
    async def render(self, identity: str, source: str) -> str:
        """
        Convert one diagram.

        Args:
            identity: Unique id of the diagram instance, usable as a DOM id
            source: Diagram source text

        Returns:
            SVG markup

        Raises:
            DiagramConversionError: If the source is invalid or the engine fails
        """

    async def close(self) -> None:
        """Release engine resources."""


class PyppeteerMermaidEngine(DiagramEngine):
    """
    Renders Mermaid diagrams with mermaid.js in a shared headless Chromium page.
    """

    def __init__(
        self,
        *,
        mermaid_url: str = DEFAULT_MERMAID_URL,
        theme: str = "default",
        launch_args: Optional[List[str]] = None,
        headless: bool = True,
        debug: bool = False,
    ):
        """
        Args:
            mermaid_url: Where the host page loads mermaid.js from (URL or file://)
            theme: Mermaid theme name
            launch_args: Extra Chromium command line flags
            headless: Run Chromium without a window
            debug: Enable verbose logging
        """
        self.mermaid_url = mermaid_url
        self.theme = theme
        self.launch_args = launch_args if launch_args is not None else [
            '--no-sandbox',
            '--allow-file-access-from-files',
        ]
        self.headless = headless
        self.debug = debug

        self._browser = None
        self._page = None
        self._starting: Optional[asyncio.Future] = None
        self._generation = 0

    @property
    def ready(self) -> bool:
        return self._page is not None

    async def initialize(self) -> None:
        if self._page is not None:
            return
        # Concurrent mounts share one in-flight start-up
        if self._starting is None:
            self._starting = asyncio.ensure_future(self._start(self._generation))
        starting = self._starting
        try:
            await asyncio.shield(starting)
        except Exception:
            if self._starting is starting:
                self._starting = None  # let a later mount retry
            raise

    async def _start(self, generation: int) -> None:
        if self.debug:
            logger.info("Launching Chromium for Mermaid rendering (%s)", self.mermaid_url)

        try:
            browser = await launch(headless=self.headless, args=self.launch_args)
        except Exception as exc:
            raise DiagramConversionError(f"Could not launch Chromium: {exc}") from exc

        try:
            page = await browser.newPage()
            await page.setContent(HOST_PAGE)
            await page.addScriptTag({'url': self.mermaid_url})
            await page.evaluate(INIT_SCRIPT, {
                'startOnLoad': False,
                'theme': self.theme,
                'securityLevel': 'strict',
            })
        except asyncio.CancelledError:
            await browser.close()
            raise
        except Exception as exc:
            await browser.close()
            raise DiagramConversionError(f"Could not initialise mermaid.js: {exc}") from exc

        if generation != self._generation:
            # close() ran while Chromium was starting
            await browser.close()
            raise DiagramConversionError("Mermaid engine was closed during start-up")

        self._browser = browser
        self._page = page

        if self.debug:
            logger.info("Mermaid engine ready")

    async def render(self, identity: str, source: str) -> str:
        await self.initialize()
        try:
            return await self._page.evaluate(RENDER_SCRIPT, identity, source)
        except PyppeteerError as exc:
            raise DiagramConversionError(f"Mermaid rejected diagram {identity}: {exc}", identity) from exc

    async def close(self) -> None:
        self._generation += 1
        starting = self._starting
        browser = self._browser
        self._browser = None
        self._page = None
        self._starting = None
        if starting is not None and not starting.done():
            # Wait for the in-flight start so its browser is shut down before returning
            try:
                await asyncio.shield(starting)
            except DiagramConversionError as exc:
                logger.debug("Mermaid engine start-up ended during close: %s", exc)
        if browser is not None:
            await browser.close()
            if self.debug:
                logger.info("Mermaid engine closed")
