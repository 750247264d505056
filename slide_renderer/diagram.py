"""
Diagram blocks: asynchronous, once-per-instance conversion of diagram source
into SVG, bound to the lifetime of the slide that mounted them.

Each ``DiagramBlock`` carries its own source, takes a fresh identity from the
RenderContext when mounted and converts in a task owned by the slide's
``Lifetime``. Whatever the engine does, the outcome lands only on that block's
placeholder: failures turn it into an inert element, results arriving after
teardown are dropped.
"""
import asyncio
import logging
from typing import List, Optional, Set, Tuple

from bs4 import BeautifulSoup

from .errors import DiagramStateError
from .models import DiagramInstance, DiagramStatus, RenderedGraphic

logger = logging.getLogger(__name__)


class Lifetime:
    """
    Tasks bound to one component mount. Closing the lifetime cancels them.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self.closed = False
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro) -> asyncio.Task:
        """Schedule *coro* on the running loop and tie it to this lifetime."""
        if self.closed:
            coro.close()
            raise RuntimeError(f"Lifetime '{self.name}' is closed")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            raise RuntimeError("Diagram blocks must be mounted inside a running event loop")

        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> List[asyncio.Task]:
        return [task for task in self._tasks if not task.done()]

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for every task spawned so far.

        Returns:
            True if nothing is left pending
        """
        tasks = self.pending
        if not tasks:
            return True
        _, still_pending = await asyncio.wait(tasks, timeout=timeout)
        return not still_pending

    def close(self) -> None:
        self.closed = True
        for task in list(self._tasks):
            task.cancel()

    async def aclose(self) -> None:
        """Cancel every task and wait until they have all finished."""
        tasks = list(self._tasks)
        self.close()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


class DiagramBlock:
    """
    One diagram on a slide.

    Lifecycle: ``mount(placeholder)`` → zero or more ``attach``/``update``
    calls while the slide re-renders → ``unmount()``.
    """

    def __init__(self, context, source: str, lifetime: Lifetime):
        self.context = context
        self.source = source
        self._lifetime = lifetime
        self.instance: Optional[DiagramInstance] = None
        self.mounted = False
        self._placeholder = None
        self._task: Optional[asyncio.Task] = None

    @property
    def identity(self) -> Optional[str]:
        return self.instance.identity if self.instance else None

    @property
    def status(self) -> Optional[DiagramStatus]:
        return self.instance.status if self.instance else None

    @property
    def placeholder(self):
        return self._placeholder

    def mount(self, placeholder) -> "DiagramBlock":
        if self.mounted:
            raise DiagramStateError(f"Diagram {self.identity} is already mounted")
        self.mounted = True
        self._placeholder = placeholder
        try:
            self._start()
        except Exception:
            self.mounted = False
            self._placeholder = None
            raise
        return self

    def attach(self, placeholder) -> None:
        """Move this block onto a placeholder in a freshly rendered tree."""
        self._placeholder = placeholder
        self._paint()

    def update(self, source: str) -> bool:
        """
        Apply new source. Unchanged source is a no-op; changed source starts a
        new instance with a new identity.

        Returns:
            True if a new conversion was started
        """
        if source == self.source:
            return False
        self._cancel()
        self.source = source
        if self.mounted:
            self._start()
        return True

    def unmount(self) -> None:
        self.mounted = False
        self._cancel()
        self._placeholder = None

    def _start(self) -> None:
        self.instance = DiagramInstance(identity=self.context.next_diagram_id(), source=self.source)
        self._paint()
        self._task = self._lifetime.spawn(self._convert(self.instance))
        logger.debug("Diagram %s mounted", self.instance.identity)

    def _cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _is_current(self, instance: DiagramInstance) -> bool:
        return self.mounted and not self._lifetime.closed and instance is self.instance

    async def _convert(self, instance: DiagramInstance) -> None:
        try:
            payload = await asyncio.wait_for(
                self._run_engine(instance), timeout=self.context.diagram_timeout
            )
            graphic = RenderedGraphic.from_svg(payload, instance.identity)
        except asyncio.CancelledError:
            logger.debug("Diagram %s conversion cancelled", instance.identity)
            raise
        except Exception as exc:
            if not self._is_current(instance):
                logger.debug("Diagram %s failed after teardown, ignoring: %s", instance.identity, exc)
                return
            reason = str(exc) or type(exc).__name__
            logger.warning("Diagram %s failed to render: %s", instance.identity, reason)
            instance.fail(reason)
            self._paint()
            return

        if not self._is_current(instance):
            logger.debug("Discarding result for detached diagram %s", instance.identity)
            return

        instance.resolve(graphic)
        self._paint()

    async def _run_engine(self, instance: DiagramInstance) -> str:
        engine = await self.context.ensure_engine()
        return await engine.render(instance.identity, instance.source)

    def _paint(self) -> None:
        placeholder = self._placeholder
        if placeholder is None or self.instance is None:
            return

        status = self.instance.status
        placeholder.clear()
        placeholder['class'] = ['diagram', f'diagram-{status.value}']
        placeholder['data-diagram-id'] = self.instance.identity
        placeholder['data-status'] = status.value

        if status is DiagramStatus.RENDERED:
            if placeholder.has_attr('aria-hidden'):
                del placeholder['aria-hidden']
            fragment = BeautifulSoup(self.instance.graphic.svg, 'html.parser')
            for node in list(fragment.contents):
                placeholder.append(node.extract())
        elif status is DiagramStatus.FAILED:
            placeholder['aria-hidden'] = 'true'


def collect_raw_diagrams(soup, diagram_tag: str = "mermaid") -> List[Tuple[object, str]]:
    """
    Find diagrams authored as raw HTML (``<pre class="mermaid">`` or
    ``<div class="mermaid">``) and swap each for an empty placeholder.

    Fallback for markup that bypassed the fence dispatcher. The caller still
    mounts a DiagramBlock per placeholder, so conversion stays owned by the
    slide lifetime.

    Returns:
        List of (placeholder, source) pairs in document order
    """
    found = []
    # Fence placeholders share the "diagram" classes; never treat them as raw markup
    unclaimed = ":not([data-diagram-slot]):not([data-diagram-origin]):not([data-diagram-id])"
    for element in soup.select(f"pre.{diagram_tag}{unclaimed}, div.{diagram_tag}{unclaimed}"):
        source = element.get_text().strip('\n')
        placeholder = soup.new_tag('div')
        placeholder['class'] = ['diagram', 'diagram-placeholder']
        placeholder['data-diagram-origin'] = 'html'
        element.replace_with(placeholder)
        found.append((placeholder, source))
    return found
