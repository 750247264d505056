import asyncio
import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path so `import slide_renderer` works
project_root = Path(__file__).resolve().parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from slide_renderer.context import RenderContext  # noqa: E402
from slide_renderer.engines import DiagramEngine  # noqa: E402
from slide_renderer.errors import DiagramConversionError  # noqa: E402


class FakeEngine(DiagramEngine):
    """In-memory diagram engine that records every conversion."""

    def __init__(self, fail_on=("not a diagram",), gate=None, crash_on=()):
        self.fail_on = tuple(fail_on)
        self.crash_on = tuple(crash_on)
        self.gate = gate
        self.calls = []
        self.init_calls = 0
        self.closed = False

    async def initialize(self):
        self.init_calls += 1

    async def render(self, identity, source):
        self.calls.append((identity, source))
        if self.gate is not None:
            await self.gate.wait()
        if any(marker in source for marker in self.crash_on):
            raise RuntimeError("engine crashed")
        if any(marker in source for marker in self.fail_on):
            raise DiagramConversionError(f"Parse error in diagram {identity}", identity)
        return (
            f'<svg id="{identity}" xmlns="http://www.w3.org/2000/svg">'
            f'<text>{len(source)}</text></svg>'
        )

    async def close(self):
        self.closed = True


async def _wait_until(predicate, attempts=200):
    """Yield to the event loop until *predicate* holds."""
    for _ in range(attempts):
        if predicate():
            return True
        await asyncio.sleep(0)
    return predicate()


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def context(engine):
    return RenderContext(engine)


@pytest.fixture
def make_engine():
    """Factory for engines with custom gates or failure markers."""
    return FakeEngine


@pytest.fixture
def wait_until():
    return _wait_until
