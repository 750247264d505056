"""Test the pyppeteer-backed Mermaid engine against a fake browser."""

import asyncio

import pytest
from pyppeteer.errors import ElementHandleError

from slide_renderer import engines
from slide_renderer.engines import PyppeteerMermaidEngine
from slide_renderer.errors import DiagramConversionError


class FakePage:
    def __init__(self):
        self.scripts = []
        self.init_config = None

    async def setContent(self, html):
        self.content = html

    async def addScriptTag(self, options):
        self.scripts.append(options["url"])

    async def evaluate(self, script, *args):
        if "mermaid.initialize" in script:
            self.init_config = args[0]
            return True
        identity, source = args
        if "@@@" in source:
            raise ElementHandleError("Evaluation failed: Error: Parse error on line 1")
        return f'<svg id="{identity}"></svg>'


class FakeBrowser:
    def __init__(self):
        self.page = FakePage()
        self.closed = False

    async def newPage(self):
        return self.page

    async def close(self):
        self.closed = True


@pytest.fixture
def launches(monkeypatch):
    browsers = []

    async def fake_launch(**kwargs):
        await asyncio.sleep(0)
        browser = FakeBrowser()
        browser.kwargs = kwargs
        browsers.append(browser)
        return browser

    monkeypatch.setattr(engines, "launch", fake_launch)
    return browsers


@pytest.mark.asyncio
async def test_initialize_is_idempotent_under_concurrency(launches):
    engine = PyppeteerMermaidEngine(theme="dark", mermaid_url="file:///opt/mermaid.min.js")

    await asyncio.gather(engine.initialize(), engine.initialize(), engine.initialize())
    await engine.initialize()

    assert len(launches) == 1
    assert engine.ready
    page = launches[0].page
    assert page.scripts == ["file:///opt/mermaid.min.js"]
    assert page.init_config == {"startOnLoad": False, "theme": "dark", "securityLevel": "strict"}


@pytest.mark.asyncio
async def test_render_returns_svg(launches):
    engine = PyppeteerMermaidEngine()

    svg = await engine.render("mermaid-7", "flowchart LR\nA-->B")

    assert svg == '<svg id="mermaid-7"></svg>'


@pytest.mark.asyncio
async def test_render_error_becomes_conversion_error(launches):
    engine = PyppeteerMermaidEngine()

    with pytest.raises(DiagramConversionError) as excinfo:
        await engine.render("mermaid-2", "not a diagram @@@")

    assert excinfo.value.identity == "mermaid-2"
    assert "Parse error" in str(excinfo.value)


@pytest.mark.asyncio
async def test_launch_failure_can_be_retried(monkeypatch, launches):
    attempts = []
    working_launch = engines.launch

    async def flaky_launch(**kwargs):
        attempts.append(kwargs)
        if len(attempts) == 1:
            raise OSError("Chromium not found")
        return await working_launch(**kwargs)

    monkeypatch.setattr(engines, "launch", flaky_launch)
    engine = PyppeteerMermaidEngine()

    with pytest.raises(DiagramConversionError):
        await engine.initialize()
    await engine.initialize()

    assert len(attempts) == 2
    assert engine.ready


@pytest.mark.asyncio
async def test_close_releases_browser(launches):
    engine = PyppeteerMermaidEngine()
    await engine.initialize()

    await engine.close()
    await engine.close()

    assert launches[0].closed
    assert not engine.ready


@pytest.mark.asyncio
async def test_close_during_start_up_shuts_browser_down(monkeypatch, launches):
    release = asyncio.Event()
    working_launch = engines.launch

    async def slow_launch(**kwargs):
        await release.wait()
        return await working_launch(**kwargs)

    monkeypatch.setattr(engines, "launch", slow_launch)
    engine = PyppeteerMermaidEngine()
    starting = asyncio.ensure_future(engine.initialize())
    await asyncio.sleep(0)

    closing = asyncio.ensure_future(engine.close())
    await asyncio.sleep(0)
    release.set()
    await closing

    with pytest.raises(DiagramConversionError):
        await starting
    assert not engine.ready
    assert launches[0].closed


@pytest.mark.asyncio
async def test_engine_can_start_again_after_close_during_start_up(monkeypatch, launches):
    release = asyncio.Event()
    working_launch = engines.launch

    async def slow_launch(**kwargs):
        await release.wait()
        return await working_launch(**kwargs)

    monkeypatch.setattr(engines, "launch", slow_launch)
    engine = PyppeteerMermaidEngine()
    starting = asyncio.ensure_future(engine.initialize())
    await asyncio.sleep(0)
    closing = asyncio.ensure_future(engine.close())
    await asyncio.sleep(0)
    release.set()
    await closing
    with pytest.raises(DiagramConversionError):
        await starting

    await engine.initialize()

    assert engine.ready
    assert len(launches) == 2
    assert not launches[1].closed


@pytest.mark.asyncio
async def test_non_pyppeteer_setup_error_closes_browser(monkeypatch, launches):
    async def broken_script_tag(self, options):
        raise OSError("connection reset")

    monkeypatch.setattr(FakePage, "addScriptTag", broken_script_tag)
    engine = PyppeteerMermaidEngine()

    with pytest.raises(DiagramConversionError) as excinfo:
        await engine.initialize()

    assert "connection reset" in str(excinfo.value)
    assert launches[0].closed
    assert not engine.ready
