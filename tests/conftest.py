"""
Shared pytest fixtures for all tests.

The fakes mimic the small slice of the async Playwright API the healing
locator uses: ``page.locator(selector)`` with ``count``/``nth``/``first``,
``is_visible`` and the element actions.
"""
import asyncio
import re
from typing import Dict, List, Optional

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from healing_locator.healing_config import HealingConfig, PopupConfig
from healing_locator.utils.event_logger import EventLogger, set_event_logger

CLOSED_MESSAGE = "Target page, context or browser has been closed"
_NTH_SUFFIX_RE = re.compile(r"^(?P<base>.*?) >> nth=(?P<index>-?\d+)$")


class FakeElement:
    def __init__(self, name: str = "element", visible: bool = True, error: Optional[Exception] = None):
        self.name = name
        self.visible = visible
        self.error = error
        self.actions: List[tuple] = []

    def _act(self, *action):
        if self.error is not None:
            raise self.error
        self.actions.append(action)

    def __repr__(self):
        return f"FakeElement({self.name!r})"


class FakeLocator:
    def __init__(self, page: "FakePage", selector: str, index: Optional[int] = None):
        self.page = page
        self.selector = selector
        self.index = index

    def _elements(self) -> List[FakeElement]:
        self.page._check_open()
        return self.page.elements_for(self.selector)

    def _target(self) -> FakeElement:
        elements = self._elements()
        if self.index is not None:
            if -len(elements) <= self.index < len(elements):
                return elements[self.index]
            raise PlaywrightTimeoutError(f"Timeout waiting for {self.selector} >> nth={self.index}")
        if len(elements) != 1:
            raise PlaywrightError(f"strict mode violation: {self.selector} resolved to {len(elements)} elements")
        return elements[0]

    async def count(self) -> int:
        self.page.probe_calls.append(self.selector)
        if self.selector in self.page.hanging_selectors:
            await asyncio.sleep(3600)
        if self.selector in self.page.invalid_selectors:
            raise PlaywrightError(f"Unexpected token in selector {self.selector}")
        return len(self._elements())

    def nth(self, index: int) -> "FakeLocator":
        return FakeLocator(self.page, self.selector, index)

    @property
    def first(self) -> "FakeLocator":
        return self.nth(0)

    async def is_visible(self) -> bool:
        elements = self._elements()
        index = self.index or 0
        if index >= len(elements):
            return False
        return elements[index].visible

    async def click(self, timeout: Optional[float] = None):
        target = self._target()
        if not target.visible:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded: element is not visible")
        target._act("click")
        self.page.actions.append(("click", self.selector))

    async def fill(self, value: str, timeout: Optional[float] = None):
        self._target()._act("fill", value)
        self.page.actions.append(("fill", self.selector, value))

    async def select_option(self, value, timeout: Optional[float] = None):
        self._target()._act("select", value)
        self.page.actions.append(("select", self.selector, value))

    async def wait_for(self, state: str = "visible", timeout: Optional[float] = None):
        self._target()._act("wait", state)


class FakeEmitter:
    def __init__(self):
        self.listeners: Dict[str, list] = {}

    def on(self, event: str, handler):
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event: str, handler):
        if handler in self.listeners.get(event, []):
            self.listeners[event].remove(handler)


class FakeContext(FakeEmitter):
    pass


class FakePage(FakeEmitter):
    """
    In-memory page: ``elements`` maps a selector string to the elements it matches
    in document order. ``resolve`` chains ``>> nth=i`` suffixes like Playwright.
    """

    def __init__(self, elements: Optional[Dict[str, List[FakeElement]]] = None):
        super().__init__()
        self.elements: Dict[str, List[FakeElement]] = dict(elements or {})
        self.url = "https://shop.example/"
        self.viewport_size = {"width": 1280, "height": 720}
        self.context = FakeContext()
        self.hanging_selectors = set()
        self.invalid_selectors = set()
        self.closed = False
        self.probe_calls: List[str] = []
        self.actions: List[tuple] = []
        self.visited: List[str] = []
        self.screenshots: List[Optional[str]] = []
        self.dom_capture: dict = {"elements": [], "page": {"width": 1280, "height": 2000}}
        self.goto_error: Optional[Exception] = None

    def _check_open(self):
        if self.closed:
            raise PlaywrightError(CLOSED_MESSAGE)

    def elements_for(self, selector: str) -> List[FakeElement]:
        match = _NTH_SUFFIX_RE.match(selector)
        if match:
            base = self.elements_for(match.group("base"))
            index = int(match.group("index"))
            if -len(base) <= index < len(base):
                return [base[index]]
            return []
        return list(self.elements.get(selector, []))

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    async def goto(self, url: str, wait_until: Optional[str] = None):
        self._check_open()
        if self.goto_error is not None:
            raise self.goto_error
        self.visited.append(url)
        self.url = url

    async def screenshot(self, path: Optional[str] = None, full_page: bool = False, type: str = "png"):
        self._check_open()
        self.screenshots.append(path)
        if path:
            with open(path, "wb") as handle:
                handle.write(b"\x89PNG fake")
        return b"\x89PNG fake"

    async def evaluate(self, script: str, *args):
        self._check_open()
        return self.dom_capture

    def is_closed(self) -> bool:
        return self.closed


class FakeModel:
    """Stand-in for the vision model call; records every prompt."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: List[dict] = []

    async def __call__(self, prompt: str, system_prompt: str = "", image=None) -> str:
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt, "image": image})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return await response()
        return response


def run(coro):
    """Drive a coroutine to completion from a plain pytest function."""
    return asyncio.run(coro)


@pytest.fixture(autouse=True)
def quiet_logger():
    """Silent global event logger; tests can inspect its history."""
    logger = EventLogger(debug_mode=False)
    set_event_logger(logger)
    yield logger
    set_event_logger(EventLogger(debug_mode=True))


@pytest.fixture
def fast_config():
    """Healing config with short timeouts so not-found paths finish quickly."""
    return HealingConfig(
        deterministic_timeout_ms=200,
        vision_timeout_ms=2000,
        poll_interval_ms=20,
        timeout_grace_ms=200,
        action_timeout_ms=500,
        popup=PopupConfig(settle_ms=0, check_timeout_ms=50),
    )


@pytest.fixture
def fake_page():
    return FakePage()
