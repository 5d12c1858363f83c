"""siteverify test configuration — shared fixtures and an in-memory fake page."""

from __future__ import annotations

import asyncio
import os
import random
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from siteverify.browser.artifacts import ArtifactCapture
from siteverify.browser.pacing import HumanPacer
from siteverify.browser.provisioner import SessionCapabilities, SessionHandle, SessionProvisioner

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_TARGETS_FILE = PROJECT_ROOT / "config" / "targets.json"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_settings_cache(monkeypatch):
    """Clear the settings LRU cache and any SITEVERIFY_* env leaking in from the shell."""
    from siteverify.settings.config import get_settings

    for key in list(os.environ):
        if key.startswith("SITEVERIFY_"):
            monkeypatch.delenv(key, raising=False)

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


# ---------------------------------------------------------------------------
# Fake Playwright page
# ---------------------------------------------------------------------------


class FakeElement:
    """Element handle returned by ``FakePage.query_selector`` / ``wait_for_selector``."""

    def __init__(self, page: "FakePage", selector: str) -> None:
        self._page = page
        self.selector = selector

    async def click(self, timeout: int | None = None) -> None:
        await self._page.click(self.selector, timeout=timeout)


class FakeLocator:
    """Locator returned by ``FakePage.locator``; records fills and typed text on the page."""

    def __init__(self, page: "FakePage", selector: str) -> None:
        self._page = page
        self.selector = selector

    async def fill(self, value: str, *, timeout: int = 30_000) -> None:
        self._page.calls.append(("fill", self.selector, value))

    async def press_sequentially(self, text: str, *, delay: int = 0, timeout: int = 30_000) -> None:
        if self._page.type_error is not None:
            raise self._page.type_error
        self._page.calls.append(("type", self.selector, text))


class FakeKeyboard:
    def __init__(self, page: "FakePage") -> None:
        self._page = page

    async def press(self, key: str) -> None:
        self._page.calls.append(("press", key))
        self._page._react(f"key:{key}")


class FakePage:
    """In-memory stand-in for the subset of ``playwright.async_api.Page`` used by siteverify.

    Args:
        present: Selectors visible from the start.
        hidden: Selectors attached to the DOM but never visible.
        appear_after: ``selector -> seconds`` until it becomes visible.
        reactions: ``selector`` (or ``"key:Enter"``) -> selectors that become
            visible when it is clicked (pressed).
        navigates_on: Clicks / key presses (same keys as *reactions*) that
            trigger a page navigation.
        wait_error: Exception raised by every ``wait_for_selector`` call.
        type_error: Exception raised by every ``press_sequentially`` call.
    """

    def __init__(
        self,
        *,
        present: set[str] | None = None,
        hidden: set[str] | None = None,
        appear_after: dict[str, float] | None = None,
        reactions: dict[str, set[str]] | None = None,
        navigates_on: set[str] | None = None,
        wait_error: Exception | None = None,
        type_error: Exception | None = None,
        url: str = "about:blank",
        titles: list[str] | None = None,
    ) -> None:
        self.present = set(present or ())
        self.hidden = set(hidden or ())
        self.appear_after = dict(appear_after or {})
        self.reactions = {k: set(v) for k, v in (reactions or {}).items()}
        self.navigates_on = set(navigates_on or ())
        self.wait_error = wait_error
        self.type_error = type_error
        self.url = url
        self.result_titles = titles or []
        self.page_title = "Fake page"
        self.closed = False
        self.viewport: dict[str, int] | None = None
        self.calls: list[tuple[Any, ...]] = []
        self.keyboard = FakeKeyboard(self)
        self._navigated = False

    # -- internal --------------------------------------------------------

    def _react(self, trigger: str) -> None:
        self.present |= self.reactions.get(trigger, set())
        if trigger in self.navigates_on:
            self._navigated = True

    def _require_open(self) -> None:
        if self.closed:
            raise PlaywrightError("Target page, context or browser has been closed")

    # -- Page API ----------------------------------------------------------

    async def goto(self, url: str, *, wait_until: str = "load", timeout: int = 30_000):
        self._require_open()
        self.calls.append(("goto", url))
        self.url = url
        return None

    async def go_back(self, *, wait_until: str = "load", timeout: int = 30_000):
        self.calls.append(("go_back",))
        return None

    async def wait_for_selector(self, selector: str, *, state: str = "visible", timeout: int = 30_000):
        self.calls.append(("wait_for_selector", selector))
        if self.wait_error is not None:
            raise self.wait_error
        if selector in self.present or (state == "attached" and selector in self.hidden):
            return FakeElement(self, selector)
        delay = self.appear_after.get(selector)
        if delay is not None and delay * 1000 <= timeout:
            await asyncio.sleep(delay)
            self.present.add(selector)
            return FakeElement(self, selector)
        await asyncio.sleep(timeout / 1000)
        raise PlaywrightTimeout(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def query_selector(self, selector: str):
        self.calls.append(("query_selector", selector))
        if selector in self.present or selector in self.hidden:
            return FakeElement(self, selector)
        return None

    def locator(self, selector: str) -> "FakeLocator":
        return FakeLocator(self, selector)

    async def click(self, selector: str, *, timeout: int | None = None) -> None:
        if selector not in self.present:
            raise PlaywrightTimeout(f"Timeout {timeout}ms exceeded clicking {selector}")
        self.calls.append(("click", selector))
        self._react(selector)

    async def evaluate(self, expression: str, arg: Any = None):
        self.calls.append(("evaluate", arg))
        if "querySelectorAll" in expression:
            return list(self.result_titles)
        return None

    async def wait_for_function(self, expression: str, *, timeout: int = 30_000) -> None:
        self.calls.append(("wait_for_function",))

    @asynccontextmanager
    async def expect_navigation(self, *, wait_until: str = "load", timeout: int = 30_000):
        self._navigated = False
        yield
        if not self._navigated:
            raise PlaywrightTimeout(f"Timeout {timeout}ms exceeded waiting for navigation")
        self.calls.append(("navigated",))

    async def title(self) -> str:
        return self.page_title

    async def screenshot(self, *, path: str, full_page: bool = True) -> bytes:
        self._require_open()
        data = b"\x89PNG fake"
        Path(path).write_bytes(data)
        self.calls.append(("screenshot", path))
        return data

    async def set_viewport_size(self, viewport: dict[str, int]) -> None:
        self.viewport = viewport

    async def close(self) -> None:
        self.closed = True


class FakeContext:
    def __init__(self, page: FakePage) -> None:
        self.pages = [page]


class FakeBrowser:
    def __init__(self, page: FakePage) -> None:
        self.contexts = [FakeContext(page)]
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class FakeProvisioner(SessionProvisioner):
    """Hands out sessions wrapping pages from *page_factory*.

    With ``fail=True`` every acquisition raises inside ``_create``.
    ``events`` records acquisitions and releases in the order they happen.
    """

    def __init__(self, page_factory: Callable[[], FakePage], *, fail: bool = False) -> None:
        super().__init__()
        self._page_factory = page_factory
        self.fail = fail
        self.pages: list[FakePage] = []
        self.events: list[str] = []

    async def _create(self, capabilities: SessionCapabilities) -> SessionHandle:
        if self.fail:
            raise RuntimeError("provider unavailable")
        page = self._page_factory()
        self.pages.append(page)
        browser = FakeBrowser(page)
        session_id = f"fake-{len(self.pages)}"
        self.events.append(f"acquire {session_id}")

        def _released() -> None:
            self.events.append(f"release {session_id}")
            self._mark_released()

        return SessionHandle(
            session_id=session_id,
            inspect_url=f"https://inspect.test/sessions/{session_id}",
            capabilities=capabilities,
            browser=browser,
            closer=browser.close,
            on_release=_released,
        )


async def _no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture()
def make_page() -> type[FakePage]:
    """Factory for ``FakePage`` instances."""
    return FakePage


@pytest.fixture()
def make_provisioner() -> type[FakeProvisioner]:
    return FakeProvisioner


@pytest.fixture()
def pacer() -> HumanPacer:
    """Pacer with a seeded RNG that never actually sleeps."""
    return HumanPacer(rng=random.Random(42), sleep=_no_sleep)


@pytest.fixture()
def artifacts(tmp_path: Path) -> ArtifactCapture:
    return ArtifactCapture(tmp_path / "screenshots")


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests that require a real browser or network")
