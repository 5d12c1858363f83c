"""Unit tests for browser session provisioning.

Covers:
  - Browserbase session-create request (payload, headers) via httpx.MockTransport
  - Rejected / malformed provider responses
  - Bounded acquisition and CDP connection failures
  - SessionHandle release semantics
  - Local launch arguments and provider selection
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from siteverify.browser.provisioner import (
    BrowserbaseProvisioner,
    LocalProvisioner,
    SessionCapabilities,
    SessionHandle,
    SessionProvisioner,
    StealthLevel,
    build_provisioner,
)
from siteverify.exceptions import ProvisioningError
from siteverify.settings.config import Settings


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _fake_playwright(browser: MagicMock | None = None, connect_error: Exception | None = None):
    """Return ``(factory, pw)`` mimicking ``async_playwright()``."""
    pw = MagicMock()
    pw.stop = AsyncMock()
    if connect_error is not None:
        pw.chromium.connect_over_cdp = AsyncMock(side_effect=connect_error)
    else:
        pw.chromium.connect_over_cdp = AsyncMock(return_value=browser)
    pw.chromium.launch = AsyncMock(return_value=browser)

    manager = MagicMock()
    manager.start = AsyncMock(return_value=pw)
    return (lambda: manager), pw


def _browser() -> MagicMock:
    browser = MagicMock()
    browser.close = AsyncMock()
    browser.contexts = []
    return browser


def _session_api(requests: list[httpx.Request], status: int = 201, body: dict | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        payload = body if body is not None else {"id": "sess-123", "connectUrl": "wss://connect.test/sess-123"}
        return httpx.Response(status, json=payload)

    return httpx.MockTransport(handler)


def _provisioner(transport: httpx.MockTransport, factory=None) -> BrowserbaseProvisioner:
    kwargs = {"playwright_factory": factory} if factory is not None else {}
    return BrowserbaseProvisioner(
        "bb-key",
        "proj-1",
        api_base="https://api.bb.test",
        inspect_base="https://www.bb.test/sessions",
        transport=transport,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Browserbase
# ---------------------------------------------------------------------------


class TestBrowserbaseRequest:
    def test_payload_passes_capabilities_through(self) -> None:
        prov = _provisioner(_session_api([]))
        payload = prov.build_payload(SessionCapabilities(use_proxy=True, stealth=StealthLevel.ADVANCED))
        assert payload == {
            "projectId": "proj-1",
            "proxies": True,
            "browserSettings": {"advancedStealth": True, "viewport": {"width": 1280, "height": 800}},
        }

    def test_basic_stealth_without_proxy(self) -> None:
        prov = _provisioner(_session_api([]))
        payload = prov.build_payload(SessionCapabilities(use_proxy=False, stealth=StealthLevel.BASIC))
        assert payload["proxies"] is False
        assert payload["browserSettings"]["advancedStealth"] is False

    @pytest.mark.anyio
    async def test_create_session_request(self) -> None:
        requests: list[httpx.Request] = []
        data = await _provisioner(_session_api(requests)).create_session(SessionCapabilities())

        assert data["id"] == "sess-123"
        assert len(requests) == 1
        req = requests[0]
        assert req.method == "POST"
        assert str(req.url) == "https://api.bb.test/v1/sessions"
        assert req.headers["X-BB-API-Key"] == "bb-key"
        assert json.loads(req.content)["projectId"] == "proj-1"

    @pytest.mark.anyio
    async def test_rejected_request(self) -> None:
        prov = _provisioner(_session_api([], status=401, body={"error": "invalid api key"}))
        with pytest.raises(ProvisioningError, match=r"rejected \(401\)"):
            await prov.create_session(SessionCapabilities())

    @pytest.mark.anyio
    async def test_response_without_connect_url(self) -> None:
        prov = _provisioner(_session_api([], body={"id": "sess-1"}))
        with pytest.raises(ProvisioningError, match="connectUrl"):
            await prov.create_session(SessionCapabilities())


class TestBrowserbaseAcquire:
    @pytest.mark.anyio
    async def test_acquire_and_release(self) -> None:
        browser = _browser()
        factory, pw = _fake_playwright(browser)
        prov = _provisioner(_session_api([]), factory)

        session = await prov.acquire(SessionCapabilities())

        pw.chromium.connect_over_cdp.assert_awaited_once_with("wss://connect.test/sess-123")
        assert session.session_id == "sess-123"
        assert session.inspect_url == "https://www.bb.test/sessions/sess-123"
        assert prov.outstanding == 1

        await session.close()
        await session.close()
        browser.close.assert_awaited_once()
        pw.stop.assert_awaited_once()
        assert session.closed
        assert prov.acquired == prov.released == 1

    @pytest.mark.anyio
    async def test_connect_failure_stops_playwright(self) -> None:
        factory, pw = _fake_playwright(connect_error=RuntimeError("cdp refused"))
        prov = _provisioner(_session_api([]), factory)

        with pytest.raises(ProvisioningError, match="cdp refused"):
            await prov.acquire(SessionCapabilities())

        pw.stop.assert_awaited_once()
        assert prov.acquired == 0

    @pytest.mark.anyio
    async def test_connect_failure_releases_remote_session(self) -> None:
        requests: list[httpx.Request] = []
        factory, _ = _fake_playwright(connect_error=RuntimeError("cdp refused"))
        prov = _provisioner(_session_api(requests), factory)

        with pytest.raises(ProvisioningError, match="cdp refused"):
            await prov.acquire(SessionCapabilities())

        assert [(r.method, str(r.url)) for r in requests] == [
            ("POST", "https://api.bb.test/v1/sessions"),
            ("POST", "https://api.bb.test/v1/sessions/sess-123"),
        ]
        release = requests[1]
        assert json.loads(release.content) == {"projectId": "proj-1", "status": "REQUEST_RELEASE"}
        assert release.headers["X-BB-API-Key"] == "bb-key"

    @pytest.mark.anyio
    async def test_timeout_after_create_releases_remote_session(self) -> None:
        requests: list[httpx.Request] = []

        async def _hang(_url: str) -> None:
            await asyncio.sleep(5)

        factory, pw = _fake_playwright()
        pw.chromium.connect_over_cdp = AsyncMock(side_effect=_hang)
        prov = _provisioner(_session_api(requests), factory)

        with pytest.raises(ProvisioningError, match="not ready within 50ms"):
            await prov.acquire(SessionCapabilities(acquire_timeout_ms=50))

        assert [str(r.url) for r in requests][-1] == "https://api.bb.test/v1/sessions/sess-123"
        pw.stop.assert_awaited_once()
        assert prov.outstanding == 0

    @pytest.mark.anyio
    async def test_release_failure_keeps_original_error(self, caplog) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v1/sessions":
                return httpx.Response(201, json={"id": "sess-9", "connectUrl": "wss://connect.test/sess-9"})
            return httpx.Response(500, json={"error": "gone"})

        factory, _ = _fake_playwright(connect_error=RuntimeError("cdp refused"))
        prov = _provisioner(httpx.MockTransport(handler), factory)

        with pytest.raises(ProvisioningError, match="cdp refused"):
            await prov.acquire(SessionCapabilities())

        assert "Session release failed (non-fatal) for sess-9" in caplog.text

    @pytest.mark.anyio
    async def test_rejected_request_is_not_rewrapped(self) -> None:
        prov = _provisioner(_session_api([], status=500, body={"error": "boom"}))
        with pytest.raises(ProvisioningError, match=r"^Session request rejected \(500\)"):
            await prov.acquire(SessionCapabilities())


class _SlowProvisioner(SessionProvisioner):
    async def _create(self, capabilities: SessionCapabilities) -> SessionHandle:
        await asyncio.sleep(5)
        raise AssertionError("unreachable")


class TestAcquireTimeout:
    @pytest.mark.anyio
    async def test_timeout_raises_provisioning_error(self) -> None:
        prov = _SlowProvisioner()
        with pytest.raises(ProvisioningError, match="not ready within 20ms"):
            await prov.acquire(SessionCapabilities(acquire_timeout_ms=20))
        assert prov.outstanding == 0


# ---------------------------------------------------------------------------
# SessionHandle
# ---------------------------------------------------------------------------


class TestSessionHandle:
    @pytest.mark.anyio
    async def test_open_page_reuses_default_page(self, make_page) -> None:
        page = make_page()
        browser = _browser()
        context = MagicMock()
        context.pages = [page]
        browser.contexts = [context]
        handle = SessionHandle(
            session_id="s",
            inspect_url="",
            capabilities=SessionCapabilities(viewport_width=1024, viewport_height=768),
            browser=browser,
            closer=browser.close,
        )

        assert await handle.open_page() is page
        assert page.viewport == {"width": 1024, "height": 768}

    @pytest.mark.anyio
    async def test_close_error_is_logged_not_raised(self, caplog) -> None:
        released: list[bool] = []
        handle = SessionHandle(
            session_id="s",
            inspect_url="",
            capabilities=SessionCapabilities(),
            browser=None,
            closer=AsyncMock(side_effect=RuntimeError("already gone")),
            on_release=lambda: released.append(True),
        )

        async with handle:
            pass

        assert released == [True]
        assert "Browser close error (non-fatal)" in caplog.text


# ---------------------------------------------------------------------------
# Local provider and selection
# ---------------------------------------------------------------------------


class TestLocalProvisioner:
    def test_proxy_only_when_configured(self) -> None:
        caps = SessionCapabilities(use_proxy=True)
        assert LocalProvisioner().build_launch_args(caps) == {"headless": True}
        args = LocalProvisioner(headless=False, proxy_server="http://proxy.test:8080").build_launch_args(caps)
        assert args == {"headless": False, "proxy": {"server": "http://proxy.test:8080"}}

    @pytest.mark.anyio
    async def test_acquire_launches_chromium(self) -> None:
        browser = _browser()
        factory, pw = _fake_playwright(browser)
        prov = LocalProvisioner(playwright_factory=factory)

        session = await prov.acquire(SessionCapabilities(use_proxy=False))

        pw.chromium.launch.assert_awaited_once_with(headless=True)
        assert session.session_id.startswith("local-")
        assert session.inspect_url == ""
        await session.close()
        assert prov.outstanding == 0


class TestBuildProvisioner:
    def test_default_is_browserbase(self) -> None:
        assert isinstance(build_provisioner(Settings()), BrowserbaseProvisioner)

    def test_local_flag(self) -> None:
        assert isinstance(build_provisioner(Settings(), local=True), LocalProvisioner)

    def test_local_kind(self, monkeypatch) -> None:
        monkeypatch.setenv("SITEVERIFY_PROVIDER__KIND", "local")
        assert isinstance(build_provisioner(Settings()), LocalProvisioner)
