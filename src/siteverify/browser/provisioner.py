"""Browser session provisioning.

A ``SessionProvisioner`` turns a set of ``SessionCapabilities`` into a live
``SessionHandle``: a Playwright ``Browser`` connected to a remote (or, for
development, local) Chromium, plus the URL a human can open to watch it.

The capability flags are passed through to the provider untouched; no
anti-detection logic lives here.

Usage::

    provisioner = BrowserbaseProvisioner.from_settings(get_settings())
    async with await provisioner.acquire(capabilities) as session:
        page = await session.open_page()
        ...
"""

from __future__ import annotations

import abc
import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
from playwright.async_api import async_playwright

from siteverify.exceptions import ProvisioningError
from siteverify.settings.config import PROVIDER_LOCAL, SessionSettings, Settings

logger = logging.getLogger(__name__)


class StealthLevel(str, Enum):
    """Anti-detection behaviour requested from the provider."""

    OFF = "off"
    BASIC = "basic"
    ADVANCED = "advanced"


@dataclass(frozen=True)
class SessionCapabilities:
    """Flags a session is requested with.

    Attributes:
        use_proxy: Ask the provider to route egress through its proxies.
        stealth: Anti-detection level, opaque to this package.
        acquire_timeout_ms: Bound on session creation plus connection.
    """

    use_proxy: bool = True
    stealth: StealthLevel = StealthLevel.ADVANCED
    acquire_timeout_ms: int = 120_000
    viewport_width: int = 1280
    viewport_height: int = 800

    @classmethod
    def from_settings(cls, session: SessionSettings) -> "SessionCapabilities":
        return cls(
            use_proxy=session.use_proxy,
            stealth=StealthLevel(session.stealth),
            acquire_timeout_ms=session.acquire_timeout_ms,
            viewport_width=session.viewport_width,
            viewport_height=session.viewport_height,
        )

    @property
    def viewport(self) -> dict[str, int]:
        return {"width": self.viewport_width, "height": self.viewport_height}


class SessionHandle:
    """A live browser session owned by exactly one target run.

    ``close()`` releases the session once; later calls are no-ops. Use it
    as an async context manager to guarantee release on every exit path.
    """

    def __init__(
        self,
        *,
        session_id: str,
        inspect_url: str,
        capabilities: SessionCapabilities,
        browser: Any,
        closer: Callable[[], Awaitable[None]],
        on_release: Callable[[], None] | None = None,
    ) -> None:
        self.session_id = session_id
        self.inspect_url = inspect_url
        self.capabilities = capabilities
        self.browser = browser
        self._closer = closer
        self._on_release = on_release
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def open_page(self):
        """Return the session's first existing page, or open a new one, sized to the viewport."""
        contexts = self.browser.contexts
        if contexts and contexts[0].pages:
            page = contexts[0].pages[0]
        elif contexts:
            page = await contexts[0].new_page()
        else:
            page = await self.browser.new_page()
        await page.set_viewport_size(self.capabilities.viewport)
        return page

    async def close(self) -> None:
        """Release the session. Driver errors during release are logged, not raised."""
        if self._closed:
            logger.debug("Session %s already released", self.session_id)
            return
        self._closed = True
        try:
            await self._closer()
        except Exception as exc:
            logger.warning("Browser close error (non-fatal) for session %s: %s", self.session_id, exc)
        finally:
            if self._on_release is not None:
                self._on_release()
        logger.info("Browser closed")

    async def __aenter__(self) -> "SessionHandle":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


class SessionProvisioner(abc.ABC):
    """Base class: bounded acquisition plus acquire/release accounting.

    No retry happens here; a failed acquisition surfaces as
    ``ProvisioningError`` and the caller decides what to do.
    """

    def __init__(self) -> None:
        self.acquired = 0
        self.released = 0

    @property
    def outstanding(self) -> int:
        """Sessions acquired but not yet released."""
        return self.acquired - self.released

    async def acquire(self, capabilities: SessionCapabilities) -> SessionHandle:
        """Create and connect a session within ``capabilities.acquire_timeout_ms``.

        Raises:
            ProvisioningError: If the provider rejects the request, the
                connection fails, or the timeout expires.
        """
        timeout_sec = capabilities.acquire_timeout_ms / 1000
        try:
            handle = await asyncio.wait_for(self._create(capabilities), timeout=timeout_sec)
        except ProvisioningError:
            raise
        except asyncio.TimeoutError as exc:
            raise ProvisioningError(
                f"Session not ready within {capabilities.acquire_timeout_ms}ms"
            ) from exc
        except Exception as exc:
            raise ProvisioningError(f"Could not provision browser session: {exc}") from exc

        self.acquired += 1
        if handle.inspect_url:
            logger.info("Live View Link: %s", handle.inspect_url)
        return handle

    def _mark_released(self) -> None:
        self.released += 1

    @abc.abstractmethod
    async def _create(self, capabilities: SessionCapabilities) -> SessionHandle:
        """Provider-specific session creation."""


class BrowserbaseProvisioner(SessionProvisioner):
    """Creates sessions through the Browserbase REST API and attaches over CDP.

    Args:
        api_key: Browserbase API key.
        project_id: Browserbase project the sessions are billed to.
        api_base: API root URL.
        inspect_base: Dashboard URL prefix for live-view links.
        request_timeout_sec: HTTP timeout for the session-create call.
        transport: Optional ``httpx`` transport (tests use ``MockTransport``).
        playwright_factory: Callable returning a Playwright context manager.
    """

    def __init__(
        self,
        api_key: str,
        project_id: str,
        *,
        api_base: str = "https://api.browserbase.com",
        inspect_base: str = "https://www.browserbase.com/sessions",
        request_timeout_sec: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        super().__init__()
        self._api_key = api_key
        self._project_id = project_id
        self._api_base = api_base.rstrip("/")
        self._inspect_base = inspect_base.rstrip("/")
        self._request_timeout = request_timeout_sec
        self._transport = transport
        self._playwright_factory = playwright_factory

    @classmethod
    def from_settings(cls, settings: Settings) -> "BrowserbaseProvisioner":
        p = settings.provider
        return cls(
            p.api_key,
            p.project_id,
            api_base=p.api_base,
            inspect_base=p.inspect_base,
            request_timeout_sec=p.request_timeout_sec,
        )

    def build_payload(self, capabilities: SessionCapabilities) -> dict[str, Any]:
        """Session-create request body for *capabilities*.

        Basic stealth is the provider's default behaviour, so only the
        advanced level sets a flag.
        """
        return {
            "projectId": self._project_id,
            "proxies": capabilities.use_proxy,
            "browserSettings": {
                "advancedStealth": capabilities.stealth == StealthLevel.ADVANCED,
                "viewport": capabilities.viewport,
            },
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._api_base,
            timeout=self._request_timeout,
            transport=self._transport,
            headers={"X-BB-API-Key": self._api_key},
        )

    async def create_session(self, capabilities: SessionCapabilities) -> dict[str, Any]:
        """POST a new session and return the provider's JSON response.

        Raises:
            ProvisioningError: On a non-2xx response or a body without
                ``id`` / ``connectUrl``.
        """
        logger.info("Creating Browserbase session...")
        async with self._client() as client:
            response = await client.post("/v1/sessions", json=self.build_payload(capabilities))

        if response.is_error:
            raise ProvisioningError(
                f"Session request rejected ({response.status_code}): {response.text[:200]}"
            )
        data = response.json()
        if not data.get("id") or not data.get("connectUrl"):
            raise ProvisioningError("Session response missing 'id' or 'connectUrl'")
        return data

    async def release_session(self, session_id: str) -> None:
        """Ask the provider to end *session_id*. Failures are logged, not raised."""
        try:
            async with self._client() as client:
                response = await client.post(
                    f"/v1/sessions/{session_id}",
                    json={"projectId": self._project_id, "status": "REQUEST_RELEASE"},
                )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Session release failed (non-fatal) for %s: %s", session_id, exc)
            return
        logger.info("Released session %s", session_id)

    async def _create(self, capabilities: SessionCapabilities) -> SessionHandle:
        data = await self.create_session(capabilities)
        session_id = data["id"]
        logger.info("Session created: %s", session_id)

        # From here on the remote session is live and billed until released.
        try:
            pw = await self._playwright_factory().start()
            try:
                browser = await pw.chromium.connect_over_cdp(data["connectUrl"])
            except BaseException:
                await pw.stop()
                raise
        except BaseException:
            logger.warning("Could not attach to session %s; releasing it", session_id)
            await self.release_session(session_id)
            raise
        logger.info("Connected to browser")

        async def _close() -> None:
            try:
                await browser.close()
            finally:
                await pw.stop()

        return SessionHandle(
            session_id=session_id,
            inspect_url=f"{self._inspect_base}/{session_id}",
            capabilities=capabilities,
            browser=browser,
            closer=_close,
            on_release=self._mark_released,
        )


class LocalProvisioner(SessionProvisioner):
    """Launches a local Playwright Chromium; for runs without provider credentials.

    The proxy capability is honoured only when *proxy_server* is set.
    Stealth levels have no local equivalent and are ignored.
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        proxy_server: str = "",
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        super().__init__()
        self._headless = headless
        self._proxy_server = proxy_server.strip()
        self._playwright_factory = playwright_factory

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalProvisioner":
        return cls(headless=settings.session.headless, proxy_server=settings.session.proxy_server)

    def build_launch_args(self, capabilities: SessionCapabilities) -> dict[str, Any]:
        launch_args: dict[str, Any] = {"headless": self._headless}
        if capabilities.use_proxy and self._proxy_server:
            launch_args["proxy"] = {"server": self._proxy_server}
        elif capabilities.use_proxy:
            logger.debug("Proxy requested but no proxy_server configured; launching without one")
        if capabilities.stealth != StealthLevel.OFF:
            logger.debug("Stealth level %s is not applied to local sessions", capabilities.stealth.value)
        return launch_args

    async def _create(self, capabilities: SessionCapabilities) -> SessionHandle:
        pw = await self._playwright_factory().start()
        try:
            browser = await pw.chromium.launch(**self.build_launch_args(capabilities))
        except BaseException:
            await pw.stop()
            raise
        session_id = f"local-{uuid.uuid4().hex[:8]}"
        logger.info("Local browser started (session %s, headless=%s)", session_id, self._headless)

        async def _close() -> None:
            try:
                await browser.close()
            finally:
                await pw.stop()

        return SessionHandle(
            session_id=session_id,
            inspect_url="",
            capabilities=capabilities,
            browser=browser,
            closer=_close,
            on_release=self._mark_released,
        )


def build_provisioner(settings: Settings, *, local: bool = False) -> SessionProvisioner:
    """Return the provisioner selected by ``settings.provider.kind`` (or forced local)."""
    if local or settings.provider.kind == PROVIDER_LOCAL:
        return LocalProvisioner.from_settings(settings)
    return BrowserbaseProvisioner.from_settings(settings)
