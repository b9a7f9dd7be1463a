"""
Browser providers for the healing session.

This module provides an abstraction layer between the session and browser
implementations, enabling dependency injection, easier testing, and support
for remote browsers.

Example:
    >>> from healing_locator.browser_provider import LocalPlaywrightProvider, BrowserConfig
    >>> provider = LocalPlaywrightProvider(BrowserConfig(headless=True))
    >>> page = await provider.get_page()
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from pydantic import BaseModel, Field

from healing_locator.utils.event_logger import get_event_logger


class BrowserConfig(BaseModel):
    """Configuration for browser providers."""

    provider_type: str = Field(
        default="local",
        description="Browser provider type: 'local', 'remote', 'mock'"
    )

    # Local browser settings
    headless: bool = Field(
        default=True,
        description="Run browser in headless mode"
    )
    viewport_width: int = Field(
        default=1280,
        ge=100,
        description="Browser viewport width"
    )
    viewport_height: int = Field(
        default=720,
        ge=100,
        description="Browser viewport height"
    )
    channel: Optional[str] = Field(
        default=None,
        description="Browser channel: 'chrome', 'msedge', or None for bundled chromium"
    )
    record_video_dir: Optional[str] = Field(
        default=None,
        description="Directory for context video recordings; None disables recording"
    )

    # Remote browser settings
    remote_cdp_url: Optional[str] = Field(
        default=None,
        description="CDP endpoint URL for remote browser (e.g., Browserless)"
    )

    # Browser args
    extra_args: list[str] = Field(
        default_factory=lambda: [
            "--disable-dev-shm-usage",
            "--disable-infobars",
        ],
        description="Additional browser launch arguments"
    )

    class Config:
        arbitrary_types_allowed = True

    @property
    def viewport(self) -> dict[str, int]:
        return {"width": self.viewport_width, "height": self.viewport_height}


class BrowserProvider(ABC):
    """
    Abstract base class for browser providers.

    Implementations must provide a way to get a Playwright Page object
    and handle cleanup.
    """

    def __init__(self, config: BrowserConfig):
        self.config = config
        self._page: Optional[Page] = None
        self._context: Optional[BrowserContext] = None
        self._browser: Optional[Browser] = None
        self._playwright: Optional[Playwright] = None

    @abstractmethod
    async def get_page(self) -> Page:
        """
        Get or create a Playwright Page object.

        Returns:
            Page: Playwright page ready for automation
        """

    @abstractmethod
    async def close(self) -> None:
        """
        Cleanup resources (close context and browser, stop playwright).
        """

    def is_ready(self) -> bool:
        """
        Check if the provider is ready to provide pages.

        Returns:
            bool: True if provider is ready
        """
        return self._page is not None and not self._page.is_closed()

    async def _new_context_page(self) -> Page:
        options: dict[str, Any] = {"viewport": self.config.viewport}
        if self.config.record_video_dir:
            options["record_video_dir"] = self.config.record_video_dir
            options["record_video_size"] = self.config.viewport
        self._context = await self._browser.new_context(**options)
        return await self._context.new_page()

    async def _shutdown(self) -> None:
        """Close context, browser and playwright; every step runs even if an earlier one fails."""
        logger = get_event_logger()
        for label, closer in (
            ("context", self._context.close if self._context else None),
            ("browser", self._browser.close if self._browser else None),
            ("playwright", self._playwright.stop if self._playwright else None),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except Exception as exc:
                logger.system_debug(f"Ignoring error while closing {label}: {exc}")
        self._context = None
        self._browser = None
        self._playwright = None
        self._page = None


class LocalPlaywrightProvider(BrowserProvider):
    """
    Default browser provider that launches a local Playwright chromium.

    Example:
        >>> config = BrowserConfig(headless=True, viewport_width=1920)
        >>> provider = LocalPlaywrightProvider(config)
        >>> page = await provider.get_page()
    """

    async def get_page(self) -> Page:
        """Launch local browser and return page."""
        if self._page is not None and not self._page.is_closed():
            return self._page

        self._playwright = await async_playwright().start()

        launch_options: dict[str, Any] = {
            "headless": self.config.headless,
            "args": list(self.config.extra_args),
        }
        if self.config.channel:
            launch_options["channel"] = self.config.channel
        self._browser = await self._playwright.chromium.launch(**launch_options)

        self._page = await self._new_context_page()
        return self._page

    async def close(self) -> None:
        """Close browser and cleanup."""
        await self._shutdown()


class RemoteBrowserProvider(BrowserProvider):
    """
    Browser provider that connects to a remote browser via CDP.

    Useful for services like Browserless or a shared CI browser.

    Example:
        >>> config = BrowserConfig(
        ...     provider_type="remote",
        ...     remote_cdp_url="ws://localhost:3000"
        ... )
        >>> provider = RemoteBrowserProvider(config)
        >>> page = await provider.get_page()
    """

    async def get_page(self) -> Page:
        """Connect to remote browser and return page."""
        if self._page is not None and not self._page.is_closed():
            return self._page

        if not self.config.remote_cdp_url:
            raise ValueError("remote_cdp_url is required for RemoteBrowserProvider")

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.connect_over_cdp(
            self.config.remote_cdp_url
        )

        # A fresh context keeps runs isolated from whatever else the remote browser hosts.
        self._page = await self._new_context_page()
        return self._page

    async def close(self) -> None:
        """Disconnect from remote browser."""
        await self._shutdown()


class MockBrowserProvider(BrowserProvider):
    """
    Mock browser provider for testing.

    Returns a fake Page object that doesn't require an actual browser.

    Example:
        >>> config = BrowserConfig(provider_type="mock")
        >>> provider = MockBrowserProvider(config, mock_page=fake_page)
        >>> page = await provider.get_page()
    """

    def __init__(self, config: BrowserConfig, mock_page: Optional[Any] = None):
        super().__init__(config)
        self._mock_page = mock_page
        self.closed = False

    async def get_page(self) -> Page:
        """Return mock page."""
        if self._mock_page is not None:
            return self._mock_page

        raise NotImplementedError(
            "MockBrowserProvider requires a mock_page to be provided. "
            "Use: MockBrowserProvider(config, mock_page=your_mock)"
        )

    async def close(self) -> None:
        """Mark the provider closed; the fake page is left to the test."""
        self.closed = True


def create_browser_provider(config: BrowserConfig) -> BrowserProvider:
    """
    Factory function to create appropriate browser provider from config.

    Args:
        config: Browser configuration

    Returns:
        BrowserProvider: Appropriate provider implementation

    Example:
        >>> config = BrowserConfig(provider_type="local", headless=True)
        >>> provider = create_browser_provider(config)
    """
    if config.provider_type == "local":
        return LocalPlaywrightProvider(config)
    elif config.provider_type == "remote":
        return RemoteBrowserProvider(config)
    elif config.provider_type == "mock":
        return MockBrowserProvider(config)
    else:
        raise ValueError(
            f"Unknown provider_type: {config.provider_type}. "
            f"Must be one of: local, remote, mock"
        )


__all__ = [
    "BrowserConfig",
    "BrowserProvider",
    "LocalPlaywrightProvider",
    "RemoteBrowserProvider",
    "MockBrowserProvider",
    "create_browser_provider",
]
