"""
Popup Handler Module

Dismisses transient interruptions so they do not mask locator failures:
JavaScript dialogs, popup/ad windows, modal overlays and cookie consent
banners. Everything here is best effort; a failed dismissal is logged and
never turns into a step failure.
"""
from __future__ import annotations

import asyncio
from typing import Any, List, Optional

from playwright.async_api import Error as PlaywrightError

from healing_locator.healing_config import PopupConfig
from healing_locator.utils.event_logger import EventLogger, get_event_logger


class PopupHandler:
    """
    Handles dialogs, popup windows, overlays and cookie banners.

    This class provides methods to:
    - Accept alert/confirm dialogs and dismiss prompts as they open
    - Close new windows whose URL looks like a popup or an ad
    - Close visible modal overlays and accept cookie banners between actions
    """

    def __init__(self, page: Any, config: Optional[PopupConfig] = None, event_logger: Optional[EventLogger] = None):
        """
        Initialize the popup handler.

        Args:
            page: Playwright Page object to watch
            config: Selectors and timings; defaults to ``PopupConfig()``
            event_logger: Logger for dismissal events
        """
        self.page = page
        self.config = config or PopupConfig()
        self.logger = event_logger or get_event_logger()
        self.dialogs_handled = 0
        self.windows_closed = 0
        self._installed = False

    def install(self) -> None:
        """Register the dialog and new-window listeners once."""
        if self._installed or not self.config.enabled:
            return
        self.page.on("dialog", self._on_dialog)
        context = getattr(self.page, "context", None)
        if context is not None:
            context.on("page", self._on_new_page)
        self._installed = True

    def uninstall(self) -> None:
        if not self._installed:
            return
        self.page.remove_listener("dialog", self._on_dialog)
        context = getattr(self.page, "context", None)
        if context is not None:
            context.remove_listener("page", self._on_new_page)
        self._installed = False

    async def _on_dialog(self, dialog: Any) -> None:
        try:
            if dialog.type == "prompt":
                await dialog.dismiss()
            else:
                await dialog.accept()
            self.dialogs_handled += 1
            self.logger.popup_dismissed(f"dialog:{dialog.type}", dialog_message=dialog.message)
        except PlaywrightError as exc:
            self.logger.system_debug(f"Dialog already handled: {exc}")

    def is_popup_window(self, url: str) -> bool:
        lowered = (url or "").lower()
        return any(marker in lowered for marker in self.config.popup_window_markers)

    async def _on_new_page(self, new_page: Any) -> None:
        try:
            await new_page.wait_for_load_state("domcontentloaded", timeout=self.config.check_timeout_ms * 4)
        except PlaywrightError:
            # A blank popup never finishes loading; its URL is still checked below.
            pass
        try:
            if self.is_popup_window(new_page.url):
                await new_page.close()
                self.windows_closed += 1
                self.logger.popup_dismissed(f"window:{new_page.url}")
        except PlaywrightError as exc:
            self.logger.system_debug(f"Could not close popup window: {exc}")

    async def _click_first_visible(self, selectors: List[str]) -> Optional[str]:
        for selector in selectors:
            try:
                locator = self.page.locator(selector).first
                if not await locator.is_visible():
                    continue
                await locator.click(timeout=self.config.check_timeout_ms)
                return selector
            except PlaywrightError as exc:
                self.logger.system_debug(f"Popup selector {selector} not dismissable: {exc}")
        return None

    async def dismiss_interruptions(self) -> int:
        """
        Close one visible modal and one cookie banner, if present.

        Returns:
            Number of interruptions dismissed. Never raises on page errors.
        """
        if not self.config.enabled:
            return 0
        if self.config.settle_ms:
            await asyncio.sleep(self.config.settle_ms / 1000)

        dismissed = 0
        for group in (self.config.popup_selectors, self.config.cookie_selectors):
            selector = await self._click_first_visible(list(group))
            if selector is not None:
                dismissed += 1
                self.logger.popup_dismissed(selector)
        return dismissed


__all__ = ["PopupHandler"]
