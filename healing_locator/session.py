"""
Healing session: explicit owner of the browser page and every component
that touches it.

Example:
    >>> async with HealingSession(SessionConfig(scenario_timeout_ms=60000)) as session:
    ...     result = await session.run([
    ...         {"action": "navigate", "target": "https://shop.example"},
    ...         {"action": "click", "target": "account-link"},
    ...     ])
"""
from __future__ import annotations

import asyncio
import os
from typing import Any, Iterable, List, Optional, Tuple, Union

from playwright.async_api import Error as PlaywrightError

from healing_locator.action_result import ExecutionResult
from healing_locator.browser_provider import BrowserProvider, create_browser_provider
from healing_locator.error_handling import ErrorHandler, ScenarioAbortedError, SessionError
from healing_locator.healing_config import SessionConfig
from healing_locator.healing_orchestrator import HealingOrchestrator
from healing_locator.locators.deterministic import DeterministicLocator
from healing_locator.locators.vision import AskModel, VisionLocator
from healing_locator.models.action_models import ActionRequest
from healing_locator.popup_handler import PopupHandler
from healing_locator.utils.event_logger import EventLogger


class HealingSession:
    """
    One UI test-execution session.

    The session owns the provider lifecycle: ``close()`` runs on every exit
    path of ``async with``, on scenario timeout and on cancellation.
    """

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        provider: Optional[BrowserProvider] = None,
        ask_model: Optional[AskModel] = None,
        event_logger: Optional[EventLogger] = None,
    ):
        self.config = config or SessionConfig()
        self.logger = event_logger or EventLogger(debug_mode=self.config.debug_mode)
        self.provider = provider or create_browser_provider(self._browser_config())
        self.ask_model = ask_model
        self.error_handler = ErrorHandler()

        self.page: Any = None
        self.popup_handler: Optional[PopupHandler] = None
        self.deterministic: Optional[DeterministicLocator] = None
        self.vision: Optional[VisionLocator] = None
        self.orchestrator: Optional[HealingOrchestrator] = None
        self.last_result: Optional[ExecutionResult] = None
        self._started = False
        self._closed = False

    def _browser_config(self):
        browser = self.config.browser
        if self.config.record_video and not browser.record_video_dir:
            browser = browser.model_copy(update={"record_video_dir": os.path.join(self.config.output_dir, "videos")})
        return browser

    @property
    def is_open(self) -> bool:
        return self._started and not self._closed

    async def start(self) -> "HealingSession":
        """Open the page and wire up locators, popup handler and orchestrator."""
        if self._started:
            return self
        healing = self.config.healing
        self.page = await self.provider.get_page()
        self._started = True

        screenshot_root = os.path.join(self.config.output_dir, "screenshots")
        self.popup_handler = PopupHandler(self.page, healing.popup, event_logger=self.logger)
        self.popup_handler.install()
        self.deterministic = DeterministicLocator(self.page, healing, event_logger=self.logger)
        self.vision = VisionLocator(
            self.page,
            healing,
            deterministic=self.deterministic,
            ask_model=self.ask_model,
            event_logger=self.logger,
            screenshot_dir=os.path.join(screenshot_root, "vision"),
        )
        self.orchestrator = HealingOrchestrator(
            self.page,
            healing,
            deterministic=self.deterministic,
            vision=self.vision,
            popup_handler=self.popup_handler,
            event_logger=self.logger,
            error_handler=self.error_handler,
            screenshot_dir=screenshot_root if self.config.record_screenshots else None,
            continue_on_failure=self.config.continue_on_failure,
        )
        self.logger.session_start(healing.vision_mode.value, url=getattr(self.page, "url", None))
        return self

    async def _video_path(self) -> Optional[str]:
        video = getattr(self.page, "video", None)
        if not video:
            return None
        try:
            return await video.path()
        except PlaywrightError as exc:
            self.logger.system_debug(f"No video path available: {exc}")
            return None

    async def close(self) -> None:
        """Release page, context, browser and driver. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            if self.last_result is not None and self.page is not None and self.config.record_video:
                self.last_result.video = await self._video_path()
            if self.popup_handler is not None:
                self.popup_handler.uninstall()
        finally:
            await self.provider.close()
            self.logger.session_close(errors=len(self.error_handler.errors))

    async def __aenter__(self) -> "HealingSession":
        try:
            return await self.start()
        except BaseException:
            await self.close()
            raise

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def run(self, requests: Iterable[Union[ActionRequest, dict]]) -> ExecutionResult:
        """
        Execute a scenario under ``scenario_timeout_ms``.

        Raises:
            ScenarioAbortedError: the hard timeout fired; the in-flight locator
                call was cancelled and browser resources were released.
            SessionError: the browser went away mid-run.
        """
        if self._closed:
            raise SessionError("Session is closed")
        steps = [r if isinstance(r, ActionRequest) else ActionRequest(**r) for r in requests]
        if not self._started:
            try:
                await self.start()
            except BaseException:
                await self.close()
                raise

        result = ExecutionResult(total_steps=len(steps))
        self.last_result = result
        timeout_ms = self.config.scenario_timeout_ms

        try:
            if timeout_ms:
                await asyncio.wait_for(self.orchestrator.run_scenario(steps, result), timeout=timeout_ms / 1000)
            else:
                await self.orchestrator.run_scenario(steps, result)
        except asyncio.TimeoutError:
            result.success = False
            aborted_at, description = self._aborted_step(steps, result)
            result.record_failure(aborted_at, description, [f"scenario aborted after {timeout_ms}ms"])
            await self.close()
            raise ScenarioAbortedError(
                f"Scenario exceeded {timeout_ms}ms and was aborted at step {aborted_at}",
                partial_result=result,
            ) from None
        except BaseException:
            # Cancellation and session failures leave nothing open behind them.
            await self.close()
            raise
        return result

    def _aborted_step(self, steps: List[ActionRequest], result: ExecutionResult) -> Tuple[int, str]:
        """Step the timeout interrupted; a finished last step means the next one never began."""
        if result.steps and result.steps[-1].outcome is None:
            return len(result.steps), result.steps[-1].description
        index = len(result.steps) + 1
        if index <= len(steps):
            return index, self.orchestrator.describe(steps[index - 1])
        return index, "scenario"


__all__ = ["HealingSession"]
