"""
Healing orchestrator.

Per action: deterministic attempt, then (mode and budget permitting) one
vision escalation, then the action retried on the vision selector. Locator
failures come back as ``Result`` errors and end up in the ``ActionOutcome``;
only ``SessionError`` and cancellation leave ``perform``.

Example:
    >>> orchestrator = HealingOrchestrator(page, HealingConfig(vision_mode="fallback"))
    >>> outcome = await orchestrator.perform(ActionRequest(action="click", target="checkout button"))
    >>> outcome.strategy_used
    <Strategy.DETERMINISTIC: 'deterministic'>
"""
from __future__ import annotations

import os
import time
from typing import Any, Iterable, List, Optional, Union

from playwright.async_api import Error as PlaywrightError

from healing_locator.action_result import (
    ActionOutcome,
    ExecutionResult,
    ExecutionStep,
    LocateResult,
    Strategy,
)
from healing_locator.error_handling import (
    ErrorHandler,
    LocatorError,
    SessionError,
    VisionError,
    VisionFailure,
)
from healing_locator.healing_config import HealingConfig, VisionMode
from healing_locator.locators.describe_rules import describe_step, describe_target
from healing_locator.locators.deterministic import DeterministicLocator
from healing_locator.locators.normalizer import normalize
from healing_locator.locators.vision import VisionLocator
from healing_locator.models.action_models import ActionRequest, ActionType
from healing_locator.popup_handler import PopupHandler
from healing_locator.utils.event_logger import EventLogger, get_event_logger


class HealingOrchestrator:
    """
    Coordinates the deterministic and vision locators for one page.

    ``max_retries`` is a budget of vision escalations for a whole
    ``run_scenario`` call; it is reset at the start of every run.
    """

    def __init__(
        self,
        page: Any,
        config: Optional[HealingConfig] = None,
        deterministic: Optional[DeterministicLocator] = None,
        vision: Optional[VisionLocator] = None,
        popup_handler: Optional[PopupHandler] = None,
        event_logger: Optional[EventLogger] = None,
        error_handler: Optional[ErrorHandler] = None,
        screenshot_dir: Optional[str] = None,
        continue_on_failure: bool = True,
    ):
        self.page = page
        self.config = config or HealingConfig()
        self.logger = event_logger or get_event_logger()
        self.deterministic = deterministic or DeterministicLocator(page, self.config, event_logger=self.logger)
        self.vision = vision or VisionLocator(
            page, self.config, deterministic=self.deterministic, event_logger=self.logger
        )
        self.popup_handler = popup_handler
        self.error_handler = error_handler or ErrorHandler()
        self.screenshot_dir = screenshot_dir
        self.continue_on_failure = continue_on_failure
        self._escalations_used = 0

    @property
    def escalations_used(self) -> int:
        return self._escalations_used

    @property
    def escalations_left(self) -> int:
        return max(0, self.config.max_retries - self._escalations_used)

    def reset_budget(self) -> None:
        self._escalations_used = 0

    def describe(self, request: ActionRequest) -> str:
        """Step description: the request's own, or one derived from its target."""
        if request.description:
            return request.description
        if request.action is ActionType.NAVIGATE:
            return describe_step(request.action, request.target)
        descriptor = normalize(request.target, self.config.test_id_attribute)
        return describe_step(request.action, describe_target(descriptor, request.action), request.value)

    # ------------------------------------------------------------------
    # Single action

    def _elapsed_ms(self, started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    async def _navigate(self, request: ActionRequest, started: float) -> ActionOutcome:
        try:
            await self.page.goto(request.target, wait_until="domcontentloaded")
        except PlaywrightError as exc:
            raise SessionError(f"Navigation to {request.target} failed: {exc}", target=request.target) from exc
        return ActionOutcome(
            success=True,
            description=self.describe(request),
            elapsed_ms=self._elapsed_ms(started),
        )

    def _failure(
        self,
        description: str,
        started: float,
        error: LocatorError,
        deterministic_error: Optional[LocatorError] = None,
        vision_error: Optional[VisionError] = None,
        strategy: Optional[Strategy] = None,
        locate_result: Optional[LocateResult] = None,
    ) -> ActionOutcome:
        return ActionOutcome(
            success=False,
            description=description,
            strategy_used=strategy,
            locate_result=locate_result,
            error=error,
            deterministic_error=deterministic_error,
            vision_error=vision_error,
            elapsed_ms=self._elapsed_ms(started),
        )

    async def perform(self, request: ActionRequest) -> ActionOutcome:
        """
        Run one action through the healing state machine.

        Raises:
            SessionError: the page, context or browser is gone.
        """
        started = time.monotonic()
        if request.action is ActionType.NAVIGATE:
            return await self._navigate(request, started)

        descriptor = normalize(request.target, self.config.test_id_attribute)
        description = self.describe(request)
        mode = self.config.vision_mode
        deterministic_error: Optional[LocatorError] = None

        if mode is not VisionMode.ALL:
            located = await self.deterministic.locate_and_act(
                descriptor, request, self.config.deterministic_timeout_ms
            )
            if located.is_ok:
                return ActionOutcome(
                    success=True,
                    description=description,
                    strategy_used=Strategy.DETERMINISTIC,
                    locate_result=located.value,
                    elapsed_ms=self._elapsed_ms(started),
                )
            deterministic_error = located.error
            if mode is VisionMode.NONE or not deterministic_error.escalatable:
                return self._failure(
                    description, started, deterministic_error,
                    deterministic_error=deterministic_error,
                    strategy=Strategy.DETERMINISTIC,
                )

            # Only escalations out of a deterministic miss are charged to the budget.
            if self._escalations_used >= self.config.max_retries:
                budget_error = VisionError(
                    f"Vision escalation budget exhausted ({self.config.max_retries} per scenario)",
                    VisionFailure.BUDGET_EXHAUSTED,
                )
                self.logger.vision_failure(budget_error.failure.value, budget_error.message)
                return self._failure(
                    description, started, budget_error,
                    deterministic_error=deterministic_error,
                    vision_error=budget_error,
                )
            self._escalations_used += 1
            self.logger.escalation(
                deterministic_error.message,
                used=self._escalations_used,
                budget=self.config.max_retries,
            )

        healed = await self.vision.locate_with_vision(descriptor, description, action=request.action)
        if not healed.is_ok:
            return self._failure(
                description, started, healed.error,
                deterministic_error=deterministic_error,
                vision_error=healed.error,
                strategy=Strategy.VISION,
            )

        acted = await self.deterministic.act_on_selector(healed.value.selector, request)
        if not acted.is_ok:
            return self._failure(
                description, started, acted.error,
                deterministic_error=deterministic_error,
                strategy=Strategy.VISION,
                locate_result=healed.value,
            )

        return ActionOutcome(
            success=True,
            description=description,
            strategy_used=Strategy.VISION,
            locate_result=healed.value,
            deterministic_error=deterministic_error,
            elapsed_ms=self._elapsed_ms(started),
        )

    # ------------------------------------------------------------------
    # Scenario

    async def _step_screenshot(self, index: int) -> Optional[str]:
        if not self.screenshot_dir:
            return None
        path = os.path.join(self.screenshot_dir, f"step-{index:02d}.png")
        try:
            os.makedirs(self.screenshot_dir, exist_ok=True)
            await self.page.screenshot(path=path, full_page=True)
        except (PlaywrightError, OSError) as exc:
            self.logger.system_warning(f"Could not take screenshot for step {index}: {exc}")
            return None
        return path

    async def _dismiss_interruptions(self) -> None:
        if self.popup_handler is None:
            return
        try:
            await self.popup_handler.dismiss_interruptions()
        except PlaywrightError as exc:
            self.logger.system_debug(f"Popup handling skipped: {exc}")

    async def run_scenario(
        self,
        requests: Iterable[Union[ActionRequest, dict]],
        result: Optional[ExecutionResult] = None,
    ) -> ExecutionResult:
        """
        Execute ``requests`` strictly in order and aggregate the outcome.

        ``result`` may be supplied by the caller so a partial result survives
        cancellation of the run.
        """
        steps: List[ActionRequest] = [
            request if isinstance(request, ActionRequest) else ActionRequest(**request)
            for request in requests
        ]
        result = result if result is not None else ExecutionResult()
        result.total_steps = len(steps)
        self.reset_budget()

        for index, request in enumerate(steps, start=1):
            if index > 1:
                await self._dismiss_interruptions()

            description = self.describe(request)
            step = ExecutionStep(
                index=index,
                action=request.action.value,
                target=request.target,
                description=description,
            )
            result.steps.append(step)
            self.logger.step_start(index, len(steps), description)

            outcome = await self.perform(request)
            step.outcome = outcome
            result.escalations_used = self._escalations_used

            if outcome.success:
                result.steps_executed += 1
                step.screenshot = await self._step_screenshot(index)
                if step.screenshot:
                    result.screenshots.append(step.screenshot)
                strategy = outcome.strategy_used.value if outcome.strategy_used else None
                self.logger.step_success(index, description, strategy=strategy)
                continue

            messages = outcome.error_messages()
            result.record_failure(index, description, messages)
            self.error_handler.record(
                outcome.error,
                step=index,
                action_type=request.action.value,
                target=request.target,
                page_url=getattr(self.page, "url", None),
            )
            self.logger.step_failure(index, description, error="; ".join(messages))
            if not self.continue_on_failure:
                break

        return result


__all__ = ["HealingOrchestrator"]
