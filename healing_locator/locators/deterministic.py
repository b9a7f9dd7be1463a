"""
Deterministic locator.

Structural, zero-network resolution against the live page. Every public call
returns a ``Result``; only a closed page/context/browser is raised, as a
``SessionError``.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from healing_locator.action_result import LocateResult, Result, Strategy
from healing_locator.error_handling import (
    AmbiguousError,
    InteractionError,
    LocatorError,
    NotFoundError,
    SessionError,
    StaleElementError,
    is_session_closed_message,
)
from healing_locator.healing_config import HealingConfig
from healing_locator.models.action_models import ActionRequest, ActionType
from healing_locator.models.descriptor import (
    ByCssOrXPath,
    ByRole,
    ByTestId,
    ByText,
    ElementDescriptor,
    FreeText,
    describe_descriptor,
)
from healing_locator.utils.event_logger import EventLogger, get_event_logger

_STALE_MARKERS = (
    "not attached",
    "detached",
    "not visible",
    "element is not stable",
    "element is outside of the viewport",
    "intercepts pointer events",
)


def quote_selector_value(value: str) -> str:
    """Double-quote a value for use inside a Playwright selector."""
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def with_nth(selector: str, index: int) -> str:
    return f"{selector} >> nth={index}"


class DeterministicLocator:
    """
    Resolves descriptors with Playwright selectors and performs the action.

    The page is the one shared mutable resource; the locator never touches it
    concurrently with another call.
    """

    def __init__(self, page: Any, config: HealingConfig, event_logger: Optional[EventLogger] = None):
        self.page = page
        self.config = config
        self.logger = event_logger or get_event_logger()

    # ------------------------------------------------------------------
    # Selector candidates

    def selectors_for(self, descriptor: ElementDescriptor) -> List[str]:
        """Ordered Playwright selectors to try for a descriptor."""
        attr = self.config.test_id_attribute
        if isinstance(descriptor, ByTestId):
            return [f"[{attr}={quote_selector_value(descriptor.test_id)}]"]
        if isinstance(descriptor, ByRole):
            if descriptor.name:
                return [f"role={descriptor.role}[name={quote_selector_value(descriptor.name)}]"]
            return [f"role={descriptor.role}"]
        if isinstance(descriptor, ByText):
            return [f"text={quote_selector_value(descriptor.text)}", f"text={descriptor.text}"]
        if isinstance(descriptor, ByCssOrXPath):
            return [descriptor.selector]
        return self._free_text_selectors(descriptor)

    def _free_text_selectors(self, descriptor: FreeText) -> List[str]:
        text = descriptor.description
        if not text:
            return []
        quoted = quote_selector_value(text)
        selectors: List[str] = []
        if descriptor.role_hint and descriptor.name_hint:
            name = quote_selector_value(descriptor.name_hint)
            selectors.append(f"role={descriptor.role_hint}[name={name}]")
            if descriptor.role_hint == "textbox":
                selectors.append(f"[placeholder={name} i]")
                selectors.append(f"[aria-label={name} i]")
            selectors.append(f"text={descriptor.name_hint}")
        selectors.extend([
            f"role=button[name={quoted}]",
            f"role=link[name={quoted}]",
            f"text={text}",
            f"[aria-label={quoted} i]",
            f"[placeholder={quoted} i]",
        ])
        deduped: List[str] = []
        for selector in selectors:
            if selector not in deduped:
                deduped.append(selector)
        return deduped

    # ------------------------------------------------------------------
    # Probing

    async def probe(self, selector: str) -> Tuple[int, List[int]]:
        """
        Return the total match count and the indices of visible matches.

        Every match is checked until ``max_probe_matches`` visible ones (at
        least two) have been collected, so a lone visible match behind many
        hidden twins is still found.
        """
        locator = self.page.locator(selector)
        count = await locator.count()
        enough = max(2, self.config.max_probe_matches)
        visible: List[int] = []
        for index in range(count):
            if await locator.nth(index).is_visible():
                visible.append(index)
                if len(visible) >= enough:
                    break
        return count, visible

    def _session_error(self, exc: Exception) -> SessionError:
        return SessionError(f"Browser session closed: {exc}")

    # ------------------------------------------------------------------
    # Public API

    async def locate(
        self,
        descriptor: ElementDescriptor,
        timeout_ms: Optional[int] = None,
    ) -> Result[LocateResult, LocatorError]:
        """
        Wait up to ``timeout_ms`` for a visible match of ``descriptor``.

        The call is hard-bounded by ``timeout_ms + timeout_grace_ms`` even when a
        page probe hangs.
        """
        if timeout_ms is None:
            timeout_ms = self.config.deterministic_timeout_ms
        started = time.monotonic()
        bound = (timeout_ms + self.config.timeout_grace_ms) / 1000
        self.logger.locate_start("deterministic", describe_descriptor(descriptor))
        try:
            result = await asyncio.wait_for(self._poll(descriptor, timeout_ms, started), timeout=bound)
        except asyncio.TimeoutError:
            result = Result.err(NotFoundError(
                f"No visible element for {describe_descriptor(descriptor)} within {timeout_ms}ms "
                f"(page probe did not answer)",
                target=descriptor.raw or descriptor.value,
            ))

        if result.is_ok:
            located = result.value
            self.logger.locate_success(
                "deterministic", located.selector, confidence=located.confidence, elapsed_ms=located.elapsed_ms
            )
        else:
            self.logger.locate_failure("deterministic", result.error.message, kind=result.error.kind)
        return result

    async def _poll(
        self,
        descriptor: ElementDescriptor,
        timeout_ms: int,
        started: float,
    ) -> Result[LocateResult, LocatorError]:
        selectors = self.selectors_for(descriptor)
        target = descriptor.raw or descriptor.value
        if not selectors:
            return Result.err(NotFoundError("Empty element description", target=target))

        allow_first = self.config.is_known_ambiguous(descriptor)
        deadline = started + timeout_ms / 1000
        poll_interval = self.config.poll_interval_ms / 1000
        invalid: dict = {}

        while True:
            for selector in selectors:
                if selector in invalid:
                    continue
                try:
                    count, visible = await self.probe(selector)
                except PlaywrightError as exc:
                    if is_session_closed_message(str(exc)):
                        raise self._session_error(exc) from exc
                    # Malformed selectors stay malformed; skip them on later polls.
                    invalid[selector] = str(exc).splitlines()[0] if str(exc) else type(exc).__name__
                    continue
                if not visible:
                    continue

                elapsed_ms = int((time.monotonic() - started) * 1000)
                if len(visible) == 1:
                    resolved = selector if count == 1 else with_nth(selector, visible[0])
                    return Result.ok(LocateResult(
                        strategy=Strategy.DETERMINISTIC,
                        selector=resolved,
                        confidence=1.0,
                        matched_count=1,
                        elapsed_ms=elapsed_ms,
                    ))
                match_count = len(visible)
                if allow_first:
                    return Result.ok(LocateResult(
                        strategy=Strategy.DETERMINISTIC,
                        selector=with_nth(selector, visible[0]),
                        confidence=1.0,
                        matched_count=match_count,
                        elapsed_ms=elapsed_ms,
                    ))
                return Result.err(AmbiguousError(
                    f"{describe_descriptor(descriptor)} matched {match_count} visible elements ({selector})",
                    match_count=match_count,
                    target=target,
                    selector=selector,
                ))

            if len(invalid) == len(selectors):
                reasons = "; ".join(f"{sel}: {why}" for sel, why in invalid.items())
                return Result.err(NotFoundError(f"Invalid selector for {describe_descriptor(descriptor)}: {reasons}",
                                                target=target))

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            await asyncio.sleep(min(poll_interval, remaining))

        return Result.err(NotFoundError(
            f"No visible element for {describe_descriptor(descriptor)} within {timeout_ms}ms "
            f"(tried: {', '.join(selectors)})",
            target=target,
        ))

    async def act_on_selector(self, selector: str, request: ActionRequest) -> Result[str, LocatorError]:
        """Perform ``request`` against a selector that was already resolved and validated."""
        locator = self.page.locator(selector)
        timeout = self.config.action_timeout_ms
        try:
            if request.action is ActionType.CLICK:
                await locator.click(timeout=timeout)
            elif request.action is ActionType.TYPE:
                await locator.fill(request.value or "", timeout=timeout)
            elif request.action is ActionType.SELECT:
                await locator.select_option(request.value, timeout=timeout)
            elif request.action is ActionType.WAIT:
                await locator.wait_for(state="visible", timeout=timeout)
            else:
                return Result.err(InteractionError(
                    f"Unsupported element action '{request.action.value}'", selector=selector
                ))
        except PlaywrightTimeoutError as exc:
            return Result.err(StaleElementError(
                f"Element {selector} was not actionable within {timeout}ms: {_first_line(exc)}",
                selector=selector,
            ))
        except PlaywrightError as exc:
            message = str(exc)
            if is_session_closed_message(message):
                raise self._session_error(exc) from exc
            lowered = message.lower()
            if any(marker in lowered for marker in _STALE_MARKERS):
                return Result.err(StaleElementError(
                    f"Element {selector} went stale before {request.action.value}: {_first_line(exc)}",
                    selector=selector,
                ))
            return Result.err(InteractionError(
                f"{request.action.value} on {selector} failed: {_first_line(exc)}",
                selector=selector,
            ))
        return Result.ok(selector)

    async def locate_and_act(
        self,
        descriptor: ElementDescriptor,
        request: ActionRequest,
        timeout_ms: Optional[int] = None,
    ) -> Result[LocateResult, LocatorError]:
        """Resolve ``descriptor`` and immediately perform ``request`` on the match."""
        located = await self.locate(descriptor, timeout_ms)
        if not located.is_ok:
            return located
        acted = await self.act_on_selector(located.value.selector, request)
        if not acted.is_ok:
            return Result.err(acted.error)
        return located


def _first_line(exc: Exception) -> str:
    text = str(exc).strip()
    return text.splitlines()[0] if text else type(exc).__name__


__all__ = ["DeterministicLocator", "quote_selector_value", "with_nth"]
