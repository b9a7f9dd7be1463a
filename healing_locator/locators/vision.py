"""
Vision-based locator.

Slow path: screenshot plus a bounded candidate list go to a vision model,
which names one element. The answer is untrusted input and is only accepted
after its selector resolves to exactly one visible element on the page.
"""
from __future__ import annotations

import asyncio
import os
import re
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from playwright.async_api import Error as PlaywrightError
from pydantic import ValidationError

from healing_locator import ai_utils
from healing_locator.action_result import LocateResult, Result, Strategy
from healing_locator.dom_snapshot import CandidateElement, PageSnapshot, capture_page_snapshot
from healing_locator.error_handling import (
    SessionError,
    VisionError,
    VisionFailure,
    is_session_closed_message,
)
from healing_locator.healing_config import HealingConfig
from healing_locator.locators.deterministic import DeterministicLocator, with_nth
from healing_locator.models.action_models import ActionType, VisionPick
from healing_locator.models.descriptor import ElementDescriptor, describe_descriptor
from healing_locator.utils.candidate_ranking import rank_candidates
from healing_locator.utils.event_logger import EventLogger, get_event_logger

# ask_model(prompt, system_prompt=..., image=...) -> raw model text
AskModel = Callable[..., Awaitable[str]]

VISION_SYSTEM_PROMPT = """You locate elements on web pages for an automated UI test.
You get a full-page screenshot, a list of visible interactive candidate elements
and the description of the element the test wants to interact with.
Pick the single element that best matches the description.

Respond with ONLY one JSON object:
{"selector": "<playwright or css selector>", "candidate_index": <int or null>, "confidence": <0.0-1.0>, "reasoning": "<short>"}

Rules:
- Prefer the candidate's own selector when the element is in the list.
- The selector must match exactly one visible element.
- If no element matches, answer {"selector": null, "candidate_index": null, "confidence": 0.0, "reasoning": "..."}"""

_NO_MATCH_ANSWERS = {"", "none", "null", "not found", "n/a", "no match"}
_SELECTOR_LINE_RE = re.compile(r"""^\s*[*-]?\s*"?selector"?\s*[:=]\s*(?P<value>.+?)\s*,?\s*$""", re.IGNORECASE | re.MULTILINE)
_CONFIDENCE_LINE_RE = re.compile(r"""^\s*[*-]?\s*"?confidence"?\s*[:=]\s*(?P<value>[0-9.]+)""", re.IGNORECASE | re.MULTILINE)


def build_vision_prompt(
    description: str,
    descriptor: ElementDescriptor,
    action: ActionType,
    snapshot: PageSnapshot,
    candidates: Sequence[CandidateElement],
) -> str:
    lines = [
        f"Target description: {description or descriptor.value}",
        f"Original locator: {descriptor.raw or descriptor.value} ({describe_descriptor(descriptor)})",
        f"Intended action: {action.value}",
        f"Page URL: {snapshot.url}",
        "",
        f"Candidates ({len(candidates)} of {len(snapshot.candidates)} visible interactive elements, most relevant first):",
    ]
    lines.extend(candidate.prompt_line() for candidate in candidates)
    if not candidates:
        lines.append("(none captured; use the screenshot)")
    return "\n".join(lines)


def parse_vision_response(raw_text: Any, snapshot: Optional[PageSnapshot] = None) -> Result[VisionPick, VisionError]:
    """
    Turn raw model output into a ``VisionPick``.

    Accepts fenced or embedded JSON and ``selector: ...`` lines. A
    ``candidate_index`` stands in for a missing selector when it refers to a
    known candidate.
    """
    if not isinstance(raw_text, str) or not raw_text.strip():
        return Result.err(VisionError("Vision model returned an empty response", VisionFailure.UNPARSABLE))

    data = ai_utils.extract_json_object(raw_text)
    if not isinstance(data, dict):
        match = _SELECTOR_LINE_RE.search(raw_text)
        if not match:
            return Result.err(VisionError(
                f"Vision response is not a JSON object: {raw_text[:200]!r}", VisionFailure.UNPARSABLE
            ))
        data = {"selector": match.group("value").strip().strip("'\"`")}
        confidence = _CONFIDENCE_LINE_RE.search(raw_text)
        if confidence:
            data["confidence"] = confidence.group("value")

    try:
        pick = VisionPick(**{key: data.get(key) for key in ("selector", "candidate_index", "confidence", "reasoning")
                             if data.get(key) is not None})
    except (ValidationError, TypeError, ValueError) as exc:
        return Result.err(VisionError(f"Vision response has an invalid shape: {exc}", VisionFailure.UNPARSABLE))

    if pick.selector.lower() in _NO_MATCH_ANSWERS:
        candidate = snapshot.candidate(pick.candidate_index) if snapshot else None
        if candidate is not None:
            return Result.ok(pick.model_copy(update={"selector": candidate.selector}))
        if pick.candidate_index is not None:
            return Result.err(VisionError(
                f"Vision response refers to unknown candidate {pick.candidate_index}", VisionFailure.UNPARSABLE
            ))
        reason = f": {pick.reasoning}" if pick.reasoning else ""
        return Result.err(VisionError(f"Vision model found no matching element{reason}", VisionFailure.NO_MATCH))
    return Result.ok(pick)


class VisionLocator:
    """
    Escalation target of the orchestrator.

    ``ask_model`` defaults to ``ai_utils.generate_text`` and can be replaced
    with any coroutine taking ``(prompt, system_prompt=, image=)``.
    """

    def __init__(
        self,
        page: Any,
        config: HealingConfig,
        deterministic: Optional[DeterministicLocator] = None,
        ask_model: Optional[AskModel] = None,
        event_logger: Optional[EventLogger] = None,
        screenshot_dir: Optional[str] = None,
    ):
        self.page = page
        self.config = config
        self.logger = event_logger or get_event_logger()
        self.deterministic = deterministic or DeterministicLocator(page, config, event_logger=self.logger)
        self.ask_model = ask_model or self._default_ask_model
        self.screenshot_dir = screenshot_dir or config.screenshot_dir
        self.calls = 0

    async def _default_ask_model(self, prompt: str, system_prompt: str = "", image: Optional[bytes] = None) -> str:
        model = self.config.model
        return await ai_utils.generate_text(
            prompt,
            system_prompt=system_prompt,
            image=image,
            image_detail=model.image_detail,
            model=model.model_name,
            reasoning_level=model.reasoning_level,
        )

    async def locate_with_vision(
        self,
        descriptor: ElementDescriptor,
        description: str = "",
        snapshot: Optional[PageSnapshot] = None,
        action: ActionType = ActionType.CLICK,
    ) -> Result[LocateResult, VisionError]:
        """
        Ask the model for the element and validate its answer.

        Bounded by ``vision_timeout_ms``; screenshot capture counts against it.
        """
        self.calls += 1
        started = time.monotonic()
        timeout_ms = self.config.vision_timeout_ms
        try:
            result = await asyncio.wait_for(
                self._locate(descriptor, description, snapshot, ActionType(action), started),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            result = Result.err(VisionError(
                f"Vision healing did not finish within {timeout_ms}ms", VisionFailure.TIMEOUT
            ))

        if result.is_ok:
            located = result.value
            self.logger.locate_success(
                "vision", located.selector, confidence=located.confidence, elapsed_ms=located.elapsed_ms
            )
        else:
            self.logger.vision_failure(result.error.failure.value, result.error.message)
        return result

    async def _capture(self) -> Result[PageSnapshot, VisionError]:
        try:
            snapshot = await capture_page_snapshot(
                self.page,
                test_id_attribute=self.config.test_id_attribute,
            )
        except PlaywrightError as exc:
            if is_session_closed_message(str(exc)):
                raise SessionError(f"Browser session closed: {exc}") from exc
            return Result.err(VisionError(f"Could not capture page snapshot: {exc}", VisionFailure.SNAPSHOT_FAILED))
        except (ValueError, TypeError) as exc:
            return Result.err(VisionError(f"Page snapshot was malformed: {exc}", VisionFailure.SNAPSHOT_FAILED))
        return Result.ok(snapshot)

    def _save_screenshot(self, snapshot: PageSnapshot) -> Optional[str]:
        if not self.config.save_screenshots or not snapshot.screenshot:
            return None
        try:
            os.makedirs(self.screenshot_dir, exist_ok=True)
            path = os.path.join(self.screenshot_dir, f"vision_{int(time.time() * 1000)}_{self.calls}.png")
            with open(path, "wb") as handle:
                handle.write(snapshot.screenshot)
            return path
        except OSError as exc:
            self.logger.system_warning(f"Could not save vision screenshot: {exc}")
            return None

    async def _validate(self, selector: str) -> Tuple[Optional[str], Optional[VisionError]]:
        try:
            count, visible = await self.deterministic.probe(selector)
        except PlaywrightError as exc:
            if is_session_closed_message(str(exc)):
                raise SessionError(f"Browser session closed: {exc}") from exc
            return None, VisionError(
                f"Vision selector {selector!r} is not a valid selector: {str(exc).splitlines()[0] if str(exc) else exc}",
                VisionFailure.INVALID_SELECTOR,
                selector=selector,
            )
        if not visible:
            return None, VisionError(
                f"Vision selector {selector!r} matched no visible element ({count} in DOM)",
                VisionFailure.NO_MATCH,
                selector=selector,
            )
        if len(visible) > 1:
            return None, VisionError(
                f"Vision selector {selector!r} matched {len(visible)} visible elements",
                VisionFailure.MULTIPLE_MATCHES,
                selector=selector,
            )
        return (selector if count == 1 else with_nth(selector, visible[0])), None

    async def _locate(
        self,
        descriptor: ElementDescriptor,
        description: str,
        snapshot: Optional[PageSnapshot],
        action: ActionType,
        started: float,
    ) -> Result[LocateResult, VisionError]:
        if snapshot is None:
            captured = await self._capture()
            if not captured.is_ok:
                return Result.err(captured.error)
            snapshot = captured.value

        target_text = description or descriptor.value
        mode = action.value if action in (ActionType.TYPE, ActionType.SELECT) else "click"
        ranked = rank_candidates(
            target_text,
            snapshot.candidates,
            mode=mode,
            limit=self.config.max_candidates,
            page_width=snapshot.page_width,
            page_height=snapshot.page_height,
        )
        candidates: List[CandidateElement] = [candidate for candidate, _ in ranked]
        prompt = build_vision_prompt(target_text, descriptor, action, snapshot, candidates)
        screenshot_path = self._save_screenshot(snapshot)
        self.logger.vision_request(target_text, len(candidates), screenshot_path=screenshot_path)

        try:
            raw = await self.ask_model(prompt, system_prompt=VISION_SYSTEM_PROMPT, image=snapshot.screenshot)
        except asyncio.TimeoutError:
            return Result.err(VisionError("Vision model request timed out", VisionFailure.TIMEOUT))
        except Exception as exc:
            # Provider errors (auth, network, rate limit) all mean the model is unreachable.
            return Result.err(VisionError(f"Vision model unreachable: {exc}", VisionFailure.UNREACHABLE))

        parsed = parse_vision_response(raw, snapshot)
        if not parsed.is_ok:
            return Result.err(parsed.error)
        pick = parsed.value
        self.logger.vision_response(pick.selector, confidence=pick.confidence, raw_response=raw)

        selector, error = await self._validate(pick.selector)
        if error is not None:
            return Result.err(error)

        return Result.ok(LocateResult(
            strategy=Strategy.VISION,
            selector=selector,
            confidence=pick.confidence,
            matched_count=1,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        ))


__all__ = [
    "AskModel",
    "VISION_SYSTEM_PROMPT",
    "VisionLocator",
    "build_vision_prompt",
    "parse_vision_response",
]
