"""
Simple, robust event-driven logging for the healing locator.

Design principles:
- Non-blocking: logging errors never break a test run
- Simple: minimal API surface
- Flexible: easy to customize output via callbacks
"""
from enum import Enum
from typing import Any, Dict, List, Optional, Callable
from dataclasses import dataclass, field
from datetime import datetime
import time


class EventType(str, Enum):
    """All event types that can be logged"""
    # Session events
    SESSION_START = "session_start"
    SESSION_CLOSE = "session_close"

    # Step events
    STEP_START = "step_start"
    STEP_SUCCESS = "step_success"
    STEP_FAILURE = "step_failure"

    # Locator events
    LOCATE_START = "locate_start"
    LOCATE_SUCCESS = "locate_success"
    LOCATE_FAILURE = "locate_failure"
    ESCALATION = "escalation"

    # Vision events
    VISION_REQUEST = "vision_request"
    VISION_RESPONSE = "vision_response"
    VISION_FAILURE = "vision_failure"

    # Interruption events
    POPUP_DISMISSED = "popup_dismissed"

    # System events
    SYSTEM_INFO = "system_info"
    SYSTEM_WARNING = "system_warning"
    SYSTEM_ERROR = "system_error"
    SYSTEM_DEBUG = "system_debug"

    # Performance/cost events
    LLM_COST = "llm_cost"


@dataclass
class BotEvent:
    """Structured event data"""
    event_type: EventType
    message: str
    timestamp: float = field(default_factory=time.time)
    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, SUCCESS
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "event_type": self.event_type.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "timestamp_iso": datetime.fromtimestamp(self.timestamp).isoformat(),
            "level": self.level,
            "details": self.details
        }


class EventLogger:
    """
    Simple, robust event logger.

    In debug mode: prints directly to console
    In normal mode: only calls callbacks (no prints)
    """

    def __init__(self, debug_mode: bool = True, max_history: int = 1000):
        self.debug_mode = debug_mode
        self._callbacks: List[Callable[[BotEvent], None]] = []
        self._event_history: List[BotEvent] = []
        self._max_history = max_history

    def register_callback(self, callback: Callable[[BotEvent], None]) -> None:
        """Register a callback for all events"""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[BotEvent], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    @property
    def history(self) -> List[BotEvent]:
        return list(self._event_history)

    def events_of(self, event_type: EventType) -> List[BotEvent]:
        return [event for event in self._event_history if event.event_type == event_type]

    def clear_history(self) -> None:
        self._event_history.clear()

    def _safe_emit(self, event: BotEvent) -> None:
        """Safely emit an event - never raises exceptions"""
        try:
            self._event_history.append(event)
            if len(self._event_history) > self._max_history:
                self._event_history.pop(0)
        except Exception:
            pass

        if self.debug_mode:
            try:
                self._print_event(event)
            except Exception:
                pass

        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception:
                pass

    def _print_event(self, event: BotEvent) -> None:
        """Print event in debug mode"""
        level_emoji = {
            "DEBUG": "🔍",
            "INFO": "ℹ️",
            "WARNING": "⚠️",
            "ERROR": "❌",
            "SUCCESS": "✅"
        }
        emoji = level_emoji.get(event.level, "•")
        print(f"{emoji} {event.message}")

        if event.details:
            for key, value in event.details.items():
                if value is not None and key not in ['timestamp', 'timestamp_iso']:
                    if isinstance(value, (str, int, float, bool)):
                        print(f"   {key}: {value}")

    def emit(self, event_type: EventType, message: str, level: str = "INFO", **details) -> None:
        """Emit an event - safe wrapper that never raises"""
        try:
            event = BotEvent(
                event_type=event_type,
                message=message,
                level=level,
                details=details
            )
            self._safe_emit(event)
        except Exception:
            if self.debug_mode:
                try:
                    print(f"⚠️ Event logger error: {message}")
                except Exception:
                    pass

    # Convenience methods - all wrapped in try/except for safety
    def session_start(self, vision_mode: str, **details):
        try:
            self.emit(EventType.SESSION_START, f"Session started (vision mode: {vision_mode})", "INFO",
                      vision_mode=vision_mode, **details)
        except Exception:
            pass

    def session_close(self, **details):
        try:
            self.emit(EventType.SESSION_CLOSE, "Session closed, browser resources released", "INFO", **details)
        except Exception:
            pass

    def step_start(self, step: int, total: int, description: str, **details):
        try:
            self.emit(EventType.STEP_START, f"Step {step}/{total}: {description}", "INFO",
                      step=step, total=total, description=description, **details)
        except Exception:
            pass

    def step_success(self, step: int, description: str, strategy: str = None, **details):
        try:
            msg = f"Step {step} passed: {description}"
            if strategy:
                msg += f" [{strategy}]"
            self.emit(EventType.STEP_SUCCESS, msg, "SUCCESS",
                      step=step, description=description, strategy=strategy, **details)
        except Exception:
            pass

    def step_failure(self, step: int, description: str, error: str = None, **details):
        try:
            msg = f"Step {step} failed: {description}"
            if error:
                msg += f" - {error}"
            self.emit(EventType.STEP_FAILURE, msg, "ERROR",
                      step=step, description=description, error=error, **details)
        except Exception:
            pass

    def locate_start(self, strategy: str, target: str, **details):
        try:
            self.emit(EventType.LOCATE_START, f"Locating '{target}' ({strategy})", "DEBUG",
                      strategy=strategy, target=target, **details)
        except Exception:
            pass

    def locate_success(self, strategy: str, selector: str, confidence: float = None, elapsed_ms: int = None, **details):
        try:
            msg = f"Found with {strategy} locator: {selector}"
            if elapsed_ms is not None:
                msg += f" ({elapsed_ms}ms)"
            self.emit(EventType.LOCATE_SUCCESS, msg, "SUCCESS", strategy=strategy, selector=selector,
                      confidence=confidence, elapsed_ms=elapsed_ms, **details)
        except Exception:
            pass

    def locate_failure(self, strategy: str, error: str, kind: str = None, **details):
        try:
            self.emit(EventType.LOCATE_FAILURE, f"{strategy.capitalize()} locator failed: {error}", "WARNING",
                      strategy=strategy, error=error, kind=kind, **details)
        except Exception:
            pass

    def escalation(self, reason: str, used: int = None, budget: int = None, **details):
        try:
            msg = f"Escalating to vision: {reason}"
            if used is not None and budget is not None:
                msg += f" (escalation {used}/{budget})"
            self.emit(EventType.ESCALATION, msg, "INFO", reason=reason, used=used, budget=budget, **details)
        except Exception:
            pass

    def vision_request(self, description: str, candidates: int, **details):
        try:
            self.emit(EventType.VISION_REQUEST,
                      f"Asking vision model for '{description}' ({candidates} candidates)", "DEBUG",
                      description=description, candidates=candidates, **details)
        except Exception:
            pass

    def vision_response(self, selector: str, confidence: float = None, raw_response: str = None, **details):
        try:
            msg = f"Vision model picked: {selector}"
            if confidence is not None:
                msg += f" (confidence {confidence:.2f})"
            self.emit(EventType.VISION_RESPONSE, msg, "DEBUG", selector=selector, confidence=confidence,
                      raw_response=raw_response, **details)
        except Exception:
            pass

    def vision_failure(self, kind: str, error: str, **details):
        try:
            self.emit(EventType.VISION_FAILURE, f"Vision healing failed ({kind}): {error}", "ERROR",
                      kind=kind, error=error, **details)
        except Exception:
            pass

    def popup_dismissed(self, selector: str, **details):
        try:
            self.emit(EventType.POPUP_DISMISSED, f"Dismissed interruption with selector: {selector}", "INFO",
                      selector=selector, **details)
        except Exception:
            pass

    def system_info(self, message: str, **details):
        try:
            self.emit(EventType.SYSTEM_INFO, message, "INFO", **details)
        except Exception:
            pass

    def system_warning(self, message: str, **details):
        try:
            self.emit(EventType.SYSTEM_WARNING, message, "WARNING", **details)
        except Exception:
            pass

    def system_error(self, message: str, error: Exception = None, **details):
        try:
            msg = message
            if error:
                msg += f" - {str(error)}"
            self.emit(EventType.SYSTEM_ERROR, msg, "ERROR", error=str(error) if error else None, **details)
        except Exception:
            pass

    def system_debug(self, message: str, **details):
        try:
            self.emit(EventType.SYSTEM_DEBUG, message, "DEBUG", **details)
        except Exception:
            pass

    def llm_cost(self, cost_usd: float, input_tokens: int, output_tokens: int, total_tokens: int, model: str = None, **details):
        try:
            msg = f"Prompt Cost: {cost_usd} USD, Input Tokens: {input_tokens}, Output Tokens: {output_tokens}, Total Tokens: {total_tokens}"
            if model:
                msg += f" (Model: {model})"
            self.emit(EventType.LLM_COST, msg, "DEBUG", cost_usd=cost_usd, input_tokens=input_tokens,
                      output_tokens=output_tokens, total_tokens=total_tokens, model=model, **details)
        except Exception:
            pass


# Global instance
_global_event_logger: Optional[EventLogger] = None


def get_event_logger() -> EventLogger:
    """Get the global event logger instance"""
    global _global_event_logger
    if _global_event_logger is None:
        _global_event_logger = EventLogger(debug_mode=True)
    return _global_event_logger


def set_event_logger(logger: EventLogger) -> None:
    """Set the global event logger instance"""
    global _global_event_logger
    _global_event_logger = logger
