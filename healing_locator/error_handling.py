"""
Structured error handling for the healing locator.

Provides custom exception types, error context, and recovery strategies.
Locator-level errors are returned inside ``Result`` objects and classified by
the orchestrator; only ``SessionError`` is allowed to propagate out of a run.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecoveryStrategy(Enum):
    """Error recovery strategies."""
    ESCALATE = "escalate"
    SKIP = "skip"
    ABORT = "abort"


class VisionFailure(str, Enum):
    """Distinct ways the vision-based locator can fail."""
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    UNPARSABLE = "unparsable"
    NO_MATCH = "no_match"
    MULTIPLE_MATCHES = "multiple_matches"
    INVALID_SELECTOR = "invalid_selector"
    SNAPSHOT_FAILED = "snapshot_failed"
    BUDGET_EXHAUSTED = "budget_exhausted"


@dataclass
class ErrorContext:
    """
    Context information about an error.

    Captures everything needed to understand and debug a failed step.
    """

    error_type: str
    message: str
    timestamp: datetime = field(default_factory=datetime.now)

    # Browser state
    page_url: Optional[str] = None
    screenshot_path: Optional[str] = None

    # Action context
    step: Optional[int] = None
    action_type: Optional[str] = None
    target: Optional[str] = None
    selector: Optional[str] = None

    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'error_type': self.error_type,
            'message': self.message,
            'timestamp': self.timestamp.isoformat(),
            'page_url': self.page_url,
            'screenshot_path': self.screenshot_path,
            'step': self.step,
            'action_type': self.action_type,
            'target': self.target,
            'selector': self.selector,
            'metadata': self.metadata,
        }


class BotError(Exception):
    """
    Base exception for all healing errors.

    All custom exceptions should inherit from this.
    """

    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    recovery_strategy: RecoveryStrategy = RecoveryStrategy.SKIP

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        **kwargs
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext(
            error_type=self.__class__.__name__,
            message=message
        )

        # Allow overriding context fields
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value


class LocatorError(BotError):
    """Base class for errors produced while locating or acting on an element."""

    kind: str = "locator_error"

    @property
    def escalatable(self) -> bool:
        return self.recovery_strategy is RecoveryStrategy.ESCALATE

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class NotFoundError(LocatorError):
    """Deterministic lookup found zero visible matches within the timeout."""
    kind = "not_found"
    severity = ErrorSeverity.MEDIUM
    recovery_strategy = RecoveryStrategy.ESCALATE


class AmbiguousError(LocatorError):
    """Deterministic lookup matched several elements outside the allowlist."""
    kind = "ambiguous"
    severity = ErrorSeverity.MEDIUM
    recovery_strategy = RecoveryStrategy.ESCALATE

    def __init__(self, message: str, match_count: int, **kwargs):
        super().__init__(message, **kwargs)
        self.match_count = match_count

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["match_count"] = self.match_count
        return data


class StaleElementError(LocatorError):
    """Element resolved but was detached or hidden before the action ran."""
    kind = "stale_element"
    severity = ErrorSeverity.MEDIUM
    recovery_strategy = RecoveryStrategy.SKIP


class InteractionError(LocatorError):
    """Element resolved but the page rejected the interaction itself."""
    kind = "interaction_failed"
    severity = ErrorSeverity.MEDIUM
    recovery_strategy = RecoveryStrategy.SKIP


class VisionError(LocatorError):
    """Vision healing failed; terminal for the current action."""
    kind = "vision"
    severity = ErrorSeverity.HIGH
    recovery_strategy = RecoveryStrategy.SKIP

    def __init__(self, message: str, failure: VisionFailure, **kwargs):
        super().__init__(message, **kwargs)
        self.failure = VisionFailure(failure)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["failure"] = self.failure.value
        return data


class SessionError(BotError):
    """Browser crash, closed page or unrecoverable navigation; propagates uncaught."""
    severity = ErrorSeverity.CRITICAL
    recovery_strategy = RecoveryStrategy.ABORT


class ScenarioAbortedError(SessionError):
    """The scenario hit its hard timeout; carries the partial execution result."""

    def __init__(self, message: str, partial_result: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        self.partial_result = partial_result


class ConfigurationError(BotError):
    """Invalid configuration."""
    severity = ErrorSeverity.CRITICAL
    recovery_strategy = RecoveryStrategy.ABORT


_SESSION_CLOSED_MARKERS = (
    "target page, context or browser has been closed",
    "target closed",
    "browser has been closed",
    "browser has disconnected",
    "page has been closed",
    "context has been closed",
    "connection closed",
)


def is_session_closed_message(message: str) -> bool:
    """Return True when a Playwright error message means the page is gone."""
    lowered = (message or "").lower()
    return any(marker in lowered for marker in _SESSION_CLOSED_MARKERS)


@dataclass
class ErrorHandler:
    """
    Keeps the history of locator errors for one run and summarises it.
    """

    errors: List[ErrorContext] = field(default_factory=list)

    def record(
        self,
        error: Exception,
        *,
        step: Optional[int] = None,
        action_type: Optional[str] = None,
        target: Optional[str] = None,
        page_url: Optional[str] = None,
    ) -> ErrorContext:
        """Store the context of an error and return it."""
        if isinstance(error, BotError):
            context = error.context
        else:
            context = ErrorContext(
                error_type=type(error).__name__,
                message=str(error)
            )
        if step is not None:
            context.step = step
        if action_type is not None:
            context.action_type = action_type
        if target is not None:
            context.target = target
        if page_url is not None:
            context.page_url = page_url
        self.errors.append(context)
        return context

    def get_error_summary(self) -> Dict[str, Any]:
        """Get summary of all errors."""
        error_counts: Dict[str, int] = {}
        for error in self.errors:
            error_counts[error.error_type] = error_counts.get(error.error_type, 0) + 1

        return {
            'total_errors': len(self.errors),
            'error_counts': error_counts,
            'recent_errors': [e.to_dict() for e in self.errors[-5:]]
        }

    def clear_errors(self) -> None:
        """Clear error history."""
        self.errors.clear()
