"""
Result types for locator calls, single actions and whole scenario runs.

Every locator layer returns a ``Result`` instead of raising, so the
orchestrator can compose failures explicitly.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from healing_locator.error_handling import LocatorError

T = TypeVar("T")
E = TypeVar("E", bound=Exception)


class Strategy(str, Enum):
    DETERMINISTIC = "deterministic"
    VISION = "vision"


@dataclass(frozen=True)
class LocateResult:
    """Outcome of a successful resolution."""
    strategy: Strategy
    selector: str
    confidence: float
    matched_count: int
    elapsed_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "selector": self.selector,
            "confidence": self.confidence,
            "matched_count": self.matched_count,
            "elapsed_ms": self.elapsed_ms,
        }


@dataclass(frozen=True)
class Result(Generic[T, E]):
    """Either a value or an error, never both."""
    value: Optional[T] = None
    error: Optional[E] = None

    @classmethod
    def ok(cls, value: T) -> "Result[T, E]":
        return cls(value=value)

    @classmethod
    def err(cls, error: E) -> "Result[T, E]":
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value

    def __bool__(self) -> bool:
        return self.is_ok


@dataclass
class ActionOutcome:
    """
    Result of one ``perform()`` call.

    ``deterministic_error`` is the first deterministic failure (kept even after a
    successful heal); ``vision_error`` is the final vision failure if any.
    ``error`` is the error that decided the outcome.
    """
    success: bool
    description: str = ""
    strategy_used: Optional[Strategy] = None
    locate_result: Optional[LocateResult] = None
    error: Optional[LocatorError] = None
    deterministic_error: Optional[LocatorError] = None
    vision_error: Optional[LocatorError] = None
    elapsed_ms: int = 0

    def __bool__(self) -> bool:
        return self.success

    def __repr__(self) -> str:
        status = "✅" if self.success else "❌"
        strategy = self.strategy_used.value if self.strategy_used else "-"
        return f"ActionOutcome({status}, strategy={strategy}, description='{self.description}')"

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error else None

    def error_messages(self) -> List[str]:
        """Messages from every strategy attempted, deterministic first."""
        messages: List[str] = []
        seen = set()
        for label, err in (
            ("deterministic", self.deterministic_error),
            ("vision", self.vision_error),
            ("action", self.error),
        ):
            if err is None or id(err) in seen:
                continue
            seen.add(id(err))
            messages.append(f"{label}: {err.message}")
        return messages

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "description": self.description,
            "strategy_used": self.strategy_used.value if self.strategy_used else None,
            "locate_result": self.locate_result.to_dict() if self.locate_result else None,
            "error": self.error.to_dict() if self.error else None,
            "deterministic_error": self.deterministic_error.to_dict() if self.deterministic_error else None,
            "vision_error": self.vision_error.to_dict() if self.vision_error else None,
            "elapsed_ms": self.elapsed_ms,
        }


@dataclass
class ExecutionStep:
    """Record of one executed step."""
    index: int
    action: str
    target: str
    description: str
    outcome: Optional[ActionOutcome] = None
    screenshot: Optional[str] = None

    @property
    def success(self) -> bool:
        return bool(self.outcome and self.outcome.success)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "action": self.action,
            "target": self.target,
            "description": self.description,
            "success": self.success,
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "screenshot": self.screenshot,
        }


@dataclass
class ExecutionResult:
    """Aggregated outcome of a scenario run."""
    success: bool = True
    steps_executed: int = 0
    total_steps: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    steps: List[ExecutionStep] = field(default_factory=list)
    screenshots: List[str] = field(default_factory=list)
    video: Optional[str] = None
    escalations_used: int = 0

    def __bool__(self) -> bool:
        return self.success

    def record_failure(self, step: int, description: str, messages: List[str]) -> None:
        self.success = False
        self.errors.append({
            "step": step,
            "description": description,
            "error": "; ".join(messages) if messages else "step failed",
        })

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "steps_executed": self.steps_executed,
            "total_steps": self.total_steps,
            "errors": list(self.errors),
            "steps": [step.to_dict() for step in self.steps],
            "screenshots": list(self.screenshots),
            "video": self.video,
            "escalations_used": self.escalations_used,
        }


__all__ = [
    "Strategy",
    "LocateResult",
    "Result",
    "ActionOutcome",
    "ExecutionStep",
    "ExecutionResult",
]
