"""Structured request/response models exchanged with the orchestrator and the vision model."""
from __future__ import annotations

import math
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class ActionType(str, Enum):
    CLICK = "click"
    TYPE = "type"
    SELECT = "select"
    WAIT = "wait"
    NAVIGATE = "navigate"


class ActionRequest(BaseModel):
    """One step of a UI scenario as handed over by the test-execution session."""

    action: ActionType = Field(description="Interaction to perform (click, type, select, wait, navigate)")
    target: str = Field(description="Raw selector, locator expression or free-text description; URL for navigate")
    value: Optional[str] = Field(default=None, description="Text to type or option to select")
    description: str = Field(default="", description="Human-readable description used in reports and vision prompts")

    class Config:
        frozen = True

    @field_validator("target")
    @classmethod
    def _strip_target(cls, value: str) -> str:
        return (value or "").strip()

    @model_validator(mode="after")
    def _value_required(self) -> "ActionRequest":
        if self.action in (ActionType.TYPE, ActionType.SELECT) and self.value is None:
            raise ValueError(f"'{self.action.value}' actions require a value")
        return self


class VisionPick(BaseModel):
    """Answer expected from the vision model."""

    selector: str = Field(default="", description="Playwright/CSS/XPath selector of the chosen element")
    candidate_index: Optional[int] = Field(default=None, description="Index of the chosen candidate element")
    confidence: float = Field(default=0.8, description="Confidence in the pick, 0.0-1.0")
    reasoning: str = Field(default="", description="Short justification")

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value) -> float:
        if value is None:
            return 0.8
        number = float(value)
        if not math.isfinite(number) or number < 0.0 or number > 100.0:
            raise ValueError(f"confidence out of range: {value!r}")
        if number > 1.5:
            # Some models answer in percent.
            number = number / 100.0
        return min(1.0, number)

    @field_validator("selector", mode="before")
    @classmethod
    def _clean_selector(cls, value) -> str:
        if value is None:
            return ""
        text = str(value).strip()
        if len(text) >= 2 and text[0] == text[-1] and text[0] in "`":
            text = text[1:-1].strip()
        return text


__all__ = ["ActionType", "ActionRequest", "VisionPick"]
