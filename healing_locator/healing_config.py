"""
Configuration models for the healing locator.

Settings are grouped into pydantic models and frozen once built: a
``HealingConfig`` is created at session start and read-only for the run.

Example:
    >>> from healing_locator.healing_config import HealingConfig, VisionMode
    >>> config = HealingConfig(vision_mode=VisionMode.FALLBACK, max_retries=2)
    >>> config.deterministic_timeout_ms
    2000
"""
from __future__ import annotations

import os
from enum import Enum
from typing import List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from healing_locator.ai_utils import ReasoningLevel
from healing_locator.browser_provider import BrowserConfig
from healing_locator.error_handling import ConfigurationError
from healing_locator.models.descriptor import ElementDescriptor


class VisionMode(str, Enum):
    """When the vision-based locator may be used."""

    NONE = "none"
    FALLBACK = "fallback"
    ALL = "all"


class ModelConfig(BaseModel):
    """Vision model configuration."""

    model_name: str = Field(
        default="gpt-4o",
        description="Vision-capable model used for healing"
    )
    reasoning_level: ReasoningLevel = Field(
        default=ReasoningLevel.NONE,
        description="Reasoning effort passed to providers that support it"
    )
    image_detail: str = Field(
        default="high",
        description="Image detail hint for the screenshot ('low', 'high', 'auto')"
    )

    class Config:
        frozen = True


class PopupConfig(BaseModel):
    """Interruption handling between actions."""

    enabled: bool = Field(
        default=True,
        description="Dismiss popups and cookie banners between actions"
    )
    settle_ms: int = Field(
        default=500,
        ge=0,
        description="Time to wait for popups to appear before checking"
    )
    check_timeout_ms: int = Field(
        default=500,
        ge=0,
        description="Visibility check timeout per popup selector"
    )
    popup_selectors: List[str] = Field(
        default_factory=lambda: [
            '[data-testid*="popup"] [aria-label*="close" i]',
            '[class*="modal"] [aria-label*="close" i]',
            '[id*="popup"] [aria-label*="close" i]',
            '.close-button',
            '[aria-label*="close" i]',
            '[aria-label*="dismiss" i]',
        ],
        description="Close controls of modal dialogs and overlays"
    )
    cookie_selectors: List[str] = Field(
        default_factory=lambda: [
            'button:has-text("Accept All")',
            'button:has-text("I Accept")',
            'button:has-text("Accept")',
            'button:has-text("Agree")',
            '[id*="cookie"] button',
            '[class*="cookie"] button',
            '[data-testid*="cookie"]',
        ],
        description="Consent buttons of cookie banners"
    )
    popup_window_markers: List[str] = Field(
        default_factory=lambda: ["popup", "/ads/", "doubleclick"],
        description="URL fragments of new windows that are closed automatically"
    )

    class Config:
        frozen = True


class HealingConfig(BaseModel):
    """
    Process-wide-per-run configuration of the healing engine.

    Owned by the caller (the UI test session) and never mutated by the core.
    """

    vision_mode: VisionMode = Field(
        default=VisionMode.FALLBACK,
        description="'none' never uses vision, 'fallback' escalates on misses, 'all' always uses vision"
    )
    deterministic_timeout_ms: int = Field(
        default=2000,
        gt=0,
        description="How long the deterministic locator waits for a visible match"
    )
    vision_timeout_ms: int = Field(
        default=15000,
        gt=0,
        description="Upper bound for screenshot capture plus the model round-trip"
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Vision escalations allowed across the whole scenario run"
    )
    known_ambiguous: List[str] = Field(
        default_factory=list,
        description="Identifiers allowed to match several elements (first match in DOM order wins)"
    )
    max_candidates: int = Field(
        default=60,
        ge=1,
        le=400,
        description="Maximum number of candidate elements sent to the vision model"
    )
    action_timeout_ms: int = Field(
        default=5000,
        gt=0,
        description="Timeout for the click/fill/select call once the element is resolved"
    )
    poll_interval_ms: int = Field(
        default=100,
        gt=0,
        description="Polling interval while waiting for a visible match"
    )
    timeout_grace_ms: int = Field(
        default=500,
        ge=0,
        description="Extra time allowed on top of a locator timeout before the call is cancelled"
    )
    max_probe_matches: int = Field(
        default=25,
        ge=1,
        description="How many visible matches of one selector are collected before probing stops"
    )
    test_id_attribute: str = Field(
        default="data-testid",
        description="Attribute used for test-id lookups"
    )
    save_screenshots: bool = Field(
        default=False,
        description="Persist the screenshots sent to the vision model"
    )
    screenshot_dir: str = Field(
        default="test-results/screenshots",
        description="Directory for persisted vision screenshots"
    )
    model: ModelConfig = Field(
        default_factory=ModelConfig,
        description="Vision model configuration"
    )
    popup: PopupConfig = Field(
        default_factory=PopupConfig,
        description="Interruption handling configuration"
    )

    class Config:
        frozen = True

    @field_validator("known_ambiguous", mode="before")
    @classmethod
    def _split_known_ambiguous(cls, value):
        if isinstance(value, str):
            value = value.split(",")
        return [str(item).strip() for item in (value or []) if str(item).strip()]

    def is_known_ambiguous(self, descriptor: ElementDescriptor) -> bool:
        """True when the descriptor's value or raw text is on the allowlist."""
        if not self.known_ambiguous:
            return False
        allowed = {entry.casefold() for entry in self.known_ambiguous}
        keys = {descriptor.value.casefold()}
        if descriptor.raw:
            keys.add(descriptor.raw.strip().casefold())
        return bool(allowed & keys)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "HealingConfig":
        """
        Build a config from ``HEALING_*`` environment variables.

        Explicit keyword overrides win over the environment.
        """
        env = os.environ if environ is None else environ
        values: dict = {}
        mapping = {
            "HEALING_VISION_MODE": "vision_mode",
            "HEALING_DETERMINISTIC_TIMEOUT_MS": "deterministic_timeout_ms",
            "HEALING_VISION_TIMEOUT_MS": "vision_timeout_ms",
            "HEALING_MAX_RETRIES": "max_retries",
            "HEALING_KNOWN_AMBIGUOUS": "known_ambiguous",
            "HEALING_MAX_CANDIDATES": "max_candidates",
        }
        for env_name, field_name in mapping.items():
            raw = env.get(env_name)
            if raw is not None and str(raw).strip() != "":
                values[field_name] = str(raw).strip().lower() if field_name == "vision_mode" else str(raw).strip()
        model_name = env.get("HEALING_MODEL")
        if model_name:
            values["model"] = ModelConfig(model_name=model_name.strip())
        values.update(overrides)
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid healing configuration: {exc}") from exc


class SessionConfig(BaseModel):
    """
    Configuration of one UI test-execution session.

    Example:
        >>> config = SessionConfig(
        ...     healing=HealingConfig(vision_mode="fallback"),
        ...     browser=BrowserConfig(headless=True),
        ... )
    """

    healing: HealingConfig = Field(
        default_factory=HealingConfig,
        description="Healing engine configuration"
    )
    browser: BrowserConfig = Field(
        default_factory=BrowserConfig,
        description="Browser provider configuration"
    )
    output_dir: str = Field(
        default="test-results",
        description="Directory for screenshots and videos"
    )
    record_video: bool = Field(
        default=False,
        description="Record a video of the browser context"
    )
    record_screenshots: bool = Field(
        default=False,
        description="Take a full-page screenshot after each successful step"
    )
    continue_on_failure: bool = Field(
        default=True,
        description="Keep executing later steps after a failed step"
    )
    scenario_timeout_ms: Optional[int] = Field(
        default=None,
        gt=0,
        description="Hard timeout for a whole scenario; in-flight calls are cancelled when hit"
    )
    debug_mode: bool = Field(
        default=True,
        description="Print events to the console"
    )

    class Config:
        frozen = True

    @classmethod
    def ci(cls) -> "SessionConfig":
        """Headless, screenshots on, no vision escalations."""
        return cls(
            healing=HealingConfig(vision_mode=VisionMode.NONE),
            browser=BrowserConfig(headless=True),
            record_screenshots=True,
            debug_mode=False,
        )


__all__ = [
    "VisionMode",
    "ModelConfig",
    "PopupConfig",
    "HealingConfig",
    "SessionConfig",
]
