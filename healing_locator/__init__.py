"""
healing-locator - self-healing element location for UI test runs.

Locates a page element described by a selector, a Playwright codegen
expression or plain text. A fast deterministic lookup runs first; when it
misses or is ambiguous, a vision model looks at a screenshot and names the
element, and the action is retried on the validated selector.

Main Classes:
    HealingSession: Owns the browser page and runs scenarios
    HealingOrchestrator: Deterministic-then-vision state machine per action
    HealingConfig: Vision mode, timeouts and escalation budget

Example:
    >>> from healing_locator import HealingSession, SessionConfig, HealingConfig
    >>>
    >>> config = SessionConfig(healing=HealingConfig(vision_mode="fallback", max_retries=3))
    >>> async with HealingSession(config) as session:
    ...     result = await session.run([
    ...         {"action": "navigate", "target": "https://shop.example"},
    ...         {"action": "click", "target": "checkout button"},
    ...     ])
"""

# Session and orchestration
from healing_locator.session import HealingSession
from healing_locator.healing_orchestrator import HealingOrchestrator

# Configuration
from healing_locator.healing_config import (
    HealingConfig,
    ModelConfig,
    PopupConfig,
    SessionConfig,
    VisionMode,
)

# Browser provider
from healing_locator.browser_provider import (
    BrowserConfig,
    BrowserProvider,
    LocalPlaywrightProvider,
    MockBrowserProvider,
    RemoteBrowserProvider,
    create_browser_provider,
)

# Locators
from healing_locator.locators import (
    DeterministicLocator,
    VisionLocator,
    describe_target,
    normalize,
)
from healing_locator.popup_handler import PopupHandler

# Results and models
from healing_locator.action_result import (
    ActionOutcome,
    ExecutionResult,
    ExecutionStep,
    LocateResult,
    Result,
    Strategy,
)
from healing_locator.models import (
    ActionRequest,
    ActionType,
    ByCssOrXPath,
    ByRole,
    ByTestId,
    ByText,
    ElementDescriptor,
    FreeText,
)

# Errors
from healing_locator.error_handling import (
    AmbiguousError,
    BotError,
    ConfigurationError,
    InteractionError,
    LocatorError,
    NotFoundError,
    ScenarioAbortedError,
    SessionError,
    StaleElementError,
    VisionError,
    VisionFailure,
)

# Reporting
from healing_locator.report import build_report_table, format_report, print_report

__version__ = "0.1.0"

__all__ = [
    "HealingSession",
    "HealingOrchestrator",
    "HealingConfig",
    "ModelConfig",
    "PopupConfig",
    "SessionConfig",
    "VisionMode",
    "BrowserConfig",
    "BrowserProvider",
    "LocalPlaywrightProvider",
    "MockBrowserProvider",
    "RemoteBrowserProvider",
    "create_browser_provider",
    "DeterministicLocator",
    "VisionLocator",
    "describe_target",
    "normalize",
    "PopupHandler",
    "ActionOutcome",
    "ExecutionResult",
    "ExecutionStep",
    "LocateResult",
    "Result",
    "Strategy",
    "ActionRequest",
    "ActionType",
    "ByCssOrXPath",
    "ByRole",
    "ByTestId",
    "ByText",
    "ElementDescriptor",
    "FreeText",
    "AmbiguousError",
    "BotError",
    "ConfigurationError",
    "InteractionError",
    "LocatorError",
    "NotFoundError",
    "ScenarioAbortedError",
    "SessionError",
    "StaleElementError",
    "VisionError",
    "VisionFailure",
    "build_report_table",
    "format_report",
    "print_report",
]
