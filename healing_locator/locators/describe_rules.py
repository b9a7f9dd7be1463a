"""
Human-readable labels for steps that carry no description.

``describe_target`` walks ``CLICK_RULES`` / ``FILL_RULES`` in list order and
returns the label of the first rule whose variant filter and patterns match.
Patterns are matched case-insensitively against the descriptor's value and
raw text. When no rule matches, a label is derived from the descriptor itself.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Optional, Sequence, Tuple

from healing_locator.models.action_models import ActionType
from healing_locator.models.descriptor import (
    ByCssOrXPath,
    ByRole,
    ByTestId,
    ByText,
    DescriptorKind,
    ElementDescriptor,
    FreeText,
)

ANY_VARIANT: FrozenSet[DescriptorKind] = frozenset(DescriptorKind)

# Typed values for these targets never reach reports, logs or prompts.
SECRET_HINTS: Tuple[str, ...] = ("password", "passwd", "passcode", "pwd", "secret")
MASK = "********"


@dataclass(frozen=True)
class DescribeRule:
    """``label`` applies when any of ``patterns`` occurs and none of ``excludes`` does."""

    patterns: Tuple[str, ...]
    label: str
    variants: FrozenSet[DescriptorKind] = ANY_VARIANT
    excludes: Tuple[str, ...] = ()
    role: Optional[str] = None

    def matches(self, descriptor: ElementDescriptor, haystack: str) -> bool:
        if descriptor.kind not in self.variants:
            return False
        if self.role is not None and _role_of(descriptor) != self.role:
            return False
        if any(pattern in haystack for pattern in self.excludes):
            return False
        return any(pattern in haystack for pattern in self.patterns)


CLICK_RULES: Sequence[DescribeRule] = (
    DescribeRule(("place-order-button", "order-button", "place order"), "place order button"),
    DescribeRule(("account",), "account link"),
    DescribeRule(("continue",), "continue button"),
    DescribeRule(("sign in", "sign-in", "signin"), "sign in button"),
    DescribeRule(("search-button", "search button"), "search button"),
    DescribeRule(("add-to-cart", "add to cart"), "add to cart button"),
    DescribeRule(("proceed", "checkout"), "proceed to checkout button"),
    DescribeRule(("credit", "debit", "card"), "payment method"),
    DescribeRule(("email",), "email field", role="textbox"),
    DescribeRule(("password",), "password field", role="textbox"),
    DescribeRule(("search",), "search field", role="textbox"),
    DescribeRule(("link",), "product link", excludes=("account",)),
)

FILL_RULES: Sequence[DescribeRule] = (
    DescribeRule(("email",), "email field"),
    DescribeRule(("password", "passwd", "passcode", "pwd"), "password field"),
    DescribeRule(("search",), "search field"),
)


def _role_of(descriptor: ElementDescriptor) -> Optional[str]:
    if isinstance(descriptor, ByRole):
        return descriptor.role
    if isinstance(descriptor, FreeText):
        return descriptor.role_hint
    return None


def _haystack(descriptor: ElementDescriptor) -> str:
    parts = [descriptor.value, descriptor.raw]
    if isinstance(descriptor, ByRole):
        parts.append(descriptor.role)
    return " ".join(part for part in parts if part).lower()


def _fallback_label(descriptor: ElementDescriptor, action: ActionType) -> str:
    if isinstance(descriptor, FreeText) and descriptor.description:
        return descriptor.description
    if isinstance(descriptor, ByRole):
        return f"{descriptor.name} {descriptor.role}".strip()
    if isinstance(descriptor, ByText):
        return f"'{descriptor.text}'"
    if isinstance(descriptor, ByTestId):
        return descriptor.test_id.replace("-", " ").replace("_", " ")
    if isinstance(descriptor, ByCssOrXPath) and action is ActionType.TYPE:
        return "field"
    return "element"


def describe_target(descriptor: ElementDescriptor, action: ActionType = ActionType.CLICK) -> str:
    """
    Label a step target for reports, e.g. ``account-link`` -> "account link".

    Example:
        >>> from healing_locator.models import ByTestId
        >>> describe_target(ByTestId("place-order-button"))
        'place order button'
    """
    action = ActionType(action)
    haystack = _haystack(descriptor)
    rules: Sequence[DescribeRule] = ()
    if action in (ActionType.CLICK, ActionType.WAIT):
        rules = CLICK_RULES
    elif action is ActionType.TYPE:
        rules = FILL_RULES

    for rule in rules:
        if rule.matches(descriptor, haystack):
            return rule.label
    return _fallback_label(descriptor, action)


def describe_step(action: ActionType, label: str, value: Optional[str] = None) -> str:
    """Sentence used as step description in execution reports."""
    action = ActionType(action)
    if action is ActionType.CLICK:
        return f"Click {label}"
    if action is ActionType.TYPE:
        if value and any(hint in label.lower() for hint in SECRET_HINTS):
            value = MASK
        return f"Type '{value or ''}' into {label}"
    if action is ActionType.SELECT:
        return f"Select '{value or ''}' in {label}"
    if action is ActionType.WAIT:
        return f"Wait for {label}"
    return f"Navigate to {label}"


__all__ = ["DescribeRule", "CLICK_RULES", "FILL_RULES", "describe_target", "describe_step"]
