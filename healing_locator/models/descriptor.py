"""Canonical element descriptors produced by the normalizer."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, Union


class DescriptorKind(str, Enum):
    TEST_ID = "test_id"
    ROLE = "role"
    TEXT = "text"
    CSS_OR_XPATH = "css_or_xpath"
    FREE_TEXT = "free_text"


@dataclass(frozen=True)
class ByTestId:
    test_id: str
    raw: str = ""
    kind: ClassVar[DescriptorKind] = DescriptorKind.TEST_ID

    @property
    def value(self) -> str:
        return self.test_id


@dataclass(frozen=True)
class ByRole:
    role: str
    name: str = ""
    raw: str = ""
    kind: ClassVar[DescriptorKind] = DescriptorKind.ROLE

    @property
    def value(self) -> str:
        return self.name or self.role


@dataclass(frozen=True)
class ByText:
    text: str
    raw: str = ""
    kind: ClassVar[DescriptorKind] = DescriptorKind.TEXT

    @property
    def value(self) -> str:
        return self.text


@dataclass(frozen=True)
class ByCssOrXPath:
    selector: str
    raw: str = ""
    kind: ClassVar[DescriptorKind] = DescriptorKind.CSS_OR_XPATH

    @property
    def value(self) -> str:
        return self.selector

    @property
    def is_xpath(self) -> bool:
        stripped = self.selector.lstrip("(")
        return stripped.startswith("//") or self.selector.startswith("xpath=")


@dataclass(frozen=True)
class FreeText:
    """
    Fallback descriptor for plain descriptions.

    ``role_hint``/``name_hint`` are derived from a trailing role noun
    ("checkout button" -> button / "checkout") and only refine lookups.
    """

    description: str
    role_hint: Optional[str] = None
    name_hint: str = ""
    raw: str = ""
    kind: ClassVar[DescriptorKind] = DescriptorKind.FREE_TEXT

    @property
    def value(self) -> str:
        return self.description


ElementDescriptor = Union[ByTestId, ByRole, ByText, ByCssOrXPath, FreeText]


def describe_descriptor(descriptor: ElementDescriptor) -> str:
    """Short human-readable rendering used in prompts and logs."""
    if isinstance(descriptor, ByTestId):
        return f"test id '{descriptor.test_id}'"
    if isinstance(descriptor, ByRole):
        if descriptor.name:
            return f"{descriptor.role} named '{descriptor.name}'"
        return f"{descriptor.role}"
    if isinstance(descriptor, ByText):
        return f"text '{descriptor.text}'"
    if isinstance(descriptor, ByCssOrXPath):
        label = "xpath" if descriptor.is_xpath else "selector"
        return f"{label} '{descriptor.selector}'"
    return f"description '{descriptor.description}'"


__all__ = [
    "DescriptorKind",
    "ByTestId",
    "ByRole",
    "ByText",
    "ByCssOrXPath",
    "FreeText",
    "ElementDescriptor",
    "describe_descriptor",
]
