from .descriptor import (
    ByCssOrXPath,
    ByRole,
    ByTestId,
    ByText,
    DescriptorKind,
    ElementDescriptor,
    FreeText,
    describe_descriptor,
)
from .action_models import ActionRequest, ActionType, VisionPick

__all__ = [
    "ByCssOrXPath",
    "ByRole",
    "ByTestId",
    "ByText",
    "DescriptorKind",
    "ElementDescriptor",
    "FreeText",
    "describe_descriptor",
    "ActionRequest",
    "ActionType",
    "VisionPick",
]
