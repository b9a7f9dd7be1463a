"""
Element locators: descriptor normalization, deterministic lookup and vision healing.
"""
from .normalizer import normalize
from .describe_rules import describe_step, describe_target
from .deterministic import DeterministicLocator
from .vision import VisionLocator, parse_vision_response

__all__ = [
    "normalize",
    "describe_step",
    "describe_target",
    "DeterministicLocator",
    "VisionLocator",
    "parse_vision_response",
]
