"""Shared utilities for invoking vision models through LiteLLM.

The helpers in this module provide a consistent way to:
    * map model identifiers to providers and API keys
    * call LiteLLM asynchronously with a screenshot attached
    * obtain usage and cost information in a common format
    * pull a JSON object out of free-form model output
"""

from __future__ import annotations

import base64
import json
import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple, Union

import litellm
from litellm import acompletion, completion_cost

litellm.suppress_debug_info = True

from healing_locator.utils.event_logger import get_event_logger


class ReasoningLevel(str, Enum):
    """Supported reasoning effort knobs for providers that expose them."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def coerce(cls, value: Union["ReasoningLevel", str]) -> "ReasoningLevel":
        """
        Return a `ReasoningLevel` instance for the provided value.

        Examples
        --------
        >>> ReasoningLevel.coerce("LOW")
        <ReasoningLevel.LOW: 'low'>
        >>> ReasoningLevel.coerce("Expert")
        Traceback (most recent call last):
            ...
        ValueError: Invalid reasoning level 'Expert'. Allowed values: none, low, medium, high.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            allowed = ", ".join(level.value for level in cls)
            raise ValueError(
                f"Invalid reasoning level '{value}'. Allowed values: {allowed}."
            ) from exc


# Optional per-model or per-provider API keys. Populate this if you do not want
# to rely solely on environment variables.
MODEL_API_KEYS: dict[str, str] = {}


@dataclass(frozen=True)
class ProviderConfig:
    """Configuration describing provider-specific behaviour."""

    env_vars: Sequence[str]
    supports_reasoning_flag: bool = False
    supports_image_understanding: bool = True


_PROVIDERS: dict[str, ProviderConfig] = {
    "openai": ProviderConfig(env_vars=("OPENAI_API_KEY",)),
    "azure": ProviderConfig(env_vars=("AZURE_API_KEY",)),
    "google": ProviderConfig(
        env_vars=("GOOGLE_API_KEY", "GEMINI_API_KEY"),
        supports_reasoning_flag=True,
    ),
    "gemini": ProviderConfig(
        env_vars=("GOOGLE_API_KEY", "GEMINI_API_KEY"),
        supports_reasoning_flag=True,
    ),
    "anthropic": ProviderConfig(
        env_vars=("ANTHROPIC_API_KEY",),
        supports_reasoning_flag=True,
    ),
    "groq": ProviderConfig(
        env_vars=("GROQ_API_KEY",),
        supports_image_understanding=False,
    ),
}

# Models that rejected reasoning_effort once; not retried with it again.
_MODELS_WITHOUT_REASONING: set[str] = set()

__all__ = [
    "ReasoningLevel",
    "MODEL_API_KEYS",
    "ModelUsage",
    "infer_provider",
    "supports_vision",
    "build_messages",
    "extract_json_object",
    "generate_text_with_cost",
    "generate_text",
]


@dataclass(frozen=True)
class ModelUsage:
    """Token usage and cost of one completion."""

    model: str
    input_tokens: int
    output_tokens: int
    total_tokens: Optional[int]
    cost_usd: float


# ---------------------------------------------------------------------------
# Internal helper utilities
# ---------------------------------------------------------------------------


def infer_provider(model: str) -> str:
    """Best-effort provider inference based on model id."""
    if "/" in model:
        candidate = model.split("/", 1)[0].lower()
        if candidate in _PROVIDERS:
            return candidate
    lowered = model.lower()
    if "gemini" in lowered or "google" in lowered:
        return "google"
    if "groq" in lowered:
        return "groq"
    if "anthropic" in lowered or "claude" in lowered:
        return "anthropic"
    return "openai"


def supports_vision(model: str) -> bool:
    config = _PROVIDERS.get(infer_provider(model))
    return config.supports_image_understanding if config else True


def _resolve_api_key(model: str, provider: str) -> Optional[str]:
    """Locate an API key for the provider/model combination."""
    override = MODEL_API_KEYS.get(model) or MODEL_API_KEYS.get(provider)
    if override:
        return override

    config = _PROVIDERS.get(provider)
    env_names = config.env_vars if config else ()
    for env_name in env_names:
        value = os.getenv(env_name)
        if value:
            return value

    env_hint = ", ".join(env_names) or "<provider specific env var>"
    raise RuntimeError(
        f"No API key configured for model '{model}' (provider '{provider}'). "
        f"Set one in MODEL_API_KEYS or via environment variable(s): {env_hint}."
    )


def _prepare_image_part(image: Union[bytes, bytearray, str], image_detail: str) -> dict[str, Any]:
    """Convert PNG bytes/base64 content into the structure expected by LiteLLM."""
    if isinstance(image, (bytes, bytearray)):
        b64 = base64.b64encode(image).decode("ascii")
        url = f"data:image/png;base64,{b64}"
    else:
        string_value = str(image)
        url = string_value if string_value.startswith("data:image/") else f"data:image/png;base64,{string_value}"
    return {"type": "image_url", "image_url": {"url": url, "detail": image_detail}}


def build_messages(
    prompt: str,
    system_prompt: str,
    image: Optional[Union[bytes, bytearray, str]],
    image_detail: str = "high",
    model: str = "",
) -> list[dict[str, Any]]:
    """Compose the LiteLLM messages payload."""
    messages: list[dict[str, Any]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})

    content: list[dict[str, Any]] = []
    if prompt:
        content.append({"type": "text", "text": prompt})
    if image is not None and supports_vision(model):
        content.append(_prepare_image_part(image, image_detail))
    messages.append({"role": "user", "content": content or [{"type": "text", "text": prompt}]})
    return messages


def _extract_text_from_response(response: Any) -> str:
    """Best-effort text extraction from a LiteLLM completion response."""
    choices = response.get("choices") or []
    if not choices:
        return ""

    message = choices[0].get("message") or {}
    content = message.get("content")
    if isinstance(content, list):
        return "\n".join(
            segment.get("text", "") for segment in content if isinstance(segment, dict) and segment.get("text")
        )
    if isinstance(content, str):
        return content
    return ""


def _extract_usage(response: Any, model: str) -> ModelUsage:
    """Extract token usage and cost data from a LiteLLM response."""
    usage = response.get("usage") or {}
    input_tokens = usage.get("prompt_tokens") or usage.get("input_tokens") or 0
    output_tokens = usage.get("completion_tokens") or usage.get("output_tokens") or 0
    total_tokens = usage.get("total_tokens") or (input_tokens + output_tokens) or None

    try:
        cost_usd = completion_cost(response) or 0.0
    except Exception:
        # Unknown models have no pricing entry.
        cost_usd = 0.0

    return ModelUsage(
        model=model,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=total_tokens,
        cost_usd=cost_usd,
    )


def _is_reasoning_param_error(error: Exception) -> bool:
    error_str = str(error).lower()
    return ("reasoning_effort" in error_str or "reasoning" in error_str) and (
        "unsupported" in error_str or "not support" in error_str
    )


def extract_json_object(text: str) -> Optional[Any]:
    """Best-effort extraction of a JSON object embedded in arbitrary text."""
    if not isinstance(text, str):
        return None

    candidates: List[str] = []
    for block in re.findall(r"```(?:json)?\s*(\{.*?\})\s*```", text, flags=re.DOTALL):
        candidates.append(block)
    candidates.append(text.strip())

    decoder = json.JSONDecoder()
    for candidate in candidates:
        candidate_stripped = candidate.strip()
        try:
            return json.loads(candidate_stripped)
        except ValueError:
            pass

        for idx, ch in enumerate(candidate_stripped):
            if ch == "{":
                try:
                    obj, _ = decoder.raw_decode(candidate_stripped[idx:])
                    return obj
                except ValueError:
                    continue
    return None


# ---------------------------------------------------------------------------
# Public text-generation helpers
# ---------------------------------------------------------------------------


async def generate_text_with_cost(
    prompt: str,
    system_prompt: str = "",
    image: bytes | bytearray | str | None = None,
    image_detail: str = "high",
    model: str = "gpt-4o",
    reasoning_level: Union[ReasoningLevel, str, None] = None,
    max_tokens: int = 500,
) -> Tuple[str, ModelUsage]:
    """Generate text (optionally about a screenshot) and capture usage/cost."""
    provider = infer_provider(model)
    config = _PROVIDERS.get(provider, ProviderConfig(env_vars=()))
    kwargs: dict[str, Any] = {
        "model": model,
        "messages": build_messages(prompt, system_prompt, image, image_detail, model),
        "api_key": _resolve_api_key(model, provider),
        "max_tokens": max_tokens,
    }

    level = ReasoningLevel.coerce(reasoning_level) if reasoning_level is not None else ReasoningLevel.NONE
    if (
        level is not ReasoningLevel.NONE
        and config.supports_reasoning_flag
        and model.lower() not in _MODELS_WITHOUT_REASONING
    ):
        kwargs["reasoning_effort"] = level.value

    try:
        response = await acompletion(**kwargs)
    except Exception as exc:
        if "reasoning_effort" in kwargs and _is_reasoning_param_error(exc):
            kwargs.pop("reasoning_effort", None)
            _MODELS_WITHOUT_REASONING.add(model.lower())
            get_event_logger().system_warning(
                f"Model {model} doesn't support reasoning_effort, retrying without it..."
            )
            response = await acompletion(**kwargs)
        else:
            raise

    text = _extract_text_from_response(response)
    usage = _extract_usage(response, model)
    get_event_logger().llm_cost(
        cost_usd=usage.cost_usd,
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        total_tokens=usage.total_tokens,
        model=model,
    )
    return text, usage


async def generate_text(
    prompt: str,
    system_prompt: str = "",
    image: bytes | bytearray | str | None = None,
    image_detail: str = "high",
    model: str = "gpt-4o",
    reasoning_level: Union[ReasoningLevel, str, None] = None,
) -> str:
    """Convenience helper returning only the generated text."""
    text, _ = await generate_text_with_cost(
        prompt,
        system_prompt=system_prompt,
        image=image,
        image_detail=image_detail,
        model=model,
        reasoning_level=reasoning_level,
    )
    return text
