import pytest

from conftest import run
from healing_locator import ai_utils
from healing_locator.ai_utils import (
    ReasoningLevel,
    build_messages,
    extract_json_object,
    generate_text,
    generate_text_with_cost,
    infer_provider,
    supports_vision,
)
from healing_locator.utils.event_logger import EventType


def fake_response(text="ok", prompt_tokens=120, completion_tokens=8):
    return {
        "choices": [{"message": {"content": text}}],
        "usage": {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens},
    }


@pytest.fixture
def completions(monkeypatch):
    """Replace the LiteLLM call; returns the list of kwargs it received."""
    calls = []
    replies = []

    async def fake_acompletion(**kwargs):
        calls.append(kwargs)
        reply = replies.pop(0) if replies else fake_response()
        if isinstance(reply, Exception):
            raise reply
        return reply

    monkeypatch.setattr(ai_utils, "acompletion", fake_acompletion)
    monkeypatch.setattr(ai_utils, "completion_cost", lambda response: 0.0012)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
    monkeypatch.setattr(ai_utils, "_MODELS_WITHOUT_REASONING", set())
    return calls, replies


def test_reasoning_level_coerce():
    assert ReasoningLevel.coerce("LOW") is ReasoningLevel.LOW
    assert ReasoningLevel.coerce(ReasoningLevel.HIGH) is ReasoningLevel.HIGH
    with pytest.raises(ValueError):
        ReasoningLevel.coerce("Expert")


@pytest.mark.parametrize("model, provider", [
    ("gpt-4o", "openai"),
    ("gemini/gemini-2.0-flash", "gemini"),
    ("gemini-2.5-pro", "google"),
    ("claude-sonnet", "anthropic"),
    ("groq/llama-3.1-8b", "groq"),
])
def test_infer_provider(model, provider):
    assert infer_provider(model) == provider


def test_text_only_models_get_no_image():
    assert not supports_vision("groq/llama-3.1-8b")
    messages = build_messages("Find it", "", b"png", model="groq/llama-3.1-8b")
    assert messages == [{"role": "user", "content": [{"type": "text", "text": "Find it"}]}]


def test_build_messages_attaches_screenshot():
    messages = build_messages("Find it", "You locate elements.", b"\x89PNG", image_detail="low", model="gpt-4o")

    assert messages[0] == {"role": "system", "content": "You locate elements."}
    text, image = messages[1]["content"]
    assert text == {"type": "text", "text": "Find it"}
    assert image["image_url"]["url"].startswith("data:image/png;base64,")
    assert image["image_url"]["detail"] == "low"


@pytest.mark.parametrize("text, expected", [
    ('{"selector": "#a"}', {"selector": "#a"}),
    ('```json\n{"selector": "#a"}\n```', {"selector": "#a"}),
    ('Answer: {"selector": "#a", "confidence": 0.5} done', {"selector": "#a", "confidence": 0.5}),
    ("no json here", None),
    (None, None),
])
def test_extract_json_object(text, expected):
    assert extract_json_object(text) == expected


def test_generate_text_with_cost(completions, quiet_logger):
    calls, replies = completions
    replies.append(fake_response('{"selector": "#buy"}'))

    text, usage = run(generate_text_with_cost("Find buy", image=b"png", model="gpt-4o"))

    assert text == '{"selector": "#buy"}'
    assert usage.input_tokens == 120
    assert usage.output_tokens == 8
    assert usage.total_tokens == 128
    assert usage.cost_usd == pytest.approx(0.0012)
    assert calls[0]["api_key"] == "sk-test"
    assert "reasoning_effort" not in calls[0]
    assert len(quiet_logger.events_of(EventType.LLM_COST)) == 1


def test_missing_api_key_is_an_error(completions, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY")
    with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
        run(generate_text("Find buy", model="gpt-4o"))


def test_reasoning_effort_is_dropped_when_rejected(completions):
    calls, replies = completions
    replies.append(RuntimeError("reasoning_effort is not supported for this model"))
    replies.append(fake_response("fine"))

    text = run(generate_text("Find buy", model="claude-sonnet", reasoning_level="high"))

    assert text == "fine"
    assert calls[0]["reasoning_effort"] == "high"
    assert "reasoning_effort" not in calls[1]

    run(generate_text("Again", model="claude-sonnet", reasoning_level="high"))
    assert "reasoning_effort" not in calls[2]


def test_other_provider_errors_propagate(completions):
    _, replies = completions
    replies.append(RuntimeError("rate limited"))
    with pytest.raises(RuntimeError, match="rate limited"):
        run(generate_text("Find buy", model="gpt-4o"))
