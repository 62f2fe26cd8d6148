"""
Narrative Generator Tests

Model output, the deterministic fallback, the timeout bound, abandonment,
and Ollama failure modes. Ollama is replaced by httpx.MockTransport or an
AsyncMock client.

Run: python -m pytest tests/test_narrative.py
 or: python tests/test_narrative.py
"""

import asyncio
import json
import time
from unittest.mock import AsyncMock, MagicMock

import httpx

from workday_debrief.integrations.core.types import (
    AggregatedData,
    Meeting,
    NarrativeSource,
    Ticket,
    Tone,
    UserFields,
)
from workday_debrief.services.narrative import (
    ModelUnavailable,
    NarrativeGenerator,
    OllamaClient,
    clamp_timeout,
    clean_model_output,
)
from workday_debrief.services.prompts import (
    NO_ACTIVITY_TEXT,
    build_prompt,
    generate_bullet_fallback,
    get_template,
)
from workday_debrief.services.settings import Settings

DATA = AggregatedData(
    tickets_closed=[Ticket(id="PROJ-1", title="Fix login", status="Done", url="https://jira/browse/PROJ-1")],
    tickets_in_progress=[Ticket(id="PROJ-2", title="Add export", status="In Progress", url="https://jira/browse/PROJ-2")],
    meetings=[
        Meeting(title="Standup", start="09:00", end="09:15", duration_minutes=15),
        Meeting(title="Planning", start="14:00", end="15:00", duration_minutes=60),
    ],
    focus_hours=3.25,
)
FIELDS = UserFields(blockers="Waiting on API keys", tomorrow_priorities="Ship export")


def _slow_client(seconds: float):
    client = MagicMock()

    async def generate(prompt, model, temperature):
        await asyncio.sleep(seconds)
        return "too late"

    client.generate = generate
    return client


# =============================================================================
# Prompts and fallback
# =============================================================================

def test_prompt_templates():
    assert get_template("casual") != get_template("professional")
    assert get_template("nonsense") == get_template(Tone.PROFESSIONAL)
    assert get_template(None) == get_template(Tone.PROFESSIONAL)

    prompt = build_prompt(DATA, FIELDS, Tone.DETAILED)
    assert "PROJ-1: Fix login" in prompt
    assert "Standup (15m)" in prompt
    assert "3.2 hours" in prompt or "3.3 hours" in prompt
    assert "Waiting on API keys" in prompt
    assert "{" not in prompt

    print("✅ prompt_templates: PASSED")


def test_bullet_fallback():
    text = generate_bullet_fallback(DATA, FIELDS)
    assert "**Tickets Closed (1):** PROJ-1 (Fix login)" in text
    assert "**In Progress (1):** PROJ-2 (Add export)" in text
    assert "**Meetings (2, 75m total):**" in text
    assert "**Blockers:** Waiting on API keys" in text
    assert "**Tomorrow:** Ship export" in text
    assert generate_bullet_fallback(DATA, FIELDS) == text
    print("  ✓ deterministic")

    assert generate_bullet_fallback(AggregatedData(), UserFields()) == NO_ACTIVITY_TEXT
    assert generate_bullet_fallback(AggregatedData(), UserFields(blockers="   ")) == NO_ACTIVITY_TEXT
    print("  ✓ empty day")

    print("✅ bullet_fallback: PASSED")


def test_helpers():
    assert clean_model_output("<think>hmm</think>\n  Done today.  ") == "Done today."
    assert clamp_timeout(1) == 5.0
    assert clamp_timeout(120) == 30.0
    assert clamp_timeout(12) == 12.0
    print("✅ helpers: PASSED")


# =============================================================================
# Generator
# =============================================================================

def test_model_output_used():
    client = MagicMock()
    client.generate = AsyncMock(return_value="A productive day closing PROJ-1.")
    generator = NarrativeGenerator(client)

    result = asyncio.run(generator.generate(DATA, FIELDS, Tone.CASUAL, Settings(llm_model="llama3")))
    assert result.source == NarrativeSource.MODEL
    assert not result.used_fallback
    assert result.text == "A productive day closing PROJ-1."

    prompt, model, temperature = client.generate.call_args.args
    assert model == "llama3"
    assert temperature == 0.7
    assert "I" in prompt

    print("✅ model_output_used: PASSED")


def test_timeout_returns_fallback():
    generator = NarrativeGenerator(_slow_client(30))
    settings = Settings(llm_timeout_secs=5)

    started = time.monotonic()
    result = asyncio.run(generator.generate(DATA, FIELDS, Tone.PROFESSIONAL, settings))
    elapsed = time.monotonic() - started

    assert result.source == NarrativeSource.FALLBACK
    assert result.text == generate_bullet_fallback(DATA, FIELDS)
    assert result.reason == "LLM generation timed out after 5s. Try increasing the timeout in Settings."
    assert 4.5 <= elapsed < 7, f"took {elapsed:.2f}s"
    print(f"  ✓ fallback after {elapsed:.2f}s")

    print("✅ timeout_returns_fallback: PASSED")


def test_disabled_skips_model():
    client = MagicMock()
    client.generate = AsyncMock()
    generator = NarrativeGenerator(client)

    result = asyncio.run(generator.generate(DATA, FIELDS, Tone.PROFESSIONAL, Settings(enable_llm=False)))
    assert result.used_fallback
    assert "disabled" in result.reason
    client.generate.assert_not_called()

    print("✅ disabled_skips_model: PASSED")


def test_abandon_returns_fallback():
    async def run():
        abandon = asyncio.Event()
        generator = NarrativeGenerator(_slow_client(30))
        task = asyncio.create_task(
            generator.generate(DATA, FIELDS, Tone.PROFESSIONAL, Settings(llm_timeout_secs=30), abandon)
        )
        await asyncio.sleep(0.1)
        abandon.set()
        return await asyncio.wait_for(task, timeout=2)

    result = asyncio.run(run())
    assert result.used_fallback
    assert result.reason == "Generation was cancelled"
    print("✅ abandon_returns_fallback: PASSED")


def test_model_unavailable_falls_back():
    client = MagicMock()
    client.generate = AsyncMock(side_effect=ModelUnavailable("Ollama is not running at http://localhost:11434."))
    result = asyncio.run(NarrativeGenerator(client).generate(DATA, FIELDS, Tone.PROFESSIONAL, Settings()))
    assert result.used_fallback
    assert "Ollama is not running" in result.reason
    print("✅ model_unavailable_falls_back: PASSED")


# =============================================================================
# Ollama client
# =============================================================================

def test_ollama_client_request():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"response": "<think>plan</think>Shipped the export."})

    client = OllamaClient("http://ollama:11434/", transport=httpx.MockTransport(handler))
    text = asyncio.run(client.generate("prompt", "qwen3:14b", 0.2))

    assert text == "Shipped the export."
    assert seen["url"] == "http://ollama:11434/api/generate"
    assert seen["body"]["stream"] is False
    assert seen["body"]["options"]["temperature"] == 0.2
    assert seen["body"]["options"]["num_ctx"] == 4096

    print("✅ ollama_client_request: PASSED")


def test_ollama_client_failures():
    cases = [
        (lambda r: httpx.Response(404, json={"error": "model not found"}), "not installed"),
        (lambda r: httpx.Response(200, json={"response": "   "}), "empty"),
        (lambda r: httpx.Response(500, text="boom"), "HTTP 500"),
    ]

    def refuse(request):
        raise httpx.ConnectError("Connection refused", request=request)

    cases.append((refuse, "not running"))

    for handler, expected in cases:
        client = OllamaClient("http://localhost:11434", transport=httpx.MockTransport(handler))
        try:
            asyncio.run(client.generate("p", "qwen3:14b", 0.7))
        except ModelUnavailable as e:
            assert expected in str(e), str(e)
            print(f"  ✓ {e}")
        else:
            raise AssertionError(f"Expected ModelUnavailable ({expected})")

    print("✅ ollama_client_failures: PASSED")


if __name__ == "__main__":
    print("\n🧪 Running narrative tests...\n")

    test_prompt_templates()
    test_bullet_fallback()
    test_helpers()
    test_model_output_used()
    test_timeout_returns_fallback()
    test_disabled_skips_model()
    test_abandon_returns_fallback()
    test_model_unavailable_falls_back()
    test_ollama_client_request()
    test_ollama_client_failures()

    print("\n✅ All narrative tests passed!")
