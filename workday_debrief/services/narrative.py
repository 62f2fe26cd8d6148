"""
Narrative Generator.

Turns aggregated data into prose with a local Ollama model. The model call is
raced against the configured timeout and can be abandoned by the caller; in
every failure case the deterministic bullet fallback is returned instead, so
generation itself never fails.
"""

import re
import asyncio
import logging
from typing import Optional

import httpx

from workday_debrief import config
from workday_debrief.integrations.core.types import (
    AggregatedData,
    NarrativeResult,
    NarrativeSource,
    Tone,
    UserFields,
)
from .prompts import build_prompt, generate_bullet_fallback
from .settings import Settings, LLM_TIMEOUT_MIN, LLM_TIMEOUT_MAX

logger = logging.getLogger(__name__)

OLLAMA_CONTEXT_WINDOW = 4096

# Reasoning models wrap their scratchpad in <think> tags
_THINK_RE = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)


class ModelUnavailable(Exception):
    """The model endpoint could not produce text."""


def clean_model_output(text: str) -> str:
    return _THINK_RE.sub("", text or "").strip()


def clamp_timeout(seconds: float) -> float:
    return float(min(max(seconds, LLM_TIMEOUT_MIN), LLM_TIMEOUT_MAX))


class OllamaClient:
    """
    Minimal client for Ollama's /api/generate.

    The HTTP client is scoped to one call so an abandoned call leaves no open
    connection behind.
    """

    def __init__(self, base_url: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = (base_url or config.get_ollama_base_url()).rstrip("/")
        self._transport = transport

    async def generate(self, prompt: str, model: str, temperature: float) -> str:
        """
        Run one non-streaming completion.

        Raises:
            ModelUnavailable: On connection failure, HTTP error or empty output
        """
        # No read timeout here; the caller bounds the whole call
        timeout = httpx.Timeout(None, connect=5.0)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/api/generate",
                    json={
                        "model": model,
                        "prompt": prompt,
                        "stream": False,
                        "options": {
                            "temperature": temperature,
                            "num_ctx": OLLAMA_CONTEXT_WINDOW,
                        },
                    },
                )
        except httpx.ConnectError as e:
            raise ModelUnavailable(
                f"Ollama is not running at {self.base_url}. Start it with 'ollama serve'."
            ) from e
        except httpx.HTTPError as e:
            raise ModelUnavailable(f"Ollama request failed: {e}") from e

        if response.status_code == 404:
            raise ModelUnavailable(f"Model '{model}' is not installed. Run 'ollama pull {model}'.")
        if response.status_code != 200:
            raise ModelUnavailable(f"Ollama returned HTTP {response.status_code}: {response.text[:200]}")

        try:
            text = response.json().get("response", "")
        except (ValueError, AttributeError) as e:
            raise ModelUnavailable(f"Malformed Ollama response: {e}") from e

        text = clean_model_output(text if isinstance(text, str) else "")
        if not text:
            raise ModelUnavailable("Model returned an empty response")
        return text


class NarrativeGenerator:
    """
    Usage:
        generator = NarrativeGenerator()
        result = await generator.generate(data, user_fields, Tone.CASUAL, settings)
        if result.used_fallback:
            warn(result.reason)
    """

    def __init__(self, client: Optional[OllamaClient] = None):
        self._client = client or OllamaClient()

    @staticmethod
    def fallback(data: AggregatedData, user_fields: UserFields, reason: str) -> NarrativeResult:
        return NarrativeResult(
            text=generate_bullet_fallback(data, user_fields),
            source=NarrativeSource.FALLBACK,
            reason=reason,
        )

    async def generate(
        self,
        data: AggregatedData,
        user_fields: UserFields,
        tone: Tone,
        settings: Settings,
        abandon: Optional[asyncio.Event] = None,
    ) -> NarrativeResult:
        """
        Produce a narrative. Never raises for model problems.

        Args:
            data: Aggregated source data
            user_fields: Blockers and tomorrow's priorities
            tone: Requested tone
            settings: Snapshot carrying model, temperature and timeout
            abandon: Setting this event stops waiting for the model and
                     returns the fallback

        Returns:
            NarrativeResult flagged as model or fallback output
        """
        if not settings.enable_llm:
            return self.fallback(data, user_fields, "AI narrative is disabled in Settings")

        timeout = clamp_timeout(settings.llm_timeout_secs)
        prompt = build_prompt(data, user_fields, tone)

        model_task = asyncio.create_task(
            self._client.generate(prompt, settings.llm_model, settings.llm_temperature)
        )
        waiters = {model_task}
        abandon_task = None
        if abandon is not None:
            abandon_task = asyncio.create_task(abandon.wait())
            waiters.add(abandon_task)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            # Covers outer cancellation too: nothing is left running
            for task in waiters:
                if not task.done():
                    task.cancel()

        if model_task not in done:
            if abandon_task is not None and abandon_task in done:
                logger.info("[NARRATIVE] Model call abandoned, using fallback")
                return self.fallback(data, user_fields, "Generation was cancelled")
            logger.warning(f"[NARRATIVE] Model timed out after {timeout:g}s, using fallback")
            return self.fallback(
                data,
                user_fields,
                f"LLM generation timed out after {timeout:g}s. Try increasing the timeout in Settings.",
            )

        try:
            text = model_task.result()
        except ModelUnavailable as e:
            logger.warning(f"[NARRATIVE] {e}, using fallback")
            return self.fallback(data, user_fields, str(e))
        except Exception as e:
            logger.error(f"[NARRATIVE] Unexpected model failure: {e}", exc_info=True)
            return self.fallback(data, user_fields, f"Unexpected model error: {e}")

        logger.info(f"[NARRATIVE] Generated {len(text)} chars with {settings.llm_model}")
        return NarrativeResult(text=text, source=NarrativeSource.MODEL)
