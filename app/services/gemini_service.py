"""
BizModelAI — GeminiService: text-generation client for narrative content.

One entry point, ``generate(prompt, ...)``, returning ``{"content": str}``.
Each call walks a three-model chain; inside each model, transient failures
(429 / 5xx) are retried with exponential backoff via tenacity, anything
else moves straight on to the next model.  When the whole chain fails a
``RuntimeError`` is raised.  Deadlines belong to the caller.

Model chain (configurable):
    GEMINI_MODEL_PRIMARY -> GEMINI_MODEL_FALLBACK -> GEMINI_MODEL_STABLE
"""

from __future__ import annotations

import time
from typing import Any

import google.generativeai as genai
import structlog
from google.generativeai.types import HarmBlockThreshold, HarmCategory
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from app.config import get_settings

logger = structlog.get_logger(__name__)

DEFAULT_SYSTEM_MESSAGE = (
    "You are an expert business coach. Generate JSON responses only. "
    "Use professional, supportive tone. Base analysis strictly on provided "
    "user profile data."
)

JSON_MIME_TYPE = "application/json"
TEXT_MIME_TYPE = "text/plain"

# Only clearly harmful output is blocked.
SAFETY_SETTINGS = {
    category: HarmBlockThreshold.BLOCK_ONLY_HIGH
    for category in (
        HarmCategory.HARM_CATEGORY_HARASSMENT,
        HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
        HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
    )
}


def _is_retryable_api_error(exc: BaseException) -> bool:
    """True for rate-limit (429) and transient server (500/503) errors.

    The SDK surfaces these under several exception types, so both the
    type name and the message are inspected.
    """
    message = str(exc).lower()
    type_name = type(exc).__name__.lower()

    if "429" in message or "resource_exhausted" in message:
        return True
    if "500" in message or "503" in message or "internal" in message:
        return True
    return "resourceexhausted" in type_name or "serviceunavailable" in type_name


def _extract_text(response: Any, model_name: str) -> str:
    if not response.candidates:
        raise ValueError(
            f"{model_name} returned no candidates "
            f"(prompt feedback: {response.prompt_feedback})"
        )
    text = response.text
    if not text or not text.strip():
        raise ValueError(f"{model_name} returned empty text")
    return text


class GeminiService:
    """Generate text, optionally JSON, with the Gemini model chain."""

    def __init__(self) -> None:
        settings = get_settings()
        genai.configure(api_key=settings.GEMINI_API_KEY)

        self.model_chain: list[str] = [
            settings.GEMINI_MODEL_PRIMARY,
            settings.GEMINI_MODEL_FALLBACK,
            settings.GEMINI_MODEL_STABLE,
        ]
        self.max_attempts: int = settings.GEMINI_MAX_ATTEMPTS

        logger.info(
            "gemini_service_initialised",
            model_chain=self.model_chain,
            max_attempts=self.max_attempts,
        )

    @staticmethod
    def _generation_config(
        max_tokens: int, temperature: float, response_format: dict | None
    ) -> Any:
        wants_json = bool(response_format) and response_format.get("type") == "json_object"
        return genai.GenerationConfig(
            max_output_tokens=max_tokens,
            temperature=temperature,
            response_mime_type=JSON_MIME_TYPE if wants_json else TEXT_MIME_TYPE,
        )

    async def generate(
        self,
        prompt: str,
        max_tokens: int = 1200,
        temperature: float = 0.7,
        response_format: dict | None = None,
        system_message: str | None = None,
    ) -> dict[str, str]:
        """Generate a completion for ``prompt``.

        Parameters
        ----------
        prompt:
            The fully constructed user prompt.
        max_tokens:
            Output token ceiling.
        temperature:
            Sampling temperature.
        response_format:
            ``{"type": "json_object"}`` requests a JSON response.
        system_message:
            System instruction; defaults to the business-coach persona.

        Raises
        ------
        RuntimeError
            When every model in the chain fails.
        """
        config = self._generation_config(max_tokens, temperature, response_format)
        instruction = system_message or DEFAULT_SYSTEM_MESSAGE
        errors: list[str] = []

        for model_name in self.model_chain:
            started = time.perf_counter()
            try:
                text = await self._call_model(model_name, prompt, config, instruction)
            except Exception as exc:
                errors.append(f"{model_name}: {exc}")
                logger.warning("model_fallback", failed_model=model_name, error=str(exc))
                continue

            logger.debug(
                "gemini_generation_succeeded",
                model=model_name,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
                chars=len(text),
            )
            return {"content": text}

        raise RuntimeError(
            f"All models in chain exhausted. Last error: {errors[-1] if errors else 'none'}"
        )

    async def _call_model(
        self, model_name: str, prompt: str, config: Any, system_message: str
    ) -> str:
        """One model, retried on transient errors (1s initial wait, 20s max)."""
        model = genai.GenerativeModel(model_name, system_instruction=system_message)

        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_retryable_api_error),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=20, exp_base=2),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        "gemini_call_retry",
                        model=model_name,
                        attempt_number=attempt.retry_state.attempt_number,
                    )
                response = await model.generate_content_async(
                    prompt,
                    safety_settings=SAFETY_SETTINGS,
                    generation_config=config,
                )
                return _extract_text(response, model_name)

        raise RuntimeError(f"Gemini call for {model_name} made no attempts")
