"""
Client for the hosted generative text model.

``GenerationClient.generate`` sends one prompt and returns the raw completion
text. Provider failures are translated into the service's error types and
are never retried here; a circuit breaker fails fast after repeated failures.
"""
import logging
from functools import lru_cache
from typing import Callable, Optional

from google import genai
from google.genai import types as genai_types
from groq import Groq

from config import Settings, get_settings
from error_handling import (
    CircuitBreaker,
    ConfigurationError,
    GenerationAPIError,
    QuotaExceededError,
    VibeCheckError,
)
from logger import performance_monitor

logger = logging.getLogger("vibecheck.generation_client")

DEFAULT_GROQ_MODEL = "llama-3.1-8b-instant"


class GeminiBackend:
    name = "gemini"

    def __init__(self, api_key: Optional[str], temperature: float = 0.7):
        if not api_key:
            raise ConfigurationError("Missing Gemini API key in environment variables")
        self._client = genai.Client(api_key=api_key)
        self.temperature = temperature

    def complete(self, prompt: str, model: str) -> str:
        response = self._client.models.generate_content(
            model=model,
            contents=prompt,
            config=genai_types.GenerateContentConfig(temperature=self.temperature),
        )
        return response.text or ""


class GroqBackend:
    name = "groq"

    def __init__(self, api_key: Optional[str], temperature: float = 0.7):
        if not api_key:
            raise ConfigurationError("Missing Groq API key in environment variables")
        self._client = Groq(api_key=api_key)
        self.temperature = temperature

    def complete(self, prompt: str, model: str) -> str:
        completion = self._client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
        )
        return completion.choices[0].message.content or ""


def translate_provider_error(exc: Exception) -> VibeCheckError:
    """Map a provider exception onto the service error taxonomy."""
    status = getattr(exc, "code", None)
    if not isinstance(status, int):
        status = getattr(exc, "status_code", None)
    message = str(exc)
    lowered = message.lower()

    if status == 429 or "quota" in lowered or "resource_exhausted" in lowered or "rate limit" in lowered:
        return QuotaExceededError("API quota exceeded. Please try again later.", details=message)
    if status in (401, 403) or "api key" in lowered:
        return ConfigurationError(
            "Missing or invalid API key. Please check your environment variables.", details=message
        )
    return GenerationAPIError(f"API error: {message}", details=message)


class GenerationClient:
    """Provider-agnostic text completion.

    The backend is created on first use, so a missing credential surfaces as
    a ``ConfigurationError`` from the request that needs the model.
    """

    def __init__(
        self,
        backend_factory: Callable[[], object],
        default_model: str,
        breaker: Optional[CircuitBreaker] = None,
        provider: str = "custom",
    ):
        self._backend_factory = backend_factory
        self._backend = None
        self.default_model = default_model
        self.breaker = breaker
        self.provider = provider

    def _get_backend(self):
        if self._backend is None:
            self._backend = self._backend_factory()
        return self._backend

    def generate(self, prompt: str, model: Optional[str] = None) -> str:
        model = model or self.default_model
        backend = self._get_backend()

        try:
            with performance_monitor.timer("generation_call_seconds", {"provider": self.provider, "model": model}):
                if self.breaker is not None:
                    text = self.breaker.call(backend.complete, prompt, model)
                else:
                    text = backend.complete(prompt, model)
        except VibeCheckError:
            raise
        except Exception as e:
            error = translate_provider_error(e)
            logger.error("Generation call failed (%s/%s): %s", self.provider, model, e)
            raise error from e

        if not text or not text.strip():
            raise GenerationAPIError("API error: the model returned an empty response")

        logger.debug("Raw model response: %s...", text[:200])
        return text

    def get_state(self) -> dict:
        return {
            "provider": self.provider,
            "model": self.default_model,
            "circuit_breaker": self.breaker.get_state() if self.breaker else None,
        }


def build_generation_client(settings: Settings) -> GenerationClient:
    """Create the client for the configured provider."""
    provider = settings.generation_provider.lower()
    if provider == "gemini":
        def factory():
            return GeminiBackend(settings.google_gemini_api_key, settings.llm_temperature)
        default_model = settings.generation_model
    elif provider == "groq":
        def factory():
            return GroqBackend(settings.groq_api_key, settings.llm_temperature)
        default_model = settings.generation_model
        if default_model.startswith("gemini"):
            default_model = DEFAULT_GROQ_MODEL
    else:
        raise ConfigurationError(f"Unknown generation provider: {settings.generation_provider}")

    breaker = None
    if settings.enable_circuit_breaker:
        breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            timeout=settings.cb_timeout,
        )
    return GenerationClient(factory, default_model, breaker=breaker, provider=provider)


@lru_cache()
def get_generation_client() -> GenerationClient:
    """FastAPI dependency returning the process-wide client."""
    return build_generation_client(get_settings())
