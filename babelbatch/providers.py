"""Translation provider abstractions."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple, Type

import httpx

from .codec import build_prompt, decode_request, encode_response
from .configuration import DEFAULT_OLLAMA_HOST, BabelBatchConfig, ProviderSettings
from .errors import (
    ErrorCategory,
    TranslationProviderConfigurationError,
    TranslationProviderError,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a professional translator. "
    "Provide only the translation without any explanations."
)
OLLAMA_TIMEOUT = httpx.Timeout(connect=10.0, write=60.0, read=120.0, pool=10.0)


def classify_error(exc: BaseException) -> ErrorCategory:
    """Map an SDK or transport failure onto an error category."""

    status = getattr(exc, "status_code", None)
    response = getattr(exc, "response", None)
    if status is None and response is not None:
        status = getattr(response, "status_code", None)
    if status in {401, 403}:
        return ErrorCategory.AUTHENTICATION
    if status == 429:
        return ErrorCategory.RATE_LIMIT
    if isinstance(exc, httpx.TransportError):
        return ErrorCategory.NETWORK

    message = str(exc).lower()
    if "api key" in message or "api_key" in message or "unauthorized" in message:
        return ErrorCategory.AUTHENTICATION
    if "rate limit" in message or "too many requests" in message:
        return ErrorCategory.RATE_LIMIT
    if any(word in message for word in ("network", "connect", "timed out", "timeout")):
        return ErrorCategory.NETWORK
    return ErrorCategory.TRANSLATION


class TranslationProvider(ABC):
    """Abstract adapter for translation backends.

    ``translate`` takes a request payload in the tagged grammar and returns
    the backend's raw reply. Every failure surfaces as
    :class:`TranslationProviderError` so a job can record it against one
    batch and carry on.
    """

    name = "base"

    def __init__(
        self,
        settings: ProviderSettings | None = None,
        *,
        debug: bool = False,
    ) -> None:
        self.settings = settings or ProviderSettings()
        self.debug = debug
        self._client: Any = None

    @property
    def label(self) -> str:
        return format_provider_name(self.name)

    @abstractmethod
    def validate_config(self) -> bool:
        """Whether enough settings are present to call the backend."""

    @abstractmethod
    def _build_client(self) -> Any:
        """Create the vendor client; raise the configuration error if impossible."""

    @abstractmethod
    async def _complete(self, prompt: str) -> str:
        """Send one prompt and return the text answer."""

    @abstractmethod
    async def _fetch_models(self) -> List[str]:
        """Return model identifiers, raising on failure."""

    def _ensure_client(self) -> Any:
        if self._client is None:
            self._client = self._build_client()
        return self._client

    async def translate(
        self,
        payload: str,
        target_language: str,
        source_language: str = "auto",
    ) -> str:
        if not self.validate_config():
            raise TranslationProviderError(
                f"Invalid {self.label} configuration",
                category=ErrorCategory.CONFIGURATION,
                provider=self.name,
            )
        try:
            self._ensure_client()
        except TranslationProviderConfigurationError as exc:
            raise TranslationProviderError(
                str(exc), category=ErrorCategory.CONFIGURATION, provider=self.name
            ) from exc

        prompt = build_prompt(payload, target_language, source_language)
        self._log_debug("provider.request.prompt", prompt)
        try:
            reply = await self._complete(prompt)
        except TranslationProviderError:
            raise
        except Exception as exc:  # SDKs raise a wide variety of errors
            raise self._handle_error(exc) from exc
        self._log_debug("provider.response.raw", reply)
        return reply

    async def get_models(self) -> List[str]:
        """Best-effort model listing; an empty list on any failure."""

        try:
            self._ensure_client()
            return await self._fetch_models()
        except Exception as exc:
            logger.warning("Failed to fetch models from %s: %s", self.label, exc)
            return []

    async def check_connection(self) -> None:
        """Raise :class:`TranslationProviderError` if the backend is unreachable."""

        try:
            self._ensure_client()
            await self._fetch_models()
        except TranslationProviderError:
            raise
        except TranslationProviderConfigurationError as exc:
            raise TranslationProviderError(
                str(exc), category=ErrorCategory.CONFIGURATION, provider=self.name
            ) from exc
        except Exception as exc:
            raise self._handle_error(exc) from exc

    def _handle_error(self, exc: BaseException) -> TranslationProviderError:
        category = classify_error(exc)
        logger.debug("[%s] provider error", self.name, exc_info=exc)
        if category is ErrorCategory.AUTHENTICATION:
            message = f"Invalid API key for {self.label}"
        elif category is ErrorCategory.RATE_LIMIT:
            message = f"Rate limit exceeded for {self.label}"
        elif category is ErrorCategory.NETWORK:
            message = f"Network error when connecting to {self.label}"
        else:
            message = f"Translation failed: {exc}"
        return TranslationProviderError(message, category=category, provider=self.name)

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit request/response payloads when provider debugging is enabled."""

        if not self.debug:
            return
        if isinstance(payload, (dict, list)):
            message = json.dumps(payload, ensure_ascii=False, indent=2)
        else:
            message = str(payload)
        logger.debug("[%s] %s:\n%s", self.name, label, message)


class EchoTranslationProvider(TranslationProvider):
    """A provider that answers with the original text (useful for testing)."""

    name = "echo"

    def __init__(
        self,
        settings: ProviderSettings | None = None,
        *,
        debug: bool = False,
        suffix: str = "",
    ) -> None:
        super().__init__(settings, debug=debug)
        self.suffix = suffix
        self.requests: List[str] = []

    def validate_config(self) -> bool:
        return True

    def _build_client(self) -> Any:
        return self

    async def _complete(self, prompt: str) -> str:
        # Item text is escaped, so the last "<request>" starts the payload.
        start = prompt.rfind("<request>")
        payload = prompt[start:] if start >= 0 else ""
        self.requests.append(payload)
        texts = decode_request(payload)
        return encode_response([(text, text + self.suffix) for text in texts])

    async def _fetch_models(self) -> List[str]:
        return ["echo"]


class OpenAIProvider(TranslationProvider):
    """Chat Completions backed provider (GPT models)."""

    name = "openai"
    DEFAULT_MODEL = "gpt-4o-mini"

    def validate_config(self) -> bool:
        return bool(self.settings.api_key)

    @property
    def model(self) -> str:
        return self.settings.model or self.DEFAULT_MODEL

    def _client_kwargs(self) -> Dict[str, Any]:
        if not self.settings.api_key:
            raise TranslationProviderConfigurationError(
                "OpenAI configuration missing. Set OPENAI_API_KEY or choose a "
                "different provider."
            )
        return {"api_key": self.settings.api_key, "base_url": self.settings.base_url}

    def _build_client(self) -> Any:
        kwargs = self._client_kwargs()
        try:
            from openai import AsyncOpenAI  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise TranslationProviderConfigurationError(
                "OpenAI Python SDK not installed. Install with `pip install openai`."
            ) from exc
        return AsyncOpenAI(**kwargs)

    async def _complete(self, prompt: str) -> str:
        response = await self._client.chat.completions.create(
            model=self.model,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        )
        choices = getattr(response, "choices", None) or []
        if not choices:
            raise TranslationProviderError(
                "Translation provider response empty or unrecognised.",
                provider=self.name,
            )
        content = getattr(choices[0].message, "content", None) or ""
        return content.strip()

    async def _fetch_models(self) -> List[str]:
        page = await self._client.models.list()
        return sorted(model.id for model in page.data if "gpt" in model.id)


class OpenAICompatibleProvider(OpenAIProvider):
    """Any OpenAI API compatible service (LM Studio, LocalAI, vLLM...)."""

    name = "openai-compatible"

    def validate_config(self) -> bool:
        return bool(self.settings.base_url and self.settings.model)

    def _client_kwargs(self) -> Dict[str, Any]:
        if not self.settings.base_url:
            raise TranslationProviderConfigurationError(
                "Base URL is required for OpenAI-compatible providers."
            )
        # Some compatible services do not check the key.
        return {
            "api_key": self.settings.api_key or "dummy-key",
            "base_url": self.settings.base_url,
        }

    async def _fetch_models(self) -> List[str]:
        page = await self._client.models.list()
        return [model.id for model in page.data]


class AnthropicProvider(TranslationProvider):
    """Messages API backed provider (Claude models)."""

    name = "anthropic"

    def validate_config(self) -> bool:
        return bool(self.settings.api_key and self.settings.model)

    def _client_kwargs(self) -> Dict[str, Any]:
        if not self.settings.api_key:
            raise TranslationProviderConfigurationError(
                "Anthropic configuration missing. Set ANTHROPIC_API_KEY or choose "
                "a different provider."
            )
        return {"api_key": self.settings.api_key, "base_url": self.settings.base_url}

    def _build_client(self) -> Any:
        kwargs = self._client_kwargs()
        try:
            from anthropic import AsyncAnthropic  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise TranslationProviderConfigurationError(
                "Anthropic Python SDK not installed. Install with `pip install anthropic`."
            ) from exc
        return AsyncAnthropic(**kwargs)

    async def _complete(self, prompt: str) -> str:
        response = await self._client.messages.create(
            model=self.settings.model,
            max_tokens=self.settings.max_tokens,
            temperature=self.settings.temperature,
            messages=[{"role": "user", "content": prompt}],
        )
        content = getattr(response, "content", None) or []
        if not content:
            return ""
        return (getattr(content[0], "text", None) or "").strip()

    async def _fetch_models(self) -> List[str]:
        page = await self._client.models.list()
        return [model.id for model in page.data]


class AnthropicCompatibleProvider(AnthropicProvider):
    """Any Anthropic API compatible service behind a custom base URL."""

    name = "anthropic-compatible"

    def validate_config(self) -> bool:
        return bool(self.settings.base_url and self.settings.model)

    def _client_kwargs(self) -> Dict[str, Any]:
        if not self.settings.base_url:
            raise TranslationProviderConfigurationError(
                "Base URL is required for Anthropic-compatible providers."
            )
        return {
            "api_key": self.settings.api_key or "dummy-key",
            "base_url": self.settings.base_url,
        }


class GeminiProvider(TranslationProvider):
    """Google Gen AI backed provider."""

    name = "gemini"

    def validate_config(self) -> bool:
        return bool(self.settings.api_key and self.settings.model)

    def _build_client(self) -> Any:
        if not self.settings.api_key:
            raise TranslationProviderConfigurationError(
                "Gemini configuration missing. Set GEMINI_API_KEY or choose a "
                "different provider."
            )
        try:
            from google import genai  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise TranslationProviderConfigurationError(
                "Google Gen AI SDK not installed. Install with `pip install google-genai`."
            ) from exc
        return genai.Client(api_key=self.settings.api_key)

    async def _complete(self, prompt: str) -> str:
        from google.genai import types  # type: ignore

        response = await self._client.aio.models.generate_content(
            model=self.settings.model,
            contents=prompt,
            config=types.GenerateContentConfig(
                temperature=self.settings.temperature,
                max_output_tokens=self.settings.max_tokens,
            ),
        )
        return (response.text or "").strip()

    async def _fetch_models(self) -> List[str]:
        pager = await self._client.aio.models.list(config={"page_size": 100})
        models: List[str] = []
        async for model in pager:
            name = (getattr(model, "name", None) or "").replace("models/", "")
            if "gemini" in name:
                models.append(name)
        return models


class OllamaProvider(TranslationProvider):
    """Local Ollama server reached over its REST API."""

    name = "ollama"

    def validate_config(self) -> bool:
        return bool(self.settings.model)

    def _build_client(self) -> str:
        return (self.settings.host or DEFAULT_OLLAMA_HOST).rstrip("/")

    async def _complete(self, prompt: str) -> str:
        body = {
            "model": self.settings.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": self.settings.temperature},
        }
        async with httpx.AsyncClient(base_url=self._client, timeout=OLLAMA_TIMEOUT) as client:
            response = await client.post("/api/generate", json=body)
            response.raise_for_status()
            result = response.json()
        return str(result.get("response", "")).strip()

    async def _fetch_models(self) -> List[str]:
        async with httpx.AsyncClient(base_url=self._client, timeout=OLLAMA_TIMEOUT) as client:
            response = await client.get("/api/tags")
            response.raise_for_status()
            result = response.json()
        return [model["name"] for model in result.get("models", []) if "name" in model]


PROVIDERS: Dict[str, Type[TranslationProvider]] = {
    "gemini": GeminiProvider,
    "anthropic": AnthropicProvider,
    "anthropic-compatible": AnthropicCompatibleProvider,
    "openai": OpenAIProvider,
    "openai-compatible": OpenAICompatibleProvider,
    "ollama": OllamaProvider,
    "echo": EchoTranslationProvider,
}

PROVIDER_LABELS = {
    "gemini": "Gemini",
    "anthropic": "Anthropic (Claude)",
    "anthropic-compatible": "Anthropic Compatible",
    "openai": "OpenAI",
    "openai-compatible": "OpenAI Compatible",
    "ollama": "Ollama",
    "echo": "Echo",
}

ALIASES = {
    "claude": "anthropic",
    "google": "gemini",
    "gpt": "openai",
    "noop": "echo",
    "mock": "echo",
}


def format_provider_name(name: str) -> str:
    return PROVIDER_LABELS.get(name, name)


def available_providers() -> List[str]:
    return list(PROVIDERS)


def normalise_provider_name(name: str | None) -> str:
    normalized = (name or "openai").strip().lower().replace("_", "-")
    return ALIASES.get(normalized, normalized)


def build_provider(
    name: str | None,
    settings: BabelBatchConfig | None = None,
    *,
    debug: bool = False,
) -> TranslationProvider:
    """Factory to create providers by name."""

    normalized = normalise_provider_name(name)
    provider_cls = PROVIDERS.get(normalized)
    if provider_cls is None:
        raise TranslationProviderConfigurationError(
            f"Unknown translation provider '{name}'."
        )
    provider_settings: Optional[ProviderSettings] = None
    if settings is not None:
        provider_settings = settings.provider(normalized)
        if not provider_settings.enabled:
            raise TranslationProviderConfigurationError(
                f"Provider '{normalized}' is not enabled."
            )
    return provider_cls(provider_settings, debug=debug)


async def list_models(
    name: str | None,
    settings: BabelBatchConfig | None = None,
) -> List[str]:
    provider = build_provider(name, settings)
    return await provider.get_models()


async def probe_provider(
    name: str | None,
    settings: BabelBatchConfig | None = None,
) -> Tuple[bool, Optional[str]]:
    """Connection check; returns ``(ok, error_message)``."""

    try:
        provider = build_provider(name, settings)
        await provider.check_connection()
    except (TranslationProviderError, TranslationProviderConfigurationError) as exc:
        return False, str(exc)
    return True, None
