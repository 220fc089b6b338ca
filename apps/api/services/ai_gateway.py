"""
AI Gateway

One entry point for chat completions against the two LLM providers.
Groq and Mistral both expose the OpenAI chat-completions protocol, so both
are driven through the `openai` SDK with a provider-specific base URL.

Fallback policy:
- `fallback=True`: if the requested provider fails (missing key, transport
  error, non-2xx, empty content) the other provider is tried once with the
  same options, on its own default model.
- If both fail, the primary provider's error is raised.
- No other retries and no caching.

Message content comes back either as a string or as a list of chunks;
`normalize_content` flattens both to a string here so nothing downstream has
to care.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from openai import OpenAI

from core.config import settings

logger = logging.getLogger(__name__)

PROVIDER_GROQ = "groq"
PROVIDER_MISTRAL = "mistral"
PROVIDERS = (PROVIDER_GROQ, PROVIDER_MISTRAL)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1024


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    display_name: str
    api_key: Optional[str]
    base_url: str
    default_model: str


@dataclass
class AIUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class AIResponse:
    content: str
    provider: str
    model: str
    usage: Optional[AIUsage] = None
    finish_reason: Optional[str] = None  # "length" means the output hit max_tokens


class AIProviderError(Exception):
    """A provider call failed. str() reads like "Mistral API failed: <reason>"."""

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        display = provider.capitalize()
        super().__init__(f"{display} API failed: {reason}")


def normalize_content(content: Any) -> str:
    """
    Flatten a completion's message content to text.

    Accepts None, a string, or a list of chunks where each chunk is a string,
    a mapping with a "text" key, or an object with a `.text` attribute.
    Chunks without text are skipped.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: List[str] = []
        for chunk in content:
            if isinstance(chunk, str):
                parts.append(chunk)
            elif isinstance(chunk, dict):
                text = chunk.get("text")
                if isinstance(text, str):
                    parts.append(text)
            else:
                text = getattr(chunk, "text", None)
                if isinstance(text, str):
                    parts.append(text)
        return "".join(parts)
    return str(content)


def provider_configs_from_settings() -> Dict[str, ProviderConfig]:
    return {
        PROVIDER_GROQ: ProviderConfig(
            name=PROVIDER_GROQ,
            display_name="Groq",
            api_key=settings.GROQ_API_KEY,
            base_url=settings.GROQ_BASE_URL,
            default_model=settings.GROQ_MODEL,
        ),
        PROVIDER_MISTRAL: ProviderConfig(
            name=PROVIDER_MISTRAL,
            display_name="Mistral",
            api_key=settings.MISTRAL_API_KEY,
            base_url=settings.MISTRAL_BASE_URL,
            default_model=settings.MISTRAL_MODEL,
        ),
    }


class AIGateway:
    """
    Provider-agnostic chat completion with single-shot fallback.

    Args:
        providers: provider name -> ProviderConfig
        client_factory: builds an OpenAI-compatible client for a config.
            Defaults to `openai.OpenAI`; tests pass fakes.
        timeout_s: per-request HTTP timeout
    """

    def __init__(
        self,
        providers: Optional[Dict[str, ProviderConfig]] = None,
        client_factory: Optional[Callable[[ProviderConfig], Any]] = None,
        timeout_s: Optional[float] = None,
    ):
        self.providers = providers if providers is not None else provider_configs_from_settings()
        self.timeout_s = timeout_s if timeout_s is not None else settings.AI_REQUEST_TIMEOUT_S
        self._client_factory = client_factory or self._default_client
        self._clients: Dict[str, Any] = {}

    def _default_client(self, config: ProviderConfig) -> OpenAI:
        # The SDK retries on its own by default; fallback is our only retry.
        return OpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=self.timeout_s,
            max_retries=0,
        )

    def _client(self, config: ProviderConfig) -> Any:
        if config.name not in self._clients:
            self._clients[config.name] = self._client_factory(config)
        return self._clients[config.name]

    def call_provider(
        self,
        provider: str,
        messages: List[Dict[str, str]],
        *,
        model: Optional[str] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        json_mode: bool = False,
    ) -> AIResponse:
        """Single call to one provider. Every failure surfaces as AIProviderError."""
        config = self.providers.get(provider)
        if config is None:
            raise AIProviderError(provider, f"unknown provider '{provider}'")
        if not config.api_key:
            raise AIProviderError(provider, f"{provider.upper()}_API_KEY is not configured")

        request: Dict[str, Any] = {
            "model": model or config.default_model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        try:
            response = self._client(config).chat.completions.create(**request)
        except Exception as e:
            raise AIProviderError(provider, str(e)) from e

        choices = getattr(response, "choices", None) or []
        content = normalize_content(choices[0].message.content) if choices else ""
        finish_reason = getattr(choices[0], "finish_reason", None) if choices else None
        if not content.strip():
            raise AIProviderError(provider, f"No content received from {config.display_name}")

        usage = None
        raw_usage = getattr(response, "usage", None)
        if raw_usage is not None:
            usage = AIUsage(
                prompt_tokens=getattr(raw_usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(raw_usage, "completion_tokens", 0) or 0,
                total_tokens=getattr(raw_usage, "total_tokens", 0) or 0,
            )

        response_model = getattr(response, "model", None)
        return AIResponse(
            content=content,
            provider=provider,
            model=response_model if isinstance(response_model, str) and response_model else request["model"],
            usage=usage,
            finish_reason=finish_reason if isinstance(finish_reason, str) else None,
        )

    def call(
        self,
        messages: List[Dict[str, str]],
        *,
        provider: str = PROVIDER_GROQ,
        fallback: bool = True,
        model: Optional[str] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        json_mode: bool = False,
    ) -> AIResponse:
        """
        Chat completion on `provider`, falling back to the other provider once.

        Raises:
            AIProviderError: the primary's error when every attempt failed
        """
        try:
            return self.call_provider(
                provider,
                messages,
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
                json_mode=json_mode,
            )
        except AIProviderError as primary_error:
            logger.warning(
                f"AI provider {provider} failed: {primary_error}",
                extra={"extra_fields": {"provider": provider, "fallback": fallback}},
            )
            if not fallback:
                raise

            other = PROVIDER_MISTRAL if provider == PROVIDER_GROQ else PROVIDER_GROQ
            try:
                response = self.call_provider(
                    other,
                    messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    json_mode=json_mode,
                )
            except AIProviderError as fallback_error:
                logger.error(f"Fallback provider {other} also failed: {fallback_error}")
                raise primary_error
            logger.info(f"Fallback to {other} succeeded after {provider} failure")
            return response
