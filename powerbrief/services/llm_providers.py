"""
LLM providers for the OneSheet pipeline.

Each provider exposes a single capability, ``generate``, returning the raw
model text. Parsing is left to the response normalizer.

Providers are picked by name through ``get_provider`` so the dispatcher
never branches on a config string itself.
"""

import base64
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

from anthropic import AsyncAnthropic
from google import genai
from google.genai import types

from ..core.config import Config
from ..core.exceptions import ConfigurationError, GenerationError
from .models import ProviderSettings

logger = logging.getLogger(__name__)


@dataclass
class MediaAttachment:
    """Binary media sent inline with the prompt."""
    data: bytes
    mime_type: str
    source_url: Optional[str] = None


@dataclass
class ProviderResponse:
    """Raw text returned by one provider call."""
    text: str
    provider: str
    model: str
    usage: Dict[str, Any] = field(default_factory=dict)


class LLMProvider(ABC):
    """Base class for generation providers."""

    name: str = ""

    def __init__(self, settings: ProviderSettings):
        self.settings = settings

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_instructions: Optional[str] = None,
        attachments: Optional[List[MediaAttachment]] = None,
        response_schema: Optional[Dict[str, Any]] = None,
    ) -> ProviderResponse:
        """Run one generation and return the raw text."""

    def _fail(self, error: Exception) -> GenerationError:
        logger.error(f"{self.name} generation failed ({self.settings.model}): {error}")
        return GenerationError(
            f"Failed to generate content with {self.name}",
            provider=self.name,
            provider_message=str(error),
        )


# ============================================================================
# Claude
# ============================================================================

IMAGE_MIME_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}


class ClaudeProvider(LLMProvider):
    """Anthropic messages API; system prompt plus one user message."""

    name = "claude"

    def __init__(self, settings: ProviderSettings, client: Optional[AsyncAnthropic] = None):
        super().__init__(settings)
        self.client = client or AsyncAnthropic(api_key=Config.ANTHROPIC_API_KEY or None)

    async def generate(
        self,
        prompt: str,
        system_instructions: Optional[str] = None,
        attachments: Optional[List[MediaAttachment]] = None,
        response_schema: Optional[Dict[str, Any]] = None,
    ) -> ProviderResponse:
        content: List[Dict[str, Any]] = []
        for attachment in attachments or []:
            if attachment.mime_type not in IMAGE_MIME_TYPES:
                raise ConfigurationError(
                    f"Claude cannot accept {attachment.mime_type} attachments; use a Gemini model"
                )
            content.append({
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": attachment.mime_type,
                    "data": base64.b64encode(attachment.data).decode("ascii"),
                },
            })
        content.append({"type": "text", "text": prompt})

        request: Dict[str, Any] = {
            "model": self.settings.model,
            "max_tokens": self.settings.max_output_tokens or Config.CLAUDE_MAX_TOKENS,
            "temperature": self.settings.temperature,
            "messages": [{"role": "user", "content": content}],
        }
        if system_instructions:
            request["system"] = system_instructions

        logger.info(f"Calling Claude {self.settings.model} (prompt {len(prompt)} chars)")
        try:
            message = await self.client.messages.create(**request)
        except Exception as e:
            raise self._fail(e) from e

        text = "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        )
        if not text.strip():
            raise self._fail(ValueError("Claude returned an empty response"))

        usage = {}
        if getattr(message, "usage", None) is not None:
            usage = {
                "inputTokens": message.usage.input_tokens,
                "outputTokens": message.usage.output_tokens,
            }

        return ProviderResponse(text=text, provider=self.name, model=self.settings.model, usage=usage)


# ============================================================================
# Gemini
# ============================================================================

# Brand copy regularly trips the default filters on health/beauty claims
SAFETY_SETTINGS = [
    types.SafetySetting(category=category, threshold=types.HarmBlockThreshold.BLOCK_ONLY_HIGH)
    for category in (
        types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
        types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
    )
]


class GeminiProvider(LLMProvider):
    """google-genai generate_content with optional JSON/schema mode and inline media."""

    name = "gemini"

    def __init__(self, settings: ProviderSettings, client: Optional[genai.Client] = None):
        super().__init__(settings)
        self.client = client or genai.Client(api_key=Config.GEMINI_API_KEY or None)

    def _build_config(
        self,
        system_instructions: Optional[str],
        response_schema: Optional[Dict[str, Any]],
    ) -> types.GenerateContentConfig:
        settings = self.settings
        config: Dict[str, Any] = {
            "temperature": settings.temperature,
            "safety_settings": SAFETY_SETTINGS,
        }
        if system_instructions:
            config["system_instruction"] = system_instructions
        if response_schema or settings.json_mode:
            config["response_mime_type"] = "application/json"
        if response_schema:
            config["response_schema"] = response_schema
        if settings.max_output_tokens:
            config["max_output_tokens"] = settings.max_output_tokens
        if settings.top_k is not None:
            config["top_k"] = settings.top_k
        if settings.top_p is not None:
            config["top_p"] = settings.top_p
        return types.GenerateContentConfig(**config)

    async def generate(
        self,
        prompt: str,
        system_instructions: Optional[str] = None,
        attachments: Optional[List[MediaAttachment]] = None,
        response_schema: Optional[Dict[str, Any]] = None,
    ) -> ProviderResponse:
        contents: List[Any] = [
            types.Part.from_bytes(data=a.data, mime_type=a.mime_type) for a in attachments or []
        ]
        contents.append(prompt)

        config = self._build_config(system_instructions, response_schema)

        logger.info(
            f"Calling Gemini {self.settings.model} (prompt {len(prompt)} chars, "
            f"{len(contents) - 1} attachment(s), schema={'yes' if response_schema else 'no'})"
        )
        try:
            response = await self.client.aio.models.generate_content(
                model=self.settings.model,
                contents=contents,
                config=config,
            )
            text = response.text
        except Exception as e:
            raise self._fail(e) from e

        if not text or not text.strip():
            finish_reason = "unknown"
            if getattr(response, "candidates", None):
                finish_reason = str(response.candidates[0].finish_reason)
            raise self._fail(ValueError(f"Gemini returned an empty response (finish reason: {finish_reason})"))

        usage = {}
        metadata = getattr(response, "usage_metadata", None)
        if metadata is not None:
            usage = {
                "inputTokens": metadata.prompt_token_count,
                "outputTokens": metadata.candidates_token_count,
            }

        return ProviderResponse(text=text, provider=self.name, model=self.settings.model, usage=usage)


# ============================================================================
# Factory
# ============================================================================

PROVIDERS: Dict[str, Type[LLMProvider]] = {
    ClaudeProvider.name: ClaudeProvider,
    GeminiProvider.name: GeminiProvider,
}


def get_provider(settings: ProviderSettings) -> LLMProvider:
    """
    Instantiate the provider named in the settings.

    Raises:
        ConfigurationError: unknown provider name
    """
    provider_cls = PROVIDERS.get(settings.provider.lower())
    if provider_cls is None:
        raise ConfigurationError(
            f"Unknown AI provider '{settings.provider}'. Available: {', '.join(sorted(PROVIDERS))}",
            missing_field="provider",
        )
    return provider_cls(settings)
