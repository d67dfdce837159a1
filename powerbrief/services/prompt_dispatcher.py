"""
PromptDispatcher - renders stored prompt templates and calls the configured provider.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import logfire

from ..core.exceptions import ConfigurationError, MediaFetchError
from .llm_providers import LLMProvider, MediaAttachment, ProviderResponse, get_provider
from .media_service import MediaService
from .models import ProviderSettings

logger = logging.getLogger(__name__)

CONTEXT_PLACEHOLDER = "{{contextData}}"

MEDIA_FAILURE_NOTE = "\n\nNOTE: Tried to include media from {url} but failed to fetch it."


def render_prompt(template: str, context: Dict[str, Any]) -> str:
    """
    Substitute the serialized context into a prompt template.

    Only the first {{contextData}} is replaced; the context is pretty-printed
    JSON so operators can read the final prompt.
    """
    if CONTEXT_PLACEHOLDER not in template:
        logger.warning("Prompt template has no {{contextData}} placeholder; context not included")
        return template

    context_json = json.dumps(context, indent=2, ensure_ascii=False)
    return template.replace(CONTEXT_PLACEHOLDER, context_json, 1)


class PromptDispatcher:
    """Sends rendered prompts to Gemini or Claude. No retries."""

    def __init__(
        self,
        provider_factory: Callable[[ProviderSettings], LLMProvider] = get_provider,
        media_service: Optional[MediaService] = None,
    ):
        self.provider_factory = provider_factory
        self.media_service = media_service or MediaService()

    async def dispatch(self, context: Dict[str, Any], settings: ProviderSettings) -> ProviderResponse:
        """
        Render the settings' template with the context and generate.

        Raises:
            ConfigurationError: settings have no prompt template
            GenerationError: provider call failed
        """
        if not settings.prompt_template or not settings.prompt_template.strip():
            raise ConfigurationError("Prompt template is not configured", missing_field="prompt_template")

        prompt = render_prompt(settings.prompt_template, context)
        return await self.dispatch_prompt(prompt, settings)

    async def dispatch_prompt(
        self,
        prompt: str,
        settings: ProviderSettings,
        attachments: Optional[List[MediaAttachment]] = None,
    ) -> ProviderResponse:
        """Send an already-rendered prompt."""
        provider = self.provider_factory(settings)

        with logfire.span("dispatch_prompt", provider=settings.provider, model=settings.model):
            response = await provider.generate(
                prompt,
                system_instructions=settings.system_instructions,
                attachments=attachments,
                response_schema=settings.response_schema,
            )

        logger.info(
            f"{settings.provider} ({settings.model}) returned {len(response.text)} chars"
        )
        return response

    async def dispatch_with_media(
        self,
        prompt: str,
        settings: ProviderSettings,
        media: List[Tuple[str, Optional[str]]],
    ) -> ProviderResponse:
        """
        Fetch media and send it inline with the prompt.

        A media file that cannot be fetched is skipped and a note is
        appended to the prompt instead; the call goes ahead text-only.

        Args:
            prompt: Rendered prompt text
            settings: Provider settings
            media: (url, type hint) pairs
        """
        attachments: List[MediaAttachment] = []
        for url, type_hint in media:
            try:
                attachments.append(await self.media_service.fetch(url, type_hint))
            except MediaFetchError as e:
                logger.warning(f"Proceeding without media {url}: {e}")
                prompt += MEDIA_FAILURE_NOTE.format(url=url)

        return await self.dispatch_prompt(prompt, settings, attachments=attachments or None)
