"""
MediaGenerationService - ad brief and UGC script generation with reference media.

Both flows send brand context plus an optional media file (image or video)
to Gemini with a response schema. A media file that cannot be fetched is
replaced by a note in the prompt and generation continues text-only.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from ..core.config import Config
from ..core.exceptions import ParseError
from .models import ProviderSettings
from .prompt_dispatcher import PromptDispatcher
from .response_normalizer import parse_json_response

logger = logging.getLogger(__name__)


DEFAULT_BRIEF_SYSTEM_PROMPT = """You are an expert advertising strategist and copywriter specializing in direct response marketing.
Given the brand context (positioning, target audience, competitors), concept prompt, and media (if provided), generate ad creative components that specifically relate to the media content. Always use the brand information provided in the brand context and never reference other brands.

IMPORTANT: Your response MUST be valid JSON and nothing else."""

DEFAULT_UGC_SYSTEM_PROMPT = """You are an expert UGC (User Generated Content) script creator that specializes in creating engaging scripts for social media videos.

Your task is to create a highly engaging UGC script for a creator. The script should be optimized for the brand's products and target audience.

IMPORTANT: Your response MUST be valid JSON with the following structure and will be enforced by the response schema."""

BRIEF_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "required": [
        "text_hook_options", "spoken_hook_options", "body_content_structured_scenes",
        "cta_script", "cta_text_overlay",
    ],
    "properties": {
        "text_hook_options": {"type": "ARRAY", "items": {"type": "STRING"}},
        "spoken_hook_options": {"type": "ARRAY", "items": {"type": "STRING"}},
        "body_content_structured_scenes": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "required": ["script", "visuals"],
                "properties": {
                    "scene_title": {"type": "STRING"},
                    "script": {"type": "STRING"},
                    "visuals": {"type": "STRING"},
                },
            },
        },
        "cta_script": {"type": "STRING"},
        "cta_text_overlay": {"type": "STRING"},
    },
}

UGC_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "required": [
        "script_content", "hook_body", "cta", "b_roll_shot_list",
        "company_description", "guide_description", "filming_instructions",
    ],
    "properties": {
        "script_content": {
            "type": "OBJECT",
            "required": ["scene_start", "segments", "scene_end"],
            "properties": {
                "scene_start": {"type": "STRING"},
                "segments": {
                    "type": "ARRAY",
                    "items": {
                        "type": "OBJECT",
                        "required": ["segment", "script", "visuals"],
                        "properties": {
                            "segment": {"type": "STRING"},
                            "script": {"type": "STRING"},
                            "visuals": {"type": "STRING"},
                        },
                    },
                },
                "scene_end": {"type": "STRING"},
            },
        },
        "hook_body": {"type": "STRING"},
        "cta": {"type": "STRING"},
        "b_roll_shot_list": {"type": "ARRAY", "items": {"type": "STRING"}},
        "company_description": {"type": "STRING"},
        "guide_description": {"type": "STRING"},
        "filming_instructions": {"type": "STRING"},
    },
}


def _emphasize(custom_prompt: Optional[str]) -> str:
    if not custom_prompt:
        return ""
    return f"IMPORTANT INSTRUCTION: {custom_prompt.upper()}\n\n"


def _hook_list(value: Any) -> List[str]:
    # Models sometimes return hooks as one newline-separated string
    if isinstance(value, str):
        return [h.strip() for h in value.split("\n") if h.strip()]
    if isinstance(value, list):
        return [str(h) for h in value]
    return []


def _parse_object(text: str) -> Dict[str, Any]:
    """
    Parse a response that must be a JSON object.

    Raises:
        ParseError: not JSON, or JSON of another shape
    """
    data = parse_json_response(text)
    if not isinstance(data, dict):
        raise ParseError(
            "AI response is not a JSON object",
            raw_response=text,
            preview_chars=Config.RAW_RESPONSE_PREVIEW_CHARS,
        )
    return data


class MediaGenerationService:
    """Gemini generation for briefs and UGC scripts."""

    def __init__(self, dispatcher: Optional[PromptDispatcher] = None):
        self.dispatcher = dispatcher or PromptDispatcher()

    def _settings(self, system_prompt: str, schema: Dict[str, Any]) -> ProviderSettings:
        return ProviderSettings(
            provider="gemini",
            model=Config.get_model("media"),
            system_instructions=system_prompt,
            response_schema=schema,
            temperature=Config.MEDIA_GENERATION_TEMPERATURE,
        )

    async def generate_brief(
        self,
        brand_context: Dict[str, Any],
        desired_output_fields: List[str],
        concept_prompt: Optional[str] = None,
        current_data: Optional[Dict[str, Any]] = None,
        hook_options: Optional[Dict[str, Any]] = None,
        media: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Generate hooks, scenes and CTA for one ad concept.

        Args:
            brand_context: Brand positioning/audience/competition data
            desired_output_fields: Fields the caller wants filled
            concept_prompt: Concept-specific instruction
            current_data: Current concept content to refine
            hook_options: {"type": "text"|"verbal"|"both", "count": int}
            media: {"url": ..., "type": "image"|"video"}

        Returns:
            Dict with text_hook_options, spoken_hook_options,
            body_content_structured_scenes, cta_script, cta_text_overlay
        """
        hook_instructions = ""
        if hook_options:
            hook_type = hook_options.get("type", "both")
            count = hook_options.get("count", 5)
            hook_instructions = (
                "\nHOOK OPTIONS INSTRUCTIONS:\n"
                f"- Generate {count} unique hook options\n"
                f"- Hook type: {hook_type}\n"
                "- For text hooks: Use emojis and catchy phrases suitable for social media captions\n"
                "- For verbal hooks: Create spoken phrases that would work well when read aloud in videos\n"
                "- If hook type is 'text', only populate the text_hook_options field\n"
                "- If hook type is 'verbal', only populate the spoken_hook_options field\n"
                f"- If hook type is 'both', populate both fields with {count} options each\n"
            )

        media_type = (media or {}).get("type")
        system_prompt = DEFAULT_BRIEF_SYSTEM_PROMPT
        if media_type == "image" and brand_context.get("system_instructions_image"):
            system_prompt = brand_context["system_instructions_image"]
        elif media_type == "video" and brand_context.get("system_instructions_video"):
            system_prompt = brand_context["system_instructions_video"]

        current = (
            json.dumps(current_data, indent=2, ensure_ascii=False)
            if current_data else "No current data provided"
        )
        prompt = (
            f"{_emphasize(concept_prompt)}{hook_instructions}\n"
            "BRAND CONTEXT:\n"
            f"```json\n{json.dumps(brand_context, indent=2, ensure_ascii=False)}\n```\n\n"
            "CURRENT CONTENT (for refinement):\n"
            f"```json\n{current}\n```\n\n"
            f"Please generate content for these fields: {', '.join(desired_output_fields)}\n"
            "If media is provided, make sure your content directly references and relates "
            "to what's shown in the media.\n"
            "Ensure your response is ONLY valid JSON matching the structure in my instructions. "
            "Do not include any other text."
        )

        settings = self._settings(system_prompt, BRIEF_RESPONSE_SCHEMA)
        media_items = [(media["url"], media_type)] if media and media.get("url") else []

        logger.info(
            f"Generating brief: fields={desired_output_fields}, media={'yes' if media_items else 'no'}"
        )
        response = await self.dispatcher.dispatch_with_media(prompt, settings, media_items)

        data = _parse_object(response.text)

        return {
            "text_hook_options": _hook_list(data.get("text_hook_options")),
            "spoken_hook_options": _hook_list(data.get("spoken_hook_options")),
            "body_content_structured_scenes": data.get("body_content_structured_scenes") or [],
            "cta_script": data.get("cta_script") or data.get("cta") or "",
            "cta_text_overlay": data.get("cta_text_overlay") or data.get("cta") or "",
        }

    async def generate_ugc_script(
        self,
        brand_context: Dict[str, Any],
        hook_options: Dict[str, Any],
        custom_prompt: Optional[str] = None,
        system_instructions: Optional[str] = None,
        reference_video: Optional[Dict[str, str]] = None,
        company_description: Optional[str] = None,
        guide_description: Optional[str] = None,
        filming_instructions: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Generate a structured UGC creator script.

        Existing company/guide/filming text is passed to the model for
        enhancement and wins whenever the model leaves a field empty.
        """
        existing_company = company_description or brand_context.get("ugc_company_description") or ""
        existing_guide = guide_description or brand_context.get("ugc_guide_description") or ""
        existing_filming = filming_instructions or brand_context.get("ugc_filming_instructions") or ""

        hook_instructions = (
            f"Create a script with {hook_options.get('count', 1)} different "
            f"{hook_options.get('type') or 'verbal'} hooks."
        )

        enhancement = ""
        if existing_guide or existing_filming:
            enhancement = "\nIMPORTANT - CONTENT ENHANCEMENT INSTRUCTIONS:\n"
            if existing_guide:
                enhancement += (
                    "\nHere is the existing guide description. Enhance it by adding more detail "
                    "about target audience, emotional connection, and marketing strategy:\n"
                    f"```\n{existing_guide}\n```\n"
                )
            if existing_filming:
                enhancement += (
                    "\nHere are the existing filming instructions. Enhance them with specific "
                    "guidance on performance, authenticity, location, lighting, and pacing:\n"
                    f"```\n{existing_filming}\n```\n"
                )

        checklist = [
            "1. A strong and attention-grabbing hook",
            "2. A clear product showcase section",
            "3. Strong benefit statements",
            "4. A compelling call-to-action",
            "5. B-roll shot suggestions for supplementary footage",
        ]
        if not existing_guide:
            checklist.append("6. A comprehensive guide description explaining what the creator will film")
        if not existing_filming:
            checklist.append("7. Detailed filming instructions with technical and performance guidance")

        prompt = (
            f"{_emphasize(custom_prompt)}"
            "BRAND CONTEXT:\n"
            f"```json\n{json.dumps(brand_context, indent=2, ensure_ascii=False)}\n```\n\n"
            f"{hook_instructions}\n\n{enhancement}\n"
            "Create a compelling UGC script for a video that will effectively promote the "
            "brand's products. The script should have:\n"
            + "\n".join(checklist)
            + "\n\nGenerate content that is authentic, engaging, and optimized for social media platforms."
        )

        media_items = []
        if reference_video and reference_video.get("url"):
            prompt += (
                "\n\nI'm including a reference video for you to analyze and use for inspiration. "
                "Based on the reference video and brand context, create a UGC script with the "
                "specified format."
            )
            media_items.append((reference_video["url"], reference_video.get("type") or "video"))

        settings = self._settings(system_instructions or DEFAULT_UGC_SYSTEM_PROMPT, UGC_RESPONSE_SCHEMA)

        logger.info(
            f"Generating UGC script: hooks={hook_options}, reference_video={'yes' if media_items else 'no'}"
        )
        response = await self.dispatcher.dispatch_with_media(prompt, settings, media_items)

        data = _parse_object(response.text)

        return {
            "script_content": data.get("script_content") or {
                "scene_start": "",
                "segments": [],
                "scene_end": "",
            },
            "hook_body": data.get("hook_body") or "",
            "cta": data.get("cta") or "",
            "b_roll_shot_list": data.get("b_roll_shot_list") or [],
            "company_description": data.get("company_description") or existing_company,
            "guide_description": data.get("guide_description") or existing_guide,
            "filming_instructions": data.get("filming_instructions") or existing_filming,
        }
