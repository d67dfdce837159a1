"""
OneSheetService - orchestrates the OneSheet generation flows.

Each flow is one linear pass:
    read record (+ config) -> assemble context -> dispatch -> normalize
    -> merge -> persist

Flows:
- generate_creative_brainstorm: stored prompt configuration, Gemini or Claude
- run_prompt: library prompt, Gemini, line-heuristic normalization
- analyze_ad: fixed tagging prompt, Gemini JSON, targeted ad update
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import logfire
from supabase import Client

from ..core.config import Config
from ..core.exceptions import NotFoundError, ValidationError
from .context_builder import ContextBuilder
from .models import AdAnalysis, ContextSelectionMask, CreativeBrainstormBundle, ProviderSettings
from .onesheet_merge import apply_ad_analysis, find_ad, merge_creative_brainstorm, merge_output
from .onesheet_repository import OneSheetRepository
from .prompt_dispatcher import PromptDispatcher
from .prompt_library import get_prompt_by_id, render_library_prompt
from .response_normalizer import normalize, normalize_creative_brainstorm, parse_ad_analysis

logger = logging.getLogger(__name__)


AD_TAGGING_PROMPT = """
Analyze the following ad transcript. Based on the content, classify the ad across these categories and provide enhanced transcript analysis.
Return your answer ONLY in a valid JSON format.

Here are the possible values for each category:

"Type": ["High Production", "Low Production", "Static", "GIF", "Carousel"]
"Angle": ["Health Boost", "Time/Convenience", "Energy/Focus", "Immunity Support", "Digestive Health", "Weight Management", "General Wellness", "Value/Price", "Quality", "Social Proof"]
"Format": ["Testimonial", "Podcast", "Authority Figure", "3 Reasons Why", "UGC Review", "Problem/Solution", "Demonstration", "Comparison", "Story", "Educational"]
"Emotion": ["Happiness", "Excitement", "Hopefulness", "Curiosity", "Urgency", "Fear", "Anxiety", "Trust", "Confidence", "Empowerment"]
"Framework": ["PAS (Problem, Agitate, Solve)", "AIDA (Attention, Interest, Desire, Action)", "Features, Advantages, Benefits (FAB)", "Star, Story, Solution", "Before/After", "QUEST (Qualify, Understand, Educate, Stimulate, Transition)"]
"Product Intro (s)": [Provide an integer representing the timestamp in seconds when the product is first mentioned or shown clearly. If unknown, use 0]
"Creators Used": [Provide the number of distinct speakers/creators in the video as an integer. If unknown, use 1]
"Enhanced Transcript": [If the provided transcript lacks timestamps, create a timecoded version with [MM:SS] format based on speech patterns and content flow. If timestamps already exist, preserve them.]

Here is the ad transcript:
"{transcript}"

IMPORTANT: For the "Enhanced Transcript" field, if the transcript doesn't have timestamps, estimate them based on typical speech patterns (150-200 words per minute) and add [MM:SS] timestamps throughout.

Example response format:
{{
  "type": "Low Production",
  "angle": "Health Boost",
  "format": "Testimonial",
  "emotion": "Trust",
  "framework": "PAS (Problem, Agitate, Solve)",
  "productIntro": 5,
  "creatorsUsed": 2,
  "enhancedTranscript": "[00:00] Are you tired of feeling sluggish? [00:05] I was too until I found this..."
}}
"""


class OneSheetService:
    """Service for AI generation against a OneSheet."""

    def __init__(
        self,
        supabase: Optional[Client] = None,
        repository: Optional[OneSheetRepository] = None,
        dispatcher: Optional[PromptDispatcher] = None,
    ):
        self.repository = repository or OneSheetRepository(supabase)
        self.dispatcher = dispatcher or PromptDispatcher()
        self.context_builder = ContextBuilder(self.repository)

    # =========================================================================
    # Creative brainstorm
    # =========================================================================

    async def generate_creative_brainstorm(
        self,
        onesheet_id: str,
        user_id: str,
        mask: ContextSelectionMask,
    ) -> CreativeBrainstormBundle:
        """
        Generate creative concepts/hooks/visuals and append them to the OneSheet.

        Args:
            onesheet_id: OneSheet UUID
            user_id: Authenticated caller
            mask: Research to include in the prompt context

        Returns:
            The newly generated bundle (ids assigned)

        Raises:
            ValidationError: mask asks for selected ads without ids
            NotFoundError: OneSheet or its AI settings missing
            AuthorizationError: caller may not access the OneSheet
            ConfigurationError: AI settings incomplete for the chosen provider
            GenerationError / ParseError: provider or response failure
            ConflictError: OneSheet changed during generation
        """
        ContextBuilder.validate_mask(mask)

        # Record and configuration are independent reads
        onesheet, config = await asyncio.gather(
            asyncio.to_thread(self.repository.get_onesheet, onesheet_id, user_id),
            asyncio.to_thread(self.repository.get_prompt_configuration, onesheet_id),
        )
        if config is None:
            raise NotFoundError("AI instructions not found. Please configure AI settings first.")

        settings = config.resolve_brainstorm_settings(
            default_gemini_model=Config.get_model("brainstorm"),
            default_claude_model=Config.get_model("claude"),
            temperature=Config.BRAINSTORM_TEMPERATURE,
            claude_temperature=Config.CLAUDE_TEMPERATURE,
            claude_max_tokens=Config.CLAUDE_MAX_TOKENS,
        )
        logger.info(
            f"Creative brainstorm for OneSheet {onesheet_id} using "
            f"{settings.provider} ({settings.model})"
        )

        # Context-hub rows are read from Supabase while assembling
        with logfire.span("assemble_context", onesheet_id=onesheet_id):
            context = await asyncio.to_thread(self.context_builder.build, onesheet, mask)

        response = await self.dispatcher.dispatch(context, settings)

        bundle = normalize_creative_brainstorm(response.text)

        with logfire.span("persist_creative_brainstorm", onesheet_id=onesheet_id):
            updates = merge_creative_brainstorm(onesheet, bundle)
            await asyncio.to_thread(
                self.repository.update_onesheet,
                onesheet_id,
                updates,
                expected_updated_at=onesheet.get("updated_at"),
            )

        logger.info(f"Creative brainstorm saved for OneSheet {onesheet_id}")
        return bundle

    # =========================================================================
    # Library prompts
    # =========================================================================

    async def run_prompt(
        self,
        prompt_id: str,
        inputs: Dict[str, str],
        onesheet_id: str,
        user_id: str,
    ) -> Dict[str, Any]:
        """
        Run a library prompt and merge its parsed output into the OneSheet.

        Returns:
            Dict with aiOutput, processedData, updatedOneSheet and usage

        Raises:
            NotFoundError: unknown prompt id or OneSheet
            ValidationError: required inputs missing
        """
        template = get_prompt_by_id(prompt_id)
        final_prompt = render_library_prompt(template, inputs)

        onesheet = await asyncio.to_thread(self.repository.get_onesheet, onesheet_id, user_id)

        settings = ProviderSettings(
            provider="gemini",
            model=Config.get_model("run_prompt"),
            json_mode=False,
            temperature=Config.RUN_PROMPT_TEMPERATURE,
            top_k=Config.RUN_PROMPT_TOP_K,
            top_p=Config.RUN_PROMPT_TOP_P,
            max_output_tokens=Config.RUN_PROMPT_MAX_OUTPUT_TOKENS,
        )
        logger.info(f"Running prompt '{prompt_id}' for OneSheet {onesheet_id} -> {template.output_target}")

        response = await self.dispatcher.dispatch_prompt(final_prompt, settings)

        processed = normalize(response.text, template.output_target)

        with logfire.span("persist_prompt_output", onesheet_id=onesheet_id, target=template.output_target):
            updates = merge_output(onesheet, template.output_target, processed)
            updated = await asyncio.to_thread(
                self.repository.update_onesheet,
                onesheet_id,
                updates,
                expected_updated_at=onesheet.get("updated_at"),
            )

        return {
            "aiOutput": response.text,
            "processedData": processed,
            "updatedOneSheet": updated,
            "usage": {
                "model": settings.model,
                "promptUsed": final_prompt,
                **response.usage,
            },
        }

    # =========================================================================
    # Ad analysis
    # =========================================================================

    async def analyze_ad(
        self,
        ad_id: str,
        onesheet_id: str,
        transcript: str,
        user_id: str,
    ) -> AdAnalysis:
        """
        Tag one ad from its transcript and refresh account insights.

        The ad is located before the model is called, so an unknown ad id
        fails without a generation.

        Raises:
            ValidationError: empty transcript
            NotFoundError: OneSheet or ad missing
        """
        if not transcript or not transcript.strip():
            raise ValidationError("Ad ID, OneSheet ID, and transcript are required")

        onesheet = await asyncio.to_thread(self.repository.get_onesheet, onesheet_id, user_id)
        find_ad(onesheet.get("ad_performance_data") or [], ad_id)

        settings = ProviderSettings(
            provider="gemini",
            model=Config.get_model("ad_analysis"),
            json_mode=True,
            temperature=Config.AD_ANALYSIS_TEMPERATURE,
            top_p=Config.AD_ANALYSIS_TOP_P,
        )
        logger.info(
            f"Analyzing ad {ad_id} on OneSheet {onesheet_id} "
            f"(transcript {len(transcript)} chars)"
        )

        prompt = AD_TAGGING_PROMPT.format(transcript=transcript)
        response = await self.dispatcher.dispatch_prompt(prompt, settings)

        analysis = parse_ad_analysis(response.text)
        logger.info(
            f"Ad {ad_id} tagged: angle={analysis.angle}, format={analysis.format}, "
            f"emotion={analysis.emotion}, framework={analysis.framework}"
        )

        with logfire.span("persist_ad_analysis", onesheet_id=onesheet_id, ad_id=ad_id):
            updates = apply_ad_analysis(onesheet, ad_id, analysis)
            await asyncio.to_thread(
                self.repository.update_onesheet,
                onesheet_id,
                updates,
                expected_updated_at=onesheet.get("updated_at"),
            )

        return analysis
