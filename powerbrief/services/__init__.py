"""
Services layer for the PowerBrief OneSheet pipeline.

Context assembly (ContextBuilder), provider dispatch (PromptDispatcher) and
response normalization are kept separate; OneSheetService wires them into
the request flows.
"""

from .models import (
    ContextSelectionMask,
    PromptConfiguration,
    ProviderSettings,
    CreativeBrainstormBundle,
    AdAnalysis,
)

from .context_builder import ContextBuilder
from .prompt_dispatcher import PromptDispatcher
from .onesheet_repository import OneSheetRepository
from .onesheet_service import OneSheetService
from .media_generation_service import MediaGenerationService
