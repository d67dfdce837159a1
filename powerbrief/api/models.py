"""
API Request and Response Models.

Pydantic models for FastAPI request/response validation and
automatic OpenAPI documentation generation. Wire names are camelCase to
match the PowerBrief frontend.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any, List, Literal
from datetime import datetime

from ..services.models import ContextSelectionMask


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


# ============================================================================
# OneSheet Requests
# ============================================================================

class CreativeBrainstormRequest(_ApiModel):
    """Request body for creative brainstorm generation."""
    onesheet_id: str = Field(..., alias="onesheetId", min_length=1, description="OneSheet UUID")
    context_options: ContextSelectionMask = Field(
        default_factory=ContextSelectionMask,
        alias="contextOptions",
        description="Which OneSheet research to include in the prompt context"
    )

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "onesheetId": "3f1c2a9e-8d7b-4a61-b0f2-1e5d6c7a8b90",
                "contextOptions": {
                    "audienceResearch": {"benefits": True, "painPoints": True},
                    "adAccountAudit": {"selectedAds": True, "selectedAdIds": ["ad_1", "ad_7"]}
                }
            }
        }
    )


class RunPromptRequest(_ApiModel):
    """Request body for running a library prompt."""
    prompt_id: str = Field(..., alias="promptId", min_length=1, description="Prompt library id, e.g. 'ad_angles'")
    inputs: Dict[str, str] = Field(..., description="Values for the prompt's {{placeholders}}")
    onesheet_id: str = Field(..., alias="onesheetId", min_length=1)


class AnalyzeAdRequest(_ApiModel):
    """Request body for tagging one ad from its transcript."""
    ad_id: str = Field(..., alias="adId", min_length=1)
    onesheet_id: str = Field(..., alias="onesheetId", min_length=1)
    transcript: str = Field(..., min_length=1)


# ============================================================================
# Media Generation Requests
# ============================================================================

class MediaReference(_ApiModel):
    url: str
    type: Optional[str] = Field(None, description="'image', 'video' or a full mime type")


class HookOptions(_ApiModel):
    type: Literal["text", "verbal", "both"] = "both"
    count: int = Field(5, ge=1, le=20)


class GenerateBriefRequest(_ApiModel):
    """Request body for ad brief generation."""
    brand_context: Dict[str, Any] = Field(..., alias="brandContext")
    desired_output_fields: List[str] = Field(
        default_factory=lambda: [
            "text_hook_options", "spoken_hook_options",
            "body_content_structured_scenes", "cta_script", "cta_text_overlay",
        ],
        alias="desiredOutputFields",
    )
    concept_specific_prompt: Optional[str] = Field(None, alias="conceptSpecificPrompt")
    concept_current_data: Optional[Dict[str, Any]] = Field(None, alias="conceptCurrentData")
    hook_options: Optional[HookOptions] = Field(None, alias="hookOptions")
    media: Optional[MediaReference] = None


class GenerateUgcScriptRequest(_ApiModel):
    """Request body for UGC creator script generation."""
    brand_context: Dict[str, Any] = Field(..., alias="brandContext")
    custom_prompt: Optional[str] = Field(None, alias="customPrompt")
    system_instructions: Optional[str] = Field(None, alias="systemInstructions")
    reference_video: Optional[MediaReference] = Field(None, alias="referenceVideo")
    hook_options: HookOptions = Field(default_factory=HookOptions, alias="hookOptions")
    company_description: Optional[str] = None
    guide_description: Optional[str] = None
    filming_instructions: Optional[str] = None


# ============================================================================
# Responses
# ============================================================================

class CreativeBrainstormResponse(_ApiModel):
    success: bool = True
    data: Dict[str, Any] = Field(..., description="Newly generated creative brainstorm bundle")


class RunPromptResponse(_ApiModel):
    success: bool = True
    ai_output: str = Field(..., alias="aiOutput")
    processed_data: Any = Field(..., alias="processedData")
    updated_onesheet: Dict[str, Any] = Field(..., alias="updatedOneSheet")
    usage: Dict[str, Any] = Field(default_factory=dict)


class AnalyzeAdResponse(_ApiModel):
    success: bool = True
    analysis: Dict[str, Any]


class PromptListResponse(_ApiModel):
    prompts: List[Dict[str, Any]]


class BriefResponse(_ApiModel):
    text_hook_options: List[str] = Field(default_factory=list)
    spoken_hook_options: List[str] = Field(default_factory=list)
    body_content_structured_scenes: List[Dict[str, Any]] = Field(default_factory=list)
    cta_script: str = ""
    cta_text_overlay: str = ""


class UgcScriptResponse(_ApiModel):
    script_content: Dict[str, Any]
    hook_body: str = ""
    cta: str = ""
    b_roll_shot_list: List[str] = Field(default_factory=list)
    company_description: str = ""
    guide_description: str = ""
    filming_instructions: str = ""


# ============================================================================
# System Models
# ============================================================================

class HealthResponse(BaseModel):
    """Response model for health check endpoint."""
    status: str = Field(..., description="Overall health status (healthy/degraded)")
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(default_factory=datetime.now)
    services: Dict[str, str] = Field(
        default_factory=dict,
        description="Status of dependent services"
    )


class ErrorResponse(BaseModel):
    """Standard error response body."""
    error: str = Field(..., description="Human-readable error message")
    request_id: Optional[str] = Field(None, alias="requestId")
