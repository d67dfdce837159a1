"""
Pydantic models for the OneSheet pipeline.

These models provide validated structures for:
- Context selection masks (which research the caller wants sent to the model)
- Stored prompt configuration (onesheet_ai_instructions rows)
- Resolved provider settings handed to the dispatcher
- Normalized AI output (creative brainstorm bundle, ad analysis tags)

Wire names are camelCase to match the OneSheet JSON columns and the
frontend request bodies; attribute names stay snake_case.
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.exceptions import ConfigurationError


# ============================================================================
# Context Selection Mask
# ============================================================================

class _MaskSection(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    def selected(self) -> List[str]:
        """Attribute names whose flag is set."""
        return [
            name for name, value in self
            if isinstance(value, bool) and value
        ]


class ContextHubSelection(_MaskSection):
    websites: bool = False
    reviews: bool = False
    reddit: bool = False
    articles: bool = False
    social_content: bool = Field(False, alias="socialContent")


class AudienceResearchSelection(_MaskSection):
    angles: bool = False
    benefits: bool = False
    pain_points: bool = Field(False, alias="painPoints")
    features: bool = False
    objections: bool = False
    failed_solutions: bool = Field(False, alias="failedSolutions")
    other: bool = False
    personas: bool = False


class CompetitorResearchSelection(_MaskSection):
    competitors: bool = False
    strategic_analysis: bool = Field(False, alias="strategicAnalysis")


class AdAccountAuditSelection(_MaskSection):
    full_data_table: bool = Field(False, alias="fullDataTable")
    selected_ads: bool = Field(False, alias="selectedAds")
    selected_ad_ids: List[str] = Field(default_factory=list, alias="selectedAdIds")


class DemographicsSelection(_MaskSection):
    include_visualizations: bool = Field(False, alias="includeVisualizations")


class AiStrategistSelection(_MaskSection):
    analysis_summary: bool = Field(False, alias="analysisSummary")
    strategic_summary: bool = Field(False, alias="strategicSummary")
    recommendations: bool = False
    creative_patterns: bool = Field(False, alias="creativePatterns")
    losing_elements: bool = Field(False, alias="losingElements")
    best_performing_hooks: bool = Field(False, alias="bestPerformingHooks")
    optimal_sit_in_problem_range: bool = Field(False, alias="optimalSitInProblemRange")
    top_performing_ads: bool = Field(False, alias="topPerformingAds")
    low_performing_ads: bool = Field(False, alias="lowPerformingAds")


class ContextSelectionMask(BaseModel):
    """
    Caller-supplied selection of OneSheet research to send to the model.

    Constructed fresh per request; every section defaults to "not selected".
    """
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    product_info: bool = Field(False, alias="productInfo")
    context_hub: Optional[ContextHubSelection] = Field(None, alias="contextHub")
    audience_research: Optional[AudienceResearchSelection] = Field(None, alias="audienceResearch")
    competitor_research: Optional[CompetitorResearchSelection] = Field(None, alias="competitorResearch")
    ad_account_audit: Optional[AdAccountAuditSelection] = Field(None, alias="adAccountAudit")
    demographics: Optional[DemographicsSelection] = None
    ai_strategist: Optional[AiStrategistSelection] = Field(None, alias="aiStrategist")


# ============================================================================
# Prompt Configuration
# ============================================================================

class ProviderSettings(BaseModel):
    """Everything the dispatcher needs for one provider call."""
    provider: str = Field(..., description="'gemini' or 'claude'")
    model: str
    prompt_template: Optional[str] = None
    system_instructions: Optional[str] = None
    response_schema: Optional[Dict[str, Any]] = None
    json_mode: bool = True
    temperature: float = 0.7
    max_output_tokens: Optional[int] = None
    top_k: Optional[int] = None
    top_p: Optional[float] = None


class PromptConfiguration(BaseModel):
    """
    Per-OneSheet AI settings (row of onesheet_ai_instructions).

    Mutated only through the settings UI; read-only to the pipeline.
    """
    model_config = ConfigDict(extra="ignore")

    onesheet_id: Optional[str] = None
    creative_brainstorm_model: Optional[str] = None
    creative_brainstorm_system_instructions: Optional[str] = None
    creative_brainstorm_prompt_template: Optional[str] = None
    creative_brainstorm_response_schema: Optional[Dict[str, Any]] = None
    claude_model: Optional[str] = None
    claude_system_instructions: Optional[str] = None
    claude_prompt_template: Optional[str] = None

    @field_validator("creative_brainstorm_response_schema", mode="before")
    @classmethod
    def _decode_schema(cls, value: Any) -> Any:
        # Older rows store the schema as a JSON string
        if isinstance(value, str):
            if not value.strip():
                return None
            return json.loads(value)
        return value

    @property
    def uses_claude(self) -> bool:
        return "claude" in (self.creative_brainstorm_model or "").lower()

    def resolve_brainstorm_settings(
        self,
        default_gemini_model: str,
        default_claude_model: str,
        temperature: float,
        claude_temperature: float,
        claude_max_tokens: int,
    ) -> ProviderSettings:
        """
        Pick the provider branch and check its required fields.

        Raises:
            ConfigurationError: naming the first missing field
        """
        if self.uses_claude:
            _require(self.claude_prompt_template, "claude_prompt_template")
            _require(self.claude_system_instructions, "claude_system_instructions")
            return ProviderSettings(
                provider="claude",
                model=self.claude_model or default_claude_model,
                prompt_template=self.claude_prompt_template,
                system_instructions=self.claude_system_instructions,
                temperature=claude_temperature,
                max_output_tokens=claude_max_tokens,
            )

        _require(self.creative_brainstorm_prompt_template, "creative_brainstorm_prompt_template")
        _require(self.creative_brainstorm_response_schema, "creative_brainstorm_response_schema")
        return ProviderSettings(
            provider="gemini",
            model=self.creative_brainstorm_model or default_gemini_model,
            prompt_template=self.creative_brainstorm_prompt_template,
            system_instructions=self.creative_brainstorm_system_instructions or None,
            response_schema=self.creative_brainstorm_response_schema,
            temperature=temperature,
        )


def _require(value: Any, field_name: str) -> None:
    if not value or (isinstance(value, str) and not value.strip()):
        raise ConfigurationError(
            f"{field_name} must be configured in the OneSheet AI settings",
            missing_field=field_name,
        )


# ============================================================================
# Normalized AI Output
# ============================================================================

class BrainstormHooks(BaseModel):
    visual: List[Dict[str, Any]] = Field(default_factory=list)
    audio: List[Dict[str, Any]] = Field(default_factory=list)


class CreativeBestPractices(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    dos: List[Any] = Field(default_factory=list)
    donts: List[Any] = Field(default_factory=list)
    key_learnings: List[Any] = Field(default_factory=list, alias="keyLearnings")
    recommendations: List[Any] = Field(default_factory=list)


class CreativeBrainstormBundle(BaseModel):
    """Structured creative-brainstorm output stored in onesheet.creative_brainstorm."""
    model_config = ConfigDict(populate_by_name=True)

    net_new_concepts: List[Dict[str, Any]] = Field(default_factory=list, alias="netNewConcepts")
    iterations: List[Dict[str, Any]] = Field(default_factory=list)
    hooks: BrainstormHooks = Field(default_factory=BrainstormHooks)
    visuals: List[Dict[str, Any]] = Field(default_factory=list)
    creative_best_practices: CreativeBestPractices = Field(
        default_factory=CreativeBestPractices, alias="creativeBestPractices"
    )

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class AdAnalysis(BaseModel):
    """Tags produced by the analyze-ad prompt."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Optional[str] = None
    angle: Optional[str] = None
    format: Optional[str] = None
    emotion: Optional[str] = None
    framework: Optional[str] = None
    product_intro: int = Field(0, alias="productIntro")
    creators_used: int = Field(1, alias="creatorsUsed")
    enhanced_transcript: Optional[str] = Field(None, alias="enhancedTranscript")

    @field_validator("product_intro", mode="before")
    @classmethod
    def _coerce_intro(cls, value: Any) -> Any:
        return _coerce_count(value, default=0)

    @field_validator("creators_used", mode="before")
    @classmethod
    def _coerce_creators(cls, value: Any) -> Any:
        return _coerce_count(value, default=1)

    def to_ad_fields(self) -> Dict[str, Any]:
        """The AI-derived ad fields, in the ad row's key names."""
        return {
            "angle": self.angle,
            "format": self.format,
            "emotion": self.emotion,
            "framework": self.framework,
            "type": self.type,
            "productIntro": self.product_intro,
            "creatorsUsed": self.creators_used,
        }


def _coerce_count(value: Any, default: int) -> Any:
    if value is None or value == "":
        return default
    if isinstance(value, float):
        return int(value)
    return value
