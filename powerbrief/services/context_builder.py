"""
ContextBuilder - assembles the AI context payload from a OneSheet.

Reads only the research the caller selected in a ContextSelectionMask and
returns a plain JSON-ready dict keyed by section name:

    {
        "audienceResearch": {"benefits": [...]},
        "adAccountAudit": {"selectedAds": [...]},
        "contextHub": {"reviews": [...]},
        ...
    }

Sections with no stored data are left out rather than failing, and so are
sub-fields whose stored value is missing.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.exceptions import ValidationError
from .models import ContextSelectionMask
from .onesheet_repository import OneSheetRepository

logger = logging.getLogger(__name__)

AssembledContext = Dict[str, Any]


# mask attribute -> key inside onesheet.audience_research
AUDIENCE_RESEARCH_FIELDS: Dict[str, str] = {
    "angles": "angles",
    "benefits": "benefits",
    "pain_points": "painPoints",
    "features": "features",
    "objections": "objections",
    "failed_solutions": "failedSolutions",
    "other": "other",
    "personas": "personas",
}

# mask attribute -> (output key, key inside onesheet.competitor_research)
COMPETITOR_RESEARCH_FIELDS: Dict[str, Tuple[str, str]] = {
    "competitors": ("competitors", "competitors"),
    "strategic_analysis": ("deepAnalysis", "deepAnalysis"),
}

# mask attribute -> (output key, path inside onesheet.ai_strategist_opinion)
AI_STRATEGIST_FIELDS: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    "analysis_summary": ("analysisSummary", ("summary",)),
    "strategic_summary": ("strategicSummary", ("executiveSummary",)),
    "recommendations": ("recommendations", ("recommendations",)),
    "creative_patterns": ("creativePatterns", ("creativePatterns",)),
    "losing_elements": ("losingElements", ("whatDoesntWork",)),
    "best_performing_hooks": ("bestPerformingHooks", ("creativePatterns", "bestPerformingHooks")),
    "optimal_sit_in_problem_range": (
        "optimalSitInProblemRange", ("creativePatterns", "optimalSitInProblemRange")
    ),
    "top_performing_ads": ("topPerformingAds", ("topPerformers",)),
    "low_performing_ads": ("lowPerformingAds", ("lowPerformers",)),
}

# mask attribute -> (output key, context_data.source_type values)
CONTEXT_HUB_GROUPS: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    "websites": ("websites", ("brand_website", "competitor_website")),
    "reviews": ("reviews", ("reviews",)),
    "reddit": ("reddit", ("reddit",)),
    "articles": ("articles", ("articles",)),
    "social_content": ("socialContent", ("social_content",)),
}


class ContextBuilder:
    """Builds an AssembledContext from a OneSheet row and a selection mask."""

    def __init__(self, repository: OneSheetRepository):
        self.repository = repository

    @staticmethod
    def validate_mask(mask: ContextSelectionMask) -> None:
        """
        Reject masks that cannot be satisfied.

        Raises:
            ValidationError: "selected ads" requested without any ad ids
        """
        audit = mask.ad_account_audit
        if audit and audit.selected_ads and not audit.selected_ad_ids:
            raise ValidationError("Please select at least one ad to analyze (no ads selected)")

    def build(self, onesheet: Dict[str, Any], mask: ContextSelectionMask) -> AssembledContext:
        """
        Assemble the context for one generation request.

        Args:
            onesheet: OneSheet row (already access-checked)
            mask: Caller's selection

        Returns:
            Dict containing only the selected, non-empty sections
        """
        self.validate_mask(mask)

        context: AssembledContext = {}

        if mask.product_info:
            if onesheet.get("product"):
                context["product"] = onesheet["product"]
            if onesheet.get("landing_page_url"):
                context["landingPage"] = onesheet["landing_page_url"]

        sections: List[Tuple[str, Callable[[], Optional[Any]]]] = [
            ("contextHub", lambda: self._context_hub(onesheet, mask)),
            ("audienceResearch", lambda: self._audience_research(onesheet, mask)),
            ("competitorResearch", lambda: self._competitor_research(onesheet, mask)),
            ("adAccountAudit", lambda: self._ad_account_audit(onesheet, mask)),
            ("demographics", lambda: self._demographics(onesheet, mask)),
            ("aiStrategist", lambda: self._ai_strategist(onesheet, mask)),
        ]

        for key, extract in sections:
            value = extract()
            if value:
                context[key] = value

        logger.info(
            f"Assembled context for OneSheet {onesheet.get('id')}: "
            f"sections={sorted(context.keys()) or 'none'}"
        )
        return context

    # =========================================================================
    # Sections
    # =========================================================================

    def _context_hub(self, onesheet: Dict[str, Any], mask: ContextSelectionMask) -> Optional[Dict[str, Any]]:
        selection = mask.context_hub
        if not selection or not selection.selected():
            return None

        records = self.repository.get_active_context_records(onesheet["id"])
        if not records:
            return None

        hub: Dict[str, Any] = {}
        for attr in selection.selected():
            output_key, source_types = CONTEXT_HUB_GROUPS[attr]
            rows = [r for r in records if r.get("source_type") in source_types]
            if rows:
                hub[output_key] = rows
        return hub

    def _audience_research(self, onesheet: Dict[str, Any], mask: ContextSelectionMask) -> Optional[Dict[str, Any]]:
        selection = mask.audience_research
        research = onesheet.get("audience_research")
        if not selection or not research:
            return None

        return {
            AUDIENCE_RESEARCH_FIELDS[attr]: research[AUDIENCE_RESEARCH_FIELDS[attr]]
            for attr in selection.selected()
            if research.get(AUDIENCE_RESEARCH_FIELDS[attr]) is not None
        }

    def _competitor_research(self, onesheet: Dict[str, Any], mask: ContextSelectionMask) -> Optional[Dict[str, Any]]:
        selection = mask.competitor_research
        research = onesheet.get("competitor_research")
        if not selection or not research:
            return None

        section = {}
        for attr in selection.selected():
            output_key, source_key = COMPETITOR_RESEARCH_FIELDS[attr]
            if research.get(source_key) is not None:
                section[output_key] = research[source_key]
        return section

    def _ad_account_audit(self, onesheet: Dict[str, Any], mask: ContextSelectionMask) -> Optional[Dict[str, Any]]:
        selection = mask.ad_account_audit
        audit = onesheet.get("ad_account_audit")
        if not selection or not audit:
            return None

        ads = audit.get("ads") or []

        # Selected ads win when both options are set
        if selection.selected_ads:
            wanted = set(selection.selected_ad_ids)
            selected = [ad for ad in ads if ad.get("id") in wanted]
            return {"selectedAds": selected} if selected else None

        if selection.full_data_table and ads:
            return {"allAds": ads}

        return None

    def _demographics(self, onesheet: Dict[str, Any], mask: ContextSelectionMask) -> Optional[Any]:
        selection = mask.demographics
        audit = onesheet.get("ad_account_audit")
        if not selection or not selection.include_visualizations or not audit:
            return None
        return audit.get("demographicBreakdown")

    def _ai_strategist(self, onesheet: Dict[str, Any], mask: ContextSelectionMask) -> Optional[Dict[str, Any]]:
        selection = mask.ai_strategist
        opinion = onesheet.get("ai_strategist_opinion")
        if not selection or not isinstance(opinion, dict):
            return None

        section = {}
        for attr in selection.selected():
            output_key, path = AI_STRATEGIST_FIELDS[attr]
            value = _dig(opinion, path)
            if value is not None:
                section[output_key] = value
        return section


def _dig(data: Dict[str, Any], path: Tuple[str, ...]) -> Optional[Any]:
    current: Any = data
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current
