"""
Merge normalized AI output into a OneSheet.

Every function here takes the OneSheet row as read and returns the partial
update (column -> new value) to persist. Nothing is written, and the row is
not modified; only the ids of new items may be replaced.

Merges are additive: new items are appended to the stored collection, so
repeated generations accumulate.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from ..core.exceptions import NotFoundError
from .models import AdAnalysis, CreativeBrainstormBundle
from .response_normalizer import AUDIENCE_CATEGORY_TARGETS, OutputTarget, new_id

logger = logging.getLogger(__name__)


# Targets whose items are appended to a same-named list column
LIST_COLUMNS = {
    OutputTarget.ANGLES: "angles",
    OutputTarget.PERSONAS: "personas",
    OutputTarget.CONCEPTS: "concepts",
    OutputTarget.HOOKS: "hooks",
    OutputTarget.VISUALS: "visuals",
    OutputTarget.COMPETITOR_ANALYSIS: "competitor_analysis",
}

TOP_PERFORMER_LIMIT = 5


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _stored_ids(*collections: Optional[List[Any]]) -> Set[str]:
    return {
        str(item["id"])
        for collection in collections
        for item in collection or []
        if isinstance(item, dict) and item.get("id")
    }


def _rekey_collisions(items: List[Any], taken: Set[str]) -> List[Any]:
    """
    Give new items whose id is already stored a fresh one.

    Items are updated in place so the caller's copy of the new output
    carries the same ids as the persisted one. ``taken`` grows as ids are used.
    """
    for item in items:
        if not isinstance(item, dict):
            continue
        item_id = str(item.get("id") or "")
        if not item_id or item_id in taken:
            if item_id:
                logger.warning(f"Item id {item_id} already stored on the OneSheet; assigning a new one")
            item_id = new_id()
            item["id"] = item_id
        taken.add(item_id)
    return items


def merge_output(onesheet: Dict[str, Any], target: str, processed: Any) -> Dict[str, Any]:
    """
    Build the partial update for a run-prompt result.

    Args:
        onesheet: OneSheet row as read
        target: Prompt output target
        processed: Result of ``response_normalizer.normalize``

    Returns:
        Dict of column -> merged value
    """
    output_target = OutputTarget.parse(target)

    if output_target in LIST_COLUMNS:
        column = LIST_COLUMNS[output_target]
        stored = list(onesheet.get(column) or [])
        return {column: stored + _rekey_collisions(list(processed), _stored_ids(stored))}

    if output_target in AUDIENCE_CATEGORY_TARGETS:
        stored = list(onesheet.get("audience_insights") or [])
        return {"audience_insights": stored + _rekey_collisions(list(processed), _stored_ids(stored))}

    if output_target == OutputTarget.AUDIENCE_ALL:
        taken = _stored_ids(onesheet.get("audience_insights"))
        for group in processed:
            _rekey_collisions(group["items"], taken)
        flattened = [
            {**item, "category": group["category"]}
            for group in processed
            for item in group["items"]
        ]
        return {"audience_insights": list(onesheet.get("audience_insights") or []) + flattened}

    # Free-form targets (and social listening) live in ai_research_data
    research = dict(onesheet.get("ai_research_data") or {})
    research[target] = processed
    research["lastUpdated"] = _now()
    return {"ai_research_data": research}


def merge_creative_brainstorm(
    onesheet: Dict[str, Any],
    bundle: CreativeBrainstormBundle,
) -> Dict[str, Any]:
    """
    Append a new brainstorm bundle to the stored one.

    Collections are concatenated. New items whose id is already stored get a
    fresh id (on ``bundle`` too). Best practices are replaced only when the
    new bundle carries any. The creative_brainstorm stage is marked done.
    """
    existing = CreativeBrainstormBundle.model_validate(onesheet.get("creative_brainstorm") or {})

    taken = _stored_ids(
        existing.net_new_concepts,
        existing.iterations,
        existing.hooks.visual,
        existing.hooks.audio,
        existing.visuals,
    )
    for collection in (
        bundle.net_new_concepts,
        bundle.iterations,
        bundle.hooks.visual,
        bundle.hooks.audio,
        bundle.visuals,
    ):
        _rekey_collisions(collection, taken)

    merged = CreativeBrainstormBundle(
        net_new_concepts=existing.net_new_concepts + bundle.net_new_concepts,
        iterations=existing.iterations + bundle.iterations,
        hooks={
            "visual": existing.hooks.visual + bundle.hooks.visual,
            "audio": existing.hooks.audio + bundle.hooks.audio,
        },
        visuals=existing.visuals + bundle.visuals,
        creative_best_practices=(
            bundle.creative_best_practices
            if any(bundle.creative_best_practices.model_dump().values())
            else existing.creative_best_practices
        ),
    )

    stages = dict(onesheet.get("stages_completed") or {})
    stages["creative_brainstorm"] = True

    return {"creative_brainstorm": merged.to_record(), "stages_completed": stages}


# ============================================================================
# Ad analysis
# ============================================================================

def find_ad(ads: List[Dict[str, Any]], ad_id: str) -> int:
    """
    Index of the ad with this id.

    Raises:
        NotFoundError: no such ad
    """
    for index, ad in enumerate(ads):
        if ad.get("id") == ad_id:
            return index
    raise NotFoundError("Ad not found in performance data")


def apply_ad_analysis(
    onesheet: Dict[str, Any],
    ad_id: str,
    analysis: AdAnalysis,
    analyzed_at: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Overwrite the AI-derived fields on one ad and refresh account insights.

    Performance metrics on the ad are left untouched.

    Returns:
        Partial update with ad_performance_data and ad_account_data

    Raises:
        NotFoundError: ad_id is not in ad_performance_data
    """
    ads = [dict(ad) for ad in onesheet.get("ad_performance_data") or []]
    index = find_ad(ads, ad_id)

    ads[index].update(analysis.to_ad_fields())
    ads[index]["analyzedAt"] = analyzed_at or _now()

    account_data = dict(onesheet.get("ad_account_data") or {})
    account_data.update(compute_aggregated_insights(ads))

    return {"ad_performance_data": ads, "ad_account_data": account_data}


def _rank_by(ads: List[Dict[str, Any]], key: str) -> List[Dict[str, Any]]:
    groups: Dict[str, Dict[str, float]] = {}
    for ad in ads:
        value = ad.get(key)
        if not value:
            continue
        group = groups.setdefault(value, {"spend": 0.0, "cpa": 0.0, "holdRate": 0.0, "count": 0})
        group["spend"] += ad.get("spend") or 0
        group["cpa"] += ad.get("cpa") or 0
        group["holdRate"] += ad.get("holdRate") or 0
        group["count"] += 1

    ranked = [
        {
            key: value,
            "spend": group["spend"],
            "cpa": group["cpa"] / group["count"],
            "holdRate": group["holdRate"] / group["count"],
        }
        for value, group in groups.items()
    ]
    ranked.sort(key=lambda row: row["spend"], reverse=True)
    return ranked[:TOP_PERFORMER_LIMIT]


def compute_aggregated_insights(ads: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Account-level insights derived from the ad collection.

    Top angles/formats are ranked by total spend and carry mean CPA and
    mean hold rate. An empty collection gives zeros.
    """
    if ads:
        avg_cpa = sum(ad.get("cpa") or 0 for ad in ads) / len(ads)
        best_hold_rate = max(ad.get("holdRate") or 0 for ad in ads)
    else:
        avg_cpa = 0
        best_hold_rate = 0

    return {
        "topPerformingAngles": _rank_by(ads, "angle"),
        "topPerformingFormats": _rank_by(ads, "format"),
        "avgCPA": avg_cpa,
        "bestHoldRate": best_hold_rate,
    }
