"""
ResponseNormalizer - turns raw provider text into identifier-complete structures.

Two paths:
- JSON path: strict parse, then the first balanced {...} block, else ParseError.
  Used for the creative-brainstorm bundle and ad analysis.
- Line path: bullet/numbered text parsed per output target (run-prompt
  library prompts). If the model answered with JSON anyway, its items are
  used directly.

Every generated item leaves here with a non-empty, unique ``id``.
"""

import json
import logging
import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from ..core.config import Config
from ..core.exceptions import ParseError
from .models import AdAnalysis, CreativeBrainstormBundle

logger = logging.getLogger(__name__)


class OutputTarget(str, Enum):
    """Where a run-prompt result is stored on the OneSheet."""
    ANGLES = "angles"
    BENEFITS = "audience_insights.benefits"
    PAIN_POINTS = "audience_insights.painPoints"
    OBJECTIONS = "audience_insights.objections"
    STATISTICS = "audience_insights.statistics"
    AUDIENCE_ALL = "audience_insights.all"
    PERSONAS = "personas"
    SOCIAL_LISTENING = "social_listening_data"
    COMPETITOR_ANALYSIS = "competitor_analysis"
    CONCEPTS = "concepts"
    HOOKS = "hooks"
    VISUALS = "visuals"
    CREATIVE_BRAINSTORM = "creative_brainstorm"

    @classmethod
    def parse(cls, value: str) -> Optional["OutputTarget"]:
        """Known target for a string, or None for free-form targets."""
        try:
            return cls(value)
        except ValueError:
            return None


AUDIENCE_CATEGORY_TARGETS = {
    OutputTarget.BENEFITS,
    OutputTarget.PAIN_POINTS,
    OutputTarget.OBJECTIONS,
    OutputTarget.STATISTICS,
}

AI_SOURCE = "AI Generated"


# ============================================================================
# JSON extraction
# ============================================================================

def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if present."""
    clean = text.strip()
    if clean.startswith("```"):
        lines = clean.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        clean = "\n".join(lines)
    return clean.strip()


def extract_first_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced {...} substring, or None.

    Braces inside JSON string literals are ignored.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            char = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue

            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def parse_json_response(text: str) -> Any:
    """
    Parse provider text as JSON, tolerating surrounding prose.

    Raises:
        ParseError: neither the full text nor any embedded object parses
    """
    clean = strip_code_fences(text or "")
    try:
        return json.loads(clean)
    except json.JSONDecodeError:
        pass

    candidate = extract_first_json_object(clean)
    if candidate is not None:
        try:
            parsed = json.loads(candidate)
            logger.info("Parsed JSON object embedded in provider text")
            return parsed
        except json.JSONDecodeError as e:
            logger.warning(f"Embedded JSON block did not parse: {e}")

    logger.error(f"Could not parse provider response as JSON ({len(text or '')} chars)")
    raise ParseError(
        "Failed to parse AI response as JSON",
        raw_response=text or "",
        preview_chars=Config.RAW_RESPONSE_PREVIEW_CHARS,
    )


def _try_parse_json(text: str) -> Optional[Any]:
    try:
        return json.loads(strip_code_fences(text))
    except json.JSONDecodeError:
        return None


# ============================================================================
# Identifiers
# ============================================================================

def new_id() -> str:
    return str(uuid.uuid4())


def ensure_ids(items: Iterable[Any], seen: Optional[Set[str]] = None) -> List[Dict[str, Any]]:
    """
    Give every item a unique ``id``.

    Existing ids are kept. An id already used earlier in the same pass (or
    present in ``seen``) is replaced so ids stay pairwise distinct. Bare
    strings become ``{"text": ...}`` items.

    Args:
        items: Items from one collection
        seen: Ids already used in this pass; updated in place
    """
    seen = seen if seen is not None else set()
    result = []

    for item in items:
        if not isinstance(item, dict):
            item = {"text": item}
        else:
            item = dict(item)

        item_id = item.get("id")
        item_id = str(item_id).strip() if item_id is not None else ""
        if not item_id or item_id in seen:
            if item_id:
                logger.warning(f"Duplicate item id {item_id} in AI output; assigning a new one")
            item_id = new_id()
        item["id"] = item_id

        seen.add(item_id)
        result.append(item)

    return result


# ============================================================================
# Creative brainstorm and ad analysis (JSON path)
# ============================================================================

def normalize_creative_brainstorm(text: str) -> CreativeBrainstormBundle:
    """
    Parse a creative-brainstorm response and assign missing ids.

    Raises:
        ParseError: response is not a JSON object of the bundle's shape
    """
    parsed = parse_json_response(text)
    if not isinstance(parsed, dict):
        raise ParseError(
            "AI response is not a JSON object",
            raw_response=text,
            preview_chars=Config.RAW_RESPONSE_PREVIEW_CHARS,
        )

    try:
        bundle = CreativeBrainstormBundle.model_validate(_coerce_bundle(parsed))
    except PydanticValidationError as e:
        raise ParseError(
            f"AI response does not match the creative brainstorm structure: {e.error_count()} error(s)",
            raw_response=text,
            preview_chars=Config.RAW_RESPONSE_PREVIEW_CHARS,
        ) from e

    seen: Set[str] = set()
    bundle.net_new_concepts = ensure_ids(bundle.net_new_concepts, seen)
    bundle.iterations = ensure_ids(bundle.iterations, seen)
    bundle.hooks.visual = ensure_ids(bundle.hooks.visual, seen)
    bundle.hooks.audio = ensure_ids(bundle.hooks.audio, seen)
    bundle.visuals = ensure_ids(bundle.visuals, seen)

    logger.info(
        f"Normalized creative brainstorm: {len(bundle.net_new_concepts)} concepts, "
        f"{len(bundle.iterations)} iterations, "
        f"{len(bundle.hooks.visual) + len(bundle.hooks.audio)} hooks, "
        f"{len(bundle.visuals)} visuals"
    )
    return bundle


def _coerce_bundle(data: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(data)
    for key in ("netNewConcepts", "iterations", "visuals"):
        if data.get(key) is None:
            data.pop(key, None)
        elif isinstance(data[key], list):
            data[key] = [i if isinstance(i, dict) else {"text": i} for i in data[key]]

    hooks = data.get("hooks")
    if hooks is None:
        data.pop("hooks", None)
    elif isinstance(hooks, dict):
        data["hooks"] = {
            kind: [h if isinstance(h, dict) else {"text": h} for h in (hooks.get(kind) or [])]
            for kind in ("visual", "audio")
        }

    if data.get("creativeBestPractices") is None:
        data.pop("creativeBestPractices", None)
    return data


def parse_ad_analysis(text: str) -> AdAnalysis:
    """
    Parse the analyze-ad tagging response.

    Raises:
        ParseError: response is not JSON or has the wrong field types
    """
    parsed = parse_json_response(text)
    if not isinstance(parsed, dict):
        raise ParseError(
            "AI ad analysis is not a JSON object",
            raw_response=text,
            preview_chars=Config.RAW_RESPONSE_PREVIEW_CHARS,
        )
    try:
        return AdAnalysis.model_validate(parsed)
    except PydanticValidationError as e:
        raise ParseError(
            f"AI ad analysis has invalid fields: {e.error_count()} error(s)",
            raw_response=text,
            preview_chars=Config.RAW_RESPONSE_PREVIEW_CHARS,
        ) from e


# ============================================================================
# Line heuristics (run-prompt path)
# ============================================================================

MARKER_RE = re.compile(r"^[\d\.\-\•\*\s]+")
NUMBERED_RE = re.compile(r"^\d+\.")
PERSONA_SPLIT_RE = re.compile(r"persona\s*\d*:?", re.IGNORECASE)
SECTION_HEADER_RE = re.compile(
    r"^[#*\s]*(benefits?|pain\s*points?|features?|objections?|failed\s*solutions?|other)[\s:*#]*$",
    re.IGNORECASE,
)

SECTION_KEYS = {
    "benefit": "benefits",
    "painpoint": "painPoints",
    "feature": "features",
    "objection": "objections",
    "failedsolution": "failedSolutions",
    "other": "other",
}


def _lines(text: str) -> List[str]:
    return [line for line in text.split("\n") if line.strip()]


def _clean(line: str) -> str:
    return MARKER_RE.sub("", line).strip()


def _is_list_line(line: str) -> bool:
    return "•" in line or "-" in line or bool(NUMBERED_RE.match(line.strip()))


def _is_loose_line(line: str) -> bool:
    # Angles and single-category insights also accept any sentence with a period
    return "•" in line or "-" in line or "." in line


def _evidence(text: str) -> Dict[str, Any]:
    return {
        "reviews": [],
        "information": [{"text": text, "source": AI_SOURCE, "url": ""}],
        "statistics": [],
    }


def parse_angles(text: str) -> List[Dict[str, Any]]:
    angles = []
    priority = 1
    for line in _lines(text):
        if not _is_loose_line(line):
            continue
        cleaned = _clean(line)
        if len(cleaned) <= 5:
            continue
        title, _, description = cleaned.partition(":")
        angles.append({
            "id": new_id(),
            "title": title.strip(),
            "description": description.strip(),
            "priority": priority,
            "aiGenerated": True,
        })
        priority += 1
    return angles


def parse_audience_insights(text: str, category: str) -> List[Dict[str, Any]]:
    insights = []
    for line in _lines(text):
        if not _is_loose_line(line):
            continue
        cleaned = _clean(line)
        if len(cleaned) > 5:
            insights.append({
                "id": new_id(),
                "category": category,
                "title": cleaned,
                "supportingEvidence": _evidence(cleaned),
            })
    return insights


def parse_list_items(text: str) -> List[Dict[str, Any]]:
    items = []
    for line in _lines(text):
        if not _is_list_line(line):
            continue
        cleaned = _clean(line)
        if len(cleaned) > 5:
            items.append({"id": new_id(), "title": cleaned, "supportingEvidence": _evidence(cleaned)})
    return items


def parse_complete_audience_analysis(text: str) -> List[Dict[str, Any]]:
    """Split a full audience analysis on section headers; one group per category."""
    sections: Dict[str, List[str]] = {key: [] for key in SECTION_KEYS.values()}
    current: Optional[str] = None

    for line in text.split("\n"):
        header = SECTION_HEADER_RE.match(line)
        if header:
            key = re.sub(r"\s+", "", header.group(1).lower())
            current = SECTION_KEYS[key[:-1] if key.endswith("s") else key]
            continue
        if current:
            sections[current].append(line)

    return [
        {"category": category, "items": parse_list_items("\n".join(lines))}
        for category, lines in sections.items()
    ]


def parse_personas(text: str) -> List[Dict[str, Any]]:
    personas = []
    sections = [s for s in PERSONA_SPLIT_RE.split(text) if s.strip()]
    for index, section in enumerate(sections):
        description = section.strip()
        if len(description) <= 50:
            continue
        personas.append({
            "id": new_id(),
            "title": f"Persona {index + 1}",
            "demographics": {
                "age": "", "gender": "", "location": "",
                "income": "", "education": "", "occupation": "",
            },
            "psychographics": {"interests": [], "lifestyle": [], "values": [], "painPoints": []},
            "awarenessLevel": "problemAware",
            "customerLanguage": [],
            "description": description,
        })
    return personas


def parse_social_listening(text: str) -> Dict[str, Any]:
    return {
        "extractedLanguage": _lines(text),
        "keyInsights": [],
        "relevantQuotes": [],
        "addedDate": datetime.now(timezone.utc).isoformat(),
    }


def parse_competitor_analysis(text: str) -> List[Dict[str, Any]]:
    return [{
        "id": new_id(),
        "name": "Competitor Analysis",
        "similarities": [],
        "differences": [],
        "opportunities": _lines(text),
        "customerComplaints": [],
        "adLibraryAnalysis": {"creators": [], "formats": [], "strategies": []},
        "priceComparison": "similar",
        "qualityComparison": "",
        "positioningOpportunity": "",
    }]


def parse_concepts(text: str) -> List[Dict[str, Any]]:
    concepts = []
    priority = 1
    for line in _lines(text):
        if not _is_list_line(line):
            continue
        cleaned = _clean(line)
        if len(cleaned) <= 10:
            continue
        concepts.append({
            "id": new_id(),
            "title": cleaned[:50] + "...",
            "description": cleaned,
            "angle": "",
            "format": "",
            "emotion": "",
            "framework": "",
            "priority": priority,
            "inspiration": {"source": AI_SOURCE, "sourceUrl": "", "relatedResearch": []},
            "productionNotes": "",
        })
        priority += 1
    return concepts


def parse_hooks(text: str) -> List[Dict[str, Any]]:
    hooks = []
    priority = 1
    for line in _lines(text):
        if not (_is_list_line(line) or '"' in line or "“" in line):
            continue
        cleaned = re.sub(r"[“”„]", '"', _clean(line))
        if len(cleaned) <= 5:
            continue
        hooks.append({
            "id": new_id(),
            "text": cleaned,
            "angle": "",
            "persona": "",
            "format": "",
            "priority": priority,
            "inspiration": {"source": AI_SOURCE, "sourceUrl": "", "customerLanguage": True},
            "testVariations": [],
        })
        priority += 1
    return hooks


def parse_visuals(text: str) -> List[Dict[str, Any]]:
    visuals = []
    priority = 1
    for line in _lines(text):
        if not _is_list_line(line):
            continue
        cleaned = _clean(line)
        if len(cleaned) <= 10:
            continue
        visuals.append({
            "id": new_id(),
            "description": cleaned,
            "type": "other",
            "angle": "",
            "priority": priority,
            "inspiration": {"source": AI_SOURCE, "sourceUrl": "", "organicReference": False},
            "productionNotes": "",
        })
        priority += 1
    return visuals


LINE_PARSERS: Dict[OutputTarget, Callable[[str], Any]] = {
    OutputTarget.ANGLES: parse_angles,
    OutputTarget.AUDIENCE_ALL: parse_complete_audience_analysis,
    OutputTarget.PERSONAS: parse_personas,
    OutputTarget.SOCIAL_LISTENING: parse_social_listening,
    OutputTarget.COMPETITOR_ANALYSIS: parse_competitor_analysis,
    OutputTarget.CONCEPTS: parse_concepts,
    OutputTarget.HOOKS: parse_hooks,
    OutputTarget.VISUALS: parse_visuals,
}

# Keys a JSON answer may use for each target's collection
JSON_COLLECTION_KEYS: Dict[OutputTarget, tuple] = {
    OutputTarget.ANGLES: ("angles",),
    OutputTarget.BENEFITS: ("benefits",),
    OutputTarget.PAIN_POINTS: ("painPoints", "pain_points"),
    OutputTarget.OBJECTIONS: ("objections",),
    OutputTarget.STATISTICS: ("statistics",),
    OutputTarget.PERSONAS: ("personas",),
    OutputTarget.COMPETITOR_ANALYSIS: ("competitors", "competitor_analysis"),
    OutputTarget.CONCEPTS: ("concepts",),
    OutputTarget.HOOKS: ("hooks",),
    OutputTarget.VISUALS: ("visuals",),
}


def _items_from_json(parsed: Any, target: OutputTarget) -> Optional[List[Any]]:
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        for key in JSON_COLLECTION_KEYS.get(target, ()):
            if isinstance(parsed.get(key), list):
                return parsed[key]
    return None


def _audience_groups_from_json(parsed: Any) -> Optional[List[Dict[str, Any]]]:
    if not isinstance(parsed, dict):
        return None
    groups = []
    for category in SECTION_KEYS.values():
        items = parsed.get(category)
        if isinstance(items, list):
            groups.append({"category": category, "items": ensure_ids(items)})
    return groups or None


def normalize(text: str, target: str) -> Any:
    """
    Turn a run-prompt response into the structure stored for ``target``.

    Unknown targets keep the raw text as ``{"rawOutput": text}``.
    """
    output_target = OutputTarget.parse(target)
    if output_target is None or output_target == OutputTarget.CREATIVE_BRAINSTORM:
        return {"rawOutput": text}

    parsed = _try_parse_json(text)
    if parsed is not None:
        if output_target == OutputTarget.AUDIENCE_ALL:
            groups = _audience_groups_from_json(parsed)
            if groups is not None:
                return groups
        elif output_target == OutputTarget.SOCIAL_LISTENING:
            if isinstance(parsed, dict):
                return {**parsed, "addedDate": datetime.now(timezone.utc).isoformat()}
        else:
            items = _items_from_json(parsed, output_target)
            if items is not None:
                logger.info(f"Using {len(items)} JSON items for {target}")
                items = ensure_ids(items)
                if output_target in AUDIENCE_CATEGORY_TARGETS:
                    category = target.split(".", 1)[1]
                    for item in items:
                        item.setdefault("category", category)
                return items

    if output_target in AUDIENCE_CATEGORY_TARGETS:
        return parse_audience_insights(text, target.split(".", 1)[1])

    return LINE_PARSERS[output_target](text)
