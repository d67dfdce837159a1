"""
Tests for the response normalizer - JSON extraction, id assignment and
line-oriented parsing of library prompt output.
"""

import json
import pytest

from powerbrief.core.exceptions import ParseError
from powerbrief.services.response_normalizer import (
    OutputTarget,
    ensure_ids,
    extract_first_json_object,
    normalize,
    normalize_creative_brainstorm,
    parse_ad_analysis,
    parse_json_response,
)


# ============================================================================
# JSON extraction
# ============================================================================

class TestParseJsonResponse:
    def test_strict_json(self):
        assert parse_json_response('{"angle": "Trust"}') == {"angle": "Trust"}

    def test_code_fenced_json(self):
        text = '```json\n{"angle": "Trust"}\n```'
        assert parse_json_response(text) == {"angle": "Trust"}

    def test_object_embedded_in_prose(self):
        text = 'Here is the result: {"angle":"Trust"} — hope that helps!'
        assert parse_json_response(text) == {"angle": "Trust"}

    def test_braces_inside_strings_do_not_end_the_object(self):
        text = 'Result: {"hook": "use {curly} braces", "n": {"x": 1}} trailing'
        assert parse_json_response(text) == {"hook": "use {curly} braces", "n": {"x": 1}}

    def test_unparseable_text_raises_with_raw_response(self):
        with pytest.raises(ParseError) as exc_info:
            parse_json_response("Sorry, I cannot help with that.")

        assert exc_info.value.raw_response == "Sorry, I cannot help with that."
        assert exc_info.value.to_dict()["rawResponse"] == "Sorry, I cannot help with that."

    def test_raw_preview_is_truncated(self):
        text = "x" * 2000
        with pytest.raises(ParseError) as exc_info:
            parse_json_response(text)

        assert len(exc_info.value.raw_preview) == 503
        assert exc_info.value.raw_response == text

    def test_extract_skips_unbalanced_leading_brace(self):
        assert extract_first_json_object('{ broken and then {"ok": true}') == '{"ok": true}'

    def test_extract_returns_none_without_object(self):
        assert extract_first_json_object("no json here") is None


# ============================================================================
# Identifiers
# ============================================================================

class TestEnsureIds:
    def test_assigns_missing_ids_and_keeps_existing(self):
        items = ensure_ids([{"id": "keep-me", "title": "A"}, {"title": "B"}, {"id": "", "title": "C"}])

        assert items[0]["id"] == "keep-me"
        assert items[1]["id"]
        assert items[2]["id"]
        assert len({i["id"] for i in items}) == 3

    def test_duplicate_ids_get_reassigned(self):
        items = ensure_ids([{"id": "dup"}, {"id": "dup"}])

        assert items[0]["id"] == "dup"
        assert items[1]["id"] != "dup"

    def test_bare_strings_are_wrapped(self):
        items = ensure_ids(["hook one"])

        assert items[0]["text"] == "hook one"
        assert items[0]["id"]

    def test_does_not_mutate_input(self):
        original = [{"title": "A"}]
        ensure_ids(original)
        assert "id" not in original[0]


# ============================================================================
# Creative brainstorm
# ============================================================================

class TestNormalizeCreativeBrainstorm:
    def test_assigns_ids_across_all_collections(self):
        text = json.dumps({
            "netNewConcepts": [{"title": "X"}, {"id": "c-1", "title": "Y"}],
            "iterations": [{"title": "Iter"}],
            "hooks": {"visual": [{"text": "V"}], "audio": [{"text": "A"}]},
            "visuals": [{"description": "Splash"}],
        })

        bundle = normalize_creative_brainstorm(text)

        all_items = (
            bundle.net_new_concepts + bundle.iterations
            + bundle.hooks.visual + bundle.hooks.audio + bundle.visuals
        )
        ids = [i["id"] for i in all_items]
        assert all(ids)
        assert len(set(ids)) == len(ids)
        assert bundle.net_new_concepts[1]["id"] == "c-1"

    def test_missing_collections_default_to_empty(self):
        bundle = normalize_creative_brainstorm('{"netNewConcepts": [{"title": "X"}]}')

        record = bundle.to_record()
        assert len(record["netNewConcepts"]) == 1
        assert record["hooks"] == {"visual": [], "audio": []}
        assert record["creativeBestPractices"] == {
            "dos": [], "donts": [], "keyLearnings": [], "recommendations": []
        }

    def test_prose_wrapped_bundle(self):
        bundle = normalize_creative_brainstorm(
            'Sure! {"netNewConcepts": [{"title": "X"}]} Let me know.'
        )
        assert bundle.net_new_concepts[0]["title"] == "X"

    def test_top_level_array_is_a_parse_error(self):
        with pytest.raises(ParseError):
            normalize_creative_brainstorm('[{"title": "X"}]')

    def test_wrong_shape_is_a_parse_error(self):
        with pytest.raises(ParseError):
            normalize_creative_brainstorm('{"netNewConcepts": "not a list"}')


# ============================================================================
# Ad analysis
# ============================================================================

class TestParseAdAnalysis:
    def test_parses_tags_and_counts(self):
        analysis = parse_ad_analysis(json.dumps({
            "type": "Low Production",
            "angle": "Health Boost",
            "format": "Testimonial",
            "emotion": "Trust",
            "framework": "PAS (Problem, Agitate, Solve)",
            "productIntro": 5,
            "creatorsUsed": 2,
            "enhancedTranscript": "[00:00] Hi",
        }))

        assert analysis.angle == "Health Boost"
        assert analysis.product_intro == 5
        assert analysis.creators_used == 2
        assert analysis.enhanced_transcript == "[00:00] Hi"

    def test_missing_counts_use_defaults(self):
        analysis = parse_ad_analysis('{"angle": "Quality", "productIntro": null}')

        assert analysis.product_intro == 0
        assert analysis.creators_used == 1

    def test_non_numeric_count_is_a_parse_error(self):
        with pytest.raises(ParseError):
            parse_ad_analysis('{"productIntro": "around five"}')


# ============================================================================
# Line heuristics
# ============================================================================

class TestNormalizeLines:
    def test_angles_split_title_and_description(self):
        text = "1. Convenience: Saves 20 minutes every morning\n2. Trust: Doctor formulated\nok"

        angles = normalize(text, "angles")

        assert [a["title"] for a in angles] == ["Convenience", "Trust"]
        assert angles[0]["description"] == "Saves 20 minutes every morning"
        assert [a["priority"] for a in angles] == [1, 2]
        assert all(a["aiGenerated"] for a in angles)

    def test_audience_category_items(self):
        text = "- Better sleep within a week\n- More energy in the afternoon"

        insights = normalize(text, "audience_insights.benefits")

        assert len(insights) == 2
        assert all(i["category"] == "benefits" for i in insights)
        assert insights[0]["supportingEvidence"]["information"][0]["text"] == "Better sleep within a week"

    def test_complete_audience_analysis_splits_sections(self):
        text = (
            "Benefits:\n- Sleeps through the night\n- Wakes up refreshed\n"
            "Pain Points:\n- Tossing and turning for hours\n"
            "Failed Solutions:\n- Melatonin gummies did nothing\n"
        )

        groups = {g["category"]: g["items"] for g in normalize(text, "audience_insights.all")}

        assert len(groups["benefits"]) == 2
        assert len(groups["painPoints"]) == 1
        assert len(groups["failedSolutions"]) == 1
        assert groups["features"] == []

    def test_personas_split_on_headings(self):
        text = (
            "Persona 1: Busy Mom, 35, juggling work and kids, wants quick healthy breakfasts.\n"
            "Persona 2: Gym Bro, 24, tracks macros obsessively and buys supplements monthly.\n"
        )

        personas = normalize(text, "personas")

        assert [p["title"] for p in personas] == ["Persona 1", "Persona 2"]
        assert personas[0]["awarenessLevel"] == "problemAware"

    def test_hooks_normalize_smart_quotes(self):
        hooks = normalize("- “I finally sleep again”", "hooks")

        assert hooks[0]["text"] == '"I finally sleep again"'

    def test_concepts_require_longer_lines(self):
        concepts = normalize("- short\n- A morning routine demo filmed in a real kitchen", "concepts")

        assert len(concepts) == 1
        assert concepts[0]["title"].endswith("...")

    def test_social_listening_keeps_nonempty_lines(self):
        data = normalize("line one\n\nline two\n", "social_listening_data")

        assert data["extractedLanguage"] == ["line one", "line two"]
        assert "addedDate" in data

    def test_competitor_analysis_single_entry(self):
        entries = normalize("Cheaper\nFaster shipping", "competitor_analysis")

        assert len(entries) == 1
        assert entries[0]["opportunities"] == ["Cheaper", "Faster shipping"]

    def test_unknown_target_keeps_raw_output(self):
        assert normalize("free text", "competitor_analysis.opportunities") == {"rawOutput": "free text"}

    def test_json_answer_is_used_directly(self):
        text = json.dumps({"hooks": [{"text": "Hook A"}, {"id": "h-2", "text": "Hook B"}]})

        hooks = normalize(text, "hooks")

        assert [h["text"] for h in hooks] == ["Hook A", "Hook B"]
        assert hooks[1]["id"] == "h-2"
        assert hooks[0]["id"]

    def test_json_list_for_category_sets_category(self):
        insights = normalize('[{"title": "Less bloating"}]', "audience_insights.painPoints")

        assert insights[0]["category"] == "painPoints"

    def test_output_target_parse(self):
        assert OutputTarget.parse("visuals") is OutputTarget.VISUALS
        assert OutputTarget.parse("nope") is None
