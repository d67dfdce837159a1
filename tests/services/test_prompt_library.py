"""
Tests for the OneSheet prompt library (YAML templates and rendering).
"""

import pytest

from powerbrief.core.exceptions import NotFoundError, ValidationError
from powerbrief.services.prompt_library import (
    get_prompt_by_id,
    get_prompts_by_category,
    load_prompts,
    render_library_prompt,
    replace_placeholders,
)
from powerbrief.services.response_normalizer import OutputTarget


class TestLoadPrompts:
    def test_library_loads_with_unique_ids(self):
        prompts = load_prompts()

        ids = [p.id for p in prompts]
        assert len(ids) == 18
        assert len(set(ids)) == len(ids)

    def test_every_required_input_appears_in_template(self):
        for prompt in load_prompts():
            for field in prompt.input_fields:
                assert "{{" + field.key + "}}" in prompt.prompt, (prompt.id, field.key)

    def test_targets_are_known_or_research_data(self):
        for prompt in load_prompts():
            if OutputTarget.parse(prompt.output_target) is None:
                assert prompt.output_target == "competitor_analysis.opportunities"

    def test_categories(self):
        assert {p.category for p in get_prompts_by_category()} == {"audience", "social", "competitor", "creative"}
        assert [p.id for p in get_prompts_by_category("social")] == ["analyze_reddit_quora", "analyze_articles"]


class TestGetPromptById:
    def test_known_prompt(self):
        prompt = get_prompt_by_id("generate_benefits")

        assert prompt.output_target == "audience_insights.benefits"
        assert [f.key for f in prompt.input_fields] == ["product", "url"]

    def test_unknown_prompt(self):
        with pytest.raises(NotFoundError, match="Prompt template not found"):
            get_prompt_by_id("does_not_exist")


class TestRender:
    def test_fills_all_placeholders(self):
        prompt = get_prompt_by_id("analyze_reddit_quora")

        rendered = render_library_prompt(prompt, {
            "platform": "Reddit",
            "product": "collagen",
            "content": "My joints feel better",
        })

        assert rendered.count("Reddit") == 2
        assert "{{" not in rendered

    def test_missing_required_inputs(self):
        prompt = get_prompt_by_id("generate_benefits")

        with pytest.raises(ValidationError) as exc_info:
            render_library_prompt(prompt, {"product": "Gut Reset", "url": "  "})

        assert exc_info.value.message == "Missing required inputs: url"

    def test_optional_input_may_be_omitted(self):
        prompt = get_prompt_by_id("testimonial_headlines")
        inputs = {f.key: "value" for f in prompt.input_fields if f.required}

        rendered = render_library_prompt(prompt, inputs)

        assert "{{example}}" not in rendered

    def test_replace_placeholders_replaces_every_occurrence(self):
        assert replace_placeholders("{{a}}-{{a}}-{{b}}", {"a": "x"}) == "x-x-{{b}}"
