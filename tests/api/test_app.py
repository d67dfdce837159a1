"""
Tests for the PowerBrief FastAPI app - routing, auth, error mapping and
request ids. Services are replaced through dependency overrides.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from powerbrief.api.app import (
    app,
    get_current_user,
    get_media_generation_service,
    get_onesheet_service,
    limiter,
)
from powerbrief.core.config import Config
from powerbrief.core.exceptions import (
    ConfigurationError,
    ConflictError,
    GenerationError,
    NotFoundError,
    ParseError,
)
from powerbrief.core.observability import request_id_var
from powerbrief.services.models import AdAnalysis, CreativeBrainstormBundle


@pytest.fixture
def onesheet_service():
    return MagicMock()


@pytest.fixture
def media_service():
    return MagicMock()


@pytest.fixture
def client(onesheet_service, media_service):
    limiter.enabled = False
    app.dependency_overrides[get_current_user] = lambda: "user-1"
    app.dependency_overrides[get_onesheet_service] = lambda: onesheet_service
    app.dependency_overrides[get_media_generation_service] = lambda: media_service
    with patch.object(Config, "POWERBRIEF_API_KEY", ""):
        yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
    limiter.enabled = True


BRAINSTORM_BODY = {
    "onesheetId": "os-1",
    "contextOptions": {"audienceResearch": {"benefits": True}},
}


# ============================================================================
# Creative brainstorm
# ============================================================================

class TestCreativeBrainstormEndpoint:
    def test_returns_bundle(self, client, onesheet_service):
        onesheet_service.generate_creative_brainstorm = AsyncMock(
            return_value=CreativeBrainstormBundle(net_new_concepts=[{"id": "c1", "title": "X"}])
        )

        response = client.post("/api/onesheet/creative-brainstorm/generate", json=BRAINSTORM_BODY)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["netNewConcepts"] == [{"id": "c1", "title": "X"}]
        onesheet_id, user_id, mask = onesheet_service.generate_creative_brainstorm.call_args[0]
        assert (onesheet_id, user_id) == ("os-1", "user-1")
        assert mask.audience_research.benefits is True

    def test_missing_onesheet_id_is_400(self, client, onesheet_service):
        response = client.post("/api/onesheet/creative-brainstorm/generate", json={"contextOptions": {}})

        assert response.status_code == 400
        assert "onesheetId" in response.json()["error"]
        assert response.json()["requestId"]

    def test_unknown_mask_key_is_400(self, client):
        body = {"onesheetId": "os-1", "contextOptions": {"audienceResearch": {"bogus": True}}}

        response = client.post("/api/onesheet/creative-brainstorm/generate", json=body)

        assert response.status_code == 400

    @pytest.mark.parametrize("error, status", [
        (NotFoundError("AI instructions not found. Please configure AI settings first."), 404),
        (ConfigurationError("missing", missing_field="claude_system_instructions"), 400),
        (ConflictError("changed"), 409),
        (GenerationError("Failed to generate content with gemini", provider="gemini", provider_message="quota"), 500),
    ])
    def test_domain_errors_map_to_status(self, client, onesheet_service, error, status):
        onesheet_service.generate_creative_brainstorm = AsyncMock(side_effect=error)

        response = client.post("/api/onesheet/creative-brainstorm/generate", json=BRAINSTORM_BODY)

        assert response.status_code == status
        assert response.json()["error"] == error.message

    def test_parse_error_includes_raw_response(self, client, onesheet_service):
        onesheet_service.generate_creative_brainstorm = AsyncMock(
            side_effect=ParseError("Failed to parse AI response as JSON", raw_response="nope")
        )

        response = client.post("/api/onesheet/creative-brainstorm/generate", json=BRAINSTORM_BODY)

        assert response.status_code == 500
        assert response.json()["rawResponse"] == "nope"

    def test_unexpected_error_is_generic_500(self, client, onesheet_service):
        onesheet_service.generate_creative_brainstorm = AsyncMock(side_effect=RuntimeError("db exploded"))

        response = client.post("/api/onesheet/creative-brainstorm/generate", json=BRAINSTORM_BODY)

        assert response.status_code == 500
        assert response.json()["error"] == "Internal server error"
        assert response.headers["X-Request-ID"] == response.json()["requestId"]

    def test_unexpected_error_is_logged_with_request_id(self, client, onesheet_service):
        onesheet_service.generate_creative_brainstorm = AsyncMock(side_effect=RuntimeError("db exploded"))
        logged = []

        with patch("powerbrief.api.app.logger.error", side_effect=lambda *a, **kw: logged.append(request_id_var.get())):
            response = client.post("/api/onesheet/creative-brainstorm/generate", json=BRAINSTORM_BODY)

        assert logged == [response.json()["requestId"]]

    def test_token_check_runs_off_the_event_loop(self, client):
        del app.dependency_overrides[get_current_user]
        on_loop = []

        def get_user(token):
            try:
                asyncio.get_running_loop()
                on_loop.append(True)
            except RuntimeError:
                on_loop.append(False)
            raise Exception("invalid JWT")

        supabase = MagicMock()
        supabase.auth.get_user.side_effect = get_user

        with patch("powerbrief.api.app.get_supabase_client", return_value=supabase):
            client.post(
                "/api/onesheet/creative-brainstorm/generate",
                json=BRAINSTORM_BODY,
                headers={"Authorization": "Bearer bad-token"},
            )

        assert on_loop == [False]


# ============================================================================
# Run prompt / analyze ad / prompt list
# ============================================================================

class TestRunPromptEndpoint:
    def test_returns_camel_case_fields(self, client, onesheet_service):
        onesheet_service.run_prompt = AsyncMock(return_value={
            "aiOutput": "- hook",
            "processedData": [{"id": "h1", "text": "hook"}],
            "updatedOneSheet": {"id": "os-1"},
            "usage": {"model": "gemini-2.5-pro", "promptUsed": "p"},
        })

        response = client.post("/api/onesheet/run-prompt", json={
            "promptId": "generate_one_liners",
            "inputs": {"reviews": "Great"},
            "onesheetId": "os-1",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["aiOutput"] == "- hook"
        assert body["updatedOneSheet"] == {"id": "os-1"}
        onesheet_service.run_prompt.assert_awaited_once_with(
            "generate_one_liners", {"reviews": "Great"}, "os-1", "user-1"
        )


class TestAnalyzeAdEndpoint:
    def test_returns_analysis(self, client, onesheet_service):
        onesheet_service.analyze_ad = AsyncMock(return_value=AdAnalysis(angle="Quality", product_intro=3))

        response = client.post("/api/onesheet/analyze-ad", json={
            "adId": "ad_1", "onesheetId": "os-1", "transcript": "Hi there",
        })

        assert response.status_code == 200
        assert response.json()["analysis"]["angle"] == "Quality"
        assert response.json()["analysis"]["productIntro"] == 3

    def test_blank_transcript_is_400(self, client, onesheet_service):
        response = client.post("/api/onesheet/analyze-ad", json={
            "adId": "ad_1", "onesheetId": "os-1", "transcript": "   ",
        })

        assert response.status_code == 400


class TestPromptsEndpoint:
    def test_lists_category(self, client):
        response = client.get("/api/onesheet/prompts", params={"category": "competitor"})

        assert response.status_code == 200
        ids = [p["id"] for p in response.json()["prompts"]]
        assert ids == ["competitor_research_table", "competitor_gap_analysis"]


# ============================================================================
# Media generation
# ============================================================================

class TestGenerationEndpoints:
    def test_generate_brief(self, client, media_service):
        media_service.generate_brief = AsyncMock(return_value={
            "text_hook_options": ["Hook"],
            "spoken_hook_options": [],
            "body_content_structured_scenes": [],
            "cta_script": "Buy",
            "cta_text_overlay": "Buy now",
        })

        response = client.post("/api/ai/generate-brief", json={
            "brandContext": {"name": "Gut Reset"},
            "media": {"url": "https://cdn.example.com/a.png", "type": "image"},
            "hookOptions": {"type": "text", "count": 3},
        })

        assert response.status_code == 200
        assert response.json()["cta_text_overlay"] == "Buy now"
        kwargs = media_service.generate_brief.call_args.kwargs
        assert kwargs["media"] == {"url": "https://cdn.example.com/a.png", "type": "image"}
        assert kwargs["hook_options"] == {"type": "text", "count": 3}

    def test_generate_ugc_script(self, client, media_service):
        media_service.generate_ugc_script = AsyncMock(return_value={
            "script_content": {"scene_start": "", "segments": [], "scene_end": ""},
            "hook_body": "Hook",
            "cta": "Link in bio",
            "b_roll_shot_list": [],
            "company_description": "",
            "guide_description": "",
            "filming_instructions": "",
        })

        response = client.post("/api/ai/generate-ugc-script", json={"brandContext": {}})

        assert response.status_code == 200
        assert response.json()["cta"] == "Link in bio"
        assert media_service.generate_ugc_script.call_args.kwargs["hook_options"] == {"type": "both", "count": 5}


# ============================================================================
# Auth, system endpoints, request ids
# ============================================================================

class TestAuth:
    def test_missing_bearer_token_is_401(self, client, onesheet_service):
        del app.dependency_overrides[get_current_user]

        response = client.post("/api/onesheet/creative-brainstorm/generate", json=BRAINSTORM_BODY)

        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized"

    def test_invalid_token_is_401(self, client):
        del app.dependency_overrides[get_current_user]
        supabase = MagicMock()
        supabase.auth.get_user.side_effect = Exception("invalid JWT")

        with patch("powerbrief.api.app.get_supabase_client", return_value=supabase):
            response = client.post(
                "/api/onesheet/creative-brainstorm/generate",
                json=BRAINSTORM_BODY,
                headers={"Authorization": "Bearer bad-token"},
            )

        assert response.status_code == 401

    def test_api_key_required_when_configured(self, client):
        with patch.object(Config, "POWERBRIEF_API_KEY", "secret"):
            missing = client.get("/api/onesheet/prompts")
            wrong = client.get("/api/onesheet/prompts", headers={"X-API-Key": "nope"})
            ok = client.get("/api/onesheet/prompts", headers={"X-API-Key": "secret"})

        assert missing.status_code == 401
        assert wrong.status_code == 403
        assert ok.status_code == 200


class TestSystem:
    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["name"] == "PowerBrief API"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] in ("healthy", "degraded")

    def test_every_response_has_request_id(self, client):
        response = client.get("/health")

        assert len(response.headers["X-Request-ID"]) == 8
