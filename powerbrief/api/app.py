"""
PowerBrief FastAPI Application.

REST API for the OneSheet AI pipeline and brief/UGC script generation.

Features:
- Creative brainstorm, library prompt and ad analysis endpoints
- API key authentication (X-API-Key) plus Supabase user tokens
- Per-IP rate limiting
- Request correlation ids in logs, headers and error bodies
- Health check endpoint
- Automatic OpenAPI documentation
"""

# Load environment variables FIRST before any other imports
from dotenv import load_dotenv
load_dotenv()

import asyncio
import logging
import time
import uuid
from typing import Optional
from datetime import datetime

from fastapi import FastAPI, HTTPException, Depends, Header, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.security import APIKeyHeader
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from .. import __version__
from ..core.config import Config
from ..core.database import get_supabase_client
from ..core.exceptions import AuthorizationError, PowerBriefError
from ..core.observability import RequestIdFilter, request_id_var, setup_logfire
from ..services.media_generation_service import MediaGenerationService
from ..services.onesheet_service import OneSheetService
from ..services.prompt_library import get_prompts_by_category
from .models import (
    CreativeBrainstormRequest,
    CreativeBrainstormResponse,
    RunPromptRequest,
    RunPromptResponse,
    AnalyzeAdRequest,
    AnalyzeAdResponse,
    PromptListResponse,
    GenerateBriefRequest,
    BriefResponse,
    GenerateUgcScriptRequest,
    UgcScriptResponse,
    HealthResponse,
    ErrorResponse,
)

# ============================================================================
# Logging Configuration
# ============================================================================

_log_handler = logging.StreamHandler()
_log_handler.addFilter(RequestIdFilter())
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s',
    handlers=[_log_handler],
)
logger = logging.getLogger(__name__)

# ============================================================================
# FastAPI Application Setup
# ============================================================================

app = FastAPI(
    title="PowerBrief API",
    description="OneSheet AI pipeline: context assembly, provider dispatch and output normalization",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# ============================================================================
# CORS Configuration
# ============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# Rate Limiting
# ============================================================================

limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ============================================================================
# Request Correlation
# ============================================================================


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag each request with a short id used in logs and responses."""
    request_id = uuid.uuid4().hex[:8]
    request.state.request_id = request_id
    token = request_id_var.set(request_id)
    start_time = time.time()
    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({time.time() - start_time:.2f}s)"
        )
    finally:
        request_id_var.reset(token)
    return response


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def _error_response(request: Request, status_code: int, body: dict) -> JSONResponse:
    request_id = _request_id(request)
    headers = {"X-Request-ID": request_id} if request_id else None
    return JSONResponse(
        status_code=status_code,
        content={**body, "requestId": request_id},
        headers=headers,
    )

# ============================================================================
# Authentication
# ============================================================================

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: Optional[str] = Depends(API_KEY_HEADER)):
    """
    Verify API key from request header.

    Checks against POWERBRIEF_API_KEY. If not set, allows all requests
    (development mode).

    Raises:
        HTTPException: If API key is invalid or missing
    """
    expected_key = Config.POWERBRIEF_API_KEY

    # Development mode - no API key required
    if not expected_key:
        logger.warning("POWERBRIEF_API_KEY not set - running in development mode (no auth)")
        return True

    if not api_key:
        logger.warning("API key missing from request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required. Provide via X-API-Key header."
        )

    if api_key != expected_key:
        logger.warning(f"Invalid API key attempt: {api_key[:10]}...")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key"
        )

    return True


async def get_current_user(authorization: Optional[str] = Header(None)) -> str:
    """
    Resolve the caller's user id from a Supabase access token.

    Raises:
        AuthorizationError: (401) missing or invalid bearer token
    """
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthorizationError("Unauthorized", status_code=401)

    token = authorization.split(" ", 1)[1].strip()
    try:
        response = await asyncio.to_thread(get_supabase_client().auth.get_user, token)
    except Exception as e:
        logger.warning(f"Token verification failed: {e}")
        raise AuthorizationError("Unauthorized", status_code=401) from e

    user = getattr(response, "user", None)
    if not user:
        raise AuthorizationError("Unauthorized", status_code=401)
    return str(user.id)


# ============================================================================
# Service Dependencies
# ============================================================================

def get_onesheet_service() -> OneSheetService:
    return OneSheetService()


def get_media_generation_service() -> MediaGenerationService:
    return MediaGenerationService()


# ============================================================================
# System Endpoints
# ============================================================================

@app.get("/", tags=["System"])
async def root():
    """
    API root endpoint with basic information.
    """
    return {
        "name": "PowerBrief API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "creative_brainstorm": "/api/onesheet/creative-brainstorm/generate",
            "run_prompt": "/api/onesheet/run-prompt",
            "analyze_ad": "/api/onesheet/analyze-ad",
            "prompts": "/api/onesheet/prompts",
            "generate_brief": "/api/ai/generate-brief",
            "generate_ugc_script": "/api/ai/generate-ugc-script",
        }
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["System"],
    summary="Health check endpoint"
)
async def health_check():
    """
    Report which dependent services are configured.
    """
    services = {
        "database": "configured" if Config.SUPABASE_URL and Config.SUPABASE_SERVICE_KEY else "error",
        "gemini_ai": "configured" if Config.GEMINI_API_KEY else "error",
        "claude_ai": "configured" if Config.ANTHROPIC_API_KEY else "not_configured",
    }

    overall_status = "healthy" if all(
        s != "error" for s in services.values()
    ) else "degraded"

    return HealthResponse(
        status=overall_status,
        version=__version__,
        timestamp=datetime.now(),
        services=services
    )


# ============================================================================
# OneSheet Endpoints
# ============================================================================

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request or incomplete AI settings"},
    401: {"model": ErrorResponse, "description": "Unauthorized"},
    403: {"model": ErrorResponse, "description": "No access to this OneSheet"},
    404: {"model": ErrorResponse, "description": "OneSheet, settings or item not found"},
    409: {"model": ErrorResponse, "description": "OneSheet changed during generation"},
    429: {"model": ErrorResponse, "description": "Too many requests"},
    500: {"model": ErrorResponse, "description": "Generation or parse failure"},
}


@app.post(
    "/api/onesheet/creative-brainstorm/generate",
    response_model=CreativeBrainstormResponse,
    response_model_by_alias=True,
    responses=ERROR_RESPONSES,
    tags=["OneSheet"],
    summary="Generate creative concepts, hooks and visuals"
)
@limiter.limit(Config.GENERATION_RATE_LIMIT)
async def generate_creative_brainstorm(
    request: Request,
    body: CreativeBrainstormRequest,
    authenticated: bool = Depends(verify_api_key),
    user_id: str = Depends(get_current_user),
    service: OneSheetService = Depends(get_onesheet_service),
):
    """
    Assemble the selected research, send it to the configured provider
    (Gemini or Claude) and append the normalized result to the OneSheet.
    """
    logger.info(f"Creative brainstorm requested for OneSheet {body.onesheet_id} by {user_id}")
    bundle = await service.generate_creative_brainstorm(
        body.onesheet_id, user_id, body.context_options
    )
    return {"success": True, "data": bundle.to_record()}


@app.post(
    "/api/onesheet/run-prompt",
    response_model=RunPromptResponse,
    response_model_by_alias=True,
    responses=ERROR_RESPONSES,
    tags=["OneSheet"],
    summary="Run a library research prompt"
)
@limiter.limit(Config.GENERATION_RATE_LIMIT)
async def run_prompt(
    request: Request,
    body: RunPromptRequest,
    authenticated: bool = Depends(verify_api_key),
    user_id: str = Depends(get_current_user),
    service: OneSheetService = Depends(get_onesheet_service),
):
    """
    Fill a library prompt with the caller's inputs and merge the parsed
    output into the prompt's target section of the OneSheet.
    """
    result = await service.run_prompt(body.prompt_id, body.inputs, body.onesheet_id, user_id)
    return {"success": True, **result}


@app.post(
    "/api/onesheet/analyze-ad",
    response_model=AnalyzeAdResponse,
    responses=ERROR_RESPONSES,
    tags=["OneSheet"],
    summary="Tag one ad from its transcript"
)
@limiter.limit(Config.ANALYSIS_RATE_LIMIT)
async def analyze_ad(
    request: Request,
    body: AnalyzeAdRequest,
    authenticated: bool = Depends(verify_api_key),
    user_id: str = Depends(get_current_user),
    service: OneSheetService = Depends(get_onesheet_service),
):
    """
    Classify the ad's angle, format, emotion and framework, update the ad
    in place and refresh the account-level insights.
    """
    analysis = await service.analyze_ad(body.ad_id, body.onesheet_id, body.transcript, user_id)
    return {"success": True, "analysis": analysis.model_dump(by_alias=True)}


@app.get(
    "/api/onesheet/prompts",
    response_model=PromptListResponse,
    tags=["OneSheet"],
    summary="List library prompts"
)
async def list_prompts(
    category: Optional[str] = None,
    authenticated: bool = Depends(verify_api_key),
):
    """
    List run-prompt templates, optionally for one category
    (audience, social, competitor, creative).
    """
    prompts = get_prompts_by_category(category)
    return {"prompts": [p.model_dump() for p in prompts]}


# ============================================================================
# Media Generation Endpoints
# ============================================================================

@app.post(
    "/api/ai/generate-brief",
    response_model=BriefResponse,
    responses=ERROR_RESPONSES,
    tags=["Generation"],
    summary="Generate ad brief copy from brand context and media"
)
@limiter.limit(Config.GENERATION_RATE_LIMIT)
async def generate_brief(
    request: Request,
    body: GenerateBriefRequest,
    authenticated: bool = Depends(verify_api_key),
    user_id: str = Depends(get_current_user),
    service: MediaGenerationService = Depends(get_media_generation_service),
):
    """
    Generate hooks, scenes and CTA copy for one concept. Media that cannot
    be fetched is skipped and generation continues text-only.
    """
    return await service.generate_brief(
        brand_context=body.brand_context,
        desired_output_fields=body.desired_output_fields,
        concept_prompt=body.concept_specific_prompt,
        current_data=body.concept_current_data,
        hook_options=body.hook_options.model_dump() if body.hook_options else None,
        media=body.media.model_dump() if body.media else None,
    )


@app.post(
    "/api/ai/generate-ugc-script",
    response_model=UgcScriptResponse,
    responses=ERROR_RESPONSES,
    tags=["Generation"],
    summary="Generate a UGC creator script"
)
@limiter.limit(Config.GENERATION_RATE_LIMIT)
async def generate_ugc_script(
    request: Request,
    body: GenerateUgcScriptRequest,
    authenticated: bool = Depends(verify_api_key),
    user_id: str = Depends(get_current_user),
    service: MediaGenerationService = Depends(get_media_generation_service),
):
    """
    Generate a structured UGC script, optionally inspired by a reference video.
    """
    return await service.generate_ugc_script(
        brand_context=body.brand_context,
        hook_options=body.hook_options.model_dump(),
        custom_prompt=body.custom_prompt,
        system_instructions=body.system_instructions,
        reference_video=body.reference_video.model_dump() if body.reference_video else None,
        company_description=body.company_description,
        guide_description=body.guide_description,
        filming_instructions=body.filming_instructions,
    )


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(PowerBriefError)
async def powerbrief_exception_handler(request: Request, exc: PowerBriefError):
    """Domain errors carry their own status code and body."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message}")
    else:
        logger.warning(f"{type(exc).__name__}: {exc.message}")
    return _error_response(request, exc.status_code, exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are a 400, not FastAPI's default 422."""
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}"
        for err in exc.errors()
    )
    logger.warning(f"Invalid request: {problems}")
    return _error_response(request, 400, {"error": f"Invalid request: {problems}"})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent error format."""
    return _error_response(request, exc.status_code, {"error": exc.detail})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    # Runs outside the request middleware, so restore the id for the log record
    token = request_id_var.set(_request_id(request) or "-")
    try:
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
    finally:
        request_id_var.reset(token)
    return _error_response(request, 500, {"error": "Internal server error"})


# ============================================================================
# Startup/Shutdown Events
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Log startup information."""
    logger.info("="*60)
    logger.info("PowerBrief API Starting...")
    logger.info(f"API Version: {__version__}")
    logger.info(f"Auth mode: {'Production (API key required)' if Config.POWERBRIEF_API_KEY else 'Development (no auth)'}")
    logger.info(f"Optimistic locking: {'on' if Config.ONESHEET_OPTIMISTIC_LOCKING else 'off'}")
    setup_logfire()
    logger.info("="*60)


@app.on_event("shutdown")
async def shutdown_event():
    """Log shutdown information."""
    logger.info("PowerBrief API Shutting down...")
