"""
Switchyard: FastAPI Application Entry Point

This module initializes the FastAPI application and defines the endpoints:
- /: Service information
- /health: Active routing configuration
- /models: Backend registry, fallbacks, escalation ladder and policy table
- /v1/chat/completions: OpenAI-compatible routed chat completions

The application uses a lifespan context manager to:
1. Load and validate configuration at startup
2. Configure logging based on settings
3. Close the upstream HTTP client on shutdown
"""

from contextlib import asynccontextmanager
import json
import logging

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from switchyard import __version__
from switchyard.config import Settings, configure_logging, get_settings
from switchyard.dispatcher.handlers import UpstreamClient, UpstreamError, get_upstream_client
from switchyard.dispatcher.streaming import SSE_HEADERS, relay_stream
from switchyard.gateway.auth import require_api_key
from switchyard.gateway.ratelimit import RateLimitStatus, enforce_rate_limit
from switchyard.registry.models import get_backend_registry
from switchyard.router.context import RequestContext
from switchyard.router.engine import (
    CompletedRoute,
    ConfirmationRequired,
    RoutingEngine,
    StreamingRoute,
)
from switchyard.router.routes import get_policy_table
from switchyard.schemas.chat import (
    BackendInfo,
    ChatCompletionRequest,
    ErrorCodes,
    ErrorTypes,
    HealthResponse,
    ModelsResponse,
    build_error_body,
)

logger = logging.getLogger(__name__)

CONFIRMATION_HEADER = "x-switchyard-confirmed"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler for startup/shutdown events.

    On startup:
    - Loads configuration from environment
    - Configures logging
    - Validates the upstream API key is present

    On shutdown:
    - Closes the upstream client
    """
    settings = get_settings()
    configure_logging(settings)

    logger.info("=" * 60)
    logger.info("Switchyard starting up...")
    logger.info("=" * 60)
    logger.info(f"Routing profile: {settings.routing_profile.value}")
    logger.info(f"Cost efficiency mode: {settings.cost_efficiency_mode.value}")
    logger.info(
        f"Direct premium models: {'allowed' if settings.allow_direct_premium_models else 'blocked'}"
    )
    logger.info(f"Safety gate: {'enabled' if settings.enable_safety_gate else 'disabled'}")
    logger.info(f"High-stakes confirm mode: {settings.high_stakes_confirm_mode.value}")
    logger.info(f"Upstream: {settings.openrouter_base_url}")

    if not settings.openrouter_api_key.get_secret_value():
        raise ValueError("OPENROUTER_API_KEY is required but not set")
    logger.info("Upstream API key: configured")

    if settings.force_model:
        logger.warning(f"FORCE_MODEL active: every request goes to {settings.force_model}")
    if settings.service_api_key is None or not settings.service_api_key.get_secret_value():
        logger.warning("SERVICE_API_KEY not set: inbound requests are not authenticated")
    if settings.rate_limit_enabled:
        logger.info(
            f"Rate limit: {settings.rate_limit_max_requests} requests "
            f"per {settings.rate_limit_window_seconds}s"
        )

    logger.info("=" * 60)
    logger.info("Switchyard ready to accept requests")

    yield  # Application runs here

    logger.info("Switchyard shutting down...")
    await get_upstream_client().aclose()


app = FastAPI(
    title="Switchyard",
    description="Adaptive router for OpenAI-compatible chat completions",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    dependencies=[Depends(require_api_key)],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_routing_engine(
    client: UpstreamClient = Depends(get_upstream_client),
) -> RoutingEngine:
    return RoutingEngine(client)


def _invalid_request(status: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status, content=build_error_body(status, message, code))


@app.get("/")
async def root():
    """
    Root endpoint with API information.
    """
    return {
        "name": "Switchyard",
        "description": "Adaptive router for OpenAI-compatible chat completions",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "models": "/models",
        "chat": "/v1/chat/completions",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Report service status and the active routing configuration.",
)
async def health_check(settings: Settings = Depends(get_settings)):
    """
    Health check endpoint for monitoring and orchestration.

    Reports routing modes only; API keys are never exposed.
    """
    return HealthResponse(
        version=__version__,
        routing_profile=settings.routing_profile.value,
        cost_efficiency_mode=settings.cost_efficiency_mode.value,
        allow_direct_premium_models=settings.allow_direct_premium_models,
        safety_gate=settings.enable_safety_gate,
        high_stakes_confirm_mode=settings.high_stakes_confirm_mode.value,
        forced_model=bool(settings.force_model),
        rate_limit_enabled=settings.rate_limit_enabled,
        rate_limit_window_seconds=settings.rate_limit_window_seconds,
        rate_limit_max_requests=settings.rate_limit_max_requests,
    )


@app.get("/models", response_model=ModelsResponse)
async def list_models():
    """
    List all registered backends with their metadata.

    Returns the complete backend registry including:
    - Backend ids, display names and tiers
    - Cost metadata (per 1M tokens)
    - Multimodal capability
    - Fallback lists and escalation ladder
    - The category x complexity policy table
    """
    registry = get_backend_registry()
    backends = registry.list_backends()

    return ModelsResponse(
        models=[
            BackendInfo(
                key=backend.key.value,
                backend_id=backend.backend_id,
                display_name=backend.display_name,
                tier=backend.tier.value,
                cost_per_1m_input=backend.cost_per_1m_input_tokens,
                cost_per_1m_output=backend.cost_per_1m_output_tokens,
                multimodal=backend.multimodal,
                fallbacks=[key.value for key in registry.fallbacks_for(backend.key)],
                escalates_to=(
                    registry.next_rung(backend.key).value
                    if registry.next_rung(backend.key)
                    else None
                ),
            )
            for backend in backends
        ],
        multimodal_fallback_order=[key.value for key in registry.multimodal_order],
        policy_table=get_policy_table(),
        total_models=len(backends),
    )


@app.post(
    "/v1/chat/completions",
    summary="Routed chat completion",
    description="OpenAI-compatible chat completion routed to the cheapest adequate backend.",
)
async def chat_completions(
    request: Request,
    settings: Settings = Depends(get_settings),
    engine: RoutingEngine = Depends(get_routing_engine),
    rate_status: RateLimitStatus | None = Depends(enforce_rate_limit),
):
    """
    Main routing endpoint.

    Flow:
    1. Read and validate the body
    2. Build the request context (features, safety gate)
    3. Run the routing engine
    4. Relay the completion or stream with routing headers
    """
    raw = await request.body()
    if len(raw) > settings.max_request_bytes:
        return _invalid_request(
            413, "Invalid request: payload is too large.", ErrorCodes.PAYLOAD_TOO_LARGE
        )

    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _invalid_request(
            400, "Invalid request: body must be valid JSON.", ErrorCodes.INVALID_JSON
        )

    try:
        ChatCompletionRequest.model_validate(body)
    except ValidationError:
        return _invalid_request(
            400, "Invalid request: 'messages' array is required.", ErrorCodes.INVALID_REQUEST
        )

    ctx = RequestContext.from_request(
        body,
        settings.router_config(),
        confirmation_header=request.headers.get(CONFIRMATION_HEADER),
    )
    outcome = await engine.handle(ctx)

    extra_headers = rate_status.to_headers() if rate_status else {}

    match outcome:
        case ConfirmationRequired(matched_signals=signals, token=token):
            return JSONResponse(
                status_code=409,
                content=build_error_body(
                    409,
                    "High-stakes request blocked pending confirmation. Resend with header "
                    f"`{CONFIRMATION_HEADER}: {token}` or set "
                    f'`metadata.switchyard_confirmed="{token}"`.',
                    code=ErrorCodes.CONFIRMATION_REQUIRED,
                    error_type=ErrorTypes.CONFIRMATION_REQUIRED,
                    details={"matched_signals": list(signals)},
                ),
                headers=extra_headers,
            )
        case StreamingRoute(stream=stream, metadata=metadata):
            return StreamingResponse(
                relay_stream(stream, ctx.request_id),
                media_type=stream.content_type,
                headers={**SSE_HEADERS, **metadata.to_headers(), **extra_headers},
            )
        case CompletedRoute(body=result, metadata=metadata):
            return JSONResponse(
                content=result,
                headers={**metadata.to_headers(), **extra_headers},
            )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """
    Handle HTTP exceptions with consistent format.

    Dependencies raise with the error envelope's inner object as detail;
    anything else is wrapped with the status-derived type.
    """
    detail = exc.detail
    if isinstance(detail, dict) and "message" in detail:
        content = {"error": detail}
    else:
        content = build_error_body(exc.status_code, str(detail))
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(UpstreamError)
async def upstream_exception_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    """
    Translate upstream and candidate-chain failures.

    4xx messages pass through; 5xx responses carry the generic message.
    """
    status = exc.status if 400 <= exc.status <= 599 else 500
    return JSONResponse(
        status_code=status,
        content=build_error_body(status, exc.message, code=exc.code),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions.

    Logs the full exception for debugging and returns a generic error
    response to avoid leaking implementation details.
    """
    logger.exception("Unhandled exception")
    return JSONResponse(
        status_code=500,
        content=build_error_body(500, str(exc), code=ErrorCodes.INTERNAL_ERROR),
    )


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "switchyard.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
