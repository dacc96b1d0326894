"""
Pydantic Schemas for the Chat Completions Gateway

This module defines the request and response models for the Switchyard API:
- ChatCompletionRequest: OpenAI-compatible request body (unknown fields kept)
- RoutingMetadata: Routing decision exposed as x-switchyard-* response headers
- Error envelope in OpenAI style: {"error": {"message", "type", "code", "details"}}
- Health and backend listing schemas

All schemas follow Pydantic v2 patterns with field descriptions for
OpenAPI documentation.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

GENERIC_SERVER_ERROR = "Internal server error."
HEADER_PREFIX = "x-switchyard"


# =============================================================================
# REQUEST MODELS
# =============================================================================


class ChatCompletionRequest(BaseModel):
    """
    Request body for /v1/chat/completions.

    Only ``messages`` is validated; every other field is forwarded upstream
    untouched. Streaming is on unless ``stream`` is literally false.

    Example:
        {
            "messages": [{"role": "user", "content": "Summarize this thread"}],
            "stream": false
        }
    """

    model_config = ConfigDict(extra="allow")

    messages: list[Any] = Field(
        ...,
        description="Ordered role/content messages",
    )

    model: Any = Field(
        default=None,
        description="Ignored; the router selects the backend",
    )

    stream: Any = Field(
        default=None,
        description="Streaming is enabled unless this is false",
    )

    tools: Any = Field(
        default=None,
        description="Tool declarations, forwarded upstream",
    )

    metadata: Any = Field(
        default=None,
        description="Free-form metadata; may carry switchyard_confirmed",
    )

    @field_validator("messages", mode="before")
    @classmethod
    def require_list(cls, v):
        """Reject anything that is not a JSON array."""
        if not isinstance(v, list):
            raise ValueError("'messages' must be an array")
        return v


# =============================================================================
# ROUTING METADATA
# =============================================================================


class RoutingMetadata(BaseModel):
    """
    The router's audit surface for a single response.

    Rendered as x-switchyard-* headers; empty values are omitted.
    """

    category: str = Field(..., description="Request category")
    complexity: str = Field(..., description="Complexity as classified")
    adjusted_complexity: str = Field(..., description="Complexity after profile shift")
    initial_backend_id: str = Field(..., description="Backend that answered first")
    final_backend_id: str = Field(..., description="Backend whose answer was returned")
    route_label: str = Field(..., description="Policy label")
    escalated: bool = Field(default=False, description="Whether an escalation call was made")
    confidence_score: int | None = Field(
        default=None, description="Self-check score; absent for streaming and forced routes"
    )
    low_confidence: bool = Field(default=False, description="Final answer scored low")
    safety_gate_triggered: bool = Field(default=False, description="Safety gate fired")

    def to_headers(self) -> dict[str, str]:
        """Render as response headers, skipping empty values."""
        values = {
            "category": self.category,
            "complexity": self.complexity,
            "adjusted-complexity": self.adjusted_complexity,
            "initial-model": self.initial_backend_id,
            "final-model": self.final_backend_id,
            "route-label": self.route_label,
            "escalated": str(self.escalated).lower(),
            "confidence-score": "" if self.confidence_score is None else str(self.confidence_score),
            "low-confidence": str(self.low_confidence).lower(),
            "safety-gate": str(self.safety_gate_triggered).lower(),
        }
        return {f"{HEADER_PREFIX}-{name}": value for name, value in values.items() if value}


# =============================================================================
# ERROR MODELS
# =============================================================================


class ErrorCodes:
    """
    Standard error codes for API responses.

    These codes enable programmatic error handling by clients
    without parsing human-readable messages.
    """

    INVALID_JSON = "invalid_json"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    INVALID_REQUEST = "invalid_request"
    INVALID_API_KEY = "invalid_api_key"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    CONFIRMATION_REQUIRED = "high_stakes_confirmation_required"
    ROUTING_NO_CANDIDATES = "routing_no_candidates"
    ROUTING_EXHAUSTED = "routing_exhausted"
    MALFORMED_UPSTREAM_RESPONSE = "malformed_upstream_response"
    INTERNAL_ERROR = "internal_error"


class ErrorTypes:
    """Error ``type`` values, following the OpenAI error envelope."""

    INVALID_REQUEST = "invalid_request_error"
    SERVER = "server_error"
    AUTHENTICATION = "authentication_error"
    RATE_LIMIT = "rate_limit_error"
    CONFIRMATION_REQUIRED = "safety_confirmation_required"


class ErrorDetail(BaseModel):
    """
    Detailed error information for API error responses.

    Provides machine-readable error codes and types alongside
    human-readable messages.
    """

    message: str = Field(..., description="Human-readable error message")
    type: str = Field(..., description="Error class (OpenAI-style)")
    code: str | None = Field(default=None, description="Machine-readable error code")
    details: dict[str, Any] | None = Field(
        default=None, description="Extra structured context, e.g. matched signals"
    )


class ErrorResponse(BaseModel):
    """
    Standard error response format for all API errors.

    Example:
        {
            "error": {
                "message": "Invalid request: body must be valid JSON.",
                "type": "invalid_request_error",
                "code": "invalid_json"
            }
        }
    """

    error: ErrorDetail = Field(..., description="Error details")


def build_error_body(
    status: int,
    message: str,
    code: str | None = None,
    error_type: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict:
    """
    Build an error envelope for a status code.

    5xx responses never leak the underlying message.

    Args:
        status: HTTP status being returned
        message: Message for 4xx responses
        code: Machine-readable code
        error_type: Overrides the status-derived type
        details: Optional structured details

    Returns:
        JSON-ready error body
    """
    server_side = status >= 500
    response = ErrorResponse(
        error=ErrorDetail(
            message=GENERIC_SERVER_ERROR if server_side else message,
            type=error_type or (ErrorTypes.SERVER if server_side else ErrorTypes.INVALID_REQUEST),
            code=code,
            details=details,
        )
    )
    return response.model_dump(exclude_none=True)


# =============================================================================
# SERVICE MODELS
# =============================================================================


class HealthResponse(BaseModel):
    """
    Response from the /health endpoint.

    Reports the active routing configuration; never includes secrets.
    """

    ok: bool = Field(default=True, description="Service is up")
    service: str = Field(default="switchyard", description="Service identifier")
    version: str = Field(..., description="Application version")
    routing_profile: str = Field(..., description="budget / balanced / quality")
    cost_efficiency_mode: str = Field(..., description="off / balanced / strict")
    allow_direct_premium_models: bool = Field(..., description="Premium ceilings disabled")
    safety_gate: bool = Field(..., description="Safety gate enabled")
    high_stakes_confirm_mode: str = Field(..., description="off / prompt / strict")
    forced_model: bool = Field(default=False, description="A forced-model override is active")
    rate_limit_enabled: bool = Field(..., description="Rate limiter enabled")
    rate_limit_window_seconds: int = Field(..., description="Rate limit window")
    rate_limit_max_requests: int = Field(..., description="Requests per window")


class BackendInfo(BaseModel):
    """A registered backend as listed by /models."""

    key: str
    backend_id: str
    display_name: str
    tier: str
    cost_per_1m_input: float
    cost_per_1m_output: float
    multimodal: bool
    fallbacks: list[str] = Field(default_factory=list)
    escalates_to: str | None = None


class ModelsResponse(BaseModel):
    """Response from the /models endpoint."""

    models: list[BackendInfo]
    multimodal_fallback_order: list[str]
    policy_table: dict[str, dict[str, dict[str, str]]]
    total_models: int
