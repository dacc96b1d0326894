"""
Schemas module: Pydantic request/response models.

This module provides validated data models for the Switchyard API:
- ChatCompletionRequest for /v1/chat/completions
- RoutingMetadata and its x-switchyard-* header rendering
- Error envelope models, error codes and types
- Health and backend listing responses

Example usage:
    from switchyard.schemas import build_error_body, ErrorCodes

    body = build_error_body(400, "Invalid request: body must be valid JSON.", ErrorCodes.INVALID_JSON)
"""

from switchyard.schemas.chat import (
    # Request models
    ChatCompletionRequest,
    # Routing metadata
    RoutingMetadata,
    # Error models
    ErrorCodes,
    ErrorDetail,
    ErrorResponse,
    ErrorTypes,
    build_error_body,
    # Service models
    BackendInfo,
    HealthResponse,
    ModelsResponse,
)

__all__ = [
    # Request models
    "ChatCompletionRequest",
    # Routing metadata
    "RoutingMetadata",
    # Error models
    "ErrorCodes",
    "ErrorDetail",
    "ErrorResponse",
    "ErrorTypes",
    "build_error_body",
    # Service models
    "BackendInfo",
    "HealthResponse",
    "ModelsResponse",
]
