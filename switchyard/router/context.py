"""
Per-request context.

Everything the pipeline stages derive from the raw request body before
any backend is called: the last user message, the bounded recent-context
window, conversation features, the safety gate verdict and any
confirmation tokens the caller supplied.
"""

from dataclasses import dataclass, field
import time
from typing import Any
import uuid

from switchyard.config import RouterConfig
from switchyard.router.features import (
    ConversationFeatures,
    build_recent_context,
    extract_conversation_features,
    extract_last_user_message,
)
from switchyard.router.safety import SafetyGateResult, detect_safety_gate

CONFIRMATION_FIELD = "switchyard_confirmed"


def collect_confirmation_tokens(body: dict, header_value: str | None = None) -> tuple:
    """
    Gather confirmation tokens from every supported source.

    Sources, in order: the confirmation header, ``metadata.switchyard_confirmed``
    and top-level ``switchyard_confirmed``.
    """
    metadata = body.get("metadata")
    return (
        header_value,
        metadata.get(CONFIRMATION_FIELD) if isinstance(metadata, dict) else None,
        body.get(CONFIRMATION_FIELD),
    )


@dataclass(frozen=True)
class RequestContext:
    """
    Immutable per-request state shared by the pipeline stages.

    Attributes:
        request_id: Correlation id for log lines
        started_at: perf_counter timestamp at request start
        config: Router configuration for this request
        body: Original request body
        messages: Request messages
        stream: Whether the caller asked for a stream (anything but false)
        last_user_message: Text of the latest user message
        recent_context: Bounded window of the latest messages
        features: Conversation features
        safety_gate: Safety gate verdict
        confirmation_tokens: Raw confirmation values from header and body
    """

    request_id: str
    started_at: float
    config: RouterConfig
    body: dict
    messages: list
    stream: bool
    last_user_message: str
    recent_context: str
    features: ConversationFeatures
    safety_gate: SafetyGateResult
    confirmation_tokens: tuple[Any, ...] = field(default_factory=tuple)

    @property
    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started_at) * 1000)

    @classmethod
    def from_request(
        cls,
        body: dict,
        config: RouterConfig,
        confirmation_header: str | None = None,
        request_id: str | None = None,
    ) -> "RequestContext":
        """
        Build the context for a validated request body.

        Args:
            body: Parsed request body; ``messages`` must be a list
            config: Router configuration
            confirmation_header: Value of the confirmation header, if sent
            request_id: Correlation id; generated when omitted

        Returns:
            RequestContext
        """
        started_at = time.perf_counter()
        messages = body.get("messages") or []
        last_user = extract_last_user_message(messages)
        recent_context = build_recent_context(
            messages, config.context_messages, config.context_chars
        )
        features = extract_conversation_features(
            messages, body.get("tools"), config.chars_per_token
        )
        gate = detect_safety_gate(f"{last_user}\n{recent_context}", config)

        return cls(
            request_id=request_id or uuid.uuid4().hex[:12],
            started_at=started_at,
            config=config,
            body=body,
            messages=messages,
            stream=body.get("stream") is not False,
            last_user_message=last_user,
            recent_context=recent_context,
            features=features,
            safety_gate=gate,
            confirmation_tokens=collect_confirmation_tokens(body, confirmation_header),
        )
