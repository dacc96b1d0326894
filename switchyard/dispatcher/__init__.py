"""
Dispatcher module: Upstream calls, candidate chains and streaming relay.

Public API:
- UpstreamClient / get_upstream_client(): OpenAI-compatible upstream client
- UpstreamError: Exception raised for every upstream and chain failure
- build_candidate_chain(): Primary backend plus ordered fallbacks
- call_with_candidates(): Sequential fallback execution
- relay_stream(): Byte-for-byte streaming relay
"""

from switchyard.dispatcher.handlers import (
    # Errors and records
    AttemptRecord,
    UpstreamError,
    # Client
    UpstreamClient,
    UpstreamStream,
    get_upstream_client,
    reset_upstream_client,
    # Candidate chains
    Candidate,
    CallResult,
    build_candidate_chain,
    build_candidates_from_keys,
    call_with_candidates,
    first_message_content,
    is_retryable_error,
    judge_candidates,
)
from switchyard.dispatcher.streaming import SSE_HEADERS, relay_stream

__all__ = [
    # Errors and records
    "AttemptRecord",
    "UpstreamError",
    # Client
    "UpstreamClient",
    "UpstreamStream",
    "get_upstream_client",
    "reset_upstream_client",
    # Candidate chains
    "Candidate",
    "CallResult",
    "build_candidate_chain",
    "build_candidates_from_keys",
    "call_with_candidates",
    "first_message_content",
    "is_retryable_error",
    "judge_candidates",
    # Streaming
    "SSE_HEADERS",
    "relay_stream",
]
