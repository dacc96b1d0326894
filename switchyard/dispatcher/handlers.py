"""
Dispatcher Handlers - Upstream execution with ordered fallbacks.

This module performs the actual calls to the OpenAI-compatible upstream
endpoint and owns the fallback policy:

Key components:
- UpstreamError: Single exception type for every upstream and chain failure
- UpstreamClient: Lazy-initialized AsyncOpenAI client (buffered and streaming calls)
- build_candidate_chain(): Primary backend plus its fallbacks, multimodal-aware
- call_with_candidates(): Strictly sequential retrying call over a chain

Retries belong to the candidate chain, so the SDK's own retries are disabled.
"""

from contextlib import AsyncExitStack
from dataclasses import dataclass, field
import json
import logging
import re
from typing import Any, AsyncIterator

from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from switchyard.config import Settings, get_settings
from switchyard.registry.models import BackendKey, get_backend_registry, parse_backend_key
from switchyard.schemas.chat import ErrorCodes

logger = logging.getLogger(__name__)

DEFAULT_STREAM_CONTENT_TYPE = "text/event-stream; charset=utf-8"

RETRYABLE_STATUSES = frozenset({404, 429, 502, 503, 504})
UNAVAILABLE_MESSAGE = re.compile(r"(model|provider|unavailable|not found|capacity|unsupported)")

# Judge calls fall back through cheap backends only
JUDGE_FALLBACK_KEYS: tuple[BackendKey, ...] = (
    BackendKey.NANO,
    BackendKey.GEM_FLASH,
    BackendKey.GROK,
    BackendKey.M25,
    BackendKey.KIMI_K25,
    BackendKey.GLM5,
)

ATTEMPT_MESSAGE_LIMIT = 160


@dataclass
class AttemptRecord:
    """One failed candidate attempt."""

    backend_id: str
    status: int | None
    message: str

    def to_dict(self) -> dict:
        return {
            "model": self.backend_id,
            "status": self.status if self.status else "n/a",
            "message": self.message,
        }


class UpstreamError(Exception):
    """
    Upstream or candidate-chain failure.

    Attributes:
        status: HTTP status to report (upstream status, or 502 for network errors)
        message: Upstream message, passed through to clients for 4xx
        code: Machine-readable error code, when known
        attempts: Failed attempts across the candidate chain
    """

    def __init__(
        self,
        status: int,
        message: str,
        code: str | None = None,
        attempts: tuple[AttemptRecord, ...] = (),
    ) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.code = code
        self.attempts = attempts


@dataclass(frozen=True)
class Candidate:
    """A backend to try: logical key (None for a forced literal id) and provider id."""

    key: BackendKey | None
    backend_id: str


@dataclass
class CallResult:
    """
    Successful call over a candidate chain.

    Attributes:
        result: Parsed JSON body (buffered) or an UpstreamStream (streaming)
        backend_key: Logical key of the backend that answered
        backend_id: Provider id of the backend that answered
        used_fallback: Whether a non-primary candidate answered
        attempts: Failed attempts before the successful one
    """

    result: Any
    backend_key: BackendKey | None
    backend_id: str
    used_fallback: bool = False
    attempts: list[AttemptRecord] = field(default_factory=list)


class UpstreamStream:
    """
    Live upstream event stream.

    Holds the open HTTP response until ``aclose`` is called; closing tears
    down the upstream connection.
    """

    def __init__(self, response, stack: AsyncExitStack) -> None:
        self._response = response
        self._stack = stack
        self.content_type = response.headers.get("content-type") or DEFAULT_STREAM_CONTENT_TYPE

    def iter_bytes(self) -> AsyncIterator[bytes]:
        return self._response.iter_bytes()

    async def aclose(self) -> None:
        await self._stack.aclose()


def _status_error(e: APIStatusError) -> UpstreamError:
    body = e.body if isinstance(e.body, dict) else {}
    message = (
        body.get("message")
        or e.message
        or f"Upstream request failed with status {e.status_code}"
    )
    code = body.get("code")
    return UpstreamError(
        status=e.status_code,
        message=str(message),
        code=str(code) if code is not None else None,
    )


def _network_error(e: Exception) -> UpstreamError:
    return UpstreamError(status=502, message=f"Upstream network error: {e}")


def _split_payload(payload: dict) -> tuple[str, list, dict]:
    """Separate model and messages from the fields forwarded verbatim."""
    body = dict(payload)
    model = body.pop("model")
    messages = body.pop("messages")
    body.pop("stream", None)
    return model, messages, body


class UpstreamClient:
    """
    Lazy-initialized client for the OpenAI-compatible upstream.

    The SDK client is created on first use so that importing the app and
    running local-only stages never requires network configuration.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._client: AsyncOpenAI | None = None

    @property
    def client(self) -> AsyncOpenAI:
        """
        Get the AsyncOpenAI client (lazy initialization).

        Returns:
            AsyncOpenAI pointed at the configured base URL with SDK retries disabled.
        """
        if self._client is None:
            headers = {}
            if self._settings.openrouter_site_url:
                headers["HTTP-Referer"] = self._settings.openrouter_site_url
            if self._settings.openrouter_app_name:
                headers["X-Title"] = self._settings.openrouter_app_name
            self._client = AsyncOpenAI(
                api_key=self._settings.openrouter_api_key.get_secret_value(),
                base_url=self._settings.openrouter_base_url,
                max_retries=0,
                timeout=self._settings.upstream_timeout_seconds,
                default_headers=headers or None,
            )
            logger.debug("Initialized upstream client")
        return self._client

    async def complete(self, payload: dict) -> Any:
        """
        Buffered chat completion; returns the upstream JSON body verbatim.

        Raises:
            UpstreamError: On non-2xx status, network failure or a non-JSON body
        """
        model, messages, extra = _split_payload(payload)
        try:
            raw = await self.client.chat.completions.with_raw_response.create(
                model=model,
                messages=messages,
                stream=False,
                extra_body=extra,
            )
        except APIStatusError as e:
            raise _status_error(e) from e
        except APIConnectionError as e:
            raise _network_error(e) from e

        try:
            return raw.http_response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise UpstreamError(
                502,
                "Malformed upstream response.",
                code=ErrorCodes.MALFORMED_UPSTREAM_RESPONSE,
            ) from e

    async def open_stream(self, payload: dict) -> UpstreamStream:
        """
        Open a streaming chat completion.

        The returned stream has no read timeout; its lifetime is bounded by
        stream completion or ``aclose``.

        Raises:
            UpstreamError: On non-2xx status or network failure before the stream opens
        """
        model, messages, extra = _split_payload(payload)
        stack = AsyncExitStack()
        try:
            response = await stack.enter_async_context(
                self.client.chat.completions.with_streaming_response.create(
                    model=model,
                    messages=messages,
                    stream=True,
                    extra_body=extra,
                    timeout=None,
                )
            )
        except APIStatusError as e:
            await stack.aclose()
            raise _status_error(e) from e
        except APIConnectionError as e:
            await stack.aclose()
            raise _network_error(e) from e
        return UpstreamStream(response, stack)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


_upstream_client: UpstreamClient | None = None


def get_upstream_client() -> UpstreamClient:
    """
    Get the global upstream client instance.

    Uses lazy initialization to create the client only when first needed.

    Returns:
        The singleton UpstreamClient instance.
    """
    global _upstream_client
    if _upstream_client is None:
        _upstream_client = UpstreamClient()
    return _upstream_client


def reset_upstream_client() -> None:
    """Drop the singleton (used by tests and on shutdown)."""
    global _upstream_client
    _upstream_client = None


def first_message_content(result: Any) -> Any:
    """``choices[0].message.content`` of a completion body, or None."""
    if not isinstance(result, dict):
        return None
    choices = result.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message")
    return message.get("content") if isinstance(message, dict) else None


def build_candidates_from_keys(keys) -> list[Candidate]:
    """Resolve keys to candidates, skipping unknown keys and duplicates."""
    registry = get_backend_registry()
    candidates: list[Candidate] = []
    seen: set[BackendKey] = set()
    for raw in keys:
        key = parse_backend_key(raw)
        if key is None or key in seen:
            continue
        backend_id = registry.backend_id_for(key)
        if backend_id is None:
            continue
        candidates.append(Candidate(key, backend_id))
        seen.add(key)
    return candidates


def judge_candidates(primary_key: str) -> list[Candidate]:
    """Candidate chain for a judge call: configured key, then cheap fallbacks."""
    return build_candidates_from_keys([primary_key, *JUDGE_FALLBACK_KEYS])


def build_candidate_chain(
    backend_key: BackendKey | None, backend_id: str | None, multimodal: bool
) -> list[Candidate]:
    """
    Build the ordered candidate chain for a routed backend.

    A forced literal id yields a single candidate. Multimodal requests are
    restricted to multimodal-capable backends, primary first when it is one.

    Args:
        backend_key: Logical key of the routed backend
        backend_id: Provider id of the routed backend
        multimodal: Whether the request carries non-text content

    Returns:
        Deduplicated candidates; empty only when nothing is routable
    """
    if backend_key is None:
        return [Candidate(None, backend_id)] if backend_id else []

    registry = get_backend_registry()
    if multimodal:
        order = registry.multimodal_order
        keys = [key for key in dict.fromkeys([backend_key, *order]) if key in order]
        return build_candidates_from_keys(keys)
    return build_candidates_from_keys([backend_key, *registry.fallbacks_for(backend_key)])


def is_retryable_error(error: UpstreamError) -> bool:
    """
    Decide whether the next candidate should be tried.

    Retryable: 404, 429, 502, 503, 504, and 400 whose message says the
    model or provider is unavailable.
    """
    if error.status in RETRYABLE_STATUSES:
        return True
    if error.status == 400:
        return bool(UNAVAILABLE_MESSAGE.search(str(error.message or "").lower()))
    return False


def _check_completion(result: Any) -> None:
    if not isinstance(result, dict) or not isinstance(result.get("choices"), list):
        raise UpstreamError(
            502,
            "Malformed upstream response.",
            code=ErrorCodes.MALFORMED_UPSTREAM_RESPONSE,
        )


async def call_with_candidates(
    client: UpstreamClient,
    payload: dict,
    candidates: list[Candidate],
    stream: bool = False,
) -> CallResult:
    """
    Call candidates one at a time until one succeeds.

    Args:
        client: Upstream client
        payload: Request body without ``model``
        candidates: Ordered candidate chain
        stream: Open a live stream instead of a buffered completion

    Returns:
        CallResult for the first successful candidate

    Raises:
        UpstreamError: On an empty chain, a non-retryable failure, or
            exhaustion; ``attempts`` carries the full attempt history
    """
    if not candidates:
        raise UpstreamError(
            500,
            "No candidate backends available for request.",
            code=ErrorCodes.ROUTING_NO_CANDIDATES,
        )

    attempts: list[AttemptRecord] = []
    for index, candidate in enumerate(candidates):
        candidate_payload = {**payload, "model": candidate.backend_id}
        try:
            if stream:
                result = await client.open_stream(candidate_payload)
            else:
                result = await client.complete(candidate_payload)
                _check_completion(result)
        except UpstreamError as e:
            attempts.append(
                AttemptRecord(
                    backend_id=candidate.backend_id,
                    status=e.status,
                    message=str(e.message or "Unknown error")[:ATTEMPT_MESSAGE_LIMIT],
                )
            )
            last = index == len(candidates) - 1
            if not is_retryable_error(e) or last:
                e.attempts = tuple(attempts)
                raise
            logger.warning(
                f"Backend {candidate.backend_id} failed with status {e.status}, "
                f"trying {candidates[index + 1].backend_id}"
            )
            continue

        return CallResult(
            result=result,
            backend_key=candidate.key,
            backend_id=candidate.backend_id,
            used_fallback=index > 0,
            attempts=attempts,
        )

    # unreachable: the last candidate either returns or raises
    raise UpstreamError(502, "Candidate chain exhausted.", code=ErrorCodes.ROUTING_EXHAUSTED)
