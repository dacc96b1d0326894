"""
Test Fixtures

Shared test data and helpers for the Switchyard test suite.
Contains sample prompts grouped by expected routing outcome, builders for
upstream completion bodies, and a scripted upstream used in place of the
real OpenAI-compatible endpoint.
"""

import json

from switchyard.dispatcher.handlers import UpstreamError
from switchyard.router.classifier import CLASSIFIER_PROMPT
from switchyard.router.escalation import SELF_CHECK_PROMPT

# Sample prompts for testing the safety gate and classifier
HIGH_STAKES_SAMPLES = [
    "Please transfer $500 to this account and include the recipient's SSN.",
    "Reset password for the admin account and share pii with the vendor",
    "Wire the deposit to the routing number on file",
    "This is irreversible, delete every customer record",
]

WEAK_SIGNAL_SAMPLES = [
    "Can you explain what an invoice usually contains?",
    "I read an article about health today",
    "What does a contract typically look like?",
]

ONBOARDING_SAMPLES = [
    "Hi! My name is Dana, nice to meet you",
    "Can you introduce yourself?",
    "hello there",
]

CODING_SAMPLES = [
    "Debug this function, the script throws on the second test",
    "Refactor this code so the test passes",
]

HEARTBEAT_SAMPLES = [
    "heartbeat ping status",
    "ping",
]


def user(content) -> dict:
    return {"role": "user", "content": content}


def make_completion(content: str, model: str = "test-model", usage: dict | None = None) -> dict:
    """Build an OpenAI-style chat completion body."""
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": usage
        if usage is not None
        else {"prompt_tokens": 1000, "completion_tokens": 500, "total_tokens": 1500},
    }


def classifier_reply(
    category: str,
    complexity: str,
    confidence: int = 4,
    high_stakes: bool = False,
    reason: str = "Judge classification.",
) -> dict:
    return make_completion(
        json.dumps(
            {
                "category": category,
                "complexity": complexity,
                "confidence": confidence,
                "reason": reason,
                "matched_signals": [],
                "high_stakes": high_stakes,
            }
        ),
        model="openai/gpt-5-nano",
    )


def self_check_reply(score: int, reason: str = "Judged.") -> dict:
    return make_completion(
        json.dumps({"score": score, "reason": reason}), model="openai/gpt-5-nano"
    )


class FakeStream:
    """Stand-in for UpstreamStream."""

    def __init__(self, chunks: list[bytes], content_type: str = "text/event-stream; charset=utf-8"):
        self.chunks = chunks
        self.content_type = content_type
        self.closed = False

    async def iter_bytes(self):
        for chunk in self.chunks:
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


class UpstreamScript:
    """
    Scripted upstream behavior.

    Judge calls are recognized by their system prompt; everything else is
    treated as a primary or escalation call and keyed by the ``model`` id.

    Attributes:
        classifier: Completion body (or exception) returned to classifier calls
        self_check_scores: Scores returned to self-check calls in order; 5 once exhausted
        failures: backend id -> UpstreamError raised for primary calls
        answer: Assistant content of primary completions
        usage: Usage block of primary completions
        stream_chunks: Bytes served by open_stream
        calls: (kind, payload) for every call, in order
    """

    def __init__(self):
        self.classifier = classifier_reply("communication", "simple")
        self.self_check_scores: list[int] = []
        self.failures: dict[str, UpstreamError] = {}
        self.answer = "Here is the answer."
        self.usage = {"prompt_tokens": 1000, "completion_tokens": 500, "total_tokens": 1500}
        self.stream_chunks = [
            b'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n',
            b'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n',
            b"data: [DONE]\n\n",
        ]
        self.streams: list[FakeStream] = []
        self.calls: list[tuple[str, dict]] = []

    @staticmethod
    def kind_of(payload: dict) -> str:
        messages = payload.get("messages") or []
        system = messages[0].get("content") if messages and isinstance(messages[0], dict) else None
        if system == CLASSIFIER_PROMPT:
            return "classifier"
        if system == SELF_CHECK_PROMPT:
            return "self_check"
        return "primary"

    def calls_of(self, kind: str) -> list[dict]:
        return [payload for call_kind, payload in self.calls if call_kind == kind]

    async def complete(self, payload: dict) -> dict:
        kind = self.kind_of(payload)
        self.calls.append((kind, payload))
        if kind == "classifier":
            if isinstance(self.classifier, Exception):
                raise self.classifier
            return self.classifier
        if kind == "self_check":
            score = self.self_check_scores.pop(0) if self.self_check_scores else 5
            return self_check_reply(score)
        error = self.failures.get(payload["model"])
        if error is not None:
            raise error
        return make_completion(self.answer, payload["model"], self.usage)

    async def open_stream(self, payload: dict) -> FakeStream:
        self.calls.append(("stream", payload))
        error = self.failures.get(payload["model"])
        if error is not None:
            raise error
        stream = FakeStream(list(self.stream_chunks))
        self.streams.append(stream)
        return stream
