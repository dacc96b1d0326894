"""
Performance Tests

Validates that the local routing stages stay cheap. Everything before the
first backend call (feature extraction, safety gate, heuristic
classification, policy lookup and the cost guardrail) runs on every
request, so it must add negligible latency.

Test Categories:
1. TestLocalStageLatency - Per-request cost of the local stages
2. TestBatchPerformance - Throughput over a mixed prompt set

Performance Targets:
- Request context build: < 5ms
- Heuristic classification: < 5ms
- Full local decision (context -> guardrail): < 10ms
"""

import time

import pytest

from switchyard.router.classifier import heuristic_classification
from switchyard.router.context import RequestContext
from switchyard.router.guardrails import apply_cost_guardrails
from switchyard.router.policy import resolve_route_decision
from tests.fixtures import (
    CODING_SAMPLES,
    HEARTBEAT_SAMPLES,
    HIGH_STAKES_SAMPLES,
    ONBOARDING_SAMPLES,
    WEAK_SIGNAL_SAMPLES,
    user,
)

MIXED_PROMPTS = (
    HIGH_STAKES_SAMPLES + WEAK_SIGNAL_SAMPLES + ONBOARDING_SAMPLES + CODING_SAMPLES + HEARTBEAT_SAMPLES
)

LONG_CONVERSATION = [
    user(f"Step {i}: check the deploy logs and summarize what changed in the billing service")
    if i % 2 == 0
    else {"role": "assistant", "content": "Noted. " * 200}
    for i in range(40)
]


def decide_locally(messages, config):
    ctx = RequestContext.from_request({"messages": messages}, config, request_id="perf")
    classification = heuristic_classification(
        ctx.last_user_message, ctx.recent_context, ctx.features, ctx.safety_gate
    )
    decision = resolve_route_decision(classification, ctx.safety_gate, config)
    return apply_cost_guardrails(decision, ctx.last_user_message, ctx.features, config)


def best_of(runs, func, *args):
    """Minimum wall time in milliseconds over several runs."""
    timings = []
    for _ in range(runs):
        start = time.perf_counter()
        func(*args)
        timings.append((time.perf_counter() - start) * 1000)
    return min(timings)


@pytest.mark.slow
@pytest.mark.benchmark
class TestLocalStageLatency:
    """Latency of the stages that run before any backend call."""

    def test_context_build_is_fast(self, router_config):
        config = router_config()
        elapsed_ms = best_of(
            20, RequestContext.from_request, {"messages": LONG_CONVERSATION}, config
        )

        assert elapsed_ms < 5, f"Context build took {elapsed_ms:.2f}ms"

    def test_heuristic_classification_is_fast(self, router_config):
        ctx = RequestContext.from_request({"messages": LONG_CONVERSATION}, router_config())
        elapsed_ms = best_of(
            20,
            heuristic_classification,
            ctx.last_user_message,
            ctx.recent_context,
            ctx.features,
            ctx.safety_gate,
        )

        assert elapsed_ms < 5, f"Heuristic classification took {elapsed_ms:.2f}ms"

    def test_full_local_decision_is_fast(self, router_config):
        elapsed_ms = best_of(20, decide_locally, LONG_CONVERSATION, router_config())

        assert elapsed_ms < 10, f"Local decision took {elapsed_ms:.2f}ms"


@pytest.mark.slow
@pytest.mark.benchmark
class TestBatchPerformance:
    """Throughput of the local stages over many prompts."""

    def test_mixed_batch(self, router_config):
        config = router_config()
        prompts = MIXED_PROMPTS * 20

        start = time.perf_counter()
        decisions = [decide_locally([user(text)], config) for text in prompts]
        elapsed_ms = (time.perf_counter() - start) * 1000

        assert len(decisions) == len(prompts)
        assert elapsed_ms / len(prompts) < 2, (
            f"Average local decision {elapsed_ms / len(prompts):.2f}ms exceeds 2ms"
        )

    def test_decisions_are_deterministic(self, router_config):
        config = router_config()
        first = [decide_locally([user(text)], config) for text in MIXED_PROMPTS]
        second = [decide_locally([user(text)], config) for text in MIXED_PROMPTS]

        assert [d.backend_id for d in first] == [d.backend_id for d in second]
        assert [d.trail for d in first] == [d.trail for d in second]
