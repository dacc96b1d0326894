"""
Self-Check and Escalation Tests

Validates the escalation rules, the ladder-based target selection and the
self-check judge call with its fallbacks.

Test Categories:
1. TestShouldEscalate - Score thresholds per mode and category
2. TestEscalationTarget - Ladder, top tier and specialist targets
3. TestPlanEscalation - Budget floor and no-op targets
4. TestRunSelfCheck - Judge call, error fallback and parse fallback
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from switchyard.config import CostMode, RoutingProfile
from switchyard.dispatcher.handlers import UpstreamError
from switchyard.registry.models import BackendKey
from switchyard.router.categories import Category, Complexity
from switchyard.router.classifier import Classification
from switchyard.router.escalation import (
    DEFAULT_SCORE,
    SELF_CHECK_MAX_TOKENS,
    build_escalation_target,
    is_low_confidence,
    plan_escalation,
    run_self_check,
    should_escalate,
)
from switchyard.router.features import extract_conversation_features
from switchyard.router.policy import resolve_route_decision
from switchyard.router.routes import RouteLabel
from switchyard.router.safety import SafetyGateResult
from tests.fixtures import make_completion, user

TEXT = "Walk me through the options"
IMAGE = {"type": "image_url", "image_url": {"url": "https://example.com/diagram.png"}}


def decide(category, complexity, config):
    classification = Classification(
        category=category, complexity=complexity, confidence=4, reason="test"
    )
    return resolve_route_decision(classification, SafetyGateResult(), config)


def text_features(text=TEXT):
    return extract_conversation_features([user(text)])


@pytest.fixture
def strict_config(router_config):
    return router_config(routing_profile=RoutingProfile.BALANCED, cost_mode=CostMode.STRICT)


@pytest.fixture
def balanced_config(router_config):
    return router_config(routing_profile=RoutingProfile.BALANCED, cost_mode=CostMode.BALANCED)


class TestShouldEscalate:
    """Tests for should_escalate()."""

    @pytest.mark.parametrize("score", [4, 5])
    def test_good_scores_accept(self, score, balanced_config):
        decision = decide(Category.CODING, Complexity.COMPLEX, balanced_config)
        assert should_escalate(score, decision, balanced_config) is False

    def test_score_one_always_escalates(self, strict_config):
        decision = decide(Category.CREATIVE, Complexity.SIMPLE, strict_config)
        assert should_escalate(1, decision, strict_config) is True

    def test_strict_mode_keeps_mediocre_simple_answers(self, strict_config):
        decision = decide(Category.CREATIVE, Complexity.STANDARD, strict_config)
        assert should_escalate(2, decision, strict_config) is False

    @pytest.mark.parametrize("complexity", [Complexity.COMPLEX, Complexity.CRITICAL])
    def test_strict_mode_escalates_heavy_requests(self, complexity, strict_config):
        decision = decide(Category.CODING, complexity, strict_config)
        assert should_escalate(3, decision, strict_config) is True

    def test_balanced_mode_escalates_mediocre_answers(self, balanced_config):
        decision = decide(Category.CREATIVE, Complexity.SIMPLE, balanced_config)
        assert should_escalate(3, decision, balanced_config) is True

    def test_high_stakes_escalates_in_strict_mode(self, strict_config):
        decision = decide(Category.HIGH_STAKES, Complexity.SIMPLE, strict_config)
        assert should_escalate(3, decision, strict_config) is True

    def test_forced_never_escalates(self, router_config):
        config = router_config(force_model="custom/model")
        decision = decide(Category.CODING, Complexity.CRITICAL, config)
        assert should_escalate(1, decision, config) is False


class TestEscalationTarget:
    """Tests for build_escalation_target()."""

    def target(self, backend_key, score, decision, config, features=None):
        return build_escalation_target(
            backend_key, score, decision, features or text_features(), TEXT, config
        )

    def test_score_one_strict_climbs_one_rung(self, strict_config):
        decision = decide(Category.CORE_LOOP, Complexity.SIMPLE, strict_config)
        assert self.target(BackendKey.GROK, 1, decision, strict_config) is BackendKey.M25

    def test_score_one_critical_goes_to_top(self, strict_config):
        decision = decide(Category.CORE_LOOP, Complexity.CRITICAL, strict_config)
        assert self.target(BackendKey.M25, 1, decision, strict_config) is BackendKey.OPUS

    def test_score_one_balanced_goes_to_top(self, balanced_config):
        decision = decide(Category.CREATIVE, Complexity.SIMPLE, balanced_config)
        assert self.target(BackendKey.GROK, 1, decision, balanced_config) is BackendKey.OPUS

    def test_score_two_climbs_ladder(self, balanced_config):
        decision = decide(Category.RETRIEVAL, Complexity.SIMPLE, balanced_config)
        assert self.target(BackendKey.NANO, 2, decision, balanced_config) is BackendKey.GROK

    def test_value_tier_climbs_to_sonnet(self, balanced_config):
        decision = decide(Category.PLANNING, Complexity.STANDARD, balanced_config)
        assert self.target(BackendKey.M25, 2, decision, balanced_config) is BackendKey.SONNET

    def test_value_tier_multimodal_climbs_to_specialist(self, balanced_config):
        features = extract_conversation_features(
            [user([{"type": "text", "text": TEXT}, IMAGE])]
        )
        decision = decide(Category.RESEARCH, Complexity.STANDARD, balanced_config)
        target = self.target(BackendKey.M25, 2, decision, balanced_config, features)

        assert target is BackendKey.KIMI_K25

    def test_forced_literal_id_goes_to_top(self, balanced_config):
        decision = decide(Category.CREATIVE, Complexity.SIMPLE, balanced_config)
        assert self.target(None, 3, decision, balanced_config) is BackendKey.OPUS

    def test_top_tier_has_nowhere_to_go(self, balanced_config):
        decision = decide(Category.CODING, Complexity.CRITICAL, balanced_config)
        assert self.target(BackendKey.OPUS, 1, decision, balanced_config) is None


class TestPlanEscalation:
    """Tests for plan_escalation() and is_low_confidence()."""

    def test_accepted_answer_has_no_plan(self, balanced_config):
        decision = decide(Category.CODING, Complexity.STANDARD, balanced_config)
        assert plan_escalation(
            BackendKey.M25, 5, decision, text_features(), TEXT, balanced_config
        ) is None

    def test_budget_floor_escalates_below_perfect(self, router_config):
        config = router_config(high_stakes_budget_floor=True)
        decision = decide(Category.HIGH_STAKES, Complexity.CRITICAL, config)

        assert decision.label is RouteLabel.FLOOR
        assert plan_escalation(
            BackendKey.SONNET, 4, decision, text_features(), TEXT, config
        ) is BackendKey.OPUS
        assert plan_escalation(
            BackendKey.SONNET, 5, decision, text_features(), TEXT, config
        ) is None

    def test_target_equal_to_backend_is_dropped(self, router_config):
        config = router_config(high_stakes_budget_floor=True)
        decision = decide(Category.HIGH_STAKES, Complexity.CRITICAL, config)

        # a fallback already landed on the top tier
        assert plan_escalation(
            BackendKey.OPUS, 4, decision, text_features(), TEXT, config
        ) is None

    @pytest.mark.parametrize("score,expected", [(1, True), (3, True), (4, False), (5, False)])
    def test_low_confidence(self, score, expected):
        assert is_low_confidence(score) is expected

    def test_high_stakes_four_is_accepted(self, balanced_config):
        decision = decide(Category.HIGH_STAKES, Complexity.CRITICAL, balanced_config)

        assert should_escalate(4, decision, balanced_config) is False
        assert is_low_confidence(4) is False


class TestRunSelfCheck:
    """Tests for run_self_check()."""

    @pytest.mark.asyncio
    async def test_scored_answer(self, make_context, fake_upstream, upstream_script):
        upstream_script.self_check_scores = [2]
        ctx = make_context([user("What is the capital of Australia?")])

        result = await run_self_check(ctx, "Sydney", fake_upstream)

        assert result.score == 2
        assert result.source == "openai/gpt-5-nano"
        payload = upstream_script.calls_of("self_check")[0]
        assert payload["temperature"] == 0
        assert payload["max_tokens"] == SELF_CHECK_MAX_TOKENS
        assert "What is the capital of Australia?" in payload["messages"][1]["content"]
        assert "Sydney" in payload["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_judge_error_accepts_answer(self, make_context):
        client = MagicMock()
        client.complete = AsyncMock(side_effect=UpstreamError(401, "bad key"))
        ctx = make_context([user("hello")])

        result = await run_self_check(ctx, "hi there", client)

        assert result.score == DEFAULT_SCORE
        assert result.source == "fallback"
        assert result.reason.startswith("Self-check skipped on error:")
        # 401 is not retryable, so the chain stops at the first judge
        assert client.complete.await_count == 1

    @pytest.mark.asyncio
    async def test_unparsable_judge_output(self, make_context):
        client = MagicMock()
        client.complete = AsyncMock(
            return_value=make_completion("no idea", model="openai/gpt-5-nano")
        )
        ctx = make_context([user("hello")])

        result = await run_self_check(ctx, "hi there", client)

        assert result.score == DEFAULT_SCORE
        assert result.reason == "Self-check parse fallback (score=4)."
        assert result.source == "openai/gpt-5-nano"
