"""
Classifier Tests

Validates heuristic classification, judge-output parsing and the judge
fallback cascade.

Test Categories:
1. TestNormalization - Category and complexity normalization
2. TestHeuristicClassification - Local signal scoring
3. TestClassifierParsing - Judge output parse cascade
4. TestSelfCheckParsing - Self-check output parse cascade
5. TestClassifyRequest - Judge call and fallbacks
"""

import math

import pytest
from unittest.mock import AsyncMock

from switchyard.dispatcher.handlers import UpstreamError
from switchyard.router.categories import (
    Category,
    Complexity,
    normalize_category,
    normalize_complexity,
)
from switchyard.router.classifier import classify_request, heuristic_classification
from switchyard.router.features import extract_conversation_features
from switchyard.router.parsing import (
    Structured,
    Unparsable,
    parse_classifier_output,
    parse_score,
    parse_self_check_output,
)
from switchyard.router.safety import SafetyGateResult
from tests.fixtures import (
    CODING_SAMPLES,
    ONBOARDING_SAMPLES,
    classifier_reply,
    make_completion,
    user,
)


def classify_locally(text: str, tools=None):
    features = extract_conversation_features([user(text)], tools)
    return heuristic_classification(text, f"user: {text}", features, SafetyGateResult())


class TestNormalization:
    """Tests for normalize_category() and normalize_complexity()."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("coding", Category.CODING),
            ("Core Loop", Category.CORE_LOOP),
            ("high-stakes", Category.HIGH_STAKES),
            ("  REFLECTION ", Category.REFLECTION),
        ],
    )
    def test_known_categories(self, raw, expected):
        assert normalize_category(raw) is expected

    @pytest.mark.parametrize("raw", ["banking", "", None, 3, ["coding"]])
    def test_unknown_categories_are_none(self, raw):
        assert normalize_category(raw) is None

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("simple", Complexity.SIMPLE),
            ("routine", Complexity.SIMPLE),
            ("moderate", Complexity.STANDARD),
            ("HARD", Complexity.COMPLEX),
            ("critical", Complexity.CRITICAL),
        ],
    )
    def test_complexity_aliases(self, raw, expected):
        assert normalize_complexity(raw) is expected

    def test_unknown_complexity_is_none(self):
        assert normalize_complexity("extreme") is None


class TestHeuristicClassification:
    """Tests for heuristic_classification()."""

    def test_heartbeat(self):
        result = classify_locally("heartbeat ping status")

        assert result.category is Category.HEARTBEAT
        assert result.complexity is Complexity.SIMPLE
        assert result.confidence == 5
        assert result.source == "heuristic"

    @pytest.mark.parametrize("text", CODING_SAMPLES)
    def test_coding(self, text):
        result = classify_locally(text)

        assert result.category is Category.CODING
        assert result.complexity is Complexity.SIMPLE

    @pytest.mark.parametrize("text", ONBOARDING_SAMPLES)
    def test_onboarding_is_simple(self, text):
        assert classify_locally(text).complexity is Complexity.SIMPLE

    def test_no_signal_falls_back_to_communication(self):
        result = classify_locally("xyzzy plugh")

        assert result.category is Category.COMMUNICATION
        assert result.confidence == 2

    def test_no_signal_with_tools_is_core_loop(self):
        result = classify_locally(
            "xyzzy plugh", tools=[{"type": "function", "function": {"name": "f"}}]
        )
        assert result.category is Category.CORE_LOOP

    def test_critical_vocabulary(self):
        result = classify_locally(
            "We are in the middle of a production outage, find the root cause in these logs "
            "and explain what changed in the deploy"
        )
        assert result.complexity is Complexity.CRITICAL

    def test_gate_forces_high_stakes(self):
        gate = SafetyGateResult(triggered=True, matched_signals=("transfer", "ssn"), action_like=True)
        features = extract_conversation_features([user("transfer it")])
        result = heuristic_classification("transfer it", "", features, gate)

        assert result.category is Category.HIGH_STAKES
        assert result.complexity is Complexity.CRITICAL
        assert result.confidence == 5
        assert result.high_stakes is True
        assert result.source == "safety_gate"
        assert "transfer, ssn" in result.reason


class TestClassifierParsing:
    """Tests for parse_classifier_output()."""

    def test_strict_json(self):
        raw = (
            '{"category": "coding", "complexity": "complex", "confidence": 4.5, '
            '"reason": "refactor", "matched_signals": ["Refactor", "refactor", "tests"], '
            '"high_stakes": false}'
        )
        result = parse_classifier_output(raw)

        assert isinstance(result, Structured)
        verdict = result.value
        assert verdict.category is Category.CODING
        assert verdict.complexity is Complexity.COMPLEX
        assert verdict.confidence == 5
        assert verdict.matched_signals == ("refactor", "tests")
        assert verdict.high_stakes is False

    def test_embedded_json(self):
        raw = 'Sure! {"category": "research", "complexity": "standard"} hope that helps'
        result = parse_classifier_output(raw)

        assert isinstance(result, Structured)
        assert result.value.category is Category.RESEARCH
        assert result.value.confidence == 3

    def test_high_stakes_string_flag(self):
        raw = '{"category": "communication", "complexity": "simple", "high_stakes": "TRUE"}'
        assert parse_classifier_output(raw).value.high_stakes is True

    def test_loose_text(self):
        result = parse_classifier_output("Category: research, complexity: standard")

        assert isinstance(result, Structured)
        assert result.value.category is Category.RESEARCH
        assert result.value.complexity is Complexity.STANDARD
        assert result.value.reason == "Classifier parsed from loose text."

    def test_unknown_category_is_unparsable(self):
        result = parse_classifier_output('{"category": "banking", "complexity": "simple"}')
        assert isinstance(result, Unparsable)

    def test_garbage_is_unparsable(self):
        result = parse_classifier_output("I cannot help with that")

        assert isinstance(result, Unparsable)
        assert result.raw_text == "I cannot help with that"


class TestSelfCheckParsing:
    """Tests for parse_self_check_output() and parse_score()."""

    def test_json_score(self):
        result = parse_self_check_output('{"score": "2", "reason": "missing a step"}')

        assert result.value.score == 2
        assert result.value.reason == "missing a step"

    def test_loose_score(self):
        result = parse_self_check_output("4 - looks good")

        assert isinstance(result, Structured)
        assert result.value.score == 4
        assert result.value.reason == "looks good"

    def test_unparsable(self):
        assert isinstance(parse_self_check_output("no idea"), Unparsable)

    def test_null_score_defaults(self):
        assert parse_self_check_output('{"score": null}').value.score == 4

    @pytest.mark.parametrize(
        "value,expected",
        [(9, 5), (0, 1), (2.5, 3), (2.4, 2), ("3", 3), (math.nan, 4), ("abc", 4), ([1], 4)],
    )
    def test_parse_score(self, value, expected):
        assert parse_score(value) == expected

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_missing_score_takes_fallback(self, value):
        assert parse_score(value) == 4
        assert parse_score(value, fallback=2) == 2

    def test_blank_score_defaults(self):
        assert parse_self_check_output('{"score": "", "reason": "n/a"}').value.score == 4


class TestClassifyRequest:
    """Tests for classify_request() against the scripted upstream."""

    @pytest.mark.asyncio
    async def test_judge_classification(self, make_context, fake_upstream, upstream_script):
        upstream_script.classifier = classifier_reply("coding", "complex")
        ctx = make_context([user("Please help me restructure this module")])

        result = await classify_request(ctx, fake_upstream)

        assert result.category is Category.CODING
        assert result.complexity is Complexity.COMPLEX
        assert result.source == "model:openai/gpt-5-nano"
        payload = upstream_script.calls_of("classifier")[0]
        assert payload["temperature"] == 0
        assert payload["max_tokens"] == 220

    @pytest.mark.asyncio
    async def test_judge_high_stakes_forces_critical(
        self, make_context, fake_upstream, upstream_script
    ):
        upstream_script.classifier = classifier_reply("communication", "simple", high_stakes=True)
        ctx = make_context([user("Draft a note to my landlord")])

        result = await classify_request(ctx, fake_upstream)

        assert result.category is Category.HIGH_STAKES
        assert result.complexity is Complexity.CRITICAL

    @pytest.mark.asyncio
    async def test_judge_failure_uses_heuristic(
        self, make_context, fake_upstream, upstream_script
    ):
        upstream_script.classifier = UpstreamError(503, "overloaded")
        ctx = make_context([user("heartbeat ping status")])

        result = await classify_request(ctx, fake_upstream)

        assert result.source == "heuristic_on_classifier_error"
        assert result.category is Category.HEARTBEAT
        assert result.reason.startswith("Classifier error fallback:")
        # configured judge plus every cheap fallback was tried once
        assert len(upstream_script.calls_of("classifier")) == 6

    @pytest.mark.asyncio
    async def test_unparsable_judge_uses_heuristic(
        self, make_context, fake_upstream, upstream_script
    ):
        upstream_script.classifier = make_completion("I cannot help with that")
        ctx = make_context([user("heartbeat ping status")])

        result = await classify_request(ctx, fake_upstream)

        assert result.source == "heuristic_fallback"
        assert result.reason == "Classifier parse fallback to heuristic."

    @pytest.mark.asyncio
    async def test_gate_skips_judge(self, make_context, fake_upstream):
        ctx = make_context([user("Please transfer $500 to this account")])

        result = await classify_request(ctx, fake_upstream)

        assert result.source == "safety_gate"
        fake_upstream.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_forced_model_skips_judge(self, make_context, router_config):
        client = AsyncMock()
        ctx = make_context([user("hello")], config=router_config(force_model="custom/model"))

        result = await classify_request(ctx, client)

        assert result.source == "forced_model"
        client.complete.assert_not_called()
