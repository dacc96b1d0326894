"""
Self-check and single-step escalation.

After a non-streaming completion, a cheap judge backend scores the answer
from 1 to 5. Low scores may trigger exactly one retry against a stronger
backend chosen from the escalation ladder (or a specialist for heavy
requests). A judge that is unreachable or unparsable scores 4, which
accepts the answer instead of retrying.
"""

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING

from switchyard.config import CostMode, RouterConfig
from switchyard.dispatcher.handlers import (
    UpstreamClient,
    call_with_candidates,
    first_message_content,
    judge_candidates,
)
from switchyard.registry.models import BackendKey, get_backend_registry
from switchyard.router.categories import Category, Complexity
from switchyard.router.features import ConversationFeatures, normalize_whitespace, safe_text
from switchyard.router.guardrails import specialist_target
from switchyard.router.parsing import Structured, Unparsable, parse_self_check_output
from switchyard.router.policy import RouteDecision
from switchyard.router.routes import RouteLabel

if TYPE_CHECKING:
    from switchyard.router.context import RequestContext

logger = logging.getLogger(__name__)


SELF_CHECK_PROMPT = "\n".join(
    [
        "You review answers for the Switchyard router.",
        "Decide whether the assistant answer fully, correctly and safely addresses the user request.",
        "Reply with a single JSON object and nothing else. Keys: score, reason.",
        "score is an integer from 1 to 5; 5 means you are very confident the answer is good.",
        "No markdown.",
    ]
)

SELF_CHECK_TEMPERATURE = 0
SELF_CHECK_MAX_TOKENS = 80
DEFAULT_SCORE = 4


@dataclass(frozen=True)
class SelfCheckResult:
    """
    Judge verdict on a completed answer.

    Attributes:
        score: 1-5, 5 being most confident
        reason: Judge justification or fallback explanation
        source: Judge backend id, or "fallback" when the judge was unreachable
    """

    score: int
    reason: str
    source: str

    def to_dict(self) -> dict:
        return {"score": self.score, "reason": self.reason, "source": self.source}


def build_self_check_payload(request_text: str, answer: str) -> dict:
    return {
        "temperature": SELF_CHECK_TEMPERATURE,
        "max_tokens": SELF_CHECK_MAX_TOKENS,
        "stream": False,
        "messages": [
            {"role": "system", "content": SELF_CHECK_PROMPT},
            {
                "role": "user",
                "content": (
                    f"User request:\n{request_text or '(none)'}\n\n"
                    f"Assistant answer:\n{answer or '(empty)'}"
                ),
            },
        ],
    }


async def run_self_check(
    ctx: "RequestContext", answer: str, client: UpstreamClient
) -> SelfCheckResult:
    """
    Score an answer with the self-check judge.

    Never raises: judge failures degrade to the default score.

    Args:
        ctx: Per-request context
        answer: Assistant answer text
        client: Upstream client used for the judge call

    Returns:
        SelfCheckResult
    """
    payload = build_self_check_payload(ctx.last_user_message, answer)
    try:
        call = await call_with_candidates(
            client, payload, judge_candidates(ctx.config.self_check_key)
        )
    except Exception as e:
        logger.warning(f"[{ctx.request_id}] Self-check call failed, accepting answer: {e}")
        return SelfCheckResult(
            score=DEFAULT_SCORE,
            reason=f"Self-check skipped on error: {str(e)[:120]}",
            source="fallback",
        )

    raw = normalize_whitespace(safe_text(first_message_content(call.result)))
    match parse_self_check_output(raw):
        case Structured(value=verdict):
            return SelfCheckResult(verdict.score, verdict.reason, call.backend_id)
        case Unparsable():
            return SelfCheckResult(
                DEFAULT_SCORE, "Self-check parse fallback (score=4).", call.backend_id
            )


def should_escalate(score: int, decision: RouteDecision, config: RouterConfig) -> bool:
    """
    Decide whether a self-check score warrants an escalation.

    Forced routes never escalate; 4-5 accepts; 1 always escalates; 2-3
    escalates for high_stakes, outside strict mode, or in strict mode when
    the adjusted complexity is complex or critical.
    """
    if config.forced or decision.forced:
        return False
    if score >= 4:
        return False
    if score <= 1:
        return True
    if decision.category is Category.HIGH_STAKES:
        return True
    if config.cost_mode is CostMode.STRICT:
        return decision.adjusted_complexity in (Complexity.COMPLEX, Complexity.CRITICAL)
    return True


def value_tier_escalation_target(
    decision: RouteDecision, features: ConversationFeatures, request_text: str
) -> BackendKey:
    """Escalation target out of the value tier: a specialist, else Sonnet."""
    specialist = specialist_target(decision.category, features, normalize_whitespace(request_text))
    if specialist:
        return specialist[0]
    return BackendKey.SONNET


def build_escalation_target(
    backend_key: BackendKey | None,
    score: int,
    decision: RouteDecision,
    features: ConversationFeatures,
    request_text: str,
    config: RouterConfig,
) -> BackendKey | None:
    """
    Pick the backend to escalate to from the backend that answered.

    Score 1 goes straight to the top tier, except in strict mode for
    non-critical, non-high-stakes traffic where it climbs a single rung.
    Scores 2-3 climb a single rung. The value-tier workhorse climbs to a
    specialist when the request calls for one.

    Returns:
        Target key, or None when no escalation applies
    """
    if config.forced or decision.forced:
        return None
    if score >= 4 or backend_key is BackendKey.OPUS:
        return None

    registry = get_backend_registry()

    if score <= 1:
        single_step = (
            config.cost_mode is CostMode.STRICT
            and decision.category is not Category.HIGH_STAKES
            and decision.adjusted_complexity is not Complexity.CRITICAL
        )
        if not single_step:
            return BackendKey.OPUS
        if backend_key is None:
            return BackendKey.M25
        if backend_key is BackendKey.M25:
            return value_tier_escalation_target(decision, features, request_text)
        return registry.next_rung(backend_key) or BackendKey.M25

    if backend_key is None:
        return BackendKey.OPUS
    if backend_key is BackendKey.M25:
        return value_tier_escalation_target(decision, features, request_text)
    return registry.next_rung(backend_key) or BackendKey.OPUS


def plan_escalation(
    backend_key: BackendKey | None,
    score: int,
    decision: RouteDecision,
    features: ConversationFeatures,
    request_text: str,
    config: RouterConfig,
) -> BackendKey | None:
    """
    Final escalation target for a scored answer, or None.

    A budget-floor high-stakes route always escalates to the top tier
    unless its answer scored a perfect 5.
    """
    target = None
    if should_escalate(score, decision, config):
        target = build_escalation_target(
            backend_key, score, decision, features, request_text, config
        )
    if (
        decision.category is Category.HIGH_STAKES
        and decision.label is RouteLabel.FLOOR
        and score < 5
    ):
        target = BackendKey.OPUS
    if target is None or target == backend_key:
        return None
    return target


def is_low_confidence(score: int) -> bool:
    """Scores of 3 or below are low confidence."""
    return score <= 3
