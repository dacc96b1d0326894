"""
Request Classifier

Assigns every request a category and complexity. Tried in order:

1. Safety gate triggered: high_stakes / critical with confidence 5, no call
2. Forced-model override active: heuristic result, kept for logging only
3. Judge backend: strict-JSON classification through a cheap backend
4. Heuristic: local signal scoring plus a regex cascade

The heuristic is computed first on every request and is the fallback for
any judge failure, so classification never depends on the network.
"""

from dataclasses import dataclass, field, replace
import json
import logging
import re
from typing import TYPE_CHECKING

from switchyard.dispatcher.handlers import (
    UpstreamClient,
    call_with_candidates,
    first_message_content,
    judge_candidates,
)
from switchyard.router.categories import CATEGORY_POLICIES, Category, Complexity
from switchyard.router.features import ConversationFeatures, normalize_whitespace, safe_text
from switchyard.router.parsing import (
    ClassifierVerdict,
    Structured,
    Unparsable,
    parse_classifier_output,
)
from switchyard.router.safety import SafetyGateResult, collect_matched_signals

if TYPE_CHECKING:
    from switchyard.router.context import RequestContext

logger = logging.getLogger(__name__)


CLASSIFIER_PROMPT = "\n".join(
    [
        "You classify requests for the Switchyard router.",
        "Reply with a single JSON object and nothing else. Keys: category, complexity, "
        "confidence, reason, matched_signals, high_stakes.",
        "category is one of: " + ", ".join(f'"{c.value}"' for c in Category) + ".",
        "complexity is one of: " + ", ".join(f'"{c.value}"' for c in Complexity) + ".",
        "confidence is an integer from 1 to 5.",
        "matched_signals is a list of short strings.",
        "high_stakes is true only for sensitive personal data, money or legal actions, "
        "password or PII handling, or operations that cannot be undone.",
        "General discussion or education about legal or health topics is not high_stakes.",
        "Prefer the cheapest category that is still safe; do not over-route.",
        "Onboarding, naming, introductions, persona setup and small talk are communication/simple.",
        "Use core_loop only when the request clearly involves tool use or function calls.",
        "Complexity guide:",
        "- simple: short, routine, unambiguous",
        "- standard: moderate context, ordinary reasoning",
        "- complex: long context, many constraints, heavy reasoning or images",
        "- critical: irreversible, safety-sensitive or mission-critical",
        "No markdown.",
    ]
)

CLASSIFIER_TEMPERATURE = 0
CLASSIFIER_MAX_TOKENS = 220

ONBOARDING_PATTERN = re.compile(
    r"\b(name|call me|my name is|nickname|introduce|introduction|setup|set up|persona"
    r"|profile|roleplay|character|identity|who are you)\b",
    re.IGNORECASE,
)
CASUAL_PATTERN = re.compile(
    r"\b(hello|hi|hey|thanks|thank you|good morning|good evening|nice to meet|how are you)\b",
    re.IGNORECASE,
)

# Zero-score fallback, checked in order
CATEGORY_CASCADE: tuple[tuple[Category, re.Pattern], ...] = tuple(
    (category, re.compile(pattern, re.IGNORECASE))
    for category, pattern in (
        (Category.CODING, r"\b(code|debug|refactor|test|function|script|stack trace|exception)\b"),
        (Category.SUMMARIZATION, r"\b(summarize|summary|extract|action items|digest|invoice|receipt)\b"),
        (Category.PLANNING, r"\b(plan|roadmap|schedule|itinerary|steps|break down)\b"),
        (Category.RETRIEVAL, r"\b(web|search|lookup|find|calendar|email|weather|stock)\b"),
        (Category.RESEARCH, r"\b(research|analysis|compare|literature|report|due diligence)\b"),
        (Category.CREATIVE, r"\b(creative|story|poem|brainstorm|copywriting|campaign)\b"),
        (Category.COMMUNICATION, r"\b(reply|message|chat|customer support|email response|negotiat)\b"),
        (Category.ORCHESTRATION, r"\b(browser|automation|shell|git|workflow|pipeline|checkout)\b"),
        (Category.REFLECTION, r"\b(reflect|stuck|loop|failure analysis|improve)\b"),
        (Category.HEARTBEAT, r"\b(heartbeat|ping|status|health check|keep-alive)\b"),
    )
)

CRITICAL_VOCABULARY = re.compile(
    r"\b(production outage|incident|root cause|irreversible|mission[- ]critical|compliance)\b",
    re.IGNORECASE,
)
LEGAL_TERMS = re.compile(r"\b(legal|contract)\b", re.IGNORECASE)
BINDING_VERBS = re.compile(
    r"\b(sign|approve|execute|submit|file|binding|finalize|enforce)\b", re.IGNORECASE
)
MULTI_STEP_VOCABULARY = re.compile(
    r"\b(multi-step|multi constraint|algorithm|architecture|deep dive|synthesize|long-form)\b",
    re.IGNORECASE,
)

CASUAL_CATEGORIES = frozenset({Category.COMMUNICATION, Category.CREATIVE, Category.HEARTBEAT})


@dataclass(frozen=True)
class Classification:
    """
    Category and complexity assigned to a request.

    Attributes:
        category: One of the twelve category tags
        complexity: One of the four complexity levels
        confidence: 1-5
        reason: Short justification
        matched_signals: Signals that drove the decision
        high_stakes: Whether the request was judged high-stakes
        source: safety_gate, heuristic, heuristic_fallback,
            heuristic_on_classifier_error, forced_model or model:<backend id>
    """

    category: Category
    complexity: Complexity
    confidence: int
    reason: str
    matched_signals: tuple[str, ...] = field(default_factory=tuple)
    high_stakes: bool = False
    source: str = "heuristic"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "category": self.category.value,
            "complexity": self.complexity.value,
            "confidence": self.confidence,
            "reason": self.reason,
            "matched_signals": list(self.matched_signals),
            "high_stakes": self.high_stakes,
            "source": self.source,
        }


def is_onboarding_like(text: str) -> bool:
    """Onboarding, naming or casual small talk."""
    normalized = normalize_whitespace(text)
    return bool(ONBOARDING_PATTERN.search(normalized) or CASUAL_PATTERN.search(normalized))


def score_categories(text: str) -> list[tuple[Category, list[str]]]:
    """
    Score every non-high-stakes category by its matched signals.

    Returns:
        (category, matched signals) pairs, best first; ties keep
        declaration order
    """
    scored = [
        (policy.category, collect_matched_signals(text, policy.signals))
        for policy in CATEGORY_POLICIES.values()
        if policy.category is not Category.HIGH_STAKES
    ]
    # sorted() is stable, so equal scores stay in declaration order
    return sorted(scored, key=lambda item: len(item[1]), reverse=True)


def heuristic_category_fallback(text: str, features: ConversationFeatures) -> Category:
    if features.has_tools:
        return Category.CORE_LOOP
    for category, pattern in CATEGORY_CASCADE:
        if pattern.search(text):
            return category
    return Category.COMMUNICATION


def heuristic_complexity(
    text: str,
    features: ConversationFeatures,
    category: Category,
    gate: SafetyGateResult,
) -> Complexity:
    """Derive complexity from phrasing, size and vocabulary."""
    normalized = normalize_whitespace(text)
    short_prompt = 0 < len(normalized) <= 240
    casual_sized = short_prompt and not features.has_tools

    if category is Category.HIGH_STAKES or gate.action_like:
        return Complexity.CRITICAL
    if casual_sized and is_onboarding_like(normalized):
        return Complexity.SIMPLE
    if casual_sized and category in CASUAL_CATEGORIES:
        return Complexity.SIMPLE

    if features.approx_tokens >= 12000 or features.message_count >= 24:
        return Complexity.CRITICAL
    if features.approx_tokens >= 4500 or features.message_count >= 14:
        return Complexity.COMPLEX
    if features.has_multimodal and features.approx_tokens >= 1200:
        return Complexity.COMPLEX

    if CRITICAL_VOCABULARY.search(normalized):
        return Complexity.CRITICAL
    if LEGAL_TERMS.search(normalized) and BINDING_VERBS.search(normalized):
        return Complexity.CRITICAL
    if MULTI_STEP_VOCABULARY.search(normalized):
        return Complexity.COMPLEX
    if (
        features.approx_tokens <= 280
        and not features.has_multimodal
        and not features.has_tools_declared
    ):
        return Complexity.SIMPLE
    return Complexity.STANDARD


def heuristic_classification(
    last_user_message: str,
    recent_context: str,
    features: ConversationFeatures,
    gate: SafetyGateResult,
) -> Classification:
    """
    Classify a request using only local heuristics.

    Pure and network-free; this is the safety net for every judge failure.
    """
    if gate.triggered:
        signals = ", ".join(gate.matched_signals) or "action-like request"
        return Classification(
            category=Category.HIGH_STAKES,
            complexity=Complexity.CRITICAL,
            confidence=5,
            reason=f"Safety gate matched high-stakes signals: {signals}.",
            matched_signals=gate.matched_signals,
            high_stakes=True,
            source="safety_gate",
        )

    text = f"{last_user_message}\n{recent_context}"
    best_category, best_signals = score_categories(text)[0]
    score = len(best_signals)

    if score > 0:
        category = best_category
        confidence = min(5, 2 + score)
        reason = f"Signal heuristic matched {score} category cues."
    else:
        category = heuristic_category_fallback(text, features)
        confidence = 2
        reason = "No strong category signal; used fallback category heuristic."

    return Classification(
        category=category,
        complexity=heuristic_complexity(text, features, category, gate),
        confidence=confidence,
        reason=reason,
        matched_signals=tuple(best_signals),
        source="heuristic",
    )


def build_classifier_payload(
    last_user_message: str, recent_context: str, features: ConversationFeatures
) -> dict:
    user_content = "\n\n".join(
        [
            f"Last user message:\n{last_user_message or '(none)'}",
            f"Recent context:\n{recent_context or '(none)'}",
            f"Conversation features:\n{json.dumps(features.to_dict())}",
        ]
    )
    return {
        "temperature": CLASSIFIER_TEMPERATURE,
        "max_tokens": CLASSIFIER_MAX_TOKENS,
        "stream": False,
        "messages": [
            {"role": "system", "content": CLASSIFIER_PROMPT},
            {"role": "user", "content": user_content},
        ],
    }


def _from_verdict(verdict: ClassifierVerdict, backend_id: str) -> Classification:
    return Classification(
        category=Category.HIGH_STAKES if verdict.high_stakes else verdict.category,
        complexity=Complexity.CRITICAL if verdict.high_stakes else verdict.complexity,
        confidence=verdict.confidence,
        reason=verdict.reason or "Classifier model output.",
        matched_signals=verdict.matched_signals,
        high_stakes=verdict.high_stakes,
        source=f"model:{backend_id}",
    )


async def classify_request(ctx: "RequestContext", client: UpstreamClient) -> Classification:
    """
    Classify the request, consulting the judge backend when allowed.

    Args:
        ctx: Per-request context
        client: Upstream client used for the judge call

    Returns:
        Classification for routing
    """
    heuristic = heuristic_classification(
        ctx.last_user_message, ctx.recent_context, ctx.features, ctx.safety_gate
    )
    if ctx.safety_gate.triggered:
        return heuristic
    if ctx.config.forced:
        return replace(
            heuristic,
            reason="forced model override; classifier bypassed",
            source="forced_model",
        )

    payload = build_classifier_payload(ctx.last_user_message, ctx.recent_context, ctx.features)
    try:
        call = await call_with_candidates(
            client, payload, judge_candidates(ctx.config.classifier_key)
        )
    except Exception as e:
        logger.warning(f"[{ctx.request_id}] Classifier call failed, using heuristic: {e}")
        return replace(
            heuristic,
            reason=f"Classifier error fallback: {str(e)[:120]}",
            source="heuristic_on_classifier_error",
        )

    raw = normalize_whitespace(safe_text(first_message_content(call.result)))
    match parse_classifier_output(raw):
        case Structured(value=verdict):
            return _from_verdict(verdict, call.backend_id)
        case Unparsable():
            logger.warning(f"[{ctx.request_id}] Classifier output unparsable, using heuristic")
            return replace(
                heuristic,
                reason="Classifier parse fallback to heuristic.",
                source="heuristic_fallback",
            )
