"""
Cost guardrail.

Post-processes a RouteDecision according to the cost-efficiency mode:

- off: decisions pass through untouched
- balanced: only the onboarding rule and the premium ceilings apply
- strict: additionally recomputes the target from a finer table keyed by
  complexity, category, tool/multimodal flags, token volume and
  domain vocabulary

High-stakes, gate-triggered and forced decisions are never touched.
Rewrites append to the decision trail and never truncate it.
"""

from dataclasses import dataclass
import logging
import re

from switchyard.config import CostMode, RouterConfig
from switchyard.registry.models import BackendKey
from switchyard.router.categories import Category, Complexity
from switchyard.router.classifier import is_onboarding_like
from switchyard.router.features import ConversationFeatures, normalize_whitespace
from switchyard.router.policy import RouteDecision
from switchyard.router.routes import RouteLabel

logger = logging.getLogger(__name__)

ARCHITECTURE_PATTERN = re.compile(
    r"\b(architecture|architect|system design|design doc|scalability|migrate|migration"
    r"|distributed|service boundaries|module boundaries|codebase[-\s]?wide)\b",
    re.IGNORECASE,
)
DEEP_ANALYSIS_PATTERN = re.compile(
    r"\b(deep[-\s]?analysis|deep[-\s]?dive|citation|citations|cite|sources?|comparison"
    r"|compare|comparative|competitive|literature|benchmark|trade[-\s]?off|synthesize)\b",
    re.IGNORECASE,
)

SHORT_PROMPT_CHARS = 240
LONG_CONTEXT_TOKENS = 1800
VERY_LONG_MULTIMODAL_TOKENS = 30000
LARGE_CODING_TOKENS = 8000
LARGE_ANALYSIS_TOKENS = 12000
LIGHT_TOOL_TOKENS = 3000

ANALYTICAL_CATEGORIES = frozenset({Category.RESEARCH, Category.PLANNING, Category.REFLECTION})


@dataclass(frozen=True)
class BudgetTarget:
    backend_key: BackendKey
    reason: str


def specialist_target(
    category: Category, features: ConversationFeatures, request_text: str
) -> tuple[BackendKey, str] | None:
    """
    Pick a specialist backend for heavy requests, if one applies.

    Multimodal traffic goes to the multimodal specialist (the long-context
    variant past a token threshold). Large coding requests with
    architecture vocabulary and large analytical requests with
    deep-analysis vocabulary go to the engineering specialist.

    Returns:
        (backend key, short description) or None
    """
    tokens = features.approx_tokens
    if features.has_multimodal:
        if tokens >= VERY_LONG_MULTIMODAL_TOKENS:
            return BackendKey.GEM31_PRO, "multimodal requests with very long context use mid-tier multimodal model"
        return BackendKey.KIMI_K25, "multimodal requests default to multimodal specialist"
    if (
        category is Category.CODING
        and tokens >= LARGE_CODING_TOKENS
        and ARCHITECTURE_PATTERN.search(request_text)
    ):
        return BackendKey.GLM5, "large-context coding uses engineering specialist"
    if (
        category in ANALYTICAL_CATEGORIES
        and tokens >= LARGE_ANALYSIS_TOKENS
        and DEEP_ANALYSIS_PATTERN.search(request_text)
    ):
        return BackendKey.GLM5, "large-context analytical tasks use engineering specialist"
    return None


def strict_budget_target(
    decision: RouteDecision, features: ConversationFeatures, request_text: str
) -> BudgetTarget:
    """
    Compute the strict-mode target backend for a decision.

    Args:
        decision: Current route decision
        features: Conversation features
        request_text: Whitespace-normalized last user message

    Returns:
        BudgetTarget naming the backend and the reason
    """
    category = decision.category
    complexity = decision.adjusted_complexity

    if complexity in (Complexity.CRITICAL, Complexity.COMPLEX):
        specialist = specialist_target(category, features, request_text)
        if specialist:
            key, description = specialist
            return BudgetTarget(key, f"{complexity.value} {description}")
        if complexity is Complexity.CRITICAL:
            return BudgetTarget(BackendKey.M25, "critical non-high-stakes requests are capped at M2.5")
        return BudgetTarget(BackendKey.M25, "complex non-high-stakes requests default to M2.5")

    if complexity is Complexity.STANDARD:
        if features.has_multimodal:
            return BudgetTarget(
                BackendKey.KIMI_K25, "standard multimodal requests default to multimodal specialist"
            )
        if (
            features.has_tools
            and category in (Category.CORE_LOOP, Category.ORCHESTRATION)
            and features.approx_tokens <= LIGHT_TOOL_TOKENS
            and features.tool_messages <= 2
        ):
            return BudgetTarget(
                BackendKey.GROK, "light tool-use for core loop/orchestration stays on budget model"
            )
        return BudgetTarget(BackendKey.M25, "standard non-multimodal requests default to M2.5")

    match category:
        case Category.HEARTBEAT:
            return BudgetTarget(BackendKey.NANO, "heartbeat traffic pinned to nano")
        case Category.RETRIEVAL:
            return BudgetTarget(BackendKey.NANO, "routine retrieval stays on nano")
        case Category.SUMMARIZATION:
            if features.has_multimodal:
                return BudgetTarget(
                    BackendKey.KIMI_K25,
                    "routine multimodal summarization starts on multimodal specialist",
                )
            return BudgetTarget(BackendKey.NANO, "routine summarization/extraction stays on nano")
        case Category.CODING:
            if features.has_tools:
                return BudgetTarget(BackendKey.GROK, "routine tool-assisted coding starts on Grok")
            return BudgetTarget(BackendKey.DS_CODER, "routine coding starts on DeepSeek Coder")
        case _:
            return BudgetTarget(BackendKey.GROK, "default strict budget model")


def _rewrite(decision: RouteDecision, key: BackendKey, reason: str) -> RouteDecision:
    logger.debug(f"Guardrail rewrite {decision.backend_key} -> {key.value}: {reason}")
    return decision.with_backend(key, RouteLabel.BUDGET_GUARDRAIL, reason)


def apply_cost_guardrails(
    decision: RouteDecision,
    request_text: str,
    features: ConversationFeatures,
    config: RouterConfig,
) -> RouteDecision:
    """
    Apply the cost guardrail to a route decision.

    Deterministic: the same inputs always produce the same decision, and
    applying the guardrail to its own output keeps the same backend and
    label.

    Args:
        decision: Decision from the routing resolver
        request_text: Last user message
        features: Conversation features
        config: Router configuration

    Returns:
        The (possibly rewritten) decision
    """
    if decision.forced or config.cost_mode is CostMode.OFF:
        return decision
    if decision.category is Category.HIGH_STAKES or decision.safety_gate_triggered:
        return decision

    text = normalize_whitespace(request_text)
    short_prompt = 0 < len(text) <= SHORT_PROMPT_CHARS
    long_context = features.approx_tokens >= LONG_CONTEXT_TOKENS
    strict = config.cost_mode is CostMode.STRICT
    lightweight = short_prompt and not features.has_tools and not long_context and not features.has_multimodal

    result = decision

    if is_onboarding_like(text) and not features.has_tools:
        result = _rewrite(
            result, BackendKey.GROK, "Cost guardrail: onboarding/social setup forced to budget model."
        )

    if strict:
        target = strict_budget_target(result, features, text)
        if target.backend_key != result.backend_key:
            result = _rewrite(result, target.backend_key, f"Cost guardrail strict: {target.reason}.")

    if not config.allow_direct_premium:
        if result.backend_key is BackendKey.OPUS:
            downgraded = (
                BackendKey.M25
                if result.adjusted_complexity is Complexity.CRITICAL
                else BackendKey.GROK
            )
            result = _rewrite(
                result,
                downgraded,
                "Cost guardrail: blocked direct Opus route for non-high-stakes request.",
            )
        if result.backend_key is BackendKey.SONNET:
            low_complexity = result.adjusted_complexity in (Complexity.SIMPLE, Complexity.STANDARD)
            strict_light = (
                strict and result.adjusted_complexity is not Complexity.CRITICAL and lightweight
            )
            if low_complexity or strict_light:
                result = _rewrite(
                    result,
                    BackendKey.GROK,
                    "Cost guardrail: downgraded Sonnet for low-complexity request.",
                )

    if strict and result.backend_key is BackendKey.GEM31_PRO and lightweight:
        result = _rewrite(
            result,
            BackendKey.GROK,
            "Cost guardrail: downgraded Gem31Pro for short conversational request.",
        )

    return result
