"""
Request categories, complexity levels and per-category policy metadata.

Twelve intent categories are declared in a fixed order; the order doubles
as the tie-breaker for the signal heuristic. Complexity is a closed,
totally ordered enumeration (simple < standard < complex < critical).
"""

from dataclasses import dataclass
from enum import Enum


class Category(str, Enum):
    """Request-intent tags, in declaration order."""

    HEARTBEAT = "heartbeat"
    CORE_LOOP = "core_loop"
    RETRIEVAL = "retrieval"
    SUMMARIZATION = "summarization"
    PLANNING = "planning"
    ORCHESTRATION = "orchestration"
    CODING = "coding"
    RESEARCH = "research"
    CREATIVE = "creative"
    COMMUNICATION = "communication"
    HIGH_STAKES = "high_stakes"
    REFLECTION = "reflection"


class Complexity(str, Enum):
    """Ordered difficulty levels."""

    SIMPLE = "simple"
    STANDARD = "standard"
    COMPLEX = "complex"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _COMPLEXITY_ORDER.index(self)

    def shift(self, delta: int) -> "Complexity":
        """Move along the ordering, saturating at both ends."""
        index = max(0, min(len(_COMPLEXITY_ORDER) - 1, self.rank + delta))
        return _COMPLEXITY_ORDER[index]


_COMPLEXITY_ORDER: tuple[Complexity, ...] = tuple(Complexity)


class InjectionRisk(str, Enum):
    """Adversarial-exposure rating attached to each category."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    MEDIUM_HIGH = "MEDIUM-HIGH"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return {
            InjectionRisk.LOW: 1,
            InjectionRisk.MEDIUM: 2,
            InjectionRisk.MEDIUM_HIGH: 3,
            InjectionRisk.HIGH: 4,
            InjectionRisk.CRITICAL: 5,
        }[self]


@dataclass(frozen=True)
class CategoryPolicy:
    """
    Static metadata for a single category.

    Attributes:
        category: The category this policy describes
        name: Human-readable category name
        injection_risk: Exposure rating; MEDIUM-HIGH and above are exempt
            from the budget profile's downward shift
        signals: Vocabulary scored by the heuristic classifier. Underscores
            match any run of spaces, underscores or hyphens.
    """

    category: Category
    name: str
    injection_risk: InjectionRisk
    signals: tuple[str, ...]


CATEGORY_POLICIES: dict[Category, CategoryPolicy] = {
    policy.category: policy
    for policy in (
        CategoryPolicy(
            Category.HEARTBEAT,
            "Heartbeat & Maintenance",
            InjectionRisk.LOW,
            ("heartbeat", "ping", "status", "health_check", "alive", "compaction", "session_health"),
        ),
        CategoryPolicy(
            Category.CORE_LOOP,
            "Core Agent Loop",
            InjectionRisk.HIGH,
            ("tool_use", "function_call", "react_loop", "tool_selection", "retry", "confidence_check"),
        ),
        CategoryPolicy(
            Category.RETRIEVAL,
            "Info Retrieval & Lookup",
            InjectionRisk.MEDIUM_HIGH,
            ("calendar", "email_search", "web_search", "web_fetch", "memory_search", "weather", "lookup", "find"),
        ),
        CategoryPolicy(
            Category.SUMMARIZATION,
            "Summarization & Extraction",
            InjectionRisk.MEDIUM,
            ("summarize", "extract", "digest", "key_points", "receipt", "invoice", "action_items"),
        ),
        CategoryPolicy(
            Category.PLANNING,
            "Planning & Task Breakdown",
            InjectionRisk.MEDIUM_HIGH,
            ("plan", "break_down", "schedule", "steps", "itinerary", "workflow", "sub_agent", "coordinate"),
        ),
        CategoryPolicy(
            Category.ORCHESTRATION,
            "Multi-Step Tool Orchestration",
            InjectionRisk.HIGH,
            ("browser", "automation", "shell", "git", "multi_step", "checkout", "form_fill", "sequential"),
        ),
        CategoryPolicy(
            Category.CODING,
            "Software Engineering",
            InjectionRisk.HIGH,
            ("code", "debug", "refactor", "test", "function", "script", "git_commit", "pr_review", "architecture"),
        ),
        CategoryPolicy(
            Category.RESEARCH,
            "Deep Research & Synthesis",
            InjectionRisk.HIGH,
            ("research", "analysis", "synthesize", "literature", "competitive", "report", "deep_dive", "compare"),
        ),
        CategoryPolicy(
            Category.CREATIVE,
            "Creative & Open-Ended",
            InjectionRisk.LOW,
            ("brainstorm", "creative", "story", "write", "copy", "ideas", "design", "blog", "poem"),
        ),
        CategoryPolicy(
            Category.COMMUNICATION,
            "Communication & Messaging",
            InjectionRisk.MEDIUM,
            ("message", "reply", "chat", "email_reply", "slack", "negotiate", "support", "conversation"),
        ),
        CategoryPolicy(
            Category.HIGH_STAKES,
            "High-Stakes / Sensitive",
            InjectionRisk.CRITICAL,
            (
                "payment",
                "invoice",
                "transfer",
                "contract",
                "legal",
                "password",
                "pii",
                "health",
                "sensitive",
                "irreversible",
            ),
        ),
        CategoryPolicy(
            Category.REFLECTION,
            "Reflection & Self-Improvement",
            InjectionRisk.MEDIUM,
            ("reflect", "debug_self", "stuck", "loop_detected", "failure", "improve", "learn", "retry_strategy"),
        ),
    )
}


_COMPLEXITY_ALIASES = {
    "routine": Complexity.SIMPLE,
    "low": Complexity.SIMPLE,
    "medium": Complexity.STANDARD,
    "moderate": Complexity.STANDARD,
    "hard": Complexity.COMPLEX,
    "high": Complexity.COMPLEX,
}


def normalize_category(raw) -> Category | None:
    """
    Map free-form text onto a Category.

    Spaces and hyphens are treated as underscores. Anything outside the
    closed set yields None so callers can fall back to the heuristic.
    """
    if isinstance(raw, Category):
        return raw
    value = str(raw or "").strip().lower().replace(" ", "_").replace("-", "_")
    try:
        return Category(value)
    except ValueError:
        return None


def normalize_complexity(raw) -> Complexity | None:
    """Map free-form text (including common synonyms) onto a Complexity."""
    if isinstance(raw, Complexity):
        return raw
    value = str(raw or "").strip().lower()
    try:
        return Complexity(value)
    except ValueError:
        return _COMPLEXITY_ALIASES.get(value)


def injection_risk_for(category: Category) -> InjectionRisk:
    return CATEGORY_POLICIES[category].injection_risk
