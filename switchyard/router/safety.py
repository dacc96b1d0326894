"""
High-stakes safety gate.

The gate runs before classification and decides whether a request must be
treated as high-stakes regardless of what any judge backend says. It
combines three matchers:

1. An action-verb grammar (transfer, pay, delete, approve, ...)
2. A sensitive-data synonym list (SSN, bank account, medical record, ...)
3. The high_stakes category vocabulary, split into STRONG signals that
   trigger on a single hit and WEAK signals that need two distinct hits

A single casual mention of a weak term such as "invoice" does not trip
the gate.
"""

from dataclasses import dataclass, field
from functools import lru_cache
import re

from switchyard.config import RouterConfig
from switchyard.router.categories import CATEGORY_POLICIES, Category

ACTION_PATTERN = re.compile(
    r"\b(transfer|wire|send money|payment|pay|purchase|buy|sell|contract sign|approve"
    r"|delete|erase|reset password|share pii|submit legal)\b",
    re.IGNORECASE,
)

SENSITIVE_SYNONYMS: tuple[str, ...] = (
    "social security",
    "ssn",
    "bank account",
    "routing number",
    "medical record",
    "health data",
    "passport",
    "driver license",
    "tax return",
)

WEAK_SIGNALS = frozenset({"invoice", "contract", "legal", "health", "sensitive"})


@lru_cache(maxsize=512)
def signal_pattern(signal: str) -> re.Pattern:
    """
    Compile a word-bounded, case-insensitive pattern for a signal.

    Underscores in the signal match any run of spaces, underscores or
    hyphens, so "health_check" matches "health check" and "health-check".
    """
    pieces = [re.escape(piece) for piece in signal.strip().lower().split("_")]
    return re.compile(r"\b" + r"[\s_-]*".join(pieces) + r"\b", re.IGNORECASE)


def dedupe(values) -> list[str]:
    """Drop empty values and duplicates, keeping first-seen order."""
    return list(dict.fromkeys(value for value in values if value))


def collect_matched_signals(text: str, signals) -> list[str]:
    """Return the signals found in the text, in vocabulary order."""
    lowered = str(text or "").lower()
    return dedupe(signal for signal in signals if signal_pattern(signal).search(lowered))


@dataclass(frozen=True)
class SafetyGateResult:
    """
    Outcome of the safety gate for one request.

    Attributes:
        triggered: Whether the request must be treated as high-stakes
        matched_signals: Category and synonym signals found in the text
        action_like: Whether the action-verb grammar matched
    """

    triggered: bool = False
    matched_signals: tuple[str, ...] = field(default_factory=tuple)
    action_like: bool = False


def detect_safety_gate(text: str, config: RouterConfig) -> SafetyGateResult:
    """
    Evaluate the safety gate for the given text.

    Triggered when the text is action-like, mentions a sensitive synonym,
    hits any strong high-stakes signal, or hits at least two distinct
    weak signals. A disabled gate never triggers.

    Args:
        text: Last user message plus the recent-context window
        config: Router configuration

    Returns:
        SafetyGateResult for this request
    """
    if not config.safety_gate_enabled:
        return SafetyGateResult()

    base_matches = collect_matched_signals(
        text, CATEGORY_POLICIES[Category.HIGH_STAKES].signals
    )
    synonym_matches = [
        synonym
        for synonym in SENSITIVE_SYNONYMS
        if re.search(rf"\b{re.escape(synonym)}\b", text, re.IGNORECASE)
    ]
    action_like = bool(ACTION_PATTERN.search(text))

    strong = [signal for signal in base_matches if signal not in WEAK_SIGNALS]
    weak = [signal for signal in base_matches if signal in WEAK_SIGNALS]

    triggered = action_like or bool(synonym_matches) or bool(strong) or len(weak) >= 2
    return SafetyGateResult(
        triggered=triggered,
        matched_signals=tuple(dedupe([*base_matches, *synonym_matches])),
        action_like=action_like,
    )
