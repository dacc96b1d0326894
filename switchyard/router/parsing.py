"""
Judge-output parsing.

Judge backends are asked for strict JSON but do not always comply. Each
parser applies the same layered strategy:
1. Direct JSON parse
2. Parse the first balanced-brace substring
3. Loose regex scan for known tokens

Parsers return a ParseResult: either Structured(value) or
Unparsable(raw_text). They never fall back to heuristics themselves;
composing the heuristic path is the caller's job.
"""

from dataclasses import dataclass, field
import json
import math
import re
from typing import Any, Generic, TypeVar, Union

from switchyard.router.categories import (
    Category,
    Complexity,
    normalize_category,
    normalize_complexity,
)
from switchyard.router.features import normalize_whitespace
from switchyard.router.safety import dedupe

T = TypeVar("T")


@dataclass(frozen=True)
class Structured(Generic[T]):
    """Judge output that was understood."""

    value: T


@dataclass(frozen=True)
class Unparsable:
    """Judge output that could not be understood."""

    raw_text: str


ParseResult = Union[Structured[T], Unparsable]


_LOOSE_CATEGORY = re.compile(
    r"\b(" + "|".join(category.value for category in Category) + r")\b", re.IGNORECASE
)
_LOOSE_COMPLEXITY = re.compile(
    r"\b(" + "|".join(level.value for level in Complexity) + r")\b", re.IGNORECASE
)
_LOOSE_SCORE = re.compile(r"\b([1-5])\b\s*[:|-]?\s*(.{0,180})")


def extract_first_json_object(raw_text: str) -> str | None:
    """
    Return the first balanced ``{...}`` substring, or None.

    Braces inside JSON strings are not special-cased; judges rarely emit
    them and the direct parse has already been tried.
    """
    text = str(raw_text or "")
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    for index in range(start, len(text)):
        char = text[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def try_parse_json(text: str | None) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None


def _parse_object(raw: str) -> dict | None:
    direct = try_parse_json(raw)
    if isinstance(direct, dict):
        return direct
    embedded = try_parse_json(extract_first_json_object(raw))
    return embedded if isinstance(embedded, dict) else None


def parse_score(value: Any, fallback: int = 4) -> int:
    """Coerce a judge score to an int in 1..5, rounding halves up."""
    # missing or blank scores take the fallback instead of clamping to 1
    if value is None or isinstance(value, (list, dict)):
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number):
        return fallback
    return max(1, min(5, math.floor(number + 0.5)))


def _is_true(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


@dataclass(frozen=True)
class ClassifierVerdict:
    """Classification as reported by a judge backend."""

    category: Category
    complexity: Complexity
    confidence: int
    reason: str
    matched_signals: tuple[str, ...] = field(default_factory=tuple)
    high_stakes: bool = False


def parse_classifier_output(raw: str) -> ParseResult[ClassifierVerdict]:
    """
    Parse a classifier judge reply.

    Structured output must name a known category and complexity; values
    outside the closed enumerations are never propagated.

    Args:
        raw: Whitespace-normalized judge text

    Returns:
        Structured(ClassifierVerdict) or Unparsable(raw)
    """
    obj = _parse_object(raw)
    if obj is not None:
        category = normalize_category(obj.get("category"))
        complexity = normalize_complexity(obj.get("complexity"))
        if category and complexity:
            signals = obj.get("matched_signals")
            matched = (
                dedupe(str(signal)[:48].lower() for signal in signals)
                if isinstance(signals, list)
                else []
            )
            return Structured(
                ClassifierVerdict(
                    category=category,
                    complexity=complexity,
                    confidence=parse_score(obj.get("confidence"), 3),
                    reason=normalize_whitespace(obj.get("reason") or "Model classifier."),
                    matched_signals=tuple(matched),
                    high_stakes=_is_true(obj.get("high_stakes")),
                )
            )

    category_match = _LOOSE_CATEGORY.search(raw or "")
    complexity_match = _LOOSE_COMPLEXITY.search(raw or "")
    if category_match and complexity_match:
        category = normalize_category(category_match.group(1))
        complexity = normalize_complexity(complexity_match.group(1))
        if category and complexity:
            return Structured(
                ClassifierVerdict(
                    category=category,
                    complexity=complexity,
                    confidence=3,
                    reason="Classifier parsed from loose text.",
                    high_stakes=category is Category.HIGH_STAKES,
                )
            )

    return Unparsable(raw or "")


@dataclass(frozen=True)
class SelfCheckVerdict:
    """Answer-quality score as reported by a judge backend."""

    score: int
    reason: str


def parse_self_check_output(raw: str) -> ParseResult[SelfCheckVerdict]:
    """
    Parse a self-check judge reply into a 1-5 score and reason.

    Args:
        raw: Whitespace-normalized judge text

    Returns:
        Structured(SelfCheckVerdict) or Unparsable(raw)
    """
    obj = _parse_object(raw)
    if obj is not None:
        return Structured(
            SelfCheckVerdict(
                score=parse_score(obj.get("score"), 4),
                reason=normalize_whitespace(obj.get("reason") or "Self-check scored by model."),
            )
        )

    loose = _LOOSE_SCORE.search(raw or "")
    if loose:
        return Structured(
            SelfCheckVerdict(
                score=parse_score(loose.group(1), 4),
                reason=normalize_whitespace(loose.group(2) or "Self-check parsed from loose text."),
            )
        )

    return Unparsable(raw or "")
