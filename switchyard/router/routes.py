"""
Static Routing Policy Table

This module defines the (category, complexity) -> backend policy used by
the routing resolver. The table is a total function over all category and
complexity pairs: it is validated when the module is imported, so a missing
cell is a startup failure rather than a silent runtime default.

Labels:
    - DEFAULT: the category's normal pick at this level
    - BUDGET / VALUE: cheaper picks for routine or mid-weight traffic
    - MID-TIER: long-input or multimodal extraction
    - ESCALATE: critical traffic sent straight to the top tier
    - ALWAYS: high_stakes hard-route to the top tier
    - FLOOR: high_stakes budget-floor exception (mid-trust backend)

Labels added later in the pipeline:
    - FORCED: operator override with a literal backend id
    - BUDGET_GUARDRAIL: cost guardrail rewrote the pick
"""

from dataclasses import dataclass
from enum import Enum

from switchyard.config import RouterConfig, RoutingProfile
from switchyard.registry.models import BackendKey
from switchyard.router.categories import Category, Complexity


class RouteLabel(str, Enum):
    """Policy label attached to every route decision."""

    DEFAULT = "DEFAULT"
    BUDGET = "BUDGET"
    VALUE = "VALUE"
    MID_TIER = "MID-TIER"
    ESCALATE = "ESCALATE"
    ALWAYS = "ALWAYS"
    FLOOR = "FLOOR"
    FORCED = "FORCED"
    BUDGET_GUARDRAIL = "BUDGET_GUARDRAIL"


@dataclass(frozen=True)
class RouteEntry:
    """
    A single policy-table cell.

    Attributes:
        backend_key: Logical key of the selected backend
        label: Policy label reported in the response headers
        rule: Short human-readable justification
    """

    backend_key: BackendKey
    label: RouteLabel
    rule: str


HIGH_STAKES_FLOOR = RouteEntry(
    BackendKey.SONNET, RouteLabel.FLOOR, "Budget forced floor with strict follow-up checks"
)


def _cells(
    simple: RouteEntry, standard: RouteEntry, complex_: RouteEntry, critical: RouteEntry
) -> dict[Complexity, RouteEntry]:
    return {
        Complexity.SIMPLE: simple,
        Complexity.STANDARD: standard,
        Complexity.COMPLEX: complex_,
        Complexity.CRITICAL: critical,
    }


def create_route_table() -> dict[Category, dict[Complexity, RouteEntry]]:
    """
    Build and validate the policy table.

    Returns:
        Nested mapping category -> complexity -> RouteEntry

    Raises:
        ValueError: If any (category, complexity) pair has no entry
    """
    k, L = BackendKey, RouteLabel
    E = RouteEntry

    table = {
        Category.HEARTBEAT: _cells(
            E(k.NANO, L.DEFAULT, "Simple ping / status"),
            E(k.GROK, L.BUDGET, "Context compaction / memory management"),
            E(k.M25, L.VALUE, "Complex health diagnostics"),
            E(k.M25, L.VALUE, "Complex health diagnostics"),
        ),
        Category.CORE_LOOP: _cells(
            E(k.GROK, L.BUDGET, "Simple tool call"),
            E(k.M25, L.DEFAULT, "Standard and complex tool chains"),
            E(k.M25, L.DEFAULT, "Standard and complex tool chains"),
            E(k.OPUS, L.ESCALATE, "Ultra-critical / long-horizon planning"),
        ),
        Category.RETRIEVAL: _cells(
            E(k.NANO, L.DEFAULT, "Simple lookup"),
            E(k.M25, L.VALUE, "Fetch and synthesize across sources"),
            E(k.M25, L.VALUE, "Fetch and synthesize across sources"),
            E(k.OPUS, L.ESCALATE, "High-stakes retrieval"),
        ),
        Category.SUMMARIZATION: _cells(
            E(k.NANO, L.DEFAULT, "Short input simple extraction"),
            E(k.M25, L.VALUE, "Medium text summarization and extraction"),
            E(k.GEM31_PRO, L.MID_TIER, "Long input or high-precision multimodal extraction"),
            E(k.OPUS, L.ESCALATE, "Ultra-critical legal/financial summarization"),
        ),
        Category.PLANNING: _cells(
            E(k.GROK, L.DEFAULT, "Routine planning"),
            E(k.M25, L.VALUE, "Multi-constraint planning"),
            E(k.M25, L.VALUE, "Multi-constraint planning"),
            E(k.OPUS, L.ESCALATE, "Mission-critical planning"),
        ),
        Category.ORCHESTRATION: _cells(
            E(k.GROK, L.BUDGET, "Simple repetitive orchestration"),
            E(k.M25, L.DEFAULT, "Standard and complex automation chains"),
            E(k.M25, L.DEFAULT, "Standard and complex automation chains"),
            E(k.OPUS, L.ESCALATE, "High-stakes recovery orchestration"),
        ),
        Category.CODING: _cells(
            E(k.DS_CODER, L.BUDGET, "Quick script / small fix"),
            E(k.M25, L.DEFAULT, "Standard and complex feature implementation / debugging"),
            E(k.M25, L.DEFAULT, "Standard and complex feature implementation / debugging"),
            E(k.OPUS, L.ESCALATE, "Large refactors / production-critical"),
        ),
        Category.RESEARCH: _cells(
            E(k.GROK, L.DEFAULT, "Routine research and lightweight analysis"),
            E(k.M25, L.DEFAULT, "Deep text-heavy synthesis and comparative analysis"),
            E(k.M25, L.DEFAULT, "Deep text-heavy synthesis and comparative analysis"),
            E(k.OPUS, L.ESCALATE, "Ultra-high-stakes synthesis"),
        ),
        Category.CREATIVE: _cells(
            E(k.GROK, L.DEFAULT, "Brainstorming and playful ideation"),
            E(k.M25, L.VALUE, "High-quality style adherence"),
            E(k.M25, L.VALUE, "High-quality style adherence"),
            E(k.OPUS, L.ESCALATE, "Professional long-form creative campaigns"),
        ),
        Category.COMMUNICATION: _cells(
            E(k.GROK, L.DEFAULT, "Casual messaging"),
            E(k.M25, L.VALUE, "Professional communication"),
            E(k.M25, L.VALUE, "Professional communication"),
            E(k.OPUS, L.ESCALATE, "Sensitive negotiation / legal / crisis messaging"),
        ),
        Category.HIGH_STAKES: _cells(
            *[E(k.OPUS, L.ALWAYS, "Safety gate hard-route")] * 4
        ),
        Category.REFLECTION: _cells(
            E(k.GROK, L.DEFAULT, "Routine reflection"),
            E(k.M25, L.VALUE, "Serious failure analysis"),
            E(k.M25, L.VALUE, "Serious failure analysis"),
            E(k.OPUS, L.ESCALATE, "Critical stuck-state recovery"),
        ),
    }

    missing = [
        f"{category.value}/{complexity.value}"
        for category in Category
        for complexity in Complexity
        if complexity not in table.get(category, {})
    ]
    if missing:
        raise ValueError(f"Route table is missing entries: {', '.join(missing)}")
    return table


ROUTE_TABLE: dict[Category, dict[Complexity, RouteEntry]] = create_route_table()


def resolve_category_route(
    category: Category, complexity: Complexity, config: RouterConfig
) -> RouteEntry:
    """
    Look up the policy entry for a category at an (already shifted) complexity.

    high_stakes resolves to the top tier unless the operator enabled the
    budget-floor exception and the budget profile is active.
    """
    if (
        category is Category.HIGH_STAKES
        and config.high_stakes_budget_floor
        and config.routing_profile is RoutingProfile.BUDGET
    ):
        return HIGH_STAKES_FLOOR
    return ROUTE_TABLE[category][complexity]


def get_policy_table() -> dict[str, dict[str, dict[str, str]]]:
    """Policy table as plain strings, for the /models listing."""
    return {
        category.value: {
            complexity.value: {
                "backend_key": entry.backend_key.value,
                "label": entry.label.value,
                "rule": entry.rule,
            }
            for complexity, entry in cells.items()
        }
        for category, cells in ROUTE_TABLE.items()
    }
