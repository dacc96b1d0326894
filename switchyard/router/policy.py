"""
Routing resolver.

Turns a Classification into the initial RouteDecision: normalizes the
category and complexity, applies the routing-profile shift, then looks the
pair up in the static policy table. Every step that picks or changes a
backend appends a TrailEntry; entries are never removed.
"""

from dataclasses import dataclass, field, replace
import logging

from switchyard.config import RouterConfig, RoutingProfile
from switchyard.registry.models import BackendKey, get_backend_registry
from switchyard.router.categories import (
    CATEGORY_POLICIES,
    Category,
    Complexity,
    InjectionRisk,
    normalize_category,
    normalize_complexity,
)
from switchyard.router.classifier import Classification
from switchyard.router.routes import RouteLabel, resolve_category_route
from switchyard.router.safety import SafetyGateResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrailEntry:
    """
    One step of the decision audit trail.

    Attributes:
        stage: Pipeline stage that produced the entry (policy, guardrail, ...)
        rule: Human-readable justification
        backend_key: Backend selected by this step, None for a forced literal id
    """

    stage: str
    rule: str
    backend_key: BackendKey | None = None

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "rule": self.rule,
            "backend_key": self.backend_key.value if self.backend_key else None,
        }


@dataclass(frozen=True)
class RouteDecision:
    """
    Routing outcome for one request.

    A decision is immutable; guardrails derive new decisions through
    ``with_backend`` which keeps every existing trail entry.

    Attributes:
        category: Normalized request category
        complexity: Complexity as classified
        adjusted_complexity: Complexity after the routing-profile shift
        backend_key: Logical key of the selected backend (None when forced)
        backend_id: Provider-qualified backend id
        label: Policy label
        trail: Append-only audit trail
        injection_risk: Category's adversarial-exposure rating
        safety_gate_triggered: Whether the safety gate fired for this request
    """

    category: Category
    complexity: Complexity
    adjusted_complexity: Complexity
    backend_key: BackendKey | None
    backend_id: str
    label: RouteLabel
    trail: tuple[TrailEntry, ...] = field(default_factory=tuple)
    injection_risk: InjectionRisk = InjectionRisk.MEDIUM
    safety_gate_triggered: bool = False

    @property
    def forced(self) -> bool:
        return self.label is RouteLabel.FORCED

    @property
    def rule(self) -> str:
        """Trail rendered as a single line, for logs."""
        return "; ".join(entry.rule for entry in self.trail)

    def with_backend(
        self,
        backend_key: BackendKey,
        label: RouteLabel,
        reason: str,
        stage: str = "guardrail",
    ) -> "RouteDecision":
        """
        Return a copy routed to another registry backend.

        Unknown keys leave the decision unchanged.
        """
        backend_id = get_backend_registry().backend_id_for(backend_key)
        if backend_id is None:
            return self
        return replace(
            self,
            backend_key=backend_key,
            backend_id=backend_id,
            label=label,
            trail=(*self.trail, TrailEntry(stage, reason, backend_key)),
        )


def apply_routing_profile(
    complexity: Complexity, category: Category, config: RouterConfig
) -> Complexity:
    """
    Shift complexity according to the routing profile.

    quality moves one level toward critical; budget moves one level toward
    simple unless the category's injection risk is MEDIUM-HIGH or above;
    balanced leaves it alone. Shifts saturate at the extremes.
    """
    if config.routing_profile is RoutingProfile.QUALITY:
        return complexity.shift(1)
    if config.routing_profile is RoutingProfile.BUDGET:
        risk = CATEGORY_POLICIES[category].injection_risk
        if risk.rank >= InjectionRisk.MEDIUM_HIGH.rank:
            return complexity
        return complexity.shift(-1)
    return complexity


def resolve_route_decision(
    classification: Classification, gate: SafetyGateResult, config: RouterConfig
) -> RouteDecision:
    """
    Resolve the initial route decision for a classified request.

    Args:
        classification: Output of the classifier stage
        gate: Safety gate result for the request
        config: Router configuration

    Returns:
        RouteDecision carrying a one-entry trail
    """
    category = normalize_category(classification.category) or Category.COMMUNICATION
    complexity = normalize_complexity(classification.complexity) or Complexity.STANDARD
    injection_risk = CATEGORY_POLICIES[category].injection_risk

    if config.forced:
        return RouteDecision(
            category=category,
            complexity=complexity,
            adjusted_complexity=complexity,
            backend_key=None,
            backend_id=config.force_model,
            label=RouteLabel.FORCED,
            trail=(TrailEntry("policy", "FORCE_MODEL override"),),
            injection_risk=injection_risk,
            safety_gate_triggered=gate.triggered,
        )

    adjusted = apply_routing_profile(complexity, category, config)
    entry = resolve_category_route(category, adjusted, config)

    logger.debug(
        f"Policy lookup: {category.value}/{adjusted.value} -> "
        f"{entry.backend_key.value} ({entry.label.value})"
    )

    return RouteDecision(
        category=category,
        complexity=complexity,
        adjusted_complexity=adjusted,
        backend_key=entry.backend_key,
        backend_id=get_backend_registry().backend_id_for(entry.backend_key),
        label=entry.label,
        trail=(TrailEntry("policy", entry.rule, entry.backend_key),),
        injection_risk=injection_risk,
        safety_gate_triggered=gate.triggered,
    )
