"""
Router module: Classification, policy resolution, guardrails and escalation.

This module contains the routing pipeline:
- Conversation features and the safety gate
- Heuristic and judge-backed classification
- Static policy table and routing-profile shift
- Cost guardrails
- Self-check and single-step escalation
- RoutingEngine, which runs the whole pipeline for a request

Example usage:
    from switchyard.router import RequestContext, RoutingEngine

    ctx = RequestContext.from_request(body, settings.router_config())
    outcome = await RoutingEngine(client).handle(ctx)
"""

from switchyard.router.categories import (
    CATEGORY_POLICIES,
    Category,
    CategoryPolicy,
    Complexity,
    InjectionRisk,
    injection_risk_for,
    normalize_category,
    normalize_complexity,
)
from switchyard.router.classifier import (
    Classification,
    classify_request,
    heuristic_classification,
    is_onboarding_like,
)
from switchyard.router.context import RequestContext
from switchyard.router.engine import (
    CompletedRoute,
    ConfirmationRequired,
    RoutingEngine,
    StreamingRoute,
    inject_high_stakes_prompt,
    is_high_stakes_confirmed,
)
from switchyard.router.escalation import (
    SelfCheckResult,
    build_escalation_target,
    is_low_confidence,
    plan_escalation,
    run_self_check,
    should_escalate,
)
from switchyard.router.features import (
    ConversationFeatures,
    build_recent_context,
    extract_conversation_features,
    extract_last_user_message,
    safe_text,
)
from switchyard.router.guardrails import apply_cost_guardrails, strict_budget_target
from switchyard.router.parsing import (
    ParseResult,
    Structured,
    Unparsable,
    parse_classifier_output,
    parse_self_check_output,
)
from switchyard.router.policy import (
    RouteDecision,
    TrailEntry,
    apply_routing_profile,
    resolve_route_decision,
)
from switchyard.router.routes import (
    ROUTE_TABLE,
    RouteEntry,
    RouteLabel,
    get_policy_table,
    resolve_category_route,
)
from switchyard.router.safety import SafetyGateResult, detect_safety_gate

__all__ = [
    # Categories
    "CATEGORY_POLICIES",
    "Category",
    "CategoryPolicy",
    "Complexity",
    "InjectionRisk",
    "injection_risk_for",
    "normalize_category",
    "normalize_complexity",
    # Features and safety
    "ConversationFeatures",
    "build_recent_context",
    "extract_conversation_features",
    "extract_last_user_message",
    "safe_text",
    "SafetyGateResult",
    "detect_safety_gate",
    # Classification
    "Classification",
    "classify_request",
    "heuristic_classification",
    "is_onboarding_like",
    "ParseResult",
    "Structured",
    "Unparsable",
    "parse_classifier_output",
    "parse_self_check_output",
    # Policy
    "ROUTE_TABLE",
    "RouteEntry",
    "RouteLabel",
    "RouteDecision",
    "TrailEntry",
    "apply_routing_profile",
    "get_policy_table",
    "resolve_category_route",
    "resolve_route_decision",
    # Guardrails
    "apply_cost_guardrails",
    "strict_budget_target",
    # Escalation
    "SelfCheckResult",
    "build_escalation_target",
    "is_low_confidence",
    "plan_escalation",
    "run_self_check",
    "should_escalate",
    # Engine
    "RequestContext",
    "RoutingEngine",
    "CompletedRoute",
    "ConfirmationRequired",
    "StreamingRoute",
    "inject_high_stakes_prompt",
    "is_high_stakes_confirmed",
]
