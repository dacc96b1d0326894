"""
Routing Engine - Orchestrates one chat-completion request end to end.

The pipeline runs strictly in order:
    confirm -> classify -> resolve -> guardrail -> primary call
    -> [self-check -> optional single escalation] -> respond

Key components:
- RoutingEngine: Runs the pipeline and returns a typed outcome
- ConfirmationRequired: Strict-mode safety gate outcome (no backend call)
- CompletedRoute: Buffered completion plus routing metadata and cost
- StreamingRoute: Open upstream stream plus routing metadata

The engine never builds HTTP responses; the gateway turns outcomes into
responses and headers.
"""

from dataclasses import dataclass
import logging
from typing import Any

from switchyard.config import ConfirmMode, RouterConfig
from switchyard.dispatcher.handlers import (
    UpstreamClient,
    UpstreamError,
    UpstreamStream,
    build_candidate_chain,
    call_with_candidates,
    first_message_content,
)
from switchyard.metrics.cost import CostEstimate, get_cost_calculator
from switchyard.registry.models import get_backend_registry
from switchyard.router.classifier import Classification, classify_request
from switchyard.router.context import RequestContext
from switchyard.router.escalation import (
    SelfCheckResult,
    is_low_confidence,
    plan_escalation,
    run_self_check,
)
from switchyard.router.features import normalize_whitespace, safe_text
from switchyard.router.guardrails import apply_cost_guardrails
from switchyard.router.policy import RouteDecision, resolve_route_decision
from switchyard.schemas.chat import RoutingMetadata

logger = logging.getLogger(__name__)


HIGH_STAKES_POLICY_MARKER = "[SWITCHYARD_HIGH_STAKES_POLICY]"

HIGH_STAKES_POLICY_PROMPT = " ".join(
    [
        HIGH_STAKES_POLICY_MARKER,
        "The router flagged this request as high-stakes.",
        "Ask for explicit confirmation before carrying out anything irreversible.",
        "On legal, financial, health or otherwise sensitive topics, answer precisely and "
        "conservatively and say plainly where you are uncertain.",
    ]
)


def is_high_stakes_confirmed(tokens, config: RouterConfig) -> bool:
    """True when any supplied token matches the configured confirmation token."""
    for token in tokens:
        if isinstance(token, str) and token.strip().lower() == config.confirm_token:
            return True
    return False


def inject_high_stakes_prompt(messages: list) -> list:
    """Prepend the high-stakes policy system message unless it is already present."""
    for message in messages:
        content = message.get("content") if isinstance(message, dict) else None
        if HIGH_STAKES_POLICY_MARKER in safe_text(content):
            return messages
    return [{"role": "system", "content": HIGH_STAKES_POLICY_PROMPT}, *messages]


# =============================================================================
# OUTCOMES
# =============================================================================


@dataclass(frozen=True)
class ConfirmationRequired:
    """The safety gate fired in strict mode and no valid token was supplied."""

    matched_signals: tuple[str, ...]
    token: str


@dataclass
class CompletedRoute:
    """
    A buffered completion ready to return.

    Attributes:
        body: Upstream JSON body, relayed verbatim
        metadata: Routing metadata for response headers
        decision: Final route decision
        classification: Classifier output
        self_check: Final self-check verdict; None when skipped
        cost: Cost estimate for the backend that answered last
    """

    body: Any
    metadata: RoutingMetadata
    decision: RouteDecision
    classification: Classification
    self_check: SelfCheckResult | None = None
    cost: CostEstimate | None = None


@dataclass
class StreamingRoute:
    """An open upstream stream ready to relay."""

    stream: UpstreamStream
    metadata: RoutingMetadata
    decision: RouteDecision


RouteOutcome = ConfirmationRequired | CompletedRoute | StreamingRoute


# =============================================================================
# ENGINE
# =============================================================================


class RoutingEngine:
    """
    Runs the routing pipeline for one request at a time.

    The engine holds no per-request state, so one instance can serve
    concurrent requests.

    Example:
        engine = RoutingEngine(get_upstream_client())
        ctx = RequestContext.from_request(body, settings.router_config())
        outcome = await engine.handle(ctx)
    """

    def __init__(self, client: UpstreamClient) -> None:
        self.client = client

    async def handle(self, ctx: RequestContext) -> RouteOutcome:
        """
        Route a request.

        Args:
            ctx: Per-request context

        Returns:
            ConfirmationRequired, CompletedRoute or StreamingRoute

        Raises:
            UpstreamError: When the candidate chain fails
        """
        config = ctx.config
        gate = ctx.safety_gate

        if (
            gate.triggered
            and config.confirm_mode is ConfirmMode.STRICT
            and not is_high_stakes_confirmed(ctx.confirmation_tokens, config)
        ):
            logger.info(
                f"[{ctx.request_id}] High-stakes request held for confirmation: "
                f"signals={list(gate.matched_signals)}"
            )
            return ConfirmationRequired(gate.matched_signals, config.confirm_token)

        classification = await classify_request(ctx, self.client)
        decision = resolve_route_decision(classification, gate, config)
        decision = apply_cost_guardrails(decision, ctx.last_user_message, ctx.features, config)

        try:
            return await self._dispatch(ctx, classification, decision)
        except UpstreamError as e:
            logger.error(
                f"[{ctx.request_id}] error status={e.status} category={decision.category.value} "
                f"model={decision.backend_id} "
                f'reason="{normalize_whitespace(classification.reason or decision.rule)}" '
                f'message="{e.message}" latency_ms={ctx.elapsed_ms}'
            )
            raise

    async def _dispatch(
        self, ctx: RequestContext, classification: Classification, decision: RouteDecision
    ) -> RouteOutcome:
        config = ctx.config
        messages = ctx.messages
        if ctx.safety_gate.triggered and config.confirm_mode is ConfirmMode.PROMPT:
            messages = inject_high_stakes_prompt(messages)

        base_payload = {k: v for k, v in ctx.body.items() if k != "model"}
        base_payload["messages"] = messages

        primary = await call_with_candidates(
            self.client,
            {**base_payload, "stream": ctx.stream},
            build_candidate_chain(
                decision.backend_key, decision.backend_id, ctx.features.has_multimodal
            ),
            stream=ctx.stream,
        )

        if ctx.stream:
            metadata = self._metadata(decision, primary.backend_id, primary.backend_id)
            self._log_summary(
                ctx, classification, decision, metadata, skip_reason="streaming"
            )
            return StreamingRoute(stream=primary.result, metadata=metadata, decision=decision)

        if decision.forced:
            metadata = self._metadata(decision, primary.backend_id, primary.backend_id)
            cost = get_cost_calculator().estimate(primary.backend_id, primary.result.get("usage"))
            self._log_summary(
                ctx, classification, decision, metadata, cost=cost, skip_reason="forced_model"
            )
            return CompletedRoute(
                body=primary.result,
                metadata=metadata,
                decision=decision,
                classification=classification,
                cost=cost,
            )

        final = primary
        answer = safe_text(first_message_content(primary.result))
        self_check = await run_self_check(ctx, answer, self.client)

        target = plan_escalation(
            primary.backend_key,
            self_check.score,
            decision,
            ctx.features,
            ctx.last_user_message,
            config,
        )
        escalated = False
        if target is not None:
            logger.info(
                f"[{ctx.request_id}] Escalating {primary.backend_id} -> {target.value} "
                f"after self-check score {self_check.score}"
            )
            escalated = True
            final = await call_with_candidates(
                self.client,
                {**base_payload, "stream": False},
                build_candidate_chain(
                    target,
                    get_backend_registry().backend_id_for(target),
                    ctx.features.has_multimodal,
                ),
            )
            answer = safe_text(first_message_content(final.result))
            self_check = await run_self_check(ctx, answer, self.client)

        metadata = self._metadata(
            decision,
            primary.backend_id,
            final.backend_id,
            escalated=escalated,
            score=self_check.score,
            low_confidence=is_low_confidence(self_check.score),
        )
        cost = get_cost_calculator().estimate(final.backend_id, final.result.get("usage"))
        self._log_summary(ctx, classification, decision, metadata, cost=cost)

        return CompletedRoute(
            body=final.result,
            metadata=metadata,
            decision=decision,
            classification=classification,
            self_check=self_check,
            cost=cost,
        )

    @staticmethod
    def _metadata(
        decision: RouteDecision,
        initial_backend_id: str,
        final_backend_id: str,
        escalated: bool = False,
        score: int | None = None,
        low_confidence: bool = False,
    ) -> RoutingMetadata:
        return RoutingMetadata(
            category=decision.category.value,
            complexity=decision.complexity.value,
            adjusted_complexity=decision.adjusted_complexity.value,
            initial_backend_id=initial_backend_id,
            final_backend_id=final_backend_id,
            route_label=decision.label.value,
            escalated=escalated,
            confidence_score=score,
            low_confidence=low_confidence,
            safety_gate_triggered=decision.safety_gate_triggered,
        )

    @staticmethod
    def _log_summary(
        ctx: RequestContext,
        classification: Classification,
        decision: RouteDecision,
        metadata: RoutingMetadata,
        cost: CostEstimate | None = None,
        skip_reason: str | None = None,
    ) -> None:
        if skip_reason:
            self_check = f'selfcheck=skipped reason="{skip_reason}"'
        else:
            self_check = f"selfcheck_score={metadata.confidence_score}"

        if cost:
            usage = (
                f"tokens={cost.prompt_tokens}/{cost.completion_tokens}/{cost.total_tokens} "
                f"est_usd={cost.usd:.6f}"
            )
        else:
            usage = "tokens=n/a/n/a/n/a est_usd=n/a"

        logger.info(
            f"[{ctx.request_id}] category={decision.category.value} "
            f"complexity={decision.complexity.value}->{decision.adjusted_complexity.value} "
            f"risk={decision.injection_risk.value} chosen_model={metadata.initial_backend_id} "
            f"final_model={metadata.final_backend_id} route={decision.label.value} "
            f"classifier_source={classification.source} "
            f'classifier_reason="{normalize_whitespace(classification.reason)}" '
            f"{self_check} escalated={str(metadata.escalated).lower()} "
            f"low_confidence={str(metadata.low_confidence).lower()} {usage} "
            f"latency_ms={ctx.elapsed_ms} stream={str(ctx.stream).lower()}"
        )
