"""
Cost Estimation for Routed Requests

Estimates the USD cost of a completion from the provider-reported usage
and the registry's static price table. Estimates only: provider usage
counts are trusted as reported and no tokenizer is involved.
"""

from dataclasses import dataclass
from typing import Any

from switchyard.registry.models import BackendMetadata, get_backend_registry


@dataclass
class CostEstimate:
    """
    Estimated cost of a single completion.

    Attributes:
        prompt_tokens: Input tokens reported by the provider
        completion_tokens: Output tokens reported by the provider
        total_tokens: Total tokens (reported, or prompt + completion)
        usd: Estimated cost in USD
        backend_id: Backend the estimate was priced against
    """

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    usd: float
    backend_id: str

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "usd": round(self.usd, 6),
            "backend_id": self.backend_id,
        }


def _token_count(usage: dict, *names: str) -> int | None:
    for name in names:
        value = usage.get(name)
        if value is None:
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0
    return None


class CostCalculator:
    """
    Price completions against the backend registry.

    The calculator is stateless and safe to share across requests; it only
    reads the static registry.

    Example:
        calculator = CostCalculator()
        estimate = calculator.estimate(
            "minimax/minimax-m2.5",
            {"prompt_tokens": 1200, "completion_tokens": 300},
        )
        print(f"${estimate.usd:.6f}")
    """

    def calculate(
        self, backend: BackendMetadata, prompt_tokens: int, completion_tokens: int
    ) -> float:
        """
        Price a token count against a backend.

        Args:
            backend: Backend metadata with pricing information
            prompt_tokens: Input tokens
            completion_tokens: Output tokens

        Returns:
            Estimated USD cost
        """
        input_cost = (prompt_tokens / 1_000_000) * backend.cost_per_1m_input_tokens
        output_cost = (completion_tokens / 1_000_000) * backend.cost_per_1m_output_tokens
        return input_cost + output_cost

    def estimate(self, backend_id: str, usage: Any) -> CostEstimate | None:
        """
        Estimate cost from a provider usage block.

        Reads prompt_tokens (or input_tokens), completion_tokens (or
        output_tokens) and total_tokens.

        Args:
            backend_id: Provider id of the backend that answered
            usage: The ``usage`` object of the completion body

        Returns:
            CostEstimate, or None for unknown backends or missing usage
        """
        backend = get_backend_registry().get_backend_by_id(backend_id)
        if backend is None or not isinstance(usage, dict):
            return None

        prompt_tokens = _token_count(usage, "prompt_tokens", "input_tokens") or 0
        completion_tokens = _token_count(usage, "completion_tokens", "output_tokens") or 0
        total_tokens = _token_count(usage, "total_tokens")
        if total_tokens is None:
            total_tokens = prompt_tokens + completion_tokens

        return CostEstimate(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            usd=self.calculate(backend, prompt_tokens, completion_tokens),
            backend_id=backend_id,
        )


_calculator: CostCalculator | None = None


def get_cost_calculator() -> CostCalculator:
    """
    Get the global cost calculator instance.

    Returns:
        The singleton CostCalculator instance.
    """
    global _calculator
    if _calculator is None:
        _calculator = CostCalculator()
    return _calculator
