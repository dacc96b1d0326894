"""
Metrics module: Cost estimation for routed requests.

Public API:
- CostEstimate: Estimated tokens and USD for a single completion
- CostCalculator: Prices provider usage against the backend registry
- get_cost_calculator(): Singleton accessor
"""

from switchyard.metrics.cost import CostCalculator, CostEstimate, get_cost_calculator

__all__ = [
    "CostEstimate",
    "CostCalculator",
    "get_cost_calculator",
]
