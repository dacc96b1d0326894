"""
Registry module: Backend pool configuration and metadata.

This module contains:
- models.py: static backend registry with pricing, tiers, fallbacks and the escalation ladder

Public API:
- BackendTier: Enum for backend tier classification
- BackendKey: Enum of logical backend keys
- BackendMetadata: Pydantic model for backend configuration
- BackendRegistry: Central registry class
- get_backend_registry: Singleton accessor function
- parse_backend_key: Resolve raw strings to BackendKey
"""

from switchyard.registry.models import (
    BackendKey,
    BackendMetadata,
    BackendRegistry,
    BackendTier,
    get_backend_registry,
    parse_backend_key,
)

__all__ = [
    "BackendTier",
    "BackendKey",
    "BackendMetadata",
    "BackendRegistry",
    "get_backend_registry",
    "parse_backend_key",
]
