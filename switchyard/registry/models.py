"""
Backend Registry

This module defines the static pool of upstream backends the router can
select from. Every backend is addressed internally by a logical key
(e.g. "m25") that is decoupled from its provider-qualified id
(e.g. "minimax/minimax-m2.5"), so policy tables never embed literal ids.

Tiers, roughly by price per 1M output tokens:
- Premium (Opus): top-trust backend, reserved for high-stakes traffic
- Standard (Sonnet): second tier, mid-trust floor and escalation rung
- Value (MiniMax M2.5, Kimi K2.5, GLM 5): default workhorses
- Mid-tier (Gemini Flash / Gemini 3.1 Pro): long-context multimodal
- Budget / Ultra-cheap (Grok Fast, GPT-5 Nano, DeepSeek): routine traffic and judges

Each backend entry includes:
- Logical key and provider-qualified id
- Cost per 1M tokens (input/output)
- Whether it accepts non-text content parts

The registry also owns the per-backend fallback lists, the single-step
escalation ladder and the multimodal fallback order.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BackendTier(str, Enum):
    """Classification of backends by trust and price."""

    PREMIUM = "premium"
    STANDARD = "standard"
    VALUE = "value"
    MID_TIER = "mid-tier"
    BUDGET = "budget"
    ULTRA_CHEAP = "ultra-cheap"


class BackendKey(str, Enum):
    """Logical keys used by policy tables, fallback lists and the ladder."""

    OPUS = "opus"
    SONNET = "sonnet"
    M25 = "m25"
    KIMI_K25 = "kimi_k25"
    GLM5 = "glm5"
    GROK = "grok"
    NANO = "nano"
    DS_CODER = "ds_coder"
    GEM_FLASH = "gem_flash"
    GEM31_PRO = "gem31_pro"


def parse_backend_key(value) -> BackendKey | None:
    """
    Resolve a raw key (string or enum) to a BackendKey.

    Returns:
        The matching BackendKey, or None for unknown/empty values
    """
    if isinstance(value, BackendKey):
        return value
    try:
        return BackendKey(str(value or "").strip().lower())
    except ValueError:
        return None


class BackendMetadata(BaseModel):
    """
    Complete metadata for a registered backend.

    This class holds all information needed to:
    1. Build candidate chains from policy decisions
    2. Dispatch requests with the provider-qualified id
    3. Estimate request cost from reported usage
    """

    model_config = ConfigDict(frozen=True)

    key: BackendKey = Field(
        ...,
        description="Logical key used in routing tables",
    )

    backend_id: str = Field(
        ...,
        description="Provider-qualified id sent to the upstream endpoint",
    )

    display_name: str = Field(
        ...,
        description="Human-readable backend name",
    )

    tier: BackendTier = Field(
        ...,
        description="Backend tier classification",
    )

    cost_per_1m_input_tokens: float = Field(
        ...,
        ge=0,
        description="Cost in USD per 1 million input tokens",
    )

    cost_per_1m_output_tokens: float = Field(
        ...,
        ge=0,
        description="Cost in USD per 1 million output tokens",
    )

    multimodal: bool = Field(
        default=False,
        description="Accepts image and other non-text content parts",
    )


class BackendRegistry:
    """
    Central registry of all available backends.

    The registry is static: definitions are loaded once and never mutated
    afterwards, so sharing the instance across requests holds no
    per-request state.

    Attributes:
        _backends: Dictionary mapping logical keys to their metadata
        _by_id: Dictionary mapping provider ids back to metadata
        _fallbacks: Ordered fallback keys tried after each primary
        _ladder: Next-stronger backend for single-step escalation
        _multimodal_order: Preferred order of multimodal-capable backends
    """

    def __init__(self) -> None:
        self._backends: dict[BackendKey, BackendMetadata] = {}
        self._by_id: dict[str, BackendMetadata] = {}
        self._fallbacks: dict[BackendKey, tuple[BackendKey, ...]] = {}
        self._ladder: dict[BackendKey, BackendKey | None] = {}
        self._multimodal_order: tuple[BackendKey, ...] = ()
        self._initialize_backends()
        self._initialize_fallbacks()
        self._initialize_ladder()

    def _initialize_backends(self) -> None:
        """Register all available backends with their metadata."""
        for key, backend_id, display_name, tier, cost_in, cost_out, multimodal in (
            (BackendKey.OPUS, "anthropic/claude-opus-4.6", "Opus 4.6",
             BackendTier.PREMIUM, 5.00, 25.00, True),
            (BackendKey.SONNET, "anthropic/claude-sonnet-4.6", "Sonnet 4.6",
             BackendTier.STANDARD, 3.00, 15.00, True),
            (BackendKey.M25, "minimax/minimax-m2.5", "MiniMax M2.5",
             BackendTier.VALUE, 0.30, 1.10, False),
            (BackendKey.KIMI_K25, "moonshotai/kimi-k2.5", "Kimi K2.5",
             BackendTier.VALUE, 0.45, 2.20, True),
            (BackendKey.GLM5, "z-ai/glm-5", "GLM 5",
             BackendTier.VALUE, 0.95, 2.55, False),
            (BackendKey.GROK, "x-ai/grok-4.1-fast", "Grok 4.1 Fast",
             BackendTier.BUDGET, 0.20, 0.50, True),
            (BackendKey.NANO, "openai/gpt-5-nano", "GPT-5 Nano",
             BackendTier.ULTRA_CHEAP, 0.05, 0.40, True),
            (BackendKey.DS_CODER, "deepseek/deepseek-v3.2", "DeepSeek V3.2",
             BackendTier.ULTRA_CHEAP, 0.25, 0.40, False),
            (BackendKey.GEM_FLASH, "google/gemini-3-flash-preview", "Gemini 3 Flash Preview",
             BackendTier.MID_TIER, 0.50, 3.00, False),
            (BackendKey.GEM31_PRO, "google/gemini-3.1-pro-preview", "Gemini 3.1 Pro",
             BackendTier.MID_TIER, 2.00, 12.00, True),
        ):
            self._register(
                BackendMetadata(
                    key=key,
                    backend_id=backend_id,
                    display_name=display_name,
                    tier=tier,
                    cost_per_1m_input_tokens=cost_in,
                    cost_per_1m_output_tokens=cost_out,
                    multimodal=multimodal,
                )
            )

    def _initialize_fallbacks(self) -> None:
        """Ordered fallback keys per primary backend."""
        k = BackendKey
        self._fallbacks = {
            k.NANO: (k.GROK, k.M25, k.DS_CODER, k.KIMI_K25, k.GLM5, k.GEM_FLASH, k.SONNET),
            k.DS_CODER: (k.GROK, k.M25, k.GLM5, k.KIMI_K25, k.GEM_FLASH, k.SONNET),
            k.GEM_FLASH: (k.GROK, k.M25, k.KIMI_K25, k.GLM5, k.SONNET, k.OPUS),
            k.GROK: (k.NANO, k.M25, k.KIMI_K25, k.GLM5, k.GEM_FLASH, k.SONNET),
            k.GEM31_PRO: (k.KIMI_K25, k.GROK, k.M25, k.GLM5, k.SONNET, k.OPUS),
            k.M25: (k.GLM5, k.KIMI_K25, k.SONNET, k.GEM31_PRO, k.GROK, k.OPUS),
            k.KIMI_K25: (k.GEM31_PRO, k.GROK, k.NANO, k.M25, k.SONNET, k.OPUS),
            k.GLM5: (k.M25, k.GROK, k.KIMI_K25, k.GEM31_PRO, k.SONNET, k.OPUS),
            k.SONNET: (k.M25, k.GLM5, k.KIMI_K25, k.GROK, k.GEM31_PRO, k.OPUS),
            k.OPUS: (k.SONNET, k.M25, k.GLM5, k.KIMI_K25),
        }
        self._multimodal_order = (
            k.KIMI_K25, k.GEM31_PRO, k.GROK, k.NANO, k.SONNET, k.OPUS,
        )

    def _initialize_ladder(self) -> None:
        """Map each backend to its next stronger rung."""
        k = BackendKey
        self._ladder = {
            k.NANO: k.GROK,
            k.DS_CODER: k.M25,
            k.GEM_FLASH: k.GROK,
            k.GROK: k.M25,
            k.GEM31_PRO: k.M25,
            k.M25: k.SONNET,
            k.KIMI_K25: k.SONNET,
            k.GLM5: k.SONNET,
            k.SONNET: k.OPUS,
            k.OPUS: None,
        }

    def _register(self, backend: BackendMetadata) -> None:
        """Register a backend in the registry."""
        self._backends[backend.key] = backend
        self._by_id[backend.backend_id] = backend

    def get_backend(self, key) -> BackendMetadata | None:
        """
        Retrieve backend metadata by logical key.

        Args:
            key: BackendKey or its string value

        Returns:
            BackendMetadata if found, None otherwise
        """
        parsed = parse_backend_key(key)
        if parsed is None:
            return None
        return self._backends.get(parsed)

    def get_backend_by_id(self, backend_id: str) -> BackendMetadata | None:
        """Retrieve backend metadata by provider-qualified id."""
        return self._by_id.get(backend_id)

    def backend_id_for(self, key) -> str | None:
        """Provider id for a logical key, or None when the key is unknown."""
        backend = self.get_backend(key)
        return backend.backend_id if backend else None

    def fallbacks_for(self, key: BackendKey) -> tuple[BackendKey, ...]:
        """Ordered fallback keys configured for a primary backend."""
        return self._fallbacks.get(key, ())

    def next_rung(self, key: BackendKey) -> BackendKey | None:
        """Next stronger backend on the escalation ladder, if any."""
        return self._ladder.get(key)

    @property
    def multimodal_order(self) -> tuple[BackendKey, ...]:
        """Multimodal-capable backends in fallback preference order."""
        return self._multimodal_order

    def list_backends(self) -> list[BackendMetadata]:
        """
        Return all registered backends.

        Returns:
            List of all BackendMetadata instances
        """
        return list(self._backends.values())


_registry_instance: BackendRegistry | None = None


def get_backend_registry() -> BackendRegistry:
    """
    Get the global backend registry instance.

    Uses lazy initialization to create the registry only when needed.
    This ensures consistent access to backend metadata throughout the application.

    Returns:
        The singleton BackendRegistry instance
    """
    global _registry_instance
    if _registry_instance is None:
        _registry_instance = BackendRegistry()
    return _registry_instance
