"""
Switchyard Configuration Module

This module manages application settings and environment variables using
pydantic-settings for type-safe configuration management.

Environment variables are loaded from .env file or system environment.
All sensitive values use SecretStr to prevent accidental logging.

Routing knobs are frozen into a RouterConfig value once per request and
handed to every pipeline stage explicitly; no stage reads the global
settings object on its own.
"""

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Literal
import logging
import sys

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RoutingProfile(str, Enum):
    """Global bias applied to complexity before the policy lookup."""

    BUDGET = "budget"
    BALANCED = "balanced"
    QUALITY = "quality"


class CostMode(str, Enum):
    """Strictness of the cost guardrail."""

    OFF = "off"
    BALANCED = "balanced"
    STRICT = "strict"


class ConfirmMode(str, Enum):
    """How high-stakes requests are handled once the safety gate triggers."""

    OFF = "off"
    PROMPT = "prompt"  # inject a policy system message and proceed
    STRICT = "strict"  # block until the caller resubmits with the token


def _normalize_choice(value, enum_cls: type[Enum], default: Enum) -> Enum:
    """Map a raw env value onto an enum member, falling back to the default."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


def _clamp_int(value, default: int, low: int, high: int) -> int:
    """Parse an integer and clamp it into [low, high]."""
    try:
        parsed = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    return max(low, min(high, parsed))


@dataclass(frozen=True)
class RouterConfig:
    """
    Immutable routing configuration passed into every pipeline stage.

    Defaults mirror the Settings defaults so tests and scripts can build
    a config without touching the environment.
    """

    routing_profile: RoutingProfile = RoutingProfile.BUDGET
    cost_mode: CostMode = CostMode.STRICT
    allow_direct_premium: bool = False
    safety_gate_enabled: bool = True
    confirm_mode: ConfirmMode = ConfirmMode.PROMPT
    confirm_token: str = "confirm"
    high_stakes_budget_floor: bool = False
    force_model: str | None = None
    classifier_key: str = "nano"
    self_check_key: str = "nano"
    context_messages: int = 8
    context_chars: int = 2500
    chars_per_token: int = 4

    @property
    def forced(self) -> bool:
        """True when an operator pinned every request to a literal backend id."""
        return bool(self.force_model)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Pydantic Settings automatically reads from:
    1. Environment variables
    2. .env file in working directory
    3. Default values defined here

    Invalid mode values degrade to the safe default instead of failing
    startup, and integer windows are clamped into their allowed range.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",  # Ignore unknown env vars
    )

    openrouter_api_key: SecretStr = Field(
        ..., description="API key for the OpenAI-compatible upstream"  # Required
    )

    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="Base URL of the OpenAI-compatible upstream endpoint",
    )

    openrouter_site_url: str | None = Field(
        default=None, description="Sent upstream as the HTTP-Referer header"
    )

    openrouter_app_name: str | None = Field(
        default=None, description="Sent upstream as the X-Title header"
    )

    service_api_key: SecretStr | None = Field(
        default=None,
        description="Inbound API key; when set every request must present it",
    )

    routing_profile: RoutingProfile = Field(
        default=RoutingProfile.BUDGET,
        description="Complexity bias before policy lookup (budget/balanced/quality)",
    )

    cost_efficiency_mode: CostMode = Field(
        default=CostMode.STRICT,
        description="Cost guardrail strictness (off/balanced/strict)",
    )

    allow_direct_premium_models: bool = Field(
        default=False,
        description="Allow non-high-stakes traffic to reach top and second tier backends",
    )

    enable_safety_gate: bool = Field(
        default=True, description="Enable the high-stakes safety gate"
    )

    high_stakes_confirm_mode: ConfirmMode = Field(
        default=ConfirmMode.PROMPT,
        description="Handling of gate-triggered requests (off/prompt/strict)",
    )

    high_stakes_confirm_token: str = Field(
        default="confirm",
        description="Token the caller must resubmit under strict confirmation",
    )

    allow_high_stakes_budget_floor: bool = Field(
        default=False,
        description="Route high-stakes traffic to the mid-trust floor under the budget profile",
    )

    force_model: str | None = Field(
        default=None,
        description="Literal backend id that bypasses classification and escalation",
    )

    classifier_model_key: str = Field(
        default="nano", description="Registry key of the classification judge"
    )

    self_check_model_key: str = Field(
        default="nano", description="Registry key of the answer-quality judge"
    )

    context_messages: int = Field(
        default=8, description="Recent-context window in messages (3-20)"
    )

    context_chars: int = Field(
        default=2500, description="Recent-context window in characters (600-12000)"
    )

    chars_per_token: int = Field(
        default=4, ge=1, description="Divisor of the cheap character-based token estimate"
    )

    upstream_timeout_seconds: float = Field(
        default=90.0,
        gt=0,
        description="Timeout for buffered upstream calls; streams are unbounded",
    )

    max_request_bytes: int = Field(
        default=4 * 1024 * 1024, description="Largest accepted request body"
    )

    rate_limit_enabled: bool = Field(
        default=False, description="Enable the fixed-window request limiter"
    )

    rate_limit_window_seconds: int = Field(
        default=60, description="Rate limit window length in seconds (1-3600)"
    )

    rate_limit_max_requests: int = Field(
        default=120, description="Requests allowed per window (1-100000)"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Application log level"
    )

    host: str = Field(default="0.0.0.0", description="Server bind host")

    port: int = Field(default=8000, description="Server bind port")

    debug: bool = Field(default=False, description="Enable debug mode")

    @field_validator("routing_profile", mode="before")
    @classmethod
    def normalize_routing_profile(cls, v):
        return _normalize_choice(v, RoutingProfile, RoutingProfile.BUDGET)

    @field_validator("cost_efficiency_mode", mode="before")
    @classmethod
    def normalize_cost_mode(cls, v):
        return _normalize_choice(v, CostMode, CostMode.STRICT)

    @field_validator("high_stakes_confirm_mode", mode="before")
    @classmethod
    def normalize_confirm_mode(cls, v):
        return _normalize_choice(v, ConfirmMode, ConfirmMode.PROMPT)

    @field_validator("high_stakes_confirm_token", mode="before")
    @classmethod
    def normalize_confirm_token(cls, v) -> str:
        """Tokens are compared trimmed and lowercased."""
        token = str(v or "").strip().lower()
        return token or "confirm"

    @field_validator("force_model", mode="before")
    @classmethod
    def normalize_force_model(cls, v) -> str | None:
        value = str(v or "").strip()
        return value or None

    @field_validator("classifier_model_key", "self_check_model_key", mode="before")
    @classmethod
    def normalize_judge_key(cls, v) -> str:
        return str(v or "").strip().lower() or "nano"

    @field_validator("context_messages", mode="before")
    @classmethod
    def clamp_context_messages(cls, v) -> int:
        return _clamp_int(v, 8, 3, 20)

    @field_validator("context_chars", mode="before")
    @classmethod
    def clamp_context_chars(cls, v) -> int:
        return _clamp_int(v, 2500, 600, 12000)

    @field_validator("rate_limit_window_seconds", mode="before")
    @classmethod
    def clamp_rate_limit_window(cls, v) -> int:
        return _clamp_int(v, 60, 1, 3600)

    @field_validator("rate_limit_max_requests", mode="before")
    @classmethod
    def clamp_rate_limit_max(cls, v) -> int:
        return _clamp_int(v, 120, 1, 100_000)

    def router_config(self) -> RouterConfig:
        """
        Freeze the routing-relevant settings into a RouterConfig.

        Returns:
            RouterConfig: Immutable value handed to the pipeline stages.
        """
        return RouterConfig(
            routing_profile=self.routing_profile,
            cost_mode=self.cost_efficiency_mode,
            allow_direct_premium=self.allow_direct_premium_models,
            safety_gate_enabled=self.enable_safety_gate,
            confirm_mode=self.high_stakes_confirm_mode,
            confirm_token=self.high_stakes_confirm_token,
            high_stakes_budget_floor=self.allow_high_stakes_budget_floor,
            force_model=self.force_model,
            classifier_key=self.classifier_model_key,
            self_check_key=self.self_check_model_key,
            context_messages=self.context_messages,
            context_chars=self.context_chars,
            chars_per_token=self.chars_per_token,
        )


@lru_cache
def get_settings() -> Settings:
    """
    Returns cached settings instance.

    Using lru_cache ensures settings are loaded once and reused,
    avoiding repeated file reads and environment parsing.

    Returns:
        Settings: The application settings singleton.
    """
    return Settings()


def configure_logging(settings: Settings) -> None:
    """
    Configure application logging based on settings.

    Sets up structured logging with timestamps and reduces noise
    from third-party HTTP libraries.

    Args:
        settings: The application settings instance.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
