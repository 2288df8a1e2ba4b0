"""Configuration models for Strand.

AgentConfig holds the read-only settings an execution pipeline runs with:
the model chain and credentials, context window thresholds, compaction
parameters, failover limits and subagent constraints.
ModelChain is the ordered primary + fallback model list.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from strand.context_guard import ContextWindowGuard
from strand.exceptions import ConfigError
from strand.transcript import ProviderKind, provider_kind_for_model


class ModelChain(BaseModel):
    """Primary model followed by its fallbacks, in failover order."""

    model_config = {"frozen": True}

    primary: str
    fallbacks: list[str] = Field(default_factory=list)

    @field_validator("primary")
    @classmethod
    def _primary_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("primary model must not be empty")
        return v

    @property
    def models(self) -> list[str]:
        """All models in order, duplicates removed."""
        seen: dict[str, None] = {}
        for model in (self.primary, *self.fallbacks):
            seen.setdefault(model, None)
        return list(seen)

    def restricted_to(self, allowlist: list[str] | None) -> list[str]:
        """Models of the chain that appear in *allowlist* (all if unset)."""
        if not allowlist:
            return self.models
        return [m for m in self.models if m in allowlist]


class AgentConfig(BaseModel):
    """Per-agent configuration, read-only for a run's lifetime."""

    model_config = {"frozen": True}

    model_chain: ModelChain
    credentials: dict[str, list[str]] = Field(default_factory=dict)
    provider_kind: Optional[ProviderKind] = None
    system_prompt: Optional[str] = None

    # Subagents
    max_depth: int = 3
    subagent_model_allowlist: Optional[list[str]] = None
    delegation_tool_name: str = "spawn_agent"

    # Context window
    warn_threshold: float = 0.8
    hard_limit: int = 128_000
    min_available: int = 4096
    tokenizer_encoding: Optional[str] = None

    # Compaction
    keep_recent: int = 10
    hard_clear_keep_recent: int = 4
    chunk_size: int = 5
    tool_result_max_chars: int = 8000

    # Failover
    max_model_attempts: Optional[int] = None
    max_waits_per_model: int = 3
    max_compactions_per_model: int = 2

    # Loop
    abort_grace_period: float = 2.0
    max_iterations: int = 25

    @field_validator("warn_threshold")
    @classmethod
    def _fraction(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("warn_threshold must be between 0.0 and 1.0")
        return v

    @field_validator("hard_limit", "chunk_size", "max_iterations")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator(
        "max_depth", "min_available", "keep_recent", "hard_clear_keep_recent",
        "tool_result_max_chars", "max_waits_per_model", "max_compactions_per_model",
    )
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("abort_grace_period")
    @classmethod
    def _non_negative_seconds(cls, v: float) -> float:
        if v < 0:
            raise ValueError("abort_grace_period must be >= 0")
        return v

    @model_validator(mode="after")
    def _reserve_fits(self) -> AgentConfig:
        if self.min_available >= self.hard_limit:
            raise ValueError("min_available must be smaller than hard_limit")
        return self

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AgentConfig:
        """Validate a plain mapping.

        ``model_chain`` may be given as a mapping, a list (first entry is
        the primary) or a single model id.

        Raises:
            ConfigError: If the mapping is invalid.
        """
        d = dict(data)
        chain = d.get("model_chain")
        if isinstance(chain, str):
            d["model_chain"] = {"primary": chain}
        elif isinstance(chain, (list, tuple)):
            if not chain:
                raise ConfigError("model_chain must not be empty")
            d["model_chain"] = {"primary": chain[0], "fallbacks": list(chain[1:])}
        try:
            return cls.model_validate(d)
        except ValidationError as exc:
            raise ConfigError(f"Invalid agent configuration: {exc}") from exc

    def guard(self) -> ContextWindowGuard:
        return ContextWindowGuard(
            warn_threshold=self.warn_threshold,
            hard_limit=self.hard_limit,
            min_available=self.min_available,
        )

    def resolved_provider_kind(self) -> ProviderKind:
        """Configured provider kind, or inferred from the primary model."""
        if self.provider_kind is not None:
            return self.provider_kind
        return provider_kind_for_model(self.model_chain.primary)
