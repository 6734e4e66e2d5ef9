"""Safe Scroll - Core Data Types
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Immutable value types passed between the scoring engine, the pipeline
and the mitigation layer.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


class RiskTier(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def label(self) -> str:
        """Portuguese label shown on overlays."""
        return RISK_TIER_LABELS[self]


RISK_TIER_LABELS = {
    RiskTier.LOW: "Baixo",
    RiskTier.MEDIUM: "Médio",
    RiskTier.HIGH: "Alto",
    RiskTier.CRITICAL: "Crítico",
}


class EmotionalTone(str, Enum):
    POSITIVE = "Positive"
    NEUTRAL = "Neutral"
    NEGATIVE = "Negative"
    TOXIC = "Toxic"


@dataclass(frozen=True)
class TriggerCategory:
    """A named cluster of trigger phrases sharing one severity weight."""
    name: str
    phrases: tuple[str, ...]
    base_weight: int
    sensitivity: int
    multiplier: float = 1.0
    display_name: str = ""
    reason: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.name


@dataclass(frozen=True)
class AnalysisRequest:
    text: str
    app_id: str
    submitted_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class AnalysisResult:
    """
    Outcome of one scoring call. Never mutated after construction.

    latency_ms is measurement, not outcome: it is left out of equality so
    that repeated calls with the same input compare equal.
    """
    total_score: int
    per_category_score: Mapping[str, int] = field(hash=False)
    matched_triggers: frozenset[str]
    contextual_factors: tuple[str, ...]
    should_block: bool
    confidence: int
    primary_category: str
    reason: str
    risk_tier: RiskTier
    latency_ms: int = field(compare=False)
    emotional_tone: EmotionalTone = EmotionalTone.NEUTRAL
    app_id: str = ""

    def __post_init__(self):
        object.__setattr__(self, "per_category_score", MappingProxyType(dict(self.per_category_score)))

    def to_dict(self) -> dict[str, Any]:
        """Serialize for notification sinks and the HTTP layer."""
        return {
            "total_score": self.total_score,
            "per_category_score": dict(self.per_category_score),
            "matched_triggers": sorted(self.matched_triggers),
            "contextual_factors": list(self.contextual_factors),
            "should_block": self.should_block,
            "confidence": self.confidence,
            "primary_category": self.primary_category,
            "reason": self.reason,
            "risk_tier": self.risk_tier.value,
            "latency_ms": self.latency_ms,
            "emotional_tone": self.emotional_tone.value,
            "app_id": self.app_id,
        }


@dataclass(frozen=True)
class ContentChangeEvent:
    """A content-change notification delivered by the host platform."""
    app_id: str
    source_ref: Any = None
    received_at: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class ExtractedContent:
    """Plain text pulled from the screen plus opaque region descriptors."""
    text: str
    app_id: str
    regions: tuple[Any, ...] = ()


@dataclass
class OverlayHandle:
    id: str
    bounds_ref: Optional[Any]
    risk_tier: RiskTier
    created_at: float = field(default_factory=time.time)
    dismissed: bool = False
