"""Safe Scroll - Decision Classifier
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Turns a raw risk score and its supporting signal counts into a block
decision, a confidence percentage and a risk tier.
"""

from dataclasses import dataclass

from models import RiskTier

# Risk tier lower edges (inclusive)
CRITICAL_MIN_SCORE = 85
HIGH_MIN_SCORE = 65
MEDIUM_MIN_SCORE = 40

# Confidence bounds and adjustments
MIN_CONFIDENCE = 65
MAX_CONFIDENCE = 98
MANY_TRIGGERS_BONUS = 6       # more than 2 triggers matched
MANY_FACTORS_BONUS = 4        # more than 1 contextual factor
LONG_TEXT_BONUS = 3           # text longer than 100 chars
SHORT_TEXT_PENALTY = 15       # text shorter than 20 chars
SINGLE_TRIGGER_PENALTY = 8    # exactly one trigger carried the score

# Used when content is blocked without any category match
FALLBACK_CATEGORY = "Análise Geral"
FALLBACK_REASON = "Conteúdo nocivo detectado pela análise psicológica avançada baseada em estudos científicos"


@dataclass(frozen=True)
class Decision:
    should_block: bool
    confidence: int
    risk_tier: RiskTier


def risk_tier_for(total_score: int) -> RiskTier:
    if total_score >= CRITICAL_MIN_SCORE:
        return RiskTier.CRITICAL
    if total_score >= HIGH_MIN_SCORE:
        return RiskTier.HIGH
    if total_score >= MEDIUM_MIN_SCORE:
        return RiskTier.MEDIUM
    return RiskTier.LOW


def calculate_confidence(total_score: int, trigger_count: int,
                         factor_count: int, text_length: int) -> int:
    # round(score * 1.1), half-up, in integer arithmetic
    confidence = (total_score * 11 + 5) // 10

    if trigger_count > 2:
        confidence += MANY_TRIGGERS_BONUS
    if factor_count > 1:
        confidence += MANY_FACTORS_BONUS
    if text_length > 100:
        confidence += LONG_TEXT_BONUS
    if text_length < 20:
        confidence -= SHORT_TEXT_PENALTY
    if total_score > 0 and trigger_count == 1:
        confidence -= SINGLE_TRIGGER_PENALTY

    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, confidence))


def classify(total_score: int, trigger_count: int, factor_count: int,
             text_length: int, block_threshold: int) -> Decision:
    """
    Decide whether to block.

    Content is blocked only when the score strictly exceeds the threshold.
    """
    return Decision(
        should_block=total_score > block_threshold,
        confidence=calculate_confidence(total_score, trigger_count, factor_count, text_length),
        risk_tier=risk_tier_for(total_score),
    )


def resolve_reason(primary_category: str, reason: str, should_block: bool) -> tuple[str, str]:
    """Fill in the generic category and reason for blocked content with no category match."""
    if should_block and not reason:
        return FALLBACK_CATEGORY, FALLBACK_REASON
    return primary_category, reason
