"""Safe Scroll - Risk Analyzer
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Core scoring engine that combines trigger-phrase matching, linguistic
pattern detection, contextual signals, app-specific heuristics and
emotional tone into one psychological risk score.

Scoring is deterministic: the same text, app and configuration always
produce the same result.
"""

import re
import string
import time
import logging
from decimal import Decimal
from typing import Optional

from app_profiles import apply_app_rules
from classifier import classify, resolve_reason
from config_store import ConfigStore, Configuration
from models import AnalysisResult, EmotionalTone, TriggerCategory

logger = logging.getLogger(__name__)

# --- Analysis constants ---
# Input truncation limit (ReDoS prevention)
MAX_TEXT_LENGTH = 5000

# Trigger weight bounds
MIN_TRIGGER_WEIGHT = 5
MAX_TRIGGER_WEIGHT = 35

# Linguistic pattern weight (per match)
PATTERN_WEIGHT = 22

# Contextual signal weights
EMOJI_THRESHOLD = 2                # More than this many status emojis fires the signal
EMOJI_WEIGHT = 4                   # Per emoji
HASHTAG_WEIGHT = 10                # Per distinct toxic hashtag
KEYWORD_DENSITY_THRESHOLD = 0.25
KEYWORD_DENSITY_WEIGHT = 30        # Multiplied by density
KEYWORD_MIN_LENGTH = 4             # Shorter words never count toward density
EXCLUSIVITY_WEIGHT = 12
HIGH_VALUE_WEIGHT = 15
FIRST_PERSON_THRESHOLD = 5
FIRST_PERSON_WEIGHT = 8
URGENCY_WEIGHT = 14

# Semantic pass weights
MASKED_NEGATIVITY_WEIGHT = 16
ASPIRATIONAL_WEIGHT = 10
TEMPORAL_COMPARISON_WEIGHT = 12

# Emotional tone
TOXIC_TONE_WEIGHT = 15

EXCLUSIVITY_WORDS = [
    "exclusivo", "vip", "premium", "elite", "first class", "luxury",
    "high end", "top tier", "sophisticated", "refined", "exclusive",
]

FIRST_PERSON_WORDS = {"eu", "meu", "minha", "meus", "minhas", "i", "my", "mine", "me"}

URGENCY_WORDS = [
    "agora", "já", "rápido", "urgente", "imediato", "hoje", "amanhã",
    "now", "already", "fast", "urgent", "immediate", "today", "tomorrow",
]

MASKED_NEGATIVITY_PATTERNS = [
    "feliz mas", "grato mas", "blessed mas", "sortudo mas",
    "happy but", "grateful but", "blessed but", "lucky but",
]

ASPIRATIONAL_WORDS = [
    "inspiração", "motivação", "hustle", "grind", "mindset", "manifestation",
    "abundance", "prosperity", "wealth mindset", "success mindset",
    "millionaire mindset", "rich mindset", "abundance mentality",
]

TEMPORAL_COMPARISON_PATTERNS = [
    "antes eu", "agora eu", "hoje eu", "finalmente eu",
    "used to", "now i", "today i", "finally i",
]

POSITIVE_WORDS = ["feliz", "grato", "amor", "paz", "alegria", "happy", "grateful", "love", "peace", "joy"]
NEGATIVE_WORDS = ["triste", "ansioso", "deprimido", "sad", "anxious", "depressed", "worried", "stressed"]
TOXIC_WORDS = ["inveja", "ódio", "raiva", "hate", "envy", "anger", "jealous", "bitter", "resentful"]


def round_half_up_ratio(value: int, percent: int) -> int:
    """round(value * percent / 100), rounding .5 away from zero, for non-negative ints."""
    return (value * percent + 50) // 100


def specificity_bonus(phrase: str) -> int:
    """Longer, more specific phrases weigh more"""
    length = len(phrase)
    if length > 20:
        return 8
    if length > 15:
        return 5
    if length > 10:
        return 3
    return 0


def trigger_weight(phrase: str, category: TriggerCategory) -> int:
    weight = round_half_up_ratio(category.base_weight + specificity_bonus(phrase), category.sensitivity)
    return max(MIN_TRIGGER_WEIGHT, min(MAX_TRIGGER_WEIGHT, weight))


class RiskAnalyzer:
    """
    Scoring engine that:
    1. Matches trigger phrases per category (first matching category wins)
    2. Detects toxic linguistic patterns (superiority, false modesty, ...)
    3. Scores contextual signals (emojis, hashtags, money, urgency, ...)
    4. Runs a semantic pass (masked negativity, aspiration, temporal comparison)
    5. Applies app-specific heuristics
    6. Detects emotional tone
    7. Classifies the total into a block decision and risk tier
    """

    def __init__(self, config_store: Optional[ConfigStore] = None):
        """Initialize with a configuration store (used when score() gets no explicit config)."""
        self.config_store = config_store

        # Linguistic patterns run on the raw text, case-insensitively.
        # Gaps are bounded to keep backtracking linear in practice.
        self._toxic_patterns = [
            # Superiority (PT)
            (re.compile(r"\b(eu sou|eu tenho|eu consegui)\b.{0,60}\b(melhor|superior|perfeito|único)", re.IGNORECASE),
             "Padrão de superioridade"),
            # Ostentatious display (PT)
            (re.compile(r"\b(olhem|vejam|admirem)\b.{0,40}\b(meu|minha)\b.{0,40}\b(novo|nova|perfeito|incrível)\b", re.IGNORECASE),
             "Exibição ostentatória"),
            # Envy framing (PT)
            (re.compile(r"\b(todos|todo mundo)\b.{0,40}\b(inveja|admiram|querem|desejam)\b", re.IGNORECASE),
             "Indução de inveja"),
            # Impossibility framing (PT)
            (re.compile(r"\b(não conseguem|nunca vão|jamais terão)\b.{0,40}\b(ter|conseguir|alcançar)\b", re.IGNORECASE),
             "Enquadramento de impossibilidade"),
            # Implicit comparison (PT)
            (re.compile(r"\b(enquanto vocês|diferente de vocês|ao contrário de)\b.{0,60}\b(eu|eu já|eu sempre)\b", re.IGNORECASE),
             "Comparação implícita"),
            (re.compile(r"\b(se eu consegui|se eu posso|se eu tenho)\b.{0,60}\b(vocês também|qualquer um)\b", re.IGNORECASE),
             "Comparação implícita"),
            # False modesty (PT)
            (re.compile(r"\b(não quero|sem querer|não pretendo)\b.{0,30}\b(me gabar|me exibir|mostrar)\b", re.IGNORECASE),
             "Falsa modéstia"),
            (re.compile(r"\b(sorte|acaso|coincidência)\b.{0,40}\b(conseguir|ter|ganhar)\b", re.IGNORECASE),
             "Falsa modéstia"),
            # English equivalents
            (re.compile(r"\b(i am|i have|i got)\b.{0,60}\b(better|superior|perfect|unique)\b", re.IGNORECASE),
             "Superiority framing"),
            (re.compile(r"\b(look at|check out|see my)\b.{0,40}\b(new|perfect|amazing)\b", re.IGNORECASE),
             "Ostentatious display"),
            (re.compile(r"\b(everyone|everybody)\b.{0,40}\b(envies|admires|wants)\b", re.IGNORECASE),
             "Envy framing"),
            (re.compile(r"\b(cant|can't|never will|wont be able|won't be able)\b.{0,40}\b(have|get|achieve)\b", re.IGNORECASE),
             "Impossibility framing"),
        ]

        # High monetary value: currency symbol followed by a 4+ digit or ddd.ddd amount
        self._high_value_pattern = re.compile(r"(R\$|\$|€|£)\s*([1-9]\d{3,}|[1-9]\d{2}\.\d{3})", re.IGNORECASE)
        self._hashtag_pattern = re.compile(r"#\w+")
        self._word_pattern = re.compile(r"\w+")
        self._urgency_pattern = re.compile(
            r"\b(" + "|".join(re.escape(w) for w in URGENCY_WORDS) + r")\b", re.IGNORECASE
        )

    def _current_config(self) -> Configuration:
        if self.config_store is None:
            raise ValueError("No configuration given and no config store attached")
        return self.config_store.snapshot()

    def score(self, text: str, app_id: str = "", config: Optional[Configuration] = None) -> AnalysisResult:
        """
        Score a piece of on-screen text.

        Args:
            text: Raw text extracted from the screen
            app_id: Package id of the app showing it (selects app heuristics)
            config: Configuration snapshot; defaults to the store's current one

        Returns:
            An immutable AnalysisResult
        """
        started = time.perf_counter()
        config = config or self._current_config()

        # Truncate input to prevent ReDoS (bound regex backtracking)
        text = (text or "")[:MAX_TEXT_LENGTH]
        lower_text = text.lower()

        total_score = 0
        per_category: dict[str, int] = {}
        matched: set[str] = set()
        factors: list[str] = []
        primary_category = ""
        reason = ""

        # Step 1: Trigger phrases per category
        for category in config.categories:
            category_sum = 0
            for phrase in category.phrases:
                if phrase in lower_text:
                    matched.add(phrase)
                    category_sum += trigger_weight(phrase, category)
            if category_sum:
                contribution = int(Decimal(category_sum) * Decimal(str(category.multiplier)))
                per_category[category.name] = contribution
                total_score += contribution
                if not primary_category:
                    primary_category = category.label
                    reason = category.reason

        # Step 2: Linguistic patterns
        for pattern, label in self._toxic_patterns:
            if pattern.search(text):
                total_score += PATTERN_WEIGHT
                factors.append(label)

        # Step 3: Contextual signals
        total_score += self._contextual_signals(text, lower_text, config, factors)

        # Step 4: Semantic pass
        total_score += self._semantic_signals(lower_text, factors)

        # Step 5: App heuristics
        app_score, app_factors = apply_app_rules(lower_text, app_id)
        total_score += app_score
        factors.extend(app_factors)

        # Step 6: Emotional tone
        tone = detect_emotional_tone(lower_text)
        if tone is EmotionalTone.TOXIC:
            total_score += TOXIC_TONE_WEIGHT
            factors.append("Tom emocional tóxico")

        # Step 7: Decision
        decision = classify(total_score, len(matched), len(factors), len(text), config.block_threshold)
        primary_category, reason = resolve_reason(primary_category, reason, decision.should_block)

        latency_ms = int((time.perf_counter() - started) * 1000)

        if decision.should_block:
            logger.info(f"🚫 Risk {total_score} ({decision.risk_tier.value}) on {app_id or 'unknown app'}: "
                        f"{primary_category}, {len(matched)} trigger(s), {len(factors)} factor(s)")
        else:
            logger.debug(f"Risk {total_score} on {app_id or 'unknown app'}, not blocked")

        return AnalysisResult(
            total_score=total_score,
            per_category_score=per_category,
            matched_triggers=frozenset(matched),
            contextual_factors=tuple(factors),
            should_block=decision.should_block,
            confidence=decision.confidence,
            primary_category=primary_category,
            reason=reason,
            risk_tier=decision.risk_tier,
            latency_ms=latency_ms,
            emotional_tone=tone,
            app_id=app_id,
        )

    def _contextual_signals(self, text: str, lower_text: str, config: Configuration,
                            factors: list[str]) -> int:
        score = 0

        emoji_count = sum(text.count(emoji) for emoji in config.toxic_emojis)
        if emoji_count > EMOJI_THRESHOLD:
            score += emoji_count * EMOJI_WEIGHT
            factors.append(f"{emoji_count} emojis de ostentação")

        hashtags = set(self._hashtag_pattern.findall(lower_text))
        hashtag_count = len(hashtags.intersection(config.toxic_hashtags))
        if hashtag_count:
            score += hashtag_count * HASHTAG_WEIGHT
            factors.append(f"{hashtag_count} hashtags tóxicas")

        density = keyword_density(lower_text, config.keyword_tokens)
        if density > KEYWORD_DENSITY_THRESHOLD:
            score += int(density * KEYWORD_DENSITY_WEIGHT)
            factors.append(f"Alta densidade de palavras tóxicas ({density * 100:.1f}%)")

        if any(word in lower_text for word in EXCLUSIVITY_WORDS):
            score += EXCLUSIVITY_WEIGHT
            factors.append("Linguagem exclusiva/elitista")

        if self._high_value_pattern.search(text):
            score += HIGH_VALUE_WEIGHT
            factors.append("Valores monetários altos mencionados")

        first_person = sum(1 for w in self._word_pattern.findall(lower_text) if w in FIRST_PERSON_WORDS)
        if first_person > FIRST_PERSON_THRESHOLD:
            score += FIRST_PERSON_WEIGHT
            factors.append("Excesso de referências em primeira pessoa")

        if self._urgency_pattern.search(lower_text):
            score += URGENCY_WEIGHT
            factors.append("Linguagem de urgência detectada")

        return score

    def _semantic_signals(self, lower_text: str, factors: list[str]) -> int:
        score = 0

        if any(p in lower_text for p in MASKED_NEGATIVITY_PATTERNS):
            score += MASKED_NEGATIVITY_WEIGHT
            factors.append("Negatividade mascarada detectada")

        if any(w in lower_text for w in ASPIRATIONAL_WORDS):
            score += ASPIRATIONAL_WEIGHT
            factors.append("Linguagem aspiracional potencialmente tóxica")

        if any(p in lower_text for p in TEMPORAL_COMPARISON_PATTERNS):
            score += TEMPORAL_COMPARISON_WEIGHT
            factors.append("Comparação temporal detectada")

        return score


def keyword_density(lower_text: str, keyword_tokens: frozenset[str]) -> float:
    """Share of words (4+ chars, punctuation stripped) that appear in any trigger phrase."""
    words = lower_text.split()
    if not words:
        return 0.0
    hits = 0
    for word in words:
        word = word.strip(string.punctuation)
        if len(word) >= KEYWORD_MIN_LENGTH and word in keyword_tokens:
            hits += 1
    return hits / len(words)


def detect_emotional_tone(lower_text: str) -> EmotionalTone:
    positive = sum(1 for w in POSITIVE_WORDS if w in lower_text)
    negative = sum(1 for w in NEGATIVE_WORDS if w in lower_text)
    toxic = sum(1 for w in TOXIC_WORDS if w in lower_text)

    if toxic > 0:
        return EmotionalTone.TOXIC
    if negative > positive:
        return EmotionalTone.NEGATIVE
    if positive > 0:
        return EmotionalTone.POSITIVE
    return EmotionalTone.NEUTRAL
