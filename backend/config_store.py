"""Safe Scroll - Runtime Configuration
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Holds the process-wide scoring configuration as an immutable snapshot.
Writers build a new snapshot and swap the reference under a lock;
readers call snapshot() and never see a half-applied update.
"""

import logging
import re
import threading
from dataclasses import dataclass, replace
from functools import cached_property
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from errors import ConfigurationError
from models import TriggerCategory
from trigger_db import (
    DEFAULT_BASE_WEIGHT,
    DEFAULT_SENSITIVITY,
    GENERIC_REASON,
    MAX_SENSITIVITY,
    MIN_SENSITIVITY,
    TriggerDatabase,
)

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_THRESHOLD = 35       # Score must exceed this to block
DEFAULT_AUTO_SCROLL_THRESHOLD = 50  # Score must exceed this to auto-scroll

_WORD_SPLIT = re.compile(r"\s+")


@dataclass(frozen=True)
class Configuration:
    """A complete, immutable scoring configuration."""
    categories: tuple[TriggerCategory, ...]
    block_threshold: int = DEFAULT_BLOCK_THRESHOLD
    auto_scroll_threshold: int = DEFAULT_AUTO_SCROLL_THRESHOLD
    toxic_emojis: tuple[str, ...] = ()
    toxic_hashtags: tuple[str, ...] = ()
    version: int = 1

    @cached_property
    def keyword_tokens(self) -> frozenset[str]:
        """Every word appearing in any trigger phrase, used for density scoring."""
        tokens = set()
        for category in self.categories:
            for phrase in category.phrases:
                tokens.update(w for w in _WORD_SPLIT.split(phrase) if w)
        return frozenset(tokens)

    def get_category(self, name: str) -> Optional[TriggerCategory]:
        for category in self.categories:
            if category.name == name:
                return category
        return None

    def describe(self) -> dict:
        """Summary without the trigger lists themselves"""
        return {
            "version": self.version,
            "block_threshold": self.block_threshold,
            "auto_scroll_threshold": self.auto_scroll_threshold,
            "categories": [
                {
                    "name": c.name,
                    "display_name": c.label,
                    "sensitivity": c.sensitivity,
                    "base_weight": c.base_weight,
                    "multiplier": c.multiplier,
                    "trigger_count": len(c.phrases),
                }
                for c in self.categories
            ],
        }


class ConfigUpdate(BaseModel):
    """Validated configuration update payload."""
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    sensitivity: Optional[dict[str, int]] = None
    custom_triggers: Optional[dict[str, list[str]]] = Field(None, alias="customTriggers")
    block_threshold: Optional[int] = Field(None, alias="blockThreshold", ge=0, le=1000)

    @field_validator('sensitivity')
    @classmethod
    def validate_sensitivity_range(cls, v):
        if v is None:
            return v
        for category, level in v.items():
            if not MIN_SENSITIVITY <= level <= MAX_SENSITIVITY:
                raise ValueError(
                    f"Sensitivity for '{category}' must be between "
                    f"{MIN_SENSITIVITY} and {MAX_SENSITIVITY}, got {level}"
                )
        return v

    @field_validator('custom_triggers')
    @classmethod
    def validate_phrases(cls, v):
        if v is None:
            return v
        for category, phrases in v.items():
            if not category.strip():
                raise ValueError("Category name must not be blank")
            for phrase in phrases:
                if not phrase.strip():
                    raise ValueError(f"Blank trigger phrase in '{category}'")
        return v


def _without_phrase(category: TriggerCategory, phrases: set[str]) -> TriggerCategory:
    kept = tuple(p for p in category.phrases if p not in phrases)
    if len(kept) == len(category.phrases):
        return category
    return replace(category, phrases=kept)


def _new_category(name: str, phrases: tuple[str, ...] = ()) -> TriggerCategory:
    return TriggerCategory(
        name=name,
        phrases=phrases,
        base_weight=DEFAULT_BASE_WEIGHT,
        sensitivity=DEFAULT_SENSITIVITY,
        display_name=name.replace("_", " ").title(),
        reason=GENERIC_REASON,
    )


def _add_phrases(categories: list[TriggerCategory], name: str,
                 phrases: list[str]) -> list[TriggerCategory]:
    """Add phrases to `name`, moving any that another category already owns."""
    normalized = list(dict.fromkeys(p.strip().lower() for p in phrases))
    moving = set(normalized)

    result = []
    found = False
    for category in categories:
        if category.name == name:
            found = True
            merged = category.phrases + tuple(p for p in normalized if p not in category.phrases)
            result.append(replace(category, phrases=merged))
        else:
            result.append(_without_phrase(category, moving))

    if not found:
        result.append(_new_category(name, tuple(normalized)))
        logger.info(f"➕ Created trigger category '{name}'")
    return result


class ConfigStore:
    """
    Owns the current Configuration snapshot.

    Every mutation validates first, then builds a fresh snapshot and swaps
    the reference. A rejected update leaves the previous snapshot active.
    """

    def __init__(self, trigger_db: Optional[TriggerDatabase] = None,
                 block_threshold: int = DEFAULT_BLOCK_THRESHOLD,
                 auto_scroll_threshold: int = DEFAULT_AUTO_SCROLL_THRESHOLD):
        self.trigger_db = trigger_db or TriggerDatabase()
        self._default_block_threshold = block_threshold
        self._auto_scroll_threshold = auto_scroll_threshold
        self._lock = threading.Lock()
        self._current = self._build_default(version=1)

    def _build_default(self, version: int) -> Configuration:
        return Configuration(
            categories=tuple(self.trigger_db.get_categories()),
            block_threshold=self._default_block_threshold,
            auto_scroll_threshold=self._auto_scroll_threshold,
            toxic_emojis=self.trigger_db.toxic_emojis,
            toxic_hashtags=self.trigger_db.toxic_hashtags,
            version=version,
        )

    def snapshot(self) -> Configuration:
        """Current configuration. Safe to call from any thread."""
        return self._current

    @property
    def version(self) -> int:
        return self._current.version

    def apply_update(self, payload: dict) -> Configuration:
        """
        Validate and apply a configuration update atomically.

        Raises ConfigurationError for an empty payload, a sensitivity outside
        [25, 100], an unknown category in `sensitivity`, or blank phrases.
        """
        if not payload:
            raise ConfigurationError("Configuration update is empty")

        try:
            update = ConfigUpdate.model_validate(payload)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e

        if update.sensitivity is None and update.custom_triggers is None \
                and update.block_threshold is None:
            raise ConfigurationError("Configuration update has no recognised fields")

        with self._lock:
            current = self._current
            categories = list(current.categories)

            # Custom triggers first so a new category can also be tuned in one update
            for name, phrases in (update.custom_triggers or {}).items():
                categories = _add_phrases(categories, name, phrases)

            known = {c.name for c in categories}
            for name, level in (update.sensitivity or {}).items():
                if name not in known:
                    raise ConfigurationError(f"Unknown category in sensitivity: '{name}'")
            if update.sensitivity:
                categories = [
                    replace(c, sensitivity=update.sensitivity[c.name])
                    if c.name in update.sensitivity else c
                    for c in categories
                ]

            new = replace(
                current,
                categories=tuple(categories),
                block_threshold=(update.block_threshold
                                 if update.block_threshold is not None
                                 else current.block_threshold),
                version=current.version + 1,
            )
            self._current = new

        logger.info(f"🔧 Configuration updated to version {new.version}")
        return new

    def set_global_sensitivity(self, level: int) -> Configuration:
        """Scale every category's sensitivity proportionally by level/100."""
        level = max(MIN_SENSITIVITY, min(MAX_SENSITIVITY, int(level)))
        with self._lock:
            current = self._current
            categories = tuple(
                replace(c, sensitivity=max(MIN_SENSITIVITY,
                                           min(MAX_SENSITIVITY, int(c.sensitivity * level / 100))))
                for c in current.categories
            )
            new = replace(current, categories=categories, version=current.version + 1)
            self._current = new

        logger.info(f"🎯 Global sensitivity set to {level}%")
        return new

    def add_trigger(self, category: str, phrase: str) -> Configuration:
        if not phrase or not phrase.strip():
            raise ConfigurationError("Trigger phrase must not be blank")
        with self._lock:
            current = self._current
            if current.get_category(category) is None:
                raise ConfigurationError(f"Unknown category: '{category}'")
            categories = _add_phrases(list(current.categories), category, [phrase])
            new = replace(current, categories=tuple(categories), version=current.version + 1)
            self._current = new

        logger.info(f"➕ Trigger added to {category}: {phrase.strip().lower()}")
        return new

    def remove_trigger(self, category: str, phrase: str) -> bool:
        """Remove a phrase from a category. Returns False if it wasn't there."""
        normalized = (phrase or "").strip().lower()
        with self._lock:
            current = self._current
            target = current.get_category(category)
            if target is None or normalized not in target.phrases:
                return False
            categories = tuple(
                _without_phrase(c, {normalized}) if c.name == category else c
                for c in current.categories
            )
            self._current = replace(current, categories=categories, version=current.version + 1)

        logger.info(f"➖ Trigger removed from {category}: {normalized}")
        return True

    def reset(self) -> Configuration:
        """Restore the trigger database defaults."""
        with self._lock:
            new = self._build_default(version=self._current.version + 1)
            self._current = new
        logger.info("🔄 Configuration reset to defaults")
        return new
