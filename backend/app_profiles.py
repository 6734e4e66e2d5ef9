"""Safe Scroll - App Profiles
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

One table keyed by app id: whether the app is monitored, its display
name, and the platform-specific heuristic rules applied while scoring.
"""

import re
from dataclasses import dataclass, field
from typing import Optional


def _term_pattern(term: str) -> re.Pattern:
    # Word boundaries keep short tokens like "ad" from matching inside "already"
    return re.compile(r"\b" + re.escape(term.lower()) + r"\b", re.IGNORECASE)


@dataclass(frozen=True)
class AppRule:
    """
    A heuristic rule for one platform.

    `groups` is a tuple of alternative-term groups. The rule fires when
    every group has at least one term present in the text.
    """
    groups: tuple[tuple[str, ...], ...]
    score: int
    factor: str
    _patterns: tuple = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        compiled = tuple(tuple(_term_pattern(t) for t in group) for group in self.groups)
        object.__setattr__(self, "_patterns", compiled)

    def matches(self, text: str) -> bool:
        return all(any(p.search(text) for p in group) for group in self._patterns)


@dataclass(frozen=True)
class AppProfile:
    app_id: str
    display_name: str
    monitored: bool = True
    rules: tuple[AppRule, ...] = ()


def _rule(score: int, factor: str, *groups: tuple[str, ...]) -> AppRule:
    return AppRule(groups=tuple(groups), score=score, factor=factor)


APP_PROFILES: dict[str, AppProfile] = {
    profile.app_id: profile for profile in (
        AppProfile("com.instagram.android", "Instagram", rules=(
            _rule(15, "Story de lifestyle Instagram", ("story",), ("lifestyle", "day in my life")),
            _rule(12, "Conteúdo de influencer/patrocinado", ("influencer", "sponsored", "ad")),
            _rule(10, "Call-to-action comercial", ("swipe up", "link in bio")),
            _rule(8, "Conteúdo viral/trending", ("reel", "trending")),
        )),
        AppProfile("com.zhiliaoapp.musically", "TikTok", rules=(
            _rule(18, "Challenge/trend TikTok", ("challenge", "trend")),
            _rule(22, "Conteúdo de transformação", ("transformation", "glow up")),
            _rule(12, "Conteúdo viral TikTok", ("viral", "famous", "fyp")),
            _rule(8, "Conteúdo de reação/dueto", ("duet", "react")),
        )),
        AppProfile("com.facebook.katana", "Facebook", rules=(
            _rule(14, "Life update Facebook", ("life update", "achievement")),
            _rule(12, "Milestone/celebração", ("milestone", "celebration")),
            _rule(10, "Update de relacionamento", ("relationship status", "engaged", "married")),
        )),
        AppProfile("com.twitter.android", "Twitter/X", rules=(
            _rule(16, "Thread de sucesso Twitter", ("thread",), ("success", "journey")),
            _rule(10, "Hot take/opinião controversa", ("hot take", "unpopular opinion")),
            _rule(18, "Anúncio de sucesso empresarial", ("just closed", "just raised")),
        )),
        AppProfile("com.linkedin.android", "LinkedIn", rules=(
            _rule(12, "Anúncio profissional LinkedIn", ("promoted", "new job", "new role")),
            _rule(10, "Humble brag profissional", ("grateful",), ("opportunity",)),
        )),
        AppProfile("com.snapchat.android", "Snapchat"),
        AppProfile("com.facebook.orca", "Messenger"),
        AppProfile("com.whatsapp", "WhatsApp"),
        AppProfile("com.pinterest", "Pinterest"),
    )
}


def get_profile(app_id: str) -> Optional[AppProfile]:
    return APP_PROFILES.get(app_id)


def is_monitored(app_id: str) -> bool:
    """Return True if content from this app should be analyzed"""
    profile = APP_PROFILES.get(app_id)
    return bool(profile and profile.monitored)


def get_app_name(app_id: str) -> str:
    profile = APP_PROFILES.get(app_id)
    return profile.display_name if profile else app_id


def apply_app_rules(text: str, app_id: str) -> tuple[int, list[str]]:
    """
    Score text against the rules for app_id.

    Returns (score, factors). Unknown apps contribute nothing.
    """
    profile = APP_PROFILES.get(app_id)
    if profile is None:
        return 0, []

    score = 0
    factors = []
    for rule in profile.rules:
        if rule.matches(text):
            score += rule.score
            factors.append(rule.factor)
    return score, factors
