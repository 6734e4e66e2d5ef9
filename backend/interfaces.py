"""Safe Scroll - Collaborator Interfaces
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

The host platform supplies screen text, draws overlays, performs scrolls
and receives block notifications. These protocols describe what the
protection service expects from each of them.
"""

from typing import Any, Optional, Protocol, runtime_checkable

from models import ContentChangeEvent, ExtractedContent, OverlayHandle, RiskTier


@runtime_checkable
class ContentSource(Protocol):
    """Supplies the text currently on screen for an app."""

    def extract(self, event: ContentChangeEvent) -> Optional[ExtractedContent]:
        """Return extracted text plus opaque region descriptors.

        May return None or empty text. Called from a worker thread.
        """
        ...


@runtime_checkable
class OverlayRenderer(Protocol):
    """Draws and removes blocking overlays."""

    def show(self, bounds_hint: Any, reason: str, risk_tier: RiskTier,
             confidence: int, category: str, app_id: str) -> OverlayHandle:
        ...

    def remove(self, handle: OverlayHandle) -> None:
        ...


@runtime_checkable
class ScrollPerformer(Protocol):
    def scroll(self, app_id: str) -> bool:
        """Scroll the app's feed past the current item. Returns success."""
        ...


@runtime_checkable
class NotificationSink(Protocol):
    """Receives serialized results for blocked content. Fire-and-forget."""

    async def publish(self, payload: dict) -> None:
        ...
