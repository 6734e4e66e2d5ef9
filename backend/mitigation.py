"""Safe Scroll - Mitigation Orchestrator
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Overlay lifecycle for blocked content. Each displayed overlay has its own
state machine:

    Shown -> Dismissed    (user revealed or skipped it)
    Shown -> AutoRemoved  (the tier-based timer fired first)

Skipping or auto-removal of high-scoring content can also schedule an
automatic scroll past it.
"""

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from errors import MitigationFailure
from interfaces import OverlayRenderer, ScrollPerformer
from models import AnalysisResult, OverlayHandle, RiskTier
from scheduler import ScheduledCall, TaskScheduler

logger = logging.getLogger(__name__)

# Seconds before an overlay removes itself (shorter for higher risk)
AUTO_REMOVE_DELAYS = {
    RiskTier.CRITICAL: 2.0,
    RiskTier.HIGH: 3.0,
    RiskTier.MEDIUM: 4.0,
    RiskTier.LOW: 5.0,
}

# Seconds before scrolling past removed content (faster for higher risk)
AUTO_SCROLL_DELAYS = {
    RiskTier.CRITICAL: 1.5,
    RiskTier.HIGH: 2.0,
    RiskTier.MEDIUM: 3.0,
    RiskTier.LOW: 4.0,
}

MAX_FINISHED_OVERLAYS = 200  # Finished overlays kept for status queries


class OverlayState(str, Enum):
    SHOWN = "Shown"
    DISMISSED = "Dismissed"
    AUTO_REMOVED = "AutoRemoved"


@dataclass
class TrackedOverlay:
    handle: OverlayHandle
    result: AnalysisResult
    app_id: str
    state: OverlayState = OverlayState.SHOWN
    removal: Optional[ScheduledCall] = None

    def to_dict(self) -> dict:
        return {
            "id": self.handle.id,
            "app_id": self.app_id,
            "state": self.state.value,
            "risk_tier": self.handle.risk_tier.value,
            "category": self.result.primary_category,
            "reason": self.result.reason,
            "score": self.result.total_score,
            "confidence": self.result.confidence,
            "created_at": self.handle.created_at,
        }


class MitigationOrchestrator:
    """
    Shows overlays for blocked results and drives their timers.

    All methods must be called on the scheduler's loop.
    """

    def __init__(self, renderer: OverlayRenderer, scroller: ScrollPerformer,
                 scheduler: TaskScheduler,
                 auto_scroll_threshold: Callable[[], int],
                 auto_scroll_enabled: bool = True):
        self.renderer = renderer
        self.scroller = scroller
        self.scheduler = scheduler
        self._auto_scroll_threshold = auto_scroll_threshold
        self.auto_scroll_enabled = auto_scroll_enabled
        self._overlays: dict[str, TrackedOverlay] = {}
        self._scrolls: set[ScheduledCall] = set()
        self.failure_count = 0

    def handle_result(self, result: AnalysisResult, regions: tuple[Any, ...] = ()) -> list[OverlayHandle]:
        """Show one overlay per region for a blocked result (one unbounded overlay if no regions)."""
        if not result.should_block:
            return []

        handles = []
        for region in (regions or (None,)):
            handle = self._show(region, result)
            tracked = TrackedOverlay(handle=handle, result=result, app_id=result.app_id)
            tracked.removal = self.scheduler.call_later(
                AUTO_REMOVE_DELAYS[result.risk_tier], self._auto_remove, handle.id
            )
            self._overlays[handle.id] = tracked
            handles.append(handle)

        logger.info(f"🛡️ {len(handles)} overlay(s) shown on {result.app_id or 'unknown app'} "
                    f"({result.risk_tier.value}, {result.primary_category})")
        self._prune()
        return handles

    def reveal(self, overlay_id: str) -> bool:
        """User chose to see the content. No scroll follows."""
        tracked = self._dismiss(overlay_id)
        return tracked is not None

    def skip(self, overlay_id: str) -> bool:
        """User chose to skip the content. May schedule an auto-scroll."""
        tracked = self._dismiss(overlay_id)
        if tracked is None:
            return False
        self._maybe_schedule_scroll(tracked)
        return True

    def hide_all(self) -> int:
        """Dismiss every shown overlay and cancel pending scrolls."""
        hidden = 0
        for overlay_id, tracked in list(self._overlays.items()):
            if tracked.state is OverlayState.SHOWN:
                self._dismiss(overlay_id)
                hidden += 1
        for call in list(self._scrolls):
            call.cancel()
        self._scrolls.clear()
        if hidden:
            logger.info(f"🧹 Hid {hidden} overlay(s)")
        return hidden

    def get_state(self, overlay_id: str) -> Optional[OverlayState]:
        tracked = self._overlays.get(overlay_id)
        return tracked.state if tracked else None

    def list_overlays(self, include_finished: bool = False) -> list[dict]:
        return [
            t.to_dict() for t in self._overlays.values()
            if include_finished or t.state is OverlayState.SHOWN
        ]

    @property
    def shown_count(self) -> int:
        return sum(1 for t in self._overlays.values() if t.state is OverlayState.SHOWN)

    def _show(self, region: Any, result: AnalysisResult) -> OverlayHandle:
        try:
            return self.renderer.show(region, result.reason, result.risk_tier,
                                      result.confidence, result.primary_category, result.app_id)
        except Exception as e:
            self._record_failure(MitigationFailure(f"Overlay renderer failed: {e}"))
            # Keep the Shown state even without a drawn overlay so timers stay consistent
            return OverlayHandle(id=uuid.uuid4().hex, bounds_ref=region, risk_tier=result.risk_tier)

    def _dismiss(self, overlay_id: str) -> Optional[TrackedOverlay]:
        tracked = self._overlays.get(overlay_id)
        if tracked is None or tracked.state is not OverlayState.SHOWN:
            return None
        tracked.state = OverlayState.DISMISSED
        if tracked.removal is not None:
            tracked.removal.cancel()
        self._remove(tracked)
        logger.info(f"👁️ Overlay {overlay_id[:8]} dismissed")
        return tracked

    def _auto_remove(self, overlay_id: str) -> None:
        tracked = self._overlays.get(overlay_id)
        if tracked is None or tracked.state is not OverlayState.SHOWN:
            return
        tracked.state = OverlayState.AUTO_REMOVED
        self._remove(tracked)
        logger.info(f"⏱️ Overlay {overlay_id[:8]} auto-removed")
        self._maybe_schedule_scroll(tracked)

    def _remove(self, tracked: TrackedOverlay) -> None:
        tracked.handle.dismissed = True
        try:
            self.renderer.remove(tracked.handle)
        except Exception as e:
            self._record_failure(MitigationFailure(f"Overlay removal failed: {e}"))

    def _maybe_schedule_scroll(self, tracked: TrackedOverlay) -> None:
        if not self.auto_scroll_enabled or self.scheduler.closed:
            return
        if tracked.result.total_score <= self._auto_scroll_threshold():
            return
        delay = AUTO_SCROLL_DELAYS[tracked.result.risk_tier]
        call = self.scheduler.call_later(delay, self._perform_scroll, tracked.app_id)
        self._scrolls.add(call)
        logger.info(f"📜 Auto-scroll scheduled in {delay}s for {tracked.app_id}")

    def _perform_scroll(self, app_id: str) -> None:
        self._scrolls = {c for c in self._scrolls if c.pending}
        try:
            if not self.scroller.scroll(app_id):
                logger.warning(f"Scroll performer declined to scroll {app_id}")
        except Exception as e:
            self._record_failure(MitigationFailure(f"Scroll failed: {e}"))

    def _record_failure(self, failure: MitigationFailure) -> None:
        self.failure_count += 1
        logger.warning(f"⚠️ {failure}")

    def _prune(self) -> None:
        finished = [oid for oid, t in self._overlays.items() if t.state is not OverlayState.SHOWN]
        excess = len(finished) - MAX_FINISHED_OVERLAYS
        for overlay_id in finished[:max(0, excess)]:
            del self._overlays[overlay_id]
