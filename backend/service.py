"""Safe Scroll - Protection Service
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Composition root. Builds the configuration store, scoring engine, worker
pool, scheduler, mitigation and pipeline, and owns their lifecycle.
There is no global instance: callers create one and pass it around.
"""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

from adapters import (
    BufferedNotificationSink,
    LoggingScrollPerformer,
    PushedContentSource,
    RecordingOverlayRenderer,
    WebhookNotificationSink,
)
from analyzer import RiskAnalyzer
from config_store import ConfigStore, Configuration
from errors import ShutdownError
from interfaces import ContentSource, NotificationSink, OverlayRenderer, ScrollPerformer
from mitigation import MitigationOrchestrator
from models import AnalysisResult, ContentChangeEvent
from pipeline import PipelineOrchestrator, PipelineVerdict
from scheduler import TaskScheduler
from settings import Settings
from stats import ProtectionStats
from trigger_db import TriggerDatabase

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT = 5.0  # seconds to wait for in-flight work


class ProtectionService:
    """
    Owns one protection pipeline end to end.

    Collaborators default to the headless adapters; a device integration
    passes its own content source, renderer and scroller.
    """

    def __init__(self, settings: Optional[Settings] = None,
                 content_source: Optional[ContentSource] = None,
                 renderer: Optional[OverlayRenderer] = None,
                 scroller: Optional[ScrollPerformer] = None,
                 notification_sink: Optional[NotificationSink] = None,
                 config_store: Optional[ConfigStore] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.settings = settings or Settings()

        self.config_store = config_store or ConfigStore(
            TriggerDatabase(self.settings.trigger_db_path),
            block_threshold=self.settings.block_threshold,
        )
        self.analyzer = RiskAnalyzer(self.config_store)
        self.stats = ProtectionStats()
        self.scheduler = TaskScheduler()
        self.executor = ThreadPoolExecutor(max_workers=self.settings.workers,
                                           thread_name_prefix="safe-scroll")

        self.content_source = content_source or PushedContentSource()
        self.renderer = renderer or RecordingOverlayRenderer()
        self.scroller = scroller or LoggingScrollPerformer()
        if notification_sink is None:
            notification_sink = BufferedNotificationSink()
            if self.settings.webhook_url:
                notification_sink = WebhookNotificationSink(self.settings.webhook_url, inner=notification_sink)
        self.notification_sink = notification_sink

        self.mitigation = MitigationOrchestrator(
            self.renderer, self.scroller, self.scheduler,
            auto_scroll_threshold=lambda: self.config_store.snapshot().auto_scroll_threshold,
            auto_scroll_enabled=self.settings.auto_scroll,
        )
        self.pipeline = PipelineOrchestrator(
            self.content_source, self.analyzer, self.config_store, self.mitigation,
            self.stats, self.executor, notification_sink=self.notification_sink,
            min_interval=self.settings.min_interval, clock=clock,
        )
        self._shut_down = False

    @property
    def is_active(self) -> bool:
        return self.pipeline.active

    @property
    def is_shut_down(self) -> bool:
        return self._shut_down

    def activate(self) -> None:
        if self._shut_down:
            raise ShutdownError("Service has been shut down")
        self.pipeline.active = True
        logger.info("🟢 Protection activated")

    def deactivate(self) -> None:
        """Stop analyzing new events and hide every overlay."""
        self.pipeline.active = False
        self.mitigation.hide_all()
        logger.info("🔴 Protection deactivated")

    def on_content_changed(self, event: ContentChangeEvent) -> PipelineVerdict:
        return self.pipeline.on_content_changed(event)

    def submit_content(self, app_id: str, text: str, regions: tuple[Any, ...] = ()) -> PipelineVerdict:
        """Push text for an app and raise a content-change event for it."""
        if isinstance(self.content_source, PushedContentSource):
            self.content_source.push(app_id, text, regions)
        return self.on_content_changed(ContentChangeEvent(app_id=app_id))

    def analyze_text(self, text: str, app_id: str = "") -> AnalysisResult:
        """Score text directly, bypassing throttling. Counted in stats."""
        result = self.analyzer.score(text, app_id, self.config_store.snapshot())
        self.stats.record_result(result)
        return result

    def set_auto_scroll_enabled(self, enabled: bool) -> None:
        self.mitigation.auto_scroll_enabled = bool(enabled)
        logger.info(f"📜 Auto-scroll {'enabled' if enabled else 'disabled'}")

    def set_protection_level(self, level: int) -> Configuration:
        return self.config_store.set_global_sensitivity(level)

    def apply_config(self, payload: dict) -> Configuration:
        return self.config_store.apply_update(payload)

    def add_custom_trigger(self, category: str, phrase: str) -> Configuration:
        return self.config_store.add_trigger(category, phrase)

    def remove_custom_trigger(self, category: str, phrase: str) -> bool:
        return self.config_store.remove_trigger(category, phrase)

    def reveal(self, overlay_id: str) -> bool:
        return self.mitigation.reveal(overlay_id)

    def skip(self, overlay_id: str) -> bool:
        return self.mitigation.skip(overlay_id)

    def get_stats(self) -> dict:
        stats = self.stats.snapshot()
        stats["configVersion"] = self.config_store.version
        stats["overlaysShown"] = self.mitigation.shown_count
        stats["mitigationFailures"] = self.mitigation.failure_count
        return stats

    def reset_stats(self) -> None:
        self.stats.reset()
        logger.info("🧹 Protection stats reset")

    def recent_blocks(self, limit: Optional[int] = None) -> list[dict]:
        recent = getattr(self.notification_sink, "recent", None)
        return recent(limit) if recent else []

    async def shutdown(self, timeout: float = SHUTDOWN_TIMEOUT) -> None:
        """
        Stop the pipeline, cancel every timer and drain the worker pool.

        Raises ShutdownError if timers could not be cancelled or workers
        did not finish within `timeout`. Calling it twice is a no-op.
        """
        if self._shut_down:
            return
        self._shut_down = True
        problems = []

        self.deactivate()

        try:
            await asyncio.wait_for(self.pipeline.wait_idle(), timeout)
        except asyncio.TimeoutError:
            problems.append("in-flight analysis did not finish")

        try:
            cancelled = self.scheduler.close()
            logger.info(f"⏹️ Cancelled {cancelled} pending timer(s)")
        except RuntimeError as e:
            problems.append(str(e))

        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.run_in_executor(None, lambda: self.executor.shutdown(wait=True)), timeout
            )
        except asyncio.TimeoutError:
            problems.append("worker pool did not drain")

        close = getattr(self.notification_sink, "close", None)
        if close is not None:
            try:
                await close()
            except Exception as e:
                logger.warning(f"Notification sink close failed: {e}")

        if problems:
            raise ShutdownError("; ".join(problems))
        logger.info("👋 Protection service shut down")
