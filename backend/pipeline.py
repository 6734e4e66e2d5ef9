"""Safe Scroll - Pipeline Orchestrator
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Receives content-change events and runs at most one analysis at a time:

    Idle -> Throttled        (too soon after the last analysis, dropped)
    Idle -> Analyzing -> Idle

Extraction and scoring run on a small worker pool; results come back to
the event loop, where mitigation, notification and stats happen.
"""

import asyncio
import logging
import threading
import time
from concurrent.futures import Executor
from enum import Enum
from typing import Callable, Optional

from analyzer import RiskAnalyzer
from app_profiles import get_app_name, is_monitored
from config_store import ConfigStore, Configuration
from errors import ExtractionFailure
from interfaces import ContentSource, NotificationSink
from mitigation import MitigationOrchestrator
from models import AnalysisRequest, AnalysisResult, ContentChangeEvent, ExtractedContent
from stats import ProtectionStats

logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL = 0.5     # seconds between analysis starts
DEFAULT_MIN_TEXT_LENGTH = 10   # shorter extracted text is not scored


class PipelineVerdict(str, Enum):
    DISPATCHED = "dispatched"
    THROTTLED = "throttled"
    BUSY = "busy"
    IGNORED = "ignored"
    INACTIVE = "inactive"


class PipelineOrchestrator:
    """
    Throttled, single-flight dispatch of content analysis.

    on_content_changed() must be called on the event loop; it never blocks.
    """

    def __init__(self, content_source: ContentSource, analyzer: RiskAnalyzer,
                 config_store: ConfigStore, mitigation: MitigationOrchestrator,
                 stats: ProtectionStats, executor: Executor,
                 notification_sink: Optional[NotificationSink] = None,
                 min_interval: float = DEFAULT_MIN_INTERVAL,
                 min_text_length: int = DEFAULT_MIN_TEXT_LENGTH,
                 clock: Callable[[], float] = time.monotonic):
        self.content_source = content_source
        self.analyzer = analyzer
        self.config_store = config_store
        self.mitigation = mitigation
        self.stats = stats
        self.executor = executor
        self.notification_sink = notification_sink
        self.min_interval = min_interval
        self.min_text_length = min_text_length
        self._clock = clock

        self._lock = threading.Lock()
        self._in_flight = False
        self._last_analysis_at: Optional[float] = None
        self._tasks: set[asyncio.Task] = set()
        self.active = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def last_analysis_at(self) -> Optional[float]:
        return self._last_analysis_at

    def on_content_changed(self, event: ContentChangeEvent) -> PipelineVerdict:
        """Gate an event and dispatch analysis if allowed."""
        if not self.active:
            return PipelineVerdict.INACTIVE

        if not is_monitored(event.app_id):
            return PipelineVerdict.IGNORED

        with self._lock:
            now = self._clock()
            if self._last_analysis_at is not None and now - self._last_analysis_at < self.min_interval:
                verdict = PipelineVerdict.THROTTLED
            elif self._in_flight:
                verdict = PipelineVerdict.BUSY
            else:
                self._in_flight = True
                self._last_analysis_at = now
                verdict = PipelineVerdict.DISPATCHED

        if verdict is PipelineVerdict.THROTTLED:
            self.stats.record_throttled()
            return verdict
        if verdict is PipelineVerdict.BUSY:
            self.stats.record_dropped_in_flight()
            return verdict

        try:
            loop = asyncio.get_running_loop()
            config = self.config_store.snapshot()
            future = loop.run_in_executor(self.executor, self._extract_and_score, event, config)
            task = loop.create_task(self._complete(future))
        except Exception:
            with self._lock:
                self._in_flight = False
            raise

        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return verdict

    def _extract_and_score(self, event: ContentChangeEvent,
                           config: Configuration) -> tuple[ExtractedContent, Optional[AnalysisResult]]:
        """Worker-thread half of a cycle. Returns (content, None) when short-circuited."""
        try:
            content = self.content_source.extract(event)
        except Exception as e:
            raise ExtractionFailure(f"Content source raised: {e}") from e

        if content is None or not content.text:
            raise ExtractionFailure(f"No content extracted for {event.app_id}")

        if len(content.text.strip()) < self.min_text_length:
            return content, None

        request = AnalysisRequest(text=content.text, app_id=event.app_id)
        return content, self.analyzer.score(request.text, request.app_id, config)

    async def _complete(self, future: asyncio.Future) -> None:
        try:
            try:
                content, result = await future
            except ExtractionFailure as e:
                self.stats.record_extraction_failure()
                logger.debug(f"Extraction aborted: {e}")
                return

            if result is None:
                self.stats.record_short_circuit()
                return

            self.stats.record_result(result)

            if result.should_block and self.active:
                logger.info(f"🚨 Blocking content on {get_app_name(result.app_id)} "
                            f"(score={result.total_score}, tier={result.risk_tier.value})")
                self.mitigation.handle_result(result, content.regions)
                self._notify(result)
        except Exception as e:
            logger.error(f"Analysis cycle failed: {e}")
        finally:
            with self._lock:
                self._in_flight = False

    def _notify(self, result: AnalysisResult) -> None:
        if self.notification_sink is None:
            return
        task = asyncio.get_running_loop().create_task(self._publish(result.to_dict()))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _publish(self, payload: dict) -> None:
        try:
            await self.notification_sink.publish(payload)
        except Exception as e:
            logger.warning(f"Notification sink failed: {e}")

    async def wait_idle(self) -> None:
        """Wait for every dispatched cycle and notification to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
