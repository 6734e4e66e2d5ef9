"""Safe Scroll - Headless Adapters
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Collaborator implementations used when the protection service runs as an
HTTP backend instead of inside a device: text is pushed in by the client,
overlays are recorded instead of drawn, scrolls are logged, and block
notifications are buffered or forwarded to a webhook.
"""

import asyncio
import logging
import threading
import uuid
from collections import deque
from typing import Any, Optional

import httpx

from models import ContentChangeEvent, ExtractedContent, OverlayHandle, RiskTier

logger = logging.getLogger(__name__)

MAX_BUFFERED_NOTIFICATIONS = 100
WEBHOOK_TIMEOUT = 10.0


class PushedContentSource:
    """
    Returns the most recent text pushed for each app.

    Text is consumed on extraction so one push is analyzed at most once.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._latest: dict[str, ExtractedContent] = {}

    def push(self, app_id: str, text: str, regions: tuple[Any, ...] = ()) -> None:
        with self._lock:
            self._latest[app_id] = ExtractedContent(text=text, app_id=app_id, regions=tuple(regions))

    def extract(self, event: ContentChangeEvent) -> Optional[ExtractedContent]:
        with self._lock:
            return self._latest.pop(event.app_id, None)


class RecordingOverlayRenderer:
    """Keeps overlays in memory so clients can poll them."""

    def __init__(self):
        self.visible: dict[str, dict] = {}
        self.shown_total = 0

    def show(self, bounds_hint: Any, reason: str, risk_tier: RiskTier,
             confidence: int, category: str, app_id: str) -> OverlayHandle:
        handle = OverlayHandle(id=uuid.uuid4().hex, bounds_ref=bounds_hint, risk_tier=risk_tier)
        self.visible[handle.id] = {
            "reason": reason,
            "risk_tier": risk_tier.value,
            "risk_label": risk_tier.label,
            "confidence": confidence,
            "category": category,
            "app_id": app_id,
            "bounds": bounds_hint,
        }
        self.shown_total += 1
        return handle

    def remove(self, handle: OverlayHandle) -> None:
        self.visible.pop(handle.id, None)


class LoggingScrollPerformer:
    """Records scroll requests. A device build would dispatch a gesture here."""

    def __init__(self):
        self.scrolled: list[str] = []

    def scroll(self, app_id: str) -> bool:
        self.scrolled.append(app_id)
        logger.info(f"📜 Auto-scroll performed on {app_id}")
        return True


class BufferedNotificationSink:
    """Keeps the most recent block notifications for the /blocked endpoint."""

    def __init__(self, maxlen: int = MAX_BUFFERED_NOTIFICATIONS):
        self._items: deque = deque(maxlen=maxlen)

    async def publish(self, payload: dict) -> None:
        self._items.append(payload)

    def recent(self, limit: Optional[int] = None) -> list[dict]:
        items = list(self._items)
        items.reverse()
        return items[:limit] if limit else items


class WebhookNotificationSink:
    """
    POSTs each block notification to a webhook URL.

    Also buffers locally through an optional inner sink so /blocked keeps
    working when the webhook is unreachable.
    """

    def __init__(self, url: str, inner: Optional[BufferedNotificationSink] = None,
                 retries: int = 2, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.inner = inner
        self.retries = retries
        self.client = client or httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT)

    async def publish(self, payload: dict) -> None:
        if self.inner is not None:
            await self.inner.publish(payload)

        delay = 0.5
        for attempt in range(self.retries + 1):
            try:
                response = await self.client.post(self.url, json=payload)
                if response.status_code < 500:
                    if response.status_code >= 400:
                        logger.warning(f"Webhook rejected notification: HTTP {response.status_code}")
                    return
                logger.warning(f"Webhook server error {response.status_code} "
                               f"(attempt {attempt + 1}/{self.retries + 1})")
            except (httpx.RequestError, httpx.TimeoutException) as e:
                logger.warning(f"Webhook network error {e!r} (attempt {attempt + 1}/{self.retries + 1})")

            if attempt < self.retries:
                await asyncio.sleep(delay)
                delay *= 2.0

        logger.error(f"Webhook delivery failed after {self.retries + 1} attempts")

    def recent(self, limit: Optional[int] = None) -> list[dict]:
        return self.inner.recent(limit) if self.inner is not None else []

    async def close(self) -> None:
        await self.client.aclose()
