import asyncio
from unittest.mock import MagicMock

import pytest
import mitigation
from adapters import LoggingScrollPerformer, RecordingOverlayRenderer
from mitigation import MitigationOrchestrator, OverlayState
from models import AnalysisResult, RiskTier
from scheduler import TaskScheduler


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def fast_timers(monkeypatch):
    for tier in RiskTier:
        monkeypatch.setitem(mitigation.AUTO_REMOVE_DELAYS, tier, 0.02)
        monkeypatch.setitem(mitigation.AUTO_SCROLL_DELAYS, tier, 0.01)


def make_result(score=90, should_block=True, tier=RiskTier.CRITICAL, app_id="com.instagram.android"):
    return AnalysisResult(
        total_score=score,
        per_category_score={"comparison": score},
        matched_triggers=frozenset({"vida perfeita"}),
        contextual_factors=(),
        should_block=should_block,
        confidence=90,
        primary_category="Comparação Social",
        reason="Conteúdo de comparação social",
        risk_tier=tier,
        latency_ms=3,
        app_id=app_id,
    )


def make_orchestrator(renderer=None, scroller=None, threshold=50, enabled=True):
    return MitigationOrchestrator(
        renderer=renderer or RecordingOverlayRenderer(),
        scroller=scroller or LoggingScrollPerformer(),
        scheduler=TaskScheduler(),
        auto_scroll_threshold=lambda: threshold,
        auto_scroll_enabled=enabled,
    )


class TestHandleResult:
    @pytest.mark.asyncio
    async def test_not_blocked_shows_nothing(self):
        orchestrator = make_orchestrator()
        assert orchestrator.handle_result(make_result(should_block=False)) == []
        assert orchestrator.shown_count == 0

    @pytest.mark.asyncio
    async def test_one_overlay_per_region(self):
        renderer = RecordingOverlayRenderer()
        orchestrator = make_orchestrator(renderer=renderer)
        handles = orchestrator.handle_result(make_result(), ("top", "bottom"))
        assert len(handles) == 2
        assert len(renderer.visible) == 2
        assert {h.bounds_ref for h in handles} == {"top", "bottom"}

    @pytest.mark.asyncio
    async def test_no_regions_gives_unbounded_overlay(self):
        orchestrator = make_orchestrator()
        handles = orchestrator.handle_result(make_result())
        assert len(handles) == 1
        assert handles[0].bounds_ref is None
        assert orchestrator.get_state(handles[0].id) is OverlayState.SHOWN

    @pytest.mark.asyncio
    async def test_renderer_receives_result_fields(self):
        renderer = MagicMock()
        renderer.show.return_value = MagicMock(id="abc")
        orchestrator = make_orchestrator(renderer=renderer)
        orchestrator.handle_result(make_result())
        renderer.show.assert_called_once_with(
            None, "Conteúdo de comparação social", RiskTier.CRITICAL, 90,
            "Comparação Social", "com.instagram.android",
        )

    @pytest.mark.asyncio
    async def test_renderer_failure_is_recorded(self):
        renderer = MagicMock()
        renderer.show.side_effect = RuntimeError("no window")
        orchestrator = make_orchestrator(renderer=renderer)
        handles = orchestrator.handle_result(make_result())
        assert len(handles) == 1
        assert orchestrator.failure_count == 1
        assert orchestrator.get_state(handles[0].id) is OverlayState.SHOWN


class TestUserActions:
    @pytest.mark.asyncio
    async def test_reveal_dismisses_without_scroll(self):
        scroller = LoggingScrollPerformer()
        orchestrator = make_orchestrator(scroller=scroller)
        handle = orchestrator.handle_result(make_result())[0]

        assert orchestrator.reveal(handle.id) is True
        assert orchestrator.get_state(handle.id) is OverlayState.DISMISSED
        assert handle.dismissed

        await asyncio.sleep(0.06)
        assert scroller.scrolled == []
        # The cancelled removal timer must not override the dismissal
        assert orchestrator.get_state(handle.id) is OverlayState.DISMISSED

    @pytest.mark.asyncio
    async def test_skip_schedules_scroll(self):
        scroller = LoggingScrollPerformer()
        orchestrator = make_orchestrator(scroller=scroller)
        handle = orchestrator.handle_result(make_result(score=90))[0]

        assert orchestrator.skip(handle.id) is True
        await asyncio.sleep(0.05)
        assert scroller.scrolled == ["com.instagram.android"]

    @pytest.mark.asyncio
    async def test_skip_below_threshold_does_not_scroll(self):
        scroller = LoggingScrollPerformer()
        orchestrator = make_orchestrator(scroller=scroller, threshold=50)
        handle = orchestrator.handle_result(make_result(score=50, tier=RiskTier.MEDIUM))[0]

        orchestrator.skip(handle.id)
        await asyncio.sleep(0.05)
        assert scroller.scrolled == []

    @pytest.mark.asyncio
    async def test_unknown_or_finished_overlay(self):
        orchestrator = make_orchestrator()
        handle = orchestrator.handle_result(make_result())[0]
        assert orchestrator.reveal("missing") is False
        assert orchestrator.reveal(handle.id) is True
        assert orchestrator.skip(handle.id) is False


class TestTimers:
    @pytest.mark.asyncio
    async def test_auto_remove_then_scroll(self):
        renderer = RecordingOverlayRenderer()
        scroller = LoggingScrollPerformer()
        orchestrator = make_orchestrator(renderer=renderer, scroller=scroller)
        handle = orchestrator.handle_result(make_result(score=120))[0]

        await asyncio.sleep(0.1)
        assert orchestrator.get_state(handle.id) is OverlayState.AUTO_REMOVED
        assert renderer.visible == {}
        assert scroller.scrolled == ["com.instagram.android"]

    @pytest.mark.asyncio
    async def test_auto_scroll_disabled(self):
        scroller = LoggingScrollPerformer()
        orchestrator = make_orchestrator(scroller=scroller, enabled=False)
        orchestrator.handle_result(make_result(score=120))
        await asyncio.sleep(0.1)
        assert scroller.scrolled == []

    @pytest.mark.asyncio
    async def test_scroll_failure_is_contained(self):
        scroller = MagicMock()
        scroller.scroll.side_effect = RuntimeError("gesture rejected")
        orchestrator = make_orchestrator(scroller=scroller)
        orchestrator.handle_result(make_result(score=120))
        await asyncio.sleep(0.1)
        assert scroller.scroll.called
        assert orchestrator.failure_count == 1

    @pytest.mark.asyncio
    async def test_closed_scheduler_fires_nothing(self):
        scroller = LoggingScrollPerformer()
        orchestrator = make_orchestrator(scroller=scroller)
        handle = orchestrator.handle_result(make_result(score=120))[0]
        orchestrator.scheduler.close()
        await asyncio.sleep(0.1)
        assert orchestrator.get_state(handle.id) is OverlayState.SHOWN
        assert scroller.scrolled == []


class TestHideAll:
    @pytest.mark.asyncio
    async def test_hide_all_dismisses_and_cancels(self):
        renderer = RecordingOverlayRenderer()
        scroller = LoggingScrollPerformer()
        orchestrator = make_orchestrator(renderer=renderer, scroller=scroller)
        first = orchestrator.handle_result(make_result(score=120))[0]
        second = orchestrator.handle_result(make_result(score=120))[0]

        assert orchestrator.hide_all() == 2
        assert renderer.visible == {}
        assert orchestrator.get_state(first.id) is OverlayState.DISMISSED
        assert orchestrator.get_state(second.id) is OverlayState.DISMISSED

        await asyncio.sleep(0.1)
        assert scroller.scrolled == []
        assert orchestrator.scheduler.pending_count == 0

    @pytest.mark.asyncio
    async def test_list_overlays(self):
        orchestrator = make_orchestrator()
        first = orchestrator.handle_result(make_result())[0]
        orchestrator.handle_result(make_result())
        orchestrator.reveal(first.id)

        shown = orchestrator.list_overlays()
        everything = orchestrator.list_overlays(include_finished=True)
        assert len(shown) == 1
        assert len(everything) == 2
        assert shown[0]["state"] == "Shown"
        assert shown[0]["category"] == "Comparação Social"

    @pytest.mark.asyncio
    async def test_finished_overlays_are_pruned(self, monkeypatch):
        monkeypatch.setattr(mitigation, "MAX_FINISHED_OVERLAYS", 2)
        orchestrator = make_orchestrator()
        for _ in range(5):
            handle = orchestrator.handle_result(make_result())[0]
            orchestrator.reveal(handle.id)
        orchestrator.handle_result(make_result())
        assert len(orchestrator.list_overlays(include_finished=True)) == 3
