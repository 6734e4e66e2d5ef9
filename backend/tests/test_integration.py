import pytest
from unittest.mock import patch
from httpx import AsyncClient, ASGITransport

import main
from main import app, _rate_limit_store
from service import ProtectionService
from settings import Settings

from conftest import SCENARIO_TEXT, NEUTRAL_TEXT, INSTAGRAM


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def clear_rate_limits():
    _rate_limit_store.clear()
    yield
    _rate_limit_store.clear()


@pytest.fixture
async def service(config_store):
    """Fresh, active service swapped in for the module-level one."""
    svc = ProtectionService(Settings(), config_store=config_store)
    svc.activate()
    with patch("main.service", svc):
        yield svc
    await svc.shutdown()


@pytest.fixture
async def client(service):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestHealthEndpoint:
    @pytest.mark.asyncio
    async def test_health_returns_ok(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == main.API_VERSION
        assert data["active"] is True

    @pytest.mark.asyncio
    async def test_health_has_security_headers(self, client):
        response = await client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"


class TestAnalyzeEndpoint:
    @pytest.mark.asyncio
    async def test_analyze_toxic_text(self, client):
        response = await client.post("/analyze", json={"text": SCENARIO_TEXT, "app_id": INSTAGRAM})
        assert response.status_code == 200
        data = response.json()
        assert data["total_score"] == 151
        assert data["should_block"] is True
        assert data["risk_tier"] == "Critical"
        assert data["primary_category"] == "Comparação Social"
        assert data["per_category_score"]["comparison"] == 63
        assert "vida perfeita" in data["matched_triggers"]

    @pytest.mark.asyncio
    async def test_analyze_neutral_text(self, client):
        response = await client.post("/analyze", json={"text": NEUTRAL_TEXT})
        assert response.status_code == 200
        data = response.json()
        assert data["total_score"] == 0
        assert data["should_block"] is False
        assert data["confidence"] == 65

    @pytest.mark.asyncio
    async def test_analyze_never_shows_overlays(self, client, service):
        await client.post("/analyze", json={"text": SCENARIO_TEXT, "app_id": INSTAGRAM})
        assert service.renderer.visible == {}

    @pytest.mark.asyncio
    async def test_analyze_rejects_empty_text(self, client):
        response = await client.post("/analyze", json={"text": ""})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_analyze_internal_error(self, client, service):
        with patch.object(service, "analyze_text", side_effect=RuntimeError("boom")):
            response = await client.post("/analyze", json={"text": SCENARIO_TEXT})
        assert response.status_code == 500
        assert "boom" not in response.text


class TestContentEvents:
    @pytest.mark.asyncio
    async def test_blocked_event_creates_overlay(self, client, service):
        response = await client.post("/events/content-changed", json={
            "app_id": INSTAGRAM, "text": SCENARIO_TEXT, "regions": ["post-1"],
        })
        assert response.status_code == 200
        assert response.json() == {"app_id": INSTAGRAM, "verdict": "dispatched"}

        await service.pipeline.wait_idle()
        overlays = (await client.get("/overlays")).json()
        assert len(overlays) == 1
        assert overlays[0]["state"] == "Shown"
        assert overlays[0]["score"] == 151

        blocked = (await client.get("/blocked")).json()
        assert blocked[0]["app_id"] == INSTAGRAM

    @pytest.mark.asyncio
    async def test_rapid_events_are_throttled(self, client, service):
        await client.post("/events/content-changed", json={"app_id": INSTAGRAM, "text": NEUTRAL_TEXT})
        response = await client.post("/events/content-changed", json={"app_id": INSTAGRAM, "text": NEUTRAL_TEXT})
        assert response.json()["verdict"] in ("throttled", "busy")
        await service.pipeline.wait_idle()

    @pytest.mark.asyncio
    async def test_unmonitored_app_ignored(self, client):
        response = await client.post("/events/content-changed", json={"app_id": "com.android.chrome", "text": SCENARIO_TEXT})
        assert response.json()["verdict"] == "ignored"

    @pytest.mark.asyncio
    async def test_blank_app_id_rejected(self, client):
        response = await client.post("/events/content-changed", json={"app_id": "   "})
        assert response.status_code == 422


class TestOverlayEndpoints:
    async def _blocked_overlay(self, client, service):
        await client.post("/events/content-changed", json={"app_id": INSTAGRAM, "text": SCENARIO_TEXT})
        await service.pipeline.wait_idle()
        return (await client.get("/overlays")).json()[0]["id"]

    @pytest.mark.asyncio
    async def test_reveal(self, client, service):
        overlay_id = await self._blocked_overlay(client, service)
        response = await client.post(f"/overlays/{overlay_id}/reveal")
        assert response.status_code == 200
        assert response.json() == {"id": overlay_id, "state": "Dismissed"}
        assert (await client.get("/overlays")).json() == []
        finished = (await client.get("/overlays", params={"include_finished": "true"})).json()
        assert len(finished) == 1

    @pytest.mark.asyncio
    async def test_skip(self, client, service):
        overlay_id = await self._blocked_overlay(client, service)
        response = await client.post(f"/overlays/{overlay_id}/skip")
        assert response.status_code == 200
        # Second action on the same overlay has nothing to dismiss
        response = await client.post(f"/overlays/{overlay_id}/skip")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_overlay(self, client):
        response = await client.post("/overlays/nope/reveal")
        assert response.status_code == 404


class TestConfigEndpoints:
    @pytest.mark.asyncio
    async def test_get_config_hides_phrases(self, client):
        response = await client.get("/config")
        assert response.status_code == 200
        data = response.json()
        assert data["block_threshold"] == 35
        assert data["version"] == 1
        assert "vida perfeita" not in response.text

    @pytest.mark.asyncio
    async def test_update_config(self, client):
        response = await client.post("/config", json={"sensitivity": {"comparison": 50}, "blockThreshold": 45})
        assert response.status_code == 200
        data = response.json()
        assert data["block_threshold"] == 45
        assert data["version"] == 2
        comparison = next(c for c in data["categories"] if c["name"] == "comparison")
        assert comparison["sensitivity"] == 50

    @pytest.mark.asyncio
    async def test_invalid_update_rejected(self, client, service):
        response = await client.post("/config", json={"sensitivity": {"comparison": 5}})
        assert response.status_code == 400
        assert service.config_store.version == 1

    @pytest.mark.asyncio
    async def test_custom_trigger_changes_scoring(self, client):
        await client.post("/config", json={"customTriggers": {"anxiety": ["prova amanhã"]}})
        data = (await client.post("/analyze", json={"text": "tenho prova amanhã cedo"})).json()
        assert "prova amanhã" in data["matched_triggers"]

    @pytest.mark.asyncio
    async def test_add_and_remove_trigger(self, client):
        response = await client.post("/config/triggers/anxiety", json={"phrase": "prova amanhã"})
        assert response.status_code == 200
        assert response.json()["version"] == 2
        data = (await client.post("/analyze", json={"text": "tenho prova amanhã cedo"})).json()
        assert "prova amanhã" in data["matched_triggers"]

        response = await client.delete("/config/triggers/anxiety", params={"phrase": "prova amanhã"})
        assert response.status_code == 200
        data = (await client.post("/analyze", json={"text": "tenho prova amanhã cedo"})).json()
        assert "prova amanhã" not in data["matched_triggers"]

    @pytest.mark.asyncio
    async def test_trigger_errors(self, client):
        response = await client.post("/config/triggers/nope", json={"phrase": "qualquer"})
        assert response.status_code == 400
        response = await client.post("/config/triggers/anxiety", json={"phrase": "   "})
        assert response.status_code == 400
        response = await client.delete("/config/triggers/anxiety", params={"phrase": "nunca existiu"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_reset(self, client):
        await client.post("/config", json={"blockThreshold": 90})
        data = (await client.post("/config/reset")).json()
        assert data["block_threshold"] == 35

    @pytest.mark.asyncio
    async def test_categories(self, client):
        data = (await client.get("/categories")).json()
        assert [c["name"] for c in data][:2] == ["comparison", "anxiety"]
        assert all("phrases" not in c for c in data)

    @pytest.mark.asyncio
    async def test_apps(self, client):
        data = (await client.get("/apps")).json()
        assert len(data) == 9
        tiktok = next(a for a in data if a["app_id"] == "com.zhiliaoapp.musically")
        assert tiktok["name"] == "TikTok"
        assert tiktok["rule_count"] == 4


class TestProtectionAndStats:
    @pytest.mark.asyncio
    async def test_stats(self, client):
        await client.post("/analyze", json={"text": SCENARIO_TEXT, "app_id": INSTAGRAM})
        data = (await client.get("/stats")).json()
        assert data["totalAnalyzed"] == 1
        assert data["totalBlocked"] == 1
        assert data["version"] == "1.0"
        assert data["blockedByCategory"] == {"Comparação Social": 1}

    @pytest.mark.asyncio
    async def test_reset_stats(self, client):
        await client.post("/analyze", json={"text": SCENARIO_TEXT, "app_id": INSTAGRAM})
        data = (await client.post("/stats/reset")).json()
        assert data["totalAnalyzed"] == 0
        assert data["blockedByCategory"] == {}

    @pytest.mark.asyncio
    async def test_deactivate(self, client):
        data = (await client.post("/protection", json={"active": False})).json()
        assert data["active"] is False
        response = await client.post("/events/content-changed", json={"app_id": INSTAGRAM, "text": SCENARIO_TEXT})
        assert response.json()["verdict"] == "inactive"

    @pytest.mark.asyncio
    async def test_level_and_auto_scroll(self, client, service):
        data = (await client.post("/protection", json={"level": 50, "auto_scroll": False})).json()
        assert data["auto_scroll"] is False
        assert data["config_version"] == 2
        assert service.config_store.snapshot().get_category("comparison").sensitivity == 44

    @pytest.mark.asyncio
    async def test_level_out_of_range(self, client):
        response = await client.post("/protection", json={"level": 10})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_activate_after_shutdown_conflicts(self, client, service):
        await service.shutdown()
        response = await client.post("/protection", json={"active": True})
        assert response.status_code == 409
