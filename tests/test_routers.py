"""
API 路由测试
"""
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from healthwatch.main import app
from healthwatch.models.health_log import HealthLog
from healthwatch.routers.health import get_probe_runner
from healthwatch.schemas.health import CycleSummary
from healthwatch.services.cycle_cache import cache_cycle_summary
from healthwatch.services.probe_runner import ProbeRunner
from healthwatch.services.probes import DEFAULT_PROBES


async def _seed(db, *rows):
    now = datetime.now(timezone.utc)
    for minutes_ago, service, category, status, source in rows:
        db.add(HealthLog(
            service=service,
            category=category,
            status=status,
            latency_ms=100,
            source=source,
            error_message=None if status == "OK" else f"{service} failed",
            url="http://target.test/internal",
            tested_at=now - timedelta(minutes=minutes_ago),
        ))
    await db.commit()


class TestAuth:
    async def test_missing_token(self, client):
        resp = await client.get("/api/v1/health/status")
        assert resp.status_code == 401
        assert resp.json()["error"] == "http_error"
        assert resp.headers["www-authenticate"] == "Bearer"

    async def test_wrong_token(self, client):
        resp = await client.get("/api/v1/health/logs", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


class TestHealthStatus:
    async def test_overview(self, client, auth_headers, db_session, fake_redis):
        await _seed(
            db_session,
            (10, "db-connection", "DATABASE", "OK", "monitor"),
            (5, "db-connection", "DATABASE", "CRITICAL", "monitor"),
            (5, "api-categories", "API", "OK", "monitor"),
            (5, "api-requests-list", "REQUESTS", "WARNING", "monitor"),
        )
        now = datetime.now(timezone.utc)
        await cache_cycle_summary(fake_redis, CycleSummary(
            started_at=now, finished_at=now, attempts=1, total=4, ok=2, warnings=1, critical=1,
        ))

        resp = await client.get("/api/v1/health/status", headers=auth_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["total_checks"] == 4
        assert data["failed_checks"] == 2
        assert data["uptime_percent"] == 50.0
        assert data["avg_latency_ms"] == 100
        assert data["category_status"]["DATABASE"]["status"] == "CRITICAL"
        assert data["category_status"]["CACHE"] == {"status": "OK", "latency_ms": None, "last_checked": None}
        assert len(data["recent_logs"]) == 4
        counts = {c["category"]: c["count"] for c in data["errors_by_category"]}
        assert counts == {"DATABASE": 1, "REQUESTS": 1}
        assert data["last_cycle"]["critical"] == 1
        assert sum(1 for _ in data["latency_trend"]) >= 1

    async def test_empty_database(self, client, auth_headers):
        resp = await client.get("/api/v1/health/status", headers=auth_headers)
        data = resp.json()
        assert data["uptime_percent"] == 100.0
        assert data["last_cycle"] is None


class TestLogs:
    async def test_filters(self, client, auth_headers, db_session):
        await _seed(
            db_session,
            (3, "db-connection", "DATABASE", "CRITICAL", "monitor"),
            (2, "db-connection", "DATABASE", "OK", "monitor"),
            (1, "api-categories", "API", "OK", "monitor"),
        )

        resp = await client.get(
            "/api/v1/health/logs", params={"service": "db-connection"}, headers=auth_headers
        )
        rows = resp.json()
        assert [r["status"] for r in rows] == ["OK", "CRITICAL"]

        resp = await client.get("/api/v1/health/logs", params={"status": "CRITICAL"}, headers=auth_headers)
        assert len(resp.json()) == 1

        resp = await client.get("/api/v1/health/logs", params={"limit": 1}, headers=auth_headers)
        assert [r["service"] for r in resp.json()] == ["api-categories"]

    async def test_invalid_limit(self, client, auth_headers):
        resp = await client.get("/api/v1/health/logs", params={"limit": 0}, headers=auth_headers)
        assert resp.status_code == 422


class TestErrors:
    async def test_only_user_errors(self, client, auth_headers, db_session):
        await _seed(
            db_session,
            (5, "POST /api/auth/login", "AUTH", "CRITICAL", "user"),
            (4, "GET /api/requests/1", "REQUESTS", "CRITICAL", "user"),
            (3, "db-connection", "DATABASE", "CRITICAL", "monitor"),
            (60 * 25, "GET /api/old", "API", "CRITICAL", "user"),
        )
        resp = await client.get("/api/v1/health/errors", headers=auth_headers)
        data = resp.json()
        assert data["total"] == 2
        assert data["category_groups"] == {"AUTH": 1, "REQUESTS": 1}


class TestManualRun:
    async def test_run_persists_without_retry(self, client, auth_headers, db_session, make_probe_context):
        calls = {"n": 0}

        def target(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if request.method == "POST" or request.url.path == "/api/admin/users":
                return httpx.Response(401)
            if request.url.path == "/api/categories":
                return httpx.Response(500)
            return httpx.Response(200)

        ctx = make_probe_context(target)

        async def override_runner():
            yield ProbeRunner(DEFAULT_PROBES, ctx)

        app.dependency_overrides[get_probe_runner] = override_runner
        resp = await client.post("/api/v1/health/run", headers=auth_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 11
        assert data["critical"] == 1
        assert data["ok"] == 10
        assert calls["n"] == 10

        resp = await client.get("/api/v1/health/logs", params={"limit": 100}, headers=auth_headers)
        assert len(resp.json()) == 11


class TestSla:
    async def test_generate_and_list(self, client, auth_headers, db_session):
        await _seed(db_session, (5, "db-connection", "DATABASE", "CRITICAL", "monitor"))
        now = datetime.now(timezone.utc)

        resp = await client.post("/api/v1/health/sla", json={}, headers=auth_headers)
        assert resp.status_code == 200
        report = resp.json()
        assert (report["year"], report["month"]) == (now.year, now.month)
        assert report["downtime_minutes"] == 5

        resp = await client.get("/api/v1/health/sla", headers=auth_headers)
        data = resp.json()
        assert len(data["reports"]) == 1
        assert data["current_month"]["total_checks"] == 1

    @pytest.mark.parametrize("body", [
        {"year": 2024, "month": 13},
        {"year": 2024, "month": 0},
        {"year": 1999, "month": 1},
    ])
    async def test_invalid_period(self, client, auth_headers, body):
        resp = await client.post("/api/v1/health/sla", json=body, headers=auth_headers)
        assert resp.status_code == 422
        assert resp.json()["error"] == "validation_error"


class TestPublicStatus:
    async def test_public_status(self, client, db_session):
        await _seed(
            db_session,
            (10, "db-connection", "DATABASE", "CRITICAL", "monitor"),
            (5, "db-connection", "DATABASE", "OK", "monitor"),
            (5, "api-requests-list", "REQUESTS", "WARNING", "monitor"),
            (60 * 80, "api-categories", "API", "CRITICAL", "monitor"),
            (1, "api-categories", "API", "OK", "monitor"),
        )

        resp = await client.get("/api/v1/status")
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "public, max-age=60"
        data = resp.json()
        assert data["status"] == "DEGRADED"
        assert data["uptime_24h"] == 50.0
        assert data["components"]["API"]["status"] == "OK"
        assert [i["service"] for i in data["incidents"]] == ["db-connection"]
        assert "url" not in data["incidents"][0]
        assert "details" not in data["incidents"][0]

    async def test_all_operational(self, client):
        resp = await client.get("/api/v1/status")
        data = resp.json()
        assert data["status"] == "OPERATIONAL"
        assert data["incidents"] == []


async def test_liveness(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["checks"]["api"] == "ok"
