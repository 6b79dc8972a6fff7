"""
Response cache tests: backends, key derivation, invalidation
"""
import asyncio
from datetime import date
from decimal import Decimal

import pytest

from farmhub.models import FarmRole, FinancialTransaction, TransactionType
from farmhub.services.cache_service import (
    CacheService,
    MemoryBackend,
    farm_pattern,
    normalize_pattern,
    pattern_to_glob,
    pattern_to_regex,
)

REPORT_URL = "/api/reports/profit-loss"


@pytest.fixture
def farm_setup(make_user, make_farm, auth_headers):
    owner = make_user("owner@example.com")
    farm = make_farm(owner)
    return owner, farm, auth_headers(owner, farm=farm)


def record_directly(db, farm, user, amount, kind=TransactionType.INCOME, category="eggs"):
    """Insert without going through the API, so no invalidation happens"""
    db.add(
        FinancialTransaction(
            farm_id=farm.id,
            type=kind,
            category=category,
            amount=Decimal(amount),
            transaction_date=date(2024, 3, 1),
            created_by_id=user.id,
        )
    )
    db.commit()


class TestPatterns:
    def test_normalize_pattern(self):
        assert normalize_pattern("/api/reports") == "cache:/api/reports*"
        assert normalize_pattern("cache:/api/reports*") == "cache:/api/reports*"

    def test_wildcard_translation_escapes_everything_else(self):
        assert pattern_to_regex("cache:/api/reports*") == r"^cache:/api/reports.*$"
        assert pattern_to_regex("a.b*") == r"^a\.b.*$"

    def test_glob_translation_keeps_only_the_star(self):
        assert pattern_to_glob("cache:/api/r?ports[1]*") == r"cache:/api/r\?ports\[1\]*"

    def test_farm_pattern(self):
        assert farm_pattern("/api/reports", "f1") == "cache:/api/reports*:farm=f1"
        assert farm_pattern("", "f1") == "cache:*:farm=f1"


class TestMemoryBackend:
    def test_basic_operations(self):
        async def scenario():
            backend = MemoryBackend()
            await backend.set("cache:a", {"x": 1})
            await backend.set("cache:b", 2, ttl_seconds=60)
            assert await backend.get("cache:a") == {"x": 1}
            assert await backend.exists("cache:b")
            assert await backend.ttl("cache:a") == -1
            assert 0 < await backend.ttl("cache:b") <= 60
            assert await backend.ttl("cache:missing") == -2
            assert await backend.increment("counter") == 1
            assert await backend.increment("counter", 4) == 5
            assert sorted(await backend.keys("cache:*")) == ["cache:a", "cache:b"]
            assert await backend.keys("cache:?") == []
            assert await backend.delete("cache:a") is True
            assert await backend.delete("cache:a") is False

        asyncio.run(scenario())

    def test_expired_entries_disappear(self):
        async def scenario():
            backend = MemoryBackend()
            await backend.set("cache:short", "value", ttl_seconds=60)
            await backend.expire("cache:short", -1)
            assert await backend.get("cache:short") is None
            assert backend.cleanup() == 0

        asyncio.run(scenario())

    def test_pattern_delete_is_idempotent(self):
        """
        Test: invalidate the same pattern twice
        Expected: first call deletes the matches, second is a no-op returning 0
        """

        async def scenario():
            cache = CacheService()
            await cache.set("cache:/api/reports/profit-loss:{}", {"success": True})
            await cache.set("cache:/api/reports/profit-loss:{\"a\":\"1\"}", {"success": True})
            await cache.set("cache:/api/finance/transactions:{}", {"success": True})
            first = await cache.invalidate("/api/reports")
            second = await cache.invalidate("/api/reports")
            remaining = (await cache.stats())["keys"]
            return first, second, remaining

        first, second, remaining = asyncio.run(scenario())
        assert (first, second) == (2, 0)
        assert remaining == ["cache:/api/finance/transactions:{}"]


class TestBackendFallback:
    def test_unreachable_redis_downgrades_to_memory(self):
        """
        Test: REDIS_URL points at a closed port
        Expected: operations keep working on the in-memory map
        """

        async def scenario():
            cache = CacheService("redis://127.0.0.1:1/0")
            await cache.connect()
            await cache.set("cache:key", {"success": True, "data": 1}, 60)
            value = await cache.get("cache:key")
            stats = await cache.stats()
            await cache.close()
            return value, stats

        value, stats = asyncio.run(scenario())
        assert value == {"success": True, "data": 1}
        assert stats["backend"] == "memory"
        assert stats["redisConfigured"] is True
        assert stats["redisAvailable"] is False

    def test_without_redis_url_memory_is_used(self):
        cache = CacheService()
        assert cache.backend.name == "memory"
        assert cache.redis_available is False


class TestReportCaching:
    def test_identical_get_is_served_from_cache(self, client, db, farm_setup):
        """
        Test: the same profit-loss GET twice within the TTL
        Expected: second response carries cached=true and the first payload,
                  even though the data changed underneath
        """
        owner, farm, headers = farm_setup
        record_directly(db, farm, owner, "100.00")

        first = client.get(f"{REPORT_URL}?startDate=2024-01-01", headers=headers)
        assert first.status_code == 200
        assert "cached" not in first.json()
        assert first.json()["data"]["totalIncome"] == 100.0

        stats = client.get("/api/reports/cache/stats", headers=headers).json()["data"]
        prefix = 'cache:/api/reports/profit-loss:{"startDate":"2024-01-01"}'
        assert any(key.startswith(prefix) for key in stats["keys"])

        record_directly(db, farm, owner, "50.00")
        second = client.get(f"{REPORT_URL}?startDate=2024-01-01", headers=headers)

        assert second.status_code == 200
        assert second.json()["cached"] is True
        assert second.json()["data"]["totalIncome"] == 100.0

    def test_invalidate_endpoint_forces_recompute(self, client, db, farm_setup):
        """
        Test: POST /api/reports/cache/invalidate with /api/reports, then the same GET
        Expected: cache miss and a freshly computed report
        """
        owner, farm, headers = farm_setup
        record_directly(db, farm, owner, "100.00")
        client.get(f"{REPORT_URL}?startDate=2024-01-01", headers=headers)
        record_directly(db, farm, owner, "50.00")

        invalidated = client.post(
            "/api/reports/cache/invalidate", json={"pattern": "/api/reports"}, headers=headers
        )
        assert invalidated.status_code == 200
        assert invalidated.json()["data"]["deleted"] == 1

        fresh = client.get(f"{REPORT_URL}?startDate=2024-01-01", headers=headers)
        assert "cached" not in fresh.json()
        assert fresh.json()["data"]["totalIncome"] == 150.0

    def test_query_order_does_not_matter(self, client, farm_setup):
        _, _, headers = farm_setup
        client.get(f"{REPORT_URL}?startDate=2024-01-01&endDate=2024-12-31", headers=headers)
        response = client.get(f"{REPORT_URL}?endDate=2024-12-31&startDate=2024-01-01", headers=headers)
        assert response.json()["cached"] is True

    def test_recording_a_transaction_invalidates_reports(self, client, farm_setup):
        _, _, headers = farm_setup
        client.get(REPORT_URL, headers=headers)

        created = client.post(
            "/api/finance/transactions",
            json={"type": "expense", "category": "feed", "amount": "40", "transactionDate": "2024-03-02"},
            headers=headers,
        )
        assert created.status_code == 201

        report = client.get(REPORT_URL, headers=headers).json()
        assert "cached" not in report
        assert report["data"]["totalExpenses"] == 40.0
        assert report["data"]["expensesByCategory"] == {"feed": 40.0}

    def test_farms_never_share_entries(self, client, db, make_user, make_farm, auth_headers):
        first_owner = make_user("first@example.com")
        second_owner = make_user("second@example.com")
        first = make_farm(first_owner, "North Field")
        second = make_farm(second_owner, "South Field")
        record_directly(db, first, first_owner, "100.00")

        client.get(REPORT_URL, headers=auth_headers(first_owner, farm=first))
        response = client.get(REPORT_URL, headers=auth_headers(second_owner, farm=second))

        assert "cached" not in response.json()
        assert response.json()["data"]["totalIncome"] == 0.0

    def test_errors_are_not_cached(self, client, farm_setup):
        _, _, headers = farm_setup
        bad = f"{REPORT_URL}?startDate=2024-02-01&endDate=2024-01-01"
        assert client.get(bad, headers=headers).status_code == 400
        stats = client.get("/api/reports/cache/stats", headers=headers).json()["data"]
        assert stats["keyCount"] == 0

    def test_viewer_cannot_invalidate(self, client, make_user, add_member, farm_setup, auth_headers):
        _, farm, _ = farm_setup
        viewer = make_user("viewer@example.com")
        add_member(farm, viewer, FarmRole.VIEWER)
        response = client.post(
            "/api/reports/cache/invalidate", json={}, headers=auth_headers(viewer, farm=farm)
        )
        assert response.status_code == 403


class TestCacheAdministration:
    def test_admin_only(self, client, make_user, auth_headers):
        admin = make_user("admin@example.com", role_name="admin")
        manager = make_user("manager@example.com", role_name="manager")

        assert client.get("/api/cache/stats", headers=auth_headers(manager)).status_code == 403

        response = client.get("/api/cache/stats", headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.json()["data"]["backend"] == "memory"

    def test_pattern_is_required(self, client, make_user, auth_headers):
        admin = make_user("admin@example.com", role_name="admin")
        response = client.post("/api/cache/invalidate", json={}, headers=auth_headers(admin))
        assert response.status_code == 400
        assert response.json()["errors"][0].startswith("body.pattern")


class TestFarmScopedCacheRoutes:
    def test_farm_admin_sees_and_clears_only_own_entries(self, client, make_user, make_farm, auth_headers):
        """
        Test: farm A caches a report, farm B's owner reads stats and invalidates '*'
        Expected: B sees no keys and deletes nothing; A's entry still serves hits
        """
        first_owner = make_user("first@example.com")
        second_owner = make_user("second@example.com")
        first_headers = auth_headers(first_owner, farm=make_farm(first_owner, "North Field"))
        second_headers = auth_headers(second_owner, farm=make_farm(second_owner, "South Field"))

        client.get(f"{REPORT_URL}?startDate=2024-01-01", headers=first_headers)

        stats = client.get("/api/reports/cache/stats", headers=second_headers).json()["data"]
        assert stats["keyCount"] == 0
        assert stats["keys"] == []

        cleared = client.post("/api/reports/cache/invalidate", json={"pattern": "*"}, headers=second_headers)
        assert cleared.status_code == 200
        assert cleared.json()["data"]["deleted"] == 0

        own_stats = client.get("/api/reports/cache/stats", headers=first_headers).json()["data"]
        assert own_stats["keyCount"] == 1

        hit = client.get(f"{REPORT_URL}?startDate=2024-01-01", headers=first_headers)
        assert hit.json()["cached"] is True

    def test_farm_invalidation_leaves_other_farms(self, client, make_user, make_farm, auth_headers):
        first_owner = make_user("first@example.com")
        second_owner = make_user("second@example.com")
        first_headers = auth_headers(first_owner, farm=make_farm(first_owner, "North Field"))
        second_headers = auth_headers(second_owner, farm=make_farm(second_owner, "South Field"))
        client.get(REPORT_URL, headers=first_headers)
        client.get(REPORT_URL, headers=second_headers)

        cleared = client.post("/api/reports/cache/invalidate", json={}, headers=first_headers)

        assert cleared.json()["data"]["deleted"] == 1
        assert client.get(REPORT_URL, headers=second_headers).json()["cached"] is True
