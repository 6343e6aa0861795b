"""Tests for analytics API routes."""

from datetime import UTC, datetime

import pytest
from sqlalchemy.exc import OperationalError

from app.features.analytics.routes import get_analytics_service
from app.features.analytics.service import AnalyticsService
from app.features.analytics.tests.conftest import (
    NOW,
    FailingRecordStore,
    make_record,
)
from tests.conftest import TEST_ACCOUNT


@pytest.fixture
def use_service(app):
    """Route requests to the given AnalyticsService."""

    def _use(service):
        app.dependency_overrides[get_analytics_service] = lambda: service

    return _use


@pytest.fixture
def fake_service(use_service, service):
    use_service(service)
    return service


class TestDashboardRoute:
    async def test_returns_dashboard(self, client, fake_service, record_store):
        record_store.records = [
            make_record(NOW, revenue=40, customer_id="A", category="tech", account_id=TEST_ACCOUNT),
        ]

        response = await client.get("/analytics/dashboard", params={"period": "daily", "timeframe": 2})

        assert response.status_code == 200
        data = response.json()
        assert data["period"] == "daily"
        assert data["timeframe"] == 2
        assert data["current_metrics"]["total_revenue"] == 40
        assert data["top_categories"] == [{"category": "tech", "revenue": 40.0, "orders": 1}]
        assert set(data["growth_rates"]) == {"revenue_growth", "customer_growth", "order_growth"}

    async def test_scoped_to_calling_account(self, client, fake_service, record_store):
        record_store.records = [make_record(NOW, revenue=40, account_id="other-account")]

        response = await client.get("/analytics/dashboard", params={"period": "daily"})

        assert response.json()["current_metrics"]["total_orders"] == 0

    async def test_unknown_period_is_422(self, client, fake_service):
        response = await client.get("/analytics/dashboard", params={"period": "yearly"})

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_timeframe_out_of_range_is_400(self, client, fake_service):
        response = await client.get("/analytics/dashboard", params={"timeframe": 13})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "INVALID_PARAMETER"
        assert body["retryable"] is False

    async def test_missing_account_is_401(self, anonymous_client, app, service):
        app.dependency_overrides[get_analytics_service] = lambda: service

        response = await anonymous_client.get("/analytics/dashboard")

        assert response.status_code == 401
        assert response.headers["content-type"] == "application/problem+json"
        app.dependency_overrides.clear()

    async def test_store_failure_is_503(self, client, use_service, rollup_store, cache, settings):
        use_service(
            AnalyticsService(
                records=FailingRecordStore(OperationalError("SELECT", {}, Exception("down"))),
                rollups=rollup_store,
                cache=cache,
                settings=settings,
                clock=lambda: NOW,
            )
        )

        response = await client.get("/analytics/dashboard")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        body = response.json()
        assert body["code"] == "UPSTREAM_UNAVAILABLE"
        assert body["retryable"] is True


class TestGenerateRoute:
    async def test_generates_rollup(self, client, fake_service, record_store, rollup_store):
        record_store.records = [make_record(NOW, revenue=12.5, account_id=TEST_ACCOUNT)]

        response = await client.post("/analytics/generate/monthly")

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Monthly rollup generated"
        assert data["rollup"]["period"] == "monthly"
        assert data["rollup"]["account_id"] == TEST_ACCOUNT
        assert data["rollup"]["metrics"]["total_revenue"] == 12.5
        assert rollup_store.upsert_calls == 1

    async def test_reference_query(self, client, fake_service):
        response = await client.post(
            "/analytics/generate/weekly", params={"reference": "2024-01-03T12:00:00Z"}
        )

        assert response.status_code == 200
        bucket = datetime.fromisoformat(response.json()["rollup"]["bucket_start"])
        assert bucket == datetime(2024, 1, 1, tzinfo=UTC)

    async def test_unknown_period_is_422(self, client, fake_service):
        response = await client.post("/analytics/generate/yearly")
        assert response.status_code == 422


class TestRevenueTrendsRoute:
    async def test_empty_trends(self, client, fake_service):
        response = await client.get("/analytics/revenue-trends", params={"period": "weekly", "days": 90})

        assert response.status_code == 200
        data = response.json()
        assert data["period"] == "weekly"
        assert data["days"] == 90
        assert data["trends"] == []

    async def test_trends_after_generation(self, client, fake_service):
        await client.post("/analytics/generate/daily")

        response = await client.get("/analytics/revenue-trends", params={"period": "daily", "days": 1})

        trends = response.json()["trends"]
        assert len(trends) == 1
        assert trends[0]["bucket_start"].startswith("2024-03-13T00:00:00")

    async def test_days_out_of_range_is_400(self, client, fake_service):
        response = await client.get("/analytics/revenue-trends", params={"days": 400})
        assert response.status_code == 400
