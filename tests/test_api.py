"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from app import app
from costview import allocation
from costview.allocation import CostApiError
from costview.models import ClusterSavingsSummary, CostRecord, EfficiencyRecord

CURRENT = {
    "web": CostRecord(name="web", total_cost=100),
    "db": CostRecord(name="db", total_cost=40),
    "new": CostRecord(name="new", total_cost=5),
    "__idle__": CostRecord(name="__idle__", total_cost=60),
}
PRIOR = {
    "web": CostRecord(name="web", total_cost=80),
    "db": CostRecord(name="db", total_cost=50),
    "gone": CostRecord(name="gone", total_cost=10),
}
EFFICIENCIES = [
    EfficiencyRecord(name="web", cpu_cost=80, ram_cost=20, cpu_efficiency=0.5, memory_efficiency=1.0, cost_savings=10),
    EfficiencyRecord(name="db", cpu_cost=10, ram_cost=30, cpu_efficiency=0.2, memory_efficiency=0.4, cost_savings=4),
]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def backend(monkeypatch):
    """Serve canned datasets instead of calling the cost API."""
    calls = []
    state = {"fail_prior": False, "fail_current": False, "fail_efficiency": False}

    def fake_fetch_allocation(window, aggregate, accumulate=True, include_idle=False):
        calls.append(("allocation", window, aggregate))
        if "," in window:
            if state["fail_prior"]:
                raise CostApiError("prior unavailable")
            return dict(PRIOR)
        if state["fail_current"]:
            raise CostApiError("backend down")
        return dict(CURRENT)

    def fake_fetch_efficiency(window, aggregate, **options):
        calls.append(("efficiency", window, aggregate, options))
        if state["fail_efficiency"]:
            raise CostApiError("efficiency unavailable")
        return list(EFFICIENCIES), ClusterSavingsSummary(scale_down_likely=False)

    monkeypatch.setattr(allocation, "fetch_allocation", fake_fetch_allocation)
    monkeypatch.setattr(allocation, "fetch_efficiency", fake_fetch_efficiency)
    state["calls"] = calls
    return state


class TestBasics:
    """Tests for health, version and window endpoints."""

    def test_health(self, client) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_version(self, client) -> None:
        assert client.get("/version").json()["version"] == "0.1.0"

    def test_windows(self, client) -> None:
        values = [item["value"] for item in client.get("/windows").json()]

        assert values == ["today", "yesterday", "24h", "48h", "week", "lastweek", "7d", "14d"]

    def test_prior_window(self, client) -> None:
        response = client.get("/windows/prior", params={"window": "2024-01-08T00:00:00Z,2024-01-15T00:00:00Z"})

        assert response.json()["priorWindow"] == "2024-01-01T00:00:00Z,2024-01-08T00:00:00Z"


class TestComparison:
    """Tests for /comparison."""

    def test_rows_and_totals(self, client, backend) -> None:
        response = client.get("/comparison", params={"window": "7d", "agg": "namespace"})

        assert response.status_code == 200
        body = response.json()
        assert body["table"]["total"] == 4
        assert [row["name"] for row in body["table"]["rows"]] == ["web", "db", "new", "gone"]
        web = body["table"]["rows"][0]
        assert web["currentCost"] == 100
        assert web["priorCost"] == 80
        assert web["changePct"] == 25
        assert body["totals"]["currentCost"] == 145
        assert body["totals"]["priorCost"] == 140
        assert body["warnings"] == []

    def test_prior_window_is_fetched(self, client, backend) -> None:
        body = client.get("/comparison", params={"window": "2024-01-08T00:00:00Z,2024-01-15T00:00:00Z"}).json()

        assert body["priorWindow"] == "2024-01-01T00:00:00Z,2024-01-08T00:00:00Z"
        assert ("allocation", "2024-01-01T00:00:00Z,2024-01-08T00:00:00Z", "namespace") in backend["calls"]

    def test_sort_and_page(self, client, backend) -> None:
        body = client.get(
            "/comparison", params={"order_by": "change", "direction": "asc", "page": 1, "page_size": 10}
        ).json()

        assert body["table"]["page"] == 1
        assert body["table"]["rows"] == []

        body = client.get("/comparison", params={"order_by": "change", "direction": "asc", "page_size": 10}).json()
        assert [row["name"] for row in body["table"]["rows"]] == ["db", "gone", "new", "web"]

    def test_prior_failure_degrades(self, client, backend) -> None:
        backend["fail_prior"] = True

        body = client.get("/comparison").json()

        assert body["totals"]["priorCost"] == 0
        assert body["warnings"][0]["primary"] == "Failed to load prior period data"

    def test_current_failure(self, client, backend) -> None:
        backend["fail_current"] = True

        assert client.get("/comparison").status_code == 502

    def test_invalid_window(self, client, backend) -> None:
        assert client.get("/comparison", params={"window": "fortnight"}).status_code == 400

    def test_invalid_page_size(self, client, backend) -> None:
        assert client.get("/comparison", params={"page_size": 20}).status_code == 422

    def test_invalid_direction(self, client, backend) -> None:
        assert client.get("/comparison", params={"direction": "up"}).status_code == 422


class TestEfficiency:
    """Tests for /efficiency."""

    def test_summary_and_table(self, client, backend) -> None:
        body = client.get("/efficiency").json()

        assert body["summary"]["totalSavings"] == 14
        assert body["summary"]["clusterEfficiency"] == pytest.approx((40 + 20 + 2 + 12) / 140)
        assert body["summary"]["belowTargetCount"] == 1
        assert [row["name"] for row in body["table"]["rows"]] == ["web", "db"]
        assert [score["name"] for score in body["scores"]] == ["db", "web"]
        assert body["scores"][1]["blendedEfficiency"] == pytest.approx(0.6)

    def test_show_small_and_system(self, client, backend) -> None:
        client.get("/efficiency", params={"show_small": "true", "show_system": "true"})

        options = backend["calls"][-1][3]
        assert options == {"min_savings": 0, "min_savings_percent": 0, "exclude_system": False}

    def test_failure(self, client, backend) -> None:
        backend["fail_efficiency"] = True

        assert client.get("/efficiency").status_code == 502


class TestOverview:
    """Tests for /overview."""

    def test_overview(self, client, backend) -> None:
        body = client.get("/overview").json()

        assert body["totalSpend"] == 145
        assert body["priorSpend"] == 140
        assert body["changePct"] == pytest.approx(5 / 140 * 100)
        assert body["totalSavings"] == 14
        assert [row["name"] for row in body["topCostDrivers"]] == ["web", "db", "new"]
        assert body["topCostDrivers"][0]["efficiency"] == pytest.approx(0.6)

    def test_efficiency_failure_degrades(self, client, backend) -> None:
        backend["fail_efficiency"] = True

        body = client.get("/overview").json()

        assert body["clusterEfficiency"] == 0
        assert body["topCostDrivers"][0]["efficiency"] == 0
        assert body["warnings"][0]["primary"] == "Failed to load efficiency data"

    def test_cluster_efficiency_falls_back_to_allocations(self, client, backend, monkeypatch) -> None:
        backend["fail_efficiency"] = True
        current = {
            "web": CostRecord(name="web", total_cost=100, total_efficiency=0.7),
            "db": CostRecord(name="db", total_cost=300, total_efficiency=0.3),
            "__idle__": CostRecord(name="__idle__", total_cost=500, total_efficiency=0.0),
        }
        monkeypatch.setattr(
            allocation, "fetch_allocation",
            lambda window, aggregate, **kwargs: {} if "," in window else dict(current),
        )

        body = client.get("/overview").json()

        assert body["clusterEfficiency"] == pytest.approx((70 + 90) / 400)

    def test_single_allocation_efficiency(self, client, backend, monkeypatch) -> None:
        backend["fail_efficiency"] = True
        monkeypatch.setattr(
            allocation, "fetch_allocation",
            lambda window, aggregate, **kwargs: {"web": CostRecord(name="web", total_cost=100, total_efficiency=0.7)},
        )

        assert client.get("/overview").json()["clusterEfficiency"] == pytest.approx(0.7)

    def test_measured_efficiency_wins_over_allocations(self, client, backend, monkeypatch) -> None:
        monkeypatch.setattr(
            allocation, "fetch_allocation",
            lambda window, aggregate, **kwargs: {"web": CostRecord(name="web", total_cost=100, total_efficiency=0.1)},
        )

        body = client.get("/overview").json()

        assert body["clusterEfficiency"] == pytest.approx(74 / 140)
