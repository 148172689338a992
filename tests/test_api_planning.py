"""
Planning, reporting and health endpoints.

Demands are written straight through the repository with fixed timestamps so
every view can be pinned with ``as_of`` / explicit date windows.
"""

from datetime import timedelta

import pytest

from app.models.domain import Demand, DemandStatus

AS_OF = "2026-03-11T09:00:00Z"


@pytest.fixture()
def board(repo, reference, now):
    monday = now - timedelta(days=2, hours=9)
    demands = [
        Demand(id="dem-active", title="Payroll export", created_at=monday - timedelta(days=3),
               status=DemandStatus.IN_EXECUTION, person_id="person-alice", coordination_id="coord-eng",
               category="cat-feature", effort=4, started_at=monday),
        Demand(id="dem-queued", title="Expense policy review", created_at=monday,
               status=DemandStatus.QUEUED, person_id="person-alice", coordination_id="coord-eng",
               effort=16),
        Demand(id="dem-done", title="Vendor scorecard", created_at=monday - timedelta(days=10),
               status=DemandStatus.COMPLETED, person_id="person-bruno", coordination_id="coord-eng",
               effort=8, started_at=monday - timedelta(days=9), finished_at=monday - timedelta(days=1),
               delay_justification="Waiting on vendor"),
    ]
    for demand in demands:
        repo.create_demand(demand)
    return demands


class TestPlanning:
    def test_timeline(self, client, board):
        res = client.get("/api/v1/planning/timeline",
                         query_string={"as_of": AS_OF, "start": "2026-03-09", "end": "2026-03-22"})
        assert res.status_code == 200
        rows = {row["person"]["id"]: row for row in res.get_json()["rows"]}
        alice = {i["demand_id"]: i for i in rows["person-alice"]["intervals"]}
        assert alice["dem-active"]["kind"] == "actual"
        assert alice["dem-queued"]["kind"] == "projected"
        assert alice["dem-queued"]["start"] == alice["dem-active"]["end"]
        assert "person-bruno" not in rows

    def test_allocation(self, client, board):
        res = client.get("/api/v1/planning/allocation", query_string={"start": "2026-03-09", "end": "2026-03-13"})
        assert res.status_code == 200
        body = res.get_json()
        assert body["working_days"] == 5
        people = {p["person_id"]: p for p in body["people"]}
        assert people["person-alice"]["allocated"] == 24
        assert people["person-alice"]["capacity"] == 40
        assert people["person-bruno"]["allocated"] == 0

    def test_allocation_bad_range(self, client, board):
        res = client.get("/api/v1/planning/allocation", query_string={"start": "2026-03-13", "end": "2026-03-09"})
        assert res.status_code == 400

    def test_team_allocation(self, client, board):
        res = client.get("/api/v1/planning/allocation/teams",
                         query_string={"start": "2026-03-09", "end": "2026-03-13"})
        [team] = res.get_json()["teams"]
        assert team["people"] == 2
        assert team["capacity"] == 80
        assert team["utilization"] == 30

    def test_heatmap(self, client, board):
        res = client.get("/api/v1/planning/heatmap", query_string={"start": "2026-03-09", "end": "2026-03-15"})
        body = res.get_json()
        assert len(body["weeks"]) == 1
        assert body["teams"][0]["cells"][0]["load"] == 24
        assert body["total"][0]["capacity"] == 80

    def test_occupation(self, client, board):
        res = client.get("/api/v1/planning/occupation", query_string={"as_of": AS_OF, "weeks": 2})
        [team] = res.get_json()["teams"]
        assert [w["week_start"] for w in team["weeks"]] == ["2026-03-08", "2026-03-15"]
        assert team["weeks"][0]["load"] == 24

    def test_occupation_weeks_bounds(self, client, board):
        assert client.get("/api/v1/planning/occupation?weeks=0").status_code == 400

    def test_at_risk_and_delayed(self, client, board):
        res = client.get("/api/v1/planning/at-risk", query_string={"as_of": AS_OF})
        assert [i["demand"]["id"] for i in res.get_json()["items"]] == ["dem-active"]

        res = client.get("/api/v1/planning/delayed", query_string={"as_of": AS_OF})
        assert [d["id"] for d in res.get_json()["items"]] == ["dem-active", "dem-done"]

    def test_deadline_suggestion(self, client, board):
        res = client.get("/api/v1/planning/deadline-suggestion",
                         query_string={"as_of": AS_OF, "person_id": "person-alice", "effort": 12})
        assert res.status_code == 200
        # (4 + 16 + 12) / 8 = 4 days, × 1.4 = 5.6 → 6
        assert res.get_json()["suggested_deadline"] == "2026-03-17"

    def test_deadline_requires_person(self, client, board):
        assert client.get("/api/v1/planning/deadline-suggestion").status_code == 400

    @pytest.mark.parametrize("effort", ["nan", "inf", "-inf", "-1", "10001", "lots"])
    def test_deadline_rejects_bad_effort(self, client, board, effort):
        res = client.get("/api/v1/planning/deadline-suggestion",
                         query_string={"as_of": AS_OF, "person_id": "person-alice", "effort": effort})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    @pytest.mark.parametrize("params", [
        {"start": "0001-01-01", "end": "9999-12-31"},
        {"start": "2026-01-01", "end": "2027-01-03"},
        {"start": "9999-12-31"},
        {"start": "9999-12-20", "end": "9999-12-31"},
    ])
    def test_heatmap_rejects_oversized_ranges(self, client, board, params):
        res = client.get("/api/v1/planning/heatmap", query_string=params)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_full_year_range_is_accepted(self, client, board):
        res = client.get("/api/v1/planning/allocation", query_string={"start": "2026-01-01", "end": "2026-12-31"})
        assert res.status_code == 200


class TestReports:
    def test_flow(self, client, board):
        body = client.get("/api/v1/reports/flow").get_json()
        assert body["total"] == 3
        assert body["wip"] == 1
        assert body["throughput"] == 1
        assert body["late_count"] == 1

    def test_monthly(self, client, board):
        months = client.get("/api/v1/reports/monthly?year=2026").get_json()["months"]
        assert months[0]["month"] == "2026-03"
        assert months[0]["finished"] == 1

    def test_forecast(self, client, board):
        body = client.get("/api/v1/reports/forecast", query_string={"as_of": AS_OF}).get_json()
        assert body["in_progress"] == 1
        assert body["avg_lead_time_days"] == 9

    def test_bottleneck(self, client, board):
        body = client.get("/api/v1/reports/bottleneck").get_json()
        assert body["bottleneck"]["coordination_id"] == "coord-eng"
        assert body["bottleneck"]["waiting"] == 1
        assert [d["id"] for d in body["recent_wins"]] == ["dem-done"]

    def test_delivery(self, client, board):
        body = client.get("/api/v1/reports/delivery",
                          query_string={"start": "2026-03-01", "end": "2026-03-31"}).get_json()
        assert body["delivered"] == 1
        assert body["on_time_pct"] == 0

    def test_sla_compliance(self, client, board):
        body = client.get("/api/v1/reports/sla").get_json()
        assert body["evaluated"] == 0
        assert body["compliance_pct"] is None


class TestHealth:
    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}

    def test_live_counts_rows(self, client, board):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["data"] == {"demands": 3, "people": 2}
