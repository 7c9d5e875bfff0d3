from qpro.api.deps import get_rate_limiter
from qpro.core.rate_limiter import RateLimiter
from qpro.main import app

API = "/api/v1"


def _commit(client, analysis_id, activities, **extra):
    body = {"analysisId": analysis_id, "year": 2025, "quarter": 2, "activities": activities}
    body.update(extra)
    return client.post(f"{API}/kpi-contributions", json=body)


def _kpi_entry(client, kra_id, initiative_id, quarter=2):
    response = client.get(
        f"{API}/kpi-progress", params={"year": 2025, "kraId": kra_id, "quarter": quarter}
    )
    assert response.status_code == 200
    for initiative in response.json()["data"]["initiatives"]:
        if initiative["id"] == initiative_id:
            return initiative["progress"][0]
    raise AssertionError(f"{initiative_id} no está en {kra_id}")


# ========== PLAN ESTRATÉGICO ==========
def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "version" in response.json()


def test_list_kras_in_plan_order(client):
    response = client.get(f"{API}/strategic-plan/kras")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [k["kra_id"] for k in body["data"]][:3] == ["KRA 1", "KRA 3", "KRA 4"]
    assert body["metadata"]["total"] == 7


def test_list_initiatives_accepts_compact_kra_id(client):
    response = client.get(f"{API}/strategic-plan/kras/kra5/initiatives")
    assert response.status_code == 200
    ids = [i["id"] for i in response.json()["data"]]
    assert ids == ["KRA5-KPI1", "KRA5-KPI2"]


def test_list_initiatives_unknown_kra(client):
    response = client.get(f"{API}/strategic-plan/kras/KRA 40/initiatives")
    assert response.status_code == 404


# ========== METAS ==========
def test_resolve_target(client):
    response = client.get(
        f"{API}/kpi-targets",
        params={"kraId": "KRA5", "initiativeId": "KRA5-KPI2", "year": 2025},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["target_type"] == "count"
    assert body["target_value"] == 12


def test_resolve_target_financial_with_separators(client):
    response = client.get(
        f"{API}/kpi-targets",
        params={"kraId": "KRA 19", "initiativeId": "KRA19-KPI1", "year": 2026},
    )
    assert response.json()["target_value"] == 2000000


def test_unknown_target_is_null_not_zero(client):
    response = client.get(
        f"{API}/kpi-targets",
        params={"kraId": "KRA 40", "initiativeId": "KRA40-KPI1", "year": 2025},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["target_type"] is None
    assert body["target_value"] is None


# ========== AGREGACIÓN ==========
def test_aggregate_count(client):
    response = client.post(
        f"{API}/aggregations",
        json={
            "target_type": "count",
            "target_value": 10,
            "activities": [{"reported": 5}, {"reported": "3"}, {"reported": "n/a"}],
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["total_reported"] == 8
    assert body["achievement_percent"] == 80


def test_aggregate_percentage_drops_out_of_range(client):
    response = client.post(
        f"{API}/aggregations",
        json={
            "target_type": "percentage",
            "target_value": 80,
            "activities": [
                {"reported": 80},
                {"reported": 150, "target": 200},
                {"reported": 500},
            ],
        },
    )
    body = response.json()
    assert body["total_reported"] == 77.5
    assert body["dropped_values"] == 1


def test_aggregate_resolves_per_unit_target_from_plan(client):
    response = client.post(
        f"{API}/aggregations",
        json={
            "kra_id": "KRA8",
            "initiative_id": "KRA8-KPI1",
            "year": 2025,
            "unit_multiplier": 2,
            "activities": [{"reported": 4}],
        },
    )
    body = response.json()
    assert body["target_type"] == "count"
    assert body["effective_target"] == 20
    assert body["achievement_percent"] == 20


def test_aggregate_milestone(client):
    response = client.post(
        f"{API}/aggregations",
        json={"target_type": "milestone", "activities": [{"reported": "  "}, {"reported": "done"}]},
    )
    assert response.json()["achievement_percent"] == 100


def test_validate_assignments(client):
    response = client.post(
        f"{API}/aggregations/validate",
        json={
            "activities": [
                {"name": "Research output", "kraId": "KRA 5", "initiativeId": "KRA5-KPI1"},
                {"name": "Unassigned", "kraId": ""},
                {"name": "Outreach caravan", "kraId": "KRA 3"},
            ],
            "changed_indices": [2],
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is False
    assert list(body["kra_errors"]) == ["1"]
    assert list(body["kpi_errors"]) == ["2"]
    assert body["mismatches"] == {"2": True}


def test_export_returns_workbook(client, sample_analysis):
    response = client.post(
        f"{API}/aggregations/export",
        json={"analysis_id": "analysis-1", "year": 2025, "activities": sample_analysis["activities"]},
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert response.content[:2] == b"PK"


def test_export_is_rate_limited(client, sample_analysis):
    limiter = RateLimiter(1, 60)
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    body = {"year": 2025, "activities": sample_analysis["activities"]}
    assert client.post(f"{API}/aggregations/export", json=body).status_code == 200
    response = client.post(f"{API}/aggregations/export", json=body)
    assert response.status_code == 429
    assert int(response.headers["retry-after"]) > 0


# ========== PROGRESO ==========
def test_progress_without_records_has_empty_quarters(client):
    response = client.get(f"{API}/kpi-progress", params={"year": 2025, "kraId": "KRA 5"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["kraId"] == "KRA 5"
    kpi2 = data["initiatives"][1]
    assert [e["quarter"] for e in kpi2["progress"]] == [1, 2, 3, 4]
    assert kpi2["progress"][0]["targetValue"] == 12
    assert kpi2["progress"][0]["valueSource"] == "none"

    single = client.get(
        f"{API}/kpi-progress", params={"year": 2025, "kraId": "KRA 5", "quarter": 3}
    ).json()["data"]
    assert [e["quarter"] for e in single["initiatives"][0]["progress"]] == [3]


def test_progress_unknown_kra(client):
    response = client.get(f"{API}/kpi-progress", params={"year": 2025, "kraId": "KRA 40"})
    assert response.status_code == 404


def test_commit_contributions(client, sample_analysis):
    activities = sample_analysis["activities"] + [
        {"name": "Unplanned activity", "kraId": "KRA 40", "initiativeId": "KRA40-KPI1", "reported": 1}
    ]
    response = _commit(client, "analysis-1", activities)
    assert response.status_code == 200
    body = response.json()
    by_kpi = {c["initiativeId"]: c for c in body["contributions"]}
    assert by_kpi["KRA5-KPI1"]["totalReported"] == 3
    assert by_kpi["KRA5-KPI1"]["achievementPercent"] == 30
    assert by_kpi["KRA5-KPI1"]["status"] == "MISSED"
    assert by_kpi["KRA5-KPI1"]["version"] == 1
    assert by_kpi["KRA3-KPI5"]["achievementPercent"] == 95
    assert by_kpi["KRA3-KPI5"]["status"] == "ON_TRACK"
    assert [s["kraId"] for s in body["skipped"]] == ["KRA 40"]


def test_reapproval_replaces_contribution(client):
    activity = {"name": "Research publication", "kraId": "KRA 5", "initiativeId": "KRA5-KPI1"}
    _commit(client, "analysis-1", [{**activity, "reported": 3}])
    _commit(client, "analysis-1", [{**activity, "reported": 5}])
    _commit(client, "analysis-2", [{**activity, "reported": 4}])

    entry = _kpi_entry(client, "KRA 5", "KRA5-KPI1")
    assert entry["currentValue"] == 9
    assert entry["submissionCount"] == 2
    assert entry["version"] == 3
    assert entry["valueSource"] == "qpro"

    response = client.delete(f"{API}/kpi-contributions/analysis-2")
    assert response.status_code == 200
    assert response.json()["data"]["updated_kpis"] == 1
    entry = _kpi_entry(client, "KRA 5", "KRA5-KPI1")
    assert entry["currentValue"] == 5
    assert entry["version"] == 4


def test_stale_version_is_rejected(client):
    activity = {"name": "Research publication", "kraId": "KRA 5", "initiativeId": "KRA5-KPI1"}
    _commit(client, "analysis-1", [{**activity, "reported": 3}])
    _commit(client, "analysis-2", [{**activity, "reported": 2}])

    response = _commit(
        client,
        "analysis-3",
        [{**activity, "reported": 7}],
        expectedVersions={"KRA 5|KRA5-KPI1": 1},
    )
    assert response.status_code == 409
    entry = _kpi_entry(client, "KRA 5", "KRA5-KPI1")
    assert entry["currentValue"] == 5
    assert entry["version"] == 2

    response = _commit(
        client,
        "analysis-3",
        [{**activity, "reported": 7}],
        expectedVersions={"KRA 5|KRA5-KPI1": 2},
    )
    assert response.status_code == 200


def test_manual_override(client):
    body = {
        "kraId": "KRA 5",
        "initiativeId": "KRA5-KPI2",
        "year": 2025,
        "quarter": 1,
        "value": 6,
        "reason": "Conteo verificado por la oficina",
        "userId": 7,
    }
    response = client.put(f"{API}/kpi-progress/override", json=body)
    assert response.status_code == 200
    entry = response.json()
    assert entry["valueSource"] == "manual"
    assert entry["currentValue"] == 6
    assert entry["achievementPercent"] == 50
    assert entry["manualOverrideBy"] == 7
    assert entry["version"] == 1

    stale = client.put(f"{API}/kpi-progress/override", json={**body, "expectedVersion": 0})
    assert stale.status_code == 409

    cleared = client.put(
        f"{API}/kpi-progress/override", json={**body, "value": None, "expectedVersion": 1}
    )
    assert cleared.status_code == 200
    assert cleared.json()["valueSource"] == "none"
    assert cleared.json()["manualOverrideReason"] is None


def test_manual_override_unknown_kpi(client):
    response = client.put(
        f"{API}/kpi-progress/override",
        json={"kraId": "KRA 5", "initiativeId": "KRA5-KPI9", "year": 2025, "value": 1},
    )
    assert response.status_code == 404


def test_commit_merges_kpi_id_variants(client):
    response = _commit(
        client,
        "analysis-1",
        [
            {"name": "Research publication", "kraId": "KRA 5", "initiativeId": "KRA5-KPI1", "reported": 3},
            {"name": "Journal article", "kraId": "KRA5", "initiativeId": "KPI1", "reported": 4},
        ],
    )
    assert response.status_code == 200
    body = response.json()
    assert body["skipped"] == []
    assert [c["initiativeId"] for c in body["contributions"]] == ["KRA5-KPI1"]
    assert body["contributions"][0]["totalReported"] == 7
    assert _kpi_entry(client, "KRA 5", "KRA5-KPI1")["currentValue"] == 7


def test_reapproval_in_another_quarter_moves_contribution(client):
    activity = {"name": "Research publication", "kraId": "KRA 5", "initiativeId": "KRA5-KPI1", "reported": 3}
    _commit(client, "analysis-1", [activity], quarter=1)
    assert _kpi_entry(client, "KRA 5", "KRA5-KPI1", quarter=1)["currentValue"] == 3

    response = _commit(client, "analysis-1", [activity], quarter=2)
    assert response.status_code == 200
    old_quarter = _kpi_entry(client, "KRA 5", "KRA5-KPI1", quarter=1)
    assert old_quarter["currentValue"] == 0
    assert old_quarter["submissionCount"] == 0
    assert _kpi_entry(client, "KRA 5", "KRA5-KPI1", quarter=2)["currentValue"] == 3
