import pytest
from pydantic import ValidationError

from qpro.models.activity import Activity, ActivityStatus
from qpro.schemas.analysis import parse_analysis


def test_flat_shape_is_normalized(sample_analysis):
    snapshot = parse_analysis(sample_analysis, "fallback")
    assert snapshot.analysis_id == "analysis-1"
    assert snapshot.year == 2025
    assert snapshot.quarter == 2
    assert [a.initiative_id for a in snapshot.activities] == ["KRA5-KPI1", "KRA8-KPI1", "KRA3-KPI5"]


def test_nested_shape_uses_group_ids_as_defaults():
    payload = {
        "year": 2025,
        "organizedActivities": [
            {
                "kraId": "KRA 5",
                "kraTitle": "Research",
                "kpiId": "KRA5-KPI2",
                "activities": [
                    {"title": "Patent filed", "reported": 1, "target": 12},
                    {"name": "Prototype", "initiativeId": "KRA5-KPI1", "reported": "2"},
                ],
            },
            {"kraId": "KRA 3", "activities": [{"name": "Tracer", "reported": 80}]},
        ],
        "alignment": "Alineado con el plan",
    }
    snapshot = parse_analysis(payload, "analysis-9")
    assert snapshot.analysis_id == "analysis-9"
    assert [(a.name, a.kra_id, a.initiative_id) for a in snapshot.activities] == [
        ("Patent filed", "KRA 5", "KRA5-KPI2"),
        ("Prototype", "KRA 5", "KRA5-KPI1"),
        ("Tracer", "KRA 3", None),
    ]
    assert snapshot.document_fields == {"alignment": "Alineado con el plan"}


def test_invalid_shape_raises_validation_error():
    with pytest.raises(ValidationError):
        parse_analysis({"activities": [{"name": "x", "kraId": ["bad"]}]}, "a")


def test_activity_payload_keeps_unknown_fields():
    activity = Activity.from_payload(
        {"name": "x", "kraId": "KRA 1", "reported": 2, "target": 4, "customFlag": True}
    )
    payload = activity.to_payload()
    assert payload["customFlag"] is True
    assert payload["kraId"] == "KRA 1"


def test_recompute_achievement_and_status():
    activity = Activity(name="x", reported="5", target=4)
    activity.recompute_achievement()
    assert activity.achievement == 125
    assert activity.status == ActivityStatus.MET

    activity.target = 0
    activity.recompute_achievement()
    assert activity.achievement == 0
    assert activity.status == ActivityStatus.MISSED
