import pytest

from qpro.models.activity import Activity
from qpro.models.progress import ProgressStatus
from qpro.schemas.progress import KPIProgressResponse
from qpro.services.progress_service import (
    ProgressRecord,
    annual_progress,
    classify_status,
    combine,
    compute_document_progress,
    document_achievement,
    review_summary,
)


def test_cumulative_progress_and_cap():
    first = combine(40, 50, 100)
    assert first.new_total == 90
    assert first.raw_achievement == 90
    assert first.displayed_achievement == 90

    second = combine(first.new_total, 30, 100)
    assert second.raw_achievement == 120
    assert second.displayed_achievement == 100


def test_combine_zero_target():
    progress = combine(10, 5, 0)
    assert progress.raw_achievement == 0
    assert progress.displayed_achievement == 0


def test_document_achievement_is_unweighted_mean():
    assert document_achievement([100, 50, 0]) == pytest.approx(50)
    assert document_achievement([]) == 0


@pytest.mark.parametrize(
    "achievement, target_type, expected",
    [
        (100, "count", ProgressStatus.MET),
        (85, "count", ProgressStatus.ON_TRACK),
        (40, "percentage", ProgressStatus.MISSED),
        (0, "count", ProgressStatus.PENDING),
        (50, "milestone", ProgressStatus.PENDING),
        (100, "milestone", ProgressStatus.MET),
    ],
)
def test_classify_status(achievement, target_type, expected):
    assert classify_status(achievement, target_type, on_track_threshold=80) == expected


def test_annual_progress_sums_same_year_quarters():
    response = KPIProgressResponse.model_validate(
        {
            "success": True,
            "year": 2025,
            "data": {
                "kraId": "KRA5",
                "kraTitle": "Research",
                "initiatives": [
                    {
                        "id": "KRA5-KPI1",
                        "progress": [
                            {"initiativeId": "KRA5-KPI1", "year": 2025, "quarter": 1, "targetValue": 10, "currentValue": 2, "version": 1},
                            {"initiativeId": "KRA5-KPI1", "year": 2025, "quarter": 2, "targetValue": 10, "currentValue": "3", "version": 4},
                            {"initiativeId": "KRA5-KPI1", "year": 2024, "quarter": 4, "targetValue": 10, "currentValue": 9},
                        ],
                    },
                    {"id": "KRA5-KPI2", "progress": []},
                ],
            },
        }
    )
    records = annual_progress(response, 2025)
    assert records == {("KRA 5", "KRA5-KPI1"): ProgressRecord(current=5.0, target=10.0, version=4)}


def _activities():
    return [
        Activity(name="pub", kra_id="KRA 5", initiative_id="KRA5-KPI2", reported=6, target=12),
        Activity(name="rate", kra_id="KRA 3", initiative_id="KRA3-KPI5", reported=70),
        Activity(name="rate 2", kra_id="KRA 3", initiative_id="KRA3-KPI5", reported=90),
    ]


def test_document_progress_without_previous_is_local(plan):
    progress = compute_document_progress(plan, _activities(), 2025)
    by_kpi = {k.initiative_id: k for k in progress.kpis}
    assert by_kpi["KRA5-KPI2"].progress.displayed_achievement == 50
    assert by_kpi["KRA3-KPI5"].progress.displayed_achievement == 100
    assert progress.achievement == 75


def test_document_progress_folds_previous_for_additive_only(plan):
    previous = {
        ("KRA 5", "KRA5-KPI2"): ProgressRecord(current=3, target=12),
        ("KRA 3", "KRA3-KPI5"): ProgressRecord(current=75, target=80),
    }
    progress = compute_document_progress(plan, _activities(), 2025, previous)
    by_kpi = {k.initiative_id: k for k in progress.kpis}

    count_kpi = by_kpi["KRA5-KPI2"]
    assert count_kpi.cumulative
    assert count_kpi.progress.new_total == 9
    assert count_kpi.progress.displayed_achievement == 75

    rate_kpi = by_kpi["KRA3-KPI5"]
    assert not rate_kpi.cumulative
    assert rate_kpi.progress.new_total == 80
    assert rate_kpi.progress.displayed_achievement == 100


def test_review_summary_groups_by_kpi():
    activities = [
        Activity(name="a", initiative_id="KRA5-KPI2", reported=6, target=12, achievement=50),
        Activity(name="b", initiative_id="KRA5-KPI2", reported=6, target=12, achievement=50),
        Activity(name="c", initiative_id="KRA3-KPI5", reported=40, target=80, achievement=50),
        Activity(name="d", reported=1, target=0, achievement=0),
    ]
    summary = review_summary(activities)
    assert summary.total_activities == 4
    assert summary.met_count == 1
    assert summary.missed_count == 1
    assert summary.avg_achievement == pytest.approx(75)


def test_review_summary_falls_back_to_activity_mean():
    activities = [
        Activity(name="a", reported=1, target=0, achievement=20),
        Activity(name="b", reported=1, target=None, achievement=40),
    ]
    assert review_summary(activities).avg_achievement == pytest.approx(30)
    assert review_summary([]).avg_achievement == 0
