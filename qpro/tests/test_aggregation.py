import math

import pytest

from qpro.core.numbers import to_number_or_null
from qpro.models.activity import Activity
from qpro.models.strategic.plan import TargetScope
from qpro.services.aggregation_service import (
    aggregate,
    aggregate_document,
    effective_target,
    group_activities,
)


def test_percentage_is_averaged_not_summed():
    result = aggregate("percentage", 80, [{"reported": 70}, {"reported": 90}])
    assert result.total_reported == 80
    assert result.achievement_percent == 100


def test_percentage_normalizes_count_over_denominator():
    result = aggregate("percentage", 80, [{"reported": 154, "target": 200}])
    assert result.total_reported == pytest.approx(77.0)


def test_percentage_drops_unnormalizable_values():
    result = aggregate(
        "percentage",
        80,
        [{"reported": 60}, {"reported": 154}, {"reported": 500, "target": 100}, {"reported": None}],
    )
    assert result.total_reported == 60
    assert result.dropped_values == 2


def test_count_is_summed():
    result = aggregate("count", 10, [{"reported": 5}, {"reported": 3}])
    assert result.total_reported == 8
    assert result.achievement_percent == 80


def test_financial_parses_thousands_separators():
    result = aggregate("financial", 1_000_000, [{"reported": "250,000"}, {"reported": " 250000 "}])
    assert result.total_reported == 500_000
    assert result.achievement_percent == 50


def test_unparseable_values_count_as_zero_in_sums():
    result = aggregate("count", 10, [{"reported": "n/a"}, {"reported": 4}])
    assert result.total_reported == 4


def test_milestone_any_truthy():
    result = aggregate("milestone", None, [{"reported": 0}, {"reported": 1}])
    assert result.achievement_percent == 100
    assert result.total_reported == 1
    assert result.total_target == 1


def test_milestone_nothing_reported():
    result = aggregate("text_condition", None, [{"reported": 0}, {"reported": "   "}, {"reported": None}])
    assert result.achievement_percent == 0
    assert result.total_reported == 0


def test_text_condition_non_blank_string_is_truthy():
    assert aggregate("text_condition", None, [{"reported": "Very Satisfactory"}]).achievement_percent == 100


def test_unknown_type_is_additive():
    result = aggregate("mystery", 10, [{"reported": 2}, {"reported": 3}])
    assert result.total_reported == 5
    assert result.achievement_percent == 50
    assert aggregate(None, 10, [{"reported": 2}]).achievement_percent == 20


def test_per_unit_multiplies_only_with_explicit_multiplier():
    activities = [{"reported": 15}, {"reported": 0}, {"reported": 0}]
    with_units = aggregate("count", 10, activities, TargetScope.PER_UNIT, unit_multiplier=3)
    without_units = aggregate("count", 10, activities, TargetScope.PER_UNIT)
    assert with_units.total_target == 30
    assert with_units.achievement_percent == 50
    assert without_units.total_target == 10


def test_institutional_scope_ignores_multiplier():
    assert effective_target(10, TargetScope.INSTITUTIONAL, 3) == 10


def test_zero_or_missing_target_never_raises():
    assert aggregate("count", 0, [{"reported": 5}]).achievement_percent == 0
    assert aggregate("percentage", None, [{"reported": 50}]).achievement_percent == 0
    assert aggregate("count", 10, []).achievement_percent == 0


@pytest.mark.parametrize("raw", [None, "", "   ", "NaN", "Infinity", "-inf", True])
def test_to_number_or_null_rejects_absent_and_non_finite(raw):
    assert to_number_or_null(raw) is None


def test_to_number_or_null_parses_and_keeps_zero():
    assert to_number_or_null("1,234.5") == 1234.5
    assert to_number_or_null(0) == 0
    assert to_number_or_null(math.inf) is None


def test_group_activities_by_normalized_kra_and_kpi():
    activities = [
        Activity(name="a", kra_id="KRA5", initiative_id="KRA5-KPI1"),
        Activity(name="b", kra_id="KRA 5", initiative_id=" KRA5-KPI1 "),
        Activity(name="c", kra_id="KRA 3", initiative_id="KRA3-KPI5"),
    ]
    groups = group_activities(activities)
    assert list(groups) == [("KRA 5", "KRA5-KPI1"), ("KRA 3", "KRA3-KPI5")]
    assert [a.name for a in groups[("KRA 5", "KRA5-KPI1")]] == ["a", "b"]


def test_aggregate_document_skips_unresolvable_groups(plan):
    activities = [
        Activity(name="pub", kra_id="KRA 5", initiative_id="KRA5-KPI2", reported=6),
        Activity(name="pub 2", kra_id="KRA 5", initiative_id="KRA5-KPI2", reported="3"),
        Activity(name="ghost", kra_id="KRA 99", initiative_id="KRA99-KPI1", reported=4),
        Activity(name="no kpi", kra_id="KRA 5", reported=4),
    ]
    groups = aggregate_document(plan, activities, 2025)
    assert len(groups) == 1
    assert groups[0].result.total_reported == 9
    assert groups[0].result.achievement_percent == 75


def test_aggregation_is_idempotent(plan):
    activities = [
        Activity(name="a", kra_id="KRA 3", initiative_id="KRA3-KPI5", reported=70),
        Activity(name="b", kra_id="KRA 3", initiative_id="KRA3-KPI5", reported=90),
    ]
    first = aggregate_document(plan, activities, 2025)[0].result
    second = aggregate_document(plan, activities, 2025)[0].result
    assert first == second


def test_aggregate_document_groups_on_resolved_kpi(plan):
    activities = [
        Activity(name="a", kra_id="KRA 5", initiative_id="KRA5-KPI1", reported=3),
        Activity(name="b", kra_id="KRA5", initiative_id="KPI1", reported=4),
    ]
    groups = aggregate_document(plan, activities, 2025)
    assert len(groups) == 1
    assert (groups[0].kra_id, groups[0].initiative_id) == ("KRA 5", "KRA5-KPI1")
    assert groups[0].result.total_reported == 7
    assert [a.name for a in groups[0].activities] == ["a", "b"]
