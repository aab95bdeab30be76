import pytest

from csv_tscore.engine import (
    Configuration,
    analyze,
    compute_entity_averages,
    composite_score,
    period_set,
    rank_by_composite,
    rank_by_metric,
    score_band,
    t_score,
    to_number,
    token_predicate,
)
from csv_tscore.errors import ConfigurationError
from csv_tscore.parser import parse_table
from csv_tscore.rules import METRO_COHORT, NATIONWIDE_COHORT


def test_to_number():
    assert to_number("80") == 80.0
    assert to_number(" 80.5 ") == 80.5
    assert to_number("-3") == -3.0
    assert to_number(".5") == 0.5
    assert to_number("80점") == 80.0
    assert to_number("") == 0.0
    assert to_number("n/a") == 0.0
    assert to_number("inf") == 0.0
    assert to_number(None) == 0.0


def test_period_set_sorted_and_non_empty():
    table = parse_table("k,y\na,2021\nb,\nc,2019\nd,2021\n")
    assert period_set(table, "y") == ("2019", "2021")
    assert period_set(table, None) == ()


def test_duplicate_selection_rejected():
    with pytest.raises(ConfigurationError):
        Configuration(entity_field="School", metric_fields=("Score",), selected_entities=("A", "A"))


def test_school_scenario(school_table, school_config):
    result = analyze(school_table, school_config)

    assert result.baseline == "A"
    assert result.periods == ("2020", "2021")
    assert result.stats_for("A").averages["Score"].overall == pytest.approx(85.0)
    assert result.stats_for("B").averages["Score"].overall == pytest.approx(50.0)

    a, b = result.score_for("A"), result.score_for("B")
    assert a.metric_scores["Score"] == 50.0
    assert b.metric_scores["Score"] == pytest.approx(50 + ((50 - 85) / 85) * 50)
    assert a.composite == 50.0
    assert b.composite == pytest.approx(29.41, abs=0.01)
    assert [s.entity for s in rank_by_composite(result)] == ["A", "B"]
    assert result.cohorts == ()


def test_series_is_period_indexed(school_table, school_config):
    result = analyze(school_table, school_config)
    first = result.series[0]
    assert first.period == "2020"
    assert first.values[("A", "Score")] == 80.0
    assert first.values[("B", "Score")] == 40.0


def test_zero_periods_excluded_from_overall():
    table = parse_table("e,y,m\nA,2020,10\nA,2021,\nA,2022,x\nB,2022,4\n")
    config = Configuration(entity_field="e", period_field="y", metric_fields=("m",), selected_entities=("A",))
    averages = compute_entity_averages(table, config, "A")["m"]
    assert averages.by_period == {"2020": 10.0, "2021": 0.0, "2022": 0.0}
    assert averages.overall == 10.0


def test_periodless_analysis_uses_all_entity_rows():
    table = parse_table("e,m\nA,10\nA,20\nB,30\n")
    config = Configuration(entity_field="e", metric_fields=("m",), selected_entities=("A", "B"))
    result = analyze(table, config)
    assert result.periods == ()
    assert result.series == ()
    assert result.stats_for("A").averages["m"].by_period == {}
    assert result.stats_for("A").averages["m"].overall == 15.0
    assert result.score_for("B").metric_scores["m"] == 100.0


def test_zero_baseline_is_neutral_and_excluded_from_composite():
    table = parse_table("e,m1,m2\nA,,10\nB,7,20\n")
    config = Configuration(entity_field="e", metric_fields=("m1", "m2"), selected_entities=("A", "B"))
    result = analyze(table, config)

    for entity in ("A", "B"):
        assert result.score_for(entity).metric_scores["m1"] == 50.0
    assert result.score_for("B").metric_scores["m2"] == 100.0
    assert result.score_for("B").composite == 100.0


def test_composite_neutral_when_no_metric_qualifies():
    assert composite_score({"m": 80.0}, {"m": 0.0}) == 50.0


def test_t_score_is_clamped():
    assert t_score(1000.0, 10.0) == 100.0
    assert t_score(0.0, 10.0) == 0.0
    assert t_score(-50.0, 10.0) == 0.0
    assert t_score(5.0, 0.0) == 50.0
    assert t_score(5.0, -1.0) == 50.0


def test_composite_within_bounds():
    table = parse_table("e,m1,m2\nA,1,100\nB,500,0.5\nC,-4,\n")
    config = Configuration(entity_field="e", metric_fields=("m1", "m2"), selected_entities=("A", "B", "C"))
    result = analyze(table, config)
    for score in result.scores:
        assert 0.0 <= score.composite <= 100.0


def test_empty_configuration_is_a_no_op(school_table):
    assert analyze(school_table, Configuration(entity_field="School", metric_fields=("Score",))) is None
    assert analyze(school_table, Configuration(entity_field="School", selected_entities=("A",))) is None


def test_ties_keep_selection_order():
    table = parse_table("e,m\nA,10\nB,10\nC,10\nD,20\n")
    config = Configuration(entity_field="e", metric_fields=("m",), selected_entities=("C", "A", "B", "D"))
    result = analyze(table, config)
    assert [s.entity for s in rank_by_composite(result)] == ["D", "C", "A", "B"]
    assert [s.entity for s in rank_by_metric(result, "m")] == ["D", "C", "A", "B"]


def test_metro_and_nationwide_cohorts(region_table):
    config = Configuration(
        entity_field="학교명",
        period_field="기준연도",
        cohort_field="지역",
        metric_fields=("점수",),
        selected_entities=("가", "다"),
    )
    result = analyze(region_table, config)

    assert [c.name for c in result.cohorts] == [METRO_COHORT, NATIONWIDE_COHORT]
    metro = result.cohort(METRO_COHORT).averages["점수"]
    assert metro.by_period == {"2020": 70.0, "2021": 80.0}
    assert metro.overall == 75.0
    nationwide = result.cohort(NATIONWIDE_COHORT).averages["점수"]
    assert nationwide.by_period == {"2020": 60.0, "2021": 70.0}


def test_no_metro_rows_means_no_cohorts():
    table = parse_table("e,r,m\nA,부산,1\nB,대구,2\n")
    config = Configuration(entity_field="e", cohort_field="r", metric_fields=("m",), selected_entities=("A",))
    assert analyze(table, config).cohorts == ()


def test_custom_cohort_predicate():
    table = parse_table("e,r,m\nA,Boston,2\nB,Austin,4\n")
    config = Configuration(entity_field="e", cohort_field="r", metric_fields=("m",), selected_entities=("A",))
    result = analyze(table, config, cohort_predicate=token_predicate("r", ["Boston"]))
    assert result.cohort(METRO_COHORT).averages["m"].overall == 2.0
    assert result.cohort(NATIONWIDE_COHORT).averages["m"].overall == 3.0


def test_analysis_is_deterministic(school_table, school_config):
    assert analyze(school_table, school_config) == analyze(school_table, school_config)


def test_score_band():
    assert score_band(75.0) == "strong"
    assert score_band(50.0) == "average"
    assert score_band(45.0) == "weak"
    assert score_band(10.0) == "poor"
