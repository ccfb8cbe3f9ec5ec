"""
Tests for BenchmarkTable lookups and PercentileCurve interpolation.
"""

import pytest

from growthcore.models import Benchmark
from growthcore.scoring.benchmarks import BenchmarkTable, CurvePoint, PercentileCurve


def _row(quality, age_min, age_max, gender=None):
    return Benchmark(quality=quality, age_min=age_min, age_max=age_max, gender=gender, p25=1, p50=2, p75=3)


def test_find_matches_age_band_inclusive():
    table = BenchmarkTable([_row("run", 6, 8), _row("run", 9, 12)])

    assert table.find("run", 6).age_min == 6
    assert table.find("run", 8).age_min == 6
    assert table.find("run", 9).age_min == 9
    assert table.find("run", 13) is None
    assert table.find("swim", 7) is None


def test_find_unknown_age_takes_first_row():
    table = BenchmarkTable([_row("run", 6, 8), _row("run", 9, 12)])
    assert table.find("run", None).age_min == 6


def test_gendered_rows_only_match_same_gender():
    table = BenchmarkTable([_row("run", 6, 8, "female")])

    assert table.find("run", 7, "female") is not None
    assert table.find("run", 7, "male") is None
    assert table.find("run", 7) is not None


def test_coverage_gaps():
    table = BenchmarkTable([_row("run", 6, 8), _row("run", 11, 12)])
    assert table.coverage_gaps("run", 6, 12) == [9, 10]
    assert len(table) == 2


def test_unit_filter_separates_metrics_sharing_a_quality():
    table = BenchmarkTable([
        Benchmark(quality="power", age_min=6, age_max=12, unit="cm", p25=115, p50=135, p75=160),
        Benchmark(quality="power", age_min=6, age_max=12, unit="count", p25=8, p50=15, p75=22),
    ])

    assert table.find("power", 10, unit="count").p50 == 15
    assert table.find("power", 10, unit="cm").p50 == 135
    assert table.find("power", 10, unit="ml") is None
    assert table.find("power", 10).unit == "cm"


def test_missing_max_stretches_past_p75():
    assert _row("run", 6, 8).max == 13
    assert Benchmark(quality="q", age_min=0, age_max=1, p25=50, p50=80, p75=100).max == 150
    assert Benchmark(quality="q", age_min=0, age_max=1, p25=1, p50=2, p75=3, max=7).max == 7


@pytest.fixture
def curve():
    return PercentileCurve([
        CurvePoint(8, 120, 130, 140),
        CurvePoint(6, 108, 117, 126),
        CurvePoint(10, 130, 140, 150),
    ])


def test_curve_interpolates_between_ages(curve):
    point = curve.at(9)
    assert point.p50 == pytest.approx(135)
    assert point.p3 == pytest.approx(125)

    assert curve.at(7).p97 == pytest.approx(133)


def test_curve_clamps_outside_table(curve):
    assert curve.at(3) == curve.points[0]
    assert curve.at(18) == curve.points[-1]
    assert curve.at(10).p50 == 140


def test_estimate_percentile_bands(curve):
    assert curve.estimate_percentile(8, 130) == 50
    assert curve.estimate_percentile(8, 120) == 3
    assert curve.estimate_percentile(8, 140) == 97
    assert curve.estimate_percentile(8, 60) == 2
    assert curve.estimate_percentile(8, 200) == 99
    assert 50 < curve.estimate_percentile(8, 135) < 97


def test_series_clamped_to_table(curve):
    samples = curve.series(4, 7, step=0.5)
    assert [s.age for s in samples] == [6, 6.5, 7]
    assert curve.series(9, 8) == []


def test_empty_curve_rejected():
    with pytest.raises(ValueError):
        PercentileCurve([])
