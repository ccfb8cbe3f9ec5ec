"""
End-to-end tests through the GrowthCore facade.
"""

from datetime import datetime
from pathlib import Path

import pytest

from growthcore.core import GrowthCore
from growthcore.models import ChallengeStatus, RewardItem, Student
from growthcore.shared.config import GrowthSettings
from growthcore.shared.exceptions import NotFoundError

CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "growthcore.yaml"


@pytest.fixture
def configured_core(store):
    """Core wired from the sample YAML, benchmark rows included."""
    return GrowthCore(store=store, settings=GrowthSettings.load_from_yaml(CONFIG_PATH))


def test_full_flow_keeps_ledger_consistent(core):
    """Points, energy, squad progress and a redemption leave no drift behind."""
    for student_id in ("a", "b"):
        core.register_student(Student(id=student_id, name=student_id.upper()))

    assert core.award_points("a", "sess1", "attendance", 2, "present") == 2
    assert core.award_points("a", "sess1", "excellent", 9) == 8
    assert core.grant_energy("a", 10, "mission", ("mission", "m1"))
    assert not core.grant_energy("a", 10, "mission", ("mission", "m1"))

    squad = core.squads.create_squad("Duo", ["a", "b"])
    challenge = core.squads.create_challenge(squad.id, "Relay", 200)
    updated = core.add_squad_progress(challenge.id, 250, by="class", created_by="coach")
    assert updated.status == ChallengeStatus.DONE

    core.market.save_reward(RewardItem(id="pin", name="Pin", cost_score=10, cost_energy=30, stock=3))
    result = core.redeem("a", "pin")
    assert result.ok

    balance = core.get_balance("a")
    assert balance.score_balance == 0
    assert balance.energy_balance == 10 + 10 * 5 + 20 - 30
    assert core.audit().clean


def test_score_assessment_through_facade(core):
    report = core.score_assessment({"run50m": 7.0, "ropeSkipSpeed": 170}, "male", 10)
    assert report.total_score == 100
    assert report.benchmark_scores == {}


def test_default_settings_have_no_benchmark_rows(core):
    assert len(core.benchmarks) == 0
    assert core.score_quality(7.0, "speed", 10, "male") == (7.0, None)


def test_configured_benchmarks_reach_the_report(configured_core):
    report = configured_core.score_assessment(
        {"ropeSkipSpeed": 105, "longJump": 150, "run50m": 8.0, "pushUps": 20}, "male", 10
    )

    rope = report.benchmark_scores["ropeSkipSpeed"]
    assert rope.quality == "speed"
    assert rope.score == 79
    assert rope.reference == 75
    assert rope.p50 == 100
    assert rope.normalized == 58

    assert report.benchmark_scores["longJump"].score == 84
    # lower-is-better and unbenchmarked metrics are left out
    assert "run50m" not in report.benchmark_scores
    assert "pushUps" not in report.benchmark_scores


def test_score_quality_uses_matching_row(configured_core):
    score, row = configured_core.score_quality(110, "speed", 8, unit="count")

    assert row is not None
    assert (row.age_min, row.age_max) == (6, 9)
    assert score == pytest.approx(91.0)


def test_benchmark_gaps(configured_core):
    assert configured_core.benchmark_gaps("power", 6, 14, "male") == [13, 14]
    assert configured_core.benchmark_gaps("flexibility", 6, 17) == []
    assert configured_core.benchmark_gaps("agility", 6, 7) == [6, 7]


def test_height_curve_series(core):
    points = core.height_curve("male", 6, 7, step=0.5)

    assert [p.age for p in points] == [6, 6.5, 7]
    assert points[0].p50 == 117.7
    assert points[0].p3 < points[0].p50 < points[0].p97


def test_progress_trajectories(core):
    speed = core.speed_rank_trajectory([
        ("2024-01-02", [75, 82]),
        ("2024-01-01", [65]),
        ("2024-01-03", []),
    ])
    ranks = core.rank_trajectory([("d1", []), ("d2", [2, 1]), ("d3", [1])])

    assert speed == [("2024-01-01", 1), ("2024-01-02", 3)]
    assert ranks == [("d2", 2), ("d3", 2)]


def test_energy_history_requires_student(core):
    core.register_student(Student(id="a", name="A"))
    core.grant_energy("a", 10, "manual", "x", when=datetime(2024, 1, 1))

    assert [total for _, _, total in core.energy_history("a")] == [10]
    with pytest.raises(NotFoundError):
        core.energy_history("ghost")
