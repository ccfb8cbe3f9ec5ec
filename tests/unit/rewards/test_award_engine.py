"""
Tests for AwardEngine: session cap, idempotent energy grants, rank rewards.
"""

import math
import threading
from datetime import date, datetime

import pytest

from growthcore.models import EnergySource, PointEventType
from growthcore.rewards.award_engine import AwardEngine, SessionAward
from growthcore.shared.config import LedgerConfig
from growthcore.shared.exceptions import NotFoundError, ValidationError


def test_session_cap_scenario(engine):
    """2 points, then 9 more under a cap of 10 applies only 8."""
    assert engine.award_points("s1", "sess1", "attendance", 2, "present") == 2
    assert engine.award_points("s1", "sess1", "excellent", 9, "great form") == 8
    assert engine.ledger.session_total("s1", "sess1") == 10


def test_cap_never_exceeded_for_any_sequence(engine):
    """Applied points within one session never sum past the cap."""
    raw = [3.7, 0, 4, 2.2, 6, 1, 0.5, 9, 2]
    applied = [engine.award_points("s1", "sess1", PointEventType.PR, r) for r in raw]

    assert sum(applied) <= engine.session_cap
    assert sum(applied) == engine.ledger.session_total("s1", "sess1")
    assert applied[:3] == [3, 0, 4]


def test_exhausted_cap_writes_nothing(engine):
    engine.award_points("s1", "sess1", "challenge", 10)
    assert engine.award_points("s1", "sess1", "challenge", 5) == 0
    assert len(engine.ledger.list_session_events("sess1")) == 1


def test_cap_is_per_session_and_student(engine):
    engine.award_points("s1", "sess1", "challenge", 10)
    assert engine.award_points("s1", "sess2", "challenge", 4) == 4
    assert engine.award_points("s2", "sess1", "challenge", 4) == 4


def test_zero_cap_applies_nothing(ledger, students):
    capped = AwardEngine(ledger, ledger_config=LedgerConfig(session_point_cap=0))
    assert capped.award_points("s1", "sess1", "pr", 5) == 0
    assert ledger.list_point_events("s1") == []


@pytest.mark.parametrize("raw", [-1, math.nan, math.inf])
def test_invalid_points_rejected(engine, raw):
    with pytest.raises(ValidationError):
        engine.award_points("s1", "sess1", "pr", raw)
    assert engine.ledger.list_point_events("s1") == []


def test_unknown_student_and_type_rejected(engine):
    with pytest.raises(NotFoundError):
        engine.award_points("ghost", "sess1", "pr", 1)
    with pytest.raises(ValidationError):
        engine.award_points("s1", "sess1", "bribery", 1)


def test_award_rule_points_uses_configured_defaults(engine):
    assert engine.award_rule_points("s1", "sess1", "attendance") == 2
    assert engine.award_rule_points("s1", "sess1", "pr") == 5


def test_grant_energy_is_idempotent(engine):
    """Same (student, source, ref) twice yields one log and one balance change."""
    assert engine.grant_energy("s1", 10, EnergySource.MISSION, ("mission", "m1")) is True
    assert engine.grant_energy("s1", 10, EnergySource.MISSION, ("mission", "m1")) is False

    assert len(engine.ledger.list_energy_logs("s1")) == 1
    assert engine.ledger.balance("s1").energy_balance == 10


def test_grant_energy_key_includes_source_and_student(engine):
    assert engine.grant_energy("s1", 5, "mission", "x")
    assert engine.grant_energy("s1", 5, "kudos", "x")
    assert engine.grant_energy("s2", 5, "mission", "x")
    assert engine.ledger.balance("s1").energy_balance == 10


def test_concurrent_duplicate_grants_pay_once(engine):
    results = []

    def grant():
        results.append(engine.grant_energy("s1", 7, "assessment", ("rank", "3")))

    threads = [threading.Thread(target=grant) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    assert engine.ledger.require_student("s1").energy == 7
    assert engine.ledger.replayed_energy("s1") == 7


def test_zero_energy_grant_is_noop(engine):
    assert engine.grant_energy("s1", 0, "manual", "nothing") is False
    assert engine.ledger.list_energy_logs("s1") == []


def test_grant_energy_rejects_fractional_amount(engine):
    with pytest.raises(ValidationError):
        engine.grant_energy("s1", 2.5, "manual", "frac")


def test_grant_energy_rejects_negative_amount(engine):
    with pytest.raises(ValidationError):
        engine.grant_energy("s1", -50, "mission", "m-neg")

    assert engine.ledger.require_student("s1").energy == 0
    assert engine.ledger.list_energy_logs("s1") == []


@pytest.mark.parametrize("amount", [math.nan, math.inf, -math.inf, None, "5"])
def test_grant_energy_rejects_non_numeric_amounts(engine, amount):
    with pytest.raises(ValidationError):
        engine.grant_energy("s1", amount, "manual", "x")


def test_freestyle_reward_table_and_fallback(engine):
    assert engine.freestyle_reward(1).points == 4
    assert engine.freestyle_reward(9).energy == 36

    fallback = engine.freestyle_reward(12)
    assert fallback.points == 5 + 11 * 2
    assert fallback.energy == 10 + 11 * 4

    floor = engine.rank_up_reward(0)
    assert (floor.points, floor.energy) == (5, 8)


def test_award_freestyle_pass_pays_energy_once_per_move(engine):
    points, granted = engine.award_freestyle_pass("s1", "sess1", "move-7", rank=3)
    assert (points, granted) == (6, True)

    points, granted = engine.award_freestyle_pass("s1", "sess1", "move-7", rank=3)
    assert (points, granted) == (4, False)  # cap leaves 4, energy already paid
    assert engine.ledger.require_student("s1").energy == 16


def test_attendance_streak_bonus(engine):
    today = datetime(2024, 6, 12, 9, 0)
    history = [date(2024, 6, 10), date(2024, 6, 11)]

    award = engine.award_attendance("s1", "sess-a", "c1", history, when=today)

    assert award.streak == 3
    assert award.streak_bonus == 5
    assert award.energy == 15
    assert award.points == 2


def test_attendance_without_streak_and_repeat(engine):
    today = datetime(2024, 6, 12, 9, 0)
    first = engine.award_attendance("s2", "sess-b", "c1", [date(2024, 6, 9)], when=today)
    again = engine.award_attendance("s2", "sess-b", "c1", [date(2024, 6, 9)], when=today)

    assert first.streak == 1
    assert first.energy == 10
    assert again.energy == 0
    assert engine.ledger.require_student("s2").energy == 10


def test_mission_stars_clamped(engine):
    assert engine.award_mission("s1", "m1", stars=9) == 40
    assert engine.award_mission("s1", "m2", stars=0) == 8
    assert engine.award_mission("s1", "m1", stars=3) == 0


def test_kudos(engine):
    assert engine.award_kudos("s1", "s2", "teamwork", kudos_id="k1") == 5
    assert engine.award_kudos("s1", "s2", "teamwork", kudos_id="k1") == 0
    with pytest.raises(ValidationError):
        engine.award_kudos("s1", "s1", "self-love")


def test_assessment_rank_up_once_per_rank(engine):
    assert engine.award_assessment_rank_up("s1", "L3", "Bronze") == 30
    assert engine.award_assessment_rank_up("s1", "L3", "Bronze") == 0


def test_recompute_session_reapplies_cap(engine):
    engine.award_points("s1", "sess1", "pr", 10)
    totals = engine.recompute_session("sess1", [
        SessionAward("s1", PointEventType.ATTENDANCE, 2),
        SessionAward("s1", PointEventType.EXCELLENT, 2),
        SessionAward("s2", PointEventType.PR, 12),
    ])

    assert totals == {"s1": 4, "s2": 10}
    assert engine.ledger.session_total("s1", "sess1") == 4


def test_energy_history_running_total(engine):
    engine.grant_energy("s1", 10, "manual", "a", when=datetime(2024, 1, 1))
    engine.grant_energy("s1", 5, "manual", "b", when=datetime(2024, 1, 2))

    assert [running for _, _, running in engine.energy_history("s1")] == [10, 15]


def test_freestyle_and_rank_up_grants_do_not_share_keys(engine):
    """A session named like a rank code must not block the rank-up payout."""
    _, granted = engine.award_freestyle_pass("s1", "rank", "L3", rank=3)

    assert granted
    assert engine.award_assessment_rank_up("s1", "L3") == 30
    assert engine.ledger.require_student("s1").energy == 16 + 30


def test_recompute_session_is_all_or_nothing(engine):
    engine.award_points("s1", "sess1", "pr", 5)
    engine.award_points("s2", "sess1", "attendance", 2)

    with pytest.raises(NotFoundError):
        engine.recompute_session("sess1", [
            SessionAward("s1", PointEventType.ATTENDANCE, 2),
            SessionAward("ghost", PointEventType.PR, 5),
        ])

    assert engine.ledger.session_total("s1", "sess1") == 5
    assert engine.ledger.session_total("s2", "sess1") == 2
    assert len(engine.ledger.list_session_events("sess1")) == 2
