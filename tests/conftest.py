"""
Pytest fixtures for growthcore tests.
"""

import pytest

from growthcore.core import GrowthCore
from growthcore.ledger.event_ledger import EventLedger
from growthcore.models import Gender, RewardItem, Student
from growthcore.rewards.award_engine import AwardEngine
from growthcore.rewards.market import RewardMarket
from growthcore.rewards.squads import SquadChallengeTracker
from growthcore.shared.config import EnergyConfig, GrowthSettings, LedgerConfig, RewardTableConfig
from growthcore.store.sqlite_store import SqliteStore


@pytest.fixture
def store(tmp_path):
    """SQLite store in a fresh temporary file."""
    return SqliteStore(tmp_path / "growthcore.sqlite", timeout=5)


@pytest.fixture
def ledger(store):
    return EventLedger(store)


@pytest.fixture
def students(ledger):
    """Three seeded students with no events."""
    seeded = [
        Student(id="s1", name="Alex", gender=Gender.MALE, class_id="c1"),
        Student(id="s2", name="Sam", gender=Gender.FEMALE, class_id="c1"),
        Student(id="s3", name="Jo", gender=Gender.MALE, class_id="c1"),
    ]
    for student in seeded:
        ledger.save_student(student)
    return seeded


@pytest.fixture
def engine(ledger, students):
    """AwardEngine with explicit default configs (no global settings)."""
    return AwardEngine(
        ledger,
        ledger_config=LedgerConfig(session_point_cap=10),
        energy_config=EnergyConfig(),
        reward_table=RewardTableConfig(),
    )


@pytest.fixture
def tracker(engine):
    return SquadChallengeTracker(engine)


@pytest.fixture
def market(ledger, students):
    return RewardMarket(ledger)


@pytest.fixture
def reward(market):
    """Visible reward: 50 points, no energy, stock 2."""
    return market.save_reward(RewardItem(id="r1", name="Sticker", cost_score=50, stock=2))


@pytest.fixture
def core(store):
    return GrowthCore(store=store, settings=GrowthSettings(ledger=LedgerConfig(session_point_cap=10)))
