"""
Tests for RewardMarket: redemption protocol, balances and exchange status.
"""

import threading

import pytest

from growthcore.models import EnergySource, ExchangeStatus, RewardItem
from growthcore.shared.exceptions import NotFoundError, ValidationError


def _earn(engine, student_id, points):
    """Earn `points` across as many capped sessions as needed."""
    session = 0
    while points > 0:
        session += 1
        points -= engine.award_points(student_id, f"earn-{session}", "challenge", min(points, 10))


def test_redeem_then_insufficient_balance(engine, market, reward):
    """Stock 2, balance 50: first redeem succeeds, second is refused on points."""
    _earn(engine, "s1", 50)

    result = market.redeem("s1", reward.id)

    assert result.ok
    assert result.exchange.status == ExchangeStatus.PENDING
    assert result.balance.score_balance == 0
    assert market.get_reward(reward.id).stock == 1

    second = market.redeem("s1", reward.id)

    assert not second.ok
    assert "Not enough points" in second.message
    assert market.get_reward(reward.id).stock == 1
    assert len(market.list_exchanges("s1")) == 1


def test_concurrent_redeem_single_stock(engine, market):
    """Two racing redeems against stock 1 give one success and one refusal."""
    market.save_reward(RewardItem(id="last", name="Last medal", cost_score=10, stock=1))
    _earn(engine, "s1", 30)

    results = []
    errors = []

    def redeem():
        try:
            results.append(market.redeem("s1", "last"))
        except Exception as e:
            errors.append(str(e))

    threads = [threading.Thread(target=redeem) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert sorted(r.ok for r in results) == [False, True]
    assert market.get_reward("last").stock == 0
    assert len(market.list_exchanges("s1")) == 1


def test_energy_cost_writes_compensating_log(engine, market, ledger):
    market.save_reward(RewardItem(id="cape", name="Cape", cost_score=5, cost_energy=12))
    _earn(engine, "s1", 5)
    engine.grant_energy("s1", 20, "manual", "seed")

    result = market.redeem("s1", "cape")

    assert result.ok
    assert result.balance.energy_balance == 8
    spend = [log for log in ledger.list_energy_logs("s1") if log.source == EnergySource.MARKET_REDEEM]
    assert len(spend) == 1
    assert spend[0].delta == -12
    assert ledger.require_student("s1").energy == ledger.replayed_energy("s1") == 8
    assert market.get_reward("cape").stock is None


def test_insufficient_energy(engine, market):
    market.save_reward(RewardItem(id="cape", cost_score=0, cost_energy=12))
    engine.grant_energy("s1", 3, "manual", "seed")

    result = market.redeem("s1", "cape")

    assert not result.ok
    assert "Not enough energy" in result.message
    assert market.list_exchanges("s1") == []


def test_hidden_and_out_of_stock_refused(market):
    market.save_reward(RewardItem(id="hidden", cost_score=0, visible=False))
    market.save_reward(RewardItem(id="gone", cost_score=0, stock=0))

    assert not market.redeem("s1", "hidden").ok
    assert "out of stock" in market.redeem("s1", "gone").message


def test_missing_student_or_reward_raises(market, reward):
    with pytest.raises(NotFoundError):
        market.redeem("ghost", reward.id)
    with pytest.raises(NotFoundError):
        market.redeem("s1", "no-such-reward")


def test_balance_integrity_after_activity(engine, market, ledger, reward):
    """Score balance = points - spent; energy balance = sum of energy logs."""
    _earn(engine, "s1", 70)
    engine.grant_energy("s1", 15, "mission", "m1")
    market.redeem("s1", reward.id)

    balance = market.get_balance("s1")
    points = sum(e.points for e in ledger.list_point_events("s1"))
    spent = sum(x.cost_score for x in ledger.list_exchanges("s1"))

    assert balance.score_balance == points - spent == 20
    assert balance.energy_balance == sum(log.delta for log in ledger.list_energy_logs("s1"))


def test_list_rewards_filters_hidden_and_type(market, reward):
    market.save_reward(RewardItem(id="secret", cost_score=1, visible=False))
    market.save_reward(RewardItem(id="badge", type="physical", cost_score=100))

    assert {r.id for r in market.list_rewards()} == {"r1", "badge"}
    assert {r.id for r in market.list_rewards(include_hidden=True)} == {"r1", "badge", "secret"}
    assert [r.id for r in market.list_rewards(reward_type="physical")] == ["badge"]


def test_exchange_status_moves_forward_only(engine, market, reward):
    _earn(engine, "s1", 50)
    exchange = market.redeem("s1", reward.id).exchange

    delivered = market.update_exchange_status(exchange.id, "delivered", note="handed over")
    assert delivered.status == ExchangeStatus.DELIVERED
    assert delivered.note == "handed over"

    assert market.update_exchange_status(exchange.id, ExchangeStatus.CONFIRMED).status == ExchangeStatus.CONFIRMED

    with pytest.raises(ValidationError):
        market.update_exchange_status(exchange.id, ExchangeStatus.PENDING)
    with pytest.raises(ValidationError):
        market.update_exchange_status(exchange.id, "lost")
