"""
RewardMarket: reward catalogue, balances and atomic redemption.
"""

import logging
from datetime import datetime
from typing import List, Optional, Union

from growthcore.ledger.event_ledger import EventLedger, new_id, now_iso
from growthcore.ledger.replay import replay_balance
from growthcore.models import (
    Balance,
    EnergySource,
    ExchangeStatus,
    RedeemResult,
    RewardItem,
    StudentExchange,
)
from growthcore.shared.exceptions import (
    ConcurrencyConflictError,
    InsufficientBalanceError,
    InsufficientEnergyError,
    InsufficientStockError,
    NotFoundError,
    RedemptionRefused,
    RewardUnavailableError,
    ValidationError,
)
from growthcore.shared.logging import get_logger, log_with_context
from growthcore.store import base as tables
from growthcore.store.base import StoreSession

logger = get_logger(__name__)

REDEEM_SCOPE = (
    tables.REWARD_ITEMS,
    tables.STUDENT_EXCHANGES,
    tables.STUDENTS,
    tables.ENERGY_LOGS,
    tables.POINT_EVENTS,
)

_STATUS_ORDER = [ExchangeStatus.PENDING, ExchangeStatus.DELIVERED, ExchangeStatus.CONFIRMED]

CONFLICT_MESSAGE = "Redemption could not be completed, please try again"


def check_redeemable(reward: Optional[RewardItem], balance: Balance, student_id: str):
    """
    Raise the matching RedemptionRefused when `reward` cannot be bought.

    Checks run in the order visibility, stock, score, energy.
    """
    if reward is None or not reward.visible:
        raise RewardUnavailableError("Reward is not available")
    if reward.stock is not None and reward.stock <= 0:
        raise InsufficientStockError(f"{reward.name or reward.id} is out of stock")
    if balance.score_balance < reward.cost_score:
        raise InsufficientBalanceError(
            f"Not enough points: need {reward.cost_score}, have {balance.score_balance}",
            student_id=student_id, balance=balance.score_balance, cost=reward.cost_score,
        )
    if reward.cost_energy and balance.energy_balance < reward.cost_energy:
        raise InsufficientEnergyError(
            f"Not enough energy: need {reward.cost_energy}, have {balance.energy_balance}",
            student_id=student_id, balance=balance.energy_balance, cost=reward.cost_energy,
        )


class RewardMarket:
    """Reward catalogue and redemption against the event ledger."""

    def __init__(self, ledger: EventLedger):
        self.ledger = ledger
        self.store = ledger.store

    # Catalogue

    def save_reward(self, reward: RewardItem) -> RewardItem:
        self.store.put(tables.REWARD_ITEMS, reward.model_dump(mode="json"))
        return reward

    def get_reward(self, reward_id: str, session: Optional[StoreSession] = None) -> Optional[RewardItem]:
        record = (session or self.store).get(tables.REWARD_ITEMS, reward_id)
        return RewardItem(**record) if record else None

    def list_rewards(self, include_hidden: bool = False, reward_type: Optional[str] = None) -> List[RewardItem]:
        if reward_type:
            records = self.store.query_by_index(tables.REWARD_ITEMS, "type", reward_type)
        else:
            records = self.store.all(tables.REWARD_ITEMS)
        rewards = [RewardItem(**r) for r in records]
        if not include_hidden:
            rewards = [r for r in rewards if r.visible]
        return sorted(rewards, key=lambda r: (r.cost_score, r.name))

    # Balances and exchanges

    def get_balance(self, student_id: str) -> Balance:
        return self.ledger.balance(student_id)

    def list_exchanges(self, student_id: str, limit: Optional[int] = None) -> List[StudentExchange]:
        """A student's exchanges, newest first."""
        exchanges = sorted(self.ledger.list_exchanges(student_id), key=lambda e: e.redeemed_at, reverse=True)
        return exchanges[:limit] if limit else exchanges

    def update_exchange_status(
        self,
        exchange_id: str,
        status: Union[str, ExchangeStatus],
        note: Optional[str] = None,
    ) -> StudentExchange:
        """
        Move an exchange forward through pending -> delivered -> confirmed.

        Setting the current status again only updates the note.
        """
        try:
            status = ExchangeStatus(status)
        except ValueError as e:
            raise ValidationError(f"Unknown exchange status: {status}") from e

        def _update(txn: StoreSession) -> StudentExchange:
            record = txn.get(tables.STUDENT_EXCHANGES, exchange_id)
            if not record:
                raise NotFoundError(f"Exchange {exchange_id} not found")
            exchange = StudentExchange(**record)
            if _STATUS_ORDER.index(status) < _STATUS_ORDER.index(exchange.status):
                raise ValidationError(
                    f"Exchange {exchange_id} cannot move from {exchange.status.value} to {status.value}"
                )
            exchange.status = status
            if note is not None:
                exchange.note = note
            txn.put(tables.STUDENT_EXCHANGES, exchange.model_dump(mode="json"))
            return exchange

        return self.store.transaction([tables.STUDENT_EXCHANGES], _update)

    # Redemption

    def redeem(self, student_id: str, reward_id: str, when: Optional[datetime] = None) -> RedeemResult:
        """
        Redeem a reward for a student.

        An advisory pre-check rejects obviously doomed requests without a
        transaction. The transaction then re-reads the reward, the student and
        all their events, re-validates, and writes the exchange, the stock
        decrement and any energy spend together.

        Business refusals and store conflicts come back as ok=False results.

        Raises:
            NotFoundError: student or reward does not exist
        """
        self.ledger.require_student(student_id)
        reward = self.get_reward(reward_id)
        if reward is None:
            raise NotFoundError(f"Reward {reward_id} not found")

        try:
            check_redeemable(reward, self.ledger.balance(student_id), student_id)
        except RedemptionRefused as e:
            return self._refused(student_id, reward_id, e, reward)

        def _redeem(txn: StoreSession) -> RedeemResult:
            latest_reward = self.get_reward(reward_id, txn)
            latest_student = self.ledger.get_student(student_id, txn)
            if latest_student is None:
                raise NotFoundError(f"Student {student_id} not found")
            events = self.ledger.list_point_events(student_id, txn)
            exchanges = self.ledger.list_exchanges(student_id, txn)
            balance = replay_balance(student_id, events, exchanges, cached_energy=latest_student.energy)

            check_redeemable(latest_reward, balance, student_id)

            exchange = StudentExchange(
                id=new_id(),
                student_id=student_id,
                reward_id=reward_id,
                cost_score=latest_reward.cost_score,
                cost_energy=latest_reward.cost_energy,
                redeemed_at=now_iso(when),
                status=ExchangeStatus.PENDING,
            )
            txn.put(tables.STUDENT_EXCHANGES, exchange.model_dump(mode="json"))

            if latest_reward.stock is not None:
                latest_reward.stock = max(0, latest_reward.stock - 1)
                txn.put(tables.REWARD_ITEMS, latest_reward.model_dump(mode="json"))

            if latest_reward.cost_energy:
                self.ledger.apply_energy(
                    txn, latest_student, -latest_reward.cost_energy, EnergySource.MARKET_REDEEM,
                    (reward_id, exchange.id), {"reward_name": latest_reward.name}, when,
                )

            after = replay_balance(
                student_id, events, exchanges + [exchange], cached_energy=latest_student.energy
            )
            return RedeemResult(
                ok=True, message="Redemption submitted",
                exchange=exchange, reward=latest_reward, balance=after,
            )

        try:
            result = self.store.transaction(REDEEM_SCOPE, _redeem)
        except RedemptionRefused as e:
            return self._refused(student_id, reward_id, e)
        except ConcurrencyConflictError as e:
            log_with_context(
                logger, logging.WARNING, f"Redemption conflict: {e}",
                student_id=student_id, action="redeem", reward_id=reward_id,
            )
            return RedeemResult(ok=False, message=CONFLICT_MESSAGE)

        log_with_context(
            logger, logging.INFO, f"Redeemed {result.reward.name or reward_id}",
            student_id=student_id, action="redeem", reward_id=reward_id,
            exchange_id=result.exchange.id,
        )
        return result

    def _refused(
        self,
        student_id: str,
        reward_id: str,
        error: RedemptionRefused,
        reward: Optional[RewardItem] = None,
    ) -> RedeemResult:
        log_with_context(
            logger, logging.INFO, f"Redemption refused: {error}",
            student_id=student_id, action="redeem", reward_id=reward_id,
            reason=type(error).__name__,
        )
        return RedeemResult(ok=False, message=str(error), reward=reward)
