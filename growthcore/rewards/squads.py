"""
Squad challenges: shared progress with milestone and completion energy.
"""

import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from growthcore.ledger.event_ledger import new_id, now_iso
from growthcore.models import (
    ChallengeStatus,
    EnergySource,
    Squad,
    SquadChallenge,
    SquadProgressLog,
)
from growthcore.rewards.award_engine import AwardEngine
from growthcore.shared.exceptions import NotFoundError, ValidationError
from growthcore.shared.logging import get_logger
from growthcore.store import base as tables
from growthcore.store.base import StoreSession

logger = get_logger(__name__)

MAX_MILESTONE_LEVEL = 10

# Absorbs float error in progress/target/step (0.3 / 0.1 == 2.9999999999999996)
_LEVEL_EPSILON = 1e-9


class SquadChallengeTracker:
    """Creates squads and challenges and applies progress contributions."""

    def __init__(self, engine: AwardEngine):
        self.engine = engine
        self.ledger = engine.ledger
        self.store = engine.store
        self.energy_config = engine.energy_config

    # Squads

    def create_squad(
        self,
        name: str,
        member_ids: List[str],
        class_id: Optional[str] = None,
        season_code: Optional[str] = None,
    ) -> Squad:
        if not name or not name.strip():
            raise ValidationError("Squad name is required")
        if not member_ids:
            raise ValidationError("A squad needs at least one member")
        now = now_iso()
        squad = Squad(
            id=new_id(),
            name=name.strip(),
            member_ids=member_ids,
            class_id=class_id,
            season_code=season_code,
            created_at=now,
            updated_at=now,
        )
        self.store.put(tables.SQUADS, squad.model_dump(mode="json"))
        logger.info(f"Created squad {squad.name} with {len(squad.member_ids)} members", extra={
            "squad_id": squad.id,
            "action": "create_squad",
        })
        return squad

    def get_squad(self, squad_id: str) -> Squad:
        record = self.store.get(tables.SQUADS, squad_id)
        if not record:
            raise NotFoundError(f"Squad {squad_id} not found")
        return Squad(**record)

    def update_squad(self, squad_id: str, **patch: Any) -> Squad:
        """Rename a squad or change its members."""
        def _update(txn: StoreSession) -> Squad:
            record = txn.get(tables.SQUADS, squad_id)
            if not record:
                raise NotFoundError(f"Squad {squad_id} not found")
            record.update({k: v for k, v in patch.items() if k != "id"})
            record["updated_at"] = now_iso()
            squad = Squad(**record)
            txn.put(tables.SQUADS, squad.model_dump(mode="json"))
            return squad

        try:
            return self.store.transaction([tables.SQUADS], _update)
        except ValueError as e:
            raise ValidationError(str(e)) from e

    def list_by_class(self, class_id: str) -> List[Squad]:
        return [Squad(**r) for r in self.store.query_by_index(tables.SQUADS, "class_id", class_id)]

    def list_for_student(self, student_id: str) -> List[Squad]:
        """Squads the student belongs to."""
        squads = [Squad(**r) for r in self.store.all(tables.SQUADS)]
        return [squad for squad in squads if student_id in squad.member_ids]

    # Challenges

    def create_challenge(
        self,
        squad_id: str,
        title: str,
        target: float,
        unit: str = "count",
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> SquadChallenge:
        """New ongoing challenge at milestone 0; negative targets are clamped to 0."""
        self.get_squad(squad_id)
        now = now_iso()
        challenge = SquadChallenge(
            id=new_id(),
            squad_id=squad_id,
            title=title,
            target=max(0.0, float(target)),
            unit=unit,
            start_date=start_date or now[:10],
            end_date=end_date,
            created_at=now,
            updated_at=now,
        )
        self.store.put(tables.SQUAD_CHALLENGES, challenge.model_dump(mode="json"))
        return challenge

    def get_challenge(self, challenge_id: str) -> SquadChallenge:
        record = self.store.get(tables.SQUAD_CHALLENGES, challenge_id)
        if not record:
            raise NotFoundError(f"Challenge {challenge_id} not found")
        return SquadChallenge(**record)

    def list_challenges(self, squad_id: str) -> List[SquadChallenge]:
        records = self.store.query_by_index(tables.SQUAD_CHALLENGES, "squad_id", squad_id)
        return [SquadChallenge(**r) for r in records]

    def list_challenges_by_class(self, class_id: str) -> List[SquadChallenge]:
        challenges = []
        for squad in self.list_by_class(class_id):
            challenges.extend(self.list_challenges(squad.id))
        return challenges

    def list_progress_logs(self, challenge_id: str) -> List[SquadProgressLog]:
        records = self.store.query_by_index(tables.SQUAD_PROGRESS, "challenge_id", challenge_id)
        return [SquadProgressLog(**r) for r in records]

    def milestone_level(self, progress: float, target: float) -> int:
        if target <= 0:
            return 0
        step = self.energy_config.squad_milestone_step
        level = math.floor((progress / target) / step + _LEVEL_EPSILON)
        return max(0, min(MAX_MILESTONE_LEVEL, level))

    def add_progress(
        self,
        challenge_id: str,
        value: float,
        by: str = "coach",
        created_by: str = "",
        ref_session_id: Optional[str] = None,
        note: Optional[str] = None,
        when: Optional[datetime] = None,
    ) -> SquadChallenge:
        """
        Record a progress contribution and pay any milestones it crosses.

        Every level above the challenge's current milestone level up to the
        new one pays the milestone energy to each member; reaching the target
        moves the challenge to done and pays the completion energy once. All
        writes share one transaction and every grant is keyed, so replaying
        the same contribution never pays twice.

        Raises:
            ValidationError: value is not positive
            NotFoundError: challenge or squad does not exist
        """
        if value is None or not math.isfinite(value) or value <= 0:
            raise ValidationError(f"Progress value must be > 0, got {value}")

        scope = [
            tables.SQUADS, tables.SQUAD_CHALLENGES, tables.SQUAD_PROGRESS,
            tables.STUDENTS, tables.ENERGY_LOGS,
        ]

        def _add(txn: StoreSession) -> SquadChallenge:
            record = txn.get(tables.SQUAD_CHALLENGES, challenge_id)
            if not record:
                raise NotFoundError(f"Challenge {challenge_id} not found")
            challenge = SquadChallenge(**record)
            squad_record = txn.get(tables.SQUADS, challenge.squad_id)
            if not squad_record:
                raise NotFoundError(f"Squad {challenge.squad_id} not found")
            squad = Squad(**squad_record)

            now = now_iso(when)
            log = SquadProgressLog(
                id=new_id(),
                squad_id=squad.id,
                challenge_id=challenge.id,
                value=value,
                by=by,
                created_by=created_by,
                ref_session_id=ref_session_id,
                note=note,
                created_at=now,
            )
            txn.put(tables.SQUAD_PROGRESS, log.model_dump(mode="json"))

            previous_level = challenge.milestone_level
            challenge.progress += value
            challenge.updated_at = now

            rewards = []
            if challenge.target > 0:
                next_level = self.milestone_level(challenge.progress, challenge.target)
                for level in range(previous_level + 1, next_level + 1):
                    rewards.append((
                        EnergySource.SQUAD_MILESTONE,
                        (challenge.id, "milestone", str(level)),
                        self.energy_config.squad_milestone,
                        level,
                    ))
                challenge.milestone_level = max(previous_level, next_level)
                if challenge.progress >= challenge.target and challenge.status != ChallengeStatus.DONE:
                    challenge.status = ChallengeStatus.DONE
                    rewards.append((
                        EnergySource.SQUAD_COMPLETION,
                        (challenge.id, "completion"),
                        self.energy_config.squad_completion,
                        None,
                    ))

            txn.put(tables.SQUAD_CHALLENGES, challenge.model_dump(mode="json"))

            for student_id in squad.member_ids:
                if self.ledger.get_student(student_id, txn) is None:
                    logger.warning(f"Squad {squad.id} member {student_id} has no student record; skipping rewards")
                    continue
                for source, ref, amount, level in rewards:
                    metadata: Dict[str, Any] = {"squad_id": squad.id, "challenge_id": challenge.id}
                    if level is not None:
                        metadata["milestone"] = level
                    self.engine.grant_energy(student_id, amount, source, ref, metadata, when, session=txn)
            return challenge

        challenge = self.store.transaction(scope, _add)
        logger.info(
            f"Challenge {challenge.id} progress {challenge.progress}/{challenge.target} "
            f"(milestone {challenge.milestone_level}, {challenge.status.value})",
            extra={"action": "add_progress", "challenge_id": challenge.id},
        )
        return challenge

    def verify_progress(self, challenge_id: str) -> bool:
        """True when the challenge's progress equals the sum of its progress logs."""
        challenge = self.get_challenge(challenge_id)
        replayed = sum(log.value for log in self.list_progress_logs(challenge_id))
        return abs(challenge.progress - replayed) <= 1e-9
