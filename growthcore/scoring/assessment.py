"""
Assessment report: category scores, composite, tier and rank mastery.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from growthcore.models import (
    CompositeReport,
    Gender,
    MetricScore,
    QualityScore,
    RankMastery,
    RankMove,
    Tier,
)
from growthcore.scoring.benchmarks import BenchmarkTable, CurvePoint, PercentileCurve
from growthcore.scoring.scorer import BenchmarkScorer, clamp_score, rating
from growthcore.scoring.standards import (
    CATEGORY_METRICS,
    METRICS,
    RADAR_GROUPS,
    ScoringTables,
)
from growthcore.shared.exceptions import ValidationError
from growthcore.shared.logging import get_logger

logger = get_logger(__name__)


def _gender_key(gender: Union[None, str, Gender]) -> str:
    if isinstance(gender, Gender):
        return gender.value
    if gender in ("F", "female"):
        return "female"
    return "male"


class AssessmentScorer:
    """Builds a CompositeReport from raw measurements and freestyle passes."""

    def __init__(
        self,
        scorer: Optional[BenchmarkScorer] = None,
        tables: Optional[ScoringTables] = None,
        benchmarks: Optional[BenchmarkTable] = None,
    ):
        self.tables = tables or ScoringTables()
        self.scorer = scorer or BenchmarkScorer(
            table=benchmarks, weights=self.tables.weights, tiers=self.tables.level_titles
        )

    def score_metric(self, metric_id: str, value: Optional[float], gender: str) -> MetricScore:
        definition = METRICS[metric_id]
        score = 0.0
        if value is not None:
            if metric_id == "ropeSkipSpeed":
                score = self.scorer.interpolate_standard(value, self.tables.rope_speed, True)
            else:
                standard = self.tables.standards.get(metric_id)
                if standard:
                    score = self.scorer.interpolate_standard(
                        value, standard.for_gender(gender), standard.higher_is_better
                    )
        score = round(clamp_score(score))
        return MetricScore(
            id=metric_id,
            label=definition.label,
            unit=definition.unit,
            value=value,
            score=score,
            rating=rating(None if value is None else score),
        )

    @staticmethod
    def strength_metric(inputs: Mapping[str, float], gender: str, age: Optional[int]) -> str:
        """Pull-ups for boys 13+ who did them, otherwise sit-ups when measured."""
        if gender == "male" and (age or 0) >= 13 and inputs.get("pullUps"):
            return "pullUps"
        if inputs.get("sitUps"):
            return "sitUps"
        if inputs.get("pullUps"):
            return "pullUps"
        return "sitUps"

    def height_curve(self, gender: str) -> Optional[PercentileCurve]:
        points = self.tables.height_curves.get(gender)
        return PercentileCurve(points) if points else None

    def height_percentile(self, height: float, gender: str, age: Optional[float]) -> Optional[int]:
        """Height percentile on the growth curve; ages off the table use the nearest edge."""
        curve = self.height_curve(gender)
        if curve is None or age is None:
            return None
        return curve.estimate_percentile(age, height)

    def height_curve_series(
        self, gender: Union[None, str, Gender], min_age: float, max_age: float, step: float = 0.5
    ) -> List[CurvePoint]:
        curve = self.height_curve(_gender_key(gender))
        return curve.series(min_age, max_age, step) if curve else []

    def benchmark_scores(
        self,
        inputs: Mapping[str, float],
        gender: str,
        age: Optional[int],
    ) -> Dict[str, QualityScore]:
        """
        Percentile scores for every measurement with a matching benchmark row.

        Only higher-is-better metrics are scored this way; the reference is
        what a p50 performance scores on the same row.
        """
        results: Dict[str, QualityScore] = {}
        for metric_id, value in inputs.items():
            definition = METRICS[metric_id]
            if definition.category == "body" or not definition.higher_is_better:
                continue
            score, row = self.scorer.score(value, definition.quality, age, gender, definition.unit)
            if row is None:
                continue
            reference, _ = self.scorer.score(row.p50, definition.quality, age, gender, definition.unit)
            results[metric_id] = QualityScore(
                metric=metric_id,
                quality=definition.quality,
                value=value,
                score=round(score),
                reference=round(reference),
                normalized=self.scorer.normalize_min_max(value, definition.quality, age, gender, definition.unit),
                p50=row.p50,
            )
        return results

    def body_metrics(self, inputs: Mapping[str, float], gender: str, age: Optional[int]) -> Dict[str, MetricScore]:
        height = inputs.get("height")
        weight = inputs.get("weight")
        body: Dict[str, MetricScore] = {}

        if height:
            median = self.tables.height_medians.get(gender, {}).get(age) if age else None
            description, score = "normal", 85
            if median:
                if height < median * 0.95:
                    description, score = "short", 65
                elif height > median * 1.05:
                    description, score = "tall", 95
            body["height"] = MetricScore(
                id="height", label="Height", unit="cm", value=height,
                score=score, rating=rating(score), description=description,
                percentile=self.height_percentile(height, gender, age),
            )

        if height and weight:
            bmi = round(weight / ((height / 100) ** 2), 1)
            description, score = "normal", 85
            band = self.tables.bmi_bands.get(gender, {}).get(age) if age else None
            if band:
                under, over, obese = band
                if bmi < under:
                    description, score = "underweight", 65
                elif bmi >= obese:
                    description, score = "obese", 40
                elif bmi >= over:
                    description, score = "overweight", 65
            body["bmi"] = MetricScore(
                id="bmi", label="BMI", value=bmi,
                score=score, rating=rating(score), description=description,
            )
        return body

    @staticmethod
    def rank_mastery(
        passed_move_ids: Iterable[str],
        rank_moves: Iterable[RankMove],
    ) -> Tuple[List[RankMastery], int]:
        """
        Per-rank mastery rows and the highest fully mastered rank.

        A rank counts as mastered once every move belonging to it has been
        passed at least once.
        """
        moves = {move.id: move for move in rank_moves}
        totals: Dict[int, int] = {}
        for move in moves.values():
            totals[move.rank] = totals.get(move.rank, 0) + 1

        mastered: Dict[int, set] = {}
        for move_id in passed_move_ids:
            move = moves.get(move_id)
            if move is None:
                continue
            mastered.setdefault(move.rank, set()).add(move_id)

        rows = []
        highest = 0
        for rank in sorted(totals):
            count = len(mastered.get(rank, ()))
            rows.append(RankMastery(rank=rank, mastered=count, total=totals[rank]))
            if totals[rank] > 0 and count >= totals[rank]:
                highest = max(highest, rank)
        return rows, highest

    def growth_stage(self, highest_rank: int) -> int:
        index = 0
        for idx, stage in enumerate(self.tables.growth_stages):
            if highest_rank >= stage.min_rank:
                index = idx
        return index

    def score_assessment(
        self,
        raw_measurements: Mapping[str, Optional[float]],
        gender: Union[None, str, Gender],
        age: Optional[int],
        passed_move_ids: Iterable[str] = (),
        rank_moves: Iterable[RankMove] = (),
    ) -> CompositeReport:
        """
        Score one assessment.

        Args:
            raw_measurements: metric id -> raw value (unknown ids are rejected,
                None means not measured)
            gender: male/female (defaults to male tables)
            age: whole years at assessment date
            passed_move_ids: freestyle moves the student has passed
            rank_moves: the move catalogue used for rank mastery

        Returns:
            CompositeReport
        """
        unknown = [key for key in raw_measurements if key not in METRICS]
        if unknown:
            raise ValidationError(f"Unknown measurements: {', '.join(sorted(unknown))}")
        if age is not None and age < 0:
            raise ValidationError(f"Age must be >= 0, got {age}")

        gender_key = _gender_key(gender)
        inputs = {key: float(value) for key, value in raw_measurements.items() if value is not None}

        mapping = dict(CATEGORY_METRICS)
        mapping["strength_endurance"] = self.strength_metric(inputs, gender_key, age)

        scores = {
            category: self.score_metric(metric_id, inputs.get(metric_id), gender_key)
            for category, metric_id in mapping.items()
        }

        radar = {}
        for quality, categories in RADAR_GROUPS.items():
            values = [scores[c].score for c in categories if c in scores]
            radar[quality] = round(sum(values) / len(values)) if values else 0

        total = self.scorer.composite({key: metric.score for key, metric in scores.items()})
        tier = self.scorer.resolve_tier(total)

        rows, highest = self.rank_mastery(passed_move_ids, rank_moves)
        stage_index = self.growth_stage(highest)
        stage = self.tables.growth_stages[stage_index]

        logger.debug(f"Assessment scored total={total} tier={tier.title} highest_rank={highest}")

        return CompositeReport(
            gender=Gender(gender_key),
            age=age,
            inputs=inputs,
            scores=scores,
            benchmark_scores=self.benchmark_scores(inputs, gender_key, age),
            body=self.body_metrics(inputs, gender_key, age),
            radar=radar,
            total_score=total,
            tier=Tier(title=tier.title, index=tier.index, threshold=tier.threshold),
            highest_rank=highest,
            mastered_rank_count=sum(1 for row in rows if row.total > 0 and row.mastered >= row.total),
            rank_mastery=rows,
            growth_stage_index=stage_index,
            honor_title=stage.honor,
        )
