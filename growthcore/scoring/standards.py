"""
Reference scoring standards for fitness assessments.

Each standard maps a raw measurement onto a 0-100 score through
(value, score) anchor points per gender. Lower-is-better metrics (timed runs)
list anchors from slowest to fastest.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from growthcore.scoring.benchmarks import CurvePoint

Anchor = Tuple[float, float]


@dataclass(frozen=True)
class MetricDefinition:
    id: str
    label: str
    unit: str
    quality: str
    category: str
    higher_is_better: bool = True


@dataclass(frozen=True)
class ScoringStandard:
    male: List[Anchor]
    female: List[Anchor]
    higher_is_better: bool = True

    def for_gender(self, gender: str) -> List[Anchor]:
        return self.female if gender == "female" else self.male


@dataclass(frozen=True)
class TierThreshold:
    threshold: float
    title: str
    index: int


@dataclass(frozen=True)
class GrowthStage:
    name: str
    honor: str
    min_rank: int = 0


METRICS: Dict[str, MetricDefinition] = {
    m.id: m for m in [
        MetricDefinition("height", "Height", "cm", "morphology", "body"),
        MetricDefinition("weight", "Weight", "kg", "morphology", "body", higher_is_better=False),
        MetricDefinition("run50m", "50m run", "s", "speed", "speed", higher_is_better=False),
        MetricDefinition("sitAndReach", "Sit and reach", "cm", "flexibility", "flexibility"),
        MetricDefinition("longJump", "Standing long jump", "cm", "power", "power"),
        MetricDefinition("sitUps", "Sit-ups (1 min)", "count", "core", "core"),
        MetricDefinition("pullUps", "Pull-ups", "count", "core", "core"),
        MetricDefinition("pushUps", "Push-ups", "count", "power", "power"),
        MetricDefinition("vitalCapacity", "Vital capacity", "ml", "endurance", "endurance"),
        MetricDefinition("ropeEndurance", "3 min single rope", "count", "endurance", "rope"),
        MetricDefinition("ropeSkipSpeed", "30 s single rope", "count", "speed", "rope"),
    ]
}

ASSESSMENT_STANDARDS: Dict[str, ScoringStandard] = {
    "run50m": ScoringStandard(
        male=[(15, 0), (12.5, 60), (10, 80), (9, 90), (7.1, 100)],
        female=[(16, 0), (12.8, 60), (10.3, 80), (9.5, 90), (8.4, 100)],
        higher_is_better=False,
    ),
    "sitAndReach": ScoringStandard(
        male=[(-5, 0), (5.9, 60), (11.7, 80), (16, 90), (21.6, 100)],
        female=[(-2, 0), (7.7, 60), (13.5, 80), (18, 90), (22.3, 100)],
    ),
    "longJump": ScoringStandard(
        male=[(80, 0), (115, 60), (135, 70), (215, 90), (235, 100)],
        female=[(70, 0), (105, 60), (125, 70), (165, 90), (185, 100)],
    ),
    "sitUps": ScoringStandard(
        male=[(5, 0), (15, 60), (25, 80), (35, 90), (43, 100)],
        female=[(4, 0), (14, 60), (24, 75), (41, 90), (51, 100)],
    ),
    "pullUps": ScoringStandard(
        male=[(0, 0), (4, 60), (8, 80), (12, 90), (17, 100)],
        female=[(0, 0), (2, 60), (4, 75), (6, 90), (9, 100)],
    ),
    "pushUps": ScoringStandard(
        male=[(2, 0), (10, 60), (20, 80), (30, 90), (40, 100)],
        female=[(2, 0), (8, 60), (15, 80), (20, 90), (25, 100)],
    ),
    "vitalCapacity": ScoringStandard(
        male=[(800, 0), (1000, 60), (1800, 75), (3500, 90), (4800, 100)],
        female=[(700, 0), (900, 60), (1600, 75), (2500, 90), (3500, 100)],
    ),
    "ropeEndurance": ScoringStandard(
        male=[(150, 0), (200, 60), (300, 80), (400, 90), (500, 100)],
        female=[(130, 0), (180, 60), (280, 80), (380, 90), (480, 100)],
    ),
}

# Same table for both genders
ROPE_SPEED_STANDARD: List[Anchor] = [
    (59, 60), (60, 65), (70, 70), (80, 75), (100, 80),
    (110, 85), (120, 90), (150, 95), (160, 98), (170, 100),
]

HEIGHT_MEDIANS: Dict[str, Dict[int, float]] = {
    "male": {
        6: 117.7, 7: 124, 8: 130, 9: 135.4, 10: 140.2, 11: 145.2,
        12: 151.9, 13: 159.5, 14: 165.9, 15: 169.8, 16: 171.6, 17: 172.4,
    },
    "female": {
        6: 116.6, 7: 122.5, 8: 128.4, 9: 134.1, 10: 140.1, 11: 146.6,
        12: 152.4, 13: 156.3, 14: 158.6, 15: 159.8, 16: 160.3, 17: 160.6,
    },
}

# Height growth curves (age, p3, p50, p97); p3/p97 approximated as -/+8.5% of the median
HEIGHT_SPREAD = 0.085

HEIGHT_CURVES: Dict[str, List[CurvePoint]] = {
    gender: [
        CurvePoint(age, round(p50 * (1 - HEIGHT_SPREAD), 1), p50, round(p50 * (1 + HEIGHT_SPREAD), 1))
        for age, p50 in sorted(medians.items())
    ]
    for gender, medians in HEIGHT_MEDIANS.items()
}

# (underweight below, overweight from, obese from)
BMI_BANDS: Dict[str, Dict[int, Tuple[float, float, float]]] = {
    "male": {
        6: (13.1, 17.5, 19.4), 7: (13.2, 18.3, 20.6), 8: (13.4, 19.1, 21.8),
        9: (13.7, 19.9, 23), 10: (14.1, 20.8, 24.3), 11: (14.6, 21.7, 25.5),
        12: (15.2, 22.6, 26.6), 13: (15.8, 23.4, 27.6), 14: (16.4, 24.1, 28.4),
        15: (16.9, 24.8, 29.2), 16: (17.3, 25.3, 29.8), 17: (17.6, 25.7, 30.3),
    },
    "female": {
        6: (12.7, 17.2, 18.9), 7: (12.8, 18, 20), 8: (13, 18.8, 21.2),
        9: (13.4, 19.7, 22.4), 10: (13.9, 20.6, 23.7), 11: (14.5, 21.5, 24.9),
        12: (15.1, 22.4, 26.1), 13: (15.7, 23.1, 27.1), 14: (16.2, 23.7, 27.9),
        15: (16.5, 24.1, 28.5), 16: (16.7, 24.4, 28.9), 17: (16.8, 24.5, 29.1),
    },
}

LEVEL_TITLES: List[TierThreshold] = [
    TierThreshold(0, "Iron", 0),
    TierThreshold(60, "Bronze", 1),
    TierThreshold(70, "Silver", 2),
    TierThreshold(80, "Gold", 3),
    TierThreshold(85, "Platinum", 4),
    TierThreshold(90, "Diamond", 5),
    TierThreshold(95, "Master", 6),
    TierThreshold(98, "Champion", 7),
]

# min_rank: highest mastered rank needed to enter the stage
GROWTH_STAGES: List[GrowthStage] = [
    GrowthStage("Rookie Camp", "Bronze Warrior", 0),
    GrowthStage("Warrior Grounds", "Silver Warrior", 2),
    GrowthStage("Elite Arena", "Gold Fighter", 4),
    GrowthStage("Supreme Battlefield", "Diamond King", 8),
]

# Composite categories: category -> weight
CATEGORY_WEIGHTS: Dict[str, float] = {
    "speed": 0.1,
    "flexibility": 0.1,
    "explosive_power": 0.1,
    "strength_endurance": 0.15,
    "upper_body": 0.1,
    "lung_capacity": 0.1,
    "rope_endurance": 0.2,
    "rope_speed": 0.15,
}

# Category -> metric id; strength_endurance is resolved per student
CATEGORY_METRICS: Dict[str, str] = {
    "speed": "run50m",
    "flexibility": "sitAndReach",
    "explosive_power": "longJump",
    "strength_endurance": "sitUps",
    "upper_body": "pushUps",
    "lung_capacity": "vitalCapacity",
    "rope_endurance": "ropeEndurance",
    "rope_speed": "ropeSkipSpeed",
}

RADAR_GROUPS: Dict[str, Tuple[str, ...]] = {
    "speed": ("speed", "rope_speed"),
    "flexibility": ("flexibility",),
    "power": ("explosive_power", "upper_body"),
    "core": ("strength_endurance",),
    "endurance": ("rope_endurance", "lung_capacity"),
    "coordination": ("speed",),
    "agility": ("speed",),
}

# Minimum 30 s single-rope reps for ranks 1..9 when no thresholds are configured
SPEED_RANK_FALLBACK: List[int] = [60, 70, 80, 100, 110, 120, 150, 160, 170]


@dataclass(frozen=True)
class ScoringTables:
    """Bundle of standards handed to the assessment scorer."""
    standards: Dict[str, ScoringStandard] = field(default_factory=lambda: dict(ASSESSMENT_STANDARDS))
    rope_speed: List[Anchor] = field(default_factory=lambda: list(ROPE_SPEED_STANDARD))
    height_medians: Dict[str, Dict[int, float]] = field(default_factory=lambda: dict(HEIGHT_MEDIANS))
    height_curves: Dict[str, List[CurvePoint]] = field(default_factory=lambda: dict(HEIGHT_CURVES))
    bmi_bands: Dict[str, Dict[int, Tuple[float, float, float]]] = field(default_factory=lambda: dict(BMI_BANDS))
    level_titles: List[TierThreshold] = field(default_factory=lambda: list(LEVEL_TITLES))
    growth_stages: List[GrowthStage] = field(default_factory=lambda: list(GROWTH_STAGES))
    weights: Dict[str, float] = field(default_factory=lambda: dict(CATEGORY_WEIGHTS))
