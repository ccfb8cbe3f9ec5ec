"""
Configuration management for growthcore.
Loads from config/growthcore.yaml and environment variables.
"""

from pathlib import Path
from typing import Optional, Dict, Any, List
import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator


class LedgerConfig(BaseSettings):
    """Point ledger configuration."""
    session_point_cap: int = Field(default=10, alias="SESSION_POINT_CAP")
    point_rules: Dict[str, int] = Field(default_factory=lambda: {
        "attendance": 2,
        "pr": 5,
        "freestyle_pass": 3,
        "excellent": 2,
        "challenge": 5,
    })

    model_config = SettingsConfigDict(env_prefix="LEDGER_", extra="ignore", populate_by_name=True)

    @field_validator("session_point_cap")
    @classmethod
    def _non_negative_cap(cls, value: int) -> int:
        if value < 0:
            raise ValueError("session_point_cap must be >= 0")
        return value

    def point_value(self, event_type: str) -> int:
        """Configured default points for a point event type (0 if unknown)."""
        return self.point_rules.get(event_type, 0)


class EnergyConfig(BaseSettings):
    """Energy award amounts."""
    attendance: int = Field(default=10)
    streak_bonus_threshold: int = Field(default=3)
    streak_bonus: int = Field(default=5)
    mission_per_star: int = Field(default=8)
    assessment_rank_up: int = Field(default=30)
    kudos: int = Field(default=5)
    squad_milestone: int = Field(default=5)
    squad_completion: int = Field(default=20)
    squad_milestone_step: float = Field(default=0.1, gt=0.0, le=1.0)
    level_span: int = Field(default=120, gt=0)

    model_config = SettingsConfigDict(env_prefix="ENERGY_", extra="ignore")


class RankReward(BaseModel):
    """Points and energy paid for one rank tier."""
    points: int = Field(ge=0)
    energy: int = Field(ge=0)


class RewardTableConfig(BaseSettings):
    """Freestyle pass / rank-up reward table keyed by rank."""
    ranks: Dict[int, RankReward] = Field(default_factory=lambda: {
        1: RankReward(points=4, energy=12),
        2: RankReward(points=5, energy=14),
        3: RankReward(points=6, energy=16),
        4: RankReward(points=7, energy=18),
        5: RankReward(points=8, energy=20),
        6: RankReward(points=10, energy=24),
        7: RankReward(points=12, energy=28),
        8: RankReward(points=14, energy=32),
        9: RankReward(points=16, energy=36),
    })

    model_config = SettingsConfigDict(env_prefix="REWARDS_", extra="ignore")


class ScoringConfig(BaseSettings):
    """Benchmark rows: quality, age_min, age_max, optional gender, unit, p25/p50/p75, min/max."""
    benchmarks: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = SettingsConfigDict(env_prefix="SCORING_", extra="ignore")


class StoreConfig(BaseSettings):
    """Storage collaborator configuration."""
    db_path: Path = Field(default=Path("data/growthcore.sqlite"), alias="STORE_DB_PATH")
    busy_timeout_seconds: float = Field(default=30.0)

    model_config = SettingsConfigDict(env_prefix="STORE_", extra="ignore", populate_by_name=True)


class ApiConfig(BaseSettings):
    """API server configuration."""
    host: str = Field(default="0.0.0.0", alias="API_HOST")
    port: int = Field(default=8000, alias="API_PORT")
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])

    model_config = SettingsConfigDict(env_prefix="API_", extra="ignore", populate_by_name=True)


class GrowthSettings(BaseSettings):
    """Main growthcore configuration."""
    env: str = Field(default="dev", alias="GROWTHCORE_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[Path] = Field(default=None, alias="LOG_FILE")

    # Sub-configurations
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    energy: EnergyConfig = Field(default_factory=EnergyConfig)
    rewards: RewardTableConfig = Field(default_factory=RewardTableConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
        populate_by_name=True,
    )

    @classmethod
    def load_from_yaml(cls, config_path: Optional[Path] = None) -> "GrowthSettings":
        """Load settings from YAML file and merge with environment variables."""
        if config_path is None:
            config_path = Path("config/growthcore.yaml")

        config_dict: Dict[str, Any] = {}

        if config_path.exists():
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f) or {}
                config_dict = yaml_data.get("growthcore", {})

        # Flatten rewards.ranks given as a list of {rank, points, energy}
        rewards_cfg = config_dict.get("rewards")
        if isinstance(rewards_cfg, dict) and isinstance(rewards_cfg.get("ranks"), list):
            rewards_cfg = dict(rewards_cfg)
            rewards_cfg["ranks"] = {
                int(row["rank"]): {"points": row["points"], "energy": row["energy"]}
                for row in rewards_cfg["ranks"]
            }
            config_dict["rewards"] = rewards_cfg

        return cls(**config_dict)


# Global settings instance
_settings: Optional[GrowthSettings] = None


def get_settings() -> GrowthSettings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = GrowthSettings.load_from_yaml()
    return _settings


# Alias for convenience
settings = get_settings()
