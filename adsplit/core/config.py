from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "adsplit"

    # Decision policy
    CONVERSION_THRESHOLD: int = Field(default=0, ge=0)
    DECISION_THRESHOLD: float = Field(default=0.002, gt=0)
    PROBABILITY_THRESHOLD: float = Field(default=0.8, gt=0.5, lt=1)

    # Ads at or below this many impressions are left out of a run
    MIN_IMPRESSIONS: int = Field(default=100, ge=0)

    # Posterior comparison
    COMPARISON_METHOD: Literal["closed_form", "monte_carlo"] = "closed_form"
    MC_SAMPLES: int = Field(default=1_000_000, gt=0)
    MC_SEED: int = 42
    MC_TOLERANCE: float = Field(default=5e-4, gt=0)

    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "ADSPLIT_"}


settings = Settings()
