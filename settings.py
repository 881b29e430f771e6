"""Dashboard configuration.

Values can be overridden through ``AZ_``-prefixed environment variables or a
``.env`` file next to the app. Engine functions never read these settings;
the dashboard passes them in explicitly.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Tunables for trend fitting, aggregation and logging."""

    model_config = SettingsConfigDict(env_prefix="AZ_", env_file=".env", extra="ignore")

    # ==================== Trend fitting ====================
    loess_bandwidth: float = Field(default=0.3, gt=0, le=1, description="Fraction of points in each LOESS neighbourhood")
    regression_max_iterations: int = Field(default=10, ge=0, description="IRLS refits after the initial OLS fit")
    regression_tolerance: float = Field(default=1e-4, gt=0, description="IRLS convergence threshold on |Δslope| + |Δintercept|")
    huber_k: float = Field(default=1.5, gt=0, description="Huber threshold as a multiple of the median absolute residual")
    curve_points: int = Field(default=100, ge=1, description="Points sampled along each trend curve")

    # ==================== Aggregation ====================
    cop_max_realistic: float = Field(default=8.0, description="COP values above this are treated as measurement errors")
    cop_min_realistic: float = Field(default=0.0, description="COP values below this are treated as measurement errors")
    temperature_fallback_min: int = Field(default=0, description="Temperature axis minimum when no temperatures exist")
    temperature_fallback_max: int = Field(default=40, description="Temperature axis maximum when no temperatures exist")

    # ==================== Logging ====================
    log_level: str = Field(default="INFO", description="Log level for the dashboard loggers")

    @property
    def cop_bounds(self) -> tuple:
        return (self.cop_min_realistic, self.cop_max_realistic)

    @property
    def temperature_fallback(self) -> dict:
        return {"min": self.temperature_fallback_min, "max": self.temperature_fallback_max}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
