"""
Configuration management.
"""

import logging
import os
from dataclasses import dataclass, field


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Config:
    """
    Engine configuration.

    Loads valuation defaults from environment variables with sensible
    defaults. Per-call options still override these.
    """

    # Valuation
    min_comps: int = field(default_factory=lambda: int(os.getenv("VALUATION_MIN_COMPS", "2")))
    use_hedonic_model: bool = field(
        default_factory=lambda: _env_bool("VALUATION_USE_HEDONIC", "true")
    )
    fallback_to_heuristics: bool = field(
        default_factory=lambda: _env_bool("VALUATION_FALLBACK_TO_HEURISTICS", "true")
    )
    max_adjustment_pct: float = field(
        default_factory=lambda: float(os.getenv("VALUATION_MAX_ADJUSTMENT_PCT", "25.0"))
    )

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    def to_options(self):
        """Build per-call ValuationOptions from these defaults."""
        from pricing.comp_engine.valuation import ValuationOptions

        return ValuationOptions(
            min_comps=self.min_comps,
            use_hedonic_model=self.use_hedonic_model,
            fallback_to_heuristics=self.fallback_to_heuristics,
            max_adjustment_pct=self.max_adjustment_pct,
        )

    def get_logger(self, name: str = "pricing") -> logging.Logger:
        """Logger for ValuationPipeline, levelled from LOG_LEVEL. Handlers are left to the caller."""
        engine_logger = logging.getLogger(name)
        engine_logger.setLevel(self.log_level)
        return engine_logger

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            "min_comps": self.min_comps,
            "use_hedonic_model": self.use_hedonic_model,
            "fallback_to_heuristics": self.fallback_to_heuristics,
            "max_adjustment_pct": self.max_adjustment_pct,
            "log_level": self.log_level,
        }
