"""
fin_health/config.py
====================
Option dataclasses for the analysis engine plus environment loading.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


def _to_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse truthy environment values like '1' or 'true'."""
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: Optional[str]) -> Optional[int]:
    """Safely parse an integer env var, returning None on failure."""
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


@dataclass
class LedgerRuleConfig:
    """Thresholds for the per-ledger anomaly rules and display caps."""
    outlier_sigma: float = 3.0
    round_base: float = 10000.0
    round_min_count: int = 3
    round_min_share: float = 0.3
    concentration_share: float = 0.5
    concentration_high_share: float = 0.8
    balance_tolerance: float = 0.01
    frequent_same_day: int = 3
    large_display: int = 5
    counterparty_display: int = 10
    anomaly_entry_display: int = 3


@dataclass
class DetectionConfig:
    """Statement-level anomaly thresholds (fractions, not percent)."""
    sudden_change: float = 0.30
    ratio_deterioration: float = 0.20
    structure_change: float = 0.10
    cashflow_mismatch: float = 0.50


@dataclass
class ForecastOptions:
    horizon: int = 3
    revenue_widening: float = 0.1
    profit_widening: float = 0.15
    asset_widening: float = 0.1
    # Amplitude of the seeded perturbation on key-metric forecasts; 0 keeps them deterministic.
    variability: float = 0.0
    seed: Optional[int] = None


@dataclass
class AnalysisOptions:
    industry: str = "通用"
    estimate_missing: bool = True
    identity_tolerance_ratio: float = 0.01
    identity_min_tolerance: float = 100.0
    trial_balance_tolerance: float = 0.01
    debug: bool = False
    ledger: LedgerRuleConfig = field(default_factory=LedgerRuleConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    forecast: ForecastOptions = field(default_factory=ForecastOptions)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "AnalysisOptions":
        """Build options from FIN_HEALTH_* variables, reading a .env file first if present."""
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()
        opts = cls()
        opts.industry = os.getenv("FIN_HEALTH_INDUSTRY", opts.industry).strip() or opts.industry
        opts.estimate_missing = _to_bool(os.getenv("FIN_HEALTH_ESTIMATE_MISSING"), default=True)
        opts.debug = _to_bool(os.getenv("FIN_HEALTH_DEBUG"), default=False)
        horizon = _to_int(os.getenv("FIN_HEALTH_FORECAST_HORIZON"))
        if horizon is not None and horizon > 0:
            opts.forecast.horizon = horizon
        opts.forecast.seed = _to_int(os.getenv("FIN_HEALTH_FORECAST_SEED"))
        return opts
