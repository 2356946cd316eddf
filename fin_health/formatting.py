"""
fin_health/formatting.py
========================
Money formatting with an explicit display unit (元 / 千元 / 万), percent,
ratio and day labels, and colour helpers for the presentation layer.
"""
from __future__ import annotations
from typing import Dict, Literal, Optional, Tuple

UnitType = Literal["yuan", "thousand", "wan"]

# unit → (divisor, suffix)
UNITS: Dict[str, Tuple[float, str]] = {
    "yuan": (1.0, "元"),
    "thousand": (1_000.0, "千元"),
    "wan": (10_000.0, "万"),
}


def unit_suffix(unit: str = "wan") -> str:
    return UNITS.get(unit, UNITS["wan"])[1]


def format_money(value: Optional[float], unit: str = "wan", decimals: int = 2) -> str:
    """
    Format an amount held in yuan for display in ``unit``.
    With unit="yuan" large values collapse to 万 / 亿 automatically.
    """
    if value is None:
        return "—"
    if value == 0:
        return "0"

    divisor, suffix = UNITS.get(unit, UNITS["wan"])
    converted = value / divisor
    abs_val = abs(converted)
    sign = "-" if converted < 0 else ""

    if unit == "yuan":
        if abs_val >= 100_000_000:
            return f"{sign}{abs_val / 100_000_000:.{decimals}f}亿"
        if abs_val >= 10_000:
            return f"{sign}{abs_val / 10_000:.{decimals}f}万"
        return f"{sign}{abs_val:.{decimals}f}元"
    return f"{sign}{abs_val:.{decimals}f}{suffix}"


def format_money_uniform(value: Optional[float], unit: str = "wan", decimals: int = 2) -> str:
    """Same unit for every magnitude (used in tables)."""
    if value is None:
        return "—"
    divisor, suffix = UNITS.get(unit, UNITS["wan"])
    converted = value / divisor
    return f"{'-' if converted < 0 else ''}{abs(converted):,.{decimals}f}{suffix}"


def format_percent(value: Optional[float], decimals: int = 2, signed: bool = False) -> str:
    if value is None:
        return "—"
    return f"{value:+.{decimals}f}%" if signed else f"{value:.{decimals}f}%"


def format_ratio(value: Optional[float], decimals: int = 2) -> str:
    if value is None:
        return "—"
    return f"{value:.{decimals}f}"


def format_days(value: Optional[float]) -> str:
    if value is None:
        return "—"
    return f"{value:.0f}天"


# ─── Labels & Colours ─────────────────────────────────────────────────────────

SEVERITY_LABELS = {"high": "高", "medium": "中", "low": "低"}
HEALTH_LABELS = {
    "excellent": "优秀", "good": "良好", "fair": "一般", "poor": "较差", "critical": "危险",
}
RISK_LABELS = {"critical": "极高", "high": "高", "medium": "中", "low": "低"}


def get_severity_color(severity: str) -> str:
    return {"high": "#ef4444", "medium": "#f59e0b", "low": "#3b82f6"}.get(severity, "#6b7280")


def get_health_color(tier: str) -> str:
    return {
        "excellent": "#10b981", "good": "#22c55e", "fair": "#f59e0b",
        "poor": "#f97316", "critical": "#ef4444",
    }.get(tier, "#6b7280")


def get_status_color(status: str) -> str:
    """Benchmark and key-metric status tiers."""
    return {
        "excellent": "#10b981", "good": "#22c55e", "healthy": "#10b981",
        "average": "#f59e0b", "warning": "#f59e0b",
        "below": "#f97316", "poor": "#ef4444", "danger": "#ef4444",
    }.get(status, "#6b7280")


def get_trend_color(direction: str) -> str:
    return {"up": "#10b981", "down": "#ef4444", "stable": "#6b7280"}.get(direction, "#6b7280")
