"""
fin_health/forecast.py
======================
Forecast engine: ordinary least squares over the period index for revenue,
profit and assets, volatility-scaled confidence bands, growth-trend
classification and biased key-metric projections.

Deterministic by default. ForecastOptions.variability adds a perturbation
drawn from random.Random(seed) to the key-metric projections only.
"""
from __future__ import annotations

import logging
import math
import random
import re
from typing import Iterable, List, Optional, Sequence, Tuple

from .config import ForecastOptions
from .types import (
    FinancialMetrics,
    ForecastItem,
    ForecastResult,
    HistoryPoint,
    KeyMetricForecast,
    MetricStatus,
    PeriodRecord,
    TrendAnalysis,
    TrendInfo,
)

logger = logging.getLogger(__name__)

DEFAULT_VOLATILITY = 0.1


# ─── Statistics ───────────────────────────────────────────────────────────────


def linear_regression(values: Sequence[float]) -> Tuple[float, float]:
    """Return (slope, intercept) of y over x = 0..n-1. A single point gives a flat line."""
    n = len(values)
    if n == 0:
        return 0.0, 0.0
    if n == 1:
        return 0.0, float(values[0])
    xs = range(n)
    sum_x = sum(xs)
    sum_y = sum(values)
    sum_xy = sum(x * y for x, y in zip(xs, values))
    sum_xx = sum(x * x for x in xs)
    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)
    intercept = (sum_y - slope * sum_x) / n
    return slope, intercept


def volatility(values: Sequence[float]) -> float:
    """Coefficient of variation (population std ÷ mean)."""
    if len(values) < 2:
        return DEFAULT_VOLATILITY
    mean = sum(values) / len(values)
    if mean <= 0:
        return DEFAULT_VOLATILITY
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return math.sqrt(variance) / mean


def growth_trend(values: Sequence[float]) -> Tuple[float, float]:
    """
    Period-over-period growth rates (%) → (projected rate, slope of the rates).
    The projection is the mean rate nudged by its own linear trend.
    """
    rates = [
        (values[i] - values[i - 1]) / values[i - 1] * 100
        for i in range(1, len(values))
        if values[i - 1] > 0
    ]
    if not rates:
        return 0.0, 0.0
    slope, _ = linear_regression(rates)
    avg = sum(rates) / len(rates)
    return round(avg + slope, 1), slope


# ─── Period Labels ────────────────────────────────────────────────────────────

_QUARTER_LABEL = re.compile(r"^(\d{4})Q([1-4])$")
_MONTH_LABEL = re.compile(r"^(\d{4})年(\d{1,2})月$")
_YEAR_LABEL = re.compile(r"^(\d{4})年?$")


def next_period_labels(last_label: Optional[str], count: int) -> List[str]:
    """Continue a period label sequence; unknown shapes fall back to T+1, T+2 …"""
    label = (last_label or "").strip()
    m = _QUARTER_LABEL.match(label)
    if m:
        year, q = int(m.group(1)), int(m.group(2))
        out = []
        for _ in range(count):
            q += 1
            if q > 4:
                q, year = 1, year + 1
            out.append(f"{year}Q{q}")
        return out
    m = _MONTH_LABEL.match(label)
    if m:
        year, month = int(m.group(1)), int(m.group(2))
        out = []
        for _ in range(count):
            month += 1
            if month > 12:
                month, year = 1, year + 1
            out.append(f"{year}年{month}月")
        return out
    m = _YEAR_LABEL.match(label)
    if m:
        year = int(m.group(1))
        return [f"{year + i}年" for i in range(1, count + 1)]
    return [f"T+{i}" for i in range(1, count + 1)]


def history_from_records(records: Iterable[PeriodRecord]) -> List[HistoryPoint]:
    """Records are expected in period order (as the repository keeps them)."""
    return [
        HistoryPoint(
            period=r.period,
            revenue=r.financial_data.total_income,
            profit=r.financial_data.net_profit,
            assets=r.financial_data.total_assets,
        )
        for r in records
    ]


# ─── Series Forecast ──────────────────────────────────────────────────────────


def forecast_series(
    values: Sequence[float],
    periods: Sequence[str],
    widening: float,
    with_growth: bool = True,
) -> List[ForecastItem]:
    """
    Project a series over ``periods``. The band margin never shrinks with
    horizon and the lower bound never drops below zero.
    """
    slope, intercept = linear_regression(values)
    vol = volatility(values)
    last_index = len(values) - 1
    last = values[-1] if values else 0.0

    items: List[ForecastItem] = []
    margin = 0.0
    for i, period in enumerate(periods):
        value = max(0.0, slope * (last_index + i + 1) + intercept)
        margin = max(margin, value * vol * (1 + i * widening))
        growth = None
        if with_growth:
            growth = round((value - last) / last * 100, 1) if last > 0 else 0.0
        items.append(ForecastItem(
            period=period,
            forecast=round(value, 2),
            lower_bound=round(max(0.0, value - margin), 2),
            upper_bound=round(value + margin, 2),
            margin=round(margin, 2),
            growth_rate=growth,
        ))
    return items


# ─── Key Metrics ──────────────────────────────────────────────────────────────


def _direction(new: float, old: float) -> str:
    if new > old:
        return "up"
    if new < old:
        return "down"
    return "stable"


def _tier(value: float, healthy: float, warning: float, lower_is_better: bool = False) -> MetricStatus:
    if lower_is_better:
        if value < healthy:
            return "healthy"
        return "warning" if value < warning else "danger"
    if value > healthy:
        return "healthy"
    return "warning" if value > warning else "danger"


def _key_metric(metric: str, name: str, current: float, projected: float, status: MetricStatus) -> KeyMetricForecast:
    return KeyMetricForecast(
        metric=metric,
        metric_name=name,
        current_value=current,
        forecast_value=projected,
        change=round(projected - current, 2),
        trend=_direction(projected, current),
        status=status,
    )


def forecast_key_metrics(
    metrics: FinancialMetrics,
    history: Sequence[HistoryPoint],
    options: Optional[ForecastOptions] = None,
) -> List[KeyMetricForecast]:
    opts = options or ForecastOptions()
    rng = random.Random(opts.seed)

    def nudge(current: float, bias: float) -> float:
        noise = opts.variability * rng.uniform(-1.0, 1.0) if opts.variability else 0.0
        return round(current + bias + noise, 1)

    revenue_rate, _ = growth_trend([h.revenue for h in history])
    profit_rate, _ = growth_trend([h.profit for h in history])
    roe = nudge(metrics.roe, 0.5)
    debt = max(0.0, nudge(metrics.debt_to_asset_ratio, -0.2))
    margin = nudge(metrics.gross_profit_margin, 0.3)

    return [
        _key_metric("revenue_growth", "收入增长率", metrics.revenue_growth_rate, revenue_rate,
                    _tier(revenue_rate, 10, 0)),
        _key_metric("profit_growth", "净利润增长率", metrics.net_profit_growth_rate, profit_rate,
                    _tier(profit_rate, 15, 0)),
        _key_metric("roe", "净资产收益率(ROE)", metrics.roe, roe, _tier(roe, 15, 8)),
        _key_metric("debt_to_asset_ratio", "资产负债率", metrics.debt_to_asset_ratio, debt,
                    _tier(debt, 50, 70, lower_is_better=True)),
        _key_metric("gross_profit_margin", "毛利率", metrics.gross_profit_margin, margin, _tier(margin, 30, 15)),
    ]


# ─── Trends ───────────────────────────────────────────────────────────────────


def _trend_info(values: Sequence[float], direction_band: float, strong: float, moderate: float) -> TrendInfo:
    rate, slope = growth_trend(values)
    if rate > direction_band:
        direction = "up"
    elif rate < -direction_band:
        direction = "down"
    else:
        direction = "stable"
    if abs(slope) > strong:
        strength = "strong"
    elif abs(slope) > moderate:
        strength = "moderate"
    else:
        strength = "weak"
    return TrendInfo(direction=direction, strength=strength, average_rate=rate, slope=round(slope, 4))


def analyze_trends(history: Sequence[HistoryPoint]) -> TrendAnalysis:
    revenues = [h.revenue for h in history]
    revenue = _trend_info(revenues, 5, 5, 2)
    profit = _trend_info([h.profit for h in history], 10, 10, 5)
    assets = _trend_info([h.assets for h in history], 5, 5, 2)

    positive = sum(1 for t in (revenue, profit) if t.average_rate > 0)
    negative = sum(1 for t in (revenue, profit) if t.average_rate < 0)
    if positive > negative:
        overall = "positive"
    elif negative > positive:
        overall = "negative"
    else:
        overall = "stable"

    vol = volatility(revenues)
    if vol > 0.3:
        tier = "high"
    elif vol > 0.15:
        tier = "medium"
    else:
        tier = "low"
    return TrendAnalysis(
        revenue_growth=revenue,
        profit_growth=profit,
        asset_growth=assets,
        overall_trend=overall,
        volatility=tier,
        volatility_value=round(vol, 4),
    )


def forecast_suggestions(trends: TrendAnalysis, key_metrics: Sequence[KeyMetricForecast]) -> List[str]:
    out: List[str] = []
    if trends.overall_trend == "positive":
        out.append("财务预测显示整体趋势向好，建议保持当前经营策略并适度扩大规模。")
    elif trends.overall_trend == "negative":
        out.append("预测显示财务指标可能下滑，建议审查成本结构和收入质量，制定应对预案。")
    else:
        out.append("预测显示财务将保持稳定，建议关注关键指标的细微变化，寻找增长机会。")

    by_name = {m.metric: m for m in key_metrics}
    revenue = by_name.get("revenue_growth")
    if revenue and revenue.forecast_value < 0:
        out.append(f"收入增长率预计下滑至 {revenue.forecast_value}%，建议加强市场开拓和产品创新。")
    profit = by_name.get("profit_growth")
    if profit and profit.forecast_value < 0:
        out.append("净利润增长面临压力，建议优化成本结构，提升运营效率。")
    roe = by_name.get("roe")
    if roe and roe.forecast_value < 10:
        out.append(f"ROE预计为 {roe.forecast_value}%，低于理想水平，建议提升资产周转率或优化资本结构。")
    if trends.volatility == "high":
        out.append("收入波动较大，建议建立风险缓冲机制，增强抗风险能力。")
    debt = by_name.get("debt_to_asset_ratio")
    if debt and debt.forecast_value > 60:
        out.append(f"资产负债率预计达 {debt.forecast_value}%，需关注偿债压力和财务风险。")
    return out


# ─── Entry Point ──────────────────────────────────────────────────────────────


def forecast(
    history: Sequence[HistoryPoint],
    metrics: FinancialMetrics,
    options: Optional[ForecastOptions] = None,
) -> ForecastResult:
    """
    Forecast the next ``options.horizon`` periods from ordered history.
    No history is invented: one point yields a flat projection.
    """
    opts = options or ForecastOptions()
    points = list(history)
    periods = next_period_labels(points[-1].period if points else None, opts.horizon)

    revenue = forecast_series([h.revenue for h in points], periods, opts.revenue_widening)
    profit = forecast_series([h.profit for h in points], periods, opts.profit_widening)
    assets = forecast_series([h.assets for h in points], periods, opts.asset_widening, with_growth=False)
    key_metrics = forecast_key_metrics(metrics, points, opts)
    trends = analyze_trends(points)

    logger.debug("Forecast over %d history point(s), %d period(s): trend=%s",
                 len(points), len(periods), trends.overall_trend)
    return ForecastResult(
        forecast_periods=periods,
        revenue_forecast=revenue,
        profit_forecast=profit,
        assets_forecast=assets,
        key_metrics_forecast=key_metrics,
        trends=trends,
        suggestions=forecast_suggestions(trends, key_metrics),
        history=points,
    )
