"""
fin_health/benchmark.py
=======================
Industry benchmark: compares ten metrics against a fixed table of industry
averages, bands each into a percentile tier and weights the tiers into an
overall score with a ranking label.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from .types import BenchmarkStatus, FinancialMetrics, IndustryComparisonResult, IndustryMetricComparison

logger = logging.getLogger(__name__)

DEFAULT_INDUSTRY = "通用"

# ─── Benchmark Tables ─────────────────────────────────────────────────────────


class BenchmarkMetric:
    __slots__ = ("key", "name", "higher_is_better", "weight")

    def __init__(self, key: str, name: str, higher_is_better: bool, weight: float):
        self.key = key
        self.name = name
        self.higher_is_better = higher_is_better
        self.weight = weight


BENCHMARK_METRICS: List[BenchmarkMetric] = [
    BenchmarkMetric("current_ratio", "流动比率", True, 0.08),
    BenchmarkMetric("quick_ratio", "速动比率", True, 0.08),
    BenchmarkMetric("debt_to_asset_ratio", "资产负债率", False, 0.10),
    BenchmarkMetric("roe", "净资产收益率(ROE)", True, 0.15),
    BenchmarkMetric("roa", "总资产报酬率(ROA)", True, 0.10),
    BenchmarkMetric("gross_profit_margin", "毛利率", True, 0.12),
    BenchmarkMetric("net_profit_margin", "净利率", True, 0.12),
    BenchmarkMetric("total_asset_turnover", "总资产周转率", True, 0.08),
    BenchmarkMetric("inventory_turnover", "存货周转率", True, 0.08),
    BenchmarkMetric("receivables_turnover", "应收账款周转率", True, 0.09),
]

# key → (display name, {metric: industry average})
INDUSTRY_BENCHMARKS: Dict[str, Tuple[str, Dict[str, float]]] = {
    "制造业": ("制造业", {
        "current_ratio": 1.5, "quick_ratio": 1.0, "debt_to_asset_ratio": 55, "roe": 12, "roa": 6,
        "gross_profit_margin": 25, "net_profit_margin": 8, "total_asset_turnover": 0.8,
        "inventory_turnover": 6, "receivables_turnover": 8,
    }),
    "零售业": ("零售业", {
        "current_ratio": 1.8, "quick_ratio": 1.2, "debt_to_asset_ratio": 60, "roe": 15, "roa": 8,
        "gross_profit_margin": 30, "net_profit_margin": 4, "total_asset_turnover": 2.0,
        "inventory_turnover": 8, "receivables_turnover": 15,
    }),
    "科技业": ("科技业", {
        "current_ratio": 2.5, "quick_ratio": 2.0, "debt_to_asset_ratio": 40, "roe": 18, "roa": 12,
        "gross_profit_margin": 55, "net_profit_margin": 15, "total_asset_turnover": 0.6,
        "inventory_turnover": 4, "receivables_turnover": 6,
    }),
    "房地产": ("房地产", {
        "current_ratio": 1.4, "quick_ratio": 0.5, "debt_to_asset_ratio": 70, "roe": 14, "roa": 5,
        "gross_profit_margin": 28, "net_profit_margin": 12, "total_asset_turnover": 0.3,
        "inventory_turnover": 0.5, "receivables_turnover": 4,
    }),
    "通用": ("通用行业", {
        "current_ratio": 2.0, "quick_ratio": 1.5, "debt_to_asset_ratio": 50, "roe": 12, "roa": 6,
        "gross_profit_margin": 30, "net_profit_margin": 10, "total_asset_turnover": 1.0,
        "inventory_turnover": 5, "receivables_turnover": 8,
    }),
}


def available_industries() -> List[str]:
    return list(INDUSTRY_BENCHMARKS)


# ─── Scoring ──────────────────────────────────────────────────────────────────


def percentile_for(value: float, avg: float, higher_is_better: bool = True) -> int:
    """Band a company value against multiples of the industry average."""
    if higher_is_better:
        bands = ((1.5, 95), (1.2, 80), (1.0, 60), (0.8, 40), (0.6, 20))
        for mult, pct in bands:
            if value >= avg * mult:
                return pct
        return 10
    bands = ((0.5, 95), (0.8, 80), (1.0, 60), (1.2, 40), (1.4, 20))
    for mult, pct in bands:
        if value <= avg * mult:
            return pct
    return 10


def status_for(percentile: int) -> BenchmarkStatus:
    if percentile >= 80:
        return "excellent"
    if percentile >= 60:
        return "good"
    if percentile >= 40:
        return "average"
    if percentile >= 20:
        return "below"
    return "poor"


def ranking_for(score: float) -> str:
    if score >= 85:
        return "行业领先（前10%）"
    if score >= 70:
        return "行业中上（前30%）"
    if score >= 50:
        return "行业平均（前50%）"
    if score >= 30:
        return "行业偏下（后30%）"
    return "行业落后（后10%）"


def _compare(metrics: FinancialMetrics, averages: Dict[str, float]) -> List[IndustryMetricComparison]:
    out: List[IndustryMetricComparison] = []
    for bm in BENCHMARK_METRICS:
        value = getattr(metrics, bm.key)
        avg = averages.get(bm.key, 0.0)
        best = avg * 1.5 if bm.higher_is_better else avg * 0.5
        pct = percentile_for(value, avg, bm.higher_is_better)
        gap = (value - avg) / avg * 100 if avg > 0 else 0.0
        out.append(IndustryMetricComparison(
            metric=bm.key,
            metric_name=bm.name,
            company_value=round(value, 2),
            industry_avg=round(avg, 2),
            industry_best=round(best, 2),
            percentile=pct,
            status=status_for(pct),
            gap=round(gap, 1),
            higher_is_better=bm.higher_is_better,
        ))
    return out


def _overall_score(comparisons: List[IndustryMetricComparison]) -> float:
    weights = {bm.key: bm.weight for bm in BENCHMARK_METRICS}
    total_weight = sum(weights.get(c.metric, 0.1) for c in comparisons)
    if total_weight <= 0:
        return 50.0
    total = sum(c.percentile * weights.get(c.metric, 0.1) for c in comparisons)
    return round(total / total_weight, 1)


def _strengths_weaknesses(comparisons: List[IndustryMetricComparison]) -> Tuple[List[str], List[str]]:
    ranked = sorted(comparisons, key=lambda c: -c.percentile)
    strengths = []
    for c in ranked[:3]:
        if c.percentile >= 60:
            gap_text = f"高于行业平均 {c.gap}%" if c.gap > 0 else "接近行业平均"
            strengths.append(f"{c.metric_name}：{gap_text}，处于行业前 {100 - c.percentile}%")
    weaknesses = []
    for c in reversed(ranked[-3:]):
        if c.percentile < 60:
            gap_text = f"低于行业平均 {abs(c.gap)}%" if c.gap < 0 else "略高于行业平均"
            weaknesses.append(f"{c.metric_name}：{gap_text}，处于行业后 {c.percentile}%")
    return strengths, weaknesses


def _suggestions(comparisons: List[IndustryMetricComparison], strengths: List[str], weaknesses: List[str]) -> List[str]:
    by_key = {c.metric: c for c in comparisons}
    out: List[str] = []
    if len(strengths) > len(weaknesses):
        out.append("整体财务表现优于行业平均水平，应继续保持核心竞争优势。")
    elif len(weaknesses) > len(strengths):
        out.append("整体财务表现低于行业平均，建议制定改进计划提升竞争力。")
    else:
        out.append("整体财务表现与行业平均水平相当，在部分指标上有提升空间。")

    roe = by_key["roe"]
    if roe.status in ("excellent", "good"):
        label = "优秀" if roe.status == "excellent" else "良好"
        out.append(f"ROE表现{label}，资本回报效率高于行业，可为股东创造超额价值。")
    elif roe.status in ("below", "poor"):
        out.append(f"ROE低于行业平均 {abs(roe.gap)}%，建议提升资产周转率或优化资本结构。")

    debt = by_key["debt_to_asset_ratio"]
    if debt.status in ("excellent", "good"):
        out.append("财务杠杆使用适度，财务风险可控，具备进一步举债扩张的空间。")
    elif debt.status == "poor":
        out.append("资产负债率偏高，财务风险较大，建议控制负债规模，优化债务结构。")

    if by_key["net_profit_margin"].status in ("below", "poor"):
        out.append("盈利能力低于行业水平，建议审查成本结构，提升产品定价能力或优化业务组合。")

    slow = [k for k in ("total_asset_turnover", "inventory_turnover") if by_key[k].percentile < 40]
    if len(slow) >= 2:
        out.append("资产周转效率偏低，建议优化库存管理，加快应收账款回收，提升资产使用效率。")
    return out


# ─── Entry Point ──────────────────────────────────────────────────────────────


def compare_with_industry(metrics: FinancialMetrics, industry: str = DEFAULT_INDUSTRY) -> IndustryComparisonResult:
    """Unknown industry keys fall back to the generic table."""
    key = industry if industry in INDUSTRY_BENCHMARKS else DEFAULT_INDUSTRY
    if key != industry:
        logger.debug("Unknown industry %r, using %s benchmarks", industry, DEFAULT_INDUSTRY)
    display, averages = INDUSTRY_BENCHMARKS[key]
    comparisons = _compare(metrics, averages)
    score = _overall_score(comparisons)
    strengths, weaknesses = _strengths_weaknesses(comparisons)
    return IndustryComparisonResult(
        industry=display,
        industry_key=key,
        comparison_metrics=comparisons,
        overall_score=score,
        ranking=ranking_for(score),
        strengths=strengths,
        weaknesses=weaknesses,
        suggestions=_suggestions(comparisons, strengths, weaknesses),
    )
