"""
fin_health/scoring.py
=====================
Wall composite scoring: nine weighted ratios, each scored against a
standard value with an upper and a lower limit, summed into a 100-point
score and mapped to a credit-style rating (AAA … C).

Scoring per indicator (higher-is-better; mirrored when lower is better):
  - at or beyond the upper limit      → full weight        (excellent)
  - between standard and upper limit  → 60% … 100% linear  (good)
  - between lower limit and standard  → 30% … 60% linear   (average)
  - short of the lower limit          → below 30%, floored at 0 (poor)
"""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from .types import FinancialMetrics, WallIndicatorScore, WallScoreResult, WallStatus

logger = logging.getLogger(__name__)


# ─── Indicator Table ──────────────────────────────────────────────────────────


class WallIndicator:
    __slots__ = ("key", "name", "weight", "standard", "upper", "lower", "higher_is_better", "unit")

    def __init__(
        self,
        key: str,
        name: str,
        weight: float,
        standard: float,
        upper: float,
        lower: float,
        higher_is_better: bool = True,
        unit: str = "",
    ):
        self.key = key
        self.name = name
        self.weight = weight
        self.standard = standard
        self.upper = upper
        self.lower = lower
        self.higher_is_better = higher_is_better
        self.unit = unit

    def __repr__(self) -> str:
        return f"WallIndicator({self.key!r}, weight={self.weight})"


# General-enterprise standards; weights sum to 100
WALL_INDICATORS: List[WallIndicator] = [
    WallIndicator("current_ratio", "流动比率", 10, 2.0, 3.0, 1.0),
    WallIndicator("roe", "净资产收益率", 15, 15, 25, 5, unit="%"),
    WallIndicator("roa", "总资产报酬率", 10, 8, 15, 3, unit="%"),
    WallIndicator("debt_to_asset_ratio", "资产负债率", 10, 50, 70, 30, higher_is_better=False, unit="%"),
    WallIndicator("net_profit_margin", "销售净利率", 10, 10, 20, 3, unit="%"),
    WallIndicator("total_asset_turnover", "总资产周转率", 10, 1.0, 2.0, 0.5),
    WallIndicator("receivables_turnover", "应收账款周转率", 10, 6, 12, 3, unit="次"),
    WallIndicator("inventory_turnover", "存货周转率", 10, 4, 8, 2, unit="次"),
    WallIndicator("revenue_growth_rate", "营业收入增长率", 15, 15, 30, 0, unit="%"),
]

# (minimum score percent, rating, description)
RATING_BANDS: Tuple[Tuple[float, str, str], ...] = (
    (90, "AAA", "财务状况极佳，信用等级最高"),
    (80, "AA", "财务状况优秀，偿债能力很强"),
    (70, "A", "财务状况良好，偿债能力较强"),
    (60, "BBB", "财务状况一般，偿债能力适中"),
    (50, "BB", "财务状况较差，存在一定风险"),
    (40, "B", "财务状况不佳，风险较高"),
)
LOWEST_RATING = ("C", "财务状况很差，风险极高")


# ─── Scoring ──────────────────────────────────────────────────────────────────


def score_indicator(value: float, ind: WallIndicator) -> Tuple[float, WallStatus]:
    """Points earned by one indicator (out of ``ind.weight``) plus its status."""
    w = ind.weight
    if ind.higher_is_better:
        if value >= ind.upper:
            return w, "excellent"
        if value >= ind.standard:
            return w * (0.6 + 0.4 * (value - ind.standard) / (ind.upper - ind.standard)), "good"
        if value >= ind.lower:
            return w * (0.3 + 0.3 * (value - ind.lower) / (ind.standard - ind.lower)), "average"
        # a zero lower limit leaves no room below it to interpolate
        if ind.lower <= 0:
            return 0.0, "poor"
        return max(0.0, w * 0.3 * value / ind.lower), "poor"

    if value <= ind.lower:
        return w, "excellent"
    if value <= ind.standard:
        return w * (0.6 + 0.4 * (ind.standard - value) / (ind.standard - ind.lower)), "good"
    if value <= ind.upper:
        return w * (0.3 + 0.3 * (ind.upper - value) / (ind.upper - ind.standard)), "average"
    return max(0.0, w * 0.3 * ind.upper / value), "poor"


def rating_for(score_percent: float) -> Tuple[str, str]:
    """(rating, description) for a score expressed as a percent of the maximum."""
    for floor, rating, description in RATING_BANDS:
        if score_percent >= floor:
            return rating, description
    return LOWEST_RATING


def _suggestions(scores: List[WallIndicatorScore]) -> List[str]:
    poor = [s.name for s in scores if s.status == "poor"]
    average = [s.name for s in scores if s.status == "average"]
    out: List[str] = []
    if poor:
        out.append(f"【重点关注】{'、'.join(poor)}表现较差，需要重点改进。")
    if average:
        out.append(f"【待提升】{'、'.join(average)}有提升空间。")

    for s in scores:
        if s.status not in ("poor", "average"):
            continue
        v = s.actual_value
        if s.metric == "debt_to_asset_ratio" and v > 70:
            out.append(f"资产负债率{v}%偏高，建议优化资本结构，降低财务风险。")
        elif s.metric == "current_ratio" and v < 1.5:
            out.append(f"流动比率{v}偏低，短期偿债压力较大，建议加强现金流管理。")
        elif s.metric == "roe" and v < 10:
            out.append(f"ROE {v}%偏低，盈利能力有待提升，建议优化成本结构或提高资产周转效率。")
        elif s.metric == "revenue_growth_rate" and v < 10:
            out.append(f"收入增长率{v}%偏低，企业发展动力不足，建议拓展新市场或新产品。")

    if not out:
        out.append("各项财务指标表现良好，请继续保持。")
    return out


# ─── Entry Point ──────────────────────────────────────────────────────────────


def calculate_wall_score(
    metrics: FinancialMetrics,
    indicators: Optional[Sequence[WallIndicator]] = None,
) -> WallScoreResult:
    """
    Score ``metrics`` with the Wall method. A custom ``indicators`` table may
    be passed (e.g. industry-specific standards); the maximum score is the
    sum of its weights.
    """
    table = list(indicators) if indicators is not None else WALL_INDICATORS
    scores: List[WallIndicatorScore] = []
    for ind in table:
        value = getattr(metrics, ind.key, 0.0) or 0.0
        points, status = score_indicator(value, ind)
        scores.append(WallIndicatorScore(
            metric=ind.key,
            name=ind.name,
            actual_value=round(float(value), 2),
            standard_value=ind.standard,
            score=round(points, 1),
            max_score=ind.weight,
            unit=ind.unit,
            status=status,
        ))

    total = round(sum(s.score for s in scores), 1)
    max_possible = sum(ind.weight for ind in table)
    pct = total / max_possible * 100 if max_possible > 0 else 0.0
    rating, description = rating_for(pct)
    logger.debug("Wall score %.1f / %.0f → %s", total, max_possible, rating)
    return WallScoreResult(
        total_score=total,
        max_possible_score=max_possible,
        rating=rating,
        rating_description=description,
        indicator_scores=scores,
        suggestions=_suggestions(scores),
    )
