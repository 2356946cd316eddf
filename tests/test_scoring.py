"""
tests/test_scoring.py
=====================
Wall composite scoring: per-indicator interpolation, rating bands and
improvement suggestions.
"""

import pytest

from fin_health.scoring import (
    WALL_INDICATORS,
    WallIndicator,
    calculate_wall_score,
    rating_for,
    score_indicator,
)
from fin_health.types import FinancialMetrics

# ─── Shared Fixtures ──────────────────────────────────────────────────────────

CURRENT_RATIO = WallIndicator("current_ratio", "流动比率", 10, 2.0, 3.0, 1.0)
DEBT_RATIO = WallIndicator("debt_to_asset_ratio", "资产负债率", 10, 50, 70, 30, higher_is_better=False, unit="%")


def _metrics_at_standard():
    return FinancialMetrics(**{ind.key: ind.standard for ind in WALL_INDICATORS})


class TestScoreIndicator:
    @pytest.mark.parametrize("value, points, status", [
        (3.5, 10, "excellent"), (2.5, 8.0, "good"), (1.5, 4.5, "average"), (0.5, 1.5, "poor"),
    ])
    def test_higher_is_better(self, value, points, status):
        score, label = score_indicator(value, CURRENT_RATIO)
        assert score == pytest.approx(points)
        assert label == status

    @pytest.mark.parametrize("value, points, status", [
        (20, 10, "excellent"), (40, 8.0, "good"), (60, 4.5, "average"), (140, 1.5, "poor"),
    ])
    def test_lower_is_better(self, value, points, status):
        score, label = score_indicator(value, DEBT_RATIO)
        assert score == pytest.approx(points)
        assert label == status

    def test_negative_value_floors_at_zero(self):
        assert score_indicator(-2.0, CURRENT_RATIO) == (0.0, "poor")

    def test_zero_lower_limit(self):
        growth = WallIndicator("revenue_growth_rate", "营业收入增长率", 15, 15, 30, 0, unit="%")
        assert score_indicator(-5, growth) == (0.0, "poor")
        assert score_indicator(0, growth)[0] == pytest.approx(4.5)

    def test_monotonic_in_value(self):
        values = [v / 10 for v in range(0, 1500)]
        higher = [score_indicator(v / 30, CURRENT_RATIO)[0] for v in values]
        lower = [score_indicator(v, DEBT_RATIO)[0] for v in values]
        assert all(b >= a - 1e-9 for a, b in zip(higher, higher[1:]))
        assert all(b <= a + 1e-9 for a, b in zip(lower, lower[1:]))


class TestRating:
    @pytest.mark.parametrize("pct, rating", [
        (100, "AAA"), (90, "AAA"), (89.9, "AA"), (75, "A"), (60, "BBB"), (55, "BB"), (40, "B"), (39.9, "C"),
    ])
    def test_bands(self, pct, rating):
        assert rating_for(pct)[0] == rating

    def test_descriptions(self):
        assert rating_for(95)[1] == "财务状况极佳，信用等级最高"
        assert rating_for(0)[1] == "财务状况很差，风险极高"


class TestCalculateWallScore:
    def test_weights_sum_to_hundred(self):
        assert sum(ind.weight for ind in WALL_INDICATORS) == 100

    def test_all_at_standard_scores_sixty(self):
        result = calculate_wall_score(_metrics_at_standard())
        assert result.total_score == pytest.approx(60.0)
        assert result.max_possible_score == 100
        assert result.rating == "BBB"
        assert {s.status for s in result.indicator_scores} == {"good"}
        assert result.suggestions == ["各项财务指标表现良好，请继续保持。"]

    def test_all_excellent(self):
        metrics = FinancialMetrics(**{ind.key: ind.upper * 2 for ind in WALL_INDICATORS})
        metrics.debt_to_asset_ratio = 20
        result = calculate_wall_score(metrics)
        assert result.total_score == pytest.approx(100.0)
        assert result.rating == "AAA"
        assert result.score_percent == pytest.approx(100.0)

    def test_empty_metrics(self):
        result = calculate_wall_score(FinancialMetrics())
        by_key = {s.metric: s for s in result.indicator_scores}
        # zero debt is the best possible leverage; zero growth sits on the lower limit
        assert by_key["debt_to_asset_ratio"].score == 10
        assert by_key["revenue_growth_rate"].score == pytest.approx(4.5)
        assert result.total_score == pytest.approx(14.5)
        assert result.rating == "C"

    def test_suggestions_name_weak_indicators(self):
        result = calculate_wall_score(FinancialMetrics())
        assert result.suggestions[0].startswith("【重点关注】流动比率、净资产收益率")
        assert result.suggestions[1] == "【待提升】营业收入增长率有提升空间。"
        specific = result.suggestions[2:]
        assert len(specific) == 3
        assert specific[0].startswith("流动比率")
        assert specific[1].startswith("ROE")
        assert specific[2].startswith("收入增长率")

    def test_high_leverage_suggestion(self):
        metrics = _metrics_at_standard()
        metrics.debt_to_asset_ratio = 80
        result = calculate_wall_score(metrics)
        debt = next(s for s in result.indicator_scores if s.metric == "debt_to_asset_ratio")
        assert debt.status == "poor"
        assert any(s.startswith("资产负债率80.0%偏高") for s in result.suggestions)

    def test_custom_indicator_table(self):
        table = [WallIndicator("roe", "净资产收益率", 50, 15, 25, 5, unit="%")]
        result = calculate_wall_score(FinancialMetrics(roe=25), table)
        assert result.max_possible_score == 50
        assert result.total_score == 50
        assert result.rating == "AAA"
