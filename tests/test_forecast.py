"""
tests/test_forecast.py
======================
Regression forecast, confidence bands, trend classification, period labels
and key-metric projections.
"""

import pytest

from fin_health.config import ForecastOptions
from fin_health.forecast import (
    analyze_trends,
    forecast,
    forecast_key_metrics,
    forecast_series,
    growth_trend,
    linear_regression,
    next_period_labels,
    volatility,
)
from fin_health.types import FinancialMetrics, HistoryPoint


def _history(revenues, profits=None, assets=None, labels=None):
    n = len(revenues)
    profits = profits or [r * 0.1 for r in revenues]
    assets = assets or [r * 2 for r in revenues]
    labels = labels or ["2024Q%d" % (i + 1) for i in range(n)]
    return [HistoryPoint(period=labels[i], revenue=revenues[i], profit=profits[i], assets=assets[i])
            for i in range(n)]


class TestStatistics:
    def test_regression(self):
        slope, intercept = linear_regression([100, 120, 150])
        assert slope == pytest.approx(25.0)
        assert intercept == pytest.approx(98.3333, abs=1e-3)

    def test_single_point_is_flat(self):
        assert linear_regression([42.0]) == (0.0, 42.0)

    def test_empty(self):
        assert linear_regression([]) == (0.0, 0.0)

    def test_volatility(self):
        assert volatility([100, 100, 100]) == 0.0
        assert volatility([5]) == 0.1
        assert volatility([0, 0]) == 0.1

    def test_growth_trend(self):
        rate, slope = growth_trend([100, 110, 121])
        assert rate == 10.0
        assert slope == pytest.approx(0.0, abs=1e-9)
        assert growth_trend([100]) == (0.0, 0.0)


class TestForecastSeries:
    def test_three_point_projection(self):
        item = forecast_series([100, 120, 150], ["T+1"], 0.1)[0]
        assert item.forecast == pytest.approx(173.33, abs=0.01)
        assert item.growth_rate == pytest.approx(15.6)
        assert item.margin > 0
        assert item.lower_bound == pytest.approx(item.forecast - item.margin, abs=0.01)
        assert item.lower_bound >= 0

    def test_margin_never_shrinks(self):
        items = forecast_series([300, 200, 100], ["a", "b", "c", "d"], 0.1)
        margins = [i.margin for i in items]
        assert margins == sorted(margins)

    def test_values_and_lower_bounds_floored_at_zero(self):
        items = forecast_series([300, 200, 100], ["a", "b", "c"], 0.1)
        assert all(i.forecast >= 0 for i in items)
        assert all(i.lower_bound >= 0 for i in items)
        assert items[-1].forecast == 0.0

    def test_single_point_flat(self):
        items = forecast_series([500], ["x", "y"], 0.1)
        assert [i.forecast for i in items] == [500, 500]
        assert items[0].growth_rate == 0.0

    def test_without_growth(self):
        assert forecast_series([1, 2], ["x"], 0.1, with_growth=False)[0].growth_rate is None


class TestPeriodLabels:
    def test_quarters_roll_over(self):
        assert next_period_labels("2024Q3", 3) == ["2024Q4", "2025Q1", "2025Q2"]

    def test_months_roll_over(self):
        assert next_period_labels("2024年11月", 3) == ["2024年12月", "2025年1月", "2025年2月"]

    def test_years(self):
        assert next_period_labels("2023年", 2) == ["2024年", "2025年"]

    def test_fallback(self):
        assert next_period_labels("本期", 2) == ["T+1", "T+2"]
        assert next_period_labels(None, 1) == ["T+1"]


class TestTrends:
    def test_positive_trend(self):
        trends = analyze_trends(_history([100, 120, 150]))
        assert trends.overall_trend == "positive"
        assert trends.revenue_growth.direction == "up"
        assert trends.volatility == "medium"

    def test_negative_trend(self):
        trends = analyze_trends(_history([150, 120, 100]))
        assert trends.overall_trend == "negative"
        assert trends.revenue_growth.direction == "down"

    def test_flat_history_is_stable_low_volatility(self):
        trends = analyze_trends(_history([100, 100, 100]))
        assert trends.revenue_growth.direction == "stable"
        assert trends.volatility == "low"
        assert trends.overall_trend == "stable"

    def test_single_point_is_stable(self):
        trends = analyze_trends(_history([100]))
        assert trends.overall_trend == "stable"

    def test_mixed_growth_with_flat_profit(self):
        trends = analyze_trends(_history([100, 120, 150], profits=[10, 10, 10]))
        assert trends.overall_trend == "positive"


class TestKeyMetrics:
    def test_deterministic_by_default(self):
        metrics = FinancialMetrics(roe=12.0, debt_to_asset_ratio=55.0, gross_profit_margin=30.0)
        history = _history([100, 120, 150])
        first = forecast_key_metrics(metrics, history)
        second = forecast_key_metrics(metrics, history)
        assert first == second
        by_key = {m.metric: m for m in first}
        assert by_key["roe"].forecast_value == 12.5
        assert by_key["roe"].trend == "up"
        assert by_key["debt_to_asset_ratio"].forecast_value == 54.8
        assert by_key["debt_to_asset_ratio"].status == "warning"

    def test_seeded_variability_is_reproducible(self):
        metrics = FinancialMetrics(roe=12.0)
        history = _history([100, 120, 150])
        opts = ForecastOptions(variability=2.0, seed=7)
        assert forecast_key_metrics(metrics, history, opts) == forecast_key_metrics(metrics, history, opts)


class TestForecastEntryPoint:
    def test_labels_follow_history(self):
        result = forecast(_history([100, 120, 150]), FinancialMetrics())
        assert result.forecast_periods == ["2024Q4", "2025Q1", "2025Q2"]
        assert len(result.revenue_forecast) == 3
        assert len(result.assets_forecast) == 3
        assert result.assets_forecast[0].growth_rate is None
        assert result.suggestions

    def test_horizon_option(self):
        result = forecast(_history([100, 120]), FinancialMetrics(), ForecastOptions(horizon=5))
        assert len(result.profit_forecast) == 5

    def test_no_history(self):
        result = forecast([], FinancialMetrics())
        assert result.forecast_periods == ["T+1", "T+2", "T+3"]
        assert all(i.forecast == 0 for i in result.revenue_forecast)

    def test_key_metric_lookup(self):
        result = forecast(_history([100, 120, 150]), FinancialMetrics(roe=20))
        assert result.key_metric("roe").forecast_value == 20.5
        assert result.key_metric("missing") is None
