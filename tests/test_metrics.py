"""
tests/test_metrics.py
=====================
Ratio engine: zero-denominator policy, estimates, growth baselines, DuPont
decomposition and plain-language observations.
"""

import dataclasses

import pytest

from fin_health.aggregator import aggregate
from fin_health.metrics import (
    baseline_from_beginning,
    calculate_dupont,
    calculate_metrics,
    compute_buckets,
    generate_suggestions,
)
from fin_health.types import FinancialData, FinancialMetrics, PeriodBaseline


# ─── Shared Fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def tb_data(trial_balance_sheet):
    return aggregate([trial_balance_sheet])


@pytest.fixture
def statement_data(balance_sheet, income_sheet, cashflow_sheet):
    return aggregate([balance_sheet, income_sheet, cashflow_sheet])


class TestZeroPolicy:
    def test_all_zero_input(self):
        metrics = calculate_metrics(FinancialData())
        for f in dataclasses.fields(FinancialMetrics):
            assert getattr(metrics, f.name) == 0, f.name

    def test_all_zero_without_estimates(self):
        metrics = calculate_metrics(FinancialData(), estimate_missing=False)
        assert metrics == FinancialMetrics()

    def test_negative_equity_gives_zero_roe(self):
        data = FinancialData(total_assets=100, total_liabilities=150, total_equity=-50,
                             total_income=100, total_expenses=80)
        assert calculate_metrics(data).roe == 0.0


class TestTrialBalanceMetrics:
    def test_headline_ratios(self, tb_data):
        m = calculate_metrics(tb_data)
        assert m.debt_to_asset_ratio == 60.0
        assert m.net_profit_margin == 16.67
        assert m.roe == 12.5
        assert m.roa == 5.0
        assert m.equity_ratio == 1.5

    def test_sustainable_growth_uses_retention(self, tb_data):
        m = calculate_metrics(tb_data)
        assert m.sustainable_growth_rate == round(m.roe * 0.7, 2)

    def test_growth_is_zero_without_prior_revenue(self, tb_data):
        m = calculate_metrics(tb_data, baseline_from_beginning(tb_data))
        assert m.revenue_growth_rate == 0.0
        assert m.total_asset_growth_rate == pytest.approx(5.26)

    def test_explicit_baseline(self, tb_data):
        baseline = PeriodBaseline(revenue=250000, net_profit=40000, total_assets=800000, total_equity=400000)
        m = calculate_metrics(tb_data, baseline)
        assert m.revenue_growth_rate == 20.0
        assert m.net_profit_growth_rate == 25.0
        assert m.total_asset_growth_rate == 25.0
        assert m.equity_growth_rate == 0.0

    def test_negative_prior_profit_uses_absolute_base(self, tb_data):
        baseline = PeriodBaseline(revenue=300000, net_profit=-50000)
        assert calculate_metrics(tb_data, baseline).net_profit_growth_rate == 200.0


class TestStatementMetrics:
    def test_liquidity_from_buckets(self, statement_data):
        m = calculate_metrics(statement_data)
        assert m.current_ratio == 1.2
        assert m.quick_ratio == 1.0
        assert m.cash_ratio == 0.4

    def test_profitability(self, statement_data):
        m = calculate_metrics(statement_data)
        assert m.gross_profit_margin == 40.0
        assert m.net_profit_margin == 14.9
        assert m.roe == 14.9

    def test_turnover_uses_average_balances(self, statement_data):
        m = calculate_metrics(statement_data)
        # revenue 500,000 over average assets (1,000,000 + 900,000) / 2
        assert m.total_asset_turnover == 0.53
        assert m.receivables_turnover == 1.8
        assert m.receivables_days == 202.8

    def test_growth_from_prior_columns(self, statement_data):
        m = calculate_metrics(statement_data, baseline_from_beginning(statement_data))
        assert m.revenue_growth_rate == 25.0
        assert m.total_asset_growth_rate == 11.11

    def test_cashflow_ratios(self, statement_data):
        m = calculate_metrics(statement_data)
        assert m.free_cash_flow == 70000
        assert m.cash_flow_to_revenue == 24.0
        assert m.operating_cash_flow_ratio == 1.61


class TestEstimates:
    def test_estimates_fill_missing_buckets(self, tb_data):
        with_est = compute_buckets(tb_data, estimate_missing=True)
        without = compute_buckets(tb_data, estimate_missing=False)
        assert without.inventory == 0
        assert with_est.inventory > 0
        assert without.cogs == 0
        assert with_est.cogs == pytest.approx(250000 * 0.7)

    def test_estimates_gated_by_flag(self, tb_data):
        m = calculate_metrics(tb_data, estimate_missing=False)
        assert m.inventory_turnover == 0.0
        assert m.gross_profit_margin == 0.0


class TestDupont:
    def test_product_matches_roe(self, tb_data):
        d = calculate_dupont(tb_data)
        assert d.net_profit_margin == 16.67
        assert d.total_asset_turnover == 0.3
        assert d.equity_multiplier == 2.5
        assert d.roe == 12.5

    def test_zero_data(self):
        d = calculate_dupont(FinancialData())
        assert (d.roe, d.net_profit_margin, d.total_asset_turnover, d.equity_multiplier) == (0, 0, 0, 0)


class TestSuggestions:
    def test_profit_and_leverage_observations(self, tb_data):
        text = generate_suggestions(tb_data, calculate_metrics(tb_data), unit="wan")
        assert any("资产负债率为 60.0%" in s for s in text)
        assert any("本期实现净利润 5.00万" in s for s in text)

    def test_loss_observation(self):
        data = FinancialData(total_income=100, total_expenses=300, total_assets=1000, total_equity=500)
        text = generate_suggestions(data, calculate_metrics(data), unit="yuan")
        assert any("出现亏损" in s for s in text)
