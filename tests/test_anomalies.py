"""
tests/test_anomalies.py
=======================
Statement-level anomaly rules, severity ordering and the summary tally.
"""

import pytest

from fin_health.aggregator import aggregate
from fin_health.anomalies import (
    detect_identity_anomalies,
    detect_statement_anomalies,
    sort_anomalies,
    summarize_anomalies,
)
from fin_health.config import DetectionConfig
from fin_health.types import Anomaly, FinancialData, IdentityCheck, PeriodBaseline


def _anomaly(severity, title="x"):
    return Anomaly(severity=severity, title=title, description="", category="test")


def _by_category(anomalies, category):
    return [a for a in anomalies if a.category == category]


class TestSortAndSummary:
    def test_stable_severity_sort(self):
        items = [_anomaly("low", "a"), _anomaly("high", "b"), _anomaly("medium", "c"), _anomaly("high", "d")]
        assert [a.title for a in sort_anomalies(items)] == ["b", "d", "c", "a"]

    def test_summary_counts(self):
        summary = summarize_anomalies([_anomaly("high"), _anomaly("low"), _anomaly("low")])
        assert (summary.total_count, summary.high, summary.medium, summary.low) == (3, 1, 0, 2)
        assert "高风险" in summary.overall_assessment

    def test_summary_clean(self):
        summary = summarize_anomalies([])
        assert summary.total_count == 0
        assert summary.overall_assessment == "财务状况良好，未发现明显异常"


class TestPeriodOverPeriod:
    def test_sudden_change_in_cash(self, trial_balance_sheet):
        data = aggregate([trial_balance_sheet])
        found = _by_category(detect_statement_anomalies(data), "sudden_change")
        assert [a.affected_item for a in found] == ["库存现金"]
        assert found[0].severity == "medium"
        assert found[0].change_pct == pytest.approx(33.33, abs=0.01)

    def test_debt_ratio_rise(self):
        data = FinancialData(
            total_assets=1000, total_liabilities=800, total_equity=200,
            beginning_total_assets=1000, beginning_total_liabilities=400,
            has_beginning_data=True,
        )
        found = _by_category(detect_statement_anomalies(data), "ratio_deterioration")
        assert len(found) == 1
        assert found[0].severity == "high"
        assert found[0].previous_value == pytest.approx(40.0)
        assert found[0].current_value == pytest.approx(80.0)

    def test_profit_drop_against_baseline(self):
        data = FinancialData(total_income=100, total_expenses=90)
        found = detect_statement_anomalies(data, PeriodBaseline(net_profit=50))
        drops = _by_category(found, "ratio_deterioration")
        assert len(drops) == 1
        assert drops[0].severity == "high"
        assert drops[0].change_pct == pytest.approx(-80.0)

    def test_structural_shift(self):
        data = FinancialData(
            assets={"货币资金": 600, "固定资产": 400}, total_assets=1000,
            beginning_assets={"货币资金": 300, "固定资产": 700}, beginning_total_assets=1000,
            has_beginning_data=True,
        )
        found = _by_category(detect_statement_anomalies(data), "structural_shift")
        assert len(found) == 1
        assert found[0].severity == "low"
        assert "上升" in found[0].title

    def test_thresholds_configurable(self, trial_balance_sheet):
        data = aggregate([trial_balance_sheet])
        found = detect_statement_anomalies(data, config=DetectionConfig(sudden_change=0.5))
        assert not _by_category(found, "sudden_change")

    def test_no_beginning_data_no_period_rules(self):
        data = FinancialData(assets={"货币资金": 100}, total_assets=100,
                             beginning_assets={"货币资金": 10})
        assert not _by_category(detect_statement_anomalies(data), "sudden_change")


class TestSinglePeriod:
    def test_cashflow_mismatch(self):
        data = FinancialData(total_income=1000, total_expenses=500, operating_cashflow=100)
        found = _by_category(detect_statement_anomalies(data), "cashflow_mismatch")
        assert len(found) == 1
        assert found[0].severity == "high"

    def test_negative_cashflow_with_profit(self):
        data = FinancialData(total_income=1000, total_expenses=500, operating_cashflow=-100)
        found = _by_category(detect_statement_anomalies(data), "cashflow_mismatch")
        assert "【现金流】经营现金流为负但净利润为正" in [a.title for a in found]
        assert all(a.severity == "high" for a in found)

    def test_other_receivables_share(self):
        data = FinancialData(assets={"其他应收款": 300, "货币资金": 700}, total_assets=1000)
        found = _by_category(detect_statement_anomalies(data), "account")
        assert [a.affected_item for a in found] == ["其他应收款"]

    def test_large_payables(self, trial_balance_sheet):
        data = aggregate([trial_balance_sheet])
        found = _by_category(detect_statement_anomalies(data), "account")
        assert [a.affected_item for a in found] == ["应付账款"]
        assert found[0].severity == "low"


class TestIdentityAnomalies:
    def test_failed_check_becomes_high_anomaly(self):
        data = FinancialData(identity_checks=[
            IdentityCheck(name="资产 = 负债 + 所有者权益", left=1000, right=800, delta=200,
                          tolerance=100, passed=False),
            IdentityCheck(name="试算平衡（期末借贷）", left=1, right=1, delta=0, tolerance=0.01, passed=True),
        ])
        found = detect_identity_anomalies(data)
        assert len(found) == 1
        assert found[0].severity == "high"
        assert found[0].category == "identity"
        assert found[0].affected_item == "资产 = 负债 + 所有者权益"

    def test_identity_anomalies_sorted_first(self):
        data = FinancialData(
            assets={"其他应收款": 300, "货币资金": 700}, total_assets=1000,
            identity_checks=[IdentityCheck(name="x", left=1, right=2, delta=-1, tolerance=0, passed=False)],
        )
        found = detect_statement_anomalies(data)
        assert [a.category for a in found] == ["identity", "account"]
