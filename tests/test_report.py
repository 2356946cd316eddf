"""
tests/test_report.py
====================
Health rubric, risk assessment, recommendations / action plan and the
rendered markdown report.
"""

import pytest

from fin_health.aggregator import aggregate
from fin_health.benchmark import compare_with_industry
from fin_health.forecast import forecast
from fin_health.metrics import calculate_metrics
from fin_health.report import (
    action_plan,
    assess_risk,
    executive_summary,
    generate_smart_report,
    health_tier,
    key_findings,
    recommendations_for,
    score_health,
)
from fin_health.types import Anomaly, FinancialData, FinancialMetrics, HistoryPoint, Recommendation


def _high(title="异常"):
    return Anomaly(severity="high", title=title, description="说明", category="test")


def _history(revenues):
    return [HistoryPoint(period="2024Q%d" % (i + 1), revenue=r, profit=r * 0.1, assets=r * 2)
            for i, r in enumerate(revenues)]


STRONG = FinancialMetrics(
    current_ratio=2.5, debt_to_asset_ratio=40, cash_ratio=0.6, equity_ratio=0.7,
    roe=20, roa=10, net_profit_margin=20, gross_profit_margin=40,
    total_asset_turnover=1.2, receivables_turnover=10, inventory_turnover=6, cash_conversion_cycle=30,
    revenue_growth_rate=15, net_profit_growth_rate=15, total_asset_growth_rate=10, sustainable_growth_rate=12,
    operating_cash_flow_ratio=0.8, free_cash_flow=100, cash_flow_to_revenue=15,
)


class TestHealthScore:
    def test_zero_metrics_breakdown(self):
        assert score_health(FinancialMetrics()) == {
            "solvency": 5, "profitability": 0, "efficiency": 5, "growth": 0,
            "cashflow": 0, "adjustment": 0, "total": 60,
        }

    def test_clamped_at_100(self):
        breakdown = score_health(STRONG)
        assert breakdown["solvency"] == 20
        assert breakdown["profitability"] == 25
        assert breakdown["total"] == 100

    def test_clamped_at_zero(self):
        assert score_health(FinancialMetrics(), [_high() for _ in range(25)])["total"] == 0

    def test_adjustments(self):
        anomalies = [_high(), Anomaly(severity="medium", title="m", description="", category="test")]
        assert score_health(FinancialMetrics(), anomalies)["adjustment"] == -4
        falling = forecast(_history([150, 120, 100]), FinancialMetrics())
        assert score_health(FinancialMetrics(), forecast=falling)["adjustment"] == -5

    def test_single_upload_forecast_is_not_penalised(self):
        single = forecast(_history([100]), FinancialMetrics())
        assert single.trends.overall_trend == "stable"
        assert score_health(FinancialMetrics(), forecast=single)["adjustment"] == 0
        titles = [r.title for r in recommendations_for(FinancialMetrics(), forecast=single)]
        assert "应对下行风险" not in titles

    @pytest.mark.parametrize("score, tier", [
        (80, "excellent"), (65, "good"), (64, "fair"), (50, "fair"), (35, "poor"), (34, "critical"),
    ])
    def test_tiers(self, score, tier):
        assert health_tier(score) == tier


class TestExecutiveSummary:
    def test_warnings_in_sentence(self):
        summary = executive_summary(FinancialMetrics(), [_high()], company_name="测试公司")
        assert summary.overall_score == 57
        assert summary.overall_health == "fair"
        assert any("流动比率低于1" in h for h in summary.key_highlights)
        assert summary.one_sentence_summary.startswith("测试公司本期财务健康状况一般（评分：57/100）")
        assert summary.one_sentence_summary.endswith("但存在部分风险点需要关注。")

    def test_clean_summary(self):
        summary = executive_summary(STRONG)
        assert summary.overall_health == "excellent"
        assert summary.one_sentence_summary.endswith("整体运营稳健。")


class TestRiskAssessment:
    def test_zero_metrics(self):
        risk = assess_risk(FinancialMetrics())
        assert [f.name for f in risk.risk_factors] == ["流动性风险", "盈利能力风险"]
        assert risk.risk_score == 35
        assert risk.overall_risk == "high"
        assert len(risk.mitigations) == 2

    def test_strong_metrics_are_low_risk(self):
        risk = assess_risk(STRONG)
        assert risk.risk_factors == []
        assert risk.overall_risk == "low"


class TestRecommendations:
    def test_sorted_by_priority(self):
        recs = recommendations_for(FinancialMetrics())
        assert [r.priority for r in recs] == ["critical", "high", "medium", "medium"]
        assert recs[0].category == "流动性管理"

    def test_action_plan_phases(self):
        plan = action_plan(recommendations_for(FinancialMetrics()))
        assert [a.phase for a in plan] == ["immediate", "short-term", "medium-term", "medium-term"]
        assert plan[0].responsible == "财务总监"
        assert plan[0].timeline == "1周内"

    def test_action_plan_capped_at_six(self):
        falling = forecast(_history([150, 120, 100]), FinancialMetrics())
        bench = compare_with_industry(FinancialMetrics())
        recs = recommendations_for(FinancialMetrics(), [_high()], falling, bench)
        assert len(recs) == 7
        plan = action_plan(recs)
        assert len(plan) == 6
        phases = [a.phase for a in plan]
        assert phases == sorted(phases, key=["immediate", "short-term", "medium-term", "long-term"].index)

    def test_easy_or_low_priority_phases(self):
        recs = [
            Recommendation(priority="low", category="x", title="a", description="", expected_impact="",
                           difficulty="hard"),
            Recommendation(priority="medium", category="x", title="b", description="", expected_impact="",
                           difficulty="easy"),
        ]
        plan = action_plan(recs)
        assert [(a.action, a.phase) for a in plan] == [("b", "short-term"), ("a", "long-term")]
        assert plan[0].responsible == "相关部门负责人"


class TestKeyFindings:
    def test_trial_balance_findings(self, trial_balance_sheet):
        data = aggregate([trial_balance_sheet])
        findings = key_findings(data, calculate_metrics(data), unit="wan")
        titles = [f.title for f in findings]
        assert titles[:3] == ["净利润水平分析", "短期偿债能力评估", "资产配置分析"]
        assert "5.00万" in findings[0].description

    def test_empty_data_skips_asset_structure(self):
        findings = key_findings(FinancialData(), FinancialMetrics())
        assert "资产配置分析" not in [f.title for f in findings]


class TestSmartReport:
    def test_reproducible_with_fixed_timestamp(self, trial_balance_sheet):
        data = aggregate([trial_balance_sheet])
        metrics = calculate_metrics(data)
        kwargs = dict(company_name="测试公司", report_period="2024年3月", generated_at="2024-04-01 09:00:00")
        first = generate_smart_report(data, metrics, **kwargs)
        second = generate_smart_report(data, metrics, **kwargs)
        assert first == second
        assert first.title == "测试公司 财务分析报告"

    def test_rendered_text(self, trial_balance_sheet):
        data = aggregate([trial_balance_sheet])
        report = generate_smart_report(data, calculate_metrics(data), company_name="测试公司",
                                       report_period="2024年3月", generated_at="2024-04-01 09:00:00")
        text = report.full_text
        assert text.startswith("# 测试公司 财务分析报告")
        assert "报告期间：2024年3月" in text
        assert "生成时间：2024-04-01 09:00:00" in text
        for heading in ("## 执行摘要", "## 关键发现", "## 风险评估", "## 改进建议", "## 行动计划"):
            assert heading in text

    def test_timestamp_defaults_to_now(self):
        report = generate_smart_report(FinancialData(), FinancialMetrics())
        assert len(report.generated_at) == len("2024-04-01 09:00:00")
