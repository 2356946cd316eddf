"""
fin_health/report.py
====================
Smart report synthesis. Combines metrics, anomalies, the forecast and the
industry comparison into:
  - an executive summary scored by an additive rubric (base 50, clamped 0-100)
  - key findings per domain
  - a risk assessment with per-factor points
  - prioritised recommendations and a phased action plan
  - a markdown rendering of the whole report

Scoring reads metric values as they are; a metric that could not be
computed is 0 and scores accordingly.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from .account_patterns import CURRENT_ASSET_BUCKETS
from .formatting import HEALTH_LABELS, RISK_LABELS, format_money
from .metrics import asset_buckets
from .types import (
    PHASE_ORDER,
    PRIORITY_ORDER,
    ActionItem,
    Anomaly,
    ExecutiveSummary,
    FinancialData,
    FinancialMetrics,
    ForecastResult,
    HealthTier,
    IndustryComparisonResult,
    KeyFinding,
    Recommendation,
    RiskAssessment,
    RiskFactor,
    SmartReport,
)

logger = logging.getLogger(__name__)

BASE_SCORE = 50
WARN = "⚠️"


def _high(anomalies: Sequence[Anomaly]) -> List[Anomaly]:
    return [a for a in anomalies if a.severity == "high"]


# ─── Executive Summary ────────────────────────────────────────────────────────


def _solvency_points(m: FinancialMetrics) -> int:
    pts = 0
    if m.current_ratio >= 2:
        pts += 5
    if m.debt_to_asset_ratio <= 50:
        pts += 5
    if m.cash_ratio >= 0.5:
        pts += 5
    if 0 < m.equity_ratio <= 1:
        pts += 5
    return pts


def _profitability_points(m: FinancialMetrics) -> int:
    pts = 0
    if m.roe >= 15:
        pts += 8
    elif m.roe >= 10:
        pts += 5
    if m.roa >= 8:
        pts += 6
    elif m.roa >= 5:
        pts += 4
    if m.net_profit_margin >= 15:
        pts += 6
    elif m.net_profit_margin >= 10:
        pts += 4
    if m.gross_profit_margin >= 30:
        pts += 5
    elif m.gross_profit_margin >= 20:
        pts += 3
    return pts


def _efficiency_points(m: FinancialMetrics) -> int:
    pts = 0
    if m.total_asset_turnover >= 1:
        pts += 5
    if m.receivables_turnover >= 8:
        pts += 5
    if m.inventory_turnover >= 5:
        pts += 5
    if m.cash_conversion_cycle <= 60:
        pts += 5
    return pts


def _growth_points(m: FinancialMetrics) -> int:
    pts = 0
    if m.revenue_growth_rate >= 10:
        pts += 5
    if m.net_profit_growth_rate >= 10:
        pts += 5
    if m.total_asset_growth_rate >= 5:
        pts += 5
    if m.sustainable_growth_rate >= 10:
        pts += 5
    return pts


def _cashflow_points(m: FinancialMetrics) -> int:
    pts = 0
    if m.operating_cash_flow_ratio >= 0.5:
        pts += 5
    if m.free_cash_flow > 0:
        pts += 5
    if m.cash_flow_to_revenue >= 10:  # percent of revenue
        pts += 5
    return pts


def health_tier(score: int) -> HealthTier:
    if score >= 80:
        return "excellent"
    if score >= 65:
        return "good"
    if score >= 50:
        return "fair"
    if score >= 35:
        return "poor"
    return "critical"


def score_health(
    metrics: FinancialMetrics,
    anomalies: Sequence[Anomaly] = (),
    forecast: Optional[ForecastResult] = None,
    benchmark: Optional[IndustryComparisonResult] = None,
) -> Dict[str, int]:
    """Rubric breakdown; ``total`` is the clamped overall score."""
    breakdown = {
        "solvency": _solvency_points(metrics),
        "profitability": _profitability_points(metrics),
        "efficiency": _efficiency_points(metrics),
        "growth": _growth_points(metrics),
        "cashflow": _cashflow_points(metrics),
    }
    adjust = -3 * len(_high(anomalies)) - sum(1 for a in anomalies if a.severity == "medium")
    if forecast is not None:
        if forecast.trends.overall_trend == "positive":
            adjust += 3
        elif forecast.trends.overall_trend == "negative":
            adjust -= 5
    if benchmark is not None and benchmark.overall_score > 70:
        adjust += 3
    breakdown["adjustment"] = adjust
    raw = BASE_SCORE + sum(breakdown.values())
    breakdown["total"] = max(0, min(100, raw))
    return breakdown


def executive_summary(
    metrics: FinancialMetrics,
    anomalies: Sequence[Anomaly] = (),
    forecast: Optional[ForecastResult] = None,
    benchmark: Optional[IndustryComparisonResult] = None,
    company_name: str = "本公司",
) -> ExecutiveSummary:
    breakdown = score_health(metrics, anomalies, forecast, benchmark)
    score = breakdown["total"]
    tier = health_tier(score)

    highlights: List[str] = []
    if metrics.roe >= 15:
        highlights.append(f"ROE达到 {metrics.roe}%，为股东创造优秀回报")
    if metrics.revenue_growth_rate >= 15:
        highlights.append(f"收入高速增长 {metrics.revenue_growth_rate}%，市场表现亮眼")
    if 0 < metrics.debt_to_asset_ratio <= 40:
        highlights.append("财务结构稳健，负债率低于40%，抗风险能力强")
    if benchmark is not None and benchmark.overall_score >= 70:
        highlights.append(f"行业对比表现{benchmark.ranking}，竞争力突出")
    if forecast is not None and forecast.trends.overall_trend == "positive":
        highlights.append("预测显示未来财务趋势向好，增长动能充足")
    if metrics.current_ratio < 1:
        highlights.append(f"{WARN} 流动比率低于1，短期偿债能力需关注")
    high_count = len(_high(anomalies))
    if high_count:
        highlights.append(f"{WARN} 发现 {high_count} 项高风险异常，需立即处理")

    positives = [h for h in highlights if WARN not in h]
    warnings = [h for h in highlights if WARN in h]
    sentence = f"{company_name}本期财务健康状况{HEALTH_LABELS[tier]}（评分：{score}/100）。"
    if positives:
        sentence += "在盈利能力和成长性方面表现突出，"
    sentence += "但存在部分风险点需要关注。" if warnings else "整体运营稳健。"

    return ExecutiveSummary(
        overall_health=tier,
        overall_score=score,
        key_highlights=highlights,
        one_sentence_summary=sentence,
        score_breakdown=breakdown,
    )


# ─── Key Findings ─────────────────────────────────────────────────────────────


def key_findings(
    data: FinancialData,
    metrics: FinancialMetrics,
    anomalies: Sequence[Anomaly] = (),
    forecast: Optional[ForecastResult] = None,
    benchmark: Optional[IndustryComparisonResult] = None,
    unit: str = "yuan",
) -> List[KeyFinding]:
    out: List[KeyFinding] = []
    npm = metrics.net_profit_margin
    profit = format_money(data.net_profit, unit)
    out.append(KeyFinding(
        category="盈利能力",
        title="净利润水平分析",
        description=f"本期实现净利润 {profit}，净利率 {npm:.2f}%。",
        impact="high" if npm >= 10 else "medium" if npm >= 5 else "low",
        data=f"净利润: {profit}, 净利率: {npm:.2f}%",
    ))

    cr, qr = metrics.current_ratio, metrics.quick_ratio
    if cr >= 2:
        verdict = "短期偿债能力充足。"
    elif cr >= 1:
        verdict = "短期偿债能力尚可。"
    else:
        verdict = "短期偿债压力较大，需关注流动性风险。"
    out.append(KeyFinding(
        category="偿债能力",
        title="短期偿债能力评估",
        description=f"流动比率 {cr:.2f}，速动比率 {qr:.2f}。{verdict}",
        impact="high" if cr < 1 else "medium",
        data=f"流动比率: {cr:.2f}, 速动比率: {qr:.2f}",
    ))

    if data.total_assets > 0:
        sums = asset_buckets(data.assets)
        current_share = sum(sums[k] for k in CURRENT_ASSET_BUCKETS) / data.total_assets * 100
        fixed_share = sums["fixed"] / data.total_assets * 100
        tail = "资产流动性较好。" if current_share > fixed_share else "固定资产占比较高，需关注资产周转效率。"
        out.append(KeyFinding(
            category="资产结构",
            title="资产配置分析",
            description=f"流动资产占比 {current_share:.1f}%，固定资产占比 {fixed_share:.1f}%。{tail}",
            impact="medium",
            data=f"流动资产: {current_share:.1f}%, 固定资产: {fixed_share:.1f}%",
        ))

    growth = metrics.revenue_growth_rate
    if growth >= 10:
        tail = "处于高速增长期。"
    elif growth >= 0:
        tail = "保持正向增长。"
    else:
        tail = "收入出现下滑，需分析原因。"
    out.append(KeyFinding(
        category="成长能力",
        title="收入增长态势",
        description=f"收入增长率 {growth:.2f}%，{tail}",
        impact="high" if abs(growth) >= 20 else "medium",
        data=f"收入增长率: {growth:.2f}%",
    ))

    high = _high(anomalies)
    if high:
        more = "等" if len(high) > 1 else ""
        out.append(KeyFinding(
            category="风险预警",
            title="财务异常警示",
            description=f"发现 {len(high)} 项高风险异常：{high[0].title}{more}。{high[0].description}",
            impact="high",
            data=f"高风险异常数: {len(high)}",
        ))

    if benchmark is not None and benchmark.weaknesses:
        weak = benchmark.weaknesses[:2]
        out.append(KeyFinding(
            category="行业对比",
            title="竞争力差距分析",
            description=(
                f"与{benchmark.industry}平均水平相比，在{len(weak)}个指标上存在差距。"
                f"主要改进空间：{weak[0].split('：')[0]}。"
            ),
            impact="medium",
            data=f"行业排名: {benchmark.ranking}",
        ))

    if forecast is not None:
        roe = forecast.key_metric("roe")
        if roe is not None:
            verb = {"up": "上升至", "down": "下降至"}.get(roe.trend, "保持在")
            trend = {"positive": "整体趋势向好。", "negative": "需警惕下行风险。"}.get(
                forecast.trends.overall_trend, "预计保持稳定。")
            out.append(KeyFinding(
                category="趋势预测",
                title="未来财务趋势",
                description=f"基于历史数据分析，预测ROE将{verb} {roe.forecast_value}%。{trend}",
                impact="medium",
                data=f"预测ROE: {roe.forecast_value}%",
            ))
    return out


# ─── Risk Assessment ──────────────────────────────────────────────────────────


def _tiered(value: float, high_if, medium_if) -> str:
    if high_if(value):
        return "high"
    if medium_if(value):
        return "medium"
    return "low"


def assess_risk(
    metrics: FinancialMetrics,
    anomalies: Sequence[Anomaly] = (),
    forecast: Optional[ForecastResult] = None,
) -> RiskAssessment:
    factors: List[RiskFactor] = []

    liquidity = _tiered(metrics.current_ratio, lambda v: v < 1, lambda v: v < 1.5)
    if liquidity != "low":
        hi = liquidity == "high"
        factors.append(RiskFactor(
            name="流动性风险", level=liquidity,
            probability=70 if hi else 40, impact=80 if hi else 50,
            description=f"流动比率 {metrics.current_ratio:.2f}，{'存在短期偿债压力' if hi else '流动性尚可但需关注'}",
            points=20 if hi else 10,
        ))

    leverage = _tiered(metrics.debt_to_asset_ratio, lambda v: v > 70, lambda v: v > 60)
    if leverage != "low":
        hi = leverage == "high"
        factors.append(RiskFactor(
            name="财务杠杆风险", level=leverage,
            probability=60 if hi else 35, impact=75 if hi else 45,
            description=f"资产负债率 {metrics.debt_to_asset_ratio:.2f}%，{'负债水平较高' if hi else '负债水平偏高'}",
            points=18 if hi else 9,
        ))

    profit = _tiered(metrics.roe, lambda v: v < 5, lambda v: v < 10)
    if profit != "low":
        hi = profit == "high"
        factors.append(RiskFactor(
            name="盈利能力风险", level=profit,
            probability=65 if hi else 40, impact=70 if hi else 45,
            description=f"ROE {metrics.roe:.2f}%，盈利能力{'较弱' if hi else '一般'}",
            points=15 if hi else 8,
        ))

    growth = _tiered(metrics.revenue_growth_rate, lambda v: v < -10, lambda v: v < 0)
    if growth != "low":
        hi = growth == "high"
        factors.append(RiskFactor(
            name="增长停滞风险", level=growth,
            probability=70 if hi else 45, impact=65 if hi else 40,
            description=f"收入增长率 {metrics.revenue_growth_rate:.2f}%，{'收入大幅下滑' if hi else '收入增长乏力'}",
            points=15 if hi else 8,
        ))

    high_count = len(_high(anomalies))
    if high_count:
        factors.append(RiskFactor(
            name="财务异常风险", level="high" if high_count >= 3 else "medium",
            probability=60, impact=70 if high_count >= 3 else 50,
            description=f"发现 {high_count} 项高风险财务异常",
            points=high_count * 5,
        ))

    if forecast is not None and forecast.trends.overall_trend == "negative":
        factors.append(RiskFactor(
            name="下行趋势风险", level="medium", probability=55, impact=60,
            description="预测显示财务指标呈下降趋势", points=10,
        ))

    total = sum(f.points for f in factors)
    if total >= 40:
        overall = "critical"
    elif total >= 25:
        overall = "high"
    elif total >= 12:
        overall = "medium"
    else:
        overall = "low"

    mitigations: List[str] = []
    if liquidity != "low":
        mitigations.append("加强现金流管理，优化应收账款回收周期，保持充足的现金储备")
    if leverage != "low":
        mitigations.append("控制新增债务，优化债务结构，考虑股权融资降低负债率")
    if profit != "low":
        mitigations.append("提升产品盈利能力，优化成本结构，提高资产使用效率")
    if high_count:
        mitigations.append("对发现的财务异常进行深入调查，及时整改问题")

    return RiskAssessment(overall_risk=overall, risk_score=min(100, total), risk_factors=factors,
                          mitigations=mitigations)


# ─── Recommendations & Action Plan ────────────────────────────────────────────

RESPONSIBLE_PARTIES = {
    "流动性管理": "财务总监",
    "盈利能力": "CEO + 财务总监",
    "成本管理": "运营总监",
    "业务增长": "销售总监",
    "风险管理": "CFO + 审计委员会",
    "竞争力提升": "战略部",
    "战略规划": "CEO + 董事会",
}
PHASE_TIMELINES = {
    "immediate": "1周内",
    "short-term": "1个月内",
    "medium-term": "3个月内",
    "long-term": "6个月内",
}
PHASE_LABELS = {
    "immediate": "立即执行",
    "short-term": "短期行动",
    "medium-term": "中期规划",
    "long-term": "长期目标",
}
PRIORITY_LABELS = {"critical": "紧急", "high": "高", "medium": "中", "low": "低"}


def recommendations_for(
    metrics: FinancialMetrics,
    anomalies: Sequence[Anomaly] = (),
    forecast: Optional[ForecastResult] = None,
    benchmark: Optional[IndustryComparisonResult] = None,
) -> List[Recommendation]:
    recs: List[Recommendation] = []
    if metrics.current_ratio < 1.5:
        recs.append(Recommendation(
            priority="critical" if metrics.current_ratio < 1 else "high",
            category="流动性管理",
            title="提升短期偿债能力",
            description=(f"当前流动比率 {metrics.current_ratio:.2f}，建议加快应收账款回收，"
                         "合理控制库存水平，优化短期债务结构。"),
            expected_impact="流动比率提升至1.5以上，降低流动性风险",
            difficulty="medium",
        ))
    if metrics.roe < 15:
        recs.append(Recommendation(
            priority="high" if metrics.roe < 8 else "medium",
            category="盈利能力",
            title="提升资本回报率",
            description=(f"当前ROE {metrics.roe:.2f}%，低于理想水平。建议通过提升净利润率、"
                         "加快资产周转或适度使用财务杠杆来提升ROE。"),
            expected_impact="ROE提升至15%以上，增强股东回报",
            difficulty="hard",
        ))
    if metrics.net_profit_margin < 10:
        recs.append(Recommendation(
            priority="medium",
            category="成本管理",
            title="优化成本结构",
            description=(f"当前净利率 {metrics.net_profit_margin:.2f}%，建议审查各项费用支出，"
                         "优化供应链成本，提升产品定价能力。"),
            expected_impact="净利率提升至10%以上",
            difficulty="medium",
        ))
    if metrics.revenue_growth_rate < 5:
        recs.append(Recommendation(
            priority="high" if metrics.revenue_growth_rate < 0 else "medium",
            category="业务增长",
            title="加速业务增长",
            description=(f"收入增长率 {metrics.revenue_growth_rate:.2f}% 偏低，建议开拓新市场、"
                         "推出新产品或优化销售渠道。"),
            expected_impact="收入增长率提升至10%以上",
            difficulty="hard",
        ))
    high = _high(anomalies)
    if high:
        recs.append(Recommendation(
            priority="critical",
            category="风险管理",
            title="处理财务异常",
            description=f"发现 {len(high)} 项高风险异常，包括{high[0].title}等。建议立即调查原因并采取整改措施。",
            expected_impact="消除财务风险隐患，提升财务健康度",
            difficulty="medium",
        ))
    if benchmark is not None and benchmark.weaknesses:
        recs.append(Recommendation(
            priority="medium",
            category="竞争力提升",
            title="缩小行业差距",
            description=f"与{benchmark.industry}平均水平相比，{benchmark.weaknesses[0]}。建议学习行业最佳实践，提升核心竞争力。",
            expected_impact="达到行业平均水平以上",
            difficulty="hard",
        ))
    if forecast is not None and forecast.trends.overall_trend == "negative":
        recs.append(Recommendation(
            priority="high",
            category="战略规划",
            title="应对下行风险",
            description="预测显示未来财务趋势可能下行，建议制定应急预案，控制成本支出，保持充足现金储备。",
            expected_impact="降低下行风险影响，保持稳定运营",
            difficulty="hard",
        ))
    return sorted(recs, key=lambda r: PRIORITY_ORDER[r.priority])


def action_plan(recommendations: Sequence[Recommendation], limit: int = 6) -> List[ActionItem]:
    items: List[ActionItem] = []
    for rec in list(recommendations)[:limit]:
        if rec.priority == "critical":
            phase = "immediate"
        elif rec.priority == "high" or rec.difficulty == "easy":
            phase = "short-term"
        elif rec.priority == "low":
            phase = "long-term"
        else:
            phase = "medium-term"
        items.append(ActionItem(
            phase=phase,
            action=rec.title,
            responsible=RESPONSIBLE_PARTIES.get(rec.category, "相关部门负责人"),
            timeline=PHASE_TIMELINES[phase],
            expected_outcome=rec.expected_impact,
        ))
    return sorted(items, key=lambda a: PHASE_ORDER[a.phase])


# ─── Rendering ────────────────────────────────────────────────────────────────


def render_report_text(report: SmartReport) -> str:
    """Markdown rendering of a SmartReport."""
    summary = report.executive_summary
    lines = [
        f"# {report.title}",
        f"报告期间：{report.report_period}",
        f"生成时间：{report.generated_at}",
        "",
        "## 执行摘要",
        summary.one_sentence_summary,
        "",
        "### 关键亮点",
    ]
    lines.extend(f"- {h}" for h in summary.key_highlights)
    lines.append("")

    lines.append("## 关键发现")
    for i, f in enumerate(report.key_findings, start=1):
        lines += [f"{i}. **{f.title}** ({f.category})", f"   {f.description}", f"   数据支撑：{f.data}", ""]

    risk = report.risk_assessment
    if risk is not None:
        lines += [
            "## 风险评估",
            f"整体风险等级：{RISK_LABELS[risk.overall_risk]}",
            f"风险评分：{risk.risk_score}/100",
            "",
            "### 主要风险因素",
        ]
        for rf in risk.risk_factors:
            lines += [f"- **{rf.name}** ({RISK_LABELS[rf.level]}风险)", f"  {rf.description}"]
        if risk.mitigations:
            lines += ["", "### 缓解措施"]
            lines.extend(f"- {m}" for m in risk.mitigations)
        lines.append("")

    lines.append("## 改进建议")
    for i, r in enumerate(report.recommendations, start=1):
        lines += [
            f"{i}. [{PRIORITY_LABELS[r.priority]}] **{r.title}**",
            f"   {r.description}",
            f"   预期效果：{r.expected_impact}",
            "",
        ]

    lines.append("## 行动计划")
    for a in report.action_plan:
        lines += [f"- **{PHASE_LABELS[a.phase]}** | {a.action}", f"  负责：{a.responsible} | 时间：{a.timeline}"]
    return "\n".join(lines)


# ─── Entry Point ──────────────────────────────────────────────────────────────


def generate_smart_report(
    data: FinancialData,
    metrics: FinancialMetrics,
    anomalies: Optional[Sequence[Anomaly]] = None,
    forecast: Optional[ForecastResult] = None,
    benchmark: Optional[IndustryComparisonResult] = None,
    company_name: str = "本公司",
    report_period: str = "本期",
    generated_at: Optional[str] = None,
    unit: str = "yuan",
) -> SmartReport:
    """
    Pure synthesis over its inputs. Pass ``generated_at`` for a fully
    reproducible report; otherwise the current local time is stamped.
    """
    found = list(anomalies or ())
    summary = executive_summary(metrics, found, forecast, benchmark, company_name)
    recs = recommendations_for(metrics, found, forecast, benchmark)
    report = SmartReport(
        title=f"{company_name} 财务分析报告",
        company_name=company_name,
        report_period=report_period,
        generated_at=generated_at or datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        executive_summary=summary,
        key_findings=key_findings(data, metrics, found, forecast, benchmark, unit),
        risk_assessment=assess_risk(metrics, found, forecast),
        recommendations=recs,
        action_plan=action_plan(recs),
    )
    report.full_text = render_report_text(report)
    logger.debug("Report generated: score=%d health=%s", summary.overall_score, summary.overall_health)
    return report
