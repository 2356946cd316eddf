"""
app.py
======
财务健康分析: Streamlit front end for the fin_health engine.

Tabs:
  1. 概览 (totals, identity checks, summary & aging sheets)
  2. 指标 (30 ratios, DuPont, observations)
  3. 评分对比 (Wall score, beginning-vs-ending comparison)
  4. 明细账 (fund flow, counterparties, large transactions)
  5. 异常 (statement and ledger anomalies)
  6. 预测 (revenue / profit / assets with confidence bands)
  7. 行业对比
  8. 智能报告
"""

from typing import Dict, List, Optional

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from fin_health.anomalies import summarize_anomalies
from fin_health.benchmark import INDUSTRY_BENCHMARKS, available_industries
from fin_health.config import AnalysisOptions
from fin_health.extractor import summary_report_lines
from fin_health.formatting import (
    HEALTH_LABELS, RISK_LABELS, SEVERITY_LABELS, UNITS,
    format_days, format_money, format_money_uniform, format_percent, format_ratio,
    get_health_color, get_severity_color, get_status_color, get_trend_color,
)
from fin_health.ledger import ledger_report_lines
from fin_health.log import configure_logging
from fin_health.metrics import generate_suggestions
from fin_health.pipeline import build_smart_report, process_batch
from fin_health.report import PHASE_LABELS, PRIORITY_LABELS
from fin_health.storage import InMemoryPeriodRepository
from fin_health.types import ForecastItem, PeriodAnalysis

COMPANY_ID = "default"

# ─── Page Configuration ───────────────────────────────────────────────────────

st.set_page_config(
    page_title="财务健康分析",
    page_icon="📊",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ─── Custom CSS ───────────────────────────────────────────────────────────────

st.markdown("""
<style>
    .main-header {
        background: linear-gradient(135deg, #1e40af 0%, #3730a3 100%);
        border-radius: 12px;
        padding: 1.2rem 1.5rem;
        color: white;
        margin-bottom: 1.5rem;
        box-shadow: 0 4px 20px rgba(30,64,175,0.3);
    }
    .main-header h1 { margin: 0; font-size: 1.6rem; font-weight: 700; }
    .main-header p  { margin: 0.25rem 0 0; font-size: 0.85rem; opacity: 0.85; }

    .kpi-card {
        background: white;
        border: 1px solid #e2e8f0;
        border-radius: 10px;
        padding: 1rem 1.2rem;
        box-shadow: 0 1px 4px rgba(0,0,0,0.06);
    }
    .kpi-label { font-size: 0.72rem; color: #64748b; margin-bottom: 0.2rem; }
    .kpi-value { font-size: 1.5rem; font-weight: 700; color: #1e293b; }
    .kpi-sub   { font-size: 0.75rem; color: #94a3b8; margin-top: 0.15rem; }

    .sev-pill { font-weight:600; padding:0.15rem 0.5rem; border-radius:4px; color:white; font-size:0.75rem; }

    div.stButton > button { border-radius: 8px; font-weight: 500; }
    .stTabs [data-baseweb="tab"] { font-size: 0.82rem; padding: 0.5rem 1rem; }
    [data-testid="metric-container"] { background: white; border: 1px solid #e2e8f0; border-radius: 10px; padding: 0.8rem; }
</style>
""", unsafe_allow_html=True)


# ─── Helpers ─────────────────────────────────────────────────────────────────

UNIT_LABELS = {"yuan": "元", "thousand": "千元", "wan": "万元"}


def _palette() -> List[str]:
    return ["#1e40af", "#10b981", "#f59e0b", "#8b5cf6", "#ef4444", "#0ea5e9"]


def _layout(fig: go.Figure, title: str, yaxis_title: str = "", height: int = 300) -> go.Figure:
    fig.update_layout(
        title=dict(text=title, font=dict(size=14, color="#1e293b")),
        yaxis_title=yaxis_title,
        paper_bgcolor="white", plot_bgcolor="#f8fafc",
        margin=dict(l=40, r=20, t=40, b=30),
        height=height, legend=dict(orientation="h", y=-0.2),
        font=dict(family="sans-serif", size=11, color="#64748b"),
        xaxis=dict(gridcolor="#e2e8f0"), yaxis=dict(gridcolor="#e2e8f0"),
    )
    return fig


def _build_line(labels: List[str], multi_series: Dict[str, List[float]], title: str,
                yaxis_title: str = "") -> go.Figure:
    fig = go.Figure()
    palette = _palette()
    for i, (name, values) in enumerate(multi_series.items()):
        fig.add_trace(go.Scatter(
            x=labels, y=values, name=name, mode="lines+markers",
            line=dict(color=palette[i % len(palette)], width=2.5),
            marker=dict(size=7),
        ))
    return _layout(fig, title, yaxis_title)


def _build_forecast(history_labels: List[str], history: List[float],
                    items: List[ForecastItem], title: str, divisor: float, yaxis_title: str) -> go.Figure:
    """Actual series, projected series and a shaded band between the bounds."""
    periods = [f.period for f in items]
    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=periods + periods[::-1],
        y=[f.upper_bound / divisor for f in items] + [f.lower_bound / divisor for f in items][::-1],
        fill="toself", fillcolor="rgba(59,130,246,0.15)", line=dict(color="rgba(0,0,0,0)"),
        name="置信区间", hoverinfo="skip",
    ))
    fig.add_trace(go.Scatter(
        x=history_labels, y=[v / divisor for v in history], name="实际",
        mode="lines+markers", line=dict(color="#1e40af", width=2.5),
    ))
    bridge_x = history_labels[-1:] + periods
    bridge_y = [v / divisor for v in history[-1:]] + [f.forecast / divisor for f in items]
    fig.add_trace(go.Scatter(
        x=bridge_x, y=bridge_y, name="预测",
        mode="lines+markers", line=dict(color="#3b82f6", width=2, dash="dash"),
    ))
    return _layout(fig, title, yaxis_title)


def _kpi(col, label: str, value: str, sub: str = "", color: str = "#1e293b") -> None:
    with col:
        st.markdown(f"""
        <div class='kpi-card'>
        <div class='kpi-label'>{label}</div>
        <div class='kpi-value' style='color:{color};'>{value}</div>
        <div class='kpi-sub'>{sub}</div>
        </div>
        """, unsafe_allow_html=True)


def _severity_pill(severity: str) -> str:
    return (f"<span class='sev-pill' style='background:{get_severity_color(severity)};'>"
            f"{SEVERITY_LABELS[severity]}</span>")


def _items_frame(items: Dict[str, float], unit: str, label: str) -> pd.DataFrame:
    rows = [{label: k, "金额": format_money_uniform(v, unit)} for k, v in items.items()]
    return pd.DataFrame(rows)


# ─── Session State ────────────────────────────────────────────────────────────

def _init_state() -> None:
    defaults = {
        "repository": InMemoryPeriodRepository(),
        "analyses": {},             # period label → PeriodAnalysis from the latest upload
        "last_batch": None,
        "company_name": "",
        "options": AnalysisOptions.from_env(),
    }
    for k, v in defaults.items():
        if k not in st.session_state:
            st.session_state[k] = v


_init_state()
configure_logging(debug=st.session_state["options"].debug)


# ─── Sidebar ──────────────────────────────────────────────────────────────────

with st.sidebar:
    st.markdown("""
    <div style='text-align:center; padding:0.5rem 0 1rem;'>
        <span style='font-size:2rem;'>📊</span><br>
        <strong style='font-size:1rem; color:#1e40af;'>财务健康分析</strong><br>
        <span style='font-size:0.72rem; color:#64748b;'>科目余额表 · 报表 · 明细账</span>
    </div>
    """, unsafe_allow_html=True)
    st.markdown("---")

    options: AnalysisOptions = st.session_state["options"]
    industries = available_industries()
    options.industry = st.selectbox(
        "行业基准",
        industries,
        index=industries.index(options.industry) if options.industry in industries else 0,
        format_func=lambda k: INDUSTRY_BENCHMARKS[k][0],
    )
    unit = st.selectbox("金额单位", list(UNITS), index=2, format_func=lambda u: UNIT_LABELS[u])
    options.estimate_missing = st.checkbox(
        "缺失科目按比例估算", value=options.estimate_missing,
        help="流动资产、存货、利息等无法从数据中读取时，按经验比例估算",
    )

    st.markdown("---")
    manual_period = st.text_input("期间（可选）", placeholder="如 2024年3月 / 2024Q1 / 2024年",
                                  help="留空时从文件名识别期间")
    period_type = st.selectbox("期间类型", ["自动", "month", "quarter", "year"])

    st.markdown("---")
    if st.button("🔄 清空数据", width='stretch'):
        for k in ["repository", "analyses", "last_batch", "company_name"]:
            st.session_state.pop(k, None)
        st.rerun()


# ─── Main Header ─────────────────────────────────────────────────────────────

st.markdown("""
<div class='main-header'>
    <h1>📊 财务健康分析</h1>
    <p>上传科目余额表、资产负债表、利润表、现金流量表或明细账，自动识别并生成分析报告</p>
</div>
""", unsafe_allow_html=True)


# ═══════════════════════════════════════════════════════════════════════════════
# TAB RENDER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════════════════

def _render_overview(analysis: PeriodAnalysis, unit: str) -> None:
    data = analysis.data
    st.markdown(f"### 🏠 {analysis.period} 概览")

    cols = st.columns(6)
    _kpi(cols[0], "资产总计", format_money(data.total_assets, unit))
    _kpi(cols[1], "负债合计", format_money(data.total_liabilities, unit))
    _kpi(cols[2], "所有者权益", format_money(data.total_equity, unit))
    _kpi(cols[3], "收入", format_money(data.total_income, unit))
    _kpi(cols[4], "费用", format_money(data.total_expenses, unit))
    _kpi(cols[5], "净利润", format_money(data.net_profit, unit),
         color="#16a34a" if data.net_profit >= 0 else "#dc2626")

    st.markdown("#### 勾稽关系")
    if data.identity_checks:
        st.dataframe(pd.DataFrame([{
            "检查项": c.name,
            "左方": format_money_uniform(c.left, unit),
            "右方": format_money_uniform(c.right, unit),
            "差额": format_money_uniform(c.delta, unit),
            "结果": "✅ 通过" if c.passed else "❌ 不平",
        } for c in data.identity_checks]), width='stretch', hide_index=True)
    else:
        st.caption("无可核对的报表数据")

    st.markdown("#### 工作表识别")
    st.dataframe(pd.DataFrame(
        [{"工作表": name, "类型": kind} for name, kind in analysis.sheet_types.items()]
    ), width='stretch', hide_index=True)
    if data.diagnostics:
        with st.expander(f"⚠️ 提取提示（{len(data.diagnostics)}）"):
            for d in data.diagnostics:
                st.text(d)

    left, right = st.columns(2)
    with left:
        st.markdown("**资产明细**")
        st.dataframe(_items_frame(data.assets, unit, "资产"), width='stretch', hide_index=True)
    with right:
        st.markdown("**负债及权益明细**")
        items = dict(data.liabilities)
        items.update(data.equity)
        st.dataframe(_items_frame(items, unit, "负债/权益"), width='stretch', hide_index=True)

    if data.financial_summary is not None:
        st.markdown("#### 财务概要")
        for line in summary_report_lines(data.financial_summary, unit):
            st.markdown(f"**{line}**" if line.startswith("【") else f"- {line}")

    aging = data.aging_analysis
    if aging is not None:
        st.markdown(f"#### 账龄分析 {aging.subject_name}")
        c1, c2, c3 = st.columns(3)
        c1.metric("期末余额", format_money(aging.total_ending, unit))
        c2.metric("长期应收占比", format_percent(aging.long_term_ratio))
        c3.metric("风险等级", SEVERITY_LABELS[aging.risk_level])
        fig = go.Figure(go.Bar(
            x=list(aging.bucket_totals), y=[v / UNITS[unit][0] for v in aging.bucket_totals.values()],
            marker_color="#3b82f6",
        ))
        st.plotly_chart(_layout(fig, "账龄分布", UNIT_LABELS[unit], height=260), width='stretch')
        st.info(aging.risk_assessment)
        for s in aging.suggestions:
            st.markdown(f"- {s}")


def _metric_rows(pairs) -> pd.DataFrame:
    return pd.DataFrame([{"指标": name, "数值": value} for name, value in pairs])


def _render_metrics(analysis: PeriodAnalysis, unit: str) -> None:
    m, d = analysis.metrics, analysis.dupont
    st.markdown("### 📐 财务指标")

    groups = [
        ("偿债能力", [
            ("流动比率", format_ratio(m.current_ratio)), ("速动比率", format_ratio(m.quick_ratio)),
            ("现金比率", format_ratio(m.cash_ratio)), ("资产负债率", format_percent(m.debt_to_asset_ratio)),
            ("产权比率", format_ratio(m.equity_ratio)), ("利息保障倍数", format_ratio(m.interest_coverage_ratio)),
        ]),
        ("营运能力", [
            ("应收账款周转率", format_ratio(m.receivables_turnover, 1)), ("应收账款周转天数", format_days(m.receivables_days)),
            ("存货周转率", format_ratio(m.inventory_turnover, 1)), ("存货周转天数", format_days(m.inventory_days)),
            ("流动资产周转率", format_ratio(m.current_asset_turnover)),
            ("总资产周转率", format_ratio(m.total_asset_turnover)),
            ("现金转换周期", format_days(m.cash_conversion_cycle)),
        ]),
        ("盈利能力", [
            ("毛利率", format_percent(m.gross_profit_margin)), ("营业利润率", format_percent(m.operating_profit_margin)),
            ("销售净利率", format_percent(m.net_profit_margin)), ("ROE", format_percent(m.roe)),
            ("ROA", format_percent(m.roa)), ("EBITDA利润率", format_percent(m.ebitda_margin)),
            ("成本费用利润率", format_percent(m.cost_expense_ratio)),
        ]),
        ("成长能力", [
            ("收入增长率", format_percent(m.revenue_growth_rate, signed=True)),
            ("净利润增长率", format_percent(m.net_profit_growth_rate, signed=True)),
            ("总资产增长率", format_percent(m.total_asset_growth_rate, signed=True)),
            ("净资产增长率", format_percent(m.equity_growth_rate, signed=True)),
            ("可持续增长率", format_percent(m.sustainable_growth_rate)),
        ]),
        ("现金流", [
            ("经营现金流/净利润", format_ratio(m.operating_cash_flow_ratio)),
            ("自由现金流", format_money(m.free_cash_flow, unit)),
            ("现金流/收入", format_percent(m.cash_flow_to_revenue)),
            ("现金回收率", format_percent(m.cash_recovery_rate)),
            ("每股经营现金流", format_ratio(m.operating_cash_flow_per_share)),
        ]),
    ]
    cols = st.columns(len(groups))
    for col, (title, pairs) in zip(cols, groups):
        with col:
            st.markdown(f"**{title}**")
            st.dataframe(_metric_rows(pairs), width='stretch', hide_index=True)

    st.markdown("#### 杜邦分析")
    c = st.columns(4)
    _kpi(c[0], "ROE", format_percent(d.roe))
    _kpi(c[1], "销售净利率", format_percent(d.net_profit_margin))
    _kpi(c[2], "总资产周转率", format_ratio(d.total_asset_turnover))
    _kpi(c[3], "权益乘数", format_ratio(d.equity_multiplier))

    st.markdown("#### 分析建议")
    for s in generate_suggestions(analysis.data, m, unit):
        st.markdown(f"- {s}")


def _render_scoring(analysis: PeriodAnalysis, unit: str) -> None:
    wall = analysis.wall_score
    st.markdown("### 🧮 沃尔评分")
    if wall is not None:
        c = st.columns(3)
        _kpi(c[0], "综合得分", f"{wall.total_score:.1f} / {wall.max_possible_score:.0f}")
        _kpi(c[1], "信用评级", wall.rating)
        _kpi(c[2], "评级说明", wall.rating_description)
        st.dataframe(pd.DataFrame([{
            "指标": s.name, "实际值": f"{s.actual_value}{s.unit}", "标准值": f"{s.standard_value}{s.unit}",
            "得分": s.score, "满分": s.max_score, "状态": s.status,
        } for s in wall.indicator_scores]), width='stretch', hide_index=True)
        for s in wall.suggestions:
            st.markdown(f"💡 {s}")

    st.markdown("### ⚖️ 期初期末对比")
    comparison = analysis.comparison
    if comparison is None or not comparison.has_beginning_data:
        st.info("上传的文件没有期初数据，无法进行期初期末对比。")
        return
    cm = comparison.metrics
    c = st.columns(4)
    _kpi(c[0], "资产增长率", format_percent(cm.asset_growth, signed=True))
    _kpi(c[1], "负债增长率", format_percent(cm.liability_growth, signed=True))
    _kpi(c[2], "资产负债率变动", f"{cm.debt_ratio_change:+.2f}个百分点")
    _kpi(c[3], "货币资金变动", format_money(cm.cash_change, unit), format_percent(cm.cash_change_percent, signed=True))

    if comparison.significant_changes:
        st.dataframe(pd.DataFrame([{
            "科目": ch.subject,
            "期初": format_money_uniform(ch.previous_value, unit),
            "期末": format_money_uniform(ch.current_value, unit),
            "变动额": format_money_uniform(ch.change_amount, unit),
            "变动率": format_percent(ch.change_percent, signed=True),
            "重要性": SEVERITY_LABELS[ch.significance],
            "分析": ch.analysis,
        } for ch in comparison.significant_changes]), width='stretch', hide_index=True)

    left, right = st.columns(2)
    with left:
        st.markdown("**风险预警**")
        for alert in comparison.risk_alerts:
            st.markdown(f"- {alert}")
    with right:
        st.markdown("**积极变化**")
        for item in comparison.opportunities:
            st.markdown(f"- {item}")


def _render_ledgers(analysis: PeriodAnalysis, unit: str) -> None:
    st.markdown("### 📒 明细账分析")
    if not analysis.ledger_analyses:
        st.info("本期上传的文件中没有明细账。")
        return
    cfg = st.session_state["options"].ledger
    for ledger, la in zip(analysis.data.ledgers, analysis.ledger_analyses):
        title = f"{la.subject_code} {la.subject_name}（{la.frequency.count}笔，{len(la.anomalies)}项异常）"
        with st.expander(title, expanded=len(analysis.ledger_analyses) == 1):
            c = st.columns(4)
            c[0].metric("流入", format_money(la.fund_flow.inflow, unit))
            c[1].metric("流出", format_money(la.fund_flow.outflow, unit))
            c[2].metric("净流入", format_money(la.fund_flow.net_flow, unit))
            c[3].metric("期末余额", format_money(la.closing_balance, unit),
                        f"应为 {format_money(la.expected_closing_balance, unit)}", delta_color="off")

            cps = la.top_counterparties(cfg.counterparty_display)
            if cps:
                st.markdown("**主要往来单位**")
                st.dataframe(pd.DataFrame([{
                    "单位": cp.name,
                    "借方": format_money_uniform(cp.total_debit, unit),
                    "贷方": format_money_uniform(cp.total_credit, unit),
                    "净额": format_money_uniform(cp.net_amount, unit),
                    "笔数": cp.transaction_count,
                    "首笔": cp.first_date,
                    "末笔": cp.last_date,
                } for cp in cps]), width='stretch', hide_index=True)

            with st.expander("文字报告"):
                st.text("\n".join(ledger_report_lines(ledger, la, unit, cfg)))


def _render_anomalies(analysis: PeriodAnalysis, unit: str) -> None:
    st.markdown("### 🚨 异常检测")
    summary = summarize_anomalies(analysis.anomalies)
    c = st.columns(4)
    c[0].metric("异常总数", summary.total_count)
    c[1].metric("高风险", summary.high)
    c[2].metric("中风险", summary.medium)
    c[3].metric("低风险", summary.low)
    st.info(summary.overall_assessment)

    for a in analysis.anomalies:
        st.markdown(f"{_severity_pill(a.severity)} **{a.title}**", unsafe_allow_html=True)
        st.caption(a.description)
        if a.suggestion:
            st.markdown(f"💡 {a.suggestion}")
        if a.entries:
            st.dataframe(pd.DataFrame([{
                "日期": e.date, "凭证号": e.voucher_no, "摘要": e.summary,
                "金额": format_money_uniform(e.amount, unit),
            } for e in a.display_entries(st.session_state["options"].ledger.anomaly_entry_display)]),
                width='stretch', hide_index=True)


def _render_forecast(bundle, unit: str) -> None:
    result = bundle.forecast
    st.markdown("### 🔮 财务预测")
    if len(result.history) < 2:
        st.warning("仅有一个期间的数据，预测为水平外推。上传更多期间可提高预测质量。")

    labels = [h.period for h in result.history]
    divisor = UNITS[unit][0]
    ylabel = UNIT_LABELS[unit]
    left, right = st.columns(2)
    with left:
        st.plotly_chart(_build_forecast(labels, [h.revenue for h in result.history], result.revenue_forecast,
                                        "收入预测", divisor, ylabel), width='stretch')
    with right:
        st.plotly_chart(_build_forecast(labels, [h.profit for h in result.history], result.profit_forecast,
                                        "净利润预测", divisor, ylabel), width='stretch')
    st.plotly_chart(_build_forecast(labels, [h.assets for h in result.history], result.assets_forecast,
                                    "资产预测", divisor, ylabel), width='stretch')

    t = result.trends
    c = st.columns(4)
    for col, (label, info) in zip(c, [("收入", t.revenue_growth), ("利润", t.profit_growth),
                                      ("资产", t.asset_growth)]):
        _kpi(col, f"{label}趋势", f"{info.average_rate:+.1f}%", f"{info.direction} · {info.strength}",
             color=get_trend_color(info.direction))
    _kpi(c[3], "收入波动", t.volatility, f"变异系数 {t.volatility_value:.2f}")

    st.markdown("#### 关键指标预测")
    st.dataframe(pd.DataFrame([{
        "指标": k.metric_name,
        "当前": k.current_value,
        "预测": k.forecast_value,
        "变化": k.change,
        "状态": k.status,
    } for k in result.key_metrics_forecast]), width='stretch', hide_index=True)
    for s in result.suggestions:
        st.markdown(f"- {s}")


def _render_benchmark(bundle) -> None:
    bench = bundle.benchmark
    st.markdown(f"### 🏭 行业对比 · {bench.industry}")
    c = st.columns(2)
    _kpi(c[0], "综合得分", f"{bench.overall_score:.1f}")
    _kpi(c[1], "行业排名", bench.ranking)

    names = [x.metric_name for x in bench.comparison_metrics]
    fig = go.Figure()
    fig.add_trace(go.Bar(x=names, y=[x.company_value for x in bench.comparison_metrics], name="本公司",
                         marker_color=[get_status_color(x.status) for x in bench.comparison_metrics]))
    fig.add_trace(go.Bar(x=names, y=[x.industry_avg for x in bench.comparison_metrics], name="行业平均",
                         marker_color="#cbd5e1"))
    fig.update_layout(barmode="group")
    st.plotly_chart(_layout(fig, "指标对比", height=340), width='stretch')

    st.dataframe(pd.DataFrame([{
        "指标": x.metric_name, "本公司": x.company_value, "行业平均": x.industry_avg,
        "行业最佳": x.industry_best, "分位": x.percentile, "状态": x.status, "差距%": x.gap,
    } for x in bench.comparison_metrics]), width='stretch', hide_index=True)

    left, right = st.columns(2)
    with left:
        st.markdown("**优势**")
        for s in bench.strengths:
            st.markdown(f"- {s}")
    with right:
        st.markdown("**劣势**")
        for w in bench.weaknesses:
            st.markdown(f"- {w}")
    for s in bench.suggestions:
        st.markdown(f"💡 {s}")


def _render_report(bundle) -> None:
    report = bundle.report
    summary = report.executive_summary
    st.markdown(f"### 📝 {report.title}")
    st.caption(f"报告期间：{report.report_period} · 生成时间：{report.generated_at}")

    c = st.columns(3)
    _kpi(c[0], "健康评分", f"{summary.overall_score}/100", HEALTH_LABELS[summary.overall_health],
         color=get_health_color(summary.overall_health))
    risk = report.risk_assessment
    if risk is not None:
        _kpi(c[1], "整体风险", RISK_LABELS[risk.overall_risk], f"风险评分 {risk.risk_score}")
    _kpi(c[2], "改进建议", str(len(report.recommendations)), f"行动项 {len(report.action_plan)}")

    st.markdown(f"> {summary.one_sentence_summary}")
    breakdown = {k: v for k, v in summary.score_breakdown.items() if k != "total"}
    st.dataframe(pd.DataFrame([breakdown]), width='stretch', hide_index=True)

    st.markdown("#### 改进建议")
    for r in report.recommendations:
        st.markdown(f"- **[{PRIORITY_LABELS[r.priority]}] {r.title}** · {r.description}")
    st.markdown("#### 行动计划")
    st.dataframe(pd.DataFrame([{
        "阶段": PHASE_LABELS[a.phase], "行动": a.action, "负责": a.responsible,
        "时间": a.timeline, "预期": a.expected_outcome,
    } for a in report.action_plan]), width='stretch', hide_index=True)

    with st.expander("完整报告（Markdown）"):
        st.markdown(report.full_text)
    st.download_button("⬇️ 下载报告", report.full_text.encode("utf-8"),
                       file_name=f"{report.company_name}_{report.report_period}.md", mime="text/markdown")


def _render_history(repository: InMemoryPeriodRepository, unit: str) -> None:
    records = repository.list_periods(COMPANY_ID)
    if len(records) < 2:
        return
    divisor = UNITS[unit][0]
    labels = [r.period for r in records]
    st.plotly_chart(_build_line(labels, {
        "收入": [r.financial_data.total_income / divisor for r in records],
        "净利润": [r.financial_data.net_profit / divisor for r in records],
        "资产": [r.financial_data.total_assets / divisor for r in records],
    }, "历史走势", UNIT_LABELS[unit]), width='stretch')


# ═══════════════════════════════════════════════════════════════════════════════
# UPLOAD
# ═══════════════════════════════════════════════════════════════════════════════

repository: InMemoryPeriodRepository = st.session_state["repository"]

col_up, col_name = st.columns([3, 1])
with col_name:
    st.session_state["company_name"] = st.text_input(
        "公司名称", value=st.session_state["company_name"], placeholder="本公司",
    )
with col_up:
    uploaded_files = st.file_uploader(
        "上传财务文件（可多选，支持 zip）",
        accept_multiple_files=True,
        type=["xlsx", "xlsm", "xls", "csv", "html", "htm", "zip"],
    )

if uploaded_files and st.button("▶ 开始分析", type="primary"):
    repository.ensure_company(COMPANY_ID, st.session_state["company_name"] or "本公司")
    bar = st.progress(0.0)
    status = st.empty()

    def _progress(i: int, total: int, filename: str) -> None:
        bar.progress(i / total if total else 1.0)
        status.caption(f"[{i}/{total}] {filename}")

    result = process_batch(
        [(f.name, f.getvalue()) for f in uploaded_files],
        COMPANY_ID, repository,
        period=manual_period or None,
        period_type=None if period_type == "自动" else period_type,
        options=st.session_state["options"],
        progress=_progress,
    )
    for outcome in result.outcomes:
        if outcome.ok:
            st.session_state["analyses"][outcome.period] = outcome.analysis
    st.session_state["last_batch"] = result

batch = st.session_state["last_batch"]
if batch is not None:
    if batch.failure_count:
        st.warning(f"处理完成：成功 {batch.success_count} 个，失败 {batch.failure_count} 个")
        for f in batch.failures:
            st.error(f"❌ {f.filename}: {f.error}")
    else:
        st.success(f"✅ 处理完成：成功 {batch.success_count} 个文件")


# ═══════════════════════════════════════════════════════════════════════════════
# DASHBOARD
# ═══════════════════════════════════════════════════════════════════════════════

analyses: Dict[str, PeriodAnalysis] = st.session_state["analyses"]
stored = [r.period for r in repository.list_periods(COMPANY_ID) if r.period in analyses]

if not stored:
    st.info("请上传财务文件开始分析。文件名中包含期间（如 2024年3月、2024Q1、2024年）或在侧栏手动填写。",
            icon="📁")
else:
    selected = st.selectbox("分析期间", stored, index=len(stored) - 1)
    current: Optional[PeriodAnalysis] = analyses[selected]
    bundle = build_smart_report(
        COMPANY_ID, repository, st.session_state["options"],
        company_name=st.session_state["company_name"] or None, unit=unit,
    )
    _render_history(repository, unit)

    tabs = st.tabs(["🏠 概览", "📐 指标", "🧮 评分对比", "📒 明细账", "🚨 异常", "🔮 预测", "🏭 行业对比", "📝 智能报告"])

    with tabs[0]:
        _render_overview(current, unit)
    with tabs[1]:
        _render_metrics(current, unit)
    with tabs[2]:
        _render_scoring(current, unit)
    with tabs[3]:
        _render_ledgers(current, unit)
    with tabs[4]:
        _render_anomalies(current, unit)
    with tabs[5]:
        _render_forecast(bundle, unit)
    with tabs[6]:
        _render_benchmark(bundle)
    with tabs[7]:
        if selected != bundle.record.period:
            st.caption(f"报告基于最新期间 {bundle.record.period}")
        _render_report(bundle)
