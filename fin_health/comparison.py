"""
fin_health/comparison.py
========================
Beginning-vs-ending comparison for one workbook: growth of the balance-sheet
totals, movements in cash / receivables / inventory, the shift in the debt
ratio and current ratio, the asset and liability items that moved most, and
the risk alerts and opportunities those movements suggest.

Needs the workbook's own beginning columns; without them the result carries
``has_beginning_data=False`` and nothing else.
"""
from __future__ import annotations

import logging
from typing import Dict, List

from .account_patterns import CURRENT_ASSET_BUCKETS, bucket_sum
from .metrics import asset_buckets
from .types import AccountCategory, ComparisonAnalysis, ComparisonMetrics, FinancialData, SignificantChange

logger = logging.getLogger(__name__)

CHANGE_PERCENT_THRESHOLD = 10.0   # item moved at least 10% …
CHANGE_SHARE_THRESHOLD = 0.05     # … or by at least 5% of its category total
MAX_SIGNIFICANT_CHANGES = 10


def _growth(current: float, beginning: float) -> float:
    if beginning <= 0:
        return 0.0
    return (current - beginning) / beginning * 100


def _ratio(num: float, den: float) -> float:
    return num / den if den > 0 else 0.0


# ─── Key Movements ────────────────────────────────────────────────────────────


def comparison_metrics(data: FinancialData) -> ComparisonMetrics:
    now = asset_buckets(data.assets)
    then = asset_buckets(data.beginning_assets)

    debt_now = _ratio(data.total_liabilities, data.total_assets) * 100
    debt_then = _ratio(data.beginning_total_liabilities, data.beginning_total_assets) * 100

    current_ratio_change = 0.0
    cl_now = bucket_sum(data.liabilities, "current_liabilities")
    cl_then = bucket_sum(data.beginning_liabilities, "current_liabilities")
    if cl_now > 0 and cl_then > 0:
        current_ratio_change = (
            sum(now[k] for k in CURRENT_ASSET_BUCKETS) / cl_now
            - sum(then[k] for k in CURRENT_ASSET_BUCKETS) / cl_then
        )

    profit_growth = 0.0
    if data.beginning_total_income > 0:
        profit_growth = _growth(data.net_profit, data.beginning_net_profit)

    cash_change = now["cash"] - then["cash"]
    return ComparisonMetrics(
        asset_growth=round(_growth(data.total_assets, data.beginning_total_assets), 2),
        liability_growth=round(_growth(data.total_liabilities, data.beginning_total_liabilities), 2),
        equity_growth=round(_growth(data.total_equity, data.beginning_total_equity), 2),
        cash_change=round(cash_change, 2),
        cash_change_percent=round(_growth(now["cash"], then["cash"]), 2),
        receivables_change=round(now["receivables"] - then["receivables"], 2),
        inventory_change=round(now["inventory"] - then["inventory"], 2),
        debt_ratio_change=round(debt_now - debt_then, 2),
        current_ratio_change=round(current_ratio_change, 2),
        revenue_growth=round(_growth(data.total_income, data.beginning_total_income), 2),
        profit_growth=round(profit_growth, 2),
    )


# ─── Significant Item Changes ─────────────────────────────────────────────────


def describe_change(subject: str, amount: float, percent: float, category_total: float) -> str:
    """One-line reading of an item's movement, keyed on the account name."""
    word = "增加" if amount > 0 else "减少"
    pct = f"{abs(percent):.1f}"
    if "现金" in subject or "银行存款" in subject or "货币资金" in subject:
        if amount > 0:
            tail = "资金充裕，可考虑提高资金利用效率" if amount > category_total * 0.1 else "流动性有所改善"
        else:
            tail = "需关注资金链安全" if abs(amount) > category_total * 0.1 else "关注现金管理"
        return f"现金储备{word}{pct}%，{tail}"
    if "应收" in subject:
        if amount > 0:
            return f"应收账款{word}{pct}%，{'增幅较大，需加强回款管理' if percent > 20 else '随业务规模正常增长'}"
        return f"应收账款{word}{pct}%，回款情况良好"
    if "存货" in subject or "库存" in subject:
        if amount > 0:
            return f"存货{word}{pct}%，{'可能存在滞销风险，需关注库存周转' if percent > 30 else '为业务扩张做准备'}"
        return f"存货{word}{pct}%，库存管理效率提升"
    if "借款" in subject or "负债" in subject:
        if amount > 0:
            return f"负债{word}{pct}%，{'杠杆上升，关注偿债压力' if percent > 20 else '融资规模扩大'}"
        return f"负债{word}{pct}%，财务结构优化"
    return f"较期初{word}{pct}%"


def _significance(percent: float) -> str:
    if abs(percent) >= 30:
        return "high"
    if abs(percent) >= 15:
        return "medium"
    return "low"


def _item_changes(
    current: Dict[str, float],
    beginning: Dict[str, float],
    category: AccountCategory,
    category_total: float,
) -> List[SignificantChange]:
    out: List[SignificantChange] = []
    names = list(current) + [n for n in beginning if n not in current]
    for name in names:
        now = current.get(name, 0.0)
        then = beginning.get(name, 0.0)
        amount = now - then
        if abs(amount) < 0.01:
            continue
        percent = _growth(now, then)
        if abs(percent) < CHANGE_PERCENT_THRESHOLD and abs(amount) < abs(category_total) * CHANGE_SHARE_THRESHOLD:
            continue
        out.append(SignificantChange(
            subject=name,
            category=category,
            current_value=now,
            previous_value=then,
            change_amount=round(amount, 2),
            change_percent=round(percent, 2),
            direction="increase" if amount > 0 else "decrease",
            significance=_significance(percent),
            analysis=describe_change(name, amount, percent, category_total),
        ))
    return out


def significant_changes(data: FinancialData, limit: int = MAX_SIGNIFICANT_CHANGES) -> List[SignificantChange]:
    """Asset and liability items that moved materially, largest percent first."""
    changes = _item_changes(data.assets, data.beginning_assets, "asset", data.total_assets)
    changes += _item_changes(data.liabilities, data.beginning_liabilities, "liability", data.total_liabilities)
    changes.sort(key=lambda c: (-abs(c.change_percent), -abs(c.change_amount)))
    return changes[:limit]


# ─── Alerts & Opportunities ───────────────────────────────────────────────────


def _risk_alerts(m: ComparisonMetrics, changes: List[SignificantChange]) -> List[str]:
    alerts: List[str] = []
    if m.debt_ratio_change > 5:
        alerts.append(f"【杠杆风险】资产负债率较年初上升{m.debt_ratio_change:.1f}个百分点，财务杠杆快速增加")
    if m.cash_change_percent < -20:
        alerts.append(f"【流动性风险】货币资金较年初减少{abs(m.cash_change_percent):.1f}%，关注资金链安全")
    receivables = next((c for c in changes if "应收" in c.subject and c.change_percent > 30), None)
    if receivables is not None:
        alerts.append(f"【回款风险】应收账款大幅增加{receivables.change_percent:.1f}%，可能存在回款困难或虚增收入")
    inventory = next((c for c in changes if "存货" in c.subject and c.change_percent > 30), None)
    if inventory is not None:
        alerts.append(f"【存货风险】存货增长{inventory.change_percent:.1f}%，可能存在滞销，关注跌价准备")
    if m.equity_growth < -10:
        alerts.append(f"【盈利风险】所有者权益较年初减少{abs(m.equity_growth):.1f}%，累计亏损较大")
    return alerts


def _opportunities(m: ComparisonMetrics, changes: List[SignificantChange]) -> List[str]:
    out: List[str] = []
    if m.debt_ratio_change < -3:
        out.append(f"【结构优化】资产负债率较年初下降{abs(m.debt_ratio_change):.1f}个百分点，财务结构改善")
    if m.cash_change_percent > 20:
        out.append(f"【资金充裕】货币资金较年初增加{m.cash_change_percent:.1f}%，可考虑扩大投资或偿还债务")
    receivables = next((c for c in changes if "应收" in c.subject and c.change_percent < -10), None)
    if receivables is not None:
        out.append(f"【回款改善】应收账款减少{abs(receivables.change_percent):.1f}%，回款管理效果良好")
    if m.equity_growth > 15:
        out.append(f"【盈利良好】所有者权益增长{m.equity_growth:.1f}%，盈利能力强，资本积累稳健")
    return out


# ─── Entry Point ──────────────────────────────────────────────────────────────


def compare_with_beginning(data: FinancialData) -> ComparisonAnalysis:
    if not data.has_beginning_data:
        return ComparisonAnalysis(has_beginning_data=False)

    m = comparison_metrics(data)
    changes = significant_changes(data)
    result = ComparisonAnalysis(
        has_beginning_data=True,
        metrics=m,
        significant_changes=changes,
        asset_trend="expansion" if m.asset_growth > 10 else "contraction" if m.asset_growth < -5 else "stable",
        liability_trend=(
            "increasing" if m.liability_growth > 10 else "decreasing" if m.liability_growth < -5 else "stable"
        ),
        liquidity_trend=(
            "improving" if m.cash_change_percent > 0
            else "deteriorating" if m.cash_change_percent < -10 else "stable"
        ),
        risk_alerts=_risk_alerts(m, changes),
        opportunities=_opportunities(m, changes),
    )
    logger.debug(
        "Beginning comparison: assets %+.2f%%, debt ratio %+.2f pts, %d significant item(s)",
        m.asset_growth, m.debt_ratio_change, len(changes),
    )
    return result
