"""
fin_health/metrics.py
=====================
Metrics engine: FinancialData → FinancialMetrics (30 ratios over five
capability groups), DuPont decomposition, growth baselines and plain-language
observations.

Division policy: a denominator ≤ 0 yields 0 for that metric, never an error.
Growth metrics need an explicit PeriodBaseline; without one they are 0.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from .account_patterns import BUCKET_DEFS, CURRENT_ASSET_BUCKETS, bucket_sum
from .formatting import format_money
from .types import DupontAnalysis, FinancialData, FinancialMetrics, PeriodBaseline, PeriodRecord

logger = logging.getLogger(__name__)

DAYS_PER_YEAR = 365
RETENTION_RATIO = 0.7      # sustainable growth assumes a 30% payout
SHARE_PAR_VALUE = 10.0     # per-share figures assume equity / 10 shares

# Proportional estimates used when a bucket cannot be read from the data
EST_CURRENT_ASSETS = 0.6
EST_CASH = 0.15
EST_RECEIVABLES = 0.25
EST_INVENTORY = 0.2
EST_CURRENT_LIABILITIES = 0.8
EST_COGS = 0.7
EST_INTEREST = 0.02
EST_OPERATING_PROFIT = 1.2
EST_DEPRECIATION = 0.05
EST_OCF = 1.1
EST_CAPEX = 0.05


# ─── Helpers ──────────────────────────────────────────────────────────────────

def _ratio(num: float, den: float) -> float:
    if den <= 0:
        return 0.0
    return num / den


def _pct(num: float, den: float) -> float:
    return _ratio(num, den) * 100


def _avg(current: float, beginning: float, use_beginning: bool) -> float:
    if not use_beginning or beginning <= 0:
        return current
    return (current + beginning) / 2.0


def _round(value: float, digits: int = 2) -> float:
    return round(value, digits) + 0.0


# ─── Account Buckets ──────────────────────────────────────────────────────────


@dataclass
class AccountBuckets:
    """Balance-sheet groupings the ratios are built from (after estimates)."""
    current_assets: float = 0.0
    cash: float = 0.0
    receivables: float = 0.0
    inventory: float = 0.0
    fixed_assets: float = 0.0
    current_liabilities: float = 0.0
    debt: float = 0.0
    payables: float = 0.0
    interest_expense: float = 0.0
    cogs: float = 0.0
    operating_profit: float = 0.0
    depreciation: float = 0.0
    operating_cashflow: float = 0.0
    capex: float = 0.0


def asset_buckets(items) -> dict:
    """Each asset counts once, in the first bucket whose keywords match."""
    sums = {b: 0.0 for b in CURRENT_ASSET_BUCKETS + ("fixed",)}
    for name, value in items.items():
        for b in sums:
            if BUCKET_DEFS[b].matches(name):
                sums[b] += value
                break
    return sums


def compute_buckets(data: FinancialData, estimate_missing: bool = True) -> AccountBuckets:
    b = AccountBuckets()
    assets = asset_buckets(data.assets)
    b.cash = assets["cash"]
    b.receivables = assets["receivables"]
    b.inventory = assets["inventory"]
    b.fixed_assets = assets["fixed"]
    b.current_assets = sum(assets[k] for k in CURRENT_ASSET_BUCKETS)

    b.current_liabilities = bucket_sum(data.liabilities, "current_liabilities")
    b.debt = bucket_sum(data.liabilities, "debt")
    b.payables = sum(v for k, v in data.liabilities.items() if "应付" in k and "预付" not in k)
    b.interest_expense = bucket_sum(data.expenses, "interest")
    b.cogs = bucket_sum(data.expenses, "cogs")
    b.depreciation = sum(v for k, v in data.expenses.items() if "折旧" in k or "摊销" in k)
    b.operating_cashflow = data.operating_cashflow
    if data.investing_cashflow < 0:
        b.capex = -data.investing_cashflow

    operating_costs = sum(v for k, v in data.expenses.items() if "所得税" not in k and "营业外" not in k)
    if data.expenses and data.total_income:
        b.operating_profit = data.total_income - operating_costs

    if estimate_missing:
        np_ = data.net_profit
        if b.current_assets == 0:
            b.current_assets = data.total_assets * EST_CURRENT_ASSETS
        if b.cash == 0:
            b.cash = b.current_assets * EST_CASH
        if b.receivables == 0:
            b.receivables = b.current_assets * EST_RECEIVABLES
        if b.inventory == 0:
            b.inventory = b.current_assets * EST_INVENTORY
        if b.current_liabilities == 0:
            b.current_liabilities = data.total_liabilities * EST_CURRENT_LIABILITIES
        if b.cogs == 0:
            b.cogs = data.total_expenses * EST_COGS
        if b.interest_expense == 0:
            b.interest_expense = data.total_expenses * EST_INTEREST
        if b.operating_profit == 0:
            b.operating_profit = np_ * EST_OPERATING_PROFIT
        if b.depreciation == 0:
            b.depreciation = data.total_assets * EST_DEPRECIATION
        if b.operating_cashflow == 0:
            b.operating_cashflow = np_ * EST_OCF
        if b.capex == 0:
            b.capex = data.total_assets * EST_CAPEX
    elif b.operating_profit == 0:
        b.operating_profit = data.net_profit
    return b


# ─── Baselines ────────────────────────────────────────────────────────────────


def baseline_from_beginning(data: FinancialData) -> Optional[PeriodBaseline]:
    """Baseline built from the beginning / prior-period columns of the same workbook."""
    if not data.has_beginning_data:
        return None
    return PeriodBaseline(
        revenue=data.beginning_total_income,
        net_profit=data.beginning_net_profit if data.beginning_total_income else 0.0,
        total_assets=data.beginning_total_assets,
        total_equity=data.beginning_total_equity,
    )


def baseline_from_record(record: PeriodRecord) -> PeriodBaseline:
    fd = record.financial_data
    return PeriodBaseline(
        revenue=fd.total_income,
        net_profit=fd.net_profit,
        total_assets=fd.total_assets,
        total_equity=fd.total_equity,
    )


# ─── Metrics ──────────────────────────────────────────────────────────────────


def calculate_metrics(
    data: FinancialData,
    baseline: Optional[PeriodBaseline] = None,
    estimate_missing: bool = True,
) -> FinancialMetrics:
    """Pure function of its inputs; never raises on zero or missing figures."""
    b = compute_buckets(data, estimate_missing)
    ta, tl, te = data.total_assets, data.total_liabilities, data.total_equity
    revenue = data.total_income
    np_ = data.net_profit
    use_begin = data.has_beginning_data

    m = FinancialMetrics()

    # 1. Solvency
    m.current_ratio = _round(_ratio(b.current_assets, b.current_liabilities))
    m.quick_ratio = _round(_ratio(b.current_assets - b.inventory, b.current_liabilities))
    m.cash_ratio = _round(_ratio(b.cash, b.current_liabilities))
    m.debt_to_asset_ratio = _round(_pct(tl, ta))
    m.equity_ratio = _round(_ratio(tl, te))
    m.interest_coverage_ratio = _round(_ratio(np_ + b.interest_expense, b.interest_expense))

    # 2. Efficiency
    begin_receivables = bucket_sum(data.beginning_assets, "receivables")
    begin_inventory = bucket_sum(data.beginning_assets, "inventory")
    begin_current = sum(asset_buckets(data.beginning_assets)[k] for k in CURRENT_ASSET_BUCKETS)
    if begin_current == 0 and estimate_missing:
        begin_current = data.beginning_total_assets * EST_CURRENT_ASSETS

    m.receivables_turnover = _round(_ratio(revenue, _avg(b.receivables, begin_receivables, use_begin)), 1)
    m.receivables_days = _round(_ratio(DAYS_PER_YEAR, m.receivables_turnover), 1)
    m.inventory_turnover = _round(_ratio(b.cogs, _avg(b.inventory, begin_inventory, use_begin)), 1)
    m.inventory_days = _round(_ratio(DAYS_PER_YEAR, m.inventory_turnover), 1)
    m.current_asset_turnover = _round(_ratio(revenue, _avg(b.current_assets, begin_current, use_begin)))
    m.total_asset_turnover = _round(_ratio(revenue, _avg(ta, data.beginning_total_assets, use_begin)))
    payables_days = _ratio(DAYS_PER_YEAR, _ratio(b.cogs, b.payables))
    m.cash_conversion_cycle = _round(m.receivables_days + m.inventory_days - payables_days, 1)

    # 3. Profitability
    m.gross_profit_margin = _round(_pct(revenue - b.cogs, revenue)) if b.cogs > 0 else 0.0
    m.operating_profit_margin = _round(_pct(b.operating_profit, revenue))
    m.net_profit_margin = _round(_pct(np_, revenue))
    m.roe = _round(_pct(np_, te))
    m.roa = _round(_pct(np_, ta))
    m.ebitda_margin = _round(_pct(np_ + b.interest_expense + b.depreciation, revenue))
    m.cost_expense_ratio = _round(_pct(np_, data.total_expenses))

    # 4. Growth
    if baseline is not None:
        m.revenue_growth_rate = _round(_pct(revenue - baseline.revenue, baseline.revenue))
        m.net_profit_growth_rate = _round(_pct(np_ - baseline.net_profit, abs(baseline.net_profit)))
        m.total_asset_growth_rate = _round(_pct(ta - baseline.total_assets, baseline.total_assets))
        m.equity_growth_rate = _round(_pct(te - baseline.total_equity, baseline.total_equity))
    m.sustainable_growth_rate = _round(m.roe * RETENTION_RATIO)

    # 5. Cash flow
    ocf = b.operating_cashflow
    m.operating_cash_flow_ratio = _round(_ratio(ocf, abs(np_)))
    m.free_cash_flow = _round(ocf - b.capex)
    m.cash_flow_to_revenue = _round(_pct(ocf, revenue))
    m.cash_recovery_rate = _round(_pct(ocf, revenue))
    m.operating_cash_flow_per_share = _round(_ratio(ocf, te / SHARE_PAR_VALUE))

    logger.debug("Metrics computed: roe=%.2f debt=%.2f current=%.2f", m.roe, m.debt_to_asset_ratio, m.current_ratio)
    return m


def calculate_dupont(data: FinancialData) -> DupontAnalysis:
    margin = _ratio(data.net_profit, data.total_income)
    turnover = _ratio(data.total_income, data.total_assets)
    multiplier = _ratio(data.total_assets, data.total_equity)
    return DupontAnalysis(
        roe=_round(margin * turnover * multiplier * 100),
        net_profit_margin=_round(margin * 100),
        total_asset_turnover=_round(turnover),
        equity_multiplier=_round(multiplier),
    )


# ─── Observations ─────────────────────────────────────────────────────────────


def generate_suggestions(data: FinancialData, metrics: FinancialMetrics, unit: str = "wan") -> List[str]:
    out: List[str] = []
    cr = metrics.current_ratio
    if cr < 1.5:
        out.append(f"流动比率为 {cr}，低于标准值2，建议关注短期偿债能力。")
    elif cr > 3:
        out.append(f"流动比率为 {cr}，较高，可能存在资金利用效率不高的情况。")
    else:
        out.append(f"流动比率为 {cr}，处于合理范围。")

    dr = metrics.debt_to_asset_ratio
    if dr > 60:
        out.append(f"资产负债率为 {dr}%，较高，财务风险较大。")
    elif dr < 30:
        out.append(f"资产负债率为 {dr}%，较低，财务结构稳健。")
    else:
        out.append(f"资产负债率为 {dr}%，处于适宜范围。")

    npm = metrics.net_profit_margin
    if npm < 0:
        out.append(f"销售净利率为 {npm}%，出现亏损，建议优化成本结构。")
    elif npm < 5:
        out.append(f"销售净利率为 {npm}%，偏低，建议提升盈利能力。")
    elif npm > 20:
        out.append(f"销售净利率为 {npm}%，盈利能力较强。")

    roe = metrics.roe
    if roe < 0:
        out.append(f"净资产收益率(ROE)为 {roe}%，出现亏损，需关注经营风险。")
    elif roe < 10:
        out.append(f"净资产收益率(ROE)为 {roe}%，偏低，建议提高资产使用效率。")
    elif roe > 20:
        out.append(f"净资产收益率(ROE)为 {roe}%，表现优秀。")

    if 0 < metrics.total_asset_turnover < 0.5:
        out.append(f"总资产周转率为 {metrics.total_asset_turnover}，资产运营效率有待提升。")

    if data.net_profit > 0:
        out.append(f"本期实现净利润 {format_money(data.net_profit, unit)}，经营状况良好。")
    elif data.net_profit < 0:
        out.append(f"本期出现亏损 {format_money(abs(data.net_profit), unit)}，需要关注经营风险。")

    if data.operating_cashflow > 0:
        out.append(f"经营活动现金流为正({format_money(data.operating_cashflow, unit)})，主营业务造血能力良好。")
    elif data.operating_cashflow < 0:
        out.append(f"经营活动现金流为负({format_money(data.operating_cashflow, unit)})，需关注经营回款情况。")
    return out
