"""
fin_health/anomalies.py
=======================
Statement-level anomaly detection. Compares closing figures against the
beginning columns (or an explicit PeriodBaseline) and checks a handful of
account-specific red flags. Failed accounting identities are reported as
high-severity anomalies rather than exceptions.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .config import DetectionConfig
from .formatting import format_money
from .metrics import asset_buckets
from .account_patterns import CURRENT_ASSET_BUCKETS
from .types import SEVERITY_ORDER, Anomaly, FinancialData, PeriodBaseline

logger = logging.getLogger(__name__)


def sort_anomalies(anomalies: Iterable[Anomaly]) -> List[Anomaly]:
    """Stable sort high → medium → low."""
    return sorted(anomalies, key=lambda a: SEVERITY_ORDER[a.severity])


def _fmt(value: float) -> str:
    return format_money(value, "yuan")


# ─── Period-over-Period Rules ─────────────────────────────────────────────────


def _sudden_changes(
    items: Dict[str, float],
    beginning: Dict[str, float],
    kind: str,
    cfg: DetectionConfig,
) -> List[Anomaly]:
    out: List[Anomaly] = []
    for name, current in items.items():
        previous = beginning.get(name, 0.0)
        if previous <= 0:
            continue
        change = abs(current - previous) / previous
        if change <= cfg.sudden_change:
            continue
        up = current > previous
        if kind == "asset":
            title = f"【{name}】金额{'大幅增长' if up else '异常下降'}"
            suggestion = (
                f"请检查{name}增长的原因，是否为业务扩张或投资增加，关注资金占用情况。" if up
                else f"请检查{name}下降的原因，是否存在资产处置或减值情况。"
            )
        else:
            title = f"【{name}】负债{'大幅增加' if up else '异常减少'}"
            suggestion = (
                "负债大幅增加，请关注偿债压力和财务风险，合理安排还款计划。" if up
                else "负债减少有利于降低财务风险，但也需关注是否影响正常经营。"
            )
        out.append(Anomaly(
            severity="high" if change > 0.5 else "medium",
            title=title,
            description=f"{name}从期初{_fmt(previous)}变化到期末{_fmt(current)}，变动幅度{change * 100:.1f}%",
            category="sudden_change",
            affected_item=name,
            current_value=current,
            previous_value=previous,
            change_pct=change * 100,
            threshold=cfg.sudden_change * 100,
            suggestion=suggestion,
        ))
    return out


def _debt_ratio_rise(data: FinancialData, cfg: DetectionConfig) -> List[Anomaly]:
    if data.total_assets <= 0 or data.beginning_total_assets <= 0:
        return []
    current = data.total_liabilities / data.total_assets
    previous = data.beginning_total_liabilities / data.beginning_total_assets
    rise = current - previous
    if rise <= cfg.ratio_deterioration:
        return []
    return [Anomaly(
        severity="high" if current > 0.7 else "medium",
        title="【资产负债率】显著上升",
        description=f"资产负债率从{previous * 100:.1f}%上升到{current * 100:.1f}%，财务杠杆明显增加",
        category="ratio_deterioration",
        affected_item="资产负债率",
        current_value=current * 100,
        previous_value=previous * 100,
        change_pct=rise / previous * 100 if previous > 0 else None,
        threshold=cfg.ratio_deterioration * 100,
        suggestion="资产负债率上升较快，建议控制负债规模，优化资本结构，防范财务风险。",
    )]


def _profit_drop(data: FinancialData, previous: float, cfg: DetectionConfig) -> List[Anomaly]:
    if previous == 0:
        return []
    change = (data.net_profit - previous) / abs(previous)
    if change >= -cfg.ratio_deterioration:
        return []
    return [Anomaly(
        severity="high" if change < -0.5 else "medium",
        title="【净利润】大幅下滑",
        description=f"净利润从{_fmt(previous)}下降到{_fmt(data.net_profit)}，降幅{abs(change) * 100:.1f}%",
        category="ratio_deterioration",
        affected_item="净利润",
        current_value=data.net_profit,
        previous_value=previous,
        change_pct=change * 100,
        threshold=cfg.ratio_deterioration * 100,
        suggestion="净利润大幅下滑，请分析成本费用增长或收入下降的原因，及时采取改进措施。",
    )]


def _current_asset_share(items: Dict[str, float], total: float) -> float:
    if total <= 0:
        return 0.0
    sums = asset_buckets(items)
    return sum(sums[k] for k in CURRENT_ASSET_BUCKETS) / total


def _structural_shift(data: FinancialData, cfg: DetectionConfig) -> List[Anomaly]:
    current = _current_asset_share(data.assets, data.total_assets)
    previous = _current_asset_share(data.beginning_assets, data.beginning_total_assets)
    if current == 0 or previous == 0 or abs(current - previous) <= cfg.structure_change:
        return []
    up = current > previous
    return [Anomaly(
        severity="low",
        title=f"【资产结构】流动资产占比{'上升' if up else '下降'}",
        description=f"流动资产占比从{previous * 100:.1f}%变化到{current * 100:.1f}%",
        category="structural_shift",
        affected_item="资产结构",
        current_value=current * 100,
        previous_value=previous * 100,
        change_pct=(current - previous) / previous * 100,
        threshold=cfg.structure_change * 100,
        suggestion=(
            "流动资产占比上升，资产流动性增强，但需关注是否存在资金闲置。" if up
            else "流动资产占比下降，需关注短期偿债能力和资产流动性。"
        ),
    )]


# ─── Single-Period Rules ──────────────────────────────────────────────────────


def _cashflow_mismatch(data: FinancialData, cfg: DetectionConfig) -> List[Anomaly]:
    ocf, np_ = data.operating_cashflow, data.net_profit
    if ocf == 0 or np_ <= 0:
        return []
    out: List[Anomaly] = []
    ratio = abs(ocf / np_)
    if ratio < cfg.cashflow_mismatch:
        out.append(Anomaly(
            severity="high" if ratio < 0.3 else "medium",
            title="【现金流】经营现金流与净利润严重不匹配",
            description=f"净利润{_fmt(np_)}，但经营现金流仅{_fmt(ocf)}，现金流/净利润比率为{ratio * 100:.1f}%",
            category="cashflow_mismatch",
            affected_item="经营现金流",
            current_value=ocf,
            previous_value=np_,
            change_pct=(ratio - 1) * 100,
            threshold=cfg.cashflow_mismatch * 100,
            suggestion="利润含金量低，存在大量应收账款或存货占用资金，建议加强回款管理，关注坏账风险。",
        ))
    if ocf < 0:
        out.append(Anomaly(
            severity="high",
            title="【现金流】经营现金流为负但净利润为正",
            description=f"账面盈利{_fmt(np_)}，但经营现金流为{_fmt(ocf)}，利润未能转化为现金",
            category="cashflow_mismatch",
            affected_item="经营现金流",
            current_value=ocf,
            previous_value=np_,
            change_pct=-100.0,
            threshold=0.0,
            suggestion="账面盈利但现金流为负，企业面临资金链断裂风险，需立即改善回款与付款节奏。",
        ))
    return out


def _specific_accounts(data: FinancialData) -> List[Anomaly]:
    out: List[Anomaly] = []
    ta = data.total_assets
    if ta > 0:
        for name, value in data.assets.items():
            if "其他应收" in name and value > ta * 0.1:
                out.append(Anomaly(
                    severity="medium",
                    title=f"【{name}】金额过大需关注",
                    description=f"{name}金额{_fmt(value)}，占总资产{value / ta * 100:.1f}%",
                    category="account",
                    affected_item=name,
                    current_value=value,
                    threshold=10.0,
                    suggestion="其他应收款占比过高，可能存在关联方资金占用或隐藏费用，建议清理核实。",
                ))

    inventory = sum(v for k, v in data.assets.items() if "存货" in k or "库存" in k)
    if ta > 0 and inventory > 0 and data.total_income > 0:
        turnover = data.total_income / inventory
        if inventory > ta * 0.3 and turnover < 2:
            out.append(Anomaly(
                severity="medium",
                title="【存货】周转缓慢，存在积压风险",
                description=f"存货金额{_fmt(inventory)}，占总资产{inventory / ta * 100:.1f}%，周转率{turnover:.1f}次",
                category="account",
                affected_item="存货",
                current_value=inventory,
                threshold=30.0,
                suggestion="存货占比高且周转慢，可能存在滞销积压，建议加强库存管理，及时处理呆滞存货。",
            ))

    payables = sum(v for k, v in data.liabilities.items() if "应付账款" in k)
    if data.total_income > 0 and payables > data.total_income * 0.3:
        out.append(Anomaly(
            severity="low",
            title="【应付账款】金额较大",
            description=f"应付账款{_fmt(payables)}，占收入{payables / data.total_income * 100:.1f}%",
            category="account",
            affected_item="应付账款",
            current_value=payables,
            threshold=30.0,
            suggestion="应付账款占比较高，需关注供应商关系和付款信用，避免影响供应链稳定性。",
        ))
    return out


def detect_identity_anomalies(data: FinancialData) -> List[Anomaly]:
    out: List[Anomaly] = []
    for check in data.identity_checks:
        if check.passed:
            continue
        out.append(Anomaly(
            severity="high",
            title=f"【勾稽关系】{check.name}不平",
            description=(
                f"左方{_fmt(check.left)}，右方{_fmt(check.right)}，"
                f"差额{_fmt(check.delta)}，超出容差{_fmt(check.tolerance)}"
            ),
            category="identity",
            affected_item=check.name,
            current_value=check.left,
            previous_value=check.right,
            threshold=check.tolerance,
            suggestion="报表勾稽关系不成立，请核对科目余额表、资产负债表是否完整导出或存在漏记错记。",
        ))
    return out


# ─── Entry Point ──────────────────────────────────────────────────────────────


def detect_statement_anomalies(
    data: FinancialData,
    baseline: Optional[PeriodBaseline] = None,
    config: Optional[DetectionConfig] = None,
) -> List[Anomaly]:
    """
    Run every statement rule and return the anomalies sorted by severity.
    Period-over-period rules need beginning data; the profit rule prefers an
    explicit baseline over the prior-period column.
    """
    cfg = config or DetectionConfig()
    found: List[Anomaly] = []

    if data.has_beginning_data:
        found.extend(_sudden_changes(data.assets, data.beginning_assets, "asset", cfg))
        found.extend(_sudden_changes(data.liabilities, data.beginning_liabilities, "liability", cfg))
        found.extend(_debt_ratio_rise(data, cfg))
        found.extend(_structural_shift(data, cfg))

    if baseline is not None:
        found.extend(_profit_drop(data, baseline.net_profit, cfg))
    elif data.has_beginning_data and data.beginning_total_income:
        found.extend(_profit_drop(data, data.beginning_net_profit, cfg))

    found.extend(_cashflow_mismatch(data, cfg))
    found.extend(_specific_accounts(data))
    found.extend(detect_identity_anomalies(data))

    logger.debug("Statement anomaly scan found %d issue(s)", len(found))
    return sort_anomalies(found)


@dataclass
class AnomalySummary:
    total_count: int
    high: int
    medium: int
    low: int
    overall_assessment: str


def summarize_anomalies(anomalies: Iterable[Anomaly]) -> AnomalySummary:
    items = list(anomalies)
    high = sum(1 for a in items if a.severity == "high")
    medium = sum(1 for a in items if a.severity == "medium")
    low = sum(1 for a in items if a.severity == "low")
    if high:
        text = "存在高风险异常，需要立即关注并采取措施"
    elif medium:
        text = "存在中等风险异常，建议尽快处理"
    elif low:
        text = "存在轻微异常，可逐步改进"
    else:
        text = "财务状况良好，未发现明显异常"
    return AnomalySummary(total_count=len(items), high=high, medium=medium, low=low, overall_assessment=text)
