"""
fin_health/ledger.py
====================
Subsidiary-ledger (明细账) support:
  - extract_ledgers(): ledger worksheet → List[LedgerData]
  - analyze_ledger(): fund flow, counterparty netting, large-transaction
    ranking, frequency and rule-based anomalies for one ledger
  - CounterpartyExtractor strategies (regex on summary text, lookup table)
  - ledger_report_lines(): plain-text summary of one analysed ledger
"""
from __future__ import annotations

import logging
import math
import re
import warnings
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Pattern, Protocol, Sequence, Tuple

from .account_patterns import classify_account, normal_side
from .config import LedgerRuleConfig
from .errors import PartialExtractionWarning
from .formatting import SEVERITY_LABELS, format_money
from .parser import cell_str, to_number
from .types import (
    SEVERITY_ORDER,
    Anomaly,
    CounterpartyInfo,
    FundFlow,
    LargeTransaction,
    LedgerAnalysis,
    LedgerData,
    LedgerEntry,
    NormalSide,
    RawSheet,
    TransactionFrequency,
)

logger = logging.getLogger(__name__)

# ─── Sheet Grammar ────────────────────────────────────────────────────────────

# date | voucher | code | name | auxiliary | summary | debit | credit | direction | balance
DEFAULT_COLUMNS: Dict[str, int] = {
    "date": 0, "voucher": 1, "code": 2, "name": 3, "auxiliary": 4,
    "summary": 5, "debit": 6, "credit": 7, "direction": 8, "balance": 9,
}

_HEADER_KEYS: Sequence[Tuple[str, Tuple[str, ...]]] = (
    ("date", ("日期",)),
    ("voucher", ("凭证",)),
    ("code", ("科目编码", "科目代码", "编码")),
    ("name", ("科目名称",)),
    ("auxiliary", ("辅助", "往来单位", "对方单位", "客户", "供应商")),
    ("summary", ("摘要",)),
    ("debit", ("借方",)),
    ("credit", ("贷方",)),
    ("direction", ("方向",)),
    ("balance", ("余额",)),
)

_TITLE_RE = re.compile(r"科目[：:]\s*(\d+)\s*(.*)")
_TITLE_ALT_RE = re.compile(r"^(\d{4,})\s+(.+账)$")
_DATE_RE = re.compile(r"^(\d{4})[-/.年](\d{1,2})[-/.月](\d{1,2})")
_EXCLUDED_SUMMARY = ("期初", "合计", "累计")
_EXCEL_EPOCH = datetime(1899, 12, 30)


def _normalize_date(val: Any) -> Optional[str]:
    """YYYY-MM-DD for date-like cells (text or Excel serial number), else None."""
    if isinstance(val, float) and 20000 <= val <= 80000 and val.is_integer():
        return (_EXCEL_EPOCH + timedelta(days=int(val))).strftime("%Y-%m-%d")
    m = _DATE_RE.match(cell_str(val))
    if not m:
        return None
    y, mo, d = (int(g) for g in m.groups())
    if not (1 <= mo <= 12 and 1 <= d <= 31):
        return None
    return f"{y:04d}-{mo:02d}-{d:02d}"


def _detect_columns(rows: Sequence[Sequence]) -> Tuple[Dict[str, int], int]:
    """Locate the entry header row; falls back to the standard ten-column layout."""
    for i, row in enumerate(rows[:20]):
        labels = [cell_str(c) for c in row]
        joined = " ".join(labels)
        if "摘要" not in joined or not ("借方" in joined or "贷方" in joined):
            continue
        cols: Dict[str, int] = {}
        for j, label in enumerate(labels):
            if not label:
                continue
            for key, kws in _HEADER_KEYS:
                if key not in cols and any(k in label for k in kws):
                    cols[key] = j
                    break
        return cols, i
    return dict(DEFAULT_COLUMNS), -1


def _get(row: Sequence, cols: Mapping[str, int], key: str) -> Any:
    j = cols.get(key)
    if j is None or j >= len(row):
        return None
    return row[j]


def _new_ledger(code: str, name: str) -> LedgerData:
    name = re.sub(r"明细账$|明细分类账$", "", name).strip()
    return LedgerData(subject_code=code, subject_name=name)


def _finish(ledger: Optional[LedgerData], out: List[LedgerData], has_opening: bool) -> None:
    if ledger is None or not (ledger.entries or has_opening):
        return
    if ledger.total_debit == 0:
        ledger.total_debit = sum(e.debit for e in ledger.entries)
    if ledger.total_credit == 0:
        ledger.total_credit = sum(e.credit for e in ledger.entries)
    out.append(ledger)


def extract_ledgers(sheet: RawSheet, diagnostics: Optional[List[str]] = None) -> List[LedgerData]:
    """
    Parse one ledger worksheet. A sheet may hold several accounts, each
    introduced by a title row ("科目：1122 应收账款" or "1122 应收账款明细账").
    """
    rows = sheet.rows
    cols, header_row = _detect_columns(rows)
    missing = [k for k in ("date", "summary", "debit", "credit", "balance") if k not in cols]
    if missing:
        msg = f"[{sheet.name}] ledger columns missing: {', '.join(missing)}"
        warnings.warn(msg, PartialExtractionWarning, stacklevel=2)
        logger.warning("Partial extraction: %s", msg)
        if diagnostics is not None:
            diagnostics.append(msg)

    ledgers: List[LedgerData] = []
    current: Optional[LedgerData] = None
    has_opening = False

    for i, row in enumerate(rows):
        if i == header_row:
            continue
        first = next((cell_str(c) for c in row if cell_str(c)), "")
        if not first:
            continue

        m = _TITLE_RE.search(first) or _TITLE_ALT_RE.match(first)
        if m:
            _finish(current, ledgers, has_opening)
            current, has_opening = _new_ledger(m.group(1), m.group(2).strip()), False
            continue

        if "年" in first and "月" in first and "至" in first and _normalize_date(_get(row, cols, "date")) is None:
            if current is not None:
                current.period = first
            continue

        summary = cell_str(_get(row, cols, "summary"))
        marker = f"{first} {summary}"
        debit = to_number(_get(row, cols, "debit"))
        credit = to_number(_get(row, cols, "credit"))
        balance = to_number(_get(row, cols, "balance"))
        direction = "贷" if cell_str(_get(row, cols, "direction")).startswith("贷") else "借"

        if current is None:
            # entry rows without a title row: the account comes from the row itself
            date = _normalize_date(_get(row, cols, "date"))
            if date is None and "期初" not in marker:
                continue
            current = _new_ledger(cell_str(_get(row, cols, "code")), cell_str(_get(row, cols, "name")))
            has_opening = False

        if "期初余额" in marker or "年初余额" in marker:
            current.beginning_balance = balance
            current.beginning_direction = direction
            has_opening = True
            continue
        if "本期合计" in marker or "本月合计" in marker:
            current.total_debit, current.total_credit = debit, credit
            continue
        if "本年累计" in marker:
            current.year_to_date_debit, current.year_to_date_credit = debit, credit
            continue

        date = _normalize_date(_get(row, cols, "date"))
        if date is None:
            continue
        if any(k in summary for k in _EXCLUDED_SUMMARY):
            continue
        if debit == 0 and credit == 0 and balance == 0:
            continue
        current.entries.append(LedgerEntry(
            date=date,
            voucher_no=cell_str(_get(row, cols, "voucher")),
            summary=summary,
            auxiliary=cell_str(_get(row, cols, "auxiliary")),
            debit=debit,
            credit=credit,
            balance=balance,
            direction=direction,
            subject_code=cell_str(_get(row, cols, "code")) or current.subject_code,
            subject_name=cell_str(_get(row, cols, "name")) or current.subject_name,
        ))

    _finish(current, ledgers, has_opening)
    if not ledgers:
        msg = f"[{sheet.name}] no ledger entries recognised"
        warnings.warn(msg, PartialExtractionWarning, stacklevel=2)
        logger.warning("Partial extraction: %s", msg)
        if diagnostics is not None:
            diagnostics.append(msg)
    for lg in ledgers:
        logger.debug("Ledger %s %s: %d entries", lg.subject_code, lg.subject_name, len(lg.entries))
    return ledgers


# ─── Counterparty Extraction ──────────────────────────────────────────────────


class CounterpartyExtractor(Protocol):
    def extract(self, entry: LedgerEntry) -> Optional[str]:
        ...


DEFAULT_SUMMARY_PATTERNS: Tuple[str, ...] = (
    r"收到(?P<name>.+?)的?(?:货款|款项|往来款|款|$)",
    r"支付(?P<name>.+?)的?(?:货款|款项|费用|款|$)",
    r"^(?P<name>.+?)报销",
    r"^(?P<name>.+?)退款",
)


class RegexCounterpartyExtractor:
    """Auxiliary tag when present, else the first summary pattern that matches."""

    def __init__(self, patterns: Sequence[str] = DEFAULT_SUMMARY_PATTERNS, use_auxiliary: bool = True):
        self.patterns: List[Pattern[str]] = [re.compile(p) for p in patterns]
        self.use_auxiliary = use_auxiliary

    def extract(self, entry: LedgerEntry) -> Optional[str]:
        if self.use_auxiliary and entry.auxiliary:
            return entry.auxiliary
        text = entry.summary.strip()
        for pat in self.patterns:
            m = pat.search(text)
            if m:
                name = m.group("name").strip().rstrip("的")
                if name:
                    return name
        return None


class LookupCounterpartyExtractor:
    """
    Maps keywords found in the auxiliary tag or summary to canonical names,
    deferring to ``fallback`` when no keyword matches.
    """

    def __init__(self, table: Mapping[str, str], fallback: Optional[CounterpartyExtractor] = None):
        self.table = dict(table)
        self.fallback = fallback

    def extract(self, entry: LedgerEntry) -> Optional[str]:
        text = f"{entry.auxiliary} {entry.summary}"
        for keyword, canonical in self.table.items():
            if keyword in text:
                return canonical
        return self.fallback.extract(entry) if self.fallback else None


# ─── Analysis ─────────────────────────────────────────────────────────────────


def ledger_normal_side(ledger: LedgerData) -> NormalSide:
    """Normal balance side from the account; majority of entry directions when unknown."""
    side = normal_side(classify_account(ledger.subject_code, ledger.subject_name))
    if side is not None:
        return side
    debit_votes = sum(1 for e in ledger.entries if e.direction == "借")
    return "debit" if debit_votes * 2 >= len(ledger.entries) else "credit"


def _signed(balance: float, direction: str, side: NormalSide) -> float:
    on_normal = (direction == "借") == (side == "debit")
    return balance if on_normal else -balance


def _std_dev(values: List[float]) -> float:
    """Population standard deviation."""
    if len(values) < 2:
        return 0.0
    mean = sum(values) / len(values)
    return math.sqrt(sum((x - mean) ** 2 for x in values) / len(values))


def _is_round(amount: float, base: float) -> bool:
    if amount < base or base <= 0:
        return False
    q = amount / base
    return abs(q - round(q)) < 1e-9


def analysis_entries(ledger: LedgerData) -> List[LedgerEntry]:
    return [e for e in ledger.entries if not any(k in e.summary for k in _EXCLUDED_SUMMARY)]


def _counterparties(
    entries: Sequence[LedgerEntry], extractor: CounterpartyExtractor
) -> Tuple[List[CounterpartyInfo], Dict[str, List[LedgerEntry]]]:
    infos: Dict[str, CounterpartyInfo] = {}
    members: Dict[str, List[LedgerEntry]] = {}
    for e in entries:
        name = extractor.extract(e)
        if not name:
            continue
        info = infos.get(name)
        if info is None:
            info = infos[name] = CounterpartyInfo(name=name, first_date=e.date, last_date=e.date)
            members[name] = []
        info.total_debit += e.debit
        info.total_credit += e.credit
        info.transaction_count += 1
        info.first_date = min(info.first_date, e.date)
        info.last_date = max(info.last_date, e.date)
        members[name].append(e)
    for info in infos.values():
        info.net_amount = info.total_debit - info.total_credit
    ranked = sorted(infos.values(), key=lambda c: (-abs(c.net_amount), -c.transaction_count))
    return ranked, members


def _detect_anomalies(
    ledger: LedgerData,
    entries: List[LedgerEntry],
    side: NormalSide,
    counterparties: List[CounterpartyInfo],
    members: Dict[str, List[LedgerEntry]],
    extractor: CounterpartyExtractor,
    cfg: LedgerRuleConfig,
) -> List[Anomaly]:
    anomalies: List[Anomaly] = []
    if not entries:
        return anomalies

    # Outlier magnitude
    amounts = [e.amount for e in entries if e.amount > 0]
    if len(amounts) >= 2:
        mean = sum(amounts) / len(amounts)
        std = _std_dev(amounts)
        threshold = mean + cfg.outlier_sigma * std
        outliers = [e for e in entries if std > 0 and e.amount > threshold]
        if outliers:
            anomalies.append(Anomaly(
                severity="high",
                title="异常大额交易",
                description=f"发现{len(outliers)}笔交易金额超过均值+{cfg.outlier_sigma:g}倍标准差（阈值{threshold:,.2f}）",
                category="outlier",
                entries=tuple(outliers),
                affected_item=ledger.subject_name,
                threshold=threshold,
                suggestion="核实大额交易的业务背景及审批手续",
            ))

    # Round-number concentration
    rounds = [e for e in entries if _is_round(e.amount, cfg.round_base)]
    if len(rounds) >= cfg.round_min_count and len(rounds) / len(entries) > cfg.round_min_share:
        anomalies.append(Anomaly(
            severity="medium",
            title="整数金额集中",
            description=f"{len(rounds)}笔交易为{cfg.round_base:,.0f}的整数倍，占比{len(rounds) / len(entries) * 100:.1f}%",
            category="round_number",
            entries=tuple(rounds),
            affected_item=ledger.subject_name,
            suggestion="关注是否存在人为拆分或估计入账",
        ))

    # Counterparty concentration
    total_flow = sum(e.debit + e.credit for e in entries)
    if total_flow > 0:
        for cp in counterparties:
            share = cp.total_flow / total_flow
            if share <= cfg.concentration_share:
                continue
            anomalies.append(Anomaly(
                severity="high" if share >= cfg.concentration_high_share else "medium",
                title="往来单位集中",
                description=f"{cp.name}占本科目交易总额的{share * 100:.1f}%",
                category="concentration",
                entries=tuple(members.get(cp.name, [])),
                affected_item=cp.name,
                current_value=share * 100,
                threshold=cfg.concentration_share * 100,
                suggestion="评估对单一往来单位的依赖风险",
            ))

    # Balance discontinuity
    if any(e.balance != 0 for e in entries):
        sign = 1.0 if side == "debit" else -1.0
        expected = _signed(ledger.beginning_balance, ledger.beginning_direction, side)
        broken: List[LedgerEntry] = []
        for e in entries:
            expected += (e.debit - e.credit) * sign
            reported = _signed(e.balance, e.direction, side)
            # a zero balance cell is treated as "not printed" unless zero is expected
            if e.balance == 0 and abs(expected) > cfg.balance_tolerance:
                continue
            if abs(reported - expected) > cfg.balance_tolerance:
                broken.append(e)
        if broken:
            anomalies.append(Anomaly(
                severity="high",
                title="余额不连续",
                description=f"{len(broken)}笔记录的余额与期初余额加累计发生额不符",
                category="balance",
                entries=tuple(broken),
                affected_item=ledger.subject_name,
                suggestion="检查是否存在漏记、重复记账或余额方向错误",
            ))

    # Same-day, same-counterparty bursts
    groups: Dict[Tuple[str, str], List[LedgerEntry]] = {}
    for e in entries:
        name = extractor.extract(e)
        if name:
            groups.setdefault((e.date, name), []).append(e)
    frequent = [e for grp in groups.values() if len(grp) >= cfg.frequent_same_day for e in grp]
    if frequent:
        anomalies.append(Anomaly(
            severity="low",
            title="同日频繁交易",
            description=f"同一天与同一单位发生{cfg.frequent_same_day}笔及以上交易，共{len(frequent)}笔",
            category="frequency",
            entries=tuple(frequent),
            affected_item=ledger.subject_name,
            suggestion="确认是否存在拆分交易",
        ))

    anomalies.sort(key=lambda a: SEVERITY_ORDER[a.severity])
    return anomalies


def analyze_ledger(
    ledger: LedgerData,
    config: Optional[LedgerRuleConfig] = None,
    extractor: Optional[CounterpartyExtractor] = None,
) -> LedgerAnalysis:
    cfg = config or LedgerRuleConfig()
    extractor = extractor or RegexCounterpartyExtractor()
    entries = analysis_entries(ledger)
    side = ledger_normal_side(ledger)

    debit_sum = sum(e.debit for e in entries)
    credit_sum = sum(e.credit for e in entries)
    if side == "debit":
        flow = FundFlow(inflow=debit_sum, outflow=credit_sum, normal_side=side)
    else:
        flow = FundFlow(inflow=credit_sum, outflow=debit_sum, normal_side=side)
    flow.net_flow = flow.inflow - flow.outflow

    counterparties, members = _counterparties(entries, extractor)

    total_amount = sum(e.amount for e in entries)
    ranked = sorted(entries, key=lambda e: e.amount, reverse=True)
    large = [
        LargeTransaction(
            entry=e,
            rank=i + 1,
            amount=e.amount,
            percentage=e.amount / total_amount * 100 if total_amount > 0 else 0.0,
        )
        for i, e in enumerate(ranked)
    ]

    active_days = len({e.date for e in entries if e.date})
    frequency = TransactionFrequency(
        daily_avg=len(entries) / active_days if active_days else 0.0,
        count=len(entries),
        active_days=active_days,
    )

    sign = 1.0 if side == "debit" else -1.0
    beginning = _signed(ledger.beginning_balance, ledger.beginning_direction, side)
    expected_closing = beginning + (debit_sum - credit_sum) * sign
    closing = _signed(entries[-1].balance, entries[-1].direction, side) if entries else beginning

    anomalies = _detect_anomalies(ledger, entries, side, counterparties, members, extractor, cfg)
    logger.debug(
        "Ledger %s analysed: %d entries, %d counterparties, %d anomalies",
        ledger.subject_name, len(entries), len(counterparties), len(anomalies),
    )
    return LedgerAnalysis(
        subject_code=ledger.subject_code,
        subject_name=ledger.subject_name,
        fund_flow=flow,
        counterparties=counterparties,
        large_transactions=large,
        frequency=frequency,
        anomalies=anomalies,
        closing_balance=closing,
        expected_closing_balance=expected_closing,
    )


# ─── Text Report ──────────────────────────────────────────────────────────────


def ledger_report_lines(
    ledger: LedgerData,
    analysis: LedgerAnalysis,
    unit: str = "yuan",
    config: Optional[LedgerRuleConfig] = None,
) -> List[str]:
    cfg = config or LedgerRuleConfig()
    lines = [
        f"【{ledger.subject_name}】明细账分析报告",
        f"期间：{ledger.period or '未指定'}",
        f"交易笔数：{analysis.frequency.count}笔",
        f"借方发生额：{format_money(ledger.total_debit, unit)}",
        f"贷方发生额：{format_money(ledger.total_credit, unit)}",
        f"净流入：{format_money(analysis.fund_flow.net_flow, unit)}",
    ]
    top = analysis.top_transactions(cfg.large_display)
    if top:
        lines.append(f"【大额交易TOP{cfg.large_display}】")
        for t in top:
            lines.append(
                f"{t.rank}. {t.entry.date} {t.entry.summary} {format_money(t.amount, unit)} ({t.percentage:.1f}%)"
            )
    cps = analysis.top_counterparties(cfg.counterparty_display)
    if cps:
        lines.append("【主要往来单位】")
        for c in cps:
            direction = "借方净额" if c.net_amount > 0 else "贷方净额"
            lines.append(f"• {c.name}: {format_money(abs(c.net_amount), unit)} ({direction}, {c.transaction_count}笔)")
    if analysis.anomalies:
        lines.append("【异常提醒】")
        for a in analysis.anomalies:
            lines.append(f"【{SEVERITY_LABELS[a.severity]}】{a.description}")
            for e in a.display_entries(cfg.anomaly_entry_display):
                lines.append(f"    {e.date} {e.voucher_no} {e.summary} {format_money(e.amount, unit)}")
    return lines
