"""
fin_health/extractor.py
=======================
Statement extraction: turns a classified RawSheet into typed entities.

  subject   → List[AccountBalance]        (trial balance)
  balance   → BalanceSheetExtract         (two-column layout, current + beginning)
  income    → IncomeStatementExtract
  cashflow  → CashflowExtract
  summary   → FinancialSummaryData
  aging     → AgingAnalysis

Ledger sheets are handled in ledger.py. Nothing here raises on content
problems: missing columns produce a PartialExtractionWarning and an empty
or partially filled entity.
"""
from __future__ import annotations

import logging
import re
import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .account_patterns import classify_account, is_expense_item, is_income_item
from .errors import PartialExtractionWarning
from .formatting import format_money
from .parser import cell_str, to_number
from .types import (
    AGING_BUCKETS,
    AccountBalance,
    AgingAnalysis,
    AgingItem,
    FinancialSummaryData,
    FinancialSummaryItem,
    RawSheet,
)

logger = logging.getLogger(__name__)

HEADER_SCAN_ROWS = 15
TOTAL_MARKERS = ("合计", "总计")


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _cell(row: Sequence, col: Optional[int]):
    if col is None or col < 0 or col >= len(row):
        return None
    return row[col]


def _text(row: Sequence, col: Optional[int]) -> str:
    return cell_str(_cell(row, col))


def _num(row: Sequence, col: Optional[int]) -> float:
    return to_number(_cell(row, col))


def _row_text(row: Sequence) -> str:
    return " ".join(t for t in (cell_str(c) for c in row) if t)


def _warn_partial(sheet: RawSheet, message: str, diagnostics: Optional[List[str]]) -> None:
    msg = f"[{sheet.name}] {message}"
    warnings.warn(msg, PartialExtractionWarning, stacklevel=3)
    logger.warning("Partial extraction: %s", msg)
    if diagnostics is not None:
        diagnostics.append(msg)


_PREFIX_RE = re.compile(r"^(?:[一二三四五六七八九十]+[、.．]|[（(][一二三四五六七八九十\d]+[)）]|[加减][:：])\s*")


def clean_item_name(name: str) -> str:
    """Strip statement numbering like "一、" / "减：" from an item label."""
    prev = None
    while prev != name:
        prev = name
        name = _PREFIX_RE.sub("", name).strip()
    return name


def _is_period_end(header: str) -> bool:
    return any(k in header for k in ("期末", "本期", "本年")) and not any(
        k in header for k in ("年初", "上期", "去年")
    )


def _is_period_start(header: str) -> bool:
    return any(k in header for k in ("年初", "期初", "上期")) and not any(
        k in header for k in ("期末", "本期")
    )


# ─── Trial Balance ────────────────────────────────────────────────────────────


_SIDE_LABELS = {"借方", "贷方", "借", "贷", "借方金额", "贷方金额"}


def _compose_header(rows: Sequence[Sequence], i: int) -> Tuple[List[str], int]:
    """
    Header labels for row ``i``; a two-row header (期初余额 over 借方/贷方)
    is merged by carrying the group label across its span.
    Returns (labels, number of header rows consumed).
    """
    top = [cell_str(c) for c in rows[i]]
    if i + 1 >= len(rows):
        return top, 1
    sub = [cell_str(c) for c in rows[i + 1]]
    if sum(1 for s in sub if s in _SIDE_LABELS) < 2:
        return top, 1

    labels: List[str] = []
    carry = ""
    for j in range(max(len(top), len(sub))):
        t = top[j] if j < len(top) else ""
        s = sub[j] if j < len(sub) else ""
        if t:
            carry = t
        labels.append(f"{t or carry}{s}" if s else t)
    return labels, 2


@dataclass
class _TrialBalanceColumns:
    code: Optional[int] = None
    name: Optional[int] = None
    opening_debit: Optional[int] = None
    opening_credit: Optional[int] = None
    current_debit: Optional[int] = None
    current_credit: Optional[int] = None
    closing_debit: Optional[int] = None
    closing_credit: Optional[int] = None

    def missing(self) -> List[str]:
        return [k for k, v in self.__dict__.items() if v is None and k != "code"]


def _detect_trial_balance_columns(labels: List[str]) -> _TrialBalanceColumns:
    cols = _TrialBalanceColumns()
    for j, cell in enumerate(labels):
        if not cell:
            continue
        if cols.code is None and any(k in cell for k in ("科目编码", "科目代码", "编码", "代码")):
            cols.code = j
            continue
        if cols.name is None and ("科目名称" in cell or ("科目" in cell and "编码" not in cell and "代码" not in cell)):
            cols.name = j
            continue
        debit = "借" in cell
        credit = "贷" in cell
        if any(k in cell for k in ("期初", "年初")):
            if debit and cols.opening_debit is None:
                cols.opening_debit = j
            elif credit and cols.opening_credit is None:
                cols.opening_credit = j
        elif "期末" in cell:
            if debit and cols.closing_debit is None:
                cols.closing_debit = j
            elif credit and cols.closing_credit is None:
                cols.closing_credit = j
        elif any(k in cell for k in ("本期", "本年", "发生")):
            if debit and cols.current_debit is None:
                cols.current_debit = j
            elif credit and cols.current_credit is None:
                cols.current_credit = j
    return cols


def extract_trial_balance(sheet: RawSheet, diagnostics: Optional[List[str]] = None) -> List[AccountBalance]:
    """One AccountBalance per data row; totals rows are skipped."""
    rows = sheet.rows
    header_row = -1
    consumed = 1
    cols = _TrialBalanceColumns()
    for i in range(min(HEADER_SCAN_ROWS, len(rows))):
        labels, consumed = _compose_header(rows, i)
        cols = _detect_trial_balance_columns(labels)
        if cols.name is not None and (cols.closing_debit is not None or cols.closing_credit is not None):
            header_row = i
            break

    if header_row < 0:
        _warn_partial(sheet, "trial balance header (科目名称 / 期末借贷) not found", diagnostics)
        return []

    missing = cols.missing()
    if missing:
        _warn_partial(sheet, f"trial balance columns missing: {', '.join(missing)}", diagnostics)
    logger.debug("Trial balance columns in %r: %s", sheet.name, cols)

    out: List[AccountBalance] = []
    for row in rows[header_row + consumed:]:
        code = _text(row, cols.code)
        name = _text(row, cols.name)
        if not code and not name:
            continue
        if any(m in name or m in code for m in TOTAL_MARKERS):
            continue
        out.append(AccountBalance(
            code=code,
            name=name,
            opening_debit=_num(row, cols.opening_debit),
            opening_credit=_num(row, cols.opening_credit),
            current_debit=_num(row, cols.current_debit),
            current_credit=_num(row, cols.current_credit),
            closing_debit=_num(row, cols.closing_debit),
            closing_credit=_num(row, cols.closing_credit),
        ))
    return out


# ─── Balance Sheet ────────────────────────────────────────────────────────────


@dataclass
class _BlockColumns:
    item: int
    amount: int
    beginning: Optional[int] = None


@dataclass
class BalanceSheetExtract:
    assets: Dict[str, float] = field(default_factory=dict)
    liabilities: Dict[str, float] = field(default_factory=dict)
    equity: Dict[str, float] = field(default_factory=dict)
    beginning_assets: Dict[str, float] = field(default_factory=dict)
    beginning_liabilities: Dict[str, float] = field(default_factory=dict)
    beginning_equity: Dict[str, float] = field(default_factory=dict)
    total_assets: float = 0.0
    total_liabilities: float = 0.0
    total_equity: float = 0.0
    beginning_total_assets: float = 0.0
    beginning_total_liabilities: float = 0.0
    beginning_total_equity: float = 0.0
    has_beginning_data: bool = False


_LIABILITY_HINTS = ("负债", "应付", "借款", "债券", "长期", "短期", "预收", "应交")
_EQUITY_HINTS = ("权益", "资本", "股本", "盈余", "未分配", "库存股")


def _right_columns_by_content(rows: Sequence[Sequence], header_row: int) -> _BlockColumns:
    """Pick the right-half column with most liability/equity names and the numeric column beside it."""
    width = max((len(r) for r in rows), default=0)
    mid = width // 2
    name_scores: Dict[int, int] = {}
    amount_scores: Dict[int, int] = {}
    for row in rows[header_row + 1: header_row + 25]:
        for col in range(max(0, mid - 1), min(len(row), mid + 6)):
            val = _cell(row, col)
            text = cell_str(val)
            if isinstance(val, float):
                if val > 0 and col >= mid:
                    amount_scores[col] = amount_scores.get(col, 0) + 1
                continue
            if len(text) < 2:
                continue
            if to_number(text) > 0 and col >= mid:
                amount_scores[col] = amount_scores.get(col, 0) + 1
                continue
            hits = int(any(k in text for k in _LIABILITY_HINTS)) + int(any(k in text for k in _EQUITY_HINTS))
            if hits:
                name_scores[col] = name_scores.get(col, 0) + hits

    if name_scores:
        name_col = max(name_scores, key=lambda c: (name_scores[c], -c))
        candidates = {c: s for c, s in amount_scores.items() if c > name_col}
        if candidates:
            amount_col = max(candidates, key=lambda c: (candidates[c], -c))
            return _BlockColumns(item=name_col, amount=amount_col)
    return _BlockColumns(item=6, amount=7)


def _detect_balance_columns(rows: Sequence[Sequence]) -> Tuple[int, _BlockColumns, Optional[_BlockColumns], bool]:
    for i in range(min(HEADER_SCAN_ROWS, len(rows))):
        row = rows[i]
        if len(row) < 3:
            continue
        text = _row_text(row)
        has_amount = any(k in text for k in ("期末", "金额", "余额"))
        if not ("资产" in text and ("负债" in text or "权益" in text) and has_amount):
            continue

        mid = len(row) // 2
        left_item: Optional[int] = None
        left_amount: Optional[int] = None
        left_begin: Optional[int] = None
        right: Optional[_BlockColumns] = None
        right_amount_found = False

        for col in range(len(row)):
            h = cell_str(row[col])
            if not h:
                continue
            if left_item is None and "资产" in h and "负债" not in h and col < mid:
                left_item = col
                continue
            li = left_item if left_item is not None else 0
            if left_amount is None and _is_period_end(h) and li < col < li + 4:
                left_amount = col
                continue
            if left_amount is not None and left_begin is None and _is_period_start(h) and left_amount < col < left_amount + 3:
                left_begin = col
                continue
            if right is None and ("负债" in h or "权益" in h) and col >= mid - 1:
                right = _BlockColumns(item=col, amount=col + 1)
                continue
            if right is not None:
                if not right_amount_found and _is_period_end(h) and right.item < col < right.item + 4:
                    right.amount = col
                    right_amount_found = True
                elif right.beginning is None and _is_period_start(h) and right.amount < col < right.amount + 3:
                    right.beginning = col

        left = _BlockColumns(
            item=left_item if left_item is not None else 0,
            amount=left_amount if left_amount is not None else 2,
            beginning=left_begin,
        )
        if right is None:
            right = _right_columns_by_content(rows, i)
        return i, left, right, True

    return 3, _BlockColumns(item=0, amount=2), _right_columns_by_content(rows, 3), False


_SECTION_TITLES = {"流动负债", "非流动负债", "负债", "所有者权益", "股东权益", "权益", "流动资产", "非流动资产"}


def _is_detail_item(item: str) -> bool:
    if len(item) < 2:
        return False
    if any(k in item for k in ("合计", "小计", "总计")):
        return False
    if item in _SECTION_TITLES:
        return False
    if "：" in item or ":" in item or item.startswith("其中"):
        return False
    if item.isdigit():
        return False
    return True


def extract_balance_sheet(sheet: RawSheet, diagnostics: Optional[List[str]] = None) -> BalanceSheetExtract:
    rows = sheet.rows
    out = BalanceSheetExtract()
    header_row, left, right, found = _detect_balance_columns(rows)
    out.has_beginning_data = left.beginning is not None or (right is not None and right.beginning is not None)
    logger.debug("Balance sheet %r: header=%d left=%s right=%s", sheet.name, header_row, left, right)
    if not found:
        _warn_partial(sheet, "balance sheet header not found, default column layout used", diagnostics)

    body = list(enumerate(rows))[header_row + 1:]

    # Totals rows
    for _, row in body:
        li = _text(row, left.item)
        ri = _text(row, right.item) if right else ""
        if "资产总计" in li or ("资产合计" in li and "流动" not in li and "负债" not in li):
            v = _num(row, left.amount)
            if v > 0:
                out.total_assets = v
            if left.beginning is not None and _num(row, left.beginning) > 0:
                out.beginning_total_assets = _num(row, left.beginning)
        if right is None:
            continue
        if "负债合计" in ri and "流动" not in ri and "权益" not in ri:
            v = _num(row, right.amount)
            if v > 0:
                out.total_liabilities = v
            if right.beginning is not None and _num(row, right.beginning) > 0:
                out.beginning_total_liabilities = _num(row, right.beginning)
        if ("所有者权益" in ri or "股东权益" in ri) and ("合计" in ri or "总计" in ri) and "负债" not in ri:
            v = _num(row, right.amount)
            if v > 0:
                out.total_equity = v
            if right.beginning is not None and _num(row, right.beginning) > 0:
                out.beginning_total_equity = _num(row, right.beginning)

    if out.total_equity == 0 and out.total_assets > 0 and out.total_liabilities > 0:
        out.total_equity = out.total_assets - out.total_liabilities
    if out.beginning_total_equity == 0 and out.beginning_total_assets > 0 and out.beginning_total_liabilities > 0:
        out.beginning_total_equity = out.beginning_total_assets - out.beginning_total_liabilities

    # Right block ranges: liabilities end at their total, equity starts at its heading
    equity_start = -1
    liability_end = len(rows)
    if right is not None:
        for i, row in body:
            item = _text(row, right.item)
            if "所有者权益" in item or "股东权益" in item:
                equity_start = i
                for j in range(i - 1, header_row, -1):
                    prev = _text(rows[j], right.item)
                    if "负债合计" in prev:
                        liability_end = j
                        break
                break

    for i, row in body:
        item = clean_item_name(_text(row, left.item))
        if _is_detail_item(item):
            v = _num(row, left.amount)
            if v != 0:
                out.assets[item] = v
            if left.beginning is not None:
                b = _num(row, left.beginning)
                if b != 0:
                    out.beginning_assets[item] = b

        if right is None:
            continue
        item = clean_item_name(_text(row, right.item))
        if not _is_detail_item(item):
            continue
        if equity_start >= 0:
            target = "equity" if i >= equity_start else ("liability" if i < liability_end else None)
        else:
            target = "equity" if classify_account("", item) == "equity" else "liability"
        if target is None:
            continue
        v = _num(row, right.amount)
        b = _num(row, right.beginning) if right.beginning is not None else 0.0
        if target == "equity":
            if v != 0:
                out.equity[item] = v
            if b != 0:
                out.beginning_equity[item] = b
        else:
            if v != 0:
                out.liabilities[item] = v
            if b != 0:
                out.beginning_liabilities[item] = b

    if not out.assets and not out.total_assets:
        _warn_partial(sheet, "no asset rows recognised in balance sheet", diagnostics)
    return out


# ─── Income & Cash-flow Statements ────────────────────────────────────────────


@dataclass
class _SingleColumnLayout:
    header_row: int
    item: int
    amount: int
    prior: Optional[int] = None
    found: bool = True


def _detect_single_column(rows: Sequence[Sequence]) -> _SingleColumnLayout:
    for i in range(min(HEADER_SCAN_ROWS, len(rows))):
        row = rows[i]
        if len(row) < 2:
            continue
        text = _row_text(row)
        if not ("项目" in text and ("金额" in text or "本期" in text)):
            continue
        layout = _SingleColumnLayout(header_row=i, item=0, amount=2)
        for col in range(len(row)):
            h = cell_str(row[col])
            if "项目" in h or h == "项":
                layout.item = col
                for ac in range(col + 1, len(row)):
                    ah = cell_str(row[ac])
                    if any(k in ah for k in ("金额", "本期", "本年")) and not any(k in ah for k in ("上期", "上年")):
                        layout.amount = ac
                        break
                for pc in range(layout.amount + 1, len(row)):
                    ph = cell_str(row[pc])
                    if any(k in ph for k in ("上期", "上年", "去年")):
                        layout.prior = pc
                        break
                break
        return layout
    return _SingleColumnLayout(header_row=3, item=0, amount=2, found=False)


@dataclass
class IncomeStatementExtract:
    income: Dict[str, float] = field(default_factory=dict)
    expenses: Dict[str, float] = field(default_factory=dict)
    beginning_income: Dict[str, float] = field(default_factory=dict)
    beginning_expenses: Dict[str, float] = field(default_factory=dict)
    revenue: float = 0.0
    prior_revenue: float = 0.0
    reported_net_profit: Optional[float] = None
    has_prior: bool = False


_INCOME_SKIP = ("编制单位", "利润表", "综合收益", "每股收益", "利润总额", "营业利润", "毛利")


def extract_income_statement(sheet: RawSheet, diagnostics: Optional[List[str]] = None) -> IncomeStatementExtract:
    rows = sheet.rows
    layout = _detect_single_column(rows)
    if not layout.found:
        _warn_partial(sheet, "income statement header (项目 / 金额) not found, default columns used", diagnostics)
    out = IncomeStatementExtract(has_prior=layout.prior is not None)

    for row in rows[layout.header_row + 1:]:
        raw = _text(row, layout.item)
        item = clean_item_name(raw)
        if len(item) < 2 or raw.startswith("其中") or item.startswith("其中"):
            continue
        value = _num(row, layout.amount)
        prior = _num(row, layout.prior) if layout.prior is not None else 0.0

        if ("净利润" in item or "净亏损" in item) and "持续" not in item and "终止" not in item:
            if out.reported_net_profit is None:
                out.reported_net_profit = value
            continue
        if any(k in item for k in _INCOME_SKIP):
            continue
        if "营业收入" in item and "净" not in item:
            if value != 0:
                out.revenue = value
            if prior != 0:
                out.prior_revenue = prior
        if "营业成本" in item and "税金" not in item:
            out.expenses["营业成本"] = abs(value)
            if prior:
                out.beginning_expenses["营业成本"] = abs(prior)
            continue

        if is_income_item(item):
            target, begin_target = out.income, out.beginning_income
        elif is_expense_item(item):
            target, begin_target = out.expenses, out.beginning_expenses
        else:
            continue
        if value != 0:
            target[item] = abs(value)
        if prior != 0:
            begin_target[item] = abs(prior)

    if not out.income and not out.expenses and out.revenue == 0:
        _warn_partial(sheet, "no income or expense rows recognised", diagnostics)
    return out


@dataclass
class CashflowExtract:
    operating: float = 0.0
    investing: float = 0.0
    financing: float = 0.0
    found: Dict[str, bool] = field(default_factory=dict)


_CASHFLOW_SECTIONS = (
    ("operating", ("经营活动",)),
    ("investing", ("投资活动",)),
    ("financing", ("筹资活动", "融资活动")),
)


def _cashflow_section(item: str) -> Optional[str]:
    for key, kws in _CASHFLOW_SECTIONS:
        if any(k in item for k in kws):
            return key
    return None


def extract_cashflow_statement(sheet: RawSheet, diagnostics: Optional[List[str]] = None) -> CashflowExtract:
    rows = sheet.rows
    layout = _detect_single_column(rows)
    if not layout.found:
        _warn_partial(sheet, "cash-flow header (项目 / 金额) not found, default columns used", diagnostics)
    out = CashflowExtract()
    section: Optional[str] = None

    for row in rows[layout.header_row + 1:]:
        item = clean_item_name(_text(row, layout.item))
        if not item:
            continue
        is_net = "现金流量净额" in item or ("小计" in item and "流入" not in item and "流出" not in item)
        own = _cashflow_section(item)
        if is_net:
            key = own or section
            # the supplementary schedule repeats the operating total; keep the first
            if key and not out.found.get(key):
                setattr(out, key, _num(row, layout.amount))
                out.found[key] = True
            continue
        if own:
            section = own

    if not out.found:
        _warn_partial(sheet, "no net cash-flow rows recognised", diagnostics)
    return out


# ─── Financial Summary ────────────────────────────────────────────────────────

_SUMMARY_FIELDS = (
    ("营业收入", "revenue"),
    ("净利润", "net_profit"),
    ("净利率", "net_profit_margin"),
    ("管理费用", "admin_expense"),
    ("销售费用", "sales_expense"),
    ("财务费用", "finance_expense"),
    ("费用比率", "expense_ratio"),
    ("应收款", "receivables"),
    ("应付款", "payables"),
    ("资金收入", "fund_inflow"),
    ("资金支付", "fund_outflow"),
    ("资金收支", "fund_balance"),
    ("应交税费", "tax_payable"),
    ("税负率", "tax_rate"),
)


def extract_summary(sheet: RawSheet, diagnostics: Optional[List[str]] = None) -> FinancialSummaryData:
    rows = sheet.rows
    out = FinancialSummaryData()
    header_row = -1
    for i in range(min(10, len(rows))):
        text = _row_text(rows[i])
        if "项目" in text and "本年累计" in text and "本期" in text:
            header_row = i
            break
    if header_row < 0:
        _warn_partial(sheet, "summary header (项目 / 本年累计 / 本期) not found", diagnostics)
        return out

    for row in rows[header_row + 1:]:
        if len(row) < 3:
            continue
        name = _text(row, 0)
        if not name or "编制单位" in name:
            continue
        item = FinancialSummaryItem(
            item_name=name,
            row_num=int(_num(row, 1)),
            ytd_amount=_num(row, 2),
            ytd_change=_num(row, 3),
            current_amount=_num(row, 4),
            current_change=_num(row, 5),
            mom_change=_num(row, 6),
        )
        out.items.append(item)
        for keyword, attr in _SUMMARY_FIELDS:
            if keyword in name:
                setattr(out, attr, item)
                break
    return out


def summary_report_lines(data: FinancialSummaryData, unit: str = "yuan") -> List[str]:
    """Profit / expense / fund / tax narrative for a summary sheet."""
    lines: List[str] = ["【盈利状况】"]
    np_ = data.net_profit
    if np_:
        word = "盈利" if np_.current_amount >= 0 else "亏损"
        line = f"本期{word}{format_money(abs(np_.current_amount), unit)}"
        if np_.current_change:
            line += f"，同比{'增长' if np_.current_change > 0 else '下降'}{abs(np_.current_change):.1f}%"
        lines.append(line)
    if data.revenue and data.revenue.current_change:
        rc = data.revenue.current_change
        lines.append(f"营业收入同比{'增长' if rc > 0 else '下降'}{abs(rc):.1f}%")
    if data.net_profit_margin:
        lines.append(f"净利率为{data.net_profit_margin.current_amount:.2f}%")

    lines.append("【费用状况】")
    if data.expense_ratio:
        er = data.expense_ratio
        line = f"费用比率{er.current_amount:.1f}%"
        if er.current_change:
            line += f"，同比{'上升' if er.current_change > 0 else '下降'}{abs(er.current_change):.1f}个百分点"
        lines.append(line)
    if data.admin_expense and data.admin_expense.current_change:
        ac = data.admin_expense.current_change
        lines.append(f"管理费用同比{'增长' if ac > 0 else '下降'}{abs(ac):.1f}%")

    lines.append("【资金状况】")
    if data.fund_balance:
        fb = data.fund_balance.current_amount
        lines.append(f"本期资金{'净流入' if fb >= 0 else '净流出'}{format_money(abs(fb), unit)}")
    if data.receivables and data.receivables.current_change > 50:
        lines.append(f"应收款同比大幅增长{data.receivables.current_change:.1f}%，需关注回款风险")

    lines.append("【税务状况】")
    if data.tax_rate:
        lines.append(f"综合税负率{data.tax_rate.current_amount:.2f}%")
    return lines


# ─── Aging Schedule ───────────────────────────────────────────────────────────

_SUBJECT_RE = re.compile(r"科目[：:]\s*(\d+)\s*([^\s]+)")
_RANGE_RE = re.compile(r"(\d{4}年\d{1,2}月(?:至|~)\d{4}年\d{1,2}月)")


def extract_aging(sheet: RawSheet, diagnostics: Optional[List[str]] = None) -> AgingAnalysis:
    rows = sheet.rows
    out = AgingAnalysis()
    header_row = -1
    for i in range(min(10, len(rows))):
        text = _row_text(rows[i])
        m = _SUBJECT_RE.search(text)
        if m:
            out.subject_code, out.subject_name = m.group(1), m.group(2)
        m = _RANGE_RE.search(text)
        if m:
            out.period = m.group(1)
        if "编码" in text and "名称" in text and "期初余额" in text:
            header_row = i

    if header_row < 0:
        _warn_partial(sheet, "aging header (编码 / 名称 / 期初余额) not found", diagnostics)
        return out

    for row in rows[header_row + 1:]:
        code, name = _text(row, 0), _text(row, 1)
        if not name or any(m in name for m in TOTAL_MARKERS):
            continue
        out.items.append(AgingItem(
            code=code,
            name=name,
            beginning_balance=_num(row, 2),
            debit=_num(row, 3),
            credit=_num(row, 4),
            ending_balance=_num(row, 5),
            buckets={b: _num(row, 6 + k) for k, b in enumerate(AGING_BUCKETS)},
        ))

    assess_aging(out)
    return out


def assess_aging(aging: AgingAnalysis) -> AgingAnalysis:
    """Fill totals, long-term ratio, risk tier and suggestions."""
    items = aging.items
    aging.total_beginning = sum(i.beginning_balance for i in items)
    aging.total_debit = sum(i.debit for i in items)
    aging.total_credit = sum(i.credit for i in items)
    aging.total_ending = sum(i.ending_balance for i in items)
    aging.bucket_totals = {b: sum(i.buckets.get(b, 0.0) for i in items) for b in AGING_BUCKETS}

    bt = aging.bucket_totals
    long_term = bt["180-360"] + bt["360-1080"] + bt["1080+"]
    ratio = long_term / aging.total_ending * 100 if aging.total_ending > 0 else 0.0
    aging.long_term_ratio = round(ratio, 2)
    aging.high_risk_amount = bt["360-1080"] + bt["1080+"]

    suggestions: List[str] = []
    if ratio > 30:
        aging.risk_level = "high"
        aging.risk_assessment = "高风险：长期应收款占比超过30%，存在较大回款风险"
        suggestions.append("重点关注超过180天的应收款项，及时计提坏账准备")
        suggestions.append("加强对长期未回款的客户催收力度")
    elif ratio > 15:
        aging.risk_level = "medium"
        aging.risk_assessment = "中风险：长期应收款占比在15%-30%，需关注回款情况"
        suggestions.append("定期跟踪账龄较长的应收款项")
    else:
        aging.risk_level = "low"
        aging.risk_assessment = "低风险：应收款账龄结构合理，回款风险可控"
    if aging.high_risk_amount > 0:
        suggestions.append(f"超过360天的高风险应收款{format_money(aging.high_risk_amount, 'yuan')}，建议单独评估可回收性")
    if bt["90-180"] > aging.total_ending * 0.2:
        suggestions.append("90-180天应收款占比较高，建议加强催收管理")
    aging.suggestions = suggestions
    return aging
