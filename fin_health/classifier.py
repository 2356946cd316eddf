"""
fin_health/classifier.py
========================
Sheet classifier. Looks only at worksheet *content* (first rows of the
grid); sheet names are user-controlled and never consulted.

Rules live in CLASSIFIER_RULES and are evaluated in order, first match wins.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from .types import RawSheet, SheetType

logger = logging.getLogger(__name__)

SCAN_ROWS = 10


# ─── Rule Table ───────────────────────────────────────────────────────────────


class ClassifierRule:
    """
    A sheet matches when every group in ``all_of`` has at least one keyword
    present in the scanned text, and no ``exclude`` keyword is present.
    """
    __slots__ = ("label", "all_of", "exclude")

    def __init__(
        self,
        label: SheetType,
        all_of: Sequence[Sequence[str]],
        exclude: Optional[Sequence[str]] = None,
    ):
        self.label = label
        self.all_of = tuple(tuple(g) for g in all_of)
        self.exclude = tuple(exclude or ())

    def matches(self, text: str) -> bool:
        if any(x in text for x in self.exclude):
            return False
        return all(any(k in text for k in group) for group in self.all_of)

    def __repr__(self) -> str:
        return f"ClassifierRule({self.label!r}, {self.all_of!r}, exclude={self.exclude!r})"


# Income markers are statement titles: summaries and trial balances routinely
# list 净利润 / 本年利润 in their first rows.
CLASSIFIER_RULES: List[ClassifierRule] = [
    ClassifierRule("balance", [["资产负债", "balance sheet"]]),
    ClassifierRule("balance", [["资产"], ["负债"], ["所有者权益", "股东权益"]], exclude=["明细", "科目"]),
    ClassifierRule("income", [["利润表", "损益表", "income statement", "profit and loss", "profit & loss"]]),
    ClassifierRule("cashflow", [["现金流量", "cash flow"]]),
    # detail ledgers and aging schedules also carry 科目 + 余额 in their title rows
    ClassifierRule("subject", [["科目"], ["余额"]], exclude=["明细", "凭证", "账龄", "30天"]),
    ClassifierRule("ledger", [["明细"], ["借方", "贷方"]]),
    ClassifierRule("ledger", [["凭证"], ["摘要"], ["借方", "贷方"]]),
    ClassifierRule("summary", [["概要"], ["本年累计"]]),
    ClassifierRule("summary", [["本年累计"], ["本期金额"], ["盈利状况", "三项费用"]]),
    ClassifierRule("aging", [["账龄", "aging"]]),
    ClassifierRule("aging", [["期初余额"], ["期末余额"], ["30天", "60天", "90天"]]),
    # untitled income statements
    ClassifierRule("income", [["项目"], ["营业收入", "营业成本", "净利润"]]),
]


# ─── Classification ───────────────────────────────────────────────────────────


def _cell_text(cell) -> str:
    if cell is None:
        return ""
    if isinstance(cell, float) and cell != cell:  # NaN
        return ""
    return str(cell).strip()


def sheet_text(rows: Iterable[Sequence], max_rows: int = SCAN_ROWS) -> str:
    """Concatenate the text of the first ``max_rows`` rows, lower-cased."""
    parts: List[str] = []
    for i, row in enumerate(rows):
        if i >= max_rows:
            break
        parts.extend(t for t in (_cell_text(c) for c in row) if t)
    return " ".join(parts).lower()


def classify_rows(rows: Sequence[Sequence], rules: Optional[Sequence[ClassifierRule]] = None) -> SheetType:
    text = sheet_text(rows)
    for rule in rules or CLASSIFIER_RULES:
        if rule.matches(text):
            return rule.label
    return "unknown"


def classify_sheet(sheet: RawSheet, rules: Optional[Sequence[ClassifierRule]] = None) -> SheetType:
    """Assign one semantic type to a worksheet (or "unknown")."""
    label = classify_rows(sheet.rows, rules)
    logger.debug("Sheet %r classified as %s (%d rows)", sheet.name, label, sheet.row_count)
    return label


def classify_workbook(sheets: Iterable[RawSheet]) -> List[Tuple[RawSheet, SheetType]]:
    return [(s, classify_sheet(s)) for s in sheets]
