"""
fin_health/aggregator.py
========================
Merges every classified sheet of one workbook into a single FinancialData
snapshot and attaches accounting identity checks.

Precedence: statement figures (balance sheet / income statement) override
values derived from a trial balance; totals fall back to sums over the
category maps when no statement total was read.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .account_patterns import classify_account
from .classifier import classify_sheet
from .config import AnalysisOptions
from .extractor import (
    BalanceSheetExtract,
    CashflowExtract,
    IncomeStatementExtract,
    extract_aging,
    extract_balance_sheet,
    extract_cashflow_statement,
    extract_income_statement,
    extract_summary,
    extract_trial_balance,
)
from .ledger import extract_ledgers
from .types import AccountBalance, FinancialData, IdentityCheck, RawSheet

logger = logging.getLogger(__name__)

_CATEGORY_MAPS = {
    "asset": "assets",
    "liability": "liabilities",
    "equity": "equity",
    "income": "income",
    "expense": "expenses",
}


# ─── Trial-Balance Classification ─────────────────────────────────────────────


@dataclass
class _Classified:
    current: Dict[str, Dict[str, float]] = field(default_factory=lambda: {k: {} for k in _CATEGORY_MAPS})
    beginning: Dict[str, Dict[str, float]] = field(default_factory=lambda: {k: {} for k in _CATEGORY_MAPS})

    def total(self, category: str) -> float:
        return sum(self.current[category].values())


def top_level_accounts(rows: Sequence[AccountBalance]) -> List[AccountBalance]:
    """Drop sub-accounts whose parent code is also listed (112201 under 1122)."""
    codes = {r.code for r in rows if r.code}
    out = []
    for r in rows:
        if r.code and any(r.code != c and r.code.startswith(c) for c in codes):
            continue
        out.append(r)
    return out


def _classified_amount(category: str, balance: float, period_debit: float = 0.0,
                       period_credit: float = 0.0) -> Optional[float]:
    """
    Value to file under ``category`` for one balance, or None to skip.
    Balance-sheet accounts keep their sign relative to the normal side, so
    contra accounts (累计折旧, 坏账准备) reduce their category total.
    """
    if category in ("asset", "liability", "equity"):
        if abs(balance) < 0.01:
            return None
        return balance if category == "asset" else -balance
    # P&L accounts are usually closed out at period end; use period activity then
    if abs(balance) >= 0.01:
        return abs(balance)
    activity = period_credit if category == "income" else period_debit
    return activity if activity >= 0.01 else None


def classify_trial_balance(rows: Sequence[AccountBalance]) -> _Classified:
    out = _Classified()
    for r in top_level_accounts(rows):
        category = classify_account(r.code, r.name)
        if category is None:
            continue
        name = r.name or r.code
        closing = _classified_amount(category, r.closing_balance, r.current_debit, r.current_credit)
        if closing is not None:
            bucket = out.current[category]
            bucket[name] = bucket.get(name, 0.0) + closing
        if category in ("income", "expense"):
            continue
        opening = _classified_amount(category, r.opening_balance)
        if opening is not None:
            bucket = out.beginning[category]
            bucket[name] = bucket.get(name, 0.0) + opening
    return out


# ─── Identity Checks ──────────────────────────────────────────────────────────


def _check(name: str, left: float, right: float, tolerance: float) -> IdentityCheck:
    delta = left - right
    passed = abs(delta) <= tolerance
    if not passed:
        logger.warning("Identity check failed: %s (%.2f vs %.2f, delta %.2f)", name, left, right, delta)
    return IdentityCheck(name=name, left=left, right=right, delta=delta, tolerance=tolerance, passed=passed)


def _tolerance(value: float, opts: AnalysisOptions) -> float:
    return max(opts.identity_min_tolerance, abs(value) * opts.identity_tolerance_ratio)


def identity_checks(
    data: FinancialData,
    trial_rows: Sequence[AccountBalance] = (),
    options: Optional[AnalysisOptions] = None,
) -> List[IdentityCheck]:
    opts = options or AnalysisOptions()
    checks: List[IdentityCheck] = []
    rows = top_level_accounts(trial_rows)
    if rows:
        checks.append(_check(
            "试算平衡（期末借贷）",
            sum(r.closing_debit for r in rows), sum(r.closing_credit for r in rows),
            opts.trial_balance_tolerance,
        ))
        current_debit = sum(r.current_debit for r in rows)
        current_credit = sum(r.current_credit for r in rows)
        if current_debit or current_credit:
            checks.append(_check("试算平衡（本期发生额）", current_debit, current_credit, opts.trial_balance_tolerance))
    if data.total_assets or data.total_liabilities or data.total_equity:
        checks.append(_check(
            "资产 = 负债 + 所有者权益",
            data.total_assets, data.total_liabilities + data.total_equity,
            _tolerance(data.total_assets, opts),
        ))
    return checks


def reconcile_statements(
    balance: Optional[BalanceSheetExtract],
    income: Optional[IncomeStatementExtract],
    trial: Optional[_Classified],
    options: Optional[AnalysisOptions] = None,
) -> List[IdentityCheck]:
    """Cross-check statement totals against the trial balance when both are present."""
    opts = options or AnalysisOptions()
    checks: List[IdentityCheck] = []
    if trial is None:
        return checks
    if balance is not None and balance.total_assets and trial.total("asset"):
        checks.append(_check(
            "资产负债表与科目余额表资产总额核对",
            balance.total_assets, trial.total("asset"), _tolerance(balance.total_assets, opts),
        ))
    if balance is not None and balance.total_liabilities and trial.total("liability"):
        checks.append(_check(
            "资产负债表与科目余额表负债总额核对",
            balance.total_liabilities, trial.total("liability"), _tolerance(balance.total_liabilities, opts),
        ))
    if income is not None and income.revenue and trial.total("income"):
        checks.append(_check(
            "利润表与科目余额表收入核对",
            income.revenue, trial.total("income"), _tolerance(income.revenue, opts),
        ))
    return checks


# ─── Aggregation ──────────────────────────────────────────────────────────────


def aggregate(sheets: Sequence[RawSheet], options: Optional[AnalysisOptions] = None) -> FinancialData:
    """
    Classify, extract and merge all sheets of one workbook. Deterministic:
    the same sheets always yield the same FinancialData.
    """
    opts = options or AnalysisOptions()
    data = FinancialData()
    trial_rows: List[AccountBalance] = []
    balance: Optional[BalanceSheetExtract] = None
    income: Optional[IncomeStatementExtract] = None
    cashflow: Optional[CashflowExtract] = None

    for sheet in sheets:
        kind = classify_sheet(sheet)
        if kind == "unknown":
            data.unknown_sheets.append(sheet.name)
            data.diagnostics.append(f"[{sheet.name}] unrecognised sheet skipped")
            continue
        data.raw_sheets.setdefault(kind, sheet)
        diag = data.diagnostics
        if kind == "subject":
            trial_rows.extend(extract_trial_balance(sheet, diag))
        elif kind == "balance" and balance is None:
            balance = extract_balance_sheet(sheet, diag)
        elif kind == "income" and income is None:
            income = extract_income_statement(sheet, diag)
        elif kind == "cashflow" and cashflow is None:
            cashflow = extract_cashflow_statement(sheet, diag)
        elif kind == "ledger":
            data.ledgers.extend(extract_ledgers(sheet, diag))
        elif kind == "summary":
            summary = extract_summary(sheet, diag)
            if summary.items and data.financial_summary is None:
                data.financial_summary = summary
        elif kind == "aging":
            aging = extract_aging(sheet, diag)
            if aging.items and data.aging_analysis is None:
                data.aging_analysis = aging

    trial: Optional[_Classified] = None
    if trial_rows:
        data.subject_balances = trial_rows
        trial = classify_trial_balance(trial_rows)
        for category, attr in _CATEGORY_MAPS.items():
            getattr(data, attr).update(trial.current[category])
            getattr(data, f"beginning_{attr}").update(trial.beginning[category])
        if any(r.opening_debit or r.opening_credit for r in trial_rows):
            data.has_beginning_data = True

    if balance is not None:
        for attr in ("assets", "liabilities", "equity"):
            stmt_items = getattr(balance, attr)
            if stmt_items:
                setattr(data, attr, dict(stmt_items))
            stmt_begin = getattr(balance, f"beginning_{attr}")
            if stmt_begin:
                setattr(data, f"beginning_{attr}", dict(stmt_begin))
        data.total_assets = balance.total_assets
        data.total_liabilities = balance.total_liabilities
        data.total_equity = balance.total_equity
        data.beginning_total_assets = balance.beginning_total_assets
        data.beginning_total_liabilities = balance.beginning_total_liabilities
        data.beginning_total_equity = balance.beginning_total_equity
        data.has_beginning_data = data.has_beginning_data or balance.has_beginning_data

    if income is not None:
        if income.income:
            data.income = dict(income.income)
        if income.expenses:
            data.expenses = dict(income.expenses)
        if income.beginning_income:
            data.beginning_income = dict(income.beginning_income)
        if income.beginning_expenses:
            data.beginning_expenses = dict(income.beginning_expenses)
        data.total_income = income.revenue
        data.beginning_total_income = income.prior_revenue
        data.reported_net_profit = income.reported_net_profit

    if cashflow is not None:
        data.operating_cashflow = cashflow.operating
        data.investing_cashflow = cashflow.investing
        data.financing_cashflow = cashflow.financing

    _fill_totals(data)
    data.identity_checks = identity_checks(data, trial_rows, opts)
    data.identity_checks.extend(reconcile_statements(balance, income, trial, opts))

    logger.debug(
        "Aggregated %d sheet(s): assets=%.2f liabilities=%.2f equity=%.2f income=%.2f expenses=%.2f ledgers=%d",
        len(sheets), data.total_assets, data.total_liabilities, data.total_equity,
        data.total_income, data.total_expenses, len(data.ledgers),
    )
    return data


def _fill_totals(data: FinancialData) -> None:
    if data.total_assets == 0:
        data.total_assets = sum(data.assets.values())
    if data.total_liabilities == 0:
        data.total_liabilities = sum(data.liabilities.values())
    if data.total_equity == 0:
        data.total_equity = sum(data.equity.values())
    if data.total_income == 0:
        data.total_income = sum(data.income.values())
    if data.total_expenses == 0:
        data.total_expenses = sum(data.expenses.values())
    if data.total_equity == 0 and data.total_assets and data.total_liabilities:
        data.total_equity = data.total_assets - data.total_liabilities

    if data.beginning_total_assets == 0:
        data.beginning_total_assets = sum(data.beginning_assets.values())
    if data.beginning_total_liabilities == 0:
        data.beginning_total_liabilities = sum(data.beginning_liabilities.values())
    if data.beginning_total_equity == 0:
        data.beginning_total_equity = sum(data.beginning_equity.values())
    if data.beginning_total_income == 0:
        data.beginning_total_income = sum(data.beginning_income.values())
    if data.beginning_total_expenses == 0:
        data.beginning_total_expenses = sum(data.beginning_expenses.values())
    if data.beginning_total_equity == 0 and data.beginning_total_assets and data.beginning_total_liabilities:
        data.beginning_total_equity = data.beginning_total_assets - data.beginning_total_liabilities
    if data.beginning_total_assets or data.beginning_total_income:
        data.has_beginning_data = True
