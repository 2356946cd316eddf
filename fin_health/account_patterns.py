"""
fin_health/account_patterns.py
==============================
Account-name / account-code pattern tables. Two consumers:
  - classify_account(): maps a trial-balance row to asset / liability /
    equity / income / expense (code prefix first, name keywords second)
  - BUCKET_DEFS: groups balance-sheet items into the buckets the metrics
    engine needs (cash, receivables, inventory, current liabilities …)
"""
from __future__ import annotations
from typing import Dict, List, Optional, Tuple

from .types import AccountCategory, NormalSide

# ─── Pattern Definitions ──────────────────────────────────────────────────────


class AccountPattern:
    __slots__ = ("category", "code_prefixes", "keywords", "exclude_keywords", "exclude_prefixes")

    def __init__(
        self,
        category: AccountCategory,
        code_prefixes: Tuple[str, ...],
        keywords: List[str],
        exclude_keywords: Optional[List[str]] = None,
        exclude_prefixes: Tuple[str, ...] = (),
    ):
        self.category = category
        self.code_prefixes = code_prefixes
        self.keywords = keywords
        self.exclude_keywords = exclude_keywords or []
        self.exclude_prefixes = exclude_prefixes

    def matches(self, code: str, name: str) -> bool:
        if any(k in name for k in self.exclude_keywords):
            return False
        if code and code.startswith(self.code_prefixes):
            if not (self.exclude_prefixes and code.startswith(self.exclude_prefixes)):
                return True
        return any(k in name for k in self.keywords)


# Evaluated in order; the first matching category wins.
CATEGORY_DEFS: List[AccountPattern] = [
    AccountPattern("asset", ("1", "001"),
                   ["现金", "银行", "应收", "存货", "资产", "固定", "无形"],
                   exclude_keywords=["损失", "收益", "费用"]),
    AccountPattern("liability", ("2",),
                   ["应付", "借款", "负债", "应交", "预收"]),
    AccountPattern("equity", ("3",),
                   ["资本", "盈余", "权益", "未分配", "实收资本"]),
    # 64xx and 66xx-69xx are cost and expense codes inside the 6 (P&L) class
    AccountPattern("income", ("4", "6"),
                   ["收入", "收益"],
                   exclude_prefixes=("64", "66", "67", "68", "69")),
    AccountPattern("expense", ("5", "7", "64", "66", "67", "68", "69"),
                   ["成本", "费用", "支出"]),
]

DEBIT_NORMAL = frozenset({"asset", "expense"})


def classify_account(code: str, name: str) -> Optional[AccountCategory]:
    """Return the category of an account, or None when nothing matches."""
    code = (code or "").strip()
    name = (name or "").strip()
    for pattern in CATEGORY_DEFS:
        if pattern.matches(code, name):
            return pattern.category
    return None


def normal_side(category: Optional[str]) -> Optional[NormalSide]:
    if category is None:
        return None
    return "debit" if category in DEBIT_NORMAL else "credit"


# ─── Income Statement Keywords ────────────────────────────────────────────────

INCOME_KEYWORDS = ["收入", "收益", "营业外收入", "其他收益", "利得"]
EXPENSE_KEYWORDS = ["成本", "费用", "支出", "损失", "营业外支出", "所得税", "税金及附加"]


def is_income_item(name: str) -> bool:
    return any(k in name for k in INCOME_KEYWORDS)


def is_expense_item(name: str) -> bool:
    return any(k in name for k in EXPENSE_KEYWORDS)


# ─── Metric Buckets ───────────────────────────────────────────────────────────


class BucketDef:
    __slots__ = ("keywords", "exclude")

    def __init__(self, keywords: List[str], exclude: Optional[List[str]] = None):
        self.keywords = keywords
        self.exclude = exclude or []

    def matches(self, name: str) -> bool:
        return any(k in name for k in self.keywords) and not any(x in name for x in self.exclude)


BUCKET_DEFS: Dict[str, BucketDef] = {
    "cash": BucketDef(["货币", "现金", "银行", "存款"]),
    "receivables": BucketDef(["应收"], ["预收"]),
    "inventory": BucketDef(["存货", "库存", "原材料", "商品"]),
    "prepaid": BucketDef(["预付"]),
    "fixed": BucketDef(["固定", "在建工程", "无形资产"]),
    "current_liabilities": BucketDef(["应付", "预收", "薪酬", "应交", "短期", "一年内"]),
    "debt": BucketDef(["借款", "债券", "长期应付款"]),
    "payables": BucketDef(["应付账款", "应付票据"]),
    "interest": BucketDef(["利息", "财务费用"]),
    "cogs": BucketDef(["营业成本", "主营业务成本"]),
}

CURRENT_ASSET_BUCKETS = ("cash", "receivables", "inventory", "prepaid")


def bucket_sum(items: Dict[str, float], bucket: str) -> float:
    """Sum the items whose names fall in ``bucket``."""
    bdef = BUCKET_DEFS[bucket]
    return sum(v for k, v in items.items() if bdef.matches(k))
