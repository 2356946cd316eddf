"""
tests/conftest.py
=================
Shared pytest fixtures: small but realistic worksheet grids for every sheet
type the engine understands, plus a helper that writes grids into an
in-memory .xlsx workbook.

Run:  pytest tests/ -v
"""

import io
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pandas as pd
import pytest

from fin_health.types import RawSheet


# ─── Grid Builders ────────────────────────────────────────────────────────────

TRIAL_BALANCE_HEADER = [
    "科目编码", "科目名称", "期初借方", "期初贷方", "本期借方", "本期贷方", "期末借方", "期末贷方",
]


def build_trial_balance_rows(income, expense):
    """
    Balanced trial balance: revenue is received in cash, expenses are paid
    in cash, and the period result is booked straight into paid-in capital.
    With income=300000 / expense=250000 the totals are
    assets 1,000,000 = liabilities 600,000 + equity 400,000.
    """
    profit = income - expense
    return [
        ["科目余额表"],
        TRIAL_BALANCE_HEADER,
        ["1001", "库存现金", 150000, 0, income, expense, 150000 + profit, 0],
        ["1122", "应收账款", 300000, 0, 0, 0, 300000, 0],
        ["1601", "固定资产", 500000, 0, 0, 0, 500000, 0],
        ["2202", "应付账款", 0, 600000, 0, 0, 0, 600000],
        ["3001", "实收资本", 0, 350000, 0, 0, 0, 350000 + profit],
        ["6001", "主营业务收入", 0, 0, 0, income, 0, 0],
        ["6602", "管理费用", 0, 0, expense, 0, 0, 0],
        ["", "合计", 950000, 950000, income + expense, income + expense,
         950000 + profit, 950000 + profit],
    ]


LEDGER_HEADER = ["日期", "凭证号", "科目编码", "科目名称", "辅助核算", "摘要", "借方", "贷方", "方向", "余额"]


def build_ledger_rows():
    """Receivables ledger: opening 20,000, closing 40,000, one dominant customer."""
    return [
        ["科目：1122 应收账款"],
        LEDGER_HEADER,
        ["2024-01-01", "", "1122", "应收账款", "", "期初余额", 0, 0, "借", 20000],
        ["2024-01-05", "记-001", "1122", "应收账款", "甲公司", "销售商品", 500000, 0, "借", 520000],
        ["2024-01-15", "记-002", "1122", "应收账款", "甲公司", "收到货款", 0, 382000, "借", 138000],
        ["2024-01-20", "记-003", "1122", "应收账款", "乙公司", "收到货款", 0, 98000, "借", 40000],
        ["", "", "", "", "", "本期合计", 500000, 480000, "借", 40000],
    ]


def build_balance_sheet_rows():
    return [
        ["资产负债表"],
        ["编制单位：测试公司"],
        ["资产", "期末余额", "年初余额", "负债和所有者权益", "期末余额", "年初余额"],
        ["货币资金", 200000, 150000, "应付账款", 300000, 280000],
        ["应收账款", 300000, 250000, "短期借款", 200000, 200000],
        ["存货", 100000, 100000, "负债合计", 500000, 480000],
        ["固定资产", 400000, 400000, "所有者权益：", None, None],
        [None, None, None, "实收资本", 400000, 350000],
        [None, None, None, "未分配利润", 100000, 70000],
        ["资产总计", 1000000, 900000, "所有者权益合计", 500000, 420000],
        [None, None, None, "负债和所有者权益总计", 1000000, 900000],
    ]


def build_income_statement_rows():
    return [
        ["利润表"],
        ["项目", "行次", "本期金额", "上期金额"],
        ["一、营业收入", 1, 500000, 400000],
        ["减：营业成本", 2, 300000, 250000],
        ["税金及附加", 3, 5000, 4000],
        ["销售费用", 4, 40000, 30000],
        ["管理费用", 5, 50000, 40000],
        ["财务费用", 6, 5000, 6000],
        ["二、营业利润", 7, 100000, 70000],
        ["加：营业外收入", 8, 2000, 0],
        ["三、利润总额", 9, 102000, 70000],
        ["减：所得税费用", 10, 25500, 17500],
        ["四、净利润", 11, 76500, 52500],
    ]


def build_cashflow_rows():
    return [
        ["现金流量表"],
        ["项目", "本期金额", "上期金额"],
        ["一、经营活动产生的现金流量", None, None],
        ["销售商品、提供劳务收到的现金", 520000, 410000],
        ["经营活动现金流入小计", 520000, 410000],
        ["购买商品、接受劳务支付的现金", 400000, 330000],
        ["经营活动现金流出小计", 400000, 330000],
        ["经营活动产生的现金流量净额", 120000, 80000],
        ["二、投资活动产生的现金流量", None, None],
        ["购建固定资产支付的现金", 50000, 20000],
        ["投资活动产生的现金流量净额", -50000, -20000],
        ["三、筹资活动产生的现金流量", None, None],
        ["筹资活动产生的现金流量净额", -20000, 10000],
    ]


def build_summary_rows():
    return [
        ["财务概要"],
        ["项目", "行次", "本年累计", "同比", "本期金额", "同比", "环比"],
        ["营业收入", 1, 1200000, 12.5, 500000, 20.0, 5.0],
        ["净利润", 2, 180000, 8.0, 76500, 10.0, 2.0],
        ["净利率", 3, 15.0, 0, 15.3, 0, 0],
        ["费用比率", 4, 8.0, 0, 9.5, 1.2, 0],
        ["应收款", 5, 300000, 60.0, 300000, 60.0, 0],
        ["资金收支", 6, 50000, 0, 20000, 0, 0],
        ["税负率", 7, 3.2, 0, 3.5, 0, 0],
    ]


def build_aging_rows():
    return [
        ["应收账款账龄分析表"],
        ["科目：1122 应收账款"],
        ["编码", "名称", "期初余额", "借方", "贷方", "期末余额",
         "0-30天", "30-60天", "60-90天", "90-180天", "180-360天", "360-1080天", "1080天以上"],
        ["001", "甲公司", 100000, 50000, 30000, 120000, 60000, 20000, 10000, 10000, 10000, 10000, 0],
        ["002", "乙公司", 80000, 0, 0, 80000, 0, 0, 0, 0, 20000, 40000, 20000],
        [None, "合计", 180000, 50000, 30000, 200000, 60000, 20000, 10000, 10000, 30000, 50000, 20000],
    ]


def build_xlsx(sheets):
    """Write ``{sheet name: rows}`` into an in-memory .xlsx and return the bytes."""
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        for name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=name, header=False, index=False)
    return buf.getvalue()


# ─── Shared Fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def trial_balance_rows():
    """Factory: trial_balance_rows(income, expense) → grid."""
    return build_trial_balance_rows


@pytest.fixture
def trial_balance_sheet():
    return RawSheet.from_rows("Sheet1", build_trial_balance_rows(300000, 250000))


@pytest.fixture
def ledger_sheet():
    return RawSheet.from_rows("Sheet2", build_ledger_rows())


@pytest.fixture
def balance_sheet():
    return RawSheet.from_rows("Sheet3", build_balance_sheet_rows())


@pytest.fixture
def income_sheet():
    return RawSheet.from_rows("Sheet4", build_income_statement_rows())


@pytest.fixture
def cashflow_sheet():
    return RawSheet.from_rows("Sheet5", build_cashflow_rows())


@pytest.fixture
def summary_sheet():
    return RawSheet.from_rows("Sheet6", build_summary_rows())


@pytest.fixture
def aging_sheet():
    return RawSheet.from_rows("Sheet7", build_aging_rows())


@pytest.fixture
def xlsx_bytes():
    """Factory: xlsx_bytes({name: rows}) → workbook bytes."""
    return build_xlsx


@pytest.fixture
def workbook_bytes():
    """Factory: a trial balance + receivables ledger workbook for one period."""
    def make(income=300000, expense=250000):
        return build_xlsx({
            "TB": build_trial_balance_rows(income, expense),
            "AR": build_ledger_rows(),
        })
    return make
