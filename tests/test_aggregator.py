"""
tests/test_aggregator.py
========================
Workbook aggregation: trial-balance classification, statement precedence,
identity checks and determinism.
"""

import pytest

from fin_health.account_patterns import classify_account
from fin_health.aggregator import aggregate, classify_trial_balance, top_level_accounts
from fin_health.config import AnalysisOptions
from fin_health.types import AccountBalance, RawSheet


class TestClassifyAccount:
    @pytest.mark.parametrize("code, name, expected", [
        ("1001", "库存现金", "asset"),
        ("2202", "应付账款", "liability"),
        ("3001", "实收资本", "equity"),
        ("6001", "主营业务收入", "income"),
        ("6401", "主营业务成本", "expense"),
        ("6602", "管理费用", "expense"),
        ("", "银行存款", "asset"),
        ("", "其他业务收入", "income"),
        ("", "员工福利", None),
    ])
    def test_code_then_keywords(self, code, name, expected):
        assert classify_account(code, name) == expected


class TestTrialBalanceAggregation:
    def test_totals(self, trial_balance_sheet):
        data = aggregate([trial_balance_sheet])
        assert data.total_assets == 1000000
        assert data.total_liabilities == 600000
        assert data.total_equity == 400000
        assert data.total_income == 300000
        assert data.total_expenses == 250000
        assert data.net_profit == 50000

    def test_category_maps(self, trial_balance_sheet):
        data = aggregate([trial_balance_sheet])
        assert data.assets == {"库存现金": 200000, "应收账款": 300000, "固定资产": 500000}
        assert data.liabilities == {"应付账款": 600000}
        assert data.income == {"主营业务收入": 300000}
        assert data.expenses == {"管理费用": 250000}

    def test_beginning_columns(self, trial_balance_sheet):
        data = aggregate([trial_balance_sheet])
        assert data.has_beginning_data
        assert data.beginning_total_assets == 950000
        assert data.beginning_total_equity == 350000

    def test_identity_checks_pass(self, trial_balance_sheet):
        data = aggregate([trial_balance_sheet])
        names = [c.name for c in data.identity_checks]
        assert names == ["试算平衡（期末借贷）", "试算平衡（本期发生额）", "资产 = 负债 + 所有者权益"]
        assert data.identity_ok

    def test_identity_failure_is_reported_not_raised(self, trial_balance_rows):
        rows = trial_balance_rows(300000, 250000)
        rows[3] = ["1122", "应收账款", 300000, 0, 0, 0, 350000, 0]
        data = aggregate([RawSheet.from_rows("tb", rows)])
        failed = [c for c in data.identity_checks if not c.passed]
        assert {c.name for c in failed} == {"试算平衡（期末借贷）", "资产 = 负债 + 所有者权益"}
        assert failed[0].delta == pytest.approx(50000)

    def test_sub_accounts_not_double_counted(self):
        rows = [
            AccountBalance(code="1122", name="应收账款", closing_debit=500),
            AccountBalance(code="112201", name="应收账款-甲公司", closing_debit=300),
            AccountBalance(code="112202", name="应收账款-乙公司", closing_debit=200),
        ]
        assert [r.code for r in top_level_accounts(rows)] == ["1122"]
        assert classify_trial_balance(rows).total("asset") == 500

    def test_closed_out_pnl_uses_period_activity(self):
        rows = [AccountBalance(code="6001", name="主营业务收入", current_debit=800, current_credit=800)]
        assert classify_trial_balance(rows).current["income"] == {"主营业务收入": 800}

    def test_contra_asset_nets_against_assets(self):
        rows = [
            ["科目余额表"],
            ["科目编码", "科目名称", "期初借方", "期初贷方", "本期借方", "本期贷方", "期末借方", "期末贷方"],
            ["1601", "固定资产", 100000, 0, 0, 0, 100000, 0],
            ["1602", "累计折旧", 0, 30000, 0, 0, 0, 30000],
            ["2202", "应付账款", 0, 40000, 0, 0, 0, 40000],
            ["3001", "实收资本", 0, 30000, 0, 0, 0, 30000],
        ]
        data = aggregate([RawSheet.from_rows("tb", rows)])
        assert data.assets == {"固定资产": 100000, "累计折旧": -30000}
        assert data.total_assets == 70000
        assert data.beginning_total_assets == 70000
        assert data.identity_ok

    def test_debit_balance_liability_is_negative(self):
        rows = [AccountBalance(code="2203", name="预收账款", closing_debit=5000, current_credit=100)]
        assert classify_trial_balance(rows).current["liability"] == {"预收账款": -5000}


class TestStatementPrecedence:
    def test_statements_override_trial_balance(self, trial_balance_sheet, balance_sheet, income_sheet):
        data = aggregate([trial_balance_sheet, balance_sheet, income_sheet])
        assert data.total_assets == 1000000
        assert data.total_liabilities == 500000
        assert data.total_equity == 500000
        assert "货币资金" in data.assets
        assert "库存现金" not in data.assets
        assert data.total_income == 500000
        assert data.reported_net_profit == 76500

    def test_reconciliation_checks_added(self, trial_balance_sheet, balance_sheet, income_sheet):
        data = aggregate([trial_balance_sheet, balance_sheet, income_sheet])
        names = {c.name for c in data.identity_checks}
        assert "资产负债表与科目余额表负债总额核对" in names
        assert "利润表与科目余额表收入核对" in names

    def test_statements_only(self, balance_sheet, income_sheet, cashflow_sheet):
        data = aggregate([balance_sheet, income_sheet, cashflow_sheet])
        assert data.total_expenses == 425500
        assert data.net_profit == 74500
        assert data.operating_cashflow == 120000
        assert data.investing_cashflow == -50000
        assert data.beginning_total_income == 400000
        assert data.identity_ok


class TestAggregateWorkbook:
    def test_all_sheet_types(self, trial_balance_sheet, ledger_sheet, summary_sheet, aging_sheet):
        data = aggregate([trial_balance_sheet, ledger_sheet, summary_sheet, aging_sheet])
        assert len(data.ledgers) == 1
        assert data.financial_summary is not None
        assert data.aging_analysis is not None
        assert data.aging_analysis.risk_level == "high"
        assert set(data.raw_sheets) == {"subject", "ledger", "summary", "aging"}

    def test_unknown_sheets_counted(self, trial_balance_sheet):
        roster = RawSheet.from_rows("名单", [["姓名", "部门"]])
        data = aggregate([trial_balance_sheet, roster])
        assert data.unknown_sheets == ["名单"]
        assert any("名单" in d for d in data.diagnostics)

    def test_deterministic(self, trial_balance_sheet, ledger_sheet):
        first = aggregate([trial_balance_sheet, ledger_sheet])
        second = aggregate([trial_balance_sheet, ledger_sheet])
        assert first == second

    def test_empty_workbook(self):
        data = aggregate([])
        assert not data.has_content()
        assert data.identity_checks == []

    def test_tolerance_option(self, trial_balance_rows):
        rows = trial_balance_rows(300000, 250000)
        rows[3] = ["1122", "应收账款", 300000, 0, 0, 0, 300500, 0]
        opts = AnalysisOptions(trial_balance_tolerance=1000.0)
        data = aggregate([RawSheet.from_rows("tb", rows)], opts)
        assert data.identity_ok
