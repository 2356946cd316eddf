"""
tests/test_storage.py
=====================
Period ordering keys and the in-memory repository.
"""

import pytest

from fin_health.storage import InMemoryPeriodRepository, period_sort_key
from fin_health.types import DupontAnalysis, FinancialData, FinancialMetrics, PeriodRecord


def _record(period, period_type="month", record_id=None, income=0.0):
    return PeriodRecord(
        id=record_id or f"id-{period}",
        period=period,
        period_type=period_type,
        period_date=period_sort_key(period, period_type),
        financial_data=FinancialData(total_income=income),
        metrics=FinancialMetrics(),
        dupont=DupontAnalysis(),
    )


class TestPeriodSortKey:
    @pytest.mark.parametrize("label, period_type, expected", [
        ("2024年3月", "month", "2024-03"),
        ("2024年12月", "month", "2024-12"),
        ("2024-07", "month", "2024-07"),
        ("2024Q1", "quarter", "2024-03"),
        ("2024年第二季度", "quarter", "2024-06"),
        ("2024年", "year", "2024-12"),
        ("2024年3月", "year", "2024-12"),
    ])
    def test_keys(self, label, period_type, expected):
        assert period_sort_key(label, period_type) == expected

    def test_label_without_year_sorts_by_label(self):
        assert period_sort_key("本期", "month") == "本期"
        assert period_sort_key("本期", "month") > "2099-12"


class TestInMemoryRepository:
    def test_ensure_company_is_idempotent(self):
        repo = InMemoryPeriodRepository()
        first = repo.ensure_company("c1", "甲公司")
        second = repo.ensure_company("c1", "别名")
        assert first is second
        assert second.name == "甲公司"
        assert repo.get_company("missing") is None

    def test_periods_kept_in_date_order(self):
        repo = InMemoryPeriodRepository()
        for label in ("2024年3月", "2024年1月", "2024年2月"):
            repo.append_period("c1", _record(label))
        assert [p.period for p in repo.list_periods("c1")] == ["2024年1月", "2024年2月", "2024年3月"]

    def test_same_period_is_replaced(self):
        repo = InMemoryPeriodRepository()
        repo.append_period("c1", _record("2024年1月", record_id="old", income=1))
        repo.append_period("c1", _record("2024年1月", record_id="new", income=2))
        periods = repo.list_periods("c1")
        assert [p.id for p in periods] == ["new"]
        assert periods[0].financial_data.total_income == 2

    def test_list_returns_a_copy(self):
        repo = InMemoryPeriodRepository()
        repo.append_period("c1", _record("2024年1月"))
        repo.list_periods("c1").clear()
        assert len(repo.list_periods("c1")) == 1
        assert repo.list_periods("unknown") == []

    def test_remove_period(self):
        repo = InMemoryPeriodRepository()
        repo.append_period("c1", _record("2024年1月", record_id="a"))
        repo.append_period("c1", _record("2024年2月", record_id="b"))
        assert repo.remove_period("c1", "a") is True
        assert repo.remove_period("c1", "a") is False
        assert repo.remove_period("nobody", "b") is False
        assert [p.id for p in repo.list_periods("c1")] == ["b"]
