"""
fin_health/storage.py
=====================
Persistence contract for company / period history. The engine only talks to
a PeriodRepository; InMemoryPeriodRepository backs the CLI, the Streamlit
session and the tests.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Protocol

from .types import CompanyRecord, PeriodRecord

logger = logging.getLogger(__name__)

_YEAR = re.compile(r"((?:19|20)\d{2})")
_QUARTER = re.compile(r"[Qq]([1-4])|第?([1-4一二三四])季度")
_MONTH_CN = re.compile(r"(\d{1,2})\s*月")
_MONTH_DASH = re.compile(r"(?:19|20)\d{2}[-_.](\d{1,2})(?!\d)")
_CN_DIGITS = {"一": 1, "二": 2, "三": 3, "四": 4}


def period_sort_key(label: str, period_type: str) -> str:
    """
    ``YYYY-MM`` key for ordering periods: a year sorts as its December,
    quarter n as month 3n. Labels without a year sort last, by label.
    """
    m = _YEAR.search(label or "")
    if not m:
        return label or ""
    year = m.group(1)
    month = 12
    if period_type == "quarter":
        q = _QUARTER.search(label)
        if q:
            digit = q.group(1) or q.group(2)
            month = 3 * (_CN_DIGITS.get(digit) or int(digit))
    elif period_type == "month":
        mm = _MONTH_CN.search(label[m.end():]) or _MONTH_DASH.search(label)
        if mm:
            month = int(mm.group(1))
    return f"{year}-{month:02d}"


class PeriodRepository(Protocol):
    def get_company(self, company_id: str) -> Optional[CompanyRecord]:
        ...

    def ensure_company(self, company_id: str, name: Optional[str] = None) -> CompanyRecord:
        ...

    def list_periods(self, company_id: str) -> List[PeriodRecord]:
        ...

    def append_period(self, company_id: str, record: PeriodRecord) -> PeriodRecord:
        ...

    def remove_period(self, company_id: str, period_id: str) -> bool:
        ...


class InMemoryPeriodRepository:
    """Dict-backed repository; periods kept sorted by period date."""

    def __init__(self) -> None:
        self._companies: Dict[str, CompanyRecord] = {}

    def get_company(self, company_id: str) -> Optional[CompanyRecord]:
        return self._companies.get(company_id)

    def ensure_company(self, company_id: str, name: Optional[str] = None) -> CompanyRecord:
        company = self._companies.get(company_id)
        if company is None:
            company = CompanyRecord(id=company_id, name=name or company_id)
            self._companies[company_id] = company
        return company

    def list_periods(self, company_id: str) -> List[PeriodRecord]:
        company = self._companies.get(company_id)
        return list(company.periods) if company else []

    def append_period(self, company_id: str, record: PeriodRecord) -> PeriodRecord:
        """Insert or replace (same period label) and keep period-date order."""
        company = self.ensure_company(company_id)
        for i, existing in enumerate(company.periods):
            if existing.period == record.period:
                company.periods[i] = record
                logger.debug("Replaced period %s for %s", record.period, company_id)
                break
        else:
            company.periods.append(record)
        company.periods.sort(key=lambda p: p.period_date)
        return record

    def remove_period(self, company_id: str, period_id: str) -> bool:
        company = self._companies.get(company_id)
        if company is None:
            return False
        before = len(company.periods)
        company.periods = [p for p in company.periods if p.id != period_id]
        return len(company.periods) < before
