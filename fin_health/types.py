"""
fin_health/types.py
===================
Dataclasses shared across the engine: raw sheets, extracted statement
entities, the aggregated FinancialData snapshot, metric sets and every
derived analysis result (ledger, anomaly, forecast, benchmark, report).
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple

# ─── Aliases ──────────────────────────────────────────────────────────────────

SheetType = Literal[
    "balance", "income", "cashflow", "subject", "ledger", "summary", "aging", "unknown"
]
AccountCategory = Literal["asset", "liability", "equity", "income", "expense"]
NormalSide = Literal["debit", "credit"]
Severity = Literal["high", "medium", "low"]
PeriodType = Literal["month", "quarter", "year"]
HealthTier = Literal["excellent", "good", "fair", "poor", "critical"]
RiskLevel = Literal["low", "medium", "high", "critical"]
Priority = Literal["critical", "high", "medium", "low"]
Phase = Literal["immediate", "short-term", "medium-term", "long-term"]
Difficulty = Literal["easy", "medium", "hard"]
TrendDirection = Literal["up", "down", "stable"]
TrendStrength = Literal["strong", "moderate", "weak"]
OverallTrend = Literal["positive", "negative", "stable"]
MetricStatus = Literal["healthy", "warning", "danger"]
BenchmarkStatus = Literal["excellent", "good", "average", "below", "poor"]
WallStatus = Literal["excellent", "good", "average", "poor"]

SEVERITY_ORDER: Dict[str, int] = {"high": 0, "medium": 1, "low": 2}
PRIORITY_ORDER: Dict[str, int] = {"critical": 0, "high": 1, "medium": 2, "low": 3}
PHASE_ORDER: Dict[str, int] = {"immediate": 0, "short-term": 1, "medium-term": 2, "long-term": 3}

AGING_BUCKETS: Tuple[str, ...] = (
    "0-30", "30-60", "60-90", "90-180", "180-360", "360-1080", "1080+",
)


# ─── Raw Input ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RawSheet:
    """A worksheet name plus its row-major cell grid."""
    name: str
    rows: Tuple[Tuple[Any, ...], ...] = ()

    @classmethod
    def from_rows(cls, name: str, rows: Sequence[Sequence[Any]]) -> "RawSheet":
        return cls(name=name, rows=tuple(tuple(r) for r in rows))

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def cell(self, row: int, col: int) -> Any:
        if row < 0 or row >= len(self.rows):
            return None
        r = self.rows[row]
        return r[col] if 0 <= col < len(r) else None


# ─── Statement Entities ───────────────────────────────────────────────────────

@dataclass
class AccountBalance:
    code: str
    name: str
    opening_debit: float = 0.0
    opening_credit: float = 0.0
    current_debit: float = 0.0
    current_credit: float = 0.0
    closing_debit: float = 0.0
    closing_credit: float = 0.0

    @property
    def opening_balance(self) -> float:
        return self.opening_debit - self.opening_credit

    @property
    def closing_balance(self) -> float:
        return self.closing_debit - self.closing_credit


@dataclass(frozen=True)
class LedgerEntry:
    date: str
    voucher_no: str = ""
    summary: str = ""
    auxiliary: str = ""
    debit: float = 0.0
    credit: float = 0.0
    balance: float = 0.0
    direction: Literal["借", "贷"] = "借"
    subject_code: str = ""
    subject_name: str = ""

    @property
    def amount(self) -> float:
        return max(self.debit, self.credit)


@dataclass
class LedgerData:
    subject_code: str
    subject_name: str
    period: str = ""
    beginning_balance: float = 0.0
    beginning_direction: Literal["借", "贷"] = "借"
    total_debit: float = 0.0
    total_credit: float = 0.0
    year_to_date_debit: float = 0.0
    year_to_date_credit: float = 0.0
    entries: List[LedgerEntry] = field(default_factory=list)


@dataclass
class FinancialSummaryItem:
    item_name: str
    row_num: int = 0
    ytd_amount: float = 0.0
    ytd_change: float = 0.0
    current_amount: float = 0.0
    current_change: float = 0.0
    mom_change: float = 0.0


@dataclass
class FinancialSummaryData:
    revenue: Optional[FinancialSummaryItem] = None
    net_profit: Optional[FinancialSummaryItem] = None
    net_profit_margin: Optional[FinancialSummaryItem] = None
    admin_expense: Optional[FinancialSummaryItem] = None
    sales_expense: Optional[FinancialSummaryItem] = None
    finance_expense: Optional[FinancialSummaryItem] = None
    expense_ratio: Optional[FinancialSummaryItem] = None
    receivables: Optional[FinancialSummaryItem] = None
    payables: Optional[FinancialSummaryItem] = None
    fund_inflow: Optional[FinancialSummaryItem] = None
    fund_outflow: Optional[FinancialSummaryItem] = None
    fund_balance: Optional[FinancialSummaryItem] = None
    tax_payable: Optional[FinancialSummaryItem] = None
    tax_rate: Optional[FinancialSummaryItem] = None
    items: List[FinancialSummaryItem] = field(default_factory=list)


@dataclass
class AgingItem:
    code: str
    name: str
    beginning_balance: float = 0.0
    debit: float = 0.0
    credit: float = 0.0
    ending_balance: float = 0.0
    buckets: Dict[str, float] = field(default_factory=dict)


@dataclass
class AgingAnalysis:
    subject_code: str = ""
    subject_name: str = ""
    period: str = ""
    items: List[AgingItem] = field(default_factory=list)
    total_beginning: float = 0.0
    total_debit: float = 0.0
    total_credit: float = 0.0
    total_ending: float = 0.0
    bucket_totals: Dict[str, float] = field(default_factory=dict)
    long_term_ratio: float = 0.0
    high_risk_amount: float = 0.0
    risk_level: Severity = "low"
    risk_assessment: str = ""
    suggestions: List[str] = field(default_factory=list)


# ─── Aggregated Snapshot ──────────────────────────────────────────────────────

@dataclass
class IdentityCheck:
    """Result of one accounting identity test (pass/fail plus delta)."""
    name: str
    left: float
    right: float
    delta: float
    tolerance: float
    passed: bool


@dataclass
class FinancialData:
    """Aggregated single-period snapshot built from one workbook."""
    assets: Dict[str, float] = field(default_factory=dict)
    liabilities: Dict[str, float] = field(default_factory=dict)
    equity: Dict[str, float] = field(default_factory=dict)
    income: Dict[str, float] = field(default_factory=dict)
    expenses: Dict[str, float] = field(default_factory=dict)

    total_assets: float = 0.0
    total_liabilities: float = 0.0
    total_equity: float = 0.0
    total_income: float = 0.0
    total_expenses: float = 0.0

    beginning_assets: Dict[str, float] = field(default_factory=dict)
    beginning_liabilities: Dict[str, float] = field(default_factory=dict)
    beginning_equity: Dict[str, float] = field(default_factory=dict)
    beginning_income: Dict[str, float] = field(default_factory=dict)
    beginning_expenses: Dict[str, float] = field(default_factory=dict)
    beginning_total_assets: float = 0.0
    beginning_total_liabilities: float = 0.0
    beginning_total_equity: float = 0.0
    beginning_total_income: float = 0.0
    beginning_total_expenses: float = 0.0
    has_beginning_data: bool = False

    operating_cashflow: float = 0.0
    investing_cashflow: float = 0.0
    financing_cashflow: float = 0.0
    reported_net_profit: Optional[float] = None

    ledgers: List[LedgerData] = field(default_factory=list)
    financial_summary: Optional[FinancialSummaryData] = None
    aging_analysis: Optional[AgingAnalysis] = None
    subject_balances: List[AccountBalance] = field(default_factory=list)

    raw_sheets: Dict[str, RawSheet] = field(default_factory=dict)
    unknown_sheets: List[str] = field(default_factory=list)
    identity_checks: List[IdentityCheck] = field(default_factory=list)
    diagnostics: List[str] = field(default_factory=list)

    @property
    def net_profit(self) -> float:
        return self.total_income - self.total_expenses

    @property
    def beginning_net_profit(self) -> float:
        return self.beginning_total_income - self.beginning_total_expenses

    @property
    def identity_ok(self) -> bool:
        return all(c.passed for c in self.identity_checks)

    def has_content(self) -> bool:
        return bool(
            self.total_assets or self.total_income or self.assets or self.income
            or self.ledgers or self.financial_summary or self.aging_analysis
        )


# ─── Metrics ──────────────────────────────────────────────────────────────────

@dataclass
class FinancialMetrics:
    # Solvency
    current_ratio: float = 0.0
    quick_ratio: float = 0.0
    cash_ratio: float = 0.0
    debt_to_asset_ratio: float = 0.0
    equity_ratio: float = 0.0
    interest_coverage_ratio: float = 0.0
    # Efficiency
    receivables_turnover: float = 0.0
    receivables_days: float = 0.0
    inventory_turnover: float = 0.0
    inventory_days: float = 0.0
    current_asset_turnover: float = 0.0
    total_asset_turnover: float = 0.0
    cash_conversion_cycle: float = 0.0
    # Profitability
    gross_profit_margin: float = 0.0
    operating_profit_margin: float = 0.0
    net_profit_margin: float = 0.0
    roe: float = 0.0
    roa: float = 0.0
    ebitda_margin: float = 0.0
    cost_expense_ratio: float = 0.0
    # Growth
    revenue_growth_rate: float = 0.0
    net_profit_growth_rate: float = 0.0
    total_asset_growth_rate: float = 0.0
    equity_growth_rate: float = 0.0
    sustainable_growth_rate: float = 0.0
    # Cash flow
    operating_cash_flow_ratio: float = 0.0
    free_cash_flow: float = 0.0
    cash_flow_to_revenue: float = 0.0
    cash_recovery_rate: float = 0.0
    operating_cash_flow_per_share: float = 0.0


@dataclass
class DupontAnalysis:
    roe: float = 0.0
    net_profit_margin: float = 0.0
    total_asset_turnover: float = 0.0
    equity_multiplier: float = 0.0


@dataclass
class PeriodBaseline:
    """Prior-period totals used by the growth metrics."""
    revenue: float = 0.0
    net_profit: float = 0.0
    total_assets: float = 0.0
    total_equity: float = 0.0


# ─── Anomalies & Ledger Analysis ──────────────────────────────────────────────

@dataclass(frozen=True)
class Anomaly:
    severity: Severity
    title: str
    description: str
    category: str
    entries: Tuple[LedgerEntry, ...] = ()
    affected_item: str = ""
    current_value: Optional[float] = None
    previous_value: Optional[float] = None
    change_pct: Optional[float] = None
    threshold: Optional[float] = None
    suggestion: str = ""

    def display_entries(self, limit: int = 3) -> Tuple[LedgerEntry, ...]:
        return self.entries[:limit]


@dataclass
class FundFlow:
    inflow: float = 0.0
    outflow: float = 0.0
    net_flow: float = 0.0
    normal_side: NormalSide = "debit"


@dataclass
class CounterpartyInfo:
    name: str
    total_debit: float = 0.0
    total_credit: float = 0.0
    net_amount: float = 0.0
    transaction_count: int = 0
    first_date: str = ""
    last_date: str = ""

    @property
    def total_flow(self) -> float:
        return self.total_debit + self.total_credit


@dataclass
class LargeTransaction:
    entry: LedgerEntry
    rank: int
    amount: float
    percentage: float


@dataclass
class TransactionFrequency:
    daily_avg: float = 0.0
    count: int = 0
    active_days: int = 0


@dataclass
class LedgerAnalysis:
    subject_code: str
    subject_name: str
    fund_flow: FundFlow
    counterparties: List[CounterpartyInfo] = field(default_factory=list)
    large_transactions: List[LargeTransaction] = field(default_factory=list)
    frequency: TransactionFrequency = field(default_factory=TransactionFrequency)
    anomalies: List[Anomaly] = field(default_factory=list)
    closing_balance: float = 0.0
    expected_closing_balance: float = 0.0

    def top_transactions(self, n: int = 5) -> List[LargeTransaction]:
        return self.large_transactions[:n]

    def top_counterparties(self, n: int = 10) -> List[CounterpartyInfo]:
        return self.counterparties[:n]


# ─── Forecast ─────────────────────────────────────────────────────────────────

@dataclass
class HistoryPoint:
    period: str
    revenue: float = 0.0
    profit: float = 0.0
    assets: float = 0.0


@dataclass
class ForecastItem:
    period: str
    forecast: float
    lower_bound: float
    upper_bound: float
    margin: float = 0.0
    growth_rate: Optional[float] = None
    actual: Optional[float] = None


@dataclass
class KeyMetricForecast:
    metric: str
    metric_name: str
    current_value: float
    forecast_value: float
    change: float
    trend: TrendDirection
    status: MetricStatus


@dataclass
class TrendInfo:
    direction: TrendDirection
    strength: TrendStrength
    average_rate: float
    slope: float = 0.0


@dataclass
class TrendAnalysis:
    revenue_growth: TrendInfo
    profit_growth: TrendInfo
    asset_growth: TrendInfo
    overall_trend: OverallTrend
    volatility: Literal["high", "medium", "low"]
    volatility_value: float = 0.0
    seasonality: bool = False


@dataclass
class ForecastResult:
    forecast_periods: List[str]
    revenue_forecast: List[ForecastItem]
    profit_forecast: List[ForecastItem]
    assets_forecast: List[ForecastItem]
    key_metrics_forecast: List[KeyMetricForecast]
    trends: TrendAnalysis
    suggestions: List[str] = field(default_factory=list)
    history: List[HistoryPoint] = field(default_factory=list)

    def key_metric(self, metric: str) -> Optional[KeyMetricForecast]:
        for m in self.key_metrics_forecast:
            if m.metric == metric:
                return m
        return None


# ─── Industry Benchmark ───────────────────────────────────────────────────────

@dataclass
class IndustryMetricComparison:
    metric: str
    metric_name: str
    company_value: float
    industry_avg: float
    industry_best: float
    percentile: int
    status: BenchmarkStatus
    gap: float
    higher_is_better: bool = True


@dataclass
class IndustryComparisonResult:
    industry: str
    industry_key: str
    comparison_metrics: List[IndustryMetricComparison]
    overall_score: float
    ranking: str
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)


# ─── Wall Scoring ─────────────────────────────────────────────────────────────

@dataclass
class WallIndicatorScore:
    metric: str
    name: str
    actual_value: float
    standard_value: float
    score: float
    max_score: float
    unit: str
    status: WallStatus


@dataclass
class WallScoreResult:
    total_score: float
    max_possible_score: float
    rating: str
    rating_description: str
    indicator_scores: List[WallIndicatorScore] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    @property
    def score_percent(self) -> float:
        if self.max_possible_score <= 0:
            return 0.0
        return self.total_score / self.max_possible_score * 100


# ─── Beginning vs Ending Comparison ───────────────────────────────────────────

@dataclass
class ComparisonMetrics:
    asset_growth: float = 0.0
    liability_growth: float = 0.0
    equity_growth: float = 0.0
    cash_change: float = 0.0
    cash_change_percent: float = 0.0
    receivables_change: float = 0.0
    inventory_change: float = 0.0
    debt_ratio_change: float = 0.0
    current_ratio_change: float = 0.0
    revenue_growth: float = 0.0
    profit_growth: float = 0.0


@dataclass
class SignificantChange:
    subject: str
    category: AccountCategory
    current_value: float
    previous_value: float
    change_amount: float
    change_percent: float
    direction: Literal["increase", "decrease"]
    significance: Severity
    analysis: str


@dataclass
class ComparisonAnalysis:
    has_beginning_data: bool
    metrics: ComparisonMetrics = field(default_factory=ComparisonMetrics)
    significant_changes: List[SignificantChange] = field(default_factory=list)
    asset_trend: Literal["expansion", "contraction", "stable"] = "stable"
    liability_trend: Literal["increasing", "decreasing", "stable"] = "stable"
    liquidity_trend: Literal["improving", "deteriorating", "stable"] = "stable"
    risk_alerts: List[str] = field(default_factory=list)
    opportunities: List[str] = field(default_factory=list)


# ─── Smart Report ─────────────────────────────────────────────────────────────

@dataclass
class ExecutiveSummary:
    overall_health: HealthTier
    overall_score: int
    key_highlights: List[str] = field(default_factory=list)
    one_sentence_summary: str = ""
    score_breakdown: Dict[str, int] = field(default_factory=dict)


@dataclass
class KeyFinding:
    category: str
    title: str
    description: str
    impact: Severity
    data: str = ""


@dataclass
class RiskFactor:
    name: str
    level: RiskLevel
    probability: int
    impact: int
    description: str
    points: int = 0

    @property
    def exposure(self) -> float:
        return self.probability * self.impact / 100.0


@dataclass
class RiskAssessment:
    overall_risk: RiskLevel
    risk_score: int
    risk_factors: List[RiskFactor] = field(default_factory=list)
    mitigations: List[str] = field(default_factory=list)


@dataclass
class Recommendation:
    priority: Priority
    category: str
    title: str
    description: str
    expected_impact: str
    difficulty: Difficulty


@dataclass
class ActionItem:
    phase: Phase
    action: str
    responsible: str
    timeline: str
    expected_outcome: str


@dataclass
class SmartReport:
    title: str
    company_name: str
    report_period: str
    generated_at: str
    executive_summary: ExecutiveSummary
    key_findings: List[KeyFinding] = field(default_factory=list)
    risk_assessment: Optional[RiskAssessment] = None
    recommendations: List[Recommendation] = field(default_factory=list)
    action_plan: List[ActionItem] = field(default_factory=list)
    full_text: str = ""


# ─── Persistence & Pipeline ───────────────────────────────────────────────────

@dataclass
class PeriodRecord:
    id: str
    period: str
    period_type: PeriodType
    period_date: str
    financial_data: FinancialData
    metrics: FinancialMetrics
    dupont: DupontAnalysis
    source_file: str = ""
    uploaded_at: Optional[str] = None


@dataclass
class CompanyRecord:
    id: str
    name: str
    periods: List[PeriodRecord] = field(default_factory=list)


@dataclass
class PeriodAnalysis:
    filename: str
    period: str
    period_type: PeriodType
    data: FinancialData
    metrics: FinancialMetrics
    dupont: DupontAnalysis
    ledger_analyses: List[LedgerAnalysis] = field(default_factory=list)
    anomalies: List[Anomaly] = field(default_factory=list)
    sheet_types: Dict[str, str] = field(default_factory=dict)
    wall_score: Optional[WallScoreResult] = None
    comparison: Optional[ComparisonAnalysis] = None


@dataclass
class FileOutcome:
    filename: str
    ok: bool
    period: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    analysis: Optional[PeriodAnalysis] = None


@dataclass
class BatchResult:
    outcomes: List[FileOutcome] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failure_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def failures(self) -> List[FileOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def summary(self) -> str:
        return f"{self.success_count} succeeded, {self.failure_count} failed ({len(self.outcomes)} files)"
