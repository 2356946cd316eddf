"""
fin_health
==========
Financial statement analysis engine for Chinese accounting workbooks:
sheet classification, statement extraction, ledger analysis, metrics,
anomalies, Wall scoring, beginning-vs-ending comparison, forecast,
industry benchmark and smart report.
"""
from .aggregator import aggregate
from .anomalies import detect_statement_anomalies, summarize_anomalies
from .benchmark import available_industries, compare_with_industry
from .classifier import classify_sheet, classify_workbook
from .comparison import compare_with_beginning
from .config import AnalysisOptions, DetectionConfig, ForecastOptions, LedgerRuleConfig
from .errors import FinHealthError, ParseError, PartialExtractionWarning, ValidationError
from .forecast import forecast
from .ledger import analyze_ledger
from .metrics import calculate_dupont, calculate_metrics
from .parser import read_workbook
from .pipeline import analyze_workbook, build_smart_report, process_batch, resolve_period
from .report import generate_smart_report
from .scoring import calculate_wall_score
from .storage import InMemoryPeriodRepository, PeriodRepository

__all__ = [
    "AnalysisOptions",
    "DetectionConfig",
    "FinHealthError",
    "ForecastOptions",
    "InMemoryPeriodRepository",
    "LedgerRuleConfig",
    "ParseError",
    "PartialExtractionWarning",
    "PeriodRepository",
    "ValidationError",
    "aggregate",
    "analyze_ledger",
    "analyze_workbook",
    "available_industries",
    "build_smart_report",
    "calculate_dupont",
    "calculate_metrics",
    "calculate_wall_score",
    "classify_sheet",
    "classify_workbook",
    "compare_with_beginning",
    "compare_with_industry",
    "detect_statement_anomalies",
    "forecast",
    "generate_smart_report",
    "process_batch",
    "read_workbook",
    "resolve_period",
    "summarize_anomalies",
]

__version__ = "0.1.0"
