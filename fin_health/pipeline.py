"""
fin_health/pipeline.py
======================
End-to-end orchestration:
  - resolve_period(): manual label or inference from the file name
  - analyze_workbook(): bytes → PeriodAnalysis (data, metrics, DuPont,
    ledger analyses, anomalies)
  - process_batch(): strictly sequential multi-file processing; each
    success is persisted before the next file starts
  - build_smart_report(): history → forecast, benchmark and report for the
    latest stored period
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple

from .aggregator import aggregate
from .anomalies import detect_statement_anomalies, sort_anomalies
from .benchmark import compare_with_industry
from .classifier import classify_sheet
from .comparison import compare_with_beginning
from .config import AnalysisOptions
from .errors import FinHealthError, ValidationError
from .forecast import forecast, history_from_records
from .ledger import CounterpartyExtractor, analyze_ledger
from .metrics import baseline_from_beginning, baseline_from_record, calculate_dupont, calculate_metrics
from .parser import expand_uploads, infer_period, read_workbook
from .report import generate_smart_report
from .scoring import calculate_wall_score
from .storage import PeriodRepository, period_sort_key
from .types import (
    Anomaly,
    BatchResult,
    FileOutcome,
    ForecastResult,
    IndustryComparisonResult,
    PeriodAnalysis,
    PeriodBaseline,
    PeriodRecord,
    PeriodType,
    SmartReport,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


# ─── Single File ──────────────────────────────────────────────────────────────


def resolve_period(
    filename: str,
    period: Optional[str] = None,
    period_type: Optional[PeriodType] = None,
) -> Tuple[str, PeriodType]:
    """
    A manual label wins; otherwise the label is inferred from the file name.
    Raises ValidationError when neither yields a period.
    """
    label = (period or "").strip()
    if label:
        if period_type:
            return label, period_type
        inferred = infer_period(label)
        return label, inferred[1] if inferred else "month"
    inferred = infer_period(filename)
    if inferred is None:
        raise ValidationError(
            f"{filename}: no period supplied and none found in the file name", filename=filename,
        )
    return inferred


def analyze_workbook(
    file_bytes: bytes,
    filename: str,
    period: Optional[str] = None,
    period_type: Optional[PeriodType] = None,
    options: Optional[AnalysisOptions] = None,
    baseline: Optional[PeriodBaseline] = None,
    extractor: Optional[CounterpartyExtractor] = None,
) -> PeriodAnalysis:
    """
    Full single-workbook analysis. The period is resolved before any decoding.
    ``baseline`` drives the growth metrics; without it the workbook's own
    beginning columns are used when present.
    """
    opts = options or AnalysisOptions()
    label, ptype = resolve_period(filename, period, period_type)
    sheets = read_workbook(file_bytes, filename)

    data = aggregate(sheets, opts)
    if not data.has_content():
        logger.warning("%s: no recognisable financial content in %d sheet(s)", filename, len(sheets))

    growth_base = baseline or baseline_from_beginning(data)
    metrics = calculate_metrics(data, growth_base, opts.estimate_missing)
    ledger_analyses = [analyze_ledger(ledger, opts.ledger, extractor) for ledger in data.ledgers]

    anomalies: List[Anomaly] = detect_statement_anomalies(data, baseline, opts.detection)
    for la in ledger_analyses:
        anomalies.extend(la.anomalies)

    return PeriodAnalysis(
        filename=filename,
        period=label,
        period_type=ptype,
        data=data,
        metrics=metrics,
        dupont=calculate_dupont(data),
        ledger_analyses=ledger_analyses,
        anomalies=sort_anomalies(anomalies),
        sheet_types={sheet.name: classify_sheet(sheet) for sheet in sheets},
        wall_score=calculate_wall_score(metrics),
        comparison=compare_with_beginning(data),
    )


# ─── Batch ────────────────────────────────────────────────────────────────────


def _prior_record(records: List[PeriodRecord], period_date: str) -> Optional[PeriodRecord]:
    earlier = [r for r in records if r.period_date < period_date]
    return earlier[-1] if earlier else None


def _to_record(analysis: PeriodAnalysis) -> PeriodRecord:
    return PeriodRecord(
        id=f"period-{uuid.uuid4().hex[:12]}",
        period=analysis.period,
        period_type=analysis.period_type,
        period_date=period_sort_key(analysis.period, analysis.period_type),
        financial_data=analysis.data,
        metrics=analysis.metrics,
        dupont=analysis.dupont,
        source_file=analysis.filename,
        uploaded_at=datetime.now().isoformat(timespec="seconds"),
    )


def _process_one(
    filename: str,
    file_bytes: bytes,
    company_id: str,
    repository: PeriodRepository,
    period: Optional[str],
    period_type: Optional[PeriodType],
    opts: AnalysisOptions,
) -> FileOutcome:
    try:
        label, ptype = resolve_period(filename, period, period_type)
        prior = _prior_record(repository.list_periods(company_id), period_sort_key(label, ptype))
        baseline = baseline_from_record(prior) if prior else None
        analysis = analyze_workbook(file_bytes, filename, label, ptype, opts, baseline)
    except FinHealthError as exc:
        logger.warning("%s failed: %s", filename, exc)
        return FileOutcome(filename=filename, ok=False, error=str(exc), error_type=type(exc).__name__)

    repository.append_period(company_id, _to_record(analysis))
    return FileOutcome(filename=filename, ok=True, period=analysis.period, analysis=analysis)


def process_batch(
    files: Iterable[Tuple[str, bytes]],
    company_id: str,
    repository: PeriodRepository,
    period: Optional[str] = None,
    period_type: Optional[PeriodType] = None,
    options: Optional[AnalysisOptions] = None,
    progress: Optional[ProgressCallback] = None,
) -> BatchResult:
    """
    Process uploads one at a time, in order. Zip archives are expanded in
    place. A failing file is recorded and never stops the batch.
    """
    opts = options or AnalysisOptions()
    repository.ensure_company(company_id)
    result = BatchResult()

    queue: List[Tuple[str, bytes]] = []
    for filename, file_bytes in files:
        try:
            queue.extend(expand_uploads(file_bytes, filename))
        except FinHealthError as exc:
            logger.warning("%s failed: %s", filename, exc)
            result.outcomes.append(FileOutcome(filename=filename, ok=False, error=str(exc),
                                               error_type=type(exc).__name__))

    total = len(queue)
    for i, (filename, file_bytes) in enumerate(queue, start=1):
        logger.info("[%d/%d] Processing %s", i, total, filename)
        outcome = _process_one(filename, file_bytes, company_id, repository, period, period_type, opts)
        result.outcomes.append(outcome)
        if outcome.ok:
            logger.info("[%d/%d] %s → %s", i, total, filename, outcome.period)
        if progress is not None:
            progress(i, total, filename)

    logger.info("Batch finished: %s", result.summary())
    return result


# ─── Report ───────────────────────────────────────────────────────────────────


@dataclass
class ReportBundle:
    record: PeriodRecord
    forecast: ForecastResult
    benchmark: IndustryComparisonResult
    anomalies: List[Anomaly]
    report: SmartReport


def build_smart_report(
    company_id: str,
    repository: PeriodRepository,
    options: Optional[AnalysisOptions] = None,
    company_name: Optional[str] = None,
    generated_at: Optional[str] = None,
    unit: str = "yuan",
) -> Optional[ReportBundle]:
    """Forecast, benchmark and report for the latest stored period; None when nothing is stored."""
    opts = options or AnalysisOptions()
    records = repository.list_periods(company_id)
    if not records:
        return None

    latest = records[-1]
    prior = records[-2] if len(records) > 1 else None
    data = latest.financial_data

    anomalies = detect_statement_anomalies(
        data, baseline_from_record(prior) if prior else None, opts.detection,
    )
    for ledger in data.ledgers:
        anomalies.extend(analyze_ledger(ledger, opts.ledger).anomalies)
    anomalies = sort_anomalies(anomalies)

    outlook = forecast(history_from_records(records), latest.metrics, opts.forecast)
    benchmark = compare_with_industry(latest.metrics, opts.industry)
    company = repository.get_company(company_id)
    name = company_name or (company.name if company else company_id)

    report = generate_smart_report(
        data, latest.metrics, anomalies, outlook, benchmark,
        company_name=name, report_period=latest.period, generated_at=generated_at, unit=unit,
    )
    return ReportBundle(record=latest, forecast=outlook, benchmark=benchmark, anomalies=anomalies, report=report)
