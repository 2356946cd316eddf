"""Diagnostic command line for the analysis engine."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .anomalies import summarize_anomalies
from .classifier import classify_workbook
from .config import AnalysisOptions
from .errors import FinHealthError
from .formatting import SEVERITY_LABELS, format_money, format_percent, format_ratio
from .log import configure_logging
from .parser import read_workbook
from .pipeline import build_smart_report, process_batch
from .storage import InMemoryPeriodRepository

console = Console()
app = typer.Typer(help="Classify and analyse accounting workbooks from the terminal.")

CLI_COMPANY = "cli"


@dataclass
class AppContext:
    options: AnalysisOptions


@app.callback()
def main_callback(
    ctx: typer.Context,
    debug: Optional[bool] = typer.Option(
        None,
        "--debug/--no-debug",
        help="Toggle verbose logging without touching environment variables.",
    ),
) -> None:
    """Load options from the environment and configure logging."""
    options = AnalysisOptions.from_env()
    if debug is not None:
        options.debug = debug
    configure_logging(debug=options.debug)
    ctx.obj = AppContext(options=options)


def _read(path: Path) -> bytes:
    if not path.is_file():
        console.print(f"[red]File not found:[/red] {path}")
        raise typer.Exit(code=1)
    return path.read_bytes()


@app.command()
def classify(path: Path = typer.Argument(..., help="Workbook (.xlsx/.xls/.csv/.html)")) -> None:
    """Print the inferred type and row count of every worksheet."""
    try:
        sheets = read_workbook(_read(path), path.name)
    except FinHealthError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    table = Table(title=path.name)
    table.add_column("Sheet")
    table.add_column("Type")
    table.add_column("Rows", justify="right")
    for sheet, kind in classify_workbook(sheets):
        console.print(f"[{sheet.name}] -> {kind} ({sheet.row_count} rows)", markup=False)
        table.add_row(sheet.name, kind, str(sheet.row_count))
    console.print(table)


@app.command()
def analyze(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Workbook or .zip of workbooks"),
    period: Optional[str] = typer.Option(None, "--period", help="Period label, e.g. 2024年3月 or 2024Q1."),
    industry: Optional[str] = typer.Option(None, "--industry", help="Benchmark industry key."),
    unit: str = typer.Option("wan", "--unit", help="Display unit: yuan, thousand or wan."),
) -> None:
    """Run the full pipeline and print totals, key metrics, anomalies and the report."""
    context: AppContext = ctx.obj
    options = context.options
    if industry:
        options.industry = industry

    repo = InMemoryPeriodRepository()
    result = process_batch([(path.name, _read(path))], CLI_COMPANY, repo, period=period, options=options)
    for outcome in result.failures:
        console.print(f"[red]✗ {outcome.filename}[/red]: {outcome.error}")
    if not result.success_count:
        raise typer.Exit(code=1)

    for outcome in result.outcomes:
        if not outcome.ok:
            continue
        analysis = outcome.analysis
        data, m = analysis.data, analysis.metrics
        console.rule(f"{outcome.filename} · {analysis.period}")

        totals = Table(title="Totals")
        totals.add_column("Item")
        totals.add_column("Amount", justify="right")
        for label, value in (
            ("资产总计", data.total_assets),
            ("负债合计", data.total_liabilities),
            ("所有者权益", data.total_equity),
            ("收入", data.total_income),
            ("费用", data.total_expenses),
            ("净利润", data.net_profit),
        ):
            totals.add_row(label, format_money(value, unit))
        console.print(totals)

        for check in data.identity_checks:
            mark = "[green]✓[/green]" if check.passed else "[red]✗[/red]"
            console.print(f"{mark} {check.name} (差额 {format_money(check.delta, unit)})")

        metrics = Table(title="Key metrics")
        metrics.add_column("Metric")
        metrics.add_column("Value", justify="right")
        metrics.add_row("流动比率", format_ratio(m.current_ratio))
        metrics.add_row("资产负债率", format_percent(m.debt_to_asset_ratio))
        metrics.add_row("销售净利率", format_percent(m.net_profit_margin))
        metrics.add_row("ROE", format_percent(m.roe))
        metrics.add_row("总资产周转率", format_ratio(m.total_asset_turnover))
        console.print(metrics)

        wall = analysis.wall_score
        if wall is not None:
            console.print(f"沃尔评分：{wall.total_score:.1f} / {wall.max_possible_score:.0f}（{wall.rating}，{wall.rating_description}）")
        comparison = analysis.comparison
        if comparison is not None and comparison.has_beginning_data:
            cm = comparison.metrics
            console.print(
                f"较期初：资产 {format_percent(cm.asset_growth, signed=True)}，"
                f"资产负债率 {cm.debt_ratio_change:+.2f} 个百分点，货币资金 {format_money(cm.cash_change, unit)}"
            )
            for alert in comparison.risk_alerts:
                console.print(f"  {alert}", markup=False)

        summary = summarize_anomalies(analysis.anomalies)
        console.print(f"异常：{summary.total_count} 项（{summary.overall_assessment}）")
        for a in analysis.anomalies:
            console.print(f"  [{SEVERITY_LABELS[a.severity]}] {a.title}", markup=False)

    bundle = build_smart_report(CLI_COMPANY, repo, options, company_name=path.stem, unit=unit)
    if bundle is not None:
        console.rule("Report")
        console.print(bundle.report.full_text, markup=False)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
