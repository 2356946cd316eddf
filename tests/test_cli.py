"""
tests/test_cli.py
=================
Smoke tests for the diagnostic command line.
"""

import pytest
from typer.testing import CliRunner

from fin_health.cli import app

runner = CliRunner()


@pytest.fixture
def workbook_path(tmp_path, workbook_bytes):
    path = tmp_path / "2024年3月.xlsx"
    path.write_bytes(workbook_bytes())
    return path


class TestClassifyCommand:
    def test_prints_sheet_types(self, workbook_path):
        result = runner.invoke(app, ["classify", str(workbook_path)])
        assert result.exit_code == 0, result.output
        assert "[TB] -> subject" in result.output
        assert "[AR] -> ledger" in result.output

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["classify", str(tmp_path / "missing.xlsx")])
        assert result.exit_code == 1
        assert "File not found" in result.output


class TestAnalyzeCommand:
    def test_full_run(self, workbook_path):
        result = runner.invoke(app, ["analyze", str(workbook_path), "--unit", "yuan"])
        assert result.exit_code == 0, result.output
        assert "资产总计" in result.output
        assert "沃尔评分" in result.output
        assert "较期初" in result.output
        assert "财务分析报告" in result.output

    def test_no_period_fails(self, tmp_path, workbook_bytes):
        path = tmp_path / "财务数据.xlsx"
        path.write_bytes(workbook_bytes())
        result = runner.invoke(app, ["analyze", str(path)])
        assert result.exit_code == 1

    def test_manual_period(self, tmp_path, workbook_bytes):
        path = tmp_path / "财务数据.xlsx"
        path.write_bytes(workbook_bytes())
        result = runner.invoke(app, ["analyze", str(path), "--period", "2024Q1"])
        assert result.exit_code == 0, result.output
        assert "2024Q1" in result.output
