"""
tests/test_parser.py
====================
Workbook decoding, numeric coercion and period inference.
"""

import io
import zipfile

import pytest

from fin_health.errors import ParseError
from fin_health.parser import cell_str, expand_uploads, infer_period, read_workbook, to_number


class TestToNumber:
    def test_plain_numbers(self):
        assert to_number(12) == 12.0
        assert to_number(3.5) == 3.5

    def test_thousands_and_currency(self):
        assert to_number("1,234.50") == 1234.5
        assert to_number("¥ 2,000") == 2000.0
        assert to_number("300元") == 300.0

    def test_parenthetical_negative(self):
        assert to_number("(1,200)") == -1200.0
        assert to_number("（50）") == -50.0

    def test_percent_suffix_dropped(self):
        assert to_number("12.5%") == 12.5

    def test_unparseable_is_zero(self):
        for val in (None, "", "-", "--", "abc", float("nan"), True):
            assert to_number(val) == 0.0


class TestCellStr:
    def test_integral_float_drops_decimal(self):
        assert cell_str(1001.0) == "1001"

    def test_none_and_nan(self):
        assert cell_str(None) == ""
        assert cell_str(float("nan")) == ""

    def test_strips_whitespace(self):
        assert cell_str("  应收账款 ") == "应收账款"


class TestInferPeriod:
    def test_chinese_month(self):
        assert infer_period("2024年3月.xlsx") == ("2024年3月", "month")

    def test_dashed_month(self):
        assert infer_period("科目余额表_2023-11.xlsx") == ("2023年11月", "month")

    def test_compact_month(self):
        assert infer_period("tb202402.xls") == ("2024年2月", "month")

    def test_quarter(self):
        assert infer_period("报表2024Q2.xlsx") == ("2024Q2", "quarter")
        assert infer_period("2023年第三季度.xlsx") == ("2023Q3", "quarter")

    def test_year(self):
        assert infer_period("年报2023.xlsx") == ("2023年", "year")

    def test_nothing_found(self):
        assert infer_period("财务数据.xlsx") is None


class TestReadWorkbook:
    def test_empty_bytes_raise(self):
        with pytest.raises(ParseError):
            read_workbook(b"", "empty.xlsx")

    def test_garbage_xlsx_raises(self):
        with pytest.raises(ParseError) as exc:
            read_workbook(b"this is not a spreadsheet", "broken.xlsx")
        assert exc.value.filename == "broken.xlsx"

    def test_xlsx_round_trip(self, xlsx_bytes):
        content = xlsx_bytes({
            "TB": [["科目编码", "科目名称", "期末借方"], ["1001", "库存现金", 1500]],
            "Notes": [["备注"]],
        })
        sheets = read_workbook(content, "2024年3月.xlsx")
        assert [s.name for s in sheets] == ["TB", "Notes"]
        tb = sheets[0]
        assert tb.rows[0] == ("科目编码", "科目名称", "期末借方")
        assert tb.rows[1][1] == "库存现金"
        assert tb.rows[1][2] == 1500.0

    def test_html_table_saved_as_xls(self):
        html = (
            "<html><body><table>"
            "<tr><td>项目</td><td colspan='2'>金额</td></tr>"
            "<tr><td>营业收入</td><td>1,200</td><td>1,000</td></tr>"
            "</table></body></html>"
        ).encode("utf-8")
        sheets = read_workbook(html, "report.xls")
        assert len(sheets) == 1
        assert sheets[0].name == "report-1"
        assert sheets[0].rows[0] == ("项目", "金额", None)
        assert sheets[0].rows[1] == ("营业收入", "1,200", "1,000")

    def test_csv_cells_stay_text(self):
        content = "项目,金额\n营业收入,500\n".encode("utf-8")
        sheets = read_workbook(content, "income.csv")
        assert sheets[0].name == "income"
        assert sheets[0].rows[1] == ("营业收入", "500")
        assert to_number(sheets[0].rows[1][1]) == 500.0

    def test_gbk_csv(self):
        content = "项目,金额\n净利润,80\n".encode("gbk")
        sheets = read_workbook(content, "profit.csv")
        assert sheets[0].rows[1][0] == "净利润"


class TestExpandUploads:
    def test_plain_file_passes_through(self):
        assert expand_uploads(b"abc", "a.xlsx") == [("a.xlsx", b"abc")]

    def test_zip_members(self):
        mem = io.BytesIO()
        with zipfile.ZipFile(mem, "w") as zf:
            zf.writestr("2024年1月.xlsx", b"one")
            zf.writestr("sub/2024年2月.csv", b"two")
            zf.writestr("readme.txt", b"ignore")
            zf.writestr("~$2024年1月.xlsx", b"lock file")
        files = expand_uploads(mem.getvalue(), "bundle.zip")
        assert [name for name, _ in files] == ["2024年1月.xlsx", "sub/2024年2月.csv"]
        assert files[1][1] == b"two"

    def test_bad_zip_raises(self):
        with pytest.raises(ParseError):
            expand_uploads(b"not a zip", "bundle.zip")
