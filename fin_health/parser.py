"""
fin_health/parser.py
====================
Workbook decoding. Handles:
  - Excel (.xlsx / .xlsm via openpyxl, legacy .xls via xlrd)
  - HTML tables saved with an .xls extension (common ERP export)
  - CSV (.csv)
  - .zip archives of the above (expand_uploads)

Every worksheet becomes a RawSheet whose cells are str, float or None.
Also hosts numeric coercion and period inference from file names.
"""
from __future__ import annotations

import io
import logging
import math
import numbers
import os
import re
import zipfile
from datetime import date, datetime
from typing import Any, List, Optional, Tuple

import pandas as pd
from bs4 import BeautifulSoup

from .errors import ParseError
from .types import PeriodType, RawSheet

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".xlsx", ".xlsm", ".xls", ".csv", ".html", ".htm")


# ─── Numeric Normalisation ────────────────────────────────────────────────────

_STRIP_CHARS = (",", "，", "¥", "￥", "$", "元", " ", "　", "\xa0", "\t")


def to_number(val: Any) -> float:
    """
    Coerce a cell to float; anything unparseable becomes 0.
    Handles thousands separators, currency marks, trailing % and (1,234) negatives.
    """
    if val is None or isinstance(val, bool):
        return 0.0
    if isinstance(val, numbers.Real):
        f = float(val)
        return 0.0 if math.isnan(f) or math.isinf(f) else f
    if not isinstance(val, str):
        return 0.0
    s = val.strip()
    for ch in _STRIP_CHARS:
        s = s.replace(ch, "")
    if s.endswith("%"):
        s = s[:-1]
    # Parenthetical negatives: (1234) → -1234
    if len(s) >= 2 and s[0] in "(（" and s[-1] in ")）":
        s = "-" + s[1:-1]
    if s in ("", "-", "--", "—", "nan", "None", "N/A"):
        return 0.0
    try:
        f = float(s)
    except ValueError:
        return 0.0
    return 0.0 if math.isnan(f) or math.isinf(f) else f


def cell_str(val: Any) -> str:
    if val is None:
        return ""
    if isinstance(val, float):
        if math.isnan(val):
            return ""
        if val.is_integer():
            return str(int(val))
    return str(val).strip()


def _normalize_cell(val: Any) -> Any:
    if val is None:
        return None
    if isinstance(val, str):
        s = val.strip()
        return s or None
    if isinstance(val, (datetime, date)):
        if pd.isna(val):
            return None
        return val.strftime("%Y-%m-%d")
    if isinstance(val, bool):
        return str(val)
    if isinstance(val, numbers.Real):
        f = float(val)
        return None if math.isnan(f) else f
    return str(val).strip() or None


# ─── Period Inference ─────────────────────────────────────────────────────────

_MONTH_PATTERNS = (
    re.compile(r"((?:19|20)\d{2})\s*年\s*(\d{1,2})\s*月"),
    re.compile(r"((?:19|20)\d{2})[-_.](\d{1,2})(?!\d)"),
    re.compile(r"(?<!\d)((?:19|20)\d{2})(\d{2})(?!\d)"),
)
_QUARTER_PATTERNS = (
    re.compile(r"((?:19|20)\d{2})\s*[-_ ]?\s*[Qq]([1-4])"),
    re.compile(r"((?:19|20)\d{2})\s*年\s*第?\s*([1-4一二三四])\s*季度?"),
)
_YEAR_PATTERNS = (
    re.compile(r"((?:19|20)\d{2})\s*年"),
    re.compile(r"(?<!\d)((?:19|20)\d{2})(?!\d)"),
)
_CN_DIGITS = {"一": 1, "二": 2, "三": 3, "四": 4}


def infer_period(filename: str) -> Optional[Tuple[str, PeriodType]]:
    """
    Guess the reporting period from a file name.
    Returns (label, period_type) or None, e.g. "2024年3月" → ("2024年3月", "month"),
    "报表2024Q2.xlsx" → ("2024Q2", "quarter"), "年报2023.xlsx" → ("2023年", "year").
    """
    stem = os.path.splitext(os.path.basename(filename or ""))[0]

    for pat in _QUARTER_PATTERNS:
        m = pat.search(stem)
        if m:
            q = m.group(2)
            q_num = _CN_DIGITS.get(q) or int(q)
            return f"{m.group(1)}Q{q_num}", "quarter"

    for pat in _MONTH_PATTERNS:
        m = pat.search(stem)
        if m:
            month = int(m.group(2))
            if 1 <= month <= 12:
                return f"{m.group(1)}年{month}月", "month"

    for pat in _YEAR_PATTERNS:
        m = pat.search(stem)
        if m:
            return f"{m.group(1)}年", "year"

    return None


# ─── HTML Tables ──────────────────────────────────────────────────────────────


def _decode_text(content: bytes) -> str:
    """Decode bytes with fallbacks for legacy exports (gbk/utf-16/etc.)."""
    for enc in ("utf-8-sig", "gb18030", "utf-16", "latin1"):
        try:
            text = content.decode(enc)
            if text:
                return text
        except UnicodeDecodeError:
            continue
    return content.decode("utf-8", errors="replace")


def _looks_like_html(content: bytes) -> bool:
    """Heuristic detection for HTML payloads saved with .xls extension."""
    head = content[:4096]
    low = head.lower().replace(b"\x00", b"")
    return any(tok in low for tok in (b"<html", b"<table", b"<!doctype html", b"<tr", b"<td"))


def _parse_html(content: bytes, stem: str) -> List[RawSheet]:
    html = _decode_text(content)
    soup = BeautifulSoup(html, "lxml")
    sheets: List[RawSheet] = []
    for n, table in enumerate(soup.find_all("table"), start=1):
        rows = []
        for tr in table.find_all("tr"):
            cells = []
            for td in tr.find_all(["td", "th"]):
                try:
                    colspan = int(td.get("colspan", 1))
                except (TypeError, ValueError):
                    colspan = 1
                text = " ".join(td.get_text().split())
                cells.append(text or None)
                cells.extend([None] * (colspan - 1))
            if any(c is not None for c in cells):
                rows.append(cells)
        if rows:
            sheets.append(RawSheet.from_rows(f"{stem}-{n}", rows))
    return sheets


# ─── DataFrame → RawSheet ─────────────────────────────────────────────────────


def _frame_to_sheet(name: str, df: pd.DataFrame) -> RawSheet:
    df = df.dropna(how="all")
    rows = [[_normalize_cell(v) for v in row] for row in df.itertuples(index=False, name=None)]
    return RawSheet.from_rows(name, rows)


def _read_excel(file_bytes: bytes, engine: str) -> List[RawSheet]:
    sheets: List[RawSheet] = []
    with pd.ExcelFile(io.BytesIO(file_bytes), engine=engine) as xl:
        for sheet_name in xl.sheet_names:
            df = xl.parse(sheet_name, header=None)
            sheets.append(_frame_to_sheet(str(sheet_name), df))
    return sheets


def _read_csv(file_bytes: bytes, stem: str) -> List[RawSheet]:
    text = _decode_text(file_bytes)
    df = pd.read_csv(io.StringIO(text), header=None, dtype=object, skip_blank_lines=True)
    return [_frame_to_sheet(stem, df)]


# ─── Main Entry Point ─────────────────────────────────────────────────────────


def read_workbook(file_bytes: bytes, filename: str) -> List[RawSheet]:
    """
    Decode uploaded bytes into RawSheets, one per worksheet (or HTML table).
    Raises ParseError when nothing can be decoded.
    """
    fn_lower = (filename or "").lower()
    stem = os.path.splitext(os.path.basename(filename or "sheet"))[0] or "sheet"

    if not file_bytes:
        raise ParseError(f"{filename}: empty file", filename=filename)

    try:
        if fn_lower.endswith((".htm", ".html")):
            sheets = _parse_html(file_bytes, stem)
        elif fn_lower.endswith(".xls") and _looks_like_html(file_bytes):
            sheets = _parse_html(file_bytes, stem)
        elif fn_lower.endswith(".csv"):
            sheets = _read_csv(file_bytes, stem)
        elif fn_lower.endswith(".xls"):
            sheets = _read_excel(file_bytes, "xlrd")
        else:
            sheets = _read_excel(file_bytes, "openpyxl")
    except ParseError:
        raise
    except Exception as exc:
        raise ParseError(f"{filename}: cannot decode workbook ({exc})", filename=filename) from exc

    if not sheets:
        raise ParseError(f"{filename}: workbook has no readable sheets", filename=filename)

    logger.debug("Decoded %s into %d sheet(s)", filename, len(sheets))
    return sheets


def expand_uploads(file_bytes: bytes, filename: str) -> List[Tuple[str, bytes]]:
    """Expand an upload into parseable files, including .zip archives."""
    if not filename.lower().endswith(".zip"):
        return [(filename, file_bytes)]

    expanded: List[Tuple[str, bytes]] = []
    try:
        with zipfile.ZipFile(io.BytesIO(file_bytes)) as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                inner_name = info.filename
                base = os.path.basename(inner_name)
                if base.startswith((".", "~$")):
                    continue
                if inner_name.lower().endswith(SUPPORTED_EXTENSIONS):
                    expanded.append((inner_name, zf.read(info)))
    except zipfile.BadZipFile as exc:
        raise ParseError(f"{filename}: not a valid zip archive", filename=filename) from exc
    return expanded
