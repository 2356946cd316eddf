"""Error taxonomy for the analysis engine."""
from __future__ import annotations

from typing import Optional


class FinHealthError(Exception):
    """Base class for hard failures raised by the engine."""


class ParseError(FinHealthError):
    """A workbook could not be decoded at all (corrupt or unsupported file)."""

    def __init__(self, message: str, filename: Optional[str] = None):
        super().__init__(message)
        self.filename = filename


class ValidationError(FinHealthError):
    """No period label was supplied and none could be inferred from the file name."""

    def __init__(self, message: str, filename: Optional[str] = None):
        super().__init__(message)
        self.filename = filename


class PartialExtractionWarning(UserWarning):
    """A classified sheet lacks expected columns; defaults were used."""
