from typing import Optional

from openpyxl.utils import get_column_letter


class SpectraError(Exception):
    """Base class for every failure raised by a spectra conversion."""


class SpectraFormatError(SpectraError):
    """The input file is not a workbook this tool can decode."""


class SpectraIOError(SpectraError, OSError):
    """An input or output path is missing or cannot be written."""


class SpectraNotFoundError(SpectraIOError):
    """The input workbook or the output folder does not exist."""


class SpectraDataError(SpectraError):
    """
    A sheet's contents cannot be parsed under its layout's rules.

    Attributes:
        sheet (Optional[str]): Name of the sheet being scanned
        row (Optional[int]): 0-based row index of the offending row
        column (Optional[int]): 0-based column index of the offending cell
    """
    def __init__(
        self,
        message: str,
        sheet: Optional[str] = None,
        row: Optional[int] = None,
        column: Optional[int] = None
    ):
        self.sheet = sheet
        self.row = row
        self.column = column
        self.reason = message
        super().__init__(self._describe(message))

    def _describe(self, message: str) -> str:
        location = []
        if self.sheet is not None:
            location.append(f"sheet '{self.sheet}'")
        if self.row is not None:
            location.append(f"row {self.row + 1}")
        if self.column is not None:
            location.append(f"column {get_column_letter(self.column + 1)}")
        if not location:
            return message
        return f"{message} ({', '.join(location)})"
