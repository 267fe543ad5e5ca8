"""
Sheet layouts understood by the spectra converter.

Two instrument export conventions exist. The primary layout announces each
scan block with a header line ("... Wavelength: 340 nm"), then a "Value" row
whose filled cells bound the data columns. The alternate layout has no
marker row; each well row ("A", "B", ...) carries its readings in two fixed
columns. Both are expressed as a SheetLayout so the scanner can stay
layout-agnostic.
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence, Set, Tuple

from utils.cells import cell_at, cell_text, first_filled_column, is_blank, is_numeric_text
from utils.errors import SpectraDataError

logger = logging.getLogger(__name__)

VALUE_MARKER = "Value"

PHO_SCANNING_PREFIX = "Pho_Scanning"
FL_SCANNING_PREFIX = "Fl_Scanning"
ABSORBANCE_SHEET = "Absorbance"
FLUORESCENCE_SHEET = "Fluorescence"

WAVELENGTH_HEADER = re.compile(r".*Wavelength: (\d+) nm$")
EMISSION_HEADER = re.compile(r".*Em: (\d+) nm$")


class RowKind(Enum):
    HEADER = "header"
    VALUE_MARKER = "value_marker"
    BLANK = "blank"
    DATA = "data"


@dataclass(frozen=True)
class RowClass:
    """
    Outcome of classifying one row.

    Attributes:
        kind: Which kind of row this is
        wavelength: Captured wavelength for HEADER rows
        column: Column of the row's first filled cell (None for BLANK rows)
    """
    kind: RowKind
    wavelength: Optional[int] = None
    column: Optional[int] = None


BLANK_ROW = RowClass(RowKind.BLANK)


class SheetLayout:
    """
    Strategy describing how one export convention marks up its rows.

    Subclasses decide how rows are classified, which cells of a recording
    row hold measurements, and what happens when one of them is not a number.
    """
    name = "layout"
    # the marker row itself carries measurements
    marker_row_is_data = False
    # rows after a marker are recorded until the block ends
    data_rows_follow_marker = True

    def __init__(self, header_pattern: re.Pattern):
        self.header_pattern = header_pattern

    def match_header(self, text: str) -> Optional[int]:
        match = self.header_pattern.fullmatch(text)
        if match is None:
            return None
        return int(match.group(1))

    def classify_row(
        self,
        cells: Sequence[Any],
        wavelengths: Set[int],
        current_wavelength: Optional[int]
    ) -> RowClass:
        raise NotImplementedError

    def find_last_column(self, cells: Sequence[Any], marker_column: int) -> int:
        raise NotImplementedError

    def extract_columns(self, cells: Sequence[Any], last_column: int) -> List[Tuple[int, str]]:
        """
        Pick the measurement cells of a recording row.

        Returns:
            List[Tuple[int, str]]: (column, text) pairs for every non-blank measurement cell
        """
        raise NotImplementedError

    def on_parse_failure(self, text: str, sheet: str, row: int, column: int) -> None:
        """Handle a measurement cell that is not a number; returning drops the value."""
        raise NotImplementedError

    def read_values(self, cells: Sequence[Any], last_column: int, sheet: str, row: int) -> List[float]:
        values = []
        for column, text in self.extract_columns(cells, last_column):
            try:
                values.append(float(text))
            except ValueError:
                self.on_parse_failure(text, sheet, row, column)
        return values

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.header_pattern.pattern!r})"


class PrimaryLayout(SheetLayout):
    """Header line, then a "Value" row bounding the data columns, then data rows."""
    name = "primary"

    def classify_row(self, cells, wavelengths, current_wavelength):
        column = first_filled_column(cells)
        if column is None:
            return BLANK_ROW

        text = cell_text(cells[column])
        wavelength = self.match_header(text)
        if wavelength is not None:
            return RowClass(RowKind.HEADER, wavelength=wavelength, column=column)
        if text.lower() == VALUE_MARKER.lower():
            return RowClass(RowKind.VALUE_MARKER, column=column)
        return RowClass(RowKind.DATA, column=column)

    def find_last_column(self, cells, marker_column):
        """
        Scan right from the marker until the first blank cell.

        Returns:
            int: Column of the last filled cell after the marker

        Raises:
            SpectraDataError: If the cell right after the marker is already blank
        """
        last_column = None
        column = marker_column + 1
        while not is_blank(cell_at(cells, column)):
            last_column = column
            column += 1
        if last_column is None:
            raise SpectraDataError("No column headers found after the 'Value' marker", column=marker_column)
        return last_column

    def extract_columns(self, cells, last_column):
        columns = []
        for column in range(1, last_column + 1):
            text = cell_text(cell_at(cells, column))
            if text:
                columns.append((column, text))
        return columns

    def on_parse_failure(self, text, sheet, row, column):
        raise SpectraDataError(f"Expected a number but found '{text}'", sheet=sheet, row=row, column=column)


class AlternateLayout(SheetLayout):
    """Well rows ("A", "B", ...) with readings in two fixed columns, no marker row."""
    name = "alternate"
    marker_row_is_data = True
    data_rows_follow_marker = False

    def __init__(
        self,
        header_pattern: re.Pattern,
        well_pattern: re.Pattern = re.compile(r"^[A-Za-z]$"),
        data_columns: Tuple[int, int] = (2, 3)
    ):
        super().__init__(header_pattern)
        self.well_pattern = well_pattern
        self.data_columns = data_columns

    def classify_row(self, cells, wavelengths, current_wavelength):
        column = first_filled_column(cells)
        if column is None:
            return BLANK_ROW

        text = cell_text(cells[column])
        wavelength = self.match_header(text)
        if wavelength is not None:
            return RowClass(RowKind.HEADER, wavelength=wavelength, column=column)
        if self._is_well_row(cells, wavelengths, current_wavelength):
            return RowClass(RowKind.VALUE_MARKER, column=0)
        return RowClass(RowKind.DATA, column=column)

    def _is_well_row(self, cells, wavelengths, current_wavelength) -> bool:
        if current_wavelength not in wavelengths:
            return False
        label = cell_text(cell_at(cells, 0)).strip()
        if not self.well_pattern.match(label):
            return False
        return is_numeric_text(cell_text(cell_at(cells, self.data_columns[0])))

    def find_last_column(self, cells, marker_column):
        return self.data_columns[-1]

    def extract_columns(self, cells, last_column):
        columns = []
        for column in self.data_columns:
            text = cell_text(cell_at(cells, column))
            if text:
                columns.append((column, text))
        return columns

    def on_parse_failure(self, text, sheet, row, column):
        logger.debug(
            "Skipping non-numeric reading",
            extra={"sheet": sheet, "row": row, "column": column, "value": text}
        )


@dataclass(frozen=True)
class SheetRule:
    """
    Maps input sheets to the layout, header pattern and output label used to scan them.

    Attributes:
        name: Sheet name prefix (primary) or exact sheet name (alternate)
        label: Heading of the output sheet's first column
        layout: Layout strategy used to scan matching sheets
        exact: Match the full sheet name instead of a prefix
    """
    name: str
    label: str
    layout: SheetLayout
    exact: bool = False

    def matches(self, sheet_name: str) -> bool:
        if self.exact:
            return sheet_name == self.name
        return sheet_name.startswith(self.name)


DEFAULT_SHEET_RULES: Tuple[SheetRule, ...] = (
    SheetRule(PHO_SCANNING_PREFIX, "Wavelength", PrimaryLayout(WAVELENGTH_HEADER)),
    SheetRule(FL_SCANNING_PREFIX, "Emission", PrimaryLayout(EMISSION_HEADER)),
    SheetRule(ABSORBANCE_SHEET, "Wavelength", AlternateLayout(WAVELENGTH_HEADER), exact=True),
    SheetRule(FLUORESCENCE_SHEET, "Emission", AlternateLayout(EMISSION_HEADER), exact=True),
)


def find_rule(sheet_name: str, rules: Sequence[SheetRule] = DEFAULT_SHEET_RULES) -> Optional[SheetRule]:
    """Return the first rule matching ``sheet_name``, or None when the sheet is not a scan sheet."""
    for rule in rules:
        if rule.matches(sheet_name):
            return rule
    return None
