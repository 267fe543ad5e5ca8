import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

Cell = Union[int, float, str]

# Excel caps sheet titles at 31 characters
MAX_SHEET_TITLE = 31


@dataclass
class SpectraTable:
    """
    Normalised output table for one scan sheet.

    Attributes:
        title: Output sheet name (the input sheet's name)
        label: Heading of the wavelength column ("Wavelength" or "Emission")
        header: Header row: label followed by 1..max_row_length
        rows: One row per wavelength, ascending, values in collection order (ragged)
    """
    title: str
    label: str
    header: List[Cell] = field(default_factory=list)
    rows: List[List[Cell]] = field(default_factory=list)

    @property
    def max_row_length(self) -> int:
        return len(self.header) - 1

    @property
    def wavelengths(self) -> List[int]:
        return [row[0] for row in self.rows]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.title,
            "label": self.label,
            "wavelengths": self.wavelengths,
            "max_row_length": self.max_row_length,
        }


def build_table(title: str, label: str, values: Dict[int, List[float]]) -> SpectraTable:
    """
    Lay out a wavelength -> measurements map as a normalised table.

    Rows are sorted by wavelength regardless of the order in which the
    wavelengths were met. The header is sized by the longest measurement
    list, shorter rows are left ragged.

    Args:
        title: Output sheet name
        label: Heading of the first column
        values: Measurements grouped by wavelength

    Returns:
        SpectraTable: The table ready to be written
    """
    max_row_length = max((len(measurements) for measurements in values.values()), default=0)
    header: List[Cell] = [label] + list(range(1, max_row_length + 1))
    rows = [[wavelength] + list(values[wavelength]) for wavelength in sorted(values)]
    return SpectraTable(title=title, label=label, header=header, rows=rows)


def _clean_value(value: Cell) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def write_table(workbook: Workbook, table: SpectraTable) -> Worksheet:
    """Append ``table`` to ``workbook`` as a new sheet and return the sheet."""
    ws = workbook.create_sheet(table.title[:MAX_SHEET_TITLE])
    ws.append(table.header)
    for row in table.rows:
        ws.append([_clean_value(value) for value in row])
    return ws

