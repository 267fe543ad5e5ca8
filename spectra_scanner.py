import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from spectra_layouts import RowKind, SheetLayout
from utils.errors import SpectraDataError

logger = logging.getLogger(__name__)


class ScanState(Enum):
    IDLE = "idle"            # no wavelength yet
    ARMED = "armed"          # wavelength known, waiting for the marker row
    RECORDING = "recording"  # collecting measurements for the wavelength


class SheetScanner:
    """
    Walks the rows of one sheet and groups measurements by wavelength.

    A header row sets the current wavelength, a marker row starts recording
    and fixes the last data column, and a blank row ends the scan block.
    The result is an insertion-ordered mapping of wavelength to the list of
    measurements collected for it, in left-to-right, top-to-bottom order.

    Attributes:
        layout: Layout strategy that classifies rows and reads measurement cells
        sheet_name: Name of the sheet being scanned, used in errors and logs
    """
    def __init__(self, layout: SheetLayout, sheet_name: str = ""):
        self.layout = layout
        self.sheet_name = sheet_name
        self.state = ScanState.IDLE
        self.current_wavelength: Optional[int] = None
        self.last_column: Optional[int] = None
        self.wavelengths: Set[int] = set()
        self.values: Dict[int, List[float]] = {}

    def scan(self, rows: Iterable[Sequence[Any]]) -> Dict[int, List[float]]:
        """
        Scan every row and return the wavelength -> measurements map.

        Args:
            rows: Rows of cell values in sheet order

        Returns:
            Dict[int, List[float]]: Measurements per wavelength, in encounter order

        Raises:
            SpectraDataError: If the layout rejects a row (primary layout only)
        """
        for index, cells in enumerate(rows):
            self.feed(index, cells)

        logger.info(
            f"Scanned sheet '{self.sheet_name}': {len(self.values)} wavelengths",
            extra={"sheet": self.sheet_name, "layout": self.layout.name, "wavelengths": sorted(self.values)}
        )
        return self.values

    def feed(self, index: int, cells: Sequence[Any]) -> None:
        row = self.layout.classify_row(cells, self.wavelengths, self.current_wavelength)

        if row.kind is RowKind.BLANK:
            self._reset()
        elif row.kind is RowKind.HEADER:
            self.wavelengths.add(row.wavelength)
            self.current_wavelength = row.wavelength
            self.last_column = None
            self.state = ScanState.ARMED
        elif row.kind is RowKind.VALUE_MARKER:
            self._start_recording(index, cells, row.column)
        elif self.state is ScanState.RECORDING and self.layout.data_rows_follow_marker:
            self._record(index, cells)

    def _start_recording(self, index: int, cells: Sequence[Any], column: int) -> None:
        if self.state is ScanState.IDLE:
            logger.debug(
                "Ignoring marker row outside of a scan block",
                extra={"sheet": self.sheet_name, "row": index}
            )
            return

        try:
            self.last_column = self.layout.find_last_column(cells, column)
        except SpectraDataError as exc:
            raise SpectraDataError(exc.reason, sheet=self.sheet_name, row=index, column=exc.column) from exc
        self.state = ScanState.RECORDING

        if self.layout.marker_row_is_data:
            self._record(index, cells)

    def _record(self, index: int, cells: Sequence[Any]) -> None:
        recorded = self.layout.read_values(cells, self.last_column, self.sheet_name, index)
        if recorded:
            self.values.setdefault(self.current_wavelength, []).extend(recorded)

    def _reset(self) -> None:
        self.state = ScanState.IDLE
        self.current_wavelength = None
        self.last_column = None


def scan_sheet(rows: Iterable[Sequence[Any]], layout: SheetLayout, sheet_name: str = "") -> Dict[int, List[float]]:
    """Scan ``rows`` with a fresh SheetScanner and return its wavelength map."""
    return SheetScanner(layout, sheet_name).scan(rows)
