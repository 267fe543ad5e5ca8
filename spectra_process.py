import os
import logging
import tempfile
import time
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import pandas as pd
from openpyxl import Workbook
from pydantic import BaseModel

from spectra_layouts import DEFAULT_SHEET_RULES, SheetRule, find_rule
from spectra_scanner import scan_sheet
from spectra_table import SpectraTable, build_table, write_table
from utils.errors import (
    SpectraDataError,
    SpectraError,
    SpectraFormatError,
    SpectraIOError,
    SpectraNotFoundError,
)
from utils.result import Result

logger = logging.getLogger(__name__)

# Input extension -> pandas engine able to decode it
DECODERS: Dict[str, str] = {
    ".xls": "xlrd",
    ".xlsx": "openpyxl",
}

OUTPUT_NAME_FORMAT = "Processed_Spectra_%Y-%m-%d_%H-%M-%S.xlsx"


class LogContext:
    """Context manager for tracking and logging operation timings"""
    def __init__(self, operation_name: str, **kwargs):
        self.operation_name = operation_name
        self.start_time = None
        self.request_id = kwargs.get('request_id', str(uuid.uuid4())[:8])
        self.extra = {key: value for key, value in kwargs.items() if key != 'request_id'}

    def __enter__(self):
        self.start_time = time.time()
        logger.info(f"Starting {self.operation_name}", extra={"request_id": self.request_id, **self.extra})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        if exc_type:
            logger.error(
                f"Failed {self.operation_name} in {duration:.2f}s: {str(exc_val)}",
                extra={"request_id": self.request_id, "duration": duration, **self.extra},
                exc_info=(exc_type, exc_val, exc_tb)
            )
        else:
            logger.info(
                f"Completed {self.operation_name} in {duration:.2f}s",
                extra={"request_id": self.request_id, "duration": duration, **self.extra}
            )


class ConversionRequest(BaseModel):
    """
    Schema for a spectra conversion request.

    Attributes:
        input_path: Full path to the instrument export (.xls or .xlsx)
        output_folder: Folder receiving the processed workbook; defaults to the input's folder
    """
    input_path: Optional[str] = None
    output_folder: Optional[str] = None


class SheetSummary(BaseModel):
    name: str
    label: str
    wavelengths: List[int]
    max_row_length: int


class ConversionResponse(BaseModel):
    """
    Standardized response schema for a conversion.

    Attributes:
        output_path: Absolute path of the written workbook
        sheets: One summary per converted sheet, in workbook order
    """
    output_path: str
    sheets: List[SheetSummary] = []


def output_filename(now: Optional[datetime] = None) -> str:
    """Timestamped name of the processed workbook, e.g. Processed_Spectra_2016-02-18_10-30-00.xlsx"""
    return (now or datetime.now()).strftime(OUTPUT_NAME_FORMAT)


def detect_engine(input_path: str) -> str:
    """
    Pick the pandas engine for ``input_path`` from its extension.

    Raises:
        SpectraFormatError: If the extension is neither .xls nor .xlsx
    """
    extension = os.path.splitext(input_path)[1].lower()
    engine = DECODERS.get(extension)
    if engine is None:
        raise SpectraFormatError(f"{input_path} is not an .xls or .xlsx workbook")
    return engine


def read_workbook(input_path: str) -> Dict[str, pd.DataFrame]:
    """
    Read every sheet of the workbook, without header inference.

    Returns:
        Dict[str, pd.DataFrame]: Sheets by name, in file order

    Raises:
        SpectraFormatError: If the extension is unknown or the decoder cannot open the file
        SpectraIOError: If the file does not exist or cannot be read
    """
    engine = detect_engine(input_path)
    if not os.path.isfile(input_path):
        raise SpectraNotFoundError(f"Input workbook not found: {input_path}")

    try:
        logger.debug("Attempting to read workbook", extra={"input_path": input_path, "engine": engine})
        return pd.read_excel(
            input_path,
            sheet_name=None,
            header=None,
            engine=engine,
            keep_default_na=False
        )
    except OSError as e:
        raise SpectraIOError(f"Failed to read {input_path}: {str(e)}") from e
    except Exception as e:
        raise SpectraFormatError(f"{input_path} does not contain a workbook: {str(e)}") from e


def convert_sheets(
    sheets: Dict[str, pd.DataFrame],
    rules: Sequence[SheetRule] = DEFAULT_SHEET_RULES
) -> List[SpectraTable]:
    """
    Scan each recognised sheet and lay it out as a normalised table.

    Sheets whose name matches no rule are skipped.

    Raises:
        SpectraDataError: If any recognised sheet cannot be parsed
    """
    tables = []
    for sheet_name, frame in sheets.items():
        rule = find_rule(sheet_name, rules)
        if rule is None:
            logger.info(f"Skipping sheet '{sheet_name}'", extra={"sheet": sheet_name})
            continue

        rows = frame.itertuples(index=False, name=None)
        values = scan_sheet(rows, rule.layout, sheet_name)
        tables.append(build_table(sheet_name, rule.label, values))
    return tables


def write_workbook(tables: Sequence[SpectraTable], output_path: str) -> str:
    """
    Write ``tables`` to a new .xlsx workbook at ``output_path``.

    The workbook is saved to a temporary file next to the destination and
    moved into place only once the save succeeded.

    Raises:
        SpectraIOError: If the destination cannot be written
    """
    workbook = Workbook()
    workbook.remove(workbook.active)
    for table in tables:
        write_table(workbook, table)

    output_dir = os.path.dirname(os.path.abspath(output_path))
    try:
        fd, temp_path = tempfile.mkstemp(prefix=".Processed_", suffix=".xlsx", dir=output_dir)
    except OSError as e:
        raise SpectraIOError(f"Cannot write to {output_dir}: {str(e)}") from e
    os.close(fd)

    try:
        workbook.save(temp_path)
        os.replace(temp_path, output_path)
    except OSError as e:
        raise SpectraIOError(f"Failed to write {output_path}: {str(e)}") from e
    finally:
        if os.path.exists(temp_path):
            os.remove(temp_path)
    return output_path


def process_and_write_excel(
    input_path: str,
    output_path: str,
    rules: Sequence[SheetRule] = DEFAULT_SHEET_RULES
) -> List[SpectraTable]:
    """
    Convert an instrument export into a normalised spectra workbook.

    Every sheet named after a known scan type is scanned and written to
    ``output_path`` as one sheet per scan type, rows keyed by wavelength.

    Args:
        input_path: Path to the .xls or .xlsx export
        output_path: Path of the .xlsx workbook to create
        rules: Sheet rules selecting layout, header pattern and label per sheet

    Returns:
        List[SpectraTable]: The tables that were written

    Raises:
        SpectraFormatError: Unrecognised extension or unreadable workbook
        SpectraIOError: Missing input, missing output folder or unwritable destination
        SpectraDataError: A recognised sheet could not be parsed, or none was found
    """
    with LogContext("spectra conversion", input_path=input_path, output_path=output_path):
        detect_engine(input_path)
        output_dir = os.path.dirname(os.path.abspath(output_path))
        if not os.path.isdir(output_dir):
            raise SpectraNotFoundError(f"Output folder does not exist: {output_dir}")

        sheets = read_workbook(input_path)
        tables = convert_sheets(sheets, rules)
        if not tables:
            prefixes = ", ".join(rule.name for rule in rules)
            raise SpectraDataError(f"No scan sheets found in {input_path} (expected one of: {prefixes})")

        write_workbook(tables, output_path)
        logger.info(
            f"Wrote {len(tables)} sheets to {output_path}",
            extra={"sheets": [table.title for table in tables]}
        )
        return tables


class SpectraProcessor:
    """
    Validates a conversion request and runs it, reporting through Result.

    This class contains methods to:
    - Validate the input workbook path and output folder
    - Name the output workbook after the current time
    - Convert and report every failure as a Result instead of raising
    """

    @staticmethod
    def process_file(request: ConversionRequest, now: Optional[datetime] = None) -> Result[ConversionResponse]:
        """
        Convert the workbook named in ``request``.

        Args:
            request: ConversionRequest holding the input path and output folder
            now: Timestamp used for the output file name; defaults to the current time

        Returns:
            Result[ConversionResponse]: Output path and sheet summaries, or the failure
        """
        request_id = str(uuid.uuid4())[:8]
        log_context = {
            "request_id": request_id,
            "input_path": request.input_path,
            "output_folder": request.output_folder
        }
        logger.info("Processing spectra workbook", extra=log_context)

        validation_result = SpectraProcessor._validate_request(request)
        if not validation_result.is_success():
            logger.warning(f"Request validation failed: {validation_result.error}", extra=log_context)
            return validation_result

        output_path = os.path.join(validation_result.data, output_filename(now))
        try:
            tables = process_and_write_excel(request.input_path, output_path)
        except SpectraError as e:
            return Result.from_error(e)
        except Exception as e:
            logger.exception("Unexpected error during conversion", extra={**log_context, "error": str(e)})
            return Result.from_error(e)

        response = ConversionResponse(
            output_path=os.path.abspath(output_path),
            sheets=[SheetSummary(**table.to_dict()) for table in tables]
        )
        return Result.ok(response)

    @staticmethod
    def _validate_request(request: ConversionRequest) -> Result[str]:
        """
        Check the request before any file is touched.

        Returns:
            Result[str]: The output folder to write into, or the validation error
        """
        if not request.input_path:
            return Result.invalid_input("There must be an excel sheet to process")

        output_folder = request.output_folder
        if output_folder is None:
            output_folder = os.path.dirname(os.path.abspath(request.input_path))
        if not output_folder:
            return Result.invalid_input("There must be an output folder to process")
        if not os.path.isdir(output_folder):
            return Result.invalid_input("The output folder must be a valid directory")
        return Result.ok(output_folder)
