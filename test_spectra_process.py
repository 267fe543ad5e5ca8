import os
from datetime import datetime
from http import HTTPStatus
from unittest.mock import patch

import pandas as pd
import pytest
from openpyxl import Workbook, load_workbook

import spectra_process
from spectra_process import (
    ConversionRequest,
    SpectraProcessor,
    convert_sheets,
    detect_engine,
    output_filename,
    process_and_write_excel,
    read_workbook,
)
from utils.errors import (
    SpectraDataError,
    SpectraFormatError,
    SpectraIOError,
    SpectraNotFoundError,
)


PHO_ROWS = [
    ["Sample: S1 Wavelength: 450 nm", None, None, None],
    ["Value", 1, 2, 3],
    [None, 0.4, 0.5, 0.6],
    [None, None, None, None],
    ["Sample: S1 Wavelength: 340 nm", None, None, None],
    ["Value", 1, 2, 3],
    [None, 0.1, 0.2, 0.3],
    [None, 0.7, 0.8, 0.9],
]

FL_ROWS = [
    ["Sample: S2 Ex: 280 nm Em: 350 nm", None, None],
    ["Value", 1, 2],
    [None, 10.5, 11.5],
]

ABSORBANCE_ROWS = [
    ["Wavelength: 260 nm", None, None, None],
    ["Well", "Content", "Read 1", "Read 2"],
    ["A", "S1", 0.11, 0.12],
    ["B", "S2", 0.21, "Overflow"],
]


def write_input(path, sheets):
    """
    Write an input workbook with one sheet per entry of ``sheets``.

    Cells that are None are left empty so blank rows stay blank.
    """
    workbook = Workbook()
    workbook.remove(workbook.active)
    for name, rows in sheets.items():
        ws = workbook.create_sheet(name)
        for row_index, row in enumerate(rows, start=1):
            for column_index, value in enumerate(row, start=1):
                if value is not None:
                    ws.cell(row=row_index, column=column_index, value=value)
    workbook.save(path)
    return str(path)


def sheet_values(path):
    workbook = load_workbook(path)
    return {
        ws.title: [
            [value for value in row if value is not None]
            for row in ws.iter_rows(values_only=True)
        ]
        for ws in workbook.worksheets
    }


@pytest.fixture
def export_xlsx(tmp_path):
    """
    Fixture providing an instrument export with two scan sheets, an
    alternate-layout sheet and an unrelated sheet.

    Returns:
        str: Path to the .xlsx export
    """
    return write_input(tmp_path / "export.xlsx", {
        "Pho_Scanning 1": PHO_ROWS,
        "Method": [["Instrument", "U-3900"], ["Operator", "Tim"]],
        "Fl_Scanning 1": FL_ROWS,
        "Absorbance": ABSORBANCE_ROWS,
    })


@pytest.fixture
def out_dir(tmp_path):
    path = tmp_path / "out"
    path.mkdir()
    return path


class TestDetectEngine:
    @pytest.mark.parametrize(
        "path, engine",
        [("a.xls", "xlrd"), ("a.xlsx", "openpyxl"), ("A.XLSX", "openpyxl"), ("dir.v2/a.XLS", "xlrd")],
        ids=["xls", "xlsx", "upper", "dotted-dir"]
    )
    def test_known_extensions(self, path, engine):
        assert detect_engine(path) == engine

    @pytest.mark.parametrize("path", ["a.csv", "a.xlsm", "a", "a.xls.bak"], ids=["csv", "xlsm", "none", "backup"])
    def test_unknown_extensions(self, path):
        with pytest.raises(SpectraFormatError):
            detect_engine(path)


class TestProcessAndWriteExcel:
    """
    Tests for the conversion entry point against real workbooks.
    """

    def test_converts_recognised_sheets(self, export_xlsx, out_dir):
        """
        Test that every scan sheet becomes one output sheet, rows sorted by
        wavelength, while the unrelated sheet is skipped without error.
        """
        output_path = str(out_dir / "result.xlsx")

        tables = process_and_write_excel(export_xlsx, output_path)

        assert [table.title for table in tables] == ["Pho_Scanning 1", "Fl_Scanning 1", "Absorbance"]
        values = sheet_values(output_path)
        assert list(values) == ["Pho_Scanning 1", "Fl_Scanning 1", "Absorbance"]
        assert values["Pho_Scanning 1"] == [
            ["Wavelength", 1, 2, 3, 4, 5, 6],
            [340, 0.1, 0.2, 0.3, 0.7, 0.8, 0.9],
            [450, 0.4, 0.5, 0.6],
        ]
        assert values["Fl_Scanning 1"] == [
            ["Emission", 1, 2],
            [350, 10.5, 11.5],
        ]
        assert values["Absorbance"] == [
            ["Wavelength", 1, 2, 3],
            [260, 0.11, 0.12, 0.21],
        ]

    def test_header_width_matches_longest_row(self, export_xlsx, out_dir):
        output_path = str(out_dir / "result.xlsx")

        process_and_write_excel(export_xlsx, output_path)

        ws = load_workbook(output_path)["Pho_Scanning 1"]
        assert ws.max_column == 1 + 6
        assert [cell.value for cell in ws[3]][:4] == [450, 0.4, 0.5, 0.6]
        assert ws.cell(row=3, column=5).value is None

    def test_rows_sorted_without_duplicates(self, export_xlsx, out_dir):
        output_path = str(out_dir / "result.xlsx")

        process_and_write_excel(export_xlsx, output_path)

        for rows in sheet_values(output_path).values():
            wavelengths = [row[0] for row in rows[1:]]
            assert wavelengths == sorted(set(wavelengths))

    def test_repeated_runs_are_identical(self, export_xlsx, out_dir):
        first = str(out_dir / "first.xlsx")
        second = str(out_dir / "second.xlsx")

        process_and_write_excel(export_xlsx, first)
        process_and_write_excel(export_xlsx, second)

        assert sheet_values(first) == sheet_values(second)

    def test_sheet_without_marker_gives_header_only(self, tmp_path, out_dir):
        input_path = write_input(tmp_path / "empty.xlsx", {
            "Pho_Scanning": [["Sample: S1 Wavelength: 340 nm", None], ["Notes", "none"]],
        })
        output_path = str(out_dir / "result.xlsx")

        process_and_write_excel(input_path, output_path)

        assert sheet_values(output_path) == {"Pho_Scanning": [["Wavelength"]]}

    def test_unrecognised_extension_writes_nothing(self, tmp_path, out_dir):
        input_path = tmp_path / "export.csv"
        input_path.write_text("Value,1,2\n")

        with pytest.raises(SpectraFormatError):
            process_and_write_excel(str(input_path), str(out_dir / "result.xlsx"))

        assert os.listdir(out_dir) == []

    def test_corrupt_workbook_is_format_error(self, tmp_path, out_dir):
        input_path = tmp_path / "export.xlsx"
        input_path.write_bytes(b"not a zip archive")

        with pytest.raises(SpectraFormatError):
            process_and_write_excel(str(input_path), str(out_dir / "result.xlsx"))

        assert os.listdir(out_dir) == []

    def test_missing_input_is_io_error(self, tmp_path, out_dir):
        with pytest.raises(SpectraNotFoundError):
            process_and_write_excel(str(tmp_path / "missing.xlsx"), str(out_dir / "result.xlsx"))

    def test_missing_output_folder_is_io_error(self, export_xlsx, tmp_path):
        with pytest.raises(SpectraIOError):
            process_and_write_excel(export_xlsx, str(tmp_path / "nowhere" / "result.xlsx"))

    def test_malformed_number_aborts_whole_workbook(self, tmp_path, out_dir):
        """
        Test that a malformed number in one primary-layout sheet aborts the
        conversion even though another sheet is valid, leaving no output.
        """
        input_path = write_input(tmp_path / "bad.xlsx", {
            "Fl_Scanning 1": FL_ROWS,
            "Pho_Scanning 1": PHO_ROWS + [[None, 1.0, "error", 1.2]],
        })

        with pytest.raises(SpectraDataError) as exc_info:
            process_and_write_excel(input_path, str(out_dir / "result.xlsx"))

        assert exc_info.value.sheet == "Pho_Scanning 1"
        assert os.listdir(out_dir) == []

    def test_no_scan_sheets_is_data_error(self, tmp_path, out_dir):
        input_path = write_input(tmp_path / "other.xlsx", {"Sheet1": [["a", "b"]]})

        with pytest.raises(SpectraDataError):
            process_and_write_excel(input_path, str(out_dir / "result.xlsx"))

        assert os.listdir(out_dir) == []

    def test_failed_save_leaves_no_files(self, export_xlsx, out_dir):
        with patch.object(spectra_process.os, "replace", side_effect=PermissionError("Permission denied")):
            with pytest.raises(SpectraIOError) as exc_info:
                process_and_write_excel(export_xlsx, str(out_dir / "result.xlsx"))

        assert "Permission denied" in str(exc_info.value)
        assert os.listdir(out_dir) == []

    def test_legacy_xls_uses_xlrd(self, tmp_path, out_dir):
        """
        Test that an .xls export is decoded with xlrd and still written as .xlsx.
        """
        input_path = tmp_path / "export.xls"
        input_path.write_bytes(b"\xd0\xcf\x11\xe0")
        sheets = {"Pho_Scanning": pd.DataFrame(PHO_ROWS)}
        output_path = str(out_dir / "result.xlsx")

        with patch("pandas.read_excel", return_value=sheets) as read_excel:
            process_and_write_excel(str(input_path), output_path)

        assert read_excel.call_args.kwargs["engine"] == "xlrd"
        assert read_excel.call_args.kwargs["header"] is None
        assert sheet_values(output_path)["Pho_Scanning"][1] == [340, 0.1, 0.2, 0.3, 0.7, 0.8, 0.9]


class TestReadWorkbook:
    def test_sheets_in_file_order(self, export_xlsx):
        sheets = read_workbook(export_xlsx)

        assert list(sheets) == ["Pho_Scanning 1", "Method", "Fl_Scanning 1", "Absorbance"]

    def test_read_permission_error_is_io_error(self, export_xlsx):
        with patch("pandas.read_excel", side_effect=PermissionError("Permission denied")):
            with pytest.raises(SpectraIOError):
                read_workbook(export_xlsx)


class TestConvertSheets:
    def test_unknown_sheets_skipped(self):
        sheets = {
            "Summary": pd.DataFrame([["Value", 1], [None, "text"]]),
            "Fl_Scanning": pd.DataFrame(FL_ROWS),
        }

        tables = convert_sheets(sheets)

        assert len(tables) == 1
        assert tables[0].title == "Fl_Scanning"
        assert tables[0].label == "Emission"


class TestOutputFilename:
    def test_timestamp_pattern(self):
        assert output_filename(datetime(2016, 2, 18, 9, 5, 3)) == "Processed_Spectra_2016-02-18_09-05-03.xlsx"

    def test_defaults_to_now(self):
        name = output_filename()

        assert name.startswith("Processed_Spectra_")
        assert name.endswith(".xlsx")


class TestSpectraProcessor:
    """
    Tests for the Result-returning request facade.
    """

    NOW = datetime(2016, 2, 18, 10, 30, 0)

    def test_successful_conversion(self, export_xlsx, out_dir):
        request = ConversionRequest(input_path=export_xlsx, output_folder=str(out_dir))

        result = SpectraProcessor.process_file(request, now=self.NOW)

        assert result.is_success()
        expected = os.path.join(str(out_dir), "Processed_Spectra_2016-02-18_10-30-00.xlsx")
        assert result.data.output_path == os.path.abspath(expected)
        assert os.path.exists(expected)
        assert [sheet.name for sheet in result.data.sheets] == ["Pho_Scanning 1", "Fl_Scanning 1", "Absorbance"]
        assert result.data.sheets[0].wavelengths == [340, 450]
        assert result.data.sheets[0].max_row_length == 6

    def test_output_folder_defaults_to_input_folder(self, export_xlsx):
        result = SpectraProcessor.process_file(ConversionRequest(input_path=export_xlsx), now=self.NOW)

        assert result.is_success()
        assert os.path.dirname(result.data.output_path) == os.path.dirname(os.path.abspath(export_xlsx))

    @pytest.mark.parametrize(
        "input_path, output_folder, message",
        [
            (None, "/tmp", "There must be an excel sheet to process"),
            ("", "/tmp", "There must be an excel sheet to process"),
            ("export.xlsx", "", "There must be an output folder to process"),
        ],
        ids=["no-input", "empty-input", "empty-folder"]
    )
    def test_missing_fields(self, input_path, output_folder, message):
        result = SpectraProcessor.process_file(ConversionRequest(input_path=input_path, output_folder=output_folder))

        assert not result.is_success()
        assert result.status_code == HTTPStatus.BAD_REQUEST
        assert result.error == message

    def test_output_folder_must_be_directory(self, export_xlsx, tmp_path):
        request = ConversionRequest(input_path=export_xlsx, output_folder=str(tmp_path / "missing"))

        result = SpectraProcessor.process_file(request)

        assert result.error == "The output folder must be a valid directory"

    @pytest.mark.parametrize(
        "error, status_code",
        [
            (SpectraFormatError("bad format"), HTTPStatus.UNSUPPORTED_MEDIA_TYPE),
            (SpectraDataError("bad data"), HTTPStatus.UNPROCESSABLE_ENTITY),
            (SpectraNotFoundError("missing"), HTTPStatus.NOT_FOUND),
            (SpectraIOError("read only"), HTTPStatus.BAD_REQUEST),
            (RuntimeError("boom"), HTTPStatus.INTERNAL_SERVER_ERROR),
        ],
        ids=["format", "data", "not-found", "io", "unexpected"]
    )
    def test_errors_become_results(self, export_xlsx, out_dir, error, status_code):
        request = ConversionRequest(input_path=export_xlsx, output_folder=str(out_dir))

        with patch.object(spectra_process, "process_and_write_excel", side_effect=error), \
             patch.object(spectra_process.logger, "exception"):
            result = SpectraProcessor.process_file(request)

        assert not result.is_success()
        assert result.status_code == status_code
        assert result.error == f"Failed to process data: {error}"

    def test_unsupported_extension(self, tmp_path, out_dir):
        input_path = tmp_path / "export.txt"
        input_path.write_text("Value")

        result = SpectraProcessor.process_file(
            ConversionRequest(input_path=str(input_path), output_folder=str(out_dir))
        )

        assert result.status_code == HTTPStatus.UNSUPPORTED_MEDIA_TYPE
        assert os.listdir(out_dir) == []
