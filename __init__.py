"""
UV-Vis Spectra Processing Application

Converts spectrophotometer/fluorometer export workbooks (.xls/.xlsx) into a
normalised workbook: one sheet per scan type, rows keyed by wavelength,
columns holding the repeated measurements.

Key modules:
- main.py: FastAPI adapter exposing the conversion
- spectra_process.py: Workbook routing, conversion entry point and request facade
- spectra_layouts.py: Row classification for the two export layouts
- spectra_scanner.py: Sheet scanning state machine
- spectra_table.py: Output table layout and sheet writer
- utils/: Cell text extraction, error taxonomy and the Result wrapper
"""
