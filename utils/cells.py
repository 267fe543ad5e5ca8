from typing import Any, Optional, Sequence

import pandas as pd


def cell_text(value: Any) -> str:
    """
    Render a spreadsheet cell as text regardless of how it was stored.

    Numeric cells render as their decimal string, text cells are returned
    as-is, and blank or missing cells become an empty string.

    Args:
        value: Raw cell value as produced by pandas (float, int, str, NaN, None, ...)

    Returns:
        str: Text representation of the cell
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    # NaN/NaT are how pandas marks empty cells
    if pd.isna(value):
        return ""
    if isinstance(value, bool):
        return str(value).upper()
    # numbers (python or numpy) render as their decimal string
    return str(value)


def is_blank(value: Any) -> bool:
    return cell_text(value) == ""


def cell_at(cells: Sequence[Any], column: int) -> Any:
    """Return the cell at ``column`` or None when the row is shorter."""
    if 0 <= column < len(cells):
        return cells[column]
    return None


def first_filled_column(cells: Sequence[Any]) -> Optional[int]:
    """
    Find the first non-blank cell of a row.

    Returns:
        Optional[int]: 0-based column index, or None for an entirely blank row
    """
    for column, value in enumerate(cells):
        if not is_blank(value):
            return column
    return None


def is_numeric_text(text: str) -> bool:
    try:
        float(text)
    except ValueError:
        return False
    return True
