"""Décodage d'un .xlsx téléversé en lignes dict (en-tête = première ligne)."""

from __future__ import annotations

from io import BytesIO
from typing import Any
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException


class SpreadsheetError(Exception):
    pass


def read_first_sheet(content: bytes) -> list[dict[str, Any]]:
    try:
        wb = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError) as exc:
        raise SpreadsheetError(f"Unreadable spreadsheet: {exc}") from exc

    try:
        ws = wb.worksheets[0]
        rows = ws.iter_rows(values_only=True)
        header = next(rows, None)
        if not header:
            return []

        columns = [str(h).strip() if h is not None else None for h in header]
        records = []
        for values in rows:
            if values is None or all(v is None or (isinstance(v, str) and not v.strip()) for v in values):
                continue
            records.append(
                {col: val for col, val in zip(columns, values) if col}
            )
        return records
    finally:
        wb.close()
