import csv
import io
from typing import Iterable, Sequence, Union

from .models import ImportRow

CSV_TEMPLATE = "Name,RollNo,Section\nJohn Doe,101,A\nJane Smith,102,B\n"


def parse_roster_csv(text: str) -> list[ImportRow]:
    """Parse ``Name,RollNo,Section`` CSV text; the first line is always a header."""
    reader = csv.reader(io.StringIO(text))
    next(reader, None)
    rows = []
    for record in reader:
        if not record or not any(cell.strip() for cell in record):
            continue
        rows.append(to_import_row(record))
    return rows


def to_import_row(row: Union[ImportRow, dict, Sequence]) -> ImportRow:
    if isinstance(row, ImportRow):
        return row
    if isinstance(row, dict):
        return ImportRow(**row)
    cells = [str(cell).strip() if cell is not None else None for cell in list(row)[:3]]
    cells += [None] * (3 - len(cells))
    name, roll_no, section = cells
    return ImportRow(name=name or None, roll_no=roll_no or None, section=section or None)


def normalize_rows(rows: Iterable) -> list[ImportRow]:
    return [to_import_row(row) for row in rows]
