import csv
import io
import logging
from typing import List

from openpyxl import load_workbook

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = ("csv", "txt", "xlsx")
TEMPLATE_HEADER = "Tracking Number"
TEMPLATE_SAMPLES = [
    "9405536207565275376438",
    "9405536207565275376439",
    "9405536207565275376440",
]


class UnsupportedUploadError(ValueError):
    pass


def file_extension(filename: str) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def _decode_text(content: bytes) -> str:
    # Try different encodings
    for encoding in ("utf-8-sig", "latin-1"):
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise UnsupportedUploadError("Unable to decode text file")


def _parse_delimited(content: bytes) -> List[str]:
    values = []
    for row in csv.reader(io.StringIO(_decode_text(content))):
        if not row:
            continue
        first = row[0].strip()
        if first:
            values.append(first)
    return values


# Excel stores numbers as doubles, exact only up to 15 significant digits
MAX_EXACT_NUMERIC_DIGITS = 15


def _numeric_cell_text(cell, row_number: int) -> str:
    if isinstance(cell, float) and not cell.is_integer():
        return str(cell)
    if abs(cell) >= 10 ** MAX_EXACT_NUMERIC_DIGITS:
        raise UnsupportedUploadError(
            f"Cell A{row_number} holds a number too long for Excel to store exactly. "
            "Format the tracking number column as Text and upload again"
        )
    return format(cell, ".0f") if isinstance(cell, float) else str(cell)


def _parse_xlsx(content: bytes) -> List[str]:
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as exc:
        raise UnsupportedUploadError(f"Failed to read Excel file: {exc}") from exc

    try:
        sheet = workbook.worksheets[0]
        values = []
        for row_number, row in enumerate(sheet.iter_rows(min_col=1, max_col=1, values_only=True), start=1):
            cell = row[0] if row else None
            if cell is None:
                continue
            if isinstance(cell, (int, float)) and not isinstance(cell, bool):
                text = _numeric_cell_text(cell, row_number)
            else:
                text = str(cell).strip()
            if text:
                values.append(text)
        return values
    finally:
        workbook.close()


def parse_tracking_upload(filename: str, content: bytes) -> List[str]:
    """
    Extract raw tracking number candidates from an uploaded file.

    .csv and .txt files contribute the first cell of every non-empty line,
    .xlsx files the first column of the first sheet. Values are returned
    as-is (trimmed); validation happens during ingest.
    """
    extension = file_extension(filename)
    if extension in ("csv", "txt"):
        values = _parse_delimited(content)
    elif extension == "xlsx":
        values = _parse_xlsx(content)
    else:
        raise UnsupportedUploadError(
            f"Unsupported file format '{extension or filename}'. Please use .xlsx, .csv, or .txt files"
        )
    logger.debug(f"Extracted {len(values)} candidates from {filename}")
    return values


def build_csv_template() -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow([TEMPLATE_HEADER])
    for sample in TEMPLATE_SAMPLES:
        writer.writerow([sample])
    return buffer.getvalue()
