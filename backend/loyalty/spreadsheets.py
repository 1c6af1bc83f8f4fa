import io
import re
from datetime import date
from decimal import Decimal, InvalidOperation

import pandas as pd
from django.conf import settings
from django.http import HttpResponse

from .exceptions import InvalidUpload

SPREADSHEET_EXTENSIONS = ("xlsx", "xls")
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")


def _normalize_header(value) -> str:
    return str(value).strip().lower().replace(" ", "_")


def read_spreadsheet(upload, required_columns) -> list[dict]:
    """Parse an uploaded .xlsx/.xls file into row dicts keyed by normalized header."""
    if upload is None:
        raise InvalidUpload("file is required")
    extension = upload.name.rsplit(".", 1)[-1].lower() if "." in upload.name else ""
    if extension not in SPREADSHEET_EXTENSIONS:
        raise InvalidUpload("Only .xlsx or .xls files are supported")
    if upload.size > settings.MAX_SPREADSHEET_UPLOAD_SIZE:
        raise InvalidUpload(
            f"File too large, maximum is {settings.MAX_SPREADSHEET_UPLOAD_SIZE // (1024 * 1024)} MB"
        )

    try:
        df = pd.read_excel(io.BytesIO(upload.read()), dtype=str).fillna("")
    except ValueError as exc:
        raise InvalidUpload(f"Could not read spreadsheet: {exc}") from exc

    df.columns = [_normalize_header(col) for col in df.columns]
    missing = [col for col in required_columns if col not in df.columns]
    if missing:
        raise InvalidUpload(f"Missing required columns: {', '.join(missing)}")
    return df.to_dict("records")


def write_spreadsheet(rows: list[dict], sheet_name: str) -> bytes:
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, index=False, sheet_name=sheet_name)
    return output.getvalue()


def parse_decimal(value) -> Decimal | None:
    text = str(value).strip().replace(",", "")
    if not text:
        return None
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def parse_int(value) -> int | None:
    number = parse_decimal(value)
    if number is None or number != number.to_integral_value():
        return None
    return int(number)


def parse_date(value) -> date | None:
    """ISO dates (also Excel cells read as '2024-05-01 00:00:00') or day-first dates like 01/05/2024."""
    text = str(value).strip()
    if not text:
        return None
    try:
        if ISO_DATE.match(text):
            parsed = pd.to_datetime(text[:10], format="%Y-%m-%d")
        else:
            parsed = pd.to_datetime(text, dayfirst=True)
    except (ValueError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    return parsed.date()


def xlsx_response(content: bytes, filename: str) -> HttpResponse:
    response = HttpResponse(content, content_type=XLSX_CONTENT_TYPE)
    response["Content-Disposition"] = f"attachment; filename=\"{filename}\""
    return response
