"""
codec.py
CSV export/import of the member collection (fixed column order, see
models.CSV_HEADERS).

Export writes ';'-separated text with quoted strings and JSON-encoded
payments/paymentPlan cells. Import accepts ';' or ',' documents, with or
without a full header, and rebuilds raw records ready for merge.merge_members.
"""

from __future__ import annotations

import csv
import io
import json
from datetime import date

import pandas as pd
from loguru import logger

from ledger import clamp_plan_count, clone_payments, compute_totals
from models import BOOLEAN_FIELDS, CSV_HEADERS, MAX_PLAN_ENTRIES
from utils import ImportFailedError, boolean_from_value, generate_id, normalize_amount

_UNREADABLE = "Import impossible. Vérifiez le format du fichier CSV."


# ---------- export ----------

def _cell(value):
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, ensure_ascii=False)
    return value


def export_members(members: list[dict]) -> str:
    rows = [[_cell(member.get(key)) for key in CSV_HEADERS] for member in members]
    df = pd.DataFrame(rows, columns=CSV_HEADERS)
    return df.to_csv(sep=";", index=False, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")


def members_to_csv_bytes(members: list[dict]) -> bytes:
    return export_members(members).encode("utf-8")


def export_filename(today: date | None = None) -> str:
    return f"qbbc_members_{(today or date.today()).isoformat()}.csv"


# ---------- import ----------

def decode_document(data) -> str:
    if isinstance(data, str):
        return data
    try:
        return bytes(data).decode("utf-8-sig")
    except (TypeError, ValueError) as exc:
        raise ImportFailedError(_UNREADABLE) from exc


def _parse_blob(value: str) -> list:
    if not value:
        return []
    try:
        parsed = json.loads(value)
    except (ValueError, RecursionError):
        logger.warning("Unreadable JSON cell ignored: {!r}", value[:40])
        return []
    return parsed if isinstance(parsed, list) else []


def _is_set(value) -> bool:
    return value is not None and str(value).strip() != ""


def _coerce_record(record: dict) -> dict:
    for field in BOOLEAN_FIELDS:
        record[field] = boolean_from_value(record.get(field))
    record["passSportAmount"] = normalize_amount(record.get("passSportAmount"))
    record["paymentCount"] = clamp_plan_count(record.get("paymentCount"))
    for index in range(1, MAX_PLAN_ENTRIES + 1):
        record[f"payment{index}Amount"] = normalize_amount(record.get(f"payment{index}Amount"))
        record[f"payment{index}Date"] = record.get(f"payment{index}Date") or record.get(f"payment{index}") or ""

    record["payments"] = clone_payments(_parse_blob(record.get("payments") or ""))
    record["paymentPlan"] = _parse_blob(record.get("paymentPlan") or "")

    explicit_paid = record.get("totalPaid")
    explicit_remaining = record.get("remaining")
    totals = compute_totals(record["passSportAmount"], record["payments"])
    total_due, total_paid, remaining = totals.total_due, totals.total_paid, totals.remaining
    if _is_set(explicit_paid):
        total_paid = normalize_amount(explicit_paid)
        remaining = normalize_amount(total_due - total_paid)
    if _is_set(explicit_remaining):
        remaining = normalize_amount(explicit_remaining)
        total_paid = normalize_amount(total_due - remaining)

    record["totalDue"] = total_due
    record["totalPaid"] = total_paid
    record["remaining"] = remaining
    record["remainingBalance"] = remaining
    record["id"] = record.get("id") or generate_id("import")
    return record


def _tokenize(content: str, delimiter: str) -> list[list[str]]:
    """Rows of tokens; quoted spans may hold the delimiter, doubled quotes and line breaks."""
    reader = csv.reader(io.StringIO(content, newline=""), delimiter=delimiter, quotechar='"', skipinitialspace=True)
    return [[token.strip() for token in row] for row in reader if any(token.strip() for token in row)]


def parse_csv_content(content: str) -> list[dict]:
    first_line = next((line for line in content.splitlines() if line.strip()), None)
    if first_line is None:
        return []

    delimiter = ";" if ";" in first_line else ","
    rows = _tokenize(content, delimiter)
    if not rows:
        return []
    header = [token.replace('"', "").strip() for token in rows[0]]
    # a short header means the file was written without (or with a broken) header
    columns = header if len(header) >= len(CSV_HEADERS) else CSV_HEADERS

    records = []
    for tokens in rows[1:]:
        record = {key: (tokens[i] if i < len(tokens) else "") for i, key in enumerate(columns)}
        records.append(_coerce_record(record))
    return records


def read_import(data) -> list[dict]:
    """
    Raw member records from an uploaded CSV document.

    Raises ImportFailedError when the document cannot be decoded or holds no
    rows; callers must not merge anything in that case.
    """
    text = decode_document(data)
    try:
        records = parse_csv_content(text)
    except csv.Error as exc:
        raise ImportFailedError(_UNREADABLE) from exc
    if not records:
        raise ImportFailedError("Aucune donnée trouvée dans le fichier.")
    logger.info("Parsed {} member rows from import", len(records))
    return records
