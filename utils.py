"""
utils.py
Validation errors, value coercion (amounts, dates, flags), identifiers.
"""

from __future__ import annotations

import math
import re
import uuid
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from models import PAYMENT_METHODS


class PanelError(Exception):
    """Base class for errors shown to the operator as a message."""


class ValidationError(PanelError):
    """Empty required field, duplicate username, bad amount..."""


class NotFoundError(PanelError):
    """The referenced member or account is no longer present."""


class ImportFailedError(PanelError):
    """The import document is unreadable or holds no usable rows."""


_CENT = Decimal("0.01")
_LEADING_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_TRUE_VALUES = {"true", "yes", "oui", "1"}


def today_iso() -> str:
    return date.today().isoformat()


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(d: str) -> date:
    return date.fromisoformat(d[:10])


def normalize_amount(value) -> float:
    """
    Money value rounded half-up to 2 decimals.

    Accepts numbers or text using a decimal comma or point ("12,5", "12.50 €").
    Anything that does not start with a number yields 0.0.
    """
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        try:
            numeric = float(value)
        except OverflowError:
            return 0.0
    else:
        text = re.sub(r"[\s\u00a0\u202f]", "", str(value)).replace(",", ".", 1)
        match = _LEADING_NUMBER.match(text)
        if not match:
            return 0.0
        numeric = float(match.group(0))
    if not math.isfinite(numeric):
        return 0.0
    try:
        return float(Decimal(repr(numeric)).quantize(_CENT, rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return round(numeric, 2)


def boolean_from_value(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_VALUES


def text_from_value(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value)


def format_payment_date(value) -> str:
    """YYYY-MM-DD -> DD/MM/YYYY; DD/MM/YYYY and unknown shapes pass through."""
    if value is None:
        return ""
    text = str(value).strip()
    if not text or "/" in text:
        return text
    match = _ISO_DATE.match(text)
    if match:
        year, month, day = match.groups()
        return f"{day}/{month}/{year}"
    return text


def format_currency(value) -> str:
    if value is None or value == "":
        return "--"
    amount = normalize_amount(value)
    # fr-FR style: 1 234,50 €
    return f"{amount:,.2f}".replace(",", " ").replace(".", ",") + " €"


def payment_method_label(method: str | None) -> str:
    return PAYMENT_METHODS.get(method or "", method or "Autre")


def compute_age(birthdate: str | None, today: date | None = None) -> str:
    if not birthdate:
        return "--"
    try:
        birth = parse_iso(birthdate)
    except ValueError:
        return "--"
    today = today or date.today()
    age = today.year - birth.year - ((today.month, today.day) < (birth.month, birth.day))
    return "--" if age < 0 else str(age)


def generate_id(prefix: str | None = None) -> str:
    token = uuid.uuid4().hex
    return f"{prefix}-{token}" if prefix else token


def generate_membership_number(members: list[dict], year: int | None = None) -> str:
    """Next free QBBC-<year>-<seq> number, seq zero-padded to 3 digits."""
    year = year or date.today().year
    prefix = f"QBBC-{year}-"
    existing = {m.get("membershipNumber") for m in members}
    sequence = []
    for number in existing:
        if isinstance(number, str) and number.startswith(prefix):
            tail = number.rsplit("-", 1)[-1]
            if tail.isdigit():
                sequence.append(int(tail))

    nxt = max(sequence) + 1 if sequence else 1
    candidate = f"{prefix}{nxt:03d}"
    while candidate in existing:
        nxt += 1
        candidate = f"{prefix}{nxt:03d}"
    return candidate


def member_display_name(member: dict) -> str:
    name = f"{member.get('firstName') or ''} {member.get('lastName') or ''}".strip()
    return name or member.get("username") or member.get("email") or "Profil membre"
