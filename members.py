"""
members.py
Member normalizer and the member-level operations every screen shares
(new-member form, edit form, flags, search, dashboard figures).

Every entry point (seed load, forms, CSV import, admin screen) funnels its
records through normalize_member so all screens see the same shape and the
same arithmetic.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from loguru import logger

import config
import ledger
from models import BOOLEAN_FIELDS, MAX_PLAN_ENTRIES, MEMBER_STATUSES, TEXT_FIELDS
from utils import (
    NotFoundError,
    ValidationError,
    boolean_from_value,
    generate_id,
    generate_membership_number,
    normalize_amount,
    now_iso,
    text_from_value,
)


def _plan_source(record: Mapping) -> list[dict]:
    """
    Structured plan entries merged with the legacy paymentN triplets.

    A structured entry wins field by field; the legacy fields only fill
    what it leaves empty.
    """
    plan = record.get("paymentPlan")
    structured = {}
    if isinstance(plan, (list, tuple)):
        for entry in plan:
            if isinstance(entry, Mapping):
                try:
                    index = int(entry.get("index"))
                except (TypeError, ValueError, OverflowError):
                    continue
                structured.setdefault(index, entry)

    merged = []
    for index in range(1, MAX_PLAN_ENTRIES + 1):
        entry = structured.get(index, {})
        amount = entry.get("amount")
        if amount is None:
            amount = record.get(f"payment{index}Amount")
        due_date = (
            entry.get("dueDate")
            or entry.get("date")
            or record.get(f"payment{index}Date")
            or record.get(f"payment{index}")
            or ""
        )
        merged.append({"index": index, "amount": amount, "dueDate": due_date})
    return merged


def _plan_count(record: Mapping) -> int:
    plan = record.get("paymentPlan")
    plan_length = len(plan) if isinstance(plan, (list, tuple)) else 0
    explicit = record.get("paymentCount")
    if explicit in (None, "", 0, "0"):
        explicit = None
    return ledger.clamp_plan_count(explicit or plan_length or 1)


def normalize_member(raw) -> dict:
    """
    Canonical member record built from raw fields.

    Pure and idempotent: the input is not modified and normalizing the
    result again yields the same record. Fields that cannot be coerced fall
    back to 0, "" or False; this function does not raise.
    """
    member = dict(raw) if isinstance(raw, Mapping) else {}

    for field in BOOLEAN_FIELDS:
        member[field] = boolean_from_value(member.get(field))

    due = normalize_amount(member.get("passSportAmount"))
    member["passSportAmount"] = due

    payments = ledger.clone_payments(member.get("payments"))
    legacy_paid = None if payments else ledger.legacy_paid_amount(member, due)
    member["payments"] = payments
    member.update(ledger.resolve_totals(due, payments, legacy_paid).to_fields())

    count = _plan_count(member)
    plan = ledger.build_plan(count, _plan_source(member))
    member["paymentCount"] = count
    member["paymentPlan"] = plan
    member.update(ledger.plan_fields(plan))

    for field in TEXT_FIELDS:
        member[field] = text_from_value(member.get(field))
    if not member["paymentMethod"] and payments:
        member["paymentMethod"] = payments[-1]["method"]

    status = text_from_value(member.get("status")).strip().lower()
    member["status"] = status if status in MEMBER_STATUSES else "active"
    member["role"] = text_from_value(member.get("role")) or config.DEFAULT_MEMBER_ROLE

    member["id"] = text_from_value(member.get("id")).strip()
    if not member["id"]:
        member["id"] = generate_id("local")
        logger.debug("Assigned id {} to member {}", member["id"], member["membershipNumber"] or "(new)")
    return member


def normalize_members(records) -> list[dict]:
    if not isinstance(records, (list, tuple)):
        return []
    return [normalize_member(r) for r in records]


def find_member(members: list[dict], member_id: str) -> dict:
    for member in members:
        if member.get("id") == member_id:
            return member
    raise NotFoundError("Adhérent introuvable.")


# ---------- forms ----------

def _form_plan(payload: Mapping) -> list[dict]:
    entries = payload.get("paymentPlan")
    if isinstance(entries, (list, tuple)):
        return list(entries)
    return [
        {
            "index": index,
            "amount": payload.get(f"payment{index}Amount"),
            "dueDate": payload.get(f"payment{index}Date") or "",
        }
        for index in range(1, MAX_PLAN_ENTRIES + 1)
    ]


def build_member(payload: Mapping, members: list[dict], now: str | None = None) -> dict:
    """New member from the registration form."""
    now = now or now_iso()
    count = ledger.clamp_plan_count(payload.get("paymentCount") or 1)
    record = dict(payload)
    record.update(
        {
            "id": payload.get("id") or generate_id("local"),
            "membershipNumber": payload.get("membershipNumber") or generate_membership_number(members),
            "status": payload.get("status") or "active",
            "category": payload.get("category") or "U7",
            "imageRights": payload.get("imageRights") or "Non demande",
            "role": payload.get("role") or config.DEFAULT_MEMBER_ROLE,
            "payments": ledger.clone_payments(payload.get("payments")),
            "paymentCount": count,
            "paymentPlan": ledger.build_plan(count, _form_plan(payload)),
            "createdAt": payload.get("createdAt") or now,
            "updatedAt": now,
        }
    )
    # totals come from the itemized payments only, never from stale form fields
    for field in ("totalDue", "totalPaid", "remaining", "remainingBalance"):
        record.pop(field, None)
    return normalize_member(record)


_EDITABLE_FIELDS = (
    "lastName",
    "firstName",
    "birthdate",
    "gender",
    "phone",
    "category",
    "address",
    "email",
    "parentLastName",
    "parentFirstName",
    "parentPhone",
    "imageRights",
    "injury",
    "photo",
    "passSportReference",
    "assuranceReference",
)


def apply_member_edit(member: Mapping, payload: Mapping, payments: list[dict], now: str | None = None) -> dict:
    """Member updated from the edit form and its draft payment list."""
    updated = dict(member)
    updated["status"] = payload.get("status") or member.get("status")
    for field in _EDITABLE_FIELDS:
        updated[field] = payload.get(field) or ""
    updated["imageRights"] = updated["imageRights"] or "Non demande"
    for field in BOOLEAN_FIELDS:
        updated[field] = boolean_from_value(payload.get(field))
    updated["passSportAmount"] = normalize_amount(payload.get("passSportAmount"))

    drafts = ledger.clone_payments(payments)
    totals = ledger.compute_totals(updated["passSportAmount"], drafts)
    updated["payments"] = drafts
    updated.update(totals.to_fields())

    count = ledger.clamp_plan_count(payload.get("paymentCount") or 1)
    plan = ledger.build_plan(count, _form_plan(payload))
    updated["paymentCount"] = count
    updated["paymentPlan"] = plan
    updated.update(ledger.plan_fields(plan))

    updated["paymentMethod"] = (drafts[-1]["method"] if drafts else "") or member.get("paymentMethod") or ""
    updated["updatedAt"] = now or now_iso()
    return normalize_member(updated)


def with_payments(member: Mapping, payments: list[dict], now: str | None = None) -> dict:
    """Member with its payment list replaced and totals recomputed."""
    updated = dict(member)
    drafts = ledger.clone_payments(payments)
    updated["payments"] = drafts
    updated.update(ledger.compute_totals(updated.get("passSportAmount"), drafts).to_fields())
    if drafts and drafts[-1]["method"]:
        updated["paymentMethod"] = drafts[-1]["method"]
    updated["updatedAt"] = now or now_iso()
    return normalize_member(updated)


def set_flag(member: Mapping, field: str, value: bool | None = None, now: str | None = None) -> dict:
    if field not in BOOLEAN_FIELDS:
        raise ValidationError(f"Champ inconnu : {field}")
    updated = dict(member)
    updated[field] = (not boolean_from_value(member.get(field))) if value is None else bool(value)
    updated["updatedAt"] = now or now_iso()
    return normalize_member(updated)


def set_status(member: Mapping, status: str, now: str | None = None) -> dict:
    updated = dict(member)
    updated["status"] = status
    updated["updatedAt"] = now or now_iso()
    return normalize_member(updated)


# ---------- search ----------

def filter_members(members: list[dict], search: str = "", category: str = "all", status: str = "all") -> list[dict]:
    needle = (search or "").strip().lower()
    result = []
    for member in members:
        if category != "all" and (member.get("category") or "").lower() != category.lower():
            continue
        if status != "all" and (member.get("status") or "").lower() != status.lower():
            continue
        fields = (member.get("lastName"), member.get("firstName"), member.get("phone"), member.get("category"))
        if needle and not any(needle in (f or "").lower() for f in fields):
            continue
        result.append(member)
    return result


def _collapse(value) -> str:
    return re.sub(r"\s+", " ", str(value or "")).strip().lower()


def match_members(query: str, members: list[dict]) -> list[dict]:
    """Verification search over names, membership number, phone and email."""
    needle = _collapse(query)
    if not needle:
        return []
    keys = ("firstName", "lastName", "membershipNumber", "phone", "email")
    return [m for m in members if any(needle in _collapse(m.get(k)) for k in keys)]


# ---------- dashboard ----------

def compute_stats(members: list[dict]) -> dict:
    summary = {
        "total": len(members),
        "active": 0,
        "inactive": 0,
        "paid": 0,
        "partial": 0,
        "unpaid_amount": 0.0,
        "received_amount": 0.0,
    }
    for member in members:
        status = (member.get("status") or "").lower()
        if status == "active":
            summary["active"] += 1
        elif status == "inactive":
            summary["inactive"] += 1

        due = normalize_amount(member.get("totalDue", member.get("passSportAmount")))
        paid = normalize_amount(member.get("totalPaid"))
        remaining = normalize_amount(member.get("remaining", member.get("remainingBalance")))

        summary["received_amount"] += paid
        if remaining > 0:
            summary["unpaid_amount"] += remaining
        if due > 0:
            if remaining <= 0:
                summary["paid"] += 1
            elif paid > 0:
                summary["partial"] += 1

    summary["unpaid_amount"] = normalize_amount(summary["unpaid_amount"])
    summary["received_amount"] = normalize_amount(summary["received_amount"])
    return summary
