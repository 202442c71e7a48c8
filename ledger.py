"""
ledger.py
Payment ledger (due amount, itemized payments, derived totals) and the
1-to-3 installment plan.

The plan is an intended schedule only: it is never checked against the
payments actually recorded.
"""

from __future__ import annotations

from collections.abc import Mapping

from models import MAX_PLAN_ENTRIES, LedgerTotals, Payment, PlanEntry
from utils import ValidationError, format_payment_date, normalize_amount, text_from_value


# ---------- payments ----------

def clone_payments(payments) -> list[dict]:
    """Copy of a payment list with every entry normalized."""
    if not isinstance(payments, (list, tuple)):
        return []
    cloned = []
    for payment in payments:
        if not isinstance(payment, Mapping):
            continue
        cloned.append(
            Payment(
                date=format_payment_date(payment.get("date")),
                amount=normalize_amount(payment.get("amount")),
                method=text_from_value(payment.get("method")),
            ).to_dict()
        )
    return cloned


def compute_totals(due, payments) -> LedgerTotals:
    total_due = normalize_amount(due)
    total_paid = normalize_amount(sum(normalize_amount(p.get("amount")) for p in payments))
    remaining = normalize_amount(total_due - total_paid)
    return LedgerTotals(total_due=total_due, total_paid=total_paid, remaining=remaining)


def _present(value) -> bool:
    return value is not None and str(value).strip() != ""


def legacy_paid_amount(record: Mapping, due: float) -> float | None:
    """
    Paid amount recorded by the old single-field model, if any.

    Records written before payments were itemized only carry
    remainingBalance (or totalPaid). The synthetic paid figure is
    due - remainingBalance when positive.
    """
    balance = record.get("remainingBalance")
    if not _present(balance):
        balance = record.get("remaining")
    if _present(balance):
        paid = normalize_amount(due - normalize_amount(balance))
        return paid if paid > 0 else None

    paid = normalize_amount(record.get("totalPaid"))
    return paid if paid > 0 else None


def resolve_totals(due, payments: list[dict], legacy_paid: float | None = None) -> LedgerTotals:
    """Totals from the payments, or from a legacy paid figure when there are none."""
    if payments or legacy_paid is None:
        return compute_totals(due, payments)
    return compute_totals(due, [{"amount": legacy_paid}])


def add_payment(payments: list[dict], pay_date, amount, method: str = "") -> list[dict]:
    if not pay_date or amount in (None, ""):
        raise ValidationError("Merci de renseigner la date et le montant du paiement.")
    value = normalize_amount(amount)
    if value <= 0:
        raise ValidationError("Le montant doit être supérieur à zéro.")

    entry = Payment(date=format_payment_date(pay_date), amount=value, method=method or "")
    return clone_payments(payments) + [entry.to_dict()]


def remove_payment(payments: list[dict], index: int) -> list[dict]:
    cloned = clone_payments(payments)
    if 0 <= index < len(cloned):
        del cloned[index]
    return cloned


# ---------- installment plan ----------

def clamp_plan_count(value) -> int:
    try:
        count = int(str(value).strip())
    except (TypeError, ValueError):
        try:
            count = int(float(str(value).strip()))
        except (TypeError, ValueError, OverflowError):
            return 1
    return min(max(count, 1), MAX_PLAN_ENTRIES)


def _entry_index(entry) -> int | None:
    try:
        return int(entry.get("index"))
    except (TypeError, ValueError, OverflowError):
        return None


def build_plan(count, raw_entries) -> list[dict]:
    """Plan entries 1..count; raw entries beyond count are dropped."""
    count = clamp_plan_count(count)
    by_index: dict[int, Mapping] = {}
    for entry in raw_entries or []:
        if isinstance(entry, Mapping):
            index = _entry_index(entry)
            if index is not None and index not in by_index:
                by_index[index] = entry

    plan = []
    for index in range(1, count + 1):
        entry = by_index.get(index, {})
        due_date = entry.get("dueDate") or entry.get("date") or ""
        plan.append(
            PlanEntry(
                index=index,
                amount=normalize_amount(entry.get("amount")),
                dueDate=text_from_value(due_date),
            ).to_dict()
        )
    return plan


def plan_fields(plan: list[dict]) -> dict:
    """Legacy payment1..payment3 mirror fields for a plan."""
    fields = {}
    by_index = {entry["index"]: entry for entry in plan}
    for index in range(1, MAX_PLAN_ENTRIES + 1):
        entry = by_index.get(index)
        due_date = entry["dueDate"] if entry else ""
        fields[f"payment{index}"] = due_date
        fields[f"payment{index}Amount"] = entry["amount"] if entry else 0.0
        fields[f"payment{index}Date"] = due_date
    return fields
