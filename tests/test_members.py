"""
Unit tests for the member normalizer and member-level operations
"""

import copy

import pytest

import members as member_ops
from utils import NotFoundError, ValidationError

NOW = "2024-11-01T10:00:00.000Z"


class TestNormalizeMember:
    """Canonical member records"""

    def test_totals_from_payments(self, sample_member):
        member = member_ops.normalize_member(sample_member)
        assert member["totalDue"] == 100.0
        assert member["totalPaid"] == 50.0
        assert member["remaining"] == 50.0
        assert member["remainingBalance"] == 50.0
        assert member["payments"][0] == {"date": "01/09/2024", "amount": 30.0, "method": "Cash"}

    def test_payment_method_defaults_to_last_payment(self, sample_member):
        assert member_ops.normalize_member(sample_member)["paymentMethod"] == "Check"

    def test_idempotent(self, sample_member, legacy_member):
        for raw in (sample_member, legacy_member, {}):
            once = member_ops.normalize_member(raw)
            assert member_ops.normalize_member(once) == once

    def test_input_not_mutated(self, sample_member):
        before = copy.deepcopy(sample_member)
        member_ops.normalize_member(sample_member)
        assert sample_member == before

    def test_legacy_balance(self, legacy_member):
        member = member_ops.normalize_member(legacy_member)
        assert member["payments"] == []
        assert member["totalPaid"] == 150.0
        assert member["remaining"] == 50.0

    def test_legacy_plan_fields(self, legacy_member):
        member = member_ops.normalize_member(legacy_member)
        assert member["paymentCount"] == 2
        assert member["paymentPlan"] == [
            {"index": 1, "amount": 100.0, "dueDate": "2023-09-15"},
            {"index": 2, "amount": 0.0, "dueDate": ""},
        ]

    def test_structured_plan_wins_over_legacy(self):
        member = member_ops.normalize_member(
            {
                "paymentPlan": [{"index": 1, "amount": 70, "dueDate": "2024-09-01"}],
                "payment1Amount": 10,
                "payment1Date": "2020-01-01",
            }
        )
        assert member["paymentPlan"][0] == {"index": 1, "amount": 70.0, "dueDate": "2024-09-01"}
        assert member["payment1Amount"] == 70.0

    def test_defaults(self):
        member = member_ops.normalize_member({"status": "archived", "cni": "oui"})
        assert member["status"] == "active"
        assert member["role"] == "membre"
        assert member["cni"] is True
        assert member["insurance"] is False
        assert member["id"].startswith("local-")
        assert member["lastName"] == ""

    def test_non_mapping_input(self):
        assert member_ops.normalize_member(None)["payments"] == []
        assert member_ops.normalize_members("nope") == []

    def test_huge_amounts_and_infinite_plan_index(self):
        member = member_ops.normalize_member(
            {
                "passSportAmount": 10**400,
                "payments": [{"amount": 10**400, "date": "2024-09-01", "method": "Cash"}],
                "paymentPlan": [{"index": float("inf"), "amount": 10, "dueDate": "2024-09-01"}],
            }
        )
        assert member["totalDue"] == 0.0
        assert member["totalPaid"] == 0.0
        assert member["remaining"] == 0.0


class TestForms:
    """New-member and edit forms"""

    def test_build_member_defaults(self, sample_member):
        existing = [member_ops.normalize_member(sample_member)]
        member = member_ops.build_member({"lastName": "Guillou", "firstName": "Nina"}, existing, now=NOW)
        assert member["category"] == "U7"
        assert member["imageRights"] == "Non demande"
        assert member["role"] == "membre"
        assert member["status"] == "active"
        assert member["membershipNumber"].startswith("QBBC-")
        assert member["createdAt"] == NOW

    def test_build_member_ignores_stale_totals(self):
        member = member_ops.build_member(
            {"lastName": "A", "firstName": "B", "passSportAmount": 90, "totalPaid": 999, "remaining": 0}, []
        )
        assert member["totalPaid"] == 0.0
        assert member["remaining"] == 90.0

    def test_apply_member_edit(self, sample_member):
        member = member_ops.normalize_member(sample_member)
        payload = {**member, "phone": "07 00 00 00 00", "passSportAmount": "120", "paymentCount": 2}
        payments = member["payments"] + [{"date": "2024-11-01", "amount": 70, "method": "Card"}]
        updated = member_ops.apply_member_edit(member, payload, payments, now=NOW)
        assert updated["phone"] == "07 00 00 00 00"
        assert updated["totalDue"] == 120.0
        assert updated["totalPaid"] == 120.0
        assert updated["remaining"] == 0.0
        assert updated["paymentMethod"] == "Card"
        assert updated["paymentCount"] == 2
        assert updated["updatedAt"] == NOW

    def test_with_payments_clears_last_payment(self, sample_member):
        member = member_ops.normalize_member(sample_member)
        updated = member_ops.with_payments(member, [])
        assert updated["totalPaid"] == 0.0
        assert updated["remaining"] == 100.0

    def test_set_flag_toggles(self, sample_member):
        member = member_ops.normalize_member(sample_member)
        toggled = member_ops.set_flag(member, "insurance", now=NOW)
        assert toggled["insurance"] is True
        assert member_ops.set_flag(toggled, "insurance")["insurance"] is False
        assert member_ops.set_flag(member, "cni", value=True)["cni"] is True

    def test_set_flag_unknown_field(self, sample_member):
        with pytest.raises(ValidationError):
            member_ops.set_flag(sample_member, "lastName")

    def test_set_status(self, sample_member):
        assert member_ops.set_status(sample_member, "inactive")["status"] == "inactive"

    def test_find_member(self, sample_member):
        members = [member_ops.normalize_member(sample_member)]
        assert member_ops.find_member(members, "m-1")["lastName"] == "Martin"
        with pytest.raises(NotFoundError):
            member_ops.find_member(members, "absent")


class TestSearch:
    """List filters and verification search"""

    def _members(self, sample_member, legacy_member):
        return member_ops.normalize_members([sample_member, {**legacy_member, "category": "Senior", "status": "inactive"}])

    def test_filter_by_text(self, sample_member, legacy_member):
        result = member_ops.filter_members(self._members(sample_member, legacy_member), search="mart")
        assert [m["id"] for m in result] == ["m-1"]

    def test_filter_by_category_and_status(self, sample_member, legacy_member):
        members = self._members(sample_member, legacy_member)
        assert [m["id"] for m in member_ops.filter_members(members, category="senior")] == ["m-2"]
        assert [m["id"] for m in member_ops.filter_members(members, status="active")] == ["m-1"]

    def test_match_members(self, sample_member, legacy_member):
        members = self._members(sample_member, legacy_member)
        assert [m["id"] for m in member_ops.match_members("qbbc-2023-007", members)] == ["m-2"]
        assert [m["id"] for m in member_ops.match_members("06  12 34", members)] == ["m-1"]
        assert member_ops.match_members("   ", members) == []


class TestStats:
    """Dashboard figures"""

    def test_compute_stats(self, sample_member):
        members = member_ops.normalize_members(
            [
                sample_member,
                {"id": "p", "passSportAmount": 50, "payments": [{"date": "x", "amount": 50}]},
                {"id": "i", "status": "inactive", "passSportAmount": 80},
            ]
        )
        stats = member_ops.compute_stats(members)
        assert stats["total"] == 3
        assert stats["active"] == 2
        assert stats["inactive"] == 1
        assert stats["paid"] == 1
        assert stats["partial"] == 1
        assert stats["received_amount"] == 100.0
        assert stats["unpaid_amount"] == 130.0
