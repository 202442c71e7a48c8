"""
Unit tests for amount, date and identifier helpers
"""

from datetime import date

import pytest

from utils import (
    boolean_from_value,
    compute_age,
    format_currency,
    format_payment_date,
    generate_membership_number,
    member_display_name,
    normalize_amount,
    payment_method_label,
)


class TestNormalizeAmount:
    """Money values rounded to cents"""

    def test_numbers(self):
        assert normalize_amount(12) == 12.0
        assert normalize_amount(12.345) == 12.35
        assert normalize_amount(-4.5) == -4.5

    def test_half_up_rounding(self):
        """2.675 rounds up, not to the nearest binary float"""
        assert normalize_amount(2.675) == 2.68
        assert normalize_amount("0,125") == 0.13

    def test_decimal_comma_and_currency_suffix(self):
        assert normalize_amount("12,5") == 12.5
        assert normalize_amount("12.50 €") == 12.5
        assert normalize_amount(" 1 250,00 ") == 1250.0

    def test_garbage_gives_zero(self):
        assert normalize_amount("abc") == 0.0
        assert normalize_amount("") == 0.0
        assert normalize_amount(None) == 0.0
        assert normalize_amount(True) == 0.0
        assert normalize_amount(float("nan")) == 0.0
        assert normalize_amount(float("inf")) == 0.0

    def test_huge_integer_gives_zero(self):
        assert normalize_amount(10**400) == 0.0
        assert normalize_amount(-(10**400)) == 0.0
        assert normalize_amount("1" * 400) == 0.0

    @pytest.mark.parametrize("value", [0, 19.99, "7,05", "100", 3.14159])
    def test_idempotent(self, value):
        once = normalize_amount(value)
        assert normalize_amount(once) == once


class TestBooleans:
    """Loose truthy values used by imports and seeds"""

    def test_truthy(self):
        for value in (True, "true", "TRUE", "yes", "oui", "1", 1):
            assert boolean_from_value(value) is True

    def test_falsy(self):
        for value in (False, None, "", "non", "false", "0", 0):
            assert boolean_from_value(value) is False


class TestDates:
    """Payment dates and ages"""

    def test_iso_date_converted(self):
        assert format_payment_date("2024-09-01") == "01/09/2024"

    def test_display_date_passes_through(self):
        assert format_payment_date("01/09/2024") == "01/09/2024"

    def test_empty_and_unknown(self):
        assert format_payment_date(None) == ""
        assert format_payment_date("") == ""
        assert format_payment_date("septembre") == "septembre"

    def test_date_object(self):
        assert format_payment_date(date(2024, 3, 5)) == "05/03/2024"

    def test_compute_age(self):
        assert compute_age("2010-06-15", today=date(2024, 6, 14)) == "13"
        assert compute_age("2010-06-15", today=date(2024, 6, 15)) == "14"
        assert compute_age("", today=date(2024, 1, 1)) == "--"
        assert compute_age("pas une date", today=date(2024, 1, 1)) == "--"


class TestFormatting:
    """Display helpers"""

    def test_currency(self):
        assert format_currency(1234.5) == "1 234,50 €"
        assert format_currency(None) == "--"

    def test_payment_method_label(self):
        assert payment_method_label("Cash") == "Espèces"
        assert payment_method_label("Check") == "Chèque"
        assert payment_method_label("Bitcoin") == "Bitcoin"
        assert payment_method_label("") == "Autre"

    def test_display_name(self):
        assert member_display_name({"firstName": "Lucas", "lastName": "Martin"}) == "Lucas Martin"
        assert member_display_name({"email": "x@example.fr"}) == "x@example.fr"
        assert member_display_name({}) == "Profil membre"


class TestMembershipNumber:
    """QBBC-<year>-<seq> numbering"""

    def test_first_number_of_the_year(self):
        assert generate_membership_number([], year=2025) == "QBBC-2025-001"

    def test_next_after_highest(self):
        members = [
            {"membershipNumber": "QBBC-2024-001"},
            {"membershipNumber": "QBBC-2024-007"},
            {"membershipNumber": "QBBC-2023-050"},
            {"membershipNumber": "autre"},
        ]
        assert generate_membership_number(members, year=2024) == "QBBC-2024-008"

    def test_other_years_ignored(self):
        members = [{"membershipNumber": "QBBC-2023-050"}]
        assert generate_membership_number(members, year=2024) == "QBBC-2024-001"
