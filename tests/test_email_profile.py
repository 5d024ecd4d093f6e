from __future__ import annotations

from datetime import date

import pytest

from backend.domain.email_profile import parse_institute_email


def test_parses_name_branch_and_year() -> None:
    parsed = parse_institute_email("rahul.sharma.cse22@itbhu.ac.in", today=date(2024, 9, 1))
    assert parsed is not None
    assert parsed.name == "Rahul Sharma"
    assert parsed.branch == "CSE"
    assert parsed.admission_year == 2022
    assert parsed.year == 3


def test_academic_year_rolls_over_in_july() -> None:
    before = parse_institute_email("a.b.ece23@itbhu.ac.in", today=date(2024, 6, 30))
    after = parse_institute_email("a.b.ece23@itbhu.ac.in", today=date(2024, 7, 1))
    assert before.year == 1
    assert after.year == 2


def test_middle_names_are_kept() -> None:
    parsed = parse_institute_email("anna.maria.rao.me21@itbhu.ac.in", today=date(2023, 8, 1))
    assert parsed.name == "Anna Maria Rao"
    assert parsed.branch == "ME"


def test_unknown_branch_code_is_upper_cased() -> None:
    parsed = parse_institute_email("x.y.xyz24@itbhu.ac.in", today=date(2024, 8, 1))
    assert parsed.branch == "XYZ"


def test_year_of_study_is_clamped() -> None:
    old = parse_institute_email("x.y.cse10@itbhu.ac.in", today=date(2024, 8, 1))
    future = parse_institute_email("x.y.cse30@itbhu.ac.in", today=date(2024, 8, 1))
    assert old.year == 5
    assert future.year == 1


def test_two_digit_years_from_fifty_map_to_last_century() -> None:
    parsed = parse_institute_email("x.y.cse99@itbhu.ac.in", today=date(2024, 8, 1))
    assert parsed.admission_year == 1999


def test_address_is_case_insensitive() -> None:
    parsed = parse_institute_email("  Rahul.Sharma.CSE22@ITBHU.AC.IN ", today=date(2024, 9, 1))
    assert parsed.name == "Rahul Sharma"


@pytest.mark.parametrize(
    "email",
    [
        "",
        "rahul.cse22@itbhu.ac.in",
        "rahul.sharma.cse@itbhu.ac.in",
        "rahul.sharma.22@itbhu.ac.in",
        "rahul..cse22@itbhu.ac.in",
        "rahul.sharma.cse22@gmail.com",
    ],
)
def test_non_matching_addresses_return_none(email: str) -> None:
    assert parse_institute_email(email, today=date(2024, 9, 1)) is None
