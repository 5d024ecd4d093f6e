"""Decode student profile facts from institute email addresses.

Addresses follow ``first[.middle].last.<branch><YY>@<domain>``, for example
``rahul.sharma.cse22@itbhu.ac.in``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional


BRANCH_MAP = {
    "cse": "CSE",
    "ece": "ECE",
    "eee": "EE",
    "ee": "EE",
    "me": "ME",
    "mec": "ME",
    "ce": "CE",
    "civil": "CE",
    "che": "CHE",
    "chem": "CHE",
    "mme": "MME",
    "met": "MME",
    "mse": "MSE",
    "bme": "BME",
    "phe": "PHE",
    "pharma": "PHARMA",
    "mnc": "MNC",
    "ep": "EP",
    "phy": "EP",
    "arch": "ARCH",
    "min": "Mining",
    "mining": "Mining",
    "cer": "CER",
    "bce": "BCE",
}

ACADEMIC_YEAR_START_MONTH = 7
MIN_YEAR_OF_STUDY = 1
MAX_YEAR_OF_STUDY = 5

_BRANCH_YEAR_PATTERN = re.compile(r"^([a-z]+)(\d{2})$")


@dataclass(frozen=True)
class ParsedProfile:
    name: str
    branch: str
    year: int
    admission_year: int


def parse_institute_email(
    email: str,
    domain: str = "@itbhu.ac.in",
    today: Optional[date] = None,
) -> Optional[ParsedProfile]:
    """Return parsed profile facts, or None when the address does not match."""
    if not email:
        return None
    normalized = email.strip().lower()
    if not normalized.endswith(domain.lower()):
        return None

    parts = normalized.split("@", 1)[0].split(".")
    if len(parts) < 3 or any(not part for part in parts):
        return None

    match = _BRANCH_YEAR_PATTERN.match(parts[-1])
    if match is None:
        return None
    branch_code, year_digits = match.group(1), int(match.group(2))
    admission_year = 1900 + year_digits if year_digits >= 50 else 2000 + year_digits

    today = today or date.today()
    academic_year = today.year if today.month >= ACADEMIC_YEAR_START_MONTH else today.year - 1
    year_of_study = academic_year - admission_year + 1
    year_of_study = max(MIN_YEAR_OF_STUDY, min(MAX_YEAR_OF_STUDY, year_of_study))

    return ParsedProfile(
        name=" ".join(part.capitalize() for part in parts[:-1]),
        branch=BRANCH_MAP.get(branch_code, branch_code.upper()),
        year=year_of_study,
        admission_year=admission_year,
    )
