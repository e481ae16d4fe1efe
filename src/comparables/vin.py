from __future__ import annotations

import re
from dataclasses import dataclass


_YEAR_CODE_MAP = {
    "Y": 2000,
    "1": 2001,
    "2": 2002,
    "3": 2003,
    "4": 2004,
    "5": 2005,
    "6": 2006,
    "7": 2007,
    "8": 2008,
    "9": 2009,
    "A": 2010,
    "B": 2011,
    "C": 2012,
    "D": 2013,
    "E": 2014,
    "F": 2015,
    "G": 2016,
    "H": 2017,
    "J": 2018,
    "K": 2019,
    "L": 2020,
    "M": 2021,
    "N": 2022,
    "P": 2023,
    "R": 2024,
    "S": 2025,
    "T": 2026,
}

_TRANSLITERATION = {
    **{str(d): d for d in range(10)},
    "A": 1, "B": 2, "C": 3, "D": 4, "E": 5, "F": 6, "G": 7, "H": 8,
    "J": 1, "K": 2, "L": 3, "M": 4, "N": 5, "P": 7, "R": 9,
    "S": 2, "T": 3, "U": 4, "V": 5, "W": 6, "X": 7, "Y": 8, "Z": 9,
}

_WEIGHTS = (8, 7, 6, 5, 4, 3, 2, 10, 0, 9, 8, 7, 6, 5, 4, 3, 2)

# I, O and Q are never used in a VIN.
_VIN_PATTERN = re.compile(r"^[A-HJ-NPR-Z0-9]{17}$", re.IGNORECASE)


@dataclass(frozen=True)
class VinValidation:
    vin: str
    valid: bool
    error: str | None = None


def sanitize_vin(vin: str) -> str:
    return re.sub(r"\s+", "", vin or "").upper()


def is_valid_vin_format(vin: str) -> bool:
    return bool(vin) and _VIN_PATTERN.match(vin) is not None


def calculate_check_digit(vin: str) -> str | None:
    vin = vin.upper()
    if len(vin) != 17:
        return None
    total = 0
    for char, weight in zip(vin, _WEIGHTS):
        value = _TRANSLITERATION.get(char)
        if value is None:
            return None
        total += value * weight
    remainder = total % 11
    return "X" if remainder == 10 else str(remainder)


def is_valid_vin_checksum(vin: str) -> bool:
    if not is_valid_vin_format(vin):
        return False
    return calculate_check_digit(vin) == vin[8].upper()


def validate_vin(vin: str) -> VinValidation:
    sanitized = sanitize_vin(vin)
    if not sanitized:
        return VinValidation(sanitized, False, "VIN is required")
    if len(sanitized) != 17:
        return VinValidation(sanitized, False, "VIN must be exactly 17 characters")
    if not is_valid_vin_format(sanitized):
        return VinValidation(sanitized, False, "VIN contains invalid characters (I, O, Q not allowed)")
    if not is_valid_vin_checksum(sanitized):
        return VinValidation(sanitized, False, "Invalid VIN checksum - please verify the VIN")
    return VinValidation(sanitized, True)


def decode_model_year(vin: str) -> int | None:
    """Model year from the 10th character; the 30-year code cycle resolves to 2000+."""
    sanitized = sanitize_vin(vin)
    if len(sanitized) < 10:
        return None
    return _YEAR_CODE_MAP.get(sanitized[9])
