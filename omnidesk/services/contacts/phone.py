"""Phone number helpers (Brazilian numbering plan)."""

import re

_NON_DIGITS = re.compile(r"\D")

COUNTRY_CODE = "55"
DEFAULT_AREA_CODE = "11"

VALID_AREA_CODES = frozenset(
    {
        "11", "12", "13", "14", "15", "16", "17", "18", "19",  # SP
        "21", "22", "24",  # RJ
        "27", "28",  # ES
        "31", "32", "33", "34", "35", "37", "38",  # MG
        "41", "42", "43", "44", "45", "46",  # PR
        "47", "48", "49",  # SC
        "51", "53", "54", "55",  # RS
        "61",  # DF
        "62", "64",  # GO
        "63",  # TO
        "65", "66",  # MT
        "67",  # MS
        "68",  # AC
        "69",  # RO
        "71", "73", "74", "75", "77",  # BA
        "79",  # SE
        "81", "87",  # PE
        "82",  # AL
        "83",  # PB
        "84",  # RN
        "85", "88",  # CE
        "86", "89",  # PI
        "91", "93", "94",  # PA
        "92", "97",  # AM
        "95",  # RR
        "96",  # AP
        "98", "99",  # MA
    }
)


def normalize_phone(raw: str) -> str:
    """Digits only; drops ``whatsapp:`` prefixes and ``@c.us`` suffixes."""
    value = raw.strip().removeprefix("whatsapp:")
    value = value.split("@", 1)[0]
    return _NON_DIGITS.sub("", value)


def national_number(raw: str) -> str:
    """Strip the country code and add the default area code to bare numbers."""
    digits = normalize_phone(raw)
    if digits.startswith(COUNTRY_CODE) and len(digits) > 11:
        return digits[len(COUNTRY_CODE):]
    if len(digits) == 9:
        return DEFAULT_AREA_CODE + digits
    return digits


def is_valid_brazilian_phone(raw: str) -> bool:
    """10 or 11 digits with a known area code; 11-digit numbers are mobiles."""
    national = national_number(raw)
    if not re.fullmatch(r"\d{10,11}", national):
        return False
    if len(national) == 11 and national[2] != "9":
        return False
    return national[:2] in VALID_AREA_CODES


def format_brazilian_phone(raw: str) -> str:
    """Full international digits (``55`` + national number)."""
    return COUNTRY_CODE + national_number(raw)
