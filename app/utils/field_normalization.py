"""Field sanitisation and comparison keys for policy data.

Sanitisers mirror what the entry form enforces while the user types, so
values arriving from the extraction service end up in the same shape as
hand-typed ones. ``normalize_key`` is for comparisons only and never
alters stored values.
"""

import re
from typing import Dict, List, Optional

_NON_ALNUM = re.compile(r"[^A-Z0-9]")
_NON_LETTER = re.compile(r"[^a-zA-Z\s]")
_NON_DIGIT = re.compile(r"\D")
_WHITESPACE = re.compile(r"\s+")

CONTACT_NUMBER_LENGTH = 10


def normalize_key(value: Optional[str]) -> str:
    """Trim and case-fold a value for identity comparisons."""
    if not value:
        return ""
    return value.strip().upper()


def title_case(text: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in text.lower().split(" "))


def sanitize_policy_number(value: str) -> str:
    return value.upper()


def sanitize_person_name(value: str) -> str:
    """Letters and spaces only, Title Cased (client and agent names)."""
    return title_case(_NON_LETTER.sub("", value))


def sanitize_vehicle_number(value: str) -> str:
    return _NON_ALNUM.sub("", value.upper())


def sanitize_contact_number(value: str) -> str:
    return _NON_DIGIT.sub("", value)[:CONTACT_NUMBER_LENGTH]


def contact_digits(value: Optional[str]) -> str:
    return _NON_DIGIT.sub("", value or "")


FIELD_SANITIZERS = {
    "policy_number": sanitize_policy_number,
    "client_name": sanitize_person_name,
    "agent_code": sanitize_person_name,
    "vehicle_number": sanitize_vehicle_number,
    "contact_number": sanitize_contact_number,
}


def sanitize_field(field_name: str, value):
    """Apply the entry-form rule for ``field_name``; other values pass through."""
    sanitizer = FIELD_SANITIZERS.get(field_name)
    if sanitizer is None or not isinstance(value, str):
        return value
    return sanitizer(value)


# Canonical insurer name -> spellings seen on policy documents
INSURER_VARIANTS: Dict[str, List[str]] = {
    "Cholamandalam": [
        "CHOLA", "CHOLA MS", "CHOLA MS GENERAL INSURANCE", "CHOLAMANDALAM MS",
        "CHOLAMANDALAM GENERAL INSURANCE", "CHOLAMANDALAM MS GENERAL INSURANCE COMPANY LTD",
        "CHOLAMANDALAM MS GENERAL INSURANCE CO LTD",
    ],
    "National": [
        "NATIONAL INS", "NATIONAL INSURANCE", "NATIONAL INSURANCE COMPANY",
        "NATIONAL INSURANCE COMPANY LTD", "NIC", "NATIONAL INSURANCE CO",
    ],
    "Iffco Tokio": [
        "IFFCO", "IFFCO TOKIO GENERAL INSURANCE", "IFFCO TOKIO GENERAL",
        "IFFCO TOKIO GENERAL INSURANCE COMPANY", "IFFCO TOKIO GIC",
    ],
    "Bajaj Allianz Life": ["BAJAJ LIFE", "BAJAJ ALLIANZ LIFE", "BAJAJ ALLIANZ LIFE INSURANCE"],
    "Bajaj Allianz": ["BAJAJ", "BAJAJ ALLIANZ GENERAL INSURANCE", "BAJAJ ALLIANZ GIC"],
    "HDFC Life": ["HDFC LIFE INSURANCE", "HDFC STANDARD LIFE"],
    "HDFC Ergo": ["HDFC", "HDFC ERGO GENERAL INSURANCE"],
    "ICICI Prudential": ["ICICI PRU", "ICICI PRUDENTIAL LIFE"],
    "ICICI Lombard": ["ICICI", "ICICI LOMBARD GENERAL INSURANCE", "ICICI LOMBARD GIC"],
    "New India Assurance": ["NEW INDIA", "NIA", "NEW INDIA ASSURANCE CO"],
    "Oriental Insurance": ["ORIENTAL", "OIC", "ORIENTAL INSURANCE CO"],
    "United India": ["UII", "UNITED INDIA INSURANCE", "UNITED INDIA INSURANCE CO"],
    "Tata AIG": ["TATA", "TATA AIG GENERAL INSURANCE"],
    "Reliance General": ["RELIANCE", "RELIANCE GENERAL INSURANCE"],
    "Royal Sundaram": ["ROYAL", "ROYAL SUNDARAM GENERAL INSURANCE"],
    "SBI Life": ["SBI LIFE INSURANCE"],
    "SBI General": ["SBI", "SBI GENERAL INSURANCE"],
    "Future Generali": ["FUTURE", "FUTURE GENERALI INDIA INSURANCE"],
    "Digit Insurance": ["DIGIT", "GO DIGIT", "DIGIT GENERAL INSURANCE"],
    "Acko": ["ACKO GENERAL INSURANCE"],
    "Kotak Mahindra": ["KOTAK", "KOTAK GENERAL INSURANCE"],
    "Liberty General": ["LIBERTY", "LIBERTY VIDEOCON"],
    "Magma HDI": ["MAGMA", "HDI GLOBAL"],
    "Shriram General": ["SHRIRAM", "SHRIRAM GENERAL INSURANCE"],
    "Aditya Birla Health": [
        "ADITYA BIRLA", "ADITYA BIRLA CAPITAL HEALTH", "ADITYA BIRLA HEALTH INSURANCE",
        "ADITYA BIRLA CAPITAL HEALTH INSURANCE", "ADITYA BIRLA CAPITAL", "ABSLI", "ABHI",
    ],
    "Max Life": ["MAX", "MAX LIFE INSURANCE"],
    "LIC": ["LIFE INSURANCE CORPORATION", "LIC OF INDIA", "LIFE INSURANCE CORPORATION OF INDIA"],
    "Star Health": ["STAR", "STAR HEALTH INSURANCE", "STAR HEALTH AND ALLIED INSURANCE"],
    "Care Health": ["CARE", "CARE HEALTH INSURANCE", "RELIGARE HEALTH"],
    "Niva Bupa": ["NIVA", "NIVA BUPA HEALTH", "MAX BUPA"],
}

_INSURER_LOOKUP: Dict[str, str] = {}
for _canonical, _variants in INSURER_VARIANTS.items():
    _INSURER_LOOKUP[_canonical.upper()] = _canonical
    for _variant in _variants:
        _INSURER_LOOKUP.setdefault(_variant, _canonical)


def canonical_insurer_name(value: Optional[str]) -> Optional[str]:
    """Map an insurer spelling to its canonical name.

    Exact spellings win; otherwise the longest known spelling contained in
    the value is used, so "ICICI LOMBARD GIC LTD" resolves to ICICI Lombard
    rather than to a shorter prefix match. Unknown names are Title Cased.
    """
    if not value or not value.strip():
        return None

    normalized = _WHITESPACE.sub(" ", value.strip().upper()).rstrip(".")
    if normalized in _INSURER_LOOKUP:
        return _INSURER_LOOKUP[normalized]

    contained = [
        spelling for spelling in _INSURER_LOOKUP
        if re.search(rf"\b{re.escape(spelling)}\b", normalized)
    ]
    if contained:
        return _INSURER_LOOKUP[max(contained, key=len)]

    return title_case(_WHITESPACE.sub(" ", value.strip()))
