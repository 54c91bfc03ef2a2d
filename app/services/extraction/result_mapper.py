"""Coercion of raw extraction fields and merging into a draft.

The extraction service answers with loosely typed values under either
camelCase or the record store's snake_case keys. Mapping coerces them to
draft field types; merging fills only fields the user has not set.
"""

import re
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.schemas.policy import (
    COUNT_FIELDS,
    NUMERIC_FIELDS,
    TERM_FIELDS,
    ExtractedField,
    ExtractionResult,
    PolicyCategory,
    PolicyDraft,
)
from app.utils.field_normalization import (
    canonical_insurer_name,
    sanitize_contact_number,
    sanitize_person_name,
    sanitize_policy_number,
    sanitize_vehicle_number,
)
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Draft field -> keys the service may use for it
FIELD_KEYS: Dict[str, Tuple[str, ...]] = {
    "policy_number": ("policyNumber", "policy_number"),
    "client_name": ("clientName", "client_name"),
    "vehicle_number": ("vehicleNumber", "vehicle_number"),
    "vehicle_make": ("vehicleMake", "vehicle_make"),
    "vehicle_model": ("vehicleModel", "vehicle_model"),
    "insurer_name": ("insurerName", "insurer_name", "companyName", "company_name"),
    "contact_number": ("contactNumber", "contact_number"),
    "category": ("insuranceType", "insurance_type"),
    "product_name": ("productName", "product_name"),
    "plan_type": ("planType", "plan_type"),
    "premium_frequency": ("premiumFrequency", "premium_frequency"),
    "active_date": ("activeDate", "policyActiveDate", "policy_active_date"),
    "expiry_date": ("expiryDate", "policyExpiryDate", "policy_expiry_date"),
    "net_premium": ("netPremium", "net_premium"),
    "idv": ("idv",),
    "basic_od_premium": ("basicOdPremium", "basic_od_premium"),
    "basic_tp_premium": ("basicTpPremium", "basic_tp_premium"),
    "sum_insured": ("sumInsured", "sum_insured"),
    "sum_assured": ("sumAssured", "sum_assured"),
    "members_covered": ("membersCovered", "members_covered"),
    "policy_term": ("policyTerm", "policy_term"),
    "premium_payment_term": ("premiumPaymentTerm", "premium_payment_term"),
}

TEXT_CONVERTERS: Dict[str, Callable[[str], Optional[str]]] = {
    "policy_number": lambda value: sanitize_policy_number(value.strip()),
    "client_name": lambda value: sanitize_person_name(value.strip()),
    "vehicle_number": sanitize_vehicle_number,
    "contact_number": sanitize_contact_number,
    "insurer_name": canonical_insurer_name,
}

_NUMBER_NOISE = re.compile(r"[^\d.\-]")


def _raw_value(raw: Dict[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def parse_number(value: Any) -> Optional[float]:
    """Parse an amount such as ``"Rs. 12,345.50"``; zero counts as absent."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        cleaned = _NUMBER_NOISE.sub("", str(value)).strip(".")
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
    if number <= 0:
        return None
    return number


def parse_date(value: Any, date_format: str) -> Optional[date]:
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), date_format).date()
    except ValueError:
        return None


def _format_number(number: float, whole: bool) -> str:
    if whole or number.is_integer():
        return str(int(number))
    return f"{number:.2f}".rstrip("0").rstrip(".")


def map_service_fields(
    raw: Optional[Dict[str, Any]], date_format: str, default_term_days: int
) -> ExtractionResult:
    """Coerce raw service fields into an ExtractionResult.

    Unparseable or empty values are dropped. The expiry date falls back to
    the default term after the active date when the document gives none
    (or gives one earlier than the active date).
    """
    fields: Dict[str, ExtractedField] = {}
    raw = raw or {}

    for field_name, keys in FIELD_KEYS.items():
        value = _raw_value(raw, keys)
        if value is None:
            continue

        if field_name == "category":
            category = PolicyCategory.parse(value)
            if category is not None:
                fields[field_name] = ExtractedField(value=category)
        elif field_name in ("active_date", "expiry_date"):
            parsed = parse_date(value, date_format)
            if parsed is not None:
                fields[field_name] = ExtractedField(value=parsed)
        elif field_name in NUMERIC_FIELDS:
            number = parse_number(value)
            if number is not None:
                whole = field_name in COUNT_FIELDS or field_name in TERM_FIELDS
                text = _format_number(number, whole)
                fields[field_name] = ExtractedField(
                    value=text, best_effort=str(value).strip() != text
                )
        else:
            original = str(value).strip()
            converter = TEXT_CONVERTERS.get(field_name)
            converted = converter(original) if converter else original
            if converted:
                fields[field_name] = ExtractedField(
                    value=converted, best_effort=converted != original
                )

    active = fields.get("active_date")
    expiry = fields.get("expiry_date")
    if active is not None and (expiry is None or expiry.value < active.value):
        fields["expiry_date"] = ExtractedField(
            value=active.value + timedelta(days=default_term_days), best_effort=True
        )
    elif active is None and expiry is not None:
        # An expiry without a start date cannot anchor a coverage interval.
        del fields["expiry_date"]

    LOGGER.debug("Mapped extraction fields", extra={"field_names": sorted(fields)})
    return ExtractionResult(fields=fields)


def merge_into_draft(
    draft: PolicyDraft, result: ExtractionResult
) -> Tuple[PolicyDraft, List[str]]:
    """Fill the draft's unset fields from ``result``.

    Fields the user has already set are never overwritten. The expiry date
    is only taken together with an active date the draft did not have.

    Returns:
        The merged draft and the names of the fields that were filled
    """
    updates: Dict[str, Any] = {}
    for field_name, extracted in result.fields.items():
        if field_name == "expiry_date":
            continue
        if draft.is_user_set(field_name):
            continue
        updates[field_name] = extracted.value

    expiry = result.value("expiry_date")
    if "active_date" in updates and expiry is not None and draft.is_empty("expiry_date"):
        updates["expiry_date"] = expiry

    merged = draft.model_copy(update=updates)
    return merged, list(updates)
