"""Policy record and draft models.

Record fields use the record store's column names as aliases so rows
returned by the store validate directly, while Python code reads the
domain names (``insurer_name`` rather than ``company_name``).
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PolicyCategory(str, Enum):
    """Line of business a policy belongs to."""

    VEHICLE = "Vehicle Insurance"
    HEALTH = "Health Insurance"
    LIFE = "Life Insurance"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: Any) -> Optional["PolicyCategory"]:
        """Return the category for a store value or short name, None if unknown."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        cleaned = value.strip().lower()
        for category in cls:
            if cleaned in (category.value.lower(), category.name.lower()):
                return category
        return None


# Numeric fields defaulted to zero on submission when left empty.
AMOUNT_FIELDS = (
    "net_premium",
    "idv",
    "basic_od_premium",
    "basic_tp_premium",
    "sum_insured",
    "sum_assured",
)
COUNT_FIELDS = ("members_covered",)

# Term lengths stay absent when they do not apply to the category.
TERM_FIELDS = ("policy_term", "premium_payment_term")

NUMERIC_FIELDS = AMOUNT_FIELDS + COUNT_FIELDS + TERM_FIELDS


class PolicyRecord(BaseModel):
    """A committed policy owned by one account."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    owner_id: str = Field(..., alias="user_id")
    policy_number: str
    client_name: str
    category: PolicyCategory = Field(PolicyCategory.VEHICLE, alias="insurance_type")
    insurer_name: Optional[str] = Field(None, alias="company_name")
    vehicle_number: Optional[str] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    contact_number: Optional[str] = None
    agent_code: Optional[str] = None
    reference: Optional[str] = None
    product_name: Optional[str] = None
    status: str = "Active"
    active_date: date = Field(..., alias="policy_active_date")
    expiry_date: date = Field(..., alias="policy_expiry_date")

    net_premium: float = 0
    idv: float = 0
    basic_od_premium: float = 0
    basic_tp_premium: float = 0
    sum_insured: float = 0
    sum_assured: float = 0
    members_covered: int = 0
    policy_term: Optional[int] = None
    premium_payment_term: Optional[int] = None
    premium_frequency: Optional[str] = None
    plan_type: Optional[str] = None

    document_path: Optional[str] = Field(None, alias="document_url")
    created_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _expiry_not_before_active(self) -> "PolicyRecord":
        if self.expiry_date < self.active_date:
            raise ValueError("expiry_date must not be earlier than active_date")
        return self


class AttachedFile(BaseModel):
    """A document attached to a draft, kept as its transport encoding."""

    filename: str
    content_type: str
    size_bytes: int
    payload: str = Field(..., description="Base64 encoded file content", repr=False)


class ParseErrorState(BaseModel):
    """Last extraction failure recorded on a draft."""

    kind: str
    message: str
    retryable: bool = True


class PolicyDraft(BaseModel):
    """Session-scoped working copy of a policy being created or edited.

    Numeric fields hold the text the user typed; they are parsed on
    submission.
    """

    record_id: Optional[str] = None
    policy_number: Optional[str] = None
    client_name: Optional[str] = None
    category: PolicyCategory = PolicyCategory.VEHICLE
    insurer_name: Optional[str] = None
    vehicle_number: Optional[str] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    contact_number: Optional[str] = None
    agent_code: Optional[str] = None
    reference: Optional[str] = None
    product_name: Optional[str] = None
    status: str = "Active"
    active_date: Optional[date] = None
    expiry_date: Optional[date] = None

    net_premium: Optional[str] = None
    idv: Optional[str] = None
    basic_od_premium: Optional[str] = None
    basic_tp_premium: Optional[str] = None
    sum_insured: Optional[str] = None
    sum_assured: Optional[str] = None
    members_covered: Optional[str] = None
    policy_term: Optional[str] = None
    premium_payment_term: Optional[str] = None
    premium_frequency: Optional[str] = None
    plan_type: Optional[str] = None

    existing_document_path: Optional[str] = None
    attached_file: Optional[AttachedFile] = None
    parse_error: Optional[ParseErrorState] = None
    touched_fields: List[str] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: PolicyRecord) -> "PolicyDraft":
        """Seed a draft from a committed record for editing or renewal."""
        values: Dict[str, Any] = {
            "record_id": record.id,
            "policy_number": record.policy_number,
            "client_name": record.client_name,
            "category": record.category,
            "insurer_name": record.insurer_name,
            "vehicle_number": record.vehicle_number,
            "vehicle_make": record.vehicle_make,
            "vehicle_model": record.vehicle_model,
            "contact_number": record.contact_number,
            "agent_code": record.agent_code,
            "reference": record.reference,
            "product_name": record.product_name,
            "status": record.status,
            "active_date": record.active_date,
            "expiry_date": record.expiry_date,
            "premium_frequency": record.premium_frequency,
            "plan_type": record.plan_type,
            "existing_document_path": record.document_path,
            "touched_fields": ["category"],
        }
        for field_name in NUMERIC_FIELDS:
            value = getattr(record, field_name)
            # Zero means "not set" for amounts; the form shows it empty.
            values[field_name] = _format_number(value) if value else None
        return cls(**values)

    def is_user_set(self, field_name: str) -> bool:
        """True when the field holds a value the user entered or already committed."""
        if field_name == "category":
            return "category" in self.touched_fields
        return not self.is_empty(field_name)

    def is_empty(self, field_name: str) -> bool:
        value = getattr(self, field_name)
        return value is None or (isinstance(value, str) and not value.strip())


class ExtractedField(BaseModel):
    """One field produced by the extraction service after type coercion.

    ``best_effort`` is set when the raw value had to be altered to fit the
    field (sanitised, truncated or mapped to a canonical name).
    """

    value: Any
    best_effort: bool = False


class ExtractionResult(BaseModel):
    """Sparse, read-once set of fields extracted from a document."""

    fields: Dict[str, ExtractedField] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.fields

    def value(self, field_name: str) -> Any:
        extracted = self.fields.get(field_name)
        return extracted.value if extracted else None


def _format_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
