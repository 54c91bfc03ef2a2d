"""Request models for draft and renewal endpoints."""

from typing import Any, Dict

from pydantic import BaseModel, Field, field_validator


class DraftEditRequest(BaseModel):
    """Field edits applied to a draft in the order given.

    Attributes:
        changes: Field name to new value
    """

    changes: Dict[str, Any] = Field(
        ...,
        description="Field name to new value",
        examples=[{"policy_number": "mh-01-2024-001", "active_date": "2025-01-01"}],
    )

    @field_validator("changes")
    @classmethod
    def validate_not_empty(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        """Reject an edit request that changes nothing.

        Args:
            v: Requested changes

        Returns:
            The changes unchanged

        Raises:
            ValueError: If no field is given
        """
        if not v:
            raise ValueError("At least one field must be changed")
        return v
