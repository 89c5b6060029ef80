"""
Pydantic Schemas for Billed Procedure Lines.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class InstitutionInfo(BaseModel):
    """The billing institution."""

    name: str = ""
    tier: int = Field(default=2, ge=1, le=3)


class BillingRow(BaseModel):
    """One billed line from the hospital information system export."""

    patient_id: str
    date: str
    time: str = ""
    physician: str = ""
    specialty: str = ""
    procedure_code: str
    procedure_name: str = ""
    quantity: float = 1.0
    points: float = 0.0
    price: float = 0.0
    amount: float = 0.0
    diagnosis: Optional[str] = None
    tooth_number: Optional[str] = None
    patient_age: Optional[int] = None
    operation_number: Optional[str] = None

    # Columns the host passes through untouched (exported as-is)
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator(
        "patient_id", "date", "procedure_code", "time", "physician", "specialty",
        mode="before",
    )
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("tooth_number", "operation_number", "diagnosis", mode="before")
    @classmethod
    def coerce_optional_text(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator("patient_age", mode="before")
    @classmethod
    def coerce_age(cls, v: Any) -> Optional[int]:
        if v is None or v == "":
            return None
        try:
            return int(float(v))
        except (TypeError, ValueError):
            return None

    @property
    def session_key(self) -> tuple[str, str]:
        """Patient + date: the unit mutual-exclusion rules apply to."""
        return (self.patient_id, self.date)
