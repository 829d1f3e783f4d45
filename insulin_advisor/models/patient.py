"""Patient profile models."""

import uuid
from datetime import date
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class DiabetesType(str, Enum):
    """Diagnosed diabetes type."""

    TYPE1 = "type1"
    TYPE2 = "type2"
    GESTATIONAL = "gestational"
    OTHER = "other"

    @property
    def label(self) -> str:
        return {
            DiabetesType.TYPE1: "Type 1",
            DiabetesType.TYPE2: "Type 2",
            DiabetesType.GESTATIONAL: "Gestational",
            DiabetesType.OTHER: "Other",
        }[self]


class ActivityLevel(str, Enum):
    """Self-reported activity level."""

    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"


class Medication(BaseModel):
    """A medication the patient usually takes."""

    brand: str
    dosage: str = ""
    timing: Optional[str] = None  # Free text, e.g. "before breakfast"


class Patient(BaseModel):
    """Patient profile as seen by the recommendation pipeline."""

    id: uuid.UUID
    owner_id: uuid.UUID
    name: str
    dob: date
    diabetes_type: DiabetesType
    lifestyle: Optional[str] = None
    activity_level: Optional[ActivityLevel] = None

    # Raw stored value (JSON text, list or anything else); the prompt builder
    # is the only place it gets normalized.
    usual_medications: Any = Field(default=None)

    @field_validator("diabetes_type", mode="before")
    @classmethod
    def _normalize_diabetes_type(cls, value: Any) -> Any:
        # Accept legacy labels like "Type 1" alongside enum values
        if isinstance(value, str):
            return value.strip().lower().replace(" ", "")
        return value

    def age_on(self, on: date) -> int:
        """Age in whole years on the given date."""
        years = on.year - self.dob.year
        if (on.month, on.day) < (self.dob.month, self.dob.day):
            years -= 1
        return years
