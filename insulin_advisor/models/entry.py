"""Caregiver-recorded entries: glucose readings, meals and insulin doses.

Entries are a discriminated union on ``entry_type`` so that each kind only
carries the fields valid for it. Rows coming out of the store are validated
through :data:`EntryAdapter` before the pipeline sees them.
"""

import uuid
from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class _EntryBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: uuid.UUID
    patient_id: uuid.UUID
    value: str
    occurred_at: datetime
    created_at: Optional[datetime] = None

    @field_validator("occurred_at", "created_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class GlucoseEntry(_EntryBase):
    """Blood glucose reading."""

    entry_type: Literal["glucose"] = "glucose"
    units: Literal["mg/dL", "mmol/L"]


class MealEntry(_EntryBase):
    """Meal description (free text, no units)."""

    entry_type: Literal["meal"] = "meal"


class InsulinEntry(_EntryBase):
    """Insulin dose in international units."""

    entry_type: Literal["insulin"] = "insulin"
    units: Literal["IU"] = "IU"
    medication_brand: Optional[str] = None


Entry = Annotated[
    Union[GlucoseEntry, MealEntry, InsulinEntry],
    Field(discriminator="entry_type"),
]

EntryAdapter: TypeAdapter[Entry] = TypeAdapter(Entry)


def entry_units(entry: Entry) -> Optional[str]:
    """Units for an entry, or None for meals."""
    return getattr(entry, "units", None)


def entry_brand(entry: Entry) -> Optional[str]:
    """Medication brand for insulin entries, None otherwise."""
    return getattr(entry, "medication_brand", None)
