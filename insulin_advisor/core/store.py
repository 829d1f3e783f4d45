"""History store used by the recommendation pipeline.

The pipeline depends on the :class:`HistoryStore` protocol only; the SQL
implementation is constructed explicitly and passed in, so tests can inject
an in-memory fake.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Protocol

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from insulin_advisor.core.models import EntryRow, PatientRow, RecommendationRow
from insulin_advisor.core.repository import (
    EntryRepository,
    PatientRepository,
    RecommendationRepository,
)
from insulin_advisor.models.entry import Entry, EntryAdapter
from insulin_advisor.models.patient import Patient
from insulin_advisor.models.recommendation import Recommendation, RecommendationCreate

logger = logging.getLogger(__name__)


class HistoryStore(Protocol):
    async def find_patient(self, patient_id: uuid.UUID) -> Optional[Patient]: ...

    async def find_entries_by_patient(self, patient_id: uuid.UUID) -> list[Entry]: ...

    async def save_recommendation(self, data: RecommendationCreate) -> Optional[Recommendation]: ...


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def patient_from_row(row: PatientRow) -> Patient:
    return Patient(
        id=row.id,
        owner_id=row.user_id,
        name=row.name,
        dob=row.dob,
        diabetes_type=row.diabetes_type,
        lifestyle=row.lifestyle,
        activity_level=row.activity_level or None,
        usual_medications=row.usual_medications,
    )


def entry_from_row(row: EntryRow) -> Entry:
    """Validate a stored row into the entry union.

    Raises:
        ValidationError: If the row does not match its entry type
    """
    data = {
        "id": row.id,
        "patient_id": row.patient_id,
        "entry_type": row.entry_type,
        "value": row.value,
        "occurred_at": row.occurred_at,
        "created_at": row.created_at,
    }
    if row.entry_type in ("glucose", "insulin") and row.units:
        data["units"] = row.units
    if row.entry_type == "insulin":
        data["medication_brand"] = row.medication_brand
    return EntryAdapter.validate_python(data)


def recommendation_from_row(row: RecommendationRow) -> Recommendation:
    return Recommendation(
        id=row.id,
        patient_id=row.patient_id,
        prompt=row.prompt,
        response=row.response,
        dose_units=row.dose_units,
        medication_name=row.medication_name,
        reasoning=row.reasoning,
        safety_notes=row.safety_notes,
        confidence=row.confidence,
        recommended_monitoring=row.recommended_monitoring,
        target_time=_as_utc(row.target_time),
        created_at=_as_utc(row.created_at),
    )


class SqlHistoryStore:
    """HistoryStore backed by the SQLAlchemy repositories.

    Each call runs in its own short session; recommendations are
    append-only so no cross-call locking is needed.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_patient(self, patient_id: uuid.UUID) -> Optional[Patient]:
        async with self._session_factory() as session:
            row = await PatientRepository(session).get_by_id(patient_id)
            return patient_from_row(row) if row else None

    async def find_entries_by_patient(self, patient_id: uuid.UUID) -> list[Entry]:
        async with self._session_factory() as session:
            rows = await EntryRepository(session).list_by_patient(patient_id)

        entries: list[Entry] = []
        for row in rows:
            try:
                entries.append(entry_from_row(row))
            except ValidationError as e:
                logger.warning(f"Skipping invalid {row.entry_type} entry {row.id}: {e.error_count()} errors")
        return entries

    async def save_recommendation(self, data: RecommendationCreate) -> Optional[Recommendation]:
        """Persist a recommendation. Returns None if the write fails."""
        fields = data.model_dump()
        if data.confidence is not None:
            fields["confidence"] = data.confidence.value

        try:
            async with self._session_factory() as session:
                row = await RecommendationRepository(session).create(**fields)
                await session.commit()
                return recommendation_from_row(row)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save recommendation for patient {data.patient_id}: {e}")
            return None

    async def list_recommendations(self, patient_id: uuid.UUID, limit: int = 20) -> list[Recommendation]:
        async with self._session_factory() as session:
            rows = await RecommendationRepository(session).list_by_patient(patient_id, limit=limit)
            return [recommendation_from_row(r) for r in rows]
