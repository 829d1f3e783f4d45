"""CRUD repositories for patients, entries and recommendations."""

from __future__ import annotations

import uuid
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from insulin_advisor.core.models import EntryRow, PatientRow, RecommendationRow, User


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> User:
        user = User(**kwargs)
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        return await self.session.get(User, user_id)


class PatientRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> PatientRow:
        patient = PatientRow(**kwargs)
        self.session.add(patient)
        await self.session.flush()
        return patient

    async def get_by_id(self, patient_id: uuid.UUID) -> Optional[PatientRow]:
        return await self.session.get(PatientRow, patient_id)

    async def list_by_owner(self, user_id: uuid.UUID) -> Sequence[PatientRow]:
        stmt = select(PatientRow).where(PatientRow.user_id == user_id).order_by(PatientRow.name)
        result = await self.session.execute(stmt)
        return result.scalars().all()


class EntryRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> EntryRow:
        entry = EntryRow(**kwargs)
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def list_by_patient(self, patient_id: uuid.UUID) -> Sequence[EntryRow]:
        """All entries for a patient, newest first."""
        stmt = (
            select(EntryRow)
            .where(EntryRow.patient_id == patient_id)
            .order_by(EntryRow.occurred_at.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()


class RecommendationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> RecommendationRow:
        rec = RecommendationRow(**kwargs)
        self.session.add(rec)
        await self.session.flush()
        return rec

    async def get_by_id(self, recommendation_id: uuid.UUID) -> Optional[RecommendationRow]:
        return await self.session.get(RecommendationRow, recommendation_id)

    async def list_by_patient(self, patient_id: uuid.UUID, limit: int = 20) -> Sequence[RecommendationRow]:
        stmt = (
            select(RecommendationRow)
            .where(RecommendationRow.patient_id == patient_id)
            .order_by(RecommendationRow.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
