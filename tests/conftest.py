"""Pytest configuration and fixtures."""

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional

import pytest
from unittest.mock import AsyncMock, MagicMock

from insulin_advisor.config import Settings
from insulin_advisor.llm import LLMResponse
from insulin_advisor.models import (
    GlucoseEntry,
    InsulinEntry,
    MealEntry,
    Patient,
    Recommendation,
    RecommendationCreate,
)
from insulin_advisor.observability import ObservabilityLogger

OWNER_ID = uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
PATIENT_ID = uuid.UUID("bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb")

# Fixed reference time: 14:00 UTC, 10:00 in New York (EDT)
NOW = datetime(2026, 6, 15, 14, 0, tzinfo=timezone.utc)


class FakeHistoryStore:
    """In-memory HistoryStore for pipeline tests."""

    def __init__(self, patients=None, entries=None, fail_saves: bool = False):
        self.patients: dict[uuid.UUID, Patient] = {p.id: p for p in (patients or [])}
        self.entries = list(entries or [])
        self.saved: list[Recommendation] = []
        self.fail_saves = fail_saves

    async def find_patient(self, patient_id: uuid.UUID) -> Optional[Patient]:
        return self.patients.get(patient_id)

    async def find_entries_by_patient(self, patient_id: uuid.UUID):
        return sorted(
            (e for e in self.entries if e.patient_id == patient_id),
            key=lambda e: e.occurred_at,
            reverse=True,
        )

    async def save_recommendation(self, data: RecommendationCreate) -> Optional[Recommendation]:
        if self.fail_saves:
            return None
        saved = Recommendation(id=uuid.uuid4(), created_at=NOW, **data.model_dump())
        self.saved.append(saved)
        return saved


def glucose(hours_ago: float, value: str = "120", patient_id: uuid.UUID = PATIENT_ID, now=NOW):
    return GlucoseEntry(
        id=uuid.uuid4(),
        patient_id=patient_id,
        value=value,
        units="mg/dL",
        occurred_at=now - timedelta(hours=hours_ago),
    )


def meal(hours_ago: float, value: str = "Oatmeal", patient_id: uuid.UUID = PATIENT_ID, now=NOW):
    return MealEntry(
        id=uuid.uuid4(),
        patient_id=patient_id,
        value=value,
        occurred_at=now - timedelta(hours=hours_ago),
    )


def insulin(
    hours_ago: float,
    value: str = "8",
    brand: Optional[str] = "Actrapid",
    patient_id: uuid.UUID = PATIENT_ID,
    now=NOW,
):
    return InsulinEntry(
        id=uuid.uuid4(),
        patient_id=patient_id,
        value=value,
        medication_brand=brand,
        occurred_at=now - timedelta(hours=hours_ago),
    )


@pytest.fixture(autouse=True)
def obs_logger(tmp_path):
    """Route observability output to a temp directory for every test."""
    logger = ObservabilityLogger(log_dir=tmp_path / "logs", enabled=True)
    previous = ObservabilityLogger._instance
    ObservabilityLogger._instance = logger
    yield logger
    ObservabilityLogger._instance = previous


@pytest.fixture
def settings(tmp_path):
    return Settings(
        openai_api_key="test-key",
        database_url="sqlite+aiosqlite://",
        observability_log_dir=tmp_path / "logs",
    )


@pytest.fixture
def patient():
    return Patient(
        id=PATIENT_ID,
        owner_id=OWNER_ID,
        name="Sam Rivera",
        dob=date(1990, 3, 10),
        diabetes_type="Type 1",
        lifestyle="Office worker",
        activity_level="Moderate",
        usual_medications='[{"brand": "Actrapid", "dosage": "8 IU", "timing": "before breakfast"}]',
    )


@pytest.fixture
def history():
    """Three days of entries with morning Actrapid doses."""
    return [
        glucose(2, "140"),
        insulin(4, "8"),
        meal(4.5, "Toast and eggs"),
        glucose(26, "165"),
        insulin(28, "9"),
        glucose(50, "130"),
        insulin(52, "7"),
    ]


@pytest.fixture
def store(patient, history):
    return FakeHistoryStore(patients=[patient], entries=history)


@pytest.fixture
def model_answer():
    return (
        '{"doseUnits": 9, "medicationName": "Actrapid", '
        '"reasoning": "Glucose 140 mg/dL is slightly above target.", '
        '"safetyNotes": "Have fast-acting carbohydrates available.", '
        '"confidence": "HIGH", '
        '"recommendedMonitoring": "Check glucose in 2 hours."}'
    )


@pytest.fixture
def mock_llm(model_answer):
    """Create a mock LLM that returns a well-formed answer."""
    llm = MagicMock()
    llm.complete = AsyncMock(
        return_value=LLMResponse(
            content=model_answer,
            model="mock-model",
            usage={"prompt_tokens": 900, "completion_tokens": 120},
        )
    )
    llm.health_check = AsyncMock(return_value=True)
    llm.model_name = "mock-model"
    llm.provider = "mock"
    return llm
