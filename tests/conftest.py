# conftest.py
# Shared fixtures: temporary sqlite database, patients and plan drafts
from datetime import datetime, timedelta, timezone

import pytest

import core.database
from core.database import init_database
from core.models import (
    Bilingual,
    CreateTreatmentPlan,
    NewAction,
    Patient,
    PlanCategory,
)

AS_OF = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


def iso(days_before: float = 0, as_of: datetime = AS_OF) -> str:
    return (as_of - timedelta(days=days_before)).isoformat()


@pytest.fixture
def db(tmp_path):
    """Fresh schema in a throwaway database file"""
    # Own patch scope so a test calling monkeypatch.undo() keeps the temp DB
    with pytest.MonkeyPatch.context() as mp:
        mp.setattr(core.database, "DB_PATH", tmp_path / "mila_test.db")
        init_database()
        yield tmp_path / "mila_test.db"


@pytest.fixture
def patient():
    """28-week, 900 g preterm on day of life 10 at AS_OF"""
    return Patient(
        id="pt-martinez",
        display_name="Baby Martinez",
        birth_date=(AS_OF - timedelta(days=9)).date().isoformat(),
        gestational_age_weeks=28,
        birth_weight_grams=900,
    )


@pytest.fixture
def draft(patient):
    return CreateTreatmentPlan(
        patient_id=patient.id,
        category=PlanCategory.TRANSFUSION,
        title=Bilingual("Anemia Management Plan", "Plan de Manejo de Anemia"),
        summary=Bilingual("Symptomatic anemia on day 10", "Anemia sintomática en el día 10"),
        rationale=Bilingual("Hgb below age-banded threshold", "Hgb bajo el umbral por edad"),
        actions=[
            NewAction(Bilingual("Transfuse PRBC", "Transfundir GRE"), dosage="15 ml/kg", timing="over 3 h"),
            NewAction(Bilingual("Start iron", "Iniciar hierro"), dosage="6 mg/kg/day"),
            NewAction(Bilingual("Repeat Hgb", "Repetir Hgb"), timing="in 24 h"),
        ],
    )
