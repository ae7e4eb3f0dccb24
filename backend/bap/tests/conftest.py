import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

import uuid
from datetime import date, datetime, timedelta, timezone

sys.path.append(str(Path(__file__).resolve().parents[2]))

from bap.main import app
from bap.database import Base, enable_sqlite_foreign_keys, get_db
from bap import models, notify, schemas
from bap.auth import create_access_token

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
enable_sqlite_foreign_keys(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)
SPAWNED = NOW.date() - timedelta(days=70)


@pytest.fixture(autouse=True)
def email_outbox():
    notify.EMAIL_OUTBOX.clear()
    yield notify.EMAIL_OUTBOX
    notify.EMAIL_OUTBOX.clear()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_member(db, *, is_admin: bool = False, name: str | None = None) -> models.Member:
    member = models.Member(
        email=f"member-{uuid.uuid4()}@example.com",
        display_name=name or ("Admin" if is_admin else "Member"),
        is_admin=is_admin,
    )
    db.add(member)
    db.commit()
    db.refresh(member)
    return member


@pytest.fixture
def member(db):
    return make_member(db, name="Breeder")


@pytest.fixture
def admin(db):
    return make_member(db, is_admin=True)


def make_species(
    db,
    *,
    program: str = "fish",
    species_type: str = "Fish",
    genus: str = "Betta",
) -> models.SpeciesNameGroup:
    species = models.SpeciesNameGroup(
        program=program,
        species_type=species_type,
        canonical_genus=genus,
        canonical_species_name=f"sp-{uuid.uuid4().hex[:8]}",
    )
    db.add(species)
    db.commit()
    db.refresh(species)
    return species


def auth_headers(member: models.Member) -> dict[str, str]:
    token = create_access_token({"sub": member.email})
    return {"Authorization": f"Bearer {token}"}


def fish_form_values(**overrides) -> dict:
    """A complete fish submission that passes submit-time validation."""

    values = {
        "species_common_name": "Betta",
        "species_type": "Fish",
        "species_class": "Anabantoids",
        "species_latin_name": "Betta splendens",
        "water_type": "Fresh",
        "count": "25",
        "reproduction_date": SPAWNED,
        "foods": ["Live brine shrimp"],
        "spawn_locations": ["Bubble nest"],
        "tank_size": "20 gallons",
        "filter_type": "Sponge",
        "water_change_volume": "25%",
        "water_change_frequency": "Weekly",
        "temperature": "80",
        "ph": "7.0",
        "substrate_type": "Bare bottom",
        "substrate_depth": "0",
        "substrate_color": "None",
    }
    values.update(overrides)
    return values


def fish_form(**overrides) -> schemas.SubmissionForm:
    return schemas.SubmissionForm(**fish_form_values(**overrides))


def fish_form_json(**overrides) -> dict:
    reproduced = overrides.pop("reproduction_date", date.today() - timedelta(days=70))
    values = fish_form_values(reproduction_date=reproduced, **overrides)
    values["reproduction_date"] = reproduced.isoformat()
    return values
