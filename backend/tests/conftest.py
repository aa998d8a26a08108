"""Shared fixtures: an isolated in-memory database and a small populated world."""
from datetime import date, datetime
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import lamr.models.base as mb
from lamr.core.config import settings
from lamr.core.security import get_password_hash, token_service
from lamr.models import Base
from lamr.models.hospital import Hospital, HospitalStatus, HospitalType
from lamr.models.medical_record import MedicalRecord, RecordStatus, VisitType
from lamr.models.user import User, UserRole
from lamr.services.patients import patient_service

PASSWORD = "Secret123!"


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    """bcrypt at its minimum work factor keeps the suite quick."""
    monkeypatch.setattr(settings, "BCRYPT_ROUNDS", 4)


@pytest.fixture()
def session_factory(monkeypatch):
    """In-memory SQLite shared across sessions, patched in wherever the app opens one."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    monkeypatch.setattr(mb, "engine", engine)
    monkeypatch.setattr(mb, "SessionLocal", factory)
    yield factory
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def client(session_factory, monkeypatch):
    from lamr.main import app

    monkeypatch.setattr(settings, "SEED_DEMO_DATA", False)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[mb.get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_user(db, email, role, hospital=None, patient=None, is_active=True) -> User:
    user = User(
        email=email,
        hashed_password=get_password_hash(PASSWORD),
        role=role,
        first_name=email.split("@")[0].title(),
        last_name="Test",
        hospital_id=hospital.id if hospital else None,
        patient_id=patient.id if patient else None,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_patient(db, first_name, hospital, **extra):
    data = {
        "first_name": first_name,
        "last_name": "Okoro",
        "date_of_birth": date(1990, 5, 17),
        "gender": "female",
        "phone": f"+234801{first_name[:4].lower()}",
        "blood_group": "O+",
        "genotype": "AS",
        "allergies": [{"allergen": "Penicillin", "reaction": "Hives", "severity": "severe", "notes": "ER visit 2019"}],
        "chronic_illnesses": [
            {"condition": "Asthma", "severity": "moderate", "is_active": True, "medications": ["Salbutamol"]},
            {"condition": "Malaria", "severity": "mild", "is_active": False},
        ],
        "emergency_contact": {"name": "Emeka Okoro", "relationship": "brother", "phone": "+2348030000000", "address": "12 Allen Ave"},
    }
    data.update(extra)
    return patient_service.create(db, data, primary_hospital=hospital)


def make_record(db, patient, hospital, author, visit_date, **extra) -> MedicalRecord:
    values = {
        "visit_type": VisitType.ROUTINE,
        "chief_complaint": "Cough",
        "assessment": {"primary_diagnosis": "Bronchitis", "secondary_diagnoses": [], "severity": "mild"},
        "status": RecordStatus.ACTIVE,
    }
    values.update(extra)
    record = MedicalRecord(
        patient_id=patient.id,
        hospital_id=hospital.id,
        created_by=author.id,
        visit_date=visit_date,
        **values,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def bearer(user) -> dict:
    return {"Authorization": f"Bearer {token_service.issue(user)}"}


@pytest.fixture()
def world(db):
    """Two active hospitals, one inactive, staff at each, and a patient at each."""
    hospital_a = Hospital(name="Lagos General", type=HospitalType.PUBLIC, state="Lagos", lga="Ikeja")
    hospital_b = Hospital(name="Abuja Teaching", type=HospitalType.TEACHING, state="FCT", is_partner=True)
    hospital_c = Hospital(name="Closed Clinic", type=HospitalType.PRIVATE, status=HospitalStatus.INACTIVE)
    db.add_all([hospital_a, hospital_b, hospital_c])
    db.commit()

    admin = make_user(db, "admin@lamr.test", UserRole.ADMIN)
    doctor_a = make_user(db, "doctor.a@lamr.test", UserRole.MEDICAL_PERSONNEL, hospital=hospital_a)
    doctor_b = make_user(db, "doctor.b@lamr.test", UserRole.MEDICAL_PERSONNEL, hospital=hospital_b)

    patient_a = make_patient(db, "Amaka", hospital_a)
    patient_b = make_patient(db, "Bola", hospital_b)
    patient_user = make_user(db, "amaka@lamr.test", UserRole.PATIENT, patient=patient_a)

    record_a = make_record(db, patient_a, hospital_a, doctor_a, datetime(2024, 1, 10, 9, 0))
    record_b = make_record(db, patient_b, hospital_b, doctor_b, datetime(2024, 2, 1, 9, 0))

    return SimpleNamespace(
        hospital_a=hospital_a,
        hospital_b=hospital_b,
        hospital_c=hospital_c,
        admin=admin,
        doctor_a=doctor_a,
        doctor_b=doctor_b,
        patient_a=patient_a,
        patient_b=patient_b,
        patient_user=patient_user,
        record_a=record_a,
        record_b=record_b,
    )
