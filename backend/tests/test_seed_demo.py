"""Tests for the demo data seeder."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lamr.core.security import verify_password
from lamr.models import Base
from lamr.models.hospital import Hospital
from lamr.models.patient import Patient
from lamr.models.user import User, UserRole
from lamr.seed_demo import (
    DEMO_ADMIN_EMAIL,
    DEMO_ADMIN_PASSWORD,
    DEMO_DOCTOR_EMAIL,
    DEMO_DOCTOR_PASSWORD,
    DEMO_HOSPITAL_NAME,
    DEMO_PATIENT_EMAIL,
    DEMO_PATIENT_PHONE,
    seed_demo_data,
)


@pytest.fixture()
def in_memory_db(monkeypatch):
    """Provide an isolated in-memory SQLite database for each test."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestSession = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    Base.metadata.create_all(bind=test_engine)

    # Patch the module-level engine/SessionLocal used inside seed_demo
    import lamr.seed_demo as sd
    import lamr.models.base as mb

    monkeypatch.setattr(sd, "engine", test_engine)
    monkeypatch.setattr(sd, "SessionLocal", TestSession)
    monkeypatch.setattr(mb, "engine", test_engine)
    monkeypatch.setattr(mb, "SessionLocal", TestSession)

    db = TestSession()
    yield db
    db.close()


class TestSeedDemoData:
    def test_creates_demo_hospital(self, in_memory_db):
        seed_demo_data()
        hospital = in_memory_db.query(Hospital).filter(Hospital.name == DEMO_HOSPITAL_NAME).one()
        assert hospital.is_active
        assert hospital.is_partner

    def test_creates_admin_user(self, in_memory_db):
        seed_demo_data()
        admin = in_memory_db.query(User).filter(User.email == DEMO_ADMIN_EMAIL).first()
        assert admin is not None
        assert admin.role == UserRole.ADMIN
        assert admin.hospital_id is None

    def test_doctor_belongs_to_demo_hospital(self, in_memory_db):
        seed_demo_data()
        hospital = in_memory_db.query(Hospital).filter(Hospital.name == DEMO_HOSPITAL_NAME).one()
        doctor = in_memory_db.query(User).filter(User.email == DEMO_DOCTOR_EMAIL).first()
        assert doctor.role == UserRole.MEDICAL_PERSONNEL
        assert doctor.hospital_id == hospital.id

    def test_creates_registered_patient_with_login(self, in_memory_db):
        seed_demo_data()
        patient = in_memory_db.query(Patient).filter(Patient.phone == DEMO_PATIENT_PHONE).one()
        assert patient.patient_id == "PA000001"
        assert patient.qr_code
        assert len(patient.registrations) == 1

        login = in_memory_db.query(User).filter(User.email == DEMO_PATIENT_EMAIL).one()
        assert login.role == UserRole.PATIENT
        assert login.patient_id == patient.id

    def test_idempotent_on_second_call(self, in_memory_db):
        """Calling seed_demo_data twice must not create duplicate records."""
        seed_demo_data()
        seed_demo_data()
        assert in_memory_db.query(Hospital).count() == 1
        assert in_memory_db.query(User).count() == 3
        assert in_memory_db.query(Patient).count() == 1

    def test_demo_passwords_are_hashed(self, in_memory_db):
        """Passwords must be stored as bcrypt hashes, not plain text."""
        seed_demo_data()
        admin = in_memory_db.query(User).filter(User.email == DEMO_ADMIN_EMAIL).first()
        doctor = in_memory_db.query(User).filter(User.email == DEMO_DOCTOR_EMAIL).first()

        assert admin.hashed_password != DEMO_ADMIN_PASSWORD
        assert verify_password(DEMO_ADMIN_PASSWORD, admin.hashed_password)
        assert verify_password(DEMO_DOCTOR_PASSWORD, doctor.hashed_password)
