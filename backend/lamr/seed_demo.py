"""
Demo data seeder for LAMR.

Creates a demo hospital, an admin, a medical-personnel user attached to that
hospital, and a sample patient with a patient login, so the walkthrough works
immediately after a fresh start.

Credentials (logged on first run):
  Admin    : admin@lamr.demo   / Admin1234!
  Doctor   : doctor@lamr.demo  / Doctor1234!
  Patient  : patient@lamr.demo / Patient1234!

This seeder is idempotent; it is safe to call on every startup.
"""
import logging
from datetime import date

from .core.security import get_password_hash
from .models.base import Base, SessionLocal, engine
from .models.hospital import Hospital, HospitalType
from .models.patient import Patient
from .models.user import User, UserRole
from .services.patients import patient_service

logger = logging.getLogger(__name__)

DEMO_HOSPITAL_NAME = "LAMR Demo General Hospital"

DEMO_ADMIN_EMAIL = "admin@lamr.demo"
DEMO_ADMIN_PASSWORD = "Admin1234!"

DEMO_DOCTOR_EMAIL = "doctor@lamr.demo"
DEMO_DOCTOR_PASSWORD = "Doctor1234!"

DEMO_PATIENT_EMAIL = "patient@lamr.demo"
DEMO_PATIENT_PASSWORD = "Patient1234!"
DEMO_PATIENT_PHONE = "+2348000000001"


def seed_demo_data() -> None:
    """Create the demo hospital, users and patient if they do not already exist."""
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        hospital = _seed_hospital(db)
        _seed_staff(db, hospital)
        patient = _seed_patient(db, hospital)
        _seed_patient_login(db, patient)
    finally:
        db.close()


# ── helpers ──────────────────────────────────────────────────────────────────

def _seed_hospital(db) -> Hospital:
    hospital = db.query(Hospital).filter(Hospital.name == DEMO_HOSPITAL_NAME).first()
    if not hospital:
        hospital = Hospital(
            name=DEMO_HOSPITAL_NAME,
            type=HospitalType.PUBLIC,
            city="Lagos",
            lga="Ikeja",
            state="Lagos",
            contact={"phone": "+2348000000000", "email": "info@lamr.demo"},
            specialties=["general_medicine", "emergency"],
            capacity={"total_beds": 120, "icu_beds": 10, "emergency_beds": 20},
            is_partner=True,
        )
        db.add(hospital)
        db.commit()
        db.refresh(hospital)
        logger.info("[seed] Created demo hospital: %s", hospital.name)
    return hospital


def _seed_staff(db, hospital: Hospital) -> None:
    if not db.query(User).filter(User.email == DEMO_ADMIN_EMAIL).first():
        db.add(User(
            email=DEMO_ADMIN_EMAIL,
            hashed_password=get_password_hash(DEMO_ADMIN_PASSWORD),
            role=UserRole.ADMIN,
            first_name="Demo",
            last_name="Admin",
        ))
        db.commit()
        logger.info("[seed] Created demo admin  : %s / %s", DEMO_ADMIN_EMAIL, DEMO_ADMIN_PASSWORD)

    if not db.query(User).filter(User.email == DEMO_DOCTOR_EMAIL).first():
        db.add(User(
            email=DEMO_DOCTOR_EMAIL,
            hashed_password=get_password_hash(DEMO_DOCTOR_PASSWORD),
            role=UserRole.MEDICAL_PERSONNEL,
            first_name="Ada",
            last_name="Okafor",
            department="Emergency",
            license_number="MDCN-DEMO-001",
            hospital_id=hospital.id,
        ))
        db.commit()
        logger.info("[seed] Created demo doctor : %s / %s", DEMO_DOCTOR_EMAIL, DEMO_DOCTOR_PASSWORD)


def _seed_patient(db, hospital: Hospital) -> Patient:
    patient = db.query(Patient).filter(Patient.phone == DEMO_PATIENT_PHONE).first()
    if not patient:
        patient = patient_service.create(
            db,
            {
                "first_name": "Chidi",
                "last_name": "Demo",
                "date_of_birth": date(1985, 3, 12),
                "gender": "male",
                "phone": DEMO_PATIENT_PHONE,
                "city": "Lagos",
                "state": "Lagos",
                "blood_group": "O+",
                "genotype": "AA",
                "allergies": [{"allergen": "Penicillin", "reaction": "Rash", "severity": "moderate"}],
                "emergency_contact": {"name": "Ngozi Demo", "relationship": "spouse", "phone": "+2348000000002"},
                "notes": "Pre-seeded demo patient.",
            },
            primary_hospital=hospital,
        )
        logger.info("[seed] Created demo patient: %s (%s)", patient.full_name, patient.patient_id)
    return patient


def _seed_patient_login(db, patient: Patient) -> None:
    if not db.query(User).filter(User.email == DEMO_PATIENT_EMAIL).first():
        db.add(User(
            email=DEMO_PATIENT_EMAIL,
            hashed_password=get_password_hash(DEMO_PATIENT_PASSWORD),
            role=UserRole.PATIENT,
            first_name=patient.first_name,
            last_name=patient.last_name,
            patient_id=patient.id,
        ))
        db.commit()
        logger.info("[seed] Created demo patient login: %s / %s", DEMO_PATIENT_EMAIL, DEMO_PATIENT_PASSWORD)
