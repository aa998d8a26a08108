"""
Patient lifecycle: registration numbers, QR codes and the closed set of
patient mutations.

Every mutation is one of the update classes below and is applied by
``PatientService.apply``. Sub-document replacement and QR regeneration are
single UPDATE statements; complaints and hospital registrations are INSERTs
of child rows, so nothing is read-modify-written in Python.
"""
import logging
import secrets
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..core.clock import Clock, system_clock
from ..core.config import settings
from ..core.exceptions import ConflictError, InvalidRequestError, NotFoundError, reject_nulls
from ..core.visibility import calculate_age
from ..models.hospital import Hospital
from ..models.patient import (
    AccessLevel,
    BLOOD_GROUPS,
    GENOTYPES,
    Gender,
    Patient,
    PatientRegistration,
    PatientSequence,
    PresentingComplaint,
)

logger = logging.getLogger(__name__)

REVISABLE_FIELDS = {
    "first_name", "middle_name", "last_name", "date_of_birth", "gender",
    "marital_status", "occupation", "phone", "email", "emergency_contact",
    "street", "city", "lga", "state", "country", "postal_code",
    "notes", "access_level",
}

REQUIRED_FIELDS = {"first_name", "last_name", "date_of_birth", "gender", "phone", "access_level"}


# ── Update variants ──────────────────────────────────────────────────────────

@dataclass
class RevisePatientDetails:
    changes: dict = field(default_factory=dict)


@dataclass
class ReplaceMedicalHistory:
    blood_group: Optional[str] = None
    genotype: Optional[str] = None
    allergies: list = field(default_factory=list)
    surgical_history: list = field(default_factory=list)
    chronic_illnesses: list = field(default_factory=list)


@dataclass
class AddPresentingComplaint:
    complaint: str
    duration: Optional[str] = None
    severity: Optional[str] = None
    associated_symptoms: list = field(default_factory=list)
    notes: Optional[str] = None


@dataclass
class ReplaceEmergencySubscription:
    subscription: dict


@dataclass
class ReplaceHmoProvider:
    hmo_provider: dict


@dataclass
class RegisterHospital:
    hospital_id: str


@dataclass
class UnregisterHospital:
    hospital_id: str


@dataclass
class DeactivatePatient:
    pass


class PatientService:
    def __init__(self, clock: Clock = system_clock):
        self.clock = clock

    # ── identifiers ──────────────────────────────────────────────────────────

    def next_patient_number(self, db: Session) -> str:
        """Issue the next ``PA000001``-style number from the database sequence."""
        seq = PatientSequence(issued_at=self.clock.now())
        db.add(seq)
        db.flush()
        return f"{settings.PATIENT_ID_PREFIX}{seq.id:0{settings.PATIENT_ID_DIGITS}d}"

    def new_qr_code(self, patient_number: str) -> str:
        millis = int(self.clock.now().timestamp() * 1000)
        return f"{settings.QR_CODE_PREFIX}-{patient_number}-{millis}-{secrets.token_hex(4)}"

    def qr_payload(self, patient: Patient) -> dict:
        scan_url = None
        if settings.QR_CODE_BASE_URL:
            scan_url = f"{settings.QR_CODE_BASE_URL.rstrip('/')}/{patient.qr_code}"
        return {
            "patient_id": patient.patient_id,
            "qr_code": patient.qr_code,
            "scan_url": scan_url,
        }

    # ── create ───────────────────────────────────────────────────────────────

    def create(self, db: Session, data: dict, primary_hospital: Optional[Hospital] = None) -> Patient:
        data = dict(data)
        _validate_choice("gender", data.get("gender"), Gender.ALL)
        _validate_choice("access_level", data.get("access_level"), AccessLevel.ALL)
        _validate_history(data.get("blood_group"), data.get("genotype"))

        if data.get("email"):
            data["email"] = data["email"].lower()
        data.setdefault("access_level", AccessLevel.LIMITED)
        data["age"] = calculate_age(data.get("date_of_birth"), self.clock.now().date())

        patient_number = self.next_patient_number(db)
        patient = Patient(
            patient_id=patient_number,
            qr_code=self.new_qr_code(patient_number),
            date_of_registration=self.clock.now(),
            primary_hospital_id=primary_hospital.id if primary_hospital else None,
            **data,
        )
        db.add(patient)
        if primary_hospital is not None:
            db.add(PatientRegistration(
                patient=patient,
                hospital_id=primary_hospital.id,
                registration_date=self.clock.now(),
            ))
        db.commit()
        db.refresh(patient)
        logger.info("Registered patient %s", patient.patient_id)
        return patient

    # ── updates ──────────────────────────────────────────────────────────────

    def apply(self, db: Session, patient: Patient, change) -> Patient:
        """Apply one update variant to ``patient`` and return the fresh row."""
        if isinstance(change, RevisePatientDetails):
            self._revise(db, patient, change.changes)
        elif isinstance(change, ReplaceMedicalHistory):
            _validate_history(change.blood_group, change.genotype)
            self._set(db, patient, {
                "blood_group": change.blood_group,
                "genotype": change.genotype,
                "allergies": change.allergies,
                "surgical_history": change.surgical_history,
                "chronic_illnesses": change.chronic_illnesses,
            })
        elif isinstance(change, AddPresentingComplaint):
            db.add(PresentingComplaint(
                patient_id=patient.id,
                complaint=change.complaint,
                duration=change.duration,
                severity=change.severity,
                associated_symptoms=change.associated_symptoms,
                notes=change.notes,
                date_recorded=self.clock.now(),
            ))
        elif isinstance(change, ReplaceEmergencySubscription):
            self._set(db, patient, {"emergency_subscription": change.subscription})
        elif isinstance(change, ReplaceHmoProvider):
            self._set(db, patient, {"hmo_provider": change.hmo_provider})
        elif isinstance(change, RegisterHospital):
            self._register(db, patient, change.hospital_id)
        elif isinstance(change, UnregisterHospital):
            self._unregister(db, patient, change.hospital_id)
        elif isinstance(change, DeactivatePatient):
            self._set(db, patient, {"is_active": False})
            logger.info("Deactivated patient %s", patient.patient_id)
        else:
            raise InvalidRequestError(f"Unsupported patient update: {type(change).__name__}")

        db.commit()
        db.refresh(patient)
        return patient

    def _set(self, db: Session, patient: Patient, values: dict) -> None:
        values["updated_at"] = self.clock.now()
        db.execute(update(Patient).where(Patient.id == patient.id).values(**values))

    def _revise(self, db: Session, patient: Patient, changes: dict) -> None:
        unknown = set(changes) - REVISABLE_FIELDS
        if unknown:
            raise InvalidRequestError(f"Fields cannot be revised: {', '.join(sorted(unknown))}")
        if not changes:
            return
        reject_nulls(changes, REQUIRED_FIELDS)
        _validate_choice("gender", changes.get("gender"), Gender.ALL)
        _validate_choice("access_level", changes.get("access_level"), AccessLevel.ALL)
        values = dict(changes)
        if values.get("email"):
            values["email"] = values["email"].lower()
        if "date_of_birth" in values:
            values["age"] = calculate_age(values["date_of_birth"], self.clock.now().date())
        self._set(db, patient, values)

    def _register(self, db: Session, patient: Patient, hospital_id: str) -> None:
        hospital = db.get(Hospital, hospital_id)
        if hospital is None or not hospital.is_active:
            raise NotFoundError("Hospital not found")
        if patient.is_registered_at(hospital_id):
            raise ConflictError("Patient already registered at this hospital")
        db.add(PatientRegistration(
            patient_id=patient.id,
            hospital_id=hospital_id,
            registration_date=self.clock.now(),
        ))
        logger.info("Patient %s registered at hospital %s", patient.patient_id, hospital_id)

    def _unregister(self, db: Session, patient: Patient, hospital_id: str) -> None:
        active = [
            reg for reg in patient.registrations
            if reg.hospital_id == hospital_id and reg.is_active
        ]
        if not active:
            raise NotFoundError("Patient is not registered at this hospital")
        db.execute(
            update(PatientRegistration)
            .where(PatientRegistration.id.in_([reg.id for reg in active]))
            .values(is_active=False)
        )

    # ── QR codes ─────────────────────────────────────────────────────────────

    def ensure_qr_code(self, db: Session, patient: Patient) -> Patient:
        if patient.qr_code:
            return patient
        return self.regenerate_qr_code(db, patient)

    def regenerate_qr_code(self, db: Session, patient: Patient) -> Patient:
        """Swap in a fresh code; the previous one stops resolving on commit."""
        self._set(db, patient, {"qr_code": self.new_qr_code(patient.patient_id)})
        db.commit()
        db.refresh(patient)
        logger.info("Regenerated QR code for patient %s", patient.patient_id)
        return patient

    def find_by_qr_code(self, db: Session, code: str) -> Optional[Patient]:
        if not code:
            return None
        return (
            db.query(Patient)
            .filter(Patient.qr_code == code, Patient.is_active == True)  # noqa: E712
            .first()
        )


def _validate_choice(name: str, value, allowed) -> None:
    if value is not None and value not in allowed:
        raise InvalidRequestError(f"Invalid {name}: {value}")


def _validate_history(blood_group, genotype) -> None:
    _validate_choice("blood_group", blood_group, BLOOD_GROUPS)
    _validate_choice("genotype", genotype, GENOTYPES)


patient_service = PatientService()
