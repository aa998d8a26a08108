"""Patient registry: biodata, medical history, hospital registrations and QR payloads."""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundError
from ..core.permissions import Action, Caller, EntityKind, Target, authorize
from ..core.security import get_current_caller
from ..core.visibility import View, project
from ..models.base import get_db
from ..models.hospital import Hospital
from ..models.patient import AccessLevel, Patient
from ..services.patients import (
    AddPresentingComplaint,
    DeactivatePatient,
    RegisterHospital,
    ReplaceEmergencySubscription,
    ReplaceHmoProvider,
    ReplaceMedicalHistory,
    RevisePatientDetails,
    UnregisterHospital,
    patient_service,
)
from ..services.queries import constrain, patient_at_hospital, search_term
from ..services.statistics import statistics_service

router = APIRouter(prefix="/patients", tags=["patients"])


# ── Request schemas ──────────────────────────────────────────────────────────

class EmergencyContact(BaseModel):
    name: str
    relationship: str
    phone: str
    address: Optional[str] = None


class Allergy(BaseModel):
    allergen: str
    reaction: Optional[str] = None
    severity: Optional[str] = None  # mild, moderate, severe
    notes: Optional[str] = None


class SurgicalProcedure(BaseModel):
    procedure: str
    date: Optional[str] = None  # ISO date
    hospital: Optional[str] = None
    surgeon: Optional[str] = None
    complications: Optional[str] = None
    notes: Optional[str] = None


class ChronicIllness(BaseModel):
    condition: str
    category: Optional[str] = None
    diagnosed_date: Optional[date] = None
    severity: Optional[str] = None
    medications: List[str] = []
    is_active: bool = True
    notes: Optional[str] = None


class PatientCreate(BaseModel):
    first_name: str
    middle_name: Optional[str] = None
    last_name: str
    date_of_birth: date
    gender: str
    marital_status: Optional[str] = None
    occupation: Optional[str] = None
    phone: str
    email: Optional[str] = None
    emergency_contact: Optional[EmergencyContact] = None
    street: Optional[str] = None
    city: Optional[str] = None
    lga: Optional[str] = None
    state: Optional[str] = None
    country: str = "Nigeria"
    postal_code: Optional[str] = None
    blood_group: Optional[str] = None
    genotype: Optional[str] = None
    allergies: List[Allergy] = []
    chronic_illnesses: List[ChronicIllness] = []
    access_level: str = AccessLevel.LIMITED
    primary_hospital_id: Optional[str] = None
    notes: Optional[str] = None


class PatientUpdate(BaseModel):
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    marital_status: Optional[str] = None
    occupation: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    emergency_contact: Optional[EmergencyContact] = None
    street: Optional[str] = None
    city: Optional[str] = None
    lga: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    access_level: Optional[str] = None
    notes: Optional[str] = None


class MedicalHistoryUpdate(BaseModel):
    blood_group: Optional[str] = None
    genotype: Optional[str] = None
    allergies: List[Allergy] = []
    surgical_history: List[SurgicalProcedure] = []
    chronic_illnesses: List[ChronicIllness] = []


class ComplaintCreate(BaseModel):
    complaint: str
    duration: Optional[str] = None
    severity: Optional[str] = None
    associated_symptoms: List[str] = []
    notes: Optional[str] = None


class Coverage(BaseModel):
    emergency: bool = False
    ambulance: bool = False
    surgery: bool = False
    medication: bool = False


class EmergencySubscription(BaseModel):
    is_active: bool = False
    subscription_type: Optional[str] = None  # basic, premium, family
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    coverage: Coverage = Coverage()


class HmoProvider(BaseModel):
    name: str
    policy_number: Optional[str] = None
    coverage_type: Optional[str] = None
    expiry_date: Optional[date] = None
    is_active: bool = True


class HospitalRef(BaseModel):
    hospital_id: str


# ── Helpers ──────────────────────────────────────────────────────────────────

def _load(db: Session, caller: Caller, action: Action, patient_id: str) -> Patient:
    patient = db.get(Patient, patient_id)
    authorize(caller, action, Target.of_patient(patient, patient_id))
    return patient


def _document(patient: Patient) -> dict:
    return project(patient.to_document(), View.FULL)


# ── Collection endpoints ─────────────────────────────────────────────────────

@router.get("/")
def list_patients(
    hospital_id: Optional[str] = None,
    gender: Optional[str] = None,
    lga: Optional[str] = None,
    state: Optional[str] = None,
    blood_group: Optional[str] = None,
    genotype: Optional[str] = None,
    search: Optional[str] = Query(None, description="Match on name, patient number or phone"),
    registered_from: Optional[date] = None,
    registered_to: Optional[date] = None,
    include_inactive: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    decision = authorize(caller, Action.LIST, Target.collection(EntityKind.PATIENT))
    q = constrain(db.query(Patient), Patient, decision.constraint)
    if not (include_inactive and caller.is_admin):
        q = q.filter(Patient.is_active == True)  # noqa: E712
    if hospital_id:
        q = q.filter(patient_at_hospital(hospital_id))
    if gender:
        q = q.filter(Patient.gender == gender)
    if lga:
        q = q.filter(Patient.lga == lga)
    if state:
        q = q.filter(Patient.state == state)
    if blood_group:
        q = q.filter(Patient.blood_group == blood_group)
    if genotype:
        q = q.filter(Patient.genotype == genotype)
    if search:
        term = search_term(search)
        q = q.filter(or_(
            Patient.first_name.ilike(term, escape="\\"),
            Patient.last_name.ilike(term, escape="\\"),
            Patient.patient_id.ilike(term, escape="\\"),
            Patient.phone.ilike(term, escape="\\"),
        ))
    if registered_from:
        q = q.filter(Patient.date_of_registration >= registered_from)
    if registered_to:
        q = q.filter(Patient.date_of_registration < registered_to)
    total = q.count()
    patients = q.order_by(Patient.created_at.desc()).offset(skip).limit(limit).all()
    return {"total": total, "items": [_document(p) for p in patients]}


@router.get("/stats/overview")
def patient_statistics(
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    decision = authorize(caller, Action.SUMMARIZE, Target.collection(EntityKind.PATIENT))
    return statistics_service.patient_overview(db, decision.constraint)


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_patient(
    body: PatientCreate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    authorize(caller, Action.CREATE, Target.collection(EntityKind.PATIENT))
    hospital_id = body.primary_hospital_id or caller.hospital_id
    hospital = None
    if hospital_id:
        hospital = db.get(Hospital, hospital_id)
        if hospital is None or not hospital.is_active:
            raise NotFoundError("Hospital not found")

    data = body.model_dump(exclude={"primary_hospital_id"})
    for key in ("emergency_contact", "allergies", "chronic_illnesses"):
        data[key] = body.model_dump(mode="json", include={key})[key]
    patient = patient_service.create(db, data, primary_hospital=hospital)
    return _document(patient)


# ── Instance endpoints ───────────────────────────────────────────────────────

@router.get("/{patient_id}")
def get_patient(
    patient_id: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return _document(_load(db, caller, Action.READ, patient_id))


@router.put("/{patient_id}")
def update_patient(
    patient_id: str,
    body: PatientUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    patient = _load(db, caller, Action.UPDATE, patient_id)
    changes = body.model_dump(exclude_unset=True)
    if "emergency_contact" in changes:
        changes["emergency_contact"] = body.model_dump(mode="json", include={"emergency_contact"})["emergency_contact"]
    patient = patient_service.apply(db, patient, RevisePatientDetails(changes))
    return _document(patient)


@router.delete("/{patient_id}")
def deactivate_patient(
    patient_id: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    patient = _load(db, caller, Action.ARCHIVE, patient_id)
    patient_service.apply(db, patient, DeactivatePatient())
    return {"message": "Patient deactivated", "id": patient.id}


@router.post("/{patient_id}/register-hospital")
def register_hospital(
    patient_id: str,
    body: HospitalRef,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    patient = _load(db, caller, Action.UPDATE, patient_id)
    patient = patient_service.apply(db, patient, RegisterHospital(body.hospital_id))
    return _document(patient)


@router.post("/{patient_id}/unregister-hospital")
def unregister_hospital(
    patient_id: str,
    body: HospitalRef,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    patient = _load(db, caller, Action.UPDATE, patient_id)
    patient = patient_service.apply(db, patient, UnregisterHospital(body.hospital_id))
    return _document(patient)


@router.put("/{patient_id}/medical-history")
def replace_medical_history(
    patient_id: str,
    body: MedicalHistoryUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    patient = _load(db, caller, Action.UPDATE, patient_id)
    patient = patient_service.apply(db, patient, ReplaceMedicalHistory(**body.model_dump(mode="json")))
    return _document(patient)


@router.post("/{patient_id}/presenting-complaints", status_code=status.HTTP_201_CREATED)
def add_presenting_complaint(
    patient_id: str,
    body: ComplaintCreate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    patient = _load(db, caller, Action.UPDATE, patient_id)
    patient = patient_service.apply(db, patient, AddPresentingComplaint(**body.model_dump()))
    return _document(patient)


@router.put("/{patient_id}/emergency-subscription")
def replace_emergency_subscription(
    patient_id: str,
    body: EmergencySubscription,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    patient = _load(db, caller, Action.UPDATE, patient_id)
    patient = patient_service.apply(db, patient, ReplaceEmergencySubscription(body.model_dump(mode="json")))
    return _document(patient)


@router.put("/{patient_id}/hmo-provider")
def replace_hmo_provider(
    patient_id: str,
    body: HmoProvider,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    patient = _load(db, caller, Action.UPDATE, patient_id)
    patient = patient_service.apply(db, patient, ReplaceHmoProvider(body.model_dump(mode="json")))
    return _document(patient)


@router.get("/{patient_id}/qr-code")
def get_qr_code(
    patient_id: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    patient = _load(db, caller, Action.READ, patient_id)
    return patient_service.qr_payload(patient)
