"""Medical records: visits, clinical sections and appended results."""
from datetime import date, datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..core.permissions import Action, Caller, EntityKind, Target, authorize
from ..core.security import get_current_caller
from ..core.visibility import View, project
from ..models.base import get_db
from ..models.hospital import Hospital
from ..models.medical_record import MedicalRecord, RecordStatus
from ..models.patient import Patient
from ..services.queries import constrain
from ..services.records import (
    AppendImagingResult,
    AppendLabResult,
    AppendNursingNote,
    ArchiveRecord,
    ReplaceAssessment,
    ReplaceDischarge,
    ReplacePhysicalExamination,
    ReplaceTreatment,
    ReplaceVitalSigns,
    ReviseRecordDetails,
    record_service,
)
from ..services.statistics import statistics_service

router = APIRouter(prefix="/medical-records", tags=["medical-records"])


# ── Request schemas ──────────────────────────────────────────────────────────

class Measurement(BaseModel):
    value: Optional[float] = None
    unit: Optional[str] = None


class BloodPressure(BaseModel):
    systolic: Optional[int] = None
    diastolic: Optional[int] = None
    unit: str = "mmHg"


class VitalSigns(BaseModel):
    blood_pressure: Optional[BloodPressure] = None
    heart_rate: Optional[Measurement] = None
    temperature: Optional[Measurement] = None
    respiratory_rate: Optional[Measurement] = None
    oxygen_saturation: Optional[Measurement] = None
    weight: Optional[Measurement] = None
    height: Optional[Measurement] = None
    bmi: Optional[float] = None


class PhysicalExamination(BaseModel):
    general_appearance: Optional[str] = None
    head_and_neck: Optional[str] = None
    cardiovascular: Optional[str] = None
    respiratory: Optional[str] = None
    abdominal: Optional[str] = None
    neurological: Optional[str] = None
    musculoskeletal: Optional[str] = None
    skin: Optional[str] = None
    other_findings: Optional[str] = None


class Assessment(BaseModel):
    primary_diagnosis: str
    secondary_diagnoses: List[str] = []
    differential_diagnoses: List[str] = []
    icd10_codes: List[str] = []
    severity: Optional[str] = None  # mild, moderate, severe, critical
    prognosis: Optional[str] = None


class Medication(BaseModel):
    name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    route: Optional[str] = None
    instructions: Optional[str] = None


class Treatment(BaseModel):
    medications: List[Medication] = []
    procedures: List[dict] = []
    referrals: List[dict] = []
    follow_up: Optional[dict] = None


class Discharge(BaseModel):
    discharge_date: Optional[datetime] = None
    discharge_type: Optional[str] = None  # routine, against_medical_advice, transfer, death
    condition: Optional[str] = None
    instructions: Optional[str] = None
    follow_up_date: Optional[date] = None
    discharge_summary: Optional[str] = None


class LabResultCreate(BaseModel):
    test_name: str
    test_date: datetime
    results: Optional[Any] = None
    normal_range: Optional[str] = None
    status: Optional[str] = None  # normal, abnormal, critical, pending
    notes: Optional[str] = None
    lab_technician: Optional[str] = None


class ImagingResultCreate(BaseModel):
    study_type: str
    study_date: datetime
    findings: Optional[str] = None
    impression: Optional[str] = None
    radiologist: Optional[str] = None
    images: List[str] = []
    notes: Optional[str] = None


class NursingNoteCreate(BaseModel):
    date: datetime
    nurse: Optional[str] = None
    note: str
    vital_signs: Optional[VitalSigns] = None


class RecordCreate(BaseModel):
    patient_id: str
    hospital_id: Optional[str] = None
    visit_date: Optional[datetime] = None
    visit_type: str
    department: Optional[str] = None
    chief_complaint: Optional[str] = None
    visit_number: Optional[str] = None
    vital_signs: Optional[VitalSigns] = None
    notes: Optional[str] = None
    is_emergency: Optional[bool] = None
    status: Optional[str] = None


class RecordUpdate(BaseModel):
    visit_date: Optional[datetime] = None
    visit_type: Optional[str] = None
    department: Optional[str] = None
    chief_complaint: Optional[str] = None
    visit_number: Optional[str] = None
    notes: Optional[str] = None
    is_emergency: Optional[bool] = None
    confidentiality: Optional[dict] = None
    status: Optional[str] = None


# ── Helpers ──────────────────────────────────────────────────────────────────

def _load(db: Session, caller: Caller, action: Action, record_id: str) -> MedicalRecord:
    record = db.get(MedicalRecord, record_id)
    authorize(caller, action, Target.of_record(record, record_id))
    return record


def _document(record: MedicalRecord) -> dict:
    return project(record.to_document(), View.FULL)


def _filtered(
    q,
    hospital_id: Optional[str],
    visit_type: Optional[str],
    record_status: Optional[str],
    is_emergency: Optional[bool],
    date_from: Optional[date],
    date_to: Optional[date],
):
    if hospital_id:
        q = q.filter(MedicalRecord.hospital_id == hospital_id)
    if visit_type:
        q = q.filter(MedicalRecord.visit_type == visit_type)
    if record_status:
        q = q.filter(MedicalRecord.status == record_status)
    else:
        q = q.filter(MedicalRecord.status != RecordStatus.ARCHIVED)
    if is_emergency is not None:
        q = q.filter(MedicalRecord.is_emergency == is_emergency)
    if date_from:
        q = q.filter(MedicalRecord.visit_date >= date_from)
    if date_to:
        q = q.filter(MedicalRecord.visit_date < date_to)
    return q


def _page(q, skip: int, limit: int) -> dict:
    total = q.count()
    records = q.order_by(MedicalRecord.visit_date.desc()).offset(skip).limit(limit).all()
    return {"total": total, "items": [_document(r) for r in records]}


# ── Collection endpoints ─────────────────────────────────────────────────────

@router.get("/")
def list_records(
    patient_id: Optional[str] = None,
    hospital_id: Optional[str] = None,
    visit_type: Optional[str] = None,
    record_status: Optional[str] = Query(None, alias="status"),
    is_emergency: Optional[bool] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    decision = authorize(caller, Action.LIST, Target.collection(EntityKind.MEDICAL_RECORD))
    q = constrain(db.query(MedicalRecord), MedicalRecord, decision.constraint)
    if patient_id:
        q = q.filter(MedicalRecord.patient_id == patient_id)
    q = _filtered(q, hospital_id, visit_type, record_status, is_emergency, date_from, date_to)
    return _page(q, skip, limit)


@router.get("/stats/overview")
def record_statistics(
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    decision = authorize(caller, Action.SUMMARIZE, Target.collection(EntityKind.MEDICAL_RECORD))
    return statistics_service.record_overview(db, decision.constraint)


@router.get("/patient/{patient_id}")
def list_patient_records(
    patient_id: str,
    visit_type: Optional[str] = None,
    record_status: Optional[str] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """A patient's records, narrowed to the caller's hospital for staff."""
    patient = db.get(Patient, patient_id)
    authorize(caller, Action.READ, Target.of_patient(patient, patient_id))
    decision = authorize(caller, Action.LIST, Target.collection(EntityKind.MEDICAL_RECORD))
    q = constrain(db.query(MedicalRecord), MedicalRecord, decision.constraint)
    q = q.filter(MedicalRecord.patient_id == patient.id)
    q = _filtered(q, None, visit_type, record_status, None, None, None)
    return _page(q, skip, limit)


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_record(
    body: RecordCreate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    hospital_id = body.hospital_id or caller.hospital_id
    patient = db.get(Patient, body.patient_id)
    hospital = db.get(Hospital, hospital_id) if hospital_id else None
    authorize(
        caller,
        Action.CREATE,
        Target.new_record(patient, hospital, patient_id=body.patient_id, hospital_id=hospital_id),
    )
    data = body.model_dump(exclude={"patient_id", "hospital_id", "vital_signs"}, exclude_none=True)
    if body.vital_signs is not None:
        data["vital_signs"] = body.vital_signs.model_dump(mode="json")
    record = record_service.create(db, patient, hospital.id, caller.subject_id, data)
    return _document(record)


# ── Instance endpoints ───────────────────────────────────────────────────────

@router.get("/{record_id}")
def get_record(
    record_id: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return _document(_load(db, caller, Action.READ, record_id))


@router.put("/{record_id}")
def update_record(
    record_id: str,
    body: RecordUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    record = _load(db, caller, Action.UPDATE, record_id)
    changes = body.model_dump(exclude_unset=True)
    record = record_service.apply(db, record, ReviseRecordDetails(changes))
    return _document(record)


@router.delete("/{record_id}")
def archive_record(
    record_id: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    record = _load(db, caller, Action.ARCHIVE, record_id)
    record_service.apply(db, record, ArchiveRecord())
    return {"message": "Medical record archived", "id": record.id}


@router.put("/{record_id}/vital-signs")
def replace_vital_signs(
    record_id: str,
    body: VitalSigns,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    record = _load(db, caller, Action.UPDATE, record_id)
    record = record_service.apply(db, record, ReplaceVitalSigns(body.model_dump(mode="json")))
    return _document(record)


@router.put("/{record_id}/physical-examination")
def replace_physical_examination(
    record_id: str,
    body: PhysicalExamination,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    record = _load(db, caller, Action.UPDATE, record_id)
    record = record_service.apply(db, record, ReplacePhysicalExamination(body.model_dump(mode="json")))
    return _document(record)


@router.put("/{record_id}/assessment")
def replace_assessment(
    record_id: str,
    body: Assessment,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    record = _load(db, caller, Action.UPDATE, record_id)
    record = record_service.apply(db, record, ReplaceAssessment(body.model_dump(mode="json")))
    return _document(record)


@router.put("/{record_id}/treatment")
def replace_treatment(
    record_id: str,
    body: Treatment,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    record = _load(db, caller, Action.UPDATE, record_id)
    record = record_service.apply(db, record, ReplaceTreatment(body.model_dump(mode="json")))
    return _document(record)


@router.put("/{record_id}/discharge")
def replace_discharge(
    record_id: str,
    body: Discharge,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """Discharging with a date also completes the visit."""
    record = _load(db, caller, Action.UPDATE, record_id)
    record = record_service.apply(db, record, ReplaceDischarge(body.model_dump(mode="json")))
    return _document(record)


@router.post("/{record_id}/laboratory-results", status_code=status.HTTP_201_CREATED)
def add_lab_result(
    record_id: str,
    body: LabResultCreate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    record = _load(db, caller, Action.UPDATE, record_id)
    record = record_service.apply(db, record, AppendLabResult(body.model_dump()))
    return _document(record)


@router.post("/{record_id}/imaging-results", status_code=status.HTTP_201_CREATED)
def add_imaging_result(
    record_id: str,
    body: ImagingResultCreate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    record = _load(db, caller, Action.UPDATE, record_id)
    record = record_service.apply(db, record, AppendImagingResult(body.model_dump()))
    return _document(record)


@router.post("/{record_id}/nursing-notes", status_code=status.HTTP_201_CREATED)
def add_nursing_note(
    record_id: str,
    body: NursingNoteCreate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    record = _load(db, caller, Action.UPDATE, record_id)
    entry = body.model_dump()
    entry["vital_signs"] = body.model_dump(mode="json")["vital_signs"]
    record = record_service.apply(db, record, AppendNursingNote(entry))
    return _document(record)
