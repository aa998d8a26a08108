"""
QR emergency lookup.

Staff generate and rotate a patient's code; anyone holding a code can see
that patient's emergency snapshot and recent record summaries, and nothing
else.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import NotFoundError
from ..core.permissions import Action, Caller, Target, authorize
from ..core.security import get_current_caller
from ..core.visibility import View, project, summarize_records
from ..models.base import get_db
from ..models.medical_record import MedicalRecord, RecordStatus
from ..models.patient import Patient
from ..services.patients import patient_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/qr", tags=["qr"])


def _load_for_update(db: Session, caller: Caller, patient_id: str) -> Patient:
    patient = db.get(Patient, patient_id)
    authorize(caller, Action.UPDATE, Target.of_patient(patient, patient_id))
    return patient


def _patient_for_code(db: Session, code: str) -> Patient:
    patient = patient_service.find_by_qr_code(db, code)
    if patient is None:
        raise NotFoundError("Invalid QR code")
    return patient


@router.get("/generate/{patient_id}")
def generate_qr_code(
    patient_id: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """Return the patient's QR payload, issuing a code first if there is none."""
    patient = _load_for_update(db, caller, patient_id)
    patient = patient_service.ensure_qr_code(db, patient)
    return patient_service.qr_payload(patient)


@router.post("/regenerate/{patient_id}")
def regenerate_qr_code(
    patient_id: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    patient = _load_for_update(db, caller, patient_id)
    patient = patient_service.regenerate_qr_code(db, patient)
    return patient_service.qr_payload(patient)


# ── Public lookups ───────────────────────────────────────────────────────────

@router.get("/validate/{code}")
def validate_qr_code(code: str, db: Session = Depends(get_db)):
    patient = patient_service.find_by_qr_code(db, code)
    return {
        "valid": patient is not None,
        "patient_id": patient.patient_id if patient else None,
    }


@router.get("/scan/{code}")
def scan_qr_code(code: str, db: Session = Depends(get_db)):
    patient = _patient_for_code(db, code)
    logger.info("QR scan for patient %s", patient.patient_id)
    as_of = patient_service.clock.now().date()
    return project(patient.to_document(), View.EMERGENCY_SNAPSHOT, as_of=as_of)


@router.get("/patient-records/{code}")
def qr_patient_records(code: str, db: Session = Depends(get_db)):
    patient = _patient_for_code(db, code)
    limit = settings.QR_RECORD_SUMMARY_LIMIT
    records = (
        db.query(MedicalRecord)
        .filter(MedicalRecord.patient_id == patient.id, MedicalRecord.status != RecordStatus.ARCHIVED)
        .order_by(MedicalRecord.visit_date.desc())
        .limit(limit)
        .all()
    )
    summaries = summarize_records(
        patient.to_document(),
        [r.to_document() for r in records],
        limit=limit,
    )
    return {"patient_id": patient.patient_id, "records": summaries}
