"""
Medical record creation and the closed set of record updates.
"""
import logging
from dataclasses import dataclass, field
from typing import ClassVar, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..core.clock import Clock, system_clock
from ..core.exceptions import InvalidRequestError, reject_nulls
from ..models.medical_record import (
    ImagingResult,
    LabResult,
    MedicalRecord,
    NursingNote,
    RecordStatus,
    VisitType,
)
from ..models.patient import Patient

logger = logging.getLogger(__name__)

REVISABLE_FIELDS = {
    "visit_date", "visit_type", "department", "chief_complaint", "visit_number",
    "notes", "is_emergency", "confidentiality", "status",
}

REQUIRED_FIELDS = {"visit_date", "visit_type", "is_emergency", "status"}

# Statuses a record may be created with or revised to; archiving has its own update
OPEN_STATUSES = (RecordStatus.DRAFT, RecordStatus.ACTIVE, RecordStatus.COMPLETED)


# ── Update variants ──────────────────────────────────────────────────────────

@dataclass
class ReplaceSection:
    """Replace one whole sub-document of a record."""
    value: dict
    column: ClassVar[str] = ""


@dataclass
class ReplaceVitalSigns(ReplaceSection):
    column: ClassVar[str] = "vital_signs"


@dataclass
class ReplacePhysicalExamination(ReplaceSection):
    column: ClassVar[str] = "physical_examination"


@dataclass
class ReplaceAssessment(ReplaceSection):
    column: ClassVar[str] = "assessment"


@dataclass
class ReplaceTreatment(ReplaceSection):
    column: ClassVar[str] = "treatment"


@dataclass
class ReplaceDischarge(ReplaceSection):
    column: ClassVar[str] = "discharge"


@dataclass
class ReviseRecordDetails:
    changes: dict = field(default_factory=dict)


@dataclass
class AppendEntry:
    """Append one child row (lab, imaging or nursing entry)."""
    entry: dict
    model: ClassVar[type] = None


@dataclass
class AppendLabResult(AppendEntry):
    model: ClassVar[type] = LabResult


@dataclass
class AppendImagingResult(AppendEntry):
    model: ClassVar[type] = ImagingResult


@dataclass
class AppendNursingNote(AppendEntry):
    model: ClassVar[type] = NursingNote


@dataclass
class ArchiveRecord:
    pass


class RecordService:
    def __init__(self, clock: Clock = system_clock):
        self.clock = clock

    def create(self, db: Session, patient: Patient, hospital_id: str, created_by: str, data: dict) -> MedicalRecord:
        """Open a visit record for ``patient`` at ``hospital_id``.

        The hospital must be one the patient is or was registered at.
        """
        if not patient.is_registered_at(hospital_id, include_inactive=True):
            raise InvalidRequestError("Patient is not registered at this hospital")
        data = dict(data)
        if data.get("visit_type") not in VisitType.ALL:
            raise InvalidRequestError(f"Invalid visit_type: {data.get('visit_type')}")
        status = data.setdefault("status", RecordStatus.ACTIVE)
        if status not in OPEN_STATUSES:
            raise InvalidRequestError(f"Invalid status: {status}")

        now = self.clock.now()
        if not data.get("visit_date"):
            data["visit_date"] = now
        data.setdefault("is_emergency", data["visit_type"] == VisitType.EMERGENCY)

        record = MedicalRecord(
            patient_id=patient.id,
            hospital_id=hospital_id,
            created_by=created_by,
            **data,
        )
        db.add(record)
        db.execute(
            update(Patient)
            .where(Patient.id == patient.id)
            .values(total_visits=Patient.total_visits + 1, last_visit=data["visit_date"])
        )
        db.commit()
        db.refresh(record)
        logger.info("Created medical record %s for patient %s", record.id, patient.patient_id)
        return record

    def apply(self, db: Session, record: MedicalRecord, change) -> MedicalRecord:
        """Apply one update variant to ``record`` and return the fresh row."""
        if isinstance(change, ReplaceSection):
            values = {change.column: change.value}
            if isinstance(change, ReplaceDischarge) and change.value.get("discharge_date"):
                values["status"] = RecordStatus.COMPLETED
            self._set(db, record, values)
        elif isinstance(change, ReviseRecordDetails):
            self._revise(db, record, change.changes)
        elif isinstance(change, AppendEntry):
            db.add(change.model(record_id=record.id, **change.entry))
        elif isinstance(change, ArchiveRecord):
            self._set(db, record, {"status": RecordStatus.ARCHIVED})
            logger.info("Archived medical record %s", record.id)
        else:
            raise InvalidRequestError(f"Unsupported record update: {type(change).__name__}")

        db.commit()
        db.refresh(record)
        return record

    def _set(self, db: Session, record: MedicalRecord, values: dict) -> None:
        values["updated_at"] = self.clock.now()
        db.execute(update(MedicalRecord).where(MedicalRecord.id == record.id).values(**values))

    def _revise(self, db: Session, record: MedicalRecord, changes: dict) -> None:
        unknown = set(changes) - REVISABLE_FIELDS
        if unknown:
            raise InvalidRequestError(f"Fields cannot be revised: {', '.join(sorted(unknown))}")
        reject_nulls(changes, REQUIRED_FIELDS)
        if "visit_type" in changes and changes["visit_type"] not in VisitType.ALL:
            raise InvalidRequestError(f"Invalid visit_type: {changes['visit_type']}")
        status = changes.get("status")
        if status is not None and status not in OPEN_STATUSES:
            raise InvalidRequestError(f"Invalid status: {status}")
        if changes:
            self._set(db, record, dict(changes))


def apply_record_update(db: Session, record: MedicalRecord, change) -> MedicalRecord:
    return record_service.apply(db, record, change)


record_service = RecordService()
