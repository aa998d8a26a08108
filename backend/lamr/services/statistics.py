"""
Overview statistics for hospitals, patients and medical records.

Counts are grouped in the database. Subscription counts live in JSON
columns and are tallied in Python over the scoped rows.
"""
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.hospital import Hospital, HospitalStatus
from ..models.medical_record import MedicalRecord
from ..models.patient import Patient
from .queries import constrain

TOP_STATES = 10
TOP_HOSPITALS = 5


@dataclass
class HospitalOverview:
    total_hospitals: int
    active_hospitals: int
    partner_hospitals: int
    by_type: Dict[str, int] = field(default_factory=dict)
    top_states: List[dict] = field(default_factory=list)


@dataclass
class PatientOverview:
    total_patients: int
    emergency_subscribers: int
    hmo_subscribers: int
    by_gender: Dict[str, int] = field(default_factory=dict)
    by_blood_group: Dict[str, int] = field(default_factory=dict)
    top_states: List[dict] = field(default_factory=list)


@dataclass
class RecordOverview:
    total_records: int
    emergency_records: int
    by_status: Dict[str, int] = field(default_factory=dict)
    by_visit_type: Dict[str, int] = field(default_factory=dict)
    top_hospitals: List[dict] = field(default_factory=list)


def _grouped(query, column) -> Dict[str, int]:
    rows = query.with_entities(column, func.count()).group_by(column).all()
    return {key if key is not None else "unknown": count for key, count in rows}


def _top(query, column, label: str, limit: int) -> List[dict]:
    count = func.count().label("count")
    rows = (
        query.with_entities(column, count)
        .filter(column.isnot(None))
        .group_by(column)
        .order_by(count.desc(), column)
        .limit(limit)
        .all()
    )
    return [{label: key, "count": n} for key, n in rows]


class StatisticsService:
    def hospital_overview(self, db: Session) -> dict:
        base = db.query(Hospital)
        overview = HospitalOverview(
            total_hospitals=base.count(),
            active_hospitals=base.filter(Hospital.status == HospitalStatus.ACTIVE).count(),
            partner_hospitals=base.filter(Hospital.is_partner == True).count(),  # noqa: E712
            by_type=_grouped(base, Hospital.type),
            top_states=_top(base, Hospital.state, "state", TOP_STATES),
        )
        return asdict(overview)

    def patient_overview(self, db: Session, constraint: Optional[dict] = None) -> dict:
        base = constrain(db.query(Patient), Patient, constraint).filter(Patient.is_active == True)  # noqa: E712
        subscriptions = base.with_entities(Patient.emergency_subscription, Patient.hmo_provider).all()
        overview = PatientOverview(
            total_patients=base.count(),
            emergency_subscribers=sum(1 for sub, _ in subscriptions if (sub or {}).get("is_active")),
            hmo_subscribers=sum(1 for _, hmo in subscriptions if (hmo or {}).get("is_active")),
            by_gender=_grouped(base, Patient.gender),
            by_blood_group=_grouped(base, Patient.blood_group),
            top_states=_top(base, Patient.state, "state", TOP_STATES),
        )
        return asdict(overview)

    def record_overview(self, db: Session, constraint: Optional[dict] = None) -> dict:
        base = constrain(db.query(MedicalRecord), MedicalRecord, constraint)
        overview = RecordOverview(
            total_records=base.count(),
            emergency_records=base.filter(MedicalRecord.is_emergency == True).count(),  # noqa: E712
            by_status=_grouped(base, MedicalRecord.status),
            by_visit_type=_grouped(base, MedicalRecord.visit_type),
            top_hospitals=_top(base, MedicalRecord.hospital_id, "hospital_id", TOP_HOSPITALS),
        )
        return asdict(overview)


statistics_service = StatisticsService()
