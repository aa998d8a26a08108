"""
Visibility projector: decides which fields of an entity document are disclosed.

Projection is a pure function of (document, view). Each restricted view is
an explicit allow-list, built field by field, so unexpected keys in the
source document can never leak into the output.
"""
import copy
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, List, Optional

from .exceptions import AccessDenied
from .permissions import DenyReason, EntityKind


class View(str, Enum):
    FULL = "full"
    EMERGENCY_SNAPSHOT = "emergency_snapshot"
    RECORD_SUMMARY = "record_summary"


class UnknownViewError(ValueError):
    pass


RECORD_SUMMARY_LIMIT = 5

SUBSCRIPTION_COVERAGE_FIELDS = ("emergency", "ambulance", "surgery", "medication")
MEASURED_VITALS = ("heart_rate", "temperature", "respiratory_rate", "oxygen_saturation")


def _get(doc: Any, *path: str) -> Any:
    """Walk nested dicts; anything that is not a dict along the way yields None."""
    for key in path:
        if not isinstance(doc, dict):
            return None
        doc = doc.get(key)
    return doc


def _dicts(items: Any) -> Iterable[dict]:
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def _pick(doc: Any, fields: Iterable[str]) -> dict:
    return {field: _get(doc, field) for field in fields}


def _as_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def calculate_age(date_of_birth: Any, as_of: Optional[date] = None) -> Optional[int]:
    dob = _as_date(date_of_birth)
    if dob is None:
        return None
    today = as_of or date.today()
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def _full_name(patient: dict) -> Optional[str]:
    first = _get(patient, "biodata", "first_name")
    last = _get(patient, "biodata", "last_name")
    middle = _get(patient, "biodata", "middle_name")
    parts = [p for p in (first, middle, last) if isinstance(p, str) and p]
    return " ".join(parts) or None


def emergency_snapshot(patient: dict, as_of: Optional[date] = None) -> dict:
    """What anyone holding the patient's QR code may see."""
    age = calculate_age(_get(patient, "biodata", "date_of_birth"), as_of)
    if age is None:
        age = _get(patient, "biodata", "age")

    subscription = _get(patient, "emergency_subscription")
    coverage = _get(subscription, "coverage")

    return {
        "patient_id": _get(patient, "patient_id"),
        "full_name": _full_name(patient),
        "age": age,
        "gender": _get(patient, "biodata", "gender"),
        "blood_group": _get(patient, "medical_history", "blood_group"),
        "genotype": _get(patient, "medical_history", "genotype"),
        "allergies": [
            _pick(item, ("allergen", "reaction", "severity"))
            for item in _dicts(_get(patient, "medical_history", "allergies"))
        ],
        "chronic_illnesses": [
            {
                "condition": item.get("condition"),
                "severity": item.get("severity"),
                "is_active": True,
            }
            for item in _dicts(_get(patient, "medical_history", "chronic_illnesses"))
            if item.get("is_active", True) is not False
        ],
        "emergency_subscription": {
            "is_active": bool(_get(subscription, "is_active")),
            "subscription_type": _get(subscription, "subscription_type"),
            "coverage": {
                field: bool(_get(coverage, field)) for field in SUBSCRIPTION_COVERAGE_FIELDS
            },
        },
        "emergency_contact": _pick(
            _get(patient, "biodata", "contact", "emergency_contact"),
            ("name", "relationship", "phone"),
        ),
    }


def record_summary(record: dict) -> dict:
    vitals = _get(record, "vital_signs")
    summary_vitals = {
        "blood_pressure": _pick(_get(vitals, "blood_pressure"), ("systolic", "diastolic", "unit")),
    }
    for name in MEASURED_VITALS:
        summary_vitals[name] = _pick(_get(vitals, name), ("value", "unit"))

    return {
        "record_id": _get(record, "id"),
        "visit_date": _get(record, "visit_info", "visit_date"),
        "visit_type": _get(record, "visit_info", "visit_type"),
        "chief_complaint": _get(record, "visit_info", "chief_complaint"),
        "primary_diagnosis": _get(record, "assessment", "primary_diagnosis"),
        "secondary_diagnoses": list(_get(record, "assessment", "secondary_diagnoses") or []),
        "severity": _get(record, "assessment", "severity"),
        "vitals": summary_vitals,
        "medications": [
            _pick(med, ("name", "dosage", "frequency"))
            for med in _dicts(_get(record, "treatment", "medications"))
        ],
        "discharge": _pick(
            _get(record, "discharge"),
            ("discharge_date", "discharge_type", "condition", "instructions", "discharge_summary"),
        ),
    }


def project(entity: dict, view, as_of: Optional[date] = None) -> dict:
    """Return the part of ``entity`` that ``view`` may disclose."""
    try:
        view = View(view)
    except ValueError:
        raise UnknownViewError(f"Unknown view: {view!r}")

    if view == View.FULL:
        return copy.deepcopy(entity)
    if view == View.EMERGENCY_SNAPSHOT:
        return emergency_snapshot(entity, as_of=as_of)
    return record_summary(entity)


def _visit_sort_key(record: dict):
    visit_date = _get(record, "visit_info", "visit_date")
    return (visit_date is not None, visit_date or 0)


def summarize_records(
    patient: dict,
    records: List[dict],
    limit: int = RECORD_SUMMARY_LIMIT,
) -> List[dict]:
    """Public record summaries for a QR scan.

    Refused outright for ``emergency_only`` patients; archived records are
    never included; newest visits first, at most ``limit`` entries.
    """
    if _get(patient, "access_level") == "emergency_only":
        raise AccessDenied(
            EntityKind.MEDICAL_RECORD,
            DenyReason.RESTRICTED_ACCESS_LEVEL,
            "Patient has restricted record access",
        )
    visible = [r for r in _dicts(records) if r.get("status") != "archived"]
    visible.sort(key=_visit_sort_key, reverse=True)
    return [project(r, View.RECORD_SUMMARY) for r in visible[:limit]]
