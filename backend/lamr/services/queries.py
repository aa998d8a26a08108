"""
Applying access-decision constraints and list filters to SQLAlchemy queries.
"""
from typing import Dict, Optional

from ..models.patient import Patient, PatientRegistration


def patient_at_hospital(hospital_id: str):
    """Clause matching patients with an active registration at ``hospital_id``."""
    return Patient.registrations.any(
        (PatientRegistration.hospital_id == hospital_id)
        & (PatientRegistration.is_active == True)  # noqa: E712
    )


def constrain(query, model, constraint: Optional[Dict[str, str]]):
    """Narrow ``query`` to the rows a scoped Allow covers.

    Patients have no hospital column; ``hospital_id`` means registered there.
    """
    if not constraint:
        return query
    for field, value in constraint.items():
        if model is Patient and field == "hospital_id":
            query = query.filter(patient_at_hospital(value))
        elif model is Patient and field == "patient_id":
            query = query.filter(Patient.id == value)
        else:
            query = query.filter(getattr(model, field) == value)
    return query


def search_term(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
