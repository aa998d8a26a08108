"""Hospital directory: listing, partnership and status management."""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..core.exceptions import InvalidRequestError, reject_nulls
from ..core.permissions import Action, Caller, EntityKind, Target, authorize
from ..core.security import get_current_caller
from ..models.base import get_db
from ..models.hospital import Hospital, HospitalStatus, HospitalType, PartnershipType
from ..models.patient import Patient
from ..services.queries import constrain, patient_at_hospital, search_term
from ..services.statistics import statistics_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/hospitals", tags=["hospitals"])

REQUIRED_FIELDS = {"name", "type"}


# ── Request schemas ──────────────────────────────────────────────────────────

class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    lga: Optional[str] = None
    state: Optional[str] = None
    country: str = "Nigeria"
    postal_code: Optional[str] = None


class Contact(BaseModel):
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None


class Facility(BaseModel):
    name: str
    description: Optional[str] = None
    is_available: bool = True


class Capacity(BaseModel):
    total_beds: Optional[int] = None
    icu_beds: Optional[int] = None
    emergency_beds: Optional[int] = None


class Coordinates(BaseModel):
    latitude: float
    longitude: float


class HospitalCreate(BaseModel):
    name: str
    type: str
    address: Address = Address()
    contact: Contact = Contact()
    specialties: List[str] = []
    facilities: List[Facility] = []
    capacity: Capacity = Capacity()
    accreditation: dict = {}
    coordinates: Optional[Coordinates] = None
    working_hours: dict = {}
    emergency_services: dict = {}


class HospitalUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    address: Optional[Address] = None
    contact: Optional[Contact] = None
    specialties: Optional[List[str]] = None
    facilities: Optional[List[Facility]] = None
    capacity: Optional[Capacity] = None
    accreditation: Optional[dict] = None
    coordinates: Optional[Coordinates] = None
    working_hours: Optional[dict] = None
    emergency_services: Optional[dict] = None


class PartnershipUpdate(BaseModel):
    is_partner: bool
    partnership_type: str = PartnershipType.LIMITED
    contact_person: dict = {}


class StatusUpdate(BaseModel):
    status: str


def _hospital_values(body: BaseModel) -> dict:
    data = body.model_dump(mode="json", exclude_unset=True)
    reject_nulls(data, REQUIRED_FIELDS)
    if data.get("type") is not None and data["type"] not in HospitalType.ALL:
        raise InvalidRequestError(f"Invalid hospital type: {data['type']}")
    address = data.pop("address", None)
    if address:
        data.update(address)
    return data


def _load(db: Session, caller: Caller, action: Action, hospital_id: str) -> Hospital:
    hospital = db.get(Hospital, hospital_id)
    authorize(caller, action, Target.of_hospital(hospital, hospital_id))
    return hospital


# ── Collection endpoints ─────────────────────────────────────────────────────

@router.get("/")
def list_hospitals(
    type: Optional[str] = None,
    state: Optional[str] = None,
    lga: Optional[str] = None,
    is_partner: Optional[bool] = None,
    hospital_status: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = Query(None, description="Match on hospital name"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    decision = authorize(caller, Action.LIST, Target.collection(EntityKind.HOSPITAL))
    q = constrain(db.query(Hospital), Hospital, decision.constraint)
    if type:
        q = q.filter(Hospital.type == type)
    if state:
        q = q.filter(Hospital.state == state)
    if lga:
        q = q.filter(Hospital.lga == lga)
    if is_partner is not None:
        q = q.filter(Hospital.is_partner == is_partner)
    if hospital_status:
        q = q.filter(Hospital.status == hospital_status)
    if search:
        q = q.filter(Hospital.name.ilike(search_term(search), escape="\\"))
    total = q.count()
    hospitals = q.order_by(Hospital.name).offset(skip).limit(limit).all()
    return {"total": total, "items": [h.to_document() for h in hospitals]}


@router.get("/partners")
def list_partner_hospitals(
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    authorize(caller, Action.LIST, Target.collection(EntityKind.HOSPITAL))
    hospitals = (
        db.query(Hospital)
        .filter(Hospital.is_partner == True, Hospital.status == HospitalStatus.ACTIVE)  # noqa: E712
        .order_by(Hospital.name)
        .all()
    )
    return [h.to_document() for h in hospitals]


@router.get("/stats/overview")
def hospital_statistics(
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    authorize(caller, Action.SUMMARIZE, Target.collection(EntityKind.HOSPITAL))
    return statistics_service.hospital_overview(db)


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_hospital(
    body: HospitalCreate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    authorize(caller, Action.CREATE, Target.collection(EntityKind.HOSPITAL))
    hospital = Hospital(**_hospital_values(body))
    db.add(hospital)
    db.commit()
    db.refresh(hospital)
    logger.info("Created hospital %s", hospital.id)
    return hospital.to_document()


# ── Instance endpoints ───────────────────────────────────────────────────────

@router.get("/{hospital_id}")
def get_hospital(
    hospital_id: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return _load(db, caller, Action.READ, hospital_id).to_document()


@router.put("/{hospital_id}")
def update_hospital(
    hospital_id: str,
    body: HospitalUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    hospital = _load(db, caller, Action.UPDATE, hospital_id)
    for key, value in _hospital_values(body).items():
        setattr(hospital, key, value)
    db.commit()
    db.refresh(hospital)
    return hospital.to_document()


@router.delete("/{hospital_id}")
def archive_hospital(
    hospital_id: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """Hospitals are never removed; archiving marks them inactive."""
    hospital = _load(db, caller, Action.ARCHIVE, hospital_id)
    hospital.status = HospitalStatus.INACTIVE
    db.commit()
    logger.info("Archived hospital %s", hospital.id)
    return {"message": "Hospital archived", "id": hospital.id}


@router.put("/{hospital_id}/partnership")
def set_partnership(
    hospital_id: str,
    body: PartnershipUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    if body.partnership_type not in PartnershipType.ALL:
        raise InvalidRequestError(f"Invalid partnership type: {body.partnership_type}")
    hospital = _load(db, caller, Action.UPDATE, hospital_id)
    if body.is_partner and not hospital.is_partner:
        hospital.partnership_date = datetime.utcnow()
    hospital.is_partner = body.is_partner
    hospital.partnership_type = body.partnership_type
    hospital.partnership_contact = body.contact_person
    db.commit()
    db.refresh(hospital)
    return hospital.to_document()


@router.put("/{hospital_id}/status")
def set_status(
    hospital_id: str,
    body: StatusUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    if body.status not in HospitalStatus.ALL:
        raise InvalidRequestError(f"Invalid hospital status: {body.status}")
    hospital = _load(db, caller, Action.UPDATE, hospital_id)
    hospital.status = body.status
    db.commit()
    db.refresh(hospital)
    logger.info("Hospital %s status set to %s", hospital.id, body.status)
    return hospital.to_document()


@router.get("/{hospital_id}/patients")
def list_hospital_patients(
    hospital_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """Patients registered at a hospital, narrowed to what the caller may list."""
    hospital = _load(db, caller, Action.READ, hospital_id)
    decision = authorize(caller, Action.LIST, Target.collection(EntityKind.PATIENT))
    q = constrain(db.query(Patient), Patient, decision.constraint)
    q = q.filter(patient_at_hospital(hospital.id), Patient.is_active == True)  # noqa: E712
    total = q.count()
    patients = q.order_by(Patient.last_name, Patient.first_name).offset(skip).limit(limit).all()
    return {"total": total, "items": [p.to_document() for p in patients]}
