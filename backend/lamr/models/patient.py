from sqlalchemy import Column, String, Date, DateTime, Text, Boolean, Integer, ForeignKey, JSON, func
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin, generate_uuid
from .hospital import AddressMixin


class Gender:
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"

    ALL = [MALE, FEMALE, OTHER]


class AccessLevel:
    FULL = "full"
    LIMITED = "limited"
    EMERGENCY_ONLY = "emergency_only"

    ALL = [FULL, LIMITED, EMERGENCY_ONLY]


BLOOD_GROUPS = ["A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-", "unknown"]
GENOTYPES = ["AA", "AS", "SS", "AC", "SC", "CC", "unknown"]


class PatientSequence(Base):
    """Monotonic counter behind the human-readable patient number."""
    __tablename__ = "patient_sequence"

    id = Column(Integer, primary_key=True, autoincrement=True)
    issued_at = Column(DateTime, default=func.now(), nullable=False)


class Patient(Base, TimestampMixin, AddressMixin):
    __tablename__ = "patients"

    id = Column(String, primary_key=True, default=generate_uuid)
    patient_id = Column(String(20), unique=True, nullable=False, index=True)  # e.g. PA000042
    qr_code = Column(String(100), unique=True, nullable=True, index=True)

    # Biodata (PHI)
    first_name = Column(String(100), nullable=False)
    middle_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=False)
    date_of_birth = Column(Date, nullable=False)
    age = Column(Integer, nullable=True)
    gender = Column(String(10), nullable=False, index=True)
    marital_status = Column(String(20), nullable=True)
    occupation = Column(String(100), nullable=True)
    phone = Column(String(30), nullable=False, index=True)
    email = Column(String(255), nullable=True)
    emergency_contact = Column(JSON, nullable=True)  # {name, relationship, phone, address}
    date_of_registration = Column(DateTime, default=func.now(), nullable=False)

    # Medical history
    blood_group = Column(String(10), nullable=True, index=True)
    genotype = Column(String(10), nullable=True, index=True)
    allergies = Column(JSON, nullable=True)           # [{allergen, reaction, severity, notes}]
    surgical_history = Column(JSON, nullable=True)    # [{procedure, date, hospital, surgeon, ...}]
    chronic_illnesses = Column(JSON, nullable=True)   # [{condition, category, severity, is_active, ...}]

    emergency_subscription = Column(JSON, nullable=True)
    hmo_provider = Column(JSON, nullable=True)

    primary_hospital_id = Column(String, ForeignKey("hospitals.id"), nullable=True, index=True)
    access_level = Column(String(20), nullable=False, default=AccessLevel.LIMITED)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    notes = Column(Text, nullable=True)
    last_visit = Column(DateTime, nullable=True)
    total_visits = Column(Integer, default=0, nullable=False)

    registrations = relationship(
        "PatientRegistration",
        back_populates="patient",
        order_by="PatientRegistration.id",
        cascade="all, delete-orphan",
    )
    presenting_complaints = relationship(
        "PresentingComplaint",
        back_populates="patient",
        order_by="PresentingComplaint.id",
        cascade="all, delete-orphan",
    )

    @property
    def full_name(self) -> str:
        middle = f"{self.middle_name} " if self.middle_name else ""
        return f"{self.first_name} {middle}{self.last_name}"

    def is_registered_at(self, hospital_id: str, include_inactive: bool = False) -> bool:
        """True when a registration at the hospital exists (and is active, unless ``include_inactive``)."""
        return any(
            reg.hospital_id == hospital_id and (include_inactive or reg.is_active)
            for reg in self.registrations
        )

    def to_document(self) -> dict:
        address = self.address_document()
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "qr_code": self.qr_code,
            "full_name": self.full_name,
            "biodata": {
                "first_name": self.first_name,
                "middle_name": self.middle_name,
                "last_name": self.last_name,
                "date_of_birth": self.date_of_birth,
                "age": self.age,
                "gender": self.gender,
                "marital_status": self.marital_status,
                "occupation": self.occupation,
                "address": address,
                "contact": {
                    "phone": self.phone,
                    "email": self.email,
                    "emergency_contact": self.emergency_contact or {},
                },
                "date_of_registration": self.date_of_registration,
            },
            "medical_history": {
                "blood_group": self.blood_group,
                "genotype": self.genotype,
                "allergies": self.allergies or [],
                "surgical_history": self.surgical_history or [],
                "chronic_illnesses": self.chronic_illnesses or [],
            },
            "presenting_complaints": [c.to_document() for c in self.presenting_complaints],
            "emergency_subscription": self.emergency_subscription or {},
            "hmo_provider": self.hmo_provider or {},
            "primary_hospital_id": self.primary_hospital_id,
            "registered_hospitals": [r.to_document() for r in self.registrations],
            "access_level": self.access_level,
            "is_active": self.is_active,
            "notes": self.notes,
            "last_visit": self.last_visit,
            "total_visits": self.total_visits,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class PatientRegistration(Base):
    """Append-only hospital registration; unregistering flips ``is_active``."""
    __tablename__ = "patient_registrations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(String, ForeignKey("patients.id"), nullable=False, index=True)
    hospital_id = Column(String, ForeignKey("hospitals.id"), nullable=False, index=True)
    registration_date = Column(DateTime, default=func.now(), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    patient = relationship("Patient", back_populates="registrations")

    def to_document(self) -> dict:
        return {
            "hospital_id": self.hospital_id,
            "registration_date": self.registration_date,
            "is_active": self.is_active,
        }


class PresentingComplaint(Base):
    __tablename__ = "presenting_complaints"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(String, ForeignKey("patients.id"), nullable=False, index=True)
    complaint = Column(Text, nullable=False)
    duration = Column(String(100), nullable=True)
    severity = Column(String(20), nullable=True)
    associated_symptoms = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    date_recorded = Column(DateTime, default=func.now(), nullable=False)

    patient = relationship("Patient", back_populates="presenting_complaints")

    def to_document(self) -> dict:
        return {
            "complaint": self.complaint,
            "duration": self.duration,
            "severity": self.severity,
            "associated_symptoms": self.associated_symptoms or [],
            "notes": self.notes,
            "date_recorded": self.date_recorded,
        }
