from sqlalchemy import Column, String, Text, Boolean, Integer, DateTime, ForeignKey, JSON, func
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin, generate_uuid


class VisitType:
    ROUTINE = "routine"
    EMERGENCY = "emergency"
    FOLLOW_UP = "follow_up"
    CONSULTATION = "consultation"
    SURGERY = "surgery"

    ALL = [ROUTINE, EMERGENCY, FOLLOW_UP, CONSULTATION, SURGERY]


class RecordStatus:
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"

    ALL = [DRAFT, ACTIVE, COMPLETED, ARCHIVED]


class MedicalRecord(Base, TimestampMixin):
    __tablename__ = "medical_records"

    id = Column(String, primary_key=True, default=generate_uuid)
    patient_id = Column(String, ForeignKey("patients.id"), nullable=False, index=True)
    hospital_id = Column(String, ForeignKey("hospitals.id"), nullable=False, index=True)
    created_by = Column(String, ForeignKey("users.id"), nullable=False, index=True)

    # Visit information
    visit_date = Column(DateTime, default=func.now(), nullable=False, index=True)
    visit_type = Column(String(20), nullable=False, index=True)
    department = Column(String(100), nullable=True)
    chief_complaint = Column(Text, nullable=True)
    visit_number = Column(String(50), nullable=True)

    # Whole sub-documents, replaced atomically by a single UPDATE
    vital_signs = Column(JSON, nullable=True)
    physical_examination = Column(JSON, nullable=True)
    assessment = Column(JSON, nullable=True)
    treatment = Column(JSON, nullable=True)
    discharge = Column(JSON, nullable=True)
    confidentiality = Column(JSON, nullable=True)

    notes = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=RecordStatus.ACTIVE, index=True)
    is_emergency = Column(Boolean, default=False, nullable=False, index=True)

    laboratory_results = relationship(
        "LabResult", order_by="LabResult.id", cascade="all, delete-orphan"
    )
    imaging_results = relationship(
        "ImagingResult", order_by="ImagingResult.id", cascade="all, delete-orphan"
    )
    nursing_notes = relationship(
        "NursingNote", order_by="NursingNote.id", cascade="all, delete-orphan"
    )

    @property
    def is_archived(self) -> bool:
        return self.status == RecordStatus.ARCHIVED

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "hospital_id": self.hospital_id,
            "created_by": self.created_by,
            "visit_info": {
                "visit_date": self.visit_date,
                "visit_type": self.visit_type,
                "department": self.department,
                "chief_complaint": self.chief_complaint,
                "visit_number": self.visit_number,
            },
            "vital_signs": self.vital_signs or {},
            "physical_examination": self.physical_examination or {},
            "assessment": self.assessment or {},
            "treatment": self.treatment or {},
            "laboratory_results": [r.to_document() for r in self.laboratory_results],
            "imaging_results": [r.to_document() for r in self.imaging_results],
            "nursing_notes": [n.to_document() for n in self.nursing_notes],
            "discharge": self.discharge or {},
            "confidentiality": self.confidentiality or {},
            "notes": self.notes,
            "status": self.status,
            "is_emergency": self.is_emergency,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class LabResult(Base):
    __tablename__ = "lab_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(String, ForeignKey("medical_records.id"), nullable=False, index=True)
    test_name = Column(String(200), nullable=False)
    test_date = Column(DateTime, nullable=False)
    results = Column(JSON, nullable=True)
    normal_range = Column(String(100), nullable=True)
    status = Column(String(20), nullable=True)  # normal, abnormal, critical, pending
    notes = Column(Text, nullable=True)
    lab_technician = Column(String(200), nullable=True)

    def to_document(self) -> dict:
        return {
            "test_name": self.test_name,
            "test_date": self.test_date,
            "results": self.results,
            "normal_range": self.normal_range,
            "status": self.status,
            "notes": self.notes,
            "lab_technician": self.lab_technician,
        }


class ImagingResult(Base):
    __tablename__ = "imaging_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(String, ForeignKey("medical_records.id"), nullable=False, index=True)
    study_type = Column(String(100), nullable=False)
    study_date = Column(DateTime, nullable=False)
    findings = Column(Text, nullable=True)
    impression = Column(Text, nullable=True)
    radiologist = Column(String(200), nullable=True)
    images = Column(JSON, nullable=True)  # image URLs
    notes = Column(Text, nullable=True)

    def to_document(self) -> dict:
        return {
            "study_type": self.study_type,
            "study_date": self.study_date,
            "findings": self.findings,
            "impression": self.impression,
            "radiologist": self.radiologist,
            "images": self.images or [],
            "notes": self.notes,
        }


class NursingNote(Base):
    __tablename__ = "nursing_notes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(String, ForeignKey("medical_records.id"), nullable=False, index=True)
    date = Column(DateTime, nullable=False)
    nurse = Column(String(200), nullable=True)
    note = Column(Text, nullable=False)
    vital_signs = Column(JSON, nullable=True)

    def to_document(self) -> dict:
        return {
            "date": self.date,
            "nurse": self.nurse,
            "note": self.note,
            "vital_signs": self.vital_signs,
        }
