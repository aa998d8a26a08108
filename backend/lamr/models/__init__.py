# Import every model so Base.metadata knows all tables and relationships resolve.
from .base import Base  # noqa: F401
from .hospital import Hospital  # noqa: F401
from .patient import Patient, PatientRegistration, PresentingComplaint, PatientSequence  # noqa: F401
from .medical_record import MedicalRecord, LabResult, ImagingResult, NursingNote  # noqa: F401
from .user import User  # noqa: F401
from .audit import AuditLog  # noqa: F401
