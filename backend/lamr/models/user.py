from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from .base import Base, TimestampMixin, generate_uuid


class UserRole:
    ADMIN = "admin"
    MEDICAL_PERSONNEL = "medical_personnel"
    PATIENT = "patient"

    ALL = [ADMIN, MEDICAL_PERSONNEL, PATIENT]


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone_number = Column(String(30), nullable=True)
    department = Column(String(100), nullable=True)
    license_number = Column(String(100), nullable=True)

    # Required for medical_personnel
    hospital_id = Column(String, ForeignKey("hospitals.id"), nullable=True, index=True)
    # Required for patient accounts: the Patient this login belongs to
    patient_id = Column(String, ForeignKey("patients.id"), nullable=True, index=True)

    last_login = Column(DateTime, nullable=True)

    @property
    def full_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.email
