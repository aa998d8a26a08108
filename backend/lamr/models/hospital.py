from sqlalchemy import Column, String, Boolean, DateTime, JSON
from .base import Base, TimestampMixin, generate_uuid


class HospitalType:
    PUBLIC = "public"
    PRIVATE = "private"
    FEDERAL = "federal"
    STATE = "state"
    TEACHING = "teaching"

    ALL = [PUBLIC, PRIVATE, FEDERAL, STATE, TEACHING]


class HospitalStatus:
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"

    ALL = [ACTIVE, INACTIVE, SUSPENDED]


class PartnershipType:
    FULL = "full"
    LIMITED = "limited"
    REFERRAL = "referral"

    ALL = [FULL, LIMITED, REFERRAL]


class AddressMixin:
    """Postal address stored as columns so it can be filtered and grouped."""
    street = Column(String(200), nullable=True)
    city = Column(String(100), nullable=True)
    lga = Column(String(100), nullable=True, index=True)  # Local Government Area
    state = Column(String(100), nullable=True, index=True)
    country = Column(String(100), nullable=True, default="Nigeria")
    postal_code = Column(String(20), nullable=True)

    def address_document(self) -> dict:
        return {
            "street": self.street,
            "city": self.city,
            "lga": self.lga,
            "state": self.state,
            "country": self.country,
            "postal_code": self.postal_code,
        }


class Hospital(Base, TimestampMixin, AddressMixin):
    __tablename__ = "hospitals"

    id = Column(String, primary_key=True, default=generate_uuid)
    name = Column(String(200), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=HospitalStatus.ACTIVE, index=True)

    contact = Column(JSON, nullable=True)           # {phone, email, website}
    specialties = Column(JSON, nullable=True)       # [str]
    facilities = Column(JSON, nullable=True)        # [{name, description, is_available}]
    capacity = Column(JSON, nullable=True)          # {total_beds, icu_beds, emergency_beds}
    accreditation = Column(JSON, nullable=True)
    coordinates = Column(JSON, nullable=True)       # {latitude, longitude}
    working_hours = Column(JSON, nullable=True)
    emergency_services = Column(JSON, nullable=True)

    # Partnership
    is_partner = Column(Boolean, default=False, nullable=False, index=True)
    partnership_date = Column(DateTime, nullable=True)
    partnership_type = Column(String(20), nullable=False, default=PartnershipType.LIMITED)
    partnership_contact = Column(JSON, nullable=True)  # {name, position, email, phone}

    @property
    def is_active(self) -> bool:
        return self.status == HospitalStatus.ACTIVE

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "status": self.status,
            "address": self.address_document(),
            "contact": self.contact or {},
            "specialties": self.specialties or [],
            "facilities": self.facilities or [],
            "capacity": self.capacity or {},
            "accreditation": self.accreditation or {},
            "partnership": {
                "is_partner": self.is_partner,
                "partnership_date": self.partnership_date,
                "partnership_type": self.partnership_type,
                "contact_person": self.partnership_contact or {},
            },
            "coordinates": self.coordinates or {},
            "working_hours": self.working_hours or {},
            "emergency_services": self.emergency_services or {},
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
