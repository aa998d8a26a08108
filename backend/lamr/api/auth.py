"""Authentication endpoints: register, login, me, change password, deactivate."""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from ..core.exceptions import ConflictError, InvalidRequestError
from ..core.permissions import Action, Caller, EntityKind, Target, authorize
from ..core.security import get_current_caller, get_password_hash, token_service, verify_password
from ..models.base import get_db
from ..models.hospital import Hospital
from ..models.patient import Patient
from ..models.user import User, UserRole

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# ── Request / Response schemas ──────────────────────────────────────────────

class RegisterRequest(BaseModel):
    email: str
    password: str
    role: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    department: Optional[str] = None
    license_number: Optional[str] = None
    hospital_id: Optional[str] = None
    patient_id: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    role: str
    first_name: Optional[str]
    last_name: Optional[str]
    phone_number: Optional[str]
    department: Optional[str]
    license_number: Optional[str]
    hospital_id: Optional[str]
    patient_id: Optional[str]
    is_active: bool
    last_login: Optional[datetime]


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


def _load_identity(db: Session, caller: Caller, action: Action, user_id: str) -> User:
    user = db.get(User, user_id)
    authorize(caller, action, Target.of_identity(user, user_id))
    return user


# ── Endpoints ────────────────────────────────────────────────────────────────

@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(
    req: RegisterRequest,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """Admin-only: create a new user account."""
    authorize(caller, Action.CREATE, Target.collection(EntityKind.IDENTITY))
    if req.role not in UserRole.ALL:
        raise InvalidRequestError(f"Invalid role: {req.role}")

    email = req.email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise ConflictError("Email already registered")

    hospital_id = req.hospital_id
    patient_id = req.patient_id
    if req.role == UserRole.MEDICAL_PERSONNEL:
        hospital = db.get(Hospital, hospital_id) if hospital_id else None
        if hospital is None or not hospital.is_active:
            raise InvalidRequestError("Medical personnel must belong to an active hospital")
    else:
        hospital_id = None
    if req.role == UserRole.PATIENT:
        if not patient_id or db.get(Patient, patient_id) is None:
            raise InvalidRequestError("Patient accounts must link to an existing patient")
    else:
        patient_id = None

    user = User(
        email=email,
        hashed_password=get_password_hash(req.password),
        role=req.role,
        first_name=req.first_name,
        last_name=req.last_name,
        phone_number=req.phone_number,
        department=req.department,
        license_number=req.license_number,
        hospital_id=hospital_id,
        patient_id=patient_id,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered %s account %s", user.role, user.id)
    return user


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    """Authenticate and receive a bearer token."""
    user = db.query(User).filter(User.email == req.email.strip().lower()).first()
    if not user or not verify_password(req.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated")

    access_token = token_service.issue(user)
    user.last_login = token_service.clock.now()
    db.commit()
    db.refresh(user)
    return TokenResponse(access_token=access_token, user=UserResponse.model_validate(user))


@router.get("/me", response_model=UserResponse)
def get_me(
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """Return the authenticated user's profile."""
    return _load_identity(db, caller, Action.READ, caller.subject_id)


@router.put("/password", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    req: ChangePasswordRequest,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """Change the authenticated user's password."""
    user = _load_identity(db, caller, Action.UPDATE, caller.subject_id)
    if not verify_password(req.current_password, user.hashed_password):
        raise InvalidRequestError("Current password is incorrect")
    user.hashed_password = get_password_hash(req.new_password)
    db.commit()


@router.post("/users/{user_id}/deactivate", response_model=UserResponse)
def deactivate_user(
    user_id: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """Admin-only: soft-deactivate an account. Issued tokens stay valid until expiry."""
    user = _load_identity(db, caller, Action.ARCHIVE, user_id)
    user.is_active = False
    db.commit()
    db.refresh(user)
    logger.info("Deactivated account %s", user.id)
    return user
