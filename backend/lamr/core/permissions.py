"""
Access decision engine for LAMR.

Every route asks one question: may this caller perform this action on this
target? The answer comes from a single declarative table (``ACCESS_RULES``)
plus a handful of ordered checks in ``decide``. Deny is the default; an Allow
needs an explicit matching rule.

Patient and medical-record denials on concrete instances use ``NOT_FOUND``
so a caller cannot tell "exists but forbidden" from "does not exist".
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .exceptions import AccessDenied
from ..models.medical_record import RecordStatus
from ..models.user import UserRole

logger = logging.getLogger(__name__)


class EntityKind(str, Enum):
    HOSPITAL = "hospital"
    PATIENT = "patient"
    MEDICAL_RECORD = "medical_record"
    IDENTITY = "identity"
    AUDIT_LOG = "audit_log"


class Action(str, Enum):
    READ = "read"
    LIST = "list"
    CREATE = "create"
    UPDATE = "update"
    ARCHIVE = "archive"
    SUMMARIZE = "summarize"  # statistics roll-ups


class Scope(str, Enum):
    ANY = "any"
    OWN_HOSPITAL = "own_hospital"
    OWN_PATIENT = "own_patient"
    SELF = "self"


class DenyReason(str, Enum):
    ACCOUNT_DEACTIVATED = "account_deactivated"
    INCOMPLETE_PROFILE = "incomplete_profile"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    RESTRICTED_ACCESS_LEVEL = "restricted_access_level"


# Kinds whose instance-level denials must not reveal existence
CONCEALED_KINDS = {EntityKind.PATIENT, EntityKind.MEDICAL_RECORD}

# Actions that address the collection rather than one stored instance
COLLECTION_ACTIONS = {Action.LIST, Action.SUMMARIZE, Action.CREATE}

# Actions that mutate; blocked on archived records for everyone but admin
MUTATING_ACTIONS = {Action.UPDATE, Action.ARCHIVE}


def _all_actions(scope: Scope) -> Dict[Action, Scope]:
    return {action: scope for action in Action}


# Role permission matrix: role -> entity kind -> action -> scope
ACCESS_RULES: dict = {
    UserRole.ADMIN: {kind: _all_actions(Scope.ANY) for kind in EntityKind},
    UserRole.MEDICAL_PERSONNEL: {
        EntityKind.HOSPITAL: {
            Action.READ: Scope.ANY,
            Action.LIST: Scope.ANY,
        },
        EntityKind.PATIENT: {
            Action.READ: Scope.ANY,
            Action.CREATE: Scope.ANY,
            Action.UPDATE: Scope.ANY,
            Action.LIST: Scope.OWN_HOSPITAL,
            Action.SUMMARIZE: Scope.OWN_HOSPITAL,
        },
        EntityKind.MEDICAL_RECORD: {
            Action.READ: Scope.OWN_HOSPITAL,
            Action.CREATE: Scope.OWN_HOSPITAL,
            Action.UPDATE: Scope.OWN_HOSPITAL,
            Action.ARCHIVE: Scope.OWN_HOSPITAL,
            Action.LIST: Scope.OWN_HOSPITAL,
            Action.SUMMARIZE: Scope.OWN_HOSPITAL,
        },
        EntityKind.IDENTITY: {
            Action.READ: Scope.SELF,
            Action.UPDATE: Scope.SELF,
        },
    },
    UserRole.PATIENT: {
        EntityKind.PATIENT: {
            Action.READ: Scope.OWN_PATIENT,
        },
        EntityKind.MEDICAL_RECORD: {
            Action.READ: Scope.OWN_PATIENT,
            Action.LIST: Scope.OWN_PATIENT,
        },
        EntityKind.IDENTITY: {
            Action.READ: Scope.SELF,
            Action.UPDATE: Scope.SELF,
        },
    },
}


@dataclass(frozen=True)
class Caller:
    """Authenticated principal, resolved once per request and passed by value."""
    subject_id: str
    role: str
    is_active: bool = True
    hospital_id: Optional[str] = None
    hospital_active: bool = False
    patient_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


@dataclass(frozen=True)
class Target:
    """What the decision is about: a collection, a stored instance, or a new record.

    Only the attributes access rules look at are carried. Build one with the
    ``of_*`` constructors rather than by hand.
    """
    kind: EntityKind
    id: Optional[str] = None
    exists: bool = True
    hospital_id: Optional[str] = None
    patient_id: Optional[str] = None
    status: Optional[str] = None
    is_active: bool = True
    # Creation prerequisites for medical records
    patient_active: Optional[bool] = None
    hospital_active: Optional[bool] = None

    @property
    def is_instance(self) -> bool:
        return self.id is not None or not self.exists

    @classmethod
    def collection(cls, kind: EntityKind) -> "Target":
        return cls(kind=kind)

    @classmethod
    def missing(cls, kind: EntityKind, entity_id: Optional[str] = None) -> "Target":
        return cls(kind=kind, id=entity_id, exists=False)

    @classmethod
    def of_hospital(cls, hospital, hospital_id: Optional[str] = None) -> "Target":
        if hospital is None:
            return cls.missing(EntityKind.HOSPITAL, hospital_id)
        return cls(
            kind=EntityKind.HOSPITAL,
            id=hospital.id,
            hospital_id=hospital.id,
            status=hospital.status,
            is_active=hospital.is_active,
        )

    @classmethod
    def of_patient(cls, patient, patient_id: Optional[str] = None) -> "Target":
        if patient is None:
            return cls.missing(EntityKind.PATIENT, patient_id)
        return cls(
            kind=EntityKind.PATIENT,
            id=patient.id,
            patient_id=patient.id,
            hospital_id=patient.primary_hospital_id,
            is_active=bool(patient.is_active),
        )

    @classmethod
    def of_record(cls, record, record_id: Optional[str] = None) -> "Target":
        if record is None:
            return cls.missing(EntityKind.MEDICAL_RECORD, record_id)
        return cls(
            kind=EntityKind.MEDICAL_RECORD,
            id=record.id,
            hospital_id=record.hospital_id,
            patient_id=record.patient_id,
            status=record.status,
        )

    @classmethod
    def new_record(cls, patient, hospital, patient_id=None, hospital_id=None) -> "Target":
        """A medical record about to be created for ``patient`` at ``hospital``."""
        return cls(
            kind=EntityKind.MEDICAL_RECORD,
            hospital_id=hospital.id if hospital is not None else hospital_id,
            patient_id=patient.id if patient is not None else patient_id,
            patient_active=patient is not None and bool(patient.is_active),
            hospital_active=hospital is not None and hospital.is_active,
        )

    @classmethod
    def of_identity(cls, user, user_id: Optional[str] = None) -> "Target":
        if user is None:
            return cls.missing(EntityKind.IDENTITY, user_id)
        return cls(
            kind=EntityKind.IDENTITY,
            id=user.id,
            hospital_id=user.hospital_id,
            patient_id=user.patient_id,
            is_active=bool(user.is_active),
        )


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None
    # Filter a collection query must apply, e.g. {"hospital_id": "..."}
    constraint: Optional[Dict[str, str]] = None

    def __bool__(self) -> bool:
        return self.allowed

    @classmethod
    def allow(cls, constraint: Optional[Dict[str, str]] = None) -> "Decision":
        return cls(allowed=True, constraint=constraint)

    @classmethod
    def deny(cls, reason: DenyReason) -> "Decision":
        return cls(allowed=False, reason=reason)


def rule_for(role: str, kind: EntityKind, action: Action) -> Optional[Scope]:
    """Look up the scope granted to ``role`` for ``action`` on ``kind``."""
    return ACCESS_RULES.get(role, {}).get(kind, {}).get(action)


def _hidden_or_forbidden(kind: EntityKind, instance: bool) -> Decision:
    if instance and kind in CONCEALED_KINDS:
        return Decision.deny(DenyReason.NOT_FOUND)
    return Decision.deny(DenyReason.FORBIDDEN)


def _collection_constraint(caller: Caller, scope: Scope) -> Decision:
    if scope == Scope.ANY:
        return Decision.allow()
    if scope == Scope.OWN_HOSPITAL:
        return Decision.allow({"hospital_id": caller.hospital_id})
    if scope == Scope.OWN_PATIENT:
        if not caller.patient_id:
            return Decision.deny(DenyReason.INCOMPLETE_PROFILE)
        return Decision.allow({"patient_id": caller.patient_id})
    if scope == Scope.SELF:
        return Decision.allow({"id": caller.subject_id})
    return Decision.deny(DenyReason.FORBIDDEN)


def _in_scope(caller: Caller, scope: Scope, target: Target) -> bool:
    if scope == Scope.ANY:
        return True
    if scope == Scope.OWN_HOSPITAL:
        return target.hospital_id is not None and target.hospital_id == caller.hospital_id
    if scope == Scope.OWN_PATIENT:
        if not caller.patient_id:
            return False
        if target.kind == EntityKind.PATIENT:
            return target.id == caller.patient_id
        return target.patient_id == caller.patient_id
    if scope == Scope.SELF:
        return target.id == caller.subject_id
    return False


def decide(caller: Caller, action: Action, target: Target) -> Decision:
    """Return Allow or Deny(reason) for ``caller`` doing ``action`` on ``target``.

    Never raises: anything that is not a well-formed Target is NOT_FOUND.
    """
    if not caller.is_active:
        return Decision.deny(DenyReason.ACCOUNT_DEACTIVATED)

    if caller.role == UserRole.MEDICAL_PERSONNEL:
        if not caller.hospital_id:
            return Decision.deny(DenyReason.INCOMPLETE_PROFILE)
        if not caller.hospital_active:
            return Decision.deny(DenyReason.FORBIDDEN)

    if not isinstance(target, Target) or not isinstance(target.kind, EntityKind):
        return Decision.deny(DenyReason.NOT_FOUND)
    try:
        action = Action(action)
    except ValueError:
        return Decision.deny(DenyReason.FORBIDDEN)

    kind = target.kind
    scope = rule_for(caller.role, kind, action)
    if scope is None:
        return _hidden_or_forbidden(kind, target.is_instance)

    if kind == EntityKind.MEDICAL_RECORD and action == Action.CREATE:
        return _decide_record_creation(caller, scope, target)

    if action in COLLECTION_ACTIONS and not target.is_instance:
        return _collection_constraint(caller, scope)

    if not target.exists:
        return Decision.deny(DenyReason.NOT_FOUND)

    if kind == EntityKind.PATIENT and not target.is_active and not caller.is_admin:
        return Decision.deny(DenyReason.NOT_FOUND)

    if not _in_scope(caller, scope, target):
        return _hidden_or_forbidden(kind, instance=True)

    if (
        kind == EntityKind.MEDICAL_RECORD
        and action in MUTATING_ACTIONS
        and target.status == RecordStatus.ARCHIVED
        and not caller.is_admin
    ):
        return Decision.deny(DenyReason.FORBIDDEN)

    return Decision.allow()


def _decide_record_creation(caller: Caller, scope: Scope, target: Target) -> Decision:
    if not target.patient_active or not target.hospital_active:
        return Decision.deny(DenyReason.NOT_FOUND)
    if not _in_scope(caller, scope, target):
        return Decision.deny(DenyReason.NOT_FOUND)
    return Decision.allow()


def authorize(caller: Caller, action: Action, target: Target) -> Decision:
    """``decide`` for route handlers: raise AccessDenied instead of returning Deny."""
    decision = decide(caller, action, target)
    if not decision:
        kind = getattr(target, "kind", None)
        logger.info(
            "Access denied: %s %s by %s (%s)",
            getattr(action, "value", action),
            getattr(kind, "value", kind),
            caller.subject_id,
            decision.reason.value,
        )
        raise AccessDenied(kind, decision.reason)
    return decision
