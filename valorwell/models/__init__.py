from .appointment import Appointment, AppointmentCreate, AppointmentOut, AppointmentStatus, AppointmentStatusUpdate
from .client import ClientProfileUpdate, ClientStatus, ClientStatusUpdate, Customer
from .form import AssignmentStatus, FormAssignment, FormResponseSubmit, FormTemplate
from .insurance import (
    EligibilityRequest,
    InsurancePolicy,
    InsurancePolicyCreate,
    InsurancePolicyUpdate,
    InsuranceType,
)
from .message import ConversationSummary, Message, MessageCreate, SenderType
from .profile import AppRole, Profile, TenantMembership, UserRoleRow
from .staff import Staff, StaffRole, StaffRoleAssignment

__all__ = [
    "Appointment",
    "AppointmentCreate",
    "AppointmentOut",
    "AppointmentStatus",
    "AppointmentStatusUpdate",
    "ClientProfileUpdate",
    "ClientStatus",
    "ClientStatusUpdate",
    "Customer",
    "AssignmentStatus",
    "FormAssignment",
    "FormResponseSubmit",
    "FormTemplate",
    "EligibilityRequest",
    "InsurancePolicy",
    "InsurancePolicyCreate",
    "InsurancePolicyUpdate",
    "InsuranceType",
    "ConversationSummary",
    "Message",
    "MessageCreate",
    "SenderType",
    "AppRole",
    "Profile",
    "TenantMembership",
    "UserRoleRow",
    "Staff",
    "StaffRole",
    "StaffRoleAssignment",
]
