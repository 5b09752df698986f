"""
Portal routing decisions.

Each portal page declares the routing states it accepts and the permissions
it needs. decide_route() turns the signed-in user's state into one of:

- loading: auth or state still resolving
- redirect: send the user to the page that matches their state
- deny: show an access-denied message
- allow: render the page

Staff and billing portals use the staff routing state, the client portal the
client routing state derived from the customers.status column.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Sequence, Tuple

from valorwell.models.client import ClientStatus, Customer
from valorwell.services.permissions import PermissionKey, has_all_permissions
from valorwell.services.roles import UserRoleContext

AUTH_PATH = "/auth"
COMPLETE_SIGNUP_PATH = "/complete-signup"
DEFAULT_DENY_MESSAGE = "You do not have access to this page."
DEFAULT_PERMISSION_MESSAGE = "You do not have the required permissions to access this page."


class Portal(str, Enum):
    CLIENT = "client"
    STAFF = "staff"
    BILLING = "billing"


class ClientRoutingState(str, Enum):
    NEEDS_REGISTRATION = "needs_registration"
    COMPLETING_SIGNUP = "completing_signup"
    REGISTERED = "registered"


class StaffRoutingState(str, Enum):
    IDLE = "idle"
    NEEDS_ONBOARDING = "needs_onboarding"
    STAFF = "staff"
    ADMIN = "admin"


class RouteAction(str, Enum):
    LOADING = "loading"
    REDIRECT = "redirect"
    DENY = "deny"
    ALLOW = "allow"


REDIRECTS: Dict[Tuple[Portal, str], str] = {
    (Portal.CLIENT, ClientRoutingState.NEEDS_REGISTRATION.value): "/client/registration",
    (Portal.CLIENT, ClientRoutingState.COMPLETING_SIGNUP.value): "/client/signup-forms",
    (Portal.CLIENT, ClientRoutingState.REGISTERED.value): "/client/dashboard",
    (Portal.STAFF, StaffRoutingState.NEEDS_ONBOARDING.value): "/staff/registration",
    (Portal.STAFF, StaffRoutingState.STAFF.value): "/staff/dashboard",
    (Portal.STAFF, StaffRoutingState.ADMIN.value): "/staff/dashboard",
}

STAFF_TRANSITIONS: Dict[StaffRoutingState, FrozenSet[StaffRoutingState]] = {
    StaffRoutingState.IDLE: frozenset(),
    StaffRoutingState.NEEDS_ONBOARDING: frozenset({StaffRoutingState.STAFF, StaffRoutingState.ADMIN}),
    StaffRoutingState.STAFF: frozenset({StaffRoutingState.ADMIN}),
    StaffRoutingState.ADMIN: frozenset({StaffRoutingState.STAFF}),
}


@dataclass(frozen=True)
class PageRule:
    allowed_states: FrozenSet[str] = frozenset()  # empty means any state
    required_permissions: Tuple[PermissionKey, ...] = ()
    fallback_message: Optional[str] = None


_STAFF_STATES = frozenset({StaffRoutingState.STAFF.value, StaffRoutingState.ADMIN.value})

PAGE_RULES: Dict[Tuple[Portal, str], PageRule] = {
    (Portal.CLIENT, "registration"): PageRule(frozenset({ClientRoutingState.NEEDS_REGISTRATION.value})),
    (Portal.CLIENT, "signup-forms"): PageRule(frozenset({ClientRoutingState.COMPLETING_SIGNUP.value})),
    (Portal.CLIENT, "dashboard"): PageRule(frozenset({ClientRoutingState.REGISTERED.value})),
    (Portal.CLIENT, "messages"): PageRule(frozenset({ClientRoutingState.REGISTERED.value})),
    (Portal.STAFF, "registration"): PageRule(),
    (Portal.STAFF, "dashboard"): PageRule(_STAFF_STATES),
    (Portal.STAFF, "appointments"): PageRule(_STAFF_STATES),
    (Portal.STAFF, "customers"): PageRule(_STAFF_STATES),
    (Portal.STAFF, "profile"): PageRule(_STAFF_STATES),
    (Portal.STAFF, "calendar"): PageRule(_STAFF_STATES),
    (Portal.STAFF, "services"): PageRule(
        _STAFF_STATES,
        (PermissionKey.ACCESS_SERVICES,),
        "You need Services permission to access this page.",
    ),
    (Portal.STAFF, "invoices"): PageRule(
        _STAFF_STATES,
        (PermissionKey.ACCESS_INVOICING,),
        "You need Invoicing permission to access this page.",
    ),
    (Portal.STAFF, "forms"): PageRule(
        _STAFF_STATES,
        (PermissionKey.ACCESS_FORMS,),
        "You need Forms permission to access this page.",
    ),
    (Portal.STAFF, "settings"): PageRule(
        frozenset({StaffRoutingState.ADMIN.value}),
        fallback_message="You need admin privileges to access settings.",
    ),
    (Portal.BILLING, "dashboard"): PageRule(_STAFF_STATES, (PermissionKey.ACCESS_INVOICING,)),
    (Portal.BILLING, "eligibility"): PageRule(_STAFF_STATES, (PermissionKey.ACCESS_INVOICING,)),
}


@dataclass(frozen=True)
class RouteDecision:
    action: RouteAction
    target: Optional[str] = None
    message: Optional[str] = None
    state: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "target": self.target,
            "message": self.message,
            "state": self.state,
        }


def client_state(customer: Optional[Customer]) -> ClientRoutingState:
    if customer is None or customer.status == ClientStatus.NEW:
        return ClientRoutingState.NEEDS_REGISTRATION
    if customer.status == ClientStatus.COMPLETING_SIGNUP:
        return ClientRoutingState.COMPLETING_SIGNUP
    return ClientRoutingState.REGISTERED


def staff_state(context: Optional[UserRoleContext]) -> StaffRoutingState:
    if context is None or not context.is_staff:
        return StaffRoutingState.IDLE
    if context.staff is None or not context.staff.has_provider_name:
        return StaffRoutingState.NEEDS_ONBOARDING
    if context.is_admin:
        return StaffRoutingState.ADMIN
    return StaffRoutingState.STAFF


def current_state(portal: Portal, context: Optional[UserRoleContext], customer: Optional[Customer]) -> Optional[str]:
    """Routing state for the portal, or None when the user's role does not belong there."""
    if context is None:
        return None
    if portal == Portal.CLIENT and context.role == "client":
        return client_state(customer).value
    if portal in (Portal.STAFF, Portal.BILLING) and context.role == "staff":
        return staff_state(context).value
    return None


def can_navigate(current: StaffRoutingState, target: StaffRoutingState) -> bool:
    return target in STAFF_TRANSITIONS.get(current, frozenset())


def decide_route(
    portal: Portal,
    user_present: bool,
    state: Optional[str],
    permissions: Optional[Mapping[str, bool]] = None,
    allowed_states: Iterable[str] = (),
    required_permissions: Sequence["PermissionKey | str"] = (),
    fallback_message: Optional[str] = None,
    loading: bool = False,
) -> RouteDecision:
    if loading:
        return RouteDecision(RouteAction.LOADING, state=state)

    if not user_present:
        return RouteDecision(RouteAction.REDIRECT, target=AUTH_PATH)

    allowed = frozenset(allowed_states)
    if allowed and (state is None or state not in allowed):
        target = REDIRECTS.get((portal, state)) if state is not None else None
        if target:
            return RouteDecision(RouteAction.REDIRECT, target=target, state=state)
        return RouteDecision(RouteAction.DENY, message=fallback_message or DEFAULT_DENY_MESSAGE, state=state)

    if required_permissions and not has_all_permissions(permissions, required_permissions):
        return RouteDecision(RouteAction.DENY, message=fallback_message or DEFAULT_PERMISSION_MESSAGE, state=state)

    return RouteDecision(RouteAction.ALLOW, state=state)


def decide_page_route(
    portal: Portal,
    page: str,
    context: Optional[UserRoleContext],
    customer: Optional[Customer] = None,
) -> RouteDecision:
    """decide_route() with the page's rule looked up from PAGE_RULES."""
    if context is not None and context.signup_incomplete:
        return RouteDecision(RouteAction.REDIRECT, target=COMPLETE_SIGNUP_PATH)

    rule = PAGE_RULES.get((portal, page), PageRule())
    state = current_state(portal, context, customer)
    return decide_route(
        portal,
        user_present=context is not None,
        state=state,
        permissions=context.permissions.flags if context else None,
        allowed_states=rule.allowed_states,
        required_permissions=rule.required_permissions,
        fallback_message=rule.fallback_message,
    )
