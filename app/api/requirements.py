"""Named access requirements for every org-scoped route.

Route guards and the capability endpoint read the same table, so a flag
reported as true by GET /v1/orgs/{slug}/access always matches what the
guarded route will accept.
"""

from __future__ import annotations

from app.core import permissions as p
from app.services.access_gate import PUBLIC, AccessRequirement


def _perms(*names: str) -> AccessRequirement:
    return AccessRequirement(require_auth=True, required_permissions=frozenset(names))


VIEW_ORG = PUBLIC
VIEW_TIERS = PUBLIC
APPLY = AccessRequirement(require_auth=True, allow_non_member=True)
PAY = AccessRequirement(require_auth=True, allow_non_member=True)

EDIT_GROUP = _perms(p.GROUP_EDIT)
VIEW_MEMBERS = _perms(p.MEMBERS_VIEW)
VIEW_ROLES = _perms(p.ROLES_VIEW)
CREATE_ROLE = _perms(p.ROLES_CREATE)
ASSIGN_ROLE = _perms(p.ROLES_EDIT, p.PERMISSIONS_ASSIGN)
MANAGE_TIERS = _perms(p.MEMBERSHIPS_MANAGE)
VIEW_APPLICATIONS = _perms(p.APPLICATIONS_VIEW)
APPROVE_APPLICATION = _perms(p.APPLICATIONS_APPROVE)
REJECT_APPLICATION = _perms(p.APPLICATIONS_REJECT)
VIEW_PAYMENTS = _perms(p.MEMBERSHIPS_VIEW)
REVIEW_PAYMENT = _perms(p.MEMBERSHIPS_MANAGE)

# Capability flag name -> requirement, as reported to clients.
CAPABILITIES: dict[str, AccessRequirement] = {
    "view_org": VIEW_ORG,
    "apply": APPLY,
    "edit_group": EDIT_GROUP,
    "view_members": VIEW_MEMBERS,
    "view_roles": VIEW_ROLES,
    "create_role": CREATE_ROLE,
    "assign_role": ASSIGN_ROLE,
    "manage_tiers": MANAGE_TIERS,
    "view_applications": VIEW_APPLICATIONS,
    "approve_application": APPROVE_APPLICATION,
    "reject_application": REJECT_APPLICATION,
    "view_payments": VIEW_PAYMENTS,
    "review_payment": REVIEW_PAYMENT,
}
