"""Permission catalog: the fixed namespace of org-scoped permission strings.

The catalog is a tree of two node kinds:

  PermissionGroup(name, children)  — a module such as "roles"
  PermissionLeaf(name, permission) — one grantable string, "roles.create"

The tree is built once at import and never mutated, so it is safe to
read from any request without locking.  Both the role editor (which
lists options) and the access gate (which validates role contents)
depend on flatten() returning the same order every time.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True, slots=True)
class PermissionLeaf:
    name: str
    permission: str


@dataclass(frozen=True, slots=True)
class PermissionGroup:
    name: str
    children: tuple[PermissionNode, ...]


PermissionNode = Union[PermissionLeaf, PermissionGroup]


@dataclass(frozen=True, slots=True)
class PermissionOption:
    label: str
    value: str


def _module(name: str, *actions: str) -> PermissionGroup:
    return PermissionGroup(
        name=name,
        children=tuple(PermissionLeaf(a, f"{name}.{a}") for a in actions),
    )


PERMISSION_CATALOG: tuple[PermissionNode, ...] = (
    _module("group", "view", "create", "edit", "delete"),
    _module("members", "view", "add", "edit", "delete"),
    _module("roles", "view", "create", "edit", "delete"),
    _module("permissions", "view", "assign"),
    _module("memberships", "view", "manage"),
    _module("applications", "view", "create", "edit", "delete", "approve", "reject"),
)


def flatten(
    nodes: PermissionNode | Sequence[PermissionNode], prefix: str = ""
) -> list[PermissionOption]:
    """Depth-first walk producing one option per leaf.

    The label is the chain of node names joined with "." and the value
    is the leaf's permission string.
    """
    if isinstance(nodes, (PermissionLeaf, PermissionGroup)):
        nodes = (nodes,)

    options: list[PermissionOption] = []
    for node in nodes:
        label = f"{prefix}.{node.name}" if prefix else node.name
        if isinstance(node, PermissionLeaf):
            options.append(PermissionOption(label=label, value=node.permission))
        elif isinstance(node, PermissionGroup):
            options.extend(flatten(node.children, label))
        else:
            raise TypeError(f"unknown permission node {node!r}")
    return options


ALL_PERMISSIONS: frozenset[str] = frozenset(o.value for o in flatten(PERMISSION_CATALOG))


def unknown_permissions(permissions: Iterable[str]) -> set[str]:
    return set(permissions) - ALL_PERMISSIONS


# Names used by the HTTP layer and services.  Keeping them next to the
# catalog means a typo fails at import instead of silently never matching.
GROUP_EDIT = "group.edit"
MEMBERS_VIEW = "members.view"
ROLES_VIEW = "roles.view"
ROLES_CREATE = "roles.create"
ROLES_EDIT = "roles.edit"
PERMISSIONS_ASSIGN = "permissions.assign"
MEMBERSHIPS_VIEW = "memberships.view"
MEMBERSHIPS_MANAGE = "memberships.manage"
APPLICATIONS_VIEW = "applications.view"
APPLICATIONS_APPROVE = "applications.approve"
APPLICATIONS_REJECT = "applications.reject"

_missing = {
    GROUP_EDIT,
    MEMBERS_VIEW,
    ROLES_VIEW,
    ROLES_CREATE,
    ROLES_EDIT,
    PERMISSIONS_ASSIGN,
    MEMBERSHIPS_VIEW,
    MEMBERSHIPS_MANAGE,
    APPLICATIONS_VIEW,
    APPLICATIONS_APPROVE,
    APPLICATIONS_REJECT,
} - ALL_PERMISSIONS
if _missing:
    raise RuntimeError(f"permission names missing from catalog: {sorted(_missing)}")
