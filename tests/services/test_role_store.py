from __future__ import annotations

from uuid import uuid4

import pytest

from app.core.errors import ConflictError, DomainValidationError, NotFoundError
from app.models.role import Role
from app.repos.storage import memory_storage
from app.services.role_store import RolePermissionStore, effective_permissions
from tests.conftest import add_test_member, create_test_org, owner_of, run


@pytest.fixture
def store() -> RolePermissionStore:
    return RolePermissionStore(memory_storage)


def test_effective_permissions_is_plain_union() -> None:
    org_id = uuid4()
    a = Role.new(org_id=org_id, name="a", permissions={"roles.view", "members.view"})
    b = Role.new(org_id=org_id, name="b", permissions={"members.view", "group.edit"})
    assert effective_permissions([a, b]) == {"roles.view", "members.view", "group.edit"}
    assert effective_permissions([]) == frozenset()


def test_roles_for_identity_are_scoped_to_one_org(store: RolePermissionStore) -> None:
    first = create_test_org("first-org")
    second = create_test_org("second-org")
    user = add_test_member(first, {"members.view"})
    add_test_member(second, {"group.edit"}, user_id=user)

    roles = run(store.get_roles_for_identity(user, first.id))
    assert effective_permissions(roles) == {"members.view"}


def test_roles_for_identity_empty_when_none_held(store: RolePermissionStore) -> None:
    org = create_test_org()
    assert run(store.get_roles_for_identity(uuid4(), org.id)) == frozenset()


def test_roles_for_identity_unknown_org(store: RolePermissionStore) -> None:
    with pytest.raises(NotFoundError):
        run(store.get_roles_for_identity(uuid4(), uuid4()))


def test_create_role_rejects_unknown_permissions(store: RolePermissionStore) -> None:
    org = create_test_org()
    with pytest.raises(DomainValidationError) as exc_info:
        run(store.create_role(org, name="Bad", permissions={"roles.view", "roles.fly"}))
    assert exc_info.value.details["permissions"] == ["roles.fly"]


def test_create_role_rejects_blank_name(store: RolePermissionStore) -> None:
    org = create_test_org()
    with pytest.raises(DomainValidationError):
        run(store.create_role(org, name="   ", permissions=set()))


def test_create_role_rejects_duplicate_name_in_same_org(store: RolePermissionStore) -> None:
    org = create_test_org()
    run(store.create_role(org, name="Editors", permissions={"group.edit"}))
    with pytest.raises(ConflictError):
        run(store.create_role(org, name="Editors", permissions=set()))


def test_same_role_name_allowed_in_different_orgs(store: RolePermissionStore) -> None:
    run(store.create_role(create_test_org("org-one"), name="Editors", permissions=set()))
    run(store.create_role(create_test_org("org-two"), name="Editors", permissions=set()))


def test_assign_role_is_idempotent(store: RolePermissionStore) -> None:
    org = create_test_org()
    role = run(store.create_role(org, name="Editors", permissions={"group.edit"}))
    user = uuid4()
    run(store.assign_role(org, role.id, user))
    run(store.assign_role(org, role.id, user))
    roles = run(store.get_roles_for_identity(user, org.id))
    assert roles == frozenset({role})


def test_assign_role_from_another_org_is_not_found(store: RolePermissionStore) -> None:
    org = create_test_org("org-one")
    other = create_test_org("org-two")
    foreign = run(store.create_role(other, name="Editors", permissions=set()))
    with pytest.raises(NotFoundError):
        run(store.assign_role(org, foreign.id, uuid4()))


def test_list_roles_sorted_by_name(store: RolePermissionStore) -> None:
    org = create_test_org()
    run(store.create_role(org, name="Zebra", permissions=set()))
    run(store.create_role(org, name="Alpha", permissions=set()))
    names = [r.name for r in run(store.list_roles(org))]
    assert names == ["Alpha", "Owner", "Zebra"]


def test_owner_role_holds_every_permission(store: RolePermissionStore) -> None:
    from app.core.permissions import ALL_PERMISSIONS

    org = create_test_org()
    roles = run(store.get_roles_for_identity(owner_of(org), org.id))
    assert effective_permissions(roles) == ALL_PERMISSIONS
