from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.core.permissions import (
    ALL_PERMISSIONS,
    PERMISSION_CATALOG,
    PermissionGroup,
    PermissionLeaf,
    PermissionOption,
    flatten,
    unknown_permissions,
)


def test_flatten_leaf_uses_its_own_name_as_label() -> None:
    assert flatten(PermissionLeaf("view", "group.view")) == [
        PermissionOption(label="view", value="group.view")
    ]


def test_flatten_joins_nested_names_with_dots() -> None:
    tree = PermissionGroup(
        "admin",
        (
            PermissionGroup("roles", (PermissionLeaf("create", "roles.create"),)),
            PermissionLeaf("audit", "audit.view"),
        ),
    )
    assert flatten(tree) == [
        PermissionOption(label="admin.roles.create", value="roles.create"),
        PermissionOption(label="admin.audit", value="audit.view"),
    ]


def test_flatten_is_depth_first_in_declaration_order() -> None:
    values = [o.value for o in flatten(PERMISSION_CATALOG)]
    assert values[:4] == ["group.view", "group.create", "group.edit", "group.delete"]
    assert values[-2:] == ["applications.approve", "applications.reject"]


def test_flatten_is_stable_across_calls() -> None:
    assert flatten(PERMISSION_CATALOG) == flatten(PERMISSION_CATALOG)


def test_flatten_rejects_unknown_node() -> None:
    with pytest.raises(TypeError):
        flatten(("not-a-node",))  # type: ignore[arg-type]


def test_catalog_values_are_unique() -> None:
    values = [o.value for o in flatten(PERMISSION_CATALOG)]
    assert len(values) == len(set(values)) == len(ALL_PERMISSIONS)


@pytest.mark.parametrize(
    "perms,unknown",
    [
        ({"roles.create"}, set()),
        ({"roles.create", "roles.fly"}, {"roles.fly"}),
        ({"ROLES.CREATE"}, {"ROLES.CREATE"}),
        (set(), set()),
    ],
    ids=["known", "one-unknown", "case-sensitive", "empty"],
)
def test_unknown_permissions(perms: set[str], unknown: set[str]) -> None:
    assert unknown_permissions(perms) == unknown


def test_permissions_endpoint_lists_catalog(client: TestClient) -> None:
    resp = client.get("/v1/permissions")
    assert resp.status_code == 200
    body = resp.json()
    assert body[0] == {"label": "group.view", "value": "group.view"}
    assert len(body) == len(ALL_PERMISSIONS)
