"""
Tests for permission flags and resolution.
"""

import pytest

from valorwell.services.permissions import (
    ADMIN_PERMISSIONS,
    STAFF_PERMISSIONS,
    PermissionKey,
    PermissionService,
    default_permissions,
    has_all_permissions,
    has_any_permission,
    has_permission,
    permissions_from_roles,
    permissions_from_row,
)


class TestHasPermission:
    def test_missing_map_is_false(self):
        assert has_permission(None, PermissionKey.ACCESS_FORMS) is False
        assert has_permission({}, PermissionKey.ACCESS_FORMS) is False

    def test_missing_key_is_false(self):
        assert has_permission({"access_calendar": True}, PermissionKey.ACCESS_FORMS) is False

    def test_only_literal_true_grants(self):
        assert has_permission({"access_forms": True}, "access_forms") is True
        assert has_permission({"access_forms": "true"}, "access_forms") is False
        assert has_permission({"access_forms": 1}, "access_forms") is False
        assert has_permission({"access_forms": None}, "access_forms") is False

    def test_all_and_any(self):
        flags = {"access_forms": True, "access_invoicing": False}
        keys = [PermissionKey.ACCESS_FORMS, PermissionKey.ACCESS_INVOICING]

        assert has_all_permissions(flags, keys) is False
        assert has_any_permission(flags, keys) is True
        assert has_all_permissions(flags, []) is True


class TestRoleDefaults:
    def test_staff_defaults(self):
        flags = permissions_from_roles(is_staff=True, is_admin=False)

        assert all(flags[k.value] for k in STAFF_PERMISSIONS)
        assert flags["access_invoicing"] is False
        assert flags["access_settings"] is False

    def test_admin_gets_everything(self):
        flags = permissions_from_roles(is_staff=True, is_admin=True)

        assert all(flags[k.value] for k in ADMIN_PERMISSIONS)
        assert set(ADMIN_PERMISSIONS) == set(PermissionKey)

    def test_clients_get_nothing(self):
        assert not any(permissions_from_roles(is_staff=False, is_admin=False).values())

    def test_default_permissions_by_role_name(self):
        assert default_permissions("admin")["supervisor"] is True
        assert default_permissions("staff")["access_calendar"] is True
        assert default_permissions("client")["access_calendar"] is False
        assert default_permissions(None)["access_calendar"] is False

    def test_row_nulls_are_false(self):
        flags = permissions_from_row({"access_forms": True, "access_calendar": None, "user_id": "u1"})

        assert flags["access_forms"] is True
        assert flags["access_calendar"] is False
        assert "user_id" not in flags


class TestPermissionService:
    @pytest.mark.asyncio
    async def test_explicit_row_overrides_defaults(self, fake_backend, backend, breaker):
        fake_backend.seed(
            "user_permissions",
            {"user_id": "u1", "tenant_id": "t1", "access_invoicing": True, "access_calendar": False},
        )

        permissions = await PermissionService(backend, breaker).resolve("u1", "t1", is_staff=True, is_admin=False)

        assert permissions.explicit is True
        assert permissions.has(PermissionKey.ACCESS_INVOICING)
        assert not permissions.has(PermissionKey.ACCESS_CALENDAR)

    @pytest.mark.asyncio
    async def test_defaults_without_row(self, backend, breaker):
        permissions = await PermissionService(backend, breaker).resolve("u2", "t1", is_staff=True, is_admin=False)

        assert permissions.explicit is False
        assert permissions.has(PermissionKey.ACCESS_CALENDAR)
        assert permissions.to_dict()["access_invoicing"] is False
