"""
Tests for role detection and the per-user role cache.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from conftest import TENANT_ID, seed_client_user, seed_staff_user
from valorwell.core.circuit_breaker import CircuitOpenError
from valorwell.core.error_classification import ErrorType
from valorwell.services.backend_client import BackendError
from valorwell.services.roles import (
    RoleCache,
    RoleDetectionService,
    TenantMembershipMissingError,
    _is_transient,
)

RECURSION_MESSAGE = 'infinite recursion detected in policy for relation "profiles"'


@pytest.fixture
def role_cache():
    return RoleCache(ttl_seconds=300)


@pytest.fixture
def detector(backend, breaker, role_cache):
    return RoleDetectionService(backend, breaker, role_cache)


class TestDetect:
    @pytest.mark.asyncio
    async def test_clinical_staff(self, fake_backend, detector):
        seed_staff_user(fake_backend)

        context = await detector.detect("staff-user-1")

        assert context.role == "staff"
        assert context.is_staff is True
        assert context.is_admin is False
        assert context.is_clinician is True
        assert context.tenant_id == TENANT_ID
        assert context.staff.id == "staff-1"
        assert context.permissions.flags["access_calendar"] is True
        assert context.permissions.flags["access_invoicing"] is False

    @pytest.mark.asyncio
    async def test_non_clinical_admin(self, fake_backend, detector):
        seed_staff_user(fake_backend, user_id="admin-1", staff_id="staff-a", admin=True, clinical=False)

        context = await detector.detect("admin-1")

        assert context.role == "staff"
        assert context.is_admin is True
        assert context.is_clinician is False
        assert context.permissions.flags["access_settings"] is True

    @pytest.mark.asyncio
    async def test_client(self, fake_backend, detector):
        seed_client_user(fake_backend)

        context = await detector.detect("client-user-1")

        assert context.role == "client"
        assert context.is_client is True
        assert context.is_staff is False
        assert context.staff is None
        assert not any(context.permissions.flags.values())
        assert fake_backend.requests_to("staff") == []

    @pytest.mark.asyncio
    async def test_staff_without_staff_row(self, fake_backend, detector):
        fake_backend.seed("profiles", {"id": "u5"})
        fake_backend.seed("tenant_memberships", {"id": "tm5", "profile_id": "u5", "tenant_id": TENANT_ID})
        fake_backend.seed("user_roles", {"user_id": "u5", "role": "staff"})

        context = await detector.detect("u5")

        assert context.is_staff is True
        assert context.staff is None
        assert context.is_clinician is False

    @pytest.mark.asyncio
    async def test_explicit_permissions_row_wins(self, fake_backend, detector):
        seed_staff_user(fake_backend)
        fake_backend.seed(
            "user_permissions",
            {"user_id": "staff-user-1", "tenant_id": TENANT_ID, "access_invoicing": True},
        )

        context = await detector.detect("staff-user-1")

        assert context.permissions.explicit is True
        assert context.permissions.flags["access_invoicing"] is True
        assert context.permissions.flags["access_calendar"] is False


class TestIncompleteSignup:
    @pytest.mark.asyncio
    async def test_missing_profile_is_incomplete_and_not_cached(self, fake_backend, detector, role_cache):
        context = await detector.detect("ghost")

        assert context.signup_incomplete is True
        assert context.tenant_id is None
        assert role_cache.get("ghost") is None

    @pytest.mark.asyncio
    async def test_missing_membership_raises(self, fake_backend, detector):
        fake_backend.seed("profiles", {"id": "orphan"})

        with pytest.raises(TenantMembershipMissingError) as exc_info:
            await detector.detect("orphan")

        assert exc_info.value.user_id == "orphan"


class TestCaching:
    @pytest.mark.asyncio
    async def test_second_lookup_hits_cache(self, fake_backend, detector):
        seed_staff_user(fake_backend)

        first = await detector.detect("staff-user-1")
        request_count = len(fake_backend.requests)
        second = await detector.detect("staff-user-1")

        assert second is first
        assert len(fake_backend.requests) == request_count

    @pytest.mark.asyncio
    async def test_invalidate_forces_refetch(self, fake_backend, detector):
        seed_staff_user(fake_backend)

        await detector.detect("staff-user-1")
        detector.invalidate("staff-user-1")
        await detector.detect("staff-user-1")

        assert len(fake_backend.requests_to("profiles")) == 2

    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_one_fetch(self, fake_backend, detector):
        seed_staff_user(fake_backend)

        first, second = await asyncio.gather(
            detector.detect("staff-user-1"),
            detector.detect("staff-user-1"),
        )

        assert first is second
        assert len(fake_backend.requests_to("profiles")) == 1

    @pytest.mark.asyncio
    async def test_network_failures_are_retried(self, fake_backend, detector):
        seed_staff_user(fake_backend)
        fake_backend.fail_times("profiles", 1)

        with patch("valorwell.core.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            context = await detector.detect("staff-user-1")

        assert context.is_staff is True
        mock_sleep.assert_awaited_once()

    def test_cache_clear(self, role_cache):
        role_cache.clear()
        assert role_cache.get("anyone") is None


class TestRetryPolicy:
    def test_network_errors_are_transient(self):
        assert _is_transient(Exception("Network request failed"), 1) is True

    def test_open_circuit_is_never_retried(self):
        error = CircuitOpenError("identity", 5.0, ErrorType.NETWORK_ERROR)

        assert _is_transient(error, 1) is False


class TestPolicyFallback:
    @pytest.fixture
    def ticks(self):
        return [0.0]

    @pytest.fixture
    def expiring_detector(self, backend, breaker, ticks):
        cache = RoleCache(ttl_seconds=300, timer=lambda: ticks[0])
        return RoleDetectionService(backend, breaker, cache)

    @pytest.mark.asyncio
    async def test_policy_error_serves_last_known_role(self, fake_backend, breaker, ticks, expiring_detector):
        seed_staff_user(fake_backend)
        first = await expiring_detector.detect("staff-user-1")
        ticks[0] += 301
        fake_backend.fail("profiles", 500, RECURSION_MESSAGE, "42P17")

        context = await expiring_detector.detect("staff-user-1")

        assert context is first
        assert breaker.should_use_policy_fallback() is True

    @pytest.mark.asyncio
    async def test_fallback_skips_backend_while_policy_errors_are_recent(
        self, fake_backend, ticks, expiring_detector
    ):
        seed_staff_user(fake_backend)
        first = await expiring_detector.detect("staff-user-1")
        ticks[0] += 301
        fake_backend.fail("profiles", 500, RECURSION_MESSAGE, "42P17")
        await expiring_detector.detect("staff-user-1")
        profile_requests = len(fake_backend.requests_to("profiles"))

        context = await expiring_detector.detect("staff-user-1")

        assert context is first
        assert len(fake_backend.requests_to("profiles")) == profile_requests

    @pytest.mark.asyncio
    async def test_policy_error_without_last_known_role_propagates(self, fake_backend, detector):
        fake_backend.fail("profiles", 500, RECURSION_MESSAGE, "42P17")

        with pytest.raises(BackendError):
            await detector.detect("staff-user-1")

    @pytest.mark.asyncio
    async def test_invalidate_drops_last_known_role(self, fake_backend, ticks, expiring_detector):
        seed_staff_user(fake_backend)
        await expiring_detector.detect("staff-user-1")
        expiring_detector.invalidate("staff-user-1")
        fake_backend.fail("profiles", 500, RECURSION_MESSAGE, "42P17")

        with pytest.raises(BackendError):
            await expiring_detector.detect("staff-user-1")
