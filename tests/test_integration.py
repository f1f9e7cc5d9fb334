"""Integration tests for full security group lifecycles.

These tests run the hooks in the order a provisioning workflow calls them,
against one shared in-memory Cloud Controller, to check:
- provision, update and delete converge on the expected remote state
- out-of-band drift is healed by the update hook
- repeated hooks are idempotent
"""

from __future__ import annotations

import asyncio

import pytest

from cf_mock import MockCloudController, MockCloudControllerState
from sgreconciler.config import Config, QuotaConfig
from sgreconciler.models import SecurityGroupRule
from sgreconciler.retry import RetryPolicy
from sgreconciler.security_groups import LifecycleHooks, SecurityGroupReconciler
from sgreconciler.tenant_policy import TenantPolicyGate

NO_DELAY = RetryPolicy(min_delay_seconds=0, max_delay_seconds=0)

OPTIONS = {
    "guid": "abc-123",
    "context": {
        "platform": "cloudfoundry",
        "space_guid": "space-1",
        "organization_guid": "org-1",
    },
    "ipRuleOptions": [
        {"protocol": "tcp", "ips": ["10.0.0.1", "10.0.0.5"], "applicationAccessPorts": [8080, 9090]},
        {"protocol": "udp", "ips": ["10.0.1.1"]},
    ],
}


@pytest.fixture
def state() -> MockCloudControllerState:
    state = MockCloudControllerState()
    state.add_service_instance("abc-123", space_guid="space-1")
    state.add_organization("org-1", "acme")
    return state


@pytest.fixture
def config() -> Config:
    return Config(
        security_group_name_prefix="sf",
        multi_az_enabled="internal",
        quota=QuotaConfig(whitelist=frozenset({"acme"})),
    )


class TestLifecycle:
    """Full instance lifecycle against one Cloud Controller."""

    @pytest.mark.asyncio
    async def test_provision_update_delete(
        self, state: MockCloudControllerState, config: Config
    ) -> None:
        """Test a group is created, kept, and removed over the lifecycle."""
        client = MockCloudController(state)
        hooks: LifecycleHooks = SecurityGroupReconciler(config, client, retry_policy=NO_DELAY)

        created = await hooks.post_instance_provision_operations(OPTIONS)
        group = state.find_security_group("sf-abc-123")
        assert group is not None
        assert group.guid == created
        assert group.space_guids == ["space-1"]
        assert group.rules == [
            SecurityGroupRule(protocol="tcp", destination="10.0.0.1-10.0.0.5", ports="8080,9090"),
            SecurityGroupRule(protocol="udp", destination="10.0.1.1", ports="1024-65535"),
        ]

        assert await hooks.post_instance_update_operations(OPTIONS) == created
        assert client.mutation_count == 1

        await hooks.pre_instance_delete_operations(OPTIONS)
        assert state.security_group_count == 0

        await hooks.pre_instance_delete_operations(OPTIONS)
        assert client.mutation_count == 2

    @pytest.mark.asyncio
    async def test_update_heals_out_of_band_delete(
        self, state: MockCloudControllerState, config: Config
    ) -> None:
        """Test a group removed behind the reconciler's back is recreated."""
        client = MockCloudController(state)
        reconciler = SecurityGroupReconciler(config, client, retry_policy=NO_DELAY)

        first = await reconciler.post_instance_provision_operations(OPTIONS)
        assert first is not None
        state.delete_security_group(first)

        # Update payloads may arrive without the provisioning context
        second = await reconciler.post_instance_update_operations(
            {"guid": "abc-123", "ipRuleOptions": OPTIONS["ipRuleOptions"]}
        )

        assert second is not None
        assert second != first
        assert state.get_security_group(second).space_guids == ["space-1"]  # type: ignore[union-attr]
        assert len(state.list_security_groups("sf-abc-123")) == 1

    @pytest.mark.asyncio
    async def test_instances_are_independent(
        self, state: MockCloudControllerState, config: Config
    ) -> None:
        """Test concurrent lifecycles of different instances do not interfere."""
        client = MockCloudController(state)
        reconciler = SecurityGroupReconciler(config, client, retry_policy=NO_DELAY)
        other = {**OPTIONS, "guid": "def-456"}

        await asyncio.gather(
            reconciler.post_instance_provision_operations(OPTIONS),
            reconciler.post_instance_provision_operations(other),
        )
        await reconciler.pre_instance_delete_operations(OPTIONS)

        assert state.find_security_group("sf-abc-123") is None
        assert state.find_security_group("sf-def-456") is not None

    @pytest.mark.asyncio
    async def test_multi_az_gate_before_provision(
        self, state: MockCloudControllerState, config: Config
    ) -> None:
        """Test the tenant gate and hooks share one configuration and client."""
        client = MockCloudController(state)
        gate = TenantPolicyGate(config, client)
        reconciler = SecurityGroupReconciler(config, client, retry_policy=NO_DELAY)

        assert await gate.is_multi_az_deployment_enabled(OPTIONS) is True
        await reconciler.post_instance_provision_operations(OPTIONS)

        assert [call.method for call in client.calls] == [
            "get_organization",
            "create_security_group",
        ]
