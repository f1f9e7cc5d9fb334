"""Security group lifecycle reconciliation.

Guarantees that the security group of a service instance exists, matches the
desired rules, and is removed once, against an eventually-consistent Cloud
Controller:

1. post-provision: create the group (bounded retry)
2. post-update: ensure the group exists, recreating it if it drifted away
3. pre-delete: delete the group, treating "already gone" as success

The reconciler holds no state about groups. Every operation re-derives the
group name from the instance guid and reads everything else from the remote
system.
"""

from __future__ import annotations

import contextlib
import logging
from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol

from azure.core.exceptions import ResourceNotFoundError

from .cloud_controller import CloudController
from .concurrency import InstanceLocks
from .config import Config
from .lookup import Absent, Failed, Found, lookup_security_group
from .models import InstanceRef, ProvisionOptions, SecurityGroup, SecurityGroupRule
from .retry import RetryPolicy, ordinal, retry
from .rules import build_security_group_rules, security_group_name

logger = logging.getLogger(__name__)


class SecurityGroupNotCreated(Exception):
    """Raised when a security group could not be created.

    The underlying remote error is chained as __cause__ and logged, but only the
    attempted name is part of this error's contract.
    """

    def __init__(self, name: str) -> None:
        super().__init__(f"Security group '{name}' could not be created")
        self.name = name


class LifecycleHooks(Protocol):
    """Hooks a provisioning workflow calls around instance operations."""

    async def post_instance_provision_operations(
        self, options: ProvisionOptions | dict[str, Any]
    ) -> str | None: ...

    async def pre_instance_delete_operations(
        self, options: InstanceRef | dict[str, Any]
    ) -> None: ...

    async def post_instance_update_operations(
        self, options: ProvisionOptions | dict[str, Any]
    ) -> str | None: ...


def _coerce_options(options: ProvisionOptions | dict[str, Any]) -> ProvisionOptions:
    if isinstance(options, ProvisionOptions):
        return options
    return ProvisionOptions.model_validate(options)


def _coerce_instance_ref(options: InstanceRef | dict[str, Any]) -> InstanceRef:
    if isinstance(options, InstanceRef):
        return options
    return InstanceRef.model_validate(options)


class SecurityGroupReconciler:
    """Security group lifecycle hooks backed by the Cloud Controller.

    Failures propagate unchanged to the calling workflow; the only retries are
    the bounded create attempts.
    """

    def __init__(
        self,
        config: Config,
        client: CloudController,
        retry_policy: RetryPolicy | None = None,
        locks: InstanceLocks | None = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            config: Immutable configuration snapshot.
            client: Cloud Controller client.
            retry_policy: Create retry bounds (default: 4 attempts, 1s minimum delay).
            locks: Shared per-instance locks. Created when serialization is enabled
                and none is given.
        """
        self._config = config
        self._client = client
        self._retry_policy = retry_policy or RetryPolicy()
        self._locks = locks
        if self._locks is None and config.serialize_instance_operations:
            self._locks = InstanceLocks()

    @property
    def config(self) -> Config:
        """Get the reconciler configuration."""
        return self._config

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    def security_group_name(self, instance_guid: str) -> str:
        return security_group_name(self._config.security_group_name_prefix, instance_guid)

    # =========================================================================
    # Lifecycle hooks
    # =========================================================================

    async def post_instance_provision_operations(
        self, options: ProvisionOptions | dict[str, Any]
    ) -> str | None:
        """Create the instance's security group.

        Returns:
            Guid of the created group, or None if the feature is disabled.
        """
        if not self._config.features.enable_security_groups_ops:
            logger.info(
                "Feature EnableSecurityGroupsOps set to false. Not creating security groups."
            )
            return None
        options = _coerce_options(options)
        async with self._serialized(options.guid):
            return await self.create_security_group(options)

    async def pre_instance_delete_operations(
        self, options: InstanceRef | dict[str, Any]
    ) -> None:
        """Delete the instance's security group.

        Only the instance guid is read; rule intents are not validated here.
        """
        if not self._config.features.enable_security_groups_ops:
            logger.info(
                "Feature EnableSecurityGroupsOps set to false. Not deleting security groups."
            )
            return
        options = _coerce_instance_ref(options)
        async with self._serialized(options.guid):
            await self.delete_security_group(options)

    async def post_instance_update_operations(
        self, options: ProvisionOptions | dict[str, Any]
    ) -> str | None:
        """Ensure the instance's security group still exists.

        Returns:
            Guid of the existing or recreated group, or None if the feature is
            disabled.
        """
        if not self._config.features.enable_security_groups_ops:
            logger.info(
                "Feature EnableSecurityGroupsOps set to false. Not creating security groups."
            )
            return None
        options = _coerce_options(options)
        async with self._serialized(options.guid):
            return await self.ensure_security_group_exists(options)

    def _serialized(self, instance_guid: str) -> AbstractAsyncContextManager[None]:
        if self._locks is None:
            return contextlib.nullcontext()
        return self._locks.hold(instance_guid)

    # =========================================================================
    # Operations
    # =========================================================================

    async def create_security_group(
        self, options: ProvisionOptions, space_guid: str | None = None
    ) -> str:
        """Create the security group with bounded retry.

        Args:
            options: Instance options (guid and ingress rules).
            space_guid: Space to attach the group to. Resolved from options when
                not given; resolution failures count as a failed create.

        Returns:
            Guid assigned to the created group.

        Raises:
            SecurityGroupNotCreated: If the space could not be resolved or all
                attempts failed.
        """
        name = self.security_group_name(options.guid)
        rules = build_security_group_rules(options)

        try:
            if space_guid is None:
                space_guid = await self.resolve_space_guid(options)
            security_group = await self._create_with_retry(name, rules, space_guid)
        except Exception as e:
            logger.error(
                f"+-> Failed to create security group {name}",
                extra={
                    "security_group": name,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise SecurityGroupNotCreated(name) from e

        guid = security_group.guid
        logger.info(f"+-> Created security group with guid '{guid}'")
        return guid

    async def _create_with_retry(
        self, name: str, rules: list[SecurityGroupRule], space_guid: str
    ) -> SecurityGroup:
        logger.info(
            f"Creating security group '{name}' with rules ...",
            extra={
                "security_group": name,
                "space_guid": space_guid,
                "rules": [rule.to_payload() for rule in rules],
            },
        )

        async def attempt(number: int) -> SecurityGroup:
            logger.info(f"+-> {ordinal(number)} attempt to create security group '{name}'...")
            return await self._client.create_security_group(name, rules, [space_guid])

        return await retry(
            attempt,
            self._retry_policy,
            operation_name=f"Create security group '{name}'",
        )

    async def ensure_security_group_exists(self, options: ProvisionOptions) -> str:
        """Confirm the security group exists, recreating it if missing.

        Remote state can drift (group deleted out of band, or provisioning failed
        part-way), so this is a self-healing check rather than a pure verifier.

        Returns:
            Guid of the existing or recreated group.

        Raises:
            SecurityGroupNotCreated: If recreation failed.
            Exception: Any lookup failure other than not-found, unchanged.
        """
        name = self.security_group_name(options.guid)
        logger.info(f"Ensuring existence of security group '{name}'...")

        match await lookup_security_group(self._client, name):
            case Found(resource=security_group):
                logger.info(
                    "+-> Security group exists",
                    extra={"security_group": name, "guid": security_group.guid},
                )
                return security_group.guid

            case Absent():
                logger.warning(
                    "+-> Security group does not exist. Trying to create it again.",
                    extra={"security_group": name},
                )
                space_guid = await self.resolve_space_guid(options)
                return await self.create_security_group(options, space_guid=space_guid)

            case Failed(error=error):
                logger.error(
                    f"+-> Failed to look up security group '{name}'",
                    extra={"security_group": name, "error": str(error)},
                )
                raise error

    async def delete_security_group(self, options: InstanceRef) -> None:
        """Delete the security group, tolerating prior absence.

        Raises:
            AssertionError: If the remote group's name differs from the derived
                name. This is a data integrity error and is never caught here.
            Exception: Any other lookup or delete failure, unchanged.
        """
        name = self.security_group_name(options.guid)
        logger.info(f"Deleting security group '{name}'...")

        match await lookup_security_group(self._client, name):
            case Absent(detail=detail):
                logger.warning(
                    "+-> Could not find security group",
                    extra={"security_group": name, "detail": detail},
                )
                return

            case Failed(error=error):
                logger.error(
                    "+-> Failed to delete security group",
                    extra={"security_group": name, "error": str(error)},
                )
                raise error

            case Found(resource=security_group):
                if security_group.name != name:
                    raise AssertionError(
                        f"Security group lookup for '{name}' returned "
                        f"'{security_group.name}'"
                    )

        guid = security_group.guid
        logger.info(f"+-> Found security group with guid '{guid}'")

        try:
            await self._client.delete_security_group(guid)
        except ResourceNotFoundError:
            # Deleted between lookup and delete
            logger.warning(
                "+-> Security group vanished before delete",
                extra={"security_group": name, "guid": guid},
            )
            return
        except Exception as e:
            logger.error(
                "+-> Failed to delete security group",
                extra={"security_group": name, "guid": guid, "error": str(e)},
            )
            raise

        logger.info("+-> Deleted security group", extra={"security_group": name, "guid": guid})

    async def resolve_space_guid(self, options: InstanceRef) -> str:
        """Determine the space a to-be-created group is attached to.

        Uses the space from the options context when present. Otherwise the
        service instance is fetched, since recreation during update may run
        without the original provisioning context.
        """
        if options.context.space_guid:
            return options.context.space_guid

        instance = await self._client.get_service_instance(options.guid)
        logger.info(
            "Resolved space from service instance",
            extra={"instance_guid": options.guid, "space_guid": instance.space_guid},
        )
        return instance.space_guid
