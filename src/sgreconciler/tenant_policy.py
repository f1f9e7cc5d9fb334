"""Tenant policy gate for multi-availability-zone deployment.

Provisioning logic asks this gate whether a tenant may get a multi-AZ
topology before any lifecycle hook runs. The answer depends on the configured
mode and, in internal mode, on whether the owning organization is whitelisted.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from .cloud_controller import CloudController
from .config import Config
from .models import InstanceContext, InstanceRef

logger = logging.getLogger(__name__)


class MultiAzMode(str, Enum):
    """Recognized values of MULTI_AZ_ENABLED."""

    INTERNAL = "internal"
    ALL = "all"
    DISABLED = "disabled"


ALLOWED_MULTI_AZ_VALUES = (
    f"[{MultiAzMode.INTERNAL.value}, {MultiAzMode.ALL.value}/true, "
    f"{MultiAzMode.DISABLED.value}/false]"
)


class UnprocessableEntity(Exception):
    """Raised when a configured value cannot be interpreted."""

    pass


class TenantPolicyGate:
    """Decides whether optional capabilities are enabled for a tenant."""

    def __init__(self, config: Config, client: CloudController) -> None:
        self._config = config
        self._client = client

    async def is_tenant_whitelisted(self, options: InstanceRef | dict[str, Any]) -> bool:
        """Check whether the instance's organization is on the quota whitelist.

        Raises:
            AssertionError: If the options carry no organization guid.
        """
        if isinstance(options, InstanceRef):
            context = options.context
        else:
            context = InstanceContext.model_validate(options.get("context") or {})

        org_id = context.organization_guid
        if not org_id:
            raise AssertionError(
                "OrgId must be present when checking for whitelisting of Tenant in CF Context"
            )

        org = await self._client.get_organization(org_id)
        logger.debug("Fetched organization", extra={"org_guid": org_id, "org_name": org.name})

        result = org.name in self._config.quota.whitelist
        logger.info(f"Current org - {org_id} is whitelisted: {result}")
        return result

    async def is_multi_az_deployment_enabled(
        self, options: InstanceRef | dict[str, Any]
    ) -> bool:
        """Decide whether multi-AZ deployment is enabled for the tenant.

        Raises:
            UnprocessableEntity: If MULTI_AZ_ENABLED holds an unknown value.
            AssertionError: In internal mode, if the options lack an org guid.
        """
        value = self._config.multi_az_enabled

        match value:
            case MultiAzMode.INTERNAL.value:
                return await self.is_tenant_whitelisted(options)
            case MultiAzMode.ALL.value | True | "true":
                logger.info(f"+-> Multi-AZ Deployment enabled for all consumers : {value}")
                return True
            case MultiAzMode.DISABLED.value | False | "false":
                logger.info(f"+-> Multi-AZ Deployment disabled for all consumers : {value}")
                return False

        raise UnprocessableEntity(
            f"config.multi_az_enabled is set to {value}. "
            f"Allowed values: {ALLOWED_MULTI_AZ_VALUES}"
        )
